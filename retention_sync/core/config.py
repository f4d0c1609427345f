"""Configuration settings for the sync engine."""

from typing import Optional, Dict, Any
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""
    
    # Service Configuration
    service_name: str = "retention-sync"
    port: int = 8000
    environment: str = "development"
    debug: bool = False
    
    # Security
    encryption_key: str = "change-me"
    encryption_salt: str = "retention-sync-credentials"
    
    # Database
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "retention_platform"
    redis_url: str = "redis://localhost:6379"
    
    # Auth Service
    auth_service_url: str = "http://localhost:8001"
    
    # Sync engine
    sync_workers: int = 4
    sync_queue_size: int = 100
    scheduler_tick_seconds: float = 60.0
    sync_timeout_seconds: float = 300.0
    sync_max_records: Optional[int] = None
    sync_batch_size: int = 100
    default_sync_interval_hours: int = 24
    lock_backend: str = "memory"  # memory | redis
    lock_ttl_seconds: int = 3600
    shutdown_grace_seconds: float = 30.0
    
    # Rate Limiting
    rate_limit_enabled: bool = True
    
    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    
    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8080"]
    
    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Platform specific configurations
PLATFORM_CONFIGS: Dict[str, Dict[str, Any]] = {
    "hubspot": {
        "name": "HubSpot",
        "category": "crm",
        "api_base_url": "https://api.hubapi.com",
        "rate_limit": {
            "calls": 100,
            "window": 10,  # seconds
        }
    },
    "salesforce": {
        "name": "Salesforce",
        "category": "crm",
        "api_version": "v58.0",
        "rate_limit": {
            "calls": 5000,
            "window": 3600,  # 1 hour
        }
    },
    "stripe": {
        "name": "Stripe",
        "category": "payment",
        "api_base_url": "https://api.stripe.com",
        "rate_limit": {
            "calls": 100,
            "window": 1,
        }
    },
    "mailchimp": {
        "name": "Mailchimp",
        "category": "marketing",
        "api_base_url": "https://{dc}.api.mailchimp.com/3.0",
        "rate_limit": {
            "calls": 10,
            "window": 1,
        }
    },
}
