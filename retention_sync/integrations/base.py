"""Base connector class and utilities."""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, AsyncIterator
from datetime import datetime, timezone
import asyncio
import logging
import time
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
import httpx

from retention_sync.core.config import Settings, get_settings, PLATFORM_CONFIGS
from retention_sync.models import (
    CustomerRecord,
    Integration,
    IntegrationType,
    SyncFailure,
    SyncOptions,
    SyncResult,
)
from retention_sync.utils.rate_limiter import RateLimiter


logger = logging.getLogger(__name__)


class IntegrationError(Exception):
    """Base connector error."""
    pass


class IntegrationConnectionError(IntegrationError):
    """Platform unreachable or credentials rejected."""
    pass


class AuthenticationError(IntegrationConnectionError):
    """Authentication failed."""
    pass


class RateLimitError(IntegrationError):
    """Rate limit exceeded."""
    pass


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or a unix epoch into an aware datetime."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Salesforce sends +0000 without the colon
    if len(text) > 5 and text[-5] in "+-" and text[-4:].isdigit():
        text = text[:-2] + ":" + text[-2:]
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class BaseConnector(ABC):
    """Base class for all platform connectors.
    
    A connector is stateless with respect to integrations: one instance per
    platform serves every integration of that type. Subclasses supply
    ``fetch_customers`` (pagination, incremental filter) and
    ``map_customer`` (field mapping); ``sync_customers`` turns those into a
    :class:`SyncResult` while enforcing the per-record failure boundary,
    the record budget and the run deadline.
    """
    
    integration_type: IntegrationType
    
    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.settings = settings or get_settings()
        self.config = PLATFORM_CONFIGS[self.integration_type.value]
        self.http_client = http_client or httpx.AsyncClient(timeout=30.0)
        self.rate_limiter = rate_limiter
    
    @property
    def name(self) -> str:
        return self.config["name"]
    
    async def aclose(self) -> None:
        await self.http_client.aclose()
    
    # Abstract methods that must be implemented
    
    @abstractmethod
    async def test_connection(self, integration: Integration) -> bool:
        """Check the integration's credentials against the platform.
        
        Raises IntegrationConnectionError when the platform is unreachable
        or rejects the credentials.
        """
        pass
    
    @abstractmethod
    def fetch_customers(
        self,
        integration: Integration,
        options: SyncOptions,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yield raw customer records from the platform, page by page."""
        pass
    
    @abstractmethod
    def map_customer(self, integration: Integration, raw: Dict[str, Any]) -> CustomerRecord:
        """Translate one raw record into the canonical shape."""
        pass
    
    def external_id_of(self, raw: Dict[str, Any]) -> Optional[str]:
        """Best-effort external id of a raw record, for failure reporting."""
        if isinstance(raw, dict) and raw.get("id") is not None:
            return str(raw["id"])
        return None
    
    def auth_headers(self, integration: Integration) -> Dict[str, str]:
        """Bearer authorization from the ``access_token`` credential."""
        return {"Authorization": f"Bearer {self.require_credential(integration, 'access_token')}"}
    
    def require_credential(self, integration: Integration, name: str) -> str:
        value = integration.credential(name)
        if not value:
            raise AuthenticationError(f"{self.name} credential '{name}' is missing")
        return value
    
    def require_setting(self, integration: Integration, name: str) -> str:
        value = integration.configuration.get(name)
        if not value:
            raise IntegrationConnectionError(f"{self.name} configuration '{name}' is missing")
        return value
    
    def changed_since(self, integration: Integration, options: SyncOptions) -> Optional[datetime]:
        """Cutoff for incremental fetches, None for a full resync."""
        if not options.incremental:
            return None
        return options.sync_from or integration.last_successful_sync_at
    
    async def sync_customers(self, integration: Integration, options: SyncOptions) -> SyncResult:
        """Fetch and map customer records from the platform.
        
        A malformed record becomes a failure entry and the run continues.
        Exceeding ``options.timeout_seconds`` abandons the remaining fetch
        and returns what was gathered, marked as timed out. Faults that are
        not tied to a record (network, auth) propagate to the caller.
        """
        started_at = datetime.now(timezone.utc)
        started = time.monotonic()
        deadline = started + options.timeout_seconds
        
        records = []
        failures = []
        fetched = 0
        failed = 0
        timed_out = False
        
        pages = self.fetch_customers(integration, options)
        try:
            while True:
                if options.max_records and fetched >= options.max_records:
                    break
                
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                try:
                    raw = await asyncio.wait_for(_next_item(pages), timeout=remaining)
                except StopAsyncIteration:
                    break
                
                fetched += 1
                try:
                    records.append(self.map_customer(integration, raw))
                except Exception as e:
                    failed += 1
                    external_id = self.external_id_of(raw) or f"record-{fetched}"
                    logger.warning(
                        f"Skipping malformed {self.name} record {external_id} "
                        f"for integration {integration.id}: {e}"
                    )
                    failures.append(SyncFailure(external_id=external_id, reason=str(e)))
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(
                f"{self.name} sync for integration {integration.id} timed out "
                f"after {options.timeout_seconds}s with {fetched} records fetched"
            )
            failures.append(SyncFailure(reason=f"sync timed out after {options.timeout_seconds:g}s"))
        finally:
            await pages.aclose()
        
        return SyncResult(
            integration_id=integration.id,
            fetched=fetched,
            failed=failed,
            failures=failures,
            success=failed == 0 and not timed_out,
            timed_out=timed_out,
            started_at=started_at,
            duration_seconds=time.monotonic() - started,
            records=records,
        )
    
    # Common utility methods
    
    async def make_api_request(
        self,
        integration: Integration,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make API request with rate limiting and retries."""
        if self.rate_limiter:
            limits = self.config["rate_limit"]
            rate_limit_key = f"{self.integration_type.value}:{integration.id}"
            if not await self.rate_limiter.check_rate_limit(
                rate_limit_key, limit=limits["calls"], window=limits["window"]
            ):
                raise RateLimitError(f"Rate limit exceeded for {rate_limit_key}")
        
        request_headers = dict(headers or {})
        request_headers.update(self.auth_headers(integration))
        
        try:
            response = await self._send(method, url, request_headers, params, json)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 429:
                raise RateLimitError(f"{self.name} rate limit exceeded") from e
            elif status_code in (401, 403):
                raise AuthenticationError(f"{self.name} rejected the credentials ({status_code})") from e
            else:
                raise IntegrationError(f"{self.name} API request failed with status {status_code}") from e
        except httpx.TransportError as e:
            logger.error(f"{self.name} API request failed: {e}")
            raise IntegrationConnectionError(f"{self.name} is unreachable: {e}") from e
    
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        retry=retry_if_exception_type(httpx.TimeoutException),
        reraise=True,
    )
    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, Any]],
        json: Optional[Dict[str, Any]],
    ) -> httpx.Response:
        return await self.http_client.request(
            method=method,
            url=url,
            headers=headers,
            params=params,
            json=json,
        )


async def _next_item(pages: AsyncIterator[Dict[str, Any]]) -> Dict[str, Any]:
    return await pages.__anext__()
