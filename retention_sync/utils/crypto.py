"""Cryptographic utilities for credential encryption."""

from typing import Dict, Optional
from functools import lru_cache
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import base64


@lru_cache(maxsize=8)
def generate_key(password: str, salt: bytes) -> bytes:
    """Generate encryption key from password."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=100000,
    )
    key = base64.urlsafe_b64encode(kdf.derive(password.encode()))
    return key


def encrypt_token(token: str, encryption_key: str, salt: str) -> str:
    """Encrypt a single credential value."""
    f = Fernet(generate_key(encryption_key, salt.encode()))
    encrypted = f.encrypt(token.encode())
    return base64.urlsafe_b64encode(encrypted).decode()


def decrypt_token(encrypted_token: str, encryption_key: str, salt: str) -> str:
    """Decrypt a single credential value."""
    f = Fernet(generate_key(encryption_key, salt.encode()))
    decrypted = f.decrypt(base64.urlsafe_b64decode(encrypted_token))
    return decrypted.decode()


def encrypt_credentials(
    credentials: Optional[Dict[str, str]],
    encryption_key: str,
    salt: str,
) -> Optional[Dict[str, str]]:
    """Encrypt every value of a credential map, keys stay readable."""
    if credentials is None:
        return None
    return {
        name: encrypt_token(value, encryption_key, salt)
        for name, value in credentials.items()
    }


def decrypt_credentials(
    credentials: Optional[Dict[str, str]],
    encryption_key: str,
    salt: str,
) -> Optional[Dict[str, str]]:
    """Reverse of :func:`encrypt_credentials`."""
    if credentials is None:
        return None
    return {
        name: decrypt_token(value, encryption_key, salt)
        for name, value in credentials.items()
    }
