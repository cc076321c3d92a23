"""Symmetric encryption for OAuth tokens at rest."""

from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from creatorpulse.core.config import settings
from creatorpulse.core.exceptions import CredentialError


@lru_cache(maxsize=1)
def _fernet() -> Fernet:
    if not settings.encryption_key:
        raise RuntimeError("APP_ENCRYPTION_KEY / ENCRYPTION_KEY is not configured")
    return Fernet(settings.encryption_key.encode())


def encrypt(plaintext: str) -> str:
    return _fernet().encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str, platform: str = "unknown") -> str:
    """Decrypt a stored token. A corrupted or foreign ciphertext is a credential problem."""
    try:
        return _fernet().decrypt(ciphertext.encode()).decode()
    except InvalidToken as exc:
        raise CredentialError(platform, f"Stored token for {platform} cannot be decrypted") from exc
