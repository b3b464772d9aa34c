"""Credential encryption for profile tokens stored in the database."""

from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from src.config.settings import settings
from src.utils.logger import logger


class TokenEncryption:
    """
    Encrypt/decrypt platform access and refresh tokens.

    Uses Fernet symmetric encryption keyed by settings.ENCRYPTION_KEY.
    Profiles never hold plaintext tokens; the token manager decrypts
    them only when building credentials for an adapter call.

    Usage:
        encryption = TokenEncryption()
        stored = encryption.encrypt(access_token)
        access_token = encryption.decrypt(stored)

        # One-time setup
        key = TokenEncryption.generate_key()
    """

    _instance: Optional["TokenEncryption"] = None
    _cipher: Optional[Fernet] = None

    def __new__(cls) -> "TokenEncryption":
        """Singleton - reuse the cipher across repositories and services."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._cipher is not None:
            return

        key = settings.ENCRYPTION_KEY
        if not key:
            raise ValueError(
                "ENCRYPTION_KEY not configured. "
                'Generate one with: python -c "from src.utils.encryption import TokenEncryption; print(TokenEncryption.generate_key())"'
            )

        try:
            self._cipher = Fernet(key.encode())
        except Exception as e:
            raise ValueError(f"Invalid ENCRYPTION_KEY format: {e}")

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a token. Returns a base64 string safe for a text column."""
        if not plaintext:
            raise ValueError("Cannot encrypt empty string")

        return self._cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored token.

        Raises:
            ValueError: If decryption fails (wrong key or corrupted data)
        """
        if not ciphertext:
            raise ValueError("Cannot decrypt empty string")

        try:
            return self._cipher.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.error("Token decryption failed - key mismatch or corrupted data")
            raise ValueError(
                "Failed to decrypt token. "
                "This may indicate the ENCRYPTION_KEY has changed or data is corrupted."
            )

    def encrypt_optional(self, plaintext: Optional[str]) -> Optional[str]:
        """Encrypt a token that may be absent (e.g. platforms without refresh tokens)."""
        return self.encrypt(plaintext) if plaintext else None

    def decrypt_optional(self, ciphertext: Optional[str]) -> Optional[str]:
        return self.decrypt(ciphertext) if ciphertext else None

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key (base64-encoded, 44 characters)."""
        return Fernet.generate_key().decode()

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton instance (tests, key rotation)."""
        cls._instance = None
        cls._cipher = None
