"""
Encryption of secrets at rest using Fernet (symmetric, from cryptography).

Used by the credential store for client_secret, access_token and
refresh_token. Encryption is enabled only when TOKEN_ENCRYPTION_KEY is set;
without a key values are stored as given. Handles None for optional fields.
"""
from cryptography.fernet import Fernet, InvalidToken

from kolp.config import TOKEN_ENCRYPTION_KEY

ENCRYPTED_PREFIX = "fernet:"


class SecretBox:
    """Encrypts/decrypts string secrets with an optional Fernet key."""

    def __init__(self, key: str | bytes | None = TOKEN_ENCRYPTION_KEY):
        if key:
            self.fernet = Fernet(key.encode() if isinstance(key, str) else key)
        else:
            self.fernet = None

    @property
    def enabled(self) -> bool:
        return self.fernet is not None

    def encrypt(self, value: str | None) -> str | None:
        """Encrypt a secret for storage; passthrough when no key is configured."""
        if value is None or self.fernet is None:
            return value
        return ENCRYPTED_PREFIX + self.fernet.encrypt(value.encode()).decode()

    def decrypt(self, value: str | None) -> str | None:
        """
        Decrypt a stored secret. Values without the prefix were written without
        a key and are returned unchanged. Raises ValueError if the value is
        encrypted but cannot be decrypted with the configured key.
        """
        if value is None or not value.startswith(ENCRYPTED_PREFIX):
            return value
        if self.fernet is None:
            raise ValueError("Encrypted value found but TOKEN_ENCRYPTION_KEY is not set")
        try:
            return self.fernet.decrypt(value[len(ENCRYPTED_PREFIX):].encode()).decode()
        except InvalidToken as e:
            raise ValueError("Stored secret cannot be decrypted with the configured key") from e
