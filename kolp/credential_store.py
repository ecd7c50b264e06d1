"""
Local JSON files for the OAuth client registration and the issued tokens.

Two independent records under the data directory:

- google_credentials.json: GoogleCredentials (client id/secret)
- google_tokens.json: GoogleTokens (access/refresh token, expiry, email)

load() never raises: missing, unreadable or invalid files degrade to None
and are logged. save() writes a temp file and renames it over the target.
delete() is idempotent. No locking; last writer wins.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

from kolp.crypto import SecretBox
from kolp.models import GoogleCredentials, GoogleTokens

logger = logging.getLogger(__name__)

CREDENTIALS_FILENAME = "google_credentials.json"
TOKENS_FILENAME = "google_tokens.json"

RecordT = TypeVar("RecordT", bound=BaseModel)


class JsonRecordStore(Generic[RecordT]):
    """One pydantic record persisted as one JSON file; secret_fields are encrypted when a key is set."""

    model: type[RecordT]
    secret_fields: tuple[str, ...] = ()

    def __init__(self, path: str | Path, secret_box: SecretBox | None = None):
        self.path = Path(path)
        self.secret_box = secret_box or SecretBox()

    def load(self) -> RecordT | None:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            for field in self.secret_fields:
                if field in raw:
                    raw[field] = self.secret_box.decrypt(raw[field])
            return self.model.model_validate(raw)
        except (OSError, TypeError, ValueError, ValidationError):
            logger.exception("Failed to load %s", self.path.name)
            return None

    def save(self, record: RecordT) -> None:
        raw = record.model_dump(mode="json")
        for field in self.secret_fields:
            if field in raw:
                raw[field] = self.secret_box.encrypt(raw[field])
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(raw, f)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def delete(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class CredentialsFile(JsonRecordStore[GoogleCredentials]):
    model = GoogleCredentials
    secret_fields = ("client_secret",)


class TokensFile(JsonRecordStore[GoogleTokens]):
    model = GoogleTokens
    secret_fields = ("access_token", "refresh_token")


class CredentialStore:
    """
    Owner of both records. Other components go through this object and never
    touch the files directly.
    """

    def __init__(self, data_dir: str | Path, secret_box: SecretBox | None = None):
        self.data_dir = Path(data_dir)
        box = secret_box or SecretBox()
        self.credentials = CredentialsFile(self.data_dir / CREDENTIALS_FILENAME, box)
        self.tokens = TokensFile(self.data_dir / TOKENS_FILENAME, box)

    def load_credentials(self) -> GoogleCredentials | None:
        return self.credentials.load()

    def save_credentials(self, credentials: GoogleCredentials) -> None:
        self.credentials.save(credentials)

    def load_tokens(self) -> GoogleTokens | None:
        return self.tokens.load()

    def save_tokens(self, tokens: GoogleTokens) -> None:
        self.tokens.save(tokens)

    def delete_tokens(self) -> None:
        """Forget issued tokens (disconnect). Credentials are kept for the next sign-in."""
        self.tokens.delete()
