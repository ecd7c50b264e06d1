"""
Data models for the backup service.

Snapshot is the plain data exchanged with the note database; it is consumed
whole by the codec. GoogleCredentials / GoogleTokens are the two records
owned by the credential store. The *Result models are what every public
BackupSession operation returns: success flag plus either a payload or a
short error message, never an exception.
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Snapshot(BaseModel):
    """
    Point-in-time copy of the application's data.

    - notes, folders, tags: records as the note database produced them; not
      interpreted here.
    - settings: user settings record.
    - attachments: attachment id -> base64 payload.

    Extra top-level keys (e.g. exportDate) are kept as-is.
    """
    model_config = ConfigDict(extra="allow")

    notes: list[Any] = Field(default_factory=list)
    folders: list[Any] = Field(default_factory=list)
    tags: list[Any] = Field(default_factory=list)
    settings: dict[str, Any] = Field(default_factory=dict)
    attachments: dict[str, str] = Field(default_factory=dict)


class KolpFile(BaseModel):
    """A decoded .klp container."""
    version: int
    timestamp: str  # ISO-8601 UTC, millisecond precision
    checksum: str
    data: dict[str, Any]


class GoogleCredentials(BaseModel):
    """OAuth client registration supplied once by the user."""
    client_id: str
    client_secret: str


class GoogleTokens(BaseModel):
    """
    Issued tokens.

    expiry_date is the absolute expiry in epoch milliseconds, computed at
    issuance as now + expires_in. refresh_token can be null when the
    provider did not return one.
    """
    access_token: str
    refresh_token: str | None = None
    expiry_date: int
    email: str | None = None


# --- Results ---


class OperationResult(BaseModel):
    success: bool
    error: str | None = None


class AuthResult(OperationResult):
    email: str | None = None


class AuthStatus(BaseModel):
    connected: bool
    email: str | None = None
    expires_at: int | None = None


class DecodeResult(OperationResult):
    data: KolpFile | None = None


class SyncUploadResult(OperationResult):
    file_id: str | None = None


class SyncDownloadResult(DecodeResult):
    pass


class LocalFileResult(OperationResult):
    path: str | None = None


class SyncFolder(BaseModel):
    """A desktop cloud-sync folder found on this machine."""
    name: str
    path: str
