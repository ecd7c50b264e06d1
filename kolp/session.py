"""
BackupSession: the collaborator-facing surface of the backup subsystem.

One explicit session object (created by kolp.main, or by tests) owns the
credential store, the OAuth flow and the event emitter. Every public
operation except encode returns a result model; KolpError and unexpected
exceptions are converted at this edge and never propagate to the caller.

Sync-upload order: local copy written, then find existing -> delete
existing -> upload new, so Drive holds at most one backup object.
Sync-download order: download -> decode -> local write; an invalid remote
container never overwrites the local copy.
"""
import functools
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, UTC
from pathlib import Path
from typing import Any

from kolp import container
from kolp.auth import AuthorizationFlow, get_valid_access_token
from kolp.config import BACKUP_FILENAME, BACKUP_NAME_PREFIX, DATA_DIR
from kolp.credential_store import CredentialStore
from kolp.errors import DriveError, KolpError
from kolp.events import (
    AUTH_COMPLETED,
    DISCONNECTED,
    SYNC_DOWNLOAD_COMPLETED,
    SYNC_UPLOAD_COMPLETED,
    EventEmitter,
)
from kolp.models import (
    AuthResult,
    AuthStatus,
    DecodeResult,
    LocalFileResult,
    OperationResult,
    Snapshot,
    SyncDownloadResult,
    SyncFolder,
    SyncUploadResult,
)
from kolp.services import drive_service
from kolp.sync_folders import detect_sync_folders, ensure_sync_folder

logger = logging.getLogger(__name__)

SnapshotLike = Snapshot | Mapping[str, Any]


def _as_result(result_cls: type[OperationResult]) -> Callable:
    """Convert anything raised by the wrapped operation into a failed result_cls."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except KolpError as e:
                logger.warning("%s failed: %s", func.__name__, e.msg)
                return result_cls(success=False, error=e.msg)
            except Exception as e:
                logger.exception("%s failed", func.__name__)
                return result_cls(success=False, error=str(e) or type(e).__name__)
        return wrapper
    return decorator


def backup_filename(now: datetime | None = None) -> str:
    """kolp_backup_<ISO timestamp with ':' and '.' replaced by '-'>.klp"""
    now = now or datetime.now(UTC)
    stamp = now.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return f"{BACKUP_NAME_PREFIX}_{stamp.replace(':', '-').replace('.', '-')}{container.KOLP_EXTENSION}"


def _write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)


class BackupSession:
    def __init__(
        self,
        data_dir: str | Path = DATA_DIR,
        *,
        store: CredentialStore | None = None,
        auth_flow: AuthorizationFlow | None = None,
        events: EventEmitter | None = None,
    ):
        self.data_dir = Path(data_dir)
        self.store = store or CredentialStore(self.data_dir)
        self.auth_flow = auth_flow or AuthorizationFlow(self.store)
        self.events = events or EventEmitter()

    @property
    def local_backup_path(self) -> Path:
        return self.data_dir / BACKUP_FILENAME

    # --- Codec ---

    def encode(self, snapshot: SnapshotLike) -> bytes:
        """Raises KolpEncodeError if the snapshot holds non-JSON values."""
        return container.encode(snapshot)

    @_as_result(DecodeResult)
    def decode(self, data: bytes) -> DecodeResult:
        return DecodeResult(success=True, data=container.decode(data))

    # --- Account ---

    @_as_result(AuthResult)
    def start_auth(self, client_id: str, client_secret: str) -> AuthResult:
        client_id, client_secret = (client_id or "").strip(), (client_secret or "").strip()
        if not client_id or not client_secret:
            return AuthResult(success=False, error="Client ID and client secret are required")
        result = self.auth_flow.run(client_id, client_secret)
        self.events.emit(AUTH_COMPLETED, result)
        return result

    def auth_status(self) -> AuthStatus:
        tokens = self.store.load_tokens()
        if not tokens:
            return AuthStatus(connected=False)
        return AuthStatus(connected=True, email=tokens.email, expires_at=tokens.expiry_date)

    @_as_result(OperationResult)
    def disconnect(self) -> OperationResult:
        self.store.delete_tokens()
        result = OperationResult(success=True)
        self.events.emit(DISCONNECTED, result)
        return result

    # --- Drive sync ---

    @_as_result(SyncUploadResult)
    def sync_upload(self, snapshot: SnapshotLike) -> SyncUploadResult:
        access_token = get_valid_access_token(self.store)
        data = container.encode(snapshot)
        _write_bytes(self.local_backup_path, data)

        existing_id = drive_service.find_latest_backup(access_token)
        if existing_id and not drive_service.delete_file(access_token, existing_id):
            return SyncUploadResult(success=False, error="Could not delete previous backup from Google Drive")

        file_id = drive_service.upload_file(access_token, data, backup_filename())
        result = SyncUploadResult(success=True, file_id=file_id)
        self.events.emit(SYNC_UPLOAD_COMPLETED, result)
        return result

    @_as_result(SyncDownloadResult)
    def sync_download(self) -> SyncDownloadResult:
        access_token = get_valid_access_token(self.store)
        file_id = drive_service.find_latest_backup(access_token)
        if not file_id:
            return SyncDownloadResult(success=False, error="No backup found in Google Drive")

        try:
            data = drive_service.download_file(access_token, file_id)
        except DriveError as e:
            logger.warning("Download of %s failed: %s", file_id, e.msg)
            return SyncDownloadResult(success=False, error="Download failed")

        try:
            kolp_file = container.decode(data)
        except KolpError as e:
            return SyncDownloadResult(success=False, error=f"Invalid KOLP file: {e.msg}")

        _write_bytes(self.local_backup_path, data)
        result = SyncDownloadResult(success=True, data=kolp_file)
        self.events.emit(SYNC_DOWNLOAD_COMPLETED, result)
        return result

    # --- Local files ---

    @_as_result(LocalFileResult)
    def save_local(self, folder: str | Path, snapshot: SnapshotLike) -> LocalFileResult:
        """Write <folder>/kolp_backup.klp (e.g. inside a desktop sync folder)."""
        path = Path(folder) / BACKUP_FILENAME
        _write_bytes(path, container.encode(snapshot))
        return LocalFileResult(success=True, path=str(path))

    @_as_result(DecodeResult)
    def load_local(self, folder: str | Path) -> DecodeResult:
        path = Path(folder) / BACKUP_FILENAME
        if not path.is_file():
            return DecodeResult(success=False, error="Backup file not found")
        return self._decode_file(path)

    @_as_result(LocalFileResult)
    def export_file(self, path: str | Path, snapshot: SnapshotLike) -> LocalFileResult:
        path = Path(path)
        _write_bytes(path, container.encode(snapshot))
        return LocalFileResult(success=True, path=str(path))

    @_as_result(DecodeResult)
    def import_file(self, path: str | Path) -> DecodeResult:
        path = Path(path)
        if not path.is_file():
            return DecodeResult(success=False, error="File not found")
        return self._decode_file(path)

    def _decode_file(self, path: Path) -> DecodeResult:
        try:
            kolp_file = container.decode(path.read_bytes())
        except KolpError as e:
            return DecodeResult(success=False, error=f"Invalid KOLP file: {e.msg}")
        return DecodeResult(success=True, data=kolp_file)

    # --- Sync folders ---

    def detect_sync_folders(self, home: str | Path | None = None) -> list[SyncFolder]:
        return detect_sync_folders(home)

    @_as_result(LocalFileResult)
    def connect_sync_folder(self, service_path: str | Path) -> LocalFileResult:
        """Create the Kolp folder inside a detected sync folder; returns its path."""
        return LocalFileResult(success=True, path=str(ensure_sync_folder(service_path)))
