"""
Google router: account connection and Drive backup sync.

Handlers are plain functions so FastAPI runs them in its threadpool; the
OAuth flow blocks for up to OAUTH_TIMEOUT_SECONDS while the user signs in.
Domain failures come back as success=false with a message, not HTTP errors.
Callers must not run two of these at once (see BackupSession).
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from kolp.dependencies import get_session
from kolp.models import AuthResult, AuthStatus, OperationResult, Snapshot, SyncDownloadResult, SyncUploadResult
from kolp.session import BackupSession

router = APIRouter(prefix="/google")


class AuthBody(BaseModel):
    """OAuth client registration entered by the user."""
    client_id: str = Field(..., min_length=1, max_length=512)
    client_secret: str = Field(..., min_length=1, max_length=512)


@router.post("/auth", response_model=AuthResult)
def google_auth(body: AuthBody, session: BackupSession = Depends(get_session)):
    """Open the consent page in the browser and wait for the redirect."""
    return session.start_auth(body.client_id, body.client_secret)


@router.get("/status", response_model=AuthStatus)
def google_status(session: BackupSession = Depends(get_session)):
    return session.auth_status()


@router.post("/disconnect", response_model=OperationResult)
def google_disconnect(session: BackupSession = Depends(get_session)):
    return session.disconnect()


@router.post("/sync-upload", response_model=SyncUploadResult)
def google_sync_upload(snapshot: Snapshot, session: BackupSession = Depends(get_session)):
    """Replace the Drive backup with a container built from snapshot."""
    return session.sync_upload(snapshot)


@router.post("/sync-download", response_model=SyncDownloadResult)
def google_sync_download(session: BackupSession = Depends(get_session)):
    return session.sync_download()
