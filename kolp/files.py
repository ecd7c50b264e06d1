"""
KOLP file router: encode/decode containers and local file backup.

Paths come from the UI (folder picker / save dialog); the service only reads
and writes where it is told. Sync folder detection helps the UI offer
Google Drive / OneDrive / Dropbox desktop folders as backup targets.
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from kolp.dependencies import get_session
from kolp.errors import KolpEncodeError
from kolp.models import DecodeResult, LocalFileResult, Snapshot, SyncFolder
from kolp.session import BackupSession

router = APIRouter(prefix="/kolp")


# --- Request models ---


class FolderBody(BaseModel):
    folder_path: str = Field(..., min_length=1)


class SaveLocalBody(FolderBody):
    data: Snapshot


class PathBody(BaseModel):
    path: str = Field(..., min_length=1)


class ExportBody(PathBody):
    data: Snapshot


# --- Endpoints ---


@router.post("/encode")
def encode_snapshot(snapshot: Snapshot, session: BackupSession = Depends(get_session)):
    """Return the .klp bytes for snapshot."""
    try:
        data = session.encode(snapshot)
    except KolpEncodeError as e:
        raise HTTPException(status_code=400, detail=e.msg)
    return Response(content=data, media_type="application/octet-stream")


@router.post("/decode", response_model=DecodeResult)
async def decode_container(request: Request, session: BackupSession = Depends(get_session)):
    """Decode raw .klp bytes sent as the request body."""
    return session.decode(await request.body())


@router.post("/save-local", response_model=LocalFileResult)
def save_local(body: SaveLocalBody, session: BackupSession = Depends(get_session)):
    return session.save_local(body.folder_path, body.data)


@router.post("/load-local", response_model=DecodeResult)
def load_local(body: FolderBody, session: BackupSession = Depends(get_session)):
    return session.load_local(body.folder_path)


@router.post("/export", response_model=LocalFileResult)
def export_file(body: ExportBody, session: BackupSession = Depends(get_session)):
    return session.export_file(body.path, body.data)


@router.post("/import", response_model=DecodeResult)
def import_file(body: PathBody, session: BackupSession = Depends(get_session)):
    return session.import_file(body.path)


@router.get("/sync-folders", response_model=list[SyncFolder])
def sync_folders(session: BackupSession = Depends(get_session)):
    return session.detect_sync_folders()


@router.post("/sync-folders/connect", response_model=LocalFileResult)
def connect_sync_folder(body: PathBody, session: BackupSession = Depends(get_session)):
    """Create the Kolp folder inside the chosen sync folder."""
    return session.connect_sync_folder(body.path)
