"""
Shared test fixtures: temporary credential store, backup session and an
in-memory Google Drive that answers the REST calls made by drive_service.
"""
import itertools
import json
import re
import time
from urllib.parse import urlparse

import pytest

from kolp.credential_store import CredentialStore
from kolp.crypto import SecretBox
from kolp.models import GoogleCredentials, GoogleTokens
from kolp.services import drive_service
from kolp.session import BackupSession


# ============================================================================
# Snapshot / token helpers
# ============================================================================

def make_snapshot(notes: int = 3, folders: int = 1, tags: int = 2) -> dict:
    return {
        "notes": [
            {"id": f"n{i}", "title": f"Note {i}", "content": "<p>héllo ✓</p>", "tags": ["t1"], "pinned": i == 0}
            for i in range(notes)
        ],
        "folders": [{"id": f"f{i}", "name": f"Folder {i}", "parentId": None} for i in range(folders)],
        "tags": [{"id": f"t{i}", "name": f"tag{i}", "color": "#ff0000"} for i in range(tags)],
        "settings": {"theme": "dark", "fontSize": 14, "autoSave": True},
        "attachments": {},
    }


def now_ms() -> int:
    return int(time.time() * 1000)


@pytest.fixture
def snapshot() -> dict:
    return make_snapshot()


@pytest.fixture
def store(tmp_path) -> CredentialStore:
    return CredentialStore(tmp_path / "data", SecretBox(None))


@pytest.fixture
def connected_store(store) -> CredentialStore:
    """Store holding credentials and a token valid for another hour."""
    store.save_credentials(GoogleCredentials(client_id="client-id", client_secret="client-secret"))
    store.save_tokens(GoogleTokens(
        access_token="access-1",
        refresh_token="refresh-1",
        expiry_date=now_ms() + 3600 * 1000,
        email="user@example.com",
    ))
    return store


@pytest.fixture
def session(tmp_path, connected_store) -> BackupSession:
    return BackupSession(tmp_path / "data", store=connected_store)


# ============================================================================
# In-memory Drive
# ============================================================================

class FakeResponse:
    def __init__(self, status_code: int = 200, body=None, content: bytes = b""):
        self.status_code = status_code
        self._body = body
        self.content = content if body is None else json.dumps(body).encode()
        self.closed = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body

    def iter_content(self, chunk_size: int = 8192):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeDrive:
    """Just enough of Drive v3 for upload / list / media download / delete."""

    def __init__(self, token: str = "access-1"):
        self.token = token
        self.files: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    def add(self, name: str, content: bytes = b"", mime: str = drive_service.BACKUP_MIME) -> str:
        file_id = f"file-{next(self._ids)}"
        self.files[file_id] = {
            "id": file_id,
            "name": name,
            "mimeType": mime,
            "modifiedTime": f"2024-01-01T00:00:{next(self._clock):02d}.000Z",
            "trashed": False,
            "content": content,
        }
        return file_id

    def backups(self) -> list[dict]:
        return [f for f in self.files.values() if "kolp_backup" in f["name"] and not f["trashed"]]

    def _authorized(self, headers) -> bool:
        return (headers or {}).get("Authorization") == f"Bearer {self.token}"

    def request(self, method, url, headers=None, params=None, data=None, **kwargs):
        self.calls.append((method, url))
        if not self._authorized(headers):
            return FakeResponse(401, {"error": {"code": 401, "message": "Invalid Credentials"}})
        path = urlparse(url).path
        params = params or {}
        if method == "POST" and path == "/upload/drive/v3/files":
            return self._upload(headers, data)
        if method == "GET" and path == "/drive/v3/files":
            return self._list(params)
        if method == "GET" and path.startswith("/drive/v3/files/"):
            file = self.files.get(path.rsplit("/", 1)[1])
            if not file:
                return FakeResponse(404, {"error": {"code": 404, "message": "File not found"}})
            return FakeResponse(200, content=file["content"])
        if method == "DELETE":
            return self.delete(url, headers=headers)
        return FakeResponse(400, {"error": {"message": f"Unhandled {method} {path}"}})

    def delete(self, url, headers=None, **kwargs):
        self.calls.append(("DELETE", url))
        if not self._authorized(headers):
            return FakeResponse(401, {"error": {"message": "Invalid Credentials"}})
        file_id = urlparse(url).path.rsplit("/", 1)[1]
        if self.files.pop(file_id, None) is None:
            return FakeResponse(404, {"error": {"message": "File not found"}})
        return FakeResponse(204)

    def _upload(self, headers, body: bytes):
        boundary = headers["Content-Type"].split("boundary=", 1)[1].encode()
        parts = body.split(b"--" + boundary)
        metadata = json.loads(parts[1].split(b"\r\n\r\n", 1)[1].rstrip(b"\r\n"))
        content = parts[2].split(b"\r\n\r\n", 1)[1]
        if content.endswith(b"\r\n"):
            content = content[:-2]
        file_id = self.add(metadata["name"], content, metadata.get("mimeType", ""))
        return FakeResponse(200, {"id": file_id, "name": metadata["name"]})

    def _list(self, params):
        query = params.get("q", "")
        files = list(self.files.values())
        match = re.search(r"name contains '([^']*)'", query)
        if match:
            files = [f for f in files if match.group(1) in f["name"]]
        match = re.search(r"mimeType='([^']*)'", query)
        if match:
            files = [f for f in files if f["mimeType"] == match.group(1)]
        if "trashed=false" in query.replace(" ", ""):
            files = [f for f in files if not f["trashed"]]
        if params.get("orderBy") == "modifiedTime desc":
            files.sort(key=lambda f: f["modifiedTime"], reverse=True)
        files = files[: int(params.get("pageSize", 100))]
        return FakeResponse(200, {"files": [
            {"id": f["id"], "name": f["name"], "modifiedTime": f["modifiedTime"]} for f in files
        ]})


@pytest.fixture
def fake_drive(monkeypatch) -> FakeDrive:
    drive = FakeDrive()
    monkeypatch.setattr(drive_service.requests, "request", drive.request)
    monkeypatch.setattr(drive_service.requests, "delete", drive.delete)
    return drive
