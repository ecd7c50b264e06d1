"""
Drive service: Google Drive v3 calls for the single backup object.

Every function takes an already valid access token and never refreshes it.
Transport failures and non-2xx responses raise DriveError carrying the
provider's message; callers convert that into a failed result. No retries.
"""
import json
import logging
from typing import Any

import requests

from kolp.config import (
    BACKUP_NAME_PREFIX,
    DRIVE_DOWNLOAD_TIMEOUT,
    DRIVE_FILES_URL,
    DRIVE_REQUEST_TIMEOUT,
    DRIVE_UPLOAD_URL,
)
from kolp.errors import DriveError

logger = logging.getLogger(__name__)

BACKUP_MIME = "application/octet-stream"
MULTIPART_BOUNDARY = "-------314159265358979323846"


def _error_message(resp: requests.Response, default: str) -> str:
    """Pull error.message out of a Drive error body, falling back to default."""
    try:
        body = resp.json()
    except ValueError:
        return f"{default} (HTTP {resp.status_code})"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if isinstance(error, str):
            return body.get("error_description", error)
    return f"{default} (HTTP {resp.status_code})"


def _drive_request(
    method: str,
    url: str,
    access_token: str,
    **kwargs: Any,
) -> requests.Response:
    """Call Drive API with bearer auth and timeout. Raises DriveError on transport or HTTP errors."""
    headers = {"Authorization": f"Bearer {access_token}"}
    if "headers" in kwargs:
        headers.update(kwargs.pop("headers"))
    kwargs.setdefault("timeout", DRIVE_REQUEST_TIMEOUT)
    try:
        resp = requests.request(method, url, headers=headers, **kwargs)
    except requests.RequestException as e:
        raise DriveError(str(e)) from e
    if not resp.ok:
        raise DriveError(_error_message(resp, f"Drive {method} failed"), status_code=resp.status_code)
    return resp


def _multipart_body(metadata: dict, data: bytes) -> bytes:
    return b"".join([
        f"--{MULTIPART_BOUNDARY}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n".encode(),
        json.dumps(metadata).encode("utf-8"),
        f"\r\n--{MULTIPART_BOUNDARY}\r\n"
        f"Content-Type: {BACKUP_MIME}\r\n\r\n".encode(),
        data,
        f"\r\n--{MULTIPART_BOUNDARY}--".encode(),
    ])


def upload_file(access_token: str, data: bytes, filename: str) -> str:
    """Create a new Drive file (metadata + content in one multipart request); returns its id."""
    body = _multipart_body({"name": filename, "mimeType": BACKUP_MIME}, data)
    resp = _drive_request(
        "POST",
        DRIVE_UPLOAD_URL,
        access_token,
        params={"uploadType": "multipart"},
        data=body,
        headers={"Content-Type": f"multipart/related; boundary={MULTIPART_BOUNDARY}"},
    )
    try:
        file_id = resp.json().get("id")
    except (ValueError, AttributeError) as e:
        raise DriveError("Upload failed: unexpected response") from e
    if not file_id:
        raise DriveError("Upload failed")
    logger.info("Uploaded %s to Drive as %s", filename, file_id)
    return file_id


def find_latest_backup(access_token: str) -> str | None:
    """Id of the most recently modified, non-trashed backup file, or None."""
    params = {
        "q": (
            f"name contains '{BACKUP_NAME_PREFIX}' and mimeType='{BACKUP_MIME}' "
            "and trashed=false"
        ),
        "orderBy": "modifiedTime desc",
        "pageSize": 1,
        "fields": "files(id, name, modifiedTime)",
    }
    resp = _drive_request("GET", DRIVE_FILES_URL, access_token, params=params)
    try:
        files = resp.json().get("files") or []
    except (ValueError, AttributeError) as e:
        raise DriveError("Unexpected response listing backups") from e
    if not files:
        return None
    return files[0].get("id")


def download_file(access_token: str, file_id: str) -> bytes:
    """Stream the file's content and return it whole."""
    resp = _drive_request(
        "GET",
        f"{DRIVE_FILES_URL}/{file_id}",
        access_token,
        params={"alt": "media"},
        stream=True,
        timeout=DRIVE_DOWNLOAD_TIMEOUT,
    )
    chunks: list[bytes] = []
    try:
        for chunk in resp.iter_content(chunk_size=8192):
            chunks.append(chunk)
    except requests.RequestException as e:
        raise DriveError(str(e)) from e
    finally:
        resp.close()
    return b"".join(chunks)


def delete_file(access_token: str, file_id: str) -> bool:
    """Delete a Drive file. True on HTTP 200/204; False on any other outcome."""
    try:
        resp = requests.delete(
            f"{DRIVE_FILES_URL}/{file_id}",
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=DRIVE_REQUEST_TIMEOUT,
        )
    except requests.RequestException:
        logger.exception("Drive delete of %s failed", file_id)
        return False
    if resp.status_code not in (200, 204):
        logger.warning("Drive delete of %s returned HTTP %s", file_id, resp.status_code)
        return False
    return True
