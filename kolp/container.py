"""
KOLP container (.klp): versioned, checksummed binary encoding of a Snapshot.

Layout (little-endian), 49-byte header followed by the payload:

    0   4   magic b"KOLP"
    4   1   format version
    5   8   timestamp, signed int64 ms since epoch
    13  32  checksum: first 32 hex chars of SHA-256(payload), ASCII
    45  4   payload length, unsigned int32
    49  N   UTF-8 JSON payload

The checksum is truncated to 32 hex characters; keep it that way or existing
.klp files stop verifying. No compression is applied.
"""
import hashlib
import json
import logging
import struct
import time
from collections.abc import Mapping
from datetime import datetime, timedelta, UTC
from typing import Any

from kolp.errors import KolpChecksumError, KolpEncodeError, KolpError, KolpFormatError
from kolp.models import KolpFile, Snapshot

logger = logging.getLogger(__name__)

KOLP_MAGIC = b"KOLP"
KOLP_VERSION = 1
KOLP_EXTENSION = ".klp"
CHECKSUM_LENGTH = 32

# magic, version, timestamp, checksum, payload length
_HEADER = struct.Struct("<4sBq32sI")
HEADER_SIZE = _HEADER.size  # 49

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def payload_checksum(payload: bytes) -> bytes:
    """First 32 hex chars of SHA-256(payload), as ASCII bytes."""
    return hashlib.sha256(payload).hexdigest()[:CHECKSUM_LENGTH].encode("ascii")


def _serialize(snapshot: Snapshot | Mapping[str, Any]) -> bytes:
    if isinstance(snapshot, Snapshot):
        data = snapshot.model_dump(mode="json")
    else:
        data = dict(snapshot)
    try:
        text = json.dumps(data, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise KolpEncodeError(f"Snapshot is not serializable: {e}") from e
    return text.encode("utf-8")


def encode(snapshot: Snapshot | Mapping[str, Any], *, timestamp_ms: int | None = None) -> bytes:
    """Build a .klp container for snapshot, stamped with the current time unless given."""
    payload = _serialize(snapshot)
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    header = _HEADER.pack(
        KOLP_MAGIC,
        KOLP_VERSION,
        timestamp_ms,
        payload_checksum(payload),
        len(payload),
    )
    return header + payload


def _iso_from_millis(ms: int) -> str:
    try:
        dt = _EPOCH + timedelta(milliseconds=ms)
    except OverflowError as e:
        raise KolpFormatError("Timestamp out of range") from e
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def decode(data: bytes) -> KolpFile:
    """
    Parse and verify a .klp container. All-or-nothing: raises KolpFormatError
    for structural problems and KolpChecksumError when the payload does not
    match the stored checksum; never returns partial data.
    """
    data = bytes(data)
    if len(data) < HEADER_SIZE or data[:4] != KOLP_MAGIC:
        raise KolpFormatError("Invalid KOLP file format")

    _, version, timestamp_ms, stored_checksum, length = _HEADER.unpack_from(data)
    if version != KOLP_VERSION:
        raise KolpFormatError(f"Unsupported KOLP version: {version}")

    payload = data[HEADER_SIZE:HEADER_SIZE + length]
    if len(payload) < length:
        raise KolpFormatError(
            f"Truncated payload: expected {length} bytes, got {len(payload)}"
        )

    if payload_checksum(payload) != stored_checksum:
        raise KolpChecksumError("Checksum verification failed")

    try:
        content = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise KolpFormatError(f"Invalid payload: {e}") from e
    if not isinstance(content, dict):
        raise KolpFormatError("Invalid payload: expected a JSON object")

    return KolpFile(
        version=version,
        timestamp=_iso_from_millis(timestamp_ms),
        checksum=stored_checksum.decode("ascii"),
        data=content,
    )


def parse_kolp_file(data: bytes) -> KolpFile | None:
    """decode() for callers that only need valid/invalid; logs the reason."""
    try:
        return decode(data)
    except KolpError as e:
        logger.error("Failed to parse KOLP file: %s", e.msg)
        return None
