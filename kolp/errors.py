"""
Exceptions raised inside the backup subsystem.

Each carries a short human-readable ``msg``. Public operations on
kolp.session.BackupSession catch these and return failed results, except
KolpEncodeError from encode, which the /kolp/encode route turns into a 400.
"""


class KolpError(Exception):
    """Base for all backup-subsystem errors."""

    def __init__(self, msg: str):
        self.msg = msg
        super().__init__(msg)


class KolpFormatError(KolpError):
    """Container is structurally invalid: bad magic, truncated, or unparsable payload."""


class KolpChecksumError(KolpError):
    """Stored checksum does not match the payload; the container is corrupt."""


class KolpEncodeError(KolpError):
    """Snapshot could not be serialized to JSON."""


class AuthError(KolpError):
    """Missing/invalid tokens, failed refresh, state mismatch, or timeout."""


class DriveError(KolpError):
    """Drive API call failed (transport error or non-2xx response)."""

    def __init__(self, msg: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(msg)
