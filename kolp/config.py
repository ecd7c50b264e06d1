"""
Service configuration from environment variables.

Load .env with python-dotenv (kolp.main / kolp.__main__) so env vars are
available before this module is imported. Nothing here is required: the
OAuth client id/secret are supplied by the user at runtime and persisted by
the credential store.
"""
import os
from pathlib import Path

# Private data directory: token/credential files and the local .klp copy
DATA_DIR = Path(os.getenv("KOLP_DATA_DIR", str(Path.home() / ".kolp"))).expanduser()


def _int_env(key: str, default: int, minimum: int = 1) -> int:
    try:
        return max(minimum, int(os.getenv(key, str(default))))
    except ValueError:
        return default


# --- OAuth (Google) ---
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_SCOPES = ["https://www.googleapis.com/auth/drive.file", "email", "profile"]

# Loopback listener for the OAuth redirect; redirect URI must match exactly
OAUTH_REDIRECT_HOST = os.getenv("OAUTH_REDIRECT_HOST", "localhost")
OAUTH_LISTEN_ADDRESS = os.getenv("OAUTH_LISTEN_ADDRESS", "127.0.0.1")
OAUTH_REDIRECT_PORT = _int_env("OAUTH_REDIRECT_PORT", 8089)
OAUTH_CALLBACK_PATH = "/" + os.getenv("OAUTH_CALLBACK_PATH", "/callback").lstrip("/")
GOOGLE_REDIRECT_URI = f"http://{OAUTH_REDIRECT_HOST}:{OAUTH_REDIRECT_PORT}{OAUTH_CALLBACK_PATH}"

# How long the listener waits for the browser redirect (5 minutes)
OAUTH_TIMEOUT_SECONDS = _int_env("OAUTH_TIMEOUT_SECONDS", 300)

# Refresh the access token when it expires within this margin
TOKEN_REFRESH_MARGIN_SECONDS = _int_env("TOKEN_REFRESH_MARGIN_SECONDS", 60, minimum=0)

# Optional Fernet key; when set, secret fields in the credential files are encrypted
TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY") or None

# --- Drive ---
DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
BACKUP_NAME_PREFIX = "kolp_backup"
BACKUP_FILENAME = f"{BACKUP_NAME_PREFIX}.klp"

# Request timeouts (connect, read) in seconds
OAUTH_REQUEST_TIMEOUT = (5, 30)
DRIVE_REQUEST_TIMEOUT = (5, 60)  # connect 5s, read 60s
DRIVE_DOWNLOAD_TIMEOUT = (5, 120)  # streaming download: 120s read

# --- HTTP surface ---
# Local UI origin allowed by CORS
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = _int_env("API_PORT", 8088)

# Environment: development | production (affects .env loading)
ENV = os.getenv("ENV", "development").lower()
