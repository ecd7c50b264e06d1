"""
Desktop cloud-sync folders (Google Drive, OneDrive, Dropbox).

Backing up into one of these folders lets the vendor's desktop client carry
the .klp file off the machine without the Drive API. Detection only looks
for well-known install locations; the first existing one per service wins.
"""
import os
from pathlib import Path

from kolp.models import SyncFolder

KOLP_SUBFOLDER = "Kolp"


def _candidates(home: Path) -> list[tuple[str, list[Path]]]:
    google_drive = [home / "Google Drive", home / "Google Drive Stream" / "My Drive"]
    if os.name == "nt":
        google_drive.insert(0, Path("G:\\My Drive"))
    return [
        ("Google Drive", google_drive),
        ("OneDrive", [home / "OneDrive", home / "OneDrive - Personal"]),
        ("Dropbox", [home / "Dropbox"]),
    ]


def detect_sync_folders(home: str | Path | None = None) -> list[SyncFolder]:
    """Existing sync folders under home (default: the user's home directory)."""
    home = Path(home) if home is not None else Path.home()
    detected: list[SyncFolder] = []
    for name, paths in _candidates(home):
        for path in paths:
            if path.is_dir():
                detected.append(SyncFolder(name=name, path=str(path)))
                break
    return detected


def ensure_sync_folder(service_path: str | Path) -> Path:
    """Create (if needed) and return the Kolp folder inside a sync folder."""
    folder = Path(service_path) / KOLP_SUBFOLDER
    folder.mkdir(parents=True, exist_ok=True)
    return folder
