"""KOLP backup service: .klp containers, local backups and Google Drive sync."""

__version__ = "1.0.0"
