"""
FastAPI dependencies.

get_session is the single dependency for backup operations; the session is
created once in kolp.main.create_app and kept on app.state.
"""
from fastapi import Request

from kolp.session import BackupSession


def get_session(request: Request) -> BackupSession:
    return request.app.state.session
