"""
KOLP backup service: local HTTP API for the note-taking app.

Exposes the container codec, local file backup, Google account connection
and Drive sync. Load .env in development only (production uses env vars
directly). Adds CORS for the local UI and a global exception handler.
"""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env before kolp.config reads the environment
if os.getenv("ENV", "development").lower() == "development":
    load_dotenv(Path.cwd() / ".env")

import uvicorn  # noqa: E402
from fastapi import FastAPI, Request  # noqa: E402
from fastapi.exceptions import HTTPException  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from kolp.config import API_HOST, API_PORT, DATA_DIR, FRONTEND_URL  # noqa: E402
from kolp.files import router as files_router  # noqa: E402
from kolp.google import router as google_router  # noqa: E402
from kolp.session import BackupSession  # noqa: E402


def create_app(session: BackupSession | None = None) -> FastAPI:
    app = FastAPI(
        title="KOLP Backup Service",
        description="KOLP container encode/decode, local backup files, Google Drive sync.",
    )
    app.state.session = session or BackupSession(DATA_DIR)

    # CORS: explicit origin only
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[FRONTEND_URL] if FRONTEND_URL else [],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch unhandled exceptions; log and return generic 500. Never leak stack traces."""
        # Let FastAPI handle HTTPException (validation, etc.)
        if isinstance(exc, HTTPException):
            raise exc
        logging.exception("Unhandled exception: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(files_router)
    app.include_router(google_router)
    return app


app = create_app()


def run() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    run()
