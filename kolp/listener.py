"""
Loopback HTTP listener for the OAuth redirect.

Serves a small FastAPI app with uvicorn on a background thread for the
lifetime of one authorization attempt. start() returns once the socket is
bound (or raises OSError if it could not be); stop() is safe to call more
than once and before start().
"""
import logging
import threading
import time

import uvicorn
from fastapi import FastAPI

logger = logging.getLogger(__name__)

STARTUP_TIMEOUT_SECONDS = 5.0
SHUTDOWN_TIMEOUT_SECONDS = 5.0


class LoopbackListener:
    def __init__(self, app: FastAPI, host: str, port: int):
        self.host = host
        self.port = port
        config = uvicorn.Config(app, host=host, port=port, log_level="warning", lifespan="off")
        self.server = uvicorn.Server(config)
        self._thread: threading.Thread | None = None
        self._stopped = False

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self.server.run,
            name="kolp-oauth-listener",
            daemon=True,
        )
        self._thread.start()
        deadline = time.monotonic() + STARTUP_TIMEOUT_SECONDS
        while not self.server.started:
            if not self._thread.is_alive():
                raise OSError(f"Could not listen on {self.host}:{self.port}")
            if time.monotonic() >= deadline:
                self.stop()
                raise OSError(f"Listener on {self.host}:{self.port} did not start in time")
            time.sleep(0.05)
        logger.info("OAuth callback listener started on %s:%s", self.host, self.port)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self.server.should_exit = True
        if self._thread is not None:
            # Graceful shutdown lets the in-flight callback response finish
            self._thread.join(timeout=SHUTDOWN_TIMEOUT_SECONDS)
            logger.info("OAuth callback listener stopped")
