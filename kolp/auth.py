"""
Google OAuth 2.0 for a desktop client: authorization flow, code exchange,
token refresh.

- AuthorizationFlow.run opens the consent page in the user's browser and
  waits for the redirect on a loopback listener. The random state value is
  checked before the code is ever exchanged; the listener is stopped on every
  exit path (success, state mismatch, exchange failure, timeout).
- refresh_access_token exchanges the stored refresh token for a new access
  token; returns None on any failure instead of raising.
- get_valid_access_token returns the cached access token, refreshing once
  first when it expires within TOKEN_REFRESH_MARGIN_SECONDS.
"""
import html
import logging
import secrets
import threading
import time
import webbrowser
from collections.abc import Callable
from typing import Any
from urllib.parse import quote, urlencode

import requests
from fastapi import FastAPI
from fastapi.responses import HTMLResponse

from kolp.config import (
    GOOGLE_AUTH_URL,
    GOOGLE_REDIRECT_URI,
    GOOGLE_SCOPES,
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
    OAUTH_CALLBACK_PATH,
    OAUTH_LISTEN_ADDRESS,
    OAUTH_REDIRECT_PORT,
    OAUTH_REQUEST_TIMEOUT,
    OAUTH_TIMEOUT_SECONDS,
    TOKEN_REFRESH_MARGIN_SECONDS,
)
from kolp.credential_store import CredentialStore
from kolp.errors import AuthError
from kolp.listener import LoopbackListener
from kolp.models import AuthResult, GoogleCredentials, GoogleTokens

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _expiry_from(expires_in: Any, now_ms: int | None = None) -> int:
    try:
        seconds = int(expires_in)
    except (TypeError, ValueError):
        seconds = DEFAULT_EXPIRES_IN
    return (now_ms if now_ms is not None else _now_ms()) + seconds * 1000


def build_auth_url(client_id: str, state: str) -> str:
    """Consent URL; access_type=offline + prompt=consent so a refresh token is issued every time."""
    params = {
        "client_id": client_id,
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params, quote_via=quote)}"


def exchange_code_for_tokens(code: str, client_id: str, client_secret: str) -> dict:
    """
    POST the authorization code to the token endpoint. Returns the token
    response (access_token, refresh_token, expires_in). Raises AuthError when
    the provider answers with an error, requests.RequestException on
    transport failure and ValueError on a non-JSON body.
    """
    resp = requests.post(
        GOOGLE_TOKEN_URL,
        data={
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": GOOGLE_REDIRECT_URI,
            "grant_type": "authorization_code",
        },
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        timeout=OAUTH_REQUEST_TIMEOUT,
    )
    token_data = resp.json()
    if not isinstance(token_data, dict):
        raise AuthError("Token exchange returned an unexpected response")
    if "error" in token_data:
        raise AuthError(
            f"Token exchange failed: {token_data.get('error_description', token_data['error'])}"
        )
    if not token_data.get("access_token"):
        raise AuthError("Token exchange did not return access_token")
    return token_data


def get_user_info(access_token: str) -> dict:
    """Fetch the signed-in user's profile; raises on HTTP errors."""
    resp = requests.get(
        GOOGLE_USERINFO_URL,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=OAUTH_REQUEST_TIMEOUT,
    )
    resp.raise_for_status()
    return resp.json()


def token_needs_refresh(tokens: GoogleTokens, now_ms: int | None = None) -> bool:
    now_ms = now_ms if now_ms is not None else _now_ms()
    return now_ms >= tokens.expiry_date - TOKEN_REFRESH_MARGIN_SECONDS * 1000


def refresh_access_token(store: CredentialStore) -> str | None:
    """
    Mint a new access token from the stored refresh token and credentials.
    Persists the updated record and returns the new token, or None when
    refresh is impossible (nothing stored) or fails for any reason.
    """
    tokens = store.load_tokens()
    credentials = store.load_credentials()
    if not tokens or not tokens.refresh_token or not credentials:
        return None

    try:
        resp = requests.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": credentials.client_id,
                "client_secret": credentials.client_secret,
                "refresh_token": tokens.refresh_token,
                "grant_type": "refresh_token",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=OAUTH_REQUEST_TIMEOUT,
        )
        data = resp.json()
    except (requests.RequestException, ValueError):
        logger.exception("Token refresh request failed")
        return None

    if not isinstance(data, dict) or not data.get("access_token"):
        logger.warning("Token refresh rejected: %s", data.get("error") if isinstance(data, dict) else data)
        return None

    update = {
        "access_token": data["access_token"],
        "expiry_date": _expiry_from(data.get("expires_in", DEFAULT_EXPIRES_IN)),
    }
    if data.get("refresh_token"):
        update["refresh_token"] = data["refresh_token"]
    try:
        store.save_tokens(tokens.model_copy(update=update))
    except OSError:
        logger.exception("Failed to persist refreshed token")
        return None
    return data["access_token"]


def get_valid_access_token(store: CredentialStore, *, force_refresh: bool = False) -> str:
    """
    Return an access token good for at least TOKEN_REFRESH_MARGIN_SECONDS.
    Refreshes at most once; raises AuthError if not signed in or refresh fails.
    """
    tokens = store.load_tokens()
    if not tokens:
        raise AuthError("Not authenticated")
    if not force_refresh and not token_needs_refresh(tokens):
        return tokens.access_token
    access_token = refresh_access_token(store)
    if not access_token:
        raise AuthError("Token refresh failed")
    return access_token


# --- Authorization flow ---


def _page(title: str, message: str) -> str:
    return (
        "<html><body style=\"font-family: system-ui; display: flex; align-items: center; "
        "justify-content: center; height: 100vh; margin: 0; background: #1e1e1e; color: white;\">"
        f"<div style=\"text-align: center;\"><h1>{html.escape(title)}</h1>"
        f"<p>{html.escape(message)}</p><p>You can close this window.</p></div>"
        "</body></html>"
    )


class _Attempt:
    """One authorization attempt: the expected state and its eventual result."""

    def __init__(self, state: str, credentials: GoogleCredentials):
        self.state = state
        self.credentials = credentials
        self.result: AuthResult | None = None
        self.done = threading.Event()
        self._claimed = False
        self._lock = threading.Lock()

    def claim(self) -> bool:
        """True for the first callback only; later requests are ignored."""
        with self._lock:
            if self._claimed or self.result is not None:
                return False
            self._claimed = True
            return True

    def resolve(self, result: AuthResult) -> None:
        self.complete(result)

    def complete(self, result: AuthResult, persist: Callable[[], None] | None = None) -> bool:
        """
        Set the result if none is set yet, running persist first under the
        same lock. False (and persist not run) when already resolved, e.g.
        by the timeout.
        """
        with self._lock:
            if self.result is not None:
                return False
            if persist is not None:
                persist()
            self.result = result
        self.done.set()
        return True


class AuthorizationFlow:
    """
    Browser consent with a loopback redirect. One attempt at a time per
    instance; a second run() while one is pending fails without binding.
    """

    def __init__(
        self,
        store: CredentialStore,
        *,
        opener: Callable[[str], Any] = webbrowser.open,
        listener_factory: Callable[..., Any] = LoopbackListener,
        timeout: float = OAUTH_TIMEOUT_SECONDS,
    ):
        self.store = store
        self.opener = opener
        self.listener_factory = listener_factory
        self.timeout = timeout
        self._running = threading.Lock()

    def run(self, client_id: str, client_secret: str) -> AuthResult:
        if not self._running.acquire(blocking=False):
            return AuthResult(success=False, error="Authentication already in progress")
        try:
            attempt = _Attempt(
                secrets.token_hex(16),
                GoogleCredentials(client_id=client_id, client_secret=client_secret),
            )
            return self._run_attempt(attempt)
        finally:
            self._running.release()

    def _run_attempt(self, attempt: _Attempt) -> AuthResult:
        listener = self.listener_factory(
            self.callback_app(attempt), OAUTH_LISTEN_ADDRESS, OAUTH_REDIRECT_PORT
        )
        try:
            try:
                listener.start()
            except OSError as e:
                logger.error("OAuth listener failed to start: %s", e)
                return AuthResult(success=False, error=f"Could not start callback listener: {e}")
            try:
                self.opener(build_auth_url(attempt.credentials.client_id, attempt.state))
            except webbrowser.Error as e:
                return AuthResult(success=False, error=f"Could not open browser: {e}")
            if not attempt.done.wait(self.timeout):
                attempt.resolve(AuthResult(success=False, error="Authentication timeout"))
        finally:
            listener.stop()
        return attempt.result

    def callback_app(self, attempt: _Attempt) -> FastAPI:
        """FastAPI app served by the loopback listener for this attempt."""
        app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

        @app.get(OAUTH_CALLBACK_PATH)
        def oauth_callback(
            code: str | None = None,
            state: str | None = None,
            error: str | None = None,
        ):
            return self.handle_callback(attempt, code=code, state=state, error=error)

        return app

    def handle_callback(
        self,
        attempt: _Attempt,
        *,
        code: str | None,
        state: str | None,
        error: str | None = None,
    ) -> HTMLResponse:
        if not attempt.claim():
            return HTMLResponse(_page("Already completed", "This sign-in request was already handled."), status_code=409)

        if not state or not secrets.compare_digest(state.encode(), attempt.state.encode()):
            logger.warning("OAuth callback rejected: state mismatch")
            attempt.resolve(AuthResult(success=False, error="Invalid state"))
            return HTMLResponse(_page("Connection Failed", "Invalid state parameter"), status_code=400)

        if error:
            attempt.resolve(AuthResult(success=False, error=f"Authorization denied: {error}"))
            return HTMLResponse(_page("Connection Failed", f"Google returned: {error}"), status_code=400)

        if not code:
            attempt.resolve(AuthResult(success=False, error="Missing authorization code"))
            return HTMLResponse(_page("Connection Failed", "Missing authorization code"), status_code=400)

        credentials = attempt.credentials
        try:
            token_data = exchange_code_for_tokens(code, credentials.client_id, credentials.client_secret)
            user_info = get_user_info(token_data["access_token"])
            email = user_info.get("email") if isinstance(user_info, dict) else None
            if not email:
                raise AuthError("Google userinfo missing email")
            tokens = GoogleTokens(
                access_token=token_data["access_token"],
                refresh_token=token_data.get("refresh_token"),
                expiry_date=_expiry_from(token_data.get("expires_in", DEFAULT_EXPIRES_IN)),
                email=email,
            )

            def persist() -> None:
                self.store.save_tokens(tokens)
                self.store.save_credentials(credentials)

            # Nothing is saved if the attempt already timed out
            completed = attempt.complete(AuthResult(success=True, email=email), persist)
        except AuthError as e:
            logger.warning("OAuth exchange failed: %s", e.msg)
            attempt.resolve(AuthResult(success=False, error=e.msg))
            return HTMLResponse(_page("Connection Failed", "Authentication failed"), status_code=500)
        except (requests.RequestException, ValueError, OSError) as e:
            logger.exception("OAuth exchange failed")
            attempt.resolve(AuthResult(success=False, error=str(e)))
            return HTMLResponse(_page("Connection Failed", "Authentication failed"), status_code=500)

        if not completed:
            logger.warning("OAuth callback finished after the attempt was resolved; tokens discarded")
            return HTMLResponse(_page("Connection Failed", "Sign-in timed out. Please try again."), status_code=408)

        logger.info("Google account connected: %s", email)
        return HTMLResponse(_page("Connection Successful!", "Your Google account is now connected to KOLP."))
