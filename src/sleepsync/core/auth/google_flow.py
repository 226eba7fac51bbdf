"""Google OAuth 2.0 consent and refresh, on google-auth.

The consent step runs ``InstalledAppFlow.run_local_server``: it opens the
browser, answers exactly one redirect on ``localhost:<port>``, checks the
returned ``state`` and exchanges the code. Refreshes go through
``Credentials.refresh(Request())``.

Both calls block, so :class:`~sleepsync.core.auth.TokenClient` runs them in
an executor.

Requires ``sleepsync[google]``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC

from loguru import logger

from sleepsync.core.exceptions import APIError, AuthenticationError

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
FITNESS_SLEEP_SCOPES = [
    "https://www.googleapis.com/auth/fitness.sleep.read",
    "https://www.googleapis.com/auth/fitness.sleep.write",
]
DEFAULT_CALLBACK_PORT = 16321
DEFAULT_CALLBACK_TIMEOUT = 300

_PROMPT = "Open this URL to grant access:\n\n  {url}\n"
_SUCCESS = "Authentication successful. You can close this window."


@dataclass(frozen=True)
class IssuedToken:
    """What Google handed back; ``expiry_ms`` is None when it sent no expiry."""

    access_token: str
    refresh_token: str = ""
    expiry_ms: int | None = None


def _issued(creds) -> IssuedToken:
    if not creds.token:
        raise APIError("Invalid response from Google OAuth server")
    expiry_ms = None
    if creds.expiry is not None:
        # google-auth keeps expiry as naive UTC
        expiry_ms = int(creds.expiry.replace(tzinfo=UTC).timestamp() * 1000)
    return IssuedToken(creds.token, creds.refresh_token or "", expiry_ms)


class GoogleAuthFlow:
    """Consent and refresh for one OAuth client.

    Args:
        client_id: OAuth client id.
        client_secret: OAuth client secret.
        scopes: Requested scopes.
        port: Local port the consent redirect comes back to.
        timeout: Seconds to wait for that redirect.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        scopes: list[str] | None = None,
        port: int = DEFAULT_CALLBACK_PORT,
        timeout: int = DEFAULT_CALLBACK_TIMEOUT,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = scopes or list(FITNESS_SLEEP_SCOPES)
        self.port = port
        self.timeout = timeout

    def client_config(self) -> dict:
        return {
            "installed": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": GOOGLE_AUTH_URL,
                "token_uri": GOOGLE_TOKEN_URL,
                "redirect_uris": ["http://localhost"],
            }
        }

    def refresh(self, refresh_token: str) -> IssuedToken:
        """Trade a refresh token for a new access token."""
        try:
            from google.auth.exceptions import GoogleAuthError
            from google.auth.transport.requests import Request
            from google.oauth2.credentials import Credentials
        except ImportError:
            raise ImportError("Install with: pip install sleepsync[google]")

        creds = Credentials(
            None,
            refresh_token=refresh_token,
            token_uri=GOOGLE_TOKEN_URL,
            client_id=self.client_id,
            client_secret=self.client_secret,
        )
        try:
            creds.refresh(Request())
        except GoogleAuthError as e:
            raise APIError(f"Google token refresh failed: {e}") from e
        return _issued(creds)

    def authorize(self, state: str, open_browser: bool = True) -> IssuedToken:
        """Run the browser consent step and return the issued tokens.

        Raises:
            AuthenticationError: The returned state did not match, no
                redirect arrived within ``timeout``, the callback port was
                taken, or the exchange failed.
        """
        try:
            from google_auth_oauthlib.flow import InstalledAppFlow
            from oauthlib.oauth2.rfc6749.errors import MismatchingStateError
        except ImportError:
            raise ImportError("Install with: pip install sleepsync[google]")

        flow = InstalledAppFlow.from_client_config(self.client_config(), scopes=self.scopes, state=state)
        logger.info("Starting OAuth flow -- complete authentication in browser")
        try:
            creds = flow.run_local_server(
                port=self.port,
                open_browser=open_browser,
                authorization_prompt_message=_PROMPT,
                success_message=_SUCCESS,
                timeout_seconds=self.timeout,
                access_type="offline",
                prompt="consent",
            )
        except MismatchingStateError as e:
            raise AuthenticationError("Invalid authentication state") from e
        except Exception as e:
            # Includes a redirect that never came: the server gives up after timeout_seconds.
            logger.error(f"OAuth flow failed: {e}")
            raise AuthenticationError(f"Google authorization did not complete: {e}") from e

        try:
            return _issued(creds)
        except APIError as e:
            raise AuthenticationError(f"Google token exchange failed: {e}") from e
