"""Google OAuth 2.0 token client with request spacing.

Owns the access/refresh token pair for the Google Fit REST API:

- every outbound call (API or token endpoint) first waits on a shared
  :class:`RateLimiter` so requests are at least ``min_interval`` apart;
- :meth:`TokenClient.ensure_fresh` refreshes the access token when it is
  within a minute of expiring, once, no matter how many callers ask;
- a failed refresh clears the stored token and raises
  :class:`AuthenticationError`, so the user has to re-authorize.

Token issue and refresh are delegated to an :class:`OAuthFlow`, by default
:class:`~sleepsync.core.auth.google_flow.GoogleAuthFlow` on google-auth.
API calls go through a small :class:`HttpTransport`; the default
:class:`UrllibTransport` uses urllib.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import json
import secrets
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any, Protocol

from loguru import logger

from sleepsync.core.clock import Clock, SystemClock
from sleepsync.core.exceptions import APIError, AuthenticationError, RateLimitError

from .google_flow import (
    DEFAULT_CALLBACK_PORT,
    DEFAULT_CALLBACK_TIMEOUT,
    FITNESS_SLEEP_SCOPES,
    GoogleAuthFlow,
    IssuedToken,
)

REFRESH_MARGIN_SECONDS = 60
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


@dataclass
class OAuthToken:
    """Access/refresh token pair; ``expiry`` is epoch milliseconds."""

    access_token: str = ""
    refresh_token: str = ""
    expiry: int = 0

    @property
    def has_refresh_token(self) -> bool:
        return bool(self.refresh_token)

    def expires_within(self, now_ms: int, seconds: float) -> bool:
        return self.expiry - now_ms < seconds * 1000

    def clear(self) -> None:
        self.access_token = ""
        self.refresh_token = ""
        self.expiry = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OAuthToken:
        return cls(
            access_token=str(data.get("access_token") or ""),
            refresh_token=str(data.get("refresh_token") or ""),
            expiry=int(data.get("expiry") or 0),
        )


class RateLimiter:
    """Keeps successive calls at least ``min_interval`` seconds apart.

    One watermark is shared by every caller; concurrent callers queue on a
    lock and leave one interval apart.
    """

    def __init__(self, min_interval: float = 1.0, clock: Clock | None = None):
        self.min_interval = min_interval
        self.clock = clock or SystemClock()
        self._last: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            if self._last is not None:
                wait = self._last + self.min_interval - self.clock.monotonic()
                if wait > 0:
                    await self.clock.sleep(wait)
            self._last = self.clock.monotonic()


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: bytes = b""

    def json(self) -> Any:
        if not self.body:
            return {}
        return json.loads(self.body.decode("utf-8", errors="ignore"))


class HttpTransport(Protocol):
    """Performs one HTTP request; non-2xx statuses are returned, not raised."""

    async def request(
        self, method: str, url: str, headers: dict[str, str], body: bytes | None = None
    ) -> HttpResponse:
        ...


class UrllibTransport:
    """:class:`HttpTransport` over ``urllib`` run in the default executor."""

    def __init__(self, timeout: int = 30):
        self.timeout = timeout

    def _send(self, method: str, url: str, headers: dict[str, str], body: bytes | None) -> HttpResponse:
        req = urllib.request.Request(url=url, method=method.upper(), data=body, headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return HttpResponse(resp.status, resp.read())
        except urllib.error.HTTPError as e:
            return HttpResponse(e.code, e.read() if hasattr(e, "read") else b"")
        except urllib.error.URLError as e:
            raise APIError(f"Request to {url} failed: {e}") from e

    async def request(
        self, method: str, url: str, headers: dict[str, str], body: bytes | None = None
    ) -> HttpResponse:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._send, method, url, headers, body)


class OAuthFlow(Protocol):
    """Issues tokens; blocking, run in an executor by :class:`TokenClient`."""

    def refresh(self, refresh_token: str) -> IssuedToken:
        ...

    def authorize(self, state: str, open_browser: bool = True) -> IssuedToken:
        ...


TokenCallback = Callable[[OAuthToken], Any]


class TokenClient:
    """Authorized, rate-limited access to Google REST APIs.

    Args:
        client_id: OAuth client id.
        client_secret: OAuth client secret.
        token: Existing token; refreshed in place.
        scopes: Scopes requested at consent.
        callback_port: Local port for the consent redirect.
        callback_timeout: Seconds to wait for that redirect.
        on_token_change: Called (sync or async) with the token whenever it
            is issued, refreshed or cleared, so the caller can persist it.
        rate_limiter: Shared spacing for every outbound call.
        transport: HTTP implementation for API calls; defaults to urllib.
        flow: Token issue and refresh; defaults to :class:`GoogleAuthFlow`.
        clock: Time source for expiry checks.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        token: OAuthToken | None = None,
        scopes: list[str] | None = None,
        callback_port: int = DEFAULT_CALLBACK_PORT,
        callback_timeout: int = DEFAULT_CALLBACK_TIMEOUT,
        on_token_change: TokenCallback | None = None,
        rate_limiter: RateLimiter | None = None,
        transport: HttpTransport | None = None,
        flow: OAuthFlow | None = None,
        clock: Clock | None = None,
    ):
        if not client_id or not client_secret:
            raise AuthenticationError("Google client_id and client_secret are required")
        self.token = token or OAuthToken()
        self.scopes = scopes or list(FITNESS_SLEEP_SCOPES)
        self.flow = flow or GoogleAuthFlow(client_id, client_secret, self.scopes, callback_port, callback_timeout)
        self.clock = clock or SystemClock()
        self.rate_limiter = rate_limiter or RateLimiter(clock=self.clock)
        self.transport = transport or UrllibTransport()
        self._on_token_change = on_token_change
        self._refresh_lock = asyncio.Lock()
        self.refresh_count = 0

    # ── plumbing ─────────────────────────────────────────────────────

    async def _call(self, method: str, url: str, headers: dict[str, str], body: bytes | None = None) -> Any:
        resp = await self.transport.request(method, url, headers, body)
        if resp.status == 429:
            raise RateLimitError(f"Rate limited by {urllib.parse.urlsplit(url).netloc}", status=429)
        if resp.status >= 400:
            detail = resp.body.decode("utf-8", errors="ignore")
            raise APIError(f"Google API {resp.status}: {detail}", status=resp.status)
        try:
            return resp.json()
        except ValueError as e:
            raise APIError(f"Invalid JSON from {url}: {e}") from e

    async def _in_executor(self, fn: Callable[..., IssuedToken], *args: Any) -> IssuedToken:
        await self.rate_limiter.acquire()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    async def _persist(self) -> None:
        if self._on_token_change is None:
            return
        result = self._on_token_change(self.token)
        if inspect.isawaitable(result):
            await result

    def _apply(self, issued: IssuedToken) -> None:
        self.token.access_token = issued.access_token
        if issued.expiry_ms is not None:
            self.token.expiry = issued.expiry_ms
        else:
            self.token.expiry = self.clock.now_ms() + DEFAULT_TOKEN_LIFETIME_SECONDS * 1000
        if issued.refresh_token:
            self.token.refresh_token = issued.refresh_token

    # ── token lifecycle ──────────────────────────────────────────────

    @property
    def is_authorized(self) -> bool:
        return self.token.has_refresh_token

    def _needs_refresh(self) -> bool:
        return self.token.expires_within(self.clock.now_ms(), REFRESH_MARGIN_SECONDS)

    async def ensure_fresh(self) -> str:
        """Return a valid access token, refreshing it first if needed."""
        if not self.token.has_refresh_token:
            raise AuthenticationError("Not authenticated with Google Fit. Run `sleepsync auth` to connect.")
        if not self._needs_refresh():
            return self.token.access_token

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited.
            if not self._needs_refresh():
                return self.token.access_token

            logger.debug("Refreshing Google access token")
            try:
                issued = await self._in_executor(self.flow.refresh, self.token.refresh_token)
            except APIError as e:
                logger.error(f"Failed to refresh Google token: {e}")
                self.token.clear()
                await self._persist()
                raise AuthenticationError(
                    "Failed to refresh authentication. Run `sleepsync auth` to reconnect Google Fit."
                ) from e

            self._apply(issued)
            self.refresh_count += 1
            await self._persist()
            logger.info("Refreshed Google access token")
        return self.token.access_token

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        query: dict[str, Any] | None = None,
        payload: Any = None,
    ) -> Any:
        """Rate-limit, make sure the token is fresh, then send a bearer request."""
        await self.rate_limiter.acquire()
        access_token = await self.ensure_fresh()

        if query:
            url = f"{url}?{urllib.parse.urlencode(query, doseq=True)}"
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        body = json.dumps(payload).encode("utf-8") if payload is not None else None
        return await self._call(method.upper(), url, headers, body)

    # ── authorization ────────────────────────────────────────────────

    async def authorize(self, open_browser: bool = True) -> OAuthToken:
        """Run the browser consent step and keep the issued tokens."""
        state = secrets.token_urlsafe(16)
        issued = await self._in_executor(self.flow.authorize, state, open_browser)
        if not issued.refresh_token and not self.token.refresh_token:
            raise AuthenticationError("Google did not return a refresh token. Run `sleepsync auth` again.")
        self._apply(issued)
        await self._persist()
        logger.info("Google Fit authorization complete")
        return self.token
