"""Tests for TokenClient and RateLimiter."""

import asyncio
import json

import pytest

from sleepsync.core.auth import HttpResponse, IssuedToken, OAuthToken, RateLimiter, TokenClient
from sleepsync.core.exceptions import APIError, AuthenticationError, RateLimitError

HOUR_MS = 3600 * 1000


class FakeTransport:
    """Replays canned responses and records every request."""

    def __init__(self, *responses: HttpResponse):
        self.responses = list(responses)
        self.requests: list[tuple[str, str, dict, bytes | None]] = []

    async def request(self, method, url, headers, body=None):
        self.requests.append((method, url, headers, body))
        await asyncio.sleep(0)
        return self.responses.pop(0)


def ok(payload) -> HttpResponse:
    return HttpResponse(200, json.dumps(payload).encode())


class FakeFlow:
    """Stands in for GoogleAuthFlow; each call pops the next result."""

    def __init__(self, *results):
        self.results = list(results)
        self.refreshed: list[str] = []
        self.authorized: list[tuple[str, bool]] = []

    def _next(self):
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def refresh(self, refresh_token):
        self.refreshed.append(refresh_token)
        return self._next()

    def authorize(self, state, open_browser=True):
        self.authorized.append((state, open_browser))
        return self._next()


def make_client(clock, transport=None, token=None, saved=None, flow=None):
    return TokenClient(
        "client-id",
        "client-secret",
        token=token,
        transport=transport or FakeTransport(),
        flow=flow or FakeFlow(),
        clock=clock,
        rate_limiter=RateLimiter(1.0, clock),
        on_token_change=(lambda t: saved.append(OAuthToken(**t.to_dict()))) if saved is not None else None,
    )


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_spacing(self, clock):
        limiter = RateLimiter(1.0, clock)
        for _ in range(3):
            await limiter.acquire()
        assert clock.sleeps == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_no_wait_after_interval(self, clock):
        limiter = RateLimiter(1.0, clock)
        await limiter.acquire()
        clock.advance(5)
        await limiter.acquire()
        assert clock.sleeps == []


class TestOAuthToken:
    def test_expires_within(self):
        token = OAuthToken("a", "r", expiry=100_000)
        assert token.expires_within(50_000, 60)
        assert not token.expires_within(30_000, 60)

    def test_dict_roundtrip_and_clear(self):
        token = OAuthToken.from_dict({"access_token": "a", "refresh_token": "r", "expiry": "5"})
        assert token.expiry == 5
        token.clear()
        assert token.to_dict() == {"access_token": "", "refresh_token": "", "expiry": 0}


class TestEnsureFresh:
    def test_requires_client_credentials(self, clock):
        with pytest.raises(AuthenticationError):
            TokenClient("", "secret", clock=clock)

    @pytest.mark.asyncio
    async def test_not_authorized(self, clock):
        client = make_client(clock)
        with pytest.raises(AuthenticationError, match="sleepsync auth"):
            await client.ensure_fresh()

    @pytest.mark.asyncio
    async def test_fresh_token_is_not_refreshed(self, clock):
        flow = FakeFlow()
        client = make_client(clock, token=OAuthToken("access", "refresh", clock.now_ms() + HOUR_MS), flow=flow)
        assert await client.ensure_fresh() == "access"
        assert flow.refreshed == []

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, clock):
        flow = FakeFlow(IssuedToken("new-access", "", clock.now_ms() + HOUR_MS))
        saved = []
        token = OAuthToken("old", "refresh", clock.now_ms() + 30_000)
        client = make_client(clock, token=token, saved=saved, flow=flow)

        results = await asyncio.gather(*(client.ensure_fresh() for _ in range(5)))

        assert results == ["new-access"] * 5
        assert client.refresh_count == 1
        assert flow.refreshed == ["refresh"]
        # refresh token kept when Google omits it
        assert client.token.refresh_token == "refresh"
        assert client.token.expiry == clock.now_ms() + HOUR_MS
        assert saved[-1].access_token == "new-access"

    @pytest.mark.asyncio
    async def test_expiry_defaults_to_an_hour(self, clock):
        flow = FakeFlow(IssuedToken("new-access"))
        client = make_client(clock, token=OAuthToken("old", "refresh", 0), flow=flow)
        await client.ensure_fresh()
        assert client.token.expiry == clock.now_ms() + HOUR_MS

    @pytest.mark.asyncio
    async def test_failed_refresh_clears_token(self, clock):
        flow = FakeFlow(APIError("Google token refresh failed: invalid_grant"))
        saved = []
        client = make_client(clock, token=OAuthToken("old", "refresh", 0), saved=saved, flow=flow)

        with pytest.raises(AuthenticationError, match="reconnect"):
            await client.ensure_fresh()

        assert client.token.refresh_token == ""
        assert not client.is_authorized
        assert saved and saved[-1].refresh_token == ""

    @pytest.mark.asyncio
    async def test_refresh_waits_its_turn(self, clock):
        flow = FakeFlow(IssuedToken("new-access", "", clock.now_ms() + HOUR_MS))
        client = make_client(clock, token=OAuthToken("old", "refresh", 0), flow=flow)
        await client.rate_limiter.acquire()

        await client.ensure_fresh()

        assert clock.sleeps == [1.0]


class TestRequestJson:
    @pytest.mark.asyncio
    async def test_bearer_request_with_query(self, clock):
        transport = FakeTransport(ok({"session": []}))
        client = make_client(clock, transport, OAuthToken("access", "refresh", clock.now_ms() + HOUR_MS))

        data = await client.request_json("get", "https://api.example/sessions", query={"activityType": 72})

        assert data == {"session": []}
        method, url, headers, body = transport.requests[0]
        assert method == "GET"
        assert url == "https://api.example/sessions?activityType=72"
        assert headers["Authorization"] == "Bearer access"
        assert body is None

    @pytest.mark.asyncio
    async def test_expiring_token_refreshed_once_before_the_call(self, clock):
        transport = FakeTransport(ok({}))
        flow = FakeFlow(IssuedToken("new-access", "", clock.now_ms() + HOUR_MS))
        client = make_client(clock, transport, OAuthToken("old", "refresh", clock.now_ms() + 59_000), flow=flow)

        await client.request_json("GET", "https://api.example/sessions")

        assert flow.refreshed == ["refresh"]
        assert transport.requests[0][2]["Authorization"] == "Bearer new-access"

    @pytest.mark.asyncio
    async def test_payload_is_json(self, clock):
        transport = FakeTransport(ok({}))
        client = make_client(clock, transport, OAuthToken("access", "refresh", clock.now_ms() + HOUR_MS))
        await client.request_json("PUT", "https://api.example/s/1", payload={"name": "Sleep"})
        assert json.loads(transport.requests[0][3]) == {"name": "Sleep"}

    @pytest.mark.asyncio
    async def test_rate_limited(self, clock):
        client = make_client(
            clock, FakeTransport(HttpResponse(429)), OAuthToken("access", "refresh", clock.now_ms() + HOUR_MS)
        )
        with pytest.raises(RateLimitError) as excinfo:
            await client.request_json("GET", "https://api.example/x")
        assert excinfo.value.status == 429

    @pytest.mark.asyncio
    async def test_http_error(self, clock):
        client = make_client(
            clock, FakeTransport(HttpResponse(500, b"oops")), OAuthToken("access", "refresh", clock.now_ms() + HOUR_MS)
        )
        with pytest.raises(APIError, match="500"):
            await client.request_json("GET", "https://api.example/x")

    @pytest.mark.asyncio
    async def test_calls_are_spaced(self, clock):
        transport = FakeTransport(ok({}), ok({}))
        client = make_client(clock, transport, OAuthToken("access", "refresh", clock.now_ms() + HOUR_MS))
        await client.request_json("GET", "https://api.example/a")
        await client.request_json("GET", "https://api.example/b")
        assert clock.sleeps == [1.0]


class TestAuthorize:
    @pytest.mark.asyncio
    async def test_keeps_issued_tokens(self, clock):
        flow = FakeFlow(IssuedToken("a1", "r1", clock.now_ms() + HOUR_MS))
        saved = []
        client = make_client(clock, saved=saved, flow=flow)

        token = await client.authorize(open_browser=False)

        assert token.refresh_token == "r1"
        assert token.expiry == clock.now_ms() + HOUR_MS
        assert saved[-1].refresh_token == "r1"
        state, open_browser = flow.authorized[0]
        assert len(state) >= 16
        assert open_browser is False

    @pytest.mark.asyncio
    async def test_fresh_state_each_time(self, clock):
        flow = FakeFlow(IssuedToken("a1", "r1"), IssuedToken("a2", "r2"))
        client = make_client(clock, flow=flow)
        await client.authorize()
        await client.authorize()
        assert flow.authorized[0][0] != flow.authorized[1][0]

    @pytest.mark.asyncio
    async def test_errors_propagate(self, clock):
        client = make_client(clock, flow=FakeFlow(AuthenticationError("Invalid authentication state")))
        with pytest.raises(AuthenticationError, match="state"):
            await client.authorize()
        assert not client.is_authorized

    @pytest.mark.asyncio
    async def test_needs_a_refresh_token(self, clock):
        client = make_client(clock, flow=FakeFlow(IssuedToken("a1")))
        with pytest.raises(AuthenticationError, match="refresh token"):
            await client.authorize()
