from __future__ import annotations

import asyncio
import base64
import json

import httpx
import pytest

from dockhub.cache import InMemoryHubCache, OperationClass
from dockhub.errors import HubAuthenticationError, HubNotFoundError, HubServerError
from dockhub.runtime import FixedWindowRateLimiter, RateLimitPolicy, RetryPolicy
from dockhub.upstream import (
    CredentialKind,
    TokenCache,
    UpstreamClient,
    UpstreamConfig,
    UpstreamCredential,
)


def run_async(coro):
    return asyncio.run(coro)


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class Upstream:
    """Scripted upstream: one queued response per request, last one repeats."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        template = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return httpx.Response(
            template.status_code, headers=template.headers, content=template.content
        )


def make_client(handler, *, credential=None, cache=None, limiter=None, **config):
    sleep = RecordingSleep()
    client = UpstreamClient(
        UpstreamConfig(
            name="dockerhub",
            base_url="https://hub.example",
            credential=credential or UpstreamCredential.anonymous(),
            **config,
        ),
        cache=cache,
        rate_limiter=limiter,
        retry_policy=RetryPolicy(jitter_ms=0),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        sleep=sleep,
    )
    return client, sleep


def test_fetch_decodes_json_and_sends_identifying_headers():
    async def scenario() -> None:
        upstream = Upstream(httpx.Response(200, json={"name": "nginx"}))
        client, _ = make_client(upstream)

        data = await client.fetch("GET", "/v2/repositories/library/nginx/", params={"page": 1})

        assert data == {"name": "nginx"}
        request = upstream.requests[0]
        assert str(request.url) == "https://hub.example/v2/repositories/library/nginx/?page=1"
        assert request.headers["accept"] == "application/json"
        assert request.headers["user-agent"].startswith("dockhub-mcp/")
        assert "authorization" not in request.headers

    run_async(scenario())


def test_cache_hit_skips_network_and_rate_limit_quota():
    async def scenario() -> None:
        upstream = Upstream(httpx.Response(200, json={"count": 1}))
        cache = InMemoryHubCache()
        limiter = FixedWindowRateLimiter(RateLimitPolicy(requests_per_window=5))
        client, _ = make_client(upstream, cache=cache, limiter=limiter)

        first = await client.fetch(
            "GET", "/v2/search/repositories/", operation=OperationClass.SEARCH, cache_key="k"
        )
        second = await client.fetch(
            "GET", "/v2/search/repositories/", operation=OperationClass.SEARCH, cache_key="k"
        )

        assert first == second == {"count": 1}
        assert len(upstream.requests) == 1
        state = await limiter.get_state("dockerhub", "dockerhub:GET:/v2/search/repositories/")
        assert state.remaining == 4

    run_async(scenario())


def test_persistent_500_is_attempted_three_times():
    async def scenario() -> None:
        upstream = Upstream(httpx.Response(500, json={"message": "down"}))
        client, sleep = make_client(upstream)

        with pytest.raises(HubServerError) as info:
            await client.fetch("GET", "/v2/x")

        assert info.value.status == 500
        assert len(upstream.requests) == 3
        assert sleep.calls == [2.0, 4.0]

    run_async(scenario())


def test_429_waits_retry_after_then_succeeds():
    async def scenario() -> None:
        upstream = Upstream(
            httpx.Response(429, headers={"Retry-After": "2"}),
            httpx.Response(200, json={"ok": True}),
        )
        client, sleep = make_client(upstream)

        assert await client.fetch("GET", "/v2/x") == {"ok": True}
        assert sleep.calls == [2.0]
        assert len(upstream.requests) == 2

    run_async(scenario())


def test_auth_and_not_found_are_not_retried():
    async def scenario() -> None:
        for status, error in ((401, HubAuthenticationError), (404, HubNotFoundError)):
            upstream = Upstream(httpx.Response(status))
            client, sleep = make_client(upstream)
            with pytest.raises(error):
                await client.fetch("GET", "/v2/x")
            assert len(upstream.requests) == 1
            assert sleep.calls == []

    run_async(scenario())


def test_failed_responses_are_not_cached():
    async def scenario() -> None:
        upstream = Upstream(httpx.Response(404))
        cache = InMemoryHubCache()
        client, _ = make_client(upstream, cache=cache)
        with pytest.raises(HubNotFoundError):
            await client.fetch("GET", "/v2/x", cache_key="k")
        assert await cache.keys() == []

    run_async(scenario())


def test_static_token_is_sent_as_bearer():
    async def scenario() -> None:
        upstream = Upstream(httpx.Response(200, json={}))
        client, _ = make_client(upstream, credential=UpstreamCredential.from_token("t0k"))
        await client.fetch("GET", "/v2/x")
        assert upstream.requests[0].headers["authorization"] == "Bearer t0k"

    run_async(scenario())


def test_basic_style_sends_oauth2_token_credentials():
    async def scenario() -> None:
        upstream = Upstream(httpx.Response(200, json={}))
        client, _ = make_client(
            upstream, credential=UpstreamCredential.from_token("t0k"), auth_style="basic"
        )
        await client.fetch("GET", "/v2/library/nginx/manifests/latest")
        expected = base64.b64encode(b"oauth2:t0k").decode("ascii")
        assert upstream.requests[0].headers["authorization"] == f"Basic {expected}"

    run_async(scenario())


def test_login_happens_once_per_token_lifetime():
    async def scenario() -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v2/users/login/":
                assert json.loads(request.content) == {"username": "me", "password": "pw"}
                return httpx.Response(200, json={"token": "derived"})
            return httpx.Response(200, json={"path": request.url.path})

        calls: list[httpx.Request] = []

        def recording(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return handler(request)

        client, _ = make_client(
            recording,
            credential=UpstreamCredential.from_login("me", "pw"),
            login_url="https://hub.example/v2/users/login/",
        )
        await asyncio.gather(client.fetch("GET", "/v2/a"), client.fetch("GET", "/v2/b"))
        await client.fetch("GET", "/v2/c")

        logins = [r for r in calls if r.url.path == "/v2/users/login/"]
        assert len(logins) == 1
        data_calls = [r for r in calls if r.url.path != "/v2/users/login/"]
        assert len(data_calls) == 3
        assert all(r.headers["authorization"] == "Bearer derived" for r in data_calls)

    run_async(scenario())


def test_failed_login_degrades_to_anonymous_request():
    async def scenario() -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if request.url.path == "/v2/users/login/":
                return httpx.Response(401)
            return httpx.Response(200, json={"ok": True})

        client, _ = make_client(
            handler,
            credential=UpstreamCredential.from_login("me", "bad"),
            login_url="https://hub.example/v2/users/login/",
        )
        assert await client.fetch("GET", "/v2/x") == {"ok": True}
        assert "authorization" not in calls[-1].headers

    run_async(scenario())


def test_repeated_401_costs_at_most_one_relogin():
    async def scenario() -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if request.url.path == "/v2/users/login/":
                return httpx.Response(200, json={"token": f"derived-{len(calls)}"})
            return httpx.Response(401)

        client, _ = make_client(
            handler,
            credential=UpstreamCredential.from_login("me", "pw"),
            login_url="https://hub.example/v2/users/login/",
        )
        for _ in range(4):
            with pytest.raises(HubAuthenticationError):
                await client.fetch("GET", "/v2/repositories/acme/private/")

        logins = [r for r in calls if r.url.path == "/v2/users/login/"]
        assert len(logins) == 2

    run_async(scenario())


def test_token_cache_ignores_stale_token_invalidation():
    async def scenario() -> None:
        logins: list[str] = []

        async def login(username: str, password: str) -> str:
            logins.append(username)
            return f"token-{len(logins)}"

        tokens = TokenCache(UpstreamCredential.from_login("me", "pw"), login=login, clock=lambda: 0.0)
        assert await tokens.acquire() == "token-1"
        assert tokens.invalidate("someone-else") is False
        assert tokens.invalidate("token-1") is True
        assert await tokens.acquire() == "token-2"
        assert tokens.invalidate("token-2") is False
        assert await tokens.acquire() == "token-2"

    run_async(scenario())


def test_token_cache_refreshes_after_expiry():
    async def scenario() -> None:
        now = {"t": 0.0}
        logins: list[str] = []

        async def login(username: str, password: str) -> str:
            logins.append(username)
            return f"token-{len(logins)}"

        tokens = TokenCache(
            UpstreamCredential.from_login("me", "pw"),
            login=login,
            ttl_s=3600,
            clock=lambda: now["t"],
        )
        assert await tokens.acquire() == "token-1"
        now["t"] = 3599
        assert await tokens.acquire() == "token-1"
        now["t"] = 3600
        assert await tokens.acquire() == "token-2"
        tokens.invalidate()
        assert await tokens.acquire() == "token-3"

    run_async(scenario())


def test_credential_precedence_and_redaction():
    from dockhub.settings import RegistryConfig

    both = RegistryConfig(
        name="dockerhub", url="https://r", username="u", password="p", token="t"
    )
    assert UpstreamCredential.from_registry(both).kind is CredentialKind.USERNAME_PASSWORD
    token_only = RegistryConfig(name="dockerhub", url="https://r", token="t")
    assert UpstreamCredential.from_registry(token_only).kind is CredentialKind.TOKEN
    anonymous = RegistryConfig(name="dockerhub", url="https://r")
    assert UpstreamCredential.from_registry(anonymous).kind is CredentialKind.NONE

    credential = UpstreamCredential.from_login("user", "s3cret")
    assert "s3cret" not in repr(credential)
    assert "s3cret" not in repr(both)


class BrokenCache(InMemoryHubCache):
    async def get(self, key):
        raise RuntimeError("cache down")

    async def set_with_operation_policy(self, key, value, operation):
        raise RuntimeError("cache down")


class BrokenLimiter(FixedWindowRateLimiter):
    async def acquire(self, upstream_id, subject_key):
        raise RuntimeError("limiter down")


def test_cache_and_limiter_failures_degrade_to_miss_and_allow():
    async def scenario() -> None:
        upstream = Upstream(httpx.Response(200, json={"ok": True}))
        client, _ = make_client(upstream, cache=BrokenCache(), limiter=BrokenLimiter())
        assert await client.fetch("GET", "/v2/x", cache_key="k") == {"ok": True}
        assert await client.fetch("GET", "/v2/x", cache_key="k") == {"ok": True}
        assert len(upstream.requests) == 2

    run_async(scenario())
