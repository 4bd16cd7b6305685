"""
Unit tests for JWKSClient.
"""

import asyncio

import httpx
import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from keycloak_auth.app.jwks.client import JWKSClient, SigningKeySet
from shared.errors import FetchError
from shared.test_helpers import create_jwks, generate_signing_key

JWKS_URL = "https://idp.test/realms/r/protocol/openid-connect/certs"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class JWKSEndpoint:
    """httpx handler serving a JWKS document and counting requests."""

    def __init__(self, document, status_code: int = 200):
        self.document = document
        self.status_code = status_code
        self.requests = 0
        self.error = None
        self.delay = 0.0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.document)


class TestJWKSClient:
    """Test cases for JWKSClient."""

    @pytest.fixture
    def signing_key(self):
        return generate_signing_key("key-1")

    @pytest.fixture
    def endpoint(self, signing_key):
        return JWKSEndpoint(create_jwks(signing_key))

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def jwks_client(self, endpoint, clock):
        client = httpx.AsyncClient(transport=httpx.MockTransport(endpoint))
        return JWKSClient(JWKS_URL, cache_ttl=3600, client=client, clock=clock)

    @pytest.mark.asyncio
    async def test_get_keys_fetches_and_indexes_by_kid(self, jwks_client, endpoint, signing_key):
        """Keys are fetched on first use and indexed by kid."""
        key_set = await jwks_client.get_keys()

        assert endpoint.requests == 1
        assert "key-1" in key_set
        assert key_set.get("key-1")["n"] == signing_key.public_jwk()["n"]

    @pytest.mark.asyncio
    async def test_get_keys_within_ttl_uses_cache(self, jwks_client, endpoint, clock):
        """Two calls inside the TTL window cost one fetch."""
        first = await jwks_client.get_keys()
        clock.advance(3599)
        second = await jwks_client.get_keys()

        assert first is second
        assert endpoint.requests == 1

    @pytest.mark.asyncio
    async def test_get_keys_after_ttl_refetches(self, jwks_client, endpoint, clock):
        """The first call after expiry fetches again."""
        first = await jwks_client.get_keys()
        clock.advance(3600)
        second = await jwks_client.get_keys()

        assert endpoint.requests == 2
        assert second is not first
        assert jwks_client.cache_state.expires_at == clock.now + 3600

    @pytest.mark.asyncio
    async def test_expired_cache_with_failed_fetch_raises(self, jwks_client, endpoint, clock):
        """Stale keys are not served when the refetch fails."""
        await jwks_client.get_keys()
        clock.advance(4000)
        endpoint.status_code = 503

        with pytest.raises(FetchError) as exc_info:
            await jwks_client.get_keys()

        assert exc_info.value.details["status_code"] == 503

    @pytest.mark.asyncio
    async def test_failed_fetch_without_cache_raises(self, jwks_client, endpoint):
        endpoint.status_code = 500

        with pytest.raises(FetchError):
            await jwks_client.get_keys()

        assert jwks_client.cache_state is None

    @pytest.mark.asyncio
    async def test_failed_refetch_keeps_previous_state_untouched(self, jwks_client, endpoint, clock):
        """A failed refresh neither serves nor replaces the previous state."""
        await jwks_client.get_keys()
        previous = jwks_client.cache_state
        clock.advance(4000)
        endpoint.error = httpx.ConnectError("connection refused")

        with pytest.raises(FetchError):
            await jwks_client.get_keys()

        assert jwks_client.cache_state is previous

    @pytest.mark.asyncio
    async def test_timeout_surfaces_as_fetch_error(self, jwks_client, endpoint):
        endpoint.error = httpx.ReadTimeout("timed out")

        with pytest.raises(FetchError) as exc_info:
            await jwks_client.get_keys()

        assert "Timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_invalid_document_surfaces_as_fetch_error(self, jwks_client, endpoint):
        endpoint.document = {"not_keys": []}

        with pytest.raises(FetchError):
            await jwks_client.get_keys()

    @pytest.mark.asyncio
    async def test_concurrent_expired_calls_share_one_fetch(self, jwks_client, endpoint):
        """Callers arriving while a refresh is in flight wait for it."""
        endpoint.delay = 0.05

        results = await asyncio.gather(*(jwks_client.get_keys() for _ in range(10)))

        assert endpoint.requests == 1
        assert all(result is results[0] for result in results)

    @pytest.mark.asyncio
    async def test_refresh_forces_fetch_inside_ttl(self, jwks_client, endpoint, clock):
        await jwks_client.get_keys()
        clock.advance(30)
        await jwks_client.refresh()

        assert endpoint.requests == 2

    @pytest.mark.asyncio
    async def test_refresh_within_cooldown_returns_cached_set(self, jwks_client, endpoint, clock):
        """Repeated forced refreshes hit the provider at most once per cooldown."""
        cached = await jwks_client.get_keys()

        for _ in range(50):
            clock.advance(0.5)
            assert await jwks_client.refresh(stale=cached) is cached

        assert endpoint.requests == 1

    @pytest.mark.asyncio
    async def test_refresh_without_cache_ignores_cooldown(self, jwks_client, endpoint):
        key_set = await jwks_client.refresh()

        assert "key-1" in key_set
        assert endpoint.requests == 1

    @pytest.mark.asyncio
    async def test_cancelled_fetch_leaves_cache_empty(self, jwks_client, endpoint):
        endpoint.delay = 0.5
        task = asyncio.create_task(jwks_client.get_keys())
        await asyncio.sleep(0.01)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert jwks_client.cache_state is None
        assert jwks_client.circuit_breaker.get_state()["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_cancelled_refetch_keeps_previous_state(self, jwks_client, endpoint, clock):
        """Cancelling an in-flight refresh neither replaces nor clears the cache."""
        await jwks_client.get_keys()
        previous = jwks_client.cache_state
        clock.advance(3600)
        endpoint.delay = 0.5

        task = asyncio.create_task(jwks_client.get_keys())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert jwks_client.cache_state is previous

        # The lock was released, so the next caller fetches normally
        endpoint.delay = 0.0
        await jwks_client.get_keys()
        assert endpoint.requests == 3
        assert jwks_client.cache_state is not previous

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_of_same_set_coalesce(self, jwks_client, endpoint, clock):
        """Forced refreshes of the same stale set cost one round trip."""
        stale = await jwks_client.get_keys()
        clock.advance(30)
        endpoint.delay = 0.05

        results = await asyncio.gather(*(jwks_client.refresh(stale=stale) for _ in range(5)))

        assert endpoint.requests == 2
        assert all(result is results[0] for result in results)
        assert results[0] is not stale

    @pytest.mark.asyncio
    async def test_circuit_opens_after_repeated_failures(self, jwks_client, endpoint):
        """After five failures the provider is not contacted until recovery."""
        endpoint.status_code = 503
        for _ in range(5):
            with pytest.raises(FetchError):
                await jwks_client.get_keys()

        with pytest.raises(FetchError) as exc_info:
            await jwks_client.get_keys()

        assert endpoint.requests == 5
        assert exc_info.value.details == {"circuit": "open"}

    @pytest.mark.asyncio
    async def test_circuit_recovers_after_timeout(self, jwks_client, endpoint, clock):
        endpoint.status_code = 503
        for _ in range(5):
            with pytest.raises(FetchError):
                await jwks_client.get_keys()

        clock.advance(30)
        endpoint.status_code = 200
        key_set = await jwks_client.get_keys()

        assert "key-1" in key_set
        assert not jwks_client.circuit_breaker.is_open()

    @pytest.mark.asyncio
    async def test_check_health(self, jwks_client, endpoint):
        assert await jwks_client.check_health() == "ok"

        jwks_client.clear_cache()
        endpoint.status_code = 500
        assert await jwks_client.check_health() == "error"

    @pytest.mark.asyncio
    async def test_warmup_does_not_raise(self, jwks_client, endpoint):
        endpoint.status_code = 500

        await jwks_client.warmup()

        assert jwks_client.cache_state is None

    @pytest.mark.asyncio
    async def test_clear_cache(self, jwks_client, endpoint):
        await jwks_client.get_keys()
        jwks_client.clear_cache()
        await jwks_client.get_keys()

        assert endpoint.requests == 2

    def test_for_provider_builds_certs_url(self):
        client = JWKSClient.for_provider("https://idp.test/realms/r/")
        assert client.jwks_url == JWKS_URL


class TestSigningKeySet:
    """Test cases for SigningKeySet parsing."""

    def test_skips_encryption_keys_and_missing_kid(self):
        key = generate_signing_key("sig-key")
        document = create_jwks(key, extra=[
            {"kid": "enc-key", "kty": "RSA", "use": "enc", "alg": "RSA-OAEP", "n": "x", "e": "AQAB"},
            {"kty": "RSA", "alg": "RS256", "n": "x", "e": "AQAB"},
        ])

        key_set = SigningKeySet.from_jwks(document, fetched_at=1.0)

        assert list(key_set.keys) == ["sig-key"]
        assert len(key_set) == 1

    def test_key_set_cannot_be_mutated(self):
        key_set = SigningKeySet.from_jwks(create_jwks(generate_signing_key("k")), fetched_at=1.0)

        with pytest.raises(TypeError):
            key_set.keys["other"] = {}
        with pytest.raises(TypeError):
            key_set.get("k")["alg"] = "HS256"

    def test_missing_keys_array(self):
        with pytest.raises(FetchError):
            SigningKeySet.from_jwks({"keys": "nope"}, fetched_at=1.0)
