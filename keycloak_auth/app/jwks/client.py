"""
JWKS client for Keycloak integration.
"""

import asyncio
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from shared.errors import FetchError
from shared.logging import get_logger

JWKS_PATH = "/protocol/openid-connect/certs"


@dataclass(frozen=True)
class SigningKeySet:
    """Signing keys from one successful JWKS response, indexed by kid."""

    fetched_at: float
    keys: Mapping[str, Mapping[str, Any]]

    @classmethod
    def from_jwks(cls, document: Any, fetched_at: float) -> "SigningKeySet":
        """Build a key set from a JWK Set document.

        Encryption keys and entries without a ``kid`` are skipped; they can
        never be selected by a token header.
        """
        keys = document.get("keys") if isinstance(document, dict) else None
        if not isinstance(keys, list):
            raise FetchError("JWKS response missing 'keys' array")

        indexed: Dict[str, Mapping[str, Any]] = {}
        for key in keys:
            if not isinstance(key, dict):
                continue
            kid = key.get("kid")
            if not isinstance(kid, str) or not kid:
                continue
            if key.get("use", "sig") != "sig":
                continue
            indexed[kid] = MappingProxyType(dict(key))

        return cls(fetched_at=fetched_at, keys=MappingProxyType(indexed))

    def get(self, kid: str) -> Optional[Mapping[str, Any]]:
        return self.keys.get(kid)

    def __contains__(self, kid: object) -> bool:
        return kid in self.keys

    def __len__(self) -> int:
        return len(self.keys)


@dataclass(frozen=True)
class CacheState:
    """A key set together with the moment it stops being served."""

    key_set: SigningKeySet
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class JWKSClient:
    """Fetches and caches the provider's signing keys.

    The cached :class:`CacheState` is replaced wholesale after each
    successful fetch and never mutated. Refreshes are serialized by a lock
    so concurrent callers that find the cache expired share one provider
    round trip. A failed refresh raises :class:`FetchError`; expired keys are
    never served as a fallback. Forced refreshes are rate limited by
    ``refresh_cooldown`` so tokens naming unknown key ids cannot drive one
    provider fetch per request.
    """

    def __init__(
        self,
        jwks_url: str,
        cache_ttl: float = 3600,
        *,
        refresh_cooldown: float = 30.0,
        http_timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self.jwks_url = jwks_url
        self.cache_ttl = cache_ttl
        self.refresh_cooldown = refresh_cooldown
        self.http_timeout = http_timeout
        self.logger = get_logger("keycloak.jwks")

        self._clock = clock
        self._state: Optional[CacheState] = None
        self._lock = asyncio.Lock()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=http_timeout)

        # Circuit breaker for Keycloak calls
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=30.0,
            name="keycloak-jwks",
            clock=clock,
        )

    @classmethod
    def for_provider(cls, keycloak_url: str, **kwargs: Any) -> "JWKSClient":
        """Create a client for the realm's well-known certs endpoint."""
        return cls(f"{keycloak_url.rstrip('/')}{JWKS_PATH}", **kwargs)

    @property
    def cache_state(self) -> Optional[CacheState]:
        return self._state

    async def get_keys(self) -> SigningKeySet:
        """Return cached keys, fetching them when absent or expired."""
        state = self._state
        if state is not None and state.is_fresh(self._clock()):
            return state.key_set

        async with self._lock:
            state = self._state
            if state is not None and state.is_fresh(self._clock()):
                return state.key_set
            return await self._fetch_and_store()

    async def refresh(self, stale: Optional[SigningKeySet] = None) -> SigningKeySet:
        """Force a refetch regardless of expiry.

        When ``stale`` is given and another caller already replaced that key
        set while this one waited for the lock, the newer set is returned
        without another round trip. Within ``refresh_cooldown`` seconds of
        the last successful fetch the cached set is returned unchanged.
        """
        async with self._lock:
            state = self._state
            if state is None:
                return await self._fetch_and_store()
            if stale is not None and state.key_set is not stale:
                return state.key_set
            if self._clock() - state.key_set.fetched_at < self.refresh_cooldown:
                self.logger.debug("JWKS refresh skipped during cooldown", cooldown=self.refresh_cooldown)
                return state.key_set
            return await self._fetch_and_store()

    async def warmup(self) -> None:
        """Eagerly load the key set so the first request does not pay the cost."""
        try:
            await self.get_keys()
        except FetchError as exc:
            self.logger.warning("JWKS warmup failed", error=exc.message)

    async def check_health(self) -> str:
        """Return 'ok' if the JWKS endpoint responds correctly, otherwise 'error'."""
        try:
            await self.get_keys()
            return "ok"
        except FetchError as exc:
            self.logger.error("JWKS health check failed", error=exc.message)
            return "error"

    def clear_cache(self) -> None:
        """Drop the cached key set; the next call fetches again."""
        self._state = None
        self.logger.info("JWKS cache cleared")

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _fetch_and_store(self) -> SigningKeySet:
        key_set = await self._fetch()
        self._state = CacheState(key_set=key_set, expires_at=key_set.fetched_at + self.cache_ttl)
        self.logger.info("JWKS refreshed successfully", keys_count=len(key_set))
        return key_set

    async def _fetch(self) -> SigningKeySet:
        async def _fetch_jwks() -> SigningKeySet:
            response = await self._client.get(self.jwks_url, timeout=self.http_timeout)
            response.raise_for_status()
            return SigningKeySet.from_jwks(response.json(), fetched_at=self._clock())

        try:
            return await self.circuit_breaker.call(_fetch_jwks)
        except CircuitBreakerOpen as exc:
            self.logger.error("JWKS fetch blocked by open circuit", jwks_url=self.jwks_url)
            raise FetchError("Key server unavailable", details={"circuit": "open"}) from exc
        except httpx.TimeoutException as exc:
            self.logger.error("Timed out fetching JWKS", jwks_url=self.jwks_url)
            raise FetchError("Timed out fetching signing keys") from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            self.logger.error("JWKS endpoint returned an error", status_code=status_code)
            raise FetchError(
                f"Key server responded with {status_code}",
                details={"status_code": status_code}
            ) from exc
        except httpx.HTTPError as exc:
            self.logger.error("Failed to fetch JWKS", error=str(exc))
            raise FetchError("Failed to fetch signing keys") from exc
        except ValueError as exc:
            self.logger.error("JWKS response is not valid JSON", error=str(exc))
            raise FetchError("Key server returned an unreadable key set") from exc
