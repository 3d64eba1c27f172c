"""JWKS retrieval, caching and signing key selection.

The cache follows the provider's discovery document to its ``jwks_uri`` and
keeps the resulting key set for a fixed TTL. Concurrent callers that find the
cache empty or stale share a single refresh instead of each hitting the
provider.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

import httpx

from evesso.core.config import DEFAULT_ALGORITHM, DEFAULT_HTTP_TIMEOUT, DEFAULT_JWKS_TTL_SECONDS
from evesso.core.errors import (
    MalformedProviderResponseError,
    NoUsableKeyError,
    ProviderUnreachableError,
)
from evesso.core.logging import LoggingAsyncClient, ProtocolLogger
from evesso.core.oidc.models import KeySet, ProviderMetadata, SigningKey, parse_signing_key

logger = logging.getLogger(__name__)


def select_signing_key(
    keys: Sequence[SigningKey],
    algorithm: str = DEFAULT_ALGORITHM,
    key_id: str | None = None,
) -> SigningKey:
    """Pick the key to verify a token with.

    A key whose ``kid`` equals ``key_id`` and whose algorithm matches wins.
    Otherwise the first key with the requested algorithm is returned.

    Args:
        keys: Keys in JWKS order.
        algorithm: Required algorithm tag.
        key_id: ``kid`` from the token header, if any.

    Returns:
        The selected key.

    Raises:
        NoUsableKeyError: If no key has the requested algorithm.
    """
    if key_id:
        for key in keys:
            if key.key_id == key_id and key.algorithm == algorithm:
                return key

    for key in keys:
        if key.algorithm == algorithm:
            if key_id:
                logger.warning(
                    f"No {algorithm} key with kid '{key_id}' in key set, falling back to '{key.key_id}'"
                )
            return key

    raise NoUsableKeyError(algorithm, key_id)


class KeySetCache:
    """Holds the provider's current key set and refreshes it after a TTL.

    Usage:
        async with KeySetCache(discovery_url) as cache:
            key_set = await cache.get_keys()
    """

    def __init__(
        self,
        discovery_url: str,
        ttl_seconds: float = DEFAULT_JWKS_TTL_SECONDS,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
        protocol_logger: ProtocolLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            discovery_url: Provider's well-known metadata URL.
            ttl_seconds: Maximum age of a key set before it is refetched.
            timeout: Per-request timeout for the internally created client.
            http_client: Client to use instead of creating one. Not closed by the cache.
            protocol_logger: Protocol logger for the internally created client.
            clock: Monotonic time source used for the TTL.
        """
        self.discovery_url = discovery_url
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout
        self._clock = clock
        self._protocol_logger = protocol_logger
        self._http_client = http_client
        self._owns_client = http_client is None
        self._key_set: KeySet | None = None
        self._refresh_task: asyncio.Task[KeySet] | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = LoggingAsyncClient(protocol_logger=self._protocol_logger, timeout=self.timeout)
        return self._http_client

    @property
    def key_set(self) -> KeySet | None:
        """The cached key set, fresh or not."""
        return self._key_set

    async def get_keys(self) -> KeySet:
        """Return the cached key set, refreshing it if missing or stale.

        Raises:
            ProviderUnreachableError: If a provider request fails.
            MalformedProviderResponseError: If a provider document is malformed.
        """
        key_set = self._key_set
        if key_set is not None and not key_set.is_stale(self.ttl_seconds, self._clock()):
            return key_set
        return await self.refresh()

    async def refresh(self) -> KeySet:
        """Fetch a new key set, joining a refresh already in flight."""
        task = self._refresh_task
        if task is None:
            task = asyncio.create_task(self._refresh())
            self._refresh_task = task
            task.add_done_callback(self._refresh_done)
        # Shielded so a cancelled waiter does not cancel the shared refresh.
        return await asyncio.shield(task)

    def _refresh_done(self, task: asyncio.Task[KeySet]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        # Retrieve the exception so an unawaited failure is not reported as lost.
        if not task.cancelled():
            task.exception()

    def invalidate(self) -> None:
        """Drop the cached key set so the next call refetches it."""
        self._key_set = None

    async def _refresh(self) -> KeySet:
        started = self._clock()
        metadata = ProviderMetadata.from_dict(await self._get_json(self.discovery_url, "provider metadata"))
        key_set = self._parse_jwks(await self._get_json(metadata.jwks_uri, "JWKS"), metadata.jwks_uri, started)

        self._key_set = key_set
        logger.info(f"Refreshed key set from {metadata.jwks_uri}: {len(key_set.keys)} usable keys")
        return key_set

    async def _get_json(self, url: str, what: str) -> Any:
        try:
            response = await self.http_client.get(url, headers={"Accept": "application/json"})
        except httpx.TimeoutException as e:
            raise ProviderUnreachableError(f"Timeout fetching {what} from {url}", url=url) from e
        except httpx.HTTPError as e:
            raise ProviderUnreachableError(f"Request error fetching {what} from {url}: {e}", url=url) from e

        if not response.is_success:
            raise ProviderUnreachableError(
                f"HTTP {response.status_code} fetching {what} from {url}",
                url=url,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedProviderResponseError(f"Invalid JSON in {what} from {url}", url=url) from e

    def _parse_jwks(self, document: Any, url: str, fetched_at: float) -> KeySet:
        if not isinstance(document, dict) or not isinstance(document.get("keys"), list):
            raise MalformedProviderResponseError("JWKS document has no 'keys' list", url=url)

        keys = []
        for entry in document["keys"]:
            key = parse_signing_key(entry)
            if key is None:
                logger.debug(f"Skipping JWKS entry with unsupported alg {entry.get('alg')!r}")
                continue
            keys.append(key)

        return KeySet(
            keys=tuple(keys),
            fetched_at=fetched_at,
            skip_unresolved=bool(document.get("SkipUnresolvedJsonWebKeys", False)),
        )

    async def aclose(self) -> None:
        """Close the HTTP client if the cache created it."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> KeySetCache:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
