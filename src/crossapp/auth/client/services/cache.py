"""Access token cache and acquisition deduplication.

Both structures are keyed by resource origin and are the only shared mutable
state of the interceptor. Each is guarded by its own lock so callers may run
as tasks on one event loop or on separate threads with their own loops.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from crossapp.auth.client.models.config import CachedAccessTokenLookup
from crossapp.auth.client.models.tokens import AccessTokenResponse, CachedToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TokenCache:
    """In-memory access token cache with an optional external override.

    Holds at most one token per resource key. Expired entries are dropped
    when read; there is no background sweep.
    """

    def __init__(
        self,
        external_lookup: CachedAccessTokenLookup | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the token cache.

        Args:
            external_lookup: Optional async lookup consulted before this cache
            clock: Source of the current Unix time
        """
        self._external_lookup = external_lookup
        self._clock = clock
        self._tokens: dict[str, CachedToken] = {}
        self._lock = threading.Lock()

    async def lookup(self, resource_key: str) -> str | None:
        """Find a usable access token for a resource.

        The external lookup wins whenever it returns a token; the internal
        cache is only consulted when it returns nothing.

        Args:
            resource_key: Resource origin

        Returns:
            Access token, or None if nothing usable is cached
        """
        if self._external_lookup is not None:
            token = await self._external_lookup(resource_key)
            if token:
                return token

        return self.get(resource_key)

    def get(self, resource_key: str) -> str | None:
        """Return the internally cached token if it has not expired."""
        with self._lock:
            cached = self._tokens.get(resource_key)
            if cached is None:
                return None
            if not cached.is_valid(self._clock()):
                del self._tokens[resource_key]
                logger.debug(f"Dropped expired access token for {resource_key}")
                return None
            return cached.token

    def store(
        self, resource_key: str, token_response: AccessTokenResponse
    ) -> CachedToken:
        """Cache an access token, replacing any previous entry for the key.

        Args:
            resource_key: Resource origin
            token_response: Successful access token response

        Returns:
            The cache entry that was written
        """
        cached = CachedToken(
            token=token_response.access_token,
            expires_at=token_response.calculate_expires_at(self._clock()),
        )
        with self._lock:
            self._tokens[resource_key] = cached
        return cached

    def evict(self, resource_key: str) -> None:
        with self._lock:
            self._tokens.pop(resource_key, None)

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()

    def __contains__(self, resource_key: str) -> bool:
        return self.get(resource_key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


class AcquisitionDeduplicator(Generic[T]):
    """Single-flight guard: at most one acquisition in progress per key.

    The first caller for a key runs the acquisition; callers arriving while
    it is pending wait for the same outcome, success or failure. The pending
    entry is removed before the outcome is delivered.
    """

    def __init__(self) -> None:
        self._pending: dict[str, concurrent.futures.Future[T]] = {}
        self._lock = threading.Lock()

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._pending

    async def run(self, key: str, acquire: Callable[[], Awaitable[T]]) -> T:
        """Run acquire() for key unless an acquisition is already pending.

        Args:
            key: Deduplication key
            acquire: Zero-argument coroutine function doing the real work

        Returns:
            Result of the (possibly shared) acquisition
        """
        with self._lock:
            future = self._pending.get(key)
            is_owner = future is None
            if is_owner:
                future = concurrent.futures.Future()
                self._pending[key] = future

        if not is_owner:
            logger.debug(f"Joining pending token acquisition for {key}")
            # Shielded so a cancelled waiter cannot cancel the shared result
            return await asyncio.shield(asyncio.wrap_future(future))

        # The entry is released before waiters see the outcome, whatever it is
        try:
            result = await acquire()
        except BaseException as e:
            self._release(key)
            if isinstance(e, asyncio.CancelledError):
                future.cancel()
            else:
                future.set_exception(e)
            raise

        self._release(key)
        future.set_result(result)
        return result

    def _release(self, key: str) -> None:
        with self._lock:
            self._pending.pop(key, None)
