# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Single-flight cache for the temporary credential.

Holds at most one live credential per cache key.  While the credential is
valid it is served to every caller without locking on the fetch path.  On
a miss, exactly one caller runs the fetch function and all concurrent
callers wait for and share its outcome, success or failure.

The backing key-value store is injected (``TTLStore``); ``MemoryTTLStore``
is the in-process default.  The in-flight marker always lives in this
process.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from types import TracebackType
from typing import Protocol

from cosauth.errors import CredentialExpiredOnIssue, CredentialFetchTimeout
from cosauth.types import TemporaryCredential


logger = logging.getLogger(__name__)

DEFAULT_CACHE_KEY = "cosauth_tempkey"

#: Seconds before expiry at which a cached credential stops being served.
DEFAULT_SAFETY_MARGIN = 300


class TTLStore(Protocol):
    """Key-value store with per-entry time-to-live."""

    def get(self, key: str) -> TemporaryCredential | None:
        """Return the stored value, or None if missing or expired."""
        ...

    def set(self, key: str, value: TemporaryCredential, ttl: float) -> None:
        """Store *value* under *key* for *ttl* seconds."""
        ...

    def forget(self, key: str) -> None:
        """Remove *key* if present."""
        ...


class MemoryTTLStore:
    """Thread-safe in-process ``TTLStore``.

    Args:
        clock: Monotonic time source used for entry deadlines.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[TemporaryCredential, float]] = {}

    def get(self, key: str) -> TemporaryCredential | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, deadline = entry
            if self._clock() >= deadline:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: TemporaryCredential, ttl: float) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def forget(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


class _Flight:
    """Outcome slot for one in-progress fetch."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: TemporaryCredential | None = None
        self.error: BaseException | None = None
        self.traceback: TracebackType | None = None


class CredentialCache:
    """Caches one temporary credential with single-flight refresh.

    Thread-safe.  The lock only covers the hit-or-claim decision; the
    fetch runs outside it.

    Attributes:
        key: Cache key in the backing store.
        safety_margin: Seconds before expiry at which a credential is
            treated as invalid.
        wait_timeout: Max seconds a caller waits on another caller's fetch,
            or None to wait indefinitely.
    """

    def __init__(
        self,
        store: TTLStore | None = None,
        *,
        key: str = DEFAULT_CACHE_KEY,
        safety_margin: float = DEFAULT_SAFETY_MARGIN,
        clock: Callable[[], float] = time.time,
        wait_timeout: float | None = None,
    ) -> None:
        if safety_margin < 0:
            raise ValueError(f"Safety margin must be >= 0: {safety_margin}")
        self._store: TTLStore = store if store is not None else MemoryTTLStore()
        self.key = key
        self.safety_margin = safety_margin
        self.wait_timeout = wait_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._flight: _Flight | None = None

    def _valid_cached(self) -> TemporaryCredential | None:
        cached = self._store.get(self.key)
        if cached is not None and cached.is_valid(
            self._clock(), self.safety_margin
        ):
            return cached
        return None

    def peek(self) -> TemporaryCredential | None:
        """Return the cached credential if still valid, without fetching."""
        return self._valid_cached()

    def invalidate(self) -> None:
        """Drop the cached credential so the next call refetches."""
        with self._lock:
            self._store.forget(self.key)
        logger.info("Invalidated cached credential %s", self.key)

    def get_or_fetch(
        self, fetch_fn: Callable[[], TemporaryCredential]
    ) -> TemporaryCredential:
        """Return a valid credential, fetching it at most once concurrently.

        Args:
            fetch_fn: Called (outside any lock) to obtain a new credential
                on a miss.

        Returns:
            A credential valid for at least ``safety_margin`` seconds, or
            the freshly fetched one.

        Raises:
            CredentialExpiredOnIssue: If the fetch returned an expired
                credential.
            CredentialFetchTimeout: If waiting on another caller's fetch
                exceeded ``wait_timeout``.
            Exception: Any error raised by *fetch_fn*, unchanged.
        """
        cached = self._valid_cached()
        if cached is not None:
            return cached

        with self._lock:
            cached = self._store.get(self.key)
            if cached is not None:
                if cached.is_valid(self._clock(), self.safety_margin):
                    return cached
                logger.info(
                    "Cached credential %s is within %ds of expiry, refreshing",
                    cached.tmp_secret_id,
                    self.safety_margin,
                )
                self._store.forget(self.key)

            flight = self._flight
            owner = flight is None
            if flight is None:
                flight = self._flight = _Flight()

        if owner:
            return self._fetch(flight, fetch_fn)
        return self._wait(flight)

    def _fetch(
        self, flight: _Flight, fetch_fn: Callable[[], TemporaryCredential]
    ) -> TemporaryCredential:
        """Run the fetch, publish its outcome and release waiters."""
        logger.debug("Fetching new credential for %s", self.key)
        try:
            credential = fetch_fn()
            now = self._clock()
            if credential.is_expired(now):
                raise CredentialExpiredOnIssue(
                    f"Fetched credential {credential.tmp_secret_id} expired at "
                    f"{int(credential.expires_at)} (now {int(now)})"
                )
            ttl = credential.expires_at - self.safety_margin - now
            if ttl > 0:
                self._store.set(self.key, credential, ttl)
            else:
                logger.warning(
                    "Fetched credential %s expires within the safety margin; "
                    "serving it without caching",
                    credential.tmp_secret_id,
                )
            flight.result = credential
            return credential
        except BaseException as e:
            flight.error = e
            flight.traceback = e.__traceback__
            raise
        finally:
            with self._lock:
                self._flight = None
            flight.done.set()

    def _wait(self, flight: _Flight) -> TemporaryCredential:
        """Block until the in-flight fetch resolves and share its outcome.

        Waiters receive the very exception instance the fetch raised.  Its
        traceback is reset to the fetching thread's before each re-raise,
        so frames from earlier waiters do not pile up on it.
        """
        if not flight.done.wait(self.wait_timeout):
            # The fetch keeps running and still populates the cache
            raise CredentialFetchTimeout(
                f"Timed out after {self.wait_timeout}s waiting for "
                f"in-flight credential fetch"
            )
        if flight.error is not None:
            raise flight.error.with_traceback(flight.traceback)
        assert flight.result is not None
        return flight.result
