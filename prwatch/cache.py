from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from typing import Any, Literal, TypeVar

logger = logging.getLogger(__name__)

Key = tuple[Any, ...]
Decision = Literal["reuse", "refetch"]
T = TypeVar("T")


@dataclass(frozen=True)
class TierPolicy:
    """Refresh rules of one cache tier.

    Attributes:
        name: Tier name used in logs and error reporting.
        stale_after: Seconds after which data is stale and is refetched when
            the tier is revalidated. None means never stale.
        refetch_interval: Seconds between periodic refetches, or None.
        retries: Extra attempts after a failed fetch.
        retry_delay: Base delay in seconds, doubled for each further attempt.
    """

    name: str
    stale_after: float | None = None
    refetch_interval: float | None = None
    retries: int = 0
    retry_delay: float = 1.0


@dataclass(frozen=True)
class CacheEntry:
    key: Key
    data: Any = None
    updated_at: float | None = None
    attempted_at: float | None = None
    error: str | None = None
    invalidated: bool = False

    @property
    def has_data(self) -> bool:
        return self.updated_at is not None

    @property
    def last_activity(self) -> float | None:
        stamps = [t for t in (self.updated_at, self.attempted_at) if t is not None]
        return max(stamps) if stamps else None


def is_stale(policy: TierPolicy, entry: CacheEntry, now: float) -> bool:
    if policy.stale_after is None:
        return not entry.has_data and entry.attempted_at is None
    if entry.updated_at is None:
        return True
    return now - entry.updated_at >= policy.stale_after


def decide(policy: TierPolicy, entry: CacheEntry | None, now: float, revalidate: bool = False) -> Decision:
    """Decide whether a tier entry should be fetched again.

    Args:
        policy: The tier's refresh rules.
        entry: Current entry, or None if the key was never seen.
        now: Current time on the store's clock.
        revalidate: True when the key is being observed anew (a new selection,
            a fresh list snapshot); stale data is then refetched.

    Returns:
        "refetch" for unseen, invalidated, interval-due or revalidated stale
        entries, otherwise "reuse".
    """
    if entry is None or entry.invalidated:
        return "refetch"
    last = entry.last_activity
    if last is None:
        return "refetch"
    if policy.refetch_interval is not None and now - last >= policy.refetch_interval:
        return "refetch"
    if revalidate and is_stale(policy, entry, now):
        return "refetch"
    return "reuse"


class QueryStore:
    """Keyed cache shared by every tier.

    Entries are immutable and replaced whole. Concurrent fetches of one key
    share a single in-flight task. Listeners are called after every change.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[Key, CacheEntry] = {}
        self._inflight: dict[Key, asyncio.Task[Any]] = {}
        self._listeners: list[Callable[[], None]] = []

    def now(self) -> float:
        return self._clock()

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    def get(self, key: Key) -> CacheEntry | None:
        return self._entries.get(key)

    def data(self, key: Key, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None or not entry.has_data:
            return default
        return entry.data

    def keys(self, prefix: Key = ()) -> list[Key]:
        return [key for key in self._entries if key[: len(prefix)] == prefix]

    def set_data(self, key: Key, value: Any) -> None:
        """Write data for a key as if it had just been fetched."""
        entry = self._entries.get(key) or CacheEntry(key)
        self._entries[key] = replace(entry, data=value, updated_at=self._clock(), error=None)
        self._notify()

    def update(self, key: Key, updater: Callable[[Any], Any]) -> bool:
        """Replace existing data with `updater(data)`; timestamps are untouched.

        Returns:
            False when the key holds no data, in which case nothing changes.
        """
        entry = self._entries.get(key)
        if entry is None or not entry.has_data:
            return False
        self._entries[key] = replace(entry, data=updater(entry.data))
        self._notify()
        return True

    def invalidate(self, prefix: Key) -> list[Key]:
        """Mark every key starting with `prefix` for refetch on the next evaluation."""
        keys = self.keys(prefix)
        for key in keys:
            self._entries[key] = replace(self._entries[key], invalidated=True)
        if keys:
            logger.debug(f"Invalidated {len(keys)} entries under {prefix!r}")
            self._notify()
        return keys

    def remove(self, key: Key) -> None:
        """Tear a key down; an in-flight fetch for it will not be stored."""
        if self._entries.pop(key, None) is not None:
            self._notify()

    def is_fetching(self, prefix: Key = ()) -> bool:
        return any(key[: len(prefix)] == prefix for key in self._inflight)

    async def fetch(self, key: Key, fetcher: Callable[[], Awaitable[T]], policy: TierPolicy) -> T:
        """Fetch a key, joining the in-flight request for it if one exists.

        Args:
            key: Cache key.
            fetcher: Zero-argument coroutine function producing the data.
            policy: Tier policy supplying the retry budget.

        Returns:
            The fetched data.

        Raises:
            Exception: Whatever the last attempt raised; the entry keeps its
                previous data and records the error.
        """
        task = self._inflight.get(key)
        if task is None:
            entry = self._entries.get(key) or CacheEntry(key)
            self._entries[key] = replace(entry, invalidated=False)
            task = asyncio.create_task(self._run(key, fetcher, policy))
            self._inflight[key] = task
            self._notify()
        return await asyncio.shield(task)

    async def _run(self, key: Key, fetcher: Callable[[], Awaitable[T]], policy: TierPolicy) -> T:
        try:
            for attempt in range(policy.retries + 1):
                try:
                    data = await fetcher()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    if attempt < policy.retries:
                        logger.warning(f"{policy.name} fetch failed (attempt {attempt + 1}/{policy.retries + 1}): {e}")
                        await asyncio.sleep(policy.retry_delay * 2**attempt)
                        continue
                    logger.error(f"{policy.name} fetch for {key!r} failed: {e}")
                    self._record(key, error=str(e) or type(e).__name__)
                    raise
                self._record(key, data=data)
                return data
            raise RuntimeError("unreachable")
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]
            self._notify()

    def _record(self, key: Key, data: Any = None, error: str | None = None) -> None:
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Dropping result for torn down key {key!r}")
            return
        now = self._clock()
        if error is not None:
            self._entries[key] = replace(entry, attempted_at=now, error=error)
        else:
            self._entries[key] = replace(entry, data=data, updated_at=now, attempted_at=now, error=None)


async def mutate_then_reconcile(
    store: QueryStore,
    mutation: Callable[[], Awaitable[T]],
    *,
    patches: Iterable[tuple[Key, Callable[[Any], Any]]] = (),
    invalidate: Iterable[Key] = (),
    reconcile: Iterable[Key] = (),
    reconcile_delay: float = 4.0,
    on_reconcile: Callable[[], None] | None = None,
) -> tuple[T, asyncio.Task[None] | None]:
    """Run a remote mutation, then patch, invalidate and later refetch.

    Nothing in the store changes if the mutation raises.

    Args:
        store: The cache to update.
        mutation: Zero-argument coroutine function performing the remote call.
        patches: `(key, updater)` pairs applied to cached data right away.
        invalidate: Key prefixes invalidated right away.
        reconcile: Key prefixes invalidated again after `reconcile_delay`.
        reconcile_delay: Seconds to wait before the forced refetch.
        on_reconcile: Called after the delayed invalidation, e.g. to run a tick.

    Returns:
        The mutation result and the delayed reconcile task, if any.
    """
    result = await mutation()
    for key, updater in patches:
        store.update(key, updater)
    for prefix in invalidate:
        store.invalidate(prefix)

    reconcile_keys = list(reconcile)
    if not reconcile_keys:
        return result, None

    async def later() -> None:
        await asyncio.sleep(reconcile_delay)
        for prefix in reconcile_keys:
            store.invalidate(prefix)
        if on_reconcile is not None:
            on_reconcile()

    return result, asyncio.create_task(later())
