"""Keyed async fetch-and-cache primitive.

Each key owns at most one running fetch; callers that ask for a key while its
fetch is running join that fetch instead of starting another one. Values are
reused until they go stale, disabled keys are never fetched, and keys with a
refetch interval are polled by a cache-owned timer while they have at least
one subscriber.

All methods must be called from the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Awaitable, Callable

from .models.query import (
    STATUS_ERROR,
    STATUS_IDLE,
    STATUS_LOADING,
    STATUS_SUCCESS,
    FetchFn,
    Listener,
    QueryEntry,
    QueryKey,
    QueryOptions,
    QueryResult,
    Subscription,
)

logger = logging.getLogger(__name__)


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class QueryCache:
    """Process-wide query cache, constructed once and passed to consumers."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._entries: dict[QueryKey, QueryEntry] = {}
        self._clock = clock
        self._sleep = sleep
        self._closed = False

    async def __aenter__(self) -> "QueryCache":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """(Re)open the cache and resume polling for subscribed keys."""
        self._closed = False
        for entry in self._entries.values():
            if entry.subscribers and self._should_fetch(entry):
                self._start_fetch(entry)
            self._sync_timer(entry)

    async def close(self) -> None:
        """Stop every timer and cancel running fetches."""
        self._closed = True
        tasks: list[asyncio.Task] = []
        for entry in self._entries.values():
            for task in (entry.timer, entry.in_flight):
                if task is not None and not task.done():
                    task.cancel()
                    tasks.append(task)
            entry.timer = None
            entry.in_flight = None
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("Query cache closed (%d task(s) cancelled)", len(tasks))

    def register(
        self, key: QueryKey, fetch_fn: FetchFn, options: QueryOptions | None = None
    ) -> QueryEntry:
        """Register ``fetch_fn`` for ``key``, or replace an existing registration."""
        options = options or QueryOptions()
        entry = self._entries.get(key)
        if entry is None:
            entry = QueryEntry(key=key, fetch_fn=fetch_fn, options=options)
            self._entries[key] = entry
            logger.debug("Registered query %r (%s)", key, options)
            return entry

        was_enabled = entry.options.enabled
        entry.fetch_fn = fetch_fn
        entry.options = options
        self._apply_enabled(entry, was_enabled)
        return entry

    def _entry(self, key: QueryKey) -> QueryEntry:
        try:
            return self._entries[key]
        except KeyError:
            raise KeyError(f"Unknown query key: {key!r}") from None

    def get(self, key: QueryKey) -> QueryResult:
        """Return the current snapshot, scheduling a fetch if one is due."""
        entry = self._entry(key)
        if _loop_running() and self._should_fetch(entry):
            self._start_fetch(entry)
        return self._snapshot(entry)

    async def fetch(self, key: QueryKey) -> QueryResult:
        """Like :meth:`get`, but wait for a due or running fetch to settle."""
        return await self._await_fetch(self._entry(key), force=False)

    async def refetch(self, key: QueryKey) -> QueryResult:
        """Fetch regardless of staleness (still joins a running fetch)."""
        return await self._await_fetch(self._entry(key), force=True)

    def set_enabled(self, key: QueryKey, enabled: bool) -> None:
        entry = self._entry(key)
        was_enabled = entry.options.enabled
        if was_enabled == enabled:
            return
        entry.options = replace(entry.options, enabled=enabled)
        self._apply_enabled(entry, was_enabled)

    def subscribe(self, key: QueryKey, listener: Listener | None = None) -> Subscription:
        """Start observing ``key``.

        The first subscriber of an interval query starts its timer. ``listener``
        is called with a fresh snapshot after every settled fetch.
        """
        entry = self._entry(key)
        sub = Subscription(key=key, listener=listener)
        entry.subscribers.append(sub)
        if _loop_running():
            if self._should_fetch(entry):
                self._start_fetch(entry)
            self._sync_timer(entry)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if not sub.active:
            return
        sub.active = False
        entry = self._entries.get(sub.key)
        if entry is None:
            return
        if sub in entry.subscribers:
            entry.subscribers.remove(sub)
        self._sync_timer(entry)

    def _is_stale(self, entry: QueryEntry) -> bool:
        if entry.fetched_at is None:
            return True
        return (self._clock() - entry.fetched_at) >= entry.options.stale_time_s

    def _should_fetch(self, entry: QueryEntry, force: bool = False) -> bool:
        if self._closed or not entry.options.enabled:
            return False
        if entry.in_flight is not None:
            return False
        return force or self._is_stale(entry)

    def _apply_enabled(self, entry: QueryEntry, was_enabled: bool) -> None:
        if not _loop_running():
            return
        if entry.options.enabled and not was_enabled:
            logger.debug("Query %r enabled", entry.key)
            if self._should_fetch(entry):
                self._start_fetch(entry)
        self._sync_timer(entry)

    async def _await_fetch(self, entry: QueryEntry, force: bool) -> QueryResult:
        task = entry.in_flight
        if task is None and self._should_fetch(entry, force=force):
            task = self._start_fetch(entry)
        if task is not None:
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                # Only swallow the fetch being cancelled by close(), not our own.
                if not task.cancelled():
                    raise
        return self._snapshot(entry)

    def _start_fetch(self, entry: QueryEntry) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._run_fetch(entry))
        entry.in_flight = task
        return task

    async def _run_fetch(self, entry: QueryEntry) -> None:
        task = asyncio.current_task()
        logger.debug("Fetching %r", entry.key)
        try:
            value = await entry.fetch_fn()
        except Exception as exc:
            entry.error = exc
            entry.error_count += 1
            if entry.has_value:
                logger.warning("Using cached %r after fetch error: %s", entry.key, exc)
            else:
                logger.warning("Fetch for %r failed: %s", entry.key, exc)
        else:
            entry.value = value
            entry.fetched_at = self._clock()
            entry.error = None
            entry.error_count = 0
        finally:
            if entry.in_flight is task:
                entry.in_flight = None
        self._notify(entry)

    def _sync_timer(self, entry: QueryEntry) -> None:
        wanted = bool(
            not self._closed
            and entry.options.enabled
            and entry.options.refetch_interval_s
            and entry.subscribers
        )
        running = entry.timer is not None and not entry.timer.done()
        if wanted and not running:
            entry.timer = asyncio.get_running_loop().create_task(self._poll(entry))
        elif not wanted and running:
            entry.timer.cancel()
            entry.timer = None
            logger.debug("Stopped polling %r", entry.key)

    async def _poll(self, entry: QueryEntry) -> None:
        logger.debug(
            "Polling %r every %ss", entry.key, entry.options.refetch_interval_s
        )
        delay = entry.options.refetch_interval_s or 0.0
        while True:
            await self._sleep(delay)
            start = self._clock()
            task = entry.in_flight or self._start_fetch(entry)
            await asyncio.shield(task)
            interval = entry.options.refetch_interval_s or 0.0
            delay = max(0.0, interval - (self._clock() - start))

    def _snapshot(self, entry: QueryEntry) -> QueryResult:
        fetching = entry.in_flight is not None
        if entry.error is not None:
            status = STATUS_ERROR
        elif entry.has_value:
            status = STATUS_SUCCESS
        elif fetching:
            status = STATUS_LOADING
        else:
            status = STATUS_IDLE
        return QueryResult(
            data=entry.value,
            is_loading=fetching and not entry.has_value,
            is_fetching=fetching,
            status=status,
            error=entry.error,
            updated_at=entry.fetched_at,
        )

    def _notify(self, entry: QueryEntry) -> None:
        if not entry.subscribers:
            return
        result = self._snapshot(entry)
        for sub in list(entry.subscribers):
            if sub.listener is None:
                continue
            try:
                sub.listener(result)
            except Exception:
                logger.exception("Listener for %r failed", entry.key)
