"""Query cache dataclasses."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

QueryKey = Union[str, tuple[str, ...]]
FetchFn = Callable[[], Awaitable[Any]]
Listener = Callable[["QueryResult"], None]

STATUS_IDLE = "idle"
STATUS_LOADING = "loading"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class QueryOptions:
    """Fetch policy for one key.

    ``refetch_interval_s`` re-runs the fetch on a timer while the key has
    subscribers. ``stale_time_s`` is how long a value is served without
    refetching. A disabled query is never fetched.
    """

    refetch_interval_s: float | None = None
    stale_time_s: float = 0.0
    enabled: bool = True


@dataclass(frozen=True)
class QueryResult:
    data: Any = None
    is_loading: bool = False
    is_fetching: bool = False
    status: str = STATUS_IDLE
    error: BaseException | None = None
    updated_at: float | None = None


@dataclass(eq=False)
class Subscription:
    key: QueryKey
    listener: Listener | None = None
    active: bool = True


@dataclass
class QueryEntry:
    key: QueryKey
    fetch_fn: FetchFn
    options: QueryOptions
    value: Any = None
    fetched_at: float | None = None
    in_flight: asyncio.Task | None = None
    error: BaseException | None = None
    error_count: int = 0
    subscribers: list[Subscription] = field(default_factory=list)
    timer: asyncio.Task | None = None

    @property
    def has_value(self) -> bool:
        return self.fetched_at is not None
