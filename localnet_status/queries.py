"""Network status queries registered on a :class:`QueryCache`."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol

from .models.query import QueryEntry, QueryOptions
from .query_cache import QueryCache

TESTNET_STATUS_KEY = "getTestnetStatus"
CHAIN_ID_KEY = ("getChainId",)

LIVENESS_INTERVAL_S = 1.0
CHAIN_ID_STALE_S = 60.0


class ChainIdClient(Protocol):
    async def get_chain_id(self) -> Any: ...


def register_testnet_status(
    cache: QueryCache,
    probe: Callable[[], Awaitable[bool]],
    interval_s: float = LIVENESS_INTERVAL_S,
) -> QueryEntry:
    """Poll ``probe`` every ``interval_s`` while the status is observed."""
    return cache.register(
        TESTNET_STATUS_KEY,
        probe,
        QueryOptions(refetch_interval_s=interval_s),
    )


def register_chain_id(
    cache: QueryCache,
    get_client: Callable[[], ChainIdClient | None],
    stale_time_s: float = CHAIN_ID_STALE_S,
) -> QueryEntry:
    """Resolve the chain id from whatever client ``get_client`` returns.

    The query stays disabled while there is no client; callers flip it with
    :func:`sync_chain_id_enabled` when the client changes.
    """

    async def fetch_chain_id() -> Any:
        client = get_client()
        if client is None:
            raise RuntimeError("No node client available")
        return await client.get_chain_id()

    return cache.register(
        CHAIN_ID_KEY,
        fetch_chain_id,
        QueryOptions(stale_time_s=stale_time_s, enabled=get_client() is not None),
    )


def sync_chain_id_enabled(cache: QueryCache, client: ChainIdClient | None) -> None:
    cache.set_enabled(CHAIN_ID_KEY, client is not None)
