"""Application-level network status: the cache, the probe and the client."""

from __future__ import annotations

import logging

from . import config, queries
from .models.query import Listener, QueryResult, Subscription
from .models.settings import Settings
from .probe import LivenessProbe
from .query_cache import QueryCache
from .queries import ChainIdClient

logger = logging.getLogger(__name__)


class NetworkStatusService:
    """Owns one :class:`QueryCache` and exposes the two status queries.

    Construct it once at startup, ``await start()`` (or use ``async with``) and
    hand it to whatever needs the status.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cache: QueryCache | None = None,
        probe: LivenessProbe | None = None,
        client: ChainIdClient | None = None,
    ):
        self.settings = settings or config.settings
        node_url, faucet_url = config.endpoint_urls(self.settings)
        self.node_url = node_url
        self.faucet_url = faucet_url
        self.cache = cache or QueryCache()
        self.probe = probe or LivenessProbe(
            node_url, faucet_url, timeout=self.settings.PROBE_TIMEOUT_S
        )
        self._client = client
        self._registered = False

    async def __aenter__(self) -> "NetworkStatusService":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def client(self) -> ChainIdClient | None:
        return self._client

    def _register(self) -> None:
        if self._registered:
            return
        queries.register_testnet_status(
            self.cache, self.probe, interval_s=self.settings.LIVENESS_INTERVAL_S
        )
        queries.register_chain_id(
            self.cache,
            lambda: self._client,
            stale_time_s=self.settings.CHAIN_ID_STALE_S,
        )
        self._registered = True

    async def start(self) -> None:
        self._register()
        await self.cache.start()
        logger.info(
            "Network status started (node=%s faucet=%s)", self.node_url, self.faucet_url
        )

    async def close(self) -> None:
        await self.cache.close()
        logger.info("Network status stopped")

    def set_client(self, client: ChainIdClient | None) -> None:
        """Swap the node client; the chain id query is enabled only with one."""
        self._register()
        self._client = client
        queries.sync_chain_id_enabled(self.cache, client)

    def testnet_status(self) -> QueryResult:
        self._register()
        return self.cache.get(queries.TESTNET_STATUS_KEY)

    def chain_id(self) -> QueryResult:
        self._register()
        return self.cache.get(queries.CHAIN_ID_KEY)

    async def fetch_chain_id(self) -> QueryResult:
        self._register()
        return await self.cache.fetch(queries.CHAIN_ID_KEY)

    def subscribe_testnet_status(self, listener: Listener | None = None) -> Subscription:
        self._register()
        return self.cache.subscribe(queries.TESTNET_STATUS_KEY, listener)

    def subscribe_chain_id(self, listener: Listener | None = None) -> Subscription:
        self._register()
        return self.cache.subscribe(queries.CHAIN_ID_KEY, listener)

    def unsubscribe(self, sub: Subscription) -> None:
        self.cache.unsubscribe(sub)
