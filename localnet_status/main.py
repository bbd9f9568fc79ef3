"""Entrypoint for watching the local network from the command line.

Starts the status service, subscribes to both queries and logs every change
until interrupted.
"""

from __future__ import annotations

import asyncio
import logging

from . import config
from .logger import setup_logging
from .models.query import QueryResult
from .models.settings import Settings
from .node_client import NodeClient
from .service import NetworkStatusService

logger = logging.getLogger(__name__)


class StatusLog:
    """Log liveness and chain id only when they change."""

    def __init__(self) -> None:
        self.live: bool | None = None
        self.chain_id: object | None = None

    def on_status(self, result: QueryResult) -> None:
        if result.data is None or result.data == self.live:
            return
        self.live = result.data
        if result.data:
            logger.info("Network is live")
        else:
            logger.warning("Network is down")

    def on_chain_id(self, result: QueryResult) -> None:
        if result.error is not None:
            logger.warning("Chain id unavailable: %s", result.error)
            return
        if result.data is None or result.data == self.chain_id:
            return
        self.chain_id = result.data
        logger.info("Chain id: %s", result.data)


def chain_id_recheck_s(settings: Settings) -> float:
    """Seconds between chain id checks; never shorter than one liveness tick."""
    return max(settings.CHAIN_ID_STALE_S, settings.LIVENESS_INTERVAL_S, 0.1)


async def watch(service: NetworkStatusService, stop: asyncio.Event) -> None:
    status_log = StatusLog()
    recheck_s = chain_id_recheck_s(service.settings)
    async with service:
        subs = [
            service.subscribe_testnet_status(status_log.on_status),
            service.subscribe_chain_id(status_log.on_chain_id),
        ]
        try:
            while not stop.is_set():
                # Nothing polls the chain id; ask again once it may be stale.
                service.chain_id()
                try:
                    await asyncio.wait_for(stop.wait(), timeout=recheck_s)
                except asyncio.TimeoutError:
                    continue
        finally:
            for sub in subs:
                service.unsubscribe(sub)


def build_service() -> NetworkStatusService:
    service = NetworkStatusService(config.settings)
    service.set_client(
        NodeClient(service.node_url, timeout_s=config.settings.NODE_TIMEOUT_S)
    )
    return service


def run() -> None:
    setup_logging()
    if config.validate_settings():
        raise SystemExit(2)
    logger.info("Starting localnet_status for %s", config.NETWORK)
    try:
        asyncio.run(watch(build_service(), asyncio.Event()))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")


if __name__ == "__main__":
    run()
