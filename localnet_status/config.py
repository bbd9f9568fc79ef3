"""Central configuration for localnet_status."""

from __future__ import annotations

import logging
import os

from .models.settings import Settings
from .networks import NetworkName, faucet_url, node_url, parse_network

logger = logging.getLogger(__name__)


def _read_float(name: str, default: float) -> float:
    """Read a float environment variable, falling back to ``default``.

    Args:
        name: Environment variable name
        default: Value used when the variable is unset, empty or invalid

    Example:
        >>> os.environ["PROBE_TIMEOUT_S"] = "abc"
        >>> _read_float("PROBE_TIMEOUT_S", 5.0)
        5.0
    """
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except Exception:
        return default


def _read_settings() -> Settings:
    """Read all configuration from environment variables.

    Returns:
        Settings object with all configuration values.

    Note:
        Invalid numeric values fall back to sensible defaults.
    """
    network = (os.environ.get("NETWORK") or NetworkName.LOCALHOST.value).strip()

    # Localhost endpoints (the only ones that usually differ per machine)
    node_url = (os.environ.get("LOCALHOST_NODE_URL") or "").strip()
    faucet_url = (os.environ.get("LOCALHOST_FAUCET_URL") or "").strip()

    return Settings(
        NETWORK=network,
        LOCALHOST_NODE_URL=node_url.rstrip("/") or "http://0.0.0.0:8080",
        LOCALHOST_FAUCET_URL=faucet_url.rstrip("/") or "http://0.0.0.0:8081",
        PROBE_TIMEOUT_S=_read_float("PROBE_TIMEOUT_S", 5.0),
        LIVENESS_INTERVAL_S=_read_float("LIVENESS_INTERVAL_S", 1.0),
        CHAIN_ID_STALE_S=_read_float("CHAIN_ID_STALE_S", 60.0),
        NODE_TIMEOUT_S=_read_float("NODE_TIMEOUT_S", 10.0),
    )


settings = _read_settings()


def validate_settings(current: Settings | None = None) -> list[str]:
    """Validate configuration and log warnings for issues.

    Returns the list of problems found so callers can decide whether to abort.
    """
    current = current or settings
    problems: list[str] = []
    try:
        parse_network(current.NETWORK)
    except ValueError as exc:
        problems.append(str(exc))
    if current.LIVENESS_INTERVAL_S <= 0:
        problems.append("LIVENESS_INTERVAL_S must be positive")
    if current.PROBE_TIMEOUT_S <= 0:
        problems.append("PROBE_TIMEOUT_S must be positive")
    if current.CHAIN_ID_STALE_S < 0:
        problems.append("CHAIN_ID_STALE_S must not be negative")
    for problem in problems:
        logger.warning("Invalid configuration: %s", problem)
    return problems


def endpoint_urls(current: Settings | None = None) -> tuple[str, str]:
    """Return the (node, faucet) URLs for the configured network."""
    current = current or settings
    network = parse_network(current.NETWORK)
    node = node_url(network, {NetworkName.LOCALHOST: current.LOCALHOST_NODE_URL})
    faucet = faucet_url(
        network, {NetworkName.LOCALHOST: current.LOCALHOST_FAUCET_URL}
    )
    return node, faucet


# Exported constants
NETWORK: str = settings.NETWORK
PROBE_TIMEOUT_S: float = settings.PROBE_TIMEOUT_S
LIVENESS_INTERVAL_S: float = settings.LIVENESS_INTERVAL_S
CHAIN_ID_STALE_S: float = settings.CHAIN_ID_STALE_S
NODE_TIMEOUT_S: float = settings.NODE_TIMEOUT_S
