"""Configuration dataclass."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Settings:
    """Configuration settings for localnet_status."""

    NETWORK: str
    LOCALHOST_NODE_URL: str
    LOCALHOST_FAUCET_URL: str
    PROBE_TIMEOUT_S: float
    LIVENESS_INTERVAL_S: float
    CHAIN_ID_STALE_S: float
    NODE_TIMEOUT_S: float
