"""Logical network names and their node/faucet URLs."""

from __future__ import annotations

from enum import Enum


class NetworkName(str, Enum):
    LOCALHOST = "Localhost"
    DEVNET = "Devnet"
    TESTNET = "Testnet"


NODE_URLS: dict[NetworkName, str] = {
    NetworkName.LOCALHOST: "http://0.0.0.0:8080",
    NetworkName.DEVNET: "https://fullnode.devnet.aptoslabs.com",
    NetworkName.TESTNET: "https://fullnode.testnet.aptoslabs.com",
}

FAUCET_URLS: dict[NetworkName, str] = {
    NetworkName.LOCALHOST: "http://0.0.0.0:8081",
    NetworkName.DEVNET: "https://faucet.devnet.aptoslabs.com",
    NetworkName.TESTNET: "https://faucet.testnet.aptoslabs.com",
}


def parse_network(name: str | NetworkName) -> NetworkName:
    """Resolve a network name case-insensitively.

    Raises:
        ValueError: if the name is not a known network.
    """
    if isinstance(name, NetworkName):
        return name
    wanted = (name or "").strip().lower()
    for network in NetworkName:
        if network.value.lower() == wanted:
            return network
    known = ", ".join(n.value for n in NetworkName)
    raise ValueError(f"Unknown network {name!r} (expected one of: {known})")


def node_url(
    name: str | NetworkName, overrides: dict[NetworkName, str] | None = None
) -> str:
    network = parse_network(name)
    if overrides and overrides.get(network):
        return overrides[network]
    return NODE_URLS[network]


def faucet_url(
    name: str | NetworkName, overrides: dict[NetworkName, str] | None = None
) -> str:
    network = parse_network(name)
    if overrides and overrides.get(network):
        return overrides[network]
    return FAUCET_URLS[network]
