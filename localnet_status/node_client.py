"""Minimal REST client for a blockchain full node.

Only what the status queries need: the ledger information served at the node
root, which carries the chain id used when encoding transactions locally.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import requests

logger = logging.getLogger(__name__)

USER_AGENT = "localnet-status/0.1"


class NodeClientError(RuntimeError):
    """Raised when the node answers with an error or an unusable payload."""


class NodeClient:
    def __init__(self, base_url: str, timeout_s: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    def __repr__(self) -> str:
        return f"NodeClient({self.base_url!r})"

    def get_ledger_information(self) -> dict[str, Any]:
        """Fetch the ledger information from the node root.

        Returns:
            Decoded JSON payload (``chain_id``, ``epoch``, ``ledger_version``...).

        Raises:
            NodeClientError: on transport errors, non-success status codes or a
                payload without a ``chain_id``.
        """
        url = f"{self.base_url}/"
        try:
            resp = requests.get(
                url,
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise NodeClientError(f"Node request failed: {exc}") from exc

        if not resp.ok:
            raise NodeClientError(
                f"Node request failed: HTTP {resp.status_code} {resp.text[:200]}"
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise NodeClientError("Node returned invalid JSON") from exc
        if not isinstance(data, dict) or "chain_id" not in data:
            raise NodeClientError("Node response has no chain_id")
        return data

    async def get_chain_id(self) -> int:
        data = await asyncio.to_thread(self.get_ledger_information)
        try:
            chain_id = int(data["chain_id"])
        except (TypeError, ValueError) as exc:
            raise NodeClientError(f"Invalid chain_id: {data['chain_id']!r}") from exc
        logger.debug("Node %s reports chain id %s", self.base_url, chain_id)
        return chain_id
