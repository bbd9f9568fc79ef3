"""Liveness probe for a node/faucet pair.

Both endpoints are requested concurrently and the probe waits for both to
settle. The transport layer returns a typed :class:`ProbeError` per endpoint,
and :func:`classify` folds the two outcomes into a single boolean.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

import httpx

logger = logging.getLogger(__name__)


class ProbeErrorKind(str, Enum):
    NODE = "node"
    FAUCET = "faucet"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ProbeError:
    kind: ProbeErrorKind
    url: str | None
    detail: str
    status_code: int | None = None


async def _get(
    client: httpx.AsyncClient, url: str, kind: ProbeErrorKind
) -> ProbeError | None:
    """GET ``url`` and return a tagged error, or None on HTTP 200."""
    try:
        response = await client.get(url)
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
        # A malformed URL is still this endpoint's failure.
        return ProbeError(kind=kind, url=url, detail=str(exc) or type(exc).__name__)
    if response.status_code != 200:
        return ProbeError(
            kind=kind,
            url=url,
            detail=f"HTTP {response.status_code}",
            status_code=response.status_code,
        )
    return None


def classify(errors: list[ProbeError]) -> bool:
    """Fold probe errors into a liveness verdict.

    Faucet failures can't be told apart from the cross-origin rejections some
    clients get from the faucet, so a faucet-only failure still counts as live.
    Anything attributed to the node, or to nothing at all, counts as down.
    """
    if not errors:
        return True
    return all(err.kind is ProbeErrorKind.FAUCET for err in errors)


class LivenessProbe:
    """Answer "is the node and faucet pair usable right now?"."""

    def __init__(
        self,
        node_url: str,
        faucet_url: str,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.node_url = node_url
        self.faucet_url = faucet_url
        self.timeout = timeout
        self._client = client

    async def errors(self) -> list[ProbeError]:
        """Run both requests and return every failure observed."""
        if self._client is not None:
            return await self._gather(self._client)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._gather(client)

    async def _gather(self, client: httpx.AsyncClient) -> list[ProbeError]:
        outcomes = await asyncio.gather(
            _get(client, self.node_url, ProbeErrorKind.NODE),
            _get(client, self.faucet_url, ProbeErrorKind.FAUCET),
            return_exceptions=True,
        )
        errors: list[ProbeError] = []
        for outcome in outcomes:
            if outcome is None:
                continue
            if isinstance(outcome, ProbeError):
                errors.append(outcome)
            elif isinstance(outcome, asyncio.CancelledError):
                raise outcome
            else:
                errors.append(
                    ProbeError(
                        kind=ProbeErrorKind.UNKNOWN,
                        url=None,
                        detail=f"{type(outcome).__name__}: {outcome}",
                    )
                )
        return errors

    async def check(self) -> bool:
        """Return True if the pair is live. Never raises."""
        try:
            errors = await self.errors()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.debug("Liveness probe failed before classification: %s", exc)
            return False

        for err in errors:
            logger.debug(
                "Liveness probe %s error (%s): %s", err.kind.value, err.url, err.detail
            )
        return classify(errors)

    async def __call__(self) -> bool:
        return await self.check()
