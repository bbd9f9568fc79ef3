"""Shared test fixtures and dummy classes."""

from __future__ import annotations

import asyncio

import pytest


class DummyResponse:
    """Dummy HTTP response for testing."""

    def __init__(self, data: object, status: int = 200, text: str = "") -> None:
        self._data = data
        self.status_code = status
        self.text = text or str(data)
        self.ok = 200 <= status < 300

    def json(self) -> object:
        if isinstance(self._data, Exception):
            raise self._data
        return self._data


class FakeClock:
    """Monotonic clock that only moves when told to (or when slept on)."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class CountingFetch:
    """Async fetch function that records calls and returns queued values."""

    def __init__(self, *values: object, gate: asyncio.Event | None = None) -> None:
        self.values = list(values) or [None]
        self.calls = 0
        self.gate = gate

    async def __call__(self) -> object:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        value = self.values[min(self.calls, len(self.values)) - 1]
        if isinstance(value, Exception):
            raise value
        return value


class DummyChainClient:
    """Stand-in node client exposing get_chain_id()."""

    def __init__(self, chain_id: int = 4) -> None:
        self.chain_id = chain_id
        self.calls = 0

    async def get_chain_id(self) -> int:
        self.calls += 1
        return self.chain_id


async def settle(rounds: int = 5) -> None:
    """Let pending tasks run for a few loop iterations."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
