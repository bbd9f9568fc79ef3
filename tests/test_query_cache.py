import asyncio

import pytest

from localnet_status.models.query import (
    STATUS_ERROR,
    STATUS_IDLE,
    STATUS_LOADING,
    STATUS_SUCCESS,
    QueryOptions,
)
from localnet_status.query_cache import QueryCache

from conftest import CountingFetch, settle


@pytest.mark.asyncio
async def test_concurrent_fetches_share_one_call(clock) -> None:
    gate = asyncio.Event()
    fetch = CountingFetch("value", gate=gate)
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("k", fetch)

    first = asyncio.create_task(cache.fetch("k"))
    second = asyncio.create_task(cache.fetch("k"))
    await settle()
    gate.set()
    results = await asyncio.gather(first, second)

    assert fetch.calls == 1
    assert [r.data for r in results] == ["value", "value"]
    await cache.close()


@pytest.mark.asyncio
async def test_get_reports_loading_then_value(clock) -> None:
    gate = asyncio.Event()
    fetch = CountingFetch(42, gate=gate)
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("k", fetch, QueryOptions(stale_time_s=60.0))

    pending = cache.get("k")
    assert pending.is_loading is True
    assert pending.status == STATUS_LOADING
    assert pending.data is None

    # A second get while the first is running does not start another fetch.
    cache.get("k")
    gate.set()
    await settle()

    done = cache.get("k")
    assert fetch.calls == 1
    assert done.data == 42
    assert done.is_loading is False
    assert done.status == STATUS_SUCCESS
    await cache.close()


@pytest.mark.asyncio
async def test_stale_time_reuses_value(clock) -> None:
    fetch = CountingFetch("a", "b")
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("k", fetch, QueryOptions(stale_time_s=60.0))

    assert (await cache.fetch("k")).data == "a"
    clock.advance(59.0)
    assert (await cache.fetch("k")).data == "a"
    assert fetch.calls == 1

    clock.advance(1.0)
    assert (await cache.fetch("k")).data == "b"
    assert fetch.calls == 2
    await cache.close()


@pytest.mark.asyncio
async def test_refetch_ignores_staleness(clock) -> None:
    fetch = CountingFetch(1, 2)
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("k", fetch, QueryOptions(stale_time_s=60.0))

    await cache.fetch("k")
    result = await cache.refetch("k")
    assert result.data == 2
    assert fetch.calls == 2
    await cache.close()


@pytest.mark.asyncio
async def test_disabled_never_fetches_until_enabled(clock) -> None:
    fetch = CountingFetch("v")
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("k", fetch, QueryOptions(enabled=False))

    result = cache.get("k")
    await cache.fetch("k")
    await cache.refetch("k")
    cache.subscribe("k")
    await settle()

    assert fetch.calls == 0
    assert result.status == STATUS_IDLE
    assert result.is_loading is False

    cache.set_enabled("k", True)
    await settle()
    assert fetch.calls == 1
    assert cache.get("k").data == "v"
    await cache.close()


@pytest.mark.asyncio
async def test_failure_keeps_previous_value(clock) -> None:
    fetch = CountingFetch("good", RuntimeError("node down"))
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("k", fetch)

    assert (await cache.fetch("k")).data == "good"
    result = await cache.fetch("k")

    assert fetch.calls == 2
    assert result.data == "good"
    assert result.status == STATUS_ERROR
    assert isinstance(result.error, RuntimeError)
    assert cache._entries["k"].error_count == 1
    await cache.close()


@pytest.mark.asyncio
async def test_failure_without_value_is_not_raised(clock) -> None:
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("k", CountingFetch(RuntimeError("boom")))

    result = await cache.fetch("k")
    assert result.data is None
    assert result.status == STATUS_ERROR
    assert result.is_loading is False
    await cache.close()


@pytest.mark.asyncio
async def test_success_after_failure_clears_error(clock) -> None:
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("k", CountingFetch(RuntimeError("boom"), "ok"))

    await cache.fetch("k")
    result = await cache.fetch("k")
    assert result.data == "ok"
    assert result.error is None
    assert cache._entries["k"].error_count == 0
    await cache.close()


@pytest.mark.asyncio
async def test_keys_are_isolated(clock) -> None:
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("bad", CountingFetch(RuntimeError("boom")))
    cache.register("good", CountingFetch("fine"))

    await cache.fetch("bad")
    result = await cache.fetch("good")
    assert result.data == "fine"
    assert result.error is None
    await cache.close()


@pytest.mark.asyncio
async def test_interval_polls_while_subscribed(clock) -> None:
    fetch = CountingFetch(True)
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("live", fetch, QueryOptions(refetch_interval_s=1.0))

    sub = cache.subscribe("live")
    while clock.now < 5.0:
        await asyncio.sleep(0)
    cache.unsubscribe(sub)

    assert 4 <= fetch.calls <= 6
    await cache.close()


@pytest.mark.asyncio
async def test_last_unsubscribe_stops_timer(clock) -> None:
    fetch = CountingFetch(True)
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("live", fetch, QueryOptions(refetch_interval_s=1.0))

    first = cache.subscribe("live")
    second = cache.subscribe("live")
    await settle()
    entry = cache._entries["live"]

    cache.unsubscribe(first)
    assert entry.timer is not None

    cache.unsubscribe(second)
    assert entry.timer is None
    await settle()
    calls = fetch.calls
    await settle(20)
    assert fetch.calls == calls
    await cache.close()


@pytest.mark.asyncio
async def test_disabling_stops_polling(clock) -> None:
    fetch = CountingFetch(True)
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("live", fetch, QueryOptions(refetch_interval_s=1.0))
    cache.subscribe("live")
    await settle()

    cache.set_enabled("live", False)
    await settle()
    calls = fetch.calls
    await settle(20)
    assert fetch.calls == calls
    assert cache._entries["live"].timer is None

    cache.set_enabled("live", True)
    await settle()
    assert fetch.calls > calls
    await cache.close()


@pytest.mark.asyncio
async def test_listener_receives_results(clock) -> None:
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("k", CountingFetch("x"))
    seen = []

    def broken(_result) -> None:
        raise RuntimeError("listener bug")

    cache.subscribe("k", broken)
    cache.subscribe("k", seen.append)
    await settle()

    assert [r.data for r in seen] == ["x"]
    assert cache.get("k").data == "x"
    await cache.close()


@pytest.mark.asyncio
async def test_in_flight_fetch_survives_disable(clock) -> None:
    gate = asyncio.Event()
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("k", CountingFetch("late", gate=gate))

    cache.get("k")
    await settle()
    cache.set_enabled("k", False)
    gate.set()
    await settle()

    assert cache.get("k").data == "late"
    await cache.close()


@pytest.mark.asyncio
async def test_close_cancels_timers(clock) -> None:
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("live", CountingFetch(True), QueryOptions(refetch_interval_s=1.0))
    cache.subscribe("live")
    await settle()

    await cache.close()
    entry = cache._entries["live"]
    assert cache.closed is True
    assert entry.timer is None
    assert entry.in_flight is None


@pytest.mark.asyncio
async def test_context_manager_restarts_subscribed_timers(clock) -> None:
    fetch = CountingFetch(True)
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("live", fetch, QueryOptions(refetch_interval_s=1.0))
    cache.subscribe("live")
    await settle()
    await cache.close()

    async with cache:
        await settle()
        assert cache._entries["live"].timer is not None
    assert cache._entries["live"].timer is None


@pytest.mark.asyncio
async def test_reregister_replaces_fetch_function(clock) -> None:
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("k", CountingFetch("old"))
    await cache.fetch("k")

    replacement = CountingFetch("new")
    cache.register("k", replacement)
    result = await cache.refetch("k")
    assert result.data == "new"
    assert replacement.calls == 1
    await cache.close()


def test_unknown_key_raises() -> None:
    cache = QueryCache()
    with pytest.raises(KeyError, match="Unknown query key"):
        cache.get("missing")


@pytest.mark.asyncio
async def test_close_releases_waiting_fetch(clock) -> None:
    gate = asyncio.Event()
    fetch = CountingFetch("value", gate=gate)
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("k", fetch)

    waiter = asyncio.create_task(cache.fetch("k"))
    await settle()
    await cache.close()

    result = await waiter
    assert result.data is None
    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_cancelling_waiter_still_cancels_it(clock) -> None:
    gate = asyncio.Event()
    cache = QueryCache(clock=clock, sleep=clock.sleep)
    cache.register("k", CountingFetch("value", gate=gate))

    waiter = asyncio.create_task(cache.fetch("k"))
    await settle()
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    # The shared fetch keeps running for other callers.
    gate.set()
    assert (await cache.fetch("k")).data == "value"
    await cache.close()
