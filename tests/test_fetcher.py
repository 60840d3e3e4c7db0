import asyncio

import pytest

from discovery.fetcher import DebounceTimer, FetchController
from discovery.http import TransportError
from discovery.models import STATUS_ERROR, STATUS_IDLE, STATUS_LOADING, STATUS_SUCCESS, SourceQuery


def _record(business_id, **extra):
    record = {
        "id": business_id,
        "name": f"Business {business_id}",
        "rating": "4.0",
        "location": {"lat": -33.44, "lng": -70.65},
    }
    record.update(extra)
    return record


class ControlledSource:
    """Each call parks on a future the test resolves explicitly."""

    def __init__(self):
        self.calls = []

    async def __call__(self, query=None):
        fut = asyncio.get_running_loop().create_future()
        self.calls.append((query, fut))
        return await fut

    def resolve(self, index, records):
        fut = self.calls[index][1]
        if not fut.done():
            fut.set_result(records)

    def fail(self, index, exc):
        fut = self.calls[index][1]
        if not fut.done():
            fut.set_exception(exc)


class UnabortableSource(ControlledSource):
    """A source that keeps running after cancellation and still returns."""

    async def __call__(self, query=None):
        fut = asyncio.get_running_loop().create_future()
        self.calls.append((query, fut))
        while True:
            try:
                return await asyncio.shield(fut)
            except asyncio.CancelledError:
                continue


class ImmediateSource:
    def __init__(self, records=None, exc=None):
        self.records = records or []
        self.exc = exc
        self.queries = []

    async def __call__(self, query=None):
        self.queries.append(query)
        if self.exc is not None:
            raise self.exc
        return list(self.records)


async def _settle():
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_success_cycle_populates_state():
    source = ImmediateSource([_record("a"), _record("b", location={"lat": 0, "lng": -70.6})])
    controller = FetchController(source, debounce_seconds=0)
    assert controller.state.status == STATUS_IDLE

    controller.trigger(SourceQuery(search="cafe"))
    assert controller.state.loading is True
    state = await controller.wait()

    assert state.status == STATUS_SUCCESS
    assert state.loading is False
    assert state.error is None
    assert [e.id for e in state.data] == ["a"]
    assert state.last_updated is not None
    assert source.queries == [SourceQuery(search="cafe")]


@pytest.mark.asyncio
async def test_empty_result_is_success_not_error():
    controller = FetchController(ImmediateSource([]), debounce_seconds=0)
    controller.trigger()
    state = await controller.wait()
    assert state.status == STATUS_SUCCESS
    assert state.error is None
    assert state.data == ()


@pytest.mark.asyncio
async def test_later_trigger_wins_even_if_earlier_resolves_last():
    source = ControlledSource()
    controller = FetchController(source, debounce_seconds=0)

    controller.trigger(SourceQuery(search="A"))
    await _settle()
    controller.trigger(SourceQuery(search="B"))
    await _settle()

    source.resolve(1, [_record("from-b")])
    source.resolve(0, [_record("from-a")])
    state = await controller.wait()
    await _settle()

    assert [e.id for e in controller.state.data] == ["from-b"]
    assert state.status == STATUS_SUCCESS


@pytest.mark.asyncio
async def test_stale_result_is_discarded_when_source_ignores_cancellation():
    source = UnabortableSource()
    controller = FetchController(source, debounce_seconds=0)
    seen = []
    controller.subscribe(seen.append)

    task_a = controller.trigger(SourceQuery(search="A"))
    await _settle()
    controller.trigger(SourceQuery(search="B"))
    await _settle()

    source.resolve(1, [_record("from-b")])
    await controller.wait()
    writes_after_b = len(seen)

    source.resolve(0, [_record("from-a")])
    await asyncio.wait({task_a})

    assert [e.id for e in controller.state.data] == ["from-b"]
    assert len(seen) == writes_after_b


@pytest.mark.asyncio
async def test_stale_failure_does_not_surface_as_error():
    source = UnabortableSource()
    controller = FetchController(source, debounce_seconds=0)

    task_a = controller.trigger(SourceQuery(search="A"))
    await _settle()
    controller.trigger(SourceQuery(search="B"))
    await _settle()

    source.resolve(1, [_record("from-b")])
    await controller.wait()
    source.fail(0, TransportError("boom", 500))
    await asyncio.wait({task_a})

    assert controller.state.error is None
    assert controller.state.status == STATUS_SUCCESS


@pytest.mark.asyncio
async def test_debounce_collapses_burst_into_one_fetch():
    source = ImmediateSource([_record("a")])
    controller = FetchController(source, debounce_seconds=0.1)

    controller.trigger(SourceQuery(search="c"))
    assert controller.state.loading is True
    assert controller.state.status == STATUS_LOADING
    await asyncio.sleep(0.02)
    controller.trigger(SourceQuery(search="ca"))
    await asyncio.sleep(0.02)
    controller.trigger(SourceQuery(search="caf"))
    assert source.queries == []

    state = await controller.wait()

    assert source.queries == [SourceQuery(search="caf")]
    assert state.status == STATUS_SUCCESS


@pytest.mark.asyncio
async def test_debounce_is_timed_from_last_trigger():
    source = ImmediateSource([])
    controller = FetchController(source, debounce_seconds=0.15)

    for _ in range(5):
        controller.trigger()
        await asyncio.sleep(0.05)

    # 0.25s have passed since the first trigger, but only 0.05s since the last.
    assert source.queries == []
    await controller.wait()
    assert len(source.queries) == 1


@pytest.mark.asyncio
async def test_trigger_during_debounce_cancels_in_flight_cycle():
    source = ControlledSource()
    controller = FetchController(source, debounce_seconds=0.05)

    controller.trigger(SourceQuery(search="first"))
    await asyncio.sleep(0.12)
    assert len(source.calls) == 1

    controller.trigger(SourceQuery(search="second"))
    await asyncio.sleep(0.12)
    assert len(source.calls) == 2

    source.resolve(0, [_record("first")])
    source.resolve(1, [_record("second")])
    state = await controller.wait()
    assert [e.id for e in state.data] == ["second"]


@pytest.mark.asyncio
async def test_transport_error_populates_error_and_clears_data():
    source = ControlledSource()
    controller = FetchController(source, debounce_seconds=0)

    controller.trigger()
    await _settle()
    source.resolve(0, [_record("a")])
    first = await controller.wait()
    assert first.data

    controller.refetch()
    await _settle()
    source.fail(1, TransportError("HTTP 503", 503))
    state = await controller.wait()

    assert state.status == STATUS_ERROR
    assert state.loading is False
    assert state.error == TransportError("x", 503).user_message
    assert state.data == ()
    assert state.last_updated == first.last_updated


@pytest.mark.asyncio
async def test_unexpected_exception_message_is_reported():
    controller = FetchController(ImmediateSource(exc=ValueError("bad payload")), debounce_seconds=0)
    controller.trigger()
    state = await controller.wait()
    assert state.error == "bad payload"


@pytest.mark.asyncio
async def test_cancel_is_absorbed_not_reported():
    source = ControlledSource()
    controller = FetchController(source, debounce_seconds=0)
    seen = []
    controller.subscribe(seen.append)

    controller.trigger()
    await _settle()
    controller.cancel()
    await _settle()
    source.resolve(0, [_record("late")])
    await _settle()

    assert controller.state.loading is False
    assert controller.state.error is None
    assert controller.state.data == ()
    assert controller.state.status == STATUS_IDLE
    assert [s.loading for s in seen] == [True, False]


@pytest.mark.asyncio
async def test_concurrent_refetch_runs_a_single_cycle():
    source = ImmediateSource([_record("a")])
    controller = FetchController(source, debounce_seconds=0.5)

    controller.trigger(SourceQuery(search="museo"))
    controller.refetch()
    controller.refetch()
    state = await controller.wait()

    assert source.queries == [SourceQuery(search="museo")]
    assert state.status == STATUS_SUCCESS


@pytest.mark.asyncio
async def test_auto_refresh_refetches_periodically():
    source = ImmediateSource([_record("a")])
    controller = FetchController(source, debounce_seconds=0)
    controller.start_auto_refresh(0.02)
    await asyncio.sleep(0.09)
    controller.close()
    calls = len(source.queries)
    await asyncio.sleep(0.05)

    assert calls >= 2
    assert len(source.queries) == calls


@pytest.mark.asyncio
async def test_debounce_timer_reset_and_cancel():
    fired = []
    timer = DebounceTimer(0.1, lambda: fired.append(True))

    timer.reset()
    assert timer.pending
    await asyncio.sleep(0.05)
    timer.reset()
    await asyncio.sleep(0.07)
    assert fired == []
    await asyncio.sleep(0.1)
    assert fired == [True]
    assert not timer.pending

    timer.reset()
    timer.cancel()
    await asyncio.sleep(0.15)
    assert fired == [True]


@pytest.mark.asyncio
async def test_malformed_features_do_not_break_the_cycle():
    source = ImmediateSource([_record("a", features=True), _record("b", features=5)])
    controller = FetchController(source, debounce_seconds=0)

    controller.trigger()
    state = await controller.wait()

    assert state.status == STATUS_SUCCESS
    assert [e.features for e in state.data] == [(), ()]


@pytest.mark.asyncio
async def test_adapter_failure_settles_as_error(monkeypatch):
    def broken_adapter(raws, origin=None):
        raise TypeError("unexpected record shape")

    monkeypatch.setattr("discovery.fetcher.to_display_entities", broken_adapter)
    controller = FetchController(ImmediateSource([_record("a")]), debounce_seconds=0)

    task = controller.trigger()
    state = await controller.wait()

    assert state.loading is False
    assert state.status == STATUS_ERROR
    assert state.error == "unexpected record shape"
    assert state.data == ()
    assert task.exception() is None
