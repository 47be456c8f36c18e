import asyncio

import pytest

from loadflags.runtime.errors import StreamClosedError
from loadflags.runtime.stream import BusyStream


def test_observe_creates_entry_with_false(registry, owner):
    stream = registry.observe(owner, "load")
    assert stream.value is False
    assert len(registry) == 1
    assert registry.observe(owner, "load") is stream

def test_late_subscriber_gets_latest_then_future(registry, owner):
    stream = registry.observe(owner, "load")
    registry.set_loading(owner, "load", True)
    registry.set_loading(owner, "load", False)
    registry.set_loading(owner, "load", True)

    seen = []
    stream.subscribe(seen.append)
    assert seen == [True]

    registry.set_loading(owner, "load", False)
    registry.set_loading(owner, "load", False)
    registry.set_loading(owner, "load", True)
    # no de-duplication, issuance order kept
    assert seen == [True, False, False, True]

def test_stream_matches_flag_after_each_mutation(registry, owner):
    stream = registry.observe(owner)
    for v in (True, False, True):
        registry.set_loading(owner, None, v)
        assert stream.value == registry.is_loading(owner) == v

def test_entry_created_by_set_has_stream_with_that_value(registry, owner):
    registry.start_loading(owner, "save")
    seen = []
    registry.observe(owner, "save").subscribe(seen.append)
    assert seen == [True]

def test_unsubscribe_stops_delivery():
    stream = BusyStream()
    seen = []
    sub = stream.subscribe(seen.append)
    stream.push(True)
    sub.unsubscribe()
    stream.push(False)
    assert seen == [False, True]
    assert sub.active is False
    assert stream.subscriber_count == 0

def test_failing_subscriber_does_not_block_others(caplog):
    stream = BusyStream()

    def boom(value):
        raise RuntimeError("subscriber bug")

    seen = []
    stream.subscribe(boom)
    stream.subscribe(seen.append)
    stream.push(True)
    assert seen == [False, True]
    assert "subscriber failed" in caplog.text

def test_completed_stream_rejects_push_and_only_completes_new_subscribers():
    stream = BusyStream(True)
    done = []
    stream.subscribe(lambda v: None, lambda: done.append("first"))
    stream.complete()
    assert done == ["first"]
    with pytest.raises(StreamClosedError):
        stream.push(False)

    seen = []
    sub = stream.subscribe(seen.append, lambda: done.append("late"))
    assert seen == []
    assert done == ["first", "late"]
    assert sub.active is False

@pytest.mark.asyncio
async def test_async_iteration_ends_on_clear(registry, owner):
    stream = registry.observe(owner, "load")
    seen = []

    async def consume():
        async for value in stream:
            seen.append(value)

    task = asyncio.create_task(consume())
    await asyncio.sleep(0)
    registry.start_loading(owner, "load")
    registry.end_loading(owner, "load")
    await asyncio.sleep(0)
    registry.clear_all()
    await asyncio.wait_for(task, timeout=1)
    assert seen == [False, True, False]

@pytest.mark.asyncio
async def test_wait_for(registry, owner):
    stream = registry.observe(owner, "load")
    waiter = asyncio.create_task(stream.wait_for(True))
    await asyncio.sleep(0)
    assert not waiter.done()
    registry.start_loading(owner, "load")
    await asyncio.wait_for(waiter, timeout=1)
    assert stream.subscriber_count == 0

    # already satisfied
    await asyncio.wait_for(stream.wait_for(True), timeout=1)

@pytest.mark.asyncio
async def test_wait_for_raises_when_stream_completes(registry, owner):
    stream = registry.observe(owner, "load")
    waiter = asyncio.create_task(stream.wait_for(True))
    await asyncio.sleep(0)
    registry.release(owner)
    with pytest.raises(StreamClosedError):
        await asyncio.wait_for(waiter, timeout=1)

def test_push_from_subscriber_keeps_issuance_order():
    stream = BusyStream()
    first, second = [], []

    def reset_on_true(value):
        first.append(value)
        if value:
            stream.push(False)

    stream.subscribe(reset_on_true)
    stream.subscribe(second.append)
    stream.push(True)
    assert first == [False, True, False]
    assert second == [False, True, False]
    assert stream.value is False

def test_set_loading_from_subscriber_reaches_every_subscriber(registry, owner):
    stream = registry.observe(owner, "load")
    late = []
    stream.subscribe(lambda v: v and registry.end_loading(owner, "load"))
    stream.subscribe(late.append)
    registry.start_loading(owner, "load")
    assert late == [False, True, False]
    assert registry.is_loading(owner, "load") is False

def test_failing_completion_callback_on_completed_stream_is_logged(caplog):
    stream = BusyStream()
    stream.complete()

    def boom():
        raise RuntimeError("completion bug")

    sub = stream.subscribe(lambda v: None, boom)
    assert sub.active is False
    assert "completion callback failed" in caplog.text
