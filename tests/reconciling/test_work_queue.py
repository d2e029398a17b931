import asyncio

import pytest

from kruntime._cogs.structs.references import ObjectRef
from kruntime._core.reactor.queueing import KeyState, QueueClosed, WorkQueue

REF1 = ObjectRef(kind='Kind', name='obj1', namespace='ns')
REF2 = ObjectRef(kind='Kind', name='obj2', namespace='ns')


@pytest.fixture()
def queue():
    return WorkQueue()


def test_new_queue_is_empty(queue):
    assert len(queue) == 0
    assert REF1 not in queue
    assert queue.get_state(REF1) is None
    assert queue.get_deadline(REF1) is None
    assert not queue.closed


async def test_triggered_objects_are_queued(queue):
    queue.trigger(REF1)
    assert len(queue) == 1
    assert REF1 in queue
    assert queue.get_state(REF1) == KeyState.QUEUED


async def test_repeated_triggers_are_merged(queue):
    queue.trigger(REF1)
    queue.trigger(REF1)
    queue.trigger(REF1)
    assert len(queue) == 1
    ref = await queue.get()
    assert ref == REF1
    assert len(queue) == 0


async def test_objects_are_served_in_the_trigger_order(queue):
    queue.trigger(REF2)
    queue.trigger(REF1)
    queue.trigger(REF2)
    assert await queue.get() == REF2
    assert await queue.get() == REF1


async def test_taken_objects_are_dispatched(queue):
    queue.trigger(REF1)
    await queue.get()
    assert queue.get_state(REF1) == KeyState.DISPATCHED
    assert REF1 in queue
    assert len(queue) == 0


async def test_triggers_of_dispatched_objects_are_merged(queue):
    queue.trigger(REF1)
    await queue.get()
    queue.trigger(REF1)
    queue.trigger(REF1)
    assert queue.get_state(REF1) == KeyState.DISPATCHED
    assert len(queue) == 0

    queue.start(REF1)
    queue.done(REF1)
    assert REF1 not in queue
    assert len(queue) == 0


async def test_started_objects_are_running(queue):
    queue.trigger(REF1)
    await queue.get()
    queue.start(REF1)
    assert queue.get_state(REF1) == KeyState.RUNNING
    queue.done(REF1)
    assert queue.get_state(REF1) is None
    assert REF1 not in queue


async def test_triggers_of_running_objects_are_postponed(queue):
    queue.trigger(REF1)
    await queue.get()
    queue.start(REF1)
    queue.trigger(REF1)
    queue.trigger(REF1)
    assert queue.get_state(REF1) == KeyState.RETRIGGERED
    assert len(queue) == 0

    queue.done(REF1)
    assert queue.get_state(REF1) == KeyState.QUEUED
    assert len(queue) == 1
    assert await queue.get() == REF1


async def test_done_for_idle_objects_fails(queue):
    with pytest.raises(RuntimeError, match=r"not running"):
        queue.done(REF1)


async def test_done_for_queued_objects_fails(queue):
    queue.trigger(REF1)
    with pytest.raises(RuntimeError, match=r"not running"):
        queue.done(REF1)


async def test_done_for_dispatched_objects_fails(queue):
    queue.trigger(REF1)
    await queue.get()
    with pytest.raises(RuntimeError, match=r"not running"):
        queue.done(REF1)


async def test_starting_of_undispatched_objects_fails(queue):
    queue.trigger(REF1)
    with pytest.raises(RuntimeError, match=r"not dispatched"):
        queue.start(REF1)


async def test_getting_waits_for_triggers(queue):
    task = asyncio.create_task(queue.get())
    await asyncio.sleep(0)
    assert not task.done()
    queue.trigger(REF1)
    ref = await asyncio.wait_for(task, timeout=1.0)
    assert ref == REF1


@pytest.mark.looptime
async def test_delayed_triggers_fire_in_time(queue, looptime):
    queue.trigger_after(REF1, 10)
    assert len(queue) == 0
    assert queue.get_deadline(REF1) == 10
    ref = await queue.get()
    assert ref == REF1
    assert looptime == 10
    assert queue.get_deadline(REF1) is None


@pytest.mark.looptime
async def test_earliest_delayed_trigger_wins(queue, looptime):
    queue.trigger_after(REF1, 10)
    queue.trigger_after(REF1, 5)
    queue.trigger_after(REF1, 20)
    assert queue.get_deadline(REF1) == 5
    await queue.get()
    assert looptime == 5


@pytest.mark.looptime
async def test_negative_delays_mean_now(queue, looptime):
    queue.trigger_after(REF1, -1)
    await queue.get()
    assert looptime == 0


@pytest.mark.looptime
async def test_immediate_triggers_cancel_the_delayed_ones(queue, looptime):
    queue.trigger_after(REF1, 10)
    queue.trigger(REF1)
    assert queue.get_deadline(REF1) is None
    await queue.get()
    queue.start(REF1)
    queue.done(REF1)
    await asyncio.sleep(20)
    assert len(queue) == 0
    assert REF1 not in queue


@pytest.mark.looptime
async def test_delayed_triggers_of_running_objects_retrigger_them(queue, looptime):
    queue.trigger(REF1)
    await queue.get()
    queue.start(REF1)
    queue.trigger_after(REF1, 10)
    await asyncio.sleep(10)
    assert queue.get_state(REF1) == KeyState.RETRIGGERED
    queue.done(REF1)
    assert await queue.get() == REF1


async def test_closing_wakes_up_the_waiters(queue):
    task = asyncio.create_task(queue.get())
    await asyncio.sleep(0)
    queue.close()
    with pytest.raises(QueueClosed):
        await asyncio.wait_for(task, timeout=1.0)


async def test_closing_discards_the_queued_objects(queue):
    queue.trigger(REF1)
    queue.close()
    assert queue.closed
    assert len(queue) == 0
    assert REF1 not in queue
    with pytest.raises(QueueClosed):
        await queue.get()


async def test_closing_cancels_the_delayed_triggers(queue):
    queue.trigger_after(REF1, 10)
    queue.close()
    assert queue.get_deadline(REF1) is None


async def test_closed_queue_ignores_the_triggers(queue):
    queue.close()
    queue.trigger(REF1)
    queue.trigger_after(REF2, 10)
    assert len(queue) == 0
    assert queue.get_deadline(REF2) is None


async def test_running_objects_can_finish_after_closing(queue):
    queue.trigger(REF1)
    await queue.get()
    queue.start(REF1)
    queue.trigger(REF1)
    queue.close()
    queue.done(REF1)
    assert REF1 not in queue
    assert len(queue) == 0


async def test_dispatched_objects_are_not_started_after_closing(queue):
    queue.trigger(REF1)
    await queue.get()
    queue.close()
    with pytest.raises(QueueClosed):
        queue.start(REF1)
    assert REF1 not in queue
