import asyncio

import pytest

from gasfee.core.errors import SchedulerDestroyedError
from gasfee.core.poller import PollingScheduler
from fakes import Gate


class CountingProducer:
    def __init__(self, fail_after=None, delay=0):
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.fail_after = fail_after
        self.delay = delay

    async def __call__(self):
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if self.fail_after is not None and self.calls > self.fail_after:
                raise RuntimeError("producer failed")
        finally:
            self.in_flight -= 1


@pytest.mark.asyncio
async def test_concurrent_subscribes_run_the_producer_once():
    producer = CountingProducer(delay=0.01)
    scheduler = PollingScheduler({"gasFeeEstimates": producer}, interval_ms=60_000)

    await asyncio.gather(scheduler.subscribe("gasFeeEstimates"), scheduler.subscribe("gasFeeEstimates"))
    await scheduler.subscribe("gasFeeEstimates")

    assert producer.calls == 1
    assert scheduler.poll_queue == {"gasFeeEstimates"}
    assert scheduler.is_running

    scheduler.unsubscribe("gasFeeEstimates")
    await scheduler.subscribe("gasFeeEstimates")

    assert producer.calls == 2
    scheduler.destroy()


@pytest.mark.asyncio
async def test_first_run_failure_propagates_and_item_is_not_queued():
    producer = CountingProducer(fail_after=0)
    scheduler = PollingScheduler({"gasFeeEstimates": producer}, interval_ms=60_000)

    with pytest.raises(RuntimeError):
        await scheduler.subscribe("gasFeeEstimates")

    assert scheduler.poll_queue == set()
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_unknown_item_is_rejected():
    scheduler = PollingScheduler({"gasFeeEstimates": CountingProducer()}, interval_ms=60_000)

    with pytest.raises(KeyError):
        await scheduler.subscribe("balances")


@pytest.mark.asyncio
async def test_failing_item_does_not_stop_the_others():
    healthy = CountingProducer()
    flaky = CountingProducer(fail_after=1)
    scheduler = PollingScheduler({"gasFeeEstimates": healthy, "isNetworkCongested": flaky}, interval_ms=10)

    await scheduler.subscribe("gasFeeEstimates")
    await scheduler.subscribe("isNetworkCongested")
    await asyncio.sleep(0.1)

    assert healthy.calls >= 3
    assert flaky.calls >= 3
    assert scheduler.is_running
    scheduler.destroy()


@pytest.mark.asyncio
async def test_slow_batches_delay_the_next_tick():
    slow = CountingProducer(delay=0.03)
    scheduler = PollingScheduler({"gasFeeEstimates": slow}, interval_ms=5)

    await scheduler.subscribe("gasFeeEstimates")
    await asyncio.sleep(0.15)
    scheduler.destroy()

    assert slow.max_in_flight == 1
    assert slow.calls <= 8


@pytest.mark.asyncio
async def test_stop_all_clears_queue_and_resubscribe_starts_fresh():
    producer = CountingProducer()
    scheduler = PollingScheduler({"gasFeeEstimates": producer}, interval_ms=10)

    await scheduler.subscribe("gasFeeEstimates")
    await asyncio.sleep(0.05)
    scheduler.stop_all()
    calls_at_stop = producer.calls
    await asyncio.sleep(0.05)

    assert producer.calls == calls_at_stop
    assert scheduler.poll_queue == set()
    assert not scheduler.is_running

    await scheduler.subscribe("gasFeeEstimates")
    assert producer.calls == calls_at_stop + 1
    assert scheduler.is_running
    scheduler.destroy()


@pytest.mark.asyncio
async def test_loop_exits_once_nothing_is_subscribed():
    scheduler = PollingScheduler({"gasFeeEstimates": CountingProducer()}, interval_ms=10)

    await scheduler.subscribe("gasFeeEstimates")
    scheduler.unsubscribe("gasFeeEstimates")
    await asyncio.sleep(0.05)

    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_stop_all_does_not_abort_an_in_flight_request():
    gate = Gate()
    finished = []
    first_run = True

    async def producer():
        nonlocal first_run
        if first_run:
            first_run = False
            return
        await gate.wait()
        finished.append(True)

    scheduler = PollingScheduler({"gasFeeEstimates": producer}, interval_ms=10)
    await scheduler.subscribe("gasFeeEstimates")
    await asyncio.wait_for(gate.entered.wait(), timeout=1)

    scheduler.stop_all()
    gate.released.set()
    await asyncio.sleep(0.01)

    assert finished == [True]


@pytest.mark.asyncio
async def test_destroy_is_idempotent_and_terminal():
    scheduler = PollingScheduler({"gasFeeEstimates": CountingProducer()}, interval_ms=10)
    await scheduler.subscribe("gasFeeEstimates")

    scheduler.destroy()
    scheduler.destroy()

    assert not scheduler.is_running
    with pytest.raises(SchedulerDestroyedError):
        await scheduler.subscribe("gasFeeEstimates")


class GatedProducer:
    """Holds the given call (1-based) open on a Gate; all other calls return at once."""
    def __init__(self, gated_call):
        self.gated_call = gated_call
        self.gate = Gate()
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls == self.gated_call:
            await self.gate.wait()


@pytest.mark.asyncio
async def test_unsubscribe_during_first_run_keeps_item_out_of_the_queue():
    producer = GatedProducer(gated_call=1)
    scheduler = PollingScheduler({"gasFeeEstimates": producer}, interval_ms=10)

    subscribing = asyncio.create_task(scheduler.subscribe("gasFeeEstimates"))
    await producer.gate.entered.wait()
    scheduler.unsubscribe("gasFeeEstimates")
    producer.gate.released.set()
    await subscribing
    await asyncio.sleep(0.05)

    assert scheduler.poll_queue == set()
    assert not scheduler.is_running
    assert producer.calls == 1


@pytest.mark.asyncio
async def test_stop_all_during_first_run_keeps_item_out_of_the_queue():
    producer = GatedProducer(gated_call=1)
    scheduler = PollingScheduler({"gasFeeEstimates": producer}, interval_ms=10)

    subscribing = asyncio.create_task(scheduler.subscribe("gasFeeEstimates"))
    await producer.gate.entered.wait()
    scheduler.stop_all()
    producer.gate.released.set()
    await subscribing
    await asyncio.sleep(0.05)

    assert scheduler.poll_queue == set()
    assert not scheduler.is_running
    assert producer.calls == 1


@pytest.mark.asyncio
async def test_resubscribe_during_withdrawn_first_run_is_kept():
    producer = GatedProducer(gated_call=1)
    scheduler = PollingScheduler({"gasFeeEstimates": producer}, interval_ms=60_000)

    withdrawn = asyncio.create_task(scheduler.subscribe("gasFeeEstimates"))
    await producer.gate.entered.wait()
    scheduler.unsubscribe("gasFeeEstimates")
    await scheduler.subscribe("gasFeeEstimates")
    producer.gate.released.set()
    await withdrawn

    assert scheduler.poll_queue == {"gasFeeEstimates"}
    assert producer.calls == 2
    scheduler.destroy()


@pytest.mark.asyncio
async def test_restarted_loop_waits_for_the_batch_left_by_stop_all():
    # Call 1 is the first run, call 2 the first tick (held open), call 3 the
    # first run after resubscribing.
    producer = GatedProducer(gated_call=2)
    scheduler = PollingScheduler({"gasFeeEstimates": producer}, interval_ms=10)

    await scheduler.subscribe("gasFeeEstimates")
    await asyncio.wait_for(producer.gate.entered.wait(), timeout=1)
    scheduler.stop_all()
    await scheduler.subscribe("gasFeeEstimates")
    await asyncio.sleep(0.05)

    assert producer.calls == 3

    producer.gate.released.set()
    await asyncio.sleep(0.05)

    assert producer.calls >= 4
    scheduler.destroy()
