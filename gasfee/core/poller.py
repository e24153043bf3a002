# /gasfee/core/poller.py
# Deduplicating periodic scheduler for the gas fee poll items.

import asyncio
from typing import Any, Awaitable, Callable, Dict, Set

from gasfee.core.errors import SchedulerDestroyedError
from gasfee.core.logger import get_logger, POLLS_EXECUTED, POLL_ITEM_FAILURES

log = get_logger(__name__)

Producer = Callable[[], Awaitable[Any]]


class PollingScheduler:
    """
    Keeps a set of subscribed items fresh by re-running their producers on a
    fixed delay. Each tick runs every subscribed producer concurrently and the
    next delay starts only once the whole batch has settled. A failing
    producer is logged and counted; it never stops the loop or its siblings.
    """
    def __init__(self, producers: Dict[str, Producer], interval_ms: int = 15000):
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self.producers = producers
        self.interval_ms = interval_ms
        self.poll_queue: Set[str] = set()
        self._pending: Dict[str, asyncio.Future] = {}
        self._task: asyncio.Task | None = None
        self._in_flight: asyncio.Future | None = None
        self._destroyed = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def subscribe(self, item: str) -> None:
        """
        Runs the item's producer once, then adds it to the poll queue and
        starts the loop if needed. Calls for an item that is already queued, or
        whose first run is still in flight, do not run the producer again.
        Errors from the first run propagate to every waiting caller.
        """
        if self._destroyed:
            raise SchedulerDestroyedError("Scheduler has been destroyed")
        if item not in self.producers:
            raise KeyError(f"Unknown poll item: {item}")
        if item in self.poll_queue:
            return
        pending = self._pending.get(item)
        if pending is None:
            pending = asyncio.ensure_future(self._first_run(item))
            self._pending[item] = pending
        await asyncio.shield(pending)

    async def _first_run(self, item: str) -> None:
        run = asyncio.current_task()
        try:
            await self.producers[item]()
        finally:
            # unsubscribe() and stop_all() withdraw a pending first run by
            # dropping it from _pending.
            withdrawn = self._pending.get(item) is not run
            if not withdrawn:
                del self._pending[item]
        if withdrawn or self._destroyed:
            log.info("POLL_ITEM_SUBSCRIPTION_WITHDRAWN", item=item)
            return
        self.poll_queue.add(item)
        log.info("POLL_ITEM_SUBSCRIBED", item=item)
        self._ensure_running()

    def unsubscribe(self, item: str) -> None:
        """
        Drops the item from future ticks. A first run still in flight is left
        to finish but will not queue the item.
        """
        self.poll_queue.discard(item)
        self._pending.pop(item, None)
        log.info("POLL_ITEM_UNSUBSCRIBED", item=item, remaining=len(self.poll_queue))

    def stop_all(self) -> None:
        """Cancels the loop, empties the queue and withdraws pending first runs."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.poll_queue.clear()
        self._pending.clear()
        log.info("POLLING_STOPPED")

    def destroy(self) -> None:
        if self._destroyed:
            return
        self.stop_all()
        self._destroyed = True
        log.info("POLLING_SCHEDULER_DESTROYED")

    def _ensure_running(self) -> None:
        if not self.is_running:
            self._task = asyncio.create_task(self._run_loop())

    async def _run_loop(self) -> None:
        log.info("POLLING_LOOP_STARTED", interval_ms=self.interval_ms)
        # A batch left running by stop_all() settles before the next tick.
        if self._in_flight is not None and not self._in_flight.done():
            await asyncio.shield(self._in_flight)
        while True:
            await asyncio.sleep(self.interval_ms / 1000)
            if not self.poll_queue:
                break
            # Shielded so that stop_all() cancels the loop without aborting
            # requests already in flight.
            self._in_flight = asyncio.ensure_future(self.poll())
            await asyncio.shield(self._in_flight)
        log.info("POLLING_LOOP_EXITED", reason="queue_empty")

    async def poll(self) -> None:
        items = sorted(self.poll_queue)
        POLLS_EXECUTED.inc()
        await asyncio.gather(*(self._safely_execute(item) for item in items))

    async def _safely_execute(self, item: str) -> Any:
        try:
            return await self.producers[item]()
        except Exception as e:
            POLL_ITEM_FAILURES.labels(item).inc()
            log.error("POLL_ITEM_FAILED", item=item, error=str(e), exc_info=True)
            return None
