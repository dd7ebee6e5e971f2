"""Dispatch queue: decouples the HTTP acknowledgment from sink processing.

Producers (request handlers) call enqueue() without awaiting; a fixed worker pool
drains the bounded queue and hands every notification to every registered sink.
"""

import asyncio
import inspect
from typing import Any

from src.relay.errors import QueueSaturated, SinkFailure
from src.relay.models import ChangeNotification
from src.relay.sinks import Sink, SinkOutcome
from src.relay.stats import RelayStats
from src.utils.logger import get_logger

logger = get_logger("calendar_relay.relay.dispatch")

MAX_WORKERS = 64


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class DispatchQueue:
    """Bounded in-memory queue with a worker pool. Guarantees hand-off at least once, not success."""

    def __init__(
        self,
        maxsize: int = 200,
        worker_count: int = 2,
        stats: RelayStats | None = None,
    ):
        self._maxsize = max(1, maxsize)
        self._worker_count = max(1, min(worker_count, MAX_WORKERS))
        self._queue: asyncio.Queue[ChangeNotification] = asyncio.Queue(maxsize=self._maxsize)
        self._sinks: list[Sink] = []
        self._workers: list[asyncio.Task[None]] = []
        self._closed = False
        self._in_flight = 0
        self.stats = stats or RelayStats()

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self._closed

    @property
    def sinks(self) -> list[Sink]:
        return list(self._sinks)

    def qsize(self) -> int:
        return self._queue.qsize()

    def register(self, sink: Sink) -> None:
        """Add a sink; every notification dequeued afterwards is delivered to it."""
        self._sinks.append(sink)
        logger.info("relay.dispatch.sink_registered", sink=sink.name)

    def enqueue(self, notification: ChangeNotification) -> None:
        """Non-blocking put. Raises QueueSaturated when full or stopped."""
        if self._closed:
            raise QueueSaturated(self._maxsize, closed=True)
        try:
            self._queue.put_nowait(notification)
        except asyncio.QueueFull:
            raise QueueSaturated(self._maxsize) from None

    def start(self) -> None:
        """Launch the worker pool on the running event loop."""
        if self._workers:
            return
        self._closed = False
        if self._queue.empty():
            # Rebind to the running loop; a restarted app may run on a new one
            self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"relay-dispatch-{i}")
            for i in range(self._worker_count)
        ]
        logger.info(
            "relay.dispatch.started",
            queue_max=self._maxsize,
            worker_count=self._worker_count,
            sinks=[s.name for s in self._sinks],
        )

    async def stop(self, drain_timeout: float = 10.0, inflight_grace: float = 5.0) -> int:
        """Stop accepting, flush what is queued within drain_timeout, then stop workers.

        When the drain times out, still-queued notifications are discarded and sink
        calls already in progress get up to inflight_grace more seconds before the
        workers are cancelled. Returns the number of notifications that never
        completed delivery: discarded from the queue plus cancelled mid-delivery.
        """
        self._closed = True
        if not self._workers:
            return 0
        discarded = cancelled = 0
        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            discarded = self._discard_pending()
            logger.warning(
                "relay.dispatch.shutdown_timeout",
                timeout=drain_timeout,
                discarded=discarded,
                in_flight=self._in_flight,
            )
            if self._in_flight:
                try:
                    await asyncio.wait_for(self._queue.join(), timeout=inflight_grace)
                except asyncio.TimeoutError:
                    cancelled = self._in_flight
                    logger.warning(
                        "relay.dispatch.in_flight_cancelled",
                        grace=inflight_grace,
                        cancelled=cancelled,
                    )
        for t in self._workers:
            t.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("relay.dispatch.stopped", discarded=discarded, cancelled=cancelled)
        return discarded + cancelled

    def _discard_pending(self) -> int:
        count = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return count
            self._queue.task_done()
            count += 1

    async def _worker(self, worker_id: int) -> None:
        """Worker loop: take one notification, fan out to sinks. Stops on CancelledError."""
        logger.debug("relay.dispatch.worker_started", worker_id=worker_id)
        try:
            while True:
                notification = await self._queue.get()
                self._in_flight += 1
                try:
                    await self.deliver(notification)
                finally:
                    self._in_flight -= 1
                    self._queue.task_done()
        except asyncio.CancelledError:
            logger.debug("relay.dispatch.worker_stopped", worker_id=worker_id)
            raise

    async def deliver(self, notification: ChangeNotification) -> list[bool]:
        """Hand one notification to every sink concurrently; one sink's failure never affects another."""
        sinks = list(self._sinks)
        if not sinks:
            logger.debug("relay.dispatch.no_sinks", resource=notification.resource)
            return []
        return list(await asyncio.gather(*(self._call_sink(s, notification) for s in sinks)))

    async def _call_sink(self, sink: Sink, notification: ChangeNotification) -> bool:
        try:
            outcome = await _maybe_await(sink.handle(notification))
            if outcome is SinkOutcome.FAILED:
                raise SinkFailure(sink.name, "sink reported failure")
        except SinkFailure as e:
            logger.warning(
                "relay.dispatch.sink_failed",
                sink=sink.name,
                subscription_id=notification.subscription_id,
                resource=notification.resource,
                error=e.reason,
            )
            self.stats.record_delivery(False)
            return False
        except Exception as e:
            logger.exception(
                "relay.dispatch.sink_error",
                sink=sink.name,
                subscription_id=notification.subscription_id,
                resource=notification.resource,
                error=str(e),
            )
            self.stats.record_delivery(False)
            return False
        self.stats.record_delivery(True)
        return True
