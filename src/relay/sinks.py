"""Notification sinks: downstream consumers of accepted change notifications.

Sinks are invoked by dispatch workers, possibly more than once for the same change
(Graph redelivers, and the relay does not deduplicate). Each sink must tolerate that.
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Protocol

import httpx

from src.relay.models import ChangeNotification, ChangeType
from src.relay.retry import RetryPolicy, run_with_retry
from src.utils.logger import get_logger

logger = get_logger("calendar_relay.relay.sinks")


class SinkOutcome(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


class Sink(Protocol):
    """Downstream consumer. handle() may be sync or async; None counts as OK."""

    name: str

    def handle(
        self, notification: ChangeNotification
    ) -> SinkOutcome | None | Awaitable[SinkOutcome | None]:
        ...


def _resource_id(resource_data: Any) -> str | None:
    if isinstance(resource_data, dict):
        return resource_data.get("id")
    return None


class LoggingSink:
    """Logs every accepted notification."""

    name = "log"

    def handle(self, notification: ChangeNotification) -> SinkOutcome:
        logger.info(
            "relay.sink.notification",
            subscription_id=notification.subscription_id,
            change_type=notification.change_type.value,
            resource=notification.resource,
            resource_id=_resource_id(notification.resource_data),
        )
        return SinkOutcome.OK


@dataclass(frozen=True)
class CachedEvent:
    resource: str
    change_type: ChangeType
    subscription_id: str
    resource_data: Any
    updated_at: datetime


class EventCacheSink:
    """In-memory view of calendar events keyed by resource path.

    created/updated upsert the entry, deleted removes it; applying the same
    notification twice leaves the cache unchanged.
    """

    name = "cache"

    def __init__(self):
        self._events: dict[str, CachedEvent] = {}

    def handle(self, notification: ChangeNotification) -> SinkOutcome:
        key = notification.resource
        if notification.change_type is ChangeType.DELETED:
            removed = self._events.pop(key, None)
            logger.debug("relay.cache.deleted", resource=key, present=removed is not None)
            return SinkOutcome.OK
        self._events[key] = CachedEvent(
            resource=key,
            change_type=notification.change_type,
            subscription_id=notification.subscription_id,
            resource_data=notification.resource_data,
            updated_at=notification.received_at,
        )
        logger.debug("relay.cache.upserted", resource=key, change_type=notification.change_type.value)
        return SinkOutcome.OK

    def get(self, resource: str) -> CachedEvent | None:
        return self._events.get(resource)

    def __len__(self) -> int:
        return len(self._events)

    def snapshot(self) -> list[dict[str, Any]]:
        return [
            {
                "resource": e.resource,
                "changeType": e.change_type.value,
                "subscriptionId": e.subscription_id,
                "resourceData": e.resource_data,
                "updatedAt": e.updated_at.isoformat(),
            }
            for e in self._events.values()
        ]


class BroadcastSink:
    """Pushes notifications to live clients (e.g. the scheduler UI over server-sent events).

    Every subscriber owns a bounded queue; when a client falls behind, its newest
    message is dropped so the dispatch worker never waits on it.
    """

    name = "broadcast"

    def __init__(self, subscriber_queue_max: int = 100):
        self._subscriber_queue_max = max(1, subscriber_queue_max)
        self._subscribers: set[asyncio.Queue[dict[str, Any]]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._subscriber_queue_max)
        self._subscribers.add(queue)
        logger.info("relay.broadcast.subscribed", subscribers=len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        self._subscribers.discard(queue)
        logger.info("relay.broadcast.unsubscribed", subscribers=len(self._subscribers))

    async def listen(self) -> AsyncIterator[dict[str, Any]]:
        """Yield payloads for one client until the consumer stops iterating."""
        queue = self.subscribe()
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(queue)

    def handle(self, notification: ChangeNotification) -> SinkOutcome:
        if not self._subscribers:
            return SinkOutcome.SKIPPED
        payload = notification.to_payload()
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(payload)
            except asyncio.QueueFull:
                logger.warning(
                    "relay.broadcast.subscriber_lagging",
                    resource=notification.resource,
                    queue_max=self._subscriber_queue_max,
                )
        return SinkOutcome.OK


class _RetryableStatus(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def _is_retryable(e: Exception) -> bool:
    return isinstance(e, (httpx.TransportError, _RetryableStatus))


class ForwardingSink:
    """POSTs each notification as JSON to a downstream URL, with its own retry policy.

    Transport errors, 429 and 5xx are retried; other non-2xx responses fail at once.
    """

    name = "forward"

    def __init__(
        self,
        url: str,
        http_client: httpx.AsyncClient,
        retry_policy: RetryPolicy | None = None,
    ):
        self._url = url
        self._client = http_client
        self._policy = retry_policy or RetryPolicy()

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        response = await self._client.post(self._url, json=payload)
        if response.status_code == 429 or response.status_code >= 500:
            raise _RetryableStatus(response.status_code)
        return response

    async def handle(self, notification: ChangeNotification) -> SinkOutcome:
        payload = notification.to_payload()
        try:
            response = await run_with_retry(
                lambda: self._post(payload),
                self._policy,
                retry_on=_is_retryable,
                name="forward_notification",
            )
        except (httpx.HTTPError, _RetryableStatus) as e:
            logger.warning(
                "relay.forward.failed",
                url=self._url,
                resource=notification.resource,
                error=str(e) or type(e).__name__,
            )
            return SinkOutcome.FAILED
        if response.is_success:
            logger.debug("relay.forward.ok", url=self._url, status=response.status_code)
            return SinkOutcome.OK
        logger.warning(
            "relay.forward.rejected",
            url=self._url,
            resource=notification.resource,
            status=response.status_code,
        )
        return SinkOutcome.FAILED
