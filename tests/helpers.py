"""Shared test doubles for relay tests."""

import asyncio
import threading
import time

from src.relay.models import ChangeNotification
from src.relay.sinks import SinkOutcome


def make_element(
    resource: str = "me/events/AAA",
    change_type: str = "created",
    subscription_id: str = "sub1",
    client_state: str | None = "secret",
    **extra,
) -> dict:
    element = {
        "subscriptionId": subscription_id,
        "changeType": change_type,
        "resource": resource,
        **extra,
    }
    if client_state is not None:
        element["clientState"] = client_state
    return element


def make_notification(**kwargs) -> ChangeNotification:
    return ChangeNotification.model_validate(make_element(**kwargs))


class RecordingSink:
    """Collects every notification it receives; safe to read from the test thread."""

    def __init__(self, name: str = "recorder"):
        self.name = name
        self._lock = threading.Lock()
        self._received: list[ChangeNotification] = []

    def handle(self, notification: ChangeNotification) -> SinkOutcome:
        with self._lock:
            self._received.append(notification)
        return SinkOutcome.OK

    @property
    def received(self) -> list[ChangeNotification]:
        with self._lock:
            return list(self._received)


class FailingSink:
    """Raises on every call."""

    def __init__(self, name: str = "failing"):
        self.name = name
        self.calls = 0

    def handle(self, notification: ChangeNotification) -> SinkOutcome:
        self.calls += 1
        raise RuntimeError("sink exploded")


class SlowSink:
    """Async sink that sleeps before recording."""

    def __init__(self, delay: float, name: str = "slow"):
        self.name = name
        self.delay = delay
        self.received: list[ChangeNotification] = []

    async def handle(self, notification: ChangeNotification) -> None:
        await asyncio.sleep(self.delay)
        self.received.append(notification)


def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll predicate from a sync test until it is true or timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
