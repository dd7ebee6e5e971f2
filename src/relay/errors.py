"""Error taxonomy for the notification relay.

None of these reach the HTTP boundary: the endpoint acknowledges every delivery
it can respond to, so Graph only retries on transport failures.
"""


class RelayError(Exception):
    """Base class for relay errors absorbed below the HTTP boundary."""


class MalformedNotification(RelayError):
    """A notification element is missing required fields or has an unknown changeType."""

    def __init__(self, reason: str, index: int | None = None):
        super().__init__(reason)
        self.reason = reason
        self.index = index


class AuthenticityMismatch(RelayError):
    """clientState of a notification does not match the configured secret."""

    def __init__(self, subscription_id: str):
        super().__init__(f"clientState mismatch for subscription {subscription_id!r}")
        self.subscription_id = subscription_id


class QueueSaturated(RelayError):
    """Dispatch queue is full (or stopped); the newest notification is dropped."""

    def __init__(self, maxsize: int, closed: bool = False):
        reason = "dispatch queue closed" if closed else f"dispatch queue full (max={maxsize})"
        super().__init__(reason)
        self.maxsize = maxsize
        self.closed = closed


class SinkFailure(RelayError):
    """A sink could not process a notification. Raised by sinks; isolated by the dispatcher."""

    def __init__(self, sink: str, reason: str):
        super().__init__(f"{sink}: {reason}")
        self.sink = sink
        self.reason = reason
