"""Acknowledgment policy: what the notifier sees for a delivery.

Graph retries any non-2xx or timed-out delivery with backoff and eventually disables
the subscription, so every request that reaches a response gets 202 Accepted,
whatever happened to its elements.
"""

from enum import Enum

from fastapi import Response


class RequestOutcome(str, Enum):
    VALIDATED = "validated"
    ENQUEUED = "enqueued"
    EMPTY = "empty"


def accepted_response() -> Response:
    """202 with an empty body."""
    return Response(status_code=202)
