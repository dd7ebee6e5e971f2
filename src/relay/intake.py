"""Notification intake: turn a delivery into per-element accept/reject decisions.

Runs synchronously inside the request handler and never waits on sinks. Every
failure here is per element; the batch and the request always succeed.
"""

import json

from pydantic import ValidationError

from src.relay.client_state import ClientStateRegistry
from src.relay.dispatch import DispatchQueue
from src.relay.errors import AuthenticityMismatch, MalformedNotification, QueueSaturated
from src.relay.models import ChangeNotification, NotificationBatch
from src.relay.stats import IntakeReport, RelayStats
from src.utils.logger import get_logger

logger = get_logger("calendar_relay.relay.intake")


def parse_body(raw: bytes) -> NotificationBatch:
    """Decode a request body into a batch. Anything without a 'value' list is an empty batch."""
    if not raw or not raw.strip():
        return NotificationBatch()
    try:
        body = json.loads(raw)
    except ValueError as e:
        logger.warning("relay.intake.parse_error", error=str(e))
        return NotificationBatch()
    if not isinstance(body, dict):
        logger.warning("relay.intake.unexpected_body", body_type=type(body).__name__)
        return NotificationBatch()
    value = body.get("value")
    if value is None:
        return NotificationBatch()
    if not isinstance(value, list):
        logger.warning("relay.intake.value_not_list", value_type=type(value).__name__)
        return NotificationBatch()
    return NotificationBatch(value=value)


def validate_element(element: object, index: int) -> ChangeNotification:
    """Build a ChangeNotification from one raw element or raise MalformedNotification."""
    if not isinstance(element, dict):
        raise MalformedNotification(f"element is {type(element).__name__}, not an object", index)
    try:
        return ChangeNotification.model_validate(element)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise MalformedNotification(f"invalid fields: {', '.join(fields)}", index) from None


class NotificationIntake:
    """Checks shape and clientState of each element, enqueues the accepted ones in arrival order."""

    def __init__(
        self,
        queue: DispatchQueue,
        client_states: ClientStateRegistry,
        stats: RelayStats | None = None,
    ):
        self._queue = queue
        self._client_states = client_states
        self._stats = stats or queue.stats

    def _accept(self, notification: ChangeNotification) -> None:
        if not self._client_states.verify(notification):
            raise AuthenticityMismatch(notification.subscription_id)
        self._queue.enqueue(notification)

    def process(self, batch: NotificationBatch) -> IntakeReport:
        accepted = rejected = malformed = saturated = 0
        for index, element in enumerate(batch.value):
            try:
                notification = validate_element(element, index)
            except MalformedNotification as e:
                malformed += 1
                logger.warning("relay.intake.malformed", index=e.index, reason=e.reason)
                continue
            try:
                self._accept(notification)
            except AuthenticityMismatch as e:
                rejected += 1
                logger.warning(
                    "relay.intake.client_state_mismatch",
                    subscription_id=e.subscription_id,
                    resource=notification.resource,
                    index=index,
                )
                continue
            except QueueSaturated as e:
                saturated += 1
                logger.warning(
                    "relay.intake.queue_saturated",
                    subscription_id=notification.subscription_id,
                    resource=notification.resource,
                    reason=str(e),
                )
                continue
            accepted += 1
        report = IntakeReport(
            received=len(batch.value),
            accepted=accepted,
            rejected=rejected,
            malformed=malformed,
            saturated=saturated,
        )
        self._stats.record_batch(report)
        return report
