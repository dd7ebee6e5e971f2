"""In-process relay counters; the fire-and-forget metrics sink for intake and dispatch."""

import threading
from dataclasses import dataclass

from src.utils.logger import get_logger

logger = get_logger("calendar_relay.relay.stats")


@dataclass(frozen=True)
class IntakeReport:
    """Per-batch outcome of notification intake."""

    received: int = 0
    accepted: int = 0
    rejected: int = 0
    malformed: int = 0
    saturated: int = 0


class RelayStats:
    """Thread-safe append-only counters shared by concurrent requests and workers."""

    _FIELDS = (
        "batches",
        "received",
        "accepted",
        "rejected",
        "malformed",
        "saturated",
        "delivered",
        "sink_failures",
    )

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: dict[str, int] = {name: 0 for name in self._FIELDS}

    def record_batch(self, report: IntakeReport) -> None:
        with self._lock:
            self._counts["batches"] += 1
            self._counts["received"] += report.received
            self._counts["accepted"] += report.accepted
            self._counts["rejected"] += report.rejected
            self._counts["malformed"] += report.malformed
            self._counts["saturated"] += report.saturated
        logger.info(
            "relay.stats.batch",
            received=report.received,
            accepted=report.accepted,
            rejected=report.rejected,
            malformed=report.malformed,
            saturated=report.saturated,
        )

    def record_delivery(self, ok: bool) -> None:
        with self._lock:
            self._counts["delivered" if ok else "sink_failures"] += 1

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)
