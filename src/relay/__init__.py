"""Relay for Microsoft Graph change notifications: validation, intake, dispatch, acknowledgment."""

from src.relay.models import (
    ChangeType,
    ChangeNotification,
    NotificationBatch,
)

__all__ = [
    "ChangeType",
    "ChangeNotification",
    "NotificationBatch",
]
