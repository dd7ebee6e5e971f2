"""Pydantic models for Microsoft Graph change notification payloads."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class ChangeType(str, Enum):
    """Change types Graph reports for calendar events."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChangeNotification(BaseModel):
    """Single change notification from Microsoft Graph (changeNotification resource type).

    Immutable once received. Graph delivers at least once, so two instances with the
    same subscription_id/resource/change_type are normal and only differ by received_at.
    """

    subscription_id: str = Field(..., alias="subscriptionId", min_length=1)
    change_type: ChangeType = Field(..., alias="changeType")
    resource: str = Field(..., min_length=1)
    resource_data: Any = Field(None, alias="resourceData")
    client_state: str | None = Field(None, alias="clientState")
    id: str | None = None
    tenant_id: str | None = Field(None, alias="tenantId")
    subscription_expiration_date_time: str | None = Field(
        None, alias="subscriptionExpirationDateTime"
    )
    received_at: datetime = Field(default_factory=_utcnow)

    model_config = {"extra": "ignore", "frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _drop_receipt_time(cls, data: Any) -> Any:
        # received_at is stamped here on arrival; the sender cannot supply it
        if isinstance(data, dict) and "received_at" in data:
            data = {k: v for k, v in data.items() if k != "received_at"}
        return data

    def to_payload(self) -> dict[str, Any]:
        """Graph-shaped JSON for sinks that forward or push; clientState is never included."""
        data = self.model_dump(mode="json", by_alias=True, exclude={"client_state"})
        data["receivedAt"] = data.pop("received_at")
        return data


class NotificationBatch(BaseModel):
    """Request body of a Graph webhook POST: raw elements of the 'value' array.

    Elements stay unvalidated here so one malformed record cannot reject the rest.
    """

    value: list[Any] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.value)
