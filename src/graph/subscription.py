"""Microsoft Graph subscription manager for calendar events: create, renew, delete, list."""

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from msgraph.generated.models.subscription import Subscription as GraphSubscription

from src.config import SUBSCRIPTION_CHANGE_TYPES, SUBSCRIPTION_RESOURCE
from src.utils.logger import get_logger

if TYPE_CHECKING:
    from msgraph import GraphServiceClient

logger = get_logger("calendar_relay.graph.subscription")

# Outlook events: max 10080 minutes (7 days)
EVENT_SUBSCRIPTION_MAX_MINUTES = 10080
# Graph rejects clientState longer than 128 characters
CLIENT_STATE_MAX_LENGTH = 128


def _expiration(minutes: int) -> datetime:
    minutes = max(1, min(minutes, EVENT_SUBSCRIPTION_MAX_MINUTES))
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


class SubscriptionManager:
    """Wraps subscription calls on an explicitly provided GraphServiceClient.

    Failures are logged and reported as None/False; callers decide whether to retry.
    """

    def __init__(
        self,
        client: "GraphServiceClient",
        resource: str = SUBSCRIPTION_RESOURCE,
        change_types: str = SUBSCRIPTION_CHANGE_TYPES,
    ):
        self._client = client
        self.resource = resource
        self.change_types = change_types

    async def create(
        self,
        notification_url: str,
        client_state: str,
        expiration_minutes: int = 60,
    ) -> GraphSubscription | None:
        """Create a subscription; Graph validates notification_url with the handshake before answering."""
        if len(client_state) > CLIENT_STATE_MAX_LENGTH:
            raise ValueError(f"clientState must be at most {CLIENT_STATE_MAX_LENGTH} characters")
        body = GraphSubscription(
            change_type=self.change_types,
            notification_url=notification_url,
            resource=self.resource,
            expiration_date_time=_expiration(expiration_minutes),
            client_state=client_state or None,
        )
        try:
            sub = await self._client.subscriptions.post(body)
        except Exception as e:
            logger.error(
                "graph.subscription.create_error",
                resource=self.resource,
                notification_url=notification_url,
                error=str(e),
            )
            return None
        if not sub or not sub.id:
            logger.warning("graph.subscription.create_empty", resource=self.resource)
            return None
        logger.info(
            "graph.subscription.created",
            subscription_id=sub.id,
            resource=self.resource,
            expires=sub.expiration_date_time.isoformat() if sub.expiration_date_time else None,
        )
        return sub

    async def renew(
        self,
        subscription_id: str,
        expiration_minutes: int = 60,
    ) -> GraphSubscription | None:
        """Extend a subscription's expiration."""
        body = GraphSubscription(expiration_date_time=_expiration(expiration_minutes))
        try:
            sub = await self._client.subscriptions.by_subscription_id(subscription_id).patch(body)
        except Exception as e:
            logger.error(
                "graph.subscription.renew_error",
                subscription_id=subscription_id,
                error=str(e),
            )
            return None
        if not sub:
            return None
        logger.info(
            "graph.subscription.renewed",
            subscription_id=subscription_id,
            expires=sub.expiration_date_time.isoformat() if sub.expiration_date_time else None,
        )
        return sub

    async def delete(self, subscription_id: str) -> bool:
        try:
            await self._client.subscriptions.by_subscription_id(subscription_id).delete()
        except Exception as e:
            logger.error(
                "graph.subscription.delete_error",
                subscription_id=subscription_id,
                error=str(e),
            )
            return False
        logger.info("graph.subscription.deleted", subscription_id=subscription_id)
        return True

    async def list(self) -> list[GraphSubscription]:
        """Active subscriptions of the signed-in user (all resources)."""
        try:
            result = await self._client.subscriptions.get()
        except Exception as e:
            logger.error("graph.subscription.list_error", error=str(e))
            return []
        return list(result.value or []) if result else []
