"""Expected clientState per subscription, loaded from env default + JSON file."""

import hmac
import json
from pathlib import Path

from src.relay.models import ChangeNotification
from src.utils.logger import get_logger

logger = get_logger("calendar_relay.relay.client_state")


def load_client_states(path: str | Path) -> dict[str, str]:
    """
    Read {"client_states": {"<subscription-id>": "<secret>"}} from a JSON file.
    Returns {} on missing/invalid file; non-string entries are skipped with a log.
    """
    path = Path(path)
    if not path.exists():
        logger.debug("client_state.file_missing", path=str(path))
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except Exception as e:
        logger.warning("client_state.read_error", path=str(path), error=str(e))
        return {}
    raw = data.get("client_states") if isinstance(data, dict) else None
    if not isinstance(raw, dict):
        logger.warning("client_state.invalid_format", path=str(path))
        return {}
    result: dict[str, str] = {}
    for sub_id, secret in raw.items():
        if not isinstance(secret, str) or not secret:
            logger.warning("client_state.invalid_entry_skipped", subscription_id=sub_id, path=str(path))
            continue
        result[str(sub_id)] = secret
    return result


class ClientStateRegistry:
    """Read-only source of expected clientState values.

    A per-subscription secret wins over the default. When neither is configured the
    subscription is not checked.
    """

    def __init__(self, default: str | None = None, per_subscription: dict[str, str] | None = None):
        self._default = (default or "").strip() or None
        self._per_subscription = dict(per_subscription or {})

    @classmethod
    def from_config(cls, default: str | None, path: str | Path) -> "ClientStateRegistry":
        return cls(default=default, per_subscription=load_client_states(path))

    def expected_for(self, subscription_id: str) -> str | None:
        return self._per_subscription.get(subscription_id, self._default)

    def verify(self, notification: ChangeNotification) -> bool:
        """Constant-time comparison of the notification's clientState with the expected value."""
        expected = self.expected_for(notification.subscription_id)
        if expected is None:
            return True
        received = notification.client_state or ""
        return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))
