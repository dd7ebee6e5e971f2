"""MSAL token cache for delegated Graph access. Tokens persist on disk and refresh silently."""

import time
from pathlib import Path
from typing import Any

from azure.core.credentials import AccessToken, TokenCredential
import msal

from src.utils.logger import get_logger

logger = get_logger("calendar_relay.auth.token_cache")

TOKEN_CACHE_DIR = Path.home() / ".calendar-relay"
TOKEN_CACHE_PATH = TOKEN_CACHE_DIR / "token_cache.json"

# Subscriptions on me/events need the same permission as reading the calendar
DELEGATED_SCOPES = [
    "https://graph.microsoft.com/User.Read",
    "https://graph.microsoft.com/Calendars.ReadWrite",
]


def _load_cache(path: Path) -> msal.SerializableTokenCache:
    """Create a SerializableTokenCache and load from disk if the file exists."""
    cache = msal.SerializableTokenCache()
    if path.exists():
        try:
            cache.deserialize(path.read_text(encoding="utf-8"))
        except Exception as e:
            logger.warning("token_cache.load_error", path=str(path), error=str(e))
    return cache


def _save_cache(cache: msal.SerializableTokenCache, path: Path) -> None:
    if cache.has_state_changed:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(cache.serialize(), encoding="utf-8")


class MSALDelegatedCredential(TokenCredential):
    """
    TokenCredential backed by MSAL with a file-based token cache.
    Device code flow on first run; afterwards cached tokens are refreshed silently.
    """

    def __init__(self, tenant_id: str, client_id: str, cache_path: Path = TOKEN_CACHE_PATH):
        self._cache_path = cache_path
        self._cache = _load_cache(cache_path)
        self._app = msal.PublicClientApplication(
            client_id=client_id,
            authority=f"https://login.microsoftonline.com/{tenant_id}",
            token_cache=self._cache,
        )

    def _access_token(self, result: dict[str, Any]) -> AccessToken:
        _save_cache(self._cache, self._cache_path)
        expires_on = int(time.time()) + int(result.get("expires_in", 0))
        return AccessToken(token=result["access_token"], expires_on=expires_on)

    def get_token(self, *scopes: str, **kwargs: Any) -> AccessToken:
        scopes_list = list(scopes) if scopes else DELEGATED_SCOPES
        accounts = self._app.get_accounts()
        account = accounts[0] if accounts else None

        result = self._app.acquire_token_silent(scopes_list, account=account)
        if result and "access_token" in result:
            return self._access_token(result)

        flow = self._app.initiate_device_flow(scopes=scopes_list)
        if "user_code" not in flow:
            raise RuntimeError(flow.get("error_description", "Failed to create device flow"))
        print(flow["message"])
        result = self._app.acquire_token_by_device_flow(flow)
        if "access_token" not in result:
            raise RuntimeError(
                result.get("error_description", result.get("error", "Device flow failed"))
            )
        logger.info("token_cache.device_flow_complete")
        return self._access_token(result)


def get_persistent_device_code_credential(tenant_id: str, client_id: str) -> TokenCredential:
    """Return a TokenCredential with a persistent token cache at ~/.calendar-relay/token_cache.json."""
    return MSALDelegatedCredential(tenant_id=tenant_id, client_id=client_id)
