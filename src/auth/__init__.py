"""Authentication and token persistence for delegated Graph API access."""

from src.auth.token_cache import (
    DELEGATED_SCOPES,
    get_persistent_device_code_credential,
    TOKEN_CACHE_PATH,
)

__all__ = [
    "DELEGATED_SCOPES",
    "get_persistent_device_code_credential",
    "TOKEN_CACHE_PATH",
]
