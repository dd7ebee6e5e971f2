"""Microsoft Graph client construction and subscription management."""

from msgraph import GraphServiceClient

from src.auth import DELEGATED_SCOPES, get_persistent_device_code_credential
from src.graph.subscription import SubscriptionManager


def build_graph_client(tenant_id: str, client_id: str) -> GraphServiceClient:
    """Create a GraphServiceClient with delegated (device code + token cache) credentials."""
    credential = get_persistent_device_code_credential(tenant_id=tenant_id, client_id=client_id)
    return GraphServiceClient(credentials=credential, scopes=DELEGATED_SCOPES)


__all__ = [
    "build_graph_client",
    "SubscriptionManager",
]
