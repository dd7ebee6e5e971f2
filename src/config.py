"""Configuration and settings."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
OUTPUT_DIR = PROJECT_ROOT / "output"

# Logging
LOG_DIR = OUTPUT_DIR / "logs"
LOG_FILE = LOG_DIR / "relay.jsonl"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
VERBOSE_LOGGING = os.getenv("VERBOSE_LOGGING", "false").lower() == "true"

# Ensure log directory exists
LOG_DIR.mkdir(parents=True, exist_ok=True)

# Graph API (delegated auth for subscription management)
AZURE_TENANT_ID = os.getenv("AZURE_TENANT_ID", "")
AZURE_CLIENT_ID = os.getenv("AZURE_CLIENT_ID", "")

# Relay HTTP endpoint
RELAY_PORT = int(os.getenv("RELAY_PORT", "4000"))
RELAY_ENDPOINT_PATH = "/" + os.getenv("RELAY_ENDPOINT_PATH", "/api/callback").strip("/")
WEBHOOK_URL = os.getenv("WEBHOOK_URL", "").rstrip("/")

# Shared secret echoed back in every notification. Per-subscription values
# live in CLIENT_STATE_CONFIG_PATH and take precedence over the default.
WEBHOOK_CLIENT_STATE = os.getenv("WEBHOOK_CLIENT_STATE", "")
CLIENT_STATE_CONFIG_PATH = Path(
    os.getenv("CLIENT_STATE_CONFIG_PATH", "").strip() or PROJECT_ROOT / "config" / "client_states.json"
)

# Dispatch (bounded queue + worker pool)
RELAY_QUEUE_MAX = int(os.getenv("RELAY_QUEUE_MAX", "200"))
RELAY_WORKER_COUNT = int(os.getenv("RELAY_WORKER_COUNT", "2"))
RELAY_SHUTDOWN_TIMEOUT = float(os.getenv("RELAY_SHUTDOWN_TIMEOUT", "10.0"))
# Extra time for sink calls already running when the drain timeout expires
RELAY_INFLIGHT_GRACE = float(os.getenv("RELAY_INFLIGHT_GRACE", "5.0"))

# Optional forwarding sink
RELAY_FORWARD_URL = os.getenv("RELAY_FORWARD_URL", "").strip()
RELAY_FORWARD_MAX_ATTEMPTS = int(os.getenv("RELAY_FORWARD_MAX_ATTEMPTS", "3"))
RELAY_FORWARD_BASE_DELAY = float(os.getenv("RELAY_FORWARD_BASE_DELAY", "0.5"))
RELAY_FORWARD_TIMEOUT = float(os.getenv("RELAY_FORWARD_TIMEOUT", "10.0"))

# Live-client push: per-subscriber buffer before messages are dropped
BROADCAST_SUBSCRIBER_QUEUE_MAX = int(os.getenv("BROADCAST_SUBSCRIBER_QUEUE_MAX", "100"))

# Graph subscription (calendar events of the signed-in user)
SUBSCRIPTION_RESOURCE = os.getenv("SUBSCRIPTION_RESOURCE", "me/events")
SUBSCRIPTION_CHANGE_TYPES = os.getenv("SUBSCRIPTION_CHANGE_TYPES", "created,updated,deleted")
SUBSCRIPTION_EXPIRATION_MINUTES = int(os.getenv("SUBSCRIPTION_EXPIRATION_MINUTES", "60"))
