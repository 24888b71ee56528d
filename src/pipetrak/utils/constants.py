"""Application-wide constants."""

# ── Offline queue limits ─────────────────────────────────────────
MAX_QUEUE_SIZE = 50
MAX_FAILED_UPDATES = 10
MAX_RETRIES = 3

# Partial milestones are percentages
MIN_MILESTONE_VALUE = 0
MAX_MILESTONE_VALUE = 100

# Storage key of the persisted queue document
QUEUE_STORAGE_KEY = "pipetrak:offline-queue"

# ── Remote ───────────────────────────────────────────────────────
MILESTONE_RPC_NAME = "update_component_milestone"

HTTP_CONFLICT = 409
HTTP_UNAUTHORIZED = 401

# Seconds before the n-th retry (index 0 = first retry)
BACKOFF_BASE = 3
BACKOFF_UNIT_SECONDS = 1.0

# ── User-facing messages ─────────────────────────────────────────
MSG_INVALID_VALUE = "Invalid milestone value: must be 0-100"
MSG_QUEUE_FULL = (
    f"Update queue full ({MAX_QUEUE_SIZE}/{MAX_QUEUE_SIZE}) - "
    "please reconnect to sync pending updates"
)
MSG_STORAGE_FULL = (
    "Browser storage full - please clear browser data or sync updates"
)
MSG_MAX_RETRIES = "Max retries exhausted"
MSG_AUTH_EXPIRED = "Session expired - please sign in again to sync updates"
