import os
from datetime import time

API_KEY = os.getenv("WORKDESK_API_KEY", "workdesk-secret-key")

DATABASE_PATH = os.getenv("WORKDESK_DB_PATH", "workdesk.db")
DATABASE_URL = os.getenv("WORKDESK_DATABASE_URL", f"sqlite:///{DATABASE_PATH}")

HOST = os.getenv("WORKDESK_HOST", "127.0.0.1")
PORT = int(os.getenv("WORKDESK_PORT", "8000"))

LOG_LEVEL = os.getenv("WORKDESK_LOG_LEVEL", "INFO")

# Empty disables webhook delivery; notifications are then only logged.
NOTIFY_WEBHOOK_URL = os.getenv("WORKDESK_NOTIFY_WEBHOOK_URL", "")
NOTIFY_TIMEOUT = float(os.getenv("WORKDESK_NOTIFY_TIMEOUT", "5.0"))

SCHEDULER_ENABLED = os.getenv("WORKDESK_SCHEDULER_ENABLED", "true").lower() in (
    "1",
    "true",
    "yes",
)
SCHEDULER_TICK = float(os.getenv("WORKDESK_SCHEDULER_TICK", "30.0"))
# UTC time of day for the daily statistics run.
STATISTICS_TIME = time.fromisoformat(os.getenv("WORKDESK_STATISTICS_TIME", "01:00"))
CLEANUP_INTERVAL = float(os.getenv("WORKDESK_CLEANUP_INTERVAL", "86400"))

ACTIVITY_LOG_RETENTION_DAYS = int(
    os.getenv("WORKDESK_ACTIVITY_LOG_RETENTION_DAYS", "90")
)
