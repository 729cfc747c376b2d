import logging
import threading

import httpx

from workdesk import config

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Fire-and-forget delivery of rule notifications to a webhook.

    Each notification is posted from a daemon thread; delivery failures are
    logged and never reach the caller.
    """

    def __init__(self, webhook_url: str | None = None, timeout: float | None = None):
        self.webhook_url = (
            webhook_url if webhook_url is not None else config.NOTIFY_WEBHOOK_URL
        )
        self.timeout = timeout if timeout is not None else config.NOTIFY_TIMEOUT

    def notify(self, user_id: int, email: str, subject: str, payload: dict):
        if not self.webhook_url:
            logger.info("Notification for user %s (no webhook): %s", user_id, subject)
            return
        message = {
            "user_id": user_id,
            "email": email,
            "subject": subject,
            "payload": payload,
        }
        thread = threading.Thread(target=self._deliver, args=(message,), daemon=True)
        thread.start()

    def _deliver(self, message: dict):
        try:
            resp = httpx.post(self.webhook_url, json=message, timeout=self.timeout)
            if resp.status_code >= 400:
                logger.error(
                    "Notification webhook rejected message for user %s: %s %s",
                    message["user_id"],
                    resp.status_code,
                    resp.text,
                )
        except httpx.HTTPError as e:
            logger.error(
                "Notification delivery failed for user %s: %s", message["user_id"], e
            )
