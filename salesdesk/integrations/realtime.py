# File: salesdesk/integrations/realtime.py

import requests

from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.integrations.realtime", "salesdesk.log")


class NotificationSink:
    """Pushes an event to the sessions of the given users."""

    def emit(self, user_ids, event, payload):
        raise NotImplementedError


class WebhookNotificationSink(NotificationSink):
    """Forwards events to the fan-out service over HTTP."""

    def __init__(self, webhook_url, disabled=False, timeout=5):
        self.webhook_url = webhook_url
        self.disabled = disabled
        self.timeout = timeout

    def emit(self, user_ids, event, payload):
        if self.disabled or not self.webhook_url:
            logger.info("Webhook disabled - would have sent %s to %d user(s)", event, len(user_ids))
            return
        response = requests.post(
            self.webhook_url,
            json={"event": event, "user_ids": list(user_ids), "payload": payload},
            timeout=self.timeout,
        )
        response.raise_for_status()
        logger.info("Webhook sent: %s %s", event, response.status_code)
