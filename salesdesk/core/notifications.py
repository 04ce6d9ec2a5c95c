# ------------------------------------------------------------------------
# File: notifications.py
# Location: salesdesk/core/notifications.py
# Description:
#     Builds the effects that follow a committed transition: the append-only
#     activity log row, the real-time event and the outbound email. The
#     real-time sinks are registered explicitly at startup.
# ------------------------------------------------------------------------

import json
import time

from salesdesk.core.dispatcher import Effect
from salesdesk.db.models import ActivityLog, User
from salesdesk.integrations.email import render_email
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.core.notifications", "salesdesk.log")

ADMIN_ROLES = ("admin", "super_admin")


class ActivityLogger:
    """Writes audit rows. Retried with backoff because the audit trail should eventually land."""

    def __init__(self, gateway, max_attempts=3, backoff_seconds=1.0):
        self.gateway = gateway
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

    def log(self, action, entity_type, entity_id, user_id=None, details=None, ip_address=None, user_agent=None):
        for attempt in range(1, self.max_attempts + 1):
            try:
                self.gateway.insert(ActivityLog(
                    user_id=user_id,
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    details=json.dumps(details) if details else None,
                    ip_address=ip_address,
                    user_agent=user_agent,
                ))
                return
            except Exception as e:
                logger.warning("Activity log retry %d failed for %s %s: %s", attempt, action, entity_id, e)
                if attempt == self.max_attempts:
                    raise
                time.sleep(self.backoff_seconds * 2 ** (attempt - 1))


class Notifier:
    def __init__(self, gateway, dispatcher, email_sender, activity_logger):
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.email_sender = email_sender
        self.activity_logger = activity_logger
        self.sinks = []

    def register_sink(self, sink):
        self.sinks.append(sink)
        logger.info("Registered notification sink %s", type(sink).__name__)

    def dispatch(self, *effects):
        self.dispatcher.dispatch(*effects)

    # -- effect builders ---------------------------------------------------

    def activity_effect(self, action, entity_type, entity_id, metadata=None, **kwargs):
        metadata = metadata or {}
        return Effect(
            name=f"activity:{action}",
            func=self.activity_logger.log,
            args=(action, entity_type, entity_id),
            kwargs={
                "ip_address": metadata.get("ip_address"),
                "user_agent": metadata.get("user_agent"),
                **kwargs,
            },
        )

    def email_effect(self, to, template_name, **context):
        if not to:
            return None
        return Effect(name=f"email:{template_name}", func=self._send_email, args=(to, template_name), kwargs=context)

    def user_email_effect(self, user_id, template_name, **context):
        return Effect(name=f"email:{template_name}", func=self._send_user_email, args=(user_id, template_name), kwargs=context)

    def realtime_effect(self, user_ids, event, payload):
        return Effect(name=f"realtime:{event}", func=self._emit, args=(list(user_ids), event, payload))

    def staff_realtime_effect(self, event, payload, extra_user_ids=()):
        """Real-time event to every admin plus the given users."""
        return Effect(name=f"realtime:{event}", func=self._emit_to_staff, args=(event, payload, tuple(extra_user_ids)))

    # -- effect bodies -----------------------------------------------------

    def _send_email(self, to, template_name, **context):
        subject, body = render_email(template_name, **context)
        self.email_sender.send(to, subject, body)

    def _send_user_email(self, user_id, template_name, **context):
        user = self.gateway.read(User, user_id) if user_id else None
        if user is None or not user.email:
            logger.warning("No email for user %s, skipping %s", user_id, template_name)
            return
        self._send_email(user.email, template_name, **context)

    def _emit(self, user_ids, event, payload):
        if not user_ids:
            return
        for sink in self.sinks:
            sink.emit(user_ids, event, payload)

    def _emit_to_staff(self, event, payload, extra_user_ids):
        user_ids = [user.id for user in self.gateway.select(User, User.role.in_(ADMIN_ROLES))]
        for user_id in extra_user_ids:
            if user_id and user_id not in user_ids:
                user_ids.append(user_id)
        self._emit(user_ids, event, payload)
