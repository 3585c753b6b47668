"""
auth/notifications.py -- Named events for the notification service.

The credential core never renders email content and never knows broker
details. It produces an event name and a payload; a NotificationPublisher
accepts it, and delivery happens asynchronously on the other side.

Two publishers ship with the service:
  RedisStreamPublisher -- XADD onto a Redis stream. "Accepted" means Redis
      returned an entry id. Connection errors propagate so that the caller's
      transaction rolls back.
  LoggingPublisher     -- local development fallback when no broker URL is
      configured. Logs the event name and a redacted recipient.

Payload checks run locally before anything is published: an incomplete
payload raises BadRequestError and the publisher is never called.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Protocol

from redis import Redis

from core.errors import BadRequestError

logger = logging.getLogger("authkeep.auth.notifications")

WELCOME_EVENT = "send-welcome-message"
RECOVERY_CODE_EVENT = "send-password-recovery-code"

_CODE_RE = re.compile(r"^\d{6}$")


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class NotificationPublisher(Protocol):
    def publish(self, event: str, payload: dict) -> None: ...


class RedisStreamPublisher:
    """Publish events as entries on a Redis stream consumed by the notification service."""

    def __init__(self, redis_url: str, stream: str, *, socket_timeout: float = 5.0) -> None:
        self.stream = stream
        self.client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def publish(self, event: str, payload: dict) -> None:
        entry_id = self.client.xadd(self.stream, {"pattern": event, "data": json.dumps(payload)})
        logger.debug("Published %s to stream %s as %s", event, self.stream, entry_id)

    def close(self) -> None:
        self.client.close()


class LoggingPublisher:
    """Dev-mode publisher: nothing leaves the process."""

    def publish(self, event: str, payload: dict) -> None:
        logger.info("notification_dev_mode event=%s to=%s", event, redact_email(payload.get("email", "")))

    def close(self) -> None:
        pass


class NotificationService:
    """Validates payloads and hands the two account events to a publisher."""

    def __init__(self, publisher: NotificationPublisher) -> None:
        self._publisher = publisher

    def queue_welcome_message(self, email: str | None, username: str | None) -> None:
        """Queue the welcome email for a newly created account.

        username may be None (accounts without one get a generic greeting),
        but the recipient must be present.
        """
        if not email:
            logger.error("queue_welcome_message: payload is missing the recipient")
            raise BadRequestError("Payload is missing")
        self._publisher.publish(WELCOME_EVENT, {"email": email, "username": username})
        logger.info("Queued %s for %s", WELCOME_EVENT, redact_email(email))

    def queue_password_recovery_code(self, email: str | None, code: str | None, username: str | None) -> None:
        """Queue the recovery-code email. The code must be exactly six digits."""
        if not email or not code or not _CODE_RE.match(code):
            logger.error("queue_password_recovery_code: payload is missing or malformed")
            raise BadRequestError("Payload is missing")
        self._publisher.publish(RECOVERY_CODE_EVENT, {"email": email, "code": code, "username": username})
        logger.info("Queued %s for %s", RECOVERY_CODE_EVENT, redact_email(email))


def build_publisher(redis_url: str, stream: str) -> RedisStreamPublisher | LoggingPublisher:
    """Pick the transport from configuration: Redis when a URL is set, logging otherwise.

    Settings refuses an empty URL outside DEBUG mode, so the logging
    fallback only ever runs in development.
    """
    if redis_url:
        logger.info("Notifications go to Redis stream %s", stream)
        return RedisStreamPublisher(redis_url, stream)
    logger.warning("NOTIFICATION_REDIS_URL not set -- notifications are only logged (DEBUG mode)")
    return LoggingPublisher()
