"""
Notification dispatchers fed by the outbox projector.
"""
from __future__ import annotations

import logging

import requests
from django.utils.module_loading import import_string

from escrow.conf import escrow_setting
from escrow.infra.pii_masker import mask_pii_in_dict
from escrow.infra.retry import retry_with_backoff


logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def dispatch(self, event_type: str, payload: dict) -> None:
        raise NotImplementedError


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes notifications to the log (development default)."""

    def dispatch(self, event_type: str, payload: dict) -> None:
        logger.info(
            "notification_dispatched",
            extra={"event_type": event_type, "order_id": mask_pii_in_dict(payload).get("order_id")},
        )


class WebhookNotificationDispatcher(NotificationDispatcher):
    """POSTs events to a webhook, retrying transient failures."""

    def __init__(self, url: str | None = None, timeout: float | None = None, session: requests.Session | None = None):
        self.url = url or escrow_setting("NOTIFICATION_WEBHOOK_URL")
        self.timeout = timeout or escrow_setting("NOTIFICATION_WEBHOOK_TIMEOUT")
        self.session = session or requests.Session()

    @retry_with_backoff(max_retries=2, initial_delay=0.5, max_delay=5.0, exceptions=(requests.RequestException,))
    def dispatch(self, event_type: str, payload: dict) -> None:
        response = self.session.post(
            self.url,
            json={"type": event_type, "data": payload},
            timeout=self.timeout,
        )
        response.raise_for_status()


def get_notification_dispatcher() -> NotificationDispatcher:
    return import_string(escrow_setting("NOTIFICATION_DISPATCHER"))()
