"""
Projector for updating read models and fanning out notifications from events.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from escrow.conf import escrow_setting
from escrow.infra.notifier import NotificationDispatcher, get_notification_dispatcher
from escrow.infra.outbox import OutboxEvent, OutboxRepository
from escrow.infra.read_models import OrderSummary


logger = logging.getLogger(__name__)


class Projector:
    """Projector for updating read models from domain events."""

    def __init__(
        self,
        outbox_repo: OutboxRepository | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ):
        self.outbox_repo = outbox_repo or OutboxRepository()
        self.dispatcher = dispatcher or get_notification_dispatcher()

    def process_outbox_events(self, limit: int = 100) -> int:
        """Process unprocessed outbox events."""
        events = self.outbox_repo.get_unprocessed_events(
            limit=limit,
            max_retries=escrow_setting("OUTBOX_MAX_RETRIES"),
        )
        processed_count = 0

        for event_orm in events:
            try:
                with transaction.atomic():
                    self._process_event(event_orm)
                    self.dispatcher.dispatch(event_orm.event_type, event_orm.event_data)
                    self.outbox_repo.mark_processed(event_orm.id)
                processed_count += 1
            except Exception as e:
                # Increment retry count, continue with the next event
                self.outbox_repo.increment_retry(event_orm.id, error=str(e))
                logger.error(
                    "projector_error",
                    extra={
                        "event_id": str(event_orm.id),
                        "event_type": event_orm.event_type,
                        "error": str(e),
                    },
                    exc_info=True,
                )

        return processed_count

    def _process_event(self, event_orm: OutboxEvent) -> None:
        """Process single event."""
        handler = getattr(self, f"_handle_{_snake(event_orm.event_type)}", None)
        if handler is not None:
            handler(event_orm.aggregate_id, event_orm.event_data)

    def _touch(self, order_id: UUID, event_data: dict, **fields) -> None:
        occurred_at = _parse_time(event_data.get("occurred_at"))
        OrderSummary.objects.filter(id=order_id).update(last_event_at=occurred_at, **fields)

    def _handle_order_created(self, order_id: UUID, event_data: dict) -> None:
        """Handle OrderCreated event."""
        occurred_at = _parse_time(event_data.get("occurred_at"))
        OrderSummary.objects.update_or_create(
            id=order_id,
            defaults={
                "order_number": event_data["order_number"],
                "buyer_id": UUID(event_data["buyer_id"]),
                "seller_id": UUID(event_data["seller_id"]),
                "status": "pending",
                "total_amount": Decimal(str(event_data["total_amount"])),
                "items_count": event_data.get("items_count", 0),
                "last_event_at": occurred_at,
                "created_at_read": occurred_at,
            }
        )

    def _handle_order_status_changed(self, order_id: UUID, event_data: dict) -> None:
        fields = {"status": event_data["to_status"]}
        if event_data["to_status"] == "disputed":
            fields["open_dispute"] = True
        self._touch(order_id, event_data, **fields)

    def _handle_courier_assigned(self, order_id: UUID, event_data: dict) -> None:
        self._touch(order_id, event_data, courier_id=UUID(event_data["courier_id"]))

    def _handle_ledger_entry_recorded(self, order_id: UUID, event_data: dict) -> None:
        if event_data["entry_type"] == "payment" and event_data["status"] == "completed":
            self._touch(order_id, event_data, is_paid=True)

    def _handle_ledger_entry_settled(self, order_id: UUID, event_data: dict) -> None:
        self._handle_ledger_entry_recorded(order_id, event_data)

    def _handle_dispute_resolved(self, dispute_id: UUID, event_data: dict) -> None:
        self._touch(UUID(event_data["order_id"]), event_data, open_dispute=False)


def _snake(event_type: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in event_type).lstrip("_")


def _parse_time(value: str | None) -> datetime:
    if value:
        return datetime.fromisoformat(value)
    return timezone.now()
