"""
Event recording shared by the application services.
"""
from __future__ import annotations

import logging
from uuid import UUID, uuid4

from django.utils import timezone

from escrow.domain.events import (
    DomainEvent,
    LedgerEntryRecorded,
    LedgerEntrySettled,
    OrderStatusChanged,
)
from escrow.domain.ledger import LedgerEntry
from escrow.domain.order import Order, OrderStatus
from escrow.infra.event_store import EventStoreRepository
from escrow.infra.outbox import OutboxRepository


logger = logging.getLogger(__name__)


class EventRecorder:
    """Writes a domain event to the event store and the outbox in the current transaction."""

    def __init__(
        self,
        event_store_repo: EventStoreRepository | None = None,
        outbox_repo: OutboxRepository | None = None,
    ):
        self.event_store_repo = event_store_repo or EventStoreRepository()
        self.outbox_repo = outbox_repo or OutboxRepository()

    def record(self, event: DomainEvent, aggregate_type: str) -> None:
        event.occurred_at = timezone.now().isoformat()
        self.event_store_repo.save_event(event, aggregate_type)
        self.outbox_repo.add_event(event, aggregate_type)

    def status_changed(self, order: Order, previous: OrderStatus, actor_id: UUID | None = None, reason: str = "") -> None:
        self.record(
            OrderStatusChanged(
                event_id=uuid4(),
                aggregate_id=order.id,
                event_type="OrderStatusChanged",
                from_status=previous.value,
                to_status=order.status.value,
                actor_id=actor_id,
                reason=reason,
            ),
            "Order",
        )
        logger.info(
            "order_status_changed",
            extra={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "from_status": previous.value,
                "to_status": order.status.value,
            },
        )

    def entry_recorded(self, entry: LedgerEntry) -> None:
        self.record(
            LedgerEntryRecorded(
                event_id=uuid4(),
                aggregate_id=entry.order_id,
                event_type="LedgerEntryRecorded",
                entry_id=entry.id,
                entry_type=entry.entry_type.value,
                amount=entry.amount,
                status=entry.status.value,
                payee_id=entry.payee_id,
            ),
            "Order",
        )

    def entry_settled(self, entry: LedgerEntry) -> None:
        self.record(
            LedgerEntrySettled(
                event_id=uuid4(),
                aggregate_id=entry.order_id,
                event_type="LedgerEntrySettled",
                entry_id=entry.id,
                entry_type=entry.entry_type.value,
                amount=entry.amount,
                status=entry.status.value,
                payee_id=entry.payee_id,
            ),
            "Order",
        )
