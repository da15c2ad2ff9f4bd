"""
Transactional Outbox pattern implementation.
"""
from __future__ import annotations

import logging
from uuid import UUID, uuid4

from django.db import models
from django.db.models import F
from django.utils import timezone

from escrow.domain.events import DomainEvent
from escrow.infra.models import TimeStampedModel
from escrow.infra.serialization import serialize_event


logger = logging.getLogger(__name__)


class OutboxEvent(TimeStampedModel):
    """Outbox event for transactional outbox pattern."""
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    aggregate_id = models.UUIDField()
    aggregate_type = models.CharField(max_length=50)
    event_type = models.CharField(max_length=100)
    event_data = models.JSONField()
    processed = models.BooleanField(default=False)
    processed_at = models.DateTimeField(null=True, blank=True)
    retry_count = models.IntegerField(default=0)
    last_error = models.TextField(default="", blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("processed", "created_at")),
            models.Index(fields=("aggregate_id", "aggregate_type")),
        ]


class OutboxRepository:
    """Repository for outbox events."""

    def add_event(self, event: DomainEvent, aggregate_type: str) -> UUID:
        """Add event to outbox (within the caller's transaction)."""
        outbox_event = OutboxEvent.objects.create(
            aggregate_id=event.aggregate_id,
            aggregate_type=aggregate_type,
            event_type=event.event_type,
            event_data=serialize_event(event),
        )
        logger.debug(
            "outbox_event_added",
            extra={"event_type": event.event_type, "event_id": str(outbox_event.id)},
        )
        return outbox_event.id

    def get_unprocessed_events(self, limit: int = 100, max_retries: int | None = None) -> list[OutboxEvent]:
        """Get unprocessed events, oldest first."""
        queryset = OutboxEvent.objects.filter(processed=False)
        if max_retries is not None:
            queryset = queryset.filter(retry_count__lt=max_retries)
        return list(queryset.order_by("created_at")[:limit])

    def mark_processed(self, event_id: UUID) -> None:
        """Mark event as processed."""
        OutboxEvent.objects.filter(id=event_id).update(
            processed=True,
            processed_at=timezone.now(),
        )

    def increment_retry(self, event_id: UUID, error: str = "") -> None:
        """Increment retry count."""
        OutboxEvent.objects.filter(id=event_id).update(
            retry_count=F("retry_count") + 1,
            last_error=error,
        )
