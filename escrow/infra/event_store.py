"""
Event store for Event Sourcing (lightweight).
"""
from __future__ import annotations

from uuid import UUID, uuid4

from django.db import models

from escrow.domain.events import DomainEvent, EventVersion
from escrow.infra.models import TimeStampedModel
from escrow.infra.serialization import serialize_event


class EventStore(TimeStampedModel):
    """Event store for domain events."""
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    aggregate_id = models.UUIDField()
    aggregate_type = models.CharField(max_length=50)  # "Order", "Dispute" or "Return"
    event_type = models.CharField(max_length=100)
    event_version = models.CharField(max_length=10, default=EventVersion.V1.value)
    event_data = models.JSONField()
    sequence_number = models.BigIntegerField()  # For ordering events

    class Meta:
        indexes = [
            models.Index(fields=("aggregate_id", "aggregate_type")),
            models.Index(fields=("aggregate_id", "aggregate_type", "sequence_number")),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=("aggregate_id", "aggregate_type", "sequence_number"),
                name="event_store_unique_sequence",
            ),
        ]
        ordering = ["sequence_number"]


class EventStoreRepository:
    """Repository for event store."""

    def save_event(self, event: DomainEvent, aggregate_type: str) -> None:
        """Save domain event to store. Callers hold the aggregate lock."""
        last_event = (
            EventStore.objects
            .filter(aggregate_id=event.aggregate_id, aggregate_type=aggregate_type)
            .order_by("-sequence_number")
            .first()
        )
        sequence_number = (last_event.sequence_number + 1) if last_event else 1

        EventStore.objects.create(
            aggregate_id=event.aggregate_id,
            aggregate_type=aggregate_type,
            event_type=event.event_type,
            event_version=event.version.value,
            event_data=serialize_event(event),
            sequence_number=sequence_number,
        )

    def get_events(self, aggregate_id: UUID, aggregate_type: str) -> list[dict]:
        """Get all events for aggregate."""
        events = (
            EventStore.objects
            .filter(aggregate_id=aggregate_id, aggregate_type=aggregate_type)
            .order_by("sequence_number")
        )
        return [self._deserialize_event(e) for e in events]

    def _deserialize_event(self, event_orm: EventStore) -> dict:
        """Deserialize event from store."""
        return {
            "id": str(event_orm.id),
            "aggregate_id": str(event_orm.aggregate_id),
            "event_type": event_orm.event_type,
            "version": event_orm.event_version,
            "data": event_orm.event_data,
            "sequence_number": event_orm.sequence_number,
            "occurred_at": event_orm.event_data.get("occurred_at") or event_orm.created_at.isoformat(),
        }
