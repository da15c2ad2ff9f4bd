"""
Event serialization shared by the event store and the outbox.
"""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from uuid import UUID

from escrow.domain.events import DomainEvent


def _plain(value):
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def serialize_event(event: DomainEvent) -> dict:
    """Serialize event to a JSON-safe dict."""
    data = {
        "event_id": str(event.event_id),
        "aggregate_id": str(event.aggregate_id),
        "event_type": event.event_type,
        "version": event.version.value,
        "occurred_at": event.occurred_at,
    }
    for key, value in event.__dict__.items():
        if key not in data:
            data[key] = _plain(value)
    return data
