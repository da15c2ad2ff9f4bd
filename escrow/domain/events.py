"""
Domain events for Event Sourcing (lightweight).
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID


class EventVersion(str, Enum):
    """Event version for upcasting."""
    V1 = "1.0"


@dataclass
class DomainEvent:
    """Base domain event."""
    event_id: UUID
    aggregate_id: UUID
    event_type: str
    # version and occurred_at are set in subclasses to avoid dataclass field ordering issues


# Order events
@dataclass
class OrderCreated(DomainEvent):
    """Order placed at checkout."""
    order_number: str
    buyer_id: UUID
    seller_id: UUID
    total_amount: Decimal
    items_count: int
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""


@dataclass
class OrderStatusChanged(DomainEvent):
    """Order moved along the lifecycle."""
    from_status: str
    to_status: str
    actor_id: UUID | None = None
    reason: str = ""
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""


@dataclass
class CourierAssigned(DomainEvent):
    courier_id: UUID
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""


@dataclass
class HandoverTokenIssued(DomainEvent):
    """Pickup or delivery token issued; recipients learn the code out of band."""
    kind: str
    recipient_id: UUID | None = None
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""


# Ledger events
@dataclass
class LedgerEntryRecorded(DomainEvent):
    entry_id: UUID
    entry_type: str
    amount: Decimal
    status: str
    payee_id: UUID | None = None
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""


@dataclass
class LedgerEntrySettled(DomainEvent):
    """Ledger entry status moved (completed, failed or voided)."""
    entry_id: UUID
    entry_type: str
    amount: Decimal
    status: str
    payee_id: UUID | None = None
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""


# Dispute / return events
@dataclass
class DisputeOpened(DomainEvent):
    order_id: UUID
    reporter_id: UUID
    reason: str
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""


@dataclass
class DisputeResolved(DomainEvent):
    order_id: UUID
    resolution: str
    resolved_by: UUID
    refund_amount: Decimal | None = None
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""


@dataclass
class ReturnStatusChanged(DomainEvent):
    order_id: UUID
    from_status: str
    to_status: str
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""


# Withdrawal events
@dataclass
class WithdrawalStatusChanged(DomainEvent):
    payee_id: UUID
    amount: Decimal
    from_status: str
    to_status: str
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""
