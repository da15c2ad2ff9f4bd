"""
Domain model for Dispute aggregate.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from escrow.domain.errors import InvalidTransition, ValidationError
from escrow.domain.order import money


class DisputeReason(str, Enum):
    NOT_RECEIVED = "not_received"
    WRONG_ITEM = "wrong_item"
    DAMAGED = "damaged"
    QUALITY = "quality"
    INCOMPLETE = "incomplete"
    OTHER = "other"


class DisputeStatus(str, Enum):
    OPEN = "open"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"
    CLOSED = "closed"


class DisputeResolution(str, Enum):
    FAVOR_BUYER = "favor_buyer"
    FAVOR_SELLER = "favor_seller"
    PARTIAL = "partial"


OPEN_STATUSES = frozenset({DisputeStatus.OPEN, DisputeStatus.IN_REVIEW})


class Dispute:
    """Dispute aggregate root."""

    def __init__(
        self,
        id: UUID | None = None,
        order_id: UUID | None = None,
        reporter_id: UUID | None = None,
        reason: DisputeReason = DisputeReason.OTHER,
        description: str = "",
        status: DisputeStatus = DisputeStatus.OPEN,
        resolution: DisputeResolution | None = None,
        resolution_note: str = "",
        refund_amount: Decimal | None = None,
        resolved_by: UUID | None = None,
        resolved_at: datetime | None = None,
        assigned_admin_id: UUID | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.order_id = order_id
        self.reporter_id = reporter_id
        self.reason = DisputeReason(reason)
        self.description = description
        self._status = DisputeStatus(status)
        self.resolution = DisputeResolution(resolution) if resolution else None
        self.resolution_note = resolution_note
        self.refund_amount = money(refund_amount) if refund_amount is not None else None
        self.resolved_by = resolved_by
        self.resolved_at = resolved_at
        self.assigned_admin_id = assigned_admin_id
        self.created_at = created_at
        self.updated_at = updated_at

    @classmethod
    def open(cls, order_id: UUID, reporter_id: UUID, reason: str, description: str = "") -> "Dispute":
        try:
            reason = DisputeReason(reason)
        except ValueError:
            raise ValidationError(f"Unknown dispute reason '{reason}'") from None
        return cls(order_id=order_id, reporter_id=reporter_id, reason=reason, description=description)

    @property
    def status(self) -> DisputeStatus:
        return self._status

    @property
    def is_open(self) -> bool:
        return self._status in OPEN_STATUSES

    def start_review(self, admin_id: UUID) -> None:
        if self._status != DisputeStatus.OPEN:
            raise InvalidTransition(f"Dispute {self.id} is '{self._status.value}', expected 'open'")
        self._status = DisputeStatus.IN_REVIEW
        self.assigned_admin_id = admin_id

    def resolve(
        self,
        resolution: DisputeResolution,
        note: str,
        admin_id: UUID,
        refund_amount: Decimal | None = None,
        at: datetime | None = None,
    ) -> None:
        """Record the admin decision; money movement is done by the caller."""
        if not self.is_open:
            raise InvalidTransition(f"Dispute {self.id} is already '{self._status.value}'")
        try:
            resolution = DisputeResolution(resolution)
        except ValueError:
            raise ValidationError(f"Unknown dispute resolution '{resolution}'") from None
        if resolution == DisputeResolution.PARTIAL and (
            refund_amount is None or Decimal(str(refund_amount)) <= 0
        ):
            raise ValidationError("Partial resolution requires a positive refund amount")

        self._status = DisputeStatus.RESOLVED
        self.resolution = resolution
        self.resolution_note = note
        self.refund_amount = money(refund_amount) if refund_amount is not None else None
        self.resolved_by = admin_id
        self.resolved_at = at or datetime.now(timezone.utc)

    def close(self) -> None:
        if self._status != DisputeStatus.RESOLVED:
            raise InvalidTransition(f"Only resolved disputes can be closed, dispute is '{self._status.value}'")
        self._status = DisputeStatus.CLOSED
