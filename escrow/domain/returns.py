"""
Domain model for post-delivery returns.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from escrow.domain.errors import AccessDenied, InvalidTransition, ValidationError
from escrow.domain.order import Order, OrderStatus, money


class ReturnReason(str, Enum):
    DEFECTIVE = "defective"
    WRONG_ITEM = "wrong_item"
    NOT_AS_DESCRIBED = "not_as_described"
    CHANGED_MIND = "changed_mind"
    DAMAGED = "damaged"
    OTHER = "other"


class ReturnStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SHIPPED = "shipped"
    RECEIVED = "received"
    REFUNDED = "refunded"
    CLOSED = "closed"


RETURN_TRANSITIONS: dict[ReturnStatus, frozenset[ReturnStatus]] = {
    ReturnStatus.PENDING: frozenset({ReturnStatus.APPROVED, ReturnStatus.REJECTED}),
    ReturnStatus.APPROVED: frozenset({ReturnStatus.SHIPPED}),
    ReturnStatus.SHIPPED: frozenset({ReturnStatus.RECEIVED}),
    ReturnStatus.RECEIVED: frozenset({ReturnStatus.REFUNDED}),
    ReturnStatus.REFUNDED: frozenset({ReturnStatus.CLOSED}),
    ReturnStatus.REJECTED: frozenset({ReturnStatus.CLOSED}),
}


class ReturnRequest:
    """Return aggregate root. Never touches the order status."""

    def __init__(
        self,
        id: UUID | None = None,
        order_id: UUID | None = None,
        buyer_id: UUID | None = None,
        seller_id: UUID | None = None,
        reason: ReturnReason = ReturnReason.OTHER,
        description: str = "",
        status: ReturnStatus = ReturnStatus.PENDING,
        refund_amount: Decimal | None = None,
        seller_response: str = "",
        admin_notes: str = "",
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.order_id = order_id
        self.buyer_id = buyer_id
        self.seller_id = seller_id
        self.reason = ReturnReason(reason)
        self.description = description
        self._status = ReturnStatus(status)
        self.refund_amount = money(refund_amount) if refund_amount is not None else None
        self.seller_response = seller_response
        self.admin_notes = admin_notes
        self.created_at = created_at
        self.updated_at = updated_at

    @classmethod
    def request(cls, order: Order, buyer_id: UUID, reason: str, description: str) -> "ReturnRequest":
        """Buyer asks to return a delivered order."""
        if order.buyer_id != buyer_id:
            raise AccessDenied("You can only request returns for your own orders")
        if order.status != OrderStatus.DELIVERED:
            raise InvalidTransition("Returns can only be requested for delivered orders")
        if not description:
            raise ValidationError("Return description is required")
        try:
            reason = ReturnReason(reason)
        except ValueError:
            raise ValidationError(f"Unknown return reason '{reason}'") from None
        return cls(
            order_id=order.id,
            buyer_id=buyer_id,
            seller_id=order.seller_id,
            reason=reason,
            description=description,
        )

    @property
    def status(self) -> ReturnStatus:
        return self._status

    def _move(self, target: ReturnStatus) -> ReturnStatus:
        if target not in RETURN_TRANSITIONS.get(self._status, frozenset()):
            raise InvalidTransition(
                f"Return {self.id} cannot move from '{self._status.value}' to '{target.value}'"
            )
        previous = self._status
        self._status = target
        return previous

    def approve(self, refund_amount: Decimal, response: str = "") -> ReturnStatus:
        if Decimal(str(refund_amount)) <= 0:
            raise ValidationError("Refund amount must be positive")
        previous = self._move(ReturnStatus.APPROVED)
        self.refund_amount = money(refund_amount)
        self.seller_response = response or self.seller_response
        return previous

    def reject(self, response: str = "") -> ReturnStatus:
        previous = self._move(ReturnStatus.REJECTED)
        self.seller_response = response or self.seller_response
        return previous

    def mark_shipped(self) -> ReturnStatus:
        return self._move(ReturnStatus.SHIPPED)

    def mark_received(self) -> ReturnStatus:
        return self._move(ReturnStatus.RECEIVED)

    def mark_refunded(self) -> ReturnStatus:
        return self._move(ReturnStatus.REFUNDED)

    def close(self, notes: str = "") -> ReturnStatus:
        previous = self._move(ReturnStatus.CLOSED)
        self.admin_notes = notes or self.admin_notes
        return previous
