"""
Card payment capture and gateway callbacks.
"""
from __future__ import annotations

import logging
from uuid import UUID

from django.db import transaction

from escrow.domain.errors import (
    InvalidLedgerState,
    InvalidTransition,
    NotFound,
    PaymentFailure,
    ValidationError,
)
from escrow.domain.ledger import EntryStatus, EntryType, LedgerEntry
from escrow.domain.order import Order, OrderStatus, PaymentMethod
from escrow.infra.gateway import PaymentGateway, get_payment_gateway
from escrow.infra.locks import order_lock
from escrow.infra.repositories import OrderRepository
from escrow.services.ledger import LedgerService


logger = logging.getLogger(__name__)


class PaymentService:
    """Service for card payments."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        ledger_service: LedgerService | None = None,
        gateway: PaymentGateway | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.ledger_service = ledger_service or LedgerService(order_repo=self.order_repo)
        self.gateway = gateway or get_payment_gateway()

    def _get_order(self, order_id: UUID) -> Order:
        order = self.order_repo.get_by_id(order_id, for_update=True)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    def capture_payment(self, order_id: UUID, request_id: str | None = None) -> LedgerEntry:
        """Record a pending card payment, then request the capture from the gateway.

        The gateway is called outside the ledger transaction; its answer is
        applied through ``on_payment_confirmed`` / ``on_payment_failed``.
        """
        with transaction.atomic(), order_lock(order_id):
            order = self._get_order(order_id)
            if order.payment_method != PaymentMethod.CARD:
                raise ValidationError("Only card orders are captured through the gateway")
            if order.status != OrderStatus.PENDING:
                raise InvalidTransition(
                    f"Payment can only be captured for pending orders, order is '{order.status.value}'"
                )
            ledger, before = self.ledger_service.load(order_id)
            entry = ledger.record_payment(
                amount=order.total_amount,
                expected_amount=order.total_amount,
                method=PaymentMethod.CARD,
                request_id=request_id,
                description=f"Card payment for order {order.order_number}",
            )
            if entry.id in before:
                return entry
            self.ledger_service.commit(ledger, before)
            amount = order.total_amount

        logger.info("payment_capture_requested", extra={"order_id": str(order_id), "request_id": request_id})
        result = self.gateway.capture_payment(order_id, amount)

        if not result.success:
            self.on_payment_failed(order_id, result.reference, result.error)
            raise PaymentFailure(f"Payment capture failed: {result.error or 'declined'}")
        if not result.pending:
            return self.on_payment_confirmed(order_id, result.reference)
        return entry

    @transaction.atomic
    def on_payment_confirmed(self, order_id: UUID, reference: str = "") -> LedgerEntry:
        """Gateway callback: capture succeeded."""
        with order_lock(order_id):
            order = self._get_order(order_id)
            ledger, before = self.ledger_service.load(order_id)

            if ledger.pending_payment() is None:
                completed = ledger.find(EntryType.PAYMENT, EntryStatus.COMPLETED)
                if completed and (not reference or completed[-1].reference == reference):
                    # Repeated callback
                    return completed[-1]
                raise InvalidLedgerState(f"Order {order.order_number} has no pending payment to confirm")

            entry = ledger.settle_payment(True, reference)
            order.mark_paid()
            if order.status == OrderStatus.CANCELLED:
                ledger.record_refund(
                    entry.amount,
                    description=f"Refund for payment confirmed after cancellation of order {order.order_number}",
                )
            self.order_repo.save(order)
            self.ledger_service.commit(ledger, before)

        logger.info(
            "payment_confirmed",
            extra={"order_id": str(order_id), "status": entry.status.value},
        )
        return entry

    @transaction.atomic
    def on_payment_failed(self, order_id: UUID, reference: str = "", reason: str = "") -> LedgerEntry:
        """Gateway callback: capture failed. The order stays pending and may be paid again."""
        with order_lock(order_id):
            self._get_order(order_id)
            ledger, before = self.ledger_service.load(order_id)
            entry = ledger.settle_payment(False, reference)
            self.ledger_service.commit(ledger, before)

        logger.warning(
            "payment_failed",
            extra={"order_id": str(order_id), "error": reason},
        )
        return entry
