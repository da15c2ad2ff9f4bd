"""
Ledger operations, serialized per order.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from django.db import transaction

from escrow.domain.errors import InvalidLedgerState, NotFound
from escrow.domain.ledger import EntryStatus, LedgerEntry, OrderLedger, PayeeRole
from escrow.domain.order import Order, OrderStatus
from escrow.infra.locks import order_lock
from escrow.infra.repositories import LedgerRepository, OrderRepository
from escrow.services.events import EventRecorder


logger = logging.getLogger(__name__)


def snapshot(ledger: OrderLedger) -> dict[UUID, EntryStatus]:
    return {entry.id: entry.status for entry in ledger.entries}


class LedgerService:
    """Service for ledger operations."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        ledger_repo: LedgerRepository | None = None,
        events: EventRecorder | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.ledger_repo = ledger_repo or LedgerRepository()
        self.events = events or EventRecorder()

    def get_ledger(self, order_id: UUID) -> OrderLedger:
        return self.ledger_repo.get_for_order(order_id)

    def load(self, order_id: UUID) -> tuple[OrderLedger, dict[UUID, EntryStatus]]:
        ledger = self.ledger_repo.get_for_order(order_id)
        return ledger, snapshot(ledger)

    def commit(self, ledger: OrderLedger, before: dict[UUID, EntryStatus]) -> list[LedgerEntry]:
        """Persist changes since ``before`` and emit one event per new or moved entry."""
        created = self.ledger_repo.save(ledger)
        for entry in ledger.entries:
            if entry.id not in before:
                continue
            if before[entry.id] != entry.status:
                self.events.entry_settled(entry)
        for entry in created:
            self.events.entry_recorded(entry)
            logger.info(
                "ledger_entry_recorded",
                extra={
                    "order_id": str(entry.order_id),
                    "entry_type": entry.entry_type.value,
                    "status": entry.status.value,
                },
            )
        return created

    def _get_order(self, order_id: UUID) -> Order:
        order = self.order_repo.get_by_id(order_id, for_update=True)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    def _ensure_delivered(self, order: Order) -> None:
        if order.status != OrderStatus.DELIVERED:
            raise InvalidLedgerState(
                f"Order {order.order_number} is '{order.status.value}', funds are released only after delivery"
            )

    @transaction.atomic
    def record_payment(self, order_id: UUID, amount: Decimal, request_id: str | None = None) -> LedgerEntry:
        """Record the buyer's payment (completed for cash, pending for card)."""
        with order_lock(order_id):
            order = self._get_order(order_id)
            ledger, before = self.load(order_id)
            entry = ledger.record_payment(
                amount=amount,
                expected_amount=order.total_amount,
                method=order.payment_method,
                request_id=request_id,
                description=f"Payment for order {order.order_number}",
            )
            if entry.id in before:
                return entry
            if entry.status == EntryStatus.COMPLETED and not order.is_paid:
                order.mark_paid()
                self.order_repo.save(order)
            self.commit(ledger, before)
            return entry

    @transaction.atomic
    def hold_commission(self, order_id: UUID, amount: Decimal) -> LedgerEntry | None:
        with order_lock(order_id):
            order = self._get_order(order_id)
            ledger, before = self.load(order_id)
            entry = ledger.hold_commission(amount, description=f"Commission held for order {order.order_number}")
            self.commit(ledger, before)
            return entry

    @transaction.atomic
    def release_commission(self, order_id: UUID, amount: Decimal | None = None) -> LedgerEntry | None:
        with order_lock(order_id):
            order = self._get_order(order_id)
            self._ensure_delivered(order)
            ledger, before = self.load(order_id)
            entry = ledger.release_commission(amount, description=f"Commission for order {order.order_number}")
            self.commit(ledger, before)
            return entry

    @transaction.atomic
    def void_commission(self, order_id: UUID) -> LedgerEntry | None:
        with order_lock(order_id):
            self._get_order(order_id)
            ledger, before = self.load(order_id)
            entry = ledger.void_commission()
            self.commit(ledger, before)
            return entry

    @transaction.atomic
    def record_payout(self, order_id: UUID, payee_id: UUID, amount: Decimal, role: PayeeRole) -> LedgerEntry | None:
        with order_lock(order_id):
            order = self._get_order(order_id)
            self._ensure_delivered(order)
            ledger, before = self.load(order_id)
            entry = ledger.record_payout(
                payee_id,
                amount,
                PayeeRole(role),
                description=f"{PayeeRole(role).value.capitalize()} payout for order {order.order_number}",
            )
            self.commit(ledger, before)
            return entry

    @transaction.atomic
    def settle_payout(self, entry_id: UUID, success: bool, reference: str = "") -> LedgerEntry:
        """Payout processor confirmation."""
        entry = self.ledger_repo.get_entry(entry_id)
        if entry is None:
            raise NotFound(f"Ledger entry {entry_id} not found")
        with order_lock(entry.order_id):
            ledger, before = self.load(entry.order_id)
            settled = ledger.settle_payout(entry_id, success, reference)
            self.commit(ledger, before)
            return settled

    @transaction.atomic
    def record_refund(self, order_id: UUID, amount: Decimal, description: str = "") -> LedgerEntry:
        with order_lock(order_id):
            order = self._get_order(order_id)
            ledger, before = self.load(order_id)
            entry = ledger.record_refund(amount, description=description or f"Refund for order {order.order_number}")
            self.commit(ledger, before)
            return entry
