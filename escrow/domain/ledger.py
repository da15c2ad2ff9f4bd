"""
Domain model for the per-order Ledger aggregate.

Entries are append-only: amount and type never change, only ``status``
moves forward (pending -> completed|failed, held -> completed|voided).
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from escrow.domain.errors import (
    DuplicateLedgerEntry,
    InvalidLedgerState,
    PaymentFailure,
    RefundExceedsPayment,
    ValidationError,
)
from escrow.domain.order import PaymentMethod, money


class EntryType(str, Enum):
    """Ledger entry type."""
    PAYMENT = "payment"
    COMMISSION = "commission"
    PAYOUT = "payout"
    REFUND = "refund"


class EntryStatus(str, Enum):
    PENDING = "pending"
    HELD = "held"
    COMPLETED = "completed"
    FAILED = "failed"
    VOIDED = "voided"


class PayeeRole(str, Enum):
    SELLER = "seller"
    COURIER = "courier"


_STATUS_MOVES = {
    EntryStatus.PENDING: frozenset({EntryStatus.COMPLETED, EntryStatus.FAILED}),
    EntryStatus.HELD: frozenset({EntryStatus.COMPLETED, EntryStatus.VOIDED}),
}

# Entries that still represent money (in flight or settled).
LIVE_STATUSES = frozenset({EntryStatus.PENDING, EntryStatus.HELD, EntryStatus.COMPLETED})


class LedgerEntry:
    """Ledger entry; only its status is mutable."""

    def __init__(
        self,
        id: UUID,
        order_id: UUID,
        entry_type: EntryType,
        amount: Decimal,
        status: EntryStatus,
        payee_id: UUID | None = None,
        payee_role: PayeeRole | None = None,
        request_id: str | None = None,
        reference: str = "",
        description: str = "",
        created_at: datetime | None = None,
    ):
        if Decimal(str(amount)) <= 0:
            raise ValidationError("Ledger entry amount must be positive")

        self.id = id
        self.order_id = order_id
        self._entry_type = EntryType(entry_type)
        self._amount = money(amount)
        self._status = EntryStatus(status)
        self.payee_id = payee_id
        self.payee_role = PayeeRole(payee_role) if payee_role else None
        self.request_id = request_id
        self.reference = reference
        self.description = description
        self.created_at = created_at

    @property
    def entry_type(self) -> EntryType:
        return self._entry_type

    @property
    def amount(self) -> Decimal:
        return self._amount

    @property
    def status(self) -> EntryStatus:
        return self._status

    @property
    def is_live(self) -> bool:
        return self._status in LIVE_STATUSES

    def move_to(self, target: EntryStatus) -> None:
        if target not in _STATUS_MOVES.get(self._status, frozenset()):
            raise InvalidLedgerState(
                f"{self._entry_type.value} entry {self.id} cannot move "
                f"from '{self._status.value}' to '{target.value}'"
            )
        self._status = target


class OrderLedger:
    """Ledger aggregate root: every money movement of one order."""

    def __init__(self, order_id: UUID, entries: list[LedgerEntry] | None = None):
        self.order_id = order_id
        self._entries = entries or []

    @property
    def entries(self) -> list[LedgerEntry]:
        """Get ledger entries (immutable)."""
        return list(self._entries)

    def find(self, entry_type: EntryType, *statuses: EntryStatus) -> list[LedgerEntry]:
        return [
            entry for entry in self._entries
            if entry.entry_type == entry_type and (not statuses or entry.status in statuses)
        ]

    def total(self, entry_type: EntryType, *statuses: EntryStatus) -> Decimal:
        return sum((entry.amount for entry in self.find(entry_type, *statuses)), Decimal("0.00"))

    def get_entry(self, entry_id: UUID) -> LedgerEntry:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        raise InvalidLedgerState(f"Entry {entry_id} does not belong to order {self.order_id}")

    def _append(self, entry_type: EntryType, amount: Decimal, status: EntryStatus, **fields) -> LedgerEntry:
        entry = LedgerEntry(
            id=uuid4(),
            order_id=self.order_id,
            entry_type=entry_type,
            amount=amount,
            status=status,
            **fields,
        )
        self._entries.append(entry)
        return entry

    # Payments

    def live_payment(self) -> LedgerEntry | None:
        live = [entry for entry in self.find(EntryType.PAYMENT) if entry.is_live]
        return live[0] if live else None

    def pending_payment(self) -> LedgerEntry | None:
        pending = self.find(EntryType.PAYMENT, EntryStatus.PENDING)
        return pending[0] if pending else None

    def record_payment(
        self,
        amount: Decimal,
        expected_amount: Decimal,
        method: PaymentMethod,
        request_id: str | None = None,
        description: str = "",
    ) -> LedgerEntry:
        """Record the buyer's payment; cash settles immediately, card waits for capture."""
        existing = self.live_payment()
        if existing is not None:
            if request_id and existing.request_id == request_id:
                return existing
            raise DuplicateLedgerEntry(f"Order {self.order_id} already has a payment entry")

        if money(amount) != money(expected_amount):
            raise PaymentFailure(
                f"Payment amount {money(amount)} does not match order total {money(expected_amount)}"
            )

        status = EntryStatus.COMPLETED if method == PaymentMethod.CASH else EntryStatus.PENDING
        return self._append(
            EntryType.PAYMENT,
            amount,
            status,
            request_id=request_id,
            description=description,
        )

    def settle_payment(self, success: bool, reference: str = "") -> LedgerEntry:
        """Gateway callback: pending payment -> completed/failed."""
        entry = self.pending_payment()
        if entry is None:
            raise InvalidLedgerState(f"Order {self.order_id} has no pending payment")
        entry.move_to(EntryStatus.COMPLETED if success else EntryStatus.FAILED)
        if reference:
            entry.reference = reference
        return entry

    # Commission

    def hold_commission(self, amount: Decimal, description: str = "") -> LedgerEntry | None:
        """Hold the platform commission; a zero commission records nothing."""
        if self.find(EntryType.COMMISSION, EntryStatus.HELD, EntryStatus.COMPLETED):
            raise DuplicateLedgerEntry(f"Commission already recorded for order {self.order_id}")
        if money(amount) == 0:
            return None
        return self._append(EntryType.COMMISSION, amount, EntryStatus.HELD, description=description)

    def release_commission(self, amount: Decimal | None = None, description: str = "") -> LedgerEntry | None:
        """Complete the held commission, optionally keeping only ``amount`` of it."""
        held = self.find(EntryType.COMMISSION, EntryStatus.HELD)
        if not held:
            if amount is not None and money(amount) == 0:
                return None
            raise InvalidLedgerState(f"No held commission for order {self.order_id}")
        entry = held[0]

        if amount is None or money(amount) == entry.amount:
            entry.move_to(EntryStatus.COMPLETED)
            return entry

        kept = money(amount)
        if kept > entry.amount or kept < 0:
            raise InvalidLedgerState(
                f"Cannot keep {kept} of held commission {entry.amount} for order {self.order_id}"
            )
        entry.move_to(EntryStatus.VOIDED)
        if kept == 0:
            return None
        return self._append(EntryType.COMMISSION, kept, EntryStatus.COMPLETED, description=description)

    def void_commission(self) -> LedgerEntry | None:
        held = self.find(EntryType.COMMISSION, EntryStatus.HELD)
        if not held:
            return None
        held[0].move_to(EntryStatus.VOIDED)
        return held[0]

    # Payouts

    def record_payout(
        self,
        payee_id: UUID,
        amount: Decimal,
        role: PayeeRole,
        description: str = "",
    ) -> LedgerEntry | None:
        """Queue a payout for the external payout processor; zero amounts are skipped."""
        if money(amount) == 0:
            return None
        if any(entry.payee_role == role and entry.is_live for entry in self.find(EntryType.PAYOUT)):
            raise DuplicateLedgerEntry(f"{role.value} payout already recorded for order {self.order_id}")
        return self._append(
            EntryType.PAYOUT,
            amount,
            EntryStatus.PENDING,
            payee_id=payee_id,
            payee_role=role,
            description=description,
        )

    def settle_payout(self, entry_id: UUID, success: bool, reference: str = "") -> LedgerEntry:
        entry = self.get_entry(entry_id)
        if entry.entry_type != EntryType.PAYOUT:
            raise InvalidLedgerState(f"Entry {entry_id} is not a payout")
        entry.move_to(EntryStatus.COMPLETED if success else EntryStatus.FAILED)
        if reference:
            entry.reference = reference
        return entry

    # Refunds

    def refundable_amount(self) -> Decimal:
        """Completed payment minus refunds already issued."""
        paid = self.total(EntryType.PAYMENT, EntryStatus.COMPLETED)
        refunded = sum(
            (entry.amount for entry in self.find(EntryType.REFUND) if entry.is_live),
            Decimal("0.00"),
        )
        return paid - refunded

    def record_refund(self, amount: Decimal, description: str = "") -> LedgerEntry:
        available = self.refundable_amount()
        if money(amount) > available:
            raise RefundExceedsPayment(
                f"Refund {money(amount)} exceeds refundable amount {available} for order {self.order_id}"
            )
        return self._append(EntryType.REFUND, amount, EntryStatus.COMPLETED, description=description)

    def distributed_amount(self) -> Decimal:
        """Money assigned out of escrow: kept commission, payouts and refunds."""
        return (
            self.total(EntryType.COMMISSION, EntryStatus.COMPLETED)
            + sum((e.amount for e in self.find(EntryType.PAYOUT) if e.is_live), Decimal("0.00"))
            + sum((e.amount for e in self.find(EntryType.REFUND) if e.is_live), Decimal("0.00"))
        )
