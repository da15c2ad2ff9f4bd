"""
Dashboard aggregates computed from a snapshot of orders and ledger entries.

All functions are pure: same snapshot in, same numbers out.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from escrow.domain.ledger import EntryStatus, EntryType, LedgerEntry, PayeeRole
from escrow.domain.order import Order, OrderStatus


ZERO = Decimal("0.00")


@dataclass(frozen=True)
class FinancialSummary:
    total_revenue: Decimal = ZERO
    platform_profit: Decimal = ZERO
    pending_profit: Decimal = ZERO
    pending_payouts: Decimal = ZERO
    pending_seller_payouts: Decimal = ZERO
    pending_courier_payouts: Decimal = ZERO
    total_refunds: Decimal = ZERO
    orders_by_status: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class PayeeBalance:
    payee_id: UUID
    available: Decimal = ZERO
    pending: Decimal = ZERO
    withdrawing: Decimal = ZERO
    withdrawn: Decimal = ZERO


def _sum(entries: Iterable[LedgerEntry]) -> Decimal:
    return sum((entry.amount for entry in entries), ZERO)


def _select(entries, entry_type: EntryType, status: EntryStatus, role: PayeeRole | None = None):
    return [
        entry for entry in entries
        if entry.entry_type == entry_type
        and entry.status == status
        and (role is None or entry.payee_role == role)
    ]


def orders_by_status(orders: Iterable[Order]) -> dict[str, int]:
    counts = Counter(order.status.value for order in orders)
    return {status.value: counts.get(status.value, 0) for status in OrderStatus}


def total_revenue(orders: Iterable[Order]) -> Decimal:
    return sum((order.total_amount for order in orders if order.status == OrderStatus.DELIVERED), ZERO)


def financial_summary(orders: Iterable[Order], entries: Iterable[LedgerEntry]) -> FinancialSummary:
    orders = list(orders)
    entries = list(entries)
    return FinancialSummary(
        total_revenue=total_revenue(orders),
        platform_profit=_sum(_select(entries, EntryType.COMMISSION, EntryStatus.COMPLETED)),
        pending_profit=_sum(_select(entries, EntryType.COMMISSION, EntryStatus.HELD)),
        pending_payouts=_sum(_select(entries, EntryType.PAYOUT, EntryStatus.PENDING)),
        pending_seller_payouts=_sum(_select(entries, EntryType.PAYOUT, EntryStatus.PENDING, PayeeRole.SELLER)),
        pending_courier_payouts=_sum(_select(entries, EntryType.PAYOUT, EntryStatus.PENDING, PayeeRole.COURIER)),
        total_refunds=_sum(_select(entries, EntryType.REFUND, EntryStatus.COMPLETED)),
        orders_by_status=orders_by_status(orders),
    )


def payee_balance(payee_id: UUID, entries: Iterable[LedgerEntry], withdrawals: Iterable = ()) -> PayeeBalance:
    """Completed payouts less withdrawals are available, pending payouts are still in flight.

    Pending withdrawals are reserved and do not count as available.
    """
    payouts = [
        entry for entry in entries
        if entry.entry_type == EntryType.PAYOUT and entry.payee_id == payee_id
    ]
    withdrawals = [w for w in withdrawals if w.payee_id == payee_id]
    withdrawing = _sum(w for w in withdrawals if w.status == "pending")
    withdrawn = _sum(w for w in withdrawals if w.status == "completed")
    return PayeeBalance(
        payee_id=payee_id,
        available=_sum(e for e in payouts if e.status == EntryStatus.COMPLETED) - withdrawing - withdrawn,
        pending=_sum(e for e in payouts if e.status == EntryStatus.PENDING),
        withdrawing=withdrawing,
        withdrawn=withdrawn,
    )
