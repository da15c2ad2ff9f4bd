"""
Settlement rules: how an order's escrow is distributed or returned.

Pure functions over an ``Order`` and its ``OrderLedger``; persistence and
locking are the caller's job.
"""
from __future__ import annotations

from decimal import Decimal

from escrow.domain.errors import InvalidLedgerState, ValidationError
from escrow.domain.ledger import EntryStatus, EntryType, LedgerEntry, OrderLedger, PayeeRole
from escrow.domain.order import Order, OrderStatus, PaymentMethod, money


def collect_cash_on_delivery(order: Order, ledger: OrderLedger) -> LedgerEntry | None:
    """Cash is handed to the courier at the door."""
    if order.payment_method != PaymentMethod.CASH or order.is_paid:
        return None
    entry = ledger.record_payment(
        amount=order.total_amount,
        expected_amount=order.total_amount,
        method=PaymentMethod.CASH,
        description=f"Cash collected for order {order.order_number}",
    )
    order.mark_paid()
    return entry


def _ensure_deliverable(order: Order) -> None:
    if order.status != OrderStatus.DELIVERED:
        raise InvalidLedgerState(
            f"Funds are released only for delivered orders, order {order.order_number} is '{order.status.value}'"
        )
    if order.courier_id is None:
        raise InvalidLedgerState(f"Order {order.order_number} has no courier to pay")
    if not order.is_paid:
        raise InvalidLedgerState(f"Order {order.order_number} is not paid")


def distribute_funds(order: Order, ledger: OrderLedger) -> list[LedgerEntry]:
    """Delivered order: keep commission, pay the seller and the courier."""
    _ensure_deliverable(order)
    entries = [
        ledger.release_commission(
            # Nothing was held when the commission rounded to zero
            None if order.platform_commission > 0 else order.platform_commission,
            description=f"Commission for order {order.order_number}",
        ),
        ledger.record_payout(
            order.seller_id,
            order.seller_net_amount,
            PayeeRole.SELLER,
            description=f"Seller payout for order {order.order_number}",
        ),
        ledger.record_payout(
            order.courier_id,
            order.courier_fee,
            PayeeRole.COURIER,
            description=f"Courier fee for order {order.order_number}",
        ),
    ]
    return [entry for entry in entries if entry is not None]


def reverse_funds(order: Order, ledger: OrderLedger) -> list[LedgerEntry]:
    """Cancelled order: void held commission and refund everything captured."""
    entries = []
    voided = ledger.void_commission()
    if voided is not None:
        entries.append(voided)
    refundable = ledger.refundable_amount()
    if refundable > 0:
        entries.append(
            ledger.record_refund(refundable, description=f"Refund for cancelled order {order.order_number}")
        )
    return entries


def split_partial_refund(order: Order, refund_amount: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(commission_kept, seller_payout)`` for a partial refund.

    Commission shrinks with the refunded share of the subtotal; the courier
    fee is untouched.
    """
    refund = money(refund_amount)
    subtotal = order.subtotal
    if not Decimal("0") < refund < subtotal:
        raise ValidationError(f"Partial refund must be between 0 and the subtotal {subtotal}")
    commission_kept = money(order.platform_commission * (subtotal - refund) / subtotal)
    seller_payout = subtotal - refund - commission_kept
    return commission_kept, seller_payout


def distribute_partial(order: Order, ledger: OrderLedger, refund_amount: Decimal) -> list[LedgerEntry]:
    """Delivered after a partial dispute resolution."""
    commission_kept, seller_payout = split_partial_refund(order, refund_amount)
    _ensure_deliverable(order)
    entries = [
        ledger.record_refund(
            money(refund_amount),
            description=f"Partial refund for order {order.order_number}",
        ),
        ledger.release_commission(
            commission_kept,
            description=f"Reduced commission for order {order.order_number}",
        ),
        ledger.record_payout(
            order.seller_id,
            seller_payout,
            PayeeRole.SELLER,
            description=f"Seller payout for order {order.order_number}",
        ),
        ledger.record_payout(
            order.courier_id,
            order.courier_fee,
            PayeeRole.COURIER,
            description=f"Courier fee for order {order.order_number}",
        ),
    ]
    return [entry for entry in entries if entry is not None]


def check_conservation(order: Order, ledger: OrderLedger) -> bool:
    """Everything captured for a delivered order has been assigned out of escrow."""
    return ledger.distributed_amount() == ledger.total(EntryType.PAYMENT, EntryStatus.COMPLETED) == order.total_amount
