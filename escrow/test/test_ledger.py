"""
Unit tests for the order ledger and settlement rules.
"""
from decimal import Decimal
from uuid import uuid4

from django.test import TestCase

from escrow.domain.errors import (
    DuplicateLedgerEntry,
    InvalidLedgerState,
    PaymentFailure,
    RefundExceedsPayment,
    ValidationError,
)
from escrow.domain.ledger import EntryStatus, EntryType, LedgerEntry, OrderLedger, PayeeRole
from escrow.domain.order import Order, OrderItem, PaymentMethod
from escrow.domain.settlement import (
    check_conservation,
    collect_cash_on_delivery,
    distribute_funds,
    distribute_partial,
    reverse_funds,
    split_partial_refund,
)


def delivered_order(payment_method=PaymentMethod.CASH):
    order = Order.place(
        buyer_id=uuid4(),
        seller_id=uuid4(),
        items=[OrderItem(product_id=uuid4(), quantity=2, unit_price=Decimal("50000.00"))],
        payment_method=payment_method,
        courier_fee=Decimal("15000.00"),
    )
    if payment_method == PaymentMethod.CARD:
        order.mark_paid()
    courier = uuid4()
    order.confirm()
    order.pick_up(courier, "photo.jpg")
    order.depart(courier)
    order.deliver()
    return order


class LedgerEntryTest(TestCase):
    """Tests for LedgerEntry."""

    def test_amount_must_be_positive(self):
        with self.assertRaises(ValidationError):
            LedgerEntry(id=uuid4(), order_id=uuid4(), entry_type=EntryType.PAYMENT, amount=Decimal("0"), status=EntryStatus.PENDING)

    def test_status_moves_forward_only(self):
        entry = LedgerEntry(
            id=uuid4(), order_id=uuid4(), entry_type=EntryType.PAYOUT,
            amount=Decimal("10.00"), status=EntryStatus.PENDING,
        )
        entry.move_to(EntryStatus.COMPLETED)
        with self.assertRaises(InvalidLedgerState):
            entry.move_to(EntryStatus.PENDING)
        with self.assertRaises(InvalidLedgerState):
            entry.move_to(EntryStatus.FAILED)


class OrderLedgerTest(TestCase):
    """Tests for OrderLedger aggregate."""

    def setUp(self):
        self.ledger = OrderLedger(order_id=uuid4())

    def test_cash_payment_is_completed(self):
        entry = self.ledger.record_payment(Decimal("100.00"), Decimal("100.00"), PaymentMethod.CASH)
        self.assertEqual(entry.status, EntryStatus.COMPLETED)

    def test_card_payment_is_pending(self):
        entry = self.ledger.record_payment(Decimal("100.00"), Decimal("100.00"), PaymentMethod.CARD)
        self.assertEqual(entry.status, EntryStatus.PENDING)
        self.ledger.settle_payment(True, reference="gw-1")
        self.assertEqual(entry.status, EntryStatus.COMPLETED)
        self.assertEqual(entry.reference, "gw-1")

    def test_payment_amount_must_match_total(self):
        with self.assertRaises(PaymentFailure):
            self.ledger.record_payment(Decimal("99.00"), Decimal("100.00"), PaymentMethod.CASH)
        self.assertEqual(self.ledger.entries, [])

    def test_second_payment_is_rejected(self):
        self.ledger.record_payment(Decimal("100.00"), Decimal("100.00"), PaymentMethod.CASH)
        with self.assertRaises(DuplicateLedgerEntry):
            self.ledger.record_payment(Decimal("100.00"), Decimal("100.00"), PaymentMethod.CASH)

    def test_same_request_id_returns_existing_entry(self):
        first = self.ledger.record_payment(Decimal("100.00"), Decimal("100.00"), PaymentMethod.CARD, request_id="r-1")
        again = self.ledger.record_payment(Decimal("100.00"), Decimal("100.00"), PaymentMethod.CARD, request_id="r-1")
        self.assertIs(first, again)
        self.assertEqual(len(self.ledger.find(EntryType.PAYMENT)), 1)

    def test_failed_payment_can_be_retried(self):
        self.ledger.record_payment(Decimal("100.00"), Decimal("100.00"), PaymentMethod.CARD)
        self.ledger.settle_payment(False)
        retry = self.ledger.record_payment(Decimal("100.00"), Decimal("100.00"), PaymentMethod.CARD)
        self.assertEqual(retry.status, EntryStatus.PENDING)

    def test_commission_held_once(self):
        self.ledger.hold_commission(Decimal("5.00"))
        with self.assertRaises(DuplicateLedgerEntry):
            self.ledger.hold_commission(Decimal("5.00"))

    def test_zero_commission_is_not_held(self):
        self.assertIsNone(self.ledger.hold_commission(Decimal("0.00")))
        self.assertEqual(self.ledger.find(EntryType.COMMISSION), [])
        self.assertIsNone(self.ledger.release_commission(Decimal("0.00")))

    def test_release_without_hold_fails(self):
        with self.assertRaises(InvalidLedgerState):
            self.ledger.release_commission()

    def test_partial_release_voids_and_appends(self):
        held = self.ledger.hold_commission(Decimal("5.00"))
        kept = self.ledger.release_commission(Decimal("2.50"))
        self.assertEqual(held.status, EntryStatus.VOIDED)
        self.assertEqual(kept.status, EntryStatus.COMPLETED)
        self.assertEqual(kept.amount, Decimal("2.50"))

    def test_payout_per_role_is_unique(self):
        self.ledger.record_payout(uuid4(), Decimal("10.00"), PayeeRole.SELLER)
        with self.assertRaises(DuplicateLedgerEntry):
            self.ledger.record_payout(uuid4(), Decimal("10.00"), PayeeRole.SELLER)

    def test_zero_payout_is_skipped(self):
        self.assertIsNone(self.ledger.record_payout(uuid4(), Decimal("0.00"), PayeeRole.COURIER))

    def test_refund_cannot_exceed_payment(self):
        self.ledger.record_payment(Decimal("100.00"), Decimal("100.00"), PaymentMethod.CASH)
        self.ledger.record_refund(Decimal("60.00"))
        with self.assertRaises(RefundExceedsPayment):
            self.ledger.record_refund(Decimal("40.01"))
        self.assertEqual(self.ledger.refundable_amount(), Decimal("40.00"))


class SettlementTest(TestCase):
    """Tests for distributing and reversing escrow."""

    def test_cash_delivery_distributes_everything(self):
        order = delivered_order()
        ledger = OrderLedger(order.id)
        ledger.hold_commission(order.platform_commission)

        collect_cash_on_delivery(order, ledger)
        distribute_funds(order, ledger)

        self.assertTrue(order.is_paid)
        self.assertEqual(ledger.total(EntryType.COMMISSION, EntryStatus.COMPLETED), Decimal("5000.00"))
        payouts = {e.payee_role: e for e in ledger.find(EntryType.PAYOUT)}
        self.assertEqual(payouts[PayeeRole.SELLER].amount, Decimal("95000.00"))
        self.assertEqual(payouts[PayeeRole.SELLER].payee_id, order.seller_id)
        self.assertEqual(payouts[PayeeRole.COURIER].amount, Decimal("15000.00"))
        self.assertEqual(payouts[PayeeRole.COURIER].status, EntryStatus.PENDING)
        self.assertTrue(check_conservation(order, ledger))

    def test_distribution_requires_payment(self):
        order = delivered_order()
        ledger = OrderLedger(order.id)
        ledger.hold_commission(order.platform_commission)
        with self.assertRaises(InvalidLedgerState):
            distribute_funds(order, ledger)

    def test_distribution_requires_delivery(self):
        order = Order.place(
            uuid4(), uuid4(),
            [OrderItem(product_id=uuid4(), quantity=1, unit_price=Decimal("10.00"))],
            PaymentMethod.CASH, Decimal("1.00"),
        )
        with self.assertRaises(InvalidLedgerState):
            distribute_funds(order, OrderLedger(order.id))

    def test_reverse_refunds_card_payment(self):
        order = Order.place(
            uuid4(), uuid4(),
            [OrderItem(product_id=uuid4(), quantity=1, unit_price=Decimal("1000.00"))],
            PaymentMethod.CARD, Decimal("100.00"),
        )
        ledger = OrderLedger(order.id)
        ledger.record_payment(order.total_amount, order.total_amount, PaymentMethod.CARD)
        ledger.settle_payment(True)
        order.mark_paid()
        order.confirm()
        held = ledger.hold_commission(order.platform_commission)
        order.cancel("changed mind")

        reverse_funds(order, ledger)

        self.assertEqual(held.status, EntryStatus.VOIDED)
        self.assertEqual(ledger.total(EntryType.REFUND, EntryStatus.COMPLETED), Decimal("1100.00"))
        self.assertEqual(ledger.find(EntryType.PAYOUT), [])

    def test_split_partial_refund(self):
        order = delivered_order()
        kept, seller = split_partial_refund(order, Decimal("40000.00"))
        # Commission shrinks in proportion: 5000 * 60000 / 100000
        self.assertEqual(kept, Decimal("3000.00"))
        self.assertEqual(seller, Decimal("57000.00"))

    def test_split_partial_refund_bounds(self):
        order = delivered_order()
        with self.assertRaises(ValidationError):
            split_partial_refund(order, order.subtotal)
        with self.assertRaises(ValidationError):
            split_partial_refund(order, Decimal("0"))

    def test_distribute_partial_conserves_money(self):
        order = delivered_order()
        ledger = OrderLedger(order.id)
        ledger.hold_commission(order.platform_commission)
        collect_cash_on_delivery(order, ledger)

        distribute_partial(order, ledger, Decimal("40000.00"))

        self.assertEqual(ledger.total(EntryType.REFUND, EntryStatus.COMPLETED), Decimal("40000.00"))
        self.assertEqual(ledger.total(EntryType.COMMISSION, EntryStatus.COMPLETED), Decimal("3000.00"))
        self.assertEqual(ledger.total(EntryType.PAYOUT, EntryStatus.PENDING), Decimal("72000.00"))
        self.assertTrue(check_conservation(order, ledger))
