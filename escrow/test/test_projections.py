"""
Tests for financial summaries and payee balances.
"""
from decimal import Decimal
from uuid import uuid4

from django.test import TestCase

from escrow.domain.ledger import EntryStatus, EntryType, LedgerEntry, PayeeRole
from escrow.domain.projections import financial_summary, payee_balance
from escrow.infra.models import LedgerEntryORM, OrderORM
from escrow.services import LedgerService, OrderService, ReportingService
from escrow.test.helpers import Participants, create_order, walk_to_in_transit


def entry(entry_type, amount, status, payee_id=None, role=None):
    return LedgerEntry(
        id=uuid4(),
        order_id=uuid4(),
        entry_type=entry_type,
        amount=Decimal(amount),
        status=status,
        payee_id=payee_id,
        payee_role=role,
    )


class ProjectionFunctionTest(TestCase):
    """Pure projection functions."""

    def test_empty_store(self):
        summary = financial_summary([], [])
        self.assertEqual(summary.total_revenue, Decimal("0"))
        self.assertEqual(summary.platform_profit, Decimal("0"))
        self.assertEqual(set(summary.orders_by_status.values()), {0})

    def test_profit_and_pending_amounts(self):
        seller = uuid4()
        entries = [
            entry(EntryType.COMMISSION, "500.00", EntryStatus.COMPLETED),
            entry(EntryType.COMMISSION, "300.00", EntryStatus.HELD),
            entry(EntryType.COMMISSION, "100.00", EntryStatus.VOIDED),
            entry(EntryType.PAYOUT, "9500.00", EntryStatus.PENDING, seller, PayeeRole.SELLER),
            entry(EntryType.PAYOUT, "1500.00", EntryStatus.PENDING, uuid4(), PayeeRole.COURIER),
            entry(EntryType.PAYOUT, "700.00", EntryStatus.COMPLETED, seller, PayeeRole.SELLER),
            entry(EntryType.REFUND, "250.00", EntryStatus.COMPLETED),
        ]
        summary = financial_summary([], entries)
        self.assertEqual(summary.platform_profit, Decimal("500.00"))
        self.assertEqual(summary.pending_profit, Decimal("300.00"))
        self.assertEqual(summary.pending_payouts, Decimal("11000.00"))
        self.assertEqual(summary.pending_seller_payouts, Decimal("9500.00"))
        self.assertEqual(summary.pending_courier_payouts, Decimal("1500.00"))
        self.assertEqual(summary.total_refunds, Decimal("250.00"))

        balance = payee_balance(seller, entries)
        self.assertEqual(balance.available, Decimal("700.00"))
        self.assertEqual(balance.pending, Decimal("9500.00"))


class ReportingServiceTest(TestCase):
    """Summaries computed over the stored orders and ledger."""

    def setUp(self):
        self.people = Participants()
        self.orders = OrderService()
        self.reporting = ReportingService()

    def test_summary_over_store(self):
        delivered = create_order(self.orders, self.people)
        token = walk_to_in_transit(self.orders, self.people, delivered.id)
        self.orders.confirm_delivery(delivered.id, token.qr_payload)

        confirmed = create_order(self.orders, self.people)
        self.orders.confirm(confirmed.id, self.people.seller)

        cancelled = create_order(self.orders, self.people)
        self.orders.cancel(cancelled.id, self.people.buyer)

        summary = self.reporting.financial_summary()

        self.assertEqual(summary.total_revenue, Decimal("115000.00"))
        self.assertEqual(summary.platform_profit, Decimal("5000.00"))
        self.assertEqual(summary.pending_profit, Decimal("5000.00"))
        self.assertEqual(summary.pending_seller_payouts, Decimal("95000.00"))
        self.assertEqual(summary.pending_courier_payouts, Decimal("15000.00"))
        self.assertEqual(summary.orders_by_status["delivered"], 1)
        self.assertEqual(summary.orders_by_status["confirmed"], 1)
        self.assertEqual(summary.orders_by_status["cancelled"], 1)
        self.assertEqual(summary.orders_by_status["pending"], 0)

    def test_payee_balance_moves_on_settlement(self):
        order = create_order(self.orders, self.people)
        token = walk_to_in_transit(self.orders, self.people, order.id)
        self.orders.confirm_delivery(order.id, token.qr_payload)

        before = self.reporting.payee_balance(self.people.courier)
        self.assertEqual((before.available, before.pending), (Decimal("0"), Decimal("15000.00")))

        ledger_service = LedgerService()
        payout = next(
            e for e in ledger_service.get_ledger(order.id).find(EntryType.PAYOUT)
            if e.payee_role == PayeeRole.COURIER
        )
        ledger_service.settle_payout(payout.id, True)

        after = self.reporting.payee_balance(self.people.courier)
        self.assertEqual((after.available, after.pending), (Decimal("15000.00"), Decimal("0")))

    def test_summary_is_repeatable_and_read_only(self):
        order = create_order(self.orders, self.people)
        token = walk_to_in_transit(self.orders, self.people, order.id)
        self.orders.confirm_delivery(order.id, token.qr_payload)
        create_order(self.orders, self.people)

        def stored_rows():
            return (
                list(OrderORM.objects.order_by("id").values()),
                list(LedgerEntryORM.objects.order_by("id").values()),
            )

        before = stored_rows()
        first = self.reporting.financial_summary()
        second = self.reporting.financial_summary()

        self.assertEqual(first, second)
        self.assertEqual(
            self.reporting.payee_balance(self.people.seller),
            self.reporting.payee_balance(self.people.seller),
        )
        self.assertEqual(stored_rows(), before)
