"""
Integration tests for the order lifecycle services.
"""
from decimal import Decimal
from uuid import uuid4

from django.test import TestCase, override_settings

from escrow.domain.errors import (
    AccessDenied,
    InvalidLedgerState,
    InvalidTransition,
    PaymentFailure,
    TokenAlreadyConsumed,
    TokenMismatch,
    ValidationError,
)
from escrow.domain.ledger import EntryStatus, EntryType, PayeeRole
from escrow.domain.order import OrderStatus
from escrow.domain.settlement import check_conservation
from escrow.domain.tokens import TokenKind
from escrow.infra.event_store import EventStoreRepository
from escrow.infra.gateway import PaymentResult
from escrow.infra.models import LedgerEntryORM
from escrow.infra.outbox import OutboxEvent
from escrow.infra.tokens import HandoverTokenIssuer
from escrow.services import LedgerService, OrderService, PaymentService
from escrow.test.helpers import PHOTO_URL, Participants, StubGateway, create_order, walk_to_in_transit


class OrderLifecycleTest(TestCase):
    """Happy path and transition guards."""

    def setUp(self):
        self.people = Participants()
        self.service = OrderService()
        self.ledger_service = LedgerService()

    def test_order_totals_are_frozen_at_checkout(self):
        """Two items at 50 000 and 30 000 with a 10 000 courier fee."""
        order = self.service.create_order(
            buyer_id=self.people.buyer,
            seller_id=self.people.seller,
            items=[
                {"productId": str(uuid4()), "quantity": 1, "unitPrice": "50000.00"},
                {"productId": str(uuid4()), "quantity": 1, "unitPrice": "30000.00"},
            ],
            courier_fee=Decimal("10000.00"),
        )
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.total_amount, Decimal("90000.00"))
        self.assertEqual(order.platform_commission, Decimal("4000.00"))
        self.assertEqual(order.seller_net_amount, Decimal("76000.00"))

        token = walk_to_in_transit(self.service, self.people, order.id)
        delivered = self.service.confirm_delivery(order.id, token.qr_payload, actor_id=self.people.buyer)

        self.assertEqual(delivered.status, OrderStatus.DELIVERED)
        self.assertTrue(delivered.is_paid)
        ledger = self.ledger_service.get_ledger(order.id)
        self.assertEqual(ledger.total(EntryType.COMMISSION, EntryStatus.COMPLETED), Decimal("4000.00"))
        payouts = {e.payee_role: e for e in ledger.find(EntryType.PAYOUT)}
        self.assertEqual(payouts[PayeeRole.COURIER].amount, Decimal("10000.00"))
        self.assertEqual(payouts[PayeeRole.COURIER].payee_id, self.people.courier)
        self.assertEqual(payouts[PayeeRole.SELLER].amount, Decimal("76000.00"))
        self.assertTrue(check_conservation(delivered, ledger))

    def test_invalid_items_are_rejected(self):
        with self.assertRaises(ValidationError):
            self.service.create_order(self.people.buyer, self.people.seller, [{"productId": "x", "quantity": 1}])
        with self.assertRaises(ValidationError):
            self.service.create_order(self.people.buyer, self.people.seller, [])

    def test_unknown_payment_method(self):
        with self.assertRaises(ValidationError):
            create_order(self.service, self.people, payment_method="crypto")

    def test_confirm_holds_commission_and_issues_pickup_token(self):
        order = create_order(self.service, self.people)
        result = self.service.confirm(order.id, self.people.seller)

        self.assertEqual(result.order.status, OrderStatus.CONFIRMED)
        self.assertEqual(result.token.kind, TokenKind.PICKUP)
        held = self.ledger_service.get_ledger(order.id).find(EntryType.COMMISSION, EntryStatus.HELD)
        self.assertEqual([e.amount for e in held], [Decimal("5000.00")])

    def test_only_seller_confirms(self):
        order = create_order(self.service, self.people)
        with self.assertRaises(AccessDenied):
            self.service.confirm(order.id, self.people.buyer)

    def test_no_payout_before_delivery(self):
        order = create_order(self.service, self.people)
        walk_to_in_transit(self.service, self.people, order.id)

        self.assertFalse(LedgerEntryORM.objects.filter(order_id=order.id, entry_type="payout").exists())
        with self.assertRaises(InvalidLedgerState):
            self.ledger_service.record_payout(order.id, self.people.seller, Decimal("1.00"), PayeeRole.SELLER)
        with self.assertRaises(InvalidLedgerState):
            self.ledger_service.release_commission(order.id)

    def test_wrong_pickup_code_keeps_order_confirmed(self):
        order = create_order(self.service, self.people)
        self.service.confirm(order.id, self.people.seller)
        with self.assertRaises(TokenMismatch):
            self.service.scan_pickup(order.id, self.people.courier, "FFFFFFFF", PHOTO_URL)
        self.assertEqual(self.service.get_order(order.id).status, OrderStatus.CONFIRMED)

    def test_pickup_without_accept_assigns_courier(self):
        order = create_order(self.service, self.people)
        token = self.service.confirm(order.id, self.people.seller).token
        picked = self.service.scan_pickup(order.id, self.people.courier, token.code, PHOTO_URL)
        self.assertEqual(picked.courier_id, self.people.courier)
        self.assertEqual(picked.pickup_photo_url, PHOTO_URL)

    def test_cannot_skip_pickup(self):
        order = create_order(self.service, self.people)
        self.service.confirm(order.id, self.people.seller)
        with self.assertRaises(InvalidTransition):
            self.service.depart(order.id, self.people.courier)

    def test_delivery_with_short_code(self):
        order = create_order(self.service, self.people)
        token = walk_to_in_transit(self.service, self.people, order.id)
        delivered = self.service.confirm_delivery(order.id, token.short_code)
        self.assertEqual(delivered.status, OrderStatus.DELIVERED)

    def test_consumed_delivery_token_is_rejected(self):
        order = create_order(self.service, self.people)
        token = walk_to_in_transit(self.service, self.people, order.id)
        # First scan consumes the token
        self.assertTrue(HandoverTokenIssuer().verify_token(order.id, token.qr_payload, kind=TokenKind.DELIVERY))

        with self.assertRaises(TokenAlreadyConsumed):
            self.service.confirm_delivery(order.id, token.qr_payload)

        self.assertEqual(self.service.get_order(order.id).status, OrderStatus.IN_TRANSIT)
        self.assertFalse(LedgerEntryORM.objects.filter(order_id=order.id, entry_type="payout").exists())

    def test_second_delivery_is_rejected_without_new_entries(self):
        order = create_order(self.service, self.people)
        token = walk_to_in_transit(self.service, self.people, order.id)
        self.service.confirm_delivery(order.id, token.qr_payload)
        entries = LedgerEntryORM.objects.filter(order_id=order.id).count()

        with self.assertRaises(InvalidTransition):
            self.service.confirm_delivery(order.id, token.qr_payload)
        self.assertEqual(LedgerEntryORM.objects.filter(order_id=order.id).count(), entries)

    def test_cancel_confirmed_cash_order_voids_commission(self):
        order = create_order(self.service, self.people)
        self.service.confirm(order.id, self.people.seller)
        cancelled = self.service.cancel(order.id, self.people.buyer, "Found it cheaper")

        self.assertEqual(cancelled.status, OrderStatus.CANCELLED)
        ledger = self.ledger_service.get_ledger(order.id)
        self.assertEqual([e.status for e in ledger.find(EntryType.COMMISSION)], [EntryStatus.VOIDED])
        self.assertEqual(ledger.find(EntryType.REFUND), [])

    def test_order_with_zero_commission_is_delivered(self):
        order = self.service.create_order(
            buyer_id=self.people.buyer,
            seller_id=self.people.seller,
            items=[{"productId": str(uuid4()), "quantity": 1, "unitPrice": "0.05"}],
            courier_fee=Decimal("1.00"),
        )
        self.assertEqual(order.platform_commission, Decimal("0.00"))

        token = walk_to_in_transit(self.service, self.people, order.id)
        delivered = self.service.confirm_delivery(order.id, token.qr_payload)

        ledger = self.ledger_service.get_ledger(order.id)
        self.assertEqual(ledger.find(EntryType.COMMISSION), [])
        payouts = {e.payee_role: e.amount for e in ledger.find(EntryType.PAYOUT)}
        self.assertEqual(payouts, {PayeeRole.SELLER: Decimal("0.05"), PayeeRole.COURIER: Decimal("1.00")})
        self.assertTrue(check_conservation(delivered, ledger))

    @override_settings(ESCROW={"PLATFORM_COMMISSION_RATE": "0"})
    def test_zero_commission_rate_order_can_be_cancelled(self):
        order = create_order(self.service, self.people)
        self.service.confirm(order.id, self.people.seller)
        cancelled = self.service.cancel(order.id, self.people.seller)

        self.assertEqual(cancelled.status, OrderStatus.CANCELLED)
        self.assertEqual(self.ledger_service.get_ledger(order.id).entries, [])

    def test_courier_cannot_cancel(self):
        order = create_order(self.service, self.people)
        with self.assertRaises(AccessDenied):
            self.service.cancel(order.id, self.people.courier)

    def test_cancelled_order_is_terminal(self):
        order = create_order(self.service, self.people)
        self.service.cancel(order.id, self.people.seller)
        with self.assertRaises(InvalidTransition):
            self.service.confirm(order.id, self.people.seller)

    def test_transitions_are_recorded_in_order(self):
        order = create_order(self.service, self.people)
        token = walk_to_in_transit(self.service, self.people, order.id)
        self.service.confirm_delivery(order.id, token.qr_payload)

        events = EventStoreRepository().get_events(order.id, "Order")
        sequence = [e["sequence_number"] for e in events]
        self.assertEqual(sequence, sorted(sequence))
        self.assertEqual(len(set(sequence)), len(sequence))
        transitions = [
            (e["data"]["from_status"], e["data"]["to_status"])
            for e in events if e["event_type"] == "OrderStatusChanged"
        ]
        self.assertEqual(
            transitions,
            [
                ("pending", "confirmed"),
                ("confirmed", "picked_up"),
                ("picked_up", "in_transit"),
                ("in_transit", "delivered"),
            ],
        )
        self.assertEqual(OutboxEvent.objects.filter(aggregate_id=order.id).count(), len(events))


class CardPaymentTest(TestCase):
    """Card capture and gateway callbacks."""

    def setUp(self):
        self.people = Participants()
        self.service = OrderService()
        self.ledger_service = LedgerService()

    def payments(self, result: PaymentResult) -> PaymentService:
        return PaymentService(gateway=StubGateway(result))

    def test_capture_then_callback(self):
        order = create_order(self.service, self.people, payment_method="card")
        payments = self.payments(PaymentResult(success=True, reference="gw-1", pending=True))

        entry = payments.capture_payment(order.id, request_id="req-1")
        self.assertEqual(entry.status, EntryStatus.PENDING)
        with self.assertRaises(InvalidTransition):
            self.service.confirm(order.id, self.people.seller)

        confirmed = payments.on_payment_confirmed(order.id, "gw-1")
        self.assertEqual(confirmed.status, EntryStatus.COMPLETED)
        self.assertTrue(self.service.get_order(order.id).is_paid)
        # Repeated callback is a no-op
        self.assertEqual(payments.on_payment_confirmed(order.id, "gw-1").id, confirmed.id)

        self.service.confirm(order.id, self.people.seller)

    def test_capture_is_idempotent_per_request_id(self):
        order = create_order(self.service, self.people, payment_method="card")
        gateway = StubGateway(PaymentResult(success=True, pending=True))
        payments = PaymentService(gateway=gateway)

        first = payments.capture_payment(order.id, request_id="req-1")
        second = payments.capture_payment(order.id, request_id="req-1")

        self.assertEqual(first.id, second.id)
        self.assertEqual(len(gateway.calls), 1)
        self.assertEqual(LedgerEntryORM.objects.filter(order_id=order.id, entry_type="payment").count(), 1)

    def test_declined_capture_can_be_retried(self):
        order = create_order(self.service, self.people, payment_method="card")
        with self.assertRaises(PaymentFailure):
            self.payments(PaymentResult(success=False, error="insufficient funds")).capture_payment(order.id)

        ledger = self.ledger_service.get_ledger(order.id)
        self.assertEqual([e.status for e in ledger.find(EntryType.PAYMENT)], [EntryStatus.FAILED])
        self.assertEqual(self.service.get_order(order.id).status, OrderStatus.PENDING)

        entry = self.payments(PaymentResult(success=True, reference="gw-2")).capture_payment(order.id)
        self.assertEqual(entry.status, EntryStatus.COMPLETED)
        self.assertTrue(self.service.get_order(order.id).is_paid)

    def test_cash_orders_are_not_captured(self):
        order = create_order(self.service, self.people)
        with self.assertRaises(ValidationError):
            self.payments(PaymentResult(success=True)).capture_payment(order.id)

    def test_cancel_paid_pending_order_refunds_in_full(self):
        order = create_order(self.service, self.people, payment_method="card")
        self.payments(PaymentResult(success=True, reference="gw-3")).capture_payment(order.id)

        cancelled = self.service.cancel(order.id, self.people.buyer, "Changed my mind")

        self.assertEqual(cancelled.status, OrderStatus.CANCELLED)
        ledger = self.ledger_service.get_ledger(order.id)
        refunds = ledger.find(EntryType.REFUND)
        self.assertEqual([e.amount for e in refunds], [order.total_amount])
        self.assertEqual(ledger.find(EntryType.COMMISSION), [])

    def test_card_delivery_distributes_funds(self):
        order = create_order(self.service, self.people, payment_method="card")
        self.payments(PaymentResult(success=True, reference="gw-4")).capture_payment(order.id)
        token = walk_to_in_transit(self.service, self.people, order.id)
        delivered = self.service.confirm_delivery(order.id, token.qr_payload)

        ledger = self.ledger_service.get_ledger(order.id)
        self.assertEqual(len(ledger.find(EntryType.PAYMENT)), 1)
        self.assertTrue(check_conservation(delivered, ledger))

    def test_settle_payout(self):
        order = create_order(self.service, self.people)
        token = walk_to_in_transit(self.service, self.people, order.id)
        self.service.confirm_delivery(order.id, token.qr_payload)
        payout = self.ledger_service.get_ledger(order.id).find(EntryType.PAYOUT)[0]

        settled = self.ledger_service.settle_payout(payout.id, True, reference="bank-1")

        self.assertEqual(settled.status, EntryStatus.COMPLETED)
        with self.assertRaises(InvalidLedgerState):
            self.ledger_service.settle_payout(payout.id, False)
