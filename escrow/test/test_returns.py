"""
Tests for post-delivery returns.
"""
from decimal import Decimal

from django.test import TestCase

from escrow.domain.errors import AccessDenied, InvalidTransition, RefundExceedsPayment
from escrow.domain.ledger import EntryStatus, EntryType
from escrow.domain.order import OrderStatus
from escrow.domain.settlement import check_conservation
from escrow.domain.returns import ReturnStatus
from escrow.infra.event_store import EventStoreRepository
from escrow.services import LedgerService, OrderService, ReturnService
from escrow.test.helpers import Participants, create_order, walk_to_in_transit


class ReturnServiceTest(TestCase):
    """Tests for the return flow."""

    def setUp(self):
        self.people = Participants()
        self.orders = OrderService()
        self.returns = ReturnService()
        order = create_order(self.orders, self.people)
        token = walk_to_in_transit(self.orders, self.people, order.id)
        self.order = self.orders.confirm_delivery(order.id, token.qr_payload)

    def test_full_return_flow_refunds_buyer(self):
        return_request = self.returns.request_return(self.order.id, self.people.buyer, "defective", "Screen is dead")
        self.returns.respond(return_request.id, self.people.seller, approve=True, response="Send it back")
        self.returns.mark_shipped(return_request.id, self.people.buyer)
        self.returns.mark_received(return_request.id, self.people.seller)
        refunded = self.returns.refund(return_request.id, self.people.admin)
        closed = self.returns.close(return_request.id, self.people.admin, "Done")

        self.assertEqual(refunded.refund_amount, self.order.subtotal)
        self.assertEqual(closed.status, ReturnStatus.CLOSED)
        ledger = LedgerService().get_ledger(self.order.id)
        self.assertEqual(ledger.total(EntryType.REFUND, EntryStatus.COMPLETED), Decimal("100000.00"))
        # The order itself stays delivered
        self.assertEqual(self.orders.get_order(self.order.id).status, OrderStatus.DELIVERED)

        events = EventStoreRepository().get_events(return_request.id, "Return")
        self.assertEqual(
            [e["data"]["to_status"] for e in events],
            ["pending", "approved", "shipped", "received", "refunded", "closed"],
        )

    def test_refund_limited_to_payment(self):
        return_request = self.returns.request_return(self.order.id, self.people.buyer, "defective", "Broken")
        self.returns.respond(
            return_request.id, self.people.seller, approve=True, refund_amount=self.order.total_amount + 1,
        )
        self.returns.mark_shipped(return_request.id, self.people.buyer)
        self.returns.mark_received(return_request.id, self.people.seller)
        with self.assertRaises(RefundExceedsPayment):
            self.returns.refund(return_request.id, self.people.admin)
        self.assertEqual(self.returns.get_return(return_request.id).status, ReturnStatus.RECEIVED)

    def test_return_refund_is_outside_delivery_settlement(self):
        ledger_service = LedgerService()
        self.assertTrue(check_conservation(self.order, ledger_service.get_ledger(self.order.id)))

        return_request = self.returns.request_return(self.order.id, self.people.buyer, "defective", "Broken")
        self.returns.respond(return_request.id, self.people.seller, approve=True)
        self.returns.mark_shipped(return_request.id, self.people.buyer)
        self.returns.mark_received(return_request.id, self.people.seller)
        self.returns.refund(return_request.id, self.people.admin)

        ledger = ledger_service.get_ledger(self.order.id)
        self.assertFalse(check_conservation(self.order, ledger))
        # Payouts are untouched; only the return refund was added
        self.assertEqual(ledger.distributed_amount(), self.order.total_amount + self.order.subtotal)
        self.assertEqual(ledger.refundable_amount(), self.order.total_amount - self.order.subtotal)
        self.assertEqual(len(ledger.find(EntryType.PAYOUT)), 2)

    def test_only_one_return_per_order(self):
        self.returns.request_return(self.order.id, self.people.buyer, "defective", "Broken")
        with self.assertRaises(InvalidTransition):
            self.returns.request_return(self.order.id, self.people.buyer, "other", "Again")

    def test_seller_only_responds(self):
        return_request = self.returns.request_return(self.order.id, self.people.buyer, "defective", "Broken")
        with self.assertRaises(AccessDenied):
            self.returns.respond(return_request.id, self.people.buyer, approve=True)

    def test_rejected_return(self):
        return_request = self.returns.request_return(self.order.id, self.people.buyer, "changed_mind", "Nope")
        rejected = self.returns.respond(return_request.id, self.people.seller, approve=False, response="Final sale")
        self.assertEqual(rejected.status, ReturnStatus.REJECTED)
        with self.assertRaises(InvalidTransition):
            self.returns.mark_shipped(return_request.id, self.people.buyer)
        self.assertEqual(
            [r.id for r in self.returns.list_returns(buyer_id=self.people.buyer, status="rejected")],
            [return_request.id],
        )
