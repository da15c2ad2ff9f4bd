"""
Unit tests for domain models.
"""
import re
from decimal import Decimal
from uuid import uuid4

from django.test import TestCase

from escrow.domain.dispute import Dispute, DisputeResolution, DisputeStatus
from escrow.domain.errors import AccessDenied, InvalidTransition, ValidationError
from escrow.domain.order import (
    TRANSITIONS,
    Order,
    OrderEvent,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    allowed_events,
    generate_order_number,
    money,
    next_status,
)
from escrow.domain.returns import ReturnRequest, ReturnStatus


def make_order(unit_price="100000.00", quantity=1, courier_fee="15000.00", payment_method=PaymentMethod.CASH):
    return Order.place(
        buyer_id=uuid4(),
        seller_id=uuid4(),
        items=[OrderItem(product_id=uuid4(), quantity=quantity, unit_price=Decimal(unit_price))],
        payment_method=payment_method,
        courier_fee=Decimal(courier_fee),
        commission_rate=Decimal("0.05"),
    )


class OrderItemTest(TestCase):
    """Tests for OrderItem value object."""

    def test_create_order_item(self):
        item = OrderItem(product_id=uuid4(), quantity=2, unit_price=Decimal("100.00"))
        self.assertEqual(item.quantity, 2)
        self.assertEqual(item.subtotal, Decimal("200.00"))

    def test_order_item_non_positive_quantity_fails(self):
        with self.assertRaises(ValidationError):
            OrderItem(product_id=uuid4(), quantity=0, unit_price=Decimal("100.00"))

    def test_order_item_negative_price_fails(self):
        """ValidationError is also a ValueError."""
        with self.assertRaises(ValueError):
            OrderItem(product_id=uuid4(), quantity=1, unit_price=Decimal("-1.00"))


class OrderTest(TestCase):
    """Tests for Order aggregate."""

    def test_place_freezes_commission(self):
        order = make_order()
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.subtotal, Decimal("100000.00"))
        self.assertEqual(order.total_amount, Decimal("115000.00"))
        self.assertEqual(order.platform_commission, Decimal("5000.00"))
        self.assertEqual(order.seller_net_amount, Decimal("95000.00"))
        self.assertTrue(order.check_accounting())

    def test_commission_is_rounded_to_cents(self):
        order = make_order(unit_price="333.33", quantity=1, courier_fee="0")
        self.assertEqual(order.platform_commission, Decimal("16.67"))
        self.assertTrue(order.check_accounting())

    def test_empty_order_fails(self):
        with self.assertRaises(ValidationError):
            Order.place(uuid4(), uuid4(), [], PaymentMethod.CASH, Decimal("0"))

    def test_buyer_cannot_be_seller(self):
        user = uuid4()
        item = OrderItem(product_id=uuid4(), quantity=1, unit_price=Decimal("10.00"))
        with self.assertRaises(ValidationError):
            Order.place(user, user, [item], PaymentMethod.CASH, Decimal("0"))

    def test_order_number_format(self):
        self.assertRegex(generate_order_number(), re.compile(r"^GGM-[0-9A-Z]+-[0-9A-Z]{4}$"))

    def test_happy_path_transitions(self):
        order = make_order()
        courier = uuid4()
        order.confirm()
        order.assign_courier(courier)
        order.pick_up(courier, "https://cdn.example.com/p.jpg")
        order.depart(courier)
        order.deliver()
        self.assertEqual(order.status, OrderStatus.DELIVERED)
        self.assertTrue(order.is_terminal)
        self.assertIsNotNone(order.delivered_at)

    def test_card_order_must_be_paid_before_confirm(self):
        order = make_order(payment_method=PaymentMethod.CARD)
        with self.assertRaises(InvalidTransition):
            order.confirm()
        order.mark_paid()
        order.confirm()
        self.assertEqual(order.status, OrderStatus.CONFIRMED)

    def test_pick_up_requires_photo(self):
        order = make_order()
        order.confirm()
        with self.assertRaises(ValidationError):
            order.pick_up(uuid4(), "")
        self.assertEqual(order.status, OrderStatus.CONFIRMED)

    def test_other_courier_cannot_pick_up(self):
        order = make_order()
        order.confirm()
        order.assign_courier(uuid4())
        with self.assertRaises(AccessDenied):
            order.pick_up(uuid4(), "photo.jpg")

    def test_cannot_skip_states(self):
        order = make_order()
        with self.assertRaises(InvalidTransition):
            order.deliver()
        with self.assertRaises(InvalidTransition):
            order.depart(uuid4())
        self.assertEqual(order.status, OrderStatus.PENDING)

    def test_terminal_states_have_no_exits(self):
        for status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
            self.assertEqual(allowed_events(status), [])

    def test_every_event_outside_table_is_rejected(self):
        for status in OrderStatus:
            for event in OrderEvent:
                if (status, event) in TRANSITIONS:
                    self.assertEqual(next_status(status, event), TRANSITIONS[(status, event)])
                else:
                    with self.assertRaises(InvalidTransition):
                        next_status(status, event)

    def test_cancel_after_pickup_fails(self):
        order = make_order()
        courier = uuid4()
        order.confirm()
        order.pick_up(courier, "photo.jpg")
        with self.assertRaises(InvalidTransition):
            order.cancel()

    def test_dispute_resolution(self):
        order = make_order()
        order.open_dispute()
        self.assertEqual(order.status, OrderStatus.DISPUTED)
        with self.assertRaises(InvalidTransition):
            order.open_dispute()
        order.resolve_dispute(for_seller=False)
        self.assertEqual(order.status, OrderStatus.CANCELLED)

    def test_money_rounds_half_up(self):
        self.assertEqual(money("0.005"), Decimal("0.01"))
        self.assertEqual(money(Decimal("12.344")), Decimal("12.34"))


class DisputeTest(TestCase):
    """Tests for Dispute aggregate."""

    def test_unknown_reason_fails(self):
        with self.assertRaises(ValidationError):
            Dispute.open(uuid4(), uuid4(), "boredom")

    def test_lifecycle(self):
        dispute = Dispute.open(uuid4(), uuid4(), "damaged", "Box was crushed")
        self.assertTrue(dispute.is_open)
        admin = uuid4()
        dispute.start_review(admin)
        self.assertEqual(dispute.status, DisputeStatus.IN_REVIEW)
        dispute.resolve("favor_buyer", "Photos confirm damage", admin)
        self.assertEqual(dispute.resolution, DisputeResolution.FAVOR_BUYER)
        self.assertEqual(dispute.resolved_by, admin)
        self.assertFalse(dispute.is_open)
        dispute.close()
        self.assertEqual(dispute.status, DisputeStatus.CLOSED)

    def test_partial_requires_refund_amount(self):
        dispute = Dispute.open(uuid4(), uuid4(), "quality")
        with self.assertRaises(ValidationError):
            dispute.resolve("partial", "Half", uuid4())

    def test_cannot_close_open_dispute(self):
        dispute = Dispute.open(uuid4(), uuid4(), "other")
        with self.assertRaises(InvalidTransition):
            dispute.close()


class ReturnRequestTest(TestCase):
    """Tests for ReturnRequest aggregate."""

    def delivered_order(self):
        order = make_order()
        courier = uuid4()
        order.confirm()
        order.pick_up(courier, "photo.jpg")
        order.depart(courier)
        order.deliver()
        return order

    def test_only_delivered_orders_can_be_returned(self):
        order = make_order()
        with self.assertRaises(InvalidTransition):
            ReturnRequest.request(order, order.buyer_id, "defective", "Does not turn on")

    def test_only_buyer_can_request(self):
        order = self.delivered_order()
        with self.assertRaises(AccessDenied):
            ReturnRequest.request(order, order.seller_id, "defective", "Does not turn on")

    def test_description_required(self):
        order = self.delivered_order()
        with self.assertRaises(ValidationError):
            ReturnRequest.request(order, order.buyer_id, "defective", "")

    def test_full_flow(self):
        order = self.delivered_order()
        return_request = ReturnRequest.request(order, order.buyer_id, "defective", "Does not turn on")
        self.assertEqual(return_request.approve(Decimal("50000.00")), ReturnStatus.PENDING)
        return_request.mark_shipped()
        return_request.mark_received()
        return_request.mark_refunded()
        self.assertEqual(return_request.close("done"), ReturnStatus.REFUNDED)
        self.assertEqual(return_request.status, ReturnStatus.CLOSED)
        self.assertEqual(order.status, OrderStatus.DELIVERED)

    def test_cannot_ship_before_approval(self):
        order = self.delivered_order()
        return_request = ReturnRequest.request(order, order.buyer_id, "wrong_item", "Blue instead of red")
        with self.assertRaises(InvalidTransition):
            return_request.mark_shipped()

    def test_rejected_return_can_be_closed(self):
        order = self.delivered_order()
        return_request = ReturnRequest.request(order, order.buyer_id, "changed_mind", "No longer needed")
        return_request.reject("Final sale")
        return_request.close()
        self.assertEqual(return_request.status, ReturnStatus.CLOSED)
