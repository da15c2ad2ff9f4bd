"""
Shared setup for service and API tests.
"""
from decimal import Decimal
from uuid import uuid4

from escrow.infra.gateway import PaymentGateway, PaymentResult
from escrow.services import OrderService


PHOTO_URL = "https://cdn.gogomarket.uz/pickup/1.jpg"


class Participants:
    def __init__(self):
        self.buyer = uuid4()
        self.seller = uuid4()
        self.courier = uuid4()
        self.admin = uuid4()


def items(unit_price="50000.00", quantity=2):
    return [{"productId": str(uuid4()), "quantity": quantity, "unitPrice": unit_price}]


def create_order(service: OrderService, people: Participants, payment_method="cash", courier_fee=Decimal("15000.00")):
    """100 000 subtotal + 15 000 courier fee, 5% commission."""
    return service.create_order(
        buyer_id=people.buyer,
        seller_id=people.seller,
        items=items(),
        payment_method=payment_method,
        courier_fee=courier_fee,
        delivery_address="Tashkent, Chilonzor 7",
        delivery_city="Tashkent",
        delivery_phone="+998901234567",
    )


def walk_to_in_transit(service: OrderService, people: Participants, order_id):
    """confirm -> accept -> pickup -> depart; returns the delivery token."""
    confirmed = service.confirm(order_id, people.seller)
    service.accept_order(order_id, people.courier)
    service.scan_pickup(order_id, people.courier, confirmed.token.qr_payload, PHOTO_URL)
    return service.depart(order_id, people.courier).token


class StubGateway(PaymentGateway):
    """Answers every capture with a fixed result."""

    def __init__(self, result: PaymentResult):
        self.result = result
        self.calls = []

    def capture_payment(self, order_id, amount):
        self.calls.append((order_id, amount))
        return self.result


def deliver_and_settle_payouts(service: OrderService, people: Participants):
    """Deliver a cash order and settle its payouts: the seller ends with 95 000 available."""
    from escrow.domain.ledger import EntryType
    from escrow.services import LedgerService

    order = create_order(service, people)
    token = walk_to_in_transit(service, people, order.id)
    service.confirm_delivery(order.id, token.qr_payload, actor_id=people.buyer)
    ledger_service = LedgerService()
    for entry in ledger_service.get_ledger(order.id).find(EntryType.PAYOUT):
        ledger_service.settle_payout(entry.id, True, reference=f"payout-{entry.id}")
    return order
