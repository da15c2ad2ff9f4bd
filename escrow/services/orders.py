"""
Application services for the order lifecycle.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from django.db import transaction

from escrow.conf import commission_rate, default_courier_fee
from escrow.domain.errors import AccessDenied, NotFound, TokenMismatch, ValidationError
from escrow.domain.events import CourierAssigned, HandoverTokenIssued, OrderCreated
from escrow.domain.order import Order, OrderItem, OrderStatus, PaymentMethod
from escrow.domain.settlement import collect_cash_on_delivery, distribute_funds, reverse_funds
from escrow.domain.tokens import TokenKind
from escrow.infra.locks import order_lock
from escrow.infra.repositories import OrderRepository
from escrow.infra.tokens import HandoverTokenIssuer, IssuedToken
from escrow.services.events import EventRecorder
from escrow.services.ledger import LedgerService


logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    order: Order
    token: IssuedToken | None = None


def parse_items(items: list[dict]) -> list[OrderItem]:
    """Build order items from API input (``productId``, ``quantity``, ``unitPrice``)."""
    parsed = []
    for item in items:
        try:
            parsed.append(OrderItem(
                product_id=UUID(str(item["productId"])),
                quantity=int(item["quantity"]),
                unit_price=Decimal(str(item["unitPrice"])),
            ))
        except ValidationError:
            raise
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise ValidationError(f"Invalid order item {item!r}: {e}") from e
    return parsed


class OrderService:
    """Service for order operations."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        ledger_service: LedgerService | None = None,
        token_issuer: HandoverTokenIssuer | None = None,
        events: EventRecorder | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.events = events or EventRecorder()
        self.ledger_service = ledger_service or LedgerService(order_repo=self.order_repo, events=self.events)
        self.token_issuer = token_issuer or HandoverTokenIssuer()

    def _get_order(self, order_id: UUID, for_update: bool = True) -> Order:
        order = self.order_repo.get_by_id(order_id, for_update=for_update)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    def get_order(self, order_id: UUID) -> Order:
        return self._get_order(order_id, for_update=False)

    def list_orders(
        self,
        buyer_id: UUID | None = None,
        seller_id: UUID | None = None,
        courier_id: UUID | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Order]:
        """Get orders with optional filters and pagination."""
        if status:
            try:
                status = OrderStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown order status '{status}'") from None
        return self.order_repo.list(
            buyer_id=buyer_id,
            seller_id=seller_id,
            courier_id=courier_id,
            status=status,
            limit=limit,
            offset=offset,
        )

    @transaction.atomic
    def create_order(
        self,
        buyer_id: UUID,
        seller_id: UUID,
        items: list[dict],
        payment_method: str = PaymentMethod.CASH.value,
        courier_fee: Decimal | None = None,
        delivery_address: str = "",
        delivery_city: str = "",
        delivery_phone: str = "",
    ) -> Order:
        """Checkout: create a pending order with a frozen commission."""
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unknown payment method '{payment_method}'") from None

        order = Order.place(
            buyer_id=buyer_id,
            seller_id=seller_id,
            items=parse_items(items),
            payment_method=method,
            courier_fee=default_courier_fee() if courier_fee is None else courier_fee,
            commission_rate=commission_rate(),
            delivery_address=delivery_address,
            delivery_city=delivery_city,
            delivery_phone=delivery_phone,
        )
        self.order_repo.save(order)

        self.events.record(
            OrderCreated(
                event_id=uuid4(),
                aggregate_id=order.id,
                event_type="OrderCreated",
                order_number=order.order_number,
                buyer_id=buyer_id,
                seller_id=seller_id,
                total_amount=order.total_amount,
                items_count=len(order.items),
            ),
            "Order",
        )
        logger.info(
            "order_created",
            extra={"order_id": str(order.id), "order_number": order.order_number, "user_id": str(buyer_id)},
        )
        return order

    @transaction.atomic
    def confirm(self, order_id: UUID, seller_id: UUID) -> TransitionResult:
        """Seller confirms: hold commission and issue the pickup token."""
        with order_lock(order_id):
            order = self._get_order(order_id)
            if order.seller_id != seller_id:
                raise AccessDenied("Only the seller can confirm this order")
            previous = order.status
            order.confirm()

            ledger, before = self.ledger_service.load(order.id)
            ledger.hold_commission(
                order.platform_commission,
                description=f"Commission held for order {order.order_number}",
            )
            self.order_repo.save(order)
            self.ledger_service.commit(ledger, before)
            token = self.token_issuer.issue_pickup_token(order.id)

            self.events.status_changed(order, previous, actor_id=seller_id)
            self._token_issued(order, TokenKind.PICKUP, seller_id)
            return TransitionResult(order=order, token=token)

    @transaction.atomic
    def cancel(self, order_id: UUID, actor_id: UUID, reason: str = "") -> Order:
        """Buyer or seller cancels before pickup: refund what was captured, void held commission."""
        with order_lock(order_id):
            order = self._get_order(order_id)
            if actor_id not in (order.buyer_id, order.seller_id):
                raise AccessDenied("Only the buyer or the seller can cancel this order")
            previous = order.status
            order.cancel(reason=reason)

            ledger, before = self.ledger_service.load(order.id)
            reverse_funds(order, ledger)
            self.order_repo.save(order)
            self.ledger_service.commit(ledger, before)

            self.events.status_changed(order, previous, actor_id=actor_id, reason=reason)
            return order

    @transaction.atomic
    def accept_order(self, order_id: UUID, courier_id: UUID) -> Order:
        """Courier takes a confirmed order."""
        with order_lock(order_id):
            order = self._get_order(order_id)
            already_assigned = order.courier_id == courier_id
            order.assign_courier(courier_id)
            self.order_repo.save(order)
            if not already_assigned:
                self.events.record(
                    CourierAssigned(
                        event_id=uuid4(),
                        aggregate_id=order.id,
                        event_type="CourierAssigned",
                        courier_id=courier_id,
                    ),
                    "Order",
                )
            return order

    @transaction.atomic
    def scan_pickup(self, order_id: UUID, courier_id: UUID, token, photo_url: str) -> Order:
        """Courier scans the seller's pickup QR and attaches a photo."""
        with order_lock(order_id):
            order = self._get_order(order_id)
            previous = order.status
            had_courier = order.courier_id is not None
            # Guards are checked before the token is consumed
            order.pick_up(courier_id, photo_url)
            if not self.token_issuer.verify_token(order.id, token, kind=TokenKind.PICKUP):
                raise TokenMismatch("Pickup QR code does not match this order")
            self.order_repo.save(order)
            if not had_courier:
                self.events.record(
                    CourierAssigned(
                        event_id=uuid4(),
                        aggregate_id=order.id,
                        event_type="CourierAssigned",
                        courier_id=courier_id,
                    ),
                    "Order",
                )
            self.events.status_changed(order, previous, actor_id=courier_id)
            return order

    @transaction.atomic
    def depart(self, order_id: UUID, courier_id: UUID) -> TransitionResult:
        """Courier leaves with the parcel; the buyer receives the delivery code."""
        with order_lock(order_id):
            order = self._get_order(order_id)
            previous = order.status
            order.depart(courier_id)
            self.order_repo.save(order)
            token = self.token_issuer.issue_delivery_token(order.id)

            self.events.status_changed(order, previous, actor_id=courier_id)
            self._token_issued(order, TokenKind.DELIVERY, order.buyer_id)
            return TransitionResult(order=order, token=token)

    @transaction.atomic
    def confirm_delivery(self, order_id: UUID, token, actor_id: UUID | None = None) -> Order:
        """Delivery QR scan or 6 digit code: settle the escrow."""
        with order_lock(order_id):
            order = self._get_order(order_id)
            previous = order.status
            order.deliver()
            if not self.token_issuer.verify_token(order.id, token, kind=TokenKind.DELIVERY):
                raise TokenMismatch("Delivery code does not match this order")

            ledger, before = self.ledger_service.load(order.id)
            collect_cash_on_delivery(order, ledger)
            distribute_funds(order, ledger)
            self.order_repo.save(order)
            self.ledger_service.commit(ledger, before)

            self.events.status_changed(order, previous, actor_id=actor_id)
            logger.info(
                "order_delivered",
                extra={"order_id": str(order.id), "order_number": order.order_number},
            )
            return order

    def _token_issued(self, order: Order, kind: TokenKind, recipient_id: UUID | None) -> None:
        self.events.record(
            HandoverTokenIssued(
                event_id=uuid4(),
                aggregate_id=order.id,
                event_type="HandoverTokenIssued",
                kind=kind.value,
                recipient_id=recipient_id,
            ),
            "Order",
        )
