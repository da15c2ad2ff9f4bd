"""
Domain model for Order aggregate.

The order status lifecycle is an explicit transition table keyed by
``(status, event)``; every mutation goes through ``_apply``.
"""
from __future__ import annotations

import random
import string
import time
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from uuid import UUID, uuid4

from escrow.domain.errors import AccessDenied, InvalidTransition, ValidationError


CENT = Decimal("0.01")
PLATFORM_COMMISSION_RATE = Decimal("0.05")


def money(value) -> Decimal:
    """Normalize an amount to two decimal places."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class OrderStatus(str, Enum):
    """Order status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"


class OrderEvent(str, Enum):
    """Events that drive order status transitions."""
    CONFIRM = "confirm"
    CANCEL = "cancel"
    PICK_UP = "pick_up"
    DEPART = "depart"
    DELIVER = "deliver"
    OPEN_DISPUTE = "open_dispute"
    RESOLVE_FOR_BUYER = "resolve_for_buyer"
    RESOLVE_FOR_SELLER = "resolve_for_seller"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

TRANSITIONS: dict[tuple[OrderStatus, OrderEvent], OrderStatus] = {
    (OrderStatus.PENDING, OrderEvent.CONFIRM): OrderStatus.CONFIRMED,
    (OrderStatus.PENDING, OrderEvent.CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.CONFIRMED, OrderEvent.CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.CONFIRMED, OrderEvent.PICK_UP): OrderStatus.PICKED_UP,
    (OrderStatus.PICKED_UP, OrderEvent.DEPART): OrderStatus.IN_TRANSIT,
    (OrderStatus.IN_TRANSIT, OrderEvent.DELIVER): OrderStatus.DELIVERED,
    (OrderStatus.PENDING, OrderEvent.OPEN_DISPUTE): OrderStatus.DISPUTED,
    (OrderStatus.CONFIRMED, OrderEvent.OPEN_DISPUTE): OrderStatus.DISPUTED,
    (OrderStatus.PICKED_UP, OrderEvent.OPEN_DISPUTE): OrderStatus.DISPUTED,
    (OrderStatus.IN_TRANSIT, OrderEvent.OPEN_DISPUTE): OrderStatus.DISPUTED,
    (OrderStatus.DISPUTED, OrderEvent.RESOLVE_FOR_BUYER): OrderStatus.CANCELLED,
    (OrderStatus.DISPUTED, OrderEvent.RESOLVE_FOR_SELLER): OrderStatus.DELIVERED,
}


def next_status(current: OrderStatus, event: OrderEvent) -> OrderStatus:
    """Look up the target status or raise InvalidTransition."""
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        allowed = ", ".join(e.value for e in allowed_events(current)) or "none"
        raise InvalidTransition(
            f"Cannot apply '{event.value}' to order in status '{current.value}'. "
            f"Allowed events: {allowed}"
        ) from None


def allowed_events(current: OrderStatus) -> list[OrderEvent]:
    return [event for (status, event) in TRANSITIONS if status == current]


def generate_order_number() -> str:
    """Human readable order number, e.g. ``GGM-LZ8K2Q1A-7XQ2``."""
    millis = int(time.time() * 1000)
    digits = string.digits + string.ascii_uppercase
    encoded = ""
    while millis:
        millis, remainder = divmod(millis, 36)
        encoded = digits[remainder] + encoded
    suffix = "".join(random.choices(digits, k=4))
    return f"GGM-{encoded}-{suffix}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderItem:
    """Order line item value object."""

    def __init__(self, product_id: UUID, quantity: int, unit_price: Decimal):
        if int(quantity) <= 0:
            raise ValidationError("Quantity must be positive")
        if Decimal(str(unit_price)) <= 0:
            raise ValidationError("Unit price must be positive")

        self.product_id = product_id
        self.quantity = int(quantity)
        self.unit_price = money(unit_price)

    @property
    def subtotal(self) -> Decimal:
        """Calculate item subtotal."""
        return self.unit_price * self.quantity


class Order:
    """Order aggregate root."""

    def __init__(
        self,
        id: UUID | None = None,
        order_number: str | None = None,
        buyer_id: UUID | None = None,
        seller_id: UUID | None = None,
        courier_id: UUID | None = None,
        items: list[OrderItem] | None = None,
        courier_fee: Decimal = Decimal("0.00"),
        platform_commission: Decimal | None = None,
        status: OrderStatus = OrderStatus.PENDING,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        is_paid: bool = False,
        delivery_address: str = "",
        delivery_city: str = "",
        delivery_phone: str = "",
        pickup_photo_url: str = "",
        picked_up_at: datetime | None = None,
        delivered_at: datetime | None = None,
        cancelled_at: datetime | None = None,
        cancel_reason: str = "",
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.order_number = order_number or generate_order_number()
        self.buyer_id = buyer_id
        self.seller_id = seller_id
        self.courier_id = courier_id
        self._items = items or []
        self.courier_fee = money(courier_fee)
        self._status = OrderStatus(status)
        self.payment_method = PaymentMethod(payment_method)
        self.is_paid = is_paid
        self.delivery_address = delivery_address
        self.delivery_city = delivery_city
        self.delivery_phone = delivery_phone
        self.pickup_photo_url = pickup_photo_url
        self.picked_up_at = picked_up_at
        self.delivered_at = delivered_at
        self.cancelled_at = cancelled_at
        self.cancel_reason = cancel_reason
        self.created_at = created_at
        self.updated_at = updated_at
        if platform_commission is None:
            platform_commission = self.subtotal * PLATFORM_COMMISSION_RATE
        self._platform_commission = money(platform_commission)

    @classmethod
    def place(
        cls,
        buyer_id: UUID,
        seller_id: UUID,
        items: list[OrderItem],
        payment_method: PaymentMethod,
        courier_fee: Decimal,
        commission_rate: Decimal = PLATFORM_COMMISSION_RATE,
        delivery_address: str = "",
        delivery_city: str = "",
        delivery_phone: str = "",
    ) -> "Order":
        """Create a pending order at checkout, freezing the commission."""
        if not items:
            raise ValidationError("Order must contain at least one item")
        if Decimal(str(courier_fee)) < 0:
            raise ValidationError("Courier fee must be non-negative")
        if buyer_id == seller_id:
            raise ValidationError("Buyer and seller must differ")

        subtotal = sum((item.subtotal for item in items), Decimal("0.00"))
        return cls(
            buyer_id=buyer_id,
            seller_id=seller_id,
            items=list(items),
            courier_fee=courier_fee,
            platform_commission=subtotal * Decimal(str(commission_rate)),
            payment_method=payment_method,
            delivery_address=delivery_address,
            delivery_city=delivery_city,
            delivery_phone=delivery_phone,
        )

    @property
    def items(self) -> list[OrderItem]:
        """Get order items (immutable)."""
        return list(self._items)

    @property
    def status(self) -> OrderStatus:
        return self._status

    @property
    def subtotal(self) -> Decimal:
        return money(sum((item.subtotal for item in self._items), Decimal("0.00")))

    @property
    def total_amount(self) -> Decimal:
        return self.subtotal + self.courier_fee

    @property
    def platform_commission(self) -> Decimal:
        return self._platform_commission

    @property
    def seller_net_amount(self) -> Decimal:
        return self.total_amount - self.courier_fee - self.platform_commission

    @property
    def is_terminal(self) -> bool:
        return self._status in TERMINAL_STATUSES

    def is_participant(self, user_id: UUID) -> bool:
        return user_id in (self.buyer_id, self.seller_id, self.courier_id)

    def can(self, event: OrderEvent) -> bool:
        return (self._status, event) in TRANSITIONS

    def ensure_can(self, event: OrderEvent) -> OrderStatus:
        """Validate a transition without applying it."""
        return next_status(self._status, event)

    def _apply(self, event: OrderEvent) -> OrderStatus:
        self._status = next_status(self._status, event)
        return self._status

    def _ensure_courier(self, courier_id: UUID) -> None:
        if self.courier_id is not None and self.courier_id != courier_id:
            raise AccessDenied(f"Order {self.order_number} is assigned to another courier")

    def confirm(self) -> None:
        """Seller confirms the order (pending -> confirmed)."""
        self.ensure_can(OrderEvent.CONFIRM)
        if self.payment_method == PaymentMethod.CARD and not self.is_paid:
            raise InvalidTransition("Card orders must be paid before confirmation")
        self._apply(OrderEvent.CONFIRM)

    def cancel(self, reason: str = "", at: datetime | None = None) -> None:
        self._apply(OrderEvent.CANCEL)
        self.cancel_reason = reason
        self.cancelled_at = at or _utcnow()

    def assign_courier(self, courier_id: UUID) -> None:
        """Courier accepts a confirmed order."""
        if self._status != OrderStatus.CONFIRMED:
            raise InvalidTransition(
                f"Only confirmed orders can be accepted, order is '{self._status.value}'"
            )
        self._ensure_courier(courier_id)
        self.courier_id = courier_id

    def pick_up(self, courier_id: UUID, photo_url: str, at: datetime | None = None) -> None:
        self.ensure_can(OrderEvent.PICK_UP)
        if not photo_url:
            raise ValidationError("Pickup photo is required")
        self._ensure_courier(courier_id)
        self._apply(OrderEvent.PICK_UP)
        self.courier_id = courier_id
        self.pickup_photo_url = photo_url
        self.picked_up_at = at or _utcnow()

    def depart(self, courier_id: UUID) -> None:
        self.ensure_can(OrderEvent.DEPART)
        self._ensure_courier(courier_id)
        self._apply(OrderEvent.DEPART)

    def deliver(self, at: datetime | None = None) -> None:
        self._apply(OrderEvent.DELIVER)
        self.delivered_at = at or _utcnow()

    def open_dispute(self) -> None:
        if self._status == OrderStatus.DISPUTED:
            raise InvalidTransition(f"Order {self.order_number} is already disputed")
        self._apply(OrderEvent.OPEN_DISPUTE)

    def resolve_dispute(self, for_seller: bool, at: datetime | None = None) -> None:
        """Admin resolution: deliver (seller side) or cancel (buyer side)."""
        if for_seller:
            self._apply(OrderEvent.RESOLVE_FOR_SELLER)
            self.delivered_at = at or _utcnow()
        else:
            self._apply(OrderEvent.RESOLVE_FOR_BUYER)
            self.cancelled_at = at or _utcnow()

    def mark_paid(self) -> None:
        self.is_paid = True

    def check_accounting(self) -> bool:
        """platformCommission + courierFee + sellerNetAmount == totalAmount."""
        return (
            self.platform_commission + self.courier_fee + self.seller_net_amount
            == self.total_amount
        )
