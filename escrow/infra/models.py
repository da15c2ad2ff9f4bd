from __future__ import annotations

from uuid import uuid4

from django.db import models
from django.db.models import Q


ORDER_STATUS_CHOICES = (
    ("pending", "Pending"),
    ("confirmed", "Confirmed"),
    ("picked_up", "Picked up"),
    ("in_transit", "In transit"),
    ("delivered", "Delivered"),
    ("cancelled", "Cancelled"),
    ("disputed", "Disputed"),
)

PAYMENT_METHOD_CHOICES = (
    ("cash", "Cash on delivery"),
    ("card", "Card"),
)

ENTRY_TYPE_CHOICES = (
    ("payment", "Payment"),
    ("commission", "Commission"),
    ("payout", "Payout"),
    ("refund", "Refund"),
)

ENTRY_STATUS_CHOICES = (
    ("pending", "Pending"),
    ("held", "Held"),
    ("completed", "Completed"),
    ("failed", "Failed"),
    ("voided", "Voided"),
)

PAYEE_ROLE_CHOICES = (
    ("seller", "Seller"),
    ("courier", "Courier"),
)

DISPUTE_REASON_CHOICES = (
    ("not_received", "Not received"),
    ("wrong_item", "Wrong item"),
    ("damaged", "Damaged"),
    ("quality", "Quality"),
    ("incomplete", "Incomplete"),
    ("other", "Other"),
)

DISPUTE_STATUS_CHOICES = (
    ("open", "Open"),
    ("in_review", "In review"),
    ("resolved", "Resolved"),
    ("closed", "Closed"),
)

DISPUTE_RESOLUTION_CHOICES = (
    ("favor_buyer", "In favor of buyer"),
    ("favor_seller", "In favor of seller"),
    ("partial", "Partial refund"),
)

RETURN_REASON_CHOICES = (
    ("defective", "Defective"),
    ("wrong_item", "Wrong item"),
    ("not_as_described", "Not as described"),
    ("changed_mind", "Changed mind"),
    ("damaged", "Damaged"),
    ("other", "Other"),
)

RETURN_STATUS_CHOICES = (
    ("pending", "Pending"),
    ("approved", "Approved"),
    ("rejected", "Rejected"),
    ("shipped", "Shipped"),
    ("received", "Received"),
    ("refunded", "Refunded"),
    ("closed", "Closed"),
)

WITHDRAWAL_STATUS_CHOICES = (
    ("pending", "Pending"),
    ("completed", "Completed"),
    ("rejected", "Rejected"),
)

TOKEN_KIND_CHOICES = (
    ("pickup", "Seller pickup"),
    ("delivery", "Courier delivery"),
)


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class OrderORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    order_number = models.CharField(max_length=32, unique=True)
    buyer_id = models.UUIDField()
    seller_id = models.UUIDField()
    courier_id = models.UUIDField(null=True, blank=True)
    subtotal = models.DecimalField(max_digits=14, decimal_places=2)
    courier_fee = models.DecimalField(max_digits=14, decimal_places=2)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2)
    platform_commission = models.DecimalField(max_digits=14, decimal_places=2)
    seller_net_amount = models.DecimalField(max_digits=14, decimal_places=2)
    status = models.CharField(max_length=20, choices=ORDER_STATUS_CHOICES, default="pending")
    payment_method = models.CharField(max_length=10, choices=PAYMENT_METHOD_CHOICES)
    is_paid = models.BooleanField(default=False)
    delivery_address = models.TextField(default="", blank=True)
    delivery_city = models.CharField(max_length=100, default="", blank=True)
    delivery_phone = models.CharField(max_length=32, default="", blank=True)
    pickup_photo_url = models.CharField(max_length=500, default="", blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.TextField(default="", blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("buyer_id", "status")),
            models.Index(fields=("seller_id", "status")),
            models.Index(fields=("courier_id", "status")),
            models.Index(fields=("status",)),
        ]


class OrderItemORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.CASCADE,
        related_name="items",
    )
    position = models.PositiveIntegerField(default=0)
    product_id = models.UUIDField()
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        ordering = ["position"]
        indexes = [
            models.Index(fields=("order",)),
        ]


class LedgerEntryORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )
    entry_type = models.CharField(max_length=20, choices=ENTRY_TYPE_CHOICES)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    status = models.CharField(max_length=20, choices=ENTRY_STATUS_CHOICES)
    payee_id = models.UUIDField(null=True, blank=True)
    payee_role = models.CharField(max_length=20, choices=PAYEE_ROLE_CHOICES, null=True, blank=True)
    request_id = models.CharField(max_length=255, null=True, blank=True)
    reference = models.CharField(max_length=255, default="", blank=True)
    description = models.TextField(default="", blank=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=("order", "entry_type")),
            models.Index(fields=("entry_type", "status")),
            models.Index(fields=("payee_id", "status")),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=("order",),
                condition=Q(entry_type="payment") & ~Q(status="failed"),
                name="ledger_one_live_payment_per_order",
            ),
            models.UniqueConstraint(
                fields=("order",),
                condition=Q(entry_type="commission", status__in=("held", "completed")),
                name="ledger_one_commission_per_order",
            ),
            models.UniqueConstraint(
                fields=("order", "payee_role"),
                condition=Q(entry_type="payout") & ~Q(status="failed"),
                name="ledger_one_payout_per_role",
            ),
        ]


class DisputeORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.PROTECT,
        related_name="disputes",
    )
    reporter_id = models.UUIDField()
    reason = models.CharField(max_length=20, choices=DISPUTE_REASON_CHOICES)
    description = models.TextField(default="", blank=True)
    status = models.CharField(max_length=20, choices=DISPUTE_STATUS_CHOICES, default="open")
    resolution = models.CharField(max_length=20, choices=DISPUTE_RESOLUTION_CHOICES, null=True, blank=True)
    resolution_note = models.TextField(default="", blank=True)
    refund_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    resolved_by = models.UUIDField(null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    assigned_admin_id = models.UUIDField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("status",)),
            models.Index(fields=("order",)),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=("order",),
                condition=Q(status__in=("open", "in_review")),
                name="dispute_one_open_per_order",
            ),
        ]


class ReturnORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    order = models.OneToOneField(
        OrderORM,
        on_delete=models.PROTECT,
        related_name="return_request",
    )
    buyer_id = models.UUIDField()
    seller_id = models.UUIDField()
    reason = models.CharField(max_length=20, choices=RETURN_REASON_CHOICES)
    description = models.TextField()
    status = models.CharField(max_length=20, choices=RETURN_STATUS_CHOICES, default="pending")
    refund_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    seller_response = models.TextField(default="", blank=True)
    admin_notes = models.TextField(default="", blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("buyer_id", "status")),
            models.Index(fields=("seller_id", "status")),
        ]


class WithdrawalORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    payee_id = models.UUIDField()
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3, default="UZS")
    method = models.CharField(max_length=50, default="card")
    account_details = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=20, choices=WITHDRAWAL_STATUS_CHOICES, default="pending")
    admin_id = models.UUIDField(null=True, blank=True)
    admin_note = models.TextField(default="", blank=True)
    reference = models.CharField(max_length=255, default="", blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("payee_id", "status")),
        ]


class HandoverTokenORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.CASCADE,
        related_name="handover_tokens",
    )
    kind = models.CharField(max_length=10, choices=TOKEN_KIND_CHOICES)
    code = models.CharField(max_length=16)
    short_code = models.CharField(max_length=6, default="", blank=True)
    issued_at = models.DateTimeField()
    expires_at = models.DateTimeField()
    consumed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("order", "kind")),
        ]


class IdempotencyKey(TimeStampedModel):
    key = models.CharField(max_length=255)
    user_id = models.UUIDField(null=True, blank=True)
    operation = models.CharField(max_length=64)
    request_hash = models.CharField(max_length=255)
    response_payload = models.JSONField()

    class Meta:
        unique_together = [("key", "user_id", "operation")]
        indexes = [
            models.Index(fields=("request_hash",)),
            models.Index(fields=("key", "user_id", "operation")),
        ]
