"""
Read models (projections) for CQRS.
"""
from __future__ import annotations

from django.db import models

from escrow.infra.models import TimeStampedModel


class OrderSummary(TimeStampedModel):
    """Read model for order summary (denormalized for fast reads)."""
    id = models.UUIDField(primary_key=True, editable=False)  # Same as the order id
    order_number = models.CharField(max_length=32)
    buyer_id = models.UUIDField()
    seller_id = models.UUIDField()
    courier_id = models.UUIDField(null=True, blank=True)
    status = models.CharField(max_length=20)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2)
    items_count = models.IntegerField(default=0)
    is_paid = models.BooleanField(default=False)
    open_dispute = models.BooleanField(default=False)
    last_event_at = models.DateTimeField(null=True, blank=True)
    created_at_read = models.DateTimeField()  # Denormalized from write model

    class Meta:
        indexes = [
            models.Index(fields=("buyer_id", "status")),
            models.Index(fields=("seller_id", "status")),
            models.Index(fields=("courier_id", "status")),
            models.Index(fields=("status",)),
        ]
