from django.contrib import admin

from escrow.infra.event_store import EventStore
from escrow.infra.models import (
    DisputeORM,
    HandoverTokenORM,
    IdempotencyKey,
    LedgerEntryORM,
    OrderItemORM,
    OrderORM,
    ReturnORM,
    WithdrawalORM,
)
from escrow.infra.outbox import OutboxEvent
from escrow.infra.read_models import OrderSummary


class OrderItemInline(admin.TabularInline):
    model = OrderItemORM
    extra = 0
    readonly_fields = ("position", "product_id", "quantity", "unit_price")


class LedgerEntryInline(admin.TabularInline):
    model = LedgerEntryORM
    extra = 0
    can_delete = False
    readonly_fields = ("entry_type", "amount", "status", "payee_id", "payee_role", "reference", "created_at")
    fields = readonly_fields


@admin.register(OrderORM)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "status", "payment_method", "is_paid", "total_amount", "created_at")
    list_filter = ("status", "payment_method", "is_paid", "created_at")
    search_fields = ("order_number", "id")
    inlines = (OrderItemInline, LedgerEntryInline)


@admin.register(LedgerEntryORM)
class LedgerEntryAdmin(admin.ModelAdmin):
    """Ledger is append-only; entries move only through the services."""
    list_display = ("id", "order", "entry_type", "amount", "status", "payee_role", "created_at")
    list_filter = ("entry_type", "status", "payee_role", "created_at")
    search_fields = ("order__order_number", "payee_id", "reference")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DisputeORM)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "reason", "status", "resolution", "created_at")
    list_filter = ("status", "reason", "resolution", "created_at")
    search_fields = ("order__order_number",)


@admin.register(ReturnORM)
class ReturnAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "reason", "status", "refund_amount", "created_at")
    list_filter = ("status", "reason", "created_at")
    search_fields = ("order__order_number",)


@admin.register(WithdrawalORM)
class WithdrawalAdmin(admin.ModelAdmin):
    list_display = ("id", "payee_id", "amount", "method", "status", "processed_at", "created_at")
    list_filter = ("status", "method", "created_at")
    search_fields = ("payee_id", "reference")
    readonly_fields = ("payee_id", "amount", "currency", "status", "admin_id", "processed_at")


@admin.register(HandoverTokenORM)
class HandoverTokenAdmin(admin.ModelAdmin):
    list_display = ("order", "kind", "issued_at", "expires_at", "consumed_at")
    list_filter = ("kind",)
    exclude = ("code", "short_code")


@admin.register(IdempotencyKey)
class IdempotencyAdmin(admin.ModelAdmin):
    list_display = ("key", "user_id", "operation", "created_at")
    list_filter = ("operation", "created_at")
    search_fields = ("key", "user_id")


@admin.register(OrderSummary)
class OrderSummaryAdmin(admin.ModelAdmin):
    list_display = ("order_number", "status", "total_amount", "items_count", "is_paid", "open_dispute", "last_event_at")
    list_filter = ("status", "is_paid", "open_dispute")
    search_fields = ("order_number",)


@admin.register(EventStore)
class EventStoreAdmin(admin.ModelAdmin):
    list_display = ("id", "aggregate_id", "aggregate_type", "event_type", "sequence_number", "created_at")
    list_filter = ("aggregate_type", "event_type", "created_at")
    readonly_fields = ("id", "aggregate_id", "aggregate_type", "event_type", "event_version", "event_data", "sequence_number")


@admin.register(OutboxEvent)
class OutboxEventAdmin(admin.ModelAdmin):
    list_display = ("id", "aggregate_id", "aggregate_type", "event_type", "processed", "retry_count", "created_at")
    list_filter = ("processed", "aggregate_type", "event_type", "created_at")
    readonly_fields = (
        "id", "aggregate_id", "aggregate_type", "event_type", "event_data",
        "processed", "processed_at", "retry_count", "last_error",
    )
