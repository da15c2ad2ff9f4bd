"""
Infrastructure repositories for domain entities.
"""
from __future__ import annotations

from uuid import UUID

from django.db import transaction

from escrow.domain.dispute import Dispute, DisputeStatus, OPEN_STATUSES
from escrow.domain.ledger import EntryStatus, EntryType, LedgerEntry, OrderLedger, PayeeRole
from escrow.domain.order import Order, OrderItem, OrderStatus, PaymentMethod
from escrow.domain.returns import ReturnRequest, ReturnStatus
from escrow.domain.withdrawal import WithdrawalRequest, WithdrawalStatus
from escrow.infra.models import (
    DisputeORM,
    LedgerEntryORM,
    OrderItemORM,
    OrderORM,
    ReturnORM,
    WithdrawalORM,
)


class OrderRepository:
    """Repository for Order aggregate."""

    def get_by_id(self, order_id: UUID, for_update: bool = False) -> Order | None:
        """Get order by ID with items (optimized, no N+1)."""
        queryset = OrderORM.objects.prefetch_related("items")
        if for_update:
            queryset = queryset.select_for_update()
        try:
            return self._to_domain(queryset.get(id=order_id))
        except OrderORM.DoesNotExist:
            return None

    def get_by_number(self, order_number: str) -> Order | None:
        order_orm = OrderORM.objects.prefetch_related("items").filter(order_number=order_number).first()
        return self._to_domain(order_orm) if order_orm else None

    def list(
        self,
        buyer_id: UUID | None = None,
        seller_id: UUID | None = None,
        courier_id: UUID | None = None,
        status: OrderStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Order]:
        """List orders with optional filters and pagination (optimized)."""
        queryset = OrderORM.objects.prefetch_related("items")
        if buyer_id:
            queryset = queryset.filter(buyer_id=buyer_id)
        if seller_id:
            queryset = queryset.filter(seller_id=seller_id)
        if courier_id:
            queryset = queryset.filter(courier_id=courier_id)
        if status:
            queryset = queryset.filter(status=OrderStatus(status).value)
        orders_orm = queryset.order_by("-created_at")[offset:offset + limit]
        return [self._to_domain(order_orm) for order_orm in orders_orm]

    def all(self) -> list[Order]:
        return [self._to_domain(order_orm) for order_orm in OrderORM.objects.prefetch_related("items")]

    @transaction.atomic
    def save(self, order: Order) -> UUID:
        """Save order aggregate. Items are written once, at creation."""
        order_orm, created = OrderORM.objects.update_or_create(
            id=order.id,
            defaults={
                "order_number": order.order_number,
                "buyer_id": order.buyer_id,
                "seller_id": order.seller_id,
                "courier_id": order.courier_id,
                "subtotal": order.subtotal,
                "courier_fee": order.courier_fee,
                "total_amount": order.total_amount,
                "platform_commission": order.platform_commission,
                "seller_net_amount": order.seller_net_amount,
                "status": order.status.value,
                "payment_method": order.payment_method.value,
                "is_paid": order.is_paid,
                "delivery_address": order.delivery_address,
                "delivery_city": order.delivery_city,
                "delivery_phone": order.delivery_phone,
                "pickup_photo_url": order.pickup_photo_url,
                "picked_up_at": order.picked_up_at,
                "delivered_at": order.delivered_at,
                "cancelled_at": order.cancelled_at,
                "cancel_reason": order.cancel_reason,
            }
        )

        if created:
            OrderItemORM.objects.bulk_create([
                OrderItemORM(
                    order=order_orm,
                    position=position,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                )
                for position, item in enumerate(order.items)
            ])

        order.created_at = order_orm.created_at
        order.updated_at = order_orm.updated_at
        return order_orm.id

    def _to_domain(self, order_orm: OrderORM) -> Order:
        """Convert ORM model to domain entity."""
        items = [
            OrderItem(
                product_id=item_orm.product_id,
                quantity=item_orm.quantity,
                unit_price=item_orm.unit_price,
            )
            for item_orm in order_orm.items.all()
        ]

        return Order(
            id=order_orm.id,
            order_number=order_orm.order_number,
            buyer_id=order_orm.buyer_id,
            seller_id=order_orm.seller_id,
            courier_id=order_orm.courier_id,
            items=items,
            courier_fee=order_orm.courier_fee,
            platform_commission=order_orm.platform_commission,
            status=OrderStatus(order_orm.status),
            payment_method=PaymentMethod(order_orm.payment_method),
            is_paid=order_orm.is_paid,
            delivery_address=order_orm.delivery_address,
            delivery_city=order_orm.delivery_city,
            delivery_phone=order_orm.delivery_phone,
            pickup_photo_url=order_orm.pickup_photo_url,
            picked_up_at=order_orm.picked_up_at,
            delivered_at=order_orm.delivered_at,
            cancelled_at=order_orm.cancelled_at,
            cancel_reason=order_orm.cancel_reason,
            created_at=order_orm.created_at,
            updated_at=order_orm.updated_at,
        )


class LedgerRepository:
    """Repository for per-order ledgers."""

    def get_for_order(self, order_id: UUID) -> OrderLedger:
        entries = [
            self._to_domain(entry_orm)
            for entry_orm in LedgerEntryORM.objects.filter(order_id=order_id).order_by("created_at")
        ]
        return OrderLedger(order_id=order_id, entries=entries)

    def all_entries(self) -> list[LedgerEntry]:
        return [self._to_domain(entry_orm) for entry_orm in LedgerEntryORM.objects.all()]

    def entries_for_payee(self, payee_id: UUID) -> list[LedgerEntry]:
        return [
            self._to_domain(entry_orm)
            for entry_orm in LedgerEntryORM.objects.filter(payee_id=payee_id, entry_type=EntryType.PAYOUT.value)
        ]

    def get_entry(self, entry_id: UUID) -> LedgerEntry | None:
        entry_orm = LedgerEntryORM.objects.filter(id=entry_id).first()
        return self._to_domain(entry_orm) if entry_orm else None

    @transaction.atomic
    def save(self, ledger: OrderLedger) -> list[LedgerEntry]:
        """Persist status moves, then append new entries (entries are immutable otherwise).

        Returns the newly created entries.
        """
        existing = {
            entry_orm.id: entry_orm
            for entry_orm in LedgerEntryORM.objects.filter(order_id=ledger.order_id)
        }

        created = []
        for entry in ledger.entries:
            entry_orm = existing.get(entry.id)
            if entry_orm is None:
                continue
            if entry_orm.status != entry.status.value or entry_orm.reference != entry.reference:
                entry_orm.status = entry.status.value
                entry_orm.reference = entry.reference
                entry_orm.save(update_fields=["status", "reference", "updated_at"])

        for entry in ledger.entries:
            if entry.id in existing:
                continue
            entry_orm = LedgerEntryORM.objects.create(
                id=entry.id,
                order_id=ledger.order_id,
                entry_type=entry.entry_type.value,
                amount=entry.amount,
                status=entry.status.value,
                payee_id=entry.payee_id,
                payee_role=entry.payee_role.value if entry.payee_role else None,
                request_id=entry.request_id,
                reference=entry.reference,
                description=entry.description,
            )
            entry.created_at = entry_orm.created_at
            created.append(entry)

        return created

    def _to_domain(self, entry_orm: LedgerEntryORM) -> LedgerEntry:
        return LedgerEntry(
            id=entry_orm.id,
            order_id=entry_orm.order_id,
            entry_type=EntryType(entry_orm.entry_type),
            amount=entry_orm.amount,
            status=EntryStatus(entry_orm.status),
            payee_id=entry_orm.payee_id,
            payee_role=PayeeRole(entry_orm.payee_role) if entry_orm.payee_role else None,
            request_id=entry_orm.request_id,
            reference=entry_orm.reference,
            description=entry_orm.description,
            created_at=entry_orm.created_at,
        )


class DisputeRepository:
    """Repository for Dispute aggregate."""

    def get_by_id(self, dispute_id: UUID, for_update: bool = False) -> Dispute | None:
        queryset = DisputeORM.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        dispute_orm = queryset.filter(id=dispute_id).first()
        return self._to_domain(dispute_orm) if dispute_orm else None

    def get_open_for_order(self, order_id: UUID) -> Dispute | None:
        dispute_orm = (
            DisputeORM.objects
            .filter(order_id=order_id, status__in=[status.value for status in OPEN_STATUSES])
            .first()
        )
        return self._to_domain(dispute_orm) if dispute_orm else None

    def list(self, status: DisputeStatus | None = None, order_id: UUID | None = None, limit: int = 50, offset: int = 0) -> list[Dispute]:
        queryset = DisputeORM.objects.all()
        if status:
            queryset = queryset.filter(status=DisputeStatus(status).value)
        if order_id:
            queryset = queryset.filter(order_id=order_id)
        return [self._to_domain(d) for d in queryset.order_by("-created_at")[offset:offset + limit]]

    @transaction.atomic
    def save(self, dispute: Dispute) -> UUID:
        dispute_orm, _ = DisputeORM.objects.update_or_create(
            id=dispute.id,
            defaults={
                "order_id": dispute.order_id,
                "reporter_id": dispute.reporter_id,
                "reason": dispute.reason.value,
                "description": dispute.description,
                "status": dispute.status.value,
                "resolution": dispute.resolution.value if dispute.resolution else None,
                "resolution_note": dispute.resolution_note,
                "refund_amount": dispute.refund_amount,
                "resolved_by": dispute.resolved_by,
                "resolved_at": dispute.resolved_at,
                "assigned_admin_id": dispute.assigned_admin_id,
            }
        )
        dispute.created_at = dispute_orm.created_at
        dispute.updated_at = dispute_orm.updated_at
        return dispute_orm.id

    def _to_domain(self, dispute_orm: DisputeORM) -> Dispute:
        return Dispute(
            id=dispute_orm.id,
            order_id=dispute_orm.order_id,
            reporter_id=dispute_orm.reporter_id,
            reason=dispute_orm.reason,
            description=dispute_orm.description,
            status=dispute_orm.status,
            resolution=dispute_orm.resolution,
            resolution_note=dispute_orm.resolution_note,
            refund_amount=dispute_orm.refund_amount,
            resolved_by=dispute_orm.resolved_by,
            resolved_at=dispute_orm.resolved_at,
            assigned_admin_id=dispute_orm.assigned_admin_id,
            created_at=dispute_orm.created_at,
            updated_at=dispute_orm.updated_at,
        )


class ReturnRepository:
    """Repository for return requests."""

    def get_by_id(self, return_id: UUID, for_update: bool = False) -> ReturnRequest | None:
        queryset = ReturnORM.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        return_orm = queryset.filter(id=return_id).first()
        return self._to_domain(return_orm) if return_orm else None

    def exists_for_order(self, order_id: UUID) -> bool:
        return ReturnORM.objects.filter(order_id=order_id).exists()

    def list(
        self,
        buyer_id: UUID | None = None,
        seller_id: UUID | None = None,
        status: ReturnStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ReturnRequest]:
        queryset = ReturnORM.objects.all()
        if buyer_id:
            queryset = queryset.filter(buyer_id=buyer_id)
        if seller_id:
            queryset = queryset.filter(seller_id=seller_id)
        if status:
            queryset = queryset.filter(status=ReturnStatus(status).value)
        return [self._to_domain(r) for r in queryset.order_by("-created_at")[offset:offset + limit]]

    @transaction.atomic
    def save(self, return_request: ReturnRequest) -> UUID:
        return_orm, _ = ReturnORM.objects.update_or_create(
            id=return_request.id,
            defaults={
                "order_id": return_request.order_id,
                "buyer_id": return_request.buyer_id,
                "seller_id": return_request.seller_id,
                "reason": return_request.reason.value,
                "description": return_request.description,
                "status": return_request.status.value,
                "refund_amount": return_request.refund_amount,
                "seller_response": return_request.seller_response,
                "admin_notes": return_request.admin_notes,
            }
        )
        return_request.created_at = return_orm.created_at
        return_request.updated_at = return_orm.updated_at
        return return_orm.id

    def _to_domain(self, return_orm: ReturnORM) -> ReturnRequest:
        return ReturnRequest(
            id=return_orm.id,
            order_id=return_orm.order_id,
            buyer_id=return_orm.buyer_id,
            seller_id=return_orm.seller_id,
            reason=return_orm.reason,
            description=return_orm.description,
            status=return_orm.status,
            refund_amount=return_orm.refund_amount,
            seller_response=return_orm.seller_response,
            admin_notes=return_orm.admin_notes,
            created_at=return_orm.created_at,
            updated_at=return_orm.updated_at,
        )


class WithdrawalRepository:
    """Repository for payee withdrawals."""

    def get_by_id(self, withdrawal_id: UUID, for_update: bool = False) -> WithdrawalRequest | None:
        queryset = WithdrawalORM.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        withdrawal_orm = queryset.filter(id=withdrawal_id).first()
        return self._to_domain(withdrawal_orm) if withdrawal_orm else None

    def for_payee(self, payee_id: UUID) -> list[WithdrawalRequest]:
        return [self._to_domain(w) for w in WithdrawalORM.objects.filter(payee_id=payee_id)]

    def list(
        self,
        payee_id: UUID | None = None,
        status: WithdrawalStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WithdrawalRequest]:
        queryset = WithdrawalORM.objects.all()
        if payee_id:
            queryset = queryset.filter(payee_id=payee_id)
        if status:
            queryset = queryset.filter(status=WithdrawalStatus(status).value)
        return [self._to_domain(w) for w in queryset.order_by("-created_at")[offset:offset + limit]]

    @transaction.atomic
    def save(self, withdrawal: WithdrawalRequest) -> UUID:
        withdrawal_orm, _ = WithdrawalORM.objects.update_or_create(
            id=withdrawal.id,
            defaults={
                "payee_id": withdrawal.payee_id,
                "amount": withdrawal.amount,
                "currency": withdrawal.currency,
                "method": withdrawal.method,
                "account_details": withdrawal.account_details,
                "status": withdrawal.status.value,
                "admin_id": withdrawal.admin_id,
                "admin_note": withdrawal.admin_note,
                "reference": withdrawal.reference,
                "processed_at": withdrawal.processed_at,
            }
        )
        withdrawal.created_at = withdrawal_orm.created_at
        withdrawal.updated_at = withdrawal_orm.updated_at
        return withdrawal_orm.id

    def _to_domain(self, withdrawal_orm: WithdrawalORM) -> WithdrawalRequest:
        return WithdrawalRequest(
            id=withdrawal_orm.id,
            payee_id=withdrawal_orm.payee_id,
            amount=withdrawal_orm.amount,
            currency=withdrawal_orm.currency,
            method=withdrawal_orm.method,
            account_details=withdrawal_orm.account_details,
            status=withdrawal_orm.status,
            admin_id=withdrawal_orm.admin_id,
            admin_note=withdrawal_orm.admin_note,
            reference=withdrawal_orm.reference,
            processed_at=withdrawal_orm.processed_at,
            created_at=withdrawal_orm.created_at,
            updated_at=withdrawal_orm.updated_at,
        )
