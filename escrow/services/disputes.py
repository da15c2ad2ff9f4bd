"""
Dispute sub-flow: opening, review and admin resolution.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID, uuid4

from django.db import transaction

from escrow.domain.dispute import Dispute, DisputeResolution, DisputeStatus
from escrow.domain.errors import AccessDenied, InvalidTransition, NotFound, ValidationError
from escrow.domain.events import DisputeOpened, DisputeResolved
from escrow.domain.ledger import EntryType
from escrow.domain.order import Order, OrderStatus
from escrow.domain.settlement import (
    collect_cash_on_delivery,
    distribute_funds,
    distribute_partial,
    reverse_funds,
)
from escrow.infra.locks import order_lock
from escrow.infra.repositories import DisputeRepository, OrderRepository
from escrow.services.events import EventRecorder
from escrow.services.ledger import LedgerService


logger = logging.getLogger(__name__)


class DisputeService:
    """Service for dispute operations."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        dispute_repo: DisputeRepository | None = None,
        ledger_service: LedgerService | None = None,
        events: EventRecorder | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.dispute_repo = dispute_repo or DisputeRepository()
        self.events = events or EventRecorder()
        self.ledger_service = ledger_service or LedgerService(order_repo=self.order_repo, events=self.events)

    def _get_order(self, order_id: UUID) -> Order:
        order = self.order_repo.get_by_id(order_id, for_update=True)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    def get_dispute(self, dispute_id: UUID, for_update: bool = False) -> Dispute:
        dispute = self.dispute_repo.get_by_id(dispute_id, for_update=for_update)
        if dispute is None:
            raise NotFound(f"Dispute {dispute_id} not found")
        return dispute

    def list_disputes(self, status: str | None = None, order_id: UUID | None = None, limit: int = 50, offset: int = 0) -> list[Dispute]:
        if status:
            try:
                status = DisputeStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown dispute status '{status}'") from None
        return self.dispute_repo.list(status=status, order_id=order_id, limit=limit, offset=offset)

    @transaction.atomic
    def open_dispute(self, order_id: UUID, reporter_id: UUID, reason: str, description: str = "") -> Dispute:
        """Buyer or seller contests a non-terminal order."""
        with order_lock(order_id):
            order = self._get_order(order_id)
            if reporter_id not in (order.buyer_id, order.seller_id):
                raise AccessDenied("Only the buyer or the seller can open a dispute")
            if self.dispute_repo.get_open_for_order(order_id) is not None:
                raise InvalidTransition(f"Order {order.order_number} already has an open dispute")

            dispute = Dispute.open(order.id, reporter_id, reason, description)
            previous = order.status
            order.open_dispute()

            self.order_repo.save(order)
            self.dispute_repo.save(dispute)
            self.events.record(
                DisputeOpened(
                    event_id=uuid4(),
                    aggregate_id=dispute.id,
                    event_type="DisputeOpened",
                    order_id=order.id,
                    reporter_id=reporter_id,
                    reason=dispute.reason.value,
                ),
                "Dispute",
            )
            self.events.status_changed(order, previous, actor_id=reporter_id, reason=dispute.reason.value)
            logger.info(
                "dispute_opened",
                extra={"order_id": str(order.id), "dispute_id": str(dispute.id), "user_id": str(reporter_id)},
            )
            return dispute

    @transaction.atomic
    def start_review(self, dispute_id: UUID, admin_id: UUID) -> Dispute:
        dispute = self.get_dispute(dispute_id, for_update=True)
        dispute.start_review(admin_id)
        self.dispute_repo.save(dispute)
        return dispute

    @transaction.atomic
    def resolve(
        self,
        dispute_id: UUID,
        resolution: str,
        note: str,
        admin_id: UUID,
        refund_amount: Decimal | None = None,
    ) -> Dispute:
        """Admin decision; the only way out of ``disputed``."""
        order_id = self.get_dispute(dispute_id).order_id
        with order_lock(order_id):
            dispute = self.get_dispute(dispute_id, for_update=True)
            order = self._get_order(order_id)
            dispute.resolve(resolution, note, admin_id, refund_amount)
            if order.status != OrderStatus.DISPUTED:
                raise InvalidTransition(
                    f"Order {order.order_number} is '{order.status.value}', expected 'disputed'"
                )

            ledger, before = self.ledger_service.load(order.id)
            previous = order.status
            if dispute.resolution == DisputeResolution.FAVOR_BUYER:
                order.resolve_dispute(for_seller=False)
                order.cancel_reason = note
                refunds = [e for e in reverse_funds(order, ledger) if e.entry_type == EntryType.REFUND]
                dispute.refund_amount = sum((e.amount for e in refunds), Decimal("0.00")) if refunds else None
            else:
                if order.courier_id is None:
                    raise InvalidTransition(
                        f"Order {order.order_number} has no courier; only a refund to the buyer is possible"
                    )
                order.resolve_dispute(for_seller=True)
                collect_cash_on_delivery(order, ledger)
                if dispute.resolution == DisputeResolution.FAVOR_SELLER:
                    distribute_funds(order, ledger)
                else:
                    distribute_partial(order, ledger, dispute.refund_amount)

            self.order_repo.save(order)
            self.dispute_repo.save(dispute)
            self.ledger_service.commit(ledger, before)

            self.events.record(
                DisputeResolved(
                    event_id=uuid4(),
                    aggregate_id=dispute.id,
                    event_type="DisputeResolved",
                    order_id=order.id,
                    resolution=dispute.resolution.value,
                    resolved_by=admin_id,
                    refund_amount=dispute.refund_amount,
                ),
                "Dispute",
            )
            self.events.status_changed(order, previous, actor_id=admin_id, reason=dispute.resolution.value)
            logger.info(
                "dispute_resolved",
                extra={
                    "order_id": str(order.id),
                    "dispute_id": str(dispute.id),
                    "status": dispute.resolution.value,
                },
            )
            return dispute

    @transaction.atomic
    def close(self, dispute_id: UUID, admin_id: UUID) -> Dispute:
        dispute = self.get_dispute(dispute_id, for_update=True)
        dispute.close()
        self.dispute_repo.save(dispute)
        logger.info("dispute_closed", extra={"dispute_id": str(dispute.id), "user_id": str(admin_id)})
        return dispute
