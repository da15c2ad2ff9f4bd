"""
Post-delivery returns. Refunds go against the original payment; the order
status is never touched.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID, uuid4

from django.db import transaction

from escrow.domain.errors import AccessDenied, InvalidTransition, NotFound, ValidationError
from escrow.domain.events import ReturnStatusChanged
from escrow.domain.order import Order
from escrow.domain.returns import ReturnRequest, ReturnStatus
from escrow.infra.locks import order_lock
from escrow.infra.repositories import OrderRepository, ReturnRepository
from escrow.services.events import EventRecorder
from escrow.services.ledger import LedgerService


logger = logging.getLogger(__name__)


class ReturnService:
    """Service for return requests."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        return_repo: ReturnRepository | None = None,
        ledger_service: LedgerService | None = None,
        events: EventRecorder | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.return_repo = return_repo or ReturnRepository()
        self.events = events or EventRecorder()
        self.ledger_service = ledger_service or LedgerService(order_repo=self.order_repo, events=self.events)

    def _get_order(self, order_id: UUID, for_update: bool = True) -> Order:
        order = self.order_repo.get_by_id(order_id, for_update=for_update)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    def get_return(self, return_id: UUID, for_update: bool = False) -> ReturnRequest:
        return_request = self.return_repo.get_by_id(return_id, for_update=for_update)
        if return_request is None:
            raise NotFound(f"Return request {return_id} not found")
        return return_request

    def list_returns(
        self,
        buyer_id: UUID | None = None,
        seller_id: UUID | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ReturnRequest]:
        if status:
            try:
                status = ReturnStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown return status '{status}'") from None
        return self.return_repo.list(buyer_id=buyer_id, seller_id=seller_id, status=status, limit=limit, offset=offset)

    def _changed(self, return_request: ReturnRequest, previous: ReturnStatus | None) -> None:
        self.return_repo.save(return_request)
        self.events.record(
            ReturnStatusChanged(
                event_id=uuid4(),
                aggregate_id=return_request.id,
                event_type="ReturnStatusChanged",
                order_id=return_request.order_id,
                from_status=previous.value if previous else "",
                to_status=return_request.status.value,
            ),
            "Return",
        )
        logger.info(
            "return_status_changed",
            extra={
                "return_id": str(return_request.id),
                "order_id": str(return_request.order_id),
                "from_status": previous.value if previous else "",
                "to_status": return_request.status.value,
            },
        )

    @transaction.atomic
    def request_return(self, order_id: UUID, buyer_id: UUID, reason: str, description: str) -> ReturnRequest:
        with order_lock(order_id):
            order = self._get_order(order_id)
            if self.return_repo.exists_for_order(order_id):
                raise InvalidTransition("A return request already exists for this order")
            return_request = ReturnRequest.request(order, buyer_id, reason, description)
            self._changed(return_request, None)
            return return_request

    @transaction.atomic
    def respond(
        self,
        return_id: UUID,
        seller_id: UUID,
        approve: bool,
        response: str = "",
        refund_amount: Decimal | None = None,
    ) -> ReturnRequest:
        """Seller approves (with the amount to refund) or rejects the return."""
        return_request = self.get_return(return_id, for_update=True)
        if return_request.seller_id != seller_id:
            raise AccessDenied("Only the seller can respond to this return")
        if approve:
            if refund_amount is None:
                refund_amount = self._get_order(return_request.order_id, for_update=False).subtotal
            previous = return_request.approve(refund_amount, response)
        else:
            previous = return_request.reject(response)
        self._changed(return_request, previous)
        return return_request

    @transaction.atomic
    def mark_shipped(self, return_id: UUID, buyer_id: UUID) -> ReturnRequest:
        return_request = self.get_return(return_id, for_update=True)
        if return_request.buyer_id != buyer_id:
            raise AccessDenied("Only the buyer can ship this return")
        previous = return_request.mark_shipped()
        self._changed(return_request, previous)
        return return_request

    @transaction.atomic
    def mark_received(self, return_id: UUID, seller_id: UUID) -> ReturnRequest:
        return_request = self.get_return(return_id, for_update=True)
        if return_request.seller_id != seller_id:
            raise AccessDenied("Only the seller can confirm receipt of this return")
        previous = return_request.mark_received()
        self._changed(return_request, previous)
        return return_request

    @transaction.atomic
    def refund(self, return_id: UUID, admin_id: UUID) -> ReturnRequest:
        """Refund the buyer against the original payment."""
        order_id = self.get_return(return_id).order_id
        with order_lock(order_id):
            return_request = self.get_return(return_id, for_update=True)
            order = self._get_order(order_id)
            previous = return_request.mark_refunded()

            ledger, before = self.ledger_service.load(order.id)
            # Comes on top of the delivery settlement, so the order no longer
            # balances against its total. Bounded by the captured payment; the
            # seller payout is not clawed back here.
            ledger.record_refund(
                return_request.refund_amount,
                description=f"Return refund for order {order.order_number}",
            )
            self.ledger_service.commit(ledger, before)
            self._changed(return_request, previous)
            logger.info(
                "return_refunded",
                extra={"return_id": str(return_request.id), "user_id": str(admin_id)},
            )
            return return_request

    @transaction.atomic
    def close(self, return_id: UUID, admin_id: UUID, notes: str = "") -> ReturnRequest:
        return_request = self.get_return(return_id, for_update=True)
        previous = return_request.close(notes)
        self._changed(return_request, previous)
        return return_request
