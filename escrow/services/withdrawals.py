"""
Payee withdrawals from completed payouts.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID, uuid4

from django.db import transaction
from django.utils import timezone

from escrow.conf import escrow_setting, min_withdrawal_amount
from escrow.domain.errors import NotFound, ValidationError
from escrow.domain.events import WithdrawalStatusChanged
from escrow.domain.withdrawal import WithdrawalRequest, WithdrawalStatus
from escrow.infra.locks import payee_lock
from escrow.infra.repositories import WithdrawalRepository
from escrow.services.events import EventRecorder
from escrow.services.reporting import ReportingService


logger = logging.getLogger(__name__)


class WithdrawalService:
    """Service for withdrawal requests."""

    def __init__(
        self,
        withdrawal_repo: WithdrawalRepository | None = None,
        reporting: ReportingService | None = None,
        events: EventRecorder | None = None,
    ):
        self.withdrawal_repo = withdrawal_repo or WithdrawalRepository()
        self.reporting = reporting or ReportingService(withdrawal_repo=self.withdrawal_repo)
        self.events = events or EventRecorder()

    def get_withdrawal(self, withdrawal_id: UUID, for_update: bool = False) -> WithdrawalRequest:
        withdrawal = self.withdrawal_repo.get_by_id(withdrawal_id, for_update=for_update)
        if withdrawal is None:
            raise NotFound(f"Withdrawal {withdrawal_id} not found")
        return withdrawal

    def list_withdrawals(
        self,
        payee_id: UUID | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WithdrawalRequest]:
        if status:
            try:
                status = WithdrawalStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown withdrawal status '{status}'") from None
        return self.withdrawal_repo.list(payee_id=payee_id, status=status, limit=limit, offset=offset)

    def _changed(self, withdrawal: WithdrawalRequest, previous: WithdrawalStatus | None) -> None:
        self.withdrawal_repo.save(withdrawal)
        self.events.record(
            WithdrawalStatusChanged(
                event_id=uuid4(),
                aggregate_id=withdrawal.id,
                event_type="WithdrawalStatusChanged",
                payee_id=withdrawal.payee_id,
                amount=withdrawal.amount,
                from_status=previous.value if previous else "",
                to_status=withdrawal.status.value,
            ),
            "Withdrawal",
        )
        logger.info(
            "withdrawal_status_changed",
            extra={
                "withdrawal_id": str(withdrawal.id),
                "user_id": str(withdrawal.payee_id),
                "from_status": previous.value if previous else "",
                "to_status": withdrawal.status.value,
            },
        )

    @transaction.atomic
    def request_withdrawal(
        self,
        payee_id: UUID,
        amount: Decimal,
        method: str = "card",
        account_details: dict | None = None,
    ) -> WithdrawalRequest:
        """Seller or courier asks to withdraw part of the available balance."""
        with payee_lock(payee_id):
            balance = self.reporting.payee_balance(payee_id)
            withdrawal = WithdrawalRequest.request(
                balance,
                amount,
                minimum=min_withdrawal_amount(),
                currency=escrow_setting("CURRENCY"),
                method=method,
                account_details=account_details,
            )
            self._changed(withdrawal, None)
            return withdrawal

    @transaction.atomic
    def complete(self, withdrawal_id: UUID, admin_id: UUID, note: str = "", reference: str = "") -> WithdrawalRequest:
        withdrawal = self.get_withdrawal(withdrawal_id)
        with payee_lock(withdrawal.payee_id):
            withdrawal = self.get_withdrawal(withdrawal_id, for_update=True)
            previous = withdrawal.complete(admin_id, timezone.now(), note=note, reference=reference)
            self._changed(withdrawal, previous)
            return withdrawal

    @transaction.atomic
    def reject(self, withdrawal_id: UUID, admin_id: UUID, note: str) -> WithdrawalRequest:
        withdrawal = self.get_withdrawal(withdrawal_id)
        with payee_lock(withdrawal.payee_id):
            withdrawal = self.get_withdrawal(withdrawal_id, for_update=True)
            previous = withdrawal.reject(admin_id, timezone.now(), note=note)
            self._changed(withdrawal, previous)
            return withdrawal
