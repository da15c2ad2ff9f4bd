"""
Read-side reports recomputed from the order and ledger tables on demand.
"""
from __future__ import annotations

from uuid import UUID

from django.db import transaction

from escrow.domain.projections import FinancialSummary, PayeeBalance, financial_summary, payee_balance
from escrow.infra.repositories import LedgerRepository, OrderRepository, WithdrawalRepository


class ReportingService:
    """Service for dashboard aggregates."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        ledger_repo: LedgerRepository | None = None,
        withdrawal_repo: WithdrawalRepository | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.ledger_repo = ledger_repo or LedgerRepository()
        self.withdrawal_repo = withdrawal_repo or WithdrawalRepository()

    def financial_summary(self) -> FinancialSummary:
        # One transaction so orders and entries come from the same snapshot
        with transaction.atomic():
            orders = self.order_repo.all()
            entries = self.ledger_repo.all_entries()
        return financial_summary(orders, entries)

    def payee_balance(self, payee_id: UUID) -> PayeeBalance:
        with transaction.atomic():
            entries = self.ledger_repo.entries_for_payee(payee_id)
            withdrawals = self.withdrawal_repo.for_payee(payee_id)
        return payee_balance(payee_id, entries, withdrawals)
