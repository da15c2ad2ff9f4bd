"""
Domain model for payee withdrawals.

Sellers and couriers withdraw money from completed payouts. A request
reserves its amount until an admin completes or rejects it.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from escrow.domain.errors import InsufficientBalance, InvalidTransition, ValidationError
from escrow.domain.order import money
from escrow.domain.projections import PayeeBalance


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class WithdrawalRequest:
    """Withdrawal aggregate root."""

    def __init__(
        self,
        id: UUID | None = None,
        payee_id: UUID | None = None,
        amount: Decimal = Decimal("0.00"),
        currency: str = "UZS",
        method: str = "card",
        account_details: dict | None = None,
        status: WithdrawalStatus = WithdrawalStatus.PENDING,
        admin_id: UUID | None = None,
        admin_note: str = "",
        reference: str = "",
        processed_at: datetime | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.payee_id = payee_id
        self.amount = money(amount)
        self.currency = currency
        self.method = method
        self.account_details = account_details or {}
        self._status = WithdrawalStatus(status)
        self.admin_id = admin_id
        self.admin_note = admin_note
        self.reference = reference
        self.processed_at = processed_at
        self.created_at = created_at
        self.updated_at = updated_at

    @classmethod
    def request(
        cls,
        balance: PayeeBalance,
        amount: Decimal,
        minimum: Decimal,
        currency: str,
        method: str = "card",
        account_details: dict | None = None,
    ) -> "WithdrawalRequest":
        """Reserve ``amount`` out of the payee's available balance."""
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Withdrawal amount must be positive")
        if amount < money(minimum):
            raise ValidationError(f"Minimum withdrawal amount is {money(minimum)} {currency}")
        if amount > balance.available:
            raise InsufficientBalance(
                f"Insufficient balance. Available: {balance.available} {currency}"
            )
        if not method:
            raise ValidationError("Withdrawal method is required")
        return cls(
            payee_id=balance.payee_id,
            amount=amount,
            currency=currency,
            method=method,
            account_details=account_details,
        )

    @property
    def status(self) -> WithdrawalStatus:
        return self._status

    def _process(self, target: WithdrawalStatus, admin_id: UUID, note: str, at: datetime) -> WithdrawalStatus:
        if self._status != WithdrawalStatus.PENDING:
            raise InvalidTransition(
                f"Withdrawal {self.id} is already '{self._status.value}'"
            )
        previous = self._status
        self._status = target
        self.admin_id = admin_id
        self.admin_note = note or self.admin_note
        self.processed_at = at
        return previous

    def complete(self, admin_id: UUID, at: datetime, note: str = "", reference: str = "") -> WithdrawalStatus:
        """Money was sent to the payee."""
        previous = self._process(WithdrawalStatus.COMPLETED, admin_id, note, at)
        self.reference = reference or self.reference
        return previous

    def reject(self, admin_id: UUID, at: datetime, note: str = "") -> WithdrawalStatus:
        """Release the reserved amount back to the available balance."""
        if not note:
            raise ValidationError("A rejection note is required")
        return self._process(WithdrawalStatus.REJECTED, admin_id, note, at)
