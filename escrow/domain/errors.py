"""
Domain errors raised by the escrow core.

Each error carries a stable ``code`` that the API layer maps to a response.
"""
from __future__ import annotations


class DomainError(Exception):
    """Base class for escrow domain errors."""
    code = "DOMAIN_ERROR"

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class ValidationError(DomainError, ValueError):
    """Input does not satisfy domain constraints."""
    code = "VALIDATION_ERROR"


class NotFound(DomainError):
    code = "NOT_FOUND"


class AccessDenied(DomainError):
    """Actor is not allowed to perform the action on this order."""
    code = "ACCESS_DENIED"


class InvalidTransition(DomainError):
    """Illegal or out-of-order state change."""
    code = "INVALID_TRANSITION"


class TokenMismatch(DomainError):
    """Presented pickup/delivery token does not match the issued one."""
    code = "TOKEN_MISMATCH"


class TokenExpired(TokenMismatch):
    code = "TOKEN_EXPIRED"


class TokenAlreadyConsumed(DomainError):
    code = "TOKEN_ALREADY_CONSUMED"


class PaymentFailure(DomainError):
    """Payment amount mismatch or gateway capture failure."""
    code = "PAYMENT_FAILED"


class DuplicateLedgerEntry(DomainError):
    code = "DUPLICATE_LEDGER_ENTRY"


class RefundExceedsPayment(DomainError):
    code = "REFUND_EXCEEDS_PAYMENT"


class InvalidLedgerState(DomainError):
    """Ledger history does not allow the requested movement."""
    code = "INVALID_LEDGER_STATE"


class InsufficientBalance(DomainError):
    """Withdrawal larger than the payee's available balance."""
    code = "INSUFFICIENT_BALANCE"
