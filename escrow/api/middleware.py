"""
Error handling for JSON API responses.
"""
import logging

from django.http import JsonResponse

from escrow.domain.errors import DomainError

logger = logging.getLogger(__name__)


class ErrorHandler:
    """Error handler for API responses."""

    ERROR_CODES = {
        "VALIDATION_ERROR": 400,
        "TOKEN_MISMATCH": 400,
        "TOKEN_EXPIRED": 400,
        "PAYMENT_FAILED": 402,
        "ACCESS_DENIED": 403,
        "NOT_FOUND": 404,
        "INVALID_TRANSITION": 409,
        "TOKEN_ALREADY_CONSUMED": 409,
        "DUPLICATE_LEDGER_ENTRY": 409,
        "DUPLICATE_REQUEST": 409,
        "REFUND_EXCEEDS_PAYMENT": 422,
        "INSUFFICIENT_BALANCE": 422,
        "INVALID_LEDGER_STATE": 500,
        "INTERNAL_ERROR": 500,
    }

    @classmethod
    def error_response(cls, code: str, message: str) -> JsonResponse:
        return JsonResponse(
            {
                "error": {
                    "code": code,
                    "message": message,
                }
            },
            status=cls.ERROR_CODES.get(code, 400),
        )

    @classmethod
    def handle_error(cls, error: Exception) -> JsonResponse:
        """Handle error and return JSON response."""
        if isinstance(error, DomainError):
            if cls.ERROR_CODES.get(error.code, 400) >= 500:
                logger.error("ledger_invariant_violation", extra={"error": error.message, "status": error.code})
            return cls.error_response(error.code, error.message)

        # Log unexpected errors
        logger.error(
            "unexpected_error",
            extra={
                "error_type": type(error).__name__,
                "error_message": str(error),
            },
            exc_info=True,
        )
        return cls.error_response("INTERNAL_ERROR", "An internal error occurred")
