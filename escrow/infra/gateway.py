"""
Payment gateway adapters.

The core never waits on the gateway inside a transaction: a pending payment
entry is committed first, the capture is requested afterwards and the result
arrives through ``PaymentService.on_payment_confirmed`` / ``on_payment_failed``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

import requests
from django.utils.module_loading import import_string

from escrow.conf import escrow_setting


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    reference: str = ""
    pending: bool = False
    error: str = ""


class PaymentGateway:
    """Gateway interface."""

    def capture_payment(self, order_id: UUID, amount: Decimal) -> PaymentResult:
        raise NotImplementedError


class ManualPaymentGateway(PaymentGateway):
    """Accepts every capture; confirmation comes later through the callback."""

    def capture_payment(self, order_id: UUID, amount: Decimal) -> PaymentResult:
        logger.info("manual_capture_requested", extra={"order_id": str(order_id)})
        return PaymentResult(success=True, reference=f"manual-{order_id}", pending=True)


class HttpPaymentGateway(PaymentGateway):
    """JSON over HTTP gateway client."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None, session: requests.Session | None = None):
        self.base_url = (base_url or escrow_setting("PAYMENT_GATEWAY_URL")).rstrip("/")
        self.timeout = timeout or escrow_setting("PAYMENT_GATEWAY_TIMEOUT")
        self.session = session or requests.Session()

    def capture_payment(self, order_id: UUID, amount: Decimal) -> PaymentResult:
        """Request a capture.

        Failures to reach the gateway and error responses are declines. A
        timeout or an unreadable answer after the request went out leaves the
        outcome unknown, so the payment stays pending for the callback.
        """
        try:
            response = self.session.post(
                f"{self.base_url}/captures",
                json={
                    "orderId": str(order_id),
                    "amount": str(amount),
                    "currency": escrow_setting("CURRENCY"),
                },
                timeout=self.timeout,
            )
        except requests.ConnectionError as e:
            # Includes ConnectTimeout: nothing reached the gateway
            return self._declined(order_id, e)
        except requests.Timeout as e:
            return self._unknown(order_id, e)
        except requests.RequestException as e:
            return self._declined(order_id, e)

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            return self._declined(order_id, e)

        try:
            body = response.json()
        except ValueError as e:
            return self._unknown(order_id, e)

        status = body.get("status")
        reference = str(body.get("reference", ""))
        if status == "succeeded":
            return PaymentResult(success=True, reference=reference)
        if status == "pending":
            return PaymentResult(success=True, reference=reference, pending=True)
        return PaymentResult(success=False, reference=reference, error=str(body.get("error", status)))

    def _declined(self, order_id: UUID, error: Exception) -> PaymentResult:
        logger.error(
            "gateway_capture_error",
            extra={"order_id": str(order_id), "error": str(error)},
        )
        return PaymentResult(success=False, error=str(error))

    def _unknown(self, order_id: UUID, error: Exception) -> PaymentResult:
        logger.warning(
            "gateway_capture_outcome_unknown",
            extra={"order_id": str(order_id), "error": str(error)},
        )
        return PaymentResult(success=True, pending=True, error=str(error))


def get_payment_gateway() -> PaymentGateway:
    return import_string(escrow_setting("PAYMENT_GATEWAY"))()
