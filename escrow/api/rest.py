"""
JSON endpoints for operator tooling and mobile clients.

The acting user is taken from the ``X-User-ID`` header.
"""
import json
import logging
from decimal import Decimal, InvalidOperation
from functools import wraps
from uuid import UUID

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from escrow.api.middleware import ErrorHandler
from escrow.api.serializers import (
    balance_to_dict,
    dispute_to_dict,
    order_to_dict,
    summary_to_dict,
    token_to_dict,
    withdrawal_to_dict,
)
from escrow.domain.errors import DomainError, ValidationError
from escrow.services import DisputeService, LedgerService, OrderService, ReportingService, WithdrawalService

logger = logging.getLogger(__name__)


def api_view(methods: list[str]):
    """CSRF-exempt JSON view; domain errors become error responses."""
    def decorator(func):
        @csrf_exempt
        @require_http_methods(methods)
        @wraps(func)
        def wrapper(request, *args, **kwargs):
            try:
                return func(request, *args, **kwargs)
            except DomainError as e:
                logger.info(
                    "api_request_rejected",
                    extra={"operation": func.__name__, "status": e.code, "error": e.message},
                )
                return ErrorHandler.handle_error(e)
        return wrapper
    return decorator


def _json_body(request) -> dict:
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON") from None
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _uuid(value, name: str) -> UUID | None:
    if value in (None, ""):
        return None
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"'{name}' is not a valid UUID") from None


def _int(value, name: str, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"'{name}' must be an integer") from None


def _decimal(value, name: str) -> Decimal | None:
    if value in (None, ""):
        return None
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        parsed = None
    if parsed is None or not parsed.is_finite():
        raise ValidationError(f"'{name}' must be a decimal")
    return parsed


def _actor(request) -> UUID:
    actor_id = _uuid(request.headers.get("X-User-ID"), "X-User-ID")
    if actor_id is None:
        raise ValidationError("X-User-ID header is required")
    return actor_id


def _require(data: dict, name: str) -> str:
    value = data.get(name)
    if value in (None, ""):
        raise ValidationError(f"'{name}' is required")
    return value


@api_view(["GET"])
def order_list(request):
    params = request.GET
    orders = OrderService().list_orders(
        buyer_id=_uuid(params.get("buyer_id"), "buyer_id"),
        seller_id=_uuid(params.get("seller_id"), "seller_id"),
        courier_id=_uuid(params.get("courier_id"), "courier_id"),
        status=params.get("status") or None,
        limit=min(_int(params.get("limit"), "limit", 50), 200),
        offset=_int(params.get("offset"), "offset", 0),
    )
    return JsonResponse({"orders": [order_to_dict(o) for o in orders]})


@api_view(["GET"])
def order_detail(request, order_id: UUID):
    """Order with its ledger entries."""
    order = OrderService().get_order(order_id)
    ledger = LedgerService().get_ledger(order_id)
    return JsonResponse(order_to_dict(order, ledger.entries))


@api_view(["POST"])
def order_status(request, order_id: UUID):
    """Apply a lifecycle action to an order.

    Body: ``{"action": "...", ...}``; actions are confirm, cancel, accept,
    pickup (token, photoUrl), depart, deliver (token) and dispute
    (reason, description).
    """
    actor_id = _actor(request)
    data = _json_body(request)
    action = _require(data, "action")
    service = OrderService()
    token = None

    if action == "confirm":
        result = service.confirm(order_id, actor_id)
        order, token = result.order, result.token
    elif action == "cancel":
        order = service.cancel(order_id, actor_id, data.get("reason") or "")
    elif action == "accept":
        order = service.accept_order(order_id, actor_id)
    elif action == "pickup":
        order = service.scan_pickup(order_id, actor_id, _require(data, "token"), _require(data, "photoUrl"))
    elif action == "depart":
        result = service.depart(order_id, actor_id)
        order, token = result.order, result.token
    elif action == "deliver":
        order = service.confirm_delivery(order_id, _require(data, "token"), actor_id=actor_id)
    elif action == "dispute":
        dispute = DisputeService().open_dispute(
            order_id, actor_id, _require(data, "reason"), data.get("description") or "",
        )
        order = service.get_order(order_id)
        return JsonResponse({"order": order_to_dict(order), "dispute": dispute_to_dict(dispute)})
    else:
        raise ValidationError(f"Unknown action '{action}'")

    return JsonResponse({"order": order_to_dict(order), "token": token_to_dict(token)})


@api_view(["POST"])
def dispute_resolve(request, dispute_id: UUID):
    admin_id = _actor(request)
    data = _json_body(request)
    refund_amount = _decimal(data.get("refundAmount"), "refundAmount")
    dispute = DisputeService().resolve(
        dispute_id,
        _require(data, "resolution"),
        _require(data, "note"),
        admin_id,
        refund_amount=refund_amount,
    )
    return JsonResponse(dispute_to_dict(dispute))


@api_view(["GET"])
def financial_report(request):
    return JsonResponse(summary_to_dict(ReportingService().financial_summary()))


@api_view(["GET"])
def payee_balance(request, payee_id: UUID):
    return JsonResponse(balance_to_dict(ReportingService().payee_balance(payee_id)))


@api_view(["GET", "POST"])
def withdrawal_list(request):
    """List withdrawals, or request one for the acting payee.

    POST body: ``{"amount": "...", "method": "card", "accountDetails": {...}}``.
    """
    service = WithdrawalService()
    if request.method == "POST":
        payee_id = _actor(request)
        data = _json_body(request)
        account_details = data.get("accountDetails")
        if account_details is not None and not isinstance(account_details, dict):
            raise ValidationError("'accountDetails' must be an object")
        withdrawal = service.request_withdrawal(
            payee_id,
            _decimal(_require(data, "amount"), "amount"),
            method=data.get("method") or "card",
            account_details=account_details,
        )
        return JsonResponse(withdrawal_to_dict(withdrawal), status=201)

    params = request.GET
    withdrawals = service.list_withdrawals(
        payee_id=_uuid(params.get("payee_id"), "payee_id"),
        status=params.get("status") or None,
        limit=min(_int(params.get("limit"), "limit", 50), 200),
        offset=_int(params.get("offset"), "offset", 0),
    )
    return JsonResponse({"withdrawals": [withdrawal_to_dict(w) for w in withdrawals]})


@api_view(["GET"])
def withdrawal_detail(request, withdrawal_id: UUID):
    return JsonResponse(withdrawal_to_dict(WithdrawalService().get_withdrawal(withdrawal_id)))


@api_view(["POST"])
def withdrawal_process(request, withdrawal_id: UUID):
    """Admin completes or rejects a withdrawal: ``{"action": "complete"|"reject", ...}``."""
    admin_id = _actor(request)
    data = _json_body(request)
    action = _require(data, "action")
    service = WithdrawalService()
    if action == "complete":
        withdrawal = service.complete(
            withdrawal_id, admin_id, note=data.get("note") or "", reference=data.get("reference") or "",
        )
    elif action == "reject":
        withdrawal = service.reject(withdrawal_id, admin_id, _require(data, "note"))
    else:
        raise ValidationError(f"Unknown action '{action}'")
    return JsonResponse(withdrawal_to_dict(withdrawal))
