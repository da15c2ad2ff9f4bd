"""
GraphQL schema definition using Ariadne.
"""
import json
import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from uuid import UUID

from ariadne import (
    MutationType,
    ObjectType,
    QueryType,
    ScalarType,
    format_error,
    load_schema_from_path,
    make_executable_schema,
    unwrap_graphql_error,
)
from graphql import GraphQLError, value_from_ast_untyped

from escrow.api.serializers import (
    balance_to_dict,
    dispute_to_dict,
    entry_to_dict,
    order_to_dict,
    return_to_dict,
    summary_to_dict,
    token_to_dict,
    withdrawal_to_dict,
)
from escrow.domain.errors import DomainError
from escrow.infra.event_store import EventStoreRepository
from escrow.infra.repositories import LedgerRepository, OrderRepository
from escrow.services import (
    DisputeService,
    LedgerService,
    OrderService,
    PaymentService,
    ReportingService,
    ReturnService,
    WithdrawalService,
)

logger = logging.getLogger(__name__)

# Load schema from .graphql files
SCHEMAS_DIR = Path(__file__).parent / "schemas"
type_defs = "\n".join([
    load_schema_from_path(SCHEMAS_DIR / "common"),
    load_schema_from_path(SCHEMAS_DIR / "query"),
    load_schema_from_path(SCHEMAS_DIR / "mutation"),
])

query = QueryType()
mutation = MutationType()
order = ObjectType("Order")


def transition_payload(result) -> dict:
    return {"order": order_to_dict(result.order), "token": token_to_dict(result.token)}


# Queries

@query.field("order")
def resolve_order(_, info, id):
    return order_to_dict(OrderService().get_order(id))


@query.field("orderByNumber")
def resolve_order_by_number(_, info, orderNumber):
    found = OrderRepository().get_by_number(orderNumber)
    return order_to_dict(found) if found else None


@query.field("orders")
def resolve_orders(_, info, buyerId=None, sellerId=None, courierId=None, status=None, limit=50, offset=0):
    """Resolve orders with optional filters and pagination."""
    orders = OrderService().list_orders(
        buyer_id=buyerId,
        seller_id=sellerId,
        courier_id=courierId,
        status=status,
        limit=limit,
        offset=offset,
    )
    return [order_to_dict(o) for o in orders]


@query.field("orderLedger")
def resolve_order_ledger(_, info, orderId):
    return [entry_to_dict(e) for e in LedgerService().get_ledger(orderId).entries]


@query.field("orderEvents")
def resolve_order_events(_, info, orderId):
    """Event history of one order, in sequence order."""
    events = EventStoreRepository().get_events(orderId, "Order")
    return [
        {
            "id": e["id"],
            "eventType": e["event_type"],
            "version": e["version"],
            "sequenceNumber": e["sequence_number"],
            "occurredAt": e["occurred_at"],
            "data": json.dumps(e["data"], sort_keys=True),
        }
        for e in events
    ]


@query.field("dispute")
def resolve_dispute(_, info, id):
    return dispute_to_dict(DisputeService().get_dispute(id))


@query.field("disputes")
def resolve_disputes(_, info, status=None, orderId=None, limit=50, offset=0):
    disputes = DisputeService().list_disputes(status=status, order_id=orderId, limit=limit, offset=offset)
    return [dispute_to_dict(d) for d in disputes]


@query.field("returnRequest")
def resolve_return_request(_, info, id):
    return return_to_dict(ReturnService().get_return(id))


@query.field("returns")
def resolve_returns(_, info, buyerId=None, sellerId=None, status=None, limit=50, offset=0):
    returns = ReturnService().list_returns(
        buyer_id=buyerId, seller_id=sellerId, status=status, limit=limit, offset=offset,
    )
    return [return_to_dict(r) for r in returns]


@query.field("financialSummary")
def resolve_financial_summary(_, info):
    return summary_to_dict(ReportingService().financial_summary())


@query.field("payeeBalance")
def resolve_payee_balance(_, info, payeeId):
    return balance_to_dict(ReportingService().payee_balance(payeeId))


@query.field("withdrawal")
def resolve_withdrawal(_, info, id):
    return withdrawal_to_dict(WithdrawalService().get_withdrawal(id))


@query.field("withdrawals")
def resolve_withdrawals(_, info, payeeId=None, status=None, limit=50, offset=0):
    withdrawals = WithdrawalService().list_withdrawals(payee_id=payeeId, status=status, limit=limit, offset=offset)
    return [withdrawal_to_dict(w) for w in withdrawals]


@order.field("ledger")
def resolve_order_ledger_field(order_dict, info):
    if "ledger" in order_dict:
        return order_dict["ledger"]
    return [entry_to_dict(e) for e in LedgerRepository().get_for_order(order_dict["id"]).entries]


# Order lifecycle mutations

@mutation.field("createOrder")
def resolve_create_order(_, info, input: dict):
    """Resolve create order mutation."""
    created = OrderService().create_order(
        buyer_id=input["buyerId"],
        seller_id=input["sellerId"],
        items=input["items"],
        payment_method=input.get("paymentMethod") or "cash",
        courier_fee=input.get("courierFee"),
        delivery_address=input.get("deliveryAddress") or "",
        delivery_city=input.get("deliveryCity") or "",
        delivery_phone=input.get("deliveryPhone") or "",
    )
    return order_to_dict(created)


@mutation.field("confirmOrder")
def resolve_confirm_order(_, info, orderId, sellerId):
    return transition_payload(OrderService().confirm(orderId, sellerId))


@mutation.field("cancelOrder")
def resolve_cancel_order(_, info, orderId, actorId, reason=""):
    return order_to_dict(OrderService().cancel(orderId, actorId, reason or ""))


@mutation.field("acceptOrder")
def resolve_accept_order(_, info, orderId, courierId):
    return order_to_dict(OrderService().accept_order(orderId, courierId))


@mutation.field("scanPickup")
def resolve_scan_pickup(_, info, orderId, courierId, token, photoUrl):
    return order_to_dict(OrderService().scan_pickup(orderId, courierId, token, photoUrl))


@mutation.field("departOrder")
def resolve_depart_order(_, info, orderId, courierId):
    return transition_payload(OrderService().depart(orderId, courierId))


@mutation.field("confirmDelivery")
def resolve_confirm_delivery(_, info, orderId, token, actorId=None):
    return order_to_dict(OrderService().confirm_delivery(orderId, token, actor_id=actorId))


# Payment mutations

@mutation.field("capturePayment")
def resolve_capture_payment(_, info, orderId, requestId=None):
    """Resolve capture payment mutation."""
    return entry_to_dict(PaymentService().capture_payment(orderId, request_id=requestId))


@mutation.field("confirmPayment")
def resolve_confirm_payment(_, info, orderId, reference=""):
    return entry_to_dict(PaymentService().on_payment_confirmed(orderId, reference or ""))


@mutation.field("failPayment")
def resolve_fail_payment(_, info, orderId, reference="", reason=""):
    return entry_to_dict(PaymentService().on_payment_failed(orderId, reference or "", reason or ""))


@mutation.field("settlePayout")
def resolve_settle_payout(_, info, entryId, success, reference=""):
    return entry_to_dict(LedgerService().settle_payout(entryId, success, reference or ""))


# Disputes

@mutation.field("openDispute")
def resolve_open_dispute(_, info, orderId, reporterId, reason, description=""):
    return dispute_to_dict(DisputeService().open_dispute(orderId, reporterId, reason, description or ""))


@mutation.field("startDisputeReview")
def resolve_start_dispute_review(_, info, disputeId, adminId):
    return dispute_to_dict(DisputeService().start_review(disputeId, adminId))


@mutation.field("resolveDispute")
def resolve_resolve_dispute(_, info, disputeId, resolution, note, adminId, refundAmount=None):
    resolved = DisputeService().resolve(disputeId, resolution, note, adminId, refund_amount=refundAmount)
    return dispute_to_dict(resolved)


@mutation.field("closeDispute")
def resolve_close_dispute(_, info, disputeId, adminId):
    return dispute_to_dict(DisputeService().close(disputeId, adminId))


# Returns

@mutation.field("requestReturn")
def resolve_request_return(_, info, orderId, buyerId, reason, description):
    return return_to_dict(ReturnService().request_return(orderId, buyerId, reason, description))


@mutation.field("respondToReturn")
def resolve_respond_to_return(_, info, returnId, sellerId, approve, response="", refundAmount=None):
    answered = ReturnService().respond(returnId, sellerId, approve, response or "", refund_amount=refundAmount)
    return return_to_dict(answered)


@mutation.field("markReturnShipped")
def resolve_mark_return_shipped(_, info, returnId, buyerId):
    return return_to_dict(ReturnService().mark_shipped(returnId, buyerId))


@mutation.field("markReturnReceived")
def resolve_mark_return_received(_, info, returnId, sellerId):
    return return_to_dict(ReturnService().mark_received(returnId, sellerId))


@mutation.field("refundReturn")
def resolve_refund_return(_, info, returnId, adminId):
    return return_to_dict(ReturnService().refund(returnId, adminId))


@mutation.field("closeReturn")
def resolve_close_return(_, info, returnId, adminId, notes=""):
    return return_to_dict(ReturnService().close(returnId, adminId, notes or ""))


# Withdrawals

@mutation.field("requestWithdrawal")
def resolve_request_withdrawal(_, info, payeeId, amount, method=None, accountDetails=None):
    requested = WithdrawalService().request_withdrawal(
        payeeId, amount, method=method or "card", account_details=accountDetails,
    )
    return withdrawal_to_dict(requested)


@mutation.field("completeWithdrawal")
def resolve_complete_withdrawal(_, info, withdrawalId, adminId, note="", reference=""):
    completed = WithdrawalService().complete(withdrawalId, adminId, note=note or "", reference=reference or "")
    return withdrawal_to_dict(completed)


@mutation.field("rejectWithdrawal")
def resolve_reject_withdrawal(_, info, withdrawalId, adminId, note):
    return withdrawal_to_dict(WithdrawalService().reject(withdrawalId, adminId, note))


# Define custom scalars
decimal_scalar = ScalarType("Decimal")
uuid_scalar = ScalarType("UUID")
datetime_scalar = ScalarType("DateTime")
json_scalar = ScalarType("JSON")


@decimal_scalar.serializer
def serialize_decimal(value):
    """Serialize Decimal to string."""
    return str(value)


@decimal_scalar.value_parser
def parse_decimal_value(value):
    """Parse Decimal from string."""
    return Decimal(str(value))


@uuid_scalar.serializer
def serialize_uuid(value):
    """Serialize UUID to string."""
    return str(value)


@uuid_scalar.value_parser
def parse_uuid_value(value):
    """Parse UUID from string."""
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


@uuid_scalar.literal_parser
def parse_uuid_literal(ast, variable_values=None):
    """Parse UUID from GraphQL literal."""
    return UUID(str(ast.value))


@datetime_scalar.serializer
def serialize_datetime(value):
    """Serialize DateTime to ISO format string."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@datetime_scalar.value_parser
def parse_datetime_value(value):
    """Parse DateTime from string."""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@json_scalar.literal_parser
def parse_json_literal(ast, variable_values=None):
    return value_from_ast_untyped(ast, variable_values)


def format_domain_error(error: GraphQLError, debug: bool = False) -> dict:
    """Add the domain error code to ``extensions.code``."""
    formatted = format_error(error, debug)
    original = unwrap_graphql_error(error)
    if isinstance(original, DomainError):
        code = original.code
    elif original is not error and not isinstance(original, GraphQLError):
        code = "INTERNAL_ERROR"
        logger.error(
            "graphql_resolver_error",
            extra={"error_type": type(original).__name__, "error_message": str(original)},
            exc_info=original,
        )
    else:
        return formatted
    formatted["extensions"] = {**(formatted.get("extensions") or {}), "code": code}
    return formatted


# Create executable schema
schema = make_executable_schema(
    type_defs,
    query,
    mutation,
    order,
    datetime_scalar,
    decimal_scalar,
    uuid_scalar,
    json_scalar,
)
