"""
Domain objects to API dicts (camelCase keys, shared by GraphQL and REST).
"""
from __future__ import annotations

from escrow.domain.dispute import Dispute
from escrow.domain.ledger import LedgerEntry
from escrow.domain.order import Order
from escrow.domain.projections import FinancialSummary, PayeeBalance
from escrow.domain.returns import ReturnRequest
from escrow.domain.withdrawal import WithdrawalRequest
from escrow.infra.tokens import IssuedToken


def order_to_dict(order: Order, ledger: list[LedgerEntry] | None = None) -> dict:
    data = {
        "id": order.id,
        "orderNumber": order.order_number,
        "buyerId": order.buyer_id,
        "sellerId": order.seller_id,
        "courierId": order.courier_id,
        "items": [
            {
                "productId": item.product_id,
                "quantity": item.quantity,
                "unitPrice": item.unit_price,
                "subtotal": item.subtotal,
            }
            for item in order.items
        ],
        "subtotal": order.subtotal,
        "courierFee": order.courier_fee,
        "totalAmount": order.total_amount,
        "platformCommission": order.platform_commission,
        "sellerNetAmount": order.seller_net_amount,
        "status": order.status.value,
        "paymentMethod": order.payment_method.value,
        "isPaid": order.is_paid,
        "deliveryAddress": order.delivery_address,
        "deliveryCity": order.delivery_city,
        "deliveryPhone": order.delivery_phone,
        "pickupPhotoUrl": order.pickup_photo_url,
        "pickedUpAt": order.picked_up_at,
        "deliveredAt": order.delivered_at,
        "cancelledAt": order.cancelled_at,
        "cancelReason": order.cancel_reason,
        "createdAt": order.created_at,
        "updatedAt": order.updated_at,
    }
    if ledger is not None:
        data["ledger"] = [entry_to_dict(entry) for entry in ledger]
    return data


def entry_to_dict(entry: LedgerEntry) -> dict:
    return {
        "id": entry.id,
        "orderId": entry.order_id,
        "type": entry.entry_type.value,
        "amount": entry.amount,
        "status": entry.status.value,
        "payeeId": entry.payee_id,
        "payeeRole": entry.payee_role.value if entry.payee_role else None,
        "reference": entry.reference,
        "description": entry.description,
        "createdAt": entry.created_at,
    }


def token_to_dict(token: IssuedToken | None) -> dict | None:
    if token is None:
        return None
    return {
        "kind": token.kind.value,
        "code": token.code,
        "shortCode": token.short_code or None,
        "qrPayload": token.qr_payload,
        "expiresAt": token.expires_at,
    }


def dispute_to_dict(dispute: Dispute) -> dict:
    return {
        "id": dispute.id,
        "orderId": dispute.order_id,
        "reporterId": dispute.reporter_id,
        "reason": dispute.reason.value,
        "description": dispute.description,
        "status": dispute.status.value,
        "resolution": dispute.resolution.value if dispute.resolution else None,
        "resolutionNote": dispute.resolution_note,
        "refundAmount": dispute.refund_amount,
        "resolvedBy": dispute.resolved_by,
        "resolvedAt": dispute.resolved_at,
        "assignedAdminId": dispute.assigned_admin_id,
        "createdAt": dispute.created_at,
    }


def return_to_dict(return_request: ReturnRequest) -> dict:
    return {
        "id": return_request.id,
        "orderId": return_request.order_id,
        "buyerId": return_request.buyer_id,
        "sellerId": return_request.seller_id,
        "reason": return_request.reason.value,
        "description": return_request.description,
        "status": return_request.status.value,
        "refundAmount": return_request.refund_amount,
        "sellerResponse": return_request.seller_response,
        "adminNotes": return_request.admin_notes,
        "createdAt": return_request.created_at,
    }


def summary_to_dict(summary: FinancialSummary) -> dict:
    return {
        "totalRevenue": summary.total_revenue,
        "platformProfit": summary.platform_profit,
        "pendingProfit": summary.pending_profit,
        "pendingPayouts": summary.pending_payouts,
        "pendingSellerPayouts": summary.pending_seller_payouts,
        "pendingCourierPayouts": summary.pending_courier_payouts,
        "totalRefunds": summary.total_refunds,
        "ordersByStatus": [
            {"status": status, "count": count}
            for status, count in summary.orders_by_status.items()
        ],
    }


def balance_to_dict(balance: PayeeBalance) -> dict:
    return {
        "payeeId": balance.payee_id,
        "available": balance.available,
        "pending": balance.pending,
        "withdrawing": balance.withdrawing,
        "withdrawn": balance.withdrawn,
    }


def withdrawal_to_dict(withdrawal: WithdrawalRequest) -> dict:
    return {
        "id": withdrawal.id,
        "payeeId": withdrawal.payee_id,
        "amount": withdrawal.amount,
        "currency": withdrawal.currency,
        "method": withdrawal.method,
        "accountDetails": withdrawal.account_details,
        "status": withdrawal.status.value,
        "adminId": withdrawal.admin_id,
        "adminNote": withdrawal.admin_note,
        "reference": withdrawal.reference,
        "processedAt": withdrawal.processed_at,
        "createdAt": withdrawal.created_at,
    }
