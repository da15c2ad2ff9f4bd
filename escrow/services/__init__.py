from escrow.services.disputes import DisputeService
from escrow.services.ledger import LedgerService
from escrow.services.orders import OrderService, TransitionResult
from escrow.services.payments import PaymentService
from escrow.services.reporting import ReportingService
from escrow.services.returns import ReturnService
from escrow.services.withdrawals import WithdrawalService

__all__ = [
    "DisputeService",
    "LedgerService",
    "OrderService",
    "PaymentService",
    "ReportingService",
    "ReturnService",
    "TransitionResult",
    "WithdrawalService",
]
