from escrow.domain.dispute import Dispute
from escrow.domain.ledger import LedgerEntry, OrderLedger
from escrow.domain.order import Order, OrderItem
from escrow.domain.returns import ReturnRequest

__all__ = ["Dispute", "LedgerEntry", "Order", "OrderItem", "OrderLedger", "ReturnRequest"]
