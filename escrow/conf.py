"""
Escrow settings, read from ``settings.ESCROW`` with defaults.
"""
from decimal import Decimal

from django.conf import settings


DEFAULTS = {
    "PLATFORM_COMMISSION_RATE": "0.05",
    "DEFAULT_COURIER_FEE": "15000.00",
    "CURRENCY": "UZS",
    "TOKEN_MAX_AGE_HOURS": 24,
    "PAYMENT_GATEWAY": "escrow.infra.gateway.ManualPaymentGateway",
    "PAYMENT_GATEWAY_URL": "",
    "PAYMENT_GATEWAY_TIMEOUT": 10,
    "NOTIFICATION_DISPATCHER": "escrow.infra.notifier.LoggingNotificationDispatcher",
    "NOTIFICATION_WEBHOOK_URL": "",
    "NOTIFICATION_WEBHOOK_TIMEOUT": 5,
    "OUTBOX_MAX_RETRIES": 10,
    "MIN_WITHDRAWAL_AMOUNT": "50000.00",
}


def escrow_setting(name: str):
    overrides = getattr(settings, "ESCROW", {}) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]


def commission_rate() -> Decimal:
    return Decimal(str(escrow_setting("PLATFORM_COMMISSION_RATE")))


def default_courier_fee() -> Decimal:
    return Decimal(str(escrow_setting("DEFAULT_COURIER_FEE")))


def min_withdrawal_amount() -> Decimal:
    return Decimal(str(escrow_setting("MIN_WITHDRAWAL_AMOUNT")))
