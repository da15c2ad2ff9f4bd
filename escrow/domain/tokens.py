"""
Handover token payloads carried in pickup/delivery QR codes.

A QR payload is JSON ``{"orderId", "type", "code", "timestamp"}``. Scanners
may send it raw, base64-encoded or already decoded.
"""
from __future__ import annotations

import base64
import binascii
import json
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID, uuid4


TOKEN_MAX_AGE_HOURS = 24

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]+=*$")


class TokenKind(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


QR_TYPES = {
    TokenKind.PICKUP: "seller_pickup",
    TokenKind.DELIVERY: "courier_delivery",
}
_KINDS_BY_QR_TYPE = {qr_type: kind for kind, qr_type in QR_TYPES.items()}


@dataclass(frozen=True)
class QrPayload:
    order_id: str
    kind: TokenKind
    code: str
    timestamp: int

    def to_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "type": QR_TYPES[self.kind],
            "code": self.code,
            "timestamp": self.timestamp,
        }


def new_code() -> str:
    """8 character code embedded in the QR payload."""
    return uuid4().hex[:8].upper()


def new_short_code() -> str:
    """6 digit code the buyer can dictate to the courier."""
    return f"{secrets.randbelow(10 ** 6):06d}"


def build_payload(order_id: UUID, kind: TokenKind, code: str, issued_at: datetime) -> str:
    payload = QrPayload(
        order_id=str(order_id),
        kind=kind,
        code=code,
        timestamp=int(issued_at.timestamp() * 1000),
    )
    return json.dumps(payload.to_dict())


def _from_dict(data) -> QrPayload | None:
    if not isinstance(data, dict):
        return None
    order_id = data.get("orderId")
    kind = _KINDS_BY_QR_TYPE.get(data.get("type"))
    code = data.get("code")
    timestamp = data.get("timestamp")
    if not isinstance(order_id, str) or not order_id:
        return None
    if kind is None or not isinstance(code, str) or not code:
        return None
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        return None
    return QrPayload(order_id=order_id, kind=kind, code=code, timestamp=int(timestamp))


def _looks_like_base64(value: str) -> bool:
    return bool(_BASE64_RE.match(value)) and len(value) % 4 == 0


def parse_payload(raw) -> QrPayload | None:
    """Decode a scanned QR payload; None when ``raw`` is not one (e.g. a bare code)."""
    if isinstance(raw, dict):
        return _from_dict(raw)
    if not isinstance(raw, str):
        return None

    text = raw.strip()
    # Image data URLs must be scanned client side.
    if not text or text.startswith("data:"):
        return None

    if _looks_like_base64(text):
        try:
            decoded = base64.b64decode(text, validate=True).decode("utf-8")
            return _from_dict(json.loads(decoded))
        except (binascii.Error, UnicodeDecodeError, ValueError):
            pass

    try:
        return _from_dict(json.loads(text))
    except ValueError:
        return None


def is_expired(issued_at: datetime, now: datetime, max_age_hours: int = TOKEN_MAX_AGE_HOURS) -> bool:
    return now - issued_at > timedelta(hours=max_age_hours)
