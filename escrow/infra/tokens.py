"""
Single-use handover tokens for seller->courier pickup and courier->buyer delivery.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from escrow.conf import escrow_setting
from escrow.domain.errors import TokenAlreadyConsumed, TokenExpired
from escrow.domain.tokens import (
    TokenKind,
    build_payload,
    is_expired,
    new_code,
    new_short_code,
    parse_payload,
)
from escrow.infra.models import HandoverTokenORM


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedToken:
    order_id: UUID
    kind: TokenKind
    code: str
    short_code: str
    qr_payload: str
    expires_at: datetime


class HandoverTokenIssuer:
    """Issues and verifies handover tokens stored in the database."""

    def __init__(self, max_age_hours: int | None = None):
        self.max_age_hours = max_age_hours or escrow_setting("TOKEN_MAX_AGE_HOURS")

    def issue_pickup_token(self, order_id: UUID) -> IssuedToken:
        return self._issue(order_id, TokenKind.PICKUP)

    def issue_delivery_token(self, order_id: UUID) -> IssuedToken:
        return self._issue(order_id, TokenKind.DELIVERY)

    @transaction.atomic
    def _issue(self, order_id: UUID, kind: TokenKind) -> IssuedToken:
        issued_at = timezone.now()
        expires_at = issued_at + timedelta(hours=self.max_age_hours)
        code = new_code()
        short_code = new_short_code() if kind == TokenKind.DELIVERY else ""

        # Reissuing invalidates earlier unused tokens of the same kind.
        HandoverTokenORM.objects.filter(
            order_id=order_id, kind=kind.value, consumed_at__isnull=True,
        ).update(expires_at=issued_at)

        HandoverTokenORM.objects.create(
            order_id=order_id,
            kind=kind.value,
            code=code,
            short_code=short_code,
            issued_at=issued_at,
            expires_at=expires_at,
        )
        logger.info(
            "handover_token_issued",
            extra={"order_id": str(order_id), "operation": f"issue_{kind.value}_token"},
        )
        return IssuedToken(
            order_id=order_id,
            kind=kind,
            code=code,
            short_code=short_code,
            qr_payload=build_payload(order_id, kind, code, issued_at),
            expires_at=expires_at,
        )

    def latest(self, order_id: UUID, kind: TokenKind) -> HandoverTokenORM | None:
        return (
            HandoverTokenORM.objects
            .filter(order_id=order_id, kind=kind.value)
            .order_by("-issued_at")
            .first()
        )

    def verify_token(self, order_id: UUID, token, kind: TokenKind | None = None) -> bool:
        """Check and consume a token for ``order_id``.

        ``token`` is a QR payload (raw, base64 or dict), the bare 8 character
        code, or the 6 digit delivery code. Returns False when nothing
        matches; raises TokenAlreadyConsumed / TokenExpired for a matching
        token that can no longer be used.
        """
        payload = parse_payload(token)
        if payload is not None:
            if payload.order_id != str(order_id):
                return False
            if kind is not None and payload.kind != kind:
                return False
            candidates = HandoverTokenORM.objects.filter(
                order_id=order_id, kind=payload.kind.value, code=payload.code,
            )
        else:
            if not isinstance(token, str) or not token.strip():
                return False
            value = token.strip()
            candidates = HandoverTokenORM.objects.filter(order_id=order_id, code=value.upper())
            if kind is not None:
                candidates = candidates.filter(kind=kind.value)
            if kind in (None, TokenKind.DELIVERY) and value.isdigit() and len(value) == 6:
                candidates = HandoverTokenORM.objects.filter(
                    order_id=order_id, kind=TokenKind.DELIVERY.value, short_code=value,
                )

        token_orm = candidates.order_by("-issued_at").first()
        if token_orm is None:
            return False

        if token_orm.consumed_at is not None:
            raise TokenAlreadyConsumed(f"{token_orm.kind} token for order {order_id} was already used")

        now = timezone.now()
        if now >= token_orm.expires_at or is_expired(token_orm.issued_at, now, self.max_age_hours):
            raise TokenExpired(f"{token_orm.kind} token for order {order_id} has expired")

        consumed = (
            HandoverTokenORM.objects
            .filter(id=token_orm.id, consumed_at__isnull=True)
            .update(consumed_at=now)
        )
        if not consumed:
            raise TokenAlreadyConsumed(f"{token_orm.kind} token for order {order_id} was already used")

        logger.info(
            "handover_token_consumed",
            extra={"order_id": str(order_id), "operation": f"verify_{token_orm.kind}_token"},
        )
        return True
