"""
Tests for handover token payloads and the token issuer.
"""
import base64
import json
from datetime import timedelta
from uuid import uuid4

from django.test import TestCase
from django.utils import timezone

from escrow.domain.errors import TokenAlreadyConsumed, TokenExpired
from escrow.domain.tokens import TokenKind, is_expired, parse_payload
from escrow.infra.models import HandoverTokenORM
from escrow.infra.tokens import HandoverTokenIssuer
from escrow.services import OrderService
from escrow.test.helpers import Participants, create_order


class QrPayloadTest(TestCase):
    """Tests for QR payload parsing."""

    def setUp(self):
        self.data = {"orderId": str(uuid4()), "type": "seller_pickup", "code": "AB12CD34", "timestamp": 1700000000000}

    def test_parse_raw_json(self):
        payload = parse_payload(json.dumps(self.data))
        self.assertEqual(payload.kind, TokenKind.PICKUP)
        self.assertEqual(payload.code, "AB12CD34")
        self.assertEqual(payload.order_id, self.data["orderId"])

    def test_parse_base64(self):
        encoded = base64.b64encode(json.dumps(self.data).encode()).decode()
        self.assertEqual(parse_payload(encoded).code, "AB12CD34")

    def test_parse_dict(self):
        self.assertEqual(parse_payload(self.data).to_dict(), self.data)

    def test_bare_code_is_not_a_payload(self):
        self.assertIsNone(parse_payload("AB12CD34"))
        self.assertIsNone(parse_payload("123456"))

    def test_image_data_url_is_rejected(self):
        self.assertIsNone(parse_payload("data:image/png;base64,iVBORw0KGgo="))

    def test_unknown_type_is_rejected(self):
        self.data["type"] = "buyer_pickup"
        self.assertIsNone(parse_payload(json.dumps(self.data)))

    def test_is_expired(self):
        now = timezone.now()
        self.assertFalse(is_expired(now - timedelta(hours=23), now))
        self.assertTrue(is_expired(now - timedelta(hours=25), now))


class HandoverTokenIssuerTest(TestCase):
    """Tests for issuing and consuming tokens."""

    def setUp(self):
        self.people = Participants()
        self.order = create_order(OrderService(), self.people)
        self.issuer = HandoverTokenIssuer()

    def test_payload_is_consumed_once(self):
        token = self.issuer.issue_pickup_token(self.order.id)
        self.assertTrue(self.issuer.verify_token(self.order.id, token.qr_payload, kind=TokenKind.PICKUP))
        with self.assertRaises(TokenAlreadyConsumed):
            self.issuer.verify_token(self.order.id, token.qr_payload, kind=TokenKind.PICKUP)

    def test_bare_code_is_accepted(self):
        token = self.issuer.issue_pickup_token(self.order.id)
        self.assertTrue(self.issuer.verify_token(self.order.id, token.code.lower(), kind=TokenKind.PICKUP))

    def test_delivery_short_code(self):
        token = self.issuer.issue_delivery_token(self.order.id)
        self.assertEqual(len(token.short_code), 6)
        self.assertTrue(self.issuer.verify_token(self.order.id, token.short_code, kind=TokenKind.DELIVERY))

    def test_pickup_token_does_not_deliver(self):
        token = self.issuer.issue_pickup_token(self.order.id)
        self.assertFalse(self.issuer.verify_token(self.order.id, token.qr_payload, kind=TokenKind.DELIVERY))

    def test_token_for_other_order_is_rejected(self):
        token = self.issuer.issue_pickup_token(self.order.id)
        other = create_order(OrderService(), self.people)
        self.assertFalse(self.issuer.verify_token(other.id, token.qr_payload))

    def test_wrong_code_is_rejected(self):
        self.issuer.issue_pickup_token(self.order.id)
        self.assertFalse(self.issuer.verify_token(self.order.id, "00000000"))
        self.assertFalse(self.issuer.verify_token(self.order.id, ""))

    def test_expired_token(self):
        token = self.issuer.issue_pickup_token(self.order.id)
        HandoverTokenORM.objects.filter(order_id=self.order.id).update(
            issued_at=timezone.now() - timedelta(hours=25),
            expires_at=timezone.now() - timedelta(hours=1),
        )
        with self.assertRaises(TokenExpired):
            self.issuer.verify_token(self.order.id, token.qr_payload)

    def test_reissue_expires_previous_token(self):
        first = self.issuer.issue_delivery_token(self.order.id)
        second = self.issuer.issue_delivery_token(self.order.id)
        with self.assertRaises(TokenExpired):
            self.issuer.verify_token(self.order.id, first.qr_payload)
        self.assertTrue(self.issuer.verify_token(self.order.id, second.qr_payload))
