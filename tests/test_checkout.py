from unittest.mock import MagicMock

import pytest
import stripe

from errors import ProviderError, WebhookSignatureError
from extensions import db
from hunt.stripe_gateway import StripeGateway
from models import AuditLog, ParticipantStatus, Payment, PaymentStatus, Tier

SUCCESS_URL = "https://hunt.example.com/payment/success"
CANCEL_URL = "https://hunt.example.com/payment/cancel"


def _checkout_body(participant, tier="PREMIUM", **overrides):
    body = {"tier": tier, "participantId": participant.id, "successUrl": SUCCESS_URL, "cancelUrl": CANCEL_URL}
    body.update(overrides)
    return body


# ------------------------------------------------------------------
# POST /api/payments/create-session
# ------------------------------------------------------------------
def test_create_session_records_pending_payment(client, make_participant, auth_headers, stripe_checkout):
    participant = make_participant(email="buyer@example.com", referred_by="REFTEST01")

    resp = client.post("/api/payments/create-session", json=_checkout_body(participant),
                       headers=auth_headers(participant.user))

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["tier"] == "PREMIUM"
    assert body["amount"] == 99.0
    assert body["sessionUrl"].startswith("https://checkout.stripe.com/")

    payment = db.session.get(Payment, body["paymentId"])
    assert payment.status == PaymentStatus.PENDING
    assert payment.stripe_session_id == body["sessionId"]
    assert payment.referral_code == "REFTEST01"

    call = stripe_checkout[0]
    assert call["amount_minor"] == 9900
    assert call["customer_email"] == "buyer@example.com"
    assert call["metadata"] == {
        "participantId": participant.id,
        "userId": participant.user_id,
        "tier": "PREMIUM",
        "referralCode": "REFTEST01",
    }

    audit = AuditLog.query.filter_by(action="PAYMENT_SESSION_CREATED").one()
    assert audit.entity_id == str(payment.id)
    assert audit.new_values["sessionId"] == body["sessionId"]


def test_create_session_accepts_vip_and_numeric_string_id(client, make_participant, auth_headers, stripe_checkout):
    participant = make_participant(tier=Tier.VIP)

    resp = client.post("/api/payments/create-session",
                       json=_checkout_body(participant, tier="vip", participantId=str(participant.id)),
                       headers=auth_headers(participant.user))

    assert resp.status_code == 200
    assert resp.get_json()["amount"] == 299.0
    assert stripe_checkout[0]["amount_minor"] == 29900


def test_create_session_requires_token(client, make_participant, stripe_checkout):
    participant = make_participant()

    resp = client.post("/api/payments/create-session", json=_checkout_body(participant))

    assert resp.status_code == 401
    assert stripe_checkout == []


def test_create_session_for_someone_elses_participant_is_forbidden(client, make_participant, make_user,
                                                                   auth_headers, stripe_checkout):
    participant = make_participant()
    intruder = make_user()

    resp = client.post("/api/payments/create-session", json=_checkout_body(participant),
                       headers=auth_headers(intruder))

    assert resp.status_code == 403
    assert Payment.query.count() == 0
    assert stripe_checkout == []


def test_create_session_for_unknown_participant(client, make_user, auth_headers, stripe_checkout):
    user = make_user()

    resp = client.post("/api/payments/create-session",
                       json={"tier": "PREMIUM", "participantId": 9999, "successUrl": SUCCESS_URL,
                             "cancelUrl": CANCEL_URL},
                       headers=auth_headers(user))

    assert resp.status_code == 404


@pytest.mark.parametrize("body", [
    {"tier": "FREE"},
    {"tier": "GOLD"},
    {"participantId": None},
    {"successUrl": "not-a-url"},
    {"cancelUrl": ""},
])
def test_create_session_rejects_invalid_input(client, make_participant, auth_headers, stripe_checkout, body):
    participant = make_participant()

    resp = client.post("/api/payments/create-session", json=_checkout_body(participant, **body),
                       headers=auth_headers(participant.user))

    assert resp.status_code == 400
    assert stripe_checkout == []


def test_create_session_refuses_tier_already_paid(client, make_participant, make_payment, auth_headers,
                                                  stripe_checkout):
    participant = make_participant(status=ParticipantStatus.ACTIVE)
    make_payment(participant, status=PaymentStatus.COMPLETED)

    resp = client.post("/api/payments/create-session", json=_checkout_body(participant),
                       headers=auth_headers(participant.user))

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Payment already completed for this tier"
    assert stripe_checkout == []


def test_provider_failure_writes_nothing(client, make_participant, auth_headers, monkeypatch):
    participant = make_participant()

    def unavailable(self, **kwargs):
        raise ProviderError("Payment provider unavailable, please retry", code="STRIPE_ERROR")

    monkeypatch.setattr(StripeGateway, "create_checkout_session", unavailable)
    resp = client.post("/api/payments/create-session", json=_checkout_body(participant),
                       headers=auth_headers(participant.user))

    assert resp.status_code == 502
    assert resp.get_json()["code"] == "STRIPE_ERROR"
    assert Payment.query.count() == 0
    assert AuditLog.query.filter_by(action="PAYMENT_SESSION_CREATED").count() == 0


# ------------------------------------------------------------------
# Session status and history
# ------------------------------------------------------------------
def test_session_status_for_owner(client, make_participant, make_payment, auth_headers, stripe_checkout):
    participant = make_participant()
    payment = make_payment(participant, session_id="cs_test_status")

    resp = client.get("/api/payments/session/cs_test_status/status", headers=auth_headers(participant.user))

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["payment"]["id"] == payment.id
    assert body["payment"]["status"] == "PENDING"
    assert body["session"]["paymentStatus"] == "paid"
    assert body["participant"] == {"id": participant.id, "tier": "PREMIUM", "status": "PENDING"}


def test_session_status_hides_other_users_sessions(client, make_participant, make_payment, make_user,
                                                   auth_headers, stripe_checkout):
    participant = make_participant()
    make_payment(participant, session_id="cs_test_private")

    resp = client.get("/api/payments/session/cs_test_private/status", headers=auth_headers(make_user()))

    assert resp.status_code == 404


def test_payment_history_is_paginated(client, make_participant, make_payment, auth_headers):
    participant = make_participant()
    for _ in range(3):
        make_payment(participant)

    resp = client.get("/api/payments/history?page=1&limit=2", headers=auth_headers(participant.user))

    assert resp.status_code == 200
    body = resp.get_json()
    assert len(body["payments"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert body["payments"][0]["participant"] == {"tier": "PREMIUM", "status": "PENDING"}


# ------------------------------------------------------------------
# StripeGateway
# ------------------------------------------------------------------
@pytest.fixture
def gateway():
    gw = StripeGateway("sk_test_unit", "whsec_unit", currency="usd")
    gw._client = MagicMock()
    return gw


def test_gateway_builds_checkout_params(gateway):
    gateway._client.checkout.sessions.create.return_value = MagicMock(id="cs_1", url="https://pay/cs_1")

    result = gateway.create_checkout_session(
        amount_minor=9900,
        product_name="Red Mugsy Treasure Hunt - PREMIUM Tier",
        description="Registration for premium tier access",
        customer_email="buyer@example.com",
        success_url=SUCCESS_URL,
        cancel_url=CANCEL_URL,
        metadata={"participantId": 7, "tier": "PREMIUM", "referralCode": None},
    )

    assert result == {"id": "cs_1", "url": "https://pay/cs_1"}
    params = gateway._client.checkout.sessions.create.call_args.kwargs["params"]
    assert params["mode"] == "payment"
    assert params["line_items"][0]["price_data"]["unit_amount"] == 9900
    assert params["line_items"][0]["price_data"]["currency"] == "usd"
    assert params["metadata"] == {"participantId": "7", "tier": "PREMIUM"}


def test_gateway_wraps_stripe_errors(gateway):
    gateway._client.checkout.sessions.create.side_effect = stripe.StripeError("connection reset")

    with pytest.raises(ProviderError) as exc:
        gateway.create_checkout_session(
            amount_minor=9900, product_name="x", description="y", customer_email="a@example.com",
            success_url=SUCCESS_URL, cancel_url=CANCEL_URL, metadata={},
        )
    assert exc.value.status_code == 502


def test_gateway_without_secret_key_is_unavailable():
    with pytest.raises(ProviderError) as exc:
        StripeGateway(None, "whsec_unit").client
    assert exc.value.code == "STRIPE_NOT_CONFIGURED"
    assert exc.value.status_code == 503


def test_gateway_rejects_missing_signature_header(gateway):
    with pytest.raises(WebhookSignatureError):
        gateway.verify_webhook(b'{"id": "evt_1", "type": "x"}', None)
