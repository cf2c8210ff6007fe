"""
Pytest fixtures: an in-memory app, API clients and model factories.
"""
import hashlib
import hmac
import json
import os
import time
import uuid
from decimal import Decimal

# Must be set before config.py is imported
os.environ.setdefault("FLASK_ENV", "testing")
os.environ.setdefault("RATELIMIT_ENABLED", "false")

import pytest
from flask import g, request_started

from app import create_app
from config import TestingConfig
from extensions import db
from hunt.stripe_gateway import StripeGateway
from models import (Participant, ParticipantStatus, Payment, PaymentStatus, Promoter, PromoterStatus,
                    PromoterType, Referral, Tier, User, UserRole)
from blueprints.auth_helpers import issue_tokens

TURNSTILE_TOKEN = "test-turnstile-token"
DEFAULT_PASSWORD = "correct-horse-battery"


def _forget_login_user(sender, **extra):
    # The test client reuses the fixture's app context, so g outlives each request
    g.pop("_login_user", None)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    request_started.connect(_forget_login_user, app)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


# ------------------------------------------------------------------
# Factories
# ------------------------------------------------------------------
@pytest.fixture
def make_user(app):
    def _make(email=None, role=UserRole.PARTICIPANT, password=DEFAULT_PASSWORD,
              first_name="Test", last_name="User", active=True):
        user = User(
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            first_name=first_name,
            last_name=last_name,
            country="US",
            role=role,
            is_active_account=active,
        )
        if password:
            user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_participant(make_user):
    def _make(user=None, tier=Tier.PREMIUM, status=ParticipantStatus.PENDING, referred_by=None, **user_kwargs):
        user = user or make_user(**user_kwargs)
        participant = Participant(user_id=user.id, tier=tier, status=status, referred_by=referred_by)
        db.session.add(participant)
        db.session.commit()
        return participant
    return _make


@pytest.fixture
def make_promoter(make_user):
    def _make(code="REFTEST01", status=PromoterStatus.APPROVED, commission_rate=Decimal("0.10"), user=None):
        user = user or make_user(role=UserRole.PROMOTER, first_name="Pat", last_name="Promoter")
        promoter = Promoter(
            user_id=user.id,
            type=PromoterType.INFLUENCER,
            status=status,
            referral_code=code,
            commission_rate=commission_rate,
        )
        db.session.add(promoter)
        db.session.commit()
        return promoter
    return _make


@pytest.fixture
def make_payment():
    def _make(participant, tier=None, status=PaymentStatus.PENDING, session_id=None,
              payment_intent_id=None, amount=None):
        tier = tier or participant.tier
        payment = Payment(
            user_id=participant.user_id,
            participant_id=participant.id,
            stripe_session_id=session_id or f"cs_test_{uuid.uuid4().hex[:12]}",
            stripe_payment_intent_id=payment_intent_id,
            amount=amount if amount is not None else {Tier.PREMIUM: Decimal("99.00"), Tier.VIP: Decimal("299.00")}[tier],
            currency="usd",
            tier=tier,
            status=status,
            referral_code=participant.referred_by,
        )
        db.session.add(payment)
        db.session.commit()
        return payment
    return _make


@pytest.fixture
def make_referral():
    def _make(promoter, email, tier=Tier.PREMIUM, commission=Decimal("9.90")):
        referral = Referral(
            promoter_id=promoter.id,
            participant_email=email,
            referral_code=promoter.referral_code,
            tier=tier,
            commission=commission,
            is_converted=False,
        )
        db.session.add(referral)
        db.session.commit()
        return referral
    return _make


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        with app.test_request_context():
            token = issue_tokens(user)["accessToken"]
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def admin_user(make_user):
    return make_user(email="root@example.com", role=UserRole.ADMIN, first_name="Ada", last_name="Admin")


# ------------------------------------------------------------------
# Payloads
# ------------------------------------------------------------------
def participant_payload(**overrides):
    payload = {
        "firstName": "Jamie",
        "lastName": "Hunter",
        "email": "jamie@example.com",
        "country": "US",
        "phone": "+1 555 123 4567",
        "password": DEFAULT_PASSWORD,
        "tier": "PREMIUM",
        "acceptTerms": True,
        "turnstileToken": TURNSTILE_TOKEN,
    }
    payload.update(overrides)
    return payload


def promoter_payload(**overrides):
    payload = {
        "firstName": "Riley",
        "lastName": "Reach",
        "email": "riley@example.com",
        "country": "CA",
        "type": "INFLUENCER",
        "experienceDescription": "Five years running a treasure hunting channel with weekly live streams.",
        "promotionPlan": (
            "Weekly videos walking through clues, a pinned post with my code, and two live "
            "streams during launch week to walk new hunters through registration."
        ),
        "socialMediaLinks": {"youtube": "https://youtube.com/@riley"},
        "followersCount": 12000,
        "engagementRate": 4.5,
        "acceptTerms": True,
        "agreeCommission": True,
        "turnstileToken": TURNSTILE_TOKEN,
    }
    payload.update(overrides)
    return payload


# ------------------------------------------------------------------
# Stripe
# ------------------------------------------------------------------
def sign_payload(payload, secret=TestingConfig.STRIPE_WEBHOOK_SECRET, timestamp=None):
    timestamp = timestamp or int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_completed_event(session_id, metadata=None, event_id=None, payment_intent="pi_test_123",
                             payment_status="paid", customer_email=None):
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": session_id,
            "object": "checkout.session",
            "payment_status": payment_status,
            "payment_intent": payment_intent,
            "customer_email": customer_email,
            "metadata": metadata or {},
        }},
    }


def payment_failed_event(payment_intent, message="Your card was declined.", event_id=None):
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "type": "payment_intent.payment_failed",
        "data": {"object": {
            "id": payment_intent,
            "object": "payment_intent",
            "last_payment_error": {"message": message},
        }},
    }


@pytest.fixture
def post_webhook(client):
    def _post(event, signature=None, timestamp=None):
        body = json.dumps(event)
        headers = {"Content-Type": "application/json"}
        headers["Stripe-Signature"] = signature if signature is not None else sign_payload(body, timestamp=timestamp)
        return client.post("/webhooks/stripe", data=body, headers=headers)
    return _post


@pytest.fixture
def stripe_checkout(monkeypatch):
    """Replace the Stripe checkout calls and record what was sent."""
    calls = []

    def fake_create(self, **kwargs):
        session_id = f"cs_test_{uuid.uuid4().hex[:12]}"
        calls.append(dict(kwargs, id=session_id))
        return {"id": session_id, "url": f"https://checkout.stripe.com/c/pay/{session_id}"}

    def fake_retrieve(self, session_id):
        return {
            "id": session_id,
            "status": "complete",
            "paymentStatus": "paid",
            "amountTotal": 9900,
            "currency": "usd",
            "customerEmail": None,
        }

    monkeypatch.setattr(StripeGateway, "create_checkout_session", fake_create)
    monkeypatch.setattr(StripeGateway, "retrieve_checkout_session", fake_retrieve)
    return calls
