# hunt/stripe_gateway.py
import json
import logging

import stripe
from flask import current_app

from errors import ProviderError, WebhookSignatureError

logger = logging.getLogger(__name__)


# ===============================================================================
# STRIPE GATEWAY
# ===============================================================================

class StripeGateway:
    """
    Thin wrapper around the Stripe SDK.

    Everything handed back to callers is a plain dict so the rest of the
    code never depends on StripeObject behaviour. SDK failures surface as
    ProviderError (retryable, 502) and bad webhook signatures as
    WebhookSignatureError (400).
    """

    def __init__(self, secret_key, webhook_secret, tolerance=300, timeout=10, currency="usd"):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self.currency = currency
        self._client = None
        self._timeout = timeout

    @classmethod
    def from_config(cls, config=None):
        config = config or current_app.config
        return cls(
            secret_key=config.get("STRIPE_SECRET_KEY"),
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET"),
            tolerance=config.get("STRIPE_WEBHOOK_TOLERANCE", 300),
            timeout=config.get("STRIPE_TIMEOUT_SECONDS", 10),
            currency=config.get("STRIPE_CURRENCY", "usd"),
        )

    @property
    def client(self):
        if self._client is None:
            if not self.secret_key:
                raise ProviderError("Stripe is not configured", status_code=503, code="STRIPE_NOT_CONFIGURED")
            self._client = stripe.StripeClient(
                self.secret_key,
                http_client=stripe.RequestsClient(timeout=self._timeout),
                max_network_retries=1,
            )
        return self._client

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------
    def create_checkout_session(self, *, amount_minor, product_name, description,
                                customer_email, success_url, cancel_url, metadata):
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [{
                "price_data": {
                    "currency": self.currency,
                    "product_data": {
                        "name": product_name,
                        "description": description,
                    },
                    "unit_amount": amount_minor,
                },
                "quantity": 1,
            }],
            "customer_email": customer_email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": {k: str(v) for k, v in metadata.items() if v is not None},
        }
        try:
            session = self.client.checkout.sessions.create(params=params)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session creation failed: {e}")
            raise ProviderError("Payment provider unavailable, please retry", code="STRIPE_ERROR") from e

        logger.info(f"Created Stripe checkout session {session.id}")
        return {"id": session.id, "url": session.url}

    def retrieve_checkout_session(self, session_id):
        try:
            session = self.client.checkout.sessions.retrieve(session_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe session lookup failed for {session_id}: {e}")
            raise ProviderError("Payment provider unavailable, please retry", code="STRIPE_ERROR") from e

        return {
            "id": session.id,
            "status": getattr(session, "status", None),
            "paymentStatus": getattr(session, "payment_status", None),
            "amountTotal": getattr(session, "amount_total", None),
            "currency": getattr(session, "currency", None),
            "customerEmail": getattr(session, "customer_email", None),
        }

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------
    def verify_webhook(self, payload: bytes, sig_header):
        """Check the Stripe-Signature header against the raw body and return the event dict."""
        if not self.webhook_secret:
            raise ProviderError("Stripe webhook secret is not configured", status_code=500,
                                code="STRIPE_NOT_CONFIGURED")
        if not sig_header:
            raise WebhookSignatureError("Missing Stripe-Signature header", code="INVALID_SIGNATURE")

        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.WebhookSignature.verify_header(text, sig_header, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Rejected Stripe webhook with bad signature: {e}")
            raise WebhookSignatureError(f"Webhook signature verification failed: {e}",
                                        code="INVALID_SIGNATURE") from e

        try:
            event = json.loads(text)
        except ValueError as e:
            raise WebhookSignatureError("Webhook payload is not valid JSON", code="INVALID_PAYLOAD") from e

        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise WebhookSignatureError("Webhook payload is missing id or type", code="INVALID_PAYLOAD")
        return event
