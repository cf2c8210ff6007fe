# hunt/reconciliation.py
#===========================================================================================
#   STRIPE WEBHOOK RECONCILIATION
#
#   checkout.session.completed     PENDING -> COMPLETED, participant ACTIVE, referral converted
#   payment_intent.payment_failed  PENDING -> FAILED
#   anything else                  acknowledged and ignored
#
#   Terminal payments are never touched again. Each transition runs in one
#   transaction holding a row lock on the payment.
#===========================================================================================
from collections import namedtuple

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from errors import PaymentRecordMissing
from hunt.audit import AuditLogHelper
from hunt.notifications import notifier
from hunt.pricing import PricingHelper
from hunt.stripe_gateway import StripeGateway
from logger import webhook_logger as logger
from models import (
    Participant, ParticipantStatus, Payment, PaymentStatus, Promoter, Referral,
    WebhookEvent, WebhookEventStatus, utcnow,
)

PROVIDER = "stripe"
PAID_SESSION_STATES = ("paid", "no_payment_required")

# status: WebhookEventStatus for the ledger; notifications: [(template_key, to, context)]
HandlerOutcome = namedtuple("HandlerOutcome", ["status", "remarks", "notifications"])


def _outcome(status=WebhookEventStatus.PROCESSED, remarks=None, notifications=None):
    return HandlerOutcome(status, remarks, notifications or [])


class WebhookEventProcessor:

    def __init__(self, gateway=None, dispatcher=None, max_attempts=None):
        self.gateway = gateway or StripeGateway.from_config()
        self.dispatcher = dispatcher or notifier
        self.max_attempts = max_attempts or current_app.config.get("MAX_WEBHOOK_ATTEMPTS", 5)
        self.handlers = {
            "checkout.session.completed": self.handle_checkout_completed,
            "payment_intent.payment_failed": self.handle_payment_failed,
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def handle_request(self, payload, sig_header):
        """Verify the raw body and process it. Returns (body, status_code)."""
        event = self.gateway.verify_webhook(payload, sig_header)
        return self.process(event)

    def process(self, event):
        event_id = event["id"]
        event_type = event["type"]
        obj = (event.get("data") or {}).get("object") or {}

        ledger = self._record_delivery(event_id, event_type, event, obj.get("id"))
        if ledger.is_settled:
            logger.info(f"Stripe event {event_id} already {ledger.status}, acknowledging")
            return {"received": True}, 200

        handler = self.handlers.get(event_type)
        if handler is None:
            logger.info(f"Unhandled Stripe event type {event_type} ({event_id})")
            self._settle(ledger, _outcome(WebhookEventStatus.IGNORED, f"unhandled event type {event_type}"))
            return {"received": True}, 200

        try:
            outcome = handler(obj)
        except PaymentRecordMissing as e:
            db.session.rollback()
            return self._handle_missing_payment(ledger, e)
        except Exception as e:
            db.session.rollback()
            logger.error(f"Stripe event {event_id} ({event_type}) failed: {e}", exc_info=True)
            self._mark_failed(ledger, str(e))
            raise

        self._settle(ledger, outcome)
        for template_key, to, context in outcome.notifications:
            self.dispatcher.send(template_key, to, **context)
        return {"received": True}, 200

    # ------------------------------------------------------------------
    # Event handlers. Each one commits its own transaction.
    # ------------------------------------------------------------------
    def handle_checkout_completed(self, session):
        session_id = session.get("id")
        metadata = session.get("metadata") or {}

        if session.get("payment_status") not in PAID_SESSION_STATES:
            logger.info(f"Checkout session {session_id} completed but not paid "
                        f"({session.get('payment_status')}), nothing to do")
            return _outcome(WebhookEventStatus.IGNORED, f"payment_status={session.get('payment_status')}")

        payment = (Payment.query
                   .filter_by(stripe_session_id=session_id)
                   .with_for_update()
                   .first())
        if not payment:
            raise PaymentRecordMissing(f"Payment record not found for session {session_id}")

        if payment.status != PaymentStatus.PENDING:
            logger.info(f"Payment {payment.id} already {payment.status.value}, skipping session {session_id}")
            db.session.rollback()
            return _outcome(remarks=f"payment already {payment.status.value}")

        tier = PricingHelper.parse_tier(metadata.get("tier")) or payment.tier

        payment.status = PaymentStatus.COMPLETED
        payment.stripe_payment_intent_id = session.get("payment_intent")
        payment.completed_at = utcnow()

        participant = payment.participant
        if participant is None and metadata.get("participantId"):
            participant = db.session.get(Participant, int(metadata["participantId"]))
        if participant is not None:
            participant.status = ParticipantStatus.ACTIVE
            participant.tier = tier

        email = participant.user.email if participant is not None else session.get("customer_email")
        referral_code = metadata.get("referralCode") or payment.referral_code
        referral = None
        if referral_code and email:
            referral = self._convert_referral(email, referral_code, payment, tier)

        AuditLogHelper.record(
            "PAYMENT_COMPLETED", "PAYMENT", payment.id,
            actor_user_id=payment.user_id,
            old_values={"status": PaymentStatus.PENDING},
            new_values={
                "status": PaymentStatus.COMPLETED,
                "tier": tier,
                "amount": payment.amount,
                "paymentIntent": payment.stripe_payment_intent_id,
                "referralId": referral.id if referral else None,
            },
        )
        db.session.commit()

        logger.info(f"Payment {payment.id} completed: participant={payment.participant_id} "
                    f"tier={tier.value} referral={referral.id if referral else None}")

        notifications = []
        if email:
            notifications.append(("payment_completed", email, {
                "first_name": participant.user.first_name if participant is not None else "",
                "tier": tier.value,
                "amount": float(payment.amount),
                "currency": payment.currency.upper(),
            }))
        return _outcome(notifications=notifications)

    def _convert_referral(self, email, referral_code, payment, tier):
        referral = (Referral.query
                    .filter(func.lower(Referral.participant_email) == email.lower(),
                            func.upper(Referral.referral_code) == referral_code.strip().upper(),
                            Referral.is_converted.is_(False))
                    .with_for_update()
                    .first())
        if not referral:
            logger.info(f"No open referral for {email} with code {referral_code}")
            return None

        if referral.tier != tier:
            # Commission follows the tier actually paid, not the one chosen at signup
            promoter = db.session.get(Promoter, referral.promoter_id)
            referral.tier = tier
            referral.commission = PricingHelper.commission_for(tier, promoter.commission_rate)

        referral.is_converted = True
        referral.converted_at = utcnow()
        referral.payment_id = payment.id

        # Increment in SQL so concurrent conversions never lose an update
        Promoter.query.filter_by(id=referral.promoter_id).update({
            Promoter.total_referrals: Promoter.total_referrals + 1,
            Promoter.total_revenue: Promoter.total_revenue + referral.commission,
        })
        logger.info(f"Referral {referral.id} converted for promoter {referral.promoter_id}, "
                    f"commission {referral.commission}")
        return referral

    def handle_payment_failed(self, intent):
        intent_id = intent.get("id")
        payment = (Payment.query
                   .filter_by(stripe_payment_intent_id=intent_id)
                   .with_for_update()
                   .first())
        if not payment:
            logger.info(f"payment_failed for unknown payment intent {intent_id}, nothing to do")
            return _outcome(WebhookEventStatus.IGNORED, "no payment for intent")

        if payment.status != PaymentStatus.PENDING:
            logger.info(f"Payment {payment.id} already {payment.status.value}, ignoring failure for {intent_id}")
            db.session.rollback()
            return _outcome(remarks=f"payment already {payment.status.value}")

        reason = (intent.get("last_payment_error") or {}).get("message")
        payment.status = PaymentStatus.FAILED
        payment.failure_reason = reason

        AuditLogHelper.record(
            "PAYMENT_FAILED", "PAYMENT", payment.id,
            actor_user_id=payment.user_id,
            old_values={"status": PaymentStatus.PENDING},
            new_values={"status": PaymentStatus.FAILED, "reason": reason},
        )
        db.session.commit()
        logger.warning(f"Payment {payment.id} failed: {reason}")

        notifications = []
        if payment.user is not None:
            notifications.append(("payment_failed", payment.user.email, {
                "first_name": payment.user.first_name,
                "tier": payment.tier.value,
                "reason": reason,
            }))
        return _outcome(notifications=notifications)

    # ------------------------------------------------------------------
    # Delivery ledger
    # ------------------------------------------------------------------
    def _find_delivery(self, event_id):
        return (WebhookEvent.query
                .filter_by(provider=PROVIDER, event_id=event_id)
                .with_for_update()
                .first())

    def _record_delivery(self, event_id, event_type, payload, reference):
        ledger = self._find_delivery(event_id)
        if ledger is None:
            ledger = WebhookEvent(
                provider=PROVIDER,
                event_id=event_id,
                event_type=event_type,
                payload=payload,
                reference=reference,
                attempts=0,
            )
            db.session.add(ledger)
            try:
                db.session.commit()
            except IntegrityError:
                # Another worker recorded the same event first
                db.session.rollback()
                ledger = WebhookEvent.query.filter_by(provider=PROVIDER, event_id=event_id).one()

        if not ledger.is_settled:
            ledger.attempts += 1
            db.session.commit()
        return ledger

    def _settle(self, ledger, outcome):
        ledger.mark_processed(outcome.status, outcome.remarks)
        db.session.commit()

    def _mark_failed(self, ledger, remarks):
        try:
            ledger.status = WebhookEventStatus.FAILED.value
            ledger.remarks = remarks[:500]
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.error(f"Could not record failure for Stripe event {ledger.event_id}", exc_info=True)

    def _handle_missing_payment(self, ledger, error):
        if ledger.attempts > self.max_attempts:
            ledger.mark_processed(WebhookEventStatus.DEAD_LETTERED, error.message)
            db.session.commit()
            logger.critical(
                f"Stripe event {ledger.event_id} dead-lettered after {ledger.attempts - 1} failed "
                f"deliveries: {error.message}"
            )
            self.dispatcher.notify_admin(
                "Stripe webhook dead-lettered",
                f"Event {ledger.event_id} ({ledger.event_type}) referenced session "
                f"{ledger.reference} but no payment record exists. Manual reconciliation required.",
            )
            return {"received": True, "deadLettered": True}, 200

        self._mark_failed(ledger, error.message)
        logger.error(
            f"Stripe event {ledger.event_id}: {error.message} "
            f"(attempt {ledger.attempts} of {self.max_attempts})"
        )
        return {"error": "Webhook handler failed"}, 500
