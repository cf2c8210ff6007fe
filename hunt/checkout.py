# hunt/checkout.py
from extensions import db
from errors import NotFound, PermissionDenied, ValidationError
from hunt.audit import AuditLogHelper
from hunt.pricing import PricingHelper
from hunt.stripe_gateway import StripeGateway
from models import Participant, Payment, PaymentStatus
from logger import payments_logger


class CheckoutSessionHelper:
    """Starts a hosted Stripe checkout for a participant's paid tier."""

    @staticmethod
    def create_session(user, participant_id, tier, success_url, cancel_url, gateway=None):
        """
        Create the Stripe session first, then the PENDING Payment row and
        its audit entry in one commit. A provider failure raises before
        anything is written.
        """
        gateway = gateway or StripeGateway.from_config()

        participant = db.session.get(Participant, participant_id)
        if not participant:
            raise NotFound("Participant not found")
        if participant.user_id != user.id:
            raise PermissionDenied("Unauthorized access to participant record")

        if not PricingHelper.is_paid(tier):
            raise ValidationError("Tier must be PREMIUM or VIP")

        already_paid = Payment.query.filter_by(
            participant_id=participant.id,
            tier=tier,
            status=PaymentStatus.COMPLETED,
        ).first()
        if already_paid:
            raise ValidationError("Payment already completed for this tier")

        amount = PricingHelper.price_for(tier)

        session = gateway.create_checkout_session(
            amount_minor=PricingHelper.to_minor_units(amount),
            product_name=f"Red Mugsy Treasure Hunt - {tier.value} Tier",
            description=f"Registration for {tier.value.lower()} tier access",
            customer_email=participant.user.email,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={
                "participantId": participant.id,
                "userId": participant.user_id,
                "tier": tier.value,
                "referralCode": participant.referred_by or "",
            },
        )

        try:
            payment = Payment(
                user_id=participant.user_id,
                participant_id=participant.id,
                stripe_session_id=session["id"],
                amount=amount,
                currency=gateway.currency,
                tier=tier,
                status=PaymentStatus.PENDING,
                referral_code=participant.referred_by,
            )
            db.session.add(payment)
            db.session.flush()

            AuditLogHelper.record(
                "PAYMENT_SESSION_CREATED", "PAYMENT", payment.id,
                actor_user_id=user.id,
                new_values={"tier": tier, "amount": amount, "sessionId": session["id"]},
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            payments_logger.error(f"Could not record payment for Stripe session {session['id']}", exc_info=True)
            raise

        payments_logger.info(
            f"Checkout session {session['id']} created: payment={payment.id} "
            f"participant={participant.id} tier={tier.value} amount={amount}"
        )
        return {
            "message": "Payment session created successfully",
            "sessionId": session["id"],
            "sessionUrl": session["url"],
            "paymentId": payment.id,
            "amount": float(amount),
            "tier": tier.value,
        }

    @staticmethod
    def session_status(user, session_id, gateway=None):
        """Owner-only view of a payment, its Stripe session and the participant."""
        gateway = gateway or StripeGateway.from_config()

        payment = Payment.query.filter_by(stripe_session_id=session_id, user_id=user.id).first()
        if not payment:
            raise NotFound("Payment session not found")

        session = gateway.retrieve_checkout_session(session_id)
        participant = payment.participant

        return {
            "payment": {
                "id": payment.id,
                "status": payment.status.value,
                "amount": float(payment.amount),
                "tier": payment.tier.value,
                "createdAt": payment.created_at.isoformat() if payment.created_at else None,
                "completedAt": payment.completed_at.isoformat() if payment.completed_at else None,
            },
            "session": session,
            "participant": {
                "id": participant.id,
                "tier": participant.tier.value,
                "status": participant.status.value,
            } if participant else None,
        }
