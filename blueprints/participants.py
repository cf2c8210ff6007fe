#======================================================================================================
#
#   PARTICIPANTS API
#
#===========================================================================================================
from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import func
import logging

from extensions import db
from errors import Conflict, NotFound, ValidationError
from hunt.audit import AuditLogHelper
from hunt.notifications import notifier
from hunt.pricing import PricingHelper
from hunt.referral_codes import find_promoter_by_code, normalize_code
from models import (Participant, ParticipantStatus, Payment, PaymentStatus, Referral,
                    User, UserRole, utcnow)
from utils import client_ip, client_user_agent, validate_email, validate_phone
from blueprints.auth_helpers import issue_tokens, turnstile_required

logger = logging.getLogger(__name__)

bp = Blueprint("participants", __name__, url_prefix="/api/participants")

USER_FIELDS = {"firstName": "first_name", "lastName": "last_name", "phone": "phone", "country": "country"}
PROFILE_FIELDS = {
    "walletAddress": "wallet_address",
    "discordUsername": "discord_username",
    "telegramUsername": "telegram_username",
}


def _completed_payments(participant_id):
    return db.session.query(
        func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0)
    ).filter(
        Payment.participant_id == participant_id,
        Payment.status == PaymentStatus.COMPLETED,
    ).one()


def _current_participant():
    participant = Participant.query.filter_by(user_id=current_user.id).first()
    if not participant:
        raise NotFound("Participant profile not found")
    return participant


# =========================
# VALIDATE REGISTRATION INPUT
# =========================
def validate_registration(data):
    email = (data.get("email") or "").strip().lower()
    first_name = (data.get("firstName") or "").strip()
    last_name = (data.get("lastName") or "").strip()
    country = (data.get("country") or "").strip()
    phone = (data.get("phone") or "").strip() or None
    password = data.get("password") or ""
    tier = PricingHelper.parse_tier(data.get("tier"))

    if not first_name:
        raise ValidationError("First name is required")
    if not last_name:
        raise ValidationError("Last name is required")
    if not validate_email(email):
        raise ValidationError("Invalid email format")
    if not country:
        raise ValidationError("Country is required")
    if phone and not validate_phone(phone):
        raise ValidationError("Invalid phone number")
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters")
    if tier is None:
        raise ValidationError("Tier selection is required")
    if data.get("acceptTerms") is not True:
        raise ValidationError("You must accept the terms and conditions")

    return {
        "email": email,
        "first_name": first_name,
        "last_name": last_name,
        "country": country,
        "phone": phone,
        "password": password,
        "tier": tier,
        "referral_code": normalize_code(data.get("referralCode")) or None,
        "wallet_address": data.get("walletAddress"),
        "discord_username": data.get("discordUsername"),
        "telegram_username": data.get("telegramUsername"),
        "subscribe_mailing": bool(data.get("subscribeMailing", False)),
    }


#=============================================================================================
#      REGISTER
#============================================================================================
@bp.route("/register", methods=["POST"])
@turnstile_required
def register():
    data = validate_registration(request.get_json(silent=True) or {})

    if User.query.filter_by(email=data["email"]).first():
        raise Conflict("Email already registered. Please login instead.")

    promoter = None
    if data["referral_code"]:
        promoter = find_promoter_by_code(data["referral_code"])
        if not promoter:
            raise ValidationError("Invalid referral code")

    tier = data["tier"]
    try:
        user = User(
            email=data["email"],
            first_name=data["first_name"],
            last_name=data["last_name"],
            phone=data["phone"],
            country=data["country"],
            role=UserRole.PARTICIPANT,
        )
        user.set_password(data["password"])
        db.session.add(user)
        db.session.flush()

        participant = Participant(
            user_id=user.id,
            tier=tier,
            status=ParticipantStatus.PENDING if PricingHelper.is_paid(tier) else ParticipantStatus.ACTIVE,
            wallet_address=data["wallet_address"],
            discord_username=data["discord_username"],
            telegram_username=data["telegram_username"],
            referral_code=data["referral_code"],
            referred_by=promoter.referral_code if promoter else None,
            registration_data={
                "acceptTerms": True,
                "subscribeMailing": data["subscribe_mailing"],
                "registeredAt": utcnow().isoformat(),
            },
            ip_address=client_ip(),
            user_agent=client_user_agent(),
        )
        db.session.add(participant)
        db.session.flush()

        if promoter:
            # Converted by the payment webhook, re-priced to the tier actually paid
            db.session.add(Referral(
                promoter_id=promoter.id,
                participant_email=user.email,
                referral_code=promoter.referral_code,
                tier=tier,
                commission=PricingHelper.commission_for(tier, promoter.commission_rate),
                is_converted=False,
            ))

        AuditLogHelper.record(
            "PARTICIPANT_REGISTER", "PARTICIPANT", participant.id,
            actor_user_id=user.id,
            new_values={"tier": tier, "email": user.email, "referralCode": participant.referred_by},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Participant registration failed for {data['email']}", exc_info=True)
        raise

    logger.info(f"Participant {participant.id} registered ({tier.value}), referred_by={participant.referred_by}")

    notifier.send(
        "participant_welcome", user.email,
        first_name=user.first_name,
        tier=tier.value,
        needs_payment=PricingHelper.is_paid(tier),
        wallet_address=participant.wallet_address,
    )

    needs_payment = PricingHelper.is_paid(tier)
    return jsonify({
        "message": "Registration successful",
        "participant": {
            "id": participant.id,
            "email": user.email,
            "firstName": user.first_name,
            "lastName": user.last_name,
            "tier": tier.value,
            "status": participant.status.value,
            "needsPayment": needs_payment,
        },
        "nextSteps": (
            ["Complete payment to activate your account", "Check your email for payment instructions"]
            if needs_payment else
            ["Complete your profile", "Join our Discord community"]
        ),
        "tokens": issue_tokens(user),
    }), 201


#=============================================================================================
#      PROFILE
#============================================================================================
@bp.route("/profile", methods=["GET"])
@login_required
def get_profile():
    participant = _current_participant()
    _, total_paid = _completed_payments(participant.id)

    result = participant.to_dict()
    result["user"] = current_user.to_dict()
    result["payments"] = [p.to_dict() for p in participant.payments[:10]]
    result["totalPaid"] = float(total_paid)
    return jsonify({"participant": result}), 200


@bp.route("/profile", methods=["PUT"])
@login_required
def update_profile():
    data = request.get_json(silent=True) or {}
    participant = _current_participant()

    if data.get("phone") and not validate_phone(data["phone"]):
        raise ValidationError("Invalid phone number")
    for key in ("firstName", "lastName"):
        if key in data and not (data[key] or "").strip():
            raise ValidationError(f"{key} cannot be empty")

    changes = {}
    try:
        for key, attr in USER_FIELDS.items():
            if key in data:
                setattr(current_user, attr, data[key])
                changes[key] = data[key]
        for key, attr in PROFILE_FIELDS.items():
            if key in data:
                setattr(participant, attr, data[key])
                changes[key] = data[key]

        AuditLogHelper.record(
            "PARTICIPANT_PROFILE_UPDATE", "PARTICIPANT", participant.id,
            actor_user_id=current_user.id,
            new_values=changes,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    result = participant.to_dict()
    result["user"] = current_user.to_dict()
    return jsonify({"message": "Profile updated successfully", "participant": result}), 200


@bp.route("/stats", methods=["GET"])
@login_required
def stats():
    participant = _current_participant()
    count, total = _completed_payments(participant.id)
    return jsonify({
        "stats": {
            "tier": participant.tier.value,
            "status": participant.status.value,
            "joinDate": participant.created_at.isoformat(),
            "totalPayments": count,
            "totalSpent": float(total),
        }
    }), 200


@bp.route("/account", methods=["DELETE"])
@login_required
def delete_account():
    user = db.session.get(User, current_user.id)
    user_id = user.id
    try:
        AuditLogHelper.record(
            "PARTICIPANT_ACCOUNT_DELETE", "PARTICIPANT", user.id,
            actor_user_id=user.id,
            old_values={"email": user.email},
        )
        db.session.delete(user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Account deletion failed for user {user_id}", exc_info=True)
        raise

    logger.info(f"User {user_id} deleted their account")
    return jsonify({"message": "Account deleted successfully"}), 200
