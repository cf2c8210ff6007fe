#======================================================================================================
#
#   PROMOTERS API
#
#===========================================================================================================
from datetime import datetime, timezone
from decimal import Decimal

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import func
import logging

from extensions import db
from errors import Conflict, NotFound, ValidationError
from hunt.audit import AuditLogHelper
from hunt.notifications import notifier
from hunt.referral_codes import allocate_referral_code
from models import Promoter, PromoterStatus, PromoterType, Referral, User, UserRole
from utils import (client_ip, client_user_agent, pagination_meta, parse_pagination,
                   validate_email, validate_phone, validate_url)
from blueprints.auth_helpers import turnstile_required

logger = logging.getLogger(__name__)

bp = Blueprint("promoters", __name__, url_prefix="/api/promoters")

MIN_EXPERIENCE_LENGTH = 50
MIN_PLAN_LENGTH = 100
SOCIAL_NETWORKS = ("twitter", "instagram", "youtube", "tiktok", "linkedin", "discord", "other")

USER_FIELDS = {"firstName": "first_name", "lastName": "last_name", "phone": "phone", "country": "country"}
PROFILE_FIELDS = {
    "companyName": "company_name",
    "website": "website",
    "socialMediaLinks": "social_media_links",
    "followersCount": "followers_count",
    "engagementRate": "engagement_rate",
    "niche": "niche",
}


def _current_promoter():
    promoter = Promoter.query.filter_by(user_id=current_user.id).first()
    if not promoter:
        raise NotFound("Promoter profile not found")
    return promoter


def _check_audience_fields(data):
    website = data.get("website")
    if website and not validate_url(website):
        raise ValidationError("Website must be a valid URL")

    links = data.get("socialMediaLinks")
    if links is not None:
        if not isinstance(links, dict) or any(k not in SOCIAL_NETWORKS for k in links):
            raise ValidationError("Invalid social media links")

    followers = data.get("followersCount")
    if followers is not None and (not isinstance(followers, int) or isinstance(followers, bool) or followers < 0):
        raise ValidationError("Followers count must be a non-negative integer")

    rate = data.get("engagementRate")
    if rate is not None:
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or not 0 <= rate <= 100:
            raise ValidationError("Engagement rate must be between 0 and 100")


# =========================
# VALIDATE APPLICATION INPUT
# =========================
def validate_application(data):
    email = (data.get("email") or "").strip().lower()
    first_name = (data.get("firstName") or "").strip()
    last_name = (data.get("lastName") or "").strip()
    country = (data.get("country") or "").strip()
    phone = (data.get("phone") or "").strip() or None
    experience = (data.get("experienceDescription") or "").strip()
    plan = (data.get("promotionPlan") or "").strip()

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

    try:
        promoter_type = PromoterType[(data.get("type") or "").strip().upper()]
    except KeyError:
        raise ValidationError("Promoter type is required")

    if len(experience) < MIN_EXPERIENCE_LENGTH:
        raise ValidationError("Please provide at least 50 characters about your experience")
    if len(plan) < MIN_PLAN_LENGTH:
        raise ValidationError("Please provide at least 100 characters about your promotion plan")
    if data.get("acceptTerms") is not True:
        raise ValidationError("You must accept the terms and conditions")
    if data.get("agreeCommission") is not True:
        raise ValidationError("You must agree to the commission structure")

    _check_audience_fields(data)

    return {
        "email": email,
        "first_name": first_name,
        "last_name": last_name,
        "country": country,
        "phone": phone,
        "type": promoter_type,
        "experience": experience,
        "plan": plan,
    }


#=============================================================================================
#      APPLY
#============================================================================================
@bp.route("/register", methods=["POST"])
@turnstile_required
def register():
    data = request.get_json(silent=True) or {}
    validated = validate_application(data)

    if User.query.filter_by(email=validated["email"]).first():
        raise Conflict("Email already registered. Please login instead.")

    try:
        # No password yet, one is issued when the application is approved
        user = User(
            email=validated["email"],
            first_name=validated["first_name"],
            last_name=validated["last_name"],
            phone=validated["phone"],
            country=validated["country"],
            role=UserRole.PROMOTER,
        )
        db.session.add(user)
        db.session.flush()

        promoter = Promoter(
            user_id=user.id,
            type=validated["type"],
            status=PromoterStatus.PENDING,
            referral_code=allocate_referral_code(),
            company_name=data.get("companyName"),
            website=data.get("website") or None,
            social_media_links=data.get("socialMediaLinks"),
            followers_count=data.get("followersCount"),
            engagement_rate=data.get("engagementRate"),
            niche=data.get("niche"),
            application_data={
                "experienceDescription": validated["experience"],
                "promotionPlan": validated["plan"],
                "acceptTerms": True,
                "agreeCommission": True,
                "appliedAt": datetime.now(timezone.utc).isoformat(),
            },
            ip_address=client_ip(),
            user_agent=client_user_agent(),
        )
        db.session.add(promoter)
        db.session.flush()

        AuditLogHelper.record(
            "PROMOTER_APPLICATION", "PROMOTER", promoter.id,
            actor_user_id=user.id,
            new_values={"type": promoter.type, "email": user.email, "referralCode": promoter.referral_code},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Promoter application failed for {validated['email']}", exc_info=True)
        raise

    logger.info(f"Promoter application {promoter.id} received from {user.email}")

    notifier.send("promoter_application", user.email, first_name=user.first_name, promoter_type=promoter.type.value)
    notifier.notify_admin(
        "New promoter application",
        f"{user.full_name} ({user.email}) applied as {promoter.type.value}.",
        admin_url=f"{current_app.config.get('FRONTEND_URL')}/admin/promoters",
    )

    return jsonify({
        "message": "Application submitted successfully",
        "promoter": {
            "id": promoter.id,
            "email": user.email,
            "firstName": user.first_name,
            "lastName": user.last_name,
            "type": promoter.type.value,
            "status": promoter.status.value,
            "referralCode": promoter.referral_code,
        },
        "nextSteps": [
            "Our team will review your application within 2-3 business days",
            "You will receive an email once your application is reviewed",
        ],
    }), 201


#=============================================================================================
#      PROFILE & STATS
#============================================================================================
@bp.route("/profile", methods=["GET"])
@login_required
def get_profile():
    promoter = _current_promoter()

    earnings = db.session.query(func.coalesce(func.sum(Referral.commission), 0)).filter(
        Referral.promoter_id == promoter.id, Referral.is_converted.is_(True)
    ).scalar()
    conversions = promoter.referrals.filter(Referral.is_converted.is_(True)).count()
    total = promoter.referrals.count()

    result = promoter.to_dict(include_user=True)
    result["referrals"] = [r.to_dict() for r in promoter.referrals.order_by(Referral.created_at.desc()).limit(20)]
    result["totalEarnings"] = float(earnings or 0)
    result["conversionRate"] = round(conversions / total * 100, 2) if total else 0
    return jsonify({"promoter": result}), 200


@bp.route("/profile", methods=["PUT"])
@login_required
def update_profile():
    data = request.get_json(silent=True) or {}
    promoter = _current_promoter()

    if data.get("phone") and not validate_phone(data["phone"]):
        raise ValidationError("Invalid phone number")
    for key in ("firstName", "lastName"):
        if key in data and not (data[key] or "").strip():
            raise ValidationError(f"{key} cannot be empty")
    _check_audience_fields(data)

    changes = {}
    try:
        for key, attr in USER_FIELDS.items():
            if key in data:
                setattr(current_user, attr, data[key])
                changes[key] = data[key]
        for key, attr in PROFILE_FIELDS.items():
            if key in data:
                setattr(promoter, attr, data[key])
                changes[key] = data[key]

        AuditLogHelper.record(
            "PROMOTER_PROFILE_UPDATE", "PROMOTER", promoter.id,
            actor_user_id=current_user.id,
            new_values=changes,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return jsonify({"message": "Profile updated successfully", "promoter": promoter.to_dict(include_user=True)}), 200


@bp.route("/stats", methods=["GET"])
@login_required
def stats():
    promoter = _current_promoter()
    now = datetime.now(timezone.utc)
    month_start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)

    breakdown = db.session.query(
        Referral.tier, func.count(Referral.id), func.coalesce(func.sum(Referral.commission), 0)
    ).filter(
        Referral.promoter_id == promoter.id, Referral.is_converted.is_(True)
    ).group_by(Referral.tier).all()

    return jsonify({
        "stats": {
            "status": promoter.status.value,
            "referralCode": promoter.referral_code,
            "totalReferrals": promoter.total_referrals,
            "totalRevenue": float(promoter.total_revenue or Decimal("0")),
            "commissionRate": float(promoter.commission_rate),
            "joinDate": promoter.created_at.isoformat(),
            "approvedDate": promoter.approved_at.isoformat() if promoter.approved_at else None,
            "conversions": promoter.referrals.filter(Referral.is_converted.is_(True)).count(),
            "pendingReferrals": promoter.referrals.filter(Referral.is_converted.is_(False)).count(),
            "thisMonthReferrals": promoter.referrals.filter(Referral.created_at >= month_start).count(),
            "tierBreakdown": [
                {"tier": tier.value, "count": count, "commission": float(commission)}
                for tier, count, commission in breakdown
            ],
        }
    }), 200


@bp.route("/referrals", methods=["GET"])
@login_required
def referrals():
    promoter = _current_promoter()
    page, limit = parse_pagination(default_limit=20, max_limit=100)

    query = promoter.referrals.order_by(Referral.created_at.desc())
    total = query.count()
    items = query.offset((page - 1) * limit).limit(limit).all()

    return jsonify({
        "referrals": [r.to_dict() for r in items],
        "pagination": pagination_meta(page, limit, total),
    }), 200
