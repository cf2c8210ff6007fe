#======================================================================================
#
# ADMIN API - dashboard, listings and the approval workflow
#
#=======================================================================================
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from functools import wraps

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import func, or_
import logging

from extensions import db
from errors import NotFound, ValidationError
from hunt.audit import AuditLogHelper
from hunt.notifications import notifier
from hunt.pricing import PricingHelper
from models import (AuditLog, Participant, ParticipantStatus, Payment, PaymentStatus, Promoter,
                    PromoterStatus, PromoterType, Tier, User, UserRole, utcnow)
from utils import generate_temp_password, pagination_meta, parse_pagination
from blueprints.auth_helpers import roles_required

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')

TREND_MONTHS = 6


def admin_required(f):
    """Bearer-authenticated ADMIN callers only (401 without a token, 403 for other roles)."""
    @wraps(f)
    @login_required
    @roles_required(UserRole.ADMIN)
    def decorated_function(*args, **kwargs):
        return f(*args, **kwargs)
    return decorated_function


def _enum_arg(name, enum_cls):
    value = request.args.get(name)
    if not value:
        return None
    try:
        return enum_cls[value.strip().upper()]
    except KeyError:
        raise ValidationError(f"Invalid {name} filter: {value}")


def _month_keys(now, months):
    keys = []
    year, month = now.year, now.month
    for _ in range(months):
        keys.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


#=========================================================================================
#   DASHBOARD
#=========================================================================================
@admin_bp.route("/dashboard", methods=["GET"])
@admin_required
def dashboard():
    now = datetime.now(timezone.utc)
    week_ago = now - timedelta(days=7)

    total_participants = Participant.query.count()
    total_promoters = Promoter.query.count()
    pending_promoters = Promoter.query.filter_by(status=PromoterStatus.PENDING).count()
    total_revenue = db.session.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
        Payment.status == PaymentStatus.COMPLETED
    ).scalar()
    recent_registrations = Participant.query.filter(Participant.created_at >= week_ago).count()

    tier_distribution = {tier.value: count for tier, count in db.session.query(
        Participant.tier, func.count(Participant.id)
    ).group_by(Participant.tier).all()}

    # Bucketed in Python so the same code runs on SQLite and PostgreSQL
    trend = OrderedDict((key, 0) for key in _month_keys(now, TREND_MONTHS))
    first_year, first_month = next(iter(trend))
    since = datetime(first_year, first_month, 1, tzinfo=timezone.utc)
    for (created_at,) in db.session.query(Participant.created_at).filter(Participant.created_at >= since):
        key = (created_at.year, created_at.month)
        if key in trend:
            trend[key] += 1

    top_promoters = Promoter.query.filter_by(status=PromoterStatus.APPROVED).order_by(
        Promoter.total_referrals.desc(), Promoter.total_revenue.desc()
    ).limit(5).all()

    return jsonify({
        "overview": {
            "totalParticipants": total_participants,
            "totalPromoters": total_promoters,
            "pendingPromoters": pending_promoters,
            "totalRevenue": float(total_revenue or 0),
            "recentRegistrations": recent_registrations,
        },
        "tierDistribution": tier_distribution,
        "monthlyTrend": [
            {"month": f"{year:04d}-{month:02d}", "registrations": count}
            for (year, month), count in trend.items()
        ],
        "topPromoters": [
            {
                "id": p.id,
                "name": p.user.full_name if p.user else None,
                "referralCode": p.referral_code,
                "totalReferrals": p.total_referrals,
                "totalRevenue": float(p.total_revenue or 0),
            }
            for p in top_promoters
        ],
    }), 200


#=========================================================================================
#   LISTINGS
#=========================================================================================
@admin_bp.route("/participants", methods=["GET"])
@admin_required
def list_participants():
    page, limit = parse_pagination()
    search = (request.args.get("search") or "").strip()
    tier = _enum_arg("tier", Tier)
    status = _enum_arg("status", ParticipantStatus)

    query = Participant.query.join(User, Participant.user_id == User.id)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(User.email.ilike(like), User.first_name.ilike(like), User.last_name.ilike(like)))
    if tier:
        query = query.filter(Participant.tier == tier)
    if status:
        query = query.filter(Participant.status == status)

    total = query.count()
    participants = query.order_by(Participant.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    results = []
    for participant in participants:
        item = participant.to_dict()
        item["user"] = participant.user.to_dict()
        item["completedPayments"] = [
            p.to_dict() for p in participant.payments if p.status == PaymentStatus.COMPLETED
        ]
        results.append(item)

    return jsonify({"participants": results, "pagination": pagination_meta(page, limit, total)}), 200


@admin_bp.route("/promoters", methods=["GET"])
@admin_required
def list_promoters():
    page, limit = parse_pagination()
    search = (request.args.get("search") or "").strip()
    status = _enum_arg("status", PromoterStatus)
    promoter_type = _enum_arg("type", PromoterType)

    query = Promoter.query.join(User, Promoter.user_id == User.id)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            User.email.ilike(like), User.first_name.ilike(like), User.last_name.ilike(like),
            Promoter.company_name.ilike(like), Promoter.referral_code.ilike(like),
        ))
    if status:
        query = query.filter(Promoter.status == status)
    if promoter_type:
        query = query.filter(Promoter.type == promoter_type)

    total = query.count()
    promoters = query.order_by(Promoter.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    return jsonify({
        "promoters": [p.to_dict(include_user=True) for p in promoters],
        "pagination": pagination_meta(page, limit, total),
    }), 200


@admin_bp.route("/payments", methods=["GET"])
@admin_required
def list_payments():
    page, limit = parse_pagination()
    status = _enum_arg("status", PaymentStatus)

    query = Payment.query
    if status:
        query = query.filter(Payment.status == status)

    total = query.count()
    payments = query.order_by(Payment.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    results = []
    for payment in payments:
        item = payment.to_dict()
        item["user"] = payment.user.to_dict() if payment.user else None
        results.append(item)

    return jsonify({"payments": results, "pagination": pagination_meta(page, limit, total)}), 200


@admin_bp.route("/audit-logs", methods=["GET"])
@admin_required
def list_audit_logs():
    page, limit = parse_pagination(default_limit=50)
    action = (request.args.get("action") or "").strip()
    entity_type = (request.args.get("entityType") or "").strip()

    query = AuditLog.query
    if action:
        query = query.filter(AuditLog.action == action.upper())
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type.upper())

    total = query.count()
    logs = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset((page - 1) * limit).limit(limit).all()

    return jsonify({"logs": [log.to_dict() for log in logs], "pagination": pagination_meta(page, limit, total)}), 200


#=========================================================================================
#   APPROVAL WORKFLOW
#=========================================================================================
@admin_bp.route("/promoters/approve", methods=["PUT"])
@admin_required
def approve_promoter():
    data = request.get_json(silent=True) or {}

    promoter_id = data.get("promoterId")
    approved = data.get("approved")
    reason = (data.get("rejectionReason") or "").strip() or None
    if not isinstance(promoter_id, int) or isinstance(promoter_id, bool):
        raise ValidationError("promoterId must be an integer")
    if not isinstance(approved, bool):
        raise ValidationError("approved must be true or false")

    try:
        rate = Decimal(str(data.get("commissionRate", PricingHelper.DEFAULT_COMMISSION_RATE)))
    except InvalidOperation:
        raise ValidationError("commissionRate must be a number")
    if not Decimal("0") <= rate <= Decimal("1"):
        raise ValidationError("commissionRate must be between 0 and 1")

    promoter = db.session.get(Promoter, promoter_id)
    if not promoter:
        raise NotFound("Promoter not found")
    if promoter.status != PromoterStatus.PENDING:
        raise ValidationError("Only pending applications can be approved/rejected")

    temp_password = None
    try:
        promoter.approved_by = current_user.id
        if approved:
            promoter.status = PromoterStatus.APPROVED
            promoter.approved_at = utcnow()
            promoter.commission_rate = rate
            promoter.rejection_reason = None
            temp_password = generate_temp_password()
            promoter.user.set_password(temp_password)
        else:
            promoter.status = PromoterStatus.REJECTED
            promoter.rejection_reason = reason

        AuditLogHelper.record(
            "PROMOTER_APPROVED" if approved else "PROMOTER_REJECTED", "PROMOTER", promoter.id,
            actor_user_id=current_user.id,
            old_values={"status": PromoterStatus.PENDING},
            new_values={
                "status": promoter.status,
                "commissionRate": promoter.commission_rate if approved else None,
                "rejectionReason": reason,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Approval update failed for promoter {promoter_id}", exc_info=True)
        raise

    logger.info(f"Promoter {promoter.id} {promoter.status.value.lower()} by admin {current_user.id}")

    user = promoter.user
    if approved:
        notifier.send(
            "promoter_approved", user.email,
            first_name=user.first_name,
            referral_code=promoter.referral_code,
            temp_password=temp_password,
            commission_rate=float(promoter.commission_rate) * 100,
            login_url=f"{current_app.config.get('FRONTEND_URL')}/login",
        )
    else:
        notifier.send("promoter_rejected", user.email, first_name=user.first_name, reason=reason)

    return jsonify({
        "message": f"Promoter {'approved' if approved else 'rejected'} successfully",
        "promoter": promoter.to_dict(include_user=True),
    }), 200


@admin_bp.route("/participants/status", methods=["PUT"])
@admin_required
def update_participant_status():
    data = request.get_json(silent=True) or {}

    participant_id = data.get("participantId")
    if not isinstance(participant_id, int) or isinstance(participant_id, bool):
        raise ValidationError("participantId must be an integer")
    try:
        new_status = ParticipantStatus[(data.get("status") or "").strip().upper()]
    except KeyError:
        raise ValidationError("Invalid participant status")
    reason = data.get("reason")

    participant = db.session.get(Participant, participant_id)
    if not participant:
        raise NotFound("Participant not found")

    old_status = participant.status
    try:
        participant.status = new_status
        AuditLogHelper.record(
            "PARTICIPANT_STATUS_UPDATE", "PARTICIPANT", participant.id,
            actor_user_id=current_user.id,
            old_values={"status": old_status},
            new_values={"status": new_status, "reason": reason},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Participant {participant.id} status {old_status.value} -> {new_status.value}")
    return jsonify({"message": "Participant status updated successfully", "participant": participant.to_dict()}), 200
