#======================================================================================================
#
#   PAYMENT API BLUEPRINT FOR STRIPE CHECKOUT
#
#===========================================================================================================
from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
import logging

from hunt.checkout import CheckoutSessionHelper
from models import Payment
from utils import pagination_meta, parse_pagination
from blueprints.payments_helpers import validate_checkout_input

bp = Blueprint("payments", __name__, url_prefix="/api/payments")
logger = logging.getLogger(__name__)


#=============================================================================================
#      CHECKOUT SESSION
#============================================================================================
@bp.route("/create-session", methods=["POST"])
@login_required
def create_session():
    tier, participant_id, success_url, cancel_url = validate_checkout_input(request.get_json(silent=True) or {})
    logger.info(f"Checkout requested by user {current_user.id}: participant={participant_id} tier={tier.value}")

    result = CheckoutSessionHelper.create_session(
        current_user, participant_id, tier, success_url, cancel_url
    )
    return jsonify(result), 200


@bp.route("/session/<session_id>/status", methods=["GET"])
@login_required
def session_status(session_id):
    return jsonify(CheckoutSessionHelper.session_status(current_user, session_id)), 200


#=============================================================================================
#      HISTORY
#============================================================================================
@bp.route("/history", methods=["GET"])
@login_required
def history():
    page, limit = parse_pagination(default_limit=10, max_limit=50)

    query = Payment.query.filter_by(user_id=current_user.id).order_by(Payment.created_at.desc(), Payment.id.desc())
    total = query.count()
    payments = query.offset((page - 1) * limit).limit(limit).all()

    results = []
    for payment in payments:
        item = payment.to_dict()
        item["participant"] = {
            "tier": payment.participant.tier.value,
            "status": payment.participant.status.value,
        } if payment.participant else None
        results.append(item)

    return jsonify({"payments": results, "pagination": pagination_meta(page, limit, total)}), 200
