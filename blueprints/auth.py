from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
import logging

from extensions import db
from errors import AuthError, Conflict, ValidationError
from hunt.audit import AuditLogHelper
from models import User, UserRole
from utils import validate_email
from blueprints.auth_helpers import issue_tokens, turnstile_required, user_from_token

logger = logging.getLogger(__name__)
#==================================================================================================================

bp = Blueprint("auth", __name__, url_prefix="/api/auth")

MIN_PASSWORD_LENGTH = 8


#===========================================================================
#      REGISTER
#==============================================================================
@bp.route("/register", methods=["POST"])
@turnstile_required
def register():
    data = request.get_json(silent=True) or {}

    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    first_name = (data.get("firstName") or "").strip()
    last_name = (data.get("lastName") or "").strip()

    if not validate_email(email):
        raise ValidationError("Valid email required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password must be at least 8 characters")
    if not first_name or not last_name:
        raise ValidationError("First name and last name are required")

    if User.query.filter_by(email=email).first():
        raise Conflict("Email already registered")

    try:
        user = User(email=email, first_name=first_name, last_name=last_name, role=UserRole.PARTICIPANT)
        user.set_password(password)
        db.session.add(user)
        db.session.flush()

        AuditLogHelper.record("USER_REGISTER", "USER", user.id, actor_user_id=user.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Registration failed for {email}", exc_info=True)
        raise

    logger.info(f"New user registered: {user.id} ({email})")
    return jsonify({
        "message": "Registration successful",
        "user": user.to_dict(),
        "tokens": issue_tokens(user),
    }), 201


#===========================================================================
#      LOGIN
#==============================================================================
@bp.route("/login", methods=["POST"])
@turnstile_required
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        raise ValidationError("Email and password are required")

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        logger.warning(f"Failed login for {email}")
        raise AuthError("Invalid email or password")
    if not user.is_active_account:
        raise AuthError("Account is disabled")

    try:
        AuditLogHelper.record("USER_LOGIN", "USER", user.id, actor_user_id=user.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return jsonify({
        "message": "Login successful",
        "user": user.to_dict(include_profiles=True),
        "tokens": issue_tokens(user),
    }), 200


#===========================================================================
#      REFRESH / LOGOUT / ME
#==============================================================================
@bp.route("/refresh", methods=["POST"])
def refresh():
    data = request.get_json(silent=True) or {}
    token = data.get("refreshToken")
    if not token:
        raise ValidationError("Refresh token is required")

    user = user_from_token(token, refresh=True)
    if not user:
        raise AuthError("Invalid refresh token")

    return jsonify({"message": "Tokens refreshed", "tokens": issue_tokens(user)}), 200


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    try:
        AuditLogHelper.record("USER_LOGOUT", "USER", current_user.id, actor_user_id=current_user.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify({"message": "Logout successful"}), 200


@bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"user": current_user.to_dict(include_profiles=True)}), 200
