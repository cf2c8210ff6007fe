#====================================================================================
#   Bearer tokens, role checks and bot verification for the JSON API
#====================================================================================
from functools import wraps

from flask import current_app, jsonify, request
from flask_login import current_user
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from errors import PermissionDenied
from extensions import db, login_manager
from hunt.turnstile import TurnstileVerifier
from models import User
from utils import client_ip

ACCESS_SALT = "treasure-hunt-access"
REFRESH_SALT = "treasure-hunt-refresh"


def _serializer(salt):
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=salt)


def issue_tokens(user):
    payload = {"uid": user.id, "role": user.role.value}
    return {
        "accessToken": _serializer(ACCESS_SALT).dumps(payload),
        "refreshToken": _serializer(REFRESH_SALT).dumps({"uid": user.id}),
        "expiresIn": current_app.config["ACCESS_TOKEN_TTL_SECONDS"],
    }


def user_from_token(token, refresh=False):
    """Return the active User a token belongs to, or None if it is bad or expired."""
    if refresh:
        salt, max_age = REFRESH_SALT, current_app.config["REFRESH_TOKEN_TTL_SECONDS"]
    else:
        salt, max_age = ACCESS_SALT, current_app.config["ACCESS_TOKEN_TTL_SECONDS"]
    try:
        data = _serializer(salt).loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info("Rejected expired token")
        return None
    except BadSignature:
        return None

    user = db.session.get(User, data.get("uid"))
    if user is None or not user.is_active_account:
        return None
    return user


@login_manager.request_loader
def load_user_from_request(req):
    header = req.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return user_from_token(header[len("Bearer "):].strip())


@login_manager.unauthorized_handler
def unauthorized():
    if request.headers.get("Authorization", "").startswith("Bearer "):
        return jsonify({"error": "Invalid token."}), 401
    return jsonify({"error": "Access denied. No token provided."}), 401


def roles_required(*roles):
    """Use after @login_required; 403 unless the caller has one of `roles`."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return login_manager.unauthorized()
            if current_user.role not in roles:
                raise PermissionDenied("Insufficient permissions.")
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def turnstile_required(f):
    """Reject the request unless its JSON body carries a valid turnstileToken."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        data = request.get_json(silent=True) or {}
        TurnstileVerifier.from_config().verify(data.get("turnstileToken"), client_ip())
        return f(*args, **kwargs)
    return decorated_function
