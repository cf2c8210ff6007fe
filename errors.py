#=======================================================================================================
# Application errors and the JSON error handlers
#=======================================================================================================
import logging
from datetime import datetime, timezone

from flask import jsonify, request
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from extensions import db

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Operational error that maps straight to an HTTP response."""

    status_code = 500

    def __init__(self, message, status_code=None, code=None, details=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.code = code
        self.details = details


class ValidationError(AppError):
    status_code = 400


class AuthError(AppError):
    status_code = 401


class PermissionDenied(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class Conflict(AppError):
    status_code = 409


class ProviderError(AppError):
    """The payment provider could not be reached or rejected the call; safe to retry."""
    status_code = 502


class WebhookSignatureError(AppError):
    status_code = 400


class PaymentRecordMissing(AppError):
    """A checkout-completed event referenced a session with no Payment row."""
    status_code = 500


AVAILABLE_ENDPOINTS = {
    "health": "GET /health",
    "auth": {
        "login": "POST /api/auth/login",
        "register": "POST /api/auth/register",
        "refresh": "POST /api/auth/refresh",
        "logout": "POST /api/auth/logout",
    },
    "participants": {
        "register": "POST /api/participants/register",
        "profile": "GET /api/participants/profile",
    },
    "promoters": {
        "register": "POST /api/promoters/register",
        "profile": "GET /api/promoters/profile",
    },
    "admin": {
        "participants": "GET /api/admin/participants",
        "promoters": "GET /api/admin/promoters",
    },
    "payments": {
        "createSession": "POST /api/payments/create-session",
        "webhook": "POST /webhooks/stripe",
    },
}


def _error_body(message, **extra):
    body = {
        "error": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.path,
    }
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


def register_error_handlers(app):

    @app.errorhandler(AppError)
    def handle_app_error(error):
        if error.status_code >= 500:
            app.logger.error(
                f"Server error on {request.method} {request.path}: {error.message}",
                exc_info=error,
            )
        details = error.details if app.debug else None
        return jsonify(_error_body(error.message, code=error.code, details=details)), error.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        db.session.rollback()
        app.logger.warning(f"Integrity error on {request.path}: {error.orig}")
        return jsonify(_error_body("Resource already exists")), 409

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({
            "error": "Endpoint not found",
            "message": f"The requested endpoint {request.method} {request.path} does not exist.",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "availableEndpoints": AVAILABLE_ENDPOINTS,
        }), 404

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify(_error_body(error.description or error.name)), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        db.session.rollback()
        app.logger.error(
            f"Unhandled error on {request.method} {request.path} "
            f"from {request.remote_addr}: {error}",
            exc_info=error,
        )
        return jsonify(_error_body("Internal server error")), 500
