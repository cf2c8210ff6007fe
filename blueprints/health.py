import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from extensions import db

bp = Blueprint("health", __name__, url_prefix="/health")

STARTED_AT = time.monotonic()


def _database_ok():
    try:
        db.session.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Health check database failure: {e}")
        return False


def _base_info():
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": current_app.config.get("APP_VERSION"),
        "environment": current_app.config.get("FLASK_ENV"),
        "uptime": round(time.monotonic() - STARTED_AT, 2),
    }


@bp.route("", methods=["GET"])
def health():
    info = _base_info()
    if _database_ok():
        info.update(status="healthy", database="connected")
        return jsonify(info), 200
    info.update(status="unhealthy", database="disconnected", error="Database connection failed")
    return jsonify(info), 503


@bp.route("/detailed", methods=["GET"])
def health_detailed():
    config = current_app.config
    info = _base_info()
    info["status"] = "healthy"
    info["checks"] = {
        "database": "healthy",
        "email": "configured" if config.get("MAIL_SERVER") and config.get("MAIL_USERNAME") else "not_configured",
        "stripe": "configured" if config.get("STRIPE_SECRET_KEY") else "not_configured",
    }
    if not _database_ok():
        info["checks"]["database"] = "unhealthy"
        info["status"] = "degraded"

    return jsonify(info), 200 if info["status"] == "healthy" else 503
