# hunt/audit.py
from decimal import Decimal
import enum

from flask import has_request_context

from extensions import db
from models import AuditLog
from utils import client_ip, client_user_agent


def _jsonable(values):
    if values is None:
        return None
    cleaned = {}
    for key, value in values.items():
        if isinstance(value, enum.Enum):
            value = value.value
        elif isinstance(value, Decimal):
            value = float(value)
        elif hasattr(value, "isoformat"):
            value = value.isoformat()
        cleaned[key] = value
    return cleaned


class AuditLogHelper:
    """Adds audit rows to the current session; the caller owns the commit."""

    @staticmethod
    def record(action, entity_type, entity_id, actor_user_id=None,
               old_values=None, new_values=None, ip_address=None, user_agent=None):
        if has_request_context():
            ip_address = ip_address or client_ip()
            user_agent = user_agent or client_user_agent()

        entry = AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            old_values=_jsonable(old_values),
            new_values=_jsonable(new_values),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.session.add(entry)
        return entry
