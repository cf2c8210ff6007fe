# hunt/referral_codes.py
import logging
import secrets
import string

from sqlalchemy import func

from models import Promoter, PromoterStatus

logger = logging.getLogger(__name__)

CODE_PREFIX = "REF"
CODE_LENGTH = 6
CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_ATTEMPTS = 50


class ReferralCodeError(RuntimeError):
    pass


def normalize_code(code):
    return (code or "").strip().upper()


def generate_code():
    return CODE_PREFIX + ''.join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def code_exists(code):
    return Promoter.query.filter(
        func.upper(Promoter.referral_code) == normalize_code(code)
    ).first() is not None


def allocate_referral_code():
    """Return a fresh code that no promoter holds yet, e.g. REF4K9Q2Z."""
    for attempt in range(1, MAX_ATTEMPTS + 1):
        code = generate_code()
        if not code_exists(code):
            return code
        logger.info(f"Referral code collision on {code} (attempt {attempt})")
    raise ReferralCodeError(f"Could not allocate a unique referral code after {MAX_ATTEMPTS} attempts")


def find_promoter_by_code(code, approved_only=True):
    code = normalize_code(code)
    if not code:
        return None
    query = Promoter.query.filter(func.upper(Promoter.referral_code) == code)
    if approved_only:
        query = query.filter(Promoter.status == PromoterStatus.APPROVED)
    return query.first()
