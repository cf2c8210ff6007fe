import re
import secrets
import string

from flask import request

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
PHONE_PATTERN = r'^\+?\d{7,15}$'

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


def validate_email(email):
    return bool(email) and re.match(EMAIL_PATTERN, email) is not None


def validate_phone(phone):
    # Separators are allowed in input, only digits are checked
    cleaned = re.sub(r'[\s\-()]', '', phone or '')
    return re.match(PHONE_PATTERN, cleaned) is not None


def validate_url(url):
    return bool(url) and re.match(r'^https?://[^\s]+$', url) is not None


def client_ip():
    """Best guess at the caller IP, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get('X-Forwarded-For', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.remote_addr


def client_user_agent():
    agent = request.headers.get('User-Agent')
    return agent[:255] if agent else None


def parse_pagination(default_limit=DEFAULT_PAGE_LIMIT, max_limit=MAX_PAGE_LIMIT):
    """Read ?page= and ?limit= from the query string, clamped to sane bounds."""
    try:
        page = int(request.args.get('page', 1))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(request.args.get('limit', default_limit))
    except (TypeError, ValueError):
        limit = default_limit
    return max(page, 1), min(max(limit, 1), max_limit)


def pagination_meta(page, limit, total):
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit if limit else 0,
    }


def generate_temp_password(length=12):
    chars = string.ascii_letters + string.digits
    return ''.join(secrets.choice(chars) for _ in range(length))
