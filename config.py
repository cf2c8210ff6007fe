# ==========================================================================================================
# -------------- Configuration file for the Treasure Hunt Flask application --------------------------------
# ==========================================================================================================
import os
from dotenv import load_dotenv


if os.environ.get("FLASK_ENV") != "production":
    load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def _as_bool(value, default="False"):
    return str(os.getenv(value, default)).lower() in ("true", "1", "t", "yes")


def _database_uri():
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{os.path.join(basedir, 'instance', 'treasure_hunt.db')}"

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+pg8000://", 1)
    elif database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+pg8000://", 1)
    return database_url


class Config:

    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    DEBUG = _as_bool("DEBUG")
    TESTING = False

    SECRET_KEY = os.getenv("SECRET_KEY")
    if not SECRET_KEY and FLASK_ENV == "production":
        raise ValueError("SECRET_KEY must be set in production")
    SECRET_KEY = SECRET_KEY or "dev_key_change_me"

    SQLALCHEMY_DATABASE_URI = _database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = (
        {
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
            "pool_recycle": 300,
        }
        if not SQLALCHEMY_DATABASE_URI.startswith("sqlite")
        else {"pool_pre_ping": True}
    )

    # Bearer tokens
    ACCESS_TOKEN_TTL_SECONDS = int(os.getenv("ACCESS_TOKEN_TTL_SECONDS", str(24 * 3600)))
    REFRESH_TOKEN_TTL_SECONDS = int(os.getenv("REFRESH_TOKEN_TTL_SECONDS", str(7 * 24 * 3600)))

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_WEBHOOK_TOLERANCE = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", "300"))
    STRIPE_TIMEOUT_SECONDS = int(os.getenv("STRIPE_TIMEOUT_SECONDS", "10"))
    STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "usd")
    MAX_WEBHOOK_ATTEMPTS = int(os.getenv("MAX_WEBHOOK_ATTEMPTS", "5"))

    # Cloudflare Turnstile
    TURNSTILE_SECRET_KEY = os.getenv("TURNSTILE_SECRET_KEY")
    TURNSTILE_BYPASS = _as_bool("TURNSTILE_BYPASS")
    TURNSTILE_TIMEOUT_SECONDS = int(os.getenv("TURNSTILE_TIMEOUT_SECONDS", "10"))

    # Mail
    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _as_bool("MAIL_USE_TLS", "True")
    MAIL_USE_SSL = _as_bool("MAIL_USE_SSL")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = (
        os.getenv("MAIL_FROM_NAME", "Red Mugsy Treasure Hunt"),
        os.getenv("MAIL_FROM", "no-reply@redmugsy.com"),
    )
    MAIL_SUPPRESS_SEND = _as_bool("MAIL_SUPPRESS_SEND")
    NOTIFICATIONS_ASYNC = _as_bool("NOTIFICATIONS_ASYNC", "True")
    ADMIN_NOTIFICATION_EMAIL = os.getenv("ADMIN_NOTIFICATION_EMAIL", "admin@redmugsy.com")

    # Seed admin
    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@redmugsy.com")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123456")

    # Rate limiting
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    RATELIMIT_ENABLED = _as_bool("RATELIMIT_ENABLED", "True")
    RATELIMIT_WINDOW_SECONDS = int(os.getenv("RATELIMIT_WINDOW_SECONDS", str(15 * 60)))
    RATELIMIT_MAX_REQUESTS = int(os.getenv("RATELIMIT_MAX_REQUESTS", "100"))

    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
    APP_VERSION = "1.0.0"
    LOG_DIR = os.getenv("LOG_DIR", "logs")


class TestingConfig(Config):

    TESTING = True
    DEBUG = False
    FLASK_ENV = "testing"
    SECRET_KEY = "test-secret-key"

    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}

    STRIPE_SECRET_KEY = "sk_test_fake_key_for_testing"
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake_secret"
    MAX_WEBHOOK_ATTEMPTS = 3

    TURNSTILE_SECRET_KEY = None
    TURNSTILE_BYPASS = True

    MAIL_SUPPRESS_SEND = True
    NOTIFICATIONS_ASYNC = False

    RATELIMIT_ENABLED = False
