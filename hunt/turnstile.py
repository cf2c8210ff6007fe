# hunt/turnstile.py
import logging

import requests
from flask import current_app

from errors import AppError, ValidationError

logger = logging.getLogger(__name__)

SITEVERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"


class TurnstileVerifier:
    """
    Cloudflare Turnstile token check.

    `bypass` comes from configuration (TURNSTILE_BYPASS); the verifier never
    looks at the environment itself.
    """

    def __init__(self, secret_key=None, bypass=False, timeout=10, session=None):
        self.secret_key = secret_key
        self.bypass = bypass
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config=None):
        config = config or current_app.config
        return cls(
            secret_key=config.get("TURNSTILE_SECRET_KEY"),
            bypass=config.get("TURNSTILE_BYPASS", False),
            timeout=config.get("TURNSTILE_TIMEOUT_SECONDS", 10),
        )

    def verify(self, token, remote_ip=None):
        """Return True or raise an AppError carrying the Turnstile error code."""
        if not token:
            raise ValidationError("Turnstile verification required.", code="MISSING_TURNSTILE_TOKEN")

        if not self.secret_key:
            if self.bypass:
                logger.warning("Turnstile validation bypassed - no secret key configured")
                return True
            logger.error("TURNSTILE_SECRET_KEY not configured")
            raise AppError("Server configuration error.", status_code=500, code="TURNSTILE_NOT_CONFIGURED")

        try:
            response = self.session.post(
                SITEVERIFY_URL,
                data={"secret": self.secret_key, "response": token, "remoteip": remote_ip},
                timeout=self.timeout,
            )
            response.raise_for_status()
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Turnstile validation error: {e}")
            if self.bypass:
                logger.warning("Turnstile validation bypassed after provider error")
                return True
            raise AppError("Bot verification service temporarily unavailable.", status_code=503,
                           code="TURNSTILE_SERVICE_ERROR") from e

        if not result.get("success"):
            error_codes = result.get("error-codes", [])
            logger.warning(f"Turnstile verification failed: {error_codes}")
            raise ValidationError("Bot verification failed. Please try again.",
                                  code="TURNSTILE_VERIFICATION_FAILED", details=error_codes)
        return True
