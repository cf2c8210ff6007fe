# hunt/rate_limit.py
import logging

from flask import jsonify, request
from redis import Redis, RedisError

from utils import client_ip

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-window per-IP request counter kept in Redis."""

    def __init__(self, redis_client=None, window_seconds=15 * 60, max_requests=100, prefix="/api/"):
        self.redis = redis_client
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.prefix = prefix

    def init_app(self, app):
        if not app.config.get("RATELIMIT_ENABLED", True):
            app.logger.info("Rate limiting disabled")
            return

        self.window_seconds = app.config.get("RATELIMIT_WINDOW_SECONDS", self.window_seconds)
        self.max_requests = app.config.get("RATELIMIT_MAX_REQUESTS", self.max_requests)
        if self.redis is None:
            self.redis = Redis.from_url(app.config["REDIS_URL"], decode_responses=True,
                                        socket_timeout=1, socket_connect_timeout=1)

        app.before_request(self.check)

    def check(self):
        if not request.path.startswith(self.prefix):
            return None

        key = f"rate_limit:{client_ip()}"
        try:
            current = self.redis.incr(key, 1)
            if current == 1:
                self.redis.expire(key, self.window_seconds)
        except RedisError as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            return None

        if int(current) > self.max_requests:
            return jsonify({
                "error": "Too many requests from this IP, please try again later.",
                "retry_after": self.window_seconds,
            }), 429
        return None


rate_limiter = RateLimiter()
