import os
import logging

import click
from flask import Flask, jsonify

from config import Config
from extensions import init_extensions
from errors import AVAILABLE_ENDPOINTS, register_error_handlers
from hunt.rate_limit import rate_limiter


# --------------------------------------------------------------------------------------------------------
#       Application factory
# --------------------------------------------------------------------------------------------------------
def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    if not app.debug and not app.testing:
        app.config.update(
            SESSION_COOKIE_SECURE=True,
            SESSION_COOKIE_HTTPONLY=True,
        )

    setup_logging(app)

    # --------------------------------------------------------------------------------------------------------------------------
    # Initialize extensions
    # ----------------------------------------------------------------------------------------------------------------------------
    init_extensions(app)
    register_error_handlers(app)
    register_blueprints(app)
    rate_limiter.init_app(app)
    register_commands(app)

    # ----------------------
    # Basic routes
    # ----------------------
    @app.route("/")
    def home():
        return jsonify({
            "message": "Red Mugsy Treasure Hunt API",
            "version": app.config.get("APP_VERSION"),
            "endpoints": AVAILABLE_ENDPOINTS,
        }), 200

    app.logger.info(f"Treasure Hunt API started ({app.config.get('FLASK_ENV')})")
    return app


# ------------------------------------------------------------------------------------------
# LOGGING
# ------------------------------------------------------------------------------------------
def setup_logging(app):
    logs_dir = app.config.get("LOG_DIR", "logs")
    os.makedirs(logs_dir, exist_ok=True)

    file_handler = logging.FileHandler(os.path.join(logs_dir, "app.log"), mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
    ))
    file_handler.setLevel(logging.INFO)

    app.logger.handlers.clear()
    app.logger.addHandler(file_handler)
    app.logger.setLevel(logging.INFO)
    app.logger.propagate = False  # Prevent duplicate logs

    if app.debug:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        app.logger.addHandler(console_handler)

    logging.getLogger("stripe").setLevel(logging.WARNING)


# ------------------------------------------------------------------------------------------------------------------------
# Register blueprints
# -----------------------------------------------------------------------------------------------------------------------
def register_blueprints(app):
    from blueprints.auth import bp as auth_bp
    from blueprints.participants import bp as participants_bp
    from blueprints.promoters import bp as promoters_bp
    from blueprints.admin import admin_bp
    from blueprints.payments import bp as payments_bp
    from blueprints.payment_webhooks import bp as webhooks_bp
    from blueprints.health import bp as health_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(participants_bp)
    app.register_blueprint(promoters_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(health_bp)


# ------------------------------------------------------------------------------------------------------------------------
# CLI
# -----------------------------------------------------------------------------------------------------------------------
def register_commands(app):

    @app.cli.command("seed")
    def seed():
        """Create the default admin account if it does not exist."""
        from make_admin import seed_admin

        user, created = seed_admin()
        if created:
            click.echo(f"Created admin user {user.email}")
        else:
            click.echo(f"Admin user {user.email} already exists")


# ----------------------
# Create app instance
# ----------------------
app = create_app()

# ----------------------
# Local development
# ----------------------
if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug_mode = app.config.get("DEBUG", False)
    app.run(debug=debug_mode, host="0.0.0.0", port=port)

#=======================================================================================================
#------------------------THE END OF APP----------------------------------------------------------------
#==========================================================================================================
