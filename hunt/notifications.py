# hunt/notifications.py
import logging

import gevent
from gevent import monkey
from flask import current_app, render_template
from flask_mail import Message

from extensions import mail

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Best-effort email delivery, called only after a transaction has committed.

    send() never raises. Failures are logged and reported as False so the
    caller can carry on with its response. With NOTIFICATIONS_ASYNC the send
    runs on a gevent greenlet and the call returns straight away.
    """

    TEMPLATES = {
        "participant_welcome": "Welcome to the Red Mugsy Treasure Hunt!",
        "promoter_application": "Your promoter application has been received",
        "promoter_approved": "Your promoter application has been approved",
        "promoter_rejected": "Update on your promoter application",
        "payment_completed": "Payment confirmed - your {tier} registration is active",
        "payment_failed": "Your payment could not be completed",
        "admin_notification": "[Admin] {subject}",
    }

    def __init__(self, app=None, run_async=None):
        self.app = app
        self.run_async = run_async

    def _app(self):
        return self.app or current_app._get_current_object()

    def send(self, template_key, to, **context):
        if template_key not in self.TEMPLATES:
            logger.error(f"Unknown notification template '{template_key}'")
            return False
        if not to:
            logger.warning(f"Notification '{template_key}' skipped: no recipient")
            return False

        app = self._app()
        run_async = self.run_async
        if run_async is None:
            run_async = app.config.get("NOTIFICATIONS_ASYNC", False)

        # Greenlets only make progress under a patched (gevent worker) process
        if run_async and monkey.is_module_patched("socket"):
            gevent.spawn(self._send_in_context, app, template_key, to, context)
            return True
        return self._deliver(app, template_key, to, context)

    def notify_admin(self, subject, message, **context):
        app = self._app()
        return self.send(
            "admin_notification",
            app.config.get("ADMIN_NOTIFICATION_EMAIL"),
            subject=subject,
            message=message,
            **context,
        )

    def _send_in_context(self, app, template_key, to, context):
        with app.app_context():
            self._deliver(app, template_key, to, context)

    def _deliver(self, app, template_key, to, context):
        try:
            subject = self.TEMPLATES[template_key].format(**context)
            msg = Message(
                subject=subject,
                recipients=[to],
                body=render_template(f"emails/{template_key}.txt", **context),
                html=render_template(f"emails/{template_key}.html", **context),
            )
            mail.send(msg)
            logger.info(f"Notification '{template_key}' sent to {to}")
            return True
        except Exception as e:
            logger.error(f"Notification '{template_key}' to {to} failed: {e}", exc_info=True)
            return False


notifier = NotificationDispatcher()
