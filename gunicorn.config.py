import os

# gevent workers: the NotificationDispatcher spawns greenlets for email when NOTIFICATIONS_ASYNC is on
worker_class = "gevent"
workers = int(os.getenv("WEB_CONCURRENCY", "4"))
worker_connections = 1000
# Stripe expects a webhook acknowledgment well within this window
timeout = 30
graceful_timeout = 30
bind = "0.0.0.0:{}".format(os.getenv("PORT", "10000"))

loglevel = "info"
accesslog = "-"
errorlog = "-"
