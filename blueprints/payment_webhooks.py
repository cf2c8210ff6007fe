from flask import Blueprint, current_app, jsonify, request

from hunt.reconciliation import WebhookEventProcessor

bp = Blueprint('payment_webhooks', __name__)


@bp.route('/webhooks/stripe', methods=['POST'])
def stripe_webhook():
    """
    Stripe webhook endpoint.

    200 {"received": true} for every authenticated event, 400 on a bad
    signature, 500 when processing failed and Stripe should retry.
    """
    payload = request.get_data()
    sig_header = request.headers.get('Stripe-Signature')
    current_app.logger.info(f"Stripe webhook received ({len(payload)} bytes)")

    body, status = WebhookEventProcessor().handle_request(payload, sig_header)
    return jsonify(body), status
