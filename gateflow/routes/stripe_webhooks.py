# -*- coding: utf-8 -*-
"""
Inbound payment webhooks.

POST /webhooks/<provider> verifies the signature over the raw body, then hands
the event to the dispatcher. Once the signature is valid the delivery is
always acknowledged with 200; the body tells whether it was processed, so the
processor does not retry events we already handled or chose to skip.
"""
from flask import Blueprint, request, jsonify

from gateflow.errors import InvalidSignature
from gateflow.services.container import get_services
from gateflow.services.metrics import get_metrics_service
from gateflow.services.structured_logging import get_logger

logger = get_logger('gateflow.webhooks.stripe')

stripe_webhooks_bp = Blueprint('stripe_webhooks', __name__)


@stripe_webhooks_bp.route('/webhooks/<provider>', methods=['POST'])
def receive_webhook(provider: str):
    services = get_services()
    verifier = services.verifiers.get(provider)
    if verifier is None:
        return jsonify({'error': 'Not found'}), 404

    if not verifier.configured:
        logger.log_error_event(f"{provider} webhook secret not configured", error_kind='configuration')
        return jsonify({'error': 'Webhook not configured'}), 500

    try:
        event = verifier.verify(request.get_data(), request.headers.get(verifier.header_name))
    except InvalidSignature as e:
        logger.warning(f"Rejected {provider} webhook: {e.message}",
                       error_kind=e.error_kind, provider=provider, **e.context)
        metrics = get_metrics_service()
        if metrics is not None:
            metrics.record_signature_failure(provider)
        return jsonify({'error': e.message}), 400

    result = services.dispatcher.dispatch(event, provider=provider)

    logger.log_webhook_event(
        provider=provider,
        event_id=event['id'],
        event_type=event['type'],
        processed=result.processed,
        message=result.message or result.error or '',
    )

    body = {
        'received': True,
        'event_id': event['id'],
        'event_type': event['type'],
        'processed': result.processed,
    }
    if result.processed:
        body['message'] = result.message
    else:
        body['error'] = result.error or result.message
    return jsonify(body), 200
