"""
Webhooks Blueprint for Mercado Pago notifications.
Handles payment notifications; the sender always gets a 200.
"""

import logging
from flask import Blueprint, request, jsonify

from ferremas.blueprints.metrics import gateway_notifications_total
from ferremas.database import get_session, utcnow
from ferremas.models import NotificationStatus
from ferremas.services.mercadopago_client import get_gateway_client
from ferremas.services.payment_service import handle_gateway_notification

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__, url_prefix='/api/v1/payments')


@webhooks_bp.route('/webhook', methods=['POST'])
def mercadopago_webhook():
    """
    Handle Mercado Pago webhook notifications.

    Accepted shapes:
    - body {"type": "payment", "data": {"id": ...}}
    - query ?type=payment&data.id=... (or topic / data_id / id)
    - body {"action": "payment.updated", "data": {"id": ...}}

    Always answers 200 so Mercado Pago does not keep retrying; failures are
    stored for replay with ``flask replay-notifications``.
    """
    body = request.get_json(silent=True)

    try:
        result = handle_gateway_notification(
            get_session(),
            body,
            request.args,
            request.headers,
            get_gateway_client(),
        )
    except Exception as e:
        logger.exception(f"[WEBHOOK] Error storing notification: {e}")
        get_session().rollback()
        gateway_notifications_total.labels(outcome=NotificationStatus.FAILED).inc()
        return jsonify({
            'success': False,
            'message': 'Error procesando webhook',
            'timestamp': utcnow().isoformat(),
        }), 200

    gateway_notifications_total.labels(outcome=result['status']).inc()
    return jsonify({
        'success': result['status'] != NotificationStatus.FAILED,
        'message': 'Webhook procesado correctamente',
        'received': {
            'type': result.get('event_type'),
            'id': result.get('resource_id'),
            'status': result['status'],
            'timestamp': utcnow().isoformat(),
        },
    }), 200
