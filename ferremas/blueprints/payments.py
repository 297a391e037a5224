"""Payments blueprint: checkout, verification and back-office queries."""
from flask import Blueprint, request
import logging

from ferremas.blueprints.metrics import checkouts_total
from ferremas.database import get_session
from ferremas.decorators.permissions import require_role
from ferremas.exceptions import FerremasError, ValidationError
from ferremas.middleware import require_auth, current_actor
from ferremas.models import UserRole
from ferremas.services import payment_service
from ferremas.services.mercadopago_client import get_gateway_client
from ferremas.utils.responses import success_response, get_json_body, get_int_arg

logger = logging.getLogger(__name__)

payments_bp = Blueprint('payments', __name__, url_prefix='/api/v1/payments')

FINANCE_ROLES = (UserRole.CONTADOR.value, UserRole.ADMINISTRADOR.value)


def _payment_detail(payment):
    data = payment.to_dict()
    data['order_number'] = payment.order.order_number if payment.order else None
    return data


@payments_bp.route('/methods', methods=['GET'])
def payment_methods():
    methods = payment_service.PAYMENT_METHODS
    return success_response({'payment_methods': methods, 'total': len(methods)})


@payments_bp.route('/checkout', methods=['POST'])
@require_auth
def checkout():
    """
    Start a Mercado Pago checkout for an order.

    Returns 201 with a new pending payment, or 200 when an existing
    pending checkout payment was reused.
    """
    data = get_json_body()
    order_id = data.get('order_id') or data.get('pedido_id')
    try:
        order_id = int(order_id)
    except (TypeError, ValueError):
        raise ValidationError('ID del pedido es requerido', [{'field': 'order_id', 'message': 'Campo requerido'}])

    try:
        result = payment_service.initiate_gateway_payment(
            get_session(), order_id, get_gateway_client(), current_actor()
        )
    except FerremasError as e:
        checkouts_total.labels(result=str(e.status_code)).inc()
        raise

    checkouts_total.labels(result='reused' if result['reused'] else 'created').inc()
    if result['reused']:
        return success_response(result, 'Pago pendiente existente reutilizado', 200)
    return success_response(result, 'Pago MercadoPago creado exitosamente', 201)


@payments_bp.route('/verify/<int:payment_id>', methods=['GET'])
def verify_payment(payment_id):
    return success_response(payment_service.verify_payment(get_session(), payment_id))


@payments_bp.route('/order/<int:order_id>', methods=['GET'])
@require_auth
def payments_by_order(order_id):
    payments = payment_service.get_payments_by_order(get_session(), order_id, current_actor())
    return success_response({
        'order_id': order_id,
        'payments': [p.to_dict() for p in payments],
        'total': len(payments),
    })


@payments_bp.route('', methods=['GET'])
@require_role(*FINANCE_ROLES)
def list_payments():
    result = payment_service.list_payments(
        get_session(),
        filters={
            'order_id': get_int_arg('order_id'),
            'status': request.args.get('status'),
            'payment_method': request.args.get('payment_method'),
            'date_from': request.args.get('date_from'),
            'date_to': request.args.get('date_to'),
        },
        limit=get_int_arg('limit'),
        offset=get_int_arg('offset', 0),
    )
    return success_response({
        'payments': [_payment_detail(p) for p in result['payments']],
        'total': result['total'],
        'limit': result['limit'],
        'offset': result['offset'],
    })


@payments_bp.route('/<int:payment_id>', methods=['GET'])
@require_role(*FINANCE_ROLES)
def get_payment(payment_id):
    payment = payment_service.get_payment(get_session(), payment_id)
    return success_response(_payment_detail(payment))


@payments_bp.route('/<int:payment_id>/sync', methods=['POST'])
@require_role(*FINANCE_ROLES)
def sync_payment(payment_id):
    """Pull the payment's current state from Mercado Pago."""
    result = payment_service.sync_payment_from_gateway(get_session(), payment_id, get_gateway_client())
    return success_response({
        'payment': _payment_detail(result['payment']),
        'changed': result['changed'],
        'gateway_payment_id': result['gateway_payment_id'],
    }, 'Pago sincronizado con Mercado Pago')
