"""Orders blueprint: creation, listing and status transitions."""
from flask import Blueprint, request
import logging

from ferremas.blueprints.metrics import orders_created_total
from ferremas.database import get_session
from ferremas.decorators.permissions import require_role, require_staff
from ferremas.exceptions import ValidationError
from ferremas.middleware import require_auth, current_actor
from ferremas.models import UserRole
from ferremas.services import order_service
from ferremas.utils.responses import success_response, get_json_body, get_int_arg

logger = logging.getLogger(__name__)

orders_bp = Blueprint('orders', __name__, url_prefix='/api/v1/orders')

STATUS_ROLES = (
    UserRole.VENDEDOR.value,
    UserRole.BODEGUERO.value,
    UserRole.ADMINISTRADOR.value,
)


def _filters_from_args():
    return {
        'status': request.args.get('status'),
        'branch_id': get_int_arg('branch_id'),
        'customer_id': get_int_arg('customer_id'),
        'date_from': request.args.get('date_from'),
        'date_to': request.args.get('date_to'),
    }


@orders_bp.route('', methods=['POST'])
@require_auth
def create_order():
    """
    Create an order.

    Body: branch_id, items [{product_id, quantity}], delivery_type,
    delivery_address, notes, customer_id (staff only). Prices come from
    the catalog; any totals in the body are ignored.
    """
    order = order_service.create_order(get_session(), get_json_body(), current_actor())
    orders_created_total.inc()
    return success_response(order.to_dict(), 'Pedido creado exitosamente', 201)


@orders_bp.route('', methods=['GET'])
@require_auth
def list_orders():
    result = order_service.list_orders(
        get_session(),
        filters=_filters_from_args(),
        limit=get_int_arg('limit'),
        offset=get_int_arg('offset', 0),
        actor=current_actor(),
    )
    return success_response({
        'orders': [o.to_dict(include_items=False) for o in result['orders']],
        'total': result['total'],
        'limit': result['limit'],
        'offset': result['offset'],
    })


@orders_bp.route('/stats', methods=['GET'])
@require_staff
def order_stats():
    filters = _filters_from_args()
    filters.pop('customer_id')
    return success_response(order_service.order_stats(get_session(), filters))


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_auth
def get_order(order_id):
    order = order_service.get_order(get_session(), order_id, current_actor())
    return success_response(order.to_dict())


@orders_bp.route('/<int:order_id>/status', methods=['PUT'])
@require_role(*STATUS_ROLES)
def update_status(order_id):
    data = get_json_body()
    new_status = data.get('status') or data.get('estado')
    if not new_status:
        raise ValidationError('El estado es requerido', [{'field': 'status', 'message': 'Campo requerido'}])

    order = order_service.update_order_status(
        get_session(),
        order_id,
        new_status,
        notes=data.get('notes'),
        actor=current_actor(),
    )
    return success_response(order.to_dict(), f'Estado del pedido actualizado a {order.status.value}')
