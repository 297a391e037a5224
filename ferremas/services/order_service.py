"""
Order lifecycle service.
Handles order creation (server-side pricing), listing and status transitions.
"""
import logging
import secrets
from datetime import datetime, date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ferremas.database import utcnow
from ferremas.exceptions import (
    FerremasError, ValidationError, NotFoundError, ConflictError, InvalidStateError
)
from ferremas.models import (
    Branch, Order, OrderLineItem, OrderStatus, DeliveryType, Product, User, UserRole
)
from ferremas.repositories import OrderRepository

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')

DEFAULTS = {
    'ORDER_TAX_RATE': '0.19',
    'ORDER_DISCOUNT_RATE': '0.05',
    'ORDER_DISCOUNT_MIN_UNITS': 4,
    'ORDER_NUMBER_MAX_ATTEMPTS': 3,
    'ORDER_STATUS_POLICY': 'strict',
    'ORDERS_DEFAULT_PAGE_SIZE': 20,
    'ORDERS_MAX_PAGE_SIZE': 100,
    'DEFAULT_CURRENCY': 'CLP',
}

# strict policy: the only forward step allowed from each state
STRICT_NEXT = {
    OrderStatus.PENDING: OrderStatus.APPROVED,
    OrderStatus.APPROVED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.DELIVERED,
}

SELLER_ROLES = (UserRole.VENDEDOR.value, UserRole.ADMINISTRADOR.value)


def _setting(key: str):
    if has_app_context():
        return current_app.config.get(key, DEFAULTS[key])
    return DEFAULTS[key]


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _is_cliente(actor: Optional[Dict[str, Any]]) -> bool:
    return bool(actor) and actor.get('role') == UserRole.CLIENTE.value


# ---------------------------------------------------------------------------
# Pricing and numbering
# ---------------------------------------------------------------------------

def calculate_totals(
    lines: Iterable[Dict[str, Any]],
    tax_rate=None,
    discount_rate=None,
    discount_min_units: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Compute order totals from priced lines.

    Each line is a dict with ``unit_price`` and ``quantity``. Discount applies
    when the total quantity exceeds ``discount_min_units``; tax is charged on
    the discounted subtotal.

    Returns:
        Dict with subtotal, discount, tax, total (Decimal) and total_quantity.
    """
    tax_rate = Decimal(str(tax_rate if tax_rate is not None else _setting('ORDER_TAX_RATE')))
    discount_rate = Decimal(str(
        discount_rate if discount_rate is not None else _setting('ORDER_DISCOUNT_RATE')
    ))
    if discount_min_units is None:
        discount_min_units = int(_setting('ORDER_DISCOUNT_MIN_UNITS'))

    subtotal = Decimal('0.00')
    total_quantity = 0
    for line in lines:
        quantity = int(line['quantity'])
        subtotal += _money(Decimal(str(line['unit_price'])) * quantity)
        total_quantity += quantity

    subtotal = _money(subtotal)
    discount = _money(subtotal * discount_rate) if total_quantity > discount_min_units else Decimal('0.00')
    tax = _money((subtotal - discount) * tax_rate)
    total = _money(subtotal - discount + tax)

    return {
        'subtotal': subtotal,
        'discount': discount,
        'tax': tax,
        'total': total,
        'total_quantity': total_quantity,
    }


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Order number: ORD-<UTC timestamp with microseconds>-<4 hex>."""
    now = now or utcnow()
    return f"ORD-{now.strftime('%Y%m%d%H%M%S%f')}-{secrets.token_hex(2).upper()}"


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def _parse_positive_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


def _validate_order_data(session: Session, data: Dict[str, Any], actor) -> Dict[str, Any]:
    """Resolve references and collect every field error before failing."""
    errors: List[Dict[str, str]] = []
    data = data or {}

    if _is_cliente(actor):
        customer_id = actor['id']
    else:
        customer_id = _parse_positive_int(data.get('customer_id') or (actor or {}).get('id'))

    customer = session.get(User, customer_id) if customer_id else None
    if not customer or not customer.active:
        errors.append({'field': 'customer_id', 'message': 'Cliente no encontrado o inactivo'})

    branch_id = _parse_positive_int(data.get('branch_id'))
    branch = session.get(Branch, branch_id) if branch_id else None
    if not branch or not branch.active:
        errors.append({'field': 'branch_id', 'message': 'Sucursal no encontrada'})

    delivery_type = data.get('delivery_type') or DeliveryType.PICKUP.value
    try:
        delivery_type = DeliveryType(delivery_type)
    except ValueError:
        errors.append({'field': 'delivery_type', 'message': 'Tipo de entrega inválido (pickup, home_delivery)'})
        delivery_type = None

    delivery_address = (data.get('delivery_address') or '').strip() or None
    if delivery_type == DeliveryType.HOME_DELIVERY and not delivery_address:
        errors.append({'field': 'delivery_address', 'message': 'La dirección es requerida para despacho a domicilio'})

    items = data.get('items')
    lines: List[Dict[str, Any]] = []
    if not isinstance(items, list) or not items:
        errors.append({'field': 'items', 'message': 'El pedido debe contener al menos un producto'})
        items = []

    product_ids = []
    for item in items:
        if isinstance(item, dict) and _parse_positive_int(item.get('product_id')):
            product_ids.append(_parse_positive_int(item['product_id']))
    products = {}
    if product_ids:
        products = {
            p.id: p for p in session.query(Product).filter(Product.id.in_(set(product_ids))).all()
        }

    for index, item in enumerate(items):
        field = f'items[{index}]'
        if not isinstance(item, dict):
            errors.append({'field': field, 'message': 'Producto inválido'})
            continue
        quantity = _parse_positive_int(item.get('quantity'))
        if quantity is None:
            errors.append({'field': f'{field}.quantity', 'message': 'La cantidad debe ser un entero mayor a 0'})
        product = products.get(_parse_positive_int(item.get('product_id')))
        if not product or not product.active:
            errors.append({'field': f'{field}.product_id', 'message': f"Producto {item.get('product_id')} no encontrado o inactivo"})
        if quantity is not None and product is not None and product.active:
            lines.append({'product': product, 'quantity': quantity, 'unit_price': product.price})

    if errors:
        raise ValidationError('Datos del pedido inválidos', errors)

    return {
        'customer_id': customer.id,
        'branch_id': branch.id,
        'delivery_type': delivery_type,
        'delivery_address': delivery_address if delivery_type == DeliveryType.HOME_DELIVERY else None,
        'notes': data.get('notes'),
        'lines': lines,
    }


def _build_order(order_number: str, validated: Dict[str, Any], totals: Dict[str, Any], seller_id=None) -> Order:
    order = Order(
        order_number=order_number,
        customer_id=validated['customer_id'],
        seller_id=seller_id,
        branch_id=validated['branch_id'],
        status=OrderStatus.PENDING,
        delivery_type=validated['delivery_type'],
        delivery_address=validated['delivery_address'],
        subtotal=totals['subtotal'],
        discount=totals['discount'],
        tax=totals['tax'],
        total=totals['total'],
        currency=_setting('DEFAULT_CURRENCY'),
        notes=validated['notes'],
    )
    for line in validated['lines']:
        unit_price = _money(line['unit_price'])
        order.items.append(OrderLineItem(
            product_id=line['product'].id,
            product=line['product'],
            quantity=line['quantity'],
            unit_price=unit_price,
            line_subtotal=_money(unit_price * line['quantity']),
        ))
    return order


def _is_order_number_collision(error: IntegrityError) -> bool:
    return 'order_number' in str(error.orig)


def create_order(session: Session, data: Dict[str, Any], actor: Optional[Dict[str, Any]] = None) -> Order:
    """
    Create an order with its line items in a single transaction.

    Prices always come from the catalog. The order number is regenerated
    on a unique-key collision up to ORDER_NUMBER_MAX_ATTEMPTS times.

    Raises:
        ValidationError: one or more fields are invalid
        ConflictError: no free order number could be allocated
    """
    validated = _validate_order_data(session, data, actor)
    totals = calculate_totals(validated['lines'])

    seller_id = None
    if actor and actor.get('role') in SELLER_ROLES:
        seller_id = actor['id']

    max_attempts = int(_setting('ORDER_NUMBER_MAX_ATTEMPTS'))
    repo = OrderRepository(session)

    for attempt in range(1, max_attempts + 1):
        order = _build_order(generate_order_number(), validated, totals, seller_id)
        try:
            repo.add(order)
            session.commit()
        except IntegrityError as e:
            session.rollback()
            if not _is_order_number_collision(e):
                logger.error(f"[ORDERS] Integrity error creating order: {e.orig}")
                raise ConflictError('No se pudo registrar el pedido')
            logger.warning(
                f"[ORDERS] Order number collision on {order.order_number} "
                f"(attempt {attempt}/{max_attempts})"
            )
            continue
        except Exception:
            session.rollback()
            raise

        logger.info(
            f"[ORDERS] Order {order.order_number} created: customer={order.customer_id} "
            f"items={len(validated['lines'])} total={order.total}"
        )
        return order

    raise ConflictError('No se pudo generar un número de pedido único, intente nuevamente')


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_order(session: Session, order_id: int, actor: Optional[Dict[str, Any]] = None) -> Order:
    """Fetch an order. Customers only see their own orders."""
    order = OrderRepository(session).get(order_id)
    if not order or (_is_cliente(actor) and order.customer_id != actor['id']):
        raise NotFoundError('Pedido no encontrado')
    return order


def parse_date_filter(value, field: str, end_of_day: bool = False) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        value = value.isoformat()
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError('Filtro de fecha inválido', [{'field': field, 'message': 'Formato esperado YYYY-MM-DD'}])
    if end_of_day and len(str(value)) == 10:
        parsed = parsed.replace(hour=23, minute=59, second=59, microsecond=999999)
    return parsed


def _normalize_filters(filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    filters = dict(filters or {})
    status = filters.get('status')
    if status:
        try:
            filters['status'] = OrderStatus(status).value
        except ValueError:
            raise ValidationError('Filtro de estado inválido', [{'field': 'status', 'message': f'Estado desconocido: {status}'}])
    filters['date_from'] = parse_date_filter(filters.get('date_from'), 'date_from')
    filters['date_to'] = parse_date_filter(filters.get('date_to'), 'date_to', end_of_day=True)
    return filters


def clamp_page(limit: Optional[int], offset: Optional[int]):
    """Apply default/max page size and a non-negative offset."""
    default_size = int(_setting('ORDERS_DEFAULT_PAGE_SIZE'))
    max_size = int(_setting('ORDERS_MAX_PAGE_SIZE'))
    if limit is None or limit < 1:
        limit = default_size
    limit = min(limit, max_size)
    offset = max(offset or 0, 0)
    return limit, offset


def list_orders(
    session: Session,
    filters: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = 0,
    actor: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    List orders newest first.

    Returns:
        Dict with ``orders`` (model instances), ``total``, ``limit`` and ``offset``.
    """
    filters = _normalize_filters(filters)
    if _is_cliente(actor):
        filters['customer_id'] = actor['id']
    limit, offset = clamp_page(limit, offset)

    orders, total = OrderRepository(session).list(filters, limit, offset)
    return {'orders': orders, 'total': total, 'limit': limit, 'offset': offset}


def order_stats(session: Session, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Order count and amount per status, plus overall totals."""
    filters = _normalize_filters(filters)
    by_status = OrderRepository(session).stats_by_status(filters)
    return {
        'by_status': by_status,
        'total_orders': sum(row['count'] for row in by_status),
        'total_amount': round(sum(row['total_amount'] for row in by_status), 2),
    }


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

def parse_status(value) -> OrderStatus:
    """Raise InvalidStateError (400) for a value outside the enumeration."""
    try:
        return OrderStatus(value)
    except ValueError:
        valid = ', '.join(s.value for s in OrderStatus)
        raise InvalidStateError(f'Estado inválido: {value}. Estados válidos: {valid}', status_code=400)


def _apply_transition(order: Order, target: OrderStatus) -> bool:
    """
    Move ``order`` to ``target`` under the configured policy.

    Returns False when the order already is in ``target``.
    """
    current = order.status
    if target == current:
        return False

    if current.is_terminal:
        raise InvalidStateError(
            f'El pedido {order.order_number} está {current.value} y no puede cambiar a {target.value}'
        )

    policy = _setting('ORDER_STATUS_POLICY')
    if policy == 'strict' and target != OrderStatus.CANCELLED and STRICT_NEXT.get(current) != target:
        raise InvalidStateError(
            f'Transición no permitida: {current.value} -> {target.value}'
        )

    order.status = target
    now = utcnow()
    if target == OrderStatus.APPROVED and order.approved_at is None:
        order.approved_at = now
    if target == OrderStatus.DELIVERED and order.delivered_at is None:
        order.delivered_at = now
    return True


def update_order_status(
    session: Session,
    order_id: int,
    new_status,
    notes: Optional[str] = None,
    actor: Optional[Dict[str, Any]] = None,
) -> Order:
    """
    Change the status of an order.

    The row is locked for the duration of the transaction and written with
    a version check.

    Raises:
        InvalidStateError: unknown status (400) or forbidden transition (409)
        NotFoundError: order does not exist
        ConflictError: concurrent update detected
    """
    target = parse_status(new_status)

    try:
        order = OrderRepository(session).get(order_id, for_update=True)
        if not order:
            raise NotFoundError('Pedido no encontrado')

        previous = order.status
        changed = _apply_transition(order, target)

        if changed and actor and actor.get('role') in SELLER_ROLES and order.seller_id is None:
            order.seller_id = actor['id']
        if notes:
            order.notes = f'{order.notes}\n{notes}' if order.notes else notes

        session.commit()

    except StaleDataError:
        session.rollback()
        logger.warning(f"[ORDERS] Concurrent update on order {order_id}")
        raise ConflictError('El pedido fue modificado por otra operación, intente nuevamente')
    except FerremasError:
        session.rollback()
        raise

    if changed:
        logger.info(f"[ORDERS] Order {order.order_number}: {previous.value} -> {target.value}")
    return order


def mark_order_paid(session: Session, order: Order) -> bool:
    """
    Approve a pending order after its payment was confirmed.

    Does not commit; the caller owns the transaction.
    """
    if order.status != OrderStatus.PENDING:
        return False
    _apply_transition(order, OrderStatus.APPROVED)
    logger.info(f"[ORDERS] Order {order.order_number} approved by payment")
    return True
