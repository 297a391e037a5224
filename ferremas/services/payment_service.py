"""
Payment service.
Checkout initiation against Mercado Pago and webhook-driven reconciliation.
"""
import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from flask import current_app, has_app_context
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ferremas.database import utcnow
from ferremas.exceptions import (
    FerremasError, ValidationError, NotFoundError, ConflictError, InvalidStateError, UpstreamError
)
from ferremas.models import (
    Order, Payment, PaymentMethod, PaymentStatus, GatewayNotification, NotificationStatus, UserRole
)
from ferremas.repositories import OrderRepository, PaymentRepository
from ferremas.services.order_service import mark_order_paid, clamp_page, parse_date_filter

logger = logging.getLogger(__name__)

PAYMENT_EVENT_TYPES = ('payment', 'payment.updated')

# Mercado Pago payment status -> local payment status; anything else stays pending
GATEWAY_STATUS_MAP = {
    'approved': PaymentStatus.APPROVED,
    'rejected': PaymentStatus.REJECTED,
    'cancelled': PaymentStatus.REJECTED,
    'refunded': PaymentStatus.REJECTED,
    'charged_back': PaymentStatus.REJECTED,
}

PAYMENT_METHODS = [
    {
        'id': 1,
        'name': 'MercadoPago',
        'type': PaymentMethod.GATEWAY_CHECKOUT.value,
        'description': 'Pago con tarjetas de crédito y débito via MercadoPago',
        'enabled': True,
        'fees': '2.9% + $30',
    },
    {
        'id': 2,
        'name': 'Tarjeta de Débito',
        'type': PaymentMethod.DEBIT.value,
        'description': 'Pago directo con tarjeta de débito',
        'enabled': True,
        'fees': 'Sin costo adicional',
    },
    {
        'id': 3,
        'name': 'Tarjeta de Crédito',
        'type': PaymentMethod.CREDIT.value,
        'description': 'Pago con tarjeta de crédito',
        'enabled': True,
        'fees': '2.5%',
    },
    {
        'id': 4,
        'name': 'Transferencia Bancaria',
        'type': PaymentMethod.BANK_TRANSFER.value,
        'description': 'Transferencia electrónica directa',
        'enabled': True,
        'fees': 'Sin costo adicional',
    },
]


def map_gateway_status(gateway_status: Optional[str]) -> PaymentStatus:
    return GATEWAY_STATUS_MAP.get((gateway_status or '').lower(), PaymentStatus.PENDING)


def parse_gateway_datetime(value) -> Optional[datetime]:
    """Parse an ISO-8601 gateway timestamp into naive UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"[MP] Unparseable date_last_updated: {value}")
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _is_cliente(actor: Optional[Dict[str, Any]]) -> bool:
    return bool(actor) and actor.get('role') == UserRole.CLIENTE.value


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

def _new_internal_reference(order: Order) -> str:
    return f"PAY-{order.id}-{secrets.token_hex(6).upper()}"


def _checkout_result(payment: Payment, order: Order, reused: bool) -> Dict[str, Any]:
    return {
        'payment_id': payment.id,
        'order_id': order.id,
        'order_number': order.order_number,
        'amount': float(payment.amount),
        'currency': payment.currency,
        'preference_id': payment.external_reference,
        'redirect_url': payment.checkout_url,
        'reused': reused,
    }


def initiate_gateway_payment(
    session: Session,
    order_id: int,
    gateway,
    actor: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Start (or resume) a Mercado Pago checkout for an order.

    A pending checkout payment of the order is reused; otherwise a new
    pending payment is committed before the gateway is called, so a gateway
    failure leaves a pending row that the next attempt picks up.

    Raises:
        NotFoundError: order does not exist (or belongs to another customer)
        InvalidStateError: order is cancelled or delivered
        ConflictError: order already has an approved payment
        UpstreamError: gateway failed or timed out
    """
    orders = OrderRepository(session)
    payments = PaymentRepository(session)

    try:
        order = orders.get(order_id, for_update=True)
        if not order or (_is_cliente(actor) and order.customer_id != actor['id']):
            raise NotFoundError('Pedido no encontrado')
        if order.status.is_terminal:
            raise InvalidStateError(f'El pedido está {order.status.value} y no admite pagos')
        if payments.has_approved(order.id):
            raise ConflictError('El pedido ya tiene un pago aprobado')

        payment = payments.find_open_gateway_payment(order.id)
        if payment and payment.external_reference:
            session.commit()
            logger.info(f"[MP] Reusing checkout payment {payment.id} for order {order.order_number}")
            return _checkout_result(payment, order, reused=True)

        reused = payment is not None
        if not payment:
            payment = payments.add(Payment(
                order_id=order.id,
                payment_method=PaymentMethod.GATEWAY_CHECKOUT,
                status=PaymentStatus.PENDING,
                amount=order.total,
                currency=order.currency,
                internal_reference=_new_internal_reference(order),
            ))
        session.commit()

    except StaleDataError:
        session.rollback()
        raise ConflictError('El pedido fue modificado por otra operación, intente nuevamente')
    except FerremasError:
        session.rollback()
        raise

    try:
        preference = gateway.create_preference(
            items=[{
                'title': f'Pedido {order.order_number}',
                'quantity': 1,
                'unit_price': float(payment.amount),
                'currency_id': payment.currency,
            }],
            external_reference=payment.internal_reference,
            payer_email=order.customer.email if order.customer else None,
            metadata={'order_id': order.id, 'payment_id': payment.id},
        )
    except UpstreamError:
        logger.error(f"[MP] Checkout for payment {payment.id} left pending: gateway unavailable")
        raise

    payment = payments.get(payment.id, for_update=True)
    payment.external_reference = str(preference.get('id'))
    payment.checkout_url = gateway.checkout_url(preference)
    session.commit()

    logger.info(
        f"[MP] Checkout payment {payment.id} for order {order.order_number}: "
        f"preference={payment.external_reference}"
    )
    return _checkout_result(payment, order, reused)


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

def normalize_notification(body, args) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
    """
    Extract (event_type, event_data) from the shapes Mercado Pago sends.

    1. body ``type`` with ``data``
    2. query ``type``/``topic`` with ``data.id``, ``data_id`` or ``id``
    3. body ``action`` with ``data``
    """
    body = body if isinstance(body, dict) else {}
    args = args or {}

    if body.get('type'):
        return body['type'], body.get('data')

    query_type = args.get('type') or args.get('topic')
    if query_type:
        resource_id = args.get('data.id') or args.get('data_id') or args.get('id')
        return query_type, ({'id': resource_id} if resource_id else None)

    if body.get('action'):
        return body['action'], body.get('data')

    return None, None


def verify_signature(headers: Dict[str, str], resource_id: Optional[str], secret: str) -> bool:
    """
    Check the ``x-signature`` header (``ts=...,v1=...``).

    The signed manifest is ``id:<data.id>;request-id:<x-request-id>;ts:<ts>;``
    with absent parts omitted.
    """
    signature = headers.get('x-signature') or ''
    request_id = headers.get('x-request-id') or ''

    parts = {}
    for chunk in signature.split(','):
        key, sep, value = chunk.partition('=')
        if sep:
            parts[key.strip()] = value.strip()

    ts, received = parts.get('ts'), parts.get('v1')
    if not ts or not received:
        logger.warning("[WEBHOOK] Missing or malformed x-signature header")
        return False

    manifest = ''
    if resource_id:
        manifest += f"id:{str(resource_id).lower()};"
    if request_id:
        manifest += f"request-id:{request_id};"
    manifest += f"ts:{ts};"

    expected = hmac.new(secret.encode('utf-8'), manifest.encode('utf-8'), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, received)


def _apply_gateway_payment(session: Session, payment: Payment, gateway_payment: Dict[str, Any]) -> bool:
    """
    Compare-and-set the local payment against the gateway's view.

    Approval always wins and is never undone; any other change needs a
    strictly newer ``date_last_updated``.
    """
    raw_status = gateway_payment.get('status')
    new_status = map_gateway_status(raw_status)
    gateway_updated_at = parse_gateway_datetime(gateway_payment.get('date_last_updated'))

    if not payment.gateway_payment_id and gateway_payment.get('id'):
        payment.gateway_payment_id = str(gateway_payment['id'])

    if payment.status == PaymentStatus.APPROVED:
        if new_status != PaymentStatus.APPROVED:
            logger.warning(
                f"[WEBHOOK] Ignoring {raw_status} for approved payment {payment.id}"
            )
        return False

    if new_status == PaymentStatus.APPROVED:
        payment.status = PaymentStatus.APPROVED
        if payment.approved_at is None:
            payment.approved_at = utcnow()
    else:
        stored = payment.gateway_updated_at
        if stored is not None and (gateway_updated_at is None or gateway_updated_at <= stored):
            logger.info(
                f"[WEBHOOK] Stale update for payment {payment.id} "
                f"({gateway_updated_at} <= {stored}), skipped"
            )
            return False
        payment.status = new_status

    payment.gateway_status = raw_status
    if gateway_updated_at and (payment.gateway_updated_at is None or gateway_updated_at > payment.gateway_updated_at):
        payment.gateway_updated_at = gateway_updated_at
    detail = gateway_payment.get('status_detail')
    payment.notes = f"Mercado Pago: {raw_status}" + (f" ({detail})" if detail else '')

    if payment.status == PaymentStatus.APPROVED:
        order = OrderRepository(session).get(payment.order_id, for_update=True)
        mark_order_paid(session, order)

    logger.info(f"[WEBHOOK] Payment {payment.id} -> {payment.status.value} (gateway: {raw_status})")
    return True


def _process_notification(session: Session, notification: GatewayNotification, gateway) -> Dict[str, Any]:
    """Run one stored notification; failures are recorded as FAILED."""
    notification_id = notification.id
    attempts = (notification.attempts or 0) + 1
    result = {
        'notification_id': notification_id,
        'event_type': notification.topic,
        'resource_id': notification.resource_id,
    }

    try:
        notification.attempts = attempts
        outcome = NotificationStatus.IGNORED

        if notification.topic in PAYMENT_EVENT_TYPES and notification.resource_id:
            gateway_payment = gateway.get_payment(notification.resource_id)
            payment = None
            if gateway_payment:
                payment = PaymentRepository(session).find_for_gateway_payment(
                    notification.resource_id,
                    internal_reference=gateway_payment.get('external_reference'),
                )
            if payment:
                _apply_gateway_payment(session, payment, gateway_payment)
                outcome = NotificationStatus.PROCESSED
                result['payment_id'] = payment.id
                result['payment_status'] = payment.status.value
            else:
                outcome = NotificationStatus.UNMATCHED
                logger.warning(f"[WEBHOOK] No local payment for gateway id {notification.resource_id}")
        else:
            logger.info(f"[WEBHOOK] Unhandled event type: {notification.topic}")

        notification.status = outcome
        notification.error = None
        notification.processed_at = utcnow()
        session.commit()

    except Exception as e:
        session.rollback()
        logger.exception(f"[WEBHOOK] Error processing notification {notification_id}: {e}")
        notification = session.get(GatewayNotification, notification_id)
        notification.status = NotificationStatus.FAILED
        notification.error = str(e)[:2000]
        notification.attempts = attempts
        session.commit()
        outcome = NotificationStatus.FAILED

    result['status'] = outcome
    return result


def handle_gateway_notification(
    session: Session,
    body,
    args,
    headers,
    gateway,
) -> Dict[str, Any]:
    """
    Record and process one webhook delivery.

    The gateway payment is always re-fetched; the notification's own
    content is never trusted for the status.

    Returns:
        Dict with the notification id, event type, resource id and outcome.
    """
    event_type, event_data = normalize_notification(body, args)
    resource_id = event_data.get('id') if isinstance(event_data, dict) else None
    resource_id = str(resource_id) if resource_id else None

    query = args.to_dict() if hasattr(args, 'to_dict') else dict(args or {})
    notification = GatewayNotification(
        topic=event_type,
        resource_id=resource_id,
        payload_json={'body': body, 'query': query},
        status=NotificationStatus.RECEIVED,
        attempts=0,
    )
    session.add(notification)
    session.commit()

    logger.info(f"[WEBHOOK] Notification {notification.id}: type={event_type} id={resource_id}")

    secret = current_app.config.get('MP_WEBHOOK_SECRET') if has_app_context() else None
    if secret:
        lowered = {k.lower(): v for k, v in dict(headers or {}).items()}
        if not verify_signature(lowered, resource_id, secret):
            notification.status = NotificationStatus.REJECTED
            notification.error = 'Invalid signature'
            notification.processed_at = utcnow()
            session.commit()
            logger.warning(f"[WEBHOOK] Notification {notification.id} rejected: invalid signature")
            return {
                'notification_id': notification.id,
                'event_type': event_type,
                'resource_id': resource_id,
                'status': NotificationStatus.REJECTED,
            }

    return _process_notification(session, notification, gateway)


def replay_failed_notifications(session: Session, gateway, limit: int = 50) -> List[Dict[str, Any]]:
    """Re-run FAILED notifications, oldest first."""
    failed = (
        session.query(GatewayNotification)
        .filter(GatewayNotification.status == NotificationStatus.FAILED)
        .order_by(GatewayNotification.received_at.asc(), GatewayNotification.id.asc())
        .limit(limit)
        .all()
    )
    logger.info(f"[WEBHOOK] Replaying {len(failed)} failed notifications")
    return [_process_notification(session, notification, gateway) for notification in failed]


def sync_payment_from_gateway(session: Session, payment_id: int, gateway) -> Dict[str, Any]:
    """
    Pull the gateway's view of a checkout payment (search by internal reference).

    Raises:
        NotFoundError: payment does not exist
        InvalidStateError: payment was not created through the gateway
        UpstreamError: gateway failed or timed out
    """
    payments = PaymentRepository(session)
    payment = payments.get(payment_id)
    if not payment:
        raise NotFoundError('Pago no encontrado')
    if payment.payment_method != PaymentMethod.GATEWAY_CHECKOUT or not payment.internal_reference:
        raise InvalidStateError('El pago no fue iniciado en Mercado Pago')

    results = gateway.search_payments(payment.internal_reference)
    if not results:
        session.commit()
        return {'payment': payment, 'changed': False, 'gateway_payment_id': None}

    chosen = next((r for r in results if r.get('status') == 'approved'), results[0])

    try:
        payment = payments.get(payment_id, for_update=True)
        changed = _apply_gateway_payment(session, payment, chosen)
        session.commit()
    except StaleDataError:
        session.rollback()
        raise ConflictError('El pago fue modificado por otra operación, intente nuevamente')
    except FerremasError:
        session.rollback()
        raise

    return {'payment': payment, 'changed': changed, 'gateway_payment_id': str(chosen.get('id'))}


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_payments_by_order(
    session: Session,
    order_id: int,
    actor: Optional[Dict[str, Any]] = None,
) -> List[Payment]:
    order = OrderRepository(session).get(order_id)
    if not order or (_is_cliente(actor) and order.customer_id != actor['id']):
        raise NotFoundError('Pedido no encontrado')
    return PaymentRepository(session).list_by_order(order.id)


def get_payment(session: Session, payment_id: int) -> Payment:
    payment = PaymentRepository(session).get(payment_id)
    if not payment:
        raise NotFoundError('Pago no encontrado')
    return payment


def verify_payment(session: Session, payment_id: int) -> Dict[str, Any]:
    """Consolidated view of a payment and its order."""
    payment = get_payment(session, payment_id)
    order = payment.order
    return {
        'payment_id': payment.id,
        'status': payment.status.value,
        'amount': float(payment.amount),
        'currency': payment.currency,
        'payment_method': payment.payment_method.value,
        'order_id': order.id,
        'order_number': order.order_number,
        'order_status': order.status.value,
        'payment_date': payment.created_at.isoformat() if payment.created_at else None,
        'approval_date': payment.approved_at.isoformat() if payment.approved_at else None,
        'external_reference': payment.external_reference,
        'internal_reference': payment.internal_reference,
        'notes': payment.notes,
    }


def list_payments(
    session: Session,
    filters: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = 0,
) -> Dict[str, Any]:
    filters = dict(filters or {})
    if filters.get('status'):
        try:
            PaymentStatus(filters['status'])
        except ValueError:
            raise ValidationError('Filtro de estado inválido', [{'field': 'status', 'message': f"Estado desconocido: {filters['status']}"}])
    if filters.get('payment_method'):
        try:
            PaymentMethod(filters['payment_method'])
        except ValueError:
            raise ValidationError('Filtro de método inválido', [{'field': 'payment_method', 'message': f"Método desconocido: {filters['payment_method']}"}])
    filters['date_from'] = parse_date_filter(filters.get('date_from'), 'date_from')
    filters['date_to'] = parse_date_filter(filters.get('date_to'), 'date_to', end_of_day=True)

    limit, offset = clamp_page(limit, offset)
    payments, total = PaymentRepository(session).list(filters, limit, offset)
    return {'payments': payments, 'total': total, 'limit': limit, 'offset': offset}
