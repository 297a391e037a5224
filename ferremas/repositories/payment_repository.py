"""Payment repository - CRUD and lookups keyed by order and gateway reference."""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ferremas.models import Payment, PaymentMethod, PaymentStatus


class PaymentRepository:
    """Data access for ``payments``."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, payment_id: int, for_update: bool = False) -> Optional[Payment]:
        query = self.session.query(Payment).filter(Payment.id == payment_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def add(self, payment: Payment) -> Payment:
        self.session.add(payment)
        self.session.flush()
        return payment

    def list_by_order(self, order_id: int) -> List[Payment]:
        """Payments of an order, most recent first."""
        return (
            self.session.query(Payment)
            .filter(Payment.order_id == order_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .all()
        )

    def has_approved(self, order_id: int) -> bool:
        return self.session.query(Payment.id).filter(
            Payment.order_id == order_id,
            Payment.status == PaymentStatus.APPROVED,
        ).first() is not None

    def find_open_gateway_payment(self, order_id: int) -> Optional[Payment]:
        """Latest non-terminal checkout payment of an order, locked."""
        return (
            self.session.query(Payment)
            .filter(
                Payment.order_id == order_id,
                Payment.payment_method == PaymentMethod.GATEWAY_CHECKOUT,
                Payment.status == PaymentStatus.PENDING,
            )
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .with_for_update()
            .first()
        )

    def find_for_gateway_payment(
        self,
        gateway_payment_id: str,
        internal_reference: Optional[str] = None,
    ) -> Optional[Payment]:
        """
        Match a gateway payment to a local row, locked for update.

        Lookup order: known gateway payment id, our internal reference (echoed
        back by the gateway as ``external_reference``), then the preference id.
        """
        gateway_payment_id = str(gateway_payment_id)
        base = self.session.query(Payment).with_for_update()

        payment = base.filter(Payment.gateway_payment_id == gateway_payment_id).first()
        if payment:
            return payment

        if internal_reference:
            payment = base.filter(Payment.internal_reference == str(internal_reference)).first()
            if payment:
                return payment

        return base.filter(Payment.external_reference == gateway_payment_id).first()

    def list(self, filters: Dict[str, Any], limit: int, offset: int = 0) -> Tuple[List[Payment], int]:
        query = self.session.query(Payment)
        if filters.get('order_id'):
            query = query.filter(Payment.order_id == filters['order_id'])
        if filters.get('status'):
            query = query.filter(Payment.status == PaymentStatus(filters['status']))
        if filters.get('payment_method'):
            query = query.filter(Payment.payment_method == PaymentMethod(filters['payment_method']))
        if filters.get('date_from'):
            query = query.filter(Payment.created_at >= filters['date_from'])
        if filters.get('date_to'):
            query = query.filter(Payment.created_at <= filters['date_to'])

        total = query.count()
        payments = (
            query.order_by(Payment.created_at.desc(), Payment.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return payments, total
