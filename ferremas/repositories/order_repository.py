"""Order repository - CRUD and filtered queries over orders and line items."""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from ferremas.models import Order, OrderStatus


class OrderRepository:
    """Data access for ``orders`` / ``order_line_items``."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, order_id: int, for_update: bool = False) -> Optional[Order]:
        """Fetch one order; ``for_update`` locks the row until commit."""
        query = self.session.query(Order).filter(Order.id == order_id)
        if for_update:
            query = query.with_for_update()
        else:
            query = query.options(selectinload(Order.items))
        return query.first()

    def add(self, order: Order) -> Order:
        """Stage an order together with its line items (cascade)."""
        self.session.add(order)
        self.session.flush()
        return order

    def _apply_filters(self, query, filters: Dict[str, Any]):
        if filters.get('status'):
            query = query.filter(Order.status == OrderStatus(filters['status']))
        if filters.get('branch_id'):
            query = query.filter(Order.branch_id == filters['branch_id'])
        if filters.get('customer_id'):
            query = query.filter(Order.customer_id == filters['customer_id'])
        if filters.get('date_from'):
            query = query.filter(Order.created_at >= filters['date_from'])
        if filters.get('date_to'):
            query = query.filter(Order.created_at <= filters['date_to'])
        return query

    def list(self, filters: Dict[str, Any], limit: int, offset: int = 0) -> Tuple[List[Order], int]:
        """
        Filtered page of orders, newest first.

        Returns:
            (orders, total matching rows)
        """
        query = self._apply_filters(self.session.query(Order), filters)
        total = query.count()
        orders = (
            query.options(selectinload(Order.items))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return orders, total

    def stats_by_status(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Count and amount per status."""
        query = self.session.query(
            Order.status,
            func.count(Order.id),
            func.coalesce(func.sum(Order.total), 0),
        )
        query = self._apply_filters(query, filters)
        rows = query.group_by(Order.status).all()
        return [
            {'status': status.value, 'count': count, 'total_amount': float(amount)}
            for status, count, amount in rows
        ]
