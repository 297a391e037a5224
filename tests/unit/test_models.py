"""
Unit tests for SQLAlchemy models.
"""

import pytest
import uuid
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ferremas.models import (
    User, UserRole, Order, OrderStatus, OrderLineItem, Payment, PaymentMethod, PaymentStatus,
    GatewayNotification, NotificationStatus
)


class TestUserModel:
    """Tests for User model."""

    def test_create_user(self, session):
        """Test creating a user."""
        suffix = str(uuid.uuid4())[:8]
        email = f'test_{suffix}@ferremas.test'
        user = User(email=email, name='Test User', role=UserRole.CLIENTE.value)
        user.set_password('securepassword')
        session.add(user)
        session.commit()

        assert user.id is not None
        assert user.active is True
        assert user.password_hash != 'securepassword'
        assert user.is_staff is False

    def test_password_hashing(self):
        """Test password hashing and verification."""
        user = User(email='user@ferremas.test', name='User')
        assert user.check_password('anything') is False

        user.set_password('mypassword')
        assert user.check_password('mypassword') is True
        assert user.check_password('wrongpassword') is False

    def test_user_email_unique(self, session, customer):
        """Test that user email must be unique."""
        session.add(User(email=customer.email, name='Duplicate User'))

        with pytest.raises(IntegrityError):
            session.commit()

    def test_staff_roles(self):
        for role in ('vendedor', 'bodeguero', 'contador', 'administrador'):
            assert User(email='x@y.z', name='x', role=role).is_staff is True


class TestOrderModel:
    """Tests for Order and its line items."""

    def test_terminal_statuses(self):
        assert OrderStatus.DELIVERED.is_terminal
        assert OrderStatus.CANCELLED.is_terminal
        for status in (OrderStatus.PENDING, OrderStatus.APPROVED, OrderStatus.PREPARING, OrderStatus.READY):
            assert not status.is_terminal

    def test_version_increments_on_update(self, session, customer, make_order):
        order = session.get(Order, make_order(customer))
        assert order.version == 1

        order.notes = 'Llamar antes de despachar'
        session.commit()
        assert order.version == 2

    def test_to_dict(self, session, customer, make_order):
        order = session.get(Order, make_order(customer, quantity=2))
        data = order.to_dict()

        assert data['status'] == 'pending'
        assert data['delivery_type'] == 'pickup'
        assert data['subtotal'] == 20000.0
        assert data['total'] == 23800.0
        assert data['currency'] == 'CLP'
        assert data['items'][0]['product_name'] == 'Taladro Percutor'
        assert data['items'][0]['line_subtotal'] == 20000.0
        assert 'items' not in order.to_dict(include_items=False)
        assert order.total_quantity == 2

    def test_line_quantity_must_be_positive(self, session, customer, make_order, catalog):
        order_id = make_order(customer)
        session.add(OrderLineItem(
            order_id=order_id,
            product_id=catalog.drill_id,
            quantity=0,
            unit_price=Decimal('10000.00'),
            line_subtotal=Decimal('0.00'),
        ))

        with pytest.raises(IntegrityError):
            session.commit()


class TestPaymentModel:
    """Tests for Payment model."""

    def test_defaults_and_to_dict(self, session, customer, make_order):
        order_id = make_order(customer)
        payment = Payment(order_id=order_id, payment_method=PaymentMethod.DEBIT, amount=Decimal('56525.00'))
        session.add(payment)
        session.commit()

        assert payment.status == PaymentStatus.PENDING
        assert payment.currency == 'CLP'
        assert payment.version == 1

        data = payment.to_dict()
        assert data['payment_method'] == 'debit'
        assert data['amount'] == 56525.0
        assert data['approved_at'] is None


class TestGatewayNotificationModel:

    def test_defaults(self, session):
        notification = GatewayNotification(topic='payment', resource_id='1', payload_json={'body': {}, 'query': {}})
        session.add(notification)
        session.commit()

        assert notification.status == NotificationStatus.RECEIVED
        assert notification.attempts == 0
        assert notification.received_at is not None
        assert notification.is_processed is False
