"""Repositories: query helpers over the orders and payments tables."""
from ferremas.repositories.order_repository import OrderRepository
from ferremas.repositories.payment_repository import PaymentRepository

__all__ = ['OrderRepository', 'PaymentRepository']
