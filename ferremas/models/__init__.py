"""Models package - exports all SQLAlchemy models."""
# Actors and catalog
from ferremas.models.user import User, UserRole, STAFF_ROLES
from ferremas.models.branch import Branch
from ferremas.models.category import Category
from ferremas.models.brand import Brand
from ferremas.models.product import Product

# Orders and payments
from ferremas.models.order import Order, OrderStatus, DeliveryType
from ferremas.models.order_line_item import OrderLineItem
from ferremas.models.payment import Payment, PaymentMethod, PaymentStatus
from ferremas.models.gateway_notification import GatewayNotification, NotificationStatus

__all__ = [
    'User', 'UserRole', 'STAFF_ROLES',
    'Branch', 'Category', 'Brand', 'Product',
    'Order', 'OrderStatus', 'DeliveryType', 'OrderLineItem',
    'Payment', 'PaymentMethod', 'PaymentStatus',
    'GatewayNotification', 'NotificationStatus',
]
