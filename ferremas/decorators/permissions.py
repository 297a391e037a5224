"""
Permission decorators for role-based access control.
Extends require_auth with role checks.
"""

from functools import wraps
from flask import g

from ferremas.exceptions import ForbiddenError, UnauthorizedError
from ferremas.models import STAFF_ROLES


def require_role(*allowed_roles):
    """
    Decorator to restrict access to specific roles.

    Usage:
        @require_role('administrador')
        @require_role('vendedor', 'bodeguero', 'administrador')

    Args:
        *allowed_roles: Variable number of role strings

    Returns:
        Decorator function
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Must be authenticated
            user = g.get('current_user')
            if user is None:
                raise g.get('auth_error') or UnauthorizedError()

            # Check role
            if user.get('role') not in allowed_roles:
                raise ForbiddenError()

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_staff(f):
    """Decorator: any staff role (everyone but cliente)."""
    return require_role(*STAFF_ROLES)(f)
