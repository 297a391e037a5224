"""Middleware for bearer-token authentication."""
from functools import wraps
from flask import g, request, current_app

from ferremas.exceptions import FerremasError, UnauthorizedError
from ferremas.services.auth_service import decode_token


def load_current_user():
    """
    Load the token's claims into g (Flask's per-request global).

    Called before each request. Sets g.current_user to a dict with id, email,
    name and role, or None. A bad token is remembered in g.auth_error and only
    reported by endpoints that require authentication.
    """
    g.current_user = None
    g.auth_error = None

    header = request.headers.get('Authorization', '')
    if not header:
        return

    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        g.auth_error = UnauthorizedError('Formato de token inválido. Use: Bearer <token>')
        return

    try:
        g.current_user = decode_token(token.strip())
    except FerremasError as e:
        current_app.logger.info(f"Rejected bearer token: {e.message}")
        g.auth_error = e


def current_actor():
    """Claims of the authenticated user, or None."""
    return g.get('current_user')


def require_auth(f):
    """
    Decorator: Require a valid bearer token.

    Raises UnauthorizedError (401) otherwise.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('current_user') is None:
            raise g.get('auth_error') or UnauthorizedError()
        return f(*args, **kwargs)
    return decorated_function
