"""Authentication blueprint: register, login, profile."""
from flask import Blueprint, current_app

from ferremas.database import get_session
from ferremas.middleware import require_auth, current_actor
from ferremas.services import auth_service
from ferremas.utils.responses import success_response, get_json_body

auth_bp = Blueprint('auth', __name__, url_prefix='/api/v1/auth')


def _token_payload(user):
    return {
        'token': auth_service.issue_token(user),
        'token_type': 'Bearer',
        'expires_in': current_app.config.get('JWT_EXPIRATION_HOURS', 24) * 3600,
        'user': user.to_dict(),
    }


@auth_bp.route('/register', methods=['POST'])
def register():
    """Register a customer account (role is always cliente)."""
    user = auth_service.register_customer(get_session(), get_json_body())
    return success_response(_token_payload(user), 'Usuario registrado exitosamente', 201)


@auth_bp.route('/login', methods=['POST'])
def login():
    data = get_json_body()
    user = auth_service.authenticate(get_session(), data.get('email'), data.get('password'))
    current_app.logger.info(f"User logged in: {user.email}")
    return success_response(_token_payload(user), 'Login exitoso')


@auth_bp.route('/profile', methods=['GET'])
@require_auth
def profile():
    user = auth_service.get_profile(get_session(), current_actor()['id'])
    data = user.to_dict()
    data.update({'rut': user.rut, 'phone': user.phone, 'address': user.address})
    return success_response(data)


@auth_bp.route('/verify', methods=['GET'])
@require_auth
def verify():
    """Check the bearer token and echo its claims."""
    return success_response({'user': current_actor()}, 'Token válido')
