"""
Authentication service.

Handles customer registration, password login and JWT bearer tokens.
"""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ferremas.exceptions import ValidationError, UnauthorizedError, ConflictError, NotFoundError
from ferremas.models import User, UserRole

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
MIN_PASSWORD_LENGTH = 6


def issue_token(user: User) -> str:
    """Signed HS256 token carrying the user's id, email, name and role."""
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user.id),
        'email': user.email,
        'name': user.name,
        'role': user.role,
        'iat': now,
        'exp': now + timedelta(hours=current_app.config.get('JWT_EXPIRATION_HOURS', 24)),
    }
    return jwt.encode(
        payload,
        current_app.config['JWT_SECRET'],
        algorithm=current_app.config.get('JWT_ALGORITHM', 'HS256'),
    )


def decode_token(token: str) -> Dict[str, Any]:
    """
    Validate a bearer token and return the actor it describes.

    Returns:
        Dict with id (int), email, name and role

    Raises:
        UnauthorizedError: expired, tampered or malformed token
    """
    try:
        claims = jwt.decode(
            token,
            current_app.config['JWT_SECRET'],
            algorithms=[current_app.config.get('JWT_ALGORITHM', 'HS256')],
        )
        return {
            'id': int(claims['sub']),
            'email': claims.get('email'),
            'name': claims.get('name'),
            'role': claims.get('role', UserRole.CLIENTE.value),
        }
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError('Token expirado')
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise UnauthorizedError('Token inválido')


def register_customer(session: Session, data: Dict[str, Any]) -> User:
    """Create a customer account. The role is always ``cliente``."""
    data = data or {}
    name = (data.get('name') or data.get('nombre') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    errors = []
    if not name:
        errors.append({'field': 'name', 'message': 'El nombre es requerido'})
    if not EMAIL_RE.match(email):
        errors.append({'field': 'email', 'message': 'Email inválido'})
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append({'field': 'password', 'message': f'La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres'})
    if errors:
        raise ValidationError('Datos de registro inválidos', errors)

    if session.query(User).filter_by(email=email).first():
        raise ConflictError('El usuario ya existe')

    user = User(
        name=name,
        email=email,
        role=UserRole.CLIENTE.value,
        rut=data.get('rut'),
        phone=data.get('phone') or data.get('telefono'),
        address=data.get('address') or data.get('direccion'),
        active=True,
    )
    user.set_password(password)
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError('El usuario ya existe')

    logger.info(f"New customer registered: {email}")
    return user


def authenticate(session: Session, email: str, password: str) -> User:
    """Check email and password; inactive accounts cannot log in."""
    if not email or not password:
        raise ValidationError('Email y password son requeridos', [
            {'field': 'email' if not email else 'password', 'message': 'Campo requerido'}
        ])

    user = session.query(User).filter_by(email=email.strip().lower()).first()
    if not user or not user.active or not user.check_password(password):
        logger.warning(f"Failed login attempt for {email}")
        raise UnauthorizedError('Credenciales inválidas')

    return user


def get_profile(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFoundError('Usuario no encontrado')
    return user
