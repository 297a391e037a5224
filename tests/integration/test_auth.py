"""
Integration tests for authentication and authorization.
"""

import jwt
from datetime import datetime, timedelta, timezone

from ferremas.models import User


class TestRegistration:
    """Test customer registration flow."""

    def test_register_new_customer(self, client, session):
        """Registration creates a cliente and returns a token."""
        response = client.post('/api/v1/auth/register', json={
            'nombre': 'Juan Pérez',
            'email': 'Juan@Ferremas.cl',
            'password': 'secreto123',
            'telefono': '+56911112222',
            'role': 'administrador',
        })

        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['token_type'] == 'Bearer'
        assert data['expires_in'] == 24 * 3600
        assert data['user']['email'] == 'juan@ferremas.cl'
        assert data['user']['role'] == 'cliente'

        user = session.query(User).filter_by(email='juan@ferremas.cl').first()
        assert user is not None
        assert user.phone == '+56911112222'
        assert user.role == 'cliente'

    def test_register_with_existing_email_fails(self, client, customer):
        response = client.post('/api/v1/auth/register', json={
            'name': 'Duplicate',
            'email': customer.email,
            'password': 'password123',
        })

        assert response.status_code == 409
        assert response.get_json()['message'] == 'El usuario ya existe'

    def test_register_validation_errors(self, client):
        response = client.post('/api/v1/auth/register', json={'email': 'not-an-email', 'password': '123'})

        assert response.status_code == 400
        body = response.get_json()
        assert body['success'] is False
        assert {e['field'] for e in body['errors']} == {'name', 'email', 'password'}


class TestLogin:
    """Test login flow."""

    def test_login_success(self, client, customer):
        response = client.post('/api/v1/auth/login', json={
            'email': customer.email.upper(),
            'password': customer.password,
        })

        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['user']['id'] == customer.id
        assert data['token']

    def test_login_wrong_password(self, client, customer):
        response = client.post('/api/v1/auth/login', json={'email': customer.email, 'password': 'wrong'})

        assert response.status_code == 401
        assert response.get_json()['message'] == 'Credenciales inválidas'

    def test_login_inactive_user(self, client, make_user):
        inactive = make_user('cliente', active=False)
        response = client.post('/api/v1/auth/login', json={'email': inactive.email, 'password': inactive.password})
        assert response.status_code == 401

    def test_login_missing_fields(self, client):
        response = client.post('/api/v1/auth/login', json={'email': 'x@ferremas.cl'})
        assert response.status_code == 400


class TestTokens:
    """Bearer token handling on protected endpoints."""

    def test_profile(self, client, customer):
        response = client.get('/api/v1/auth/profile', headers=customer.headers)

        assert response.status_code == 200
        assert response.get_json()['data']['email'] == customer.email

    def test_verify_echoes_claims(self, client, seller):
        response = client.get('/api/v1/auth/verify', headers=seller.headers)

        assert response.status_code == 200
        assert response.get_json()['data']['user'] == seller.actor

    def test_missing_token(self, client):
        response = client.get('/api/v1/auth/profile')

        assert response.status_code == 401
        assert response.get_json() == {'success': False, 'message': 'Token de acceso requerido'}

    def test_wrong_scheme(self, client, customer):
        response = client.get('/api/v1/auth/profile', headers={'Authorization': f'Token {customer.token}'})
        assert response.status_code == 401

    def test_tampered_token(self, client):
        token = jwt.encode({'sub': '1', 'role': 'administrador'}, 'not-the-secret', algorithm='HS256')
        response = client.get('/api/v1/auth/verify', headers={'Authorization': f'Bearer {token}'})

        assert response.status_code == 401
        assert response.get_json()['message'] == 'Token inválido'

    def test_expired_token(self, client, customer):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode({'sub': str(customer.id), 'exp': past}, 'test-jwt-secret', algorithm='HS256')
        response = client.get('/api/v1/auth/verify', headers={'Authorization': f'Bearer {token}'})

        assert response.status_code == 401
        assert response.get_json()['message'] == 'Token expirado'

    def test_bad_token_ignored_on_public_endpoint(self, client):
        response = client.get('/api/v1/payments/methods', headers={'Authorization': 'Bearer garbage'})
        assert response.status_code == 200


class TestRoles:
    """Role checks on staff endpoints."""

    def test_cliente_cannot_read_stats(self, client, customer):
        response = client.get('/api/v1/orders/stats', headers=customer.headers)
        assert response.status_code == 403

    def test_staff_can_read_stats(self, client, warehouse):
        response = client.get('/api/v1/orders/stats', headers=warehouse.headers)
        assert response.status_code == 200
