"""
Integration tests for health, metrics, error envelopes and CLI commands.
"""

from ferremas.database import get_session
from ferremas.models import GatewayNotification, NotificationStatus, Order, User


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        body = response.get_json()
        assert body['status'] == 'healthy'
        assert body['database'] == 'connected'
        assert body['gateway_configured'] is True

    def test_index(self, client):
        data = client.get('/api/v1').get_json()['data']
        assert data['endpoints']['orders'] == '/api/v1/orders'

    def test_metrics(self, client):
        client.get('/health')
        response = client.get('/metrics')

        assert response.status_code == 200
        assert response.content_type.startswith('text/plain')
        assert b'http_requests_total{method="GET",endpoint="main.health",http_status="200"}' in response.data
        assert b'orders_created_total' in response.data

    def test_checkout_is_counted(self, client, gateway, customer, make_order):
        order_id = make_order(customer)
        client.post('/api/v1/payments/checkout', headers=customer.headers, json={'order_id': order_id})

        response = client.get('/metrics')
        assert b'checkouts_total{result="created"}' in response.data


class TestErrorEnvelope:

    def test_unknown_route(self, client):
        response = client.get('/api/v1/nothing-here')

        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'message': 'Ruta no encontrada'}

    def test_method_not_allowed(self, client):
        response = client.delete('/api/v1/payments/methods')

        assert response.status_code == 405
        assert response.get_json()['message'] == 'Método no permitido'


class TestCliCommands:

    def test_create_admin(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            'create-admin', '--email', 'Jefe@Ferremas.cl', '--name', 'Jefe', '--password', 'secreto123',
        ])

        assert result.exit_code == 0
        user = get_session().query(User).filter_by(email='jefe@ferremas.cl').first()
        assert user is not None
        assert user.role == 'administrador'
        assert user.check_password('secreto123')

    def test_create_admin_short_password(self, app):
        result = app.test_cli_runner().invoke(args=[
            'create-admin', '--email', 'jefe@ferremas.cl', '--password', '123',
        ])

        assert 'al menos 6' in result.output
        assert get_session().query(User).count() == 0

    def test_replay_notifications(self, app, session, gateway, customer, make_order):
        from ferremas.services.payment_service import initiate_gateway_payment, handle_gateway_notification

        order_id = make_order(customer)
        checkout = initiate_gateway_payment(session, order_id, gateway, customer.actor)
        reference = session.get(Order, order_id).payments[0].internal_reference
        gateway.set_payment('9001', 'approved', external_reference=reference)
        gateway.fail_lookup = True
        handle_gateway_notification(session, {'type': 'payment', 'data': {'id': '9001'}}, {}, {}, gateway)
        gateway.fail_lookup = False

        result = app.test_cli_runner().invoke(args=['replay-notifications'])

        assert result.exit_code == 0
        assert 'PROCESSED' in result.output
        notification = get_session().query(GatewayNotification).one()
        assert notification.status == NotificationStatus.PROCESSED
        assert get_session().get(Order, checkout['order_id']).status.value == 'approved'
