"""
Unit tests for the Mercado Pago REST client (HTTP layer mocked).
"""

import pytest
import requests

from ferremas.exceptions import UpstreamError
from ferremas.services.mercadopago_client import MercadoPagoClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=''):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text or str(payload)

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} error', response=self)


@pytest.fixture
def calls(monkeypatch):
    """Record outgoing requests; tests set ``calls.response`` or ``calls.error``."""
    recorder = type('Recorder', (), {})()
    recorder.items = []
    recorder.response = FakeResponse(200, {})
    recorder.error = None

    def fake_request(method, url, **kwargs):
        recorder.items.append({'method': method, 'url': url, **kwargs})
        if recorder.error:
            raise recorder.error
        return recorder.response

    monkeypatch.setattr(requests, 'request', fake_request)
    return recorder


@pytest.fixture
def client():
    return MercadoPagoClient(
        access_token='TEST-123',
        timeout=5,
        notification_url='https://api.ferremas.cl/api/v1/payments/webhook',
        back_urls={'success': 'https://ferremas.cl/ok', 'failure': 'https://ferremas.cl/fail', 'pending': None},
    )


class TestCreatePreference:

    def test_posts_preference(self, client, calls):
        calls.response = FakeResponse(201, {
            'id': 'PREF-1',
            'init_point': 'https://mp/prod',
            'sandbox_init_point': 'https://mp/sandbox',
        })

        data = client.create_preference(
            items=[{'title': 'Pedido ORD-1', 'quantity': 1, 'unit_price': 56525.0, 'currency_id': 'CLP'}],
            external_reference='PAY-1-ABC',
            payer_email='cliente@ferremas.cl',
        )

        assert data['id'] == 'PREF-1'
        call = calls.items[0]
        assert call['method'] == 'POST'
        assert call['url'] == 'https://api.mercadopago.com/checkout/preferences'
        assert call['timeout'] == 5
        assert call['headers']['Authorization'] == 'Bearer TEST-123'
        assert call['json']['external_reference'] == 'PAY-1-ABC'
        assert call['json']['payer'] == {'email': 'cliente@ferremas.cl'}
        assert call['json']['notification_url'] == 'https://api.ferremas.cl/api/v1/payments/webhook'
        assert call['json']['back_urls'] == {'success': 'https://ferremas.cl/ok', 'failure': 'https://ferremas.cl/fail'}
        assert call['json']['auto_return'] == 'approved'

    def test_checkout_url_prefers_sandbox(self, client):
        preference = {'init_point': 'https://mp/prod', 'sandbox_init_point': 'https://mp/sandbox'}
        assert client.checkout_url(preference) == 'https://mp/sandbox'

        client.sandbox = False
        assert client.checkout_url(preference) == 'https://mp/prod'

    def test_timeout_becomes_upstream_error(self, client, calls):
        calls.error = requests.Timeout('read timed out')

        with pytest.raises(UpstreamError) as exc:
            client.create_preference(items=[], external_reference='PAY-1')
        assert exc.value.status_code == 503

    def test_http_error_becomes_upstream_error(self, client, calls):
        calls.response = FakeResponse(400, {'message': 'invalid items'})

        with pytest.raises(UpstreamError) as exc:
            client.create_preference(items=[], external_reference='PAY-1')
        assert exc.value.payload == {'gateway_status': 400}

    def test_missing_token(self, calls):
        client = MercadoPagoClient(access_token=None)

        with pytest.raises(UpstreamError):
            client.create_preference(items=[], external_reference='PAY-1')
        assert calls.items == []


class TestPayments:

    def test_get_payment(self, client, calls):
        calls.response = FakeResponse(200, {'id': 9001, 'status': 'approved'})

        data = client.get_payment('9001')

        assert data['status'] == 'approved'
        assert calls.items[0]['method'] == 'GET'
        assert calls.items[0]['url'].endswith('/v1/payments/9001')

    def test_get_unknown_payment_returns_none(self, client, calls):
        calls.response = FakeResponse(404, {'message': 'Payment not found'})
        assert client.get_payment('404404') is None

    def test_get_payment_server_error(self, client, calls):
        calls.response = FakeResponse(500, {'message': 'boom'})
        with pytest.raises(UpstreamError):
            client.get_payment('9001')

    def test_connection_error(self, client, calls):
        calls.error = requests.ConnectionError('refused')
        with pytest.raises(UpstreamError):
            client.get_payment('9001')

    def test_search_payments(self, client, calls):
        calls.response = FakeResponse(200, {'results': [{'id': 1}, {'id': 2}], 'paging': {'total': 2}})

        results = client.search_payments('PAY-1-ABC')

        assert [r['id'] for r in results] == [1, 2]
        assert calls.items[0]['params']['external_reference'] == 'PAY-1-ABC'

    def test_refund_partial(self, client, calls):
        calls.response = FakeResponse(201, {'id': 77, 'amount': 1000})

        data = client.refund_payment('9001', amount=1000)

        assert data['id'] == 77
        assert calls.items[0]['url'].endswith('/v1/payments/9001/refunds')
        assert calls.items[0]['json'] == {'amount': 1000}

    def test_refund_total_sends_empty_body(self, client, calls):
        calls.response = FakeResponse(201, {'id': 78})
        client.refund_payment('9001')
        assert calls.items[0]['json'] == {}
