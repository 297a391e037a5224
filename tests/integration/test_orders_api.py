"""
Integration tests for the orders API.
"""


class TestCreateOrderAPI:
    """POST /api/v1/orders"""

    def test_create_order(self, client, customer, catalog):
        response = client.post('/api/v1/orders', headers=customer.headers, json={
            'branch_id': catalog.branch_id,
            'items': [{'product_id': catalog.drill_id, 'quantity': 5}],
            'total': 1,
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body['success'] is True
        order = body['data']
        assert order['status'] == 'pending'
        assert order['customer_id'] == customer.id
        assert order['subtotal'] == 50000.0
        assert order['discount'] == 2500.0
        assert order['tax'] == 9025.0
        assert order['total'] == 56525.0
        assert order['items'][0]['quantity'] == 5

    def test_create_order_invalid(self, client, customer, catalog):
        response = client.post('/api/v1/orders', headers=customer.headers, json={
            'branch_id': catalog.branch_id,
            'items': [{'product_id': catalog.retired_id, 'quantity': -1}],
        })

        assert response.status_code == 400
        body = response.get_json()
        assert body['success'] is False
        assert {e['field'] for e in body['errors']} == {'items[0].quantity', 'items[0].product_id'}

    def test_create_requires_token(self, client, catalog):
        response = client.post('/api/v1/orders', json={'branch_id': catalog.branch_id, 'items': []})
        assert response.status_code == 401


class TestReadOrdersAPI:
    """GET /api/v1/orders"""

    def test_get_order(self, client, customer, make_order):
        order_id = make_order(customer)
        response = client.get(f'/api/v1/orders/{order_id}', headers=customer.headers)

        assert response.status_code == 200
        assert response.get_json()['data']['id'] == order_id

    def test_missing_order(self, client, seller):
        response = client.get('/api/v1/orders/99999', headers=seller.headers)

        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'message': 'Pedido no encontrado'}

    def test_other_customers_order_is_hidden(self, client, customer, other_customer, make_order):
        order_id = make_order(customer)
        response = client.get(f'/api/v1/orders/{order_id}', headers=other_customer.headers)
        assert response.status_code == 404

    def test_list_is_scoped_for_clientes(self, client, customer, other_customer, seller, make_order):
        mine = make_order(customer)
        make_order(other_customer)

        response = client.get('/api/v1/orders', headers=customer.headers)
        data = response.get_json()['data']
        assert [o['id'] for o in data['orders']] == [mine]
        assert 'items' not in data['orders'][0]

        response = client.get('/api/v1/orders?limit=500', headers=seller.headers)
        data = response.get_json()['data']
        assert data['total'] == 2
        assert data['limit'] == 100

    def test_list_bad_filter(self, client, seller):
        response = client.get('/api/v1/orders?status=lost', headers=seller.headers)
        assert response.status_code == 400

    def test_stats(self, client, customer, accountant, make_order):
        make_order(customer)
        response = client.get('/api/v1/orders/stats', headers=accountant.headers)

        data = response.get_json()['data']
        assert data['total_orders'] == 1
        assert data['by_status'] == [{'status': 'pending', 'count': 1, 'total_amount': 56525.0}]


class TestOrderStatusAPI:
    """PUT /api/v1/orders/<id>/status"""

    def test_seller_approves(self, client, customer, seller, make_order):
        order_id = make_order(customer)
        response = client.put(f'/api/v1/orders/{order_id}/status', headers=seller.headers,
                              json={'estado': 'approved', 'notes': 'Pago en tienda'})

        assert response.status_code == 200
        order = response.get_json()['data']
        assert order['status'] == 'approved'
        assert order['seller_id'] == seller.id
        assert order['approved_at'] is not None
        assert order['notes'] == 'Pago en tienda'

    def test_cliente_cannot_change_status(self, client, customer, make_order):
        order_id = make_order(customer)
        response = client.put(f'/api/v1/orders/{order_id}/status', headers=customer.headers,
                              json={'status': 'cancelled'})
        assert response.status_code == 403

    def test_accountant_cannot_change_status(self, client, customer, accountant, make_order):
        order_id = make_order(customer)
        response = client.put(f'/api/v1/orders/{order_id}/status', headers=accountant.headers,
                              json={'status': 'approved'})
        assert response.status_code == 403

    def test_forbidden_transition(self, client, customer, warehouse, make_order):
        order_id = make_order(customer)
        response = client.put(f'/api/v1/orders/{order_id}/status', headers=warehouse.headers,
                              json={'status': 'delivered'})

        assert response.status_code == 409
        assert response.get_json()['success'] is False

    def test_unknown_status(self, client, customer, admin, make_order):
        order_id = make_order(customer)
        response = client.put(f'/api/v1/orders/{order_id}/status', headers=admin.headers,
                              json={'status': 'shipped'})
        assert response.status_code == 400

    def test_status_required(self, client, customer, admin, make_order):
        order_id = make_order(customer)
        response = client.put(f'/api/v1/orders/{order_id}/status', headers=admin.headers, json={})
        assert response.status_code == 400

    def test_missing_order(self, client, admin):
        response = client.put('/api/v1/orders/99999/status', headers=admin.headers, json={'status': 'approved'})
        assert response.status_code == 404
