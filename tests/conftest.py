import pytest
import uuid
from decimal import Decimal
from types import SimpleNamespace

from config import Config
from ferremas import create_app
from ferremas import database
from ferremas.database import create_all, drop_all, get_session
from ferremas.exceptions import UpstreamError
from ferremas.models import Branch, Brand, Category, Product, User, UserRole
from ferremas.services.auth_service import issue_token


class FakeGateway:
    """In-memory stand-in for MercadoPagoClient."""

    def __init__(self):
        self.access_token = 'TEST-access-token'
        self.preferences = []
        self.payments = {}
        self.fail_preference = False
        self.fail_lookup = False
        self.lookups = []

    def create_preference(self, items, external_reference, payer_email=None, metadata=None):
        if self.fail_preference:
            raise UpstreamError('Mercado Pago no respondió a tiempo')
        number = len(self.preferences) + 1
        preference = {
            'id': f'PREF-{number}',
            'init_point': f'https://www.mercadopago.cl/checkout/v1/redirect?pref_id=PREF-{number}',
            'sandbox_init_point': f'https://sandbox.mercadopago.cl/checkout/v1/redirect?pref_id=PREF-{number}',
            'external_reference': external_reference,
            'items': items,
            'payer_email': payer_email,
        }
        self.preferences.append(preference)
        return preference

    def checkout_url(self, preference):
        return preference['sandbox_init_point']

    def get_payment(self, payment_id):
        self.lookups.append(str(payment_id))
        if self.fail_lookup:
            raise UpstreamError('Mercado Pago no respondió a tiempo')
        return self.payments.get(str(payment_id))

    def search_payments(self, external_reference):
        return [p for p in self.payments.values() if p.get('external_reference') == external_reference]

    def set_payment(self, payment_id, status, external_reference=None, date_last_updated=None):
        self.payments[str(payment_id)] = {
            'id': int(payment_id),
            'status': status,
            'status_detail': f'{status}_detail',
            'external_reference': external_reference,
            'date_last_updated': date_last_updated,
        }


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application instance backed by a throwaway SQLite file."""
    test_config = type('TestConfig', (Config,), {
        'TESTING': True,
        'DEBUG': False,
        'ENV': 'testing',
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ferremas_test.db'}",
        'SQLALCHEMY_ECHO': False,
        'JWT_SECRET': 'test-jwt-secret',
        'MP_ACCESS_TOKEN': 'TEST-access-token',
        'MP_WEBHOOK_SECRET': None,
        'BCN_USER': None,
        'BCN_PASSWORD': None,
        'ORDER_STATUS_POLICY': 'strict',
    })
    app = create_app(test_config)

    with app.app_context():
        create_all()
        yield app
        get_session().remove()
        drop_all()
        database.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session for testing."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def gateway(app):
    """Fake Mercado Pago gateway installed on the app."""
    fake = FakeGateway()
    app.extensions['gateway'] = fake
    return fake


@pytest.fixture(scope='function')
def make_user(app):
    """Factory: persist a user and return its id, actor claims and auth headers."""
    def _make_user(role=UserRole.CLIENTE.value, email=None, password='password123', active=True):
        session = get_session()
        suffix = str(uuid.uuid4())[:8]
        user = User(
            email=email or f'{role}-{suffix}@ferremas.test',
            name=f'{role.title()} {suffix}',
            role=role,
            active=active,
        )
        user.set_password(password)
        session.add(user)
        session.commit()

        actor = {'id': user.id, 'email': user.email, 'name': user.name, 'role': user.role}
        token = issue_token(user)
        return SimpleNamespace(
            id=user.id,
            email=user.email,
            role=role,
            password=password,
            actor=actor,
            token=token,
            headers={'Authorization': f'Bearer {token}'},
        )
    return _make_user


@pytest.fixture(scope='function')
def customer(make_user):
    return make_user(UserRole.CLIENTE.value)


@pytest.fixture(scope='function')
def other_customer(make_user):
    return make_user(UserRole.CLIENTE.value)


@pytest.fixture(scope='function')
def seller(make_user):
    return make_user(UserRole.VENDEDOR.value)


@pytest.fixture(scope='function')
def warehouse(make_user):
    return make_user(UserRole.BODEGUERO.value)


@pytest.fixture(scope='function')
def accountant(make_user):
    return make_user(UserRole.CONTADOR.value)


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user(UserRole.ADMINISTRADOR.value)


@pytest.fixture(scope='function')
def catalog(app):
    """Branch plus three products; returns their ids."""
    session = get_session()
    branch = Branch(name='Sucursal Centro', address='Av. Providencia 1234', active=True)
    category = Category(name='Herramientas', active=True)
    brand = Brand(name='Bosch', country_of_origin='Alemania', active=True)
    session.add_all([branch, category, brand])
    session.flush()

    drill = Product(code='FER-001', name='Taladro Percutor', price=Decimal('10000.00'), stock=12,
                    category_id=category.id, brand_id=brand.id, active=True)
    hammer = Product(code='FER-002', name='Martillo', price=Decimal('4990.00'),
                     category_id=category.id, brand_id=brand.id, active=True)
    retired = Product(code='FER-999', name='Sierra descontinuada', price=Decimal('1500.00'),
                      category_id=category.id, active=False)
    session.add_all([drill, hammer, retired])
    session.commit()

    return SimpleNamespace(
        branch_id=branch.id,
        category_id=category.id,
        brand_id=brand.id,
        drill_id=drill.id,
        hammer_id=hammer.id,
        retired_id=retired.id,
    )


@pytest.fixture(scope='function')
def make_order(app, catalog):
    """Factory: create an order through the service and return its id."""
    from ferremas.services.order_service import create_order

    def _make_order(user, quantity=5, product_id=None, **extra):
        data = {
            'branch_id': catalog.branch_id,
            'items': [{'product_id': product_id or catalog.drill_id, 'quantity': quantity}],
        }
        data.update(extra)
        order = create_order(get_session(), data, user.actor)
        return order.id
    return _make_order
