import pytest
from decimal import Decimal
import uuid

from pos import create_app
from pos import database
from pos.database import get_session
from pos.models import AppUser, Product, TaxSettings


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite, no Redis)."""
    app = create_app('config.TestConfig')
    return app


@pytest.fixture(scope='function', autouse=True)
def app_context(app):
    """Fresh schema and an app context per test (requests reuse it)."""
    with app.app_context():
        database.create_all()
        yield
        database.db_session.remove()
        database.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Database session for testing."""
    session = get_session()
    yield session
    session.rollback()


def _make_user(session, label):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(
        external_uid=f'{label}-{suffix}',
        email=f'{label}-{suffix}@test.com',
        display_name=f'User {label}',
        active=True,
        email_verified=True,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def user1(session):
    """First test user."""
    return _make_user(session, 'user1')


@pytest.fixture(scope='function')
def user2(session):
    """Second test user for isolation tests."""
    return _make_user(session, 'user2')


def make_product(session, user, name, price, stock, category='General', active=True):
    product = Product(
        user_id=user.id,
        name=name,
        price=Decimal(str(price)),
        stock=stock,
        category=category,
        active=active,
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(session, user1):
    """Product A: price 10.00, stock 5."""
    return make_product(session, user1, 'Producto A', '10.00', 5, category='Bebidas')


@pytest.fixture(scope='function')
def product_b(session, user1):
    """Product B: price 2.50, stock 0."""
    return make_product(session, user1, 'Producto B', '2.50', 0, category='Snacks')


@pytest.fixture(scope='function')
def product_user2(session, user2):
    """Product owned by user2."""
    return make_product(session, user2, 'Producto U2', '7.00', 20)


@pytest.fixture(scope='function')
def no_tax(session, user1):
    """Disable tax for user1."""
    settings = TaxSettings(user_id=user1.id, enabled=False, rate=Decimal('0'), name='IVA')
    session.add(settings)
    session.commit()
    return settings


@pytest.fixture(scope='function')
def authenticated_client(client, user1):
    """Create authenticated client for user1."""
    with client.session_transaction() as sess:
        sess['user_id'] = user1.id
    return client


@pytest.fixture
def product_factory(session):
    """Create products for any user: product_factory(user, name, price, stock)."""
    def factory(user, name, price, stock, **kwargs):
        return make_product(session, user, name, price, stock, **kwargs)
    return factory
