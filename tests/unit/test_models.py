"""
Unit tests for SQLAlchemy models.
"""

import pytest
import uuid
from decimal import Decimal
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from pos.models import AppUser, Product, Sale, SaleItem, SaleStatus, PaymentMethod


class TestAppUserModel:
    """Tests for AppUser model."""

    def test_create_user(self, session):
        suffix = str(uuid.uuid4())[:8]
        user = AppUser(email=f'test_{suffix}@example.com', display_name='Test User', active=True)
        session.add(user)
        session.commit()

        assert user.id is not None
        assert user.user_name == 'Test User'

    def test_user_name_falls_back_to_email(self, session):
        user = AppUser(email='nobody@example.com', active=True)
        session.add(user)
        session.commit()
        assert user.user_name == 'nobody@example.com'

    def test_user_email_unique(self, session, user1):
        session.add(AppUser(email=user1.email, active=True))
        with pytest.raises(IntegrityError):
            session.commit()


class TestProductModel:
    """Tests for Product model."""

    def test_stock_cannot_be_negative(self, session, user1):
        session.add(Product(user_id=user1.id, name='Bad', price=Decimal('1.00'), stock=-1))
        with pytest.raises(IntegrityError):
            session.commit()

    def test_version_bumps_on_update(self, session, product_a):
        assert product_a.version == 1
        product_a.stock = 4
        session.commit()
        assert product_a.version == 2

    def test_stale_update_is_rejected(self, session, product_a):
        # Another writer bumped the version behind our back
        session.execute(
            Product.__table__.update()
            .where(Product.__table__.c.id == product_a.id)
            .values(version=Product.__table__.c.version + 1)
        )
        product_a.stock = 3
        with pytest.raises(StaleDataError):
            session.flush()
        session.rollback()

    def test_to_dict_renders_price_as_string(self, product_a):
        data = product_a.to_dict()
        assert data['price'] == '10.00'
        assert data['stock'] == 5


class TestSaleModel:
    """Tests for Sale model."""

    def test_short_id_is_last_six_chars(self, session, user1, product_a):
        sale = Sale(
            user_id=user1.id,
            code='0123456789abcdef0123456789abcdef',
            subtotal=Decimal('10.00'),
            tax=Decimal('0.00'),
            total=Decimal('10.00'),
            payment_method=PaymentMethod.EFECTIVO,
        )
        sale.items.append(SaleItem(product_id=product_a.id, name='Producto A', price=Decimal('10.00'), quantity=1))
        session.add(sale)
        session.commit()

        assert sale.short_id == 'abcdef'
        assert sale.status == SaleStatus.COMPLETED
        assert sale.to_dict()['items'] == [
            {'id': product_a.id, 'name': 'Producto A', 'price': '10.00', 'quantity': 1}
        ]

    def test_status_holds_stock(self):
        assert SaleStatus.COMPLETED.holds_stock
        assert SaleStatus.PENDING.holds_stock
        assert not SaleStatus.CANCELLED.holds_stock

    def test_products_are_user_scoped_rows(self, session, user1, user2, product_factory):
        product_factory(user1, 'Same name', '1.00', 1)
        product_factory(user2, 'Same name', '1.00', 1)
        owners = {p.user_id for p in session.query(Product).filter_by(name='Same name')}
        assert owners == {user1.id, user2.id}
