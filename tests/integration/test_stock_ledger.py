"""
Integration tests for the stock ledger, manual adjustments and catalog management.
"""

import pytest
from decimal import Decimal

from pos.exceptions import InsufficientStockError, ProductNotFoundError, ValidationError
from pos.models import MovementType, StockMovement
from pos.services import catalog_service
from pos.services.sales_service import process_sale
from pos.services.stock_ledger_service import (
    append_movement, get_movements, reconcile_stock,
)
from pos.services.stock_service import update_stock


class TestAppendMovement:

    def test_rejects_zero_quantity(self, session, user1, product_a):
        with pytest.raises(ValueError):
            append_movement(session, user_id=user1.id, product=product_a, quantity=0, reason='x',
                            user_name='u', previous_stock=5, new_stock=5)

    def test_rejects_inconsistent_arithmetic(self, session, user1, product_a):
        with pytest.raises(ValueError):
            append_movement(session, user_id=user1.id, product=product_a, quantity=2, reason='x',
                            user_name='u', previous_stock=5, new_stock=8)

    def test_type_follows_sign(self, session, user1, product_a):
        movement = append_movement(session, user_id=user1.id, product=product_a, quantity=-1, reason='x',
                                   user_name='u', previous_stock=5, new_stock=4)
        assert movement.type == MovementType.SALIDA


class TestGetMovements:

    def test_newest_first_and_repeatable(self, session, user1, product_a):
        update_stock(session, user1.id, product_a.id, 3, 'entrada', 'Compra')
        update_stock(session, user1.id, product_a.id, 1, 'salida', 'Merma')
        update_stock(session, user1.id, product_a.id, 2, 'entrada', 'Compra')

        first = [m.id for m in get_movements(session, user1.id, product_a.id)]
        second = [m.id for m in get_movements(session, user1.id, product_a.id)]
        assert first == second
        assert first == sorted(first, reverse=True)
        assert [m.quantity for m in get_movements(session, user1.id, product_a.id)] == [2, -1, 3]

    def test_limit(self, session, user1, product_a):
        for _ in range(3):
            update_stock(session, user1.id, product_a.id, 1, 'entrada', 'Compra')
        assert len(get_movements(session, user1.id, product_a.id, limit=2)) == 2

    def test_other_users_movements_are_hidden(self, session, user1, user2, product_a):
        update_stock(session, user1.id, product_a.id, 1, 'entrada', 'Compra')
        assert get_movements(session, user2.id, product_a.id) == []


class TestUpdateStock:

    def test_entrada(self, session, user1, product_a):
        product = update_stock(session, user1.id, product_a.id, 4, 'entrada', 'Compra proveedor')
        assert product.stock == 9
        movement = get_movements(session, user1.id, product_a.id)[0]
        assert movement.type == MovementType.ENTRADA
        assert movement.reason == 'Compra proveedor'
        assert (movement.previous_stock, movement.new_stock) == (5, 9)

    def test_salida_beyond_stock(self, session, user1, product_a):
        with pytest.raises(InsufficientStockError):
            update_stock(session, user1.id, product_a.id, 6, 'salida', 'Merma')
        assert product_a.stock == 5
        assert session.query(StockMovement).count() == 0

    def test_salida_to_zero(self, session, user1, product_a):
        assert update_stock(session, user1.id, product_a.id, 5, 'salida', 'Merma').stock == 0

    @pytest.mark.parametrize('quantity,kind,reason', [
        (0, 'entrada', 'x'),
        (1, 'transfer', 'x'),
        (1, 'entrada', '  '),
    ])
    def test_invalid_input(self, session, user1, product_a, quantity, kind, reason):
        with pytest.raises(ValidationError):
            update_stock(session, user1.id, product_a.id, quantity, kind, reason)

    def test_other_users_product(self, session, user1, product_user2):
        with pytest.raises(ProductNotFoundError):
            update_stock(session, user1.id, product_user2.id, 1, 'entrada', 'Compra')


class TestCatalog:

    def test_create_records_initial_stock(self, session, user1):
        product = catalog_service.create_product(session, user1.id, {
            'name': 'Nuevo', 'price': '12,50', 'stock': 7, 'category': 'Varios',
        })
        assert product.price == Decimal('12.50')
        assert product.stock == 7
        movement = get_movements(session, user1.id, product.id)[0]
        assert movement.reason == 'Stock inicial'
        assert (movement.previous_stock, movement.quantity, movement.new_stock) == (0, 7, 7)

    def test_create_without_stock_has_no_movement(self, session, user1):
        product = catalog_service.create_product(session, user1.id, {'name': 'Vacío', 'price': 1})
        assert product.stock == 0
        assert get_movements(session, user1.id, product.id) == []

    @pytest.mark.parametrize('data', [
        {'name': '', 'price': 1},
        {'name': 'X', 'price': -1},
        {'name': 'X', 'price': 1, 'stock': -2},
    ])
    def test_create_validation(self, session, user1, data):
        with pytest.raises(ValidationError):
            catalog_service.create_product(session, user1.id, data)

    def test_update_stock_through_edit_is_recorded(self, session, user1, product_a):
        product = catalog_service.update_product(session, user1.id, product_a.id, {'stock': 2, 'name': 'Renombrado'})
        assert product.name == 'Renombrado'
        movement = get_movements(session, user1.id, product_a.id)[0]
        assert movement.reason == 'Ajuste manual'
        assert movement.quantity == -3

    def test_deactivate_hides_product(self, session, user1, product_a):
        catalog_service.deactivate_product(session, user1.id, product_a.id)
        assert catalog_service.list_products(session, user1.id) == []
        assert [p.id for p in catalog_service.list_products(session, user1.id, include_inactive=True)] == [product_a.id]

    def test_low_stock(self, session, user1, product_factory):
        product_factory(user1, 'Plenty', '1.00', 50)
        low = product_factory(user1, 'Low', '1.00', 3)
        assert [p.id for p in catalog_service.get_low_stock_products(session, user1.id)] == [low.id]
        assert len(catalog_service.get_low_stock_products(session, user1.id, threshold=100)) == 2


class TestReconcile:

    def test_consistent_after_ledger_writes(self, session, user1):
        product = catalog_service.create_product(session, user1.id, {'name': 'R', 'price': 1, 'stock': 5})
        process_sale(session, user1.id, [{'id': product.id, 'quantity': 2}], 'efectivo')
        assert reconcile_stock(session, user1.id) == []

    def test_detects_stock_written_outside_the_ledger(self, session, user1):
        product = catalog_service.create_product(session, user1.id, {'name': 'R', 'price': 1, 'stock': 5})
        product.stock = 4
        session.commit()

        discrepancies = reconcile_stock(session, user1.id)
        assert discrepancies == [{
            'product_id': product.id,
            'product_name': 'R',
            'stock': 4,
            'ledger_stock': 5,
            'difference': -1,
            'last_movement_id': get_movements(session, user1.id, product.id)[0].id,
        }]

    def test_product_without_movements_and_stock(self, session, user1, product_a):
        # Fixture products are inserted directly with stock and no ledger history
        assert [d['product_id'] for d in reconcile_stock(session, user1.id)] == [product_a.id]
