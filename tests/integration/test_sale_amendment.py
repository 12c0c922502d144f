"""
Integration tests for sale amendments (items and status changes).
"""

import pytest
from decimal import Decimal

from pos.exceptions import (
    EmptyCartError, InsufficientStockError, ProductNotFoundError, SaleNotFoundError,
    StockInconsistencyError,
)
from pos.models import MovementType, SaleStatus
from pos.repositories import InventoryRepository
from pos.services.catalog_service import deactivate_product
from pos.services.sale_amendment_service import amend_sale, get_sale_summary
from pos.services.sales_service import process_sale
from pos.services.stock_ledger_service import get_movements


def _line(product, quantity):
    return {'id': product.id, 'quantity': quantity}


@pytest.fixture
def sale_of_two(session, user1, product_factory, no_tax):
    """Completed sale of 2 units of a product that started with 10."""
    product = product_factory(user1, 'P', '10.00', 10)
    sale = process_sale(session, user1.id, [_line(product, 2)], 'efectivo')
    return sale, product


class TestCancellation:

    def test_cancel_restores_stock(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        assert product.stock == 8

        amended = amend_sale(session, user1.id, sale.id, [], 'cancelled')

        assert amended.status == SaleStatus.CANCELLED
        assert product.stock == 10
        latest = get_movements(session, user1.id, product.id)[0]
        assert latest.type == MovementType.ENTRADA
        assert latest.quantity == 2
        assert latest.previous_stock == 8
        assert latest.new_stock == 10
        assert latest.reason == f'Cancelación venta #{sale.short_id}'

    def test_cancel_without_items_keeps_original_items(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        amended = amend_sale(session, user1.id, sale.id, [], 'cancelled')

        assert [(i.product_id, i.quantity) for i in amended.items] == [(product.id, 2)]
        assert amended.total == Decimal('20.00')

    def test_cancel_twice_does_not_restore_twice(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        amend_sale(session, user1.id, sale.id, [], 'cancelled')
        amend_sale(session, user1.id, sale.id, [], 'cancelled')

        assert product.stock == 10
        assert len(get_movements(session, user1.id, product.id)) == 2

    def test_round_trip_completed_cancelled_completed(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        amend_sale(session, user1.id, sale.id, [], 'cancelled')
        amend_sale(session, user1.id, sale.id, [_line(product, 2)], 'completed')

        assert product.stock == 8
        quantities = [m.quantity for m in reversed(get_movements(session, user1.id, product.id))]
        assert quantities == [-2, 2, -2]

    def test_reactivation_checks_stock(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        amend_sale(session, user1.id, sale.id, [], 'cancelled')
        with pytest.raises(InsufficientStockError):
            amend_sale(session, user1.id, sale.id, [_line(product, 11)], 'completed')
        assert product.stock == 10


class TestItemChanges:

    def test_increase_quantity_deducts_difference(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        amended = amend_sale(session, user1.id, sale.id, [_line(product, 5)], 'completed')

        assert product.stock == 5
        latest = get_movements(session, user1.id, product.id)[0]
        assert latest.quantity == -3
        assert latest.reason == f'Ajuste venta #{sale.short_id}'
        assert amended.subtotal == Decimal('50.00')
        assert amended.total == Decimal('50.00')

    def test_decrease_quantity_returns_difference(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        amend_sale(session, user1.id, sale.id, [_line(product, 1)], 'completed')
        assert product.stock == 9

    def test_same_items_write_no_movement(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        amend_sale(session, user1.id, sale.id, [_line(product, 2)], 'completed')
        assert len(get_movements(session, user1.id, product.id)) == 1

    def test_original_units_count_as_available(self, session, user1, sale_of_two):
        """Stock 8 + 2 already in the sale allows amending up to 10 units."""
        sale, product = sale_of_two
        amend_sale(session, user1.id, sale.id, [_line(product, 10)], 'completed')
        assert product.stock == 0

    def test_over_request_leaves_everything_untouched(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        with pytest.raises(InsufficientStockError) as exc:
            amend_sale(session, user1.id, sale.id, [_line(product, 11)], 'completed')
        assert exc.value.available == 10
        assert product.stock == 8
        assert sale.items[0].quantity == 2

    def test_swap_product_keeps_old_price_and_uses_catalog_for_new(self, session, user1, sale_of_two, product_factory):
        sale, product = sale_of_two
        other = product_factory(user1, 'Other', '3.00', 4)
        product.price = Decimal('99.00')
        session.commit()

        amended = amend_sale(session, user1.id, sale.id, [_line(product, 1), _line(other, 2)], 'completed')

        prices = {i.product_id: i.price for i in amended.items}
        assert prices[product.id] == Decimal('10.00')
        assert prices[other.id] == Decimal('3.00')
        assert amended.total == Decimal('16.00')
        assert product.stock == 9
        assert other.stock == 2

    def test_tax_rate_of_the_sale_is_reused(self, session, user1, product_factory):
        product = product_factory(user1, 'Taxed', '10.00', 10)
        sale = process_sale(session, user1.id, [_line(product, 1)], 'efectivo')
        amended = amend_sale(session, user1.id, sale.id, [_line(product, 2)], 'completed')

        assert amended.tax == Decimal('3.80')
        assert amended.total == Decimal('23.80')

    def test_timestamp_is_preserved(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        original_timestamp = sale.timestamp
        amended = amend_sale(session, user1.id, sale.id, [_line(product, 3)], 'pending')
        assert amended.timestamp == original_timestamp

    def test_empty_items_require_cancellation(self, session, user1, sale_of_two):
        sale, _ = sale_of_two
        with pytest.raises(EmptyCartError):
            amend_sale(session, user1.id, sale.id, [], 'completed')

    def test_new_inactive_product_is_rejected(self, session, user1, sale_of_two, product_factory):
        sale, product = sale_of_two
        retired = product_factory(user1, 'Retired', '1.00', 5, active=False)
        with pytest.raises(ProductNotFoundError):
            amend_sale(session, user1.id, sale.id, [_line(product, 2), _line(retired, 1)], 'completed')

    def test_cancel_restores_deactivated_product(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        deactivate_product(session, user1.id, product.id)
        amend_sale(session, user1.id, sale.id, [], 'cancelled')
        assert product.stock == 10


class TestStatusTransitions:

    def test_completed_to_pending_keeps_stock_deducted(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        amended = amend_sale(session, user1.id, sale.id, [_line(product, 2)], 'pending')
        assert amended.status == SaleStatus.PENDING
        assert product.stock == 8

    def test_pending_to_cancelled_restores(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        amend_sale(session, user1.id, sale.id, [_line(product, 2)], 'pending')
        amend_sale(session, user1.id, sale.id, [], 'cancelled')
        assert product.stock == 10


class TestConsistency:

    def test_negative_stock_is_a_hard_error(self, session, user1, product_a):
        """Stock is never clamped: a write below zero fails."""
        inventory = InventoryRepository(session, user1.id)
        with pytest.raises(StockInconsistencyError):
            inventory.adjust_stock(product_a, -1)
        assert product_a.stock == 5

    def test_unknown_sale(self, session, user1):
        with pytest.raises(SaleNotFoundError):
            amend_sale(session, user1.id, 999, [], 'cancelled')

    def test_other_users_sale_is_not_found(self, session, user2, sale_of_two):
        sale, product = sale_of_two
        with pytest.raises(SaleNotFoundError):
            amend_sale(session, user2.id, sale.id, [], 'cancelled')
        assert product.stock == 8

    def test_summary_lists_sale_movements(self, session, user1, sale_of_two):
        sale, product = sale_of_two
        amend_sale(session, user1.id, sale.id, [], 'cancelled')
        summary = get_sale_summary(session, user1.id, sale.id)
        assert [m['quantity'] for m in summary['movements']] == [-2, 2]
        assert summary['status'] == 'cancelled'
