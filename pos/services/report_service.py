"""
Report service - sales statistics and inventory valuation.

Results are memoized per user in the cache ('reports' module) and dropped
whenever a sale, amendment or stock adjustment commits.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.orm import Session

from pos.exceptions import NotAuthenticatedError
from pos.models import SaleStatus
from pos.repositories import InventoryRepository, SaleRepository
from pos.services.cache_service import get_cache
from pos.services.transaction_service import config_value
from pos.utils.number_format import to_money

logger = logging.getLogger(__name__)

UNCATEGORIZED = 'Sin categoría'
STATUS_OUT_OF_STOCK = 'Sin stock'
STATUS_LOW_STOCK = 'Stock bajo'
STATUS_NORMAL = 'Normal'


def _range_key(start: Optional[datetime], end: Optional[datetime]) -> str:
    return f"{start.isoformat() if start else '-'}:{end.isoformat() if end else '-'}"


def _memoize(user_id: int, key: str, loader: Callable[[], dict]):
    try:
        cache = get_cache()
    except RuntimeError:
        return loader()
    return cache.memoize(user_id, 'reports', key, loader, ttl=config_value('CACHE_REPORTS_TTL', 120))


def _completed_sales(session: Session, user_id: int, start=None, end=None):
    return SaleRepository(session, user_id).list(start=start, end=end, status=SaleStatus.COMPLETED)


def get_sales_stats(session: Session, user_id: int, start: Optional[datetime] = None,
                    end: Optional[datetime] = None) -> dict:
    """
    Totals over completed sales in the range.

    Returns:
        dict with total_sales, total_revenue, total_items, average_ticket
    """
    if not user_id:
        raise NotAuthenticatedError()

    def load() -> dict:
        sales = _completed_sales(session, user_id, start, end)
        total_revenue = sum((s.total for s in sales), Decimal('0'))
        total_items = sum(item.quantity for s in sales for item in s.items)
        return {
            'total_sales': len(sales),
            'total_revenue': to_money(total_revenue),
            'total_items': total_items,
            'average_ticket': to_money(total_revenue / len(sales)) if sales else Decimal('0.00'),
        }

    return _memoize(user_id, f"stats:{_range_key(start, end)}", load)


def get_top_products(session: Session, user_id: int, start: Optional[datetime] = None,
                     end: Optional[datetime] = None, limit: int = 10) -> list:
    """Best sellers by quantity over completed sales."""
    if not user_id:
        raise NotAuthenticatedError()

    def load() -> list:
        sales = _completed_sales(session, user_id, start, end)
        categories = {p.id: p.category for p in InventoryRepository(session, user_id).list_all()}
        totals = {}
        for sale in sales:
            for item in sale.items:
                row = totals.setdefault(item.product_id, {
                    'product_id': item.product_id,
                    'name': item.name,
                    'category': categories.get(item.product_id) or 'N/A',
                    'quantity': 0,
                    'revenue': Decimal('0'),
                })
                row['quantity'] += item.quantity
                row['revenue'] += item.price * item.quantity
        ranked = sorted(totals.values(), key=lambda r: (-r['quantity'], r['name']))[:limit]
        for row in ranked:
            row['revenue'] = to_money(row['revenue'])
        return ranked

    return _memoize(user_id, f"top:{limit}:{_range_key(start, end)}", load)


def get_category_breakdown(session: Session, user_id: int, start: Optional[datetime] = None,
                           end: Optional[datetime] = None) -> list:
    """Quantity, revenue and number of sale lines per product category, by revenue."""
    if not user_id:
        raise NotAuthenticatedError()

    def load() -> list:
        sales = _completed_sales(session, user_id, start, end)
        categories = {p.id: p.category for p in InventoryRepository(session, user_id).list_all()}
        breakdown = {}
        for sale in sales:
            for item in sale.items:
                category = categories.get(item.product_id) or UNCATEGORIZED
                row = breakdown.setdefault(category, {
                    'category': category, 'quantity': 0, 'revenue': Decimal('0'), 'sales': 0,
                })
                row['quantity'] += item.quantity
                row['revenue'] += item.price * item.quantity
                row['sales'] += 1
        rows = sorted(breakdown.values(), key=lambda r: -r['revenue'])
        for row in rows:
            row['revenue'] = to_money(row['revenue'])
        return rows

    return _memoize(user_id, f"categories:{_range_key(start, end)}", load)


def stock_status(stock: int, threshold: int) -> str:
    if stock == 0:
        return STATUS_OUT_OF_STOCK
    if stock <= threshold:
        return STATUS_LOW_STOCK
    return STATUS_NORMAL


def get_inventory_report(session: Session, user_id: int, category: Optional[str] = None,
                         low_stock_threshold: Optional[int] = None) -> dict:
    """
    Valuation of active products, optionally filtered by category.

    Returns:
        dict with 'products' (id, name, category, stock, price, value, status)
        and 'totals' (total_products, total_value, out_of_stock, low_stock)
    """
    if not user_id:
        raise NotAuthenticatedError()
    if low_stock_threshold is None:
        low_stock_threshold = config_value('LOW_STOCK_THRESHOLD', 10)

    def load() -> dict:
        products = InventoryRepository(session, user_id).list_active()
        if category:
            products = [p for p in products if p.category == category]
        rows = [{
            'id': p.id,
            'name': p.name,
            'category': p.category,
            'stock': p.stock,
            'price': to_money(p.price),
            'value': to_money(p.price * p.stock),
            'status': stock_status(p.stock, low_stock_threshold),
        } for p in products]
        return {
            'products': rows,
            'totals': {
                'total_products': len(rows),
                'total_value': to_money(sum((r['value'] for r in rows), Decimal('0'))),
                'out_of_stock': sum(1 for r in rows if r['stock'] == 0),
                'low_stock': sum(1 for r in rows if 0 < r['stock'] <= low_stock_threshold),
            },
        }

    return _memoize(user_id, f"inventory:{category or '*'}:{low_stock_threshold}", load)
