"""
Catalog service - product management for a user's inventory.

Stock never changes silently: initial stock and edits through the product
form are recorded as ledger movements like any other adjustment.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from pos.exceptions import NotAuthenticatedError, ValidationError
from pos.models import Product
from pos.repositories import InventoryRepository
from pos.services.cache_service import invalidate_user_views
from pos.services.sales_service import acting_user_name
from pos.services.stock_ledger_service import append_movement
from pos.services.stock_service import STOCK_COLLECTIONS
from pos.services.transaction_service import config_value, run_atomic
from pos.utils.number_format import parse_decimal, parse_quantity, to_money

logger = logging.getLogger(__name__)

INITIAL_STOCK_REASON = 'Stock inicial'
MANUAL_ADJUSTMENT_REASON = 'Ajuste manual'

EDITABLE_FIELDS = ('name', 'description', 'price', 'category', 'barcode', 'image')


def _clean_fields(data: dict, partial: bool = False) -> dict:
    """Validate product form fields; ``partial`` allows omitting name/price."""
    cleaned = {}

    if 'name' in data or not partial:
        name = (data.get('name') or '').strip()
        if not name:
            raise ValidationError('El nombre del producto es requerido')
        if len(name) > 200:
            raise ValidationError('El nombre no puede superar 200 caracteres')
        cleaned['name'] = name

    if 'price' in data or not partial:
        cleaned['price'] = to_money(parse_decimal(data.get('price'), field='precio', minimum=0))

    for field in ('description', 'category', 'barcode', 'image'):
        if field in data:
            value = data.get(field)
            value = value.strip() if isinstance(value, str) else value
            cleaned[field] = value or None

    if 'stock' in data:
        cleaned['stock'] = parse_quantity(data.get('stock'), field='stock', minimum=0)

    return cleaned


def create_product(session: Session, user_id: int, data: dict) -> Product:
    """
    Create a product; a non-zero initial stock is recorded as an entrada movement.

    Raises:
        ValidationError: missing name, negative price or stock
    """
    if not user_id:
        raise NotAuthenticatedError()
    fields = _clean_fields(data)
    initial_stock = fields.pop('stock', 0)
    user_name = acting_user_name(session, user_id)

    def work() -> Product:
        inventory = InventoryRepository(session, user_id)
        product = inventory.add(Product(stock=0, active=True, **fields))
        if initial_stock:
            inventory.adjust_stock(product, initial_stock)
            append_movement(
                session,
                user_id=user_id,
                product=product,
                quantity=initial_stock,
                reason=INITIAL_STOCK_REASON,
                user_name=user_name,
                previous_stock=0,
                new_stock=initial_stock,
            )
        return product

    product = run_atomic(
        session,
        work,
        operation='create_product',
        after_commit=[lambda p: invalidate_user_views(user_id, *STOCK_COLLECTIONS)],
    )
    logger.info(f"[CATALOG] Product {product.id} '{product.name}' created (stock {product.stock})")
    return product


def update_product(session: Session, user_id: int, product_id: int, data: dict) -> Product:
    """
    Update product fields. A stock value different from the current one is
    recorded as a manual adjustment movement.
    """
    if not user_id:
        raise NotAuthenticatedError()
    fields = _clean_fields(data, partial=True)
    target_stock: Optional[int] = fields.pop('stock', None)
    user_name = acting_user_name(session, user_id)

    def work() -> Product:
        inventory = InventoryRepository(session, user_id)
        product = inventory.lock_products([product_id], include_inactive=True)[int(product_id)]
        for field in EDITABLE_FIELDS:
            if field in fields:
                setattr(product, field, fields[field])

        if target_stock is not None and target_stock != product.stock:
            previous = product.stock
            inventory.adjust_stock(product, target_stock)
            append_movement(
                session,
                user_id=user_id,
                product=product,
                quantity=target_stock - previous,
                reason=MANUAL_ADJUSTMENT_REASON,
                user_name=user_name,
                previous_stock=previous,
                new_stock=target_stock,
            )
        return product

    product = run_atomic(
        session,
        work,
        operation='update_product',
        after_commit=[lambda p: invalidate_user_views(user_id, *STOCK_COLLECTIONS)],
    )
    logger.info(f"[CATALOG] Product {product.id} updated")
    return product


def deactivate_product(session: Session, user_id: int, product_id: int) -> Product:
    """Soft delete: the product disappears from the catalog but keeps its history."""
    if not user_id:
        raise NotAuthenticatedError()

    def work() -> Product:
        inventory = InventoryRepository(session, user_id)
        product = inventory.get_product(product_id, for_update=True)
        product.active = False
        return product

    product = run_atomic(
        session,
        work,
        operation='deactivate_product',
        after_commit=[lambda p: invalidate_user_views(user_id, 'products')],
    )
    logger.info(f"[CATALOG] Product {product.id} deactivated")
    return product


def get_product(session: Session, user_id: int, product_id: int, include_inactive: bool = False) -> Product:
    return InventoryRepository(session, user_id).get_product(product_id, include_inactive=include_inactive)


def list_products(session: Session, user_id: int, include_inactive: bool = False) -> List[Product]:
    inventory = InventoryRepository(session, user_id)
    return inventory.list_all() if include_inactive else inventory.list_active()


def get_low_stock_products(session: Session, user_id: int, threshold: Optional[int] = None) -> List[Product]:
    """Active products at or below the threshold (LOW_STOCK_THRESHOLD by default)."""
    if threshold is None:
        threshold = config_value('LOW_STOCK_THRESHOLD', 10)
    return InventoryRepository(session, user_id).low_stock(threshold)
