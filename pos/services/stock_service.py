"""Manual stock adjustments (entrada/salida) recorded in the stock ledger."""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from pos.exceptions import InsufficientStockError, NotAuthenticatedError, ValidationError
from pos.models import MovementType, Product
from pos.repositories import InventoryRepository
from pos.services.cache_service import invalidate_user_views
from pos.services.sales_service import acting_user_name
from pos.services.stock_ledger_service import append_movement
from pos.services.transaction_service import run_atomic
from pos.utils.number_format import parse_quantity

logger = logging.getLogger(__name__)

STOCK_COLLECTIONS = ('products', 'stock_movements')


def parse_movement_type(value) -> MovementType:
    if isinstance(value, MovementType):
        return value
    normalized = (str(value) if value is not None else '').strip().lower()
    try:
        return MovementType(normalized)
    except ValueError:
        raise ValidationError(f'Tipo de movimiento inválido: {value}. Opciones: entrada, salida')


def update_stock(
    session: Session,
    user_id: int,
    product_id: int,
    quantity,
    movement_type,
    reason: Optional[str] = None,
) -> Product:
    """
    Add (entrada) or remove (salida) units of a product with one ledger entry.

    Raises:
        ValidationError: quantity < 1, unknown movement type or empty reason
        ProductNotFoundError: product missing or owned by another user
        InsufficientStockError: a salida larger than the current stock
    """
    if not user_id:
        raise NotAuthenticatedError()

    quantity = parse_quantity(quantity)
    kind = parse_movement_type(movement_type)
    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('El motivo del movimiento es requerido')
    signed = quantity if kind == MovementType.ENTRADA else -quantity
    user_name = acting_user_name(session, user_id)

    def work() -> Product:
        inventory = InventoryRepository(session, user_id)
        product = inventory.lock_products([product_id])[int(product_id)]
        previous = product.stock
        if previous + signed < 0:
            raise InsufficientStockError(product.id, previous, quantity, product.name)
        inventory.adjust_stock(product, previous + signed)
        append_movement(
            session,
            user_id=user_id,
            product=product,
            quantity=signed,
            reason=reason,
            user_name=user_name,
            previous_stock=previous,
            new_stock=product.stock,
        )
        return product

    product = run_atomic(
        session,
        work,
        operation='update_stock',
        after_commit=[lambda p: invalidate_user_views(user_id, *STOCK_COLLECTIONS)],
    )
    logger.info(f"[STOCK] {kind.value} {quantity} units of product {product.id} ({reason}) -> {product.stock}")
    return product
