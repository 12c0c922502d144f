"""
Stock ledger - append-only audit trail of stock movements.

Rows are only ever inserted; this module deliberately exposes no update or
delete path.
"""
import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from pos.exceptions import NotAuthenticatedError
from pos.models import Product, Sale, StockMovement, MovementType

logger = logging.getLogger(__name__)


def append_movement(
    session: Session,
    *,
    user_id: int,
    product: Product,
    quantity: int,
    reason: str,
    user_name: Optional[str],
    previous_stock: int,
    new_stock: int,
    sale: Optional[Sale] = None,
) -> StockMovement:
    """
    Stage a ledger entry inside the caller's transaction.

    ``quantity`` is signed: positive for entrada, negative for salida.
    """
    if not user_id:
        raise NotAuthenticatedError()
    if quantity == 0:
        raise ValueError('Un movimiento de stock no puede tener cantidad 0')
    if previous_stock + quantity != new_stock:
        raise ValueError(
            f'Movimiento inconsistente para producto {product.id}: '
            f'{previous_stock} {quantity:+d} != {new_stock}'
        )

    movement = StockMovement(
        user_id=user_id,
        product_id=product.id,
        sale_id=sale.id if sale is not None else None,
        type=MovementType.ENTRADA if quantity > 0 else MovementType.SALIDA,
        quantity=quantity,
        reason=reason,
        user_name=user_name,
        previous_stock=previous_stock,
        new_stock=new_stock,
    )
    session.add(movement)
    return movement


def get_movements(session: Session, user_id: int, product_id: int, limit: int = 50) -> List[StockMovement]:
    """Most recent movements for a product (newest first, stable order)."""
    if not user_id:
        raise NotAuthenticatedError()
    return (
        session.query(StockMovement)
        .filter(
            StockMovement.user_id == user_id,
            StockMovement.product_id == product_id,
        )
        .order_by(StockMovement.date.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def get_sale_movements(session: Session, user_id: int, sale_id: int) -> List[StockMovement]:
    """Movements written by a sale and its amendments, oldest first."""
    return (
        session.query(StockMovement)
        .filter(StockMovement.user_id == user_id, StockMovement.sale_id == sale_id)
        .order_by(StockMovement.id)
        .all()
    )


def reconcile_stock(session: Session, user_id: int, product_id: Optional[int] = None) -> List[dict]:
    """
    Compare product stock with the ledger.

    For every product, the ``new_stock`` of its latest movement should equal
    the current stock. Returns one dict per discrepancy; products without
    movements are reported only if their stock is not zero.
    """
    if not user_id:
        raise NotAuthenticatedError()

    latest_ids = (
        session.query(
            StockMovement.product_id.label('product_id'),
            func.max(StockMovement.id).label('movement_id'),
        )
        .filter(StockMovement.user_id == user_id)
        .group_by(StockMovement.product_id)
        .subquery()
    )

    query = (
        session.query(Product, StockMovement)
        .outerjoin(latest_ids, latest_ids.c.product_id == Product.id)
        .outerjoin(StockMovement, StockMovement.id == latest_ids.c.movement_id)
        .filter(Product.user_id == user_id)
    )
    if product_id is not None:
        query = query.filter(Product.id == product_id)

    discrepancies = []
    for product, movement in query.order_by(Product.id).all():
        ledger_stock = movement.new_stock if movement is not None else 0
        if ledger_stock != product.stock:
            discrepancies.append({
                'product_id': product.id,
                'product_name': product.name,
                'stock': product.stock,
                'ledger_stock': ledger_stock,
                'difference': product.stock - ledger_stock,
                'last_movement_id': movement.id if movement is not None else None,
            })

    if discrepancies:
        logger.warning(f"[LEDGER] {len(discrepancies)} stock discrepancies for user {user_id}")
    return discrepancies
