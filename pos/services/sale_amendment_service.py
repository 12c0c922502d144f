"""
Sale Amendment Service

Allows correction of a recorded sale by:
- Replacing its items (quantities, added/removed products)
- Changing its status (completed / pending / cancelled)
- Writing compensating stock movements for every net stock change

Original items are restored to stock when the sale's previous status held
stock; the new items are then deducted unless the new status is cancelled.
"""
import logging
from collections import OrderedDict
from typing import Dict, Iterable

from sqlalchemy.orm import Session

from pos.exceptions import (
    EmptyCartError, InsufficientStockError, NotAuthenticatedError, ProductNotFoundError,
)
from pos.models import Sale, SaleItem, SaleStatus
from pos.repositories import InventoryRepository, SaleRepository
from pos.services.cache_service import invalidate_user_views
from pos.services.cart_service import compute_totals
from pos.services.sales_service import (
    SALE_COLLECTIONS, acting_user_name, merge_lines, parse_sale_status,
)
from pos.services.stock_ledger_service import append_movement, get_sale_movements
from pos.services.transaction_service import run_atomic

logger = logging.getLogger(__name__)


def amendment_reason(sale: Sale, new_status: SaleStatus) -> str:
    if new_status == SaleStatus.CANCELLED:
        return f"Cancelación venta #{sale.short_id}"
    return f"Ajuste venta #{sale.short_id}"


def amend_sale(
    session: Session,
    user_id: int,
    sale_id: int,
    new_items: Iterable,
    new_status,
) -> Sale:
    """
    Amend a sale atomically.

    Args:
        sale_id: ID of the sale to amend (must belong to the user)
        new_items: CartLine objects or dicts (id/product_id, quantity). May be
            empty only when cancelling, in which case the original items stay
            on record.
        new_status: SaleStatus or its string value

    Process:
        1. Lock the sale
        2. Credit original quantities back when the old status held stock
        3. Validate and debit the new quantities unless cancelling
        4. Apply every non-zero net delta with one ledger entry each
        5. Replace items and recompute totals with the sale's stored tax rate

    Raises:
        SaleNotFoundError, ProductNotFoundError, InsufficientStockError,
        StockInconsistencyError, ValidationError, StockConflictError,
        StoreUnavailableError, PartialWriteFailureError
    """
    if not user_id:
        raise NotAuthenticatedError()

    status = parse_sale_status(new_status)
    requested = merge_lines(new_items)
    if not requested and status != SaleStatus.CANCELLED:
        raise EmptyCartError()
    user_name = acting_user_name(session, user_id)

    def work() -> Sale:
        inventory = InventoryRepository(session, user_id)
        sales = SaleRepository(session, user_id)

        # Step 1: Lock sale
        sale = sales.get(sale_id, for_update=True)
        old_status = sale.status

        original: Dict[int, dict] = OrderedDict()
        for item in sale.items:
            entry = original.setdefault(item.product_id, {'quantity': 0, 'price': item.price, 'name': item.name})
            entry['quantity'] += item.quantity

        # Step 2: Restore original quantities
        deltas: Dict[int, int] = {}
        if old_status.holds_stock:
            for product_id, entry in original.items():
                deltas[product_id] = deltas.get(product_id, 0) + entry['quantity']

        products = inventory.lock_products(
            set(original.keys()) | set(requested.keys()), include_inactive=True
        )
        for product_id in requested:
            if not products[product_id].active and product_id not in original:
                raise ProductNotFoundError(product_id)

        # Step 3: Validate and deduct new quantities
        if status.holds_stock:
            for product_id, quantity in requested.items():
                product = products[product_id]
                available = product.stock + deltas.get(product_id, 0)
                if available < quantity:
                    raise InsufficientStockError(product_id, available, quantity, product.name)
                deltas[product_id] = deltas.get(product_id, 0) - quantity

        # Step 4: Apply net deltas
        reason = amendment_reason(sale, status)
        for product_id in sorted(deltas):
            delta = deltas[product_id]
            if delta == 0:
                continue
            product = products[product_id]
            previous = product.stock
            inventory.adjust_stock(product, previous + delta)
            append_movement(
                session,
                user_id=user_id,
                product=product,
                quantity=delta,
                reason=reason,
                user_name=user_name,
                previous_stock=previous,
                new_stock=product.stock,
                sale=sale,
            )

        # Step 5: Replace items (cancelling with no items keeps the originals)
        if requested:
            sale.items.clear()
            for product_id, quantity in requested.items():
                if product_id in original:
                    price = original[product_id]['price']
                    name = original[product_id]['name']
                else:
                    price = products[product_id].price
                    name = products[product_id].name
                sale.items.append(SaleItem(product_id=product_id, name=name, price=price, quantity=quantity))

        amounts = compute_totals(
            ((item.price, item.quantity) for item in sale.items),
            sale.tax_rate > 0,
            sale.tax_rate,
        )
        sale.subtotal = amounts['subtotal']
        sale.tax = amounts['tax']
        sale.total = amounts['total']
        sale.status = status

        logger.info(
            f"[SALE] Amending sale {sale.id} (#{sale.short_id}): {old_status.value} -> {status.value}, "
            f"{sum(1 for d in deltas.values() if d)} stock changes"
        )
        return sale

    return run_atomic(
        session,
        work,
        operation='amend_sale',
        after_commit=[lambda s: invalidate_user_views(user_id, *SALE_COLLECTIONS)],
    )


def get_sale_summary(session: Session, user_id: int, sale_id: int) -> dict:
    """Sale with every stock movement written by it and its amendments."""
    sale = SaleRepository(session, user_id).get(sale_id)
    data = sale.to_dict()
    data['movements'] = [m.to_dict() for m in get_sale_movements(session, user_id, sale.id)]
    return data
