"""
Sales service with transactional logic.
Handles sale confirmation, stock decrement and the stock ledger in one unit of work.
"""
import logging
import uuid
from datetime import datetime, date, time as dt_time
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from pos.exceptions import (
    EmptyCartError, InsufficientStockError, NotAuthenticatedError, ValidationError,
)
from pos.models import AppUser, Sale, SaleItem, SaleStatus, PaymentMethod
from pos.repositories import InventoryRepository, SaleRepository
from pos.services.cache_service import invalidate_user_views
from pos.services.cart_service import compute_totals
from pos.services.stock_ledger_service import append_movement
from pos.services.tax_settings_service import get_tax_settings
from pos.services.transaction_service import run_atomic
from pos.utils.formatters import display_price
from pos.utils.number_format import parse_quantity

logger = logging.getLogger(__name__)

# Collections whose snapshots change when a sale is written
SALE_COLLECTIONS = ('products', 'sales', 'stock_movements')


def sale_reason(sale: Sale) -> str:
    return f"Venta #{sale.short_id}"


def parse_payment_method(value) -> PaymentMethod:
    """Normalize a payment method from request data."""
    if isinstance(value, PaymentMethod):
        return value
    normalized = (str(value) if value is not None else '').strip().lower()
    try:
        return PaymentMethod(normalized)
    except ValueError:
        valid = ', '.join(m.value for m in PaymentMethod)
        raise ValidationError(f'Método de pago inválido: {value}. Opciones: {valid}')


def parse_sale_status(value) -> SaleStatus:
    """Normalize a sale status from request data."""
    if isinstance(value, SaleStatus):
        return value
    normalized = (str(value) if value is not None else '').strip().lower()
    try:
        return SaleStatus(normalized)
    except ValueError:
        valid = ', '.join(s.value for s in SaleStatus)
        raise ValidationError(f'Estado de venta inválido: {value}. Opciones: {valid}')


def merge_lines(lines: Iterable) -> Dict[int, int]:
    """
    Collapse cart lines into {product_id: quantity}, keeping first-seen order.

    Accepts CartLine objects or dicts with 'id'/'product_id' and 'quantity'.
    """
    merged: Dict[int, int] = {}
    for line in lines or ():
        if isinstance(line, dict):
            raw_id = line.get('product_id', line.get('id'))
            raw_qty = line.get('quantity')
        else:
            raw_id = line.product_id
            raw_qty = line.quantity
        try:
            product_id = int(raw_id)
        except (TypeError, ValueError):
            raise ValidationError(f'Producto inválido: {raw_id}')
        quantity = parse_quantity(raw_qty)
        merged[product_id] = merged.get(product_id, 0) + quantity
    return merged


def acting_user_name(session: Session, user_id: int) -> str:
    """Name recorded on ledger entries for the acting user."""
    user = session.get(AppUser, user_id)
    if user is None:
        raise NotAuthenticatedError()
    return user.user_name


def process_sale(
    session: Session,
    user_id: int,
    cart_lines: Iterable,
    payment_method,
    tax_settings=None,
) -> Sale:
    """
    Confirm a sale: validate stock, decrement it, write the ledger and the sale atomically.

    Args:
        cart_lines: CartLine objects or dicts (id/product_id, quantity); prices
            and names are taken from the catalog, not from the cart
        payment_method: PaymentMethod or its string value
        tax_settings: settings to apply; read from the store when omitted

    Returns:
        The committed Sale

    Raises:
        NotAuthenticatedError, EmptyCartError, ValidationError,
        ProductNotFoundError, InsufficientStockError (nothing written),
        StockConflictError, StoreUnavailableError, PartialWriteFailureError
    """
    if not user_id:
        raise NotAuthenticatedError()

    requested = merge_lines(cart_lines)
    if not requested:
        raise EmptyCartError()
    method = parse_payment_method(payment_method)

    if tax_settings is None:
        tax_settings = get_tax_settings(session, user_id)
    tax_enabled = bool(tax_settings.enabled)
    tax_rate = tax_settings.rate if tax_enabled else 0
    tax_name = tax_settings.name
    user_name = acting_user_name(session, user_id)

    def work() -> Sale:
        inventory = InventoryRepository(session, user_id)
        sales = SaleRepository(session, user_id)

        # 1. Lock and re-read every product, validate all lines before writing
        products = inventory.lock_products(requested.keys())
        for product_id, quantity in requested.items():
            product = products[product_id]
            if product.stock < quantity:
                raise InsufficientStockError(product_id, product.stock, quantity, product.name)

        # 2. Create Sale with catalog prices
        amounts = compute_totals(
            ((products[pid].price, qty) for pid, qty in requested.items()),
            tax_enabled,
            tax_rate,
        )
        sale = Sale(
            code=uuid.uuid4().hex,
            subtotal=amounts['subtotal'],
            tax=amounts['tax'],
            tax_rate=tax_rate,
            tax_name=tax_name,
            total=amounts['total'],
            payment_method=method,
            status=SaleStatus.COMPLETED,
        )
        for product_id, quantity in requested.items():
            product = products[product_id]
            sale.items.append(SaleItem(
                product_id=product_id,
                name=product.name,
                price=product.price,
                quantity=quantity,
            ))
        sales.add(sale)

        # 3. Decrement stock and append one movement per product
        reason = sale_reason(sale)
        for product_id, quantity in requested.items():
            product = products[product_id]
            previous = product.stock
            inventory.adjust_stock(product, previous - quantity)
            append_movement(
                session,
                user_id=user_id,
                product=product,
                quantity=-quantity,
                reason=reason,
                user_name=user_name,
                previous_stock=previous,
                new_stock=product.stock,
                sale=sale,
            )
        return sale

    sale = run_atomic(
        session,
        work,
        operation='process_sale',
        after_commit=[lambda s: invalidate_user_views(user_id, *SALE_COLLECTIONS)],
    )
    logger.info(
        f"[SALE] Sale {sale.id} (#{sale.short_id}) confirmed for user {user_id}: "
        f"{len(requested)} products, total {display_price(sale.total)}, {method.value}"
    )
    return sale


def get_sale(session: Session, user_id: int, sale_id: int) -> Sale:
    """Get a sale of the user or raise SaleNotFoundError."""
    return SaleRepository(session, user_id).get(sale_id)


def list_sales(
    session: Session,
    user_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status=None,
) -> List[Sale]:
    """Sales of the user, most recent first."""
    if status is not None:
        status = parse_sale_status(status)
    return SaleRepository(session, user_id).list(start=start, end=end, status=status)


def get_sales_by_date(session: Session, user_id: int, day: date) -> List[Sale]:
    """Sales made on a calendar day."""
    start = datetime.combine(day, dt_time.min)
    end = datetime.combine(day, dt_time.max)
    return list_sales(session, user_id, start=start, end=end)
