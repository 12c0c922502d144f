"""Sales blueprint for POS cart, checkout and sale history."""
from datetime import datetime
from typing import Optional

from flask import Blueprint, request, session, jsonify, g, Response

from pos.database import get_session
from pos.exceptions import ValidationError
from pos.middleware import require_login
from pos.repositories import InventoryRepository
from pos.services import cart_service
from pos.services.cart_service import AddItem, SetQuantity, RemoveItem, Clear
from pos.services.sale_amendment_service import amend_sale, get_sale_summary
from pos.services.sales_service import process_sale, list_sales
from pos.services.tax_settings_service import get_tax_settings
from pos.utils.number_format import parse_quantity

sales_bp = Blueprint('sales', __name__, url_prefix='/sales')

CART_SESSION_KEY = 'cart_by_user'


def _load_cart(user_id: int) -> cart_service.Cart:
    carts = session.get(CART_SESSION_KEY) or {}
    return cart_service.Cart.from_list(carts.get(str(user_id)))


def _save_cart(user_id: int, cart: cart_service.Cart) -> None:
    carts = dict(session.get(CART_SESSION_KEY) or {})
    if cart.is_empty:
        carts.pop(str(user_id), None)
    else:
        carts[str(user_id)] = cart.to_list()
    session[CART_SESSION_KEY] = carts
    session.modified = True


def _cart_response(user_id: int, cart: cart_service.Cart) -> Response:
    tax_settings = get_tax_settings(get_session(), user_id)
    totals = cart_service.totals(cart, tax_settings)
    return jsonify({
        'status': 'ok',
        'cart': {
            'items': cart.to_list(),
            'subtotal': str(totals['subtotal']),
            'tax': str(totals['tax']),
            'total': str(totals['total']),
            'items_count': totals['items_count'],
            'total_items': totals['total_items'],
            'tax_settings': tax_settings.to_dict(),
        },
    })


def _product_from_body(data: dict):
    product_id = data.get('product_id', data.get('id'))
    try:
        product_id = int(product_id)
    except (TypeError, ValueError):
        raise ValidationError(f'Producto inválido: {product_id}')
    return InventoryRepository(get_session(), g.user_id).get_product(product_id)


def _parse_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f'Fecha inválida para {field}: {value}')


@sales_bp.route('/cart', methods=['GET'])
@require_login
def view_cart() -> Response:
    return _cart_response(g.user_id, _load_cart(g.user_id))


@sales_bp.route('/cart/add', methods=['POST'])
@require_login
def cart_add() -> Response:
    data = request.get_json(silent=True) or {}
    product = _product_from_body(data)
    quantity = parse_quantity(data.get('quantity', 1))
    cart = cart_service.reduce(_load_cart(g.user_id), AddItem(product, quantity))
    _save_cart(g.user_id, cart)
    return _cart_response(g.user_id, cart)


@sales_bp.route('/cart/update', methods=['POST'])
@require_login
def cart_update() -> Response:
    data = request.get_json(silent=True) or {}
    product = _product_from_body(data)
    quantity = parse_quantity(data.get('quantity'), minimum=None)
    cart = cart_service.reduce(_load_cart(g.user_id), SetQuantity(product, quantity))
    _save_cart(g.user_id, cart)
    return _cart_response(g.user_id, cart)


@sales_bp.route('/cart/remove', methods=['POST'])
@require_login
def cart_remove() -> Response:
    data = request.get_json(silent=True) or {}
    try:
        product_id = int(data.get('product_id', data.get('id')))
    except (TypeError, ValueError):
        raise ValidationError('Producto inválido')
    cart = cart_service.reduce(_load_cart(g.user_id), RemoveItem(product_id))
    _save_cart(g.user_id, cart)
    return _cart_response(g.user_id, cart)


@sales_bp.route('/cart/clear', methods=['POST'])
@require_login
def cart_clear() -> Response:
    cart = cart_service.reduce(_load_cart(g.user_id), Clear())
    _save_cart(g.user_id, cart)
    return _cart_response(g.user_id, cart)


@sales_bp.route('/checkout', methods=['POST'])
@require_login
def checkout() -> Response:
    """Confirm the session cart as a sale; the cart is cleared only on success."""
    data = request.get_json(silent=True) or {}
    cart = _load_cart(g.user_id)
    sale = process_sale(get_session(), g.user_id, cart.lines, data.get('payment_method', 'efectivo'))
    _save_cart(g.user_id, cart_service.Cart())
    return jsonify({
        'status': 'ok',
        'message': 'Venta procesada exitosamente',
        'sale': sale.to_dict(),
    }), 201


@sales_bp.route('/', methods=['GET'])
@require_login
def sales_list() -> Response:
    start = _parse_datetime(request.args.get('start'), 'start')
    end = _parse_datetime(request.args.get('end'), 'end')
    sales = list_sales(get_session(), g.user_id, start=start, end=end, status=request.args.get('status'))
    return jsonify({'status': 'ok', 'sales': [s.to_dict() for s in sales]})


@sales_bp.route('/<int:sale_id>', methods=['GET'])
@require_login
def sale_detail(sale_id: int) -> Response:
    return jsonify({'status': 'ok', 'sale': get_sale_summary(get_session(), g.user_id, sale_id)})


@sales_bp.route('/<int:sale_id>/amend', methods=['POST'])
@require_login
def sale_amend(sale_id: int) -> Response:
    """Replace items and/or status: {"items": [{"id": 1, "quantity": 2}], "status": "completed"}."""
    data = request.get_json(silent=True) or {}
    sale = amend_sale(get_session(), g.user_id, sale_id, data.get('items') or [], data.get('status'))
    return jsonify({'status': 'ok', 'sale': sale.to_dict()})
