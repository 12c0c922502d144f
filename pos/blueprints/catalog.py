"""Catalog blueprint for product and stock management."""
from flask import Blueprint, request, jsonify, g, current_app, Response

from pos.database import get_session
from pos.middleware import require_login
from pos.services import catalog_service
from pos.services.stock_ledger_service import get_movements, reconcile_stock
from pos.services.stock_service import update_stock
from pos.utils.number_format import parse_quantity

catalog_bp = Blueprint('catalog', __name__, url_prefix='/catalog')


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


@catalog_bp.route('/products', methods=['GET'])
@require_login
def list_products() -> Response:
    include_inactive = request.args.get('include_inactive', '').lower() in ('1', 'true')
    products = catalog_service.list_products(get_session(), g.user_id, include_inactive=include_inactive)
    return jsonify({'status': 'ok', 'products': [p.to_dict() for p in products]})


@catalog_bp.route('/products', methods=['POST'])
@require_login
def create_product() -> Response:
    product = catalog_service.create_product(get_session(), g.user_id, _json_body())
    return jsonify({'status': 'ok', 'product': product.to_dict()}), 201


@catalog_bp.route('/products/<int:product_id>', methods=['GET'])
@require_login
def get_product(product_id: int) -> Response:
    product = catalog_service.get_product(get_session(), g.user_id, product_id)
    return jsonify({'status': 'ok', 'product': product.to_dict()})


@catalog_bp.route('/products/<int:product_id>', methods=['PUT', 'PATCH'])
@require_login
def update_product(product_id: int) -> Response:
    product = catalog_service.update_product(get_session(), g.user_id, product_id, _json_body())
    return jsonify({'status': 'ok', 'product': product.to_dict()})


@catalog_bp.route('/products/<int:product_id>', methods=['DELETE'])
@require_login
def deactivate_product(product_id: int) -> Response:
    catalog_service.deactivate_product(get_session(), g.user_id, product_id)
    return jsonify({'status': 'ok', 'message': 'Producto desactivado'})


@catalog_bp.route('/products/<int:product_id>/stock', methods=['POST'])
@require_login
def adjust_stock(product_id: int) -> Response:
    """Manual entrada/salida: {"quantity": 5, "type": "entrada", "reason": "Compra"}."""
    data = _json_body()
    product = update_stock(
        get_session(),
        g.user_id,
        product_id,
        data.get('quantity'),
        data.get('type'),
        data.get('reason'),
    )
    return jsonify({'status': 'ok', 'product': product.to_dict()})


@catalog_bp.route('/products/<int:product_id>/movements', methods=['GET'])
@require_login
def product_movements(product_id: int) -> Response:
    db_session = get_session()
    catalog_service.get_product(db_session, g.user_id, product_id, include_inactive=True)
    limit = parse_quantity(request.args.get('limit', '50'), field='limit')
    movements = get_movements(db_session, g.user_id, product_id, limit=min(limit, 500))
    return jsonify({'status': 'ok', 'movements': [m.to_dict() for m in movements]})


@catalog_bp.route('/low-stock', methods=['GET'])
@require_login
def low_stock() -> Response:
    threshold = request.args.get('threshold')
    if threshold is not None:
        threshold = parse_quantity(threshold, field='threshold', minimum=0)
    products = catalog_service.get_low_stock_products(get_session(), g.user_id, threshold)
    return jsonify({'status': 'ok', 'products': [p.to_dict() for p in products]})


@catalog_bp.route('/reconcile', methods=['GET'])
@require_login
def reconcile() -> Response:
    """Products whose stock does not match the ledger (after a partial write)."""
    discrepancies = reconcile_stock(get_session(), g.user_id)
    if discrepancies:
        current_app.logger.warning(f"[LEDGER] Reconcile requested by user {g.user_id}: {len(discrepancies)} discrepancies")
    return jsonify({'status': 'ok', 'consistent': not discrepancies, 'discrepancies': discrepancies})
