"""Reports blueprint - sales statistics and inventory valuation."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from flask import Blueprint, request, jsonify, g, Response

from pos.database import get_session
from pos.exceptions import ValidationError
from pos.middleware import require_login
from pos.services import report_service
from pos.utils.number_format import parse_quantity

reports_bp = Blueprint('reports', __name__, url_prefix='/reports')


def _parse_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f'Fecha inválida para {field}: {value}')


def _jsonable(value):
    """Render Decimals as strings inside nested report structures."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


@reports_bp.route('/sales', methods=['GET'])
@require_login
def sales_report() -> Response:
    db_session = get_session()
    start = _parse_datetime(request.args.get('start'), 'start')
    end = _parse_datetime(request.args.get('end'), 'end')
    limit = parse_quantity(request.args.get('limit', '10'), field='limit')
    return jsonify(_jsonable({
        'status': 'ok',
        'stats': report_service.get_sales_stats(db_session, g.user_id, start, end),
        'top_products': report_service.get_top_products(db_session, g.user_id, start, end, limit=limit),
        'categories': report_service.get_category_breakdown(db_session, g.user_id, start, end),
    }))


@reports_bp.route('/inventory', methods=['GET'])
@require_login
def inventory_report() -> Response:
    threshold = request.args.get('threshold')
    if threshold is not None:
        threshold = parse_quantity(threshold, field='threshold', minimum=0)
    report = report_service.get_inventory_report(
        get_session(), g.user_id, category=request.args.get('category'), low_stock_threshold=threshold
    )
    return jsonify(_jsonable({'status': 'ok', **report}))
