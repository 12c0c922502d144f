"""Settings blueprint - tax configuration."""
from flask import Blueprint, request, jsonify, g, Response

from pos.database import get_session
from pos.middleware import require_login
from pos.services.tax_settings_service import get_tax_settings, save_tax_settings

settings_bp = Blueprint('settings', __name__, url_prefix='/settings')


@settings_bp.route('/tax', methods=['GET'])
@require_login
def get_tax() -> Response:
    settings = get_tax_settings(get_session(), g.user_id)
    return jsonify({'status': 'ok', 'tax_settings': settings.to_dict()})


@settings_bp.route('/tax', methods=['PUT'])
@require_login
def update_tax() -> Response:
    data = request.get_json(silent=True) or {}
    settings = save_tax_settings(
        get_session(),
        g.user_id,
        enabled=data.get('enabled', True),
        rate=data.get('rate'),
        name=data.get('name'),
    )
    return jsonify({'status': 'ok', 'tax_settings': settings.to_dict()})
