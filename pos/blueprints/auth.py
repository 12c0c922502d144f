"""Authentication blueprint - session bridge to the external identity provider."""
from flask import Blueprint, session, jsonify, g, current_app, Response
from flask_wtf.csrf import generate_csrf

from pos.middleware import require_login

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


@auth_bp.route('/me')
@require_login
def me() -> Response:
    """Current user resolved from the session or the trusted identity headers."""
    return jsonify({'status': 'ok', 'user': g.user.to_dict()})


@auth_bp.route('/csrf')
def csrf_token() -> Response:
    """CSRF token for JSON clients (send it back as X-CSRFToken)."""
    return jsonify({'csrf_token': generate_csrf()})


@auth_bp.route('/logout', methods=['POST'])
def logout() -> Response:
    """Drop the local session; the identity provider session is not touched."""
    user_id = session.get('user_id')
    session.clear()
    if user_id:
        current_app.logger.info(f"[AUTH] User {user_id} logged out")
    return jsonify({'status': 'ok'})
