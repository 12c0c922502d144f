"""Middleware for authentication context."""
from functools import wraps

from flask import session, g, request, current_app
from sqlalchemy.exc import SQLAlchemyError

from pos.database import get_session
from pos.exceptions import PosError
from pos.models import AppUser
from pos.services.identity_service import (
    IdentityState, get_or_create_user_from_identity, wait_for_identity,
)


def _claims_from_headers():
    """Identity claims forwarded by the trusted proxy, or None."""
    header = current_app.config.get('TRUSTED_IDENTITY_HEADER')
    if not header:
        return None
    subject = request.headers.get(header)
    if not subject:
        return None
    verified = request.headers.get(current_app.config.get('TRUSTED_IDENTITY_VERIFIED_HEADER', ''), '')
    return {
        'sub': subject,
        'email': request.headers.get(current_app.config.get('TRUSTED_IDENTITY_EMAIL_HEADER', '')),
        'name': request.headers.get(current_app.config.get('TRUSTED_IDENTITY_NAME_HEADER', '')),
        'email_verified': verified.lower() in ('1', 'true', 'yes'),
    }


def _resolve_user(db_session):
    """
    Trusted proxy identity first; the session user only when no identity header was sent.

    A header identity that differs from the session replaces it. A rejected header
    identity clears the session so a previous user is never reused.
    """
    claims = _claims_from_headers()
    if claims:
        try:
            user = get_or_create_user_from_identity(db_session, claims)
        except PosError:
            session.pop('user_id', None)
            raise
        previous = session.get('user_id')
        if previous != user.id:
            if previous:
                current_app.logger.info(f"[AUTH] Session user {previous} replaced by proxy identity {user.id}")
            session['user_id'] = user.id
        return user

    user_id = session.get('user_id')
    if not user_id:
        return None
    user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
    if user is None:
        session.pop('user_id', None)
    return user


def load_current_user():
    """
    Load current user into g (Flask's per-request global).

    Called before each request. Sets g.user and g.user_id when authenticated;
    g.identity_ready is False only when resolution failed on a transient
    store error and may be retried.
    """
    g.user = None
    g.user_id = None
    g.identity_ready = True

    try:
        user = _resolve_user(get_session())
    except PosError as e:
        current_app.logger.warning(f"[AUTH] Identity rejected: {e.message}")
        return
    except SQLAlchemyError as e:
        get_session().rollback()
        g.identity_ready = False
        current_app.logger.error(f"Error in load_current_user: {e}")
        return

    if user is not None:
        g.user = user
        g.user_id = user.id


def _identity_state():
    if not g.get('identity_ready', False):
        load_current_user()
    return IdentityState(ready=g.identity_ready, user_id=g.get('user_id'))


def current_user_id():
    """
    Wait (bounded) for the request identity and return the user id.

    Raises NotAuthenticatedError when it does not resolve.
    """
    return wait_for_identity(
        _identity_state,
        attempts=current_app.config.get('AUTH_WAIT_ATTEMPTS', 20),
        interval=current_app.config.get('AUTH_WAIT_INTERVAL', 0.1),
    )


def require_login(f):
    """
    Decorator: Require an authenticated user.

    Unauthenticated requests get a JSON 401 through the PosError handler.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        current_user_id()
        return f(*args, **kwargs)
    return decorated_function
