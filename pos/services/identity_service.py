"""
Identity collaborator - users come from the external identity provider.

Protocol details (token verification, login screens) live in the provider
or the proxy in front of the app; this module only maps verified identity
claims to local users and waits for the identity to settle.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pos.exceptions import NotAuthenticatedError, ValidationError
from pos.models import AppUser

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityState:
    """Snapshot of the identity collaborator: ``ready`` is False while it is still resolving."""
    ready: bool
    user_id: Optional[int] = None


def wait_for_identity(
    loader: Callable[[], IdentityState],
    attempts: int = 20,
    interval: float = 0.1,
) -> int:
    """
    Wait (bounded) for the identity to become ready and return the user id.

    Raises:
        NotAuthenticatedError: if the identity never settles within ``attempts``
            polls, or settles without a user.
    """
    for attempt in range(1, max(1, attempts) + 1):
        state = loader()
        if state.ready:
            if not state.user_id:
                raise NotAuthenticatedError()
            return state.user_id
        logger.debug(f"[AUTH] Identity not ready, attempt {attempt}/{attempts}")
        if interval:
            time.sleep(interval)

    logger.warning(f"[AUTH] Identity did not settle after {attempts} attempts")
    raise NotAuthenticatedError()


def get_or_create_user_from_identity(session: Session, claims: dict) -> AppUser:
    """
    Get existing user or create new user from verified identity claims.

    Linking policy:
    - If the subject exists: return that user (refresh email/name)
    - If the email exists without subject: link it
    - If the email exists with a different subject: reject
    - Otherwise create a new user

    Args:
        claims: dict with 'sub', 'email', optional 'name' and 'email_verified'
    """
    subject = (claims.get('sub') or '').strip()
    email = (claims.get('email') or '').strip().lower()
    name = claims.get('name') or ''
    if not subject or not email:
        raise ValidationError('Identidad incompleta: se requieren sub y email')

    user = session.query(AppUser).filter_by(external_uid=subject).first()
    if user:
        if not user.active:
            raise NotAuthenticatedError('Usuario desactivado')
        user.email = email
        user.display_name = name or user.display_name
        user.email_verified = bool(claims.get('email_verified', user.email_verified))
        session.commit()
        return user

    user = session.query(AppUser).filter_by(email=email).first()
    if user:
        if user.external_uid and user.external_uid != subject:
            logger.warning(
                f"Identity linking conflict: email={email}, "
                f"existing_sub={user.external_uid}, new_sub={subject}"
            )
            raise NotAuthenticatedError('Este email ya está vinculado a otra identidad')
        logger.info(f"Linking identity to existing user: {email}")
        user.external_uid = subject
        user.display_name = name or user.display_name
        session.commit()
        return user

    try:
        logger.info(f"Creating new user from identity provider: {email}")
        user = AppUser(
            external_uid=subject,
            email=email,
            display_name=name or None,
            email_verified=bool(claims.get('email_verified', False)),
            active=True,
        )
        session.add(user)
        session.commit()
        return user
    except IntegrityError as e:
        session.rollback()
        logger.error(f"Error creating user from identity (IntegrityError): {e}")
        raise ValidationError('Este email ya está registrado')
