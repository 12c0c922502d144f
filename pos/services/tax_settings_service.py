"""Tax settings service - per-user tax configuration applied at checkout."""
import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from pos.exceptions import NotAuthenticatedError, ValidationError
from pos.models import TaxSettings
from pos.services.transaction_service import config_value
from pos.utils.number_format import parse_decimal

logger = logging.getLogger(__name__)

# Matches the Numeric(5, 4) rate column
RATE_STEP = Decimal('0.0001')


def default_tax_settings(user_id: int) -> TaxSettings:
    """Unsaved settings built from the configured defaults."""
    return TaxSettings(
        user_id=user_id,
        enabled=bool(config_value('DEFAULT_TAX_ENABLED', True)),
        rate=Decimal(str(config_value('DEFAULT_TAX_RATE', '0.19'))),
        name=config_value('DEFAULT_TAX_NAME', 'IVA'),
    )


def get_tax_settings(session: Session, user_id: int) -> TaxSettings:
    """Stored settings for the user, or the defaults when none were saved."""
    if not user_id:
        raise NotAuthenticatedError()
    settings = session.get(TaxSettings, user_id)
    return settings if settings is not None else default_tax_settings(user_id)


def save_tax_settings(session: Session, user_id: int, enabled: bool, rate, name: str) -> TaxSettings:
    """
    Create or update the user's tax settings.

    Raises:
        ValidationError: if rate is outside [0, 1], has more than 4 decimals, or name is empty
    """
    if not user_id:
        raise NotAuthenticatedError()

    rate = parse_decimal(rate, field='tasa', minimum=0, maximum=1)
    if rate != rate.quantize(RATE_STEP):
        raise ValidationError('La tasa admite como máximo 4 decimales')
    name = (name or '').strip()
    if not name:
        raise ValidationError('El nombre del impuesto es requerido')
    if len(name) > 50:
        raise ValidationError('El nombre del impuesto no puede superar 50 caracteres')

    settings = session.get(TaxSettings, user_id)
    if settings is None:
        settings = TaxSettings(user_id=user_id)
        session.add(settings)
    settings.enabled = bool(enabled)
    settings.rate = rate
    settings.name = name

    try:
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[TAX] Settings saved for user {user_id}: enabled={settings.enabled} rate={rate} name={name}")
    return settings
