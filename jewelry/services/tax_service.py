"""Tax rate resolution and tax computation."""
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from flask import current_app, has_app_context

from jewelry.models import TaxRate, Setting
from jewelry.utils.money import ZERO, money, to_decimal

logger = logging.getLogger(__name__)

TAX_OVERRIDE_KEY = 'tax_rate_override'
REGIONAL_DEFAULT_RATE = Decimal('3.0')

CACHE_MODULE = 'tax'
CACHE_KEY = 'rate'


def _default_rate() -> Decimal:
    if has_app_context():
        return to_decimal(current_app.config.get('DEFAULT_TAX_RATE', REGIONAL_DEFAULT_RATE))
    return REGIONAL_DEFAULT_RATE


def _get_cache():
    """Cache service if initialized; tax resolution works without it."""
    try:
        from jewelry.services.cache_service import get_cache
        return get_cache()
    except RuntimeError:
        return None


def _override_rate(session) -> Optional[Decimal]:
    setting = session.query(Setting).filter(Setting.key == TAX_OVERRIDE_KEY).first()
    if setting is None or setting.value is None or not setting.value.strip():
        return None
    try:
        rate = Decimal(setting.value.strip())
    except InvalidOperation:
        rate = None
    if rate is None or not rate.is_finite() or rate < 0:
        logger.warning(f"[TAX] Ignoring invalid {TAX_OVERRIDE_KEY} setting: {setting.value!r}")
        return None
    return rate


def _resolve_rate(session) -> Decimal:
    override = _override_rate(session)
    if override is not None:
        return override

    record = session.query(TaxRate).filter(
        TaxRate.is_active.is_(True)
    ).order_by(TaxRate.id.asc()).first()
    if record is not None:
        return to_decimal(record.rate)

    return _default_rate()


def get_tax_rate(session) -> Decimal:
    """
    Current tax rate in percent.

    Order of precedence: the override setting, the active TaxRate with the
    lowest id, the configured regional default.
    """
    cache = _get_cache()
    if cache is None:
        return _resolve_rate(session)

    ttl = current_app.config.get('CACHE_TAX_TTL') if has_app_context() else None
    return cache.cached_decimal(CACHE_MODULE, CACHE_KEY, lambda: _resolve_rate(session), ttl)


def tax_amount(subtotal, rate) -> Decimal:
    """round(subtotal * rate / 100, 2); zero when the rate is not a positive number."""
    rate = to_decimal(rate)
    if not rate.is_finite() or rate <= 0:
        return ZERO
    return money(to_decimal(subtotal) * rate / Decimal('100'))


def calculate_tax(session, subtotal, rate=None) -> Decimal:
    """Tax on a taxable amount, using the current rate unless one is given."""
    if rate is None:
        rate = get_tax_rate(session)
    return tax_amount(subtotal, rate)


def invalidate_tax_cache() -> None:
    cache = _get_cache()
    if cache is not None:
        cache.invalidate(CACHE_MODULE, CACHE_KEY)


def set_tax_rate_override(session, rate) -> Optional[Decimal]:
    """Set (or clear with None) the explicit tax rate override."""
    try:
        setting = session.query(Setting).filter(Setting.key == TAX_OVERRIDE_KEY).first()
        if rate is None:
            if setting is not None:
                session.delete(setting)
            value = None
        else:
            value = to_decimal(rate)
            if not value.is_finite() or value < 0:
                raise ValueError(f"Tax rate must be a non-negative number, got {rate!r}")
            if setting is None:
                setting = Setting(key=TAX_OVERRIDE_KEY)
                session.add(setting)
            setting.value = str(value)
        session.commit()
    except Exception:
        session.rollback()
        raise

    invalidate_tax_cache()
    logger.info(f"[TAX] Override rate set to {value}")
    return value


def add_tax_rate(session, name: str, rate, code: str = None, is_active: bool = True) -> TaxRate:
    """Create a tax rate record."""
    try:
        record = TaxRate(name=name, code=code, rate=money(rate), is_active=is_active)
        session.add(record)
        session.commit()
    except Exception:
        session.rollback()
        raise

    invalidate_tax_cache()
    return record
