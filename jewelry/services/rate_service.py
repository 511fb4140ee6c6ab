"""Point-in-time metal rate lookup."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func

from jewelry.models import MetalRate
from jewelry.utils.money import money

logger = logging.getLogger(__name__)


def normalize_name(value: str) -> str:
    """Metal and purity names match case-insensitively after trimming."""
    return (value or '').strip().lower()


def latest_rate(session, metal: str, purity: str, as_of: datetime) -> Optional[Decimal]:
    """
    Return the price per gram in force at `as_of`, or None when no rate applies.

    The row with the greatest effective_at <= as_of wins. A missing rate is not
    an error; pricing treats it as a zero contribution.
    """
    metal_key = normalize_name(metal)
    purity_key = normalize_name(purity)
    if not metal_key or not purity_key:
        return None

    rate = session.query(MetalRate).filter(
        func.lower(func.trim(MetalRate.metal)) == metal_key,
        func.lower(func.trim(MetalRate.purity)) == purity_key,
        MetalRate.effective_at <= as_of
    ).order_by(MetalRate.effective_at.desc(), MetalRate.id.desc()).first()

    if rate is None:
        return None
    return Decimal(str(rate.price_per_gram))


def add_metal_rate(session, metal: str, purity: str, price_per_gram, effective_at: datetime) -> MetalRate:
    """Record a new rate row. Existing rows are kept for historical lookups."""
    if money(price_per_gram) < 0:
        raise ValueError('price_per_gram must not be negative')

    try:
        rate = MetalRate(
            metal=normalize_name(metal),
            purity=normalize_name(purity),
            price_per_gram=money(price_per_gram),
            effective_at=effective_at
        )
        session.add(rate)
        session.commit()
        logger.info(f"[PRICING] Metal rate recorded: {rate.metal}/{rate.purity}={rate.price_per_gram} from {effective_at}")
        return rate
    except Exception:
        session.rollback()
        raise
