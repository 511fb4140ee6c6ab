"""
Making-charge computation and promotional discount resolution.

Discounts only ever reduce the making charge. When several campaigns apply,
the largest amount wins; equal amounts are broken toward the more targeted
campaign (customer type > customer group > brand/category > generic).
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_

from jewelry.models import DiscountCampaign, DiscountKind, MakingChargeKind
from jewelry.utils.clock import system_clock
from jewelry.utils.money import ZERO, money, to_decimal, as_float

logger = logging.getLogger(__name__)

PRIORITY_CUSTOMER_TYPE = 280
PRIORITY_CUSTOMER_GROUP = 260
PRIORITY_BRAND_OR_CATEGORY = 220
PRIORITY_GENERIC = 200

HUNDRED = Decimal('100')


@dataclass(frozen=True)
class DiscountDescriptor:
    """Resolved discount: amount off the making charge plus the campaign it came from."""
    amount: Decimal = ZERO
    type: Optional[str] = None
    value: Decimal = ZERO
    source: Optional[str] = None
    name: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls):
        return cls()

    @property
    def is_empty(self):
        return self.type is None

    def to_dict(self):
        return {
            'amount': as_float(self.amount),
            'type': self.type,
            'value': as_float(self.value),
            'source': self.source,
            'name': self.name,
            'meta': dict(self.meta),
        }


def infer_charge_kinds(product) -> frozenset:
    """Declared kinds, or kinds inferred from which fields are positive."""
    kinds = product.charge_kinds
    if kinds:
        return kinds

    inferred = set()
    if to_decimal(product.making_charge_amount) > 0:
        inferred.add(MakingChargeKind.FIXED)
    if to_decimal(product.making_charge_percentage) > 0:
        inferred.add(MakingChargeKind.PERCENTAGE)
    return frozenset(inferred)


def making_charge(product, metal_cost) -> Decimal:
    """
    Making charge for one unit.

    fixed component (if declared) + metal_cost * percentage / 100 (if declared
    and metal_cost > 0), floored at 0 and rounded to 2 decimals.
    """
    kinds = infer_charge_kinds(product)
    metal_cost = to_decimal(metal_cost)
    charge = ZERO

    if MakingChargeKind.FIXED in kinds:
        charge += max(ZERO, to_decimal(product.making_charge_amount))

    if MakingChargeKind.PERCENTAGE in kinds and metal_cost > 0:
        percentage = max(ZERO, to_decimal(product.making_charge_percentage))
        charge += metal_cost * percentage / HUNDRED

    return money(max(ZERO, charge))


def active_campaigns(session, now: datetime) -> List[DiscountCampaign]:
    """Active campaigns whose validity window contains `now` (NULL bound = open)."""
    return session.query(DiscountCampaign).filter(
        DiscountCampaign.is_active.is_(True),
        or_(DiscountCampaign.starts_at.is_(None), DiscountCampaign.starts_at <= now),
        or_(DiscountCampaign.ends_at.is_(None), DiscountCampaign.ends_at >= now)
    ).order_by(DiscountCampaign.id).all()


def campaign_priority(campaign: DiscountCampaign) -> int:
    if campaign.customer_types:
        return PRIORITY_CUSTOMER_TYPE
    if campaign.customer_group_id is not None:
        return PRIORITY_CUSTOMER_GROUP
    if campaign.brand_id is not None or campaign.category_id is not None:
        return PRIORITY_BRAND_OR_CATEGORY
    return PRIORITY_GENERIC


def campaign_matches(campaign: DiscountCampaign, product, customer_group_id, customer_type: str,
                     line_subtotal: Decimal) -> bool:
    """Scope filters: every filter the campaign sets must match."""
    if not campaign.is_auto:
        return False
    if campaign.brand_id is not None and campaign.brand_id != product.brand_id:
        return False
    if campaign.category_id is not None and campaign.category_id != product.category_id:
        return False

    allowed_types = [t.lower() for t in (campaign.customer_types or [])]
    if allowed_types and (not customer_type or customer_type not in allowed_types):
        return False

    if campaign.customer_group_id is not None:
        if customer_group_id is None or customer_group_id != campaign.customer_group_id:
            return False

    if campaign.min_line_subtotal is not None and line_subtotal < to_decimal(campaign.min_line_subtotal):
        return False

    return True


def campaign_amount(campaign: DiscountCampaign, making: Decimal) -> Optional[Decimal]:
    """Amount a campaign takes off `making`, or None when its value is not positive."""
    value = to_decimal(campaign.value)
    if value <= 0:
        return None

    if campaign.kind == DiscountKind.PERCENTAGE.value:
        amount = making * min(value, HUNDRED) / HUNDRED
    else:
        amount = value

    return money(min(amount, making))


def _build_descriptor(campaign: DiscountCampaign, amount: Decimal) -> DiscountDescriptor:
    return DiscountDescriptor(
        amount=amount,
        type=campaign.kind,
        value=money(campaign.value),
        source='global',
        name=campaign.name,
        meta={
            'discount_id': campaign.id,
            'brand_id': campaign.brand_id,
            'category_id': campaign.category_id,
            'customer_group_id': campaign.customer_group_id,
            'customer_types': list(campaign.customer_types or []),
            'min_line_subtotal': as_float(campaign.min_line_subtotal) if campaign.min_line_subtotal is not None else None,
        }
    )


def _group_id(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"[DISCOUNT] Ignoring non-numeric customer_group_id: {value!r}")
        return None


def resolve(session, product, customer=None, context: Optional[Dict[str, Any]] = None,
            now: Optional[datetime] = None, clock=system_clock) -> DiscountDescriptor:
    """
    Select the single best automatic discount for one unit of `product`.

    Context keys (all optional): metal (metal cost), quantity, unit_subtotal,
    line_subtotal, customer_group_id, customer_type. Customer attributes are
    used when the context does not carry them.
    """
    context = context or {}
    making = making_charge(product, context.get('metal', 0))
    if making <= 0:
        return DiscountDescriptor.empty()

    now = now or clock.now()

    customer_group_id = context.get('customer_group_id')
    if customer_group_id is None and customer is not None:
        customer_group_id = customer.customer_group_id
    customer_group_id = _group_id(customer_group_id)

    customer_type = context.get('customer_type')
    if customer_type is None and customer is not None:
        customer_type = customer.customer_type
    customer_type = (customer_type or '').strip().lower()

    quantity = max(1, int(context.get('quantity') or 1))
    unit_subtotal = to_decimal(context.get('unit_subtotal') or making)
    line_subtotal = to_decimal(context.get('line_subtotal') or unit_subtotal * quantity)

    best = None
    for campaign in active_campaigns(session, now):
        if not campaign_matches(campaign, product, customer_group_id, customer_type, line_subtotal):
            continue
        amount = campaign_amount(campaign, making)
        if amount is None or amount <= 0:
            continue
        ranked = (amount, campaign_priority(campaign), campaign)
        if best is None or ranked[:2] > best[:2]:
            best = ranked

    if best is None:
        return DiscountDescriptor.empty()

    amount, priority, campaign = best
    logger.debug(
        f"[DISCOUNT] Product {product.id}: campaign {campaign.id} '{campaign.name}' "
        f"amount={amount} priority={priority} making={making}"
    )
    return _build_descriptor(campaign, amount)
