"""
Unit price calculation for a product/variant and aggregation of priced lines.

calculate() is a pure read: given the same inputs and the same rate and
campaign snapshot it always returns the same breakdown. Tax is not applied
per unit; summarize_lines() applies it once on the aggregated amount after
discounts.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from jewelry.services import discount_service, rate_service
from jewelry.services.discount_service import DiscountDescriptor
from jewelry.services.tax_service import tax_amount
from jewelry.utils.clock import system_clock
from jewelry.utils.money import ZERO, money, to_decimal, as_float

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceBreakdown:
    """Per-unit price decomposition. All amounts are 2-decimal Decimals."""
    metal: Decimal = ZERO
    diamond: Decimal = ZERO
    making: Decimal = ZERO
    subtotal: Decimal = ZERO
    discount: Decimal = ZERO
    discount_details: DiscountDescriptor = field(default_factory=DiscountDescriptor.empty)
    tax: Decimal = ZERO
    total: Decimal = ZERO

    def to_dict(self):
        """JSON snapshot stored on quotation/order items."""
        return {
            'metal': as_float(self.metal),
            'diamond': as_float(self.diamond),
            'making': as_float(self.making),
            'subtotal': as_float(self.subtotal),
            'discount': as_float(self.discount),
            'discount_details': self.discount_details.to_dict(),
            'tax': as_float(self.tax),
            'total': as_float(self.total),
        }


def metal_cost(session, variant, as_of: datetime) -> Decimal:
    """Sum of weight x rate over the variant's metal lines, rounded after summation."""
    if variant is None:
        return ZERO

    total = Decimal('0')
    for line in variant.metals:
        if not line.weight_grams:
            continue
        rate = rate_service.latest_rate(session, line.metal, line.purity, as_of)
        if rate is None:
            logger.warning(
                f"[PRICING] No rate for {line.metal}/{line.purity} at {as_of}; "
                f"variant {variant.id} metal line priced at 0"
            )
            continue
        total += to_decimal(line.weight_grams) * rate
    return money(total)


def diamond_cost(variant) -> Decimal:
    if variant is None:
        return ZERO

    total = Decimal('0')
    for line in variant.diamonds:
        if line.diamond is None or line.diamond.price is None:
            continue
        count = line.count if line.count is not None else 1
        total += to_decimal(line.diamond.price) * count
    return money(total)


def calculate(session, product, variant=None, quantity: int = 1, customer=None,
              context: Optional[Dict[str, Any]] = None, now: Optional[datetime] = None,
              clock=system_clock) -> PriceBreakdown:
    """
    Price one unit of `product` in `variant` for a line of `quantity` units.

    `context` may carry customer_group_id / customer_type overrides for the
    discount resolver. Pass `now` to price several lines against one
    consistent rate and campaign snapshot.
    """
    now = now or clock.now()
    quantity = max(1, int(quantity or 1))

    metal = metal_cost(session, variant, now)
    diamond = diamond_cost(variant)
    making = discount_service.making_charge(product, metal)
    subtotal = money(metal + diamond + making)

    discount_context = dict(context or {})
    discount_context.update({
        'quantity': quantity,
        'unit_subtotal': subtotal,
        'line_subtotal': subtotal * quantity,
        'metal': metal,
    })
    descriptor = discount_service.resolve(session, product, customer, discount_context, now=now)

    unit_discount = max(ZERO, min(money(descriptor.amount), making))
    total = max(ZERO, subtotal - unit_discount)

    return PriceBreakdown(
        metal=metal,
        diamond=diamond,
        making=making,
        subtotal=subtotal,
        discount=money(unit_discount),
        discount_details=descriptor,
        tax=ZERO,
        total=money(total),
    )


def summarize_lines(lines: Iterable[Dict[str, Any]], tax_rate) -> Dict[str, Any]:
    """
    Aggregate priced lines into totals.

    Each line is a dict with at least 'breakdown' (PriceBreakdown) and
    'quantity'; other keys are passed through. Tax is computed once on
    subtotal - discount.
    """
    summarized = []
    subtotal = ZERO
    discount = ZERO

    for line in lines:
        breakdown = line['breakdown']
        quantity = int(line['quantity'])
        line_subtotal = money(breakdown.subtotal * quantity)
        line_discount = money(breakdown.discount * quantity)
        line_total = money(breakdown.total * quantity)

        summarized.append(dict(
            line,
            line_subtotal=line_subtotal,
            line_discount=line_discount,
            line_total=line_total,
        ))
        subtotal += line_subtotal
        discount += line_discount

    subtotal = money(subtotal)
    discount = money(discount)
    taxable = money(subtotal - discount)
    tax = tax_amount(taxable, tax_rate)

    return {
        'lines': summarized,
        'subtotal': subtotal,
        'discount': discount,
        'taxable': taxable,
        'tax_rate': to_decimal(tax_rate),
        'tax': tax,
        'total': money(taxable + tax),
    }
