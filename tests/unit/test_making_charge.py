"""
Unit tests for making-charge computation (no database).
"""

import pytest
from decimal import Decimal

from jewelry.models import Product, MakingChargeKind
from jewelry.services.discount_service import making_charge, infer_charge_kinds


def product(amount='0', percentage='0', kinds=None):
    return Product(
        name='Test product',
        making_charge_amount=Decimal(amount),
        making_charge_percentage=Decimal(percentage),
        making_charge_types=kinds or []
    )


class TestMakingCharge:

    def test_fixed_plus_percentage_of_metal(self):
        """500 fixed + 10% of 10000 metal."""
        p = product('500', '10', ['fixed', 'percentage'])
        assert making_charge(p, Decimal('10000')) == Decimal('1500.00')

    def test_declared_kinds_limit_components(self):
        p = product('500', '10', ['percentage'])
        assert making_charge(p, Decimal('10000')) == Decimal('1000.00')

        p = product('500', '10', ['fixed'])
        assert making_charge(p, Decimal('10000')) == Decimal('500.00')

    def test_percentage_ignored_without_metal_cost(self):
        p = product('500', '10', ['fixed', 'percentage'])
        assert making_charge(p, Decimal('0')) == Decimal('500.00')

    @pytest.mark.parametrize('amount,percentage,expected', [
        ('500', '10', Decimal('1500.00')),
        ('500', '0', Decimal('500.00')),
        ('0', '10', Decimal('1000.00')),
        ('0', '0', Decimal('0.00')),
    ])
    def test_kinds_inferred_from_positive_fields(self, amount, percentage, expected):
        p = product(amount, percentage)
        assert making_charge(p, Decimal('10000')) == expected

    def test_inferred_kinds(self):
        assert infer_charge_kinds(product('1', '1')) == frozenset(
            {MakingChargeKind.FIXED, MakingChargeKind.PERCENTAGE}
        )
        assert infer_charge_kinds(product('0', '0')) == frozenset()

    def test_rounded_half_up(self):
        """123.45 * 10% = 12.345 -> 12.35"""
        p = product('0', '10', ['percentage'])
        assert making_charge(p, Decimal('123.45')) == Decimal('12.35')

    def test_never_negative(self):
        p = product('0', '0', ['fixed', 'percentage'])
        assert making_charge(p, Decimal('-50')) == Decimal('0.00')
