"""
Integration tests for converting an approved quotation group into an order.
"""

import pytest
from decimal import Decimal

from jewelry.exceptions import BadRequestError, NotFoundError, ConversionConflictError
from jewelry.models import (
    Order, OrderItem, OrderStatusHistory, QuotationStatus, Setting, TaxRate
)
from jewelry.services import quotation_service, email_service
from jewelry.services.tax_service import TAX_OVERRIDE_KEY
from conftest import NOW


def refresh_all(session, *objects):
    for obj in objects:
        session.refresh(obj)


class TestApprove:

    def test_group_becomes_one_order(self, session, group, ring_variant, chain_variant, clock):
        """Quantities 1 and 2: one order, two items, stock 5->4 and 3->1, one history row."""
        result = quotation_service.approve(session, group[0].id, admin_notes='Go ahead', clock=clock)

        orders = session.query(Order).all()
        assert len(orders) == 1
        order = orders[0]
        assert result['order_id'] == order.id
        assert result['reference'] == order.reference

        items = session.query(OrderItem).filter(OrderItem.order_id == order.id).all()
        assert len(items) == 2

        refresh_all(session, *group)
        for quotation in group:
            assert quotation.status == QuotationStatus.APPROVED.value
            assert quotation.order_id == order.id
            assert quotation.approved_at == NOW
            assert quotation.admin_notes == 'Go ahead'

        refresh_all(session, ring_variant, chain_variant)
        assert ring_variant.inventory_quantity == 4
        assert chain_variant.inventory_quantity == 1

        history = session.query(OrderStatusHistory).filter(OrderStatusHistory.order_id == order.id).all()
        assert len(history) == 1

    def test_order_totals(self, session, group, clock):
        """Ring 13500 x1 + chain 20200 x2 at the 3% default rate."""
        quotation_service.approve(session, group[0].id, clock=clock)
        order = session.query(Order).one()

        assert order.status == 'in_production'
        assert order.quotation_group_id == group[0].quotation_group_id
        assert order.customer_id == group[0].customer_id
        assert order.currency == 'INR'
        assert order.subtotal_amount == Decimal('53900.00')
        assert order.discount_amount == Decimal('0.00')
        assert order.tax_amount == Decimal('1617.00')
        assert order.total_amount == Decimal('55517.00')

    def test_discounts_and_tax_override(self, session, group, make_campaign, clock):
        """20% off making: ring 300, chain 40 x2. Tax 18% on 53520."""
        make_campaign(value=Decimal('20'))
        session.add(TaxRate(name='GST', rate=Decimal('18')))
        session.commit()

        quotation_service.approve(session, group[0].id, clock=clock)
        order = session.query(Order).one()

        assert order.subtotal_amount == Decimal('53900.00')
        assert order.discount_amount == Decimal('380.00')
        assert order.tax_amount == Decimal('9633.60')
        assert order.total_amount == Decimal('63153.60')

    def test_malformed_tax_override_falls_back(self, session, group, clock):
        session.add(Setting(key=TAX_OVERRIDE_KEY, value='NaN'))
        session.commit()

        quotation_service.approve(session, group[0].id, clock=clock)
        order = session.query(Order).one()

        assert order.tax_amount == Decimal('1617.00')
        assert order.total_amount == Decimal('55517.00')

    def test_price_breakdown_snapshot(self, session, group, clock):
        quotation_service.approve(session, group[0].id, clock=clock)
        order = session.query(Order).one()

        entries = order.price_breakdown['items']
        assert [e['quotation_id'] for e in entries] == [q.id for q in group]
        assert entries[1]['quantity'] == 2
        assert entries[1]['line_subtotal'] == 40400.0
        assert entries[1]['line_discount'] == 0.0
        assert entries[0]['unit']['making'] == 1500.0
        assert order.price_breakdown['total'] == 55517.0

    def test_order_items_snapshot(self, session, group, ring, chain_variant, clock):
        quotation_service.approve(session, group[0].id, clock=clock)

        items = session.query(OrderItem).order_by(OrderItem.id).all()
        ring_item, chain_item = items
        assert ring_item.sku == ring.sku
        assert ring_item.name == ring.name
        assert ring_item.quantity == 1
        assert ring_item.unit_price == Decimal('13500.00')
        assert chain_item.unit_price == Decimal('20200.00')
        assert chain_item.total_price == Decimal('40400.00')
        assert chain_item.product_variant_id == chain_variant.id
        assert chain_item.item_metadata['quotation_id'] == group[1].id
        assert chain_item.price_breakdown['metal'] == 20000.0

    def test_history_row(self, session, group, clock):
        quotation_service.approve(session, group[0].id, clock=clock)

        entry = session.query(OrderStatusHistory).one()
        assert entry.status == 'in_production'
        assert entry.customer_id is None
        assert entry.created_at == NOW
        assert entry.meta['source'] == 'quotation_approval'
        assert entry.meta['quotation_ids'] == [q.id for q in group]
        assert entry.meta['quotation_group_id'] == group[0].quotation_group_id

    def test_reference_format(self, session, group, clock):
        result = quotation_service.approve(session, group[0].id, clock=clock)

        prefix, token = result['reference'].split('-')
        assert prefix == 'ORD'
        assert len(token) == 10
        assert token.isalnum() and token.upper() == token

    def test_reference_collision_retried(self, session, group, customer, clock, monkeypatch):
        session.add(Order(reference='ORD-AAAAAAAAAA', customer_id=customer.id))
        session.commit()

        letters = iter('A' * 10 + 'B' * 10)
        monkeypatch.setattr(quotation_service.secrets, 'choice', lambda alphabet: next(letters))

        result = quotation_service.approve(session, group[0].id, clock=clock)
        assert result['reference'] == 'ORD-BBBBBBBBBB'

    def test_inventory_floored_at_zero(self, session, group, chain_variant, clock):
        chain_variant.inventory_quantity = 1
        session.commit()

        quotation_service.approve(session, group[0].id, clock=clock)

        session.refresh(chain_variant)
        assert chain_variant.inventory_quantity == 0

    def test_unlimited_inventory_untouched(self, session, group, ring_variant, clock):
        ring_variant.inventory_quantity = None
        session.commit()

        quotation_service.approve(session, group[0].id, clock=clock)

        session.refresh(ring_variant)
        assert ring_variant.inventory_quantity is None

    def test_customer_confirmed_group_approvable(self, session, make_group, customer, ring, ring_variant, clock):
        lines = make_group(customer, [(ring, ring_variant, 1)], status=QuotationStatus.CUSTOMER_CONFIRMED.value)

        result = quotation_service.approve(session, lines[0].id, clock=clock)
        assert result['order_id'] is not None

    def test_only_approvable_members_converted(self, session, group, clock):
        group[1].status = QuotationStatus.CUSTOMER_DECLINED.value
        session.commit()

        quotation_service.approve(session, group[0].id, clock=clock)

        assert session.query(OrderItem).count() == 1
        session.refresh(group[1])
        assert group[1].status == QuotationStatus.CUSTOMER_DECLINED.value
        assert group[1].order_id is None


class TestApprovePreconditions:

    def test_unknown_quotation(self, session):
        with pytest.raises(NotFoundError):
            quotation_service.approve(session, 9999)

    def test_second_approval_rejected_without_side_effects(self, session, group, ring_variant, chain_variant, clock):
        quotation_service.approve(session, group[0].id, clock=clock)

        with pytest.raises(BadRequestError):
            quotation_service.approve(session, group[1].id, clock=clock)

        assert session.query(Order).count() == 1
        assert session.query(OrderStatusHistory).count() == 1
        refresh_all(session, ring_variant, chain_variant)
        assert ring_variant.inventory_quantity == 4
        assert chain_variant.inventory_quantity == 1

    @pytest.mark.parametrize('status', [
        QuotationStatus.REJECTED.value,
        QuotationStatus.PENDING_CUSTOMER_CONFIRMATION.value,
        QuotationStatus.CUSTOMER_DECLINED.value,
    ])
    def test_non_approvable_status(self, session, make_group, customer, ring, ring_variant, status):
        lines = make_group(customer, [(ring, ring_variant, 1)], status=status)

        with pytest.raises(BadRequestError):
            quotation_service.approve(session, lines[0].id)
        assert session.query(Order).count() == 0

    def test_group_already_claimed(self, session, group, customer, ring_variant, clock):
        """An existing order for the group makes the conversion fail as a conflict."""
        session.add(Order(reference='ORD-EXISTING01', customer_id=customer.id,
                          quotation_group_id=group[0].quotation_group_id))
        session.commit()

        with pytest.raises(ConversionConflictError):
            quotation_service.approve(session, group[0].id, clock=clock)

        refresh_all(session, *group)
        assert all(q.status == QuotationStatus.PENDING.value for q in group)
        session.refresh(ring_variant)
        assert ring_variant.inventory_quantity == 5
        assert session.query(OrderItem).count() == 0


class TestApproveAtomicity:

    def test_failure_rolls_back_everything(self, session, group, ring_variant, chain_variant, clock, monkeypatch):
        def failing_history(*args, **kwargs):
            raise RuntimeError('database went away')

        monkeypatch.setattr(quotation_service, 'record_history', failing_history)

        with pytest.raises(RuntimeError):
            quotation_service.approve(session, group[0].id, clock=clock)

        assert session.query(Order).count() == 0
        assert session.query(OrderItem).count() == 0
        refresh_all(session, *group)
        assert all(q.status == QuotationStatus.PENDING.value and q.order_id is None for q in group)
        refresh_all(session, ring_variant, chain_variant)
        assert ring_variant.inventory_quantity == 5
        assert chain_variant.inventory_quantity == 3

    def test_notification_failure_does_not_fail_approval(self, session, group, clock, monkeypatch):
        def broken_mail(*args, **kwargs):
            raise ConnectionError('smtp down')

        monkeypatch.setattr(email_service, 'send_quotation_approved', broken_mail)

        result = quotation_service.approve(session, group[0].id, clock=clock)

        assert session.query(Order).filter(Order.id == result['order_id']).count() == 1

    def test_one_pricing_instant_per_conversion(self, session, group, clock, monkeypatch):
        seen = []
        original = quotation_service.pricing_service.calculate

        def recording_calculate(*args, **kwargs):
            seen.append(kwargs.get('now'))
            return original(*args, **kwargs)

        monkeypatch.setattr(quotation_service.pricing_service, 'calculate', recording_calculate)

        quotation_service.approve(session, group[0].id, clock=clock)

        assert seen == [NOW, NOW]
