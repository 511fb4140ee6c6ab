"""
Integration tests for checkout: cart to order, payment intents and settlement.
"""

import pytest
from decimal import Decimal

from jewelry.exceptions import (
    BadRequestError, NotFoundError, InsufficientInventoryError, PaymentFailedError, PaymentGatewayError
)
from jewelry.models import Order, OrderItem, OrderStatusHistory, Payment, Setting
from jewelry.services import checkout_service, email_service, payment_gateway
from jewelry.services.payment_gateway import PaymentDriver, ManualPaymentDriver, get_driver
from jewelry.services.tax_service import TAX_OVERRIDE_KEY
from conftest import NOW


class StubGateway(PaymentDriver):
    """In-memory gateway whose intents all end in `status`."""

    name = 'stub'

    def __init__(self, status='succeeded'):
        self.status = status
        self.created = 0
        self.updated = 0

    def ensure_intent(self, order, payment=None):
        if payment is not None:
            self.updated += 1
            reference = payment.provider_reference
        else:
            self.created += 1
            reference = f'pi_{order.reference}_{self.created}'
        return {
            'provider_reference': reference,
            'client_secret': f'{reference}_secret',
            'amount': order.total_amount,
            'currency': order.currency,
        }

    def retrieve_intent(self, provider_reference):
        return {'status': self.status, 'id': provider_reference}

    def publishable_key(self):
        return 'pk_test_jewelry'


class DeclinedGateway(StubGateway):
    name = 'declined'

    def __init__(self):
        super().__init__(status='canceled')


@pytest.fixture
def cart(ring, ring_variant, chain, chain_variant):
    """1 ring (13500) and 2 chains (20200 each)."""
    return [
        {'product_id': ring.id, 'product_variant_id': ring_variant.id, 'quantity': 1},
        {'product_id': chain.id, 'product_variant_id': chain_variant.id, 'quantity': 2},
    ]


@pytest.fixture
def gateway():
    return StubGateway()


class TestInitialize:

    def test_order_awaits_payment(self, session, customer, cart, gateway, clock):
        state = checkout_service.initialize(session, customer.id, cart, driver=gateway, clock=clock)

        order = session.query(Order).one()
        assert order.status == 'pending_payment'
        assert order.customer_id == customer.id
        assert order.quotation_group_id is None
        assert order.reference.startswith('ORD-')
        assert order.subtotal_amount == Decimal('53900.00')
        assert order.tax_amount == Decimal('1617.00')
        assert order.total_amount == Decimal('55517.00')
        assert order.status_meta == {'source': 'checkout'}

        assert state['order_id'] == order.id
        assert state['status'] == 'pending_payment'
        assert state['total'] == 55517.0

    def test_items_and_snapshot(self, session, customer, cart, gateway, ring, clock):
        checkout_service.initialize(session, customer.id, cart, driver=gateway, clock=clock)
        order = session.query(Order).one()

        items = session.query(OrderItem).order_by(OrderItem.id).all()
        assert [i.quantity for i in items] == [1, 2]
        assert items[0].product_id == ring.id
        assert items[0].unit_price == Decimal('13500.00')
        assert items[1].total_price == Decimal('40400.00')
        assert items[0].item_metadata['source'] == 'checkout'

        snapshot = order.price_breakdown
        assert snapshot['total'] == 55517.0
        assert snapshot['tax_rate'] == 3.0
        assert snapshot['items'][1]['line_subtotal'] == 40400.0

    def test_discount_and_tax_applied(self, session, customer, cart, gateway, make_campaign, clock):
        make_campaign(value=Decimal('20'))
        session.add(Setting(key=TAX_OVERRIDE_KEY, value='18'))
        session.commit()

        checkout_service.initialize(session, customer.id, cart, driver=gateway, clock=clock)
        order = session.query(Order).one()

        assert order.discount_amount == Decimal('380.00')
        assert order.tax_amount == Decimal('9633.60')
        assert order.total_amount == Decimal('63153.60')

    def test_first_history_row(self, session, customer, cart, gateway, clock):
        checkout_service.initialize(session, customer.id, cart, driver=gateway, clock=clock)

        entry = session.query(OrderStatusHistory).one()
        assert entry.status == 'pending_payment'
        assert entry.customer_id == customer.id
        assert entry.meta['source'] == 'checkout'
        assert entry.created_at == NOW

    def test_payment_opened(self, session, customer, cart, gateway, clock):
        state = checkout_service.initialize(session, customer.id, cart, driver=gateway, clock=clock)

        payment = session.query(Payment).one()
        assert payment.provider == 'stub'
        assert payment.status == 'pending'
        assert payment.amount == Decimal('55517.00')
        assert payment.currency == 'INR'
        assert state['payment'] == {
            'payment_id': payment.id,
            'provider': 'stub',
            'provider_reference': payment.provider_reference,
            'client_secret': f'{payment.provider_reference}_secret',
            'publishable_key': 'pk_test_jewelry',
        }

    def test_inventory_checked_not_reserved(self, session, customer, cart, gateway, chain_variant, clock):
        checkout_service.initialize(session, customer.id, cart, driver=gateway, clock=clock)

        session.refresh(chain_variant)
        assert chain_variant.inventory_quantity == 3

    def test_empty_cart(self, session, customer, gateway):
        with pytest.raises(BadRequestError):
            checkout_service.initialize(session, customer.id, [], driver=gateway)

    def test_unknown_customer(self, session, cart, gateway):
        with pytest.raises(NotFoundError):
            checkout_service.initialize(session, 9999, cart, driver=gateway)

    def test_over_inventory_creates_nothing(self, session, customer, chain, chain_variant, gateway):
        lines = [{'product_id': chain.id, 'product_variant_id': chain_variant.id, 'quantity': 4}]

        with pytest.raises(InsufficientInventoryError):
            checkout_service.initialize(session, customer.id, lines, driver=gateway)

        assert session.query(Order).count() == 0
        assert session.query(Payment).count() == 0

    def test_gateway_failure_rolls_back(self, session, customer, cart, clock):
        class DownGateway(StubGateway):
            def ensure_intent(self, order, payment=None):
                raise PaymentGatewayError('gateway timeout')

        with pytest.raises(PaymentGatewayError):
            checkout_service.initialize(session, customer.id, cart, driver=DownGateway(), clock=clock)

        assert session.query(Order).count() == 0
        assert session.query(OrderItem).count() == 0
        assert session.query(OrderStatusHistory).count() == 0


class TestFinalize:

    def start(self, session, customer, cart, gateway, clock):
        state = checkout_service.initialize(session, customer.id, cart, driver=gateway, clock=clock)
        return state['payment']['provider_reference']

    def test_settled_payment_moves_order_to_pending(self, session, customer, cart, gateway, clock):
        reference = self.start(session, customer, cart, gateway, clock)

        order = checkout_service.finalize(session, reference, customer_id=customer.id, driver=gateway, clock=clock)

        assert order.status == 'pending'
        assert order.status_meta['source'] == 'payment_success'
        payment = session.query(Payment).one()
        assert payment.status == 'succeeded'
        assert payment.meta['intent']['status'] == 'succeeded'

        history = session.query(OrderStatusHistory).order_by(OrderStatusHistory.id).all()
        assert [h.status for h in history] == ['pending_payment', 'pending']
        assert history[1].customer_id == customer.id
        assert history[1].meta['provider_reference'] == reference

    def test_authorized_intent_counts_as_settled(self, session, customer, cart, clock):
        gateway = StubGateway(status='requires_capture')
        reference = self.start(session, customer, cart, gateway, clock)

        order = checkout_service.finalize(session, reference, driver=gateway, clock=clock)
        assert order.status == 'pending'

    def test_failed_payment(self, session, customer, cart, clock):
        gateway = StubGateway(status='requires_payment_method')
        reference = self.start(session, customer, cart, gateway, clock)

        with pytest.raises(PaymentFailedError) as exc:
            checkout_service.finalize(session, reference, customer_id=customer.id, driver=gateway, clock=clock)

        assert exc.value.status_code == 402
        assert exc.value.payload['gateway_status'] == 'requires_payment_method'
        order = session.query(Order).one()
        assert order.status == 'payment_failed'
        assert session.query(Payment).one().status == 'failed'
        assert session.query(OrderStatusHistory).filter(OrderStatusHistory.status == 'payment_failed').count() == 1

    def test_replay_of_settled_payment(self, session, customer, cart, gateway, clock):
        reference = self.start(session, customer, cart, gateway, clock)
        checkout_service.finalize(session, reference, driver=gateway, clock=clock)

        gateway.status = 'canceled'
        order = checkout_service.finalize(session, reference, driver=gateway, clock=clock)

        assert order.status == 'pending'
        assert session.query(OrderStatusHistory).count() == 2

    def test_unknown_reference(self, session, gateway):
        with pytest.raises(NotFoundError):
            checkout_service.finalize(session, 'pi_missing', driver=gateway)

    def test_other_customers_payment_not_found(self, session, customer, other_customer, cart, gateway, clock):
        reference = self.start(session, customer, cart, gateway, clock)

        with pytest.raises(NotFoundError):
            checkout_service.finalize(session, reference, customer_id=other_customer.id, driver=gateway)

        assert session.query(Order).one().status == 'pending_payment'

    def test_failed_transition_keeps_payment_open(self, session, customer, cart, gateway, clock, monkeypatch):
        reference = self.start(session, customer, cart, gateway, clock)

        def failing_history(*args, **kwargs):
            raise RuntimeError('database went away')

        from jewelry.services import order_workflow_service
        monkeypatch.setattr(order_workflow_service, 'record_history', failing_history)

        with pytest.raises(RuntimeError):
            checkout_service.finalize(session, reference, driver=gateway, clock=clock)

        assert session.query(Payment).one().status == 'pending'
        assert session.query(Order).one().status == 'pending_payment'

    def test_admin_notification_failure_ignored(self, session, customer, cart, gateway, clock, monkeypatch):
        reference = self.start(session, customer, cart, gateway, clock)

        def broken_mail(*args, **kwargs):
            raise ConnectionError('smtp down')

        monkeypatch.setattr(email_service, 'send_order_paid_admin', broken_mail)

        assert checkout_service.finalize(session, reference, driver=gateway, clock=clock).status == 'pending'


class TestResumePayment:

    def test_retry_after_failure_opens_new_attempt(self, session, customer, cart, clock):
        gateway = StubGateway(status='requires_payment_method')
        state = checkout_service.initialize(session, customer.id, cart, driver=gateway, clock=clock)
        with pytest.raises(PaymentFailedError):
            checkout_service.finalize(session, state['payment']['provider_reference'], driver=gateway, clock=clock)

        gateway.status = 'succeeded'
        retry = checkout_service.resume_payment(session, state['order_id'], customer.id, driver=gateway)

        assert retry['payment']['provider_reference'] != state['payment']['provider_reference']
        assert session.query(Payment).count() == 2

        order = checkout_service.finalize(session, retry['payment']['provider_reference'], driver=gateway, clock=clock)
        assert order.status == 'pending'

    def test_open_attempt_is_updated(self, session, customer, cart, gateway, clock):
        state = checkout_service.initialize(session, customer.id, cart, driver=gateway, clock=clock)

        retry = checkout_service.resume_payment(session, state['order_id'], customer.id, driver=gateway)

        assert retry['payment']['payment_id'] == state['payment']['payment_id']
        assert gateway.updated == 1
        assert session.query(Payment).count() == 1

    def test_paid_order_not_reopened(self, session, customer, cart, gateway, clock):
        state = checkout_service.initialize(session, customer.id, cart, driver=gateway, clock=clock)
        checkout_service.finalize(session, state['payment']['provider_reference'], driver=gateway, clock=clock)

        with pytest.raises(BadRequestError):
            checkout_service.resume_payment(session, state['order_id'], customer.id, driver=gateway)

    def test_other_customer(self, session, customer, other_customer, cart, gateway, clock):
        state = checkout_service.initialize(session, customer.id, cart, driver=gateway, clock=clock)

        with pytest.raises(NotFoundError):
            checkout_service.resume_payment(session, state['order_id'], other_customer.id, driver=gateway)


class TestPaymentDrivers:

    def test_configured_driver(self, app):
        with app.app_context():
            assert isinstance(get_driver(), ManualPaymentDriver)

    def test_unknown_driver(self, app):
        with app.app_context():
            with pytest.raises(PaymentGatewayError):
                get_driver('carrier-pigeon')

    def test_registered_driver_selected_by_name(self, app, monkeypatch):
        monkeypatch.setattr(payment_gateway, '_drivers', dict(payment_gateway._drivers))
        payment_gateway.register_driver(DeclinedGateway)

        with app.app_context():
            assert isinstance(get_driver('declined'), DeclinedGateway)

    def test_manual_payment_settles_offline(self, session, customer, cart, clock):
        state = checkout_service.initialize(session, customer.id, cart, clock=clock)
        reference = state['payment']['provider_reference']
        assert reference.startswith('MANUAL-')
        assert state['payment']['client_secret'] is None

        order = checkout_service.finalize(session, reference, clock=clock)

        assert order.status == 'pending'
        assert session.query(Payment).one().meta['intent']['settlement'] == 'offline'


class TestCheckoutApi:

    def test_checkout_and_finalize(self, client, customer, cart):
        customer_id = customer.id

        response = client.post('/api/checkout', json={'customer_id': customer_id, 'lines': cart})
        assert response.status_code == 201
        data = response.get_json()
        assert data['status'] == 'pending_payment'
        assert data['total'] == 55517.0
        reference = data['payment']['provider_reference']

        response = client.post('/api/checkout/finalize', json={'provider_reference': reference, 'customer_id': customer_id})
        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'pending'
        assert [h['status'] for h in data['history']] == ['pending_payment', 'pending']

    def test_pay_order_endpoint(self, client, customer, cart):
        customer_id = customer.id
        order_id = client.post('/api/checkout', json={'customer_id': customer_id, 'lines': cart}).get_json()['order_id']

        response = client.post(f'/api/checkout/orders/{order_id}/pay', json={'customer_id': customer_id})

        assert response.status_code == 200
        assert response.get_json()['payment']['provider'] == 'manual'

    def test_empty_cart(self, client, customer):
        response = client.post('/api/checkout', json={'customer_id': customer.id, 'lines': []})
        assert response.status_code == 400

    def test_missing_provider_reference(self, client):
        response = client.post('/api/checkout/finalize', json={})

        assert response.status_code == 400
        assert 'provider_reference' in response.get_json()['errors']

    def test_declined_payment_status_code(self, client, session, customer, cart, clock, monkeypatch):
        monkeypatch.setitem(payment_gateway._drivers, DeclinedGateway.name, DeclinedGateway)
        state = checkout_service.initialize(session, customer.id, cart, driver=DeclinedGateway(), clock=clock)

        response = client.post('/api/checkout/finalize', json={'provider_reference': state['payment']['provider_reference']})

        assert response.status_code == 402
        assert response.get_json()['gateway_status'] == 'canceled'
