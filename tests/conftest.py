import pytest
from datetime import datetime
from decimal import Decimal
import uuid

from jewelry import create_app
from jewelry.database import get_session, create_schema, drop_schema
from jewelry.models import (
    Customer, Diamond, MetalRate, Product, ProductVariant, VariantMetal, VariantDiamond,
    Quotation, QuotationStatus, DiscountCampaign
)
from jewelry.utils.clock import FrozenClock


NOW = datetime(2026, 6, 1, 12, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    return create_app('config.TestConfig')


@pytest.fixture(scope='function')
def session(app):
    """Fresh schema and database session per test, inside an app context."""
    ctx = app.app_context()
    ctx.push()
    create_schema()

    session = get_session()
    yield session

    session.rollback()
    session.remove()
    drop_schema()
    ctx.pop()


@pytest.fixture(scope='function')
def client(app, session):
    """Create test client sharing the test's app context and session."""
    return app.test_client()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def gold_rate(session):
    """Gold 22k at 5000/g, stored with non-normalized casing."""
    rate = MetalRate(
        metal='Gold',
        purity='22K',
        price_per_gram=Decimal('5000.00'),
        effective_at=datetime(2026, 1, 1)
    )
    session.add(rate)
    session.commit()
    return rate


@pytest.fixture
def diamond(session):
    diamond = Diamond(name='Round brilliant 0.10ct', price=Decimal('2000.00'))
    session.add(diamond)
    session.commit()
    return diamond


@pytest.fixture
def ring(session):
    """Making charge: 500 fixed + 10% of metal cost."""
    product = Product(
        sku='RING-001',
        name='Solitaire Ring',
        brand_id=1,
        category_id=10,
        making_charge_amount=Decimal('500.00'),
        making_charge_percentage=Decimal('10.00'),
        making_charge_types=['fixed', 'percentage']
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture
def ring_variant(session, ring, gold_rate, diamond):
    """2 g of gold (10000) and one diamond (2000); 5 pieces in stock."""
    variant = ProductVariant(product_id=ring.id, label='Yellow gold / size 7', inventory_quantity=5)
    variant.metals.append(VariantMetal(metal='gold', purity='22k', tone='yellow', weight_grams=Decimal('2.000')))
    variant.diamonds.append(VariantDiamond(diamond_id=diamond.id, count=1))
    session.add(variant)
    session.commit()
    return variant


@pytest.fixture
def chain(session):
    """Only a fixed amount set and no declared kinds: making infers 'fixed' = 200."""
    product = Product(
        sku='CHAIN-001',
        name='Gold Chain',
        brand_id=2,
        category_id=20,
        making_charge_amount=Decimal('200.00'),
        making_charge_percentage=Decimal('0'),
        making_charge_types=[]
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture
def chain_variant(session, chain, gold_rate):
    """4 g of gold (20000); 3 pieces in stock."""
    variant = ProductVariant(product_id=chain.id, label='18 inch', inventory_quantity=3)
    variant.metals.append(VariantMetal(metal='gold', purity='22k', weight_grams=Decimal('4.000')))
    session.add(variant)
    session.commit()
    return variant


@pytest.fixture
def customer(session):
    suffix = str(uuid.uuid4())[:8]
    customer = Customer(
        name='Asha Rao',
        email=f'asha-{suffix}@example.com',
        customer_group_id=7,
        customer_type='retailer'
    )
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture
def other_customer(session):
    customer = Customer(name='Vikram Shah', email='vikram@example.com', customer_type='wholesaler')
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture
def make_group(session):
    """Factory: persist quotation lines sharing one new group id."""

    def _make(customer, lines, status=QuotationStatus.PENDING.value):
        group_id = str(uuid.uuid4())
        created = []
        for product, variant, quantity in lines:
            quotation = Quotation(
                customer_id=customer.id,
                quotation_group_id=group_id,
                product_id=product.id,
                product_variant_id=variant.id if variant else None,
                quantity=quantity,
                status=status
            )
            session.add(quotation)
            created.append(quotation)
        session.commit()
        return created

    return _make


@pytest.fixture
def group(make_group, customer, ring, ring_variant, chain, chain_variant):
    """Two pending lines: 1 ring and 2 chains."""
    return make_group(customer, [(ring, ring_variant, 1), (chain, chain_variant, 2)])


@pytest.fixture
def make_campaign(session):
    """Factory: persist an active automatic discount campaign."""

    def _make(**overrides):
        values = dict(
            name='Campaign',
            kind='percentage',
            value=Decimal('20'),
            is_auto=True,
            is_active=True,
            customer_types=[]
        )
        values.update(overrides)
        campaign = DiscountCampaign(**values)
        session.add(campaign)
        session.commit()
        return campaign

    return _make
