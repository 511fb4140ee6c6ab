"""Models package - exports all SQLAlchemy models."""
# Catalog (read-only to pricing)
from jewelry.models.product import Product, MakingChargeKind
from jewelry.models.product_variant import ProductVariant, VariantMetal, VariantDiamond
from jewelry.models.diamond import Diamond
from jewelry.models.metal_rate import MetalRate

# Pricing configuration
from jewelry.models.discount_campaign import DiscountCampaign, DiscountKind
from jewelry.models.tax_rate import TaxRate, Setting

# Customers, quotations, orders, payments
from jewelry.models.customer import Customer
from jewelry.models.quotation import Quotation, QuotationStatus, QuotationMessage, APPROVABLE_STATUSES
from jewelry.models.order import Order, OrderStatus, OrderItem, OrderStatusHistory
from jewelry.models.payment import Payment, PaymentStatus, OPEN_PAYMENT_STATUSES

__all__ = [
    # Catalog
    'Product', 'MakingChargeKind', 'ProductVariant', 'VariantMetal', 'VariantDiamond',
    'Diamond', 'MetalRate',
    # Pricing
    'DiscountCampaign', 'DiscountKind', 'TaxRate', 'Setting',
    # Sales
    'Customer', 'Quotation', 'QuotationStatus', 'QuotationMessage', 'APPROVABLE_STATUSES',
    'Order', 'OrderStatus', 'OrderItem', 'OrderStatusHistory',
    'Payment', 'PaymentStatus', 'OPEN_PAYMENT_STATUSES',
]
