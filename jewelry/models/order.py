"""Order, order item and status history models."""
import enum
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelry.database import Base


class OrderStatus(str, enum.Enum):
    """Order status enum. Any status may follow any other (see order_workflow_service)."""
    PENDING = 'pending'
    APPROVED = 'approved'
    IN_PRODUCTION = 'in_production'
    QUALITY_CHECK = 'quality_check'
    READY_TO_DISPATCH = 'ready_to_dispatch'
    DISPATCHED = 'dispatched'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'
    PENDING_PAYMENT = 'pending_payment'
    PAID = 'paid'
    PAYMENT_FAILED = 'payment_failed'
    AWAITING_MATERIALS = 'awaiting_materials'

    @classmethod
    def values(cls):
        return [member.value for member in cls]


class Order(Base):
    """
    Customer order.

    quotation_group_id is unique: a quotation group converts into at most one
    order, which also serializes concurrent approvals of the same group.
    """

    __tablename__ = 'orders'

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference = Column(String(32), nullable=False, unique=True)
    customer_id = Column(Integer, ForeignKey('customer.id'), nullable=False, index=True)
    quotation_group_id = Column(String(36), nullable=True, unique=True)
    status = Column(String(40), nullable=False, default=OrderStatus.PENDING.value)
    currency = Column(String(3), nullable=False, default='INR')
    subtotal_amount = Column(Numeric(14, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(14, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    price_breakdown = Column(JSON, nullable=False, default=dict)
    status_meta = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    customer = relationship('Customer', back_populates='orders')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan')
    history = relationship(
        'OrderStatusHistory',
        back_populates='order',
        cascade='all, delete-orphan',
        order_by='OrderStatusHistory.id'
    )
    quotations = relationship('Quotation', back_populates='order')
    payments = relationship('Payment', back_populates='order', order_by='Payment.id')

    def __repr__(self):
        return f"<Order(id={self.id}, reference='{self.reference}', status='{self.status}', total={self.total_amount})>"


class OrderItem(Base):
    """Order line with a snapshot of product, variant and pricing at order time."""

    __tablename__ = 'order_item'

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey('orders.id'), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey('product.id'), nullable=False)
    product_variant_id = Column(Integer, ForeignKey('product_variant.id'), nullable=True)
    sku = Column(String(64), nullable=True)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False)
    total_price = Column(Numeric(14, 2), nullable=False)
    price_breakdown = Column(JSON, nullable=False, default=dict)
    item_metadata = Column('metadata', JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    order = relationship('Order', back_populates='items')

    def __repr__(self):
        return f"<OrderItem(order_id={self.order_id}, name='{self.name}', qty={self.quantity})>"


class OrderStatusHistory(Base):
    """
    Append-only audit trail of order status changes.

    customer_id is only set when a customer triggered the change; staff
    actions are recorded in meta (actor_kind/actor_id) without a foreign key.
    """

    __tablename__ = 'order_status_history'

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey('orders.id'), nullable=False, index=True)
    status = Column(String(40), nullable=False)
    customer_id = Column(Integer, ForeignKey('customer.id'), nullable=True)
    meta = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False)

    order = relationship('Order', back_populates='history')

    def __repr__(self):
        return f"<OrderStatusHistory(order_id={self.order_id}, status='{self.status}', at={self.created_at})>"
