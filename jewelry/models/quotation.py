"""Quotation models."""
import enum
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelry.database import Base


class QuotationStatus(str, enum.Enum):
    """Quotation status enum."""
    PENDING = 'pending'
    PENDING_CUSTOMER_CONFIRMATION = 'pending_customer_confirmation'
    CUSTOMER_CONFIRMED = 'customer_confirmed'
    CUSTOMER_DECLINED = 'customer_declined'
    APPROVED = 'approved'
    REJECTED = 'rejected'


# Statuses from which a group can be converted into an order
APPROVABLE_STATUSES = (QuotationStatus.PENDING.value, QuotationStatus.CUSTOMER_CONFIRMED.value)


class Quotation(Base):
    """
    One line of a quotation request.

    Lines submitted together share quotation_group_id and are approved or
    rejected as a unit. Once approved, every line of the group points at the
    same order.
    """

    __tablename__ = 'quotation'
    __table_args__ = (
        CheckConstraint('quantity >= 1', name='ck_quotation_quantity_positive'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey('customer.id'), nullable=False, index=True)
    quotation_group_id = Column(String(36), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey('product.id'), nullable=False)
    product_variant_id = Column(Integer, ForeignKey('product_variant.id'), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    status = Column(String(40), nullable=False, default=QuotationStatus.PENDING.value)
    notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    order_id = Column(Integer, ForeignKey('orders.id'), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    customer = relationship('Customer', back_populates='quotations')
    product = relationship('Product')
    variant = relationship('ProductVariant')
    order = relationship('Order', back_populates='quotations')

    def __repr__(self):
        return f"<Quotation(id={self.id}, group='{self.quotation_group_id}', status='{self.status}')>"

    @property
    def is_approvable(self):
        return self.status in APPROVABLE_STATUSES and self.order_id is None


class QuotationMessage(Base):
    """Conversation entry attached to a quotation group."""

    __tablename__ = 'quotation_message'

    id = Column(Integer, primary_key=True, autoincrement=True)
    quotation_group_id = Column(String(36), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey('customer.id'), nullable=True)
    sender = Column(String(20), nullable=False)  # admin, customer
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<QuotationMessage(group='{self.quotation_group_id}', sender='{self.sender}')>"
