"""Payment attempt model."""
import enum
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelry.database import Base


class PaymentStatus(str, enum.Enum):
    PENDING = 'pending'
    REQUIRES_ACTION = 'requires_action'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


# Attempts that can still be reused when the customer retries the payment
OPEN_PAYMENT_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.REQUIRES_ACTION.value)


class Payment(Base):
    """
    One payment intent opened with a gateway for an order.

    provider_reference is the gateway's id for the intent; it is how the
    gateway callback finds the attempt again.
    """

    __tablename__ = 'payment'

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey('orders.id'), nullable=False, index=True)
    provider = Column(String(40), nullable=False)
    provider_reference = Column(String(128), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    meta = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    order = relationship('Order', back_populates='payments')

    def __repr__(self):
        return f"<Payment(id={self.id}, order_id={self.order_id}, provider='{self.provider}', status='{self.status}')>"
