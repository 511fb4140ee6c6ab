"""Customer model."""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelry.database import Base


class Customer(Base):
    """Customer placing quotations and orders. Group and type drive discount targeting."""

    __tablename__ = 'customer'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    customer_group_id = Column(Integer, nullable=True)
    customer_type = Column(String(50), nullable=True)  # e.g. retailer, wholesaler
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    quotations = relationship('Quotation', back_populates='customer')
    orders = relationship('Order', back_populates='customer')

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.name}')>"
