"""Making-charge discount campaigns."""
import enum
from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, JSON
from sqlalchemy.orm import validates
from sqlalchemy.sql import func
from jewelry.database import Base


class DiscountKind(str, enum.Enum):
    """How a campaign value is applied to the making charge."""
    FIXED = 'fixed'
    PERCENTAGE = 'percentage'


class DiscountCampaign(Base):
    """
    Promotional discount on the making charge.

    Scope filters (brand, category, customer group, customer types, minimum
    line subtotal) are all optional; an unset filter matches everything.
    A NULL starts_at/ends_at leaves that side of the window open.
    """

    __tablename__ = 'discount_campaign'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    brand_id = Column(Integer, nullable=True)
    category_id = Column(Integer, nullable=True)
    customer_group_id = Column(Integer, nullable=True)
    customer_types = Column(JSON, nullable=False, default=list)
    min_line_subtotal = Column(Numeric(12, 2), nullable=True)
    is_auto = Column(Boolean, nullable=False, default=True)
    kind = Column(String(20), nullable=False, default=DiscountKind.PERCENTAGE.value)
    value = Column(Numeric(12, 2), nullable=False, default=0)
    starts_at = Column(DateTime, nullable=True)
    ends_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @validates('kind')
    def _validate_kind(self, key, value):
        return DiscountKind(str(value).strip().lower()).value

    @validates('customer_types')
    def _validate_customer_types(self, key, value):
        return [str(t).strip().lower() for t in (value or []) if str(t).strip()]

    def __repr__(self):
        return f"<DiscountCampaign(id={self.id}, name='{self.name}', {self.kind}={self.value})>"
