"""Product model (catalog-owned, read-only to pricing)."""
import enum
from sqlalchemy import Column, Integer, String, Numeric, DateTime, JSON, CheckConstraint
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func
from jewelry.database import Base


class MakingChargeKind(str, enum.Enum):
    """Components a making charge can be built from."""
    FIXED = 'fixed'
    PERCENTAGE = 'percentage'


class Product(Base):
    """
    Product with its making-charge configuration.

    `making_charge_types` is an explicit list of MakingChargeKind values. When it
    is empty the kinds are inferred from which of the amount/percentage fields
    are positive (see discount_service.making_charge).
    """

    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('making_charge_amount >= 0', name='ck_product_making_amount'),
        CheckConstraint(
            'making_charge_percentage >= 0 AND making_charge_percentage <= 100',
            name='ck_product_making_percentage'
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    sku = Column(String(64), nullable=True)
    name = Column(String(255), nullable=False)
    brand_id = Column(Integer, nullable=True)
    category_id = Column(Integer, nullable=True)
    making_charge_amount = Column(Numeric(12, 2), nullable=False, default=0)
    making_charge_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    making_charge_types = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    variants = relationship('ProductVariant', back_populates='product', cascade='all, delete-orphan')

    @validates('making_charge_types')
    def _validate_charge_types(self, key, value):
        kinds = []
        for item in value or []:
            kind = MakingChargeKind(str(item).strip().lower())
            if kind.value not in kinds:
                kinds.append(kind.value)
        return kinds

    @property
    def charge_kinds(self):
        """Declared making-charge kinds as a frozenset of MakingChargeKind."""
        return frozenset(MakingChargeKind(k) for k in (self.making_charge_types or []))

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}')>"
