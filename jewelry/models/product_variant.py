"""Product variant with its metal and diamond composition."""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelry.database import Base


class ProductVariant(Base):
    """Priced configuration of a product. inventory_quantity NULL means unlimited."""

    __tablename__ = 'product_variant'
    __table_args__ = (
        CheckConstraint(
            'inventory_quantity IS NULL OR inventory_quantity >= 0',
            name='ck_variant_inventory_non_negative'
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey('product.id'), nullable=False, index=True)
    label = Column(String(255), nullable=True)
    inventory_quantity = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    product = relationship('Product', back_populates='variants')
    metals = relationship('VariantMetal', back_populates='variant', cascade='all, delete-orphan')
    diamonds = relationship('VariantDiamond', back_populates='variant', cascade='all, delete-orphan')

    @property
    def has_limited_inventory(self):
        return self.inventory_quantity is not None

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, product_id={self.product_id}, inventory={self.inventory_quantity})>"


class VariantMetal(Base):
    """One metal line of a variant: metal, purity, tone and weight in grams."""

    __tablename__ = 'variant_metal'

    id = Column(Integer, primary_key=True, autoincrement=True)
    variant_id = Column(Integer, ForeignKey('product_variant.id'), nullable=False, index=True)
    metal = Column(String(50), nullable=False)
    purity = Column(String(50), nullable=False)
    tone = Column(String(50), nullable=True)
    weight_grams = Column(Numeric(10, 3), nullable=True)

    variant = relationship('ProductVariant', back_populates='metals')

    def __repr__(self):
        return f"<VariantMetal({self.metal} {self.purity}, {self.weight_grams}g)>"


class VariantDiamond(Base):
    """Diamonds set in a variant."""

    __tablename__ = 'variant_diamond'

    id = Column(Integer, primary_key=True, autoincrement=True)
    variant_id = Column(Integer, ForeignKey('product_variant.id'), nullable=False, index=True)
    diamond_id = Column(Integer, ForeignKey('diamond.id'), nullable=False)
    count = Column(Integer, nullable=False, default=1)

    variant = relationship('ProductVariant', back_populates='diamonds')
    diamond = relationship('Diamond')

    def __repr__(self):
        return f"<VariantDiamond(diamond_id={self.diamond_id}, count={self.count})>"
