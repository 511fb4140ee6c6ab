"""Metal rate model: point-in-time price per gram."""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Index
from sqlalchemy.sql import func
from jewelry.database import Base


class MetalRate(Base):
    """
    Price per gram for a metal/purity pair.

    Several rows may exist for the same pair; the one with the greatest
    effective_at not after the lookup instant applies. Metal and purity are
    stored normalized (trimmed, lower-case).
    """

    __tablename__ = 'metal_rate'
    __table_args__ = (
        Index('ix_metal_rate_lookup', 'metal', 'purity', 'effective_at'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    metal = Column(String(50), nullable=False)
    purity = Column(String(50), nullable=False)
    price_per_gram = Column(Numeric(12, 2), nullable=False)
    effective_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<MetalRate({self.metal}/{self.purity}={self.price_per_gram} @ {self.effective_at})>"
