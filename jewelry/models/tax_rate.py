"""Tax rate and key/value settings models."""
from sqlalchemy import Column, Integer, String, Numeric, Boolean, Text, DateTime
from sqlalchemy.sql import func
from jewelry.database import Base


class TaxRate(Base):
    """Configured tax rate (percent). The active record with the lowest id applies."""

    __tablename__ = 'tax_rate'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    code = Column(String(50), nullable=True)
    rate = Column(Numeric(5, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<TaxRate(id={self.id}, name='{self.name}', rate={self.rate})>"


class Setting(Base):
    """General key/value setting."""

    __tablename__ = 'setting'

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Setting({self.key}={self.value!r})>"
