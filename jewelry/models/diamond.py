"""Diamond model."""
from sqlalchemy import Column, Integer, String, Numeric
from jewelry.database import Base


class Diamond(Base):
    """Diamond with a fixed unit price."""

    __tablename__ = 'diamond'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(12, 2), nullable=False, default=0)

    def __repr__(self):
        return f"<Diamond(id={self.id}, name='{self.name}', price={self.price})>"
