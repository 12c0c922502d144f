"""Product model."""
from sqlalchemy import (
    Column, BigInteger, Integer, String, Text, Boolean, Numeric, DateTime, ForeignKey,
    CheckConstraint, Index,
)
from sqlalchemy.sql import func
from pos.database import Base, BigIntPK


class Product(Base):
    """Product in a user's catalog. Stock changes go through the stock ledger only."""

    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('stock >= 0', name='ck_product_stock_non_negative'),
        CheckConstraint('price >= 0', name='ck_product_price_non_negative'),
        Index('ix_product_user_active', 'user_id', 'active'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    category = Column(String(100), nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    barcode = Column(String(64), nullable=True)
    image = Column(String(255), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    # Optimistic lock: every UPDATE checks and bumps it
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {'version_id_col': version}

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'price': str(self.price) if self.price is not None else None,
            'category': self.category,
            'stock': self.stock,
            'barcode': self.barcode,
            'image': self.image,
            'active': self.active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"
