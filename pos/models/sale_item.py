"""Sale Item model."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from pos.database import Base, BigIntPK


class SaleItem(Base):
    """Sale Item (detalle de venta)."""

    __tablename__ = 'sale_item'
    __table_args__ = (
        CheckConstraint('quantity >= 1', name='ck_sale_item_quantity_positive'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    sale_id = Column(BigInteger, ForeignKey('sale.id'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    # Relationships
    sale = relationship('Sale', back_populates='items')

    @property
    def line_total(self):
        return self.price * self.quantity

    def to_dict(self):
        return {
            'id': self.product_id,
            'name': self.name,
            'price': str(self.price),
            'quantity': self.quantity,
        }

    def __repr__(self):
        return f"<SaleItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"
