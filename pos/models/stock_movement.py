"""Stock Movement model (append-only ledger)."""
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, Enum, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos.database import Base, BigIntPK
import enum


class MovementType(str, enum.Enum):
    """Direction of a stock movement."""
    ENTRADA = "entrada"
    SALIDA = "salida"


class StockMovement(Base):
    """Stock Movement (movimiento de inventario). Never updated or deleted."""

    __tablename__ = 'stock_movement'
    __table_args__ = (
        Index('ix_stock_movement_product_date', 'user_id', 'product_id', 'date'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    sale_id = Column(BigInteger, ForeignKey('sale.id'), nullable=True)
    type = Column(
        Enum(MovementType, name='movement_type', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    quantity = Column(Integer, nullable=False)  # + entrada, - salida
    reason = Column(String(255), nullable=False)
    user_name = Column(String(255), nullable=True)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    product = relationship('Product')

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'sale_id': self.sale_id,
            'type': self.type.value,
            'quantity': self.quantity,
            'reason': self.reason,
            'user_name': self.user_name,
            'previous_stock': self.previous_stock,
            'new_stock': self.new_stock,
            'date': self.date.isoformat() if self.date else None,
        }

    def __repr__(self):
        return f"<StockMovement(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"
