"""Sale model."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Enum, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos.database import Base, BigIntPK
import enum


class SaleStatus(str, enum.Enum):
    """Sale status enum. Any transition is allowed; new sales start as completed."""
    COMPLETED = "completed"
    PENDING = "pending"
    CANCELLED = "cancelled"

    @property
    def holds_stock(self):
        """Whether a sale in this status has its items deducted from stock."""
        return self in (SaleStatus.COMPLETED, SaleStatus.PENDING)


class PaymentMethod(str, enum.Enum):
    """Payment method enum."""
    EFECTIVO = "efectivo"
    TARJETA = "tarjeta"
    TRANSFERENCIA = "transferencia"


def _values(enum_cls):
    return [m.value for m in enum_cls]


class Sale(Base):
    """Sale (venta)."""

    __tablename__ = 'sale'
    __table_args__ = (
        Index('ix_sale_user_timestamp', 'user_id', 'timestamp'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False)
    code = Column(String(32), nullable=False, unique=True)
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 4), nullable=False, default=0)
    tax_name = Column(String(50), nullable=True)
    total = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(
        Enum(PaymentMethod, name='payment_method', values_callable=_values),
        nullable=False,
    )
    status = Column(
        Enum(SaleStatus, name='sale_status', values_callable=_values),
        nullable=False,
        default=SaleStatus.COMPLETED,
    )
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    items = relationship(
        'SaleItem', back_populates='sale', cascade='all, delete-orphan', order_by='SaleItem.id'
    )

    @property
    def short_id(self):
        """Short reference shown to cashiers (last 6 chars of the code)."""
        return self.code[-6:]

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'short_id': self.short_id,
            'items': [item.to_dict() for item in self.items],
            'subtotal': str(self.subtotal),
            'tax': str(self.tax),
            'tax_rate': str(self.tax_rate),
            'tax_name': self.tax_name,
            'total': str(self.total),
            'payment_method': self.payment_method.value,
            'status': self.status.value,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<Sale(id={self.id}, total={self.total}, status={self.status.value})>"
