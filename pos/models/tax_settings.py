"""Tax Settings model."""
from sqlalchemy import Column, BigInteger, Boolean, String, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from pos.database import Base


class TaxSettings(Base):
    """Per-user tax configuration read at checkout."""

    __tablename__ = 'tax_settings'
    __table_args__ = (
        CheckConstraint('rate >= 0 AND rate <= 1', name='ck_tax_settings_rate_range'),
    )

    user_id = Column(BigInteger, ForeignKey('app_user.id'), primary_key=True)
    enabled = Column(Boolean, nullable=False, default=True)
    rate = Column(Numeric(5, 4), nullable=False, default=0)
    name = Column(String(50), nullable=False, default='IVA')
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {'enabled': self.enabled, 'rate': str(self.rate), 'name': self.name}

    def __repr__(self):
        return f"<TaxSettings(user_id={self.user_id}, enabled={self.enabled}, rate={self.rate})>"
