"""AppUser model - platform users authenticated by the external identity provider."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from pos.database import Base, BigIntPK


class AppUser(Base):
    """AppUser model - one data partition per user."""

    __tablename__ = 'app_user'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    external_uid = Column(String(255), nullable=True, unique=True)  # Identity provider subject
    email = Column(String(255), nullable=False, unique=True)
    display_name = Column(String(200), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    email_verified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def user_name(self):
        """Name recorded on stock movements."""
        return self.display_name or self.email

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'display_name': self.display_name,
            'email_verified': self.email_verified,
        }

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}')>"
