"""Sale repository (user-scoped)."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from pos.exceptions import NotAuthenticatedError, SaleNotFoundError
from pos.models import Sale, SaleStatus


class SaleRepository:
    """Sale records for one user's partition."""

    def __init__(self, session: Session, user_id: int):
        if not user_id:
            raise NotAuthenticatedError()
        self.session = session
        self.user_id = user_id

    def _query(self):
        return self.session.query(Sale).filter(Sale.user_id == self.user_id)

    def get(self, sale_id: int, for_update: bool = False) -> Sale:
        query = self._query().filter(Sale.id == sale_id)
        if for_update:
            query = query.with_for_update()
        sale = query.first()
        if not sale:
            raise SaleNotFoundError(sale_id)
        return sale

    def add(self, sale: Sale) -> Sale:
        sale.user_id = self.user_id
        self.session.add(sale)
        self.session.flush()
        return sale

    def list(self, start: Optional[datetime] = None, end: Optional[datetime] = None,
             status: Optional[SaleStatus] = None) -> List[Sale]:
        query = self._query().options(selectinload(Sale.items))
        if start is not None:
            query = query.filter(Sale.timestamp >= start)
        if end is not None:
            query = query.filter(Sale.timestamp <= end)
        if status is not None:
            query = query.filter(Sale.status == status)
        return query.order_by(Sale.timestamp.desc(), Sale.id.desc()).all()
