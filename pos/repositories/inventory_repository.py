"""Inventory repository over the product table (user-scoped)."""
import logging
from typing import Iterable, Dict, List

from sqlalchemy.orm import Session

from pos.exceptions import NotAuthenticatedError, ProductNotFoundError, StockInconsistencyError
from pos.models import Product

logger = logging.getLogger(__name__)


class InventoryRepository:
    """
    Product access for one user's partition.

    Every query filters by ``user_id``; products of other users behave as missing.
    """

    def __init__(self, session: Session, user_id: int):
        if not user_id:
            raise NotAuthenticatedError()
        self.session = session
        self.user_id = user_id

    def _query(self):
        return self.session.query(Product).filter(Product.user_id == self.user_id)

    def get_product(self, product_id: int, for_update: bool = False,
                    include_inactive: bool = False) -> Product:
        query = self._query().filter(Product.id == product_id)
        if for_update:
            query = query.with_for_update()
        product = query.first()
        if not product or (not product.active and not include_inactive):
            raise ProductNotFoundError(product_id)
        return product

    def lock_products(self, product_ids: Iterable[int], include_inactive: bool = False) -> Dict[int, Product]:
        """
        Lock product rows FOR UPDATE (where the backend supports it) and re-read stock.

        Rows are locked in id order so concurrent sales cannot deadlock each other.
        """
        ids = sorted(set(int(pid) for pid in product_ids))
        if not ids:
            return {}

        products = (
            self._query()
            .filter(Product.id.in_(ids))
            .order_by(Product.id)
            .with_for_update()
            .populate_existing()
            .all()
        )
        found = {p.id: p for p in products}
        for pid in ids:
            product = found.get(pid)
            if not product or (not product.active and not include_inactive):
                raise ProductNotFoundError(pid)
        return found

    def list_active(self) -> List[Product]:
        return self._query().filter(Product.active.is_(True)).order_by(Product.name).all()

    def list_all(self) -> List[Product]:
        return self._query().order_by(Product.name).all()

    def low_stock(self, threshold: int) -> List[Product]:
        return (
            self._query()
            .filter(Product.active.is_(True), Product.stock <= threshold)
            .order_by(Product.stock, Product.name)
            .all()
        )

    def add(self, product: Product) -> Product:
        product.user_id = self.user_id
        self.session.add(product)
        self.session.flush()
        return product

    def adjust_stock(self, product: Product, new_stock: int) -> None:
        """Set the product stock; the UPDATE is version-checked when the session flushes."""
        if new_stock < 0:
            logger.error(
                f"[STOCK] Refusing negative stock for product {product.id}: "
                f"{product.stock} -> {new_stock}"
            )
            raise StockInconsistencyError(product.id, product.stock, new_stock - product.stock)
        product.stock = new_stock
