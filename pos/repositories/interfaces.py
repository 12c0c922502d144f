"""
Repository contracts the sale pipeline depends on.

Services depend on these protocols rather than on a concrete store, so a
different backend only needs a new implementation.
"""
from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from pos.models import Product, Sale, SaleStatus


@runtime_checkable
class InventoryStore(Protocol):
    """Per-user product stock access."""

    def get_product(self, product_id: int, for_update: bool = False,
                    include_inactive: bool = False) -> Product:
        """Return the product or raise ProductNotFoundError."""
        ...

    def list_active(self) -> List[Product]:
        """Active products ordered by name."""
        ...

    def adjust_stock(self, product: Product, new_stock: int) -> None:
        """Set stock inside the caller's transaction (version-checked at flush)."""
        ...


@runtime_checkable
class SaleStore(Protocol):
    """Per-user sale record access."""

    def get(self, sale_id: int, for_update: bool = False) -> Sale:
        """Return the sale or raise SaleNotFoundError."""
        ...

    def add(self, sale: Sale) -> Sale:
        """Stage a new sale in the caller's transaction."""
        ...

    def list(self, start: Optional[datetime] = None, end: Optional[datetime] = None,
             status: Optional[SaleStatus] = None) -> List[Sale]:
        """Sales most recent first."""
        ...
