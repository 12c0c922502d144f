"""Repositories package - user-scoped store access."""
from pos.repositories.interfaces import InventoryStore, SaleStore
from pos.repositories.inventory_repository import InventoryRepository
from pos.repositories.sale_repository import SaleRepository

__all__ = ['InventoryStore', 'SaleStore', 'InventoryRepository', 'SaleRepository']
