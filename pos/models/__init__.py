"""Models package - exports all SQLAlchemy models."""
from pos.models.app_user import AppUser
from pos.models.product import Product
from pos.models.stock_movement import StockMovement, MovementType
from pos.models.sale import Sale, SaleStatus, PaymentMethod
from pos.models.sale_item import SaleItem
from pos.models.tax_settings import TaxSettings

__all__ = [
    'AppUser',
    'Product',
    'StockMovement', 'MovementType',
    'Sale', 'SaleStatus', 'PaymentMethod', 'SaleItem',
    'TaxSettings',
]
