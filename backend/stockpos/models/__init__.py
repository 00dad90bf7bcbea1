from .catalog import Product, ProductVariant
from .stock import StockKey, StockLine, StockMovement, LowStockAlert
from .sales import Sale, SaleItem, SaleRefund

__all__ = [
    'Product', 'ProductVariant',
    'StockKey', 'StockLine', 'StockMovement', 'LowStockAlert',
    'Sale', 'SaleItem', 'SaleRefund',
]
