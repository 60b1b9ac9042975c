from .inventory import Product, StockAdjustment, PriceHistoryEntry
from .sales import Sale, SaleItem
from .returns import ReturnRecord, ReturnLine

__all__ = [
    'Product', 'StockAdjustment', 'PriceHistoryEntry',
    'Sale', 'SaleItem',
    'ReturnRecord', 'ReturnLine',
]
