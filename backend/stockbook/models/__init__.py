from .inventory import Product, StockTransaction
from .sales import Sale, SaleItem, Payment
from .auth import User, SessionToken
from .audit import AuditLog

__all__ = [
    'Product', 'StockTransaction',
    'Sale', 'SaleItem', 'Payment',
    'User', 'SessionToken',
    'AuditLog',
]
