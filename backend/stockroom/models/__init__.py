from .inventory import Category, Supplier, Product, StockHistory, StockAction, ImmutableRecordError
from .sales import Sale, SaleStatus, PaymentMethod, SaleStateError
from .auth import User, SessionToken, ROLE_ADMIN, ROLE_STAFF, ROLES

__all__ = [
    'Category', 'Supplier', 'Product', 'StockHistory', 'StockAction', 'ImmutableRecordError',
    'Sale', 'SaleStatus', 'PaymentMethod', 'SaleStateError',
    'User', 'SessionToken', 'ROLE_ADMIN', 'ROLE_STAFF', 'ROLES',
]
