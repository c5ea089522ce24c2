from .auth import User, SessionToken
from .stores import Store
from .inventory import Product, LedgerEntry

__all__ = [
    'User', 'SessionToken',
    'Store',
    'Product', 'LedgerEntry',
]
