from .inventory import Product, InventoryMovement, MOVEMENT_TYPES
from .sales import Transaction, TransactionItem, TRANSACTION_STATUSES
from .auth import User
from .customers import Customer

__all__ = [
    'Product', 'InventoryMovement', 'MOVEMENT_TYPES',
    'Transaction', 'TransactionItem', 'TRANSACTION_STATUSES',
    'User', 'Customer',
]
