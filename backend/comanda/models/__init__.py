from .tenancy import Company
from .catalog import Product
from .orders import Order, OrderItem, OrderEvent, TargetType, OrderStatus, OrderSource, ItemStatus
from .ledgers import StockMovement, Transaction

__all__ = [
    'Company',
    'Product',
    'Order', 'OrderItem', 'OrderEvent',
    'TargetType', 'OrderStatus', 'OrderSource', 'ItemStatus',
    'StockMovement', 'Transaction',
]
