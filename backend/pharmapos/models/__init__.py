from .inventory import Product, StockMovement
from .customers import Customer
from .suppliers import Supplier
from .orders import Order, OrderItem

__all__ = [
    'Product', 'StockMovement',
    'Customer',
    'Supplier',
    'Order', 'OrderItem',
]
