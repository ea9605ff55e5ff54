from .catalog import Product, ProductVariant
from .orders import Order, OrderItem

__all__ = [
    'Product', 'ProductVariant',
    'Order', 'OrderItem',
]
