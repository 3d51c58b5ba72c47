from .tenancy import User, SessionToken
from .inventory import Product
from .sales import Order, OrderLine, OrderPayment
from .customers import Customer

__all__ = [
    'User', 'SessionToken',
    'Product',
    'Order', 'OrderLine', 'OrderPayment',
    'Customer',
]
