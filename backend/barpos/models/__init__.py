from .catalog import Product, RecipeLine
from .events import Event, Register, StockLocation
from .inventory import InventoryRecord, StockMovement
from .orders import Order, OrderLine, OrderLineComponent, Delivery, DeliveryLine
from .balances import BalanceAccount, BalanceTransaction
from .documents import DocumentSequence
from .auth import User, SessionToken

__all__ = [
    'Product', 'RecipeLine',
    'Event', 'Register', 'StockLocation',
    'InventoryRecord', 'StockMovement',
    'Order', 'OrderLine', 'OrderLineComponent', 'Delivery', 'DeliveryLine',
    'BalanceAccount', 'BalanceTransaction',
    'DocumentSequence',
    'User', 'SessionToken',
]
