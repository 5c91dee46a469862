from .inventory import InventoryItem, Supplier
from .sales import Sale
from .returns import Return, ReturnedItem
from .customers import Customer, WALK_IN_CUSTOMER_ID
from .users import User, USER_ROLES

__all__ = [
    'InventoryItem', 'Supplier',
    'Sale',
    'Return', 'ReturnedItem',
    'Customer', 'WALK_IN_CUSTOMER_ID',
    'User', 'USER_ROLES',
]
