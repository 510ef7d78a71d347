from .tenancy import Tenant
from .catalog import Product, Variant, Supplier
from .ledger import StockMovement
from .orders import Order, OrderItem
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .documents import DocumentSequence

__all__ = [
    'Tenant',
    'Product', 'Variant', 'Supplier',
    'StockMovement',
    'Order', 'OrderItem',
    'PurchaseOrder', 'PurchaseOrderItem',
    'DocumentSequence',
]
