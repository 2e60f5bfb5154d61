from .inventory import InventoryItem, InventoryTransactionLog, LedgerMetadata
from .orders import Order, OrderComponent, JobCard
from .purchases import Purchase, PurchaseItem

__all__ = [
    'InventoryItem', 'InventoryTransactionLog', 'LedgerMetadata',
    'Order', 'OrderComponent', 'JobCard',
    'Purchase', 'PurchaseItem',
]
