from .tenancy import Tenant
from .catalog import Manufacturer, Item
from .parties import Customer, Supplier
from .transactions import Sale, SaleItem, Purchase, PurchaseItem, CustomerPayment, SupplierPayment
from .returns import CustomerReturn, SupplierReturn, StockAdjustment, BalanceAdjustment
from .audit import AuditLog, LedgerPosting, IdempotencyRecord
from . import immutability  # noqa: F401  (registers append-only listeners)

__all__ = [
    'Tenant',
    'Manufacturer', 'Item',
    'Customer', 'Supplier',
    'Sale', 'SaleItem', 'Purchase', 'PurchaseItem', 'CustomerPayment', 'SupplierPayment',
    'CustomerReturn', 'SupplierReturn', 'StockAdjustment', 'BalanceAdjustment',
    'AuditLog', 'LedgerPosting', 'IdempotencyRecord',
]
