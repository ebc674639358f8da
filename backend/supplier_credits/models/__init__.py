from .suppliers import Supplier, PurchaseOrder
from .supplier_credits import (
    EntryKind,
    SupplierLedgerEntry,
    SupplierPaymentAllocation,
)

__all__ = [
    'Supplier', 'PurchaseOrder',
    'EntryKind', 'SupplierLedgerEntry', 'SupplierPaymentAllocation',
]
