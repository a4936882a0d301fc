from .customers import Customer
from .transactions import Transaction
from .audit import AuditRecord

__all__ = [
    'Customer',
    'Transaction',
    'AuditRecord',
]
