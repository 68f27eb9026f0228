from .auth import User, Role, casefold_key
from .invoices import Invoice, InvoiceItem, InvoiceStatus
from .notifications import Notification

__all__ = [
    'User', 'Role', 'casefold_key',
    'Invoice', 'InvoiceItem', 'InvoiceStatus',
    'Notification',
]
