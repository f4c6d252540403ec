from .auth import User, Credential, SessionToken, CredentialDeletionEvent
from .inventory import ProductCell, StockHistoryEntry, cell_identity_key, product_group_key
from .sales import Sale, SaleLine, Invoice, InvoiceLine, WALK_IN_CUSTOMER
from .documents import DocumentSequence
from .role_requests import (
    RoleChangeRequest,
    REQUEST_PENDING,
    REQUEST_APPROVED,
    REQUEST_REJECTED,
    REQUEST_SUPERSEDED,
)
from .notifications import Notification, NOTIFICATION_ROLE_CHANGE

__all__ = [
    'User', 'Credential', 'SessionToken', 'CredentialDeletionEvent',
    'ProductCell', 'StockHistoryEntry', 'cell_identity_key', 'product_group_key',
    'Sale', 'SaleLine', 'Invoice', 'InvoiceLine', 'WALK_IN_CUSTOMER',
    'DocumentSequence',
    'RoleChangeRequest', 'REQUEST_PENDING', 'REQUEST_APPROVED', 'REQUEST_REJECTED',
    'REQUEST_SUPERSEDED',
    'Notification', 'NOTIFICATION_ROLE_CHANGE',
]
