# bikeshop_api/models/__init__.py

from .base import db

# Import order matters: relationships are resolved by class name, so the
# referenced tables have to be registered first.

# 1. Foundational Models
from .enums import UserRole, RequestStatus, ServiceRecordStatus, QuotationStatus, PaymentStatus, Permission
from .user import User
from .store import Store, StaffStorePermission

# 2. Service workflow
from .service_request import ServiceRequest, ServiceRecord

# 3. Financial documents
from .quotation import Quotation
from .invoice import Invoice, compute_payment_status

__all__ = [
    'db',
    'UserRole',
    'RequestStatus',
    'ServiceRecordStatus',
    'QuotationStatus',
    'PaymentStatus',
    'Permission',
    'User',
    'Store',
    'StaffStorePermission',
    'ServiceRequest',
    'ServiceRecord',
    'Quotation',
    'Invoice',
    'compute_payment_status',
]
