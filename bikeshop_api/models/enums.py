# bikeshop_api/models/enums.py

from enum import Enum


class UserRole(str, Enum):
    ADMIN = 'admin'
    STORE_OWNER = 'store_owner'
    STAFF = 'staff'
    CUSTOMER = 'customer'


class RequestStatus(str, Enum):
    PENDING = 'pending'
    QUOTED = 'quoted'
    APPROVED = 'approved'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    EXPIRED = 'expired'


class ServiceRecordStatus(str, Enum):
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    ON_HOLD = 'on_hold'
    CANCELLED = 'cancelled'


class QuotationStatus(str, Enum):
    DRAFT = 'draft'
    SENT = 'sent'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    EXPIRED = 'expired'


class PaymentStatus(str, Enum):
    PENDING = 'pending'
    PARTIAL = 'partial'
    PAID = 'paid'
    OVERDUE = 'overdue'
    CANCELLED = 'cancelled'


class Permission(str, Enum):
    VIEW_QUOTATIONS = 'view_quotations'
    CREATE_QUOTATIONS = 'create_quotations'
    UPDATE_QUOTATIONS = 'update_quotations'
    VIEW_INVOICES = 'view_invoices'
    CREATE_INVOICES = 'create_invoices'
    UPDATE_INVOICES = 'update_invoices'
