"""
BikeShop Service Hub - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, AuditMixin
from app.models.user import User, UserRole, StaffStorePermission
from app.models.store import Store
from app.models.service_request import (
    ServiceRequest,
    ServiceRecord,
    RequestStatus,
    ServiceRecordStatus,
)
from app.models.quotation import Quotation, QuotationStatus
from app.models.invoice import Invoice, PaymentStatus

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "AuditMixin",
    "User",
    "UserRole",
    "StaffStorePermission",
    "Store",
    "ServiceRequest",
    "ServiceRecord",
    "RequestStatus",
    "ServiceRecordStatus",
    "Quotation",
    "QuotationStatus",
    "Invoice",
    "PaymentStatus",
]
