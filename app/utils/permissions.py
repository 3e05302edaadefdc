"""
BikeShop Service Hub - Permissions System

Store-scoped permissions for staff members.

Permission Matrix:
==================

| Role        | Scope                     | Permissions                          |
|-------------|---------------------------|--------------------------------------|
| admin       | every store               | all                                  |
| store_owner | stores they own           | all                                  |
| staff       | stores they are assigned  | explicit list, or configured preset  |
| customer    | none                      | none (acts only on own documents)    |

Staff presets are configuration data (Settings.staff_permission_presets),
so a deployment can change what "staff" or "senior_staff" may do without
touching code.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional, Set


# ===========================================
# PERMISSION ENUMS
# ===========================================

class StorePermission(str, Enum):
    """Permissions a user can hold on a store."""

    # Services catalogue
    VIEW_SERVICES = "view_services"
    MANAGE_SERVICES = "manage_services"

    # Service requests / records
    VIEW_SERVICE_REQUESTS = "view_service_requests"
    UPDATE_SERVICE_REQUESTS = "update_service_requests"
    VIEW_SERVICE_RECORDS = "view_service_records"
    CREATE_SERVICE_RECORDS = "create_service_records"
    UPDATE_SERVICE_RECORDS = "update_service_records"

    # Quotations
    VIEW_QUOTATIONS = "view_quotations"
    CREATE_QUOTATIONS = "create_quotations"
    UPDATE_QUOTATIONS = "update_quotations"

    # Invoices
    VIEW_INVOICES = "view_invoices"
    CREATE_INVOICES = "create_invoices"
    UPDATE_INVOICES = "update_invoices"

    # Media
    VIEW_MEDIA = "view_media"
    UPLOAD_MEDIA = "upload_media"

    # Store administration
    MANAGE_STAFF = "manage_staff"


def parse_permissions(names: Optional[Iterable[str]]) -> Set[StorePermission]:
    """Convert stored permission names to enum members, ignoring unknown names."""
    known = {permission.value for permission in StorePermission}
    return {StorePermission(name) for name in names or [] if name in known}


def resolve_preset(
    presets: Dict[str, List[str]],
    preset_name: Optional[str],
) -> Set[StorePermission]:
    """Look up a named preset; an unknown name grants nothing."""
    if not preset_name:
        return set()
    return parse_permissions(presets.get(preset_name))


def has_store_permission(granted: Set[StorePermission], permission: StorePermission) -> bool:
    """Check if a set of granted store permissions contains a permission."""
    return permission in granted
