"""
BikeShop Service Hub - Access-Control Gate

Decides whether an actor may perform a store-scoped action. Every
quotation and invoice mutation passes through require() before any state
is read for update.
"""

import logging
import uuid
from typing import Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.store import Store
from app.models.user import StaffStorePermission, User, UserRole
from app.utils.error_handling import (
    AuthorizationException,
    ErrorCode,
    InsufficientPermissionsException,
    NotFoundException,
)
from app.utils.permissions import (
    StorePermission,
    has_store_permission,
    parse_permissions,
    resolve_preset,
)

logger = logging.getLogger(__name__)


class AccessControlGate:
    """Store-scoped permission checks."""

    def __init__(
        self,
        db: AsyncSession,
        presets: Optional[Dict[str, List[str]]] = None,
        default_preset: Optional[str] = None,
    ):
        self.db = db
        self.presets = presets if presets is not None else settings.staff_permission_presets
        self.default_preset = default_preset or settings.default_staff_preset

    async def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_store(self, store_id: uuid.UUID) -> Optional[Store]:
        result = await self.db.execute(select(Store).where(Store.id == store_id))
        return result.scalar_one_or_none()

    async def get_staff_permissions(
        self,
        user_id: uuid.UUID,
        store_id: uuid.UUID,
    ) -> Set[StorePermission]:
        """Permissions a staff member holds on one store."""
        result = await self.db.execute(
            select(StaffStorePermission)
            .where(StaffStorePermission.user_id == user_id)
            .where(StaffStorePermission.store_id == store_id)
        )
        row = result.scalar_one_or_none()
        if row is None or not row.is_active:
            return set()
        if row.permissions:
            return parse_permissions(row.permissions)
        return resolve_preset(self.presets, row.preset or self.default_preset)

    async def _is_allowed(
        self,
        user: User,
        store: Store,
        permission: StorePermission,
    ) -> bool:
        if not user.is_active:
            return False
        if user.role == UserRole.ADMIN:
            return True
        if user.role == UserRole.STORE_OWNER:
            return store.owner_id == user.id
        if user.role == UserRole.STAFF:
            granted = await self.get_staff_permissions(user.id, store.id)
            return has_store_permission(granted, permission)
        return False

    async def can_act(
        self,
        actor_id: uuid.UUID,
        store_id: uuid.UUID,
        permission: StorePermission,
    ) -> bool:
        """Return True if the actor may exercise the permission on the store."""
        user = await self.get_user(actor_id)
        store = await self.get_store(store_id)
        if user is None or store is None:
            return False
        return await self._is_allowed(user, store, permission)

    async def require(
        self,
        actor_id: uuid.UUID,
        store_id: uuid.UUID,
        permission: StorePermission,
    ) -> User:
        """
        Ensure the actor holds a permission on a store.

        Returns:
            The acting user

        Raises:
            NotFoundException: actor or store does not exist
            AuthorizationException: actor is inactive or lacks the permission
        """
        user = await self.get_user(actor_id)
        if user is None:
            raise NotFoundException("User", actor_id)
        if not user.is_active:
            raise AuthorizationException(
                message="User account is deactivated",
                code=ErrorCode.ACCOUNT_DISABLED,
            )

        store = await self.get_store(store_id)
        if store is None:
            raise NotFoundException("Store", store_id)

        if not await self._is_allowed(user, store, permission):
            logger.warning(
                f"Denied {permission.value} on store {store_id} for user {actor_id} ({user.role.value})"
            )
            raise InsufficientPermissionsException(permission.value)

        return user
