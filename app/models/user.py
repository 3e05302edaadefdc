"""
BikeShop Service Hub - User Model

Users of the platform and their per-store staff permissions.
"""

import uuid
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, JSONType


class UserRole(str, Enum):
    """Platform-wide role of a user."""
    ADMIN = "admin"
    STORE_OWNER = "store_owner"
    STAFF = "staff"
    CUSTOMER = "customer"


class User(BaseModel):
    """Platform user: administrators, store owners, staff and customers."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole),
        default=UserRole.CUSTOMER,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    store_permissions: Mapped[List["StaffStorePermission"]] = relationship(
        "StaffStorePermission",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class StaffStorePermission(BaseModel):
    """
    Grants a staff member permissions on a single store.

    Either an explicit list of permission names is stored, or a named
    preset that is resolved against the configured presets.
    """

    __tablename__ = "staff_store_permissions"
    __table_args__ = (
        UniqueConstraint("user_id", "store_id", name="uq_staff_store_permissions_user_store"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    store_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    preset: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    permissions: Mapped[Optional[List[str]]] = mapped_column(JSONType, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="store_permissions")
