"""
BikeShop Service Hub - FastAPI Dependencies

Shared dependencies for authentication, database sessions and services.
"""

import uuid
from typing import Optional

from fastapi import Depends, Query
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_async_session
from app.models.user import User
from app.services.invoice_service import InvoiceService
from app.services.quotation_service import QuotationService
from app.utils.error_handling import (
    AuthenticationException,
    AuthorizationException,
    ErrorCode,
)
from app.utils.security import verify_access_token


# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_session),
) -> User:
    """
    Get the current authenticated user from the Bearer JWT.

    Raises:
        AuthenticationException: missing/invalid token or unknown user
        AuthorizationException: user account is deactivated
    """
    if not credentials:
        raise AuthenticationException("Not authenticated")

    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise AuthenticationException("Invalid or expired token", code=ErrorCode.TOKEN_INVALID)

    try:
        user_uuid = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise AuthenticationException("Invalid user ID in token", code=ErrorCode.TOKEN_INVALID)

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationException("User not found")

    if not user.is_active:
        raise AuthorizationException(
            message="User account is deactivated",
            code=ErrorCode.ACCOUNT_DISABLED,
        )

    return user


def get_quotation_service(db: AsyncSession = Depends(get_async_session)) -> QuotationService:
    return QuotationService(db)


def get_invoice_service(db: AsyncSession = Depends(get_async_session)) -> InvoiceService:
    return InvoiceService(db)


class Pagination:
    """Page/limit query parameters, capped by configuration."""

    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    ):
        self.page = page
        self.limit = limit
