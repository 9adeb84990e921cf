"""Caller identity.

Authentication happens upstream; the gateway forwards the resolved identity
as headers, which are trusted as-is::

    X-Tenant-ID: <uuid>      required
    X-User-ID: <uuid>        required
    X-Location-ID: <uuid>    optional, preferred register/stock location
    X-Role: ADMIN|MANAGER|CASHIER
"""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status

from backend.app.core.context import SessionContext
from backend.app.models.organization import RoleEnum


def get_session_context(
    request: Request,
    x_tenant_id: UUID = Header(...),
    x_user_id: UUID = Header(...),
    x_location_id: UUID | None = Header(None),
    x_role: RoleEnum = Header(RoleEnum.CASHIER),
) -> SessionContext:
    return SessionContext(
        tenant_id=x_tenant_id,
        user_id=x_user_id,
        location_id=x_location_id,
        role=x_role.value,
        ip_address=request.client.host if request.client else None,
    )


def require_role(*roles: RoleEnum):
    """Dependency factory: the caller's role must be one of ``roles``."""
    allowed = {role.value for role in roles}

    def _checker(ctx: SessionContext = Depends(get_session_context)) -> SessionContext:
        if ctx.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(sorted(allowed))}",
            )
        return ctx

    return _checker


require_manager = require_role(RoleEnum.ADMIN, RoleEnum.MANAGER)
