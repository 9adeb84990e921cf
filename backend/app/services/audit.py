from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.models.audit import AuditLog


def _jsonable(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def log_action(
    db: Session,
    *,
    tenant_id: UUID | None,
    user_id: UUID | None,
    action: str,
    resource_type: str,
    resource_id: str,
    changes: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> None:
    """Write a single row to the audit_logs table.

    Does not flush or commit; the row lands with the caller's transaction
    and disappears with it on rollback.
    """
    db.add(
        AuditLog(
            tenant_id=tenant_id,
            table_name=resource_type,
            record_id=resource_id,
            action=action,
            changed_by=user_id,
            new_values=_jsonable(changes) if changes is not None else None,
            ip_address=ip_address,
        )
    )
