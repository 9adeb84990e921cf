from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class SessionContext:
    """Authenticated identity of the caller, resolved by the API layer."""

    tenant_id: uuid.UUID
    user_id: uuid.UUID
    location_id: uuid.UUID | None = None
    role: str = "CASHIER"
    ip_address: str | None = None
