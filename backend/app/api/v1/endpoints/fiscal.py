from __future__ import annotations

from fastapi import APIRouter, Depends

from backend.app.api.deps import require_manager
from backend.app.core.context import SessionContext
from backend.app.services.afip.invoice_service import check_connectivity

router = APIRouter()


@router.get("/status")
def get_fiscal_status(
    _ctx: SessionContext = Depends(require_manager),
) -> dict[str, str | None]:
    """AFIP FEDummy: app, database and auth server status."""
    return check_connectivity()
