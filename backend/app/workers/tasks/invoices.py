"""Deferred fiscal invoicing: sales whose post-commit CAE request failed."""

from __future__ import annotations

import logging
from uuid import UUID

from backend.app.workers.celery_app import celery

logger = logging.getLogger(__name__)


@celery.task(name="backend.app.workers.tasks.invoices.retry_missing_invoices")
def retry_missing_invoices() -> dict:
    """Issue invoices for recent COMPLETED sales that still have none."""
    from backend.app.core.database import SessionLocal
    from backend.app.models import registry  # noqa: F401
    from backend.app.services.afip.invoice_service import retry_missing_invoices as retry

    db = SessionLocal()
    try:
        issued = retry(db)
        return {"issued": issued}
    finally:
        db.close()


@celery.task(name="backend.app.workers.tasks.invoices.issue_invoice")
def issue_invoice(sale_id: str) -> dict:
    """Invoice a single sale on demand (e.g. queued by an operator)."""
    from backend.app.core.database import SessionLocal
    from backend.app.models import registry  # noqa: F401
    from backend.app.services.afip.invoice_service import issue_invoice_safely

    db = SessionLocal()
    try:
        invoice = issue_invoice_safely(db, UUID(sale_id))
        if invoice is None:
            logger.info("Sale %s still without invoice", sale_id)
            return {"sale_id": sale_id, "cae": None}
        return {"sale_id": sale_id, "cae": invoice.cae}
    finally:
        db.close()
