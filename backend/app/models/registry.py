"""Import every model module so ``Base.metadata`` is complete.

Used by the application entrypoints, the worker and the test suite before
mappers are configured or tables created.
"""

from __future__ import annotations

from backend.app.models import (  # noqa: F401
    audit,
    customer,
    einvoice,
    inventory,
    organization,
    quotes,
    sales,
    supplier,
    treasury,
)
