from __future__ import annotations

import logging

from backend.app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Install a single stream handler on the root logger (idempotent)."""
    global _configured  # noqa: PLW0603
    if _configured:
        return
    logging.basicConfig(level=(level or settings.LOG_LEVEL).upper(), format=LOG_FORMAT)
    # httpx logs every request at INFO; the fiscal client logs its own summary.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True
