import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.app.api.v1.api import api_router
from backend.app.core.config import settings
from backend.app.core.exceptions import FiscalAuthorityError, SettlementError
from backend.app.core.logging import configure_logging
from backend.app.models import registry  # noqa: F401  (register every mapper)

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Mostrador POS Settlement API")

# ─── CORS, restricted to configured origins ──────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=[
        "Content-Type",
        "Accept",
        "X-Tenant-ID",
        "X-User-ID",
        "X-Location-ID",
        "X-Role",
    ],
)


# ─── Error mapping ────────────────────────────────────────────────────────────


@app.exception_handler(SettlementError)
def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
    if exc.status_code >= 409:
        logger.warning("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(ValueError)
def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(FiscalAuthorityError)
def fiscal_error_handler(request: Request, exc: FiscalAuthorityError) -> JSONResponse:
    logger.error("Fiscal authority error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=502,
        content={
            "error": "FISCAL_AUTHORITY_ERROR",
            "detail": str(exc),
            "codes": exc.codes,
            "observations": exc.observations,
        },
    )


app.include_router(api_router)
