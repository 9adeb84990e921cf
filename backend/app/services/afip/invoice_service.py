"""Fiscal invoice issuance for settled sales: classify → price → authorize → store.

Called after the sale is committed. A failure here never touches the sale:
``issue_invoice_safely`` logs it and the scheduled retry picks the sale up
again later.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import httpx
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.exceptions import FiscalAuthorityError, NotFound
from backend.app.models.customer import Customer, DocumentType
from backend.app.models.einvoice import Invoice, InvoiceLetter, InvoiceStatus
from backend.app.models.organization import Tenant
from backend.app.models.sales import Sale, SaleStatus
from backend.app.services import pricing
from backend.app.services.afip.api_client import (
    AfipApiClient,
    CaeRequest,
    CaeResponse,
    VatRate,
    login,
)
from backend.app.services.afip.credentials import (
    ARGENTINA_TZ,
    AfipCredentials,
    CredentialsCache,
    build_tra,
    sign_tra,
)

logger = logging.getLogger(__name__)

VOUCHER_TYPES = {InvoiceLetter.A: 1, InvoiceLetter.B: 6, InvoiceLetter.C: 11}

DOC_TYPE_CUIT = 80
DOC_TYPE_DNI = 96
DOC_TYPE_FINAL_CONSUMER = 99

VAT_CONDITION_REGISTERED = 1
VAT_CONDITION_FINAL_CONSUMER = 5

VAT_RATE_CODES = {
    Decimal("0"): 3,
    Decimal("10.5"): 4,
    Decimal("21"): 5,
    Decimal("27"): 6,
}
DEFAULT_VAT_RATE_CODE = 5

# Voucher number already used or out of sequence.
ERROR_OUT_OF_SEQUENCE = "10016"

_credentials_cache = CredentialsCache(
    refresh_margin=timedelta(seconds=settings.AFIP_TOKEN_REFRESH_MARGIN_SECONDS)
)


@dataclass(frozen=True)
class Receiver:
    letter: InvoiceLetter
    doc_type: int
    doc_number: str
    vat_condition: int
    name: str | None


def vat_rate_code(rate: Decimal) -> int:
    return VAT_RATE_CODES.get(Decimal(rate), DEFAULT_VAT_RATE_CODE)


def classify_receiver(customer: Customer | None) -> Receiver:
    """Invoice class and receiver identification.

    CUIT holders get a class B invoice with tax itemized; everyone else
    (DNI or anonymous final consumer) gets class C.
    """
    if customer is not None and customer.document_number:
        digits = "".join(ch for ch in customer.document_number if ch.isdigit())
        if customer.document_type == DocumentType.CUIT and digits:
            return Receiver(
                InvoiceLetter.B, DOC_TYPE_CUIT, digits, VAT_CONDITION_REGISTERED, customer.name
            )
        if customer.document_type == DocumentType.DNI and digits:
            return Receiver(
                InvoiceLetter.C, DOC_TYPE_DNI, digits, VAT_CONDITION_FINAL_CONSUMER, customer.name
            )
    return Receiver(
        InvoiceLetter.C,
        DOC_TYPE_FINAL_CONSUMER,
        "0",
        VAT_CONDITION_FINAL_CONSUMER,
        customer.name if customer else None,
    )


def price_sale(sale: Sale) -> pricing.DocumentPricing:
    """Re-derive the sale's pricing (with per-rate breakdown) from its stored items."""
    return pricing.price_document(
        [
            pricing.LineInput(
                unit_price=item.unit_price,
                quantity=item.quantity,
                tax_rate=item.tax_rate,
                discount_type=item.discount_type,
                discount_value=item.discount_value,
            )
            for item in sale.items
        ],
        sale.discount_type,
        sale.discount_value,
    )


def build_cae_request(
    sale: Sale, tenant: Tenant, receiver: Receiver, *, number: int, voucher_date: date
) -> CaeRequest:
    voucher_type = VOUCHER_TYPES[receiver.letter]
    request = CaeRequest(
        point_of_sale=tenant.afip_point_of_sale or 0,
        voucher_type=voucher_type,
        number=number,
        doc_type=receiver.doc_type,
        doc_number=receiver.doc_number,
        voucher_date=voucher_date,
        total=sale.total,
        net=sale.total,
        vat=Decimal("0"),
        receiver_vat_condition=receiver.vat_condition,
    )
    if receiver.letter == InvoiceLetter.C:
        # Class C does not itemize VAT: the whole amount is reported as net.
        return request

    priced = price_sale(sale)
    request.net = priced.net_amount
    request.vat = priced.tax_amount
    request.vat_rates = [
        VatRate(code=vat_rate_code(bucket.rate), base=bucket.base, amount=bucket.amount)
        for bucket in priced.tax_breakdown
    ]
    return request


# ─── Credentials ──────────────────────────────────────────────────────────────


def _pem(value: str) -> str:
    return value.replace("\\n", "\n")


def is_configured(tenant: Tenant) -> bool:
    return bool(
        tenant.afip_enabled
        and tenant.cuit
        and tenant.afip_point_of_sale
        and settings.AFIP_PROVIDER_CUIT
        and settings.AFIP_MASTER_CERT
        and settings.AFIP_MASTER_KEY
    )


async def _credentials(transport: httpx.AsyncBaseTransport | None) -> AfipCredentials:
    cached = _credentials_cache.get(settings.AFIP_PROVIDER_CUIT, settings.AFIP_MODE)
    if cached is not None:
        return cached
    cms = sign_tra(
        build_tra("wsfe"), _pem(settings.AFIP_MASTER_CERT), _pem(settings.AFIP_MASTER_KEY)
    )
    credentials = await login(
        settings.AFIP_MODE, cms, timeout=settings.AFIP_TIMEOUT_SECONDS, transport=transport
    )
    _credentials_cache.set(settings.AFIP_PROVIDER_CUIT, settings.AFIP_MODE, credentials)
    return credentials


def _client(
    tenant: Tenant, credentials: AfipCredentials, transport: httpx.AsyncBaseTransport | None
) -> AfipApiClient:
    return AfipApiClient(
        settings.AFIP_MODE,
        "".join(ch for ch in tenant.cuit or "" if ch.isdigit()),
        credentials,
        timeout=settings.AFIP_TIMEOUT_SECONDS,
        transport=transport,
    )


# ─── Issuance ─────────────────────────────────────────────────────────────────


async def _authorize(
    sale: Sale,
    tenant: Tenant,
    receiver: Receiver,
    transport: httpx.AsyncBaseTransport | None,
) -> tuple[CaeRequest, CaeResponse]:
    client = _client(tenant, await _credentials(transport), transport)
    voucher_type = VOUCHER_TYPES[receiver.letter]
    pos = tenant.afip_point_of_sale or 0
    voucher_date = datetime.now(timezone.utc).astimezone(ARGENTINA_TZ).date()

    last = await client.last_authorized(pos, voucher_type)
    request = build_cae_request(
        sale, tenant, receiver, number=last + 1, voucher_date=voucher_date
    )
    try:
        response = await client.request_cae(request)
    except FiscalAuthorityError as exc:
        if ERROR_OUT_OF_SEQUENCE not in exc.codes:
            raise
        # Someone else took the number: ask again and resubmit once.
        last = await client.last_authorized(pos, voucher_type)
        logger.warning(
            "AFIP number %s out of sequence for sale %s; resubmitting as %s",
            request.number,
            sale.sale_number,
            last + 1,
        )
        request.number = last + 1
        response = await client.request_cae(request)

    if not response.approved:
        raise FiscalAuthorityError(
            f"AFIP rejected invoice for sale {sale.sale_number}",
            observations=response.observations,
        )
    return request, response


def issue_invoice_for_sale(
    db: Session,
    sale_id: uuid.UUID,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Invoice | None:
    """Authorize and store the fiscal invoice for a committed sale.

    Idempotent: an existing invoice is returned unchanged. Returns ``None``
    when the tenant has no fiscal configuration. Raises
    ``FiscalAuthorityError`` when the authority rejects or cannot be reached.
    """
    sale = db.get(Sale, sale_id)
    if sale is None:
        raise NotFound("Sale", sale_id)

    existing = db.query(Invoice).filter(Invoice.sale_id == sale.id).first()
    if existing is not None:
        return existing
    if sale.status != SaleStatus.COMPLETED:
        raise ValueError(f"Sale {sale.sale_number} is {sale.status.value}; not invoicing")

    tenant = db.get(Tenant, sale.tenant_id)
    if tenant is None or not is_configured(tenant):
        logger.warning(
            "Fiscal invoicing not configured for tenant %s; sale %s left without invoice",
            sale.tenant_id,
            sale.sale_number,
        )
        return None

    customer = db.get(Customer, sale.customer_id) if sale.customer_id else None
    receiver = classify_receiver(customer)

    request, response = asyncio.run(_authorize(sale, tenant, receiver, transport))

    invoice = Invoice(
        tenant_id=tenant.id,
        sale_id=sale.id,
        invoice_letter=receiver.letter,
        voucher_type=request.voucher_type,
        point_of_sale=request.point_of_sale,
        number=response.number,
        cae=response.cae,
        cae_expiration=response.cae_expiration,
        status=InvoiceStatus.APPROVED,
        net_amount=request.net,
        tax_amount=request.vat,
        total=request.total,
        customer_name=receiver.name,
        customer_doc_type=receiver.doc_type,
        customer_doc_number=receiver.doc_number,
        authority_response=response.raw,
    )
    db.add(invoice)
    db.commit()
    db.refresh(invoice)

    logger.info(
        "Invoice %s %05d-%08d issued for sale %s (CAE %s)",
        receiver.letter.value,
        invoice.point_of_sale,
        invoice.number,
        sale.sale_number,
        invoice.cae,
    )
    return invoice


def issue_invoice_safely(
    db: Session,
    sale_id: uuid.UUID,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Invoice | None:
    """Like ``issue_invoice_for_sale`` but never raises; the sale stands either way."""
    try:
        return issue_invoice_for_sale(db, sale_id, transport=transport)
    except Exception:
        db.rollback()
        logger.exception("Fiscal invoice for sale %s failed; will retry later", sale_id)
        return None


def retry_missing_invoices(
    db: Session,
    *,
    now: datetime | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Issue invoices for recent COMPLETED sales of fiscal tenants that have none."""
    since = (now or datetime.now(timezone.utc)) - timedelta(
        days=settings.INVOICE_RETRY_LOOKBACK_DAYS
    )
    pending = (
        db.query(Sale.id)
        .join(Tenant, Tenant.id == Sale.tenant_id)
        .outerjoin(Invoice, Invoice.sale_id == Sale.id)
        .filter(
            Sale.status == SaleStatus.COMPLETED,
            Sale.created_at >= since,
            Tenant.afip_enabled.is_(True),
            Invoice.id.is_(None),
        )
        .order_by(Sale.created_at)
        .all()
    )
    issued = 0
    for (sale_id,) in pending:
        if issue_invoice_safely(db, sale_id, transport=transport) is not None:
            issued += 1
    if pending:
        logger.info("Invoice retry: %d of %d pending sales invoiced", issued, len(pending))
    return issued


def check_connectivity(
    *, transport: httpx.AsyncBaseTransport | None = None
) -> dict[str, str | None]:
    """FEDummy round trip; needs no credentials."""
    client = AfipApiClient(
        settings.AFIP_MODE,
        settings.AFIP_PROVIDER_CUIT,
        AfipCredentials(token="", sign="", expires_at=datetime.now(timezone.utc)),
        timeout=settings.AFIP_TIMEOUT_SECONDS,
        transport=transport,
    )
    return asyncio.run(client.dummy())


def clear_credentials_cache() -> None:
    _credentials_cache.clear()
