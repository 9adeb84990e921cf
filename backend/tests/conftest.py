"""Shared test fixtures.

Tests run against a throwaway SQLite file: the schema is created before and
dropped after every test. Settlement services commit through the unit of
work, so fixtures commit their seed data too and a second session (or the
API) sees exactly what a real caller would.
"""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_mostrador.db")

from datetime import datetime, timedelta, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Generator  # noqa: E402

import pytest  # noqa: E402
from cryptography import x509  # noqa: E402
from cryptography.hazmat.primitives import hashes, serialization  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import rsa  # noqa: E402
from cryptography.x509.oid import NameOID  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from backend.app.core.config import settings  # noqa: E402
from backend.app.core.context import SessionContext  # noqa: E402
from backend.app.core.database import Base, SessionLocal, engine  # noqa: E402
from backend.app.main import app  # noqa: E402
from backend.app.models import registry  # noqa: E402,F401
from backend.app.models.customer import Customer, DocumentType  # noqa: E402
from backend.app.models.inventory import Product, ProductVariant, Stock  # noqa: E402
from backend.app.models.organization import Location, RoleEnum, Tenant, User  # noqa: E402
from backend.app.models.supplier import Supplier  # noqa: E402
from backend.app.models.treasury import (  # noqa: E402
    CashAccount,
    CashAccountType,
    CashRegister,
    PaymentMethod,
)
from backend.app.services import cash_registers, treasury  # noqa: E402
from backend.app.services.afip.invoice_service import clear_credentials_cache  # noqa: E402

from backend.tests.afip_fakes import FakeAfip  # noqa: E402


# ─── Schema and session ───────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _schema() -> Generator[None, None, None]:
    Base.metadata.create_all(engine)
    clear_credentials_cache()
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


def headers(ctx: SessionContext, role: RoleEnum | None = None) -> dict[str, str]:
    """Identity headers the gateway would forward for ``ctx``."""
    out = {
        "X-Tenant-ID": str(ctx.tenant_id),
        "X-User-ID": str(ctx.user_id),
        "X-Role": (role.value if role else ctx.role),
    }
    if ctx.location_id:
        out["X-Location-ID"] = str(ctx.location_id)
    return out


# ─── Organization ─────────────────────────────────────────────────────────────


@pytest.fixture()
def tenant(db: Session) -> Tenant:
    t = Tenant(name="Kiosco Central", cuit="30-71234567-9", afip_point_of_sale=1)
    db.add(t)
    db.commit()
    return t


@pytest.fixture()
def location(db: Session, tenant: Tenant) -> Location:
    loc = Location(tenant_id=tenant.id, name="Sucursal Centro")
    db.add(loc)
    db.commit()
    return loc


@pytest.fixture()
def user(db: Session, tenant: Tenant, location: Location) -> User:
    u = User(tenant_id=tenant.id, name="Ana", role=RoleEnum.ADMIN, location_id=location.id)
    db.add(u)
    db.commit()
    return u


@pytest.fixture()
def ctx(tenant: Tenant, user: User, location: Location) -> SessionContext:
    return SessionContext(
        tenant_id=tenant.id, user_id=user.id, location_id=location.id, role="ADMIN"
    )


@pytest.fixture()
def other_tenant(db: Session) -> Tenant:
    t = Tenant(name="Otra Empresa")
    db.add(t)
    db.commit()
    return t


# ─── Catalog and stock ────────────────────────────────────────────────────────


@pytest.fixture()
def product_a(db: Session, tenant: Tenant) -> Product:
    """121.00 with 21% VAT: 100.00 net + 21.00 tax per unit."""
    p = Product(
        tenant_id=tenant.id,
        name="Yerba 1kg",
        sku="YER-1KG",
        sale_price=Decimal("121.00"),
        cost_price=Decimal("70.00"),
        tax_rate=Decimal("21"),
    )
    db.add(p)
    db.commit()
    return p


@pytest.fixture()
def product_b(db: Session, tenant: Tenant) -> Product:
    """110.50 with 10.5% VAT: 100.00 net + 10.50 tax per unit."""
    p = Product(
        tenant_id=tenant.id,
        name="Pan lactal",
        sku="PAN-LAC",
        sale_price=Decimal("110.50"),
        cost_price=Decimal("60.00"),
        tax_rate=Decimal("10.5"),
    )
    db.add(p)
    db.commit()
    return p


@pytest.fixture()
def variant_a(db: Session, tenant: Tenant, product_a: Product) -> ProductVariant:
    v = ProductVariant(
        tenant_id=tenant.id,
        product_id=product_a.id,
        name="Suave",
        sku="YER-1KG-S",
        sale_price=Decimal("133.10"),
        cost_price=Decimal("80.00"),
    )
    db.add(v)
    db.commit()
    return v


@pytest.fixture()
def stock(
    db: Session,
    tenant: Tenant,
    location: Location,
    product_a: Product,
    product_b: Product,
    variant_a: ProductVariant,
) -> dict[str, Stock]:
    rows = {
        "a": Stock(
            tenant_id=tenant.id, location_id=location.id, product_id=product_a.id, quantity=50
        ),
        "b": Stock(
            tenant_id=tenant.id, location_id=location.id, product_id=product_b.id, quantity=30
        ),
        "variant": Stock(
            tenant_id=tenant.id,
            location_id=location.id,
            product_variant_id=variant_a.id,
            quantity=10,
        ),
    }
    db.add_all(rows.values())
    db.commit()
    return rows


# ─── Treasury ─────────────────────────────────────────────────────────────────


@pytest.fixture()
def register(db: Session, ctx: SessionContext, location: Location) -> CashRegister:
    reg = cash_registers.open_register(
        db, ctx, location_id=location.id, name="Caja 1", opening_balance=Decimal("1000.00")
    )
    db.commit()
    return reg


@pytest.fixture()
def bank_account(db: Session, ctx: SessionContext) -> CashAccount:
    account = treasury.create_cash_account(
        db,
        ctx,
        name="Banco Nación",
        account_type=CashAccountType.BANK,
        opening_balance=Decimal("5000.00"),
    )
    db.commit()
    return account


@pytest.fixture()
def wallet_account(db: Session, ctx: SessionContext) -> CashAccount:
    account = treasury.create_cash_account(
        db, ctx, name="Mercado Pago", account_type=CashAccountType.DIGITAL_WALLET
    )
    db.commit()
    return account


@pytest.fixture()
def card_mapping(db: Session, ctx: SessionContext, bank_account: CashAccount) -> CashAccount:
    treasury.set_payment_method_account(db, ctx, PaymentMethod.DEBIT_CARD, bank_account.id)
    db.commit()
    return bank_account


# ─── Parties ──────────────────────────────────────────────────────────────────


@pytest.fixture()
def customer(db: Session, tenant: Tenant) -> Customer:
    c = Customer(
        tenant_id=tenant.id,
        name="Distribuidora Sur SRL",
        document_type=DocumentType.CUIT,
        document_number="30-70000000-7",
    )
    db.add(c)
    db.commit()
    return c


@pytest.fixture()
def dni_customer(db: Session, tenant: Tenant) -> Customer:
    c = Customer(
        tenant_id=tenant.id,
        name="Juan Pérez",
        document_type=DocumentType.DNI,
        document_number="28.123.456",
    )
    db.add(c)
    db.commit()
    return c


@pytest.fixture()
def supplier(db: Session, tenant: Tenant) -> Supplier:
    s = Supplier(tenant_id=tenant.id, name="Molinos del Plata", cuit="30-50000000-1")
    db.add(s)
    db.commit()
    return s


# ─── AFIP ─────────────────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def afip_certificate() -> tuple[str, str]:
    """Self-signed certificate and key PEMs standing in for the provider's."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "mostrador-test")])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode()
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    return cert_pem, key_pem


@pytest.fixture()
def fake_afip() -> FakeAfip:
    return FakeAfip()


@pytest.fixture()
def fiscal_tenant(
    db: Session,
    tenant: Tenant,
    afip_certificate: tuple[str, str],
    monkeypatch: pytest.MonkeyPatch,
) -> Tenant:
    cert_pem, key_pem = afip_certificate
    monkeypatch.setattr(settings, "AFIP_MODE", "homologacion")
    monkeypatch.setattr(settings, "AFIP_PROVIDER_CUIT", "20111111112")
    monkeypatch.setattr(settings, "AFIP_MASTER_CERT", cert_pem)
    monkeypatch.setattr(settings, "AFIP_MASTER_KEY", key_pem)
    tenant.afip_enabled = True
    db.commit()
    return tenant
