"""WSAA login material: TRA generation, CMS signing and the token cache."""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs7
from lxml import etree

# AFIP expects local Argentine time (UTC-03:00) in the TRA.
ARGENTINA_TZ = timezone(timedelta(hours=-3))
TRA_TTL = timedelta(hours=12)

_PEM_CERT_RE = re.compile(
    rb"-----BEGIN CERTIFICATE-----.+?-----END CERTIFICATE-----", re.DOTALL
)


@dataclass(frozen=True)
class AfipCredentials:
    token: str
    sign: str
    expires_at: datetime


def build_tra(service: str = "wsfe", now: datetime | None = None) -> bytes:
    """Login ticket request (TRA) valid for 12 hours."""
    generated = (now or datetime.now(timezone.utc)).astimezone(ARGENTINA_TZ).replace(microsecond=0)
    expires = generated + TRA_TTL

    root = etree.Element("loginTicketRequest", version="1.0")
    header = etree.SubElement(root, "header")
    # uniqueId is an xs:unsignedInt; epoch seconds fit.
    etree.SubElement(header, "uniqueId").text = str(int(generated.timestamp()))
    etree.SubElement(header, "generationTime").text = generated.isoformat()
    etree.SubElement(header, "expirationTime").text = expires.isoformat()
    etree.SubElement(root, "service").text = service
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8")


def sign_tra(tra: bytes, cert_pem: str | bytes, key_pem: str | bytes) -> str:
    """Sign the TRA as an attached PKCS#7/CMS (DER) and return it base64-encoded.

    ``cert_pem`` may hold a chain: the first certificate signs, the rest are
    embedded for verification.
    """
    cert_bytes = cert_pem.encode() if isinstance(cert_pem, str) else cert_pem
    key_bytes = key_pem.encode() if isinstance(key_pem, str) else key_pem

    blocks = _PEM_CERT_RE.findall(cert_bytes)
    if not blocks:
        raise ValueError("No certificate found in AFIP certificate PEM")
    signer = x509.load_pem_x509_certificate(blocks[0])
    private_key = serialization.load_pem_private_key(key_bytes, password=None)

    builder = (
        pkcs7.PKCS7SignatureBuilder()
        .set_data(tra)
        .add_signer(signer, private_key, hashes.SHA256())  # type: ignore[arg-type]
    )
    for block in blocks[1:]:
        builder = builder.add_certificate(x509.load_pem_x509_certificate(block))

    cms = builder.sign(serialization.Encoding.DER, [])
    return base64.b64encode(cms).decode("ascii")


class CredentialsCache:
    """In-process token cache keyed by (provider CUIT, mode).

    Entries are treated as expired ``refresh_margin`` before the authority's
    expiration so a token never dies mid-request.
    """

    def __init__(self, refresh_margin: timedelta) -> None:
        self.refresh_margin = refresh_margin
        self._entries: dict[tuple[str, str], AfipCredentials] = {}

    def get(
        self, provider_cuit: str, mode: str, now: datetime | None = None
    ) -> AfipCredentials | None:
        entry = self._entries.get((provider_cuit, mode))
        if entry is None:
            return None
        now = now or datetime.now(timezone.utc)
        if entry.expires_at - self.refresh_margin <= now:
            del self._entries[(provider_cuit, mode)]
            return None
        return entry

    def set(self, provider_cuit: str, mode: str, credentials: AfipCredentials) -> None:
        self._entries[(provider_cuit, mode)] = credentials

    def clear(self) -> None:
        self._entries.clear()
