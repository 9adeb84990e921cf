"""AFIP web services client: WSAA (login) and WSFEv1 (electronic invoicing).

Both services speak SOAP 1.1. Envelopes are built and parsed with lxml; HTTP
goes through an ``httpx.AsyncClient`` per call. Any transport failure or
authority-side error surfaces as ``FiscalAuthorityError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import httpx
from lxml import etree

from backend.app.core.exceptions import FiscalAuthorityError
from backend.app.services.afip.credentials import AfipCredentials

logger = logging.getLogger(__name__)

WSAA_URLS = {
    "homologacion": "https://wsaahomo.afip.gov.ar/ws/services/LoginCms",
    "produccion": "https://wsaa.afip.gov.ar/ws/services/LoginCms",
}
WSFE_URLS = {
    "homologacion": "https://wswhomo.afip.gov.ar/wsfev1/service.asmx",
    "produccion": "https://servicios1.afip.gov.ar/wsfev1/service.asmx",
}

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"
WSAA_NS = "http://wsaa.view.sua.dvadac.desein.afip.gov"
FEV1_NS = "http://ar.gov.afip.dif.FEV1/"

RESULT_APPROVED = "A"

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)


# ─── Data classes ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class VatRate:
    code: int
    base: Decimal
    amount: Decimal


@dataclass
class CaeRequest:
    point_of_sale: int
    voucher_type: int
    number: int
    doc_type: int
    doc_number: str
    voucher_date: date
    total: Decimal
    net: Decimal
    vat: Decimal
    receiver_vat_condition: int
    vat_rates: list[VatRate] = field(default_factory=list)
    exempt: Decimal = Decimal("0")
    concept: int = 1  # products
    currency: str = "PES"
    currency_rate: int = 1


@dataclass
class CaeResponse:
    result: str
    number: int
    cae: str | None = None
    cae_expiration: date | None = None
    observations: list[str] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def approved(self) -> bool:
        return self.result == RESULT_APPROVED and bool(self.cae)


# ─── XML helpers ──────────────────────────────────────────────────────────────


def _envelope(body_ns: dict[str, str]) -> tuple[etree._Element, etree._Element]:
    nsmap = {"soapenv": SOAP_NS, **body_ns}
    root = etree.Element(f"{{{SOAP_NS}}}Envelope", nsmap=nsmap)
    etree.SubElement(root, f"{{{SOAP_NS}}}Header")
    body = etree.SubElement(root, f"{{{SOAP_NS}}}Body")
    return root, body


def _ar(parent: etree._Element, local: str, text: object | None = None) -> etree._Element:
    el = etree.SubElement(parent, f"{{{FEV1_NS}}}{local}")
    if text is not None:
        el.text = str(text)
    return el


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


def _text(el: etree._Element | None, local: str) -> str | None:
    if el is None:
        return None
    child = el.find(f"{{{FEV1_NS}}}{local}")
    return child.text if child is not None else None


def _parse(content: bytes) -> etree._Element:
    try:
        return etree.fromstring(content, _PARSER)
    except etree.XMLSyntaxError as exc:
        raise FiscalAuthorityError(f"Unparseable AFIP response: {exc}") from exc


def _fault(root: etree._Element) -> str | None:
    fault = root.find(f".//{{{SOAP_NS}}}Fault")
    if fault is None:
        return None
    return fault.findtext("faultstring") or "SOAP fault"


def _collect_errors(result: etree._Element) -> tuple[list[str], list[str]]:
    codes, messages = [], []
    for err in result.iterfind(f"{{{FEV1_NS}}}Errors/{{{FEV1_NS}}}Err"):
        code = _text(err, "Code") or "?"
        codes.append(code)
        messages.append(f"Code {code}: {_text(err, 'Msg') or ''}")
    return codes, messages


def _to_dict(el: etree._Element) -> Any:
    children = list(el)
    if not children:
        return el.text
    out: dict[str, Any] = {}
    for child in children:
        key = etree.QName(child).localname
        value = _to_dict(child)
        if key in out:
            if not isinstance(out[key], list):
                out[key] = [out[key]]
            out[key].append(value)
        else:
            out[key] = value
    return out


def _afip_date(value: str | None) -> date | None:
    if not value:
        return None
    return datetime.strptime(value, "%Y%m%d").date()


# ─── WSAA ─────────────────────────────────────────────────────────────────────


def build_login_envelope(cms_b64: str) -> bytes:
    root, body = _envelope({"wsaa": WSAA_NS})
    login = etree.SubElement(body, f"{{{WSAA_NS}}}loginCms")
    etree.SubElement(login, f"{{{WSAA_NS}}}in0").text = cms_b64
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8")


def parse_login_response(content: bytes) -> AfipCredentials:
    root = _parse(content)
    fault = _fault(root)
    if fault:
        raise FiscalAuthorityError(f"WSAA fault: {fault}")

    ticket_xml = root.findtext(f".//{{{WSAA_NS}}}loginCmsReturn") or root.findtext(
        ".//loginCmsReturn"
    )
    if not ticket_xml:
        raise FiscalAuthorityError("Invalid WSAA response: missing loginCmsReturn")

    ticket = _parse(ticket_xml.encode("utf-8"))
    token = ticket.findtext("credentials/token")
    sign = ticket.findtext("credentials/sign")
    expiration = ticket.findtext("header/expirationTime")
    if not token or not sign or not expiration:
        raise FiscalAuthorityError("Invalid WSAA response: missing token, sign or expiration")
    return AfipCredentials(
        token=token, sign=sign, expires_at=datetime.fromisoformat(expiration)
    )


async def login(
    mode: str,
    cms_b64: str,
    *,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AfipCredentials:
    """Exchange a signed TRA for a token/sign pair."""
    url = WSAA_URLS[mode]
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.post(
                url,
                content=build_login_envelope(cms_b64),
                headers={"Content-Type": "text/xml; charset=utf-8", "SOAPAction": ""},
            )
    except httpx.HTTPError as exc:
        raise FiscalAuthorityError(f"WSAA transport error: {exc}") from exc

    if resp.status_code >= 400:
        if "coe.alreadyAuthenticated" in resp.text:
            raise FiscalAuthorityError(
                "WSAA reports a valid ticket already exists for this certificate",
                codes=["coe.alreadyAuthenticated"],
            )
        fault = _fault(_parse(resp.content)) if resp.content else None
        raise FiscalAuthorityError(f"WSAA HTTP {resp.status_code}: {fault or resp.text[:200]}")

    credentials = parse_login_response(resp.content)
    logger.info("AFIP WSAA ticket obtained (%s), valid until %s", mode, credentials.expires_at)
    return credentials


# ─── WSFEv1 ───────────────────────────────────────────────────────────────────


class AfipApiClient:
    """WSFEv1 client acting on behalf of one represented CUIT."""

    def __init__(
        self,
        mode: str,
        cuit: str,
        credentials: AfipCredentials,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = WSFE_URLS[mode]
        self.cuit = cuit
        self.credentials = credentials
        self.timeout = timeout
        self.transport = transport

    def _auth(self, parent: etree._Element) -> None:
        auth = _ar(parent, "Auth")
        _ar(auth, "Token", self.credentials.token)
        _ar(auth, "Sign", self.credentials.sign)
        _ar(auth, "Cuit", self.cuit)

    async def _call(self, method: str, root: etree._Element) -> etree._Element:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(
                    self.url,
                    content=etree.tostring(root, xml_declaration=True, encoding="UTF-8"),
                    headers={
                        "Content-Type": "text/xml; charset=utf-8",
                        "SOAPAction": f"{FEV1_NS}{method}",
                    },
                )
        except httpx.HTTPError as exc:
            raise FiscalAuthorityError(f"WSFE {method} transport error: {exc}") from exc

        if resp.status_code >= 400:
            raise FiscalAuthorityError(f"WSFE {method} HTTP {resp.status_code}")
        parsed = _parse(resp.content)
        fault = _fault(parsed)
        if fault:
            raise FiscalAuthorityError(f"WSFE {method} fault: {fault}")
        result = parsed.find(f".//{{{FEV1_NS}}}{method}Result")
        if result is None:
            raise FiscalAuthorityError(f"Invalid WSFE response: missing {method}Result")
        return result

    async def dummy(self) -> dict[str, Any]:
        """Connectivity check: status of the app, database and auth servers."""
        root, body = _envelope({"ar": FEV1_NS})
        _ar(body, "FEDummy")
        result = await self._call("FEDummy", root)
        return {
            "app_server": _text(result, "AppServer"),
            "db_server": _text(result, "DbServer"),
            "auth_server": _text(result, "AuthServer"),
        }

    async def last_authorized(self, point_of_sale: int, voucher_type: int) -> int:
        root, body = _envelope({"ar": FEV1_NS})
        req = _ar(body, "FECompUltimoAutorizado")
        self._auth(req)
        _ar(req, "PtoVta", point_of_sale)
        _ar(req, "CbteTipo", voucher_type)

        result = await self._call("FECompUltimoAutorizado", root)
        codes, messages = _collect_errors(result)
        if codes:
            raise FiscalAuthorityError(f"AFIP Error: {', '.join(messages)}", codes=codes)
        return int(_text(result, "CbteNro") or 0)

    def build_cae_envelope(self, req: CaeRequest) -> etree._Element:
        root, body = _envelope({"ar": FEV1_NS})
        solicitar = _ar(body, "FECAESolicitar")
        self._auth(solicitar)
        cae_req = _ar(solicitar, "FeCAEReq")

        cab = _ar(cae_req, "FeCabReq")
        _ar(cab, "CantReg", 1)
        _ar(cab, "PtoVta", req.point_of_sale)
        _ar(cab, "CbteTipo", req.voucher_type)

        det = _ar(_ar(cae_req, "FeDetReq"), "FECAEDetRequest")
        _ar(det, "Concepto", req.concept)
        _ar(det, "DocTipo", req.doc_type)
        _ar(det, "DocNro", req.doc_number)
        _ar(det, "CbteDesde", req.number)
        _ar(det, "CbteHasta", req.number)
        _ar(det, "CbteFch", req.voucher_date.strftime("%Y%m%d"))
        _ar(det, "ImpTotal", _money(req.total))
        _ar(det, "ImpTotConc", "0.00")
        _ar(det, "ImpNeto", _money(req.net))
        _ar(det, "ImpOpEx", _money(req.exempt))
        _ar(det, "ImpTrib", "0.00")
        _ar(det, "ImpIVA", _money(req.vat))
        _ar(det, "MonId", req.currency)
        _ar(det, "MonCotiz", req.currency_rate)
        _ar(det, "CondicionIVAReceptorId", req.receiver_vat_condition)
        if req.vat_rates:
            iva = _ar(det, "Iva")
            for rate in req.vat_rates:
                alic = _ar(iva, "AlicIva")
                _ar(alic, "Id", rate.code)
                _ar(alic, "BaseImp", _money(rate.base))
                _ar(alic, "Importe", _money(rate.amount))
        return root

    async def request_cae(self, req: CaeRequest) -> CaeResponse:
        result = await self._call("FECAESolicitar", self.build_cae_envelope(req))
        raw = _to_dict(result)

        codes, messages = _collect_errors(result)
        if codes:
            raise FiscalAuthorityError(f"AFIP Error: {', '.join(messages)}", codes=codes)

        det = result.find(f"{{{FEV1_NS}}}FeDetResp/{{{FEV1_NS}}}FECAEDetResponse")
        if det is None:
            raise FiscalAuthorityError("Invalid WSFE response: missing FECAEDetResponse")

        observations = [
            f"Code {_text(obs, 'Code')}: {_text(obs, 'Msg')}"
            for obs in det.iterfind(f"{{{FEV1_NS}}}Observaciones/{{{FEV1_NS}}}Obs")
        ]
        return CaeResponse(
            result=_text(det, "Resultado") or "R",
            number=int(_text(det, "CbteDesde") or req.number),
            cae=_text(det, "CAE") or None,
            cae_expiration=_afip_date(_text(det, "CAEFchVto")),
            observations=observations,
            raw=raw if isinstance(raw, dict) else {},
        )
