"""Unit tests for the WSAA/WSFEv1 client with httpx mock transport."""

from __future__ import annotations

import asyncio
import base64
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest
from cryptography.hazmat.primitives.serialization import pkcs7
from lxml import etree

from backend.app.core.exceptions import FiscalAuthorityError
from backend.app.services.afip.api_client import (
    FEV1_NS,
    WSFE_URLS,
    AfipApiClient,
    CaeRequest,
    VatRate,
    build_login_envelope,
    login,
    parse_login_response,
)
from backend.app.services.afip.credentials import (
    AfipCredentials,
    CredentialsCache,
    build_tra,
    sign_tra,
)

from backend.tests.afip_fakes import wsaa_login_response, wsfe_errors, wsfe_response

D = Decimal


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _credentials(hours: int = 12) -> AfipCredentials:
    return AfipCredentials(
        token="TOKEN",
        sign="SIGN",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=hours),
    )


def _client(handler) -> AfipApiClient:  # type: ignore[no-untyped-def]
    return AfipApiClient(
        "homologacion", "30712345679", _credentials(), transport=httpx.MockTransport(handler)
    )


def _cae_request(**overrides: object) -> CaeRequest:
    req = CaeRequest(
        point_of_sale=1,
        voucher_type=6,
        number=8,
        doc_type=80,
        doc_number="30700000007",
        voucher_date=date(2026, 10, 18),
        total=D("352.50"),
        net=D("300.00"),
        vat=D("52.50"),
        receiver_vat_condition=1,
        vat_rates=[
            VatRate(code=5, base=D("200.00"), amount=D("42.00")),
            VatRate(code=4, base=D("100.00"), amount=D("10.50")),
        ],
    )
    for key, value in overrides.items():
        setattr(req, key, value)
    return req


def _find(root: etree._Element, local: str) -> str | None:
    return root.findtext(f".//{{{FEV1_NS}}}{local}")


# ─── Credentials ──────────────────────────────────────────────────────────────


class TestCredentials:
    def test_tra_is_valid_for_twelve_hours(self) -> None:
        now = datetime(2026, 10, 18, 15, 0, tzinfo=timezone.utc)
        root = etree.fromstring(build_tra("wsfe", now=now))
        assert root.findtext("service") == "wsfe"
        generated = datetime.fromisoformat(root.findtext("header/generationTime"))
        expires = datetime.fromisoformat(root.findtext("header/expirationTime"))
        assert expires - generated == timedelta(hours=12)
        assert root.findtext("header/generationTime") == "2026-10-18T12:00:00-03:00"

    def test_signed_tra_embeds_certificate(self, afip_certificate: tuple[str, str]) -> None:
        cert_pem, key_pem = afip_certificate
        cms = base64.b64decode(sign_tra(build_tra(), cert_pem, key_pem))
        (cert,) = pkcs7.load_der_pkcs7_certificates(cms)
        assert "mostrador-test" in cert.subject.rfc4514_string()

    def test_sign_without_certificate_raises(self) -> None:
        with pytest.raises(ValueError, match="No certificate"):
            sign_tra(build_tra(), "not a pem", "not a key")

    def test_cache_expires_before_authority(self) -> None:
        cache = CredentialsCache(refresh_margin=timedelta(minutes=5))
        now = datetime.now(timezone.utc)
        cache.set(
            "20111111112",
            "homologacion",
            AfipCredentials("T", "S", now + timedelta(minutes=10)),
        )
        assert cache.get("20111111112", "homologacion", now=now) is not None
        assert cache.get("20111111112", "produccion", now=now) is None
        assert cache.get("20111111112", "homologacion", now=now + timedelta(minutes=6)) is None


# ─── WSAA ─────────────────────────────────────────────────────────────────────


class TestLogin:
    def test_envelope_carries_cms(self) -> None:
        root = etree.fromstring(build_login_envelope("Q01TLUJBU0U2NA=="))
        assert root.findtext(".//{*}in0") == "Q01TLUJBU0U2NA=="

    def test_parse_ticket(self) -> None:
        creds = parse_login_response(wsaa_login_response(token="abc", sign="xyz"))
        assert (creds.token, creds.sign) == ("abc", "xyz")
        assert creds.expires_at > datetime.now(timezone.utc)

    def test_missing_ticket_raises(self) -> None:
        with pytest.raises(FiscalAuthorityError, match="missing loginCmsReturn"):
            parse_login_response(wsfe_response("loginCms", ""))

    def test_login_round_trip(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=wsaa_login_response())

        creds = asyncio.run(
            login("homologacion", "CMS", transport=httpx.MockTransport(handler))
        )
        assert creds.token == "TOKEN"
        assert str(seen[0].url) == "https://wsaahomo.afip.gov.ar/ws/services/LoginCms"

    def test_already_authenticated(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                500, text="<faultstring>coe.alreadyAuthenticated</faultstring>"
            )

        with pytest.raises(FiscalAuthorityError) as exc_info:
            asyncio.run(login("homologacion", "CMS", transport=httpx.MockTransport(handler)))
        assert exc_info.value.codes == ["coe.alreadyAuthenticated"]

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FiscalAuthorityError, match="transport error"):
            asyncio.run(login("homologacion", "CMS", transport=httpx.MockTransport(handler)))


# ─── WSFEv1 ───────────────────────────────────────────────────────────────────


class TestWsfe:
    def test_last_authorized(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, content=wsfe_response("FECompUltimoAutorizado", "<CbteNro>41</CbteNro>")
            )

        assert asyncio.run(_client(handler).last_authorized(1, 6)) == 41
        request = seen[0]
        assert str(request.url) == WSFE_URLS["homologacion"]
        assert request.headers["SOAPAction"] == f"{FEV1_NS}FECompUltimoAutorizado"
        body = etree.fromstring(request.content)
        assert _find(body, "Cuit") == "30712345679"
        assert _find(body, "CbteTipo") == "6"

    def test_cae_envelope_itemizes_vat(self) -> None:
        client = _client(lambda request: httpx.Response(500))
        root = client.build_cae_envelope(_cae_request())
        assert _find(root, "ImpTotal") == "352.50"
        assert _find(root, "ImpNeto") == "300.00"
        assert _find(root, "ImpIVA") == "52.50"
        assert _find(root, "CbteFch") == "20261018"
        rates = root.findall(f".//{{{FEV1_NS}}}AlicIva")
        assert [(_find(r, "Id"), _find(r, "Importe")) for r in rates] == [
            ("5", "42.00"),
            ("4", "10.50"),
        ]

    def test_class_c_envelope_has_no_vat_block(self) -> None:
        client = _client(lambda request: httpx.Response(500))
        root = client.build_cae_envelope(_cae_request(voucher_type=11, vat_rates=[]))
        assert root.find(f".//{{{FEV1_NS}}}Iva") is None

    def test_request_cae_approved(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                content=wsfe_response(
                    "FECAESolicitar",
                    "<FeDetResp><FECAEDetResponse><CbteDesde>8</CbteDesde>"
                    "<Resultado>A</Resultado><CAE>76340000000008</CAE>"
                    "<CAEFchVto>20261028</CAEFchVto>"
                    "<Observaciones><Obs><Code>10217</Code><Msg>Aviso</Msg></Obs>"
                    "</Observaciones></FECAEDetResponse></FeDetResp>",
                ),
            )

        response = asyncio.run(_client(handler).request_cae(_cae_request()))
        assert response.approved
        assert response.number == 8
        assert response.cae == "76340000000008"
        assert response.cae_expiration == date(2026, 10, 28)
        assert response.observations == ["Code 10217: Aviso"]
        assert "FeDetResp" in response.raw

    def test_request_cae_rejected_in_detail(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                content=wsfe_response(
                    "FECAESolicitar",
                    "<FeDetResp><FECAEDetResponse><CbteDesde>8</CbteDesde>"
                    "<Resultado>R</Resultado></FECAEDetResponse></FeDetResp>",
                ),
            )

        response = asyncio.run(_client(handler).request_cae(_cae_request()))
        assert not response.approved
        assert response.cae is None

    def test_request_cae_errors_carry_codes(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, content=wsfe_errors("FECAESolicitar", ("10016", "Fuera de secuencia"))
            )

        with pytest.raises(FiscalAuthorityError) as exc_info:
            asyncio.run(_client(handler).request_cae(_cae_request()))
        assert exc_info.value.codes == ["10016"]
        assert "Code 10016: Fuera de secuencia" in str(exc_info.value)

    def test_soap_fault(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                content=(
                    b'<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
                    b"<soap:Body><soap:Fault><faultcode>soap:Server</faultcode>"
                    b"<faultstring>Token expirado</faultstring></soap:Fault></soap:Body>"
                    b"</soap:Envelope>"
                ),
            )

        with pytest.raises(FiscalAuthorityError, match="Token expirado"):
            asyncio.run(_client(handler).last_authorized(1, 6))

    def test_http_error(self) -> None:
        with pytest.raises(FiscalAuthorityError, match="HTTP 503"):
            asyncio.run(_client(lambda request: httpx.Response(503)).last_authorized(1, 6))

    def test_garbage_response(self) -> None:
        with pytest.raises(FiscalAuthorityError, match="Unparseable"):
            asyncio.run(
                _client(lambda request: httpx.Response(200, content=b"<html")).dummy()
            )

    def test_dummy(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                content=wsfe_response(
                    "FEDummy",
                    "<AppServer>OK</AppServer><DbServer>OK</DbServer><AuthServer>OK</AuthServer>",
                ),
            )

        assert asyncio.run(_client(handler).dummy()) == {
            "app_server": "OK",
            "db_server": "OK",
            "auth_server": "OK",
        }
