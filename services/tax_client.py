import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Union
from xml.sax.saxutils import quoteattr
from zoneinfo import ZoneInfo

import httpx

from core.config import settings
from core.errors import TaxServiceAuthError, TaxServiceError
from services.token_store import SyncPrincipal, TokenStore

log = logging.getLogger("tax_client")


# invoice type -> line items endpoint
ITEM_ENDPOINTS = {
    "GOODS": "/goods/goods-product-by-invoice-id",
    "EXCISE": "/excise/excise-product-by-invoice-id",
    "SERVICES": "/services/services-product-by-invoice-id",
    "LEASING": "/leasing-act/leasing-act-subject-by-invoice-id",
    "VAT_RETURN": "/vat-refund/vat-refund-product-by-invoice-id",
    "ACC_DOC_TRACEABLE_G": "/acc-doc-traceable-g/acc-doc-traceable-g-product-by-invoice-id",
    "ACC_DOC_GOODS": "/acc-doc-goods/acc-doc-goods-product-by-invoice-id",
    "ACC_DOC_SERVICES": "/acc-doc-services/acc-doc-services-product-by-invoice-id",
    "ACC_DOC_TRANSPORTATION": "/acc-doc-transportation/acc-doc-transportation-product-by-invoice-id",
    "ACC_DOC_EXPORT_EEU": "/acc-doc-export-eeu/acc-doc-export-eeu-product-by-invoice-id",
}

# invoice type -> full document endpoint (carries supplier name / bank details)
DETAIL_ENDPOINTS = {
    "GOODS": "/goods/goods-by-id",
    "EXCISE": "/excise/excise-by-id",
    "SERVICES": "/services/services-by-id",
    "LEASING": "/leasing-act/leasing-act-by-id",
    "VAT_RETURN": "/vat-refund/vat-refund-by-id",
    "ACC_DOC_TRACEABLE_G": "/acc-doc-traceable-g/acc-doc-traceable-g-by-id",
    "ACC_DOC_GOODS": "/acc-doc-goods/acc-doc-goods-by-id",
    "ACC_DOC_SERVICES": "/acc-doc-services/acc-doc-services-by-id",
    "ACC_DOC_TRANSPORTATION": "/acc-doc-transportation/acc-doc-transportation-by-id",
    "ACC_DOC_EXPORT_EEU": "/acc-doc-export-eeu/acc-doc-export-eeu-by-id",
}

UNAUTHORIZED = (401, 403)

_STATUS_RE = re.compile(r'<Status Code="(\d+)" Message="([^"]*)"')
_TOKEN_ELEMENT_RE = re.compile(r"<AuthToken>(.*?)</AuthToken>", re.S)
_TOKEN_ATTR_RE = re.compile(r'AuthToken="([^"]+)"')


@dataclass(frozen=True)
class Degraded:
    """Error/fallback reply from the line items endpoint; items are still usable."""
    items: list[dict]


@dataclass(frozen=True)
class Success:
    items: list[dict]
    detail: dict | None = None


LineItemsReply = Union[Degraded, Success]


def format_service_time(moment: datetime) -> str:
    """
    Naive UTC -> 'YYYY-MM-DD HH:MM:SS' in the tax service's local time.
    """
    tz = ZoneInfo(settings.TAX_SERVICE_TIMEZONE)
    return moment.replace(tzinfo=timezone.utc).astimezone(tz).strftime("%Y-%m-%d %H:%M:%S")


def build_condition(role: str, tin: str, start: datetime, end: datetime) -> str:
    """
    Filter expression for invoice-count / invoice-list.
    role: "buyer" (we receive) or "supplier" (we issue).
    """
    if role not in ("buyer", "supplier"):
        raise ValueError(f"unknown role: {role}")

    status = "((#status = 'ISSUED') or (#status = 'APPROVED'))"
    return (
        f"((((#{role}Tin = '{tin}') and {status}) "
        f"and (#createdAt >= date('{format_service_time(start)}'))) "
        f"and (#createdAt <= date('{format_service_time(end)}')))"
    )


class TaxServiceClient:
    def __init__(
        self,
        principal: SyncPrincipal,
        tokens: TokenStore,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.principal = principal
        self.tokens = tokens
        self.auth_url = settings.TAX_SERVICE_AUTH_URL
        self.base = settings.TAX_SERVICE_REST_URL.rstrip("/")
        self.timeout = settings.TAX_SERVICE_HTTP_TIMEOUT_SECONDS
        self._transport = transport

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    # --------------------------------------------------
    # Authentication (SOAP)
    # --------------------------------------------------

    async def login(self, principal: SyncPrincipal) -> str:
        envelope = (
            '<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/" '
            'xmlns:def="http://www.taxservice.am/tp3/invoice/definitions">'
            "<soapenv:Header/><soapenv:Body>"
            f"<def:LoginWebRequest Tin={quoteattr(principal.tenant_id)} "
            f"Login={quoteattr(principal.username)} Password={quoteattr(principal.secret)} />"
            "</soapenv:Body></soapenv:Envelope>"
        )
        headers = {"Content-Type": "text/xml;charset=UTF-8", "SOAPAction": ""}

        log.info("authenticating tin=%s", principal.tenant_id)
        async with self._http() as client:
            r = await client.post(self.auth_url, content=envelope.encode("utf-8"), headers=headers)

        text = r.text
        status = _STATUS_RE.search(text)
        if status and status.group(1) != "0000":
            raise TaxServiceAuthError(status.group(2) or "Authentication failed", code=status.group(1))

        if not r.is_success:
            raise TaxServiceAuthError(f"Authentication failed: HTTP {r.status_code}")

        match = _TOKEN_ELEMENT_RE.search(text) or _TOKEN_ATTR_RE.search(text)
        if not match or not match.group(1).strip():
            raise TaxServiceAuthError("Failed to extract token from response")

        return match.group(1).strip()

    # --------------------------------------------------
    # REST plumbing
    # --------------------------------------------------

    async def _send(self, path: str, body: dict, token: str) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Cookie": f"jwt-auth-token={token}",
        }
        async with self._http() as client:
            return await client.post(f"{self.base}{path}", json=body, headers=headers)

    async def _post(self, path: str, body: dict) -> httpx.Response:
        """
        One call with the current token; on 401/403 re-login once and retry once.
        """
        tenant = self.principal.tenant_id
        token = await self.tokens.get_token(self.principal, self.login)
        r = await self._send(path, body, token)
        if r.status_code not in UNAUTHORIZED:
            return r

        log.info("%s returned %s; refreshing token and retrying", path, r.status_code)
        self.tokens.invalidate(tenant)
        token = await self.tokens.get_token(self.principal, self.login)
        r = await self._send(path, body, token)
        if r.status_code in UNAUTHORIZED:
            self.tokens.invalidate(tenant)
            raise TaxServiceAuthError(f"Token rejected after re-authentication ({r.status_code})")
        return r

    @staticmethod
    def _json(r: httpx.Response) -> Any:
        if r.text.lstrip().startswith("<"):
            raise TaxServiceError("Invalid response from tax service - got HTML instead of JSON")
        return r.json()

    async def _fetch_payload(self, path: str, payload: dict) -> Any:
        r = await self._post(path, {"payload": payload})
        r.raise_for_status()
        data = self._json(r)
        return data.get("payload") if isinstance(data, dict) else data

    # --------------------------------------------------
    # Invoice retrieval
    # --------------------------------------------------

    async def fetch_count(self, condition: str) -> int:
        return int(await self._fetch_payload("/invoice/invoice-count", {"condition": condition}) or 0)

    async def fetch_page(self, condition: str, page_offset: int, page_size: int) -> list[dict]:
        rows = await self._fetch_payload(
            "/invoice/invoice-list",
            {
                "condition": condition,
                "pageLimit": page_size,
                "pageOffset": page_offset,
                "sortCol": "issuedAt",
                "sortAsc": False,
            },
        )
        return rows if isinstance(rows, list) else []

    async def fetch_line_items(self, invoice_id: str, invoice_type: str | None) -> LineItemsReply:
        path = ITEM_ENDPOINTS.get(invoice_type or "")
        if not path:
            log.info("no line items endpoint for invoice %s type=%s", invoice_id, invoice_type)
            return Degraded([])

        r = await self._post(path, {"payload": {"invoiceId": invoice_id}})

        # some documents simply have no lines
        if r.status_code in (404, 500):
            log.info("no line items for invoice %s (HTTP %s)", invoice_id, r.status_code)
            return Degraded([])
        r.raise_for_status()

        data = self._json(r)
        if isinstance(data, list):
            return Degraded(data)

        if isinstance(data, dict) and data.get("ok") and isinstance(data.get("payload"), list):
            detail = await self._fetch_detail(invoice_id, invoice_type)
            return Success(items=data["payload"], detail=detail)

        return Degraded([])

    async def _fetch_detail(self, invoice_id: str, invoice_type: str) -> dict | None:
        """
        Best effort: missing detail only means partner fields fall back to the list row.
        """
        path = DETAIL_ENDPOINTS.get(invoice_type)
        if not path:
            return None
        try:
            r = await self._post(path, {"payload": {"id": invoice_id}})
            if not r.is_success:
                log.info("invoice detail %s failed: HTTP %s", invoice_id, r.status_code)
                return None
            data = self._json(r)
        except (httpx.HTTPError, TaxServiceError, ValueError) as e:
            log.warning("invoice detail %s failed: %s", invoice_id, e)
            return None

        if isinstance(data, dict) and data.get("ok") and isinstance(data.get("payload"), dict):
            return data["payload"]
        return None
