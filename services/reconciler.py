import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from core.errors import MalformedInvoiceError, PartnerCreationError
from helpers import from_epoch_ms
from models.partner import Partner
from queries.invoices import get_invoice_by_invoice_id, replace_invoice_items, upsert_invoice
from services.partners import ensure_partner, partner_data_from
from services.catalog import link_invoice_items
from services.tax_client import Success
from services.transfers import materialize

log = logging.getLogger("reconciler")


@dataclass
class ReconcileResult:
    invoice_id: str
    created: bool
    lines: int = 0
    transfer_id: int | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def updated(self) -> bool:
        return not self.created


def _float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _bool(value: Any) -> bool | None:
    return None if value is None else bool(value)


def invoice_fields(raw: dict) -> dict:
    return {
        "serial_no": _str(raw.get("serialNo")),
        "type": _str(raw.get("type")),
        "sort": _str(raw.get("sort")),
        "approval_state": _str(raw.get("approvalState")),
        "status": _str(raw.get("status")),
        "correction_state": _str(raw.get("correctionState")),
        "correction_type": _str(raw.get("correctionType")),
        "created_at": from_epoch_ms(raw.get("createdAt")),
        "issued_at": from_epoch_ms(raw.get("issuedAt")),
        "approved_at": from_epoch_ms(raw.get("approvedAt")),
        "delivered_at": from_epoch_ms(raw.get("deliveredAt")),
        "dealt_at": from_epoch_ms(raw.get("dealtAt")),
        "cancelled_at": from_epoch_ms(raw.get("canceledAt")),
        "supplier_tin": _str(raw.get("supplierTin")),
        "buyer_tin": _str(raw.get("buyerTin")),
        "delivery_address": _str(raw.get("deliveryAddress")),
        "destination_address": _str(raw.get("destinationAddress")),
        "env_tax": _float(raw.get("envTax")),
        "total_value": _float(raw.get("totalValue")),
        "total_vat_amount": _float(raw.get("totalVatAmount")),
        "total": _float(raw.get("total")),
        "cancellation_reason": _str(raw.get("cancellationReason")),
        "canceled_notified": _str(raw.get("canceledNotified")),
        "ben_canceled_notified": _str(raw.get("benCanceledNotified")),
        "ben_issued_notified": _str(raw.get("benIssuedNotified")),
        "user_name": _str(raw.get("userName")),
        "final_use": _bool(raw.get("finalUse")),
        "has_codes": _bool(raw.get("hasCodes")),
        "additional_info": _str(raw.get("additionalInfo")),
        "other_data": _str(raw.get("otherData")),
    }


def line_fields(line: dict, seq_no: int) -> dict:
    name = (line.get("name") or "").strip()
    return {
        "seq_no": seq_no,
        "name": name or None,
        "unit": _str(line.get("unit")),
        "quantity": _float(line.get("quantity")),
        "unit_price": _float(line.get("unitPrice")),
        "total_value": _float(line.get("totalValue")),
        "classifier_id": _str(line.get("classifierId")),
        "deal_type": _str(line.get("dealType")),
        "vat_rate": _float(line.get("vatRate")),
        "vat_amount": _float(line.get("vatAmount")),
        "total": _float(line.get("total")),
        "inc_env_tax": _bool(line.get("incEnvTax")),
        "other_data": _str(line.get("otherData")),
    }


def _seq(value: Any) -> int | None:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def number_lines(items: list[dict]) -> list[dict]:
    """
    Line rows with their service seqNo. Lines without one are numbered after
    the highest seqNo so they never collide with a real one.
    """
    known = [s for s in (_seq(it.get("seqNo")) for it in items) if s is not None]
    next_seq = max(known, default=0) + 1

    lines = []
    for it in items:
        seq_no = _seq(it.get("seqNo"))
        if seq_no is None:
            seq_no = next_seq
            next_seq += 1
        lines.append(line_fields(it, seq_no))
    return lines


class Reconciler:
    """
    Mirrors one tax service invoice into local entities:
    partner -> invoice -> lines (+ catalog items) -> transfer.
    """

    def __init__(self, client) -> None:
        self.client = client

    async def reconcile(self, db: Session, raw: dict, tenant_id: str) -> ReconcileResult:
        invoice_id = str(raw.get("id") or "").strip()
        if not invoice_id:
            raise MalformedInvoiceError("<missing id>", "invoice has no id")

        existing = get_invoice_by_invoice_id(db, invoice_id)

        items: list[dict] = []
        detail: dict | None = None
        if raw.get("type"):
            reply = await self.client.fetch_line_items(invoice_id, raw["type"])
            items = list(reply.items or [])
            if isinstance(reply, Success):
                detail = reply.detail

        lines = number_lines(items)
        if lines and not any(line["name"] for line in lines):
            raise MalformedInvoiceError(invoice_id, "no line has an item name")

        supplier_tin = str(raw.get("supplierTin") or "").strip()
        partner: Partner | None = None
        if existing is None and supplier_tin and supplier_tin != tenant_id:
            partner = ensure_partner(db, partner_data_from(raw, detail))
            if partner is None:
                # no invoice row without its supplier
                raise PartnerCreationError(invoice_id, f"failed to create partner for {supplier_tin}")

        _, created = upsert_invoice(db, invoice_id=invoice_id, fields=invoice_fields(raw))
        result = ReconcileResult(invoice_id=invoice_id, created=created)

        if lines:
            result.lines = replace_invoice_items(db, invoice_id, lines)
            match = link_invoice_items(db, invoice_id)
            result.errors.extend(match["errors"])

        buyer_tin = str(raw.get("buyerTin") or "").strip()
        if (
            created
            and buyer_tin == tenant_id
            and partner is not None
            and partner.warehouse_id
            and result.lines > 0
        ):
            transfer = materialize(db, invoice_id, partner.warehouse_id)
            result.transfer_id = transfer.transfer_id
            result.errors.extend(transfer.errors)

        log.info(
            "invoice %s %s (lines=%s transfer=%s)",
            invoice_id,
            "created" if created else "updated",
            result.lines,
            result.transfer_id,
        )
        return result
