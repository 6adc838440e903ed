import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from core.config import settings
from queries.catalog import get_item
from queries.invoices import list_invoice_items
from queries.settings import DEFAULT_TRANSFER_WAREHOUSE_KEY, get_setting
from queries.transfers import add_transfer_items, create_transfer, delete_transfer
from services.catalog import link_invoice_items

log = logging.getLogger("transfers")


@dataclass
class TransferResult:
    transfer_id: int | None
    errors: list[str] = field(default_factory=list)


def default_transfer_warehouse(db: Session) -> int:
    value = get_setting(db, DEFAULT_TRANSFER_WAREHOUSE_KEY)
    try:
        if value is not None and value != "":
            return int(value)
    except (TypeError, ValueError):
        log.warning("invalid %s setting %r; using fallback", DEFAULT_TRANSFER_WAREHOUSE_KEY, value)
    return settings.DEFAULT_TRANSFER_WAREHOUSE_ID


def resolve_item_id(db: Session, item_id: int) -> int:
    """
    Transfers always move the canonical (parent) item.
    """
    item = get_item(db, item_id)
    if item is not None and item.parent_id:
        return item.parent_id
    return item_id


def materialize(db: Session, invoice_id: str, source_warehouse_id: int) -> TransferResult:
    """
    Build a stock transfer (partner warehouse -> default warehouse) from an invoice.
    Either the header and all its lines persist, or nothing does.
    """
    errors: list[str] = []
    destination_id = default_transfer_warehouse(db)
    log.info("invoice %s: transfer %s -> %s", invoice_id, source_warehouse_id, destination_id)

    match = link_invoice_items(db, invoice_id)
    errors.extend(match["errors"])

    lines = list_invoice_items(db, invoice_id, linked_only=True)
    if not lines:
        errors.append("No items with valid item_id found")
        return TransferResult(None, errors)

    transfer_lines = []
    for line in lines:
        qty = line.quantity or 0
        transfer_lines.append(
            {
                "item_id": resolve_item_id(db, line.item_id),
                "qty": qty,
                "unit_price": line.unit_price or 0,
                "unit_vat": (line.vat_amount / (qty or 1)) if line.vat_amount else 0,
            }
        )

    try:
        transfer = create_transfer(
            db, from_warehouse_id=source_warehouse_id, to_warehouse_id=destination_id, invoice_id=invoice_id
        )
    except Exception as e:
        log.exception("invoice %s: failed creating transfer", invoice_id)
        errors.append(f"Failed to create transfer: {e}")
        return TransferResult(None, errors)

    transfer_id = transfer.id
    try:
        add_transfer_items(db, transfer_id, transfer_lines)
    except Exception as e:
        log.exception("invoice %s: failed creating transfer items; removing transfer %s", invoice_id, transfer_id)
        errors.append(f"Failed to create transfer items: {e}")
        delete_transfer(db, transfer_id)
        return TransferResult(None, errors)

    log.info("invoice %s: transfer %s created with %s lines", invoice_id, transfer_id, len(transfer_lines))
    return TransferResult(transfer_id, errors)
