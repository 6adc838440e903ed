import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.partner import Partner
from queries.partners import (
    create_account,
    create_partner,
    create_warehouse,
    delete_account,
    delete_warehouse,
    get_partner_by_tin,
)

log = logging.getLogger("reconciler")


@dataclass
class PartnerData:
    tin: str
    name: str
    address: str
    bank: str | None = None
    account_no: str | None = None
    invoice_type: str | None = None


def partner_data_from(raw: dict, detail: dict | None) -> PartnerData:
    """
    Detail payload is the richer source; the list row is the fallback.
    """
    detail = detail or {}

    def pick(key: str):
        return detail.get(key) or raw.get(key)

    tin = str(raw.get("supplierTin") or "").strip()
    return PartnerData(
        tin=tin,
        name=pick("supplierName") or tin,
        address=pick("deliveryAddress") or "",
        bank=pick("supplierBank"),
        account_no=pick("supplierAccNo"),
        invoice_type=raw.get("type"),
    )


def ensure_partner(db: Session, data: PartnerData) -> Partner | None:
    """
    Existing partner by TIN, or a new one with (optional) bank account and
    supplier warehouse. Returns None only when the partner row itself fails.
    """
    existing = get_partner_by_tin(db, data.tin)
    if existing:
        return existing

    log.info("creating partner %s (%s)", data.name, data.tin)

    account_id = None
    if data.bank and data.account_no:
        try:
            account_id = create_account(
                db, name=f"{data.name} - {data.bank}", bank=data.bank, number=data.account_no
            ).id
        except SQLAlchemyError:
            log.exception("failed creating bank account for partner %s", data.tin)

    warehouse_id = None
    # services are not stocked
    if data.invoice_type != "SERVICES":
        try:
            warehouse_id = create_warehouse(db, name=data.name, address=data.address).id
        except SQLAlchemyError:
            log.exception("failed creating warehouse for partner %s", data.tin)

    try:
        return create_partner(
            db,
            tin=data.tin,
            name=data.name,
            address=data.address,
            account_id=account_id,
            warehouse_id=warehouse_id,
        )
    except SQLAlchemyError:
        log.exception("failed creating partner %s", data.tin)
        _discard(db, account_id, warehouse_id)
        return None


def _discard(db: Session, account_id: int | None, warehouse_id: int | None) -> None:
    """Remove the account/warehouse created for a partner that was never saved."""
    try:
        if account_id is not None:
            delete_account(db, account_id)
        if warehouse_id is not None:
            delete_warehouse(db, warehouse_id)
    except SQLAlchemyError:
        log.exception("failed removing account %s / warehouse %s", account_id, warehouse_id)
