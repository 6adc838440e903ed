from sqlalchemy.orm import Session, joinedload
from models.invoice import Invoice, InvoiceItem


def get_invoice_by_invoice_id(db: Session, invoice_id: str) -> Invoice | None:
    return (
        db.query(Invoice)
        .options(joinedload(Invoice.items))
        .filter(Invoice.invoice_id == invoice_id)
        .first()
    )


def list_invoices(db: Session, limit: int = 300) -> list[Invoice]:
    return (
        db.query(Invoice)
        .options(joinedload(Invoice.items))
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .limit(limit)
        .all()
    )


def upsert_invoice(db: Session, *, invoice_id: str, fields: dict) -> tuple[Invoice, bool]:
    """
    Insert if new, full-field update if existing.
    `seen` is never written here: new rows get the column default, existing rows keep theirs.
    Returns (invoice, created).
    """
    fields = {k: v for k, v in fields.items() if k not in ("seen", "id", "invoice_id")}
    try:
        inv = db.query(Invoice).filter(Invoice.invoice_id == invoice_id).first()
        created = inv is None
        if created:
            inv = Invoice(invoice_id=invoice_id, seen=False)
            db.add(inv)

        for key, value in fields.items():
            setattr(inv, key, value)

        db.commit()
        db.refresh(inv)
        return inv, created

    except Exception:
        db.rollback()
        raise


def replace_invoice_items(db: Session, invoice_id: str, items: list[dict]) -> int:
    """
    Delete-then-reinsert all lines of one invoice. Returns number of rows inserted.
    """
    try:
        db.query(InvoiceItem).filter(InvoiceItem.invoice_id == invoice_id).delete(synchronize_session=False)
        db.flush()  # ✅ force DELETEs before inserting new rows (important for sqlite)

        seen: set[int] = set()
        rows: list[InvoiceItem] = []
        for it in items or []:
            seq_no = int(it["seq_no"])
            if seq_no in seen:
                # duplicate seqNo in the service payload
                continue
            seen.add(seq_no)
            rows.append(InvoiceItem(invoice_id=invoice_id, **it))

        db.add_all(rows)
        db.commit()
        return len(rows)

    except Exception:
        db.rollback()
        raise


def list_invoice_items(db: Session, invoice_id: str, *, linked_only: bool = False) -> list[InvoiceItem]:
    q = db.query(InvoiceItem).filter(InvoiceItem.invoice_id == invoice_id)
    if linked_only:
        q = q.filter(InvoiceItem.item_id.isnot(None))
    return q.order_by(InvoiceItem.seq_no).all()


def link_invoice_item(db: Session, line: InvoiceItem, item_id: int) -> None:
    try:
        line.item_id = item_id
        db.commit()
    except Exception:
        db.rollback()
        raise


def count_unseen(db: Session, buyer_tin: str) -> int:
    return (
        db.query(Invoice)
        .filter(Invoice.buyer_tin == buyer_tin, Invoice.seen.is_(False))
        .count()
    )


def mark_all_seen(db: Session, buyer_tin: str) -> int:
    try:
        updated = (
            db.query(Invoice)
            .filter(Invoice.buyer_tin == buyer_tin, Invoice.seen.is_(False))
            .update({Invoice.seen: True}, synchronize_session=False)
        )
        db.commit()
        return updated
    except Exception:
        db.rollback()
        raise
