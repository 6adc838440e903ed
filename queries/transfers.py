from sqlalchemy.orm import Session

from models.transfer import Transfer, TransferItem


def create_transfer(db: Session, *, from_warehouse_id: int, to_warehouse_id: int, invoice_id: str) -> Transfer:
    try:
        row = Transfer(from_warehouse_id=from_warehouse_id, to_warehouse_id=to_warehouse_id, invoice_id=invoice_id)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    except Exception:
        db.rollback()
        raise


def add_transfer_items(db: Session, transfer_id: int, lines: list[dict]) -> int:
    """
    Insert all lines of a transfer in one commit (all or nothing).
    """
    try:
        db.add_all([TransferItem(transfer_id=transfer_id, **line) for line in lines])
        db.commit()
        return len(lines)
    except Exception:
        db.rollback()
        raise


def delete_transfer(db: Session, transfer_id: int) -> None:
    try:
        db.query(TransferItem).filter(TransferItem.transfer_id == transfer_id).delete(synchronize_session=False)
        db.query(Transfer).filter(Transfer.id == transfer_id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise


def list_transfers_by_invoice(db: Session, invoice_id: str) -> list[Transfer]:
    return db.query(Transfer).filter(Transfer.invoice_id == invoice_id).order_by(Transfer.id).all()
