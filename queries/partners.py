from sqlalchemy.orm import Session

from models.partner import Account, Partner, Warehouse


def get_partner_by_tin(db: Session, tin: str) -> Partner | None:
    return db.query(Partner).filter(Partner.tin == tin).first()


def create_account(db: Session, *, name: str, bank: str, number: str) -> Account:
    try:
        row = Account(name=name, type="bank", bank=bank, number=number, currency="amd", internal=False)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    except Exception:
        db.rollback()
        raise


def create_warehouse(db: Session, *, name: str, address: str | None, type: str = "supplier") -> Warehouse:
    try:
        row = Warehouse(name=name, address=address, type=type)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    except Exception:
        db.rollback()
        raise


def create_partner(
    db: Session,
    *,
    tin: str,
    name: str,
    address: str | None,
    account_id: int | None,
    warehouse_id: int | None,
) -> Partner:
    try:
        row = Partner(
            tin=tin,
            name=name,
            address=address,
            type="supplier",
            account_id=account_id,
            warehouse_id=warehouse_id,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    except Exception:
        db.rollback()
        raise


def delete_account(db: Session, account_id: int) -> None:
    try:
        db.query(Account).filter(Account.id == account_id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise


def delete_warehouse(db: Session, warehouse_id: int) -> None:
    try:
        db.query(Warehouse).filter(Warehouse.id == warehouse_id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
