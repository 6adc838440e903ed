from sqlalchemy.orm import Session

from models.catalog import CatalogItem


def list_items(db: Session) -> list[CatalogItem]:
    return db.query(CatalogItem).order_by(CatalogItem.id).all()


def get_item(db: Session, item_id: int) -> CatalogItem | None:
    return db.get(CatalogItem, item_id)


def create_item(db: Session, *, name: str, code: str, unit: str | None) -> CatalogItem:
    try:
        row = CatalogItem(name=name, code=code, unit=unit)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    except Exception:
        db.rollback()
        raise
