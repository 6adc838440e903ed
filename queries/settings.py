from typing import Any

from sqlalchemy.orm import Session
from models.setting import Setting


TAX_SERVICE_KEY = "tax_service"
DEFAULT_TRANSFER_WAREHOUSE_KEY = "default_transfer_warehouse"


def get_setting(db: Session, key: str) -> Any:
    row = db.query(Setting).filter(Setting.key == key).first()
    return row.value if row else None


def set_setting(db: Session, key: str, value: Any) -> None:
    try:
        row = db.query(Setting).filter(Setting.key == key).first()
        if not row:
            row = Setting(key=key, value=value)
            db.add(row)
        else:
            row.value = value
        db.commit()
    except Exception:
        db.rollback()
        raise
