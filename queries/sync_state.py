from datetime import datetime

from sqlalchemy.orm import Session
from models.sync_state import SyncState


def get_state(db: Session, tenant_id: str) -> SyncState | None:
    return db.query(SyncState).filter(SyncState.tenant_id == tenant_id).first()


def set_state(db: Session, tenant_id: str, *, watermark: datetime, last_run_at: datetime | None) -> SyncState:
    try:
        row = db.query(SyncState).filter(SyncState.tenant_id == tenant_id).first()
        if not row:
            row = SyncState(tenant_id=tenant_id)
            db.add(row)
        row.watermark = watermark
        row.last_run_at = last_run_at
        db.commit()
        db.refresh(row)
        return row
    except Exception:
        db.rollback()
        raise
