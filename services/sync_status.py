from sqlalchemy.orm import Session

from queries.invoices import count_unseen
from queries.sync_state import get_state
from services.credentials import resolve_principal

STATUS_CACHE_KEY = "invoices:status"


def build_status(db: Session) -> dict:
    """
    Lightweight snapshot for the UI badge: unseen incoming invoices + last sync info.
    """
    principal = resolve_principal(db)
    if principal is None:
        return {"configured": False, "tin": None, "unseen_count": 0, "watermark": None, "last_run_at": None}

    state = get_state(db, principal.tenant_id)
    return {
        "configured": True,
        "tin": principal.tenant_id,
        "unseen_count": count_unseen(db, principal.tenant_id),
        "watermark": state.watermark.isoformat() if state and state.watermark else None,
        "last_run_at": state.last_run_at.isoformat() if state and state.last_run_at else None,
    }
