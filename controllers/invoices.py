from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from db.session import get_db
from helpers import cache_clear_prefix
from queries.invoices import list_invoices, mark_all_seen
from schemas.responses import ApiResponse
from schemas.invoice import InvoiceOut, InvoiceItemOut
from services.credentials import resolve_principal

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.get("", response_model=ApiResponse[list[InvoiceOut]])
def get_invoices(
    limit: int = Query(500, ge=1, le=500),
    include_items: bool = Query(True),
    db: Session = Depends(get_db),
):
    """
    Returns synced invoices from DB (newest first).
    include_items=true includes the lines with their resolved catalog item.
    """
    rows = list_invoices(db, limit=limit)

    out: list[InvoiceOut] = []
    for inv in rows:
        items_out = []
        if include_items:
            items_out = [
                InvoiceItemOut(
                    seq_no=i.seq_no,
                    name=i.name,
                    unit=i.unit,
                    quantity=i.quantity,
                    unit_price=i.unit_price,
                    vat_amount=i.vat_amount,
                    total=i.total,
                    item_id=i.item_id,
                )
                for i in (inv.items or [])
            ]

        out.append(
            InvoiceOut(
                invoice_id=inv.invoice_id,
                serial_no=inv.serial_no,
                type=inv.type,
                status=inv.status,
                supplier_tin=inv.supplier_tin,
                buyer_tin=inv.buyer_tin,
                created_at=inv.created_at,
                issued_at=inv.issued_at,
                total_value=inv.total_value,
                total_vat_amount=inv.total_vat_amount,
                total=inv.total,
                seen=bool(inv.seen),
                items=items_out,
            )
        )

    return ApiResponse(data=out)


@router.post("/seen", response_model=ApiResponse[dict])
def mark_seen(request: Request, db: Session = Depends(get_db)):
    """
    Mark all incoming (we are the buyer) invoices as seen.
    """
    principal = resolve_principal(db)
    if principal is None:
        raise HTTPException(status_code=409, detail="Tax service credentials are not configured")

    updated = mark_all_seen(db, principal.tenant_id)
    cache_clear_prefix(request.app.state.ttl_cache, "invoices:")
    return ApiResponse(data={"updated": updated})
