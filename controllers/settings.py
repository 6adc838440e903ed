from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from db.session import get_db
from helpers import cache_clear_prefix
from queries.settings import DEFAULT_TRANSFER_WAREHOUSE_KEY, TAX_SERVICE_KEY, get_setting, set_setting
from schemas.responses import ApiResponse
from schemas.settings import (
    DefaultWarehouseIn,
    DefaultWarehouseOut,
    TaxServiceCredentialsIn,
    TaxServiceCredentialsOut,
)
from services.transfers import default_transfer_warehouse

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/tax-service", response_model=ApiResponse[TaxServiceCredentialsOut])
def get_tax_service(db: Session = Depends(get_db)):
    stored = get_setting(db, TAX_SERVICE_KEY) or {}
    return ApiResponse(
        data=TaxServiceCredentialsOut(
            tin=stored.get("tin"),
            login=stored.get("login"),
            configured=bool(stored.get("tin") and stored.get("login") and stored.get("password")),
        )
    )


@router.put("/tax-service", response_model=ApiResponse[TaxServiceCredentialsOut])
def put_tax_service(body: TaxServiceCredentialsIn, request: Request, db: Session = Depends(get_db)):
    set_setting(db, TAX_SERVICE_KEY, {"tin": body.tin.strip(), "login": body.login, "password": body.password})

    # credentials may wake a dormant scheduler; cached status is stale
    cache_clear_prefix(request.app.state.ttl_cache, "invoices:")
    request.app.state.scheduler.schedule_next()

    return ApiResponse(data=TaxServiceCredentialsOut(tin=body.tin.strip(), login=body.login, configured=True))


@router.get("/default-transfer-warehouse", response_model=ApiResponse[DefaultWarehouseOut])
def get_default_warehouse(db: Session = Depends(get_db)):
    stored = get_setting(db, DEFAULT_TRANSFER_WAREHOUSE_KEY)
    warehouse_id = default_transfer_warehouse(db)
    return ApiResponse(data=DefaultWarehouseOut(warehouse_id=warehouse_id, is_fallback=stored in (None, "")))


@router.put("/default-transfer-warehouse", response_model=ApiResponse[DefaultWarehouseOut])
def put_default_warehouse(body: DefaultWarehouseIn, db: Session = Depends(get_db)):
    set_setting(db, DEFAULT_TRANSFER_WAREHOUSE_KEY, body.warehouse_id)
    return ApiResponse(data=DefaultWarehouseOut(warehouse_id=body.warehouse_id, is_fallback=False))
