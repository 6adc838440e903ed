from datetime import datetime
from pydantic import BaseModel
from typing import List, Optional


class InvoiceItemOut(BaseModel):
    seq_no: int
    name: Optional[str] = None
    unit: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    vat_amount: Optional[float] = None
    total: Optional[float] = None
    item_id: Optional[int] = None  # resolved catalog item


class InvoiceOut(BaseModel):
    invoice_id: str
    serial_no: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    supplier_tin: Optional[str] = None
    buyer_tin: Optional[str] = None
    created_at: Optional[datetime] = None
    issued_at: Optional[datetime] = None
    total_value: Optional[float] = None
    total_vat_amount: Optional[float] = None
    total: Optional[float] = None
    seen: bool = False

    items: List[InvoiceItemOut] = []
