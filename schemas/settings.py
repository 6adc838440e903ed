from pydantic import BaseModel, Field
from typing import Optional


class TaxServiceCredentialsIn(BaseModel):
    tin: str = Field(min_length=1)
    login: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TaxServiceCredentialsOut(BaseModel):
    """Password is never echoed back."""
    tin: Optional[str] = None
    login: Optional[str] = None
    configured: bool = False


class DefaultWarehouseIn(BaseModel):
    warehouse_id: int = Field(ge=1)


class DefaultWarehouseOut(BaseModel):
    warehouse_id: int
    is_fallback: bool
