# backend/prodex/api/supplies.py
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..services.supplies import record_purchase
from .deps import CurrentUser, get_db, require_capability

router = APIRouter(prefix="/supplies", tags=["supplies"])


class PurchaseIn(BaseModel):
    qty: Decimal
    total_cost: Decimal
    notes: Optional[str] = None


class SupplyOut(BaseModel):
    id: int
    name: str
    unit_base: str
    cost_per_unit: Decimal
    stock: Decimal

    class Config:
        from_attributes = True


class PurchaseOut(BaseModel):
    id: int
    supply_id: int
    qty: Decimal
    total_cost: Decimal
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    supply: SupplyOut

    class Config:
        from_attributes = True


@router.post("/{supply_id}/purchases", response_model=PurchaseOut, status_code=status.HTTP_201_CREATED)
def record_purchase_endpoint(
    supply_id: int,
    body: PurchaseIn,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("supplies:purchase")),
):
    purchase = record_purchase(db, current, supply_id, body.qty, body.total_cost, body.notes)
    return PurchaseOut.model_validate(purchase)
