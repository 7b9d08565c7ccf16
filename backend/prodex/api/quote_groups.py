# backend/prodex/api/quote_groups.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..services.orders import convert_quote_group
from ..services.quotes import (
    CustomerInput,
    approve_quote_group,
    create_quote_group,
    get_quote_group,
    list_quote_groups,
)
from .deps import CurrentUser, get_db, require_capability
from .quotes import (
    BreakdownOut,
    DeductionOut,
    PageMeta,
    QuoteItemIn,
    SupervisorCredentials,
    page_meta,
    to_item_input,
)

router = APIRouter(prefix="/quote-groups", tags=["quote-groups"])


# ---------------------------
# Pydantic Schemas
# ---------------------------
class CustomerIn(BaseModel):
    name: str
    tax_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class QuoteGroupCreate(SupervisorCredentials):
    items: List[QuoteItemIn] = Field(..., min_length=1)
    customer_id: Optional[int] = None
    customer: Optional[CustomerIn] = None


class CustomerOut(BaseModel):
    id: int
    name: str
    tax_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    class Config:
        from_attributes = True


class QuoteGroupItemOut(BaseModel):
    id: int
    position: int
    product_id: int
    template_id: int
    quantity: Decimal
    finishing_level: str
    apply_tax: bool
    tax_rate: Decimal
    materials_cost: Decimal
    waste_cost: Decimal
    operational_cost: Decimal
    finishing_cost: Decimal
    cost_total: Decimal
    suggested_price: Decimal
    price_final: Decimal
    tax_amount: Decimal
    total: Decimal
    discount_type: Optional[str] = None
    discount_season: Optional[str] = None
    discount_reason: Optional[str] = None
    discount_pct: Optional[Decimal] = None
    lines: List[BreakdownOut] = Field(default_factory=list)

    class Config:
        from_attributes = True


class QuoteGroupOut(BaseModel):
    id: int
    status: str
    customer: Optional[CustomerOut] = None
    price_final: Decimal
    tax_amount: Decimal
    total: Decimal
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    approved_reason: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    expires_at: datetime
    converted_by: Optional[int] = None
    converted_at: Optional[datetime] = None
    items: List[QuoteGroupItemOut] = Field(default_factory=list)

    class Config:
        from_attributes = True


class QuoteGroupsListOut(BaseModel):
    meta: PageMeta
    items: List[QuoteGroupOut]


class QuoteGroupConversionOut(BaseModel):
    group: QuoteGroupOut
    deductions: List[DeductionOut]


# ---------------------------
# Endpoints
# ---------------------------
@router.post("", response_model=QuoteGroupOut, status_code=status.HTTP_201_CREATED)
def create_group_endpoint(
    body: QuoteGroupCreate,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("quote_groups:create")),
):
    customer = None
    if body.customer is not None:
        customer = CustomerInput(**body.customer.model_dump())
    group = create_quote_group(
        db,
        current,
        [to_item_input(it) for it in body.items],
        customer_id=body.customer_id,
        customer=customer,
        supervisor_email=body.supervisor_email,
        supervisor_password=body.supervisor_password,
    )
    return QuoteGroupOut.model_validate(group)


@router.get("", response_model=QuoteGroupsListOut)
def list_groups_endpoint(
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("quote_groups:read")),
    status_: Optional[str] = Query(None, alias="status"),
    mine: bool = Query(False),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
):
    res = list_quote_groups(db, current, status=status_, mine=mine, limit=size, offset=(page - 1) * size)
    return QuoteGroupsListOut(
        meta=page_meta(res.total, page, size),
        items=[QuoteGroupOut.model_validate(g) for g in res.items],
    )


@router.get("/{group_id}", response_model=QuoteGroupOut)
def get_group_endpoint(
    group_id: int,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("quote_groups:read")),
):
    return QuoteGroupOut.model_validate(get_quote_group(db, current, group_id))


@router.post("/{group_id}/approve", response_model=QuoteGroupOut)
def approve_group_endpoint(
    group_id: int,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("quote_groups:approve")),
):
    return QuoteGroupOut.model_validate(approve_quote_group(db, current, group_id))


@router.post("/{group_id}/convert", response_model=QuoteGroupConversionOut)
def convert_group_endpoint(
    group_id: int,
    body: Optional[SupervisorCredentials] = Body(None),
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("orders:convert")),
):
    get_quote_group(db, current, group_id)  # ownership check for sales
    creds = body or SupervisorCredentials()
    res = convert_quote_group(db, current, group_id, creds.supervisor_email, creds.supervisor_password)
    return QuoteGroupConversionOut(
        group=QuoteGroupOut.model_validate(res.document),
        deductions=[DeductionOut.model_validate(d) for d in res.deductions],
    )
