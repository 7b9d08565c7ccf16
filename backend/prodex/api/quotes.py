# backend/prodex/api/quotes.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..services.discounts import DiscountRequest
from ..services.orders import ConversionResult, convert_quote
from ..services.pricing import compute_quote
from ..services.quotes import (
    QuoteItemInput,
    approve_quote,
    create_quote,
    get_quote,
    list_quotes,
)
from .deps import CurrentUser, get_db, require_capability

router = APIRouter(prefix="/quotes", tags=["quotes"])


# ---------------------------
# Pydantic Schemas
# ---------------------------
class DiscountIn(BaseModel):
    type: Optional[str] = None          # seasonal|late-delivery|senior|special-case
    season: Optional[str] = None        # only for seasonal
    reason: Optional[str] = None
    percentage: Optional[Decimal] = None  # 0-100, exclusive


class PreviewIn(BaseModel):
    product_id: int
    quantity: Decimal
    finishing_level: str = "none"
    apply_tax: bool = False
    tax_rate: Optional[Decimal] = None


class QuoteItemIn(PreviewIn):
    final_price: Optional[Decimal] = None
    discount: Optional[DiscountIn] = None


class SupervisorCredentials(BaseModel):
    supervisor_email: Optional[str] = None
    supervisor_password: Optional[str] = None


class QuoteCreate(QuoteItemIn, SupervisorCredentials):
    customer_id: Optional[int] = None


class BreakdownOut(BaseModel):
    supply_id: int
    supply_name: str
    unit_base: str
    qty: Decimal
    cost_per_unit: Decimal
    line_cost: Decimal
    qty_formula: str

    class Config:
        from_attributes = True


class TemplateRef(BaseModel):
    id: int
    version: int
    waste_pct: Decimal
    margin_pct: Decimal
    operational_pct: Decimal


class TotalsOut(BaseModel):
    materials_cost: Decimal
    waste_cost: Decimal
    operational_cost: Decimal
    finishing_cost: Decimal
    cost_total: Decimal
    min_price: Decimal
    suggested_price: Decimal
    profit: Decimal
    real_margin: Decimal
    is_loss: bool
    apply_tax: bool
    tax_rate: Decimal
    tax: Decimal
    total: Decimal


class PreviewOut(BaseModel):
    product: dict
    inputs: dict
    template: TemplateRef
    breakdown: List[BreakdownOut]
    totals: TotalsOut
    skipped_supply_ids: List[int] = Field(default_factory=list)


class QuoteOut(BaseModel):
    id: int
    status: str
    product_id: int
    template_id: int
    customer_id: Optional[int] = None

    quantity: Decimal
    finishing_level: str
    apply_tax: bool
    tax_rate: Decimal
    waste_pct: Decimal
    margin_pct: Decimal
    operational_pct: Decimal

    materials_cost: Decimal
    waste_cost: Decimal
    operational_cost: Decimal
    finishing_cost: Decimal
    cost_total: Decimal
    min_price: Decimal
    suggested_price: Decimal
    price_final: Decimal
    tax_amount: Decimal
    total: Decimal

    discount_type: Optional[str] = None
    discount_season: Optional[str] = None
    discount_reason: Optional[str] = None
    discount_pct: Optional[Decimal] = None

    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    approved_reason: Optional[str] = None

    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    expires_at: datetime
    converted_by: Optional[int] = None
    converted_at: Optional[datetime] = None

    lines: List[BreakdownOut] = Field(default_factory=list)

    class Config:
        from_attributes = True


class PageMeta(BaseModel):
    total: int
    page: int
    size: int
    pages: int


class QuotesListOut(BaseModel):
    meta: PageMeta
    items: List[QuoteOut]


class DeductionOut(BaseModel):
    supply_id: int
    name: str
    deducted: Decimal
    remaining: Decimal

    class Config:
        from_attributes = True


class QuoteConversionOut(BaseModel):
    quote: QuoteOut
    deductions: List[DeductionOut]


# ---------------------------
# Helpers
# ---------------------------
def to_item_input(body: QuoteItemIn) -> QuoteItemInput:
    discount = None
    if body.discount is not None:
        d = body.discount
        discount = DiscountRequest(type=d.type, season=d.season, reason=d.reason, percentage=d.percentage)
    return QuoteItemInput(
        product_id=body.product_id,
        quantity=body.quantity,
        finishing_level=body.finishing_level,
        apply_tax=body.apply_tax,
        tax_rate=body.tax_rate,
        final_price=body.final_price,
        discount=discount,
    )


def page_meta(total: int, page: int, size: int) -> PageMeta:
    return PageMeta(total=total, page=page, size=size, pages=max(1, (total + size - 1) // size))


# ---------------------------
# Endpoints
# ---------------------------
@router.post("/preview", response_model=PreviewOut, summary="Price a product without saving")
def preview_quote(
    body: PreviewIn,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("quotes:preview")),
):
    computed = compute_quote(
        db, body.product_id, body.quantity, body.finishing_level, body.apply_tax, body.tax_rate
    )
    return PreviewOut.model_validate(computed.to_dict())


@router.post("", response_model=QuoteOut, status_code=status.HTTP_201_CREATED)
def create_quote_endpoint(
    body: QuoteCreate,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("quotes:create")),
):
    quote = create_quote(
        db,
        current,
        to_item_input(body),
        customer_id=body.customer_id,
        supervisor_email=body.supervisor_email,
        supervisor_password=body.supervisor_password,
    )
    return QuoteOut.model_validate(quote)


@router.get("", response_model=QuotesListOut)
def list_quotes_endpoint(
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("quotes:read")),
    status_: Optional[str] = Query(None, alias="status"),
    mine: bool = Query(False),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
):
    res = list_quotes(db, current, status=status_, mine=mine, limit=size, offset=(page - 1) * size)
    return QuotesListOut(
        meta=page_meta(res.total, page, size),
        items=[QuoteOut.model_validate(q) for q in res.items],
    )


@router.get("/{quote_id}", response_model=QuoteOut)
def get_quote_endpoint(
    quote_id: int,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("quotes:read")),
):
    return QuoteOut.model_validate(get_quote(db, current, quote_id))


@router.post("/{quote_id}/approve", response_model=QuoteOut)
def approve_quote_endpoint(
    quote_id: int,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("quotes:approve")),
):
    return QuoteOut.model_validate(approve_quote(db, current, quote_id))


@router.post("/{quote_id}/convert", response_model=QuoteConversionOut, summary="Convert a quote to an order")
def convert_quote_endpoint(
    quote_id: int,
    body: Optional[SupervisorCredentials] = Body(None),
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("orders:convert")),
):
    get_quote(db, current, quote_id)  # ownership check for sales
    creds = body or SupervisorCredentials()
    res: ConversionResult = convert_quote(
        db, current, quote_id, creds.supervisor_email, creds.supervisor_password
    )
    return QuoteConversionOut(
        quote=QuoteOut.model_validate(res.document),
        deductions=[DeductionOut.model_validate(d) for d in res.deductions],
    )
