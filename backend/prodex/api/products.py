# backend/prodex/api/products.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..models import Product, ProductTemplate
from ..services.templates import (
    TemplateInput,
    TemplateItemInput,
    create_product,
    list_template_versions,
    revise_template,
    search_products,
)
from .deps import CurrentUser, get_db, require_capability

router = APIRouter(prefix="/products", tags=["products"])


# ---------------------------
# Pydantic Schemas
# ---------------------------
class TemplateItemIn(BaseModel):
    supply_id: int
    qty_formula: Optional[str] = None  # falls back to the supply's default consumption


class TemplateIn(BaseModel):
    waste_pct: Decimal = Decimal("0.05")
    margin_pct: Decimal = Decimal("0.4")
    operational_pct: Decimal = Decimal("0")
    items: List[TemplateItemIn] = Field(default_factory=list)


class ProductCreate(TemplateIn):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class TemplateItemOut(BaseModel):
    id: int
    supply_id: int
    qty_formula: str

    class Config:
        from_attributes = True


class TemplateOut(BaseModel):
    id: int
    product_id: int
    version: int
    waste_pct: Decimal
    margin_pct: Decimal
    operational_pct: Decimal
    is_active: bool
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    items: List[TemplateItemOut] = Field(default_factory=list)

    class Config:
        from_attributes = True


class ProductOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    active_template: Optional[TemplateOut] = None


class ProductSearchOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


def _to_template_input(body: TemplateIn) -> TemplateInput:
    return TemplateInput(
        waste_pct=body.waste_pct,
        margin_pct=body.margin_pct,
        operational_pct=body.operational_pct,
        items=[TemplateItemInput(supply_id=i.supply_id, qty_formula=i.qty_formula) for i in body.items],
    )


def _active(p: Product) -> Optional[ProductTemplate]:
    active = [t for t in p.templates if t.is_active]
    return max(active, key=lambda t: t.version) if active else None


def serialize_product(p: Product) -> ProductOut:
    tpl = _active(p)
    return ProductOut(
        id=p.id,
        name=p.name,
        description=p.description,
        created_at=p.created_at,
        active_template=TemplateOut.model_validate(tpl) if tpl else None,
    )


# ---------------------------
# Endpoints
# ---------------------------
@router.post("", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product_endpoint(
    body: ProductCreate,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("products:write")),
):
    product = create_product(db, current, body.name, _to_template_input(body), body.description)
    return serialize_product(product)


@router.get("/search", response_model=List[ProductSearchOut], summary="Search products by id or name")
def search_products_endpoint(
    q: str = Query("", description="Product id or part of the name (min 2 chars)"),
    limit: int = Query(8, ge=1, le=50),
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("products:read")),
):
    return [ProductSearchOut.model_validate(p) for p in search_products(db, q, limit)]


@router.put("/{product_id}/template", response_model=TemplateOut, summary="Publish a new template version")
def revise_template_endpoint(
    product_id: int,
    body: TemplateIn,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("products:write")),
):
    return TemplateOut.model_validate(revise_template(db, current, product_id, _to_template_input(body)))


@router.get("/{product_id}/templates", response_model=List[TemplateOut])
def list_templates_endpoint(
    product_id: int,
    db: Session = Depends(get_db),
    current: CurrentUser = Depends(require_capability("products:read")),
):
    return [TemplateOut.model_validate(t) for t in list_template_versions(db, product_id)]
