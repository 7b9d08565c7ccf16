# backend/prodex/services/templates.py
"""
Products and their versioned bill-of-materials templates.

Templates are append-only: an edit inserts version N+1 and deactivates the
previous active version in the same transaction, so a product never has zero
or two active templates.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import InvalidInput, PersistenceError, ProductNotFound, SupplyNotFound
from ..models import Product, ProductTemplate, Supply, TemplateItem
from .formula import default_formula_for, to_decimal, validate_formula

logger = logging.getLogger("prodex.templates")


@dataclass
class TemplateItemInput:
    supply_id: int
    qty_formula: Optional[str] = None


@dataclass
class TemplateInput:
    waste_pct: Decimal = Decimal("0.05")
    margin_pct: Decimal = Decimal("0.4")
    operational_pct: Decimal = Decimal("0")
    items: List[TemplateItemInput] = field(default_factory=list)


def _fraction(value, label: str) -> Decimal:
    d = to_decimal(value, InvalidInput, label)
    if d < 0:
        raise InvalidInput(f"{label} must be >= 0")
    return d


def _build_items(db: Session, items: List[TemplateItemInput]) -> List[TemplateItem]:
    ids = {it.supply_id for it in items}
    supplies = {}
    if ids:
        rows = db.execute(select(Supply).where(Supply.id.in_(ids))).scalars().all()
        supplies = {s.id: s for s in rows}

    out: List[TemplateItem] = []
    for it in items:
        s = supplies.get(it.supply_id)
        if s is None:
            raise SupplyNotFound("Supply not found", {"supply_id": it.supply_id})
        formula = (it.qty_formula or "").strip()
        if not formula:
            if s.default_qty_per_unit is None:
                raise InvalidInput(
                    "qty_formula is required for supplies without a default consumption",
                    {"supply_id": s.id},
                )
            formula = default_formula_for(s.default_qty_per_unit, s.rounding or "none")
        out.append(TemplateItem(supply_id=s.id, qty_formula=validate_formula(formula)))
    return out


def _build_template(db: Session, data: TemplateInput, version: int, actor_id: Optional[int]) -> ProductTemplate:
    tpl = ProductTemplate(
        version=version,
        waste_pct=_fraction(data.waste_pct, "waste_pct"),
        margin_pct=_fraction(data.margin_pct, "margin_pct"),
        operational_pct=_fraction(data.operational_pct, "operational_pct"),
        is_active=True,
        created_by=actor_id,
    )
    tpl.items = _build_items(db, data.items)
    return tpl


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise PersistenceError(f"{what} violates a DB constraint") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Database error while saving {what}") from e


def create_product(
    db: Session,
    actor,
    name: str,
    template: TemplateInput,
    description: Optional[str] = None,
) -> Product:
    name = (name or "").strip()
    if not name:
        raise InvalidInput("name is required")

    product = Product(name=name, description=(description or "").strip() or None)
    product.templates.append(_build_template(db, template, 1, actor.id))

    db.add(product)
    _commit(db, "product")
    db.refresh(product)
    logger.info("product %s created by user %s with template v1", product.id, actor.id)
    return product


def revise_template(db: Session, actor, product_id: int, template: TemplateInput) -> ProductTemplate:
    """Insert version N+1 and swap the active flag in one transaction."""
    product = db.get(Product, product_id)
    if not product:
        raise ProductNotFound("Product not found", {"product_id": product_id})

    new_tpl = _build_template(db, template, 0, actor.id)

    current_max = db.execute(
        select(func.max(ProductTemplate.version)).where(ProductTemplate.product_id == product_id)
    ).scalar_one_or_none() or 0
    new_tpl.version = int(current_max) + 1
    new_tpl.product_id = product_id

    db.execute(
        update(ProductTemplate)
        .where(ProductTemplate.product_id == product_id, ProductTemplate.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session="fetch")
    )
    db.add(new_tpl)
    _commit(db, "template")
    db.refresh(new_tpl)

    logger.info("product %s template v%s activated by user %s", product_id, new_tpl.version, actor.id)
    return new_tpl


def list_template_versions(db: Session, product_id: int) -> List[ProductTemplate]:
    product = db.get(Product, product_id)
    if not product:
        raise ProductNotFound("Product not found", {"product_id": product_id})
    return db.execute(
        select(ProductTemplate)
        .where(ProductTemplate.product_id == product_id)
        .order_by(ProductTemplate.version.desc())
    ).scalars().all()


def search_products(db: Session, q: str, limit: int = 8) -> List[Product]:
    q = (q or "").strip()
    if len(q) < 2:
        return []
    stmt = select(Product).limit(limit)
    if q.isdigit():
        stmt = stmt.where(Product.id == int(q))
    else:
        stmt = stmt.where(Product.name.ilike(f"%{q}%"))
    return db.execute(stmt.order_by(Product.name)).scalars().all()
