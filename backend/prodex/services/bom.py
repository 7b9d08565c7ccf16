# backend/prodex/services/bom.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.errors import TemplateNotFound
from ..models import ProductTemplate, Supply, TemplateItem

logger = logging.getLogger("prodex.pricing")


@dataclass
class BomLine:
    item: TemplateItem
    supply: Supply


@dataclass
class BillOfMaterials:
    template: ProductTemplate
    lines: List[BomLine] = field(default_factory=list)
    # template items whose supply could not be resolved
    skipped_items: List[TemplateItem] = field(default_factory=list)


def resolve_active_template(db: Session, product_id: int) -> ProductTemplate:
    tpl = db.execute(
        select(ProductTemplate)
        .where(
            ProductTemplate.product_id == product_id,
            ProductTemplate.is_active.is_(True),
        )
        .order_by(ProductTemplate.version.desc())
        .limit(1)
    ).scalars().first()
    if not tpl:
        raise TemplateNotFound("Active template not found", {"product_id": product_id})
    return tpl


def load_bom(db: Session, template: ProductTemplate) -> BillOfMaterials:
    """
    Template items joined with their supplies.

    Items pointing at a supply that no longer exists are skipped rather than
    failing the whole resolution. They are logged and returned in
    ``skipped_items`` so callers can warn that the cost may be understated.
    """
    items = db.execute(
        select(TemplateItem)
        .where(TemplateItem.template_id == template.id)
        .order_by(TemplateItem.id)
    ).scalars().all()

    supply_ids = {it.supply_id for it in items if it.supply_id}
    supplies = {}
    if supply_ids:
        rows = db.execute(select(Supply).where(Supply.id.in_(supply_ids))).scalars().all()
        supplies = {s.id: s for s in rows}

    bom = BillOfMaterials(template=template)
    for it in items:
        s = supplies.get(it.supply_id)
        if s is None:
            logger.warning(
                "template %s item %s references missing supply %s; skipped",
                template.id, it.id, it.supply_id,
            )
            bom.skipped_items.append(it)
            continue
        bom.lines.append(BomLine(item=it, supply=s))
    return bom
