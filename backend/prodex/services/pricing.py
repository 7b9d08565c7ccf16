# backend/prodex/services/pricing.py
"""
Cost roll-up and suggested price for one product.

    materials       = sum(qty(formula) * cost_per_unit)
    waste           = materials * waste_pct
    operational     = (materials + waste) * operational_pct
    cost_total      = materials + waste + operational + finishing
    suggested_price = cost_total / (1 - margin_pct)   (cost_total when margin >= 1)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, getcontext
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import InvalidFinishingLevel, InvalidInput, InvalidProduct, InvalidQuantity, ProductNotFound
from ..models import Product
from .bom import load_bom, resolve_active_template
from .formula import evaluate_formula, to_decimal

getcontext().prec = 28

logger = logging.getLogger("prodex.pricing")

ZERO = Decimal("0")
ONE = Decimal("1")
# smallest quantity the quote columns can store
MIN_QUANTITY = Decimal("0.000001")

# Fixed finishing/design surcharge, shop currency
FINISHING_COST: Dict[str, Decimal] = {
    "none": Decimal("0"),
    "basic": Decimal("300"),
    "medium": Decimal("500"),
    "premium": Decimal("700"),
}


@dataclass
class BreakdownLine:
    supply_id: int
    supply_name: str
    unit_base: str
    qty: Decimal
    cost_per_unit: Decimal
    line_cost: Decimal
    qty_formula: str


@dataclass
class TemplateSnapshot:
    id: int
    version: int
    waste_pct: Decimal
    margin_pct: Decimal
    operational_pct: Decimal


@dataclass
class QuoteTotals:
    materials_cost: Decimal
    waste_cost: Decimal
    operational_cost: Decimal
    finishing_cost: Decimal
    cost_total: Decimal
    min_price: Decimal
    suggested_price: Decimal
    profit: Decimal
    real_margin: Decimal
    apply_tax: bool
    tax_rate: Decimal
    tax: Decimal
    total: Decimal

    @property
    def is_loss(self) -> bool:
        return self.profit < 0


@dataclass
class QuoteComputation:
    product_id: int
    product_name: Optional[str]
    quantity: Decimal
    finishing_level: str
    template: TemplateSnapshot
    totals: QuoteTotals
    breakdown: List[BreakdownLine] = field(default_factory=list)
    skipped_supply_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        t = self.totals
        return {
            "product": {"id": self.product_id, "name": self.product_name},
            "inputs": {"quantity": self.quantity, "finishing_level": self.finishing_level},
            "template": {
                "id": self.template.id,
                "version": self.template.version,
                "waste_pct": self.template.waste_pct,
                "margin_pct": self.template.margin_pct,
                "operational_pct": self.template.operational_pct,
            },
            "breakdown": [vars(b).copy() for b in self.breakdown],
            "totals": {
                "materials_cost": t.materials_cost,
                "waste_cost": t.waste_cost,
                "operational_cost": t.operational_cost,
                "finishing_cost": t.finishing_cost,
                "cost_total": t.cost_total,
                "min_price": t.min_price,
                "suggested_price": t.suggested_price,
                "profit": t.profit,
                "real_margin": t.real_margin,
                "is_loss": t.is_loss,
                "apply_tax": t.apply_tax,
                "tax_rate": t.tax_rate,
                "tax": t.tax,
                "total": t.total,
            },
            "skipped_supply_ids": list(self.skipped_supply_ids),
        }


# ---------- Helpers ----------
def apply_tax(price: Decimal, apply: bool, rate: Decimal) -> Tuple[Decimal, Decimal]:
    """(tax, total) for a price."""
    tax = price * rate if apply else ZERO
    return tax, price + tax


def suggested_price_for(cost_total: Decimal, margin_pct: Decimal) -> Decimal:
    # margin >= 100% would divide by zero or flip the sign
    if margin_pct >= ONE:
        return cost_total
    return cost_total / (ONE - margin_pct)


def finishing_cost_for(level: Optional[str]) -> Tuple[str, Decimal]:
    lvl = "none" if level is None else str(level).strip().lower()
    if lvl not in FINISHING_COST:
        raise InvalidFinishingLevel(
            f"finishing_level must be one of {sorted(FINISHING_COST)}",
            {"finishing_level": level},
        )
    return lvl, FINISHING_COST[lvl]


def _validate_product_id(product_id) -> int:
    if isinstance(product_id, bool):
        raise InvalidProduct("product_id is invalid")
    try:
        pid = int(product_id)
    except (TypeError, ValueError):
        raise InvalidProduct("product_id is invalid")
    if pid <= 0 or str(pid) != str(product_id).strip():
        raise InvalidProduct("product_id is invalid")
    return pid


def _validate_tax_rate(tax_rate) -> Decimal:
    if tax_rate is None:
        tax_rate = settings.DEFAULT_TAX_RATE
    rate = to_decimal(tax_rate, InvalidInput, "tax_rate")
    if rate < 0:
        raise InvalidInput("tax_rate must be >= 0")
    return rate


# ---------- Calculator ----------
def compute_quote(
    db: Session,
    product_id,
    quantity,
    finishing_level: Optional[str] = "none",
    apply_tax_flag: bool = False,
    tax_rate=None,
) -> QuoteComputation:
    pid = _validate_product_id(product_id)

    qty = to_decimal(quantity, InvalidQuantity, "quantity")
    if qty <= 0:
        raise InvalidQuantity("quantity must be > 0")
    if qty < MIN_QUANTITY:
        raise InvalidQuantity(f"quantity must be at least {MIN_QUANTITY}")

    level, finishing_cost = finishing_cost_for(finishing_level)
    rate = _validate_tax_rate(tax_rate)
    taxed = bool(apply_tax_flag)

    product = db.get(Product, pid)
    if not product:
        raise ProductNotFound("Product not found", {"product_id": pid})

    tpl = resolve_active_template(db, pid)
    snapshot = TemplateSnapshot(
        id=tpl.id,
        version=tpl.version,
        waste_pct=Decimal(str(tpl.waste_pct)),
        margin_pct=Decimal(str(tpl.margin_pct)),
        operational_pct=Decimal(str(tpl.operational_pct)),
    )

    bom = load_bom(db, tpl)
    skipped = [it.supply_id for it in bom.skipped_items]

    if not bom.lines:
        # No usable items: only the finishing surcharge is priced
        tax, total = apply_tax(finishing_cost, taxed, rate)
        totals = QuoteTotals(
            materials_cost=ZERO,
            waste_cost=ZERO,
            operational_cost=ZERO,
            finishing_cost=finishing_cost,
            cost_total=finishing_cost,
            min_price=finishing_cost,
            suggested_price=finishing_cost,
            profit=ZERO,
            real_margin=ZERO,
            apply_tax=taxed,
            tax_rate=rate,
            tax=tax,
            total=total,
        )
        return QuoteComputation(
            product_id=product.id,
            product_name=product.name,
            quantity=qty,
            finishing_level=level,
            template=snapshot,
            totals=totals,
            breakdown=[],
            skipped_supply_ids=skipped,
        )

    breakdown: List[BreakdownLine] = []
    materials_cost = ZERO
    for line in bom.lines:
        formula = str(line.item.qty_formula or "0")
        consumed = evaluate_formula(formula, qty)
        cpu = Decimal(str(line.supply.cost_per_unit or 0))
        line_cost = consumed * cpu
        breakdown.append(
            BreakdownLine(
                supply_id=line.supply.id,
                supply_name=str(line.supply.name),
                unit_base=str(line.supply.unit_base),
                qty=consumed,
                cost_per_unit=cpu,
                line_cost=line_cost,
                qty_formula=formula,
            )
        )
        materials_cost += line_cost

    waste_cost = materials_cost * snapshot.waste_pct
    materials_plus_waste = materials_cost + waste_cost
    operational_cost = materials_plus_waste * snapshot.operational_pct
    cost_total = materials_plus_waste + operational_cost + finishing_cost

    suggested = suggested_price_for(cost_total, snapshot.margin_pct)
    profit = suggested - cost_total
    real_margin = profit / suggested if suggested > 0 else ZERO
    tax, total = apply_tax(suggested, taxed, rate)

    totals = QuoteTotals(
        materials_cost=materials_cost,
        waste_cost=waste_cost,
        operational_cost=operational_cost,
        finishing_cost=finishing_cost,
        cost_total=cost_total,
        min_price=suggested,
        suggested_price=suggested,
        profit=profit,
        real_margin=real_margin,
        apply_tax=taxed,
        tax_rate=rate,
        tax=tax,
        total=total,
    )
    if totals.is_loss:
        logger.warning("product %s template v%s prices at a loss (margin %s)", pid, tpl.version, snapshot.margin_pct)

    return QuoteComputation(
        product_id=product.id,
        product_name=product.name,
        quantity=qty,
        finishing_level=level,
        template=snapshot,
        totals=totals,
        breakdown=breakdown,
        skipped_supply_ids=skipped,
    )
