# backend/prodex/services/supplies.py
"""
Supply purchases. Stock grows by the purchased quantity and the unit cost
becomes the weighted average of the stock on hand and the new lot:

    new_cpu = (stock * cpu + total_cost) / (stock + qty)
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import InvalidInput, PersistenceError, SupplyNotFound
from ..models import Supply, SupplyPurchase
from .formula import to_decimal

logger = logging.getLogger("prodex.supplies")


def weighted_cost(stock: Decimal, cost_per_unit: Decimal, qty: Decimal, total_cost: Decimal) -> Decimal:
    new_stock = stock + qty
    if new_stock <= 0:
        return Decimal("0")
    return (stock * cost_per_unit + total_cost) / new_stock


def record_purchase(
    db: Session,
    actor,
    supply_id: int,
    qty,
    total_cost,
    notes: Optional[str] = None,
) -> SupplyPurchase:
    q = to_decimal(qty, InvalidInput, "qty")
    if q <= 0:
        raise InvalidInput("qty must be > 0")
    cost = to_decimal(total_cost, InvalidInput, "total_cost")
    if cost < 0:
        raise InvalidInput("total_cost must be >= 0")

    supply = db.execute(
        select(Supply).where(Supply.id == supply_id).with_for_update()
    ).scalar_one_or_none()
    if supply is None:
        raise SupplyNotFound("Supply not found", {"supply_id": supply_id})

    stock = Decimal(str(supply.stock or 0))
    cpu = Decimal(str(supply.cost_per_unit or 0))
    supply.cost_per_unit = weighted_cost(stock, cpu, q, cost)
    supply.stock = stock + q

    purchase = SupplyPurchase(
        supply_id=supply.id,
        qty=q,
        total_cost=cost,
        notes=(notes or "").strip() or None,
        created_by=actor.id,
    )
    db.add(purchase)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError("Database error while recording purchase") from e
    db.refresh(purchase)

    logger.info(
        "supply %s purchase of %s for %s by user %s (cpu %s -> %s)",
        supply_id, q, cost, actor.id, cpu, supply.cost_per_unit,
    )
    return purchase
