# backend/prodex/services/orders.py
"""
Quote -> order conversion.

States: draft -> approved -> converted, plus the terminal ``expired`` which is
reached lazily from draft/approved when a quote is touched after expires_at.

Stock deduction is all-or-nothing: every supply row is locked, checked and
decremented with a compare-and-set inside one transaction, and the quote is
marked converted in that same commit.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import Expired, InsufficientStock, InvalidState, PersistenceError, QuoteNotFound
from ..core.roles import parse_role
from ..core.security import utcnow
from ..models import Quote, QuoteGroup, Supply
from .discounts import authorize_price_override, requires_approval

logger = logging.getLogger("prodex.orders")

CONVERTIBLE = ("draft", "approved")

Document = Union[Quote, QuoteGroup]


@dataclass
class Deduction:
    supply_id: int
    name: str
    deducted: Decimal
    remaining: Decimal


@dataclass
class ConversionResult:
    document: Any
    deductions: List[Deduction] = field(default_factory=list)


# ---------- State helpers ----------
def expire_if_due(db: Session, doc: Document, now: Optional[datetime] = None) -> None:
    """
    Lazy expiry. A convertible document past expires_at is marked ``expired``
    and committed before Expired is raised, so the write survives the failed call.
    """
    now = now or utcnow()
    if doc.status == "expired":
        raise Expired("Quote has expired", {"expires_at": doc.expires_at})
    if doc.status in CONVERTIBLE and doc.expires_at is not None and now > doc.expires_at:
        doc.status = "expired"
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("Database error while expiring quote") from e
        logger.info("%s %s expired at %s", type(doc).__name__, doc.id, doc.expires_at)
        raise Expired("Quote has expired", {"expires_at": doc.expires_at})


def ensure_status(doc: Document, allowed: Iterable[str], action: str) -> None:
    if doc.status not in allowed:
        raise InvalidState(
            f"Cannot {action} a quote in state {doc.status}",
            {"status": doc.status},
        )


def _aggregate(lines: Iterable[Any]) -> Dict[int, Tuple[str, Decimal]]:
    """Required quantity per supply id across snapshot lines."""
    needs: Dict[int, Tuple[str, Decimal]] = {}
    for ln in lines:
        qty = Decimal(str(ln.qty or 0))
        if qty <= 0:
            continue
        name, prev = needs.get(ln.supply_id, (ln.supply_name, Decimal("0")))
        needs[ln.supply_id] = (name, prev + qty)
    return needs


def _shortfall(supply_id: int, name: str, needed: Decimal, available: Decimal) -> Dict[str, Any]:
    return {"supply_id": supply_id, "name": name, "needed": needed, "available": available}


def _deduct_stock(db: Session, needs: Dict[int, Tuple[str, Decimal]]) -> List[Deduction]:
    """
    Checks every supply against live stock and deducts in the current
    transaction. Raises InsufficientStock with the full shortfall list;
    the caller rolls back.
    """
    if not needs:
        return []

    rows = db.execute(
        select(Supply).where(Supply.id.in_(list(needs))).with_for_update()
    ).scalars().all()
    live = {s.id: s for s in rows}

    missing: List[Dict[str, Any]] = []
    for sid, (name, needed) in needs.items():
        s = live.get(sid)
        available = Decimal(str(s.stock)) if s is not None else Decimal("0")
        if available < needed:
            missing.append(_shortfall(sid, name, needed, available))
    if missing:
        raise InsufficientStock(missing)

    deductions: List[Deduction] = []
    for sid, (name, needed) in needs.items():
        # compare-and-set: a concurrent writer between check and update loses here
        res = db.execute(
            update(Supply)
            .where(Supply.id == sid, Supply.stock >= needed)
            .values(stock=Supply.stock - needed)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            current = db.execute(select(Supply.stock).where(Supply.id == sid)).scalar_one_or_none()
            raise InsufficientStock([_shortfall(sid, name, needed, Decimal(str(current or 0)))])
        remaining = Decimal(str(live[sid].stock)) - needed
        deductions.append(Deduction(supply_id=sid, name=name, deducted=needed, remaining=remaining))
    return deductions


def _convert(
    db: Session,
    actor,
    doc: Document,
    lines: List[Any],
    needs_override: bool,
    supervisor_email: Optional[str],
    supervisor_password: Optional[str],
    now: Optional[datetime],
) -> ConversionResult:
    expire_if_due(db, doc, now)
    ensure_status(doc, CONVERTIBLE, "convert")

    role = parse_role(actor.role_name)
    authorize_price_override(db, role, needs_override, supervisor_email, supervisor_password)

    needs = _aggregate(lines)
    try:
        deductions = _deduct_stock(db, needs)
        doc.status = "converted"
        doc.converted_by = actor.id
        doc.converted_at = now or utcnow()
        db.commit()
    except InsufficientStock as e:
        db.rollback()
        logger.info("%s %s not converted: shortfall %s", type(doc).__name__, doc.id, e.missing)
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError("Database error while converting quote") from e

    db.refresh(doc)
    logger.info(
        "%s %s converted by user %s (%d supplies deducted)",
        type(doc).__name__, doc.id, actor.id, len(deductions),
    )
    return ConversionResult(document=doc, deductions=deductions)


# ---------- Operations ----------
def convert_quote(
    db: Session,
    actor,
    quote_id: int,
    supervisor_email: Optional[str] = None,
    supervisor_password: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ConversionResult:
    quote = db.get(Quote, quote_id)
    if not quote:
        raise QuoteNotFound("Quote not found", {"quote_id": quote_id})

    role = parse_role(actor.role_name)
    needs_override = requires_approval(
        role, Decimal(str(quote.price_final)), Decimal(str(quote.suggested_price))
    )
    return _convert(
        db, actor, quote, list(quote.lines), needs_override,
        supervisor_email, supervisor_password, now,
    )


def convert_quote_group(
    db: Session,
    actor,
    group_id: int,
    supervisor_email: Optional[str] = None,
    supervisor_password: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ConversionResult:
    group = db.get(QuoteGroup, group_id)
    if not group:
        raise QuoteNotFound("Quote group not found", {"group_id": group_id})

    role = parse_role(actor.role_name)
    needs_override = any(
        requires_approval(role, Decimal(str(it.price_final)), Decimal(str(it.suggested_price)))
        for it in group.items
    )
    lines = [ln for it in group.items for ln in it.lines]
    return _convert(
        db, actor, group, lines, needs_override,
        supervisor_email, supervisor_password, now,
    )
