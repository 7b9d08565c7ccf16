# backend/prodex/services/quotes.py
"""
Quote and quote-group creation.

Pricing, discount validation and the approval gate all run before the first
write; header, items and snapshot lines are then persisted in one commit.
Snapshot lines freeze supply names, units and costs so later supply changes
never alter a historical quote.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import CustomerNotFound, Forbidden, InvalidInput, PersistenceError, QuoteNotFound
from ..core.roles import Role, parse_role
from ..core.security import utcnow
from ..models import Customer, Quote, QuoteGroup, QuoteGroupItem, QuoteGroupLine, QuoteLine
from .discounts import (
    Approval,
    Discount,
    DiscountRequest,
    authorize_price_override,
    requires_approval,
    resolve_final_price,
    validate_discount,
)
from .orders import ensure_status, expire_if_due
from .pricing import QuoteComputation, apply_tax, compute_quote

logger = logging.getLogger("prodex.quotes")


# ---------------------------
# Inputs
# ---------------------------
@dataclass
class QuoteItemInput:
    product_id: int
    quantity: Decimal
    finishing_level: str = "none"
    apply_tax: bool = False
    tax_rate: Optional[Decimal] = None
    final_price: Optional[Decimal] = None
    discount: Optional[DiscountRequest] = None


@dataclass
class CustomerInput:
    name: str
    tax_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class PricedItem:
    input: QuoteItemInput
    computed: QuoteComputation
    discount: Optional[Discount]
    price_final: Decimal
    tax_amount: Decimal
    total: Decimal

    @property
    def suggested_price(self) -> Decimal:
        return self.computed.totals.suggested_price


@dataclass
class QuoteListPage:
    items: List = field(default_factory=list)
    total: int = 0


# ---------------------------
# Helpers
# ---------------------------
def _price_item(db: Session, item: QuoteItemInput) -> PricedItem:
    computed = compute_quote(
        db,
        item.product_id,
        item.quantity,
        item.finishing_level,
        item.apply_tax,
        item.tax_rate,
    )
    discount = validate_discount(item.discount)
    price_final = resolve_final_price(computed.totals.suggested_price, item.final_price, discount)
    tax_amount, total = apply_tax(price_final, computed.totals.apply_tax, computed.totals.tax_rate)
    return PricedItem(
        input=item,
        computed=computed,
        discount=discount,
        price_final=price_final,
        tax_amount=tax_amount,
        total=total,
    )


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _resolve_customer(db: Session, customer_id: Optional[int], customer: Optional[CustomerInput]) -> Optional[Customer]:
    if customer_id is not None:
        cust = db.get(Customer, customer_id)
        if not cust:
            raise CustomerNotFound("Customer not found", {"customer_id": customer_id})
        return cust
    if customer is not None:
        name = _clean(customer.name)
        if not name:
            raise InvalidInput("customer name is required")
        # added to the session; flushed with the quote in one transaction
        cust = Customer(
            name=name,
            tax_id=_clean(customer.tax_id),
            phone=_clean(customer.phone),
            email=_clean(customer.email),
            address=_clean(customer.address),
            notes=_clean(customer.notes),
        )
        db.add(cust)
        return cust
    return None


def _discount_columns(d: Optional[Discount]) -> dict:
    if d is None:
        return dict(discount_type=None, discount_season=None, discount_reason=None, discount_pct=None)
    return dict(
        discount_type=d.type,
        discount_season=d.season,
        discount_reason=d.reason,
        discount_pct=d.percentage,
    )


def _approval_columns(a: Optional[Approval]) -> dict:
    if a is None:
        return dict(approved_by=None, approved_at=None, approved_reason=None)
    return dict(approved_by=a.approver_id, approved_at=a.approved_at, approved_reason=a.reason)


def _line_columns(b) -> dict:
    return dict(
        supply_id=b.supply_id,
        supply_name=b.supply_name,
        unit_base=b.unit_base,
        qty=b.qty,
        cost_per_unit=b.cost_per_unit,
        line_cost=b.line_cost,
        qty_formula=b.qty_formula,
    )


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Database error while creating {what}") from e


def _expiry(now: datetime) -> datetime:
    return now + timedelta(days=settings.QUOTE_VALIDITY_DAYS)


def _ensure_owner(role: Role, actor, doc) -> None:
    # sales users only see their own quotes
    if role == Role.SALES and doc.created_by != actor.id:
        raise Forbidden("Not authorized")


# ---------------------------
# Create
# ---------------------------
def create_quote(
    db: Session,
    actor,
    item: QuoteItemInput,
    customer_id: Optional[int] = None,
    supervisor_email: Optional[str] = None,
    supervisor_password: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Quote:
    role = parse_role(actor.role_name)
    priced = _price_item(db, item)
    totals = priced.computed.totals

    approval = authorize_price_override(
        db,
        role,
        requires_approval(role, priced.price_final, totals.suggested_price),
        supervisor_email,
        supervisor_password,
    )
    customer = _resolve_customer(db, customer_id, None)

    now = now or utcnow()
    tpl = priced.computed.template
    quote = Quote(
        product_id=priced.computed.product_id,
        template_id=tpl.id,
        customer_id=customer.id if customer else None,
        status="draft",
        quantity=priced.computed.quantity,
        finishing_level=priced.computed.finishing_level,
        apply_tax=totals.apply_tax,
        tax_rate=totals.tax_rate,
        waste_pct=tpl.waste_pct,
        margin_pct=tpl.margin_pct,
        operational_pct=tpl.operational_pct,
        materials_cost=totals.materials_cost,
        waste_cost=totals.waste_cost,
        operational_cost=totals.operational_cost,
        finishing_cost=totals.finishing_cost,
        cost_total=totals.cost_total,
        min_price=totals.min_price,
        suggested_price=totals.suggested_price,
        price_final=priced.price_final,
        tax_amount=priced.tax_amount,
        total=priced.total,
        created_by=actor.id,
        created_at=now,
        expires_at=_expiry(now),
        **_discount_columns(priced.discount),
        **_approval_columns(approval),
    )
    quote.lines = [QuoteLine(**_line_columns(b)) for b in priced.computed.breakdown]

    db.add(quote)
    _commit(db, "quote")
    db.refresh(quote)

    logger.info(
        "quote %s created by user %s: product %s, price %s (suggested %s)%s",
        quote.id, actor.id, quote.product_id, priced.price_final, totals.suggested_price,
        f", approved by {approval.approver_id}" if approval else "",
    )
    return quote


def create_quote_group(
    db: Session,
    actor,
    items: List[QuoteItemInput],
    customer_id: Optional[int] = None,
    customer: Optional[CustomerInput] = None,
    supervisor_email: Optional[str] = None,
    supervisor_password: Optional[str] = None,
    now: Optional[datetime] = None,
) -> QuoteGroup:
    if not items:
        raise InvalidInput("items are required")

    role = parse_role(actor.role_name)
    priced_items = [_price_item(db, it) for it in items]

    # one set of supervisor credentials covers every item below its suggested price
    needs_approval = any(requires_approval(role, p.price_final, p.suggested_price) for p in priced_items)
    approval = authorize_price_override(db, role, needs_approval, supervisor_email, supervisor_password)

    cust = _resolve_customer(db, customer_id, customer)

    now = now or utcnow()
    group = QuoteGroup(
        customer=cust,
        status="draft",
        price_final=sum((p.price_final for p in priced_items), Decimal("0")),
        tax_amount=sum((p.tax_amount for p in priced_items), Decimal("0")),
        total=sum((p.total for p in priced_items), Decimal("0")),
        created_by=actor.id,
        created_at=now,
        expires_at=_expiry(now),
        **_approval_columns(approval),
    )

    for idx, p in enumerate(priced_items, start=1):
        t = p.computed.totals
        gi = QuoteGroupItem(
            product_id=p.computed.product_id,
            template_id=p.computed.template.id,
            position=idx,
            quantity=p.computed.quantity,
            finishing_level=p.computed.finishing_level,
            apply_tax=t.apply_tax,
            tax_rate=t.tax_rate,
            materials_cost=t.materials_cost,
            waste_cost=t.waste_cost,
            operational_cost=t.operational_cost,
            finishing_cost=t.finishing_cost,
            cost_total=t.cost_total,
            suggested_price=t.suggested_price,
            price_final=p.price_final,
            tax_amount=p.tax_amount,
            total=p.total,
            **_discount_columns(p.discount),
        )
        gi.lines = [QuoteGroupLine(**_line_columns(b)) for b in p.computed.breakdown]
        group.items.append(gi)

    db.add(group)
    _commit(db, "quote group")
    db.refresh(group)

    logger.info(
        "quote group %s created by user %s: %d items, total %s%s",
        group.id, actor.id, len(priced_items), group.total,
        f", approved by {approval.approver_id}" if approval else "",
    )
    return group


# ---------------------------
# Read
# ---------------------------
def _list(db: Session, model, actor, status: Optional[str], mine: bool, limit: int, offset: int) -> QuoteListPage:
    role = parse_role(actor.role_name)
    q = select(model)
    if role == Role.SALES or mine:
        q = q.where(model.created_by == actor.id)
    if status:
        q = q.where(model.status == status)

    total = db.execute(select(func.count()).select_from(q.subquery())).scalar_one()
    rows = (
        db.execute(q.order_by(model.created_at.desc(), model.id.desc()).offset(offset).limit(limit))
        .scalars()
        .all()
    )
    return QuoteListPage(items=rows, total=int(total))


def list_quotes(db: Session, actor, status: Optional[str] = None, mine: bool = False,
                limit: int = 20, offset: int = 0) -> QuoteListPage:
    return _list(db, Quote, actor, status, mine, limit, offset)


def list_quote_groups(db: Session, actor, status: Optional[str] = None, mine: bool = False,
                      limit: int = 20, offset: int = 0) -> QuoteListPage:
    return _list(db, QuoteGroup, actor, status, mine, limit, offset)


def get_quote(db: Session, actor, quote_id: int) -> Quote:
    quote = db.get(Quote, quote_id)
    if not quote:
        raise QuoteNotFound("Quote not found", {"quote_id": quote_id})
    _ensure_owner(parse_role(actor.role_name), actor, quote)
    return quote


def get_quote_group(db: Session, actor, group_id: int) -> QuoteGroup:
    group = db.get(QuoteGroup, group_id)
    if not group:
        raise QuoteNotFound("Quote group not found", {"group_id": group_id})
    _ensure_owner(parse_role(actor.role_name), actor, group)
    return group


# ---------------------------
# Approve (draft -> approved)
# ---------------------------
def _approve(db: Session, actor, doc, now: Optional[datetime]):
    expire_if_due(db, doc, now)
    ensure_status(doc, ("draft",), "approve")
    doc.status = "approved"
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError("Database error while approving quote") from e
    db.refresh(doc)
    logger.info("%s %s approved by user %s", type(doc).__name__, doc.id, actor.id)
    return doc


def approve_quote(db: Session, actor, quote_id: int, now: Optional[datetime] = None) -> Quote:
    quote = db.get(Quote, quote_id)
    if not quote:
        raise QuoteNotFound("Quote not found", {"quote_id": quote_id})
    return _approve(db, actor, quote, now)


def approve_quote_group(db: Session, actor, group_id: int, now: Optional[datetime] = None) -> QuoteGroup:
    group = db.get(QuoteGroup, group_id)
    if not group:
        raise QuoteNotFound("Quote group not found", {"group_id": group_id})
    return _approve(db, actor, group, now)
