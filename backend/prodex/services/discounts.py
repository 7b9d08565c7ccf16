# backend/prodex/services/discounts.py
"""
Discount validation, final price resolution and the supervisor approval gate.

A sales user may price below the suggested price only with the credentials
of a supervisor or admin. The gate authenticates those credentials against
the user store and records who approved, when and why.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ..core.errors import ApprovalRequired, Forbidden, InvalidDiscount, InvalidInput
from ..core.roles import Role, is_elevated, parse_role
from ..core.security import authenticate, utcnow
from .formula import to_decimal

logger = logging.getLogger("prodex.approvals")

DISCOUNT_TYPES = ("seasonal", "late-delivery", "senior", "special-case")
DISCOUNT_SEASONS = (
    "christmas",
    "womens-day",
    "fathers-day",
    "mothers-day",
    "summer",
    "black-friday",
    "other",
)
SPECIAL_CASE_MIN_REASON = 8
APPROVAL_REASON = "final price below suggested"

HUNDRED = Decimal("100")


@dataclass
class DiscountRequest:
    type: Optional[str] = None
    season: Optional[str] = None
    reason: Optional[str] = None
    percentage: Optional[Decimal] = None


@dataclass
class Discount:
    """A validated discount, as stored on the quote."""
    type: str
    season: Optional[str]
    reason: str
    percentage: Decimal


@dataclass
class Approval:
    approver_id: int
    approved_at: datetime
    reason: str = APPROVAL_REASON


def _pct(value) -> Decimal:
    if value is None:
        return Decimal("0")
    try:
        return to_decimal(value, InvalidInput, "percentage")
    except InvalidInput:
        raise InvalidDiscount("discount percentage is invalid", "percentage")


def is_requested(req: Optional[DiscountRequest]) -> bool:
    if req is None:
        return False
    pct = _pct(req.percentage)
    reason = (req.reason or "").strip()
    return bool(req.type) or pct > 0 or len(reason) > 0


def validate_discount(req: Optional[DiscountRequest]) -> Optional[Discount]:
    """Returns None when no discount was requested, else a validated Discount."""
    if not is_requested(req):
        return None

    if not req.type:
        raise InvalidDiscount("discount type is required", "type")
    if req.type not in DISCOUNT_TYPES:
        raise InvalidDiscount(f"discount type must be one of {list(DISCOUNT_TYPES)}", "type")

    pct = _pct(req.percentage)
    if pct <= 0 or pct >= HUNDRED:
        raise InvalidDiscount("discount percentage must be between 0 and 100 (exclusive)", "percentage")

    reason = (req.reason or "").strip()
    if not reason:
        raise InvalidDiscount("discount reason is required", "reason")

    season = None
    if req.type == "seasonal":
        if req.season not in DISCOUNT_SEASONS:
            raise InvalidDiscount(f"season must be one of {list(DISCOUNT_SEASONS)}", "season")
        season = req.season

    if req.type == "special-case" and len(reason) < SPECIAL_CASE_MIN_REASON:
        raise InvalidDiscount(
            f"special-case discounts need a detailed reason (>= {SPECIAL_CASE_MIN_REASON} characters)",
            "reason",
        )

    return Discount(type=req.type, season=season, reason=reason, percentage=pct)


def resolve_final_price(suggested: Decimal, final_price=None, discount: Optional[Discount] = None) -> Decimal:
    """Explicit positive price wins; else discounted suggested; else suggested."""
    if final_price is not None:
        price = to_decimal(final_price, InvalidInput, "final_price")
        if price <= 0:
            raise InvalidInput("final_price must be > 0")
        return price
    if discount is not None:
        return suggested * (1 - discount.percentage / HUNDRED)
    return suggested


def requires_approval(role: Role, final_price: Decimal, suggested: Decimal) -> bool:
    return role == Role.SALES and final_price < suggested


def authorize_price_override(
    db: Session,
    actor_role: Role,
    needs_approval: bool,
    supervisor_email: Optional[str] = None,
    supervisor_password: Optional[str] = None,
) -> Optional[Approval]:
    """
    Runs the approval gate. Returns None when no approval is needed,
    otherwise the Approval of a verified supervisor/admin.
    """
    if actor_role != Role.SALES or not needs_approval:
        return None

    if not supervisor_email or not supervisor_password:
        raise ApprovalRequired()

    approver = authenticate(db, supervisor_email, supervisor_password)
    approver_role = parse_role(approver.role_name)
    if not is_elevated(approver_role):
        logger.info("approval denied: user %s has role %s", approver.id, approver_role.value)
        raise Forbidden("Not authorized: supervisor or admin required")

    logger.info("price override approved by user %s", approver.id)
    return Approval(approver_id=approver.id, approved_at=utcnow())
