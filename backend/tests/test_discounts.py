# backend/tests/test_discounts.py
from decimal import Decimal

import pytest

from conftest import SUPERVISOR_PASSWORD
from prodex.core.errors import ApprovalRequired, Forbidden, InvalidDiscount, InvalidInput, Unauthorized
from prodex.core.roles import Role
from prodex.services.discounts import (
    DiscountRequest,
    authorize_price_override,
    requires_approval,
    resolve_final_price,
    validate_discount,
)


def test_no_discount_requested():
    assert validate_discount(None) is None
    assert validate_discount(DiscountRequest()) is None
    assert validate_discount(DiscountRequest(percentage=0, reason="  ")) is None


def test_valid_seasonal_discount():
    d = validate_discount(DiscountRequest(type="seasonal", season="christmas", reason="promo", percentage=10))
    assert d.type == "seasonal"
    assert d.season == "christmas"
    assert d.percentage == Decimal("10")


@pytest.mark.parametrize("pct", [0, 100, 150, -5])
def test_percentage_bounds(pct):
    with pytest.raises(InvalidDiscount) as exc:
        validate_discount(DiscountRequest(type="senior", reason="retired", percentage=pct))
    assert exc.value.details["field"] == "percentage"


def test_reason_required():
    with pytest.raises(InvalidDiscount) as exc:
        validate_discount(DiscountRequest(type="senior", reason="   ", percentage=10))
    assert exc.value.details["field"] == "reason"


def test_type_required_when_other_fields_given():
    with pytest.raises(InvalidDiscount) as exc:
        validate_discount(DiscountRequest(reason="because", percentage=10))
    assert exc.value.details["field"] == "type"


def test_unknown_type():
    with pytest.raises(InvalidDiscount):
        validate_discount(DiscountRequest(type="friends", reason="because", percentage=10))


def test_seasonal_needs_known_season():
    with pytest.raises(InvalidDiscount) as exc:
        validate_discount(DiscountRequest(type="seasonal", season="easter", reason="promo", percentage=10))
    assert exc.value.details["field"] == "season"


def test_season_ignored_for_other_types():
    d = validate_discount(DiscountRequest(type="late-delivery", season="summer", reason="late", percentage=5))
    assert d.season is None


def test_special_case_reason_length():
    with pytest.raises(InvalidDiscount):
        validate_discount(DiscountRequest(type="special-case", reason="1234567", percentage=5))
    d = validate_discount(DiscountRequest(type="special-case", reason="12345678", percentage=5))
    assert d.reason == "12345678"


def test_resolve_final_price_precedence():
    d = validate_discount(DiscountRequest(type="senior", reason="retired", percentage=10))
    assert resolve_final_price(Decimal("535"), Decimal("500"), d) == Decimal("500")
    assert resolve_final_price(Decimal("535"), None, d) == Decimal("481.5")
    assert resolve_final_price(Decimal("535")) == Decimal("535")


@pytest.mark.parametrize("bad", [0, -1, "abc"])
def test_resolve_final_price_rejects_non_positive(bad):
    with pytest.raises(InvalidInput):
        resolve_final_price(Decimal("535"), bad)


def test_requires_approval_only_for_sales_below_suggested():
    assert not requires_approval(Role.SALES, Decimal("535"), Decimal("535"))
    assert requires_approval(Role.SALES, Decimal("534.99"), Decimal("535"))
    assert not requires_approval(Role.SUPERVISOR, Decimal("1"), Decimal("535"))
    assert not requires_approval(Role.ADMIN, Decimal("1"), Decimal("535"))


def test_gate_skipped_when_not_needed(db):
    assert authorize_price_override(db, Role.SALES, False) is None
    assert authorize_price_override(db, Role.SUPERVISOR, True) is None


def test_gate_requires_credentials(db):
    with pytest.raises(ApprovalRequired) as exc:
        authorize_price_override(db, Role.SALES, True)
    assert exc.value.to_dict()["approval_required"] is True


def test_gate_rejects_wrong_password(db, supervisor):
    with pytest.raises(Unauthorized):
        authorize_price_override(db, Role.SALES, True, supervisor.email, "nope")


def test_gate_rejects_non_elevated_approver(db, make_user):
    peer = make_user("sales", email="peer@prodex.test", password="peer-pass")
    with pytest.raises(Forbidden):
        authorize_price_override(db, Role.SALES, True, peer.email, "peer-pass")


def test_gate_rejects_inactive_supervisor(db, make_user):
    make_user("supervisor", email="gone@prodex.test", password="pw-gone", is_active=False)
    with pytest.raises(Unauthorized):
        authorize_price_override(db, Role.SALES, True, "gone@prodex.test", "pw-gone")


def test_gate_returns_approval(db, supervisor):
    approval = authorize_price_override(db, Role.SALES, True, "  BOSS@prodex.test ", SUPERVISOR_PASSWORD)
    assert approval.approver_id == supervisor.id
    assert approval.reason == "final price below suggested"
    assert approval.approved_at is not None
