# backend/tests/test_orders.py
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from conftest import SUPERVISOR_PASSWORD
from prodex.core.errors import ApprovalRequired, Expired, InsufficientStock, InvalidState, QuoteNotFound
from prodex.models import Quote, QuoteGroup, Supply
from prodex.services.orders import convert_quote, convert_quote_group
from prodex.services.quotes import QuoteItemInput, approve_quote, create_quote, create_quote_group


def _stock(db, supply_id) -> Decimal:
    db.expire_all()
    return Decimal(str(db.get(Supply, supply_id).stock))


def test_conversion_deducts_stock_once(db, sales, make_supply, make_product):
    box = make_supply(name="Box", stock="25")
    p = make_product([(box, "quantity")])
    q = create_quote(db, sales, QuoteItemInput(product_id=p.id, quantity=10))

    res = convert_quote(db, sales, q.id)
    assert res.document.status == "converted"
    assert res.document.converted_by == sales.id
    assert res.deductions[0].deducted == Decimal("10")
    assert res.deductions[0].remaining == Decimal("15")
    assert _stock(db, box.id) == Decimal("15")

    with pytest.raises(InvalidState):
        convert_quote(db, sales, q.id)
    assert _stock(db, box.id) == Decimal("15")


def test_shortfall_reports_needed_and_available(db, sales, make_supply, make_product):
    box = make_supply(name="Box", stock="4")
    p = make_product([(box, "quantity")])
    q = create_quote(db, sales, QuoteItemInput(product_id=p.id, quantity=10))

    with pytest.raises(InsufficientStock) as exc:
        convert_quote(db, sales, q.id)
    missing = exc.value.missing
    assert len(missing) == 1
    assert missing[0]["supply_id"] == box.id
    assert missing[0]["name"] == "Box"
    assert missing[0]["needed"] == Decimal("10")
    assert missing[0]["available"] == Decimal("4")

    db.expire_all()
    assert db.get(Quote, q.id).status == "draft"
    assert _stock(db, box.id) == Decimal("4")


def test_all_or_nothing_across_supplies(db, sales, make_supply, make_product):
    plenty = make_supply(name="Plenty", stock="1000")
    scarce = make_supply(name="Scarce", stock="1")
    p = make_product([(plenty, "quantity"), (scarce, "quantity")])
    q = create_quote(db, sales, QuoteItemInput(product_id=p.id, quantity=5))

    with pytest.raises(InsufficientStock) as exc:
        convert_quote(db, sales, q.id)
    assert [m["supply_id"] for m in exc.value.missing] == [scarce.id]
    assert _stock(db, plenty.id) == Decimal("1000")
    assert _stock(db, scarce.id) == Decimal("1")


def test_requirements_aggregate_per_supply(db, sales, make_supply, make_product):
    box = make_supply(name="Box", stock="15")
    p = make_product([(box, "quantity"), (box, "quantity")])
    q = create_quote(db, sales, QuoteItemInput(product_id=p.id, quantity=10))

    with pytest.raises(InsufficientStock) as exc:
        convert_quote(db, sales, q.id)
    assert exc.value.missing[0]["needed"] == Decimal("20")


def test_expired_quote_cannot_convert(db, sales, gift_box):
    created = datetime(2026, 3, 1, 9, 0, 0)
    q = create_quote(db, sales, QuoteItemInput(product_id=gift_box.id, quantity=1), now=created)

    with pytest.raises(Expired):
        convert_quote(db, sales, q.id, now=created + timedelta(days=15, seconds=1))
    db.expire_all()
    assert db.get(Quote, q.id).status == "expired"

    # stays expired on a later attempt
    with pytest.raises(Expired):
        convert_quote(db, sales, q.id)


def test_conversion_on_last_valid_instant(db, sales, gift_box):
    created = datetime(2026, 3, 1, 9, 0, 0)
    q = create_quote(db, sales, QuoteItemInput(product_id=gift_box.id, quantity=1), now=created)
    res = convert_quote(db, sales, q.id, now=created + timedelta(days=15))
    assert res.document.status == "converted"


def test_approved_quote_converts(db, sales, supervisor, gift_box):
    q = create_quote(db, sales, QuoteItemInput(product_id=gift_box.id, quantity=2))
    approve_quote(db, supervisor, q.id)
    assert convert_quote(db, sales, q.id).document.status == "converted"


def test_sales_conversion_below_suggested_needs_approval(db, sales, supervisor, gift_box):
    # supervisor priced it below suggested; a sales user converting must get sign-off
    q = create_quote(db, supervisor, QuoteItemInput(product_id=gift_box.id, quantity=1, final_price=Decimal("3")))
    assert q.price_final < q.suggested_price
    with pytest.raises(ApprovalRequired):
        convert_quote(db, sales, q.id)

    res = convert_quote(db, sales, q.id, supervisor.email, SUPERVISOR_PASSWORD)
    assert res.document.status == "converted"


def test_missing_quote(db, sales):
    with pytest.raises(QuoteNotFound):
        convert_quote(db, sales, 999)


def test_group_conversion_is_atomic(db, sales, make_supply, make_product):
    box = make_supply(name="Box", stock="12")
    tag = make_supply(name="Tag", stock="3")
    a = make_product([(box, "quantity")], name="A")
    b = make_product([(box, "quantity"), (tag, "quantity")], name="B")

    g = create_quote_group(db, sales, [
        QuoteItemInput(product_id=a.id, quantity=5),
        QuoteItemInput(product_id=b.id, quantity=5),
    ])
    with pytest.raises(InsufficientStock) as exc:
        convert_quote_group(db, sales, g.id)
    assert {m["supply_id"] for m in exc.value.missing} == {tag.id}
    assert _stock(db, box.id) == Decimal("12")

    db.expire_all()
    assert db.get(QuoteGroup, g.id).status == "draft"


def test_group_conversion_deducts_every_line(db, sales, make_supply, make_product):
    box = make_supply(name="Box", stock="12")
    tag = make_supply(name="Tag", stock="10")
    a = make_product([(box, "quantity")], name="A")
    b = make_product([(box, "quantity"), (tag, "quantity")], name="B")

    g = create_quote_group(db, sales, [
        QuoteItemInput(product_id=a.id, quantity=5),
        QuoteItemInput(product_id=b.id, quantity=5),
    ])
    res = convert_quote_group(db, sales, g.id)
    assert res.document.status == "converted"
    assert _stock(db, box.id) == Decimal("2")
    assert _stock(db, tag.id) == Decimal("5")
