# backend/tests/test_templates.py
from decimal import Decimal

import pytest

from prodex.core.errors import InvalidFormula, InvalidInput, ProductNotFound, SupplyNotFound
from prodex.models import ProductTemplate
from prodex.services.pricing import compute_quote
from prodex.services.templates import (
    TemplateInput,
    TemplateItemInput,
    create_product,
    list_template_versions,
    revise_template,
    search_products,
)


def test_create_product_starts_at_version_one(db, admin, make_supply):
    box = make_supply(cost_per_unit="2")
    p = create_product(
        db, admin, "  Gift box ",
        TemplateInput(items=[TemplateItemInput(supply_id=box.id, qty_formula=" quantity ")]),
    )
    assert p.name == "Gift box"
    [tpl] = p.templates
    assert tpl.version == 1
    assert tpl.is_active is True
    assert tpl.created_by == admin.id
    assert tpl.items[0].qty_formula == "quantity"


def test_missing_formula_falls_back_to_supply_default(db, admin, make_supply):
    tissue = make_supply(name="Tissue", unit_base="sheet", default_qty_per_unit="0.25", rounding="ceil")
    p = create_product(db, admin, "Wrap", TemplateInput(items=[TemplateItemInput(supply_id=tissue.id)]))
    assert p.templates[0].items[0].qty_formula == "ceil(quantity * 0.25)"


def test_missing_formula_without_default_is_rejected(db, admin, make_supply):
    oil = make_supply(name="Oil", unit_base="milliliter")
    with pytest.raises(InvalidInput):
        create_product(db, admin, "Scent", TemplateInput(items=[TemplateItemInput(supply_id=oil.id)]))


def test_invalid_formula_rejected_on_save(db, admin, make_supply):
    box = make_supply()
    with pytest.raises(InvalidFormula):
        create_product(db, admin, "Bad", TemplateInput(items=[TemplateItemInput(box.id, "quantity ** 2")]))


def test_unknown_supply_rejected(db, admin):
    with pytest.raises(SupplyNotFound):
        create_product(db, admin, "Ghost", TemplateInput(items=[TemplateItemInput(4242, "quantity")]))


@pytest.mark.parametrize("field", ["waste_pct", "margin_pct", "operational_pct"])
def test_negative_rates_rejected(db, admin, field):
    with pytest.raises(InvalidInput):
        create_product(db, admin, "Neg", TemplateInput(**{field: Decimal("-0.1")}))


def test_blank_name_rejected(db, admin):
    with pytest.raises(InvalidInput):
        create_product(db, admin, "   ", TemplateInput())


def test_revision_swaps_active_version(db, admin, make_supply):
    box = make_supply(cost_per_unit="2")
    p = create_product(db, admin, "Gift box", TemplateInput(items=[TemplateItemInput(box.id, "quantity")]))

    v2 = revise_template(
        db, admin, p.id,
        TemplateInput(margin_pct=Decimal("0.5"), items=[TemplateItemInput(box.id, "quantity * 2")]),
    )
    assert v2.version == 2
    assert v2.is_active is True

    db.expire_all()
    active = db.query(ProductTemplate).filter_by(product_id=p.id, is_active=True).all()
    assert [t.version for t in active] == [2]
    assert [t.version for t in list_template_versions(db, p.id)] == [2, 1]

    # pricing follows the new version
    res = compute_quote(db, p.id, 1)
    assert res.template.version == 2
    assert res.breakdown[0].qty == Decimal("2")


def test_failed_revision_keeps_current_version(db, admin, make_supply):
    box = make_supply()
    p = create_product(db, admin, "Gift box", TemplateInput(items=[TemplateItemInput(box.id, "quantity")]))
    with pytest.raises(InvalidFormula):
        revise_template(db, admin, p.id, TemplateInput(items=[TemplateItemInput(box.id, "import os")]))

    db.expire_all()
    versions = list_template_versions(db, p.id)
    assert [(t.version, t.is_active) for t in versions] == [(1, True)]


def test_revise_unknown_product(db, admin):
    with pytest.raises(ProductNotFound):
        revise_template(db, admin, 999, TemplateInput())


def test_search_products(db, admin):
    a = create_product(db, admin, "Gift box", TemplateInput())
    create_product(db, admin, "Greeting card", TemplateInput())

    assert [p.name for p in search_products(db, "gift")] == ["Gift box"]
    assert [p.id for p in search_products(db, str(a.id).rjust(2, "0"))] == [a.id]
    assert search_products(db, "g") == []
