# backend/tests/test_api.py
from decimal import Decimal

from conftest import SUPERVISOR_PASSWORD
from prodex.api import deps as app_deps
from prodex.core.security import create_access_token
from prodex.main import app


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_requires_authentication(client):
    r = client.post("/quotes/preview", json={"product_id": 1, "quantity": 1})
    assert r.status_code == 401


def test_me_with_real_bearer_token(client, sales):
    app.dependency_overrides.pop(app_deps.get_current_user, None)
    token = create_access_token(str(sales.id), "sales")

    r = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200, r.text
    assert r.json() == {"id": sales.id, "email": sales.email, "role": "sales"}

    r = client.get("/me", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401


def test_preview_gift_box(client, acting, sales, gift_box):
    acting.set(sales)
    r = client.post(
        "/quotes/preview",
        json={"product_id": gift_box.id, "quantity": 10, "finishing_level": "basic", "apply_tax": True},
    )
    assert r.status_code == 200, r.text
    totals = r.json()["totals"]
    assert Decimal(totals["cost_total"]) == Decimal("321")
    assert Decimal(totals["suggested_price"]) == Decimal("535")
    assert Decimal(totals["tax"]) == Decimal("80.25")
    assert Decimal(totals["total"]) == Decimal("615.25")
    assert r.json()["breakdown"][0]["supply_name"] == "Kraft box"


def test_preview_errors_carry_codes(client, acting, sales, gift_box):
    acting.set(sales)
    r = client.post("/quotes/preview", json={"product_id": gift_box.id, "quantity": 1, "finishing_level": "gold"})
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_finishing_level"

    r = client.post("/quotes/preview", json={"product_id": 999, "quantity": 1})
    assert r.status_code == 404
    assert r.json()["error"] == "product_not_found"


def test_create_quote_below_suggested_requires_supervisor(client, acting, sales, supervisor, gift_box):
    acting.set(sales)
    body = {"product_id": gift_box.id, "quantity": 10, "finishing_level": "basic", "final_price": "500"}

    r = client.post("/quotes", json=body)
    assert r.status_code == 403
    assert r.json()["error"] == "approval_required"
    assert r.json()["approval_required"] is True

    r = client.post("/quotes", json={**body, "supervisor_email": supervisor.email, "supervisor_password": "bad"})
    assert r.status_code == 401

    r = client.post(
        "/quotes",
        json={**body, "supervisor_email": supervisor.email, "supervisor_password": SUPERVISOR_PASSWORD},
    )
    assert r.status_code == 201, r.text
    data = r.json()
    assert data["approved_by"] == supervisor.id
    assert Decimal(data["price_final"]) == Decimal("500")
    assert data["status"] == "draft"


def test_invalid_discount_reports_field(client, acting, sales, gift_box):
    acting.set(sales)
    r = client.post("/quotes", json={
        "product_id": gift_box.id,
        "quantity": 1,
        "discount": {"type": "special-case", "reason": "short", "percentage": 5},
    })
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_discount"
    assert r.json()["field"] == "reason"


def test_quote_list_and_detail(client, acting, make_user, gift_box):
    alice = make_user("sales")
    bob = make_user("sales")
    acting.set(alice)
    qid = client.post("/quotes", json={"product_id": gift_box.id, "quantity": 1}).json()["id"]

    r = client.get("/quotes")
    assert r.json()["meta"]["total"] == 1
    assert client.get(f"/quotes/{qid}").status_code == 200

    acting.set(bob)
    assert client.get("/quotes").json()["meta"]["total"] == 0
    assert client.get(f"/quotes/{qid}").status_code == 403
    assert client.post(f"/quotes/{qid}/convert").status_code == 403


def test_sales_cannot_approve(client, acting, sales, supervisor, gift_box):
    acting.set(sales)
    qid = client.post("/quotes", json={"product_id": gift_box.id, "quantity": 1}).json()["id"]
    assert client.post(f"/quotes/{qid}/approve").status_code == 403

    acting.set(supervisor)
    r = client.post(f"/quotes/{qid}/approve")
    assert r.status_code == 200
    assert r.json()["status"] == "approved"


def test_convert_shortfall_then_success(client, acting, db, sales, admin, make_supply, make_product):
    box = make_supply(name="Box", stock="4")
    p = make_product([(box, "quantity")])
    acting.set(sales)
    qid = client.post("/quotes", json={"product_id": p.id, "quantity": 10}).json()["id"]

    r = client.post(f"/quotes/{qid}/convert")
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "insufficient_stock"
    assert body["missing"] == [{"supply_id": box.id, "name": "Box", "needed": 10, "available": 4}]
    assert client.get(f"/quotes/{qid}").json()["status"] == "draft"

    acting.set(admin)
    r = client.post(f"/supplies/{box.id}/purchases", json={"qty": "6", "total_cost": "12"})
    assert r.status_code == 201, r.text
    assert Decimal(r.json()["supply"]["stock"]) == Decimal("10")

    acting.set(sales)
    r = client.post(f"/quotes/{qid}/convert")
    assert r.status_code == 200, r.text
    assert r.json()["quote"]["status"] == "converted"
    assert Decimal(r.json()["deductions"][0]["remaining"]) == 0

    r = client.post(f"/quotes/{qid}/convert")
    assert r.status_code == 409
    assert r.json()["error"] == "invalid_state"


def test_quote_group_flow(client, acting, sales, gift_box):
    acting.set(sales)
    r = client.post("/quote-groups", json={
        "items": [
            {"product_id": gift_box.id, "quantity": 10, "finishing_level": "basic"},
            {"product_id": gift_box.id, "quantity": 5},
        ],
        "customer": {"name": "Jane Doe", "email": "jane@example.com"},
    })
    assert r.status_code == 201, r.text
    g = r.json()
    assert len(g["items"]) == 2
    assert g["customer"]["name"] == "Jane Doe"

    r = client.post(f"/quote-groups/{g['id']}/convert")
    assert r.status_code == 200, r.text
    assert r.json()["group"]["status"] == "converted"
    assert client.get("/quote-groups").json()["meta"]["total"] == 1


def test_quote_group_requires_items(client, acting, sales):
    acting.set(sales)
    assert client.post("/quote-groups", json={"items": []}).status_code == 422


def test_products_and_template_versions(client, acting, sales, supervisor, make_supply):
    box = make_supply(name="Box", cost_per_unit="2")
    acting.set(sales)
    assert client.post("/products", json={"name": "Nope"}).status_code == 403

    acting.set(supervisor)
    r = client.post("/products", json={
        "name": "Gift box",
        "items": [{"supply_id": box.id, "qty_formula": "quantity"}],
    })
    assert r.status_code == 201, r.text
    pid = r.json()["id"]
    assert r.json()["active_template"]["version"] == 1

    r = client.put(f"/products/{pid}/template", json={
        "margin_pct": "0.5",
        "items": [{"supply_id": box.id, "qty_formula": "ceil(quantity / 2)"}],
    })
    assert r.status_code == 200, r.text
    assert r.json()["version"] == 2

    r = client.get(f"/products/{pid}/templates")
    assert [(t["version"], t["is_active"]) for t in r.json()] == [(2, True), (1, False)]

    acting.set(sales)
    r = client.get("/products/search", params={"q": "gift"})
    assert [p["id"] for p in r.json()] == [pid]

    r = client.put(f"/products/{pid}/template", json={"items": [{"supply_id": box.id, "qty_formula": "x()"}]})
    assert r.status_code == 403


def test_invalid_formula_on_template(client, acting, admin, make_supply):
    box = make_supply()
    acting.set(admin)
    r = client.post("/products", json={"name": "Bad", "items": [{"supply_id": box.id, "qty_formula": "quantity;"}]})
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_formula"


def test_sales_cannot_purchase(client, acting, sales, make_supply):
    box = make_supply()
    acting.set(sales)
    r = client.post(f"/supplies/{box.id}/purchases", json={"qty": 1, "total_cost": 1})
    assert r.status_code == 403


def test_deeply_nested_formula_is_rejected(client, acting, admin, make_supply):
    box = make_supply()
    acting.set(admin)
    formula = "(" * 3000 + "quantity" + ")" * 3000
    r = client.post("/products", json={"name": "Deep", "items": [{"supply_id": box.id, "qty_formula": formula}]})
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_formula"
