# backend/scripts/seed_demo_catalog.py
"""
Seeds a local database with demo users, supplies and one product.

Run:
    cd backend
    alembic upgrade head
    python scripts/seed_demo_catalog.py --password changeme
    python scripts/seed_demo_catalog.py --create-tables   # skip alembic on a throwaway DB
"""
from __future__ import annotations

import argparse
import os
import sys
from decimal import Decimal

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BASE_DIR not in sys.path:
    sys.path.insert(0, BASE_DIR)

from sqlalchemy import select  # noqa: E402

from prodex.core.config import SessionLocal, engine  # noqa: E402
from prodex.core.security import hash_password  # noqa: E402
from prodex.models import Base, Product, Supply, User  # noqa: E402
from prodex.services.templates import TemplateInput, TemplateItemInput, create_product  # noqa: E402

USERS = [
    ("admin@prodex.local", "Admin", "admin"),
    ("supervisor@prodex.local", "Supervisor", "supervisor"),
    ("sales@prodex.local", "Sales", "sales"),
]

# name, unit_base, cost_per_unit, stock, default_qty_per_unit, rounding
SUPPLIES = [
    ("Kraft box 20x20", "piece", "2.00", "500", "1", "none"),
    ("Tissue paper sheet", "sheet", "0.35", "2000", "0.25", "ceil"),
    ("Satin ribbon", "meter", "1.10", "300", "0.8", "none"),
    ("Scented oil", "milliliter", "0.05", "5000", None, "none"),
]


def seed_users(db, password: str) -> None:
    for email, name, role in USERS:
        exists = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if exists:
            print(f"[=] user {email} exists")
            continue
        db.add(User(email=email, full_name=name, role_name=role, password_hash=hash_password(password)))
        print(f"[+] user {email} ({role})")
    db.commit()


def seed_supplies(db) -> dict:
    out = {}
    for name, unit, cpu, stock, per_unit, rounding in SUPPLIES:
        s = db.execute(select(Supply).where(Supply.name == name)).scalar_one_or_none()
        if s is None:
            s = Supply(
                name=name,
                unit_base=unit,
                cost_per_unit=Decimal(cpu),
                stock=Decimal(stock),
                default_qty_per_unit=Decimal(per_unit) if per_unit else None,
                rounding=rounding,
            )
            db.add(s)
            db.flush()
            print(f"[+] supply {name}")
        out[name] = s
    db.commit()
    return out


def seed_product(db, supplies: dict) -> None:
    if db.execute(select(Product).where(Product.name == "Gift box")).scalar_one_or_none():
        print("[=] product Gift box exists")
        return
    admin = db.execute(select(User).where(User.role_name == "admin")).scalars().first()
    tpl = TemplateInput(
        waste_pct=Decimal("0.05"),
        margin_pct=Decimal("0.4"),
        operational_pct=Decimal("0.1"),
        items=[
            TemplateItemInput(supply_id=supplies["Kraft box 20x20"].id),
            TemplateItemInput(supply_id=supplies["Tissue paper sheet"].id),
            TemplateItemInput(supply_id=supplies["Satin ribbon"].id, qty_formula="ceil(quantity * 0.8)"),
            TemplateItemInput(supply_id=supplies["Scented oil"].id, qty_formula="quantity * 5 + 20"),
        ],
    )
    p = create_product(db, admin, "Gift box", tpl, "Kraft gift box with tissue, ribbon and scent")
    print(f"[+] product {p.name} (id={p.id}) with template v1")


def main():
    ap = argparse.ArgumentParser(description="Seed demo catalog")
    ap.add_argument("--password", default="changeme", help="Password for every demo user")
    ap.add_argument("--create-tables", action="store_true", help="create_all() instead of alembic")
    args = ap.parse_args()

    print(f"[i] Using DB = {engine.url}")
    if args.create_tables:
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        seed_users(db, args.password)
        supplies = seed_supplies(db)
        seed_product(db, supplies)
    finally:
        db.close()
    print("[✓] done")


if __name__ == "__main__":
    main()
