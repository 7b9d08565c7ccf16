# backend/tests/conftest.py
from decimal import Decimal
from typing import Iterable, Optional, Tuple

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from prodex.api import deps as app_deps
from prodex.core.security import hash_password
from prodex.main import app
from prodex.models import Base, Product, ProductTemplate, Supply, TemplateItem, User

SUPERVISOR_PASSWORD = "super-secret"

# bcrypt is slow on purpose; hash once per session
_HASHES = {}


def _hash(password: str) -> str:
    if password not in _HASHES:
        _HASHES[password] = hash_password(password)
    return _HASHES[password]


# -----------------------------
# DB: one in-memory SQLite per test
# -----------------------------
@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


# -----------------------------
# Factories
# -----------------------------
@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make(role: str = "sales", email: Optional[str] = None, password: str = "pw-123456",
              is_active: bool = True) -> User:
        counter["n"] += 1
        u = User(
            email=email or f"{role}{counter['n']}@prodex.test",
            full_name=f"{role.title()} {counter['n']}",
            role_name=role,
            password_hash=_hash(password),
            is_active=is_active,
        )
        db.add(u)
        db.commit()
        db.refresh(u)
        return u

    return _make


@pytest.fixture()
def sales(make_user):
    return make_user("sales")


@pytest.fixture()
def supervisor(make_user):
    return make_user("supervisor", email="boss@prodex.test", password=SUPERVISOR_PASSWORD)


@pytest.fixture()
def admin(make_user):
    return make_user("admin")


@pytest.fixture()
def make_supply(db):
    def _make(name: str = "Kraft box", cost_per_unit="2.00", stock="100", unit_base: str = "piece",
              default_qty_per_unit=None, rounding: str = "none") -> Supply:
        s = Supply(
            name=name,
            unit_base=unit_base,
            cost_per_unit=Decimal(str(cost_per_unit)),
            stock=Decimal(str(stock)),
            default_qty_per_unit=Decimal(str(default_qty_per_unit)) if default_qty_per_unit is not None else None,
            rounding=rounding,
        )
        db.add(s)
        db.commit()
        db.refresh(s)
        return s

    return _make


@pytest.fixture()
def make_product(db):
    """
    make_product([(supply, "quantity"), ...], margin_pct="0.4", ...)
    Creates a product with one active template (v1).
    """

    def _make(items: Iterable[Tuple[object, str]] = (), name: str = "Gift box", waste_pct="0.05",
              margin_pct="0.4", operational_pct="0") -> Product:
        p = Product(name=name)
        tpl = ProductTemplate(
            version=1,
            waste_pct=Decimal(str(waste_pct)),
            margin_pct=Decimal(str(margin_pct)),
            operational_pct=Decimal(str(operational_pct)),
            is_active=True,
        )
        for supply, formula in items:
            sid = supply if isinstance(supply, int) else supply.id
            tpl.items.append(TemplateItem(supply_id=sid, qty_formula=formula))
        p.templates.append(tpl)
        db.add(p)
        db.commit()
        db.refresh(p)
        return p

    return _make


@pytest.fixture()
def gift_box(make_supply, make_product):
    """cost 2.00 per unit, formula 'quantity', waste 5%, margin 40%, op 0%."""
    box = make_supply(name="Kraft box", cost_per_unit="2.00", stock="100")
    return make_product([(box, "quantity")])


# -----------------------------
# HTTP client with dependency overrides
# -----------------------------
class _ActingUser:
    def __init__(self):
        self.current = None

    def set(self, user: User) -> None:
        self.current = app_deps.CurrentUser(id=user.id, email=user.email, role_name=user.role_name)


@pytest.fixture()
def acting():
    return _ActingUser()


@pytest.fixture()
def client(session_factory, acting):
    def override_get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    def override_get_current_user():
        if acting.current is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        return acting.current

    app.dependency_overrides[app_deps.get_db] = override_get_db
    app.dependency_overrides[app_deps.get_current_user] = override_get_current_user
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
