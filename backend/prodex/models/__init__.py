# [BEGIN FILE] backend/prodex/models/__init__.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Index,
    CheckConstraint,
    func,
    Numeric,
    Boolean,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

UNIT_BASES = ("piece", "sheet", "milliliter", "meter", "square-meter")
QUOTE_STATUSES = ("draft", "approved", "converted", "expired")


# =========================
# Identity (User / Customer)
# =========================
class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)

    email = Column(String, nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    role_name = Column(String, nullable=False, default="sales")  # sales|supervisor|admin
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")

    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        CheckConstraint("role_name IN ('sales','supervisor','admin')", name="ck_user_role"),
    )


class Customer(Base):
    __tablename__ = "customers"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    tax_id = Column(String(50), nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())


# =========================
# Supplies (raw material, average cost)
# =========================
class Supply(Base):
    __tablename__ = "supplies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    unit_base = Column(String(20), nullable=False)
    cost_per_unit = Column(Numeric(18, 6), nullable=False, default=0)
    stock = Column(Numeric(18, 4), nullable=False, default=0)

    # optional default consumption per ordered unit (used when an item has no formula)
    default_qty_per_unit = Column(Numeric(18, 6), nullable=True)
    rounding = Column(String(10), nullable=False, default="none", server_default="none")  # none|ceil

    created_at = Column(DateTime, server_default=func.now())

    purchases = relationship("SupplyPurchase", back_populates="supply", cascade="all, delete-orphan", lazy="selectin")

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_supply_stock"),
        CheckConstraint("cost_per_unit >= 0", name="ck_supply_cpu"),
        CheckConstraint(
            "unit_base IN ('piece','sheet','milliliter','meter','square-meter')",
            name="ck_supply_unit_base",
        ),
        CheckConstraint("rounding IN ('none','ceil')", name="ck_supply_rounding"),
    )


class SupplyPurchase(Base):
    __tablename__ = "supply_purchases"

    id = Column(Integer, primary_key=True, index=True)
    supply_id = Column(Integer, ForeignKey("supplies.id", ondelete="RESTRICT"), nullable=False)
    qty = Column(Numeric(18, 4), nullable=False)
    total_cost = Column(Numeric(18, 4), nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    supply = relationship("Supply", back_populates="purchases", lazy="selectin")

    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_purchase_qty"),
        CheckConstraint("total_cost >= 0", name="ck_purchase_total_cost"),
        Index("ix_purchases_supply", "supply_id"),
    )


# =========================
# Products & versioned templates (BOM)
# =========================
class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    templates = relationship(
        "ProductTemplate",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductTemplate.version",
        lazy="selectin",
    )


class ProductTemplate(Base):
    __tablename__ = "product_templates"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    version = Column(Integer, nullable=False, default=1)

    # 0..1 fractions
    waste_pct = Column(Numeric(9, 6), nullable=False, default=0.05)
    margin_pct = Column(Numeric(9, 6), nullable=False, default=0.4)
    operational_pct = Column(Numeric(9, 6), nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True, server_default="1")
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    product = relationship("Product", back_populates="templates", lazy="selectin")
    items = relationship("TemplateItem", back_populates="template", cascade="all, delete-orphan", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("product_id", "version", name="uix_template_product_version"),
        Index("ix_template_product_active", "product_id", "is_active"),
    )


class TemplateItem(Base):
    __tablename__ = "template_items"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("product_templates.id", ondelete="CASCADE"), nullable=False)
    # no FK: a removed supply is skipped by the BOM resolver instead of breaking old templates
    supply_id = Column(Integer, nullable=False)
    qty_formula = Column(String(255), nullable=False)

    template = relationship("ProductTemplate", back_populates="items", lazy="selectin")

    __table_args__ = (Index("ix_template_items_template", "template_id"),)


# =========================
# Quotes (single product)
# =========================
class Quote(Base):
    __tablename__ = "quotes"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    template_id = Column(Integer, ForeignKey("product_templates.id", ondelete="RESTRICT"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), nullable=False, default="draft")

    # resolved inputs
    quantity = Column(Numeric(18, 6), nullable=False)
    finishing_level = Column(String(20), nullable=False, default="none")
    apply_tax = Column(Boolean, nullable=False, default=False)
    tax_rate = Column(Numeric(9, 6), nullable=False, default=0.15)

    # template rates at creation time
    waste_pct = Column(Numeric(9, 6), nullable=False)
    margin_pct = Column(Numeric(9, 6), nullable=False)
    operational_pct = Column(Numeric(9, 6), nullable=False)

    # cost components
    materials_cost = Column(Numeric(18, 6), nullable=False, default=0)
    waste_cost = Column(Numeric(18, 6), nullable=False, default=0)
    operational_cost = Column(Numeric(18, 6), nullable=False, default=0)
    finishing_cost = Column(Numeric(18, 6), nullable=False, default=0)
    cost_total = Column(Numeric(18, 6), nullable=False, default=0)
    min_price = Column(Numeric(18, 6), nullable=False, default=0)
    suggested_price = Column(Numeric(18, 6), nullable=False, default=0)

    price_final = Column(Numeric(18, 6), nullable=False, default=0)
    tax_amount = Column(Numeric(18, 6), nullable=False, default=0)
    total = Column(Numeric(18, 6), nullable=False, default=0)

    # discount
    discount_type = Column(String(20), nullable=True)
    discount_season = Column(String(20), nullable=True)
    discount_reason = Column(Text, nullable=True)
    discount_pct = Column(Numeric(9, 4), nullable=True)

    # approval
    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approved_reason = Column(String(255), nullable=True)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    expires_at = Column(DateTime, nullable=False)

    converted_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    converted_at = Column(DateTime, nullable=True)

    lines = relationship("QuoteLine", back_populates="quote", cascade="all, delete-orphan", lazy="selectin")
    product = relationship("Product", lazy="selectin")

    __table_args__ = (
        CheckConstraint("status IN ('draft','approved','converted','expired')", name="ck_quote_status"),
        CheckConstraint("finishing_level IN ('none','basic','medium','premium')", name="ck_quote_finishing"),
        Index("ix_quotes_created_by", "created_by"),
        Index("ix_quotes_status", "status"),
    )


class QuoteLine(Base):
    __tablename__ = "quote_lines"

    id = Column(Integer, primary_key=True, index=True)
    quote_id = Column(Integer, ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False)
    supply_id = Column(Integer, nullable=False)
    supply_name = Column(String(255), nullable=False)
    unit_base = Column(String(20), nullable=False)
    qty = Column(Numeric(18, 6), nullable=False)
    cost_per_unit = Column(Numeric(18, 6), nullable=False)
    line_cost = Column(Numeric(18, 6), nullable=False)
    qty_formula = Column(String(255), nullable=False)

    quote = relationship("Quote", back_populates="lines", lazy="selectin")

    __table_args__ = (Index("ix_quote_lines_quote", "quote_id"),)


# =========================
# Quote groups (N products, one customer-facing document)
# =========================
class QuoteGroup(Base):
    __tablename__ = "quote_groups"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), nullable=False, default="draft")

    # sums over items
    price_final = Column(Numeric(18, 6), nullable=False, default=0)
    tax_amount = Column(Numeric(18, 6), nullable=False, default=0)
    total = Column(Numeric(18, 6), nullable=False, default=0)

    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approved_reason = Column(String(255), nullable=True)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    expires_at = Column(DateTime, nullable=False)

    converted_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    converted_at = Column(DateTime, nullable=True)

    items = relationship(
        "QuoteGroupItem",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="QuoteGroupItem.position",
        lazy="selectin",
    )
    customer = relationship("Customer", lazy="selectin")

    __table_args__ = (
        CheckConstraint("status IN ('draft','approved','converted','expired')", name="ck_quote_group_status"),
        Index("ix_quote_groups_created_by", "created_by"),
    )


class QuoteGroupItem(Base):
    __tablename__ = "quote_group_items"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("quote_groups.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    template_id = Column(Integer, ForeignKey("product_templates.id", ondelete="RESTRICT"), nullable=False)
    position = Column(Integer, nullable=False)

    quantity = Column(Numeric(18, 6), nullable=False)
    finishing_level = Column(String(20), nullable=False, default="none")
    apply_tax = Column(Boolean, nullable=False, default=False)
    tax_rate = Column(Numeric(9, 6), nullable=False, default=0.15)

    materials_cost = Column(Numeric(18, 6), nullable=False, default=0)
    waste_cost = Column(Numeric(18, 6), nullable=False, default=0)
    operational_cost = Column(Numeric(18, 6), nullable=False, default=0)
    finishing_cost = Column(Numeric(18, 6), nullable=False, default=0)
    cost_total = Column(Numeric(18, 6), nullable=False, default=0)
    suggested_price = Column(Numeric(18, 6), nullable=False, default=0)

    price_final = Column(Numeric(18, 6), nullable=False, default=0)
    tax_amount = Column(Numeric(18, 6), nullable=False, default=0)
    total = Column(Numeric(18, 6), nullable=False, default=0)

    discount_type = Column(String(20), nullable=True)
    discount_season = Column(String(20), nullable=True)
    discount_reason = Column(Text, nullable=True)
    discount_pct = Column(Numeric(9, 4), nullable=True)

    group = relationship("QuoteGroup", back_populates="items", lazy="selectin")
    product = relationship("Product", lazy="selectin")
    lines = relationship("QuoteGroupLine", back_populates="item", cascade="all, delete-orphan", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("group_id", "position", name="uix_group_item_position"),
        Index("ix_group_items_group", "group_id"),
    )


class QuoteGroupLine(Base):
    __tablename__ = "quote_group_lines"

    id = Column(Integer, primary_key=True, index=True)
    group_item_id = Column(Integer, ForeignKey("quote_group_items.id", ondelete="CASCADE"), nullable=False)
    supply_id = Column(Integer, nullable=False)
    supply_name = Column(String(255), nullable=False)
    unit_base = Column(String(20), nullable=False)
    qty = Column(Numeric(18, 6), nullable=False)
    cost_per_unit = Column(Numeric(18, 6), nullable=False)
    line_cost = Column(Numeric(18, 6), nullable=False)
    qty_formula = Column(String(255), nullable=False)

    item = relationship("QuoteGroupItem", back_populates="lines", lazy="selectin")

    __table_args__ = (Index("ix_group_lines_item", "group_item_id"),)
