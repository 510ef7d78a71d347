from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


DEFAULT_LOW_STOCK_THRESHOLD = 10


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to tenants via tenant_id.

    STOCK DESIGN DECISION:
    Variant.stock is the authoritative on-hand quantity. Product.total_stock is
    a derived cache (SUM of variant stock) recomputed by the stock engine in the
    same transaction as every mutation. Never write total_stock directly.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_tenant_category", "tenant_id", "category"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        db.Index("ix_products_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(128), nullable=False)

    # Authoritative storage in cents
    base_price_cents = db.Column(db.Integer, nullable=False, default=0)
    image_url = db.Column(db.String(512), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    total_stock = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    variants = db.relationship(
        "Variant",
        back_populates="product",
        order_by="Variant.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} tenant_id={self.tenant_id!r}>"

    def find_variant(self, variant_id: int) -> "Variant | None":
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    def find_variant_by_sku(self, sku: str) -> "Variant | None":
        sku = normalize_sku(sku)
        for variant in self.variants:
            if variant.sku == sku:
                return variant
        return None

    def to_dict(self, include_variants: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "base_price_cents": self.base_price_cents,
            "image_url": self.image_url,
            "is_active": self.is_active,
            "total_stock": self.total_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_variants:
            data["variants"] = [v.to_dict() for v in self.variants]
        return data


def normalize_sku(value: str | None) -> str:
    """SKUs are stored trimmed and uppercase."""
    return (value or "").strip().upper()


class Variant(db.Model):
    """
    A purchasable SKU of a product (size/color combination).

    MULTI-TENANT: tenant_id is denormalized from the parent product so SKU
    uniqueness and ledger lookups can be enforced per tenant without a join.

    CONCURRENCY: version is the mapper's version_id_col. Every UPDATE is
    issued as "... WHERE id = :id AND version = :seen" and raises
    StaleDataError if another transaction committed first. The check is per
    variant, not per product, so mutations on sibling variants never conflict.
    """
    __tablename__ = "variants"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_variants_tenant_sku"),
        db.CheckConstraint("stock >= 0", name="ck_variants_stock_nonneg"),
        db.Index("ix_variants_tenant_product", "tenant_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    tenant_id = db.Column(db.String(64), db.ForeignKey("tenants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    attributes = db.Column(db.JSON, nullable=False, default=dict)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=DEFAULT_LOW_STOCK_THRESHOLD)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", back_populates="variants")
    __mapper_args__ = {"version_id_col": version}

    def __init__(self, **kwargs):
        if "sku" in kwargs:
            kwargs["sku"] = normalize_sku(kwargs["sku"])
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<Variant id={self.id} sku={self.sku!r} stock={self.stock} version={self.version}>"

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.stock <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "attributes": dict(self.attributes or {}),
            "price_cents": self.price_cents,
            "stock": self.stock,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "version": self.version,
        }


class Supplier(db.Model):
    """
    Supplier a tenant purchases from.

    MULTI-TENANT: Suppliers are scoped to tenants via tenant_id. Purchase
    orders snapshot the supplier name at creation time.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_tenant_name", "tenant_id", "name"),
        db.Index("ix_suppliers_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    payment_terms = db.Column(db.String(32), nullable=False, default="Net 30")
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
