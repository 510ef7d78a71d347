from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PO_STATUS_DRAFT = "Draft"
PO_STATUS_SENT = "Sent"
PO_STATUS_CONFIRMED = "Confirmed"
PO_STATUS_PARTIALLY_RECEIVED = "Partially Received"
PO_STATUS_RECEIVED = "Received"
PO_STATUS_CANCELLED = "Cancelled"

PO_STATUSES = (
    PO_STATUS_DRAFT,
    PO_STATUS_SENT,
    PO_STATUS_CONFIRMED,
    PO_STATUS_PARTIALLY_RECEIVED,
    PO_STATUS_RECEIVED,
    PO_STATUS_CANCELLED,
)


class PurchaseOrder(db.Model):
    """
    Purchase order sent to a supplier.

    LIFECYCLE:
    1. Draft: created, no stock effect, deletable
    2. Sent / Confirmed: metadata transitions
    3. Partially Received: some lines have received_quantity > 0
    4. Received: every line has received_quantity == quantity
    5. Cancelled: no further receipts accepted

    Receiving creates one purchase movement per receipt line, in the same
    transaction as the received_quantity increments.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "po_number", name="uq_purchase_orders_tenant_number"),
        db.Index("ix_purchase_orders_tenant_status_created", "tenant_id", "status", "created_at"),
        db.Index("ix_purchase_orders_tenant_supplier", "tenant_id", "supplier_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), db.ForeignKey("tenants.id"), nullable=False, index=True)

    po_number = db.Column(db.String(64), nullable=False)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)
    supplier_name = db.Column(db.String(255), nullable=False)

    status = db.Column(db.String(32), nullable=False, default=PO_STATUS_DRAFT, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    expected_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    received_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        order_by="PurchaseOrderItem.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    supplier = db.relationship("Supplier")

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} number={self.po_number!r} status={self.status!r}>"

    def calculate_totals(self) -> None:
        self.subtotal_cents = sum(item.total_price_cents for item in self.items)
        self.total_amount_cents = self.subtotal_cents + (self.tax_cents or 0) + (self.shipping_cost_cents or 0)

    def is_fully_received(self) -> bool:
        return bool(self.items) and all(item.received_quantity == item.quantity for item in self.items)

    def is_partially_received(self) -> bool:
        return any(item.received_quantity > 0 for item in self.items) and not self.is_fully_received()

    def find_item_by_variant(self, variant_id: int) -> "PurchaseOrderItem | None":
        for item in self.items:
            if item.variant_id == variant_id:
                return item
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "po_number": self.po_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "status": self.status,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "shipping_cost_cents": self.shipping_cost_cents,
            "total_amount_cents": self.total_amount_cents,
            "expected_delivery_date": to_utc_z(self.expected_delivery_date) if self.expected_delivery_date else None,
            "actual_delivery_date": to_utc_z(self.actual_delivery_date) if self.actual_delivery_date else None,
            "notes": self.notes,
            "created_by": self.created_by,
            "received_by": self.received_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_po_items_quantity"),
        db.CheckConstraint(
            "received_quantity >= 0 AND received_quantity <= quantity",
            name="ck_po_items_received_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False)
    sku = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    purchase_order = db.relationship("PurchaseOrder", back_populates="items")

    @property
    def remaining_quantity(self) -> int:
        return self.quantity - self.received_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "sku": self.sku,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "received_quantity": self.received_quantity,
            "remaining_quantity": self.remaining_quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }
