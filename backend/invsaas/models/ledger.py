from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


MOVEMENT_TYPES = ("purchase", "sale", "return", "adjustment", "damage", "transfer")
REFERENCE_TYPES = ("Order", "PurchaseOrder", "Manual", "System")


class ImmutableMovementError(RuntimeError):
    """Raised when code attempts to update or delete a stock movement."""


class StockMovement(db.Model):
    """
    Append-only stock ledger row.

    One row per committed stock mutation of one variant. quantity is always a
    positive magnitude; the direction is recoverable from
    new_stock - previous_stock.

    Invariants:
    - Written in the same transaction as the variant stock change it records.
    - For consecutive movements of a variant, the later row's previous_stock
      equals the earlier row's new_stock.
    - Never updated or deleted (enforced by mapper events below).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_tenant_created", "tenant_id", "created_at"),
        db.Index("ix_movements_tenant_product_created", "tenant_id", "product_id", "created_at"),
        db.Index("ix_movements_tenant_type_created", "tenant_id", "movement_type", "created_at"),
        db.Index("ix_movements_tenant_sku_created", "tenant_id", "sku", "created_at"),
        db.CheckConstraint("quantity > 0", name="ck_movements_quantity_positive"),
        db.CheckConstraint("new_stock >= 0", name="ck_movements_new_stock_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    tenant_id = db.Column(db.String(64), db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)
    sku = db.Column(db.String(64), nullable=False)

    movement_type = db.Column(db.String(16), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=True)
    total_value_cents = db.Column(db.Integer, nullable=True)

    reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    reference_type = db.Column(db.String(16), nullable=False, default="Manual")
    reference_id = db.Column(db.Integer, nullable=True)

    performed_by = db.Column(db.String(64), nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} sku={self.sku!r} type={self.movement_type} "
            f"{self.previous_stock}->{self.new_stock}>"
        )

    @property
    def delta(self) -> int:
        return self.new_stock - self.previous_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "sku": self.sku,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "unit_price_cents": self.unit_price_cents,
            "total_value_cents": self.total_value_cents,
            "reason": self.reason,
            "notes": self.notes,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "performed_by": self.performed_by,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
def _block_movement_update(mapper, connection, target):
    raise ImmutableMovementError(f"stock movement {target.id} is immutable")


@event.listens_for(StockMovement, "before_delete")
def _block_movement_delete(mapper, connection, target):
    raise ImmutableMovementError(f"stock movement {target.id} cannot be deleted")
