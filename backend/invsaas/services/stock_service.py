# Overview: Stock mutation engine; the only code path that changes Variant.stock.

"""
Stock Ledger Invariants (authoritative)

Stock model:
- Variant.stock is the on-hand quantity of one SKU and is never negative.
- Product.total_stock is a cache of SUM(variant.stock), shifted by each movement's
  delta in the same transaction.
- Every change to Variant.stock appends exactly one StockMovement in the same
  transaction; neither survives without the other.

Movement direction:
- purchase, return            -> increase
- sale, damage                -> decrease
- adjustment                  -> increase, or decrease when direction="decrease"
- transfer                    -> rejected (a transfer spans two locations)
quantity is always a positive magnitude; the sign comes from the type.

Concurrency:
- The variant row is read with SELECT ... FOR UPDATE (SQLite: BEGIN IMMEDIATE)
  and written with an optimistic version check (Variant.version). A stale
  write raises StaleDataError, which run_in_transaction retries by re-running
  the whole check-and-write.
- Per variant, movement[i].new_stock == movement[i+1].previous_stock.
"""

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import Product, Variant, StockMovement
from ..models.catalog import normalize_sku
from ..models.ledger import MOVEMENT_TYPES, REFERENCE_TYPES
from ..errors import (
    InsufficientStockError,
    InvalidMovementError,
    NotFoundError,
    ValidationError,
)
from ..notifier import ChangeEvent, publish_safely
from .concurrency import lock_for_update, run_in_transaction
from .tenant_service import get_product_for_tenant, scoped_query


INCREASING_TYPES = {"purchase", "return"}
DECREASING_TYPES = {"sale", "damage"}

DIRECTION_INCREASE = "increase"
DIRECTION_DECREASE = "decrease"


def classify_movement(movement_type: str, quantity, direction: str | None = None) -> int:
    """
    Return +1 or -1 for a movement, or raise InvalidMovementError.

    adjustment takes its sign from the explicit direction flag (default
    increase); every other type has a fixed sign and rejects the flag.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise InvalidMovementError(
            f"Invalid movement type. Must be one of: {', '.join(MOVEMENT_TYPES)}",
            details={"movement_type": movement_type},
        )

    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidMovementError(
            "Quantity must be a positive integer",
            details={"quantity": quantity, "movement_type": movement_type},
        )

    if movement_type == "adjustment":
        direction = direction or DIRECTION_INCREASE
        if direction == DIRECTION_INCREASE:
            return 1
        if direction == DIRECTION_DECREASE:
            return -1
        raise InvalidMovementError(
            "Adjustment direction must be 'increase' or 'decrease'",
            details={"direction": direction},
        )

    if direction is not None:
        raise InvalidMovementError(
            "Direction is only accepted for adjustment movements",
            details={"movement_type": movement_type, "direction": direction},
        )

    if movement_type in INCREASING_TYPES:
        return 1
    if movement_type in DECREASING_TYPES:
        return -1

    raise InvalidMovementError(
        f"{movement_type} movements cannot be applied to a single variant",
        details={"movement_type": movement_type},
    )


def _locate_variant(tenant_id: str, product: Product, variant_id: int) -> Variant:
    query = db.session.query(Variant).filter(
        Variant.id == variant_id,
        Variant.product_id == product.id,
        Variant.tenant_id == tenant_id,
    )
    variant = lock_for_update(query).first()
    if variant is None:
        raise NotFoundError(
            "Variant not found",
            details={"product_id": product.id, "variant_id": variant_id},
        )
    return variant


def adjust_total_stock(product: Product, delta: int) -> None:
    """Shift the product's total_stock cache by delta as one in-database increment."""
    db.session.execute(
        update(Product)
        .where(Product.id == product.id)
        .values(total_stock=Product.total_stock + delta)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(product, ["total_stock"])


def _apply_movement_inner(
    *,
    tenant_id: str,
    product_id: int,
    variant_id: int,
    movement_type: str,
    quantity: int,
    unit_price_cents: int | None,
    reason: str | None,
    notes: str | None,
    performed_by: str,
    reference_type: str,
    reference_id: int | None,
    direction: str | None,
) -> tuple[Variant, StockMovement]:
    """Core check-and-write without transaction handling."""
    if performed_by is None or str(performed_by) == "":
        raise ValidationError("performed_by is required")
    if reference_type not in REFERENCE_TYPES:
        raise InvalidMovementError(
            f"Invalid reference type. Must be one of: {', '.join(REFERENCE_TYPES)}",
            details={"reference_type": reference_type},
        )

    product = get_product_for_tenant(tenant_id, product_id)
    variant = _locate_variant(tenant_id, product, variant_id)

    sign = classify_movement(movement_type, quantity, direction)

    previous_stock = variant.stock
    new_stock = previous_stock + sign * quantity

    if new_stock < 0:
        raise InsufficientStockError(
            f"Insufficient stock for {product.name} ({variant.sku}). "
            f"Available: {previous_stock}, Requested: {quantity}",
            details={
                "product_id": product.id,
                "variant_id": variant.id,
                "sku": variant.sku,
                "current_stock": previous_stock,
                "requested_quantity": quantity,
            },
        )

    variant.stock = new_stock

    if unit_price_cents is None:
        unit_price_cents = variant.price_cents

    movement = StockMovement(
        tenant_id=tenant_id,
        product_id=product.id,
        variant_id=variant.id,
        sku=variant.sku,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        unit_price_cents=unit_price_cents,
        total_value_cents=quantity * unit_price_cents,
        reason=reason,
        notes=notes,
        reference_type=reference_type,
        reference_id=reference_id,
        performed_by=str(performed_by),
    )
    db.session.add(movement)
    db.session.flush()

    adjust_total_stock(product, new_stock - previous_stock)
    return variant, movement


def apply_movement(
    *,
    tenant_id: str,
    product_id: int,
    variant_id: int,
    movement_type: str,
    quantity: int,
    performed_by: str,
    unit_price_cents: int | None = None,
    reason: str | None = None,
    notes: str | None = None,
    reference_type: str = "Manual",
    reference_id: int | None = None,
    direction: str | None = None,
    commit: bool = True,
) -> tuple[Variant, StockMovement]:
    """
    Apply one stock change to one variant and record it in the ledger.

    With commit=True the change runs in its own unit of work (with retry on
    version conflicts). Workflows that compose several movements into one
    transaction pass commit=False and own the commit themselves.

    Raises:
        NotFoundError: product or variant missing / not in tenant
        InvalidMovementError: bad type, quantity, direction or reference type
        InsufficientStockError: change would drive stock negative
        ConcurrencyConflictError: version conflicts outlasted the retry budget
    """
    def _op():
        return _apply_movement_inner(
            tenant_id=tenant_id,
            product_id=product_id,
            variant_id=variant_id,
            movement_type=movement_type,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            reason=reason,
            notes=notes,
            performed_by=performed_by,
            reference_type=reference_type,
            reference_id=reference_id,
            direction=direction,
        )

    if not commit:
        return _op()
    return run_in_transaction(_op)


class InventoryWorkflow:
    """Manual stock updates (adjustments, damage write-offs, ad hoc receipts)."""

    def __init__(self, notifier=None):
        self.notifier = notifier

    def update_stock(
        self,
        *,
        tenant_id: str,
        product_id: int,
        variant_id: int,
        movement_type: str,
        quantity: int,
        performed_by: str,
        reason: str | None = None,
        notes: str | None = None,
        direction: str | None = None,
    ) -> tuple[Variant, StockMovement]:
        variant, movement = apply_movement(
            tenant_id=tenant_id,
            product_id=product_id,
            variant_id=variant_id,
            movement_type=movement_type,
            quantity=quantity,
            performed_by=performed_by,
            reason=reason,
            notes=notes,
            reference_type="Manual",
            direction=direction,
        )

        publish_safely(self.notifier, ChangeEvent(
            tenant_id=tenant_id,
            name="stock-updated",
            message=f"Stock for {variant.sku} changed from {movement.previous_stock} to {movement.new_stock}",
            payload={"variant": variant.to_dict(), "movement": movement.to_dict()},
        ))
        return variant, movement


def get_variant(tenant_id: str, variant_id: int) -> Variant:
    variant = scoped_query(Variant, tenant_id).filter(Variant.id == variant_id).first()
    if variant is None:
        raise NotFoundError("Variant not found", details={"variant_id": variant_id})
    return variant


def get_variant_by_sku(tenant_id: str, sku: str) -> Variant:
    variant = scoped_query(Variant, tenant_id).filter(Variant.sku == normalize_sku(sku)).first()
    if variant is None:
        raise NotFoundError("Variant not found", details={"sku": sku})
    return variant


def list_stock_movements(
    tenant_id: str,
    *,
    product_id: int | None = None,
    variant_id: int | None = None,
    sku: str | None = None,
    movement_type: str | None = None,
    limit: int = 50,
) -> list[StockMovement]:
    """Movements for the tenant, newest first."""
    query = scoped_query(StockMovement, tenant_id)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if variant_id is not None:
        query = query.filter(StockMovement.variant_id == variant_id)
    if sku:
        query = query.filter(StockMovement.sku == sku.strip().upper())
    if movement_type:
        query = query.filter(StockMovement.movement_type == movement_type)

    return query.order_by(StockMovement.id.desc()).limit(limit).all()


def verify_variant_ledger(tenant_id: str, variant_id: int) -> dict:
    """
    Reconcile a variant's ledger against its current stock.

    Walks movements in commit order and reports:
    - chain breaks: movement.previous_stock != prior movement.new_stock
    - sign breaks: new_stock - previous_stock disagrees with type and quantity
    - a final new_stock that differs from Variant.stock
    """
    variant = get_variant(tenant_id, variant_id)
    movements = (
        scoped_query(StockMovement, tenant_id)
        .filter(StockMovement.variant_id == variant_id)
        .order_by(StockMovement.id.asc())
        .all()
    )

    problems = []
    prior = None
    for mv in movements:
        if prior is not None and mv.previous_stock != prior.new_stock:
            problems.append({
                "kind": "chain_break",
                "movement_id": mv.id,
                "expected_previous_stock": prior.new_stock,
                "previous_stock": mv.previous_stock,
            })
        if abs(mv.delta) != mv.quantity:
            problems.append({"kind": "quantity_mismatch", "movement_id": mv.id})
        elif mv.movement_type in INCREASING_TYPES and mv.delta < 0:
            problems.append({"kind": "sign_mismatch", "movement_id": mv.id})
        elif mv.movement_type in DECREASING_TYPES and mv.delta > 0:
            problems.append({"kind": "sign_mismatch", "movement_id": mv.id})
        prior = mv

    if prior is not None and prior.new_stock != variant.stock:
        problems.append({
            "kind": "stock_mismatch",
            "movement_id": prior.id,
            "ledger_stock": prior.new_stock,
            "variant_stock": variant.stock,
        })

    return {
        "variant_id": variant.id,
        "sku": variant.sku,
        "stock": variant.stock,
        "movement_count": len(movements),
        "consistent": not problems,
        "problems": problems,
    }


def get_low_stock_variants(tenant_id: str) -> list[Variant]:
    """Active variants with 0 < stock <= low_stock_threshold."""
    return (
        scoped_query(Variant, tenant_id)
        .join(Product, Product.id == Variant.product_id)
        .filter(
            Product.is_active.is_(True),
            Variant.is_active.is_(True),
            Variant.stock > 0,
            Variant.stock <= Variant.low_stock_threshold,
        )
        .order_by(Variant.stock.asc(), Variant.id.asc())
        .all()
    )
