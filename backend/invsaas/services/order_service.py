# Overview: Sales order workflow; composes stock movements into order transactions.

"""
Order Service

LIFECYCLE:
1. pending: created; every line item decremented stock via a sale movement
2. processing / shipped / delivered: status-only transitions
3. cancelled: every line item restored via a return movement
Deleting is allowed only while pending (restores stock, then soft-deletes).

ATOMICITY: create, cancel and delete each run as one unit of work. If any line
item fails (missing variant, insufficient stock), nothing is written: no order
row, no stock change, no movement.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Order, OrderItem
from ..models.orders import ORDER_STATUSES
from ..errors import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..notifier import ChangeEvent, publish_safely
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction
from .document_service import DOCUMENT_ORDER, next_document_number
from .stock_service import apply_movement
from .tenant_service import get_product_for_tenant, scoped_query


STATUS_PENDING = "pending"
STATUS_CANCELLED = "cancelled"

SYSTEM_ACTOR = "system"


def _positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", details={field: value})
    return value


def _normalize_status(status) -> str:
    normalized = (status or "").strip().lower() if isinstance(status, str) else ""
    if normalized not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}",
            details={"status": status},
        )
    return normalized


def get_order(tenant_id: str, order_id: int, *, lock: bool = False) -> Order:
    """Fetch a live (not soft-deleted) order owned by tenant_id."""
    query = scoped_query(Order, tenant_id).filter(
        Order.id == order_id,
        Order.deleted_at.is_(None),
    )
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def list_orders(
    tenant_id: str,
    *,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Order]:
    query = scoped_query(Order, tenant_id).filter(Order.deleted_at.is_(None))
    if status:
        query = query.filter(Order.status == _normalize_status(status))
    if start:
        query = query.filter(Order.created_at >= start)
    if end:
        query = query.filter(Order.created_at <= end)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()


def _restock_items(order: Order, performed_by: str, reason: str) -> None:
    for item in order.items:
        apply_movement(
            tenant_id=order.tenant_id,
            product_id=item.product_id,
            variant_id=item.variant_id,
            movement_type="return",
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            reason=reason,
            performed_by=performed_by,
            reference_type="Order",
            reference_id=order.id,
            commit=False,
        )


class OrderWorkflow:
    """Order create / status / delete operations with post-commit notifications."""

    def __init__(self, notifier=None):
        self.notifier = notifier

    def _publish(self, tenant_id: str, name: str, message: str, payload: dict) -> None:
        publish_safely(self.notifier, ChangeEvent(tenant_id=tenant_id, name=name, message=message, payload=payload))

    def create_order(
        self,
        *,
        tenant_id: str,
        items: list[dict],
        performed_by: str,
        customer: dict | None = None,
        notes: str | None = None,
    ) -> Order:
        """
        Create an order and decrement stock for every line item.

        Each item: {"product_id", "variant_id", "quantity", "unit_price_cents"?}.
        unit_price_cents defaults to the variant's price.

        Raises:
            ValidationError: empty item list or malformed item
            NotFoundError: product or variant missing / not in tenant
            InsufficientStockError: a line item exceeds available stock
        """
        if not items:
            raise ValidationError("Order must have at least one item")
        customer = customer or {}

        def _op():
            order = Order(
                tenant_id=tenant_id,
                order_number=next_document_number(
                    tenant_id=tenant_id,
                    document_type=DOCUMENT_ORDER,
                    prefix="ORD",
                ),
                customer_name=customer.get("name"),
                customer_email=customer.get("email"),
                customer_phone=customer.get("phone"),
                customer_address=customer.get("address"),
                status=STATUS_PENDING,
                total_amount_cents=0,
                notes=notes,
                created_by=str(performed_by),
            )
            db.session.add(order)
            db.session.flush()

            total = 0
            for line_no, item in enumerate(items, start=1):
                if not isinstance(item, dict):
                    raise ValidationError("Each item must be an object", details={"line": line_no})
                quantity = _positive_int(item.get("quantity"), "quantity")
                product = get_product_for_tenant(tenant_id, item.get("product_id"))
                variant = product.find_variant(item.get("variant_id"))
                if variant is None:
                    raise NotFoundError(
                        "Variant not found",
                        details={"product_id": product.id, "variant_id": item.get("variant_id"), "line": line_no},
                    )

                # Fail fast with line context; the engine re-checks under lock
                if variant.stock < quantity:
                    raise InsufficientStockError(
                        f"Insufficient stock for {product.name} ({variant.sku}). "
                        f"Available: {variant.stock}, Requested: {quantity}",
                        details={
                            "line": line_no,
                            "product_id": product.id,
                            "variant_id": variant.id,
                            "sku": variant.sku,
                            "current_stock": variant.stock,
                            "requested_quantity": quantity,
                        },
                    )

                unit_price = item.get("unit_price_cents")
                if unit_price is None:
                    unit_price = variant.price_cents
                elif isinstance(unit_price, bool) or not isinstance(unit_price, int) or unit_price < 0:
                    raise ValidationError(
                        "unit_price_cents must be a non-negative integer",
                        details={"line": line_no, "unit_price_cents": unit_price},
                    )

                apply_movement(
                    tenant_id=tenant_id,
                    product_id=product.id,
                    variant_id=variant.id,
                    movement_type="sale",
                    quantity=quantity,
                    unit_price_cents=unit_price,
                    reason="Order created",
                    notes=f"Order {order.order_number}",
                    performed_by=performed_by,
                    reference_type="Order",
                    reference_id=order.id,
                    commit=False,
                )

                order.items.append(OrderItem(
                    product_id=product.id,
                    variant_id=variant.id,
                    sku=variant.sku,
                    product_name=product.name,
                    quantity=quantity,
                    unit_price_cents=unit_price,
                ))
                total += quantity * unit_price

            order.total_amount_cents = total
            db.session.flush()
            return order

        order = run_in_transaction(_op)

        self._publish(tenant_id, "order-created", f"Order {order.order_number} created", {"order": order.to_dict()})
        return order

    def update_order_status(
        self,
        *,
        tenant_id: str,
        order_id: int,
        status: str,
        performed_by: str = SYSTEM_ACTOR,
    ) -> Order:
        """
        Change an order's status.

        Moving into cancelled restores stock for every item in the same
        transaction. Setting the current status again is a no-op. A cancelled
        order cannot be reopened, since its stock has already been returned.
        """
        new_status = _normalize_status(status)

        def _op():
            order = get_order(tenant_id, order_id, lock=True)
            if order.status == new_status:
                return order, False

            if order.status == STATUS_CANCELLED:
                raise InvalidStateError(
                    "Cancelled orders cannot change status",
                    details={"order_id": order.id, "status": order.status, "requested_status": new_status},
                )

            if new_status == STATUS_CANCELLED:
                _restock_items(order, performed_by, "Order cancelled - stock refunded")

            order.status = new_status
            db.session.flush()
            return order, True

        order, changed = run_in_transaction(_op)

        if changed:
            self._publish(
                tenant_id,
                "order-updated",
                f"Order {order.order_number} status changed to {new_status}",
                {"order": order.to_dict()},
            )
        return order

    def delete_order(
        self,
        *,
        tenant_id: str,
        order_id: int,
        performed_by: str = SYSTEM_ACTOR,
    ) -> None:
        """Soft-delete a pending order after restoring its stock."""
        def _op():
            order = get_order(tenant_id, order_id, lock=True)
            if order.status != STATUS_PENDING:
                raise InvalidStateError(
                    "Only pending orders can be deleted",
                    details={"order_id": order.id, "status": order.status},
                )

            _restock_items(order, performed_by, "Order deleted - stock refunded")
            order.deleted_at = utcnow()
            db.session.flush()
            return order.order_number

        order_number = run_in_transaction(_op)

        self._publish(tenant_id, "order-deleted", f"Order {order_number} deleted", {"order_id": order_id})
