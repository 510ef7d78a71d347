# Overview: Purchase order workflow; receiving composes purchase movements per line.

"""
Purchase Order Service

WHY: Inbound stock enters the ledger only by receiving against a purchase
order (or a manual adjustment). Creating a PO has no stock effect.

LIFECYCLE:
1. Draft: created with received_quantity = 0 on every line; deletable
2. Sent / Confirmed: status-only transitions
3. Partially Received: at least one unit received, not every line complete
4. Received: every line has received_quantity == quantity
5. Cancelled: receipts are rejected

RECEIVING: one call may receive several lines. All receipts in the call
commit together; if any receipt fails (unknown line, over-receipt), none of
the call's stock changes or movements are kept.
"""

from __future__ import annotations

from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem
from ..models.purchasing import (
    PO_STATUSES,
    PO_STATUS_CANCELLED,
    PO_STATUS_DRAFT,
    PO_STATUS_PARTIALLY_RECEIVED,
    PO_STATUS_RECEIVED,
)
from ..errors import (
    ExceedsOrderedError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..notifier import ChangeEvent, publish_safely
from ..time_utils import utcnow, parse_iso_datetime
from .concurrency import lock_for_update, run_in_transaction
from .document_service import DOCUMENT_PURCHASE_ORDER, next_document_number
from .stock_service import apply_movement
from .tenant_service import get_product_for_tenant, get_supplier_for_tenant, scoped_query


# Accepted spellings from clients, mapped to the canonical status
STATUS_ALIASES = {
    "draft": PO_STATUS_DRAFT,
    "sent": "Sent",
    "confirmed": "Confirmed",
    "partially-received": PO_STATUS_PARTIALLY_RECEIVED,
    "partially_received": PO_STATUS_PARTIALLY_RECEIVED,
    "partially received": PO_STATUS_PARTIALLY_RECEIVED,
    "received": PO_STATUS_RECEIVED,
    "cancelled": PO_STATUS_CANCELLED,
    "canceled": PO_STATUS_CANCELLED,
}


def normalize_po_status(status) -> str:
    """Map a client-supplied status to one of PO_STATUSES or raise ValidationError."""
    if isinstance(status, str):
        candidate = status.strip()
        if candidate in PO_STATUSES:
            return candidate
        mapped = STATUS_ALIASES.get(candidate.lower())
        if mapped:
            return mapped
    raise ValidationError(
        f"Invalid status. Must be one of: {', '.join(PO_STATUSES)}",
        details={"status": status},
    )


def _non_negative_int(value, field: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer", details={field: value})
    return value


def _positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", details={field: value})
    return value


def get_purchase_order(tenant_id: str, po_id: int, *, lock: bool = False) -> PurchaseOrder:
    query = scoped_query(PurchaseOrder, tenant_id).filter(PurchaseOrder.id == po_id)
    if lock:
        query = lock_for_update(query)
    po = query.first()
    if po is None:
        raise NotFoundError("Purchase Order not found", details={"po_id": po_id})
    return po


def list_purchase_orders(
    tenant_id: str,
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[PurchaseOrder]:
    query = scoped_query(PurchaseOrder, tenant_id)
    if status:
        query = query.filter(PurchaseOrder.status == normalize_po_status(status))
    if supplier_id:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).offset(offset).limit(limit).all()


class PurchaseOrderWorkflow:
    """Purchase order create / receive / status / delete with post-commit notifications."""

    def __init__(self, notifier=None):
        self.notifier = notifier

    def _publish(self, tenant_id: str, name: str, message: str, payload: dict) -> None:
        publish_safely(self.notifier, ChangeEvent(tenant_id=tenant_id, name=name, message=message, payload=payload))

    def create_purchase_order(
        self,
        *,
        tenant_id: str,
        supplier_id: int,
        items: list[dict],
        performed_by: str,
        notes: str | None = None,
        tax_cents: int | None = None,
        shipping_cost_cents: int | None = None,
        expected_delivery_date=None,
    ) -> PurchaseOrder:
        """
        Create a Draft purchase order.

        Each item: {"product_id", "variant_id", "quantity", "unit_price_cents"}.
        Products and variants are resolved for naming and validation only.

        Raises:
            ValidationError: missing supplier/items or malformed item
            NotFoundError: supplier, product or variant missing / not in tenant
        """
        if not supplier_id or not items:
            raise ValidationError("Supplier and items are required")
        if not performed_by:
            raise ValidationError("performed_by is required")

        tax = _non_negative_int(tax_cents, "tax_cents")
        shipping = _non_negative_int(shipping_cost_cents, "shipping_cost_cents")
        try:
            expected_delivery_date = parse_iso_datetime(expected_delivery_date)
        except ValueError:
            raise ValidationError("Invalid expected_delivery_date format")

        def _op():
            supplier = get_supplier_for_tenant(tenant_id, supplier_id)

            po = PurchaseOrder(
                tenant_id=tenant_id,
                po_number=next_document_number(
                    tenant_id=tenant_id,
                    document_type=DOCUMENT_PURCHASE_ORDER,
                    prefix="PO",
                ),
                supplier_id=supplier.id,
                supplier_name=supplier.name or "Unknown",
                status=PO_STATUS_DRAFT,
                tax_cents=tax,
                shipping_cost_cents=shipping,
                expected_delivery_date=expected_delivery_date,
                notes=notes,
                created_by=str(performed_by),
            )

            for line_no, item in enumerate(items, start=1):
                if not isinstance(item, dict):
                    raise ValidationError("Each item must be an object", details={"line": line_no})
                quantity = _positive_int(item.get("quantity"), "quantity")
                unit_price = _non_negative_int(item.get("unit_price_cents"), "unit_price_cents")

                product = get_product_for_tenant(tenant_id, item.get("product_id"))
                variant = product.find_variant(item.get("variant_id"))
                if variant is None:
                    raise NotFoundError(
                        f"Variant not found for product {product.name}",
                        details={"product_id": product.id, "variant_id": item.get("variant_id"), "line": line_no},
                    )
                if po.find_item_by_variant(variant.id) is not None:
                    raise ValidationError(
                        f"Variant {variant.sku} appears more than once",
                        details={"variant_id": variant.id, "line": line_no},
                    )

                po.items.append(PurchaseOrderItem(
                    product_id=product.id,
                    variant_id=variant.id,
                    sku=variant.sku,
                    product_name=product.name,
                    quantity=quantity,
                    received_quantity=0,
                    unit_price_cents=unit_price,
                    total_price_cents=quantity * unit_price,
                ))

            po.calculate_totals()
            db.session.add(po)
            db.session.flush()
            return po

        po = run_in_transaction(_op)

        self._publish(tenant_id, "po-created", f"Purchase Order #{po.po_number} created", {"po": po.to_dict()})
        return po

    def receive_items(
        self,
        *,
        tenant_id: str,
        po_id: int,
        receipts: list[dict],
        performed_by: str,
    ) -> PurchaseOrder:
        """
        Receive stock against PO lines.

        Each receipt: {"variant_id", "received_quantity"}.

        Raises:
            ValidationError: empty receipt list or non-positive quantity
            NotFoundError: PO missing, or no PO line for a variant
            InvalidStateError: PO is Cancelled
            ExceedsOrderedError: receipt exceeds quantity - received_quantity
        """
        if not receipts:
            raise ValidationError("Items to receive are required")

        def _op():
            po = get_purchase_order(tenant_id, po_id, lock=True)
            if po.status == PO_STATUS_CANCELLED:
                raise InvalidStateError(
                    "Cannot receive items from cancelled PO",
                    details={"po_id": po.id, "status": po.status},
                )

            for receipt in receipts:
                if not isinstance(receipt, dict):
                    raise ValidationError("Each receipt must be an object")
                variant_id = receipt.get("variant_id")
                item = po.find_item_by_variant(variant_id)
                if item is None:
                    raise NotFoundError(
                        f"Item not found in PO: {variant_id}",
                        details={"po_id": po.id, "variant_id": variant_id},
                    )

                received = _positive_int(receipt.get("received_quantity"), "received_quantity")
                if received > item.remaining_quantity:
                    raise ExceedsOrderedError(
                        f"Received quantity exceeds ordered quantity for {item.sku}",
                        details={
                            "po_id": po.id,
                            "variant_id": item.variant_id,
                            "sku": item.sku,
                            "ordered_quantity": item.quantity,
                            "already_received": item.received_quantity,
                            "requested_quantity": received,
                        },
                    )

                item.received_quantity += received

                apply_movement(
                    tenant_id=tenant_id,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    movement_type="purchase",
                    quantity=received,
                    unit_price_cents=item.unit_price_cents,
                    reason="Purchase order receipt",
                    notes=f"Received from PO #{po.po_number}",
                    performed_by=performed_by,
                    reference_type="PurchaseOrder",
                    reference_id=po.id,
                    commit=False,
                )

            if po.is_fully_received():
                po.status = PO_STATUS_RECEIVED
                po.actual_delivery_date = utcnow()
            elif po.is_partially_received():
                po.status = PO_STATUS_PARTIALLY_RECEIVED
            po.received_by = str(performed_by)

            db.session.flush()
            return po

        po = run_in_transaction(_op)

        self._publish(
            tenant_id,
            "po-received",
            f"Items received for Purchase Order #{po.po_number}",
            {"po": po.to_dict()},
        )
        return po

    def update_status(self, *, tenant_id: str, po_id: int, status: str) -> PurchaseOrder:
        """Metadata-only status change; no stock effect."""
        new_status = normalize_po_status(status)

        def _op():
            po = get_purchase_order(tenant_id, po_id, lock=True)
            if po.status == new_status:
                return po, False
            po.status = new_status
            db.session.flush()
            return po, True

        po, changed = run_in_transaction(_op)

        if changed:
            self._publish(
                tenant_id,
                "po-updated",
                f"Purchase Order #{po.po_number} status changed to {new_status}",
                {"po": po.to_dict()},
            )
        return po

    def delete_purchase_order(self, *, tenant_id: str, po_id: int) -> None:
        """Delete a Draft purchase order that has not received any stock."""
        def _op():
            po = get_purchase_order(tenant_id, po_id, lock=True)
            if po.status != PO_STATUS_DRAFT:
                raise InvalidStateError(
                    "Can only delete draft purchase orders",
                    details={"po_id": po.id, "status": po.status},
                )
            # Status is a free metadata write; received stock pins the PO to the ledger
            received = [item.sku for item in po.items if item.received_quantity > 0]
            if received:
                raise InvalidStateError(
                    "Cannot delete a purchase order that has received stock",
                    details={"po_id": po.id, "received_skus": received},
                )
            po_number = po.po_number
            db.session.delete(po)
            db.session.flush()
            return po_number

        po_number = run_in_transaction(_op)

        self._publish(tenant_id, "po-deleted", f"Purchase Order #{po_number} deleted", {"po_id": po_id})
