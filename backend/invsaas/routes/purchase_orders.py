# backend/invsaas/routes/purchase_orders.py
"""Purchase order routes. Receiving stock happens in PurchaseOrderWorkflow."""

from flask import Blueprint, g, jsonify, request

from ..decorators import get_notifier, handle_inventory_errors, require_tenant
from ..services import purchase_order_service
from ..services.purchase_order_service import PurchaseOrderWorkflow
from ..validation import coerce_cents, coerce_int, coerce_line_items
from ..errors import ValidationError


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("/")
@require_tenant
@handle_inventory_errors("list purchase orders")
def list_purchase_orders_route():
    supplier_id = coerce_int(request.args.get("supplier_id"), "supplier_id", required=False)
    pos = purchase_order_service.list_purchase_orders(
        g.tenant_id,
        status=request.args.get("status"),
        supplier_id=supplier_id,
    )
    return jsonify({"count": len(pos), "purchase_orders": [po.to_dict() for po in pos]}), 200


@purchase_orders_bp.get("/<int:po_id>")
@require_tenant
@handle_inventory_errors("load purchase order")
def get_purchase_order_route(po_id: int):
    po = purchase_order_service.get_purchase_order(g.tenant_id, po_id)
    return jsonify({"purchase_order": po.to_dict()}), 200


@purchase_orders_bp.post("/")
@require_tenant
@handle_inventory_errors("create purchase order")
def create_purchase_order_route():
    data = request.get_json(silent=True) or {}
    supplier_id = coerce_int(data.get("supplier_id"), "supplier_id")
    items = coerce_line_items(data.get("items"), id_fields=("product_id", "variant_id"))

    po = PurchaseOrderWorkflow(get_notifier()).create_purchase_order(
        tenant_id=g.tenant_id,
        supplier_id=supplier_id,
        items=items,
        notes=data.get("notes"),
        tax_cents=coerce_cents(data.get("tax_cents"), "tax_cents"),
        shipping_cost_cents=coerce_cents(data.get("shipping_cost_cents"), "shipping_cost_cents"),
        expected_delivery_date=data.get("expected_delivery_date"),
        performed_by=g.user_id,
    )
    return jsonify({"purchase_order": po.to_dict()}), 201


@purchase_orders_bp.put("/<int:po_id>/status")
@require_tenant
@handle_inventory_errors("update purchase order status")
def update_purchase_order_status_route(po_id: int):
    data = request.get_json(silent=True) or {}
    po = PurchaseOrderWorkflow(get_notifier()).update_status(
        tenant_id=g.tenant_id,
        po_id=po_id,
        status=data.get("status"),
    )
    return jsonify({"purchase_order": po.to_dict()}), 200


@purchase_orders_bp.post("/<int:po_id>/receive")
@require_tenant
@handle_inventory_errors("receive purchase order items")
def receive_items_route(po_id: int):
    """
    Receive stock against a purchase order (partial or full).

    Body: {"items": [{"variant_id", "received_quantity"}]}
    """
    data = request.get_json(silent=True) or {}
    raw = data.get("items")
    if not isinstance(raw, list) or not raw:
        raise ValidationError("Items to receive are required")

    receipts = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("Each receipt must be an object")
        receipts.append({
            "variant_id": coerce_int(entry.get("variant_id"), "variant_id"),
            "received_quantity": coerce_int(entry.get("received_quantity"), "received_quantity", minimum=1),
        })

    po = PurchaseOrderWorkflow(get_notifier()).receive_items(
        tenant_id=g.tenant_id,
        po_id=po_id,
        receipts=receipts,
        performed_by=g.user_id,
    )
    return jsonify({"message": "Items received successfully", "purchase_order": po.to_dict()}), 200


@purchase_orders_bp.delete("/<int:po_id>")
@require_tenant
@handle_inventory_errors("delete purchase order")
def delete_purchase_order_route(po_id: int):
    PurchaseOrderWorkflow(get_notifier()).delete_purchase_order(tenant_id=g.tenant_id, po_id=po_id)
    return jsonify({"message": "Purchase Order deleted successfully"}), 200
