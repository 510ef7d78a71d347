# backend/invsaas/routes/orders.py
"""Sales order routes. Stock effects happen in OrderWorkflow."""

from flask import Blueprint, g, jsonify, request

from ..decorators import get_notifier, handle_inventory_errors, require_tenant
from ..services import order_service
from ..services.order_service import OrderWorkflow
from ..time_utils import parse_iso_datetime
from ..validation import coerce_line_items
from ..errors import ValidationError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("/")
@require_tenant
@handle_inventory_errors("list orders")
def list_orders_route():
    try:
        start = parse_iso_datetime(request.args.get("start_date"))
        end = parse_iso_datetime(request.args.get("end_date"))
    except ValueError:
        raise ValidationError("Invalid date filter")

    orders = order_service.list_orders(
        g.tenant_id,
        status=request.args.get("status"),
        start=start,
        end=end,
    )
    return jsonify({"orders": [o.to_dict() for o in orders]}), 200


@orders_bp.get("/<int:order_id>")
@require_tenant
@handle_inventory_errors("load order")
def get_order_route(order_id: int):
    order = order_service.get_order(g.tenant_id, order_id)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/")
@require_tenant
@handle_inventory_errors("create order")
def create_order_route():
    """
    Create an order; decrements stock for every item in one transaction.

    Body: {"customer"?: {...}, "items": [{"product_id", "variant_id",
    "quantity", "unit_price_cents"?}], "notes"?}
    """
    data = request.get_json(silent=True) or {}
    items = coerce_line_items(data.get("items"), id_fields=("product_id", "variant_id"))

    customer = data.get("customer")
    if customer is not None and not isinstance(customer, dict):
        raise ValidationError("customer must be an object")

    order = OrderWorkflow(get_notifier()).create_order(
        tenant_id=g.tenant_id,
        customer=customer,
        items=items,
        notes=data.get("notes"),
        performed_by=g.user_id,
    )
    return jsonify({"message": "Order created successfully", "order": order.to_dict()}), 201


@orders_bp.put("/<int:order_id>/status")
@require_tenant
@handle_inventory_errors("update order status")
def update_order_status_route(order_id: int):
    data = request.get_json(silent=True) or {}
    order = OrderWorkflow(get_notifier()).update_order_status(
        tenant_id=g.tenant_id,
        order_id=order_id,
        status=data.get("status"),
        performed_by=g.user_id,
    )
    return jsonify({"message": "Order status updated", "order": order.to_dict()}), 200


@orders_bp.delete("/<int:order_id>")
@require_tenant
@handle_inventory_errors("delete order")
def delete_order_route(order_id: int):
    OrderWorkflow(get_notifier()).delete_order(
        tenant_id=g.tenant_id,
        order_id=order_id,
        performed_by=g.user_id,
    )
    return jsonify({"message": "Order deleted successfully"}), 200
