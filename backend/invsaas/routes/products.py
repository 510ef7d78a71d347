# backend/invsaas/routes/products.py
"""
Product stock routes.

Tenant context comes from the upstream-verified X-Tenant-ID header; every
service call is scoped to it. The catalog itself (create/edit/search) is
managed elsewhere; these routes only mutate and audit stock.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import get_notifier, handle_inventory_errors, require_tenant
from ..services import stock_service
from ..services.tenant_service import get_product_for_tenant
from ..errors import ValidationError
from ..validation import coerce_int


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("/<int:product_id>/variants/<int:variant_id>/stock")
@require_tenant
@handle_inventory_errors("update stock")
def update_stock_route(product_id: int, variant_id: int):
    """
    Apply a manual stock movement to one variant.

    Body: {"movement_type", "quantity", "direction"?, "reason"?, "notes"?}
    direction ("increase" / "decrease") is only meaningful for adjustment.
    """
    data = request.get_json(silent=True) or {}

    movement_type = data.get("movement_type")
    if not movement_type:
        raise ValidationError("movement_type is required")
    quantity = coerce_int(data.get("quantity"), "quantity")

    workflow = stock_service.InventoryWorkflow(get_notifier())
    variant, movement = workflow.update_stock(
        tenant_id=g.tenant_id,
        product_id=product_id,
        variant_id=variant_id,
        movement_type=movement_type,
        quantity=quantity,
        direction=data.get("direction"),
        reason=data.get("reason"),
        notes=data.get("notes"),
        performed_by=g.user_id,
    )

    product = get_product_for_tenant(g.tenant_id, product_id)
    return jsonify({
        "message": "Stock updated successfully",
        "product": product.to_dict(),
        "variant": variant.to_dict(),
        "movement": movement.to_dict(),
    }), 200


@products_bp.get("/<int:product_id>/movements")
@require_tenant
@handle_inventory_errors("list stock movements")
def list_movements_route(product_id: int):
    get_product_for_tenant(g.tenant_id, product_id)
    limit = coerce_int(request.args.get("limit"), "limit", required=False, minimum=1) or 50

    movements = stock_service.list_stock_movements(
        g.tenant_id,
        product_id=product_id,
        movement_type=request.args.get("movement_type"),
        limit=min(limit, 500),
    )
    return jsonify({"count": len(movements), "movements": [m.to_dict() for m in movements]}), 200


@products_bp.get("/<int:product_id>/variants/<int:variant_id>/ledger")
@require_tenant
@handle_inventory_errors("verify ledger")
def verify_ledger_route(product_id: int, variant_id: int):
    product = get_product_for_tenant(g.tenant_id, product_id)
    if product.find_variant(variant_id) is None:
        return jsonify({"error": "Variant not found"}), 404
    return jsonify(stock_service.verify_variant_ledger(g.tenant_id, variant_id)), 200


@products_bp.get("/low-stock")
@require_tenant
@handle_inventory_errors("list low stock variants")
def low_stock_route():
    variants = stock_service.get_low_stock_variants(g.tenant_id)
    return jsonify({"count": len(variants), "variants": [v.to_dict() for v in variants]}), 200
