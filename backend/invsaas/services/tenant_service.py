"""
Multi-Tenant Service: tenant validation and scoping helpers

WHY: Every stock-core call carries an upstream-verified tenant_id. This module
centralizes the lookups so every read of a tenant-owned row is filtered by
tenant_id, and a row owned by another tenant is indistinguishable from a
missing one (NotFoundError, never a "forbidden" that reveals existence).
"""

from __future__ import annotations

from ..extensions import db
from ..models import Tenant, Product, Supplier
from ..errors import NotFoundError, ValidationError


def require_tenant(tenant_id: str) -> Tenant:
    """Return the active tenant or raise NotFoundError."""
    if not tenant_id:
        raise ValidationError("tenant_id is required")
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None or not tenant.is_active:
        raise NotFoundError("Tenant not found", details={"tenant_id": tenant_id})
    return tenant


def create_tenant(tenant_id: str, name: str) -> Tenant:
    if not tenant_id or not name:
        raise ValidationError("tenant_id and name are required")
    if db.session.get(Tenant, tenant_id) is not None:
        raise ValidationError("Tenant already exists", details={"tenant_id": tenant_id})
    tenant = Tenant(id=tenant_id, name=name, is_active=True)
    db.session.add(tenant)
    db.session.commit()
    return tenant


def scoped_query(model, tenant_id: str):
    """Query of a tenant-owned model, filtered to tenant_id."""
    return db.session.query(model).filter(model.tenant_id == tenant_id)


def get_product_for_tenant(tenant_id: str, product_id: int) -> Product:
    product = scoped_query(Product, tenant_id).filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError(
            "Product not found",
            details={"product_id": product_id},
        )
    return product


def get_supplier_for_tenant(tenant_id: str, supplier_id: int) -> Supplier:
    supplier = scoped_query(Supplier, tenant_id).filter(Supplier.id == supplier_id).first()
    if supplier is None:
        raise NotFoundError("Supplier not found", details={"supplier_id": supplier_id})
    return supplier
