from __future__ import annotations

from ..extensions import db


class Tenant(db.Model):
    """
    Multi-tenant root: every business account is a Tenant.

    MULTI-TENANT: Products, variants, suppliers, stock movements, orders and
    purchase orders all carry tenant_id. All queries must be scoped by it.

    The id is the upstream-issued tenant identifier (a string), not a
    database-generated key, so callers can pass it through unchanged.
    """
    __tablename__ = "tenants"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id!r} name={self.name!r}>"
