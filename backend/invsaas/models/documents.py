from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Atomic per-tenant document sequences.

    WHY: Order and purchase-order numbers must be unique per tenant even when
    two operators create documents in the same millisecond. A row per
    (tenant_id, document_type) is incremented inside the creating transaction.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_type", name="uq_doc_sequences_tenant_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), db.ForeignKey("tenants.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
