# Overview: Per-tenant document number allocation for orders and purchase orders.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..errors import ValidationError


DOCUMENT_ORDER = "ORDER"
DOCUMENT_PURCHASE_ORDER = "PURCHASE_ORDER"


def next_document_number(
    *,
    tenant_id: str,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Allocate the next document number for a tenant/type.

    Must be called inside the unit of work that creates the document, so the
    counter increment commits or rolls back together with it. The UPDATE takes
    the row lock, so two concurrent creators never see the same number.
    """
    if not tenant_id:
        raise ValidationError("tenant_id is required")
    if not document_type:
        raise ValidationError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_number(tenant_id, document_type) - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(
                    DocumentSequence(tenant_id=tenant_id, document_type=document_type, next_number=2)
                )
            next_num = 1
        except IntegrityError:
            # Another transaction created the row first
            db.session.execute(stmt)
            next_num = _current_number(tenant_id, document_type) - 1

    return f"{prefix}-{next_num:0{pad}d}"


def _current_number(tenant_id: str, document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(tenant_id=tenant_id, document_type=document_type)
        .scalar()
    )
