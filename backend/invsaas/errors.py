# Overview: Error taxonomy shared by the stock engine, workflows and routes.

"""
Inventory error hierarchy.

Every error carries a human-readable message plus a ``details`` dict with the
context an upstream caller needs to render an actionable message (entity ids,
SKU, requested quantity, current stock). ``status_code`` is the HTTP
equivalent used by the route layer.

Business-rule errors are raised from inside a unit of work and abort it; they
are never retried. ConcurrencyConflictError is raised only after the retry
budget is exhausted.
"""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for all stock-core errors."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(InventoryError):
    """Malformed input (empty item list, unknown status string, bad number)."""


class NotFoundError(InventoryError):
    """Entity missing or not owned by the calling tenant."""
    status_code = 404


class InvalidMovementError(InventoryError):
    """Unrecognised movement type, quantity or direction."""


class InsufficientStockError(InventoryError):
    """Mutation would drive a variant's stock below zero."""


class ExceedsOrderedError(InventoryError):
    """Receipt exceeds the quantity still outstanding on a PO line."""


class InvalidStateError(InventoryError):
    """Operation not allowed in the entity's current lifecycle state."""


class ConcurrencyConflictError(InventoryError):
    """Concurrent modification detected and retries were exhausted."""
    status_code = 409


class InternalError(InventoryError):
    """Storage or transaction failure."""
    status_code = 500
