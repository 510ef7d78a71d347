# Overview: Request decorators establishing tenant context and mapping core errors.

from functools import wraps
from flask import current_app, g, jsonify, request

from .errors import InventoryError


TENANT_HEADER = "X-Tenant-ID"
USER_HEADER = "X-User-ID"


def require_tenant(f):
    """
    Establish tenant context from upstream-verified headers.

    MULTI-TENANT: Authentication and membership checks happen upstream (API
    gateway). This decorator only requires that they ran and sets:
    - g.tenant_id: the tenant every service call is scoped to
    - g.user_id: the operator recorded as performed_by on stock movements
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant_id = (request.headers.get(TENANT_HEADER) or "").strip()
        if not tenant_id:
            return jsonify({"error": "Tenant context required"}), 401

        g.tenant_id = tenant_id
        g.user_id = (request.headers.get(USER_HEADER) or "").strip() or "system"

        return f(*args, **kwargs)

    return decorated_function


def handle_inventory_errors(action: str):
    """
    Map InventoryError subclasses to JSON responses.

    Unexpected exceptions are logged and reported as 500 without leaking
    internals.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except InventoryError as e:
                if e.status_code >= 500:
                    current_app.logger.error("%s failed: %s", action, e.message)
                return jsonify(e.to_dict()), e.status_code
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator


def get_notifier():
    return current_app.extensions.get("invsaas.notifier")
