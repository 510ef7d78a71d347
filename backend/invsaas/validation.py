from __future__ import annotations

from typing import Any

from .errors import ValidationError


# Maximum money value: $9,999,999.99 (999,999,999 cents)
MAX_CENTS = 999_999_999


def coerce_int(value: Any, field: str, *, required: bool = True, minimum: int | None = None) -> int | None:
    """
    Strict integer coercion for JSON input.

    Accepts ints and plain-digit strings. Rejects bools, floats, decimals and
    scientific notation ("1e3"), so a quantity can never be silently truncated.
    """
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={field: result})
    return result


def coerce_cents(value: Any, field: str, *, required: bool = False) -> int | None:
    result = coerce_int(value, field, required=required, minimum=0)
    if result is not None and result > MAX_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_CENTS}")
    return result


def coerce_line_items(raw: Any, *, id_fields: tuple[str, ...], quantity_field: str = "quantity") -> list[dict]:
    """Normalize a JSON list of line items, coercing ids, quantity and price."""
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")

    items = []
    for line_no, entry in enumerate(raw, start=1):
        if not isinstance(entry, dict):
            raise ValidationError("Each item must be an object", details={"line": line_no})
        item = {name: coerce_int(entry.get(name), name) for name in id_fields}
        item[quantity_field] = coerce_int(entry.get(quantity_field), quantity_field, minimum=1)
        if "unit_price_cents" in entry:
            item["unit_price_cents"] = coerce_cents(entry.get("unit_price_cents"), "unit_price_cents")
        items.append(item)
    return items
