from __future__ import annotations

from typing import Any

from .errors import ValidationError


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for request values (cents, quantities, ids).

    Accepts ints and plain digit strings with an optional leading minus.
    Floats are rejected even when integral: money is carried in cents and a
    fractional amount means the caller sent the wrong unit.
    """
    # bool is a subclass of int
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
        if 'e' in stripped.lower():
            raise ValidationError(
                f"{field} must be a plain integer (scientific notation not allowed)", details={"field": field}
            )
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", details={"field": field})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", details={"field": field})
    raise ValidationError(f"{field} must be an integer", details={"field": field})
