from __future__ import annotations
from decimal import Decimal, InvalidOperation

ZERO = Decimal("0")

def dec(x, default: Decimal | None = None) -> Decimal:
    """Coerce wire values (int, float, str, Decimal) without float drift."""
    if isinstance(x, Decimal):
        return x
    if x is None or x == "":
        if default is None:
            raise ValueError("quantity required")
        return default
    try:
        return Decimal(str(x))
    except InvalidOperation:
        raise ValueError(f"not a number: {x!r}") from None

def fmt_qty(x: Decimal) -> str:
    """10.000 -> '10', 2.50 -> '2.5'."""
    return f"{dec(x).normalize():f}"

def to_wire(x: Decimal) -> int | float | str:
    """JSON-ready quantity that keeps the exact decimal digits.

    Whole numbers go out as ints. Fractions go out as floats only when the
    float's shortest repr (what ``json`` writes) spells the same value;
    anything longer is sent as a numeric string.
    """
    d = dec(x)
    if d == d.to_integral_value():
        return int(d)
    f = float(d)
    if Decimal(repr(f)) == d:
        return f
    return str(d)
