# barpos/money.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")


def to_cents(val: Any) -> Optional[int]:
    """'5', '5.00', '5,00', 5.0 -> 500. None se non interpretabile."""
    if val is None or isinstance(val, bool):
        return None
    try:
        if isinstance(val, str):
            v = val.strip().replace("€", "").replace(",", ".")
            dec = Decimal(v)
        else:
            dec = Decimal(str(val))
    except (InvalidOperation, ValueError):
        return None
    if not dec.is_finite():
        return None
    return int((dec * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def fmt_cents(cents: Optional[int]) -> str:
    return str((Decimal(int(cents or 0)) / 100).quantize(CENT))
