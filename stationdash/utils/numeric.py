"""
Numeric coercion for dirty, locale-formatted sensor values.

Station exports mix comma decimals, unit suffixes, sentinel strings and
typographic minus signs. Everything funnels through ``to_number`` so a CSV
cell and a nested device API field are treated the same way.
"""

import math
import re
from typing import Any, Optional

NULL_SENTINELS = frozenset({"--", "-", "n/a", "", "null", "nan"})

_NON_NUMERIC = re.compile(r"[^0-9+\-.]")
_UNICODE_MINUS = "−"


def to_number(value: Any) -> Optional[float]:
    """
    Coerce a raw value to a float, or None when it carries no number.

    Never raises. Dicts shaped like ``{"value": ..., "unit": ...}`` (as
    returned by the device API) are unwrapped first.

    Args:
        value: CSV cell, JSON scalar or device API field

    Returns:
        Parsed float or None

    Example:
        >>> to_number("23,5")
        23.5
        >>> to_number("−3.2")
        -3.2
        >>> to_number("12 mm")
        12.0
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        return to_number(value.get("value"))
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    text = str(value).strip()
    if text.lower() in NULL_SENTINELS:
        return None

    text = text.replace(",", ".").replace(_UNICODE_MINUS, "-")
    text = _NON_NUMERIC.sub("", text)
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None
