"""
Field helpers for loosely-shaped upstream JSON.

Upstream payloads change key names between versions, nest the
same value at different depths and send null where a number is
expected. These helpers turn that into plain Python values
without ever raising.
"""

import math
from typing import Any, Iterable, Optional


def dig(data: Any, path: str) -> Any:
    """Follow a dotted path through nested dicts; None when absent."""
    current = data
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part, None)
        if current is None:
            return None
    return current


def first_present(data: Any, *paths: str, default: Any = None) -> Any:
    """First dotted path whose value is not None."""
    for path in paths:
        value = dig(data, path)
        if value is not None:
            return value
    return default


def first_truthy(data: Any, *paths: str, default: Any = None) -> Any:
    """First dotted path whose value is truthy."""
    for path in paths:
        value = dig(data, path)
        if value:
            return value
    return default


def as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def as_dicts(value: Any) -> list[dict[str, Any]]:
    """List entries that are dicts; everything else dropped."""
    return [item for item in as_list(value) if isinstance(item, dict)]


def as_strings(value: Any) -> list[str]:
    """List entries rendered as strings; None dropped."""
    return [str(item) for item in as_list(value) if item is not None]


def as_number(value: Any, default: float = 0) -> float:
    """Numeric value or default. Numeric strings are accepted."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return default
        return value
    if isinstance(value, str):
        try:
            parsed = float(value.strip().rstrip("%"))
        except ValueError:
            return default
        if math.isnan(parsed) or math.isinf(parsed):
            return default
        return int(parsed) if parsed.is_integer() else parsed
    return default


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives, matching display rounding."""
    return int(math.floor(value + 0.5))


def format_number(value: float) -> str:
    """Render 75.0 as '75' and 75.5 as '75.5'."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_currency(value: Any) -> str:
    """$1.2B / $3.4M / $12K / $999."""
    amount = as_number(value)
    if amount >= 1e9:
        return f"${amount / 1e9:.1f}B"
    if amount >= 1e6:
        return f"${amount / 1e6:.1f}M"
    if amount >= 1e3:
        return f"${amount / 1e3:.0f}K"
    return f"${format_number(amount)}"


def truncate(text: Any, limit: int) -> str:
    """At most `limit` characters; numbers rendered, other non-strings empty."""
    if isinstance(text, bool) or not isinstance(text, (str, int, float)):
        return ""
    return str(text)[:limit]


def percent_of(count: int, total: int) -> int:
    return round_half_up(count / total * 100) if total else 0


def count_where(values: Iterable[Any], predicate) -> int:
    return sum(1 for value in values if predicate(value))
