"""Shared utility functions used across DealDesk modules."""
from __future__ import annotations

import json
from typing import Any

_MISSING = object()


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    """Safely parse a JSON string, returning *default* on failure.

    If no default is given, returns ``{}`` on parse error.
    """
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def percentage(numerator: int, denominator: int) -> int:
    """Whole-number percentage, halves rounded up; 0 for an empty denominator.

    Rounds ``100 * n / d``; computing ``(n / d) * 100`` first can land one
    lower at float half-boundaries (29/200 gives 15 here, 14 that way).
    """
    if denominator <= 0:
        return 0
    return int(100 * numerator / denominator + 0.5)
