"""Key normalization helpers shared by the reconciliation stages."""

import re
from typing import Optional

_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: Optional[str]) -> str:
    """Lower-case and collapse whitespace for equality comparisons."""
    if not value:
        return ""
    return _WHITESPACE.sub(" ", str(value).strip().lower())


def item_key(item: str, unit: str) -> str:
    """Build the grouping key for a quantity.

    Two quantities with the same key describe the same kind of work.

    Example:
        >>> item_key("Parking Stalls", "EA")
        'parking stalls_ea'
    """
    return f"{normalize_text(item)}_{normalize_text(unit)}"


def detail_key(type_designation: Optional[str], detail_number: Optional[str] = None) -> str:
    """Build the DetailSpec map key, falling back to the detail number."""
    return normalize_text(type_designation) or normalize_text(detail_number)
