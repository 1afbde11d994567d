"""Conflict detection and line-item aggregation.

Quantities are grouped by item key (lower-cased item and unit) across all
surviving pages. Groups whose occurrences disagree on value become conflicts
for the estimator to resolve; every group becomes a line item whose total is
the sum of its occurrences, conflicting or not.
"""

from typing import Dict, List, Sequence, Tuple

from takeoff.models.takeoff_models import Conflict, LineItem, Occurrence, PageExtraction, QuantityItem
from takeoff.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _unique(values) -> list:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def group_quantities(
    extractions: Sequence[PageExtraction],
) -> Dict[str, List[Tuple[QuantityItem, Occurrence]]]:
    """Group every quantity by item key, in page order."""
    groups: Dict[str, List[Tuple[QuantityItem, Occurrence]]] = {}
    for page in sorted(extractions, key=lambda p: p.page_number):
        for quantity in page.quantities:
            occurrence = Occurrence(
                page=page.page_number,
                value=quantity.value,
                unit=quantity.unit,
                location=quantity.location or "not specified",
                source=quantity.source or "from plan",
            )
            groups.setdefault(quantity.key, []).append((quantity, occurrence))
    return groups


def detect_conflicts(extractions: Sequence[PageExtraction]) -> List[Conflict]:
    """One Conflict per item key whose occurrences hold more than one value."""
    conflicts: List[Conflict] = []
    for key, entries in group_quantities(extractions).items():
        values = {occurrence.value for _, occurrence in entries}
        if len(values) < 2:
            continue
        item = entries[0][0].item
        conflicts.append(
            Conflict(
                item_key=key,
                item=item,
                issue=f"{item} has different quantities across pages",
                occurrences=[occurrence for _, occurrence in entries],
            )
        )

    if conflicts:
        LOGGER.warning(
            f"Found {len(conflicts)} quantity conflicts",
            extra={"conflict_keys": [c.item_key for c in conflicts]},
        )
    return conflicts


def build_line_items(extractions: Sequence[PageExtraction]) -> List[LineItem]:
    """Aggregate quantities into one LineItem per item key."""
    line_items: List[LineItem] = []
    for entries in group_quantities(extractions).values():
        first = entries[0][0]
        breakdown = [occurrence for _, occurrence in entries]
        line_items.append(
            LineItem(
                item=first.item,
                unit=first.unit,
                total_quantity=sum(o.value for o in breakdown),
                locations=_unique(q.location for q, _ in entries if q.location),
                pages=_unique(o.page for o in breakdown),
                sources=_unique(q.source for q, _ in entries if q.source),
                source_breakdown=breakdown,
            )
        )

    LOGGER.info(f"Built {len(line_items)} line items")
    return line_items
