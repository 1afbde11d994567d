"""Implied-scope appender (Stage 4).

Striping, signage and parking work always carries the same general items
even when no sheet lists them. They are added to the first page's record,
once.
"""

from typing import List, Sequence

from takeoff.models.takeoff_models import PageExtraction, QuantityItem
from takeoff.services.pipeline.material_decision import is_pavement_marking
from takeoff.utils.logging import get_logger
from takeoff.utils.normalization import normalize_text

LOGGER = get_logger(__name__)

IMPLIED_SOURCE = "implied scope"

IMPLIED_ITEMS = (
    "Mobilization",
    "Traffic control / maintenance of traffic",
    "Layout and pre-marking",
    "Final cleanup",
)

IMPLIED_SCOPE_NOTES = (
    "Mobilization and demobilization of crew and equipment",
    "Traffic control during marking operations",
    "Layout and pre-marking before application",
    "Site cleanup and debris removal on completion",
)

SCOPE_KEYWORDS = ("sign", "post", "parking", "ada")


def has_real_scope(extractions: Sequence[PageExtraction]) -> bool:
    """Whether any extracted quantity is striping, signage or parking work."""
    for page in extractions:
        for quantity in page.quantities:
            if quantity.source == IMPLIED_SOURCE:
                continue
            text = normalize_text(quantity.item)
            if is_pavement_marking(text) or any(keyword in text for keyword in SCOPE_KEYWORDS):
                return True
    return False


def append_implied_scope(extractions: Sequence[PageExtraction]) -> List[PageExtraction]:
    """Add the implied items to the lowest-numbered page.

    Items already present (by item key) are not added again, so running the
    stage twice changes nothing.

    Args:
        extractions: Enriched page records

    Returns:
        New list of records; unchanged when there is no real scope
    """
    pages = list(extractions)
    if not pages or not has_real_scope(pages):
        LOGGER.info("No striping, signage or parking scope found; skipping implied scope")
        return pages

    target_index = min(range(len(pages)), key=lambda i: pages[i].page_number)
    target = pages[target_index]

    existing_keys = {q.key for page in pages for q in page.quantities}
    additions = [
        QuantityItem(item=name, value=1, unit="LS", source=IMPLIED_SOURCE)
        for name in IMPLIED_ITEMS
    ]
    additions = [q for q in additions if q.key not in existing_keys]
    if not additions:
        return pages

    existing_scope = {normalize_text(s) for s in target.scope_items}
    notes = [n for n in IMPLIED_SCOPE_NOTES if normalize_text(n) not in existing_scope]

    pages[target_index] = target.model_copy(
        update={
            "quantities": list(target.quantities) + additions,
            "scope_items": list(target.scope_items) + notes,
        }
    )
    LOGGER.info(
        f"Added {len(additions)} implied scope items to page {target.page_number}",
        extra={"items": [q.item for q in additions]},
    )
    return pages
