"""Deduplication engine (Stage 2.5).

Some drawing sets contain the same sheet twice. The comparator model proposes
groups of identical pages from compact summaries; a page is only dropped when
the model is highly confident AND the page's quantities match the kept page
exactly. Anything short of that keeps both pages.
"""

import json
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from takeoff.core.inference_client import DEDUP_OPTIONS, InferenceClient
from takeoff.models.takeoff_models import DedupReport, PageExtraction
from takeoff.prompts.system_prompts import DUPLICATE_DETECTION_PROMPT
from takeoff.services.pipeline.batch_executor import RateLimitedBatchExecutor
from takeoff.utils.logging import get_logger
from takeoff.utils.normalization import normalize_text

LOGGER = get_logger(__name__)

MAX_SAMPLE_ITEMS = 5
HIGH_CONFIDENCE_LABELS = {"high", "very high", "certain"}
HIGH_CONFIDENCE_SCORE = 90


def build_page_summaries(extractions: Sequence[PageExtraction]) -> List[Dict[str, Any]]:
    """Compact per-page summaries for the comparator prompt."""
    return [
        {
            "page": page.page_number,
            "page_type": page.page_type,
            "item_count": len(page.quantities),
            "sample_items": [
                f"{q.item}: {q.value:g} {q.unit}" + (f" ({q.location})" if q.location else "")
                for q in page.quantities[:MAX_SAMPLE_ITEMS]
            ],
        }
        for page in extractions
    ]


def _is_high_confidence(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value >= HIGH_CONFIDENCE_SCORE
    return normalize_text(str(value or "")) in HIGH_CONFIDENCE_LABELS


def _page_numbers(value: Any) -> List[int]:
    numbers: List[int] = []
    for entry in value if isinstance(value, list) else []:
        try:
            number = int(entry)
        except (TypeError, ValueError):
            continue
        if number not in numbers:
            numbers.append(number)
    return numbers


def _quantity_signature(page: PageExtraction) -> Counter:
    return Counter(
        (normalize_text(q.item), q.value, normalize_text(q.unit)) for q in page.quantities
    )


def is_verified_duplicate(candidate: PageExtraction, kept: PageExtraction) -> bool:
    """Whether ``candidate`` is an exact re-scan of ``kept``.

    Requires the same page type and the same non-empty multiset of
    (item, value, unit) quantities.
    """
    if candidate.page_number == kept.page_number:
        return False
    if not candidate.quantities or not kept.quantities:
        return False
    if normalize_text(candidate.page_type) != normalize_text(kept.page_type):
        return False
    return _quantity_signature(candidate) == _quantity_signature(kept)


def select_pages_to_remove(
    response: Dict[str, Any],
    extractions: Sequence[PageExtraction],
) -> Tuple[List[int], int]:
    """Decide which pages to drop from a comparator response.

    Returns:
        (pages to remove, number of groups with at least one verified duplicate)
    """
    by_page = {page.page_number: page for page in extractions}
    to_remove: Set[int] = set()
    kept_pages: Set[int] = set()
    verified_groups = 0

    groups = response.get("duplicate_groups")
    for group in groups if isinstance(groups, list) else []:
        if not isinstance(group, dict):
            continue
        pages = [p for p in _page_numbers(group.get("pages")) if p in by_page]
        if len(pages) < 2:
            continue
        if not _is_high_confidence(group.get("confidence")):
            LOGGER.info(
                f"Keeping pages {pages}: duplicate confidence '{group.get('confidence')}' is not high"
            )
            continue

        try:
            keep = int(group.get("keep"))
        except (TypeError, ValueError):
            keep = min(pages)
        if keep not in pages or keep in to_remove:
            keep = next((p for p in sorted(pages) if p not in to_remove), None)
        if keep is None:
            continue

        kept_pages.add(keep)
        removed_from_group = False
        for page_number in pages:
            if page_number == keep or page_number in kept_pages:
                continue
            if is_verified_duplicate(by_page[page_number], by_page[keep]):
                to_remove.add(page_number)
                removed_from_group = True
            else:
                LOGGER.info(
                    f"Keeping page {page_number}: quantities differ from page {keep}"
                )
        if removed_from_group:
            verified_groups += 1

    # pages_to_remove outside a verified high-confidence group are ignored
    listed = set(_page_numbers(response.get("pages_to_remove")))
    ignored = listed - to_remove
    if ignored:
        LOGGER.debug(f"Ignoring unverified removal candidates {sorted(ignored)}")

    return sorted(to_remove), verified_groups


class DeduplicationEngine:
    """Conservative detector of pages that are re-scans of the same sheet.

    Attributes:
        inference_client: Adapter over the vision-language service
        executor: Batch executor used for the single comparator call
    """

    def __init__(self, inference_client: InferenceClient, executor: RateLimitedBatchExecutor):
        self.inference_client = inference_client
        self.executor = executor

    async def deduplicate(
        self,
        extractions: Sequence[PageExtraction],
    ) -> Tuple[List[PageExtraction], DedupReport]:
        """Remove whole pages that duplicate another page.

        Args:
            extractions: Stage 2 output

        Returns:
            (surviving extractions in original order, report)
        """
        items_before = sum(len(page.quantities) for page in extractions)
        report = DedupReport(
            pages_analyzed=len(extractions),
            items_before=items_before,
            items_after=items_before,
        )

        if len([p for p in extractions if p.quantities]) < 2:
            report.skipped_reason = "fewer than two pages with quantities"
            LOGGER.info("Skipping deduplication: fewer than two pages with quantities")
            return list(extractions), report

        prompt = DUPLICATE_DETECTION_PROMPT.substitute(
            page_summaries=json.dumps(build_page_summaries(extractions), indent=2)
        )

        async def compare() -> Optional[Dict[str, Any]]:
            return await self.inference_client.infer(prompt, options=DEDUP_OPTIONS)

        responses = await self.executor.run([compare], fallback=lambda index: None, label="dedup")
        response = responses[0]
        if not response:
            report.skipped_reason = "duplicate detection unavailable"
            LOGGER.warning("Duplicate detection returned nothing, keeping all pages")
            return list(extractions), report

        pages_to_remove, verified_groups = select_pages_to_remove(response, extractions)
        survivors = [page for page in extractions if page.page_number not in pages_to_remove]

        report.duplicates_found = verified_groups
        report.pages_removed = pages_to_remove
        report.items_after = sum(len(page.quantities) for page in survivors)

        if pages_to_remove:
            LOGGER.info(
                f"Removed duplicate pages {pages_to_remove}: "
                f"{report.items_before} -> {report.items_after} items",
                extra=report.model_dump(),
            )
        else:
            LOGGER.info("No duplicate pages removed")
        return survivors, report
