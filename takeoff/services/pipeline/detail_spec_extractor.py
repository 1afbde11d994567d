"""Detail spec extractor (Stage 0.5).

Detail sheets define type designations ("Type A Island", "Detail 5/C-5.1")
with their dimensions and material. Later stages look items up by type, so
the output is a map keyed by the normalized designation.
"""

from typing import Any, Dict, Iterable, List, Sequence

from pydantic import ValidationError

from takeoff.core.inference_client import DETAIL_OPTIONS, InferenceClient
from takeoff.models.takeoff_models import DetailSpec, PageScanResult
from takeoff.prompts.system_prompts import DETAIL_SPEC_PROMPT
from takeoff.services.pipeline.batch_executor import RateLimitedBatchExecutor
from takeoff.services.rasterizer import PageImages
from takeoff.utils.logging import get_logger
from takeoff.utils.normalization import detail_key

LOGGER = get_logger(__name__)

_SPEC_FIELDS = ("dimensions", "material", "thickness", "color")


def parse_detail_payload(payload: Dict[str, Any], page_number: int) -> List[DetailSpec]:
    """Validate the details listed in one page's response.

    Entries without a type designation or a detail number are dropped.
    """
    raw_details = payload.get("details")
    if raw_details is None and ("type_designation" in payload or "detail_number" in payload):
        raw_details = [payload]

    specs: List[DetailSpec] = []
    for entry in raw_details or []:
        if not isinstance(entry, dict):
            continue

        data = {
            "type_designation": str(entry.get("type_designation") or entry.get("type") or "").strip(),
            "detail_number": str(entry.get("detail_number") or "").strip(),
            "source_page": page_number,
        }
        for field in _SPEC_FIELDS:
            value = entry.get(field)
            if value not in (None, ""):
                data[field] = str(value).strip()

        if not detail_key(data["type_designation"], data["detail_number"]):
            continue
        try:
            specs.append(DetailSpec.model_validate(data))
        except ValidationError as e:
            LOGGER.debug(f"Skipping detail on page {page_number}: {e.error_count()} errors")

    return specs


def merge_detail_specs(batches: Iterable[Sequence[DetailSpec]]) -> Dict[str, DetailSpec]:
    """Merge per-page detail lists into one map; the first spec for a key wins."""
    merged: Dict[str, DetailSpec] = {}
    for specs in batches:
        for spec in specs:
            key = detail_key(spec.type_designation, spec.detail_number)
            if key and key not in merged:
                merged[key] = spec
    return merged


def select_detail_pages(scan_results: Iterable[PageScanResult]) -> List[int]:
    """Relevant pages whose page type or summary mentions a detail."""
    return [
        result.page_number
        for result in scan_results
        if result.relevant and result.mentions_detail
    ]


class DetailSpecExtractor:
    """Extracts keyed detail specifications from detail sheets.

    Attributes:
        inference_client: Adapter over the vision-language service
        executor: Batch executor configured for the detail pass
    """

    def __init__(self, inference_client: InferenceClient, executor: RateLimitedBatchExecutor):
        self.inference_client = inference_client
        self.executor = executor

    async def extract(self, pages: PageImages, page_numbers: Sequence[int]) -> Dict[str, DetailSpec]:
        """Extract detail specs from the given detail pages.

        Args:
            pages: Rendered page source for the document
            page_numbers: Detail sheet page numbers

        Returns:
            Map of normalized type designation to DetailSpec; empty when
            there are no detail sheets
        """
        if not page_numbers:
            LOGGER.info("No detail sheets found, continuing without detail specs")
            return {}

        LOGGER.info(f"Extracting detail specs from pages {list(page_numbers)}")

        tasks = [self._make_task(pages, page_number) for page_number in page_numbers]
        per_page = await self.executor.run(tasks, fallback=lambda index: [], label="details")

        detail_specs = merge_detail_specs(per_page)
        LOGGER.info(
            f"Extracted {len(detail_specs)} detail specs",
            extra={"detail_keys": list(detail_specs.keys())},
        )
        return detail_specs

    def _make_task(self, pages: PageImages, page_number: int):
        async def task() -> List[DetailSpec]:
            payload = await self.inference_client.infer(
                DETAIL_SPEC_PROMPT.substitute(page_number=page_number),
                image=pages.get(page_number),
                options=DETAIL_OPTIONS,
            )
            return parse_detail_payload(payload, page_number)

        return task
