"""Deep extractor (Stage 2).

One high-detail call per relevant page, prompted with everything learned so
far: the merged document context and the detail spec map. Failed pages come
back as empty sentinel records so the rest of the pipeline never has to
special-case them.
"""

import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from takeoff.core.inference_client import EXTRACTION_OPTIONS, InferenceClient
from takeoff.models.takeoff_models import (
    DetailSpec,
    DocumentContext,
    MaterialEntry,
    PageExtraction,
    PageScanResult,
    QuantityItem,
    UNKNOWN_PAGE_TYPE,
)
from takeoff.prompts.system_prompts import DEEP_EXTRACTION_PROMPT
from takeoff.services.pipeline.batch_executor import RateLimitedBatchExecutor
from takeoff.services.rasterizer import PageImages
from takeoff.utils.logging import get_logger

LOGGER = get_logger(__name__)

_NONE_AVAILABLE = "None available."


def render_document_context(context: DocumentContext) -> str:
    if context.is_empty:
        return _NONE_AVAILABLE
    return json.dumps(context.model_dump(exclude_defaults=True), indent=2)


def render_detail_specs(detail_specs: Mapping[str, DetailSpec]) -> str:
    if not detail_specs:
        return _NONE_AVAILABLE
    return json.dumps(
        {key: spec.model_dump(exclude_none=True) for key, spec in detail_specs.items()},
        indent=2,
    )


def build_extraction_prompt(
    page_number: int,
    context: DocumentContext,
    detail_specs: Mapping[str, DetailSpec],
) -> str:
    return DEEP_EXTRACTION_PROMPT.substitute(
        page_number=page_number,
        document_context=render_document_context(context),
        detail_specs=render_detail_specs(detail_specs),
    )


def _validated_entries(raw: Any, model, page_number: int, kind: str) -> List[Any]:
    """Validate list entries one at a time, dropping the ones that fail."""
    if not isinstance(raw, list):
        return []

    entries = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        try:
            entries.append(model.model_validate(entry))
        except ValidationError as e:
            LOGGER.debug(
                f"Page {page_number}: dropping invalid {kind} {entry!r}",
                extra={"errors": e.error_count()},
            )
    return entries


def parse_extraction_payload(
    payload: Dict[str, Any],
    page_number: int,
    content_summary: Optional[str] = None,
) -> PageExtraction:
    """Build a PageExtraction from one (already unwrapped) response.

    An empty payload or one that does not validate as a whole yields the
    sentinel record.
    """
    if not payload:
        return PageExtraction.sentinel(page_number, content_summary)

    try:
        return PageExtraction(
            page_number=page_number,
            page_type=str(payload.get("page_type") or "").strip() or UNKNOWN_PAGE_TYPE,
            quantities=_validated_entries(payload.get("quantities"), QuantityItem, page_number, "quantity"),
            materials=_validated_entries(payload.get("materials"), MaterialEntry, page_number, "material"),
            scope_items=payload.get("scope_items"),
            specifications=payload.get("specifications"),
            notes=payload.get("notes"),
            cross_references=payload.get("cross_references"),
            content_summary=content_summary or "",
        )
    except ValidationError as e:
        LOGGER.warning(f"Page {page_number}: extraction failed validation, using empty record: {e}")
        return PageExtraction.sentinel(page_number, content_summary)


def summarize_extractions(extractions: Sequence[PageExtraction]) -> Dict[str, int]:
    """Count what was extracted across pages and log it."""
    summary = {
        "quantities": sum(len(p.quantities) for p in extractions),
        "materials": sum(len(p.materials) for p in extractions),
        "scope_items": sum(len(p.scope_items) for p in extractions),
        "specifications": sum(len(p.specifications) for p in extractions),
        "notes": sum(len(p.notes) for p in extractions),
    }

    LOGGER.info(
        f"Extraction summary: {summary['quantities']} quantities, "
        f"{summary['materials']} materials, {summary['scope_items']} scope items, "
        f"{summary['specifications']} specifications, {summary['notes']} notes",
        extra=summary,
    )
    if summary["quantities"] == 0 and summary["materials"] == 0:
        LOGGER.warning("No quantifiable data extracted")
    return summary


class DeepExtractor:
    """Expensive per-page extraction pass.

    Attributes:
        inference_client: Adapter over the vision-language service
        executor: Batch executor configured for the extraction pass
        max_pages: Only the first ``max_pages`` relevant pages are extracted
    """

    def __init__(
        self,
        inference_client: InferenceClient,
        executor: RateLimitedBatchExecutor,
        max_pages: int = 10,
    ):
        self.inference_client = inference_client
        self.executor = executor
        self.max_pages = max_pages

    async def extract(
        self,
        pages: PageImages,
        relevant_pages: Sequence[PageScanResult],
        context: DocumentContext,
        detail_specs: Mapping[str, DetailSpec],
    ) -> List[PageExtraction]:
        """Extract every selected relevant page.

        Args:
            pages: Rendered page source for the document
            relevant_pages: Stage 1 results flagged relevant, in scan order
            context: Merged document context
            detail_specs: Detail spec map from Stage 0.5

        Returns:
            One PageExtraction per selected page; failed pages are sentinels
        """
        selected = list(relevant_pages[: self.max_pages])
        if len(relevant_pages) > self.max_pages:
            LOGGER.info(
                f"Limiting extraction to {self.max_pages} of {len(relevant_pages)} relevant pages"
            )
        if not selected:
            LOGGER.warning("No relevant pages to extract")
            return []

        LOGGER.info(f"Extracting {len(selected)} pages: {[p.page_number for p in selected]}")

        tasks = [self._make_task(pages, scan, context, detail_specs) for scan in selected]
        extractions = await self.executor.run(
            tasks,
            fallback=lambda index: PageExtraction.sentinel(
                selected[index].page_number, selected[index].summary
            ),
            label="extract",
        )

        return extractions

    def _make_task(
        self,
        pages: PageImages,
        scan: PageScanResult,
        context: DocumentContext,
        detail_specs: Mapping[str, DetailSpec],
    ):
        prompt = build_extraction_prompt(scan.page_number, context, detail_specs)

        async def task() -> PageExtraction:
            payload = await self.inference_client.infer(
                prompt,
                image=pages.get(scan.page_number),
                options=EXTRACTION_OPTIONS,
            )
            extraction = parse_extraction_payload(payload, scan.page_number, scan.summary)
            if extraction.quantities:
                sample = extraction.quantities[0]
                LOGGER.debug(
                    f"Page {scan.page_number}: {len(extraction.quantities)} quantities "
                    f"(e.g. {sample.value:g} {sample.unit} {sample.item})"
                )
            return extraction

        return task
