"""Document context builder (Stage 0).

Reads the leading pages of a drawing set (cover, general notes, legends) and
merges what each page contributes into one ``DocumentContext``.
"""

from typing import Any, Dict, Iterable, List, Tuple

from pydantic import ValidationError

from takeoff.core.inference_client import CONTEXT_OPTIONS, InferenceClient
from takeoff.models.takeoff_models import DetailReference, DocumentContext, LegendItem
from takeoff.prompts.system_prompts import DOCUMENT_CONTEXT_PROMPT
from takeoff.services.pipeline.batch_executor import RateLimitedBatchExecutor
from takeoff.services.rasterizer import PageImages
from takeoff.utils.logging import get_logger
from takeoff.utils.normalization import normalize_text

LOGGER = get_logger(__name__)


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def parse_context_payload(payload: Dict[str, Any]) -> DocumentContext:
    """Build a partial context from one page's response.

    Entries that do not validate are dropped one by one; a payload with
    nothing usable yields an empty context.
    """
    legend_items: List[LegendItem] = []
    for entry in payload.get("legend_items") or []:
        if not isinstance(entry, dict):
            continue
        try:
            legend_items.append(LegendItem.model_validate(entry))
        except ValidationError as e:
            LOGGER.debug(f"Skipping legend entry {entry!r}: {e.error_count()} errors")

    detail_references: List[DetailReference] = []
    for entry in payload.get("detail_references") or []:
        if isinstance(entry, str):
            entry = {"type": entry}
        if not isinstance(entry, dict):
            continue
        try:
            detail_references.append(DetailReference.model_validate(entry))
        except ValidationError as e:
            LOGGER.debug(f"Skipping detail reference {entry!r}: {e.error_count()} errors")

    return DocumentContext(
        document_type=_text(payload.get("document_type")),
        trade=_text(payload.get("trade")),
        project_name=_text(payload.get("project_name")),
        legend_items=legend_items,
        key_specifications=payload.get("key_specifications"),
        detail_references=detail_references,
        standards_referenced=payload.get("standards_referenced"),
    )


def _legend_key(item: LegendItem) -> Tuple[str, str, str]:
    return (
        normalize_text(item.symbol),
        normalize_text(item.meaning),
        normalize_text(item.material or ""),
    )


def _reference_key(reference: DetailReference) -> Tuple[str, str]:
    return normalize_text(reference.type), normalize_text(reference.sheet)


def merge_contexts(partials: Iterable[DocumentContext]) -> DocumentContext:
    """Merge per-page partial contexts into one.

    The first non-empty document_type, trade and project_name win. List
    fields are unioned in first-seen order; strings compare case-insensitively
    and structured entries compare by value.

    Args:
        partials: Partial contexts in page order

    Returns:
        Merged DocumentContext
    """
    document_type = trade = project_name = ""
    legend_items: Dict[Tuple[str, str, str], LegendItem] = {}
    detail_references: Dict[Tuple[str, str], DetailReference] = {}
    key_specifications: Dict[str, str] = {}
    standards_referenced: Dict[str, str] = {}

    for partial in partials:
        document_type = document_type or partial.document_type
        trade = trade or partial.trade
        project_name = project_name or partial.project_name

        for item in partial.legend_items:
            legend_items.setdefault(_legend_key(item), item)
        for reference in partial.detail_references:
            detail_references.setdefault(_reference_key(reference), reference)
        for spec in partial.key_specifications:
            key_specifications.setdefault(normalize_text(spec), spec)
        for standard in partial.standards_referenced:
            standards_referenced.setdefault(normalize_text(standard), standard)

    return DocumentContext(
        document_type=document_type,
        trade=trade,
        project_name=project_name,
        legend_items=list(legend_items.values()),
        key_specifications=list(key_specifications.values()),
        detail_references=list(detail_references.values()),
        standards_referenced=list(standards_referenced.values()),
    )


class DocumentContextBuilder:
    """Builds document-level context from the first pages of a drawing set.

    Attributes:
        inference_client: Adapter over the vision-language service
        executor: Batch executor configured for the context pass
    """

    def __init__(self, inference_client: InferenceClient, executor: RateLimitedBatchExecutor):
        self.inference_client = inference_client
        self.executor = executor

    async def build(
        self,
        pages: PageImages,
        total_pages: int,
        sample_pages: int = 5,
    ) -> DocumentContext:
        """Sample the leading pages and merge their context.

        Args:
            pages: Rendered page source for the document
            total_pages: Page count of the document
            sample_pages: How many leading pages to read

        Returns:
            Merged DocumentContext (possibly empty)
        """
        page_numbers = list(range(1, min(sample_pages, total_pages) + 1))
        if not page_numbers:
            return DocumentContext()

        LOGGER.info(f"Building document context from pages {page_numbers}")

        tasks = [self._make_task(pages, page_number) for page_number in page_numbers]
        partials = await self.executor.run(
            tasks,
            fallback=lambda index: DocumentContext(),
            label="context",
        )

        context = merge_contexts(partials)
        LOGGER.info(
            f"Document context: type='{context.document_type}', trade='{context.trade}', "
            f"{len(context.legend_items)} legend items, "
            f"{len(context.key_specifications)} specifications, "
            f"{len(context.standards_referenced)} standards",
            extra={"project_name": context.project_name},
        )
        return context

    def _make_task(self, pages: PageImages, page_number: int):
        async def task() -> DocumentContext:
            image = pages.get(page_number)
            payload = await self.inference_client.infer(
                DOCUMENT_CONTEXT_PROMPT.substitute(page_number=page_number),
                image=image,
                options=CONTEXT_OPTIONS,
            )
            partial = parse_context_payload(payload)
            if partial.is_empty:
                LOGGER.debug(f"Page {page_number} contributed no document context")
            return partial

        return task
