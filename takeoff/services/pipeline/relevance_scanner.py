"""Relevance scanner (Stage 1).

A cheap, low-detail pass over an even sample of the document. Each sampled
page is classified against the topic taxonomy; the verdict leans toward
marking pages relevant since a missed page loses quantities while an extra
page only costs one more extraction call.
"""

import math
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from takeoff.config.topics import TOPICS, TopicTaxonomy
from takeoff.core.inference_client import SCAN_OPTIONS, InferenceClient
from takeoff.models.takeoff_models import UNKNOWN_PAGE_TYPE, PageScanResult
from takeoff.prompts.system_prompts import RELEVANCE_SCAN_PROMPT
from takeoff.services.pipeline.batch_executor import RateLimitedBatchExecutor
from takeoff.services.rasterizer import PageImages
from takeoff.utils.logging import get_logger
from takeoff.utils.normalization import normalize_text

LOGGER = get_logger(__name__)

SCAN_FAILED_SUMMARY = "Scan failed"
DEFAULT_RELEVANT_CONFIDENCE = 70


def sample_page_numbers(total_pages: int, samples_to_take: int) -> List[int]:
    """Pick pages evenly across the document, always including the last.

    Example:
        >>> sample_page_numbers(4, 30)
        [1, 2, 3, 4]
        >>> sample_page_numbers(10, 4)
        [1, 4, 6, 10]
    """
    if total_pages <= 0 or samples_to_take <= 0:
        return []
    if total_pages <= samples_to_take:
        return list(range(1, total_pages + 1))

    interval = total_pages / samples_to_take
    samples: List[int] = []
    for i in range(samples_to_take):
        # Round half up
        page_number = int(math.floor(1 + interval * i + 0.5))
        if page_number <= total_pages and page_number not in samples:
            samples.append(page_number)

    if total_pages not in samples:
        samples[-1] = total_pages
    return samples


def build_topic_details(taxonomy: TopicTaxonomy, keywords_per_topic: int = 5) -> str:
    """Render the taxonomy as prompt lines, e.g. ``- Striping: Look for stripe, ...``."""
    return "\n".join(
        f"- {topic.label}: Look for {', '.join(topic.keywords[:keywords_per_topic])}"
        for topic in taxonomy.values()
    )


def keyword_scores(text: str, taxonomy: TopicTaxonomy) -> Dict[str, float]:
    """Score each topic by the share of its keywords found in ``text``.

    A topic scores ``min(matches / len(keywords) * 2, 1)``; topics with no
    match are left out.
    """
    haystack = normalize_text(text)
    if not haystack:
        return {}

    scores: Dict[str, float] = {}
    for key, topic in taxonomy.items():
        if not topic.keywords:
            continue
        matches = sum(1 for keyword in topic.keywords if normalize_text(keyword) in haystack)
        if matches:
            scores[key] = round(min(matches / len(topic.keywords) * 2, 1.0), 2)
    return scores


def normalize_topics(topics: Iterable[Any], taxonomy: TopicTaxonomy) -> List[str]:
    """Map reported topic names onto taxonomy keys.

    A name matches a key by the key itself (underscores read as spaces) or by
    the topic label. Names outside the taxonomy are dropped.
    """
    lookup: Dict[str, str] = {}
    for key, topic in taxonomy.items():
        lookup[normalize_text(key)] = key
        lookup[normalize_text(key.replace("_", " "))] = key
        lookup[normalize_text(topic.label)] = key

    normalized: List[str] = []
    for topic in topics:
        name = normalize_text(str(topic)) if topic is not None else ""
        if not name:
            continue
        resolved = lookup.get(name)
        if resolved is not None and resolved not in normalized:
            normalized.append(resolved)
    return normalized


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


_FALSE_STRINGS = {"false", "no", "n", "0", "none", "null", ""}


def _coerce_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _coerce_confidence(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip().rstrip("%"))
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    if 0 < number <= 1:
        number *= 100
    return int(max(0, min(100, round(number))))


def parse_scan_payload(
    payload: Dict[str, Any],
    page_number: int,
    taxonomy: TopicTaxonomy,
) -> PageScanResult:
    """Turn one scan response into a PageScanResult.

    The page is relevant when the model says so and names at least one
    topic, or when the keywords it reports match taxonomy keywords.
    """
    topics = normalize_topics(_as_list(payload.get("topics_found") or payload.get("topics")), taxonomy)
    keywords = [str(k).strip() for k in _as_list(payload.get("keywords_found")) if str(k).strip()]
    page_type = str(payload.get("page_type") or "").strip() or UNKNOWN_PAGE_TYPE
    summary = str(payload.get("brief_description") or payload.get("summary") or "").strip()
    confidence = _coerce_confidence(payload.get("confidence"))

    model_relevant = _coerce_flag(payload.get("relevant")) and bool(topics)

    scores = keyword_scores(" | ".join(keywords), taxonomy)
    backstop_relevant = bool(scores)

    relevant = model_relevant or backstop_relevant
    if relevant:
        for key in scores:
            if key not in topics:
                topics.append(key)
        if not confidence:
            confidence = (
                int(round(max(scores.values()) * 100)) if scores and not model_relevant
                else DEFAULT_RELEVANT_CONFIDENCE
            )
        if not summary:
            summary = f"{page_type}: {', '.join(topics)}"
        if not model_relevant:
            LOGGER.info(
                f"Page {page_number} marked relevant by keyword match",
                extra={"keywords": keywords, "topics": topics},
            )

    return PageScanResult(
        page_number=page_number,
        relevant=relevant,
        topics=topics if relevant else [],
        matched_keywords=keywords,
        confidence=confidence or 0,
        page_type=page_type,
        summary=summary,
    )


class RelevanceScanner:
    """Cheap relevance pass over sampled pages.

    Attributes:
        inference_client: Adapter over the vision-language service
        executor: Batch executor configured for the scan pass
        max_scan_pages: Upper bound on sampled pages
    """

    def __init__(
        self,
        inference_client: InferenceClient,
        executor: RateLimitedBatchExecutor,
        max_scan_pages: int = 30,
    ):
        self.inference_client = inference_client
        self.executor = executor
        self.max_scan_pages = max_scan_pages

    async def scan(
        self,
        pages: PageImages,
        total_pages: int,
        taxonomy: Optional[TopicTaxonomy] = None,
    ) -> List[PageScanResult]:
        """Scan a stride sample of the document.

        Args:
            pages: Rendered page source for the document
            total_pages: Page count of the document
            taxonomy: Topic taxonomy; the default taxonomy when None

        Returns:
            One result per sampled page in sample order; pages whose scan
            failed are returned as not relevant
        """
        taxonomy = taxonomy or TOPICS
        page_numbers = sample_page_numbers(total_pages, min(total_pages, self.max_scan_pages))
        LOGGER.info(
            f"Scanning {len(page_numbers)} of {total_pages} pages for {len(taxonomy)} topics",
            extra={"pages": page_numbers},
        )

        prompt = RELEVANCE_SCAN_PROMPT.substitute(topic_details=build_topic_details(taxonomy))
        tasks = [self._make_task(pages, page_number, prompt, taxonomy) for page_number in page_numbers]

        results = await self.executor.run(
            tasks,
            fallback=lambda index: PageScanResult(
                page_number=page_numbers[index],
                relevant=False,
                summary=SCAN_FAILED_SUMMARY,
            ),
            label="scan",
        )

        relevant = [r for r in results if r.relevant]
        LOGGER.info(f"Scan complete: {len(relevant)}/{len(results)} pages relevant")
        if relevant:
            topic_counts = Counter(topic for r in relevant for topic in r.topics)
            LOGGER.info(f"Topics found: {dict(topic_counts)}")
        return results

    def _make_task(self, pages: PageImages, page_number: int, prompt: str, taxonomy: TopicTaxonomy):
        async def task() -> PageScanResult:
            payload = await self.inference_client.infer(
                prompt,
                image=pages.get(page_number),
                options=SCAN_OPTIONS,
            )
            if not payload:
                LOGGER.debug(f"Page {page_number}: empty scan response")
            return parse_scan_payload(payload, page_number, taxonomy)

        return task
