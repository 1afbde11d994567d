"""Drawing takeoff pipeline.

Runs the stages in order over one document:

    context -> relevance scan -> detail specs -> deep extraction
    -> deduplication -> enrichment -> implied scope -> conflicts & line items

Stages are sequential; work inside a stage runs concurrently through the
batch executor. Only a document that cannot be read aborts the run; every
other failure degrades to an empty or unchanged result.
"""

import asyncio
import time
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator, Optional

from takeoff.config.settings import PipelineSettings, Settings
from takeoff.config.topics import TopicTaxonomy
from takeoff.core.exceptions import DocumentReadError, TakeoffError
from takeoff.core.inference_client import InferenceClient
from takeoff.models.takeoff_models import RunStats, TakeoffResult
from takeoff.services.pipeline.batch_executor import RateLimitedBatchExecutor
from takeoff.services.pipeline.conflict_aggregator import build_line_items, detect_conflicts
from takeoff.services.pipeline.context_builder import DocumentContextBuilder
from takeoff.services.pipeline.deduplication import DeduplicationEngine
from takeoff.services.pipeline.deep_extractor import DeepExtractor, summarize_extractions
from takeoff.services.pipeline.detail_spec_extractor import DetailSpecExtractor, select_detail_pages
from takeoff.services.pipeline.enrichment import EnrichmentEngine
from takeoff.services.pipeline.implied_scope import append_implied_scope
from takeoff.services.pipeline.question_generator import generate_questions
from takeoff.services.pipeline.relevance_scanner import RelevanceScanner
from takeoff.services.rasterizer import PageImages, PageRasterizer, PdfPlumberRasterizer
from takeoff.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TakeoffPipeline:
    """Multi-stage extraction and reconciliation over one drawing set.

    Attributes:
        inference_client: Shared adapter over the vision-language service
        rasterizer: Page source for documents
        pipeline_settings: Batch sizes, retry policy and sampling limits
    """

    def __init__(
        self,
        inference_client: InferenceClient,
        rasterizer: PageRasterizer,
        pipeline_settings: Optional[PipelineSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the pipeline and its stages.

        Args:
            inference_client: Adapter over the vision-language service
            rasterizer: Renders document pages to PNG
            pipeline_settings: Limits; defaults are read from the environment
            sleep: Awaitable sleep used for cooldowns and backoff
        """
        self.inference_client = inference_client
        self.rasterizer = rasterizer
        self.pipeline_settings = pipeline_settings or PipelineSettings()
        cfg = self.pipeline_settings

        def executor(batch_size: int) -> RateLimitedBatchExecutor:
            return RateLimitedBatchExecutor.from_settings(cfg, batch_size=batch_size, sleep=sleep)

        self.context_builder = DocumentContextBuilder(inference_client, executor(cfg.context_batch_size))
        self.scanner = RelevanceScanner(
            inference_client, executor(cfg.scan_batch_size), max_scan_pages=cfg.max_scan_pages
        )
        self.detail_extractor = DetailSpecExtractor(inference_client, executor(cfg.extraction_batch_size))
        self.deep_extractor = DeepExtractor(
            inference_client, executor(cfg.extraction_batch_size), max_pages=cfg.max_extraction_pages
        )
        self.deduplicator = DeduplicationEngine(inference_client, executor(1))
        self.enrichment = EnrichmentEngine()

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "TakeoffPipeline":
        """Build the pipeline with the configured provider and a PDF rasterizer.

        Raises:
            ConfigurationError: If the provider or its API key is missing
        """
        return cls(
            inference_client=InferenceClient.from_settings(app_settings),
            rasterizer=PdfPlumberRasterizer(dpi=app_settings.pipeline.render_dpi),
            pipeline_settings=app_settings.pipeline,
        )

    @contextmanager
    def _stage(self, stats: RunStats, name: str) -> Iterator[None]:
        LOGGER.info(f"[{name}] started")
        started = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - started
            stats.stage_seconds[name] = round(elapsed, 3)
            LOGGER.info(f"[{name}] finished in {elapsed:.2f}s")

    def _page_count(self, document: Any) -> int:
        try:
            total_pages = self.rasterizer.page_count(document)
        except TakeoffError:
            raise
        except Exception as e:
            raise DocumentReadError(f"Cannot read document {document}: {e}", original_error=e)

        if total_pages <= 0:
            raise DocumentReadError(f"Document {document} has no pages")
        return total_pages

    async def run(
        self,
        document: Any,
        topic_taxonomy: Optional[TopicTaxonomy] = None,
    ) -> TakeoffResult:
        """Run every stage over one document.

        Args:
            document: Anything the rasterizer can open (usually a PDF path)
            topic_taxonomy: Topics to scan for; the default taxonomy when None

        Returns:
            TakeoffResult with context, detail specs, line items, conflicts,
            the document map and run statistics

        Raises:
            DocumentReadError: If the document cannot be opened
        """
        stats = RunStats()
        calls_before = self.inference_client.call_count
        run_started = time.perf_counter()
        pages: Optional[PageImages] = None

        LOGGER.info(f"Starting takeoff for {document}")
        try:
            total_pages = self._page_count(document)
            stats.total_pages = total_pages
            pages = PageImages(self.rasterizer, document)

            with self._stage(stats, "context"):
                context = await self.context_builder.build(
                    pages, total_pages, sample_pages=self.pipeline_settings.context_sample_pages
                )

            with self._stage(stats, "scan"):
                scan_results = await self.scanner.scan(pages, total_pages, topic_taxonomy)
            relevant_pages = [r for r in scan_results if r.relevant]
            stats.scanned_pages = len(scan_results)
            stats.relevant_pages = len(relevant_pages)

            with self._stage(stats, "details"):
                detail_specs = await self.detail_extractor.extract(
                    pages, select_detail_pages(relevant_pages)
                )

            with self._stage(stats, "extract"):
                extractions = await self.deep_extractor.extract(
                    pages, relevant_pages, context, detail_specs
                )
            failed_pages = [p.page_number for p in extractions if p.is_sentinel]
            stats.extracted_pages = len(extractions)
            for name, count in summarize_extractions(extractions).items():
                setattr(stats, name, count)
            stats.failed_pages = len(failed_pages)
            if failed_pages:
                LOGGER.warning(f"Extraction returned nothing for pages {failed_pages}")

            with self._stage(stats, "dedup"):
                survivors, dedup_report = await self.deduplicator.deduplicate(extractions)

            with self._stage(stats, "enrich"):
                enriched = self.enrichment.enrich(survivors, context, detail_specs)
                document_map = append_implied_scope(enriched)

            with self._stage(stats, "aggregate"):
                conflicts = detect_conflicts(document_map)
                line_items = build_line_items(document_map)
                questions = generate_questions(conflicts, document_map)
        finally:
            if pages is not None:
                pages.clear()
            self.rasterizer.close()

        stats.inference_calls = self.inference_client.call_count - calls_before

        LOGGER.info(
            f"Takeoff complete in {time.perf_counter() - run_started:.1f}s: "
            f"{len(line_items)} line items, {len(conflicts)} conflicts, "
            f"{stats.inference_calls} inference calls",
            extra={"stats": stats.model_dump()},
        )

        return TakeoffResult(
            document_context=context,
            detail_specs=detail_specs,
            line_items=line_items,
            conflicts=conflicts,
            document_map=document_map,
            relevant_pages=relevant_pages,
            failed_pages=failed_pages,
            dedup_report=dedup_report,
            questions=questions,
            stats=stats,
        )

    def run_sync(
        self,
        document: Any,
        topic_taxonomy: Optional[TopicTaxonomy] = None,
    ) -> TakeoffResult:
        """Blocking wrapper around ``run`` for callers without an event loop."""
        return asyncio.run(self.run(document, topic_taxonomy))
