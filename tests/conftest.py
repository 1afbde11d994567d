"""Pytest configuration and shared fixtures."""

import json
from typing import Any, Callable, Dict, List, Optional, Union

import pytest
from unittest.mock import AsyncMock

from takeoff.config.settings import PipelineSettings
from takeoff.core.exceptions import DocumentReadError
from takeoff.core.inference_client import InferenceClient
from takeoff.services.pipeline.batch_executor import RateLimitedBatchExecutor
from takeoff.services.rasterizer import PageImages

Response = Union[str, Dict[str, Any], Exception]


class ScriptedGenerator:
    """Content generator whose replies come from a responder callable.

    The responder receives the prompt and the page number decoded from the
    fake image (None for text-only calls) and returns a dict (sent as JSON),
    a raw string, or an exception to raise.
    """

    def __init__(self, responder: Callable[[str, Optional[int]], Response]):
        self.responder = responder
        self.calls: List[Dict[str, Any]] = []

    async def generate_content(
        self,
        prompt: str,
        image: Optional[bytes] = None,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        page_number = int(image.decode().split("-")[1]) if image else None
        self.calls.append({
            "prompt": prompt,
            "page_number": page_number,
            "generation_config": generation_config,
        })
        reply = self.responder(prompt, page_number)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return reply


class FakeRasterizer:
    """Rasterizer over an imaginary document of ``total_pages`` pages."""

    def __init__(self, total_pages: int, fail_pages=(), fail_open: bool = False):
        self.total_pages = total_pages
        self.fail_pages = set(fail_pages)
        self.fail_open = fail_open
        self.rendered: List[int] = []
        self.closed = False

    def page_count(self, document: Any) -> int:
        if self.fail_open:
            raise DocumentReadError(f"Cannot open {document}")
        return self.total_pages

    def render_page(self, document: Any, page_number: int) -> bytes:
        if page_number in self.fail_pages:
            raise DocumentReadError(f"Failed to render page {page_number}")
        self.rendered.append(page_number)
        return f"page-{page_number}".encode()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Awaitable sleep that returns immediately and records its delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def make_inference_client():
    """Factory for an InferenceClient driven by a responder callable.

    Returns:
        Callable returning (InferenceClient, ScriptedGenerator)
    """
    def _make(responder: Callable[[str, Optional[int]], Response]):
        generator = ScriptedGenerator(responder)
        return InferenceClient(generator), generator

    return _make


@pytest.fixture
def make_rasterizer():
    """Factory for FakeRasterizer instances."""
    return FakeRasterizer


@pytest.fixture
def make_pages():
    """Factory for a PageImages cache over a fake document."""
    def _make(total_pages: int = 10, fail_pages=()):
        return PageImages(FakeRasterizer(total_pages, fail_pages=fail_pages), "drawings.pdf")

    return _make


@pytest.fixture
def make_executor(no_sleep):
    """Factory for executors that never actually sleep."""
    def _make(batch_size: int = 4, **kwargs):
        kwargs.setdefault("cooldown_ms", 0)
        kwargs.setdefault("base_delay_ms", 10)
        kwargs.setdefault("sleep", no_sleep)
        return RateLimitedBatchExecutor(batch_size=batch_size, **kwargs)

    return _make


@pytest.fixture
def pipeline_settings() -> PipelineSettings:
    """Pipeline limits small enough for tests, independent of the environment."""
    return PipelineSettings(
        SCAN_BATCH_SIZE=10,
        EXTRACTION_BATCH_SIZE=4,
        CONTEXT_BATCH_SIZE=5,
        BATCH_COOLDOWN_MS=0,
        MAX_RETRIES=3,
        RETRY_BASE_DELAY_MS=10,
        CONTEXT_SAMPLE_PAGES=5,
        MAX_SCAN_PAGES=30,
        MAX_EXTRACTION_PAGES=10,
    )
