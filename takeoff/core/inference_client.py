"""Inference client adapter.

Wraps a single call to the vision-language service: attaches the page image
and prompt, applies per-pass generation settings, and turns the raw text
into a JSON object. Errors from the provider are already classified
(transient / rate limited / fatal) for the batch executor; a response that
cannot be parsed is logged and surfaced as an empty result.
"""

import json
from typing import Any, Dict, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from takeoff.config.settings import Settings
from takeoff.core.exceptions import MalformedResponseError
from takeoff.core.unified_llm import create_llm_client_from_settings
from takeoff.utils.json_parser import parse_json_safely
from takeoff.utils.logging import get_logger

LOGGER = get_logger(__name__)


class InferenceOptions(BaseModel):
    """Generation settings for one kind of pass."""

    model_config = ConfigDict(frozen=True)

    max_tokens: int = Field(default=3000, gt=0)
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    image_detail: str = Field(default="high", description="'low' or 'high' image fidelity")
    json_response: bool = True

    def to_generation_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "temperature": self.temperature,
            "max_output_tokens": self.max_tokens,
            "image_detail": self.image_detail,
        }
        if self.json_response:
            config["response_mime_type"] = "application/json"
        return config


# Cheap, low-fidelity relevance pass
SCAN_OPTIONS = InferenceOptions(max_tokens=400, temperature=0.1, image_detail="low")
CONTEXT_OPTIONS = InferenceOptions(max_tokens=2000, temperature=0.1)
DETAIL_OPTIONS = InferenceOptions(max_tokens=2000, temperature=0.0)
EXTRACTION_OPTIONS = InferenceOptions(max_tokens=3000, temperature=0.0)
DEDUP_OPTIONS = InferenceOptions(max_tokens=1500, temperature=0.0, image_detail="low")


class ContentGenerator(Protocol):
    """Anything that can turn a prompt (+ image) into text."""

    async def generate_content(
        self,
        prompt: str,
        image: Optional[bytes] = None,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        ...


def parse_structured_response(raw_text: Optional[str]) -> Dict[str, Any]:
    """Parse a model response into a JSON object.

    Raises:
        MalformedResponseError: Empty text, unparseable JSON, or a
            top-level value that is not an object
    """
    if not raw_text or not raw_text.strip():
        raise MalformedResponseError("Empty response")

    parsed = parse_json_safely(raw_text)
    if parsed is None:
        raise MalformedResponseError(f"Unparseable JSON: {raw_text[:200]}")
    if not isinstance(parsed, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def unwrap_response(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Unwrap the known wrapper shapes a model sometimes returns.

    Handles a nested ``extraction`` / ``result`` / ``data`` object and a
    stringified JSON ``raw_response`` field.
    """
    current = payload
    for _ in range(3):
        raw = current.get("raw_response")
        if isinstance(raw, str):
            try:
                decoded = json.loads(raw)
            except json.JSONDecodeError:
                decoded = parse_json_safely(raw)
            if isinstance(decoded, dict):
                current = decoded
                continue
        for wrapper in ("extraction", "result", "data"):
            inner = current.get(wrapper)
            if isinstance(inner, dict) and len(current) <= 2:
                current = inner
                break
        else:
            return current
    return current


class InferenceClient:
    """Single-call adapter over the vision-language service.

    One instance per process, built from configuration at startup and
    passed explicitly into the pipeline.
    """

    def __init__(self, generator: ContentGenerator):
        self.generator = generator
        self.call_count = 0

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "InferenceClient":
        """Build the client for the configured provider.

        Raises:
            ConfigurationError: If the provider or its API key is missing
        """
        return cls(create_llm_client_from_settings(app_settings.llm))

    async def infer(
        self,
        prompt: str,
        image: Optional[bytes] = None,
        options: InferenceOptions = EXTRACTION_OPTIONS,
    ) -> Dict[str, Any]:
        """Run one inference call and return the parsed JSON object.

        Args:
            prompt: Prompt text
            image: Optional PNG bytes of a page
            options: Generation settings for this pass

        Returns:
            Parsed (and unwrapped) JSON object; ``{}`` if the response was
            empty or malformed

        Raises:
            TransientInferenceError: Retryable provider failure
            RateLimitError: Provider rate limit
            FatalInferenceError: Non-retryable provider failure
        """
        self.call_count += 1
        raw_text = await self.generator.generate_content(
            prompt=prompt,
            image=image,
            generation_config=options.to_generation_config(),
        )

        try:
            return unwrap_response(parse_structured_response(raw_text))
        except MalformedResponseError as e:
            LOGGER.warning(
                f"Discarding malformed inference response: {e}",
                extra={"response_preview": (raw_text or "")[:300]},
            )
            return {}
