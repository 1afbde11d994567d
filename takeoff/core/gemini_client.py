from typing import Any, Dict, List, Optional

import httpx
from google import genai
from google.genai import errors, types

from takeoff.core.exceptions import (
    ConfigurationError,
    FatalInferenceError,
    RateLimitError,
    TransientInferenceError,
)
from takeoff.utils.logging import get_logger

LOGGER = get_logger(__name__)


class GeminiClient:
    """Wrapper for Google Gemini API client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        timeout: int = 90,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name to use
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

        try:
            self.client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=timeout * 1000),
            )
            LOGGER.info(f"Initialized Gemini client with model {self.model}")
        except Exception as e:
            LOGGER.error(f"Failed to initialize Gemini client: {e}")
            raise ConfigurationError(f"Failed to initialize Gemini client: {e}", original_error=e)

    async def generate_content(
        self,
        prompt: str,
        image: Optional[bytes] = None,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using Gemini model.

        Args:
            prompt: Prompt text
            image: Optional PNG bytes of the page
            system_instruction: Optional system instruction
            generation_config: temperature, max_output_tokens, response_mime_type

        Returns:
            Generated text response ("" when the model returned nothing)

        Raises:
            InferenceError: Classified from the SDK error
        """
        config = types.GenerateContentConfig(temperature=0.0)

        if generation_config:
            if "temperature" in generation_config:
                config.temperature = generation_config["temperature"]
            if "max_output_tokens" in generation_config:
                config.max_output_tokens = generation_config["max_output_tokens"]
            if "response_mime_type" in generation_config:
                config.response_mime_type = generation_config["response_mime_type"]

        if system_instruction:
            config.system_instruction = system_instruction

        contents: List[Any] = [prompt]
        if image:
            contents.append(types.Part.from_bytes(data=image, mime_type="image/png"))

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=config,
            )
        except errors.APIError as e:
            raise self._classify_api_error(e) from e
        except (httpx.TimeoutException, httpx.TransportError) as e:
            LOGGER.warning(f"Gemini network error: {e}")
            raise TransientInferenceError(f"Gemini network error: {e}", original_error=e) from e

        if not response.text:
            LOGGER.warning("Empty response from Gemini")
            return ""

        return response.text

    @staticmethod
    def _classify_api_error(error: "errors.APIError") -> Exception:
        """Map a google-genai API error onto the inference error taxonomy."""
        code = getattr(error, "code", None)
        LOGGER.warning(f"Gemini API error ({code}): {error}")

        if code == 429:
            return RateLimitError(f"Gemini rate limited: {error}", original_error=error)
        if isinstance(error, errors.ServerError) or (code is not None and code >= 500):
            return TransientInferenceError(f"Gemini server error: {error}", original_error=error)
        return FatalInferenceError(f"Gemini request rejected: {error}", original_error=error)
