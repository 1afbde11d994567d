"""OpenRouter (OpenAI-compatible) vision client implementation."""

import base64
from typing import Any, Dict, List, Optional

import httpx

from takeoff.core.base_llm_client import BaseLLMClient
from takeoff.core.exceptions import FatalInferenceError
from takeoff.utils.logging import get_logger

LOGGER = get_logger(__name__)


class OpenRouterClient:
    """Wrapper for the OpenRouter chat completions API.

    Sends the prompt and an optional page image as a single user message
    using the OpenAI vision content-part format.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "openai/gpt-4o-mini",
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: int = 90,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize OpenRouter client.

        Args:
            api_key: OpenRouter API key
            model: Model name to use (must accept image input)
            base_url: OpenRouter API base URL
            timeout: Request timeout in seconds
            http_client: Optional shared AsyncClient
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout

        self.client = BaseLLMClient(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            http_client=http_client,
        )

        LOGGER.info(f"Initialized OpenRouter client with model {self.model}")

    @staticmethod
    def build_user_content(
        prompt: str,
        image: Optional[bytes] = None,
        image_detail: str = "high",
        mime_type: str = "image/png",
    ) -> List[Dict[str, Any]]:
        """Build the content parts for one prompt plus optional image."""
        parts: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        if image:
            encoded = base64.b64encode(image).decode("ascii")
            parts.append({
                "type": "image_url",
                "image_url": {
                    "url": f"data:{mime_type};base64,{encoded}",
                    "detail": image_detail,
                },
            })
        return parts

    async def generate_content(
        self,
        prompt: str,
        image: Optional[bytes] = None,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using the OpenRouter model.

        Args:
            prompt: Prompt text
            image: Optional PNG bytes of the page
            system_instruction: Optional system instruction
            generation_config: temperature, max_output_tokens,
                response_mime_type and image_detail

        Returns:
            Generated text response ("" when the model returned nothing)

        Raises:
            InferenceError: Classified by BaseLLMClient
            FatalInferenceError: If the response envelope is not recognised
        """
        config = generation_config or {}

        messages: List[Dict[str, Any]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({
            "role": "user",
            "content": self.build_user_content(
                prompt, image, image_detail=config.get("image_detail", "high")
            ),
        })

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": config.get("temperature", 0.0),
        }
        if "max_output_tokens" in config:
            payload["max_tokens"] = config["max_output_tokens"]
        if config.get("response_mime_type") == "application/json":
            payload["response_format"] = {"type": "json_object"}

        response = await self.client.call_api(endpoint="", payload=payload)

        choices = response.get("choices") if isinstance(response, dict) else None
        if not choices:
            LOGGER.error(f"Unexpected OpenRouter response format: {str(response)[:300]}")
            raise FatalInferenceError("Invalid response format from OpenRouter")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            LOGGER.warning("Empty response from OpenRouter")
        return content
