"""Unified LLM client factory and manager.

Provides a single vision-capable interface over the supported providers
(OpenRouter, Gemini) with provider selection driven by configuration.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union

from takeoff.config.settings import LLMSettings
from takeoff.core.exceptions import ConfigurationError
from takeoff.core.gemini_client import GeminiClient
from takeoff.core.openrouter_client import OpenRouterClient
from takeoff.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


class UnifiedLLMClient:
    """Unified LLM client that wraps different providers.

    Provides a consistent interface regardless of the underlying provider.
    """

    def __init__(
        self,
        provider: Union[str, LLMProvider],
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: int = 90,
    ):
        """Initialize unified LLM client.

        Args:
            provider: LLM provider to use ("gemini" or "openrouter")
            api_key: API key for the provider
            model: Model name to use
            base_url: Optional base URL (OpenRouter only)
            timeout: Request timeout in seconds
        """
        self.provider = LLMProvider(provider)
        self.model = model
        self.timeout = timeout

        if self.provider == LLMProvider.GEMINI:
            self.client = GeminiClient(api_key=api_key, model=model, timeout=timeout)
        else:
            self.client = OpenRouterClient(
                api_key=api_key,
                model=model,
                base_url=base_url or "https://openrouter.ai/api/v1/chat/completions",
                timeout=timeout,
            )
        LOGGER.info(f"Initialized unified LLM with {self.provider.value} provider (model: {model})")

    async def generate_content(
        self,
        prompt: str,
        image: Optional[bytes] = None,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using the configured LLM provider.

        Args:
            prompt: Prompt text
            image: Optional PNG bytes
            system_instruction: Optional system instruction
            generation_config: Optional generation config (temperature, etc.)

        Returns:
            Generated text response

        Raises:
            InferenceError: Classified provider failure
        """
        return await self.client.generate_content(
            prompt=prompt,
            image=image,
            system_instruction=system_instruction,
            generation_config=generation_config,
        )


def create_llm_client_from_settings(llm_settings: LLMSettings) -> UnifiedLLMClient:
    """Create a unified LLM client from configuration settings.

    Automatically selects the API key, model, and base URL for the
    configured provider.

    Args:
        llm_settings: LLM provider settings

    Returns:
        UnifiedLLMClient instance configured with the selected provider

    Raises:
        ConfigurationError: If the provider is unknown or its API key is missing
    """
    try:
        provider = LLMProvider(llm_settings.provider.lower())
    except ValueError as e:
        raise ConfigurationError(f"Unsupported provider: {llm_settings.provider}", original_error=e)

    if provider == LLMProvider.GEMINI:
        api_key = llm_settings.gemini_api_key.strip()
        if not api_key:
            raise ConfigurationError(
                "gemini_api_key required when provider='gemini'. "
                "Please set GEMINI_API_KEY environment variable."
            )
        return UnifiedLLMClient(
            provider=provider,
            api_key=api_key,
            model=llm_settings.gemini_model,
            timeout=llm_settings.timeout_seconds,
        )

    api_key = llm_settings.openrouter_api_key.strip()
    if not api_key:
        raise ConfigurationError(
            "openrouter_api_key required when provider='openrouter'. "
            "Please set OPENROUTER_API_KEY environment variable."
        )
    return UnifiedLLMClient(
        provider=provider,
        api_key=api_key,
        model=llm_settings.openrouter_model,
        base_url=llm_settings.openrouter_api_url,
        timeout=llm_settings.timeout_seconds,
    )
