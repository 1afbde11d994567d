from typing import Any, Dict, Optional

import httpx
from httpx import HTTPStatusError, TimeoutException, TransportError

from takeoff.core.exceptions import (
    FatalInferenceError,
    RateLimitError,
    TransientInferenceError,
)
from takeoff.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseLLMClient:
    """Base client for LLM HTTP API interactions.

    Performs a single request per call and translates failures into the
    inference error taxonomy. Retrying is the batch executor's job, so this
    client never loops.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: int = 60,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the LLM client.

        Args:
            api_key: API key for authentication
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            http_client: Optional shared AsyncClient (mainly for tests)
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._http_client = http_client
        self.logger = LOGGER

    async def call_api(
        self,
        endpoint: str = "",
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST a JSON payload and return the parsed JSON response.

        Args:
            endpoint: API endpoint (appended to base_url)
            payload: JSON payload
            headers: Additional headers

        Returns:
            Parsed JSON response

        Raises:
            RateLimitError: HTTP 429
            TransientInferenceError: Timeouts, connection resets, HTTP 5xx
            FatalInferenceError: Any other 4xx or a non-JSON response body
        """
        url = f"{self.base_url}{endpoint}" if endpoint else self.base_url

        default_headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if headers:
            default_headers.update(headers)

        self.logger.debug(f"Calling LLM API: {url}", extra={"timeout": self.timeout})

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, headers=default_headers, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, headers=default_headers, json=payload)
            response.raise_for_status()
        except HTTPStatusError as e:
            raise self._classify_http_error(e, url) from e
        except TimeoutException as e:
            self.logger.warning("API Timeout", extra={"url": url})
            raise TransientInferenceError(f"API timeout calling {url}", original_error=e) from e
        except TransportError as e:
            self.logger.warning("API network error", extra={"url": url, "error": str(e)})
            raise TransientInferenceError(f"Network error calling {url}: {e}", original_error=e) from e

        try:
            return response.json()
        except ValueError as e:
            raise FatalInferenceError(f"Non-JSON body from {url}", original_error=e) from e

    def _classify_http_error(self, error: HTTPStatusError, url: str) -> Exception:
        """Map an HTTP status error onto the inference error taxonomy."""
        status_code = error.response.status_code
        error_body = error.response.text or ""

        self.logger.warning(
            "API HTTP error",
            extra={
                "url": url,
                "status_code": status_code,
                "error_body": error_body[:500],
            },
        )

        if status_code == 429:
            return RateLimitError(f"Rate limited by {url}", original_error=error)
        if status_code >= 500 or status_code == 408:
            return TransientInferenceError(
                f"API server error {status_code}", original_error=error
            )
        return FatalInferenceError(
            f"API client error {status_code}: {error_body[:200]}", original_error=error
        )
