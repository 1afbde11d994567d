"""Custom exception hierarchy."""


class TakeoffError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class InferenceError(TakeoffError):
    """Raised when a call to the vision-language service fails."""
    pass


class TransientInferenceError(InferenceError):
    """Network reset, timeout or server-side failure. Safe to retry."""
    pass


class RateLimitError(TransientInferenceError):
    """HTTP 429 from the inference service. Retried with a longer backoff."""
    pass


class FatalInferenceError(InferenceError):
    """Auth failure or malformed request. Never retried."""
    pass


class MalformedResponseError(FatalInferenceError):
    """Response could not be parsed as JSON after cleaning."""
    pass


class DocumentReadError(TakeoffError):
    """The source document cannot be loaded or rasterized. Aborts the run."""
    pass


class ConfigurationError(TakeoffError):
    """Raised when configuration is invalid or missing."""
    pass
