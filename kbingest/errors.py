"""Error types and error-handling helpers for kbingest"""

import logging
import time
import functools
from typing import Optional, Callable, Any


class KBIngestError(Exception):
    """Base exception for kbingest errors"""

    def __init__(self, message: str, recovery_suggestion: Optional[str] = None,
                 original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.recovery_suggestion = recovery_suggestion
        self.original_error = original_error

    def __str__(self) -> str:
        result = self.message
        if self.recovery_suggestion:
            result += f"\n💡 Suggestion: {self.recovery_suggestion}"
        return result


class ConfigurationError(KBIngestError):
    """Configuration-related errors"""
    pass


class ExtractionError(KBIngestError):
    """Text could not be obtained from a document"""
    pass


class UnsupportedDocumentError(ExtractionError):
    """Document type has no extraction support"""

    def __init__(self, file_name: str, media_type: str):
        message = f"Unsupported document type '{media_type}' for: {file_name}"
        recovery_suggestion = (
            "Convert the document to PDF or plain text and upload it again."
        )
        super().__init__(message, recovery_suggestion)
        self.file_name = file_name
        self.media_type = media_type


class DocumentValidationError(KBIngestError):
    """Uploaded document was rejected before processing"""
    pass


class LLMAPIError(KBIngestError):
    """LLM API-related errors"""

    def __init__(self, message: str, model: Optional[str] = None,
                 status_code: Optional[int] = None, original_error: Optional[Exception] = None,
                 recovery_suggestion: Optional[str] = None):
        if recovery_suggestion is None:
            recovery_suggestion = self._get_recovery_suggestion(status_code)
        super().__init__(message, recovery_suggestion, original_error)
        self.model = model
        self.status_code = status_code

    def _get_recovery_suggestion(self, status_code: Optional[int]) -> str:
        if status_code == 401:
            return "Check your OpenRouter API key in the configuration."
        elif status_code == 429:
            return "Rate limit exceeded. Wait a moment and try again."
        elif status_code == 503:
            return "Service temporarily unavailable. Try again later or use a different model."
        elif status_code and 500 <= status_code < 600:
            return "Server error. Try again later or use a different model."
        else:
            return "Check your internet connection and API configuration."


class SegmentationDelegationError(KBIngestError):
    """Language-model segmentation failed or returned unusable output"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(
            message,
            "Entries will be generated with the heuristic segmenter instead.",
            original_error
        )


class PersistenceError(KBIngestError):
    """Storage-related errors"""
    pass


class RetryableError(KBIngestError):
    """Base class for errors that can be retried"""
    pass


class TransientAPIError(RetryableError, LLMAPIError):
    """Transient API errors that can be retried"""
    pass


class TransientNetworkError(RetryableError):
    """Transient network errors that can be retried"""
    pass


def retry_on_failure(
    max_retries: int = 3,
    delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (TransientAPIError, TransientNetworkError),
    logger: Optional[logging.Logger] = None
):
    """
    Decorator to retry function calls on specific exceptions

    Args:
        max_retries: Maximum number of retry attempts
        delay: Initial delay between retries in seconds
        backoff_factor: Factor to multiply delay by after each retry
        exceptions: Tuple of exception types to retry on
        logger: Logger instance for retry messages
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            current_delay = delay
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt == max_retries:
                        break

                    if logger:
                        logger.warning(
                            f"Attempt {attempt + 1}/{max_retries + 1} failed for {func.__name__}: {e}. "
                            f"Retrying in {current_delay:.1f}s..."
                        )

                    time.sleep(current_delay)
                    current_delay *= backoff_factor

            if logger:
                logger.error(f"All {max_retries + 1} attempts failed for {func.__name__}")
            raise last_exception

        return wrapper
    return decorator


def handle_api_errors(func: Callable) -> Callable:
    """Decorator to map requests exceptions onto the kbingest error types"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        import requests

        try:
            return func(*args, **kwargs)
        except requests.exceptions.Timeout as e:
            raise TransientAPIError(
                "API request timed out",
                original_error=e
            )
        except requests.exceptions.ConnectionError as e:
            raise TransientNetworkError(
                "Network connection failed",
                "Check your internet connection and try again.",
                e
            )
        except requests.exceptions.RequestException as e:
            if getattr(e, 'response', None) is not None:
                status_code = e.response.status_code
                if status_code in [429, 502, 503, 504]:
                    raise TransientAPIError(
                        f"API temporarily unavailable (HTTP {status_code})",
                        status_code=status_code,
                        original_error=e
                    )
                raise LLMAPIError(
                    f"API request failed (HTTP {status_code})",
                    status_code=status_code,
                    original_error=e
                )
            raise LLMAPIError(
                f"API request failed: {str(e)}",
                original_error=e
            )

    return wrapper


class ErrorHandler:
    """Centralized error handling and logging"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def handle_error(self, error: Exception, context: str = "") -> None:
        """Handle and log errors with appropriate level and formatting"""
        if isinstance(error, KBIngestError):
            self.logger.error(f"{context}: {error.message}")
            if error.recovery_suggestion:
                self.logger.info(f"Recovery suggestion: {error.recovery_suggestion}")
            if error.original_error:
                self.logger.debug(f"Original error: {error.original_error}", exc_info=True)
        else:
            self.logger.error(f"{context}: Unexpected error: {error}", exc_info=True)

    def handle_warning(self, message: str, context: str = "") -> None:
        """Handle and log warnings"""
        self.logger.warning(f"{context}: {message}")
