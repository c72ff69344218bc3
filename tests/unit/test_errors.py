"""Unit tests for error handling system"""

import pytest
import requests.exceptions
from unittest.mock import Mock, patch
from kbingest.errors import (
    KBIngestError, ConfigurationError, ExtractionError, UnsupportedDocumentError, DocumentValidationError,
    LLMAPIError, SegmentationDelegationError, PersistenceError,
    RetryableError, TransientAPIError, TransientNetworkError,
    retry_on_failure, handle_api_errors, ErrorHandler
)


class TestKBIngestError:
    """Test base KBIngestError functionality"""

    def test_basic_error(self):
        error = KBIngestError("Test error")
        assert error.message == "Test error"
        assert error.recovery_suggestion is None
        assert str(error) == "Test error"

    def test_error_with_suggestion(self):
        error = KBIngestError("Test error", "Try again")
        assert "💡 Suggestion: Try again" in str(error)

    def test_error_with_original_error(self):
        original = ValueError("root cause")
        error = PersistenceError("Write failed", original_error=original)
        assert error.original_error is original


class TestSpecificErrors:
    """Test specific error types"""

    def test_configuration_error(self):
        error = ConfigurationError("Cannot read configuration file", "Check permissions")

        assert isinstance(error, KBIngestError)
        assert "Check permissions" in str(error)

    def test_unsupported_document_error(self):
        error = UnsupportedDocumentError("contract.docx", "application/msword")

        assert isinstance(error, ExtractionError)
        assert error.file_name == "contract.docx"
        assert "application/msword" in error.message
        assert "Convert the document" in error.recovery_suggestion

    def test_segmentation_delegation_error(self):
        error = SegmentationDelegationError("Language model returned no entries")
        assert "heuristic" in error.recovery_suggestion

    def test_document_validation_error(self):
        assert issubclass(DocumentValidationError, KBIngestError)

    @pytest.mark.parametrize("status_code,fragment", [
        (401, "API key"),
        (429, "Rate limit"),
        (503, "temporarily unavailable"),
        (500, "Server error"),
        (None, "internet connection"),
    ])
    def test_llm_api_error_suggestions(self, status_code, fragment):
        error = LLMAPIError("API failed", status_code=status_code)
        assert fragment in error.recovery_suggestion

    def test_transient_errors_are_retryable(self):
        assert issubclass(TransientAPIError, RetryableError)
        assert issubclass(TransientAPIError, LLMAPIError)
        assert issubclass(TransientNetworkError, RetryableError)


class TestRetryDecorator:
    """Test retry_on_failure decorator"""

    def test_successful_call_no_retry(self):
        @retry_on_failure(max_retries=3)
        def successful_function():
            return "success"

        assert successful_function() == "success"

    def test_retry_on_retryable_error(self):
        call_count = 0

        @retry_on_failure(max_retries=2, delay=0.01)
        def failing_function():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise TransientAPIError("Temporary failure")
            return "success"

        assert failing_function() == "success"
        assert call_count == 3

    def test_retry_exhausted(self):
        @retry_on_failure(max_retries=2, delay=0.01)
        def always_failing_function():
            raise TransientNetworkError("Always fails")

        with pytest.raises(TransientNetworkError):
            always_failing_function()

    def test_non_retryable_error_no_retry(self):
        call_count = 0

        @retry_on_failure(max_retries=3, delay=0.01)
        def non_retryable_error():
            nonlocal call_count
            call_count += 1
            raise LLMAPIError("Bad request", status_code=400)

        with pytest.raises(LLMAPIError):
            non_retryable_error()

        assert call_count == 1

    @patch('kbingest.errors.time.sleep')
    def test_retry_with_backoff(self, mock_sleep):
        @retry_on_failure(max_retries=3, delay=1.0, backoff_factor=2.0)
        def timing_function():
            raise TransientAPIError("Timing test")

        with pytest.raises(TransientAPIError):
            timing_function()

        assert [call[0][0] for call in mock_sleep.call_args_list] == [1.0, 2.0, 4.0]

    def test_retry_with_logger(self):
        mock_logger = Mock()

        @retry_on_failure(max_retries=1, delay=0.01, logger=mock_logger)
        def logged_function():
            raise TransientAPIError("Logged failure")

        with pytest.raises(TransientAPIError):
            logged_function()

        assert mock_logger.warning.called
        assert mock_logger.error.called


class TestAPIErrorHandler:
    """Test handle_api_errors decorator"""

    def test_successful_api_call(self):
        @handle_api_errors
        def successful_api_function():
            return "API success"

        assert successful_api_function() == "API success"

    def test_timeout_error(self):
        @handle_api_errors
        def timeout_function():
            raise requests.exceptions.Timeout("Request timed out")

        with pytest.raises(TransientAPIError, match="timed out"):
            timeout_function()

    def test_connection_error(self):
        @handle_api_errors
        def connection_function():
            raise requests.exceptions.ConnectionError("Connection failed")

        with pytest.raises(TransientNetworkError, match="Network connection failed"):
            connection_function()

    def test_http_error_retryable(self):
        mock_response = Mock()
        mock_response.status_code = 503

        @handle_api_errors
        def http_error_function():
            error = requests.exceptions.HTTPError("Service unavailable")
            error.response = mock_response
            raise error

        with pytest.raises(TransientAPIError) as exc_info:
            http_error_function()

        assert exc_info.value.status_code == 503

    def test_http_error_non_retryable(self):
        mock_response = Mock()
        mock_response.status_code = 400

        @handle_api_errors
        def http_error_function():
            error = requests.exceptions.HTTPError("Bad request")
            error.response = mock_response
            raise error

        with pytest.raises(LLMAPIError) as exc_info:
            http_error_function()

        assert exc_info.value.status_code == 400
        assert not isinstance(exc_info.value, TransientAPIError)

    def test_non_api_error_passthrough(self):
        @handle_api_errors
        def non_api_error_function():
            raise ValueError("Not an API error")

        with pytest.raises(ValueError):
            non_api_error_function()


class TestErrorHandler:
    """Test ErrorHandler class"""

    def test_handle_kbingest_error(self):
        mock_logger = Mock()
        handler = ErrorHandler(mock_logger)

        handler.handle_error(KBIngestError("Test error", "Test suggestion"), "Test context")

        mock_logger.error.assert_called_once()
        mock_logger.info.assert_called_once()
        assert "Test error" in mock_logger.error.call_args[0][0]
        assert "Test suggestion" in mock_logger.info.call_args[0][0]

    def test_handle_generic_error(self):
        mock_logger = Mock()
        handler = ErrorHandler(mock_logger)

        handler.handle_error(ValueError("Generic error"), "Test context")

        mock_logger.error.assert_called_once()
        assert "Unexpected error" in mock_logger.error.call_args[0][0]

    def test_handle_warning(self):
        mock_logger = Mock()
        ErrorHandler(mock_logger).handle_warning("Test warning", "Test context")

        mock_logger.warning.assert_called_once()
        assert "Test warning" in mock_logger.warning.call_args[0][0]
