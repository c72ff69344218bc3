"""Tests for LLMProvider class"""

import pytest
from unittest.mock import Mock, patch
from requests.exceptions import Timeout, ConnectionError as RequestsConnectionError

from kbingest.config import OpenRouterConfig
from kbingest.errors import LLMAPIError
from kbingest.llm.provider import LLMProvider, ChatCompletion, ModelNotAvailableError


def make_response(status_code=200, content="This is a test response", total_tokens=120,
                  model="openai/gpt-4-turbo"):
    response = Mock()
    response.status_code = status_code
    if status_code == 200:
        response.json.return_value = {
            "model": model,
            "choices": [{"message": {"content": content}}],
            "usage": {"total_tokens": total_tokens}
        }
    else:
        response.json.return_value = {"error": {"message": "Something went wrong"}}
    return response


class TestLLMProvider:
    """Test cases for LLMProvider"""

    @pytest.fixture
    def config(self):
        """Create test configuration"""
        return OpenRouterConfig(
            api_key="sk-or-test-key",
            default_model="openai/gpt-4-turbo",
            fallback_models=["openai/gpt-3.5-turbo"],
            base_url="https://openrouter.ai/api/v1"
        )

    @pytest.fixture
    def provider(self, config):
        """Create LLMProvider instance"""
        return LLMProvider(config)

    def test_init_with_config(self, config):
        """Test LLMProvider initialization with config"""
        provider = LLMProvider(config)
        assert provider.config == config
        assert provider.session.headers["Authorization"] == "Bearer sk-or-test-key"
        assert provider.session.headers["Content-Type"] == "application/json"

    def test_init_with_missing_api_key(self):
        """Test initialization fails with missing API key"""
        with pytest.raises(LLMAPIError, match="OpenRouter API key is required"):
            LLMProvider(OpenRouterConfig(api_key=""))

    @patch('requests.Session.post')
    def test_chat_completion_success(self, mock_post, provider):
        """Test successful chat completion"""
        mock_post.return_value = make_response()

        result = provider.chat_completion("Be helpful", "Test question", temperature=0.3, max_tokens=500)

        assert result == ChatCompletion(
            content="This is a test response", model="openai/gpt-4-turbo", total_tokens=120
        )
        mock_post.assert_called_once()

        call_args = mock_post.call_args
        assert call_args[0][0] == "https://openrouter.ai/api/v1/chat/completions"
        payload = call_args[1]["json"]
        assert payload["model"] == "openai/gpt-4-turbo"
        assert payload["messages"] == [
            {"role": "system", "content": "Be helpful"},
            {"role": "user", "content": "Test question"}
        ]
        assert payload["temperature"] == 0.3
        assert payload["max_tokens"] == 500
        assert call_args[1]["timeout"] == 60

    @patch('requests.Session.post')
    def test_chat_completion_with_fallback(self, mock_post, provider):
        """Test chat completion with fallback on model failure"""
        mock_post.side_effect = [
            make_response(status_code=404),
            make_response(content="Fallback response", model="openai/gpt-3.5-turbo")
        ]

        result = provider.chat_completion("system", "question")

        assert result.content == "Fallback response"
        assert result.model == "openai/gpt-3.5-turbo"
        assert mock_post.call_count == 2
        assert mock_post.call_args_list[1][1]["json"]["model"] == "openai/gpt-3.5-turbo"

    @patch('requests.Session.post')
    def test_chat_completion_all_models_unavailable(self, mock_post, provider):
        """Test chat completion when every model is temporarily unavailable"""
        mock_post.return_value = make_response(status_code=503)

        with pytest.raises(LLMAPIError, match="All models failed"):
            provider.chat_completion("system", "question")

        assert mock_post.call_count == 2

    @patch('requests.Session.post')
    def test_chat_completion_non_retryable_error(self, mock_post, provider):
        """Test that client errors stop the fallback chain"""
        mock_post.return_value = make_response(status_code=401)

        with pytest.raises(LLMAPIError) as exc_info:
            provider.chat_completion("system", "question")

        assert exc_info.value.status_code == 401
        assert "Something went wrong" in exc_info.value.message
        assert mock_post.call_count == 1

    @patch('requests.Session.post')
    def test_chat_completion_timeout(self, mock_post, provider):
        """Test chat completion with timeout on every model"""
        mock_post.side_effect = Timeout("Request timed out")

        with pytest.raises(LLMAPIError, match="All models failed"):
            provider.chat_completion("system", "question")

    @patch('requests.Session.post')
    def test_chat_completion_connection_error(self, mock_post, provider):
        """Test network errors surface as kbingest errors"""
        mock_post.side_effect = RequestsConnectionError("Network down")

        with pytest.raises(Exception) as exc_info:
            provider.chat_completion("system", "question")

        assert "Network connection failed" in str(exc_info.value)

    @patch('requests.Session.post')
    def test_chat_completion_empty_content(self, mock_post, provider):
        """Test empty completion is rejected"""
        mock_post.return_value = make_response(content="")

        with pytest.raises(LLMAPIError, match="Empty completion returned"):
            provider.chat_completion("system", "question")

    @patch('requests.Session.post')
    def test_chat_completion_no_choices(self, mock_post, provider):
        """Test response without choices is rejected"""
        response = Mock()
        response.status_code = 200
        response.json.return_value = {"choices": []}
        mock_post.return_value = response

        with pytest.raises(LLMAPIError, match="no choices"):
            provider.chat_completion("system", "question")

    @patch('requests.Session.post')
    def test_explicit_model(self, mock_post, provider):
        """Test a model passed explicitly is tried first"""
        mock_post.return_value = make_response(model="anthropic/claude-3-haiku")

        provider.chat_completion("system", "question", model="anthropic/claude-3-haiku")

        assert mock_post.call_args[1]["json"]["model"] == "anthropic/claude-3-haiku"

    def test_get_fallback_models(self, provider):
        """Test fallback model chain generation"""
        assert provider._get_fallback_models("openai/gpt-4-turbo") == ["openai/gpt-3.5-turbo"]
        assert provider._get_fallback_models("anthropic/claude-3-haiku") == [
            "openai/gpt-4-turbo", "openai/gpt-3.5-turbo"
        ]

    @patch('requests.Session.post')
    def test_connectivity_success(self, mock_post, provider):
        """Test connectivity check success"""
        mock_post.return_value = make_response(content="Hi")
        assert provider.test_connectivity() is True

    @patch('requests.Session.post')
    def test_connectivity_failure(self, mock_post, provider):
        """Test connectivity check failure"""
        mock_post.return_value = make_response(status_code=401)
        assert provider.test_connectivity() is False


class TestModelNotAvailableError:
    """Test ModelNotAvailableError"""

    def test_message_and_model(self):
        error = ModelNotAvailableError("openai/gpt-5")
        assert error.model == "openai/gpt-5"
        assert "not available" in error.message
        assert isinstance(error, LLMAPIError)
