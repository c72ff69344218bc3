"""OpenRouter LLM Provider for kbingest"""

import requests
from dataclasses import dataclass
from typing import List, Dict, Optional
from kbingest.config import OpenRouterConfig
from kbingest.errors import (
    LLMAPIError, TransientAPIError, handle_api_errors, retry_on_failure
)
from kbingest.logging_setup import get_logger, log_performance


class ModelNotAvailableError(LLMAPIError):
    """Exception raised when a model is not available"""

    def __init__(self, model: str):
        super().__init__(
            f"Model '{model}' is not available",
            model=model,
            recovery_suggestion="Try a different model or check OpenRouter model availability."
        )


@dataclass
class ChatCompletion:
    """Text returned by a chat completion and the model that produced it"""
    content: str
    model: str
    total_tokens: int = 0


class LLMProvider:
    """OpenRouter API client for chat completions"""

    def __init__(self, config: OpenRouterConfig):
        """Initialize LLM provider with configuration

        Args:
            config: OpenRouter configuration

        Raises:
            LLMAPIError: If API key is missing
        """
        if not config.api_key:
            raise LLMAPIError(
                "OpenRouter API key is required",
                recovery_suggestion="Set your API key in configuration or OPENROUTER_API_KEY environment variable."
            )

        self.config = config
        self.logger = get_logger(f"{__name__}.LLMProvider")
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
            "X-Title": "kbingest - Knowledge Base Ingest"
        })

        self.logger.debug(f"Initialized LLM provider with default model: {config.default_model}")

    @retry_on_failure(max_retries=2, delay=1.0, exceptions=(TransientAPIError,))
    def chat_completion(self, system_prompt: str, user_prompt: str, temperature: float = 0.7,
                        max_tokens: int = 2000, model: Optional[str] = None) -> ChatCompletion:
        """Generate chat completion using specified model with fallback

        Args:
            system_prompt: Instructions for the model
            user_prompt: The request itself
            temperature: Sampling temperature
            max_tokens: Upper bound on generated tokens
            model: Model to use (defaults to config default_model)

        Returns:
            ChatCompletion with the generated text

        Raises:
            LLMAPIError: If all models fail or other API errors occur
        """
        if model is None:
            model = self.config.default_model

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt}
        ]

        # Try primary model first, then fallbacks
        models_to_try = [model] + self._get_fallback_models(model)

        self.logger.debug(f"Attempting chat completion with models: {models_to_try}")

        last_error = None
        for i, current_model in enumerate(models_to_try):
            try:
                with log_performance(f"Chat completion with {current_model}", self.logger):
                    completion = self._make_chat_request(messages, current_model, temperature, max_tokens)
                    if i > 0:
                        self.logger.info(f"Successfully used fallback model: {current_model}")
                    return completion
            except (ModelNotAvailableError, TransientAPIError) as e:
                last_error = e
                self.logger.warning(f"Model {current_model} failed: {e}")
                continue
            except LLMAPIError as e:
                # Non-retryable API error, don't try other models
                self.logger.error(f"Non-retryable API error with {current_model}: {e}")
                raise e

        self.logger.error(f"All {len(models_to_try)} models failed")
        raise LLMAPIError(
            f"All models failed. Last error: {last_error}",
            recovery_suggestion="Check your API key, internet connection, and try again later."
        )

    @handle_api_errors
    def _make_chat_request(self, messages: List[Dict[str, str]], model: str,
                           temperature: float, max_tokens: int) -> ChatCompletion:
        """Make a single chat completion request

        Raises:
            ModelNotAvailableError: If model is not available
            TransientAPIError: For retryable API errors
            LLMAPIError: For other API errors or an empty completion
        """
        url = f"{self.config.base_url}/chat/completions"
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens
        }

        self.logger.debug(f"Making chat request to {model} with {len(messages)} messages")

        response = self.session.post(
            url,
            json=payload,
            timeout=self.config.timeout
        )

        if response.status_code == 404:
            raise ModelNotAvailableError(model)
        elif response.status_code == 429:
            raise TransientAPIError(
                "Rate limit exceeded",
                model=model,
                status_code=429
            )
        elif response.status_code in [502, 503, 504]:
            raise TransientAPIError(
                f"Service temporarily unavailable (HTTP {response.status_code})",
                model=model,
                status_code=response.status_code
            )
        elif response.status_code >= 400:
            error_msg = "Unknown error"
            try:
                error_data = response.json()
                error_msg = error_data.get("error", {}).get("message", error_msg)
            except ValueError:
                pass
            raise LLMAPIError(
                f"API error: {error_msg}",
                model=model,
                status_code=response.status_code
            )

        response.raise_for_status()
        data = response.json()

        if "choices" not in data or not data["choices"]:
            raise LLMAPIError(
                "Invalid response format: no choices",
                model=model,
                recovery_suggestion="This may be a temporary API issue. Try again."
            )

        content = data["choices"][0].get("message", {}).get("content")
        if not content:
            raise LLMAPIError(
                "Empty completion returned",
                model=model,
                recovery_suggestion="This may be a temporary API issue. Try again."
            )

        total_tokens = (data.get("usage") or {}).get("total_tokens", 0)
        self.logger.debug(f"Received response: {len(content)} characters, {total_tokens} tokens")

        return ChatCompletion(content=content, model=data.get("model", model), total_tokens=total_tokens)

    def _get_fallback_models(self, primary_model: str) -> List[str]:
        """Get fallback model chain excluding the primary model"""
        all_models = [self.config.default_model] + self.config.fallback_models

        # Remove primary model and duplicates while preserving order
        fallbacks = []
        for model in all_models:
            if model != primary_model and model not in fallbacks:
                fallbacks.append(model)

        return fallbacks

    def test_connectivity(self) -> bool:
        """Test connectivity to OpenRouter API

        Returns:
            True if connection successful, False otherwise
        """
        try:
            self.logger.debug("Testing OpenRouter API connectivity")
            test_messages = [{"role": "user", "content": "Hello"}]
            self._make_chat_request(test_messages, self.config.default_model, 0.0, 5)
            self.logger.debug("Connectivity test successful")
            return True
        except Exception as e:
            self.logger.warning(f"Connectivity test failed: {e}")
            return False
