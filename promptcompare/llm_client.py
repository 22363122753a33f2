"""
LLM completion boundary.

This module wraps LiteLLM's async completion call behind a small client that
the execution dispatcher invokes with a single user message and a model
configuration. Provider failures are classified into the ExecutionError
taxonomy so callers can surface them consistently.

Dependencies:
    - litellm>=1.0.0: Unified access to chat-completion providers

Credentials are passed per call and are never stored by the client.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass
from typing import Any, Dict, Optional

try:
    from litellm import acompletion
    from litellm import exceptions as litellm_exceptions
except ImportError:
    raise ImportError(
        "LiteLLM is required but not installed. "
        "Please run: pip install litellm>=1.0.0"
    )

from .config import ModelSpec

logger = logging.getLogger(__name__)

# Providers LiteLLM can route without a prefixed model name
_ROUTABLE_PROVIDERS = {"openai", "anthropic", "gemini", "mistral", "groq", "ollama"}


@dataclass
class LLMResponse:
    """Structured response from a language model invocation."""
    content: str
    model: str
    usage: Optional[Dict[str, Any]] = None
    finish_reason: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        if not self.usage:
            return 0
        return int(self.usage.get("total_tokens") or 0)


class LLMClient:
    """
    Async chat-completion client for a single provider call per request.

    An optional bound limits how many requests are in flight at once. Each
    event loop gets its own semaphore, since callers such as the Streamlit page
    start a fresh loop with asyncio.run for every button press.
    """

    def __init__(self, max_concurrent_requests: Optional[int] = None):
        self.max_concurrent_requests = max_concurrent_requests
        self._rate_limiters = weakref.WeakKeyDictionary()

    def _rate_limiter(self) -> Optional[asyncio.Semaphore]:
        """The semaphore for the running event loop, created on first use."""
        if not self.max_concurrent_requests:
            return None
        loop = asyncio.get_running_loop()
        limiter = self._rate_limiters.get(loop)
        if limiter is None:
            limiter = asyncio.Semaphore(self.max_concurrent_requests)
            self._rate_limiters[loop] = limiter
        return limiter

    def _completion_kwargs(
        self,
        prompt_text: str,
        model: ModelSpec,
        api_key: Optional[str]
    ) -> Dict[str, Any]:
        completion_kwargs: Dict[str, Any] = {
            "model": model.model,
            "messages": [{"role": "user", "content": prompt_text}],
            "temperature": model.temperature,
        }
        if model.max_tokens is not None:
            completion_kwargs["max_tokens"] = model.max_tokens
        if model.provider in _ROUTABLE_PROVIDERS:
            completion_kwargs["custom_llm_provider"] = model.provider
        if api_key:
            completion_kwargs["api_key"] = api_key
        return completion_kwargs

    async def complete_async(
        self,
        prompt_text: str,
        model: ModelSpec,
        api_key: Optional[str] = None
    ) -> LLMResponse:
        """
        Send one user-role message to the model and return its response.

        Raises an ExecutionError subclass wrapping the provider's exception.
        """
        completion_kwargs = self._completion_kwargs(prompt_text, model, api_key)
        logger.debug("Requesting completion from %s (%d chars)", model.model, len(prompt_text))

        rate_limiter = self._rate_limiter()
        try:
            if rate_limiter is not None:
                async with rate_limiter:
                    response = await acompletion(**completion_kwargs)
            else:
                response = await acompletion(**completion_kwargs)
        except Exception as e:
            raise classify_error(e, model.model) from e

        return _to_llm_response(response, model.model)


def _to_llm_response(response: Any, model_name: str) -> LLMResponse:
    """Read content and usage from a provider response, tolerating missing parts."""
    choices = getattr(response, "choices", None) or []
    content = ""
    finish_reason = None
    if choices:
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None) or ""
        finish_reason = getattr(choices[0], "finish_reason", None)

    usage = getattr(response, "usage", None)
    if usage is not None:
        usage = usage.model_dump() if hasattr(usage, "model_dump") else dict(usage)

    return LLMResponse(
        content=content,
        model=getattr(response, "model", None) or model_name,
        usage=usage,
        finish_reason=finish_reason,
    )


def classify_error(error: Exception, model_name: str) -> "ExecutionError":
    """
    Map a provider exception onto the ExecutionError taxonomy.

    LiteLLM's own exception types are checked first; anything else falls back
    to matching on the error text.
    """
    if isinstance(error, ExecutionError):
        return error

    if isinstance(error, litellm_exceptions.RateLimitError):
        return RateLimitError(f"Rate limit exceeded for model {model_name}: {error}", error, model_name)
    if isinstance(error, litellm_exceptions.AuthenticationError):
        return AuthenticationError(f"Authentication failed for model {model_name}: {error}", error, model_name)
    if isinstance(error, litellm_exceptions.Timeout):
        return RequestTimeoutError(f"Request timeout for model {model_name}: {error}", error, model_name)
    if isinstance(error, litellm_exceptions.APIConnectionError):
        return NetworkError(f"Network error for model {model_name}: {error}", error, model_name)
    if isinstance(error, litellm_exceptions.NotFoundError):
        return InvalidModelError(f"Invalid model {model_name}: {error}", error, model_name)

    error_str = str(error).lower()
    if "rate limit" in error_str or "429" in error_str or "quota" in error_str:
        return RateLimitError(f"Rate limit exceeded for model {model_name}: {error}", error, model_name)
    elif "api key" in error_str or "authentication" in error_str or "401" in error_str:
        return AuthenticationError(f"Authentication failed for model {model_name}: {error}", error, model_name)
    elif "timeout" in error_str or "timed out" in error_str:
        return RequestTimeoutError(f"Request timeout for model {model_name}: {error}", error, model_name)
    elif "network" in error_str or "connection" in error_str:
        return NetworkError(f"Network error for model {model_name}: {error}", error, model_name)
    elif "model" in error_str and ("not found" in error_str or "invalid" in error_str):
        return InvalidModelError(f"Invalid model {model_name}: {error}", error, model_name)
    else:
        return APIError(f"API error for model {model_name}: {error}", error, model_name)


class ExecutionError(Exception):
    """Base exception for a failed call to the completion boundary."""

    def __init__(self, message: str, cause: Optional[BaseException] = None, model: Optional[str] = None):
        super().__init__(message)
        self.cause = cause
        self.model = model


class RateLimitError(ExecutionError):
    """Raised when API rate limits or quotas are exceeded."""
    pass


class AuthenticationError(ExecutionError):
    """Raised when API authentication fails."""
    pass


class RequestTimeoutError(ExecutionError):
    """Raised when the provider request times out."""
    pass


class NetworkError(ExecutionError):
    """Raised when network connectivity issues occur."""
    pass


class InvalidModelError(ExecutionError):
    """Raised when an invalid model is specified."""
    pass


class APIError(ExecutionError):
    """Raised for general API errors."""
    pass
