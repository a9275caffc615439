# core/llm_interface.py
"""
Handles all direct interactions with the generative-text service.

Requests go to an OpenAI-compatible ``/chat/completions`` endpoint and may
carry a JSON schema that constrains the structured output. Every request
runs under the shared :class:`core.retry.RetryPolicy`.
"""

# Standard library imports
import re

# Type hints
from typing import Any

import httpx

# Third-party imports
import structlog

# Local imports
from config import settings
from core.exceptions import ResponseParseError
from core.retry import RetryPolicy
from core.usage import ServiceUsage

logger = structlog.get_logger(__name__)


def _completion_token_param(api_base: str) -> str:
    """Return the token count parameter expected by the provider."""
    if "api.openai.com" in api_base or "api.anthropic.com" in api_base:
        return "max_completion_tokens"
    return "max_tokens"


_THINK_TAGS = ("think", "thought", "thinking", "reasoning", "analysis")


class LLMService:
    """Utility class for interacting with the chat completion endpoint."""

    def __init__(
        self,
        timeout: float = settings.HTTPX_TIMEOUT,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        # Use a single async client for all requests to reuse connections
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.usage = ServiceUsage()
        logger.info(
            "LLMService initialized.",
            api_base=settings.OPENAI_API_BASE,
            max_attempts=self.retry_policy.max_attempts,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _log_llm_usage(self, model_name: str, usage_data: dict[str, int] | None) -> None:
        """Helper to log LLM token usage if available in the response."""
        if usage_data and isinstance(usage_data, dict):
            logger.info(
                "LLM ('%s') Usage - Prompt: %s tk, Comp: %s tk, Total: %s tk",
                model_name,
                usage_data.get("prompt_tokens", "N/A"),
                usage_data.get("completion_tokens", "N/A"),
                usage_data.get("total_tokens", "N/A"),
            )
        else:
            logger.debug(
                "LLM ('%s') response missing 'usage' information.", model_name
            )

    async def _post_non_streaming(
        self,
        payload: dict[str, Any],
        headers: dict[str, str],
        timeout: float | None,
    ) -> tuple[str, dict[str, int] | None]:
        """Send a regular chat completion request."""
        request_kwargs: dict[str, Any] = {"json": payload, "headers": headers}
        if timeout is not None:
            request_kwargs["timeout"] = timeout
        self.usage.requests += 1
        response = await self._client.post(
            f"{settings.OPENAI_API_BASE}/chat/completions", **request_kwargs
        )
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as exc:
            raise ResponseParseError(
                f"Service returned a non-JSON body (HTTP {response.status_code}).",
                response.text,
            ) from exc
        if not isinstance(data, dict):
            raise ResponseParseError(
                f"Service returned a JSON {type(data).__name__} instead of an object.",
                response.text,
            )
        raw_text = ""
        if data.get("choices") and len(data["choices"]) > 0:
            message = data["choices"][0].get("message")
            if message and message.get("content"):
                raw_text = message["content"]
        else:
            logger.error(
                "LLM ('%s') invalid response structure - missing choices/content despite 200 OK: %s",
                payload["model"],
                str(data)[:500],
            )
        return raw_text, data.get("usage")

    async def async_call_llm(
        self,
        model_name: str,
        prompt: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_schema: dict[str, Any] | None = None,
        schema_name: str = "response",
        timeout: float | None = None,
        auto_clean_response: bool = True,
    ) -> tuple[str, dict[str, int] | None]:
        """Call the model and return ``(text, usage)``.

        Rate-limited failures are retried by ``self.retry_policy``; the
        policy's terminal ``ServiceOverloadedError`` and every non-retryable
        error propagate to the caller.
        """
        if not model_name:
            raise ValueError("async_call_llm: model_name is required.")
        if not prompt or not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("async_call_llm: empty or invalid prompt.")

        headers = {
            "Authorization": f"Bearer {settings.OPENAI_API_KEY}",
            "Content-Type": "application/json",
        }
        payload: dict[str, Any] = {
            "model": model_name,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature if temperature is not None else 0.6,
            "top_p": settings.LLM_TOP_P,
            _completion_token_param(settings.OPENAI_API_BASE): (
                max_tokens if max_tokens is not None else settings.MAX_GENERATION_TOKENS
            ),
            "stream": False,
        }
        if response_schema is not None:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": schema_name, "schema": response_schema},
            }

        logger.debug(
            "Calling LLM '%s'. Prompt chars: %d. Structured: %s.",
            model_name,
            len(prompt),
            response_schema is not None,
        )

        def _count_retry(_attempt: int, _exc: BaseException) -> None:
            self.usage.rate_limit_retries += 1

        text, usage = await self.retry_policy.call(
            lambda: self._post_non_streaming(payload, headers, timeout),
            description=f"LLM call ('{model_name}')",
            on_retry=_count_retry,
        )
        self.usage.add_tokens(usage)
        self._log_llm_usage(model_name, usage)
        if auto_clean_response:
            text = self.clean_model_response(text)
        return text, usage

    def clean_model_response(self, text: str) -> str:
        """Strip reasoning tags and markdown code fences around a response."""
        if not isinstance(text, str):
            logger.warning(
                "clean_model_response received non-string input: %s. Returning empty string.",
                type(text),
            )
            return ""

        cleaned_text = text
        for tag_name in _THINK_TAGS:
            cleaned_text = re.sub(
                rf"<\s*{tag_name}\s*>.*?<\s*/\s*{tag_name}\s*>",
                "",
                cleaned_text,
                flags=re.DOTALL | re.IGNORECASE,
            )
            cleaned_text = re.sub(
                rf"<\s*/?\s*{tag_name}\s*/?\s*>",
                "",
                cleaned_text,
                flags=re.IGNORECASE,
            )

        cleaned_text = re.sub(
            r"```(?:[a-zA-Z0-9_-]+)?\s*(.*?)\s*```",
            r"\1",
            cleaned_text,
            flags=re.DOTALL,
        )
        return cleaned_text.strip()


# Instantiate the service for other modules to import and use
llm_service = LLMService()
