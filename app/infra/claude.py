"""
Claude API Client

Async Anthropic wrapper used by the dialogue oracle: bounded retries on
transient failures, a fallback model, and optional assistant prefill so
replies start inside a JSON object.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from anthropic import (
    APIConnectionError,
    APIError,
    AsyncAnthropic,
    InternalServerError,
    RateLimitError,
)

from app.config import settings

logger = logging.getLogger(__name__)

# Errors worth another attempt against the same model
RETRYABLE_ERRORS = (RateLimitError, APIConnectionError, InternalServerError)


class ClaudeClientError(Exception):
    """Raised when Claude cannot produce a reply."""
    pass


@dataclass
class ClaudeResponse:
    """Response from Claude API."""
    content: str
    model: str
    input_tokens: int
    output_tokens: int
    stop_reason: Optional[str]
    latency_ms: float
    attempts: int = 1

    @property
    def truncated(self) -> bool:
        return self.stop_reason == "max_tokens"


class ClaudeClient:
    """
    Async Claude API client wrapper.

    Features:
    - Retries with exponential backoff on rate limits, connection
      errors and 5xx responses
    - One fallback model when the primary keeps failing
    - Assistant prefill (the prefill is included in the returned content)
    """

    _instance: Optional["ClaudeClient"] = None

    def __init__(
        self,
        api_key: Optional[str] = None,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
    ):
        """Initialize Claude client.

        Args:
            api_key: Anthropic API key (defaults to settings)
            max_retries: Attempts per model before giving up
            backoff_seconds: First retry delay; doubles on each retry

        Raises:
            ClaudeClientError: If no API key is configured
        """
        self.api_key = api_key or settings.anthropic_api_key
        if not self.api_key:
            raise ClaudeClientError("ANTHROPIC_API_KEY is not configured")

        self._client = AsyncAnthropic(api_key=self.api_key)
        self._default_model = settings.claude_dialogue_model
        self._fallback_model = settings.claude_fallback_model
        self._max_retries = max(1, max_retries)
        self._backoff_seconds = backoff_seconds

        logger.info(
            f"ClaudeClient initialized with model={self._default_model}, "
            f"fallback={self._fallback_model}"
        )

    @classmethod
    def get_instance(cls) -> "ClaudeClient":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)."""
        cls._instance = None

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        prefill: Optional[str] = None,
        use_fallback_on_error: bool = True,
    ) -> ClaudeResponse:
        """
        Generate a response from Claude.

        Args:
            prompt: User message
            system_prompt: System prompt (optional)
            model: Model to use (defaults to dialogue model)
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature
            prefill: Text the assistant turn starts with
            use_fallback_on_error: Try fallback model on failure

        Returns:
            ClaudeResponse with generated content

        Raises:
            ClaudeClientError: If no model produced a reply
        """
        model = model or self._default_model
        start_time = time.perf_counter()

        messages: list[dict[str, str]] = [{"role": "user", "content": prompt}]
        if prefill:
            messages.append({"role": "assistant", "content": prefill})

        try:
            response, attempts = await self._call_with_retry(
                messages=messages,
                system=system_prompt,
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except APIError as e:
            if use_fallback_on_error and model != self._fallback_model:
                logger.warning(f"{model} failed, trying fallback {self._fallback_model}: {e}")
                return await self.generate(
                    prompt=prompt,
                    system_prompt=system_prompt,
                    model=self._fallback_model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    prefill=prefill,
                    use_fallback_on_error=False,
                )
            raise ClaudeClientError(f"Claude API call failed: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
        latency_ms = (time.perf_counter() - start_time) * 1000

        if response.stop_reason == "max_tokens":
            logger.warning(f"{model} reply truncated at {max_tokens} tokens")

        return ClaudeResponse(
            content=(prefill or "") + text,
            model=model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
            latency_ms=latency_ms,
            attempts=attempts,
        )

    async def _call_with_retry(
        self,
        messages: list[dict[str, str]],
        system: Optional[str],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> tuple[Any, int]:
        """Call API with exponential backoff. Returns (response, attempts used)."""
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system

        for attempt in range(1, self._max_retries + 1):
            try:
                return await self._client.messages.create(**kwargs), attempt

            except RETRYABLE_ERRORS as e:
                if attempt == self._max_retries:
                    raise
                wait_time = self._backoff_seconds * 2 ** (attempt - 1)
                logger.warning(
                    f"{type(e).__name__} from {model}, retrying in {wait_time:.1f}s "
                    f"(attempt {attempt}/{self._max_retries})"
                )
                await asyncio.sleep(wait_time)

        raise ClaudeClientError("Max retries exceeded")

    async def close(self) -> None:
        """Close the client."""
        await self._client.close()


# Singleton accessor
async def get_claude_client() -> ClaudeClient:
    """Get Claude client singleton instance."""
    return ClaudeClient.get_instance()
