"""
Vision LLM client.

Provides a wrapper around the OpenAI SDK pointed at any OpenAI-compatible
multimodal endpoint. Includes retry logic with exponential backoff.
"""

import logging
import time
from typing import Any

from openai import APIConnectionError, APIStatusError, OpenAI, RateLimitError

from provafacil.config import Settings, get_settings
from provafacil.models import ImagePayload

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Raised when LLM API call fails."""

    def __init__(self, message: str, cause: Exception | None = None, retryable: bool = False):
        self.cause = cause
        self.retryable = retryable
        super().__init__(message)


class VisionClient:
    """
    Client for sending an image plus instructions to a vision model.

    Uses OpenAI SDK with custom base URL.
    Implements retry logic with exponential backoff.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the vision client.

        Args:
            settings: Configuration settings. Uses global settings if not provided.
        """
        self._settings = settings or get_settings()
        self._client = OpenAI(
            api_key=self._settings.llm_api_key,
            base_url=self._settings.llm_base_url,
        )

        self._max_retries = self._settings.llm_max_retries
        self._base_delay, self._max_delay = 1.0, 30.0  # seconds

    @property
    def model(self) -> str:
        return self._settings.llm_model

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        image: ImagePayload,
        temperature: float | None = None,
        max_tokens: int = 4096,
    ) -> str:
        """
        Generate a response about an image.

        Args:
            system_prompt: System message defining the model's role.
            user_prompt: Instructions for reading the image.
            image: The answer sheet image.
            temperature: Override temperature (uses config default if None).
            max_tokens: Maximum tokens in response.

        Returns:
            The generated text response.

        Raises:
            LLMError: If generation fails after all retries.
        """
        temp = temperature if temperature is not None else self._settings.llm_temperature

        messages: list[dict[str, Any]] = [
            {"role": "system", "content": system_prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": user_prompt},
                    {"type": "image_url", "image_url": {"url": image.data_uri}},
                ],
            },
        ]

        return self._call_with_retry(messages, temp, max_tokens)

    def _call_with_retry(
        self,
        messages: list[dict[str, Any]],
        temperature: float,
        max_tokens: int,
    ) -> str:
        """
        Send the request, backing off exponentially on transient failures.

        Raises:
            LLMError: If the request fails for good.
        """
        attempt = 0
        while True:
            try:
                response = self._client.chat.completions.create(
                    model=self._settings.llm_model,
                    messages=messages,  # type: ignore[arg-type]
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            except (RateLimitError, APIConnectionError, APIStatusError) as e:
                reason, retryable = self._classify(e)
                if not retryable:
                    raise LLMError(f"API error: {e.message}", cause=e) from e
                if attempt >= self._max_retries:
                    raise LLMError(
                        f"{reason} after {self._max_retries} retries",
                        cause=e,
                        retryable=True,
                    ) from e
                self._backoff(attempt, reason.lower())
                attempt += 1
                continue
            except Exception as e:
                raise LLMError(f"Unexpected error: {e}", cause=e) from e

            content = response.choices[0].message.content if response.choices else None
            if not content:
                raise LLMError("Empty response from LLM")
            return content

    @staticmethod
    def _classify(error: Exception) -> tuple[str, bool]:
        """Map an SDK error to a log label and whether it's worth retrying."""
        if isinstance(error, RateLimitError):
            return "Rate limit exceeded", True
        if isinstance(error, APIConnectionError):
            return "Connection failed", True
        status = getattr(error, "status_code", 500)
        # 4xx other than 429 won't succeed on a retry
        return f"API error (status {status})", status >= 500

    def _backoff(self, attempt: int, reason: str) -> None:
        delay = self._calculate_delay(attempt)
        logger.warning(
            "Vision API %s, retrying in %.1fs (attempt %d/%d)",
            reason,
            delay,
            attempt + 1,
            self._max_retries,
        )
        time.sleep(delay)

    def _calculate_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt + 1`` (0-indexed)."""
        return min(self._base_delay * 2**attempt, self._max_delay)

    def health_check(self) -> bool:
        """
        Check if the API is reachable.

        Returns:
            True if API is healthy, False otherwise.
        """
        try:
            response = self._client.chat.completions.create(
                model=self._settings.llm_model,
                messages=[{"role": "user", "content": "ping"}],
                max_tokens=5,
            )
            return bool(response.choices)
        except Exception as e:
            logger.debug("Health check failed: %s", e)
            return False
