"""OpenAI API provider implementation.

This module provides the OpenAI chat-completions integration used for conflict
resolution. The same class serves any OpenAI-compatible endpoint (the
``custom`` provider) through ``base_url``. It includes:
- Retry logic with exponential backoff for transient failures
- Optional JSON mode for structured output
- Translation of SDK errors into LLMError subclasses
"""

import logging
import time

from openai import (
    APIConnectionError,
    APITimeoutError,
    AuthenticationError,
    OpenAI,
    OpenAIError,
    RateLimitError,
)
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from patchx.llm.constants import DEFAULT_OPENAI_MODEL, DEFAULT_TEMPERATURE
from patchx.llm.exceptions import (
    LLMAPIError,
    LLMAuthenticationError,
    LLMConfigurationError,
)
from patchx.llm.prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class OpenAIAPIProvider:
    """OpenAI API provider for conflict-resolution completions.

    Implements the LLMProvider protocol.

    Examples:
        >>> provider = OpenAIAPIProvider(api_key="sk-...", model="gpt-4")
        >>> reply = provider.generate("Resolve this conflict", max_tokens=2000)

        >>> compatible = OpenAIAPIProvider(
        ...     api_key="key", model="qwen2.5-coder",
        ...     base_url="https://llm.internal/v1", json_mode=False,
        ... )

    Attributes:
        client: OpenAI client instance
        model: Model identifier
        timeout: Request timeout in seconds
        temperature: Sampling temperature
        json_mode: Whether to request ``response_format=json_object``
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_OPENAI_MODEL,
        timeout: int = 60,
        base_url: str | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        json_mode: bool = True,
        provider_name: str = "openai",
    ) -> None:
        """Initialize OpenAI API provider.

        Args:
            api_key: API key for the endpoint
            model: Model identifier
            timeout: Request timeout in seconds
            base_url: Endpoint base URL (None uses the SDK default)
            temperature: Sampling temperature
            json_mode: Request structured JSON output
            provider_name: Name used in logs and error details

        Raises:
            LLMConfigurationError: If api_key is empty
        """
        if not api_key:
            raise LLMConfigurationError(
                f"{provider_name} API key cannot be empty", details={"provider": provider_name}
            )

        # Create client with max_retries=0 to implement our own retry logic
        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.json_mode = json_mode
        self.provider_name = provider_name
        self._last_request_latency: float | None = None

        logger.info(
            f"Initialized {provider_name} provider: model={model}, "
            f"base_url={base_url or 'default'}, timeout={timeout}s"
        )

    def generate(self, prompt: str, max_tokens: int = 2000) -> str:
        """Generate a completion with retry logic.

        Args:
            prompt: Input prompt for generation
            max_tokens: Maximum tokens to generate in response

        Returns:
            Generated text from the model

        Raises:
            LLMAPIError: If generation fails after all retries exhausted
            LLMAuthenticationError: For authentication errors (no retry)
            ValueError: If prompt is empty or max_tokens is invalid

        Note:
            Retries 3 times with exponential backoff on timeouts, rate limits
            and connection errors.
        """
        retryer = Retrying(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type((APITimeoutError, RateLimitError, APIConnectionError)),
            reraise=True,
        )
        try:
            return retryer(self._generate_once, prompt, max_tokens)
        except (APITimeoutError, RateLimitError, APIConnectionError) as e:
            raise LLMAPIError(
                f"{self.provider_name} request failed after retries: {e}",
                details={"model": self.model, "error_type": type(e).__name__},
            ) from e

    def _generate_once(self, prompt: str, max_tokens: int = 2000) -> str:
        """Single generation attempt (called by retry logic)."""
        if not prompt:
            raise ValueError("Prompt cannot be empty")
        if max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {max_tokens}")

        try:
            logger.debug(
                f"Sending request to {self.provider_name}: model={self.model}, "
                f"max_tokens={max_tokens}, prompt_chars={len(prompt)}"
            )
            extra = {"response_format": {"type": "json_object"}} if self.json_mode else {}
            start_time = time.perf_counter()
            try:
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    max_tokens=max_tokens,
                    temperature=self.temperature,
                    **extra,
                )
            finally:
                self._last_request_latency = time.perf_counter() - start_time

            if response.usage:
                logger.debug(
                    f"{self.provider_name} call: {response.usage.prompt_tokens} input + "
                    f"{response.usage.completion_tokens} output tokens "
                    f"in {self._last_request_latency:.2f}s"
                )

            generated_text = response.choices[0].message.content if response.choices else ""
            if not generated_text:
                raise LLMAPIError(
                    f"{self.provider_name} returned empty response", details={"model": self.model}
                )
            return generated_text

        except (APITimeoutError, RateLimitError, APIConnectionError) as e:
            # Let these bubble up for retry
            logger.warning(
                f"{self.provider_name} transient error (will retry): {type(e).__name__}: {e}"
            )
            raise

        except AuthenticationError as e:
            logger.error(f"{self.provider_name} authentication error: {e}")
            raise LLMAuthenticationError(
                f"{self.provider_name} API authentication failed - check API key",
                details={"model": self.model},
            ) from e

        except LLMAPIError:
            raise

        except OpenAIError as e:
            logger.error(f"{self.provider_name} API error: {e}")
            raise LLMAPIError(
                f"{self.provider_name} API error: {e}", details={"model": self.model}
            ) from e

        except Exception as e:
            logger.error(f"Unexpected error in {self.provider_name} generation: {e}")
            raise LLMAPIError(
                f"Unexpected error during {self.provider_name} generation: {e}",
                details={"model": self.model},
            ) from e

    def get_last_request_latency(self) -> float | None:
        """Latency in seconds of the most recent request, if any."""
        return self._last_request_latency
