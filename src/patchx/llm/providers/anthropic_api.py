"""Anthropic API provider implementation.

This module provides the Anthropic Messages API integration used for conflict
resolution. It includes:
- Retry logic with exponential backoff for transient failures
- Translation of SDK errors into LLMError subclasses
"""

import logging

from anthropic import (
    Anthropic,
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    RateLimitError,
)
from anthropic.types import TextBlock
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from patchx.llm.constants import DEFAULT_ANTHROPIC_MODEL, DEFAULT_TEMPERATURE
from patchx.llm.exceptions import (
    LLMAPIError,
    LLMAuthenticationError,
    LLMConfigurationError,
)
from patchx.llm.prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class AnthropicAPIProvider:
    """Anthropic API provider for conflict-resolution completions.

    Implements the LLMProvider protocol.

    Examples:
        >>> provider = AnthropicAPIProvider(api_key="sk-ant-...", model="claude-sonnet-4-5")
        >>> reply = provider.generate("Resolve this conflict", max_tokens=2000)

    Attributes:
        client: Anthropic client instance
        model: Model identifier (e.g., "claude-sonnet-4-5")
        timeout: Request timeout in seconds
        temperature: Sampling temperature
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_ANTHROPIC_MODEL,
        timeout: int = 60,
        base_url: str | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> None:
        """Initialize Anthropic API provider.

        Args:
            api_key: Anthropic API key (starts with sk-ant-)
            model: Model identifier
            timeout: Request timeout in seconds
            base_url: API base URL (None uses the SDK default)
            temperature: Sampling temperature

        Raises:
            LLMConfigurationError: If api_key is empty
        """
        if not api_key:
            raise LLMConfigurationError(
                "Anthropic API key cannot be empty", details={"provider": "anthropic"}
            )

        # Create client with max_retries=0 to implement our own retry logic
        self.client = Anthropic(
            api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0
        )
        self.model = model
        self.timeout = timeout
        self.temperature = temperature

        logger.info(f"Initialized Anthropic provider: model={model}, timeout={timeout}s")

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
            - Retries 3 times with exponential backoff (2s, 4s, 8s)
            - Retries on: RateLimitError, APIConnectionError, APITimeoutError
            - Does NOT retry on authentication errors or invalid requests
        """
        retryer = Retrying(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type((RateLimitError, APIConnectionError, APITimeoutError)),
            reraise=True,
        )
        try:
            return retryer(self._generate_once, prompt, max_tokens)
        except (RateLimitError, APIConnectionError, APITimeoutError) as e:
            raise LLMAPIError(
                f"Anthropic request failed after retries: {e}",
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
                f"Sending request to Anthropic: model={self.model}, max_tokens={max_tokens}"
            )

            response = self.client.messages.create(
                model=self.model,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=self.temperature,
            )

            usage = response.usage
            if usage:
                logger.debug(
                    f"Anthropic API call: {usage.input_tokens} input + "
                    f"{usage.output_tokens} output tokens"
                )

            generated_text = "".join(
                block.text for block in response.content or [] if isinstance(block, TextBlock)
            )
            if not generated_text:
                raise LLMAPIError(
                    "Anthropic returned empty response", details={"model": self.model}
                )
            return generated_text

        except (RateLimitError, APIConnectionError, APITimeoutError) as e:
            # Let these bubble up for retry
            logger.warning(f"Anthropic transient error (will retry): {type(e).__name__}: {e}")
            raise

        except AuthenticationError as e:
            logger.error(f"Anthropic authentication error: {e}")
            raise LLMAuthenticationError(
                "Anthropic API authentication failed - check API key",
                details={"model": self.model},
            ) from e

        except LLMAPIError:
            raise

        except (APIError, APIStatusError) as e:
            logger.error(f"Anthropic API error: {e}")
            raise LLMAPIError(f"Anthropic API error: {e}", details={"model": self.model}) from e

        except Exception as e:
            logger.error(f"Unexpected error in Anthropic generation: {e}")
            raise LLMAPIError(
                f"Unexpected error during Anthropic generation: {e}",
                details={"model": self.model},
            ) from e
