"""AI-assist provider factory.

Supported Providers:
    - openai: OpenAI API (requires API key)
    - anthropic: Anthropic API (requires API key)
    - custom: any OpenAI-compatible endpoint (requires API key and base URL)

Usage Examples:
    Create a single provider:
        >>> provider = create_provider("anthropic", api_key="sk-ant-...")
        >>> reply = provider.generate("Hello")

    Create every provider enabled in the environment:
        >>> providers = create_providers_from_settings(load_provider_settings_from_env())
        >>> list(providers)
        ['openai', 'anthropic']
"""

import logging
from collections.abc import Mapping
from typing import Any

from patchx.llm.config import ProviderSettings
from patchx.llm.constants import PROVIDER_ORDER, VALID_LLM_PROVIDERS
from patchx.llm.exceptions import LLMConfigurationError
from patchx.llm.providers.anthropic_api import AnthropicAPIProvider
from patchx.llm.providers.base import LLMProvider
from patchx.llm.providers.openai_api import OpenAIAPIProvider

logger = logging.getLogger(__name__)

# Provider registry mapping provider names to classes
PROVIDER_REGISTRY: dict[str, type[Any]] = {
    "openai": OpenAIAPIProvider,
    "anthropic": AnthropicAPIProvider,
    "custom": OpenAIAPIProvider,
}


def create_provider(
    provider: str,
    api_key: str | None = None,
    model: str | None = None,
    base_url: str | None = None,
    timeout: int | None = None,
    temperature: float | None = None,
) -> LLMProvider:
    """Create a provider instance with validation.

    Args:
        provider: Provider name (openai, anthropic, custom).
        api_key: API key for the provider. Required for every provider.
        model: Model identifier (optional, uses provider defaults if not specified).
        base_url: Endpoint base URL. Required for ``custom``.
        timeout: Request timeout in seconds.
        temperature: Sampling temperature.

    Returns:
        Configured provider instance implementing the LLMProvider protocol.

    Raises:
        LLMConfigurationError: If the provider name is invalid, the API key is
            missing, or ``custom`` has no base URL.
        ValueError: If timeout is not positive.
    """
    if provider not in VALID_LLM_PROVIDERS:
        valid_list = ", ".join(sorted(VALID_LLM_PROVIDERS))
        raise LLMConfigurationError(
            f"Invalid provider '{provider}'. Valid providers: {valid_list}",
            details={"provider": provider, "valid_providers": sorted(VALID_LLM_PROVIDERS)},
        )
    if not api_key or not api_key.strip():
        raise LLMConfigurationError(
            f"API key required for '{provider}' provider.", details={"provider": provider}
        )
    if provider == "custom" and not base_url:
        raise LLMConfigurationError(
            "Base URL required for the custom provider.", details={"provider": provider}
        )
    if timeout is not None and timeout <= 0:
        raise ValueError(f"timeout must be positive, got {timeout}")

    provider_kwargs: dict[str, Any] = {"api_key": api_key}
    if model is not None:
        provider_kwargs["model"] = model
    if timeout is not None:
        provider_kwargs["timeout"] = timeout
    if base_url is not None:
        provider_kwargs["base_url"] = base_url
    if temperature is not None:
        provider_kwargs["temperature"] = temperature
    if provider == "custom":
        provider_kwargs["json_mode"] = False
        provider_kwargs["provider_name"] = "custom"

    logger.info(f"Creating {provider} provider: model={model}, base_url={base_url or 'default'}")
    try:
        return PROVIDER_REGISTRY[provider](**provider_kwargs)
    except Exception as e:
        logger.error(f"Failed to create {provider} provider: {e}")
        raise


def create_providers_from_settings(
    settings: Mapping[str, ProviderSettings], timeout: int | None = None
) -> dict[str, LLMProvider]:
    """Create one provider per settings entry, in enumeration order.

    Args:
        settings: Provider settings keyed by name.
        timeout: Per-request timeout passed to every provider.

    Returns:
        Providers keyed by name, ordered openai, anthropic, custom.
    """
    providers: dict[str, LLMProvider] = {}
    for name in PROVIDER_ORDER:
        entry = settings.get(name)
        if entry is None:
            continue
        providers[name] = create_provider(
            name,
            api_key=entry.api_key,
            model=entry.model,
            base_url=entry.base_url,
            timeout=timeout,
            temperature=entry.temperature,
        )
    return providers
