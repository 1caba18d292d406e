"""AI-assist provider settings.

Providers are configured from ``OPENAI_*``, ``ANTHROPIC_*`` and ``CUSTOM_AI_*``
environment variables, each with ``API_KEY``, ``BASE_URL``, ``MODEL``,
``MAX_TOKENS`` and ``TEMPERATURE``. A provider is enabled only when its key
is present; ``custom`` (any OpenAI-compatible endpoint) also needs a base URL.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from patchx.config.exceptions import ConfigError
from patchx.llm.constants import (
    DEFAULT_ANTHROPIC_MODEL,
    DEFAULT_CUSTOM_MODEL,
    DEFAULT_MAX_TOKENS,
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_MODEL,
    DEFAULT_TEMPERATURE,
    ENV_PREFIXES,
    PROVIDER_ORDER,
    VALID_LLM_PROVIDERS,
)


@dataclass(frozen=True, slots=True)
class ProviderSettings:
    """Connection settings for one AI-assist provider.

    Args:
        name: Provider name (openai, anthropic, custom).
        api_key: API key for the provider.
        model: Model identifier.
        base_url: API base URL. None uses the SDK default.
        max_tokens: Maximum tokens per completion.
        temperature: Sampling temperature.

    Example:
        >>> settings = ProviderSettings(name="openai", api_key="sk-test", model="gpt-4")
        >>> settings.max_tokens
        2000
    """

    name: str
    api_key: str
    model: str
    base_url: str | None = None
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE

    def __post_init__(self) -> None:
        """Validate settings.

        Raises:
            ValueError: If any field has an invalid value
        """
        if self.name not in VALID_LLM_PROVIDERS:
            raise ValueError(
                f"name must be one of {sorted(VALID_LLM_PROVIDERS)}, got '{self.name}'"
            )
        if not self.api_key or not self.api_key.strip():
            raise ValueError(f"api_key is required for provider '{self.name}'")
        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"temperature must be in [0.0, 2.0], got {self.temperature}")
        if self.name == "custom" and not self.base_url:
            raise ValueError("base_url is required for the custom provider")

    def to_dict(self) -> dict[str, object]:
        """Serialize without the API key."""
        return {
            "name": self.name,
            "model": self.model,
            "baseUrl": self.base_url,
            "maxTokens": self.max_tokens,
            "temperature": self.temperature,
            "apiKey": "***",
        }


_DEFAULT_MODELS: dict[str, str] = {
    "openai": DEFAULT_OPENAI_MODEL,
    "anthropic": DEFAULT_ANTHROPIC_MODEL,
    "custom": DEFAULT_CUSTOM_MODEL,
}


def load_provider_settings_from_env(
    environ: Mapping[str, str] | None = None,
) -> dict[str, ProviderSettings]:
    """Read provider settings from environment variables.

    Args:
        environ: Mapping to read instead of ``os.environ`` (used by tests).

    Returns:
        Enabled providers in enumeration order (openai, anthropic, custom).

    Raises:
        ConfigError: If a numeric variable cannot be parsed or a value is invalid.

    Example:
        >>> load_provider_settings_from_env({"ANTHROPIC_API_KEY": "sk-ant-x"}).keys()
        dict_keys(['anthropic'])
    """
    env = os.environ if environ is None else environ

    def read(prefix: str, suffix: str) -> str | None:
        value = env.get(f"{prefix}_{suffix}")
        return value.strip() if value and value.strip() else None

    def parse_int(prefix: str, suffix: str, default: int) -> int:
        raw = read(prefix, suffix)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError as e:
            raise ConfigError(f"{prefix}_{suffix} must be a valid integer, got '{raw}'") from e

    def parse_float(prefix: str, suffix: str, default: float) -> float:
        raw = read(prefix, suffix)
        if raw is None:
            return default
        try:
            return float(raw)
        except ValueError as e:
            raise ConfigError(f"{prefix}_{suffix} must be a valid float, got '{raw}'") from e

    providers: dict[str, ProviderSettings] = {}
    for name in PROVIDER_ORDER:
        prefix = ENV_PREFIXES[name]
        api_key = read(prefix, "API_KEY")
        base_url = read(prefix, "BASE_URL")
        if not api_key:
            continue
        if name == "custom" and not base_url:
            continue
        if name == "openai" and base_url is None:
            base_url = DEFAULT_OPENAI_BASE_URL
        try:
            providers[name] = ProviderSettings(
                name=name,
                api_key=api_key,
                model=read(prefix, "MODEL") or _DEFAULT_MODELS[name],
                base_url=base_url,
                max_tokens=parse_int(prefix, "MAX_TOKENS", DEFAULT_MAX_TOKENS),
                temperature=parse_float(prefix, "TEMPERATURE", DEFAULT_TEMPERATURE),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid {name} provider settings: {e}") from e
    return providers
