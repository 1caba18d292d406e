"""Constants for AI-assist provider integration."""

# Enumeration order is the tie-break order for multi-provider selection
PROVIDER_ORDER: tuple[str, ...] = ("openai", "anthropic", "custom")

VALID_LLM_PROVIDERS: frozenset[str] = frozenset(PROVIDER_ORDER)

DEFAULT_MAX_TOKENS: int = 2000
DEFAULT_TEMPERATURE: float = 0.1

DEFAULT_OPENAI_BASE_URL: str = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL: str = "gpt-4"
DEFAULT_ANTHROPIC_MODEL: str = "claude-sonnet-4-5"
DEFAULT_CUSTOM_MODEL: str = "gpt-3.5-turbo"

# Environment variable prefix per provider
ENV_PREFIXES: dict[str, str] = {
    "openai": "OPENAI",
    "anthropic": "ANTHROPIC",
    "custom": "CUSTOM_AI",
}
