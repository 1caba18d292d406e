"""AI-assist provider integration for conflict resolution."""

from patchx.llm.config import ProviderSettings, load_provider_settings_from_env
from patchx.llm.constants import PROVIDER_ORDER, VALID_LLM_PROVIDERS
from patchx.llm.factory import create_provider, create_providers_from_settings
from patchx.llm.providers.base import LLMProvider
from patchx.llm.response import ProviderFailure, ProviderSuccess, parse_provider_reply

__all__: list[str] = [
    "PROVIDER_ORDER",
    "VALID_LLM_PROVIDERS",
    "LLMProvider",
    "ProviderFailure",
    "ProviderSettings",
    "ProviderSuccess",
    "create_provider",
    "create_providers_from_settings",
    "load_provider_settings_from_env",
    "parse_provider_reply",
]
