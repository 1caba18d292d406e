"""Tests for LLM provider factory and registry."""

from unittest.mock import MagicMock, patch

import pytest

from patchx.llm.config import ProviderSettings
from patchx.llm.exceptions import LLMConfigurationError
from patchx.llm.factory import PROVIDER_REGISTRY, create_provider, create_providers_from_settings
from patchx.llm.providers.anthropic_api import AnthropicAPIProvider
from patchx.llm.providers.openai_api import OpenAIAPIProvider


class TestProviderRegistry:
    """Test PROVIDER_REGISTRY."""

    def test_registry_contains_all_providers(self) -> None:
        assert set(PROVIDER_REGISTRY) == {"openai", "anthropic", "custom"}

    def test_custom_uses_openai_client(self) -> None:
        assert PROVIDER_REGISTRY["custom"] is OpenAIAPIProvider
        assert PROVIDER_REGISTRY["anthropic"] is AnthropicAPIProvider


class TestCreateProvider:
    """Test create_provider()."""

    def test_passes_only_given_arguments(self) -> None:
        mock_provider_class = MagicMock()
        with patch.dict(PROVIDER_REGISTRY, {"openai": mock_provider_class}):
            result = create_provider("openai", api_key="test-key", model="gpt-4", timeout=30)

        mock_provider_class.assert_called_once_with(api_key="test-key", model="gpt-4", timeout=30)
        assert result is mock_provider_class.return_value

    def test_custom_provider_disables_json_mode(self) -> None:
        mock_provider_class = MagicMock()
        with patch.dict(PROVIDER_REGISTRY, {"custom": mock_provider_class}):
            create_provider("custom", api_key="k", base_url="https://llm.internal/v1")

        mock_provider_class.assert_called_once_with(
            api_key="k",
            base_url="https://llm.internal/v1",
            json_mode=False,
            provider_name="custom",
        )

    def test_creates_real_anthropic_provider(self) -> None:
        provider = create_provider("anthropic", api_key="sk-ant-test", temperature=0.5)
        assert isinstance(provider, AnthropicAPIProvider)
        assert provider.temperature == 0.5

    def test_invalid_provider_name(self) -> None:
        with pytest.raises(LLMConfigurationError, match="Invalid provider 'gemini'") as exc_info:
            create_provider("gemini", api_key="k")
        assert exc_info.value.details["valid_providers"] == ["anthropic", "custom", "openai"]

    @pytest.mark.parametrize("api_key", [None, "", "   "])
    def test_api_key_required(self, api_key: str | None) -> None:
        with pytest.raises(LLMConfigurationError, match="API key required for 'openai'"):
            create_provider("openai", api_key=api_key)

    def test_custom_requires_base_url(self) -> None:
        with pytest.raises(LLMConfigurationError, match="Base URL required"):
            create_provider("custom", api_key="k")

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="timeout must be positive"):
            create_provider("openai", api_key="k", timeout=0)


class TestCreateProvidersFromSettings:
    """Test create_providers_from_settings()."""

    def test_enumeration_order(self) -> None:
        settings = {
            "custom": ProviderSettings("custom", "k", "qwen", base_url="https://llm.internal/v1"),
            "anthropic": ProviderSettings("anthropic", "sk-ant", "claude-sonnet-4-5"),
            "openai": ProviderSettings("openai", "sk", "gpt-4"),
        }
        providers = create_providers_from_settings(settings, timeout=15)
        assert list(providers) == ["openai", "anthropic", "custom"]
        assert providers["custom"].provider_name == "custom"  # type: ignore[attr-defined]
        assert all(p.timeout == 15 for p in providers.values())  # type: ignore[attr-defined]

    def test_empty_settings(self) -> None:
        assert create_providers_from_settings({}) == {}
