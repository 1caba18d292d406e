"""Tests for the OpenAI (and OpenAI-compatible) provider."""

from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest
from openai import APIConnectionError, AuthenticationError, BadRequestError, RateLimitError

from patchx.llm.exceptions import LLMAPIError, LLMAuthenticationError, LLMConfigurationError
from patchx.llm.prompts import SYSTEM_PROMPT
from patchx.llm.providers.base import LLMProvider
from patchx.llm.providers.openai_api import OpenAIAPIProvider

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def status_error(error_class: type, status_code: int, message: str) -> Exception:
    return error_class(message, response=httpx.Response(status_code, request=REQUEST), body=None)


def completion(content: str | None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    response.usage = MagicMock(prompt_tokens=12, completion_tokens=4)
    return response


class TestOpenAIProviderInitialization:
    """Test OpenAIAPIProvider construction."""

    def test_implements_protocol(self) -> None:
        assert isinstance(OpenAIAPIProvider(api_key="sk-test"), LLMProvider)

    def test_defaults(self) -> None:
        provider = OpenAIAPIProvider(api_key="sk-test")
        assert provider.model == "gpt-4"
        assert provider.json_mode is True
        assert provider.provider_name == "openai"
        assert provider.get_last_request_latency() is None

    def test_empty_api_key_names_provider(self) -> None:
        with pytest.raises(LLMConfigurationError, match="custom API key cannot be empty"):
            OpenAIAPIProvider(api_key="", provider_name="custom")

    @patch("patchx.llm.providers.openai_api.OpenAI")
    def test_client_has_sdk_retries_disabled(self, mock_openai_class: Mock) -> None:
        OpenAIAPIProvider(api_key="sk-test", base_url="https://llm.internal/v1", timeout=20)
        mock_openai_class.assert_called_once_with(
            api_key="sk-test", base_url="https://llm.internal/v1", timeout=20, max_retries=0
        )


class TestOpenAIProviderGenerate:
    """Test generate() with a mocked client."""

    @patch("patchx.llm.providers.openai_api.OpenAI")
    def test_json_mode_request(self, mock_openai_class: Mock) -> None:
        create = mock_openai_class.return_value.chat.completions.create
        create.return_value = completion('{"resolvedCode": "x"}')

        provider = OpenAIAPIProvider(api_key="sk-test", model="gpt-4o")
        assert provider.generate("Resolve this", max_tokens=256) == '{"resolvedCode": "x"}'

        create.assert_called_once_with(
            model="gpt-4o",
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": "Resolve this"},
            ],
            max_tokens=256,
            temperature=0.1,
            response_format={"type": "json_object"},
        )
        latency = provider.get_last_request_latency()
        assert latency is not None
        assert latency >= 0

    @patch("patchx.llm.providers.openai_api.OpenAI")
    def test_compatible_endpoint_skips_json_mode(self, mock_openai_class: Mock) -> None:
        create = mock_openai_class.return_value.chat.completions.create
        create.return_value = completion("plain text")

        provider = OpenAIAPIProvider(api_key="k", json_mode=False, provider_name="custom")
        provider.generate("Resolve this")
        assert "response_format" not in create.call_args.kwargs

    @pytest.mark.parametrize("content", [None, ""])
    @patch("patchx.llm.providers.openai_api.OpenAI")
    def test_empty_reply_raises(self, mock_openai_class: Mock, content: str | None) -> None:
        create = mock_openai_class.return_value.chat.completions.create
        create.return_value = completion(content)
        with pytest.raises(LLMAPIError, match="openai returned empty response"):
            OpenAIAPIProvider(api_key="sk-test").generate("prompt")

    def test_empty_prompt_raises(self) -> None:
        with pytest.raises(ValueError, match="Prompt cannot be empty"):
            OpenAIAPIProvider(api_key="sk-test").generate("")


class TestOpenAIProviderErrors:
    """Test retry logic and error translation."""

    @patch("patchx.llm.providers.openai_api.OpenAI")
    def test_retries_on_rate_limit(self, mock_openai_class: Mock) -> None:
        create = mock_openai_class.return_value.chat.completions.create
        create.side_effect = [status_error(RateLimitError, 429, "slow down"), completion("ok")]

        assert OpenAIAPIProvider(api_key="sk-test").generate("prompt") == "ok"
        assert create.call_count == 2

    @patch("patchx.llm.providers.openai_api.OpenAI")
    def test_auth_error(self, mock_openai_class: Mock) -> None:
        create = mock_openai_class.return_value.chat.completions.create
        create.side_effect = status_error(AuthenticationError, 401, "bad key")

        with pytest.raises(LLMAuthenticationError, match="openai API authentication failed"):
            OpenAIAPIProvider(api_key="sk-test").generate("prompt")
        assert create.call_count == 1

    @patch("patchx.llm.providers.openai_api.OpenAI")
    def test_bad_request_is_wrapped(self, mock_openai_class: Mock) -> None:
        create = mock_openai_class.return_value.chat.completions.create
        create.side_effect = status_error(BadRequestError, 400, "unknown model")

        with pytest.raises(LLMAPIError, match="custom API error"):
            OpenAIAPIProvider(api_key="k", provider_name="custom").generate("prompt")

    @patch("patchx.llm.providers.openai_api.Retrying")
    @patch("patchx.llm.providers.openai_api.OpenAI")
    def test_exhausted_retries_raise_api_error(
        self, mock_openai_class: Mock, mock_retrying: Mock
    ) -> None:
        mock_retrying.return_value.side_effect = APIConnectionError(request=REQUEST)

        with pytest.raises(LLMAPIError, match="openai request failed after retries"):
            OpenAIAPIProvider(api_key="sk-test").generate("prompt")
