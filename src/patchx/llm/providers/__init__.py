"""AI-assist provider implementations.

Available providers:
- anthropic_api.py: Anthropic Messages API
- openai_api.py: OpenAI chat completions (also serves OpenAI-compatible endpoints)
"""

from patchx.llm.providers.anthropic_api import AnthropicAPIProvider
from patchx.llm.providers.base import LLMProvider
from patchx.llm.providers.openai_api import OpenAIAPIProvider

__all__: list[str] = [
    "AnthropicAPIProvider",
    "LLMProvider",
    "OpenAIAPIProvider",
]
