"""Exceptions raised by AI-assist providers.

Providers translate SDK errors into this hierarchy so the resolution engine
can handle every provider the same way.
"""

from patchx.exceptions import PatchXError


class LLMError(PatchXError):
    """Base class for AI-assist provider errors."""


class LLMAPIError(LLMError):
    """The provider API returned an error or an unusable response."""


class LLMAuthenticationError(LLMError):
    """The provider rejected the configured credentials."""


class LLMConfigurationError(LLMError):
    """A provider is missing or misconfigured."""


class LLMTimeoutError(LLMError):
    """A provider call exceeded its deadline."""
