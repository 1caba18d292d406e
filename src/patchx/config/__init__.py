"""Configuration management.

This module provides configuration management through:
- RuntimeConfig: Runtime configuration from env vars, files, and CLI flags
- StoreBackend: Enum for the persistence backend
- ConfigError: Exception for configuration errors
"""

from patchx.config.exceptions import ConfigError
from patchx.config.runtime_config import RuntimeConfig, StoreBackend

__all__ = ["ConfigError", "RuntimeConfig", "StoreBackend"]
