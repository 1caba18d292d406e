"""Runtime configuration management with environment variable and file support.

This module provides the RuntimeConfig system for the PatchX service. Values
come from defaults, config files (YAML/TOML), environment variables and CLI
flags. Configuration precedence: CLI flags > env vars > config file > defaults.

AI providers are configured separately (see ``patchx.llm.config``) because
each provider carries its own key, model and endpoint.
"""

import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from patchx.config.exceptions import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "PATCHX_"
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
SECRET_FIELDS = {"gerrit_password", "mail_api_key"}

TIMEOUT_FIELDS = (
    "node_lookup_timeout",
    "workflow_timeout",
    "gerrit_timeout",
    "provider_timeout",
    "remote_command_timeout",
)

# Environment names accepted for backward compatibility with older deployments.
LEGACY_ENV_NAMES = {
    "gerrit_base_url": "GERRIT_BASE_URL",
    "gerrit_username": "GERRIT_USERNAME",
    "gerrit_password": "GERRIT_PASSWORD",
}


class StoreBackend(str, Enum):
    """Where submissions and uploads are persisted.

    Attributes:
        MEMORY: Process-local dictionary; lost on restart.
        FILE: One JSON file per key under ``store_path``.
    """

    MEMORY = "memory"
    FILE = "file"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    """Runtime configuration for the PatchX service.

    This immutable configuration dataclass is validated during initialization.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to log file. If None, logs to stderr only.
        store_backend: Persistence backend for uploads and submissions.
        store_path: Directory used by the file backend.
        max_file_size: Largest accepted upload in bytes.
        gerrit_base_url: Gerrit root URL. Submissions fail without it.
        gerrit_username: Gerrit HTTP username.
        gerrit_password: Gerrit HTTP password or token.
        gerrit_topic: Topic attached to created changes.
        node_lookup_timeout: Deadline for reading a remote node's settings.
        workflow_timeout: Deadline for the whole remote git workflow.
        gerrit_timeout: Deadline for the Gerrit push.
        provider_timeout: Deadline for one AI provider call.
        remote_command_timeout: Deadline for one remote command.
        default_working_home: Clone parent directory when a node has none.
        status_log_tail: Log lines returned by status reads; 0 returns all.
        mail_endpoint: Mail API endpoint (MailChannels-compatible).
        mail_api_key: Optional bearer token for the mail API.
        mail_from_email: Sender address. Notifications are skipped without it.
        mail_from_name: Sender display name.
        mail_reply_to: Optional reply-to address.
        public_site_url: Base URL used for status links in emails.
        ai_max_tokens: Maximum tokens per AI provider request.
        api_host: Bind address for ``patchx serve``.
        api_port: Bind port for ``patchx serve``.

    Example:
        >>> config = RuntimeConfig.from_env()
        >>> config = config.merge_with_cli(log_level="DEBUG", api_port=9000)
        >>> print(f"Store: {config.store_backend}, Port: {config.api_port}")
        Store: memory, Port: 9000
    """

    log_level: str = "INFO"
    log_file: str | None = None
    store_backend: StoreBackend = StoreBackend.MEMORY
    store_path: str = ".patchx-store"
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    gerrit_base_url: str | None = None
    gerrit_username: str | None = None
    gerrit_password: str | None = None
    gerrit_topic: str = "aosp-patch-service"
    node_lookup_timeout: float = 2.0
    workflow_timeout: float = 600.0
    gerrit_timeout: float = 180.0
    provider_timeout: float = 60.0
    remote_command_timeout: float = 300.0
    default_working_home: str = "~/git-work"
    status_log_tail: int = 200
    mail_endpoint: str | None = None
    mail_api_key: str | None = None
    mail_from_email: str | None = None
    mail_from_name: str | None = None
    mail_reply_to: str | None = None
    public_site_url: str | None = None
    ai_max_tokens: int = 2000
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    def __post_init__(self) -> None:
        """Validate configuration after initialization.

        Raises:
            ConfigError: If any configuration value is invalid.
        """
        if self.log_level not in VALID_LOG_LEVELS:
            raise ConfigError(
                f"Invalid log level: {self.log_level}. Must be one of {sorted(VALID_LOG_LEVELS)}"
            )

        if not isinstance(self.store_backend, StoreBackend):
            raise ConfigError(
                f"store_backend must be StoreBackend enum, got {type(self.store_backend).__name__}"
            )
        if self.store_backend is StoreBackend.FILE and not self.store_path:
            raise ConfigError("store_path is required for the file store backend")

        if self.max_file_size <= 0:
            raise ConfigError(f"max_file_size must be positive, got {self.max_file_size}")

        for name in TIMEOUT_FIELDS:
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")

        if self.status_log_tail < 0:
            raise ConfigError(f"status_log_tail must be >= 0, got {self.status_log_tail}")
        if self.ai_max_tokens <= 0:
            raise ConfigError(f"ai_max_tokens must be positive, got {self.ai_max_tokens}")
        if not 0 < self.api_port < 65536:
            raise ConfigError(f"api_port must be between 1 and 65535, got {self.api_port}")

        if self.gerrit_base_url and not self.gerrit_base_url.startswith(("http://", "https://")):
            raise ConfigError(
                f"gerrit_base_url must be an http(s) URL, got '{self.gerrit_base_url}'"
            )

        if self.gerrit_base_url and not (self.gerrit_username and self.gerrit_password):
            logger.warning(
                "Gerrit base URL is set without credentials. "
                "Set PATCHX_GERRIT_USERNAME and PATCHX_GERRIT_PASSWORD."
            )

    @classmethod
    def from_defaults(cls) -> "RuntimeConfig":
        """Create configuration with default values.

        Example:
            >>> config = RuntimeConfig.from_defaults()
            >>> assert config.store_backend == StoreBackend.MEMORY
            >>> assert config.gerrit_timeout == 180.0
        """
        return cls()

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, base: "RuntimeConfig | None" = None
    ) -> "RuntimeConfig":
        """Create configuration from environment variables.

        Every field is read from ``PATCHX_<FIELD NAME IN UPPER CASE>``, e.g.
        ``PATCHX_LOG_LEVEL``, ``PATCHX_STORE_BACKEND`` or
        ``PATCHX_GERRIT_TIMEOUT``. The Gerrit connection fields also accept
        ``GERRIT_BASE_URL``, ``GERRIT_USERNAME`` and ``GERRIT_PASSWORD``.
        Unset variables keep the value from ``base``.

        Args:
            environ: Mapping to read instead of ``os.environ``.
            base: Values for unset variables, e.g. a config loaded from file.
                Defaults to ``from_defaults()``.

        Raises:
            ConfigError: If an environment variable has an invalid value.

        Example:
            >>> os.environ["PATCHX_STORE_BACKEND"] = "file"
            >>> config = RuntimeConfig.from_env()
            >>> assert config.store_backend == StoreBackend.FILE
        """
        env = os.environ if environ is None else environ
        defaults = base or cls.from_defaults()

        def get(name: str) -> str | None:
            value = env.get(f"{ENV_PREFIX}{name.upper()}")
            if not value and name in LEGACY_ENV_NAMES:
                value = env.get(LEGACY_ENV_NAMES[name])
            return value or None

        def parse_int(name: str, min_value: int = 0) -> int:
            """Parse integer environment variable."""
            env_var = f"{ENV_PREFIX}{name.upper()}"
            value_str = get(name)
            if value_str is None:
                return int(getattr(defaults, name))
            try:
                value = int(value_str)
            except ValueError as e:
                raise ConfigError(f"Invalid {env_var}='{value_str}'. Must be an integer") from e
            if value < min_value:
                raise ConfigError(f"{env_var}={value} must be >= {min_value}")
            return value

        def parse_float(name: str) -> float:
            """Parse positive float environment variable."""
            env_var = f"{ENV_PREFIX}{name.upper()}"
            value_str = get(name)
            if value_str is None:
                return float(getattr(defaults, name))
            try:
                value = float(value_str)
            except ValueError as e:
                raise ConfigError(f"Invalid {env_var}='{value_str}'. Must be a number") from e
            if value <= 0:
                raise ConfigError(f"{env_var}={value} must be positive")
            return value

        backend_str = (get("store_backend") or defaults.store_backend.value).lower()
        try:
            store_backend = StoreBackend(backend_str)
        except ValueError as e:
            valid = [b.value for b in StoreBackend]
            raise ConfigError(
                f"Invalid {ENV_PREFIX}STORE_BACKEND='{backend_str}'. Must be one of {valid}"
            ) from e

        return cls(
            log_level=(get("log_level") or defaults.log_level).upper(),
            log_file=get("log_file") or defaults.log_file,
            store_backend=store_backend,
            store_path=get("store_path") or defaults.store_path,
            max_file_size=parse_int("max_file_size", min_value=1),
            gerrit_base_url=get("gerrit_base_url") or defaults.gerrit_base_url,
            gerrit_username=get("gerrit_username") or defaults.gerrit_username,
            gerrit_password=get("gerrit_password") or defaults.gerrit_password,
            gerrit_topic=get("gerrit_topic") or defaults.gerrit_topic,
            node_lookup_timeout=parse_float("node_lookup_timeout"),
            workflow_timeout=parse_float("workflow_timeout"),
            gerrit_timeout=parse_float("gerrit_timeout"),
            provider_timeout=parse_float("provider_timeout"),
            remote_command_timeout=parse_float("remote_command_timeout"),
            default_working_home=get("default_working_home") or defaults.default_working_home,
            status_log_tail=parse_int("status_log_tail", min_value=0),
            mail_endpoint=get("mail_endpoint") or defaults.mail_endpoint,
            mail_api_key=get("mail_api_key") or defaults.mail_api_key,
            mail_from_email=get("mail_from_email") or defaults.mail_from_email,
            mail_from_name=get("mail_from_name") or defaults.mail_from_name,
            mail_reply_to=get("mail_reply_to") or defaults.mail_reply_to,
            public_site_url=get("public_site_url") or defaults.public_site_url,
            ai_max_tokens=parse_int("ai_max_tokens", min_value=1),
            api_host=get("api_host") or defaults.api_host,
            api_port=parse_int("api_port", min_value=1),
        )

    @classmethod
    def from_file(cls, config_path: Path | str) -> "RuntimeConfig":
        """Load configuration from a YAML or TOML file.

        The file groups settings into sections::

            logging: {level, file}
            store: {backend, path}
            uploads: {max_file_size}
            gerrit: {base_url, username, password, topic}
            timeouts: {node_lookup, workflow, gerrit, provider, remote_command}
            remote: {default_working_home}
            status: {log_tail}
            mail: {endpoint, api_key, from_email, from_name, reply_to}
            server: {host, port, public_site_url}
            ai: {max_tokens}

        Args:
            config_path: Path to configuration file (YAML or TOML).

        Raises:
            ConfigError: If the file doesn't exist, has an invalid format, or
                contains invalid values.
        """
        try:
            config_path = Path(config_path).resolve()
        except (OSError, ValueError) as e:
            raise ConfigError(f"Invalid config file path: {e}") from e

        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        if not config_path.is_file():
            raise ConfigError(f"Config path is not a file: {config_path}")

        suffix = config_path.suffix.lower()
        if suffix in (".yaml", ".yml"):
            return cls._load_from_yaml(config_path)
        elif suffix == ".toml":
            return cls._load_from_toml(config_path)
        else:
            raise ConfigError(
                f"Unsupported config file format: {suffix}. Must be .yaml, .yml, or .toml"
            )

    @classmethod
    def _load_from_yaml(cls, config_path: Path) -> "RuntimeConfig":
        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read {config_path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping/dict, got {type(data).__name__}")
        return cls._from_dict(data, config_path)

    @classmethod
    def _load_from_toml(cls, config_path: Path) -> "RuntimeConfig":
        try:
            with config_path.open("rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read {config_path}: {e}") from e
        return cls._from_dict(data, config_path)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], source: Path) -> "RuntimeConfig":
        """Create RuntimeConfig from a sectioned dictionary.

        Raises:
            ConfigError: If a section is not a mapping or a value has the wrong type.
        """

        def section(name: str) -> dict[str, Any]:
            value = data.get(name, {})
            if not isinstance(value, dict):
                raise ConfigError(f"Invalid {name} section in {source}: {type(value).__name__}")
            return value

        layout = {
            "logging": {"level": "log_level", "file": "log_file"},
            "store": {"backend": "store_backend", "path": "store_path"},
            "uploads": {"max_file_size": "max_file_size"},
            "gerrit": {
                "base_url": "gerrit_base_url",
                "username": "gerrit_username",
                "password": "gerrit_password",
                "topic": "gerrit_topic",
            },
            "timeouts": {name.removesuffix("_timeout"): name for name in TIMEOUT_FIELDS},
            "remote": {"default_working_home": "default_working_home"},
            "status": {"log_tail": "status_log_tail"},
            "mail": {
                "endpoint": "mail_endpoint",
                "api_key": "mail_api_key",
                "from_email": "mail_from_email",
                "from_name": "mail_from_name",
                "reply_to": "mail_reply_to",
            },
            "server": {
                "host": "api_host",
                "port": "api_port",
                "public_site_url": "public_site_url",
            },
            "ai": {"max_tokens": "ai_max_tokens"},
        }

        types = {f.name: f.type for f in fields(cls)}
        values: dict[str, Any] = {}
        for section_name, keys in layout.items():
            raw = section(section_name)
            for key, field_name in keys.items():
                if key not in raw or raw[key] is None:
                    continue
                values[field_name] = cls._coerce(field_name, types[field_name], raw[key], source)

        if "log_level" in values:
            values["log_level"] = str(values["log_level"]).upper()
        return cls(**values)

    @staticmethod
    def _coerce(name: str, annotation: Any, value: Any, source: Path) -> Any:  # noqa: ANN401
        if name == "store_backend":
            try:
                return StoreBackend(str(value).lower())
            except ValueError as e:
                valid = [b.value for b in StoreBackend]
                raise ConfigError(
                    f"Invalid store backend '{value}' in {source}. Must be one of {valid}"
                ) from e
        if annotation in (int, "int"):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} in {source} must be an integer, got {value!r}")
            return value
        if annotation in (float, "float"):
            if isinstance(value, bool) or not isinstance(value, int | float):
                raise ConfigError(f"{name} in {source} must be a number, got {value!r}")
            return float(value)
        return str(value)

    def merge_with_cli(self, **overrides: Any) -> "RuntimeConfig":  # noqa: ANN401
        """Create new config with CLI flag overrides.

        Only non-None values are applied.

        Raises:
            ConfigError: If an override value is invalid.

        Example:
            >>> config = RuntimeConfig.from_env()
            >>> config = config.merge_with_cli(store_backend="file", log_level=None)
        """
        filtered_overrides = {k: v for k, v in overrides.items() if v is not None}

        backend = filtered_overrides.get("store_backend")
        if isinstance(backend, str):
            try:
                filtered_overrides["store_backend"] = StoreBackend(backend.lower())
            except ValueError as e:
                valid = [b.value for b in StoreBackend]
                raise ConfigError(
                    f"Invalid store backend '{backend}'. "
                    f"Must be one of {valid}"
                ) from e
        if "log_level" in filtered_overrides:
            filtered_overrides["log_level"] = str(filtered_overrides["log_level"]).upper()

        try:
            return replace(self, **filtered_overrides)
        except ConfigError:
            raise
        except TypeError as e:
            raise ConfigError(f"Failed to apply CLI overrides: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a dictionary with secrets masked.

        Example:
            >>> data = RuntimeConfig.from_defaults().to_dict()
            >>> assert data["store_backend"] == "memory"
        """
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            if f.name in SECRET_FIELDS and value:
                value = "***"
            data[f.name] = value
        return data
