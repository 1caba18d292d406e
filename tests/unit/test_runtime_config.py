"""Unit tests for RuntimeConfig in patchx.config.runtime_config."""

import logging
from pathlib import Path

import pytest

from patchx.config.runtime_config import ConfigError, RuntimeConfig, StoreBackend


class TestStoreBackend:
    """Test StoreBackend enum."""

    def test_values(self) -> None:
        assert StoreBackend.MEMORY.value == "memory"
        assert str(StoreBackend.FILE) == "file"

    def test_invalid_backend_raises_error(self) -> None:
        with pytest.raises(ValueError):
            StoreBackend("redis")


class TestRuntimeConfigDefaults:
    """Test RuntimeConfig default values."""

    def test_from_defaults(self) -> None:
        config = RuntimeConfig.from_defaults()
        assert config.log_level == "INFO"
        assert config.log_file is None
        assert config.store_backend is StoreBackend.MEMORY
        assert config.max_file_size == 10 * 1024 * 1024
        assert config.gerrit_base_url is None

    def test_default_deadlines(self) -> None:
        config = RuntimeConfig.from_defaults()
        assert config.node_lookup_timeout == 2.0
        assert config.workflow_timeout == 600.0
        assert config.gerrit_timeout == 180.0
        assert config.provider_timeout == 60.0

    def test_default_status_tail_and_server(self) -> None:
        config = RuntimeConfig.from_defaults()
        assert config.status_log_tail == 200
        assert (config.api_host, config.api_port) == ("127.0.0.1", 8000)


class TestRuntimeConfigValidation:
    """Test __post_init__ validation."""

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"log_level": "TRACE"}, "Invalid log level"),
            ({"max_file_size": 0}, "max_file_size must be positive"),
            ({"gerrit_timeout": 0.0}, "gerrit_timeout must be positive"),
            ({"status_log_tail": -1}, "status_log_tail must be >= 0"),
            ({"ai_max_tokens": 0}, "ai_max_tokens must be positive"),
            ({"api_port": 70000}, "api_port must be between 1 and 65535"),
            ({"gerrit_base_url": "review.example.com"}, "must be an http"),
            ({"store_backend": "file"}, "must be StoreBackend enum"),
        ],
    )
    def test_invalid_values(self, overrides: dict[str, object], message: str) -> None:
        with pytest.raises(ConfigError, match=message):
            RuntimeConfig(**overrides)  # type: ignore[arg-type]

    def test_file_backend_requires_path(self) -> None:
        with pytest.raises(ConfigError, match="store_path is required"):
            RuntimeConfig(store_backend=StoreBackend.FILE, store_path="")

    def test_gerrit_without_credentials_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            RuntimeConfig(gerrit_base_url="https://review.example.com")
        assert "without credentials" in caplog.text


class TestRuntimeConfigFromEnv:
    """Test RuntimeConfig.from_env()."""

    def test_no_vars_gives_defaults(self) -> None:
        assert RuntimeConfig.from_env({}) == RuntimeConfig.from_defaults()

    def test_reads_prefixed_variables(self) -> None:
        config = RuntimeConfig.from_env(
            {
                "PATCHX_LOG_LEVEL": "debug",
                "PATCHX_STORE_BACKEND": "FILE",
                "PATCHX_STORE_PATH": "/var/lib/patchx",
                "PATCHX_GERRIT_TIMEOUT": "30.5",
                "PATCHX_STATUS_LOG_TAIL": "0",
                "PATCHX_MAIL_FROM_EMAIL": "noreply@patchx.dev",
                "PATCHX_API_PORT": "9000",
            }
        )
        assert config.log_level == "DEBUG"
        assert config.store_backend is StoreBackend.FILE
        assert config.store_path == "/var/lib/patchx"
        assert config.gerrit_timeout == 30.5
        assert config.status_log_tail == 0
        assert config.mail_from_email == "noreply@patchx.dev"
        assert config.api_port == 9000

    def test_legacy_gerrit_names(self) -> None:
        config = RuntimeConfig.from_env(
            {
                "GERRIT_BASE_URL": "https://review.example.com",
                "GERRIT_USERNAME": "builder",
                "GERRIT_PASSWORD": "secret",
            }
        )
        assert config.gerrit_base_url == "https://review.example.com"
        assert config.gerrit_username == "builder"
        assert config.gerrit_password == "secret"

    def test_prefixed_name_wins_over_legacy(self) -> None:
        config = RuntimeConfig.from_env(
            {"GERRIT_USERNAME": "old", "PATCHX_GERRIT_USERNAME": "new"}
        )
        assert config.gerrit_username == "new"

    def test_unset_values_come_from_base(self) -> None:
        base = RuntimeConfig(gerrit_topic="from-file", workflow_timeout=42.0)
        config = RuntimeConfig.from_env({"PATCHX_GERRIT_TOPIC": "from-env"}, base=base)
        assert config.gerrit_topic == "from-env"
        assert config.workflow_timeout == 42.0

    @pytest.mark.parametrize(
        ("environ", "message"),
        [
            ({"PATCHX_STORE_BACKEND": "redis"}, "Invalid PATCHX_STORE_BACKEND='redis'"),
            ({"PATCHX_MAX_FILE_SIZE": "big"}, "Must be an integer"),
            ({"PATCHX_MAX_FILE_SIZE": "0"}, "must be >= 1"),
            ({"PATCHX_PROVIDER_TIMEOUT": "soon"}, "Must be a number"),
            ({"PATCHX_PROVIDER_TIMEOUT": "-1"}, "must be positive"),
            ({"PATCHX_LOG_LEVEL": "loud"}, "Invalid log level"),
        ],
    )
    def test_invalid_values_raise(self, environ: dict[str, str], message: str) -> None:
        with pytest.raises(ConfigError, match=message):
            RuntimeConfig.from_env(environ)


class TestRuntimeConfigFromFile:
    """Test RuntimeConfig.from_file() with YAML/TOML files."""

    def test_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "patchx.yaml"
        path.write_text(
            """
logging:
  level: debug
  file: /tmp/patchx.log
store:
  backend: file
  path: /srv/patchx
gerrit:
  base_url: https://review.example.com
  username: builder
  password: secret
timeouts:
  gerrit: 90
  workflow: 300.5
status:
  log_tail: 50
server:
  port: 9100
  public_site_url: https://patchx.example.com
""",
            encoding="utf-8",
        )
        config = RuntimeConfig.from_file(path)
        assert config.log_level == "DEBUG"
        assert config.log_file == "/tmp/patchx.log"
        assert config.store_backend is StoreBackend.FILE
        assert config.store_path == "/srv/patchx"
        assert config.gerrit_username == "builder"
        assert config.gerrit_timeout == 90.0
        assert isinstance(config.gerrit_timeout, float)
        assert config.workflow_timeout == 300.5
        assert config.status_log_tail == 50
        assert config.api_port == 9100
        assert config.public_site_url == "https://patchx.example.com"

    def test_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "patchx.toml"
        path.write_text(
            """
[mail]
from_email = "noreply@patchx.dev"
reply_to = "team@patchx.dev"

[uploads]
max_file_size = 1024

[ai]
max_tokens = 512
""",
            encoding="utf-8",
        )
        config = RuntimeConfig.from_file(path)
        assert config.mail_from_email == "noreply@patchx.dev"
        assert config.mail_reply_to == "team@patchx.dev"
        assert config.max_file_size == 1024
        assert config.ai_max_tokens == 512

    def test_empty_yaml_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yml"
        path.write_text("", encoding="utf-8")
        assert RuntimeConfig.from_file(path) == RuntimeConfig.from_defaults()

    def test_nonexistent_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Config file not found"):
            RuntimeConfig.from_file(tmp_path / "missing.yaml")

    def test_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not a file"):
            RuntimeConfig.from_file(tmp_path)

    def test_invalid_extension_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "patchx.json"
        path.write_text("{}", encoding="utf-8")
        with pytest.raises(ConfigError, match="Unsupported config file format"):
            RuntimeConfig.from_file(path)

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("logging: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            RuntimeConfig.from_file(path)

    def test_invalid_toml_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("[logging\nlevel = ", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            RuntimeConfig.from_file(path)

    def test_non_mapping_yaml_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="must contain a mapping"):
            RuntimeConfig.from_file(path)

    def test_section_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "patchx.yaml"
        path.write_text("gerrit: https://review.example.com\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid gerrit section"):
            RuntimeConfig.from_file(path)

    def test_wrong_value_type_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "patchx.yaml"
        path.write_text("timeouts:\n  gerrit: soon\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="gerrit_timeout .* must be a number"):
            RuntimeConfig.from_file(path)

    def test_invalid_store_backend_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "patchx.yaml"
        path.write_text("store:\n  backend: redis\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid store backend 'redis'"):
            RuntimeConfig.from_file(path)


class TestMergeWithCli:
    """Test RuntimeConfig.merge_with_cli()."""

    def test_applies_non_none_overrides(self) -> None:
        config = RuntimeConfig.from_defaults().merge_with_cli(
            log_level="warning", store_backend="file", api_port=9000, log_file=None
        )
        assert config.log_level == "WARNING"
        assert config.store_backend is StoreBackend.FILE
        assert config.api_port == 9000
        assert config.log_file is None

    def test_original_is_unchanged(self) -> None:
        config = RuntimeConfig.from_defaults()
        config.merge_with_cli(api_port=9000)
        assert config.api_port == 8000

    def test_invalid_backend(self) -> None:
        with pytest.raises(ConfigError, match="Invalid store backend 'redis'"):
            RuntimeConfig.from_defaults().merge_with_cli(store_backend="redis")

    def test_invalid_value_is_validated(self) -> None:
        with pytest.raises(ConfigError, match="api_port"):
            RuntimeConfig.from_defaults().merge_with_cli(api_port=0)

    def test_unknown_field(self) -> None:
        with pytest.raises(ConfigError, match="Failed to apply CLI overrides"):
            RuntimeConfig.from_defaults().merge_with_cli(colour="blue")


class TestToDict:
    """Test RuntimeConfig.to_dict()."""

    def test_masks_secrets(self) -> None:
        config = RuntimeConfig(
            gerrit_base_url="https://review.example.com",
            gerrit_username="builder",
            gerrit_password="secret",
            mail_api_key="mail-key",
        )
        data = config.to_dict()
        assert data["gerrit_password"] == "***"
        assert data["mail_api_key"] == "***"
        assert data["gerrit_username"] == "builder"

    def test_enums_are_plain_values(self) -> None:
        data = RuntimeConfig.from_defaults().to_dict()
        assert data["store_backend"] == "memory"
        assert data["gerrit_password"] is None
