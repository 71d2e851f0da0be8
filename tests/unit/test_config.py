"""Unit tests for YAML configuration loading."""

from __future__ import annotations

import typing as typ

import pytest

from otto.config import (
    AppConfig,
    ConfigError,
    LogConfig,
    apply_env_overrides,
    load_config,
    parse_config,
    validate_config,
)

if typ.TYPE_CHECKING:
    from pathlib import Path

VALID_YAML = """\
web_hook_secret: hunter2
host: 127.0.0.1
port: 9000
db_path: /var/lib/otto/data.db
log:
  level: debug
  format: text
modules:
  oncall:
    escalation_window_seconds: 600
"""


class TestParseConfig:
    """Tests for parse_config."""

    def test_parses_all_fields(self) -> None:
        """Every recognised key is converted into AppConfig."""
        config = parse_config(VALID_YAML)

        assert config.webhook_secret == "hunter2", "secret uses web_hook_secret"
        assert config.host == "127.0.0.1", "host should be parsed"
        assert config.port == 9000, "port should be parsed"
        assert config.log == LogConfig(level="debug", format="text"), "log block"
        assert config.module_config("oncall") == {
            "escalation_window_seconds": 600
        }, "module blocks are kept verbatim"

    def test_defaults_apply_to_empty_document(self) -> None:
        """An empty file yields defaults."""
        config = parse_config("")

        assert config.port == 8080, "default port"
        assert config.storage_url == "sqlite+aiosqlite:///data.db", "default store"
        assert config.module_config("oncall") == {}, "absent blocks are empty"

    def test_database_url_wins_over_db_path(self) -> None:
        """database_url overrides the SQLite file path."""
        config = parse_config("database_url: postgresql+asyncpg://db/otto\n")

        assert config.storage_url == "postgresql+asyncpg://db/otto", "url wins"

    @pytest.mark.parametrize(
        "text",
        ["port: [1, 2\n", "- a\n- b\n", "port: not-a-number\n"],
    )
    def test_invalid_documents_raise(self, text: str) -> None:
        """Malformed YAML or schema mismatches raise ConfigError."""
        with pytest.raises(ConfigError):
            parse_config(text)


class TestValidateConfig:
    """Tests for validate_config."""

    def test_collects_every_issue(self) -> None:
        """All problems are reported together."""
        config = AppConfig(port=0, shutdown_timeout_seconds=0, drain_timeout_seconds=-1)

        with pytest.raises(ConfigError) as excinfo:
            validate_config(config)

        issues = excinfo.value.issues
        assert len(issues) == 4, f"expected four issues, got {issues}"
        assert any("drain_timeout_seconds" in issue for issue in issues), "drain"
        assert any("web_hook_secret" in issue for issue in issues), "secret issue"

    def test_rejects_non_mapping_module_block(self) -> None:
        """Module blocks must be mappings."""
        config = AppConfig(webhook_secret="s", modules={"oncall": ["x"]})

        with pytest.raises(ConfigError, match="modules.oncall"):
            validate_config(config)

    def test_valid_config_is_returned(self) -> None:
        """A valid configuration passes through."""
        config = AppConfig(webhook_secret="s")

        assert validate_config(config) is config, "valid config returned as is"


def test_env_overrides_replace_file_values() -> None:
    """OTTO_* variables override secrets, storage and level."""
    config = parse_config(VALID_YAML)

    overridden = apply_env_overrides(
        config,
        {
            "OTTO_WEBHOOK_SECRET": "from-env",
            "OTTO_GITHUB_TOKEN": "ghp_token",
            "OTTO_DATABASE_URL": "sqlite+aiosqlite:///env.db",
            "OTTO_LOG_LEVEL": "warning",
        },
    )

    assert overridden.webhook_secret == "from-env", "secret overridden"
    assert overridden.github_token == "ghp_token", "token overridden"
    assert overridden.storage_url == "sqlite+aiosqlite:///env.db", "url overridden"
    assert overridden.log == LogConfig(level="warning", format="text"), (
        "level overridden, format kept"
    )


def test_env_overrides_without_values_keep_config() -> None:
    """Blank variables are ignored."""
    config = parse_config(VALID_YAML)

    assert apply_env_overrides(config, {"OTTO_WEBHOOK_SECRET": "  "}) is config


class TestLoadConfig:
    """Tests for load_config."""

    def test_loads_file(self, tmp_path: Path) -> None:
        """A valid file loads successfully."""
        path = tmp_path / "config.yaml"
        path.write_text(VALID_YAML, encoding="utf-8")

        config = load_config(path, environ={})

        assert config.port == 9000, "file values should be used"

    def test_uses_otto_config_variable(self, tmp_path: Path) -> None:
        """OTTO_CONFIG names the file when no path is given."""
        path = tmp_path / "elsewhere.yaml"
        path.write_text(VALID_YAML, encoding="utf-8")

        config = load_config(environ={"OTTO_CONFIG": str(path)})

        assert config.host == "127.0.0.1", "file from OTTO_CONFIG should load"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        """An unreadable file raises ConfigError."""
        with pytest.raises(ConfigError, match="failed to open"):
            load_config(tmp_path / "missing.yaml", environ={})

    def test_missing_secret_raises(self, tmp_path: Path) -> None:
        """The webhook secret is required."""
        path = tmp_path / "config.yaml"
        path.write_text("port: 8080\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="webhook secret"):
            load_config(path, environ={})
