"""Application configuration loaded from YAML.

The configuration file is parsed with a YAML 1.2 safe loader and converted
into :class:`AppConfig` with msgspec. A handful of environment variables
override file values so secrets need not live on disk.

Usage
-----
>>> config = load_config("config.yaml")
>>> config.port
8080

Recognised environment variables:

- ``OTTO_CONFIG``: path of the YAML file (default ``config.yaml``)
- ``OTTO_WEBHOOK_SECRET``: webhook shared secret
- ``OTTO_GITHUB_TOKEN``: GitHub API token
- ``OTTO_DATABASE_URL``: SQLAlchemy URL overriding ``db_path``
- ``OTTO_LOG_LEVEL``: log level
"""

from __future__ import annotations

import collections.abc as cabc
import os
import typing as typ
from pathlib import Path

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from otto.logging import get_logger, log_info

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "AppConfig",
    "ConfigError",
    "LogConfig",
    "apply_env_overrides",
    "load_config",
    "log_config_summary",
    "parse_config",
    "validate_config",
]

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
YAML_VERSION = (1, 2)

_MIN_PORT = 1
_MAX_PORT = 65535


class ConfigError(ValueError):
    """Raised when configuration cannot be loaded or is invalid."""

    def __init__(self, issues: list[str]) -> None:
        """Keep every issue while presenting them as one message."""
        self.issues = issues
        super().__init__("\n".join(issues))


class LogConfig(msgspec.Struct, kw_only=True):
    """Logging options.

    Attributes
    ----------
    level : str
        Log level name, case-insensitive.
    format : str
        ``json`` or ``text``.

    """

    level: str = "info"
    format: typ.Literal["json", "text"] = "json"


class AppConfig(msgspec.Struct, kw_only=True):
    """Top-level Otto configuration.

    Attributes
    ----------
    webhook_secret : str
        Shared secret used to verify webhook signatures (YAML key
        ``web_hook_secret``). Required.
    host : str
        Listener bind address.
    port : int
        Listener port.
    db_path : str
        SQLite database file used when ``database_url`` is unset.
    database_url : str, optional
        Full SQLAlchemy async URL.
    github_token : str, optional
        Token for the GitHub REST API.
    github_api_url : str
        Base URL of the GitHub REST API.
    shutdown_timeout_seconds : float
        Upper bound for graceful shutdown.
    drain_timeout_seconds : float
        How long shutdown waits for in-flight deliveries before moving on
        to module shutdown.
    log : LogConfig
        Logging options.
    modules : dict[str, Any]
        Per-module configuration blocks keyed by module name.

    """

    webhook_secret: str = msgspec.field(default="", name="web_hook_secret")
    host: str = "0.0.0.0"  # noqa: S104 - bind all interfaces for container
    port: int = 8080
    db_path: str = "data.db"
    database_url: str | None = None
    github_token: str | None = None
    github_api_url: str = "https://api.github.com"
    shutdown_timeout_seconds: float = 30.0
    drain_timeout_seconds: float = 10.0
    log: LogConfig = msgspec.field(default_factory=LogConfig)
    modules: dict[str, typ.Any] = msgspec.field(default_factory=dict)

    @property
    def storage_url(self) -> str:
        """Return the SQLAlchemy URL for the shared store."""
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{self.db_path}"

    def module_config(self, name: str) -> dict[str, typ.Any]:
        """Return the configuration block for module *name* (empty if absent)."""
        block = self.modules.get(name)
        return dict(block) if isinstance(block, dict) else {}


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    return yaml


def parse_config(text: str) -> AppConfig:
    """Parse YAML *text* into an unvalidated ``AppConfig``.

    Raises
    ------
    ConfigError
        If the text is not YAML or does not match the schema.

    """
    try:
        loaded = _yaml().load(text)
    except YAMLError as exc:
        raise ConfigError([f"failed to parse YAML: {exc}"]) from exc

    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigError(["configuration root must be a mapping"])

    try:
        return msgspec.convert(loaded, type=AppConfig, strict=False)
    except msgspec.ValidationError as exc:
        raise ConfigError([f"schema validation failed: {exc}"]) from exc


def apply_env_overrides(
    config: AppConfig,
    environ: cabc.Mapping[str, str] | None = None,
) -> AppConfig:
    """Return *config* with ``OTTO_*`` environment overrides applied."""
    env = os.environ if environ is None else environ
    changes: dict[str, typ.Any] = {}
    if secret := env.get("OTTO_WEBHOOK_SECRET", "").strip():
        changes["webhook_secret"] = secret
    if token := env.get("OTTO_GITHUB_TOKEN", "").strip():
        changes["github_token"] = token
    if database_url := env.get("OTTO_DATABASE_URL", "").strip():
        changes["database_url"] = database_url
    if level := env.get("OTTO_LOG_LEVEL", "").strip():
        changes["log"] = LogConfig(level=level, format=config.log.format)
    return msgspec.structs.replace(config, **changes) if changes else config


def validate_config(config: AppConfig) -> AppConfig:
    """Check required fields and ranges, collecting every issue.

    Raises
    ------
    ConfigError
        If any field is missing or out of range.

    """
    issues: list[str] = []
    if not config.webhook_secret.strip():
        issues.append("webhook secret must be set (web_hook_secret)")
    if not (_MIN_PORT <= config.port <= _MAX_PORT):
        issues.append(f"port {config.port} outside valid range {_MIN_PORT}-{_MAX_PORT}")
    if config.shutdown_timeout_seconds <= 0:
        issues.append("shutdown_timeout_seconds must be positive")
    if config.drain_timeout_seconds < 0:
        issues.append("drain_timeout_seconds must not be negative")
    for name, block in config.modules.items():
        if block is not None and not isinstance(block, dict):
            issues.append(f"modules.{name} must be a mapping")
    if issues:
        raise ConfigError(issues)
    return config


def log_config_summary(config: AppConfig) -> None:
    """Log a sanitized summary of *config* (no secrets)."""
    log_info(
        logger,
        "configuration loaded host=%s port=%d storage=%s log_level=%s "
        "github_token=%s modules_configured=%d",
        config.host,
        config.port,
        "database_url" if config.database_url else config.db_path,
        config.log.level,
        "set" if config.github_token else "unset",
        len(config.modules),
    )


def load_config(
    path: Path | str | None = None,
    *,
    environ: cabc.Mapping[str, str] | None = None,
) -> AppConfig:
    """Load, override, validate and summarise the configuration.

    Parameters
    ----------
    path
        YAML file; defaults to ``$OTTO_CONFIG`` or ``config.yaml``.
    environ
        Environment mapping used for overrides; defaults to ``os.environ``.

    Raises
    ------
    ConfigError
        If the file cannot be read or the result is invalid.

    """
    env = os.environ if environ is None else environ
    path_obj = Path(path or env.get("OTTO_CONFIG") or DEFAULT_CONFIG_PATH)
    try:
        text = path_obj.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError([f"failed to open config file {path_obj}: {exc}"]) from exc

    config = validate_config(apply_env_overrides(parse_config(text), env))
    log_config_summary(config)
    return config
