"""
Resolved analyzer configuration.

Settings are resolved once into a frozen config object. Each setting is taken
from the first source that provides it:

    explicit overrides > .env-style file > process environment > built-in default
"""

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from dotenv import dotenv_values

from log_correlator.errors import ConfigurationError
from log_correlator.utils.logger import get_logger

logger = get_logger("connection_config")

DEFAULT_ERROR_PATTERNS = ("ERROR", "Exception", "failed", "timeout", "rejected")
DEFAULT_WORKFLOW_PATTERNS = ("Workflow::", "Temporal")
DEFAULT_NETWORK_PATTERNS = ("API client", "proxy")


@dataclass(frozen=True)
class AnalyzerConfig:
    """Immutable configuration for one analyzer.

    Credentials are plaintext and live only in memory.
    """
    # Grafana / Loki
    grafana_url: str = ""
    grafana_user: str = ""
    grafana_password: str = ""
    datasource: str = "grafanacloud-logs"
    request_timeout: float = 30.0

    # Label selector: {env="<env><env_suffix>"}
    env: str = "production"
    env_suffix: str = ""

    # Search patterns per phase (tuples keep the config hashable)
    error_patterns: tuple = DEFAULT_ERROR_PATTERNS
    workflow_patterns: tuple = DEFAULT_WORKFLOW_PATTERNS
    network_patterns: tuple = DEFAULT_NETWORK_PATTERNS

    # Fetch behaviour
    max_attempts: int = 1
    retry_delay: float = 3.0
    query_limit: int = 100
    timeline_limit: int = 500


# setting name -> (environment variable, parser)
_ENV_KEYS: dict[str, tuple[str, str]] = {
    "grafana_url": ("GRAFANA_URL", "str"),
    "grafana_user": ("GRAFANA_USER", "str"),
    "grafana_password": ("GRAFANA_PASSWORD", "str"),
    "datasource": ("GRAFANA_DATASOURCE", "str"),
    "request_timeout": ("LOKI_REQUEST_TIMEOUT", "float"),
    "env": ("ENVIRONMENT", "str"),
    "env_suffix": ("ENV_SUFFIX", "str"),
    "error_patterns": ("LOG_SEARCH_ERRORS", "list"),
    "workflow_patterns": ("LOG_SEARCH_WORKFLOWS", "list"),
    "network_patterns": ("LOG_SEARCH_NETWORK", "list"),
    "max_attempts": ("LOKI_MAX_ATTEMPTS", "int"),
    "retry_delay": ("LOKI_RETRY_DELAY", "float"),
    "query_limit": ("LOKI_QUERY_LIMIT", "int"),
    "timeline_limit": ("LOKI_TIMELINE_LIMIT", "int"),
}

_POSITIVE_KEYS = ("request_timeout", "query_limit", "timeline_limit")


def _coerce(name: str, kind: str, value: Any) -> Any:
    if kind == "list":
        if isinstance(value, str):
            items = [item.strip() for item in value.split(",")]
        else:
            items = [str(item) for item in value]
        items = [item for item in items if item]
        if not items:
            raise ConfigurationError(f"{name} must contain at least one pattern")
        return tuple(items)
    if kind == "str":
        return str(value)
    try:
        coerced = int(value) if kind == "int" else float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None
    if coerced < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value!r}")
    return coerced


def resolve_config(
    overrides: Optional[Mapping[str, Any]] = None,
    env_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AnalyzerConfig:
    """Resolve an AnalyzerConfig from overrides, an env file and the environment.

    Args:
        overrides: Explicit settings keyed by AnalyzerConfig field name.
        env_file: Optional path to a dotenv file using the same variable names
            as the process environment.
        environ: Environment mapping (defaults to os.environ).

    Raises:
        ConfigurationError: On unknown override keys or malformed values.
    """
    overrides = dict(overrides or {})
    unknown = set(overrides) - set(_ENV_KEYS)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    file_values: dict[str, Optional[str]] = {}
    if env_file:
        if not os.path.exists(env_file):
            raise ConfigurationError(f"Configuration file not found: {env_file}")
        file_values = dotenv_values(env_file)
    environ = os.environ if environ is None else environ

    resolved: dict[str, Any] = {}
    sources: dict[str, str] = {}
    for name, (env_key, kind) in _ENV_KEYS.items():
        if overrides.get(name) is not None:
            raw, source = overrides[name], "explicit"
        elif file_values.get(env_key):
            raw, source = file_values[env_key], "file"
        elif environ.get(env_key):
            raw, source = environ[env_key], "environment"
        else:
            continue
        label = name if source == "explicit" else env_key
        resolved[name] = _coerce(label, kind, raw)
        sources[name] = source

    config = AnalyzerConfig(**resolved)
    if config.max_attempts < 1:
        raise ConfigurationError("max_attempts must be at least 1")
    for name in _POSITIVE_KEYS:
        if getattr(config, name) <= 0:
            label = name if sources.get(name) == "explicit" else _ENV_KEYS[name][0]
            raise ConfigurationError(f"{label} must be greater than zero")

    logger.info("Analyzer config resolved", extra={
        "action": "config_resolve",
        "extra": {
            "env_label": f"{config.env}{config.env_suffix}",
            "has_grafana_url": bool(config.grafana_url),
            "has_credentials": bool(config.grafana_user and config.grafana_password),
            "sources": sources,
        },
    })
    return config
