"""Runtime settings loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

GITHUB_API_BASE_URL = "https://api.github.com"
DEFAULT_TIMEOUT_SECONDS = 20.0

GITHUB_API_URL_ENV_VAR = "PR_AGENT_TOOLS_GITHUB_API_URL"
TIMEOUT_SECONDS_ENV_VAR = "PR_AGENT_TOOLS_TIMEOUT_SECONDS"
TRUST_ENV_ENV_VAR = "PR_AGENT_TOOLS_TRUST_ENV"
RESULT_INDENT_ENV_VAR = "PR_AGENT_TOOLS_RESULT_INDENT"
LOG_LEVEL_ENV_VAR = "PR_AGENT_TOOLS_LOG_LEVEL"
JSON_LOGS_ENV_VAR = "PR_AGENT_TOOLS_JSON_LOGS"

TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class ConfigError(ValueError):
    """Raised when an environment setting has an invalid value."""


@dataclass(slots=True)
class ToolkitSettings:
    """Settings shared by the GitHub client, result encoding, and logging."""

    github_api_base_url: str = GITHUB_API_BASE_URL
    github_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    trust_env: bool = True
    result_indent: int | None = None
    log_level: str = "WARNING"
    json_logs: bool = False


def load_settings() -> ToolkitSettings:
    """Read settings from the environment, loading ``.env`` without overriding."""
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    defaults = ToolkitSettings()
    return ToolkitSettings(
        github_api_base_url=(
            os.getenv(GITHUB_API_URL_ENV_VAR) or defaults.github_api_base_url
        ).rstrip("/"),
        github_timeout_seconds=_read_positive_float(
            TIMEOUT_SECONDS_ENV_VAR, defaults.github_timeout_seconds
        ),
        trust_env=_read_bool(TRUST_ENV_ENV_VAR, defaults.trust_env),
        result_indent=_read_optional_int(RESULT_INDENT_ENV_VAR),
        log_level=(os.getenv(LOG_LEVEL_ENV_VAR) or defaults.log_level).upper(),
        json_logs=_read_bool(JSON_LOGS_ENV_VAR, defaults.json_logs),
    )


def _read_bool(name: str, default: bool) -> bool:
    """Parse a boolean flag."""
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    normalized = raw_value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ConfigError(f"Invalid {name}='{raw_value}'. Expected a boolean such as 1 or 0.")


def _read_positive_float(name: str, default: float) -> float:
    """Parse a positive number."""
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        parsed_value = float(raw_value)
    except ValueError as error:
        raise ConfigError(f"Invalid {name}='{raw_value}'. Expected a number.") from error
    if parsed_value <= 0:
        raise ConfigError(f"Invalid {name}='{raw_value}'. Expected a positive number.")
    return parsed_value


def _read_optional_int(name: str) -> int | None:
    """Parse a non-negative integer, treating unset as ``None``."""
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return None
    try:
        parsed_value = int(raw_value)
    except ValueError as error:
        raise ConfigError(f"Invalid {name}='{raw_value}'. Expected an integer.") from error
    if parsed_value < 0:
        raise ConfigError(f"Invalid {name}='{raw_value}'. Expected a non-negative integer.")
    return parsed_value
