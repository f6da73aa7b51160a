"""
Settings loader — reads console.yml into ConsoleSettings.

This is the console's own configuration (where the server lives and
which session to present), not the server's SystemConfig.  It reads
YAML, applies environment overrides, and validates against a Pydantic
schema.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from deployconsole.core.errors import ConfigError
from deployconsole.core.observability.logging_config import LogSettings, env_overrides

logger = logging.getLogger(__name__)

# Default settings filename
SETTINGS_FILE = "console.yml"

# env var → settings key
_ENV_OVERRIDES = {
    "DCON_BASE_URL": "base_url",
    "DCON_SESSION_COOKIE": "session_cookie",
    "DCON_SESSION_TOKEN": "session_token",
    "DCON_TIMEOUT": "timeout",
}


class ConsoleSettings(BaseModel):
    """How to reach the deployment service."""

    base_url: str = "http://127.0.0.1:8080"
    session_cookie: str = "updater_session"
    session_token: str = ""
    timeout: float = Field(default=30.0, gt=0)
    stream_retry: float = Field(default=3.0, ge=0)
    page_limit: int = Field(default=20, gt=0)
    log: LogSettings = Field(default_factory=LogSettings)


def find_settings_file(start_dir: Path | None = None) -> Path | None:
    """Search for console.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to console.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / SETTINGS_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_settings(path: Path | None = None, *, environ: dict[str, str] | None = None) -> ConsoleSettings:
    """Load console settings from file + environment.

    A missing file is fine: defaults and environment overrides apply.
    An explicit ``path`` that does not exist is an error.

    Args:
        path: Explicit settings file. If None, searches upward.
        environ: Environment mapping (default: ``os.environ``).

    Returns:
        Validated ConsoleSettings.

    Raises:
        ConfigError: If the file is unreadable or invalid.
    """
    env = os.environ if environ is None else environ
    data: dict = {}

    if path is not None and not path.is_file():
        raise ConfigError(f"Settings file not found: {path}")

    if path is None:
        path = find_settings_file()

    if path is not None:
        data = _read_yaml(path)

    for var, key in _ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            data[key] = value

    # DCON_LOG_* apply on top of the file's log: section
    log_section = data.get("log")
    if log_section is None or isinstance(log_section, dict):
        data["log"] = env_overrides(env, log_section)

    try:
        settings = ConsoleSettings.model_validate(data)
    except Exception as e:
        where = f" in {path}" if path else ""
        raise ConfigError(f"Invalid console settings{where}: {e}") from e

    settings.base_url = settings.base_url.rstrip("/")
    logger.debug("Console settings: base_url=%s source=%s", settings.base_url, path or "defaults")
    return settings


def _read_yaml(path: Path) -> dict:
    logger.debug("Loading console settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "console" key or be flat
    if isinstance(data.get("console"), dict):
        data = dict(data["console"])
    return data
