"""
Logging configuration — diagnostics for the console process.

Operator-facing messages never go through logging; they are part of the
view models rendered by the CLI.  Logging is for diagnosing the console
itself, and most of what is worth diagnosing happens off the main thread:
the SSE reader behind ``logs``/``--follow`` and the self-update recovery
poll.  Those two get their own level so they can be turned up without
drowning the rest of the output.

Sources, lowest precedence first:

    defaults  <  ``log:`` section of console.yml  <  DCON_LOG_* env  <  CLI flags

``main.py`` applies env + flags at process start (before console.yml is
read, so ``--help`` and settings errors are logged too); ``open_console``
re-applies once the settings file is loaded.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping

from pydantic import BaseModel

# env var → LogSettings field
ENV_VARS = {
    "DCON_LOG_LEVEL": "level",
    "DCON_LOG_FILE": "file",
    "DCON_LOG_FILE_LEVEL": "file_level",
    "DCON_LOG_STREAM_LEVEL": "stream_level",
    "DCON_LOG_POLL_LEVEL": "poll_level",
}

# Background components with their own verbosity (field → logger)
COMPONENT_LOGGERS = {
    "stream_level": "deployconsole.core.services.log_stream",
    "poll_level": "deployconsole.core.reliability.recovery_poll",
}

# HTTP stack loggers are chatty at INFO/DEBUG
HTTP_LOGGERS = ("urllib3", "requests", "charset_normalizer")

_FMT_BRIEF = "%(message)s"
_FMT_VERBOSE = "%(asctime)s [%(name)s] %(message)s"
# Thread names tell the SSE reader and recovery-poll threads apart
_FMT_DEBUG = "%(asctime)s %(levelname)-5s [%(threadName)s] %(name)s:%(lineno)d %(message)s"
_FMT_FILE = "%(asctime)s %(levelname)-5s [%(threadName)s] %(name)s:%(lineno)d %(message)s"


class LogSettings(BaseModel):
    """Where console diagnostics go and how loud each part is.

    ``stream_level`` / ``poll_level`` of None means "same as ``level``".
    ``http_level`` of None leaves the HTTP stack alone.
    """

    level: str = "WARNING"
    file: str | None = None
    file_level: str | None = None
    stream_level: str | None = None
    poll_level: str | None = None
    http_level: str | None = "WARNING"

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        base: Mapping[str, object] | None = None,
    ) -> LogSettings:
        """Build settings from ``base`` (a console.yml section) plus env overrides."""
        return cls.model_validate(env_overrides(environ, base))

    def with_flags(self, *, debug: bool = False, verbose: bool = False, quiet: bool = False) -> LogSettings:
        """Apply the CLI verbosity flags (``--debug`` > ``--verbose`` > ``--quiet``)."""
        if debug:
            return self.model_copy(update={"level": "DEBUG", "http_level": None})
        if verbose:
            return self.model_copy(update={"level": "INFO"})
        if quiet:
            return self.model_copy(update={"level": "ERROR"})
        return self


def env_overrides(
    environ: Mapping[str, str] | None = None,
    base: Mapping[str, object] | None = None,
) -> dict:
    """Merge non-empty ``DCON_LOG_*`` variables over ``base``."""
    env = os.environ if environ is None else environ
    data = dict(base or {})
    for var, key in ENV_VARS.items():
        value = env.get(var)
        if value:
            data[key] = value
    return data


class _ConsoleFilter(logging.Filter):
    """Pass records at the console level, or at a component's own level."""

    def __init__(self, level: int, components: dict[str, int]) -> None:
        super().__init__()
        self.level = level
        self.components = components

    def filter(self, record: logging.LogRecord) -> bool:
        for name, level in self.components.items():
            if record.name == name or record.name.startswith(name + "."):
                return record.levelno >= level
        return record.levelno >= self.level


def setup_logging(settings: LogSettings | None = None) -> None:
    """Configure the root logger, component loggers and the HTTP stack.

    Safe to call more than once; each call replaces the previous setup.
    """
    settings = settings or LogSettings()
    level = parse_level(settings.level)

    components: dict[str, int] = {}
    for field_name, logger_name in COMPONENT_LOGGERS.items():
        value = getattr(settings, field_name)
        component = logging.getLogger(logger_name)
        if value:
            components[logger_name] = parse_level(value)
            component.setLevel(components[logger_name])
        else:
            component.setLevel(logging.NOTSET)

    if level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, "%H:%M:%S"
    elif level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, "%H:%M:%S"
    else:
        fmt, datefmt = _FMT_BRIEF, None

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    console.addFilter(_ConsoleFilter(level, components))

    root = logging.getLogger()
    for handler in root.handlers:
        if getattr(handler, "_deployconsole", False):
            handler.close()
    root.handlers.clear()
    console._deployconsole = True
    root.addHandler(console)

    # Root level is the most verbose of console, components and file
    lowest = min([level, *components.values()])

    if settings.file:
        file_level = parse_level(settings.file_level) if settings.file_level else level
        lowest = min(lowest, file_level)
        fh = logging.FileHandler(settings.file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt="%Y-%m-%d %H:%M:%S"))
        fh._deployconsole = True
        root.addHandler(fh)

    root.setLevel(lowest)

    http_level = parse_level(settings.http_level) if settings.http_level else logging.NOTSET
    for name in HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)


def parse_level(level: str | None) -> int:
    """Level name → numeric constant; unknown names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
