"""
Exception taxonomy for the console core.

Only failures that have no response to report are raised.  Server
errors, validation errors and malformed payloads travel back to the
caller inside result objects (``ok`` + ``message``) so every workflow
ends in a retryable state.
"""

from __future__ import annotations


class ConsoleError(Exception):
    """Base class for all console errors."""


class ConfigError(ConsoleError):
    """Raised when the console settings file is invalid or unreadable."""


class TransportError(ConsoleError):
    """Raised when a request produced no response at all.

    Connection refused, DNS failure, TLS failure and transport timeouts
    all end up here.
    """

    def __init__(self, message: str, *, url: str = "") -> None:
        super().__init__(message)
        self.url = url
