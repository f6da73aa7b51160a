"""
Project model — one deployable program managed by the server.

Projects arrive as part of the ``/api/config`` payload and are replaced
wholesale on every refresh.  The console never edits one in place.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

REPLACE_MODE_FULL = "full"
REPLACE_MODE_PARTIAL = "partial"
REPLACE_MODES = (REPLACE_MODE_FULL, REPLACE_MODE_PARTIAL)


def normalize_replace_mode(mode: str | None) -> str:
    """Map anything that is not a known replace mode to ``full``."""
    value = (mode or "").strip().lower()
    return value if value in REPLACE_MODES else REPLACE_MODE_FULL


def strip_nulls(data: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is None so model defaults apply.

    The server serializes empty lists as ``null``.
    """
    return {k: v for k, v in data.items() if v is not None}


class Project(BaseModel):
    """A managed project as reported by the server."""

    id: str
    name: str = ""
    service_name: str = ""
    target_dir: str = ""
    current_version: str = ""
    max_upload_mb: int = 0
    default_replace_mode: str = REPLACE_MODE_FULL
    backup_ignore: list[str] = Field(default_factory=list)
    replace_ignore: list[str] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Project:
        """Validate one project entry from a config payload."""
        return cls.model_validate(strip_nulls(data))

    @property
    def display_name(self) -> str:
        """Name shown to the operator, falling back to the id."""
        return self.name or self.id

    @property
    def label(self) -> str:
        """Selector label: ``name (service)``."""
        return f"{self.display_name} ({self.service_name or '-'})"
