"""
Deployment records — fetched per view, never cached.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from deployconsole.core.models.project import strip_nulls

ACTION_ADDED = "added"
ACTION_UPDATED = "updated"
ACTION_DELETED = "deleted"


class ChangeEntry(BaseModel):
    """One changed file.  ``size`` is meaningless for deletions."""

    action: str = ""
    path: str = ""
    size: int | None = None


class Deployment(BaseModel):
    """Deployment detail as returned by ``/api/deployments/{id}``."""

    id: str = ""
    type: str = ""
    version: str = ""
    project_id: str = ""
    project_name: str = ""
    status: str = ""
    replace_mode: str = ""
    replace_ignore: list[str] = Field(default_factory=list)
    changed: list[ChangeEntry] = Field(default_factory=list)
    note: str = ""
    error: str = ""

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Deployment:
        cleaned = strip_nulls(data)
        cleaned["changed"] = [
            strip_nulls(item) for item in cleaned.get("changed", []) if isinstance(item, dict)
        ]
        return cls.model_validate(cleaned)


class PreviewSummary(BaseModel):
    """Counters reported by a dry-run preview."""

    total: int = 0
    added: int = 0
    updated: int = 0
    deleted: int = 0
    ignored_paths: int = 0


class PreviewResult(BaseModel):
    """Dry-run diff of a package against a project's target directory."""

    project_id: str = ""
    project_name: str = ""
    replace_mode: str = ""
    changed: list[ChangeEntry] = Field(default_factory=list)
    replace_ignore: list[str] = Field(default_factory=list)
    ignored_paths: list[str] = Field(default_factory=list)
    summary: PreviewSummary = Field(default_factory=PreviewSummary)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> PreviewResult:
        cleaned = strip_nulls(data)
        cleaned["changed"] = [
            strip_nulls(item) for item in cleaned.get("changed", []) if isinstance(item, dict)
        ]
        return cls.model_validate(cleaned)


class LogEvent(BaseModel):
    """One structured line of a deployment's live log."""

    time: str = ""
    level: str = "info"
    text: str = ""
