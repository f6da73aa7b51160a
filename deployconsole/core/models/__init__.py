"""
Domain models — Pydantic types for the console.

All models are re-exported here for convenient access:

    from deployconsole.core.models import ConfigSnapshot, Project, Deployment
"""

from deployconsole.core.models.deployment import (
    ChangeEntry,
    Deployment,
    LogEvent,
    PreviewResult,
    PreviewSummary,
)
from deployconsole.core.models.project import (
    REPLACE_MODE_FULL,
    REPLACE_MODE_PARTIAL,
    Project,
    normalize_replace_mode,
)
from deployconsole.core.models.system_config import ConfigSnapshot, SystemConfig

__all__ = [
    # deployment.py
    "ChangeEntry",
    "Deployment",
    "LogEvent",
    "PreviewResult",
    "PreviewSummary",
    # project.py
    "Project",
    "REPLACE_MODE_FULL",
    "REPLACE_MODE_PARTIAL",
    "normalize_replace_mode",
    # system_config.py
    "ConfigSnapshot",
    "SystemConfig",
]
