"""
Deployment history — the server-rendered list fragment and the actions
taken from it (rollback, note edits).

The fragment is opaque: it is fetched and handed to the presentation
unchanged.  A failed refresh keeps the last fragment on screen.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable
from urllib.parse import quote

from deployconsole.core.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 20


@dataclass
class ActionResult:
    ok: bool
    message: str
    status_code: int | None = None


class DeploymentHistory:
    """Paged deployment list fragment + row actions.

    Args:
        api: Transport with ``get`` / ``post``.
        surface: Receives each new fragment.
        page_limit: Default page size.
    """

    def __init__(
        self,
        api,
        *,
        surface: Callable[[str], None] | None = None,
        page_limit: int = DEFAULT_PAGE_LIMIT,
    ) -> None:
        self._api = api
        self._surface = surface
        self.offset = 0
        self.limit = page_limit
        self.fragment: str | None = None

    def fetch_page(self, offset: int = 0, limit: int | None = None) -> str | None:
        """Fetch one page.  Returns the fragment, or None if it failed."""
        limit = limit or self.limit
        try:
            resp = self._api.get("/partials/deployments", params={"offset": offset, "limit": limit})
        except TransportError as e:
            logger.info("Deployment list refresh failed: %s", e)
            return None
        if not resp.ok:
            logger.info("Deployment list refresh returned HTTP %d", resp.status)
            return None
        self.offset, self.limit = offset, limit
        self._show(resp.text)
        return resp.text

    def refresh(self) -> str | None:
        return self.fetch_page(self.offset, self.limit)

    def rollback(self, deployment_id: str) -> ActionResult:
        """Queue a rollback to the backup taken by ``deployment_id``."""
        path = f"/api/deployments/{quote(deployment_id.strip(), safe='')}/rollback"
        return self._act(path, None, "Rollback queued", "Rollback failed")

    def update_note(self, deployment_id: str, note: str) -> ActionResult:
        path = f"/api/deployments/{quote(deployment_id.strip(), safe='')}/note"
        return self._act(path, {"note": note.strip()}, "Note updated", "Failed to update note")

    def _act(self, path: str, data: dict[str, str] | None, ok_message: str, fail_message: str) -> ActionResult:
        try:
            resp = self._api.post(path, data)
        except TransportError as e:
            logger.info("POST %s failed: %s", path, e)
            return ActionResult(False, "Network error, request failed")
        if not resp.ok:
            # These endpoints answer errors in plain text
            message = resp.text.strip() or f"{fail_message} ({resp.status})"
            return ActionResult(False, message, status_code=resp.status)
        self._show(resp.text)
        return ActionResult(True, ok_message, status_code=resp.status)

    def _show(self, fragment: str) -> None:
        self.fragment = fragment
        if self._surface is not None:
            self._surface(fragment)
