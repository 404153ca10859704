"""Design-document view queries."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .exceptions import CouchProtocolError

if TYPE_CHECKING:
    from .database import CouchDatabase

logger = logging.getLogger("couch_mango.views")


async def view_docs(
    database: CouchDatabase,
    ddoc: str,
    view_name: str,
    params: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Query ``_design/<ddoc>/_view/<view_name>``.

    ``key``, ``keys``, ``startkey`` and ``endkey`` are JSON-encoded before
    sending; the raw ``{total_rows, offset, rows}`` answer is returned.
    """
    logger.debug("view %s/%s on %s params=%r", ddoc, view_name, database.name, params)
    result = await database.view(ddoc, view_name, params)
    if not isinstance(result, dict) or not isinstance(result.get("rows"), list):
        raise CouchProtocolError(f"view {ddoc}/{view_name} returned no rows: {result!r}")
    return result
