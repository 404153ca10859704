"""Bookmark-driven `_find` pagination.

A single ``_find`` call may return fewer documents than asked for even when
more match, so a logical result window is filled by re-issuing the query
with the returned bookmark until the store stops making progress.
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any

from .exceptions import CouchProtocolError
from .settings import DEFAULT_PAGE_SIZE

if TYPE_CHECKING:
    from .database import CouchDatabase

logger = logging.getLogger("couch_mango.query_executor")


def _id_as_int(doc: dict[str, Any]) -> int:
    try:
        return int(doc.get("_id", 0))
    except (TypeError, ValueError):
        return 0


def sort_numeric_id(docs: list[dict[str, Any]], sort: list[dict[str, str]]) -> None:
    """Re-sort in place by ``int(_id)`` when the sort includes ``_id``.

    Ids are strings in the store, so its ``_id`` ordering is lexicographic.
    """
    for entry in sort:
        if "_id" in entry:
            docs.sort(key=_id_as_int, reverse=entry["_id"] == "desc")


class CouchQueryExecutor:
    """Runs a Mango query to completion and returns every matching document."""

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self.page_size = page_size

    def build_query(
        self,
        selector: dict[str, Any],
        *,
        sort: list[dict[str, str]] | None = None,
        fields: list[str] | None = None,
        use_index: str | list[str] | None = None,
    ) -> dict[str, Any]:
        query: dict[str, Any] = {"selector": selector}
        if sort:
            query["sort"] = sort
        if fields:
            query["fields"] = fields
        if use_index:
            query["use_index"] = use_index
        return query

    async def execute(
        self,
        database: CouchDatabase,
        query: dict[str, Any],
        *,
        limit: int | None = None,
        offset: int | None = None,
        numeric_id: bool = False,
    ) -> list[dict[str, Any]]:
        """Fetch pages until the bookmark repeats, a page is empty, or ``limit`` is met.

        ``offset`` is sent with the first request only; after that the
        bookmark carries the position.
        """
        docs: list[dict[str, Any]] = []
        request = copy.deepcopy(query)
        request.pop("bookmark", None)
        if offset:
            request["skip"] = offset
        bookmark: str | None = None

        while True:
            remaining = None if limit is None else limit - len(docs)
            if remaining is not None and remaining <= 0:
                break
            request["limit"] = (
                self.page_size if remaining is None else min(self.page_size, remaining)
            )
            response = await database.find(request)
            page = response.get("docs")
            if not isinstance(page, list):
                raise CouchProtocolError(
                    f"No documents returned for query: {request!r}", query=request
                )
            docs.extend(page)
            next_bookmark = response.get("bookmark")
            logger.debug(
                "_find page: %d docs (total %d), bookmark %s",
                len(page),
                len(docs),
                next_bookmark,
            )
            if not page or not next_bookmark or next_bookmark == bookmark:
                break
            bookmark = next_bookmark
            request["bookmark"] = bookmark
            request.pop("skip", None)

        if numeric_id and query.get("sort"):
            sort_numeric_id(docs, query["sort"])
        return docs
