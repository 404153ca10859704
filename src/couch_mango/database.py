"""Single-database primitives over the CouchDB HTTP API."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from .exceptions import CouchProtocolError

if TYPE_CHECKING:
    from .connection import CouchConnectionManager

DESIGN_PREFIX = "_design/"

# View parameters CouchDB expects as JSON values.
_JSON_VIEW_PARAMS = frozenset(
    {"key", "keys", "startkey", "endkey", "start_key", "end_key"}
)


def doc_path(db_name: str, doc_id: str) -> str:
    """URL path of a document; design-document ids keep their ``_design/``."""
    base = f"/{quote(db_name, safe='')}"
    if doc_id.startswith(DESIGN_PREFIX):
        name = doc_id[len(DESIGN_PREFIX) :]
        return f"{base}/{DESIGN_PREFIX}{quote(name, safe='')}"
    return f"{base}/{quote(doc_id, safe='')}"


def encode_view_params(params: dict[str, Any]) -> dict[str, Any]:
    encoded: dict[str, Any] = {}
    for key, value in params.items():
        if key in _JSON_VIEW_PARAMS:
            encoded[key] = json.dumps(value)
        elif isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = value
    return encoded


class CouchDatabase:
    """Handle on one database: documents, Mango queries, indexes and views."""

    def __init__(self, connection: CouchConnectionManager, name: str) -> None:
        self._connection = connection
        self.name = name

    @property
    def _base(self) -> str:
        return f"/{quote(self.name, safe='')}"

    async def find(self, query: dict[str, Any]) -> dict[str, Any]:
        result = await self._connection.request("POST", f"{self._base}/_find", json=query)
        if not isinstance(result, dict):
            raise CouchProtocolError("_find returned a non-object body", query=query)
        return result

    async def get(self, doc_id: str) -> dict[str, Any]:
        return await self._connection.request("GET", doc_path(self.name, doc_id))

    async def head_revision(self, doc_id: str) -> str | None:
        """Current ``_rev`` read from the ETag header, or None if absent."""
        response = await self._connection.head(doc_path(self.name, doc_id))
        etag = response.headers.get("etag")
        if not etag:
            return None
        return etag.strip('"')

    async def insert(self, doc: dict[str, Any]) -> dict[str, Any]:
        """Create or update a document; ``_rev`` in ``doc`` must be current."""
        return await self._connection.request("POST", self._base, json=doc)

    async def destroy(self, doc_id: str, rev: str) -> dict[str, Any]:
        return await self._connection.request(
            "DELETE", doc_path(self.name, doc_id), params={"rev": rev}
        )

    async def bulk(self, docs: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """``POST _bulk_docs``: one status entry per document, in order."""
        result = await self._connection.request(
            "POST", f"{self._base}/_bulk_docs", json={"docs": docs}
        )
        if not isinstance(result, list):
            raise CouchProtocolError("_bulk_docs returned a non-list body")
        return result

    async def list_indexes(self) -> dict[str, Any]:
        return await self._connection.request("GET", f"{self._base}/_index")

    async def create_index(self, body: dict[str, Any]) -> dict[str, Any]:
        return await self._connection.request("POST", f"{self._base}/_index", json=body)

    async def view(
        self, ddoc: str, view: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        ddoc_name = ddoc[len(DESIGN_PREFIX) :] if ddoc.startswith(DESIGN_PREFIX) else ddoc
        path = (
            f"{self._base}/{DESIGN_PREFIX}{quote(ddoc_name, safe='')}"
            f"/_view/{quote(view, safe='')}"
        )
        return await self._connection.request(
            "GET", path, params=encode_view_params(params or {})
        )
