"""Revision-aware writes: insert, update, replace, bulk and delete.

CouchDB accepts a write to an existing document only when it carries the
current ``_rev``. Conflicts are surfaced to the caller and never retried.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from .exceptions import (
    BatchWriteError,
    CouchPersistenceError,
    DocumentConflictError,
    DocumentNotFoundError,
    DuplicateDocumentError,
    UpdateConflictError,
)
from .mapper import CouchDocumentMapper, plain_data, serialize_value

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .exceptions import CouchHTTPError
    from .model_handle import ModelHandle
    from .query_executor import CouchQueryExecutor
    from .selector import CouchSelectorBuilder

logger = logging.getLogger("couch_mango.write_coordinator")


class CouchWriteCoordinator:
    """Write paths for one connector."""

    def __init__(
        self,
        selector_builder: CouchSelectorBuilder,
        executor: CouchQueryExecutor,
        *,
        global_limit: int | None = None,
    ) -> None:
        self._selectors = selector_builder
        self._executor = executor
        self._global_limit = global_limit

    async def resolve(
        self,
        handle: ModelHandle,
        where: Mapping[str, Any] | None,
        *,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Raw documents matching ``where`` (the store has no delete/update by query)."""
        selector = self._selectors.build_selector(handle, where)
        query = self._executor.build_query(selector)
        return await self._executor.execute(handle.database, query, limit=limit)

    async def _write(
        self,
        handle: ModelHandle,
        doc: dict[str, Any],
        conflict_cls: type[CouchHTTPError],
        suffix: str = "",
    ) -> dict[str, Any]:
        try:
            return await handle.database.insert(doc)
        except DocumentConflictError as e:
            raise e.with_context(
                handle.name, doc.get("_id"), cls=conflict_cls, suffix=suffix
            ) from e

    async def insert(self, handle: ModelHandle, data: Any) -> tuple[Any, str]:
        """Create a document. Returns ``(id, rev)``; a taken id is a duplicate."""
        mapper = CouchDocumentMapper.for_handle(handle)
        result = await self._write(
            handle, mapper.to_doc(data), DuplicateDocumentError, "(duplicate?)"
        )
        doc_id = mapper.parse_id(result["id"])
        if isinstance(data, dict):
            data[handle.id_name] = doc_id
        logger.debug("inserted %s %s rev %s", handle.name, result["id"], result["rev"])
        return doc_id, result["rev"]

    async def upsert_by_revision_match(
        self, handle: ModelHandle, doc_id: Any, data: Any
    ) -> dict[str, Any]:
        """Merge ``data`` over the stored document and write it back.

        A ``_rev`` in ``data`` wins over the stored one, so a stale revision
        ends in :class:`UpdateConflictError`.
        """
        mapper = CouchDocumentMapper.for_handle(handle)
        try:
            current = await handle.database.get(str(doc_id))
        except DocumentNotFoundError as e:
            raise e.with_context(handle.name, doc_id) from e
        merged = dict(current)
        merged.pop("_id", None)
        merged.update(plain_data(data))
        merged[handle.id_name] = str(doc_id)
        doc = mapper.to_doc(merged)
        result = await self._write(handle, doc, UpdateConflictError)
        doc["_rev"] = result["rev"]
        return mapper.from_doc(doc)

    async def replace_by_id(
        self, handle: ModelHandle, doc_id: Any, data: Any
    ) -> dict[str, Any]:
        """Write ``data`` as the whole document under ``doc_id``; no prior read."""
        mapper = CouchDocumentMapper.for_handle(handle)
        replacement = plain_data(data)
        replacement[handle.id_name] = str(doc_id)
        result = await self._write(handle, mapper.to_doc(replacement), UpdateConflictError)
        stored = await handle.database.get(result["id"])
        return mapper.from_doc(stored)

    async def bulk_replace(
        self, handle: ModelHandle, data_list: list[Any]
    ) -> list[dict[str, Any]]:
        """One ``_bulk_docs`` call; any failed item fails the whole call.

        Items the store accepted stay written.
        """
        mapper = CouchDocumentMapper.for_handle(handle)
        docs = [mapper.to_doc(data) for data in data_list]
        results = await handle.database.bulk(docs)
        self._raise_for_bulk(handle, results)
        return results

    async def destroy(self, handle: ModelHandle, doc_id: Any) -> int:
        docs = await self.resolve(handle, {handle.id_name: doc_id})
        if len(docs) > 1:
            raise CouchPersistenceError(
                f"destroy of {handle.name} id={doc_id!r} matched {len(docs)} documents"
            )
        if not docs:
            return 0
        result = await self._destroy_doc(handle, docs[0])
        return 1 if result.get("ok") else 0

    async def destroy_all(
        self, handle: ModelHandle, where: Mapping[str, Any] | None = None
    ) -> int:
        """Delete every match, one request per document, concurrently.

        Individual failures do not stop the other deletes; they are reported
        together once every delete has finished.
        """
        docs = await self.resolve(handle, where, limit=self._global_limit)
        results = await asyncio.gather(
            *(self._destroy_doc(handle, doc) for doc in docs),
            return_exceptions=True,
        )
        deleted = 0
        failures: list[Exception] = []
        for result in results:
            if isinstance(result, Exception):
                failures.append(result)
            elif isinstance(result, BaseException):
                raise result
            elif result.get("ok"):
                deleted += 1
        logger.debug("destroy_all %s: %d deleted, %d failed", handle.name, deleted, len(failures))
        if failures:
            raise BatchWriteError(
                f"Unable to delete {len(failures)} {handle.name} document(s)",
                failures=failures,
                succeeded=deleted,
            )
        return deleted

    async def update_where(
        self,
        handle: ModelHandle,
        where: Mapping[str, Any] | None,
        data: Any,
    ) -> int:
        """Merge ``data`` into every match and write them in one bulk call."""
        docs = await self.resolve(handle, where)
        if not docs:
            return 0
        patch = plain_data(data)
        patch.pop(handle.id_name, None)
        patch = serialize_value(patch)
        for doc in docs:
            for key, value in patch.items():
                if value is None:
                    doc.pop(key, None)
                else:
                    doc[key] = value
        results = await handle.database.bulk(docs)
        self._raise_for_bulk(handle, results)
        return len(results)

    async def _destroy_doc(self, handle: ModelHandle, doc: dict[str, Any]) -> dict[str, Any]:
        try:
            return await handle.database.destroy(doc["_id"], doc["_rev"])
        except (DocumentNotFoundError, DocumentConflictError) as e:
            raise e.with_context(handle.name, doc["_id"]) from e

    @staticmethod
    def _raise_for_bulk(handle: ModelHandle, results: list[dict[str, Any]]) -> None:
        failures = [r for r in results if r.get("error")]
        if failures:
            raise BatchWriteError(
                f"Unable to update 1 or more {handle.name} document(s)",
                failures=failures,
                results=results,
                succeeded=len(results) - len(failures),
            )
