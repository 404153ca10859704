"""CouchDB persistence exceptions."""

from __future__ import annotations

from typing import Any


class CouchPersistenceError(Exception):
    """Base for CouchDB persistence errors."""


class CouchConnectionError(CouchPersistenceError):
    """Raised when the store cannot be reached or the database is missing."""


class CouchValidationError(CouchPersistenceError):
    """Raised for malformed settings, model definitions or index declarations."""


class CouchQueryError(CouchPersistenceError):
    """Raised when a where-filter or sort cannot be compiled to a selector."""


class CouchProtocolError(CouchPersistenceError):
    """Raised when the store answers with an unexpected response shape."""

    def __init__(self, message: str, *, query: dict[str, Any] | None = None) -> None:
        self.query = query
        super().__init__(message)


class MalformedDocumentError(CouchPersistenceError):
    """Raised when a stored document lacks a reserved field it must carry."""


class CouchHTTPError(CouchPersistenceError):
    """Non-2xx answer from the store.

    Carries the status code, the store's ``error``/``reason`` pair and the
    model/document the request was issued for.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        error: str | None = None,
        reason: str | None = None,
        model: str | None = None,
        doc_id: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.error = error
        self.reason = reason
        self.model = model
        self.doc_id = doc_id
        super().__init__(message)

    def with_context(
        self,
        model: str | None,
        doc_id: object = None,
        *,
        cls: type[CouchHTTPError] | None = None,
        suffix: str = "",
    ) -> CouchHTTPError:
        """Return a copy (optionally of a narrower class) with model/id context."""
        doc_id = None if doc_id is None else str(doc_id)
        parts = [str(self)]
        if model:
            parts.append(f"model={model}")
        if doc_id is not None:
            parts.append(f"id={doc_id!r}")
        if suffix:
            parts.append(suffix)
        return (cls or type(self))(
            " ".join(parts),
            status_code=self.status_code,
            error=self.error,
            reason=self.reason,
            model=model,
            doc_id=doc_id,
        )


class DocumentNotFoundError(CouchHTTPError):
    """404 from the store."""


class DocumentConflictError(CouchHTTPError):
    """409 from the store: the document revision did not match."""


class DuplicateDocumentError(DocumentConflictError):
    """Insert collided with an existing document."""


class UpdateConflictError(DocumentConflictError):
    """Update or replace was issued against a stale revision."""


class BatchWriteError(CouchPersistenceError):
    """One or more items of a multi-document write failed.

    Successful items are not rolled back; ``succeeded`` counts them and
    ``results`` holds the raw per-item answers when the store returned any.
    """

    def __init__(
        self,
        message: str,
        *,
        failures: list[Any],
        results: list[Any] | None = None,
        succeeded: int = 0,
    ) -> None:
        self.failures = failures
        self.results = results or []
        self.succeeded = succeeded
        super().__init__(f"{message}: {failures!r}")
