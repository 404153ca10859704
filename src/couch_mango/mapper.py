"""Model data <-> CouchDB document mapping.

Documents carry three reserved fields: ``_id`` (always a string), ``_rev``
and the discriminator naming the model a document belongs to.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from pydantic import BaseModel, TypeAdapter, ValidationError

from .exceptions import CouchPersistenceError, MalformedDocumentError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .model_handle import ModelHandle

_DATETIME = TypeAdapter(datetime)
_DATE = TypeAdapter(date)


def serialize_value(value: Any) -> Any:
    """Convert Python values to JSON-safe values."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    return value


def plain_data(data: Any) -> dict[str, Any]:
    """Plain dict copy of model data; pydantic models are dumped."""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="python")
    if isinstance(data, dict):
        return dict(data)
    raise CouchPersistenceError(f"Model data must be a dict or a pydantic model, got {data!r}")


class CouchDocumentMapper:
    """Per-model mapper built from a :class:`ModelHandle`."""

    def __init__(
        self,
        model_name: str,
        *,
        id_name: str = "id",
        id_is_numeric: bool = False,
        date_fields: Iterable[str] = (),
        discriminator: str | None = None,
    ) -> None:
        self.model_name = model_name
        self._id_name = id_name
        self._id_is_numeric = id_is_numeric
        self._date_fields = tuple(date_fields)
        self._discriminator = discriminator

    @classmethod
    def for_handle(cls, handle: ModelHandle) -> CouchDocumentMapper:
        return cls(
            handle.name,
            id_name=handle.id_name,
            id_is_numeric=handle.id_is_numeric,
            date_fields=handle.date_fields,
            discriminator=handle.discriminator,
        )

    def to_doc(self, data: Any) -> dict[str, Any]:
        """Model data -> document.

        ``None`` values are dropped; an explicit ``None`` id lets the store
        assign one; any other id is stringified into ``_id``.
        """
        source = plain_data(data)
        id_present = self._id_name in source
        id_value = source.get(self._id_name)
        doc = {k: v for k, v in source.items() if v is not None}
        if id_present and id_value is None:
            doc.pop(self._id_name, None)
            if self._id_name != "_id":
                doc.pop("_id", None)
        elif id_value is not None:
            doc["_id"] = str(id_value)
            if self._id_name != "_id":
                doc.pop(self._id_name, None)
        if self._discriminator:
            doc[self._discriminator] = self.model_name
        return serialize_value(doc)

    def from_doc(
        self, doc: dict[str, Any], fields: Iterable[str] | None = None
    ) -> dict[str, Any]:
        """Document -> model data.

        ``fields`` is the caller's projection; when it leaves out the id, the
        id is not mapped back.
        """
        if not isinstance(doc, dict):
            raise MalformedDocumentError(f"{self.model_name} document must be a dict")
        if "_id" not in doc:
            raise MalformedDocumentError(
                f"{self.model_name} document has no _id: {doc!r}"
            )
        data = dict(doc)
        doc_id = data.pop("_id")
        if fields is None or self._id_name in fields:
            data[self._id_name] = self._parse_id(doc_id)
        for name in self._date_fields:
            value = data.get(name)
            if value:
                data[name] = self._parse_date(name, value)
        if self._discriminator:
            data.pop(self._discriminator, None)
        return data

    def from_docs(
        self, docs: Iterable[dict[str, Any]], fields: Iterable[str] | None = None
    ) -> list[dict[str, Any]]:
        fields = list(fields) if fields is not None else None
        return [self.from_doc(d, fields) for d in docs]

    def parse_id(self, doc_id: str) -> Any:
        return self._parse_id(doc_id)

    def _parse_id(self, doc_id: Any) -> Any:
        if self._id_is_numeric and isinstance(doc_id, str):
            try:
                return int(doc_id)
            except ValueError:
                return doc_id
        return doc_id

    def _parse_date(self, name: str, value: Any) -> date:
        """ISO calendar dates (``YYYY-MM-DD``) come back as ``date``, the rest as ``datetime``."""
        try:
            if isinstance(value, str) and len(value) == 10:
                return _DATE.validate_python(value)
            return _DATETIME.validate_python(value)
        except ValidationError as e:
            raise MalformedDocumentError(
                f"{self.model_name}.{name} is not a valid date: {value!r}"
            ) from e
