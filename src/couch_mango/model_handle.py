"""Resolved per-model state cached by the connector."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .database import CouchDatabase
    from .definitions import ModelDefinition


@dataclass(frozen=True)
class ModelHandle:
    """Everything the query and write paths need to know about one model.

    Exactly one of ``discriminator`` / ``model_selector`` is set: documents of
    a model are either tagged with ``{discriminator: model name}`` or picked
    out of the database by a custom selector.
    """

    definition: ModelDefinition
    database: CouchDatabase
    discriminator: str | None
    model_selector: dict[str, Any] | None = None

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def db_name(self) -> str:
        return self.database.name

    @property
    def id_name(self) -> str:
        return self.definition.id_name

    @property
    def id_is_numeric(self) -> bool:
        return self.definition.id_is_numeric

    @property
    def date_fields(self) -> list[str]:
        return self.definition.date_fields
