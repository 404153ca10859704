"""Mango JSON index planning: candidates, direction coercion, naming and diffing.

CouchDB refuses composite indexes whose fields sort in different directions,
and can only use an index whose fields cover the selector's fields, which
always include the discriminator. Every candidate index is therefore
single-direction and ends with the discriminator field.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .exceptions import CouchProtocolError, CouchValidationError
from .settings import DEFAULT_MODEL_PREFIX, DEFAULT_PROPERTY_PREFIX

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .definitions import ModelDefinition

logger = logging.getLogger("couch_mango.indexes")

DESIGN_PREFIX = "_design/"
DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True)
class IndexField:
    field: str
    direction: str = "asc"

    def __post_init__(self) -> None:
        if self.direction not in DIRECTIONS:
            raise CouchValidationError(
                f"index direction for {self.field!r} must be 'asc' or 'desc'"
            )

    def to_json(self) -> dict[str, str]:
        return {self.field: self.direction}

    @classmethod
    def from_json(cls, raw: Any) -> IndexField:
        """Parse ``{"field": "asc"}`` or a bare ``"field"`` (ascending)."""
        if isinstance(raw, str):
            return cls(raw)
        if isinstance(raw, dict) and len(raw) == 1:
            ((name, direction),) = raw.items()
            return cls(name, direction)
        raise CouchProtocolError(f"Unexpected index field definition: {raw!r}")


@dataclass(frozen=True)
class IndexDescriptor:
    """A JSON index to create: fields, index name and design-document name."""

    name: str
    fields: tuple[IndexField, ...]
    ddoc_name: str

    @property
    def ddoc(self) -> str:
        return DESIGN_PREFIX + self.ddoc_name

    @property
    def direction(self) -> str:
        return self.fields[0].direction if self.fields else "asc"

    def to_request(self) -> dict[str, Any]:
        """Body for ``POST /{db}/_index``."""
        return {
            "index": {"fields": [f.to_json() for f in self.fields]},
            "ddoc": self.ddoc_name,
            "name": self.name,
            "type": "json",
        }


@dataclass(frozen=True)
class ExistingIndex:
    """An index reported by ``GET /{db}/_index``."""

    name: str
    ddoc: str
    fields: tuple[IndexField, ...]


@dataclass
class IndexPlan:
    to_add: dict[str, IndexDescriptor] = field(default_factory=dict)
    to_drop: dict[str, ExistingIndex] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.to_add and not self.to_drop


def model_index_prefix(
    model: str,
    *,
    model_prefix: str = DEFAULT_MODEL_PREFIX,
    property_prefix: str = DEFAULT_PROPERTY_PREFIX,
) -> str:
    return f"{model_prefix}__{model}__{property_prefix}__"


def index_ddoc_name(
    model: str,
    index_name: str,
    *,
    model_prefix: str = DEFAULT_MODEL_PREFIX,
    property_prefix: str = DEFAULT_PROPERTY_PREFIX,
) -> str:
    """``LBModel__<model>__LBIndex__<index>``; stable so re-migration finds it."""
    return (
        model_index_prefix(model, model_prefix=model_prefix, property_prefix=property_prefix)
        + index_name
    )


def coerce_directions(name: str, fields: Iterable[IndexField]) -> tuple[IndexField, ...]:
    """Force every field to the first field's direction, warning about changes."""
    fields = tuple(fields)
    if len(fields) <= 1:
        return fields
    direction = fields[0].direction
    coerced = [f.field for f in fields if f.direction != direction]
    if coerced:
        logger.warning(
            "CouchDB does not allow composite indexes with conflicting sort "
            "directions; index %s will be created using %s order, coerced "
            "fields: %s",
            name,
            direction,
            ",".join(coerced),
        )
    return tuple(IndexField(f.field, direction) for f in fields)


def append_discriminator(
    fields: tuple[IndexField, ...], discriminator: str | None
) -> tuple[IndexField, ...]:
    """Append the discriminator with the index's direction unless present."""
    if not discriminator:
        return fields
    if not fields:
        return (IndexField(discriminator),)
    if any(f.field == discriminator for f in fields):
        return fields
    return (*fields, IndexField(discriminator, fields[0].direction))


def build_candidate_indexes(
    definition: ModelDefinition,
    discriminator: str | None,
    *,
    model_prefix: str = DEFAULT_MODEL_PREFIX,
    property_prefix: str = DEFAULT_PROPERTY_PREFIX,
) -> dict[str, IndexDescriptor]:
    """Derive the indexes a model wants.

    One ascending ``<prop>_index`` per indexed property, one per model-level
    declaration, and one on the discriminator itself.
    """
    raw: dict[str, tuple[IndexField, ...]] = {}
    for prop in definition.indexed_properties:
        raw[f"{prop}_index"] = (IndexField(prop),)
    if discriminator:
        raw.setdefault(f"{discriminator}_index", (IndexField(discriminator),))
    for name, decl in definition.indexes.items():
        raw[name] = tuple(
            IndexField(key, "asc" if order == 1 else "desc") for key, order in decl.keys.items()
        )

    candidates: dict[str, IndexDescriptor] = {}
    for name, fields in raw.items():
        fields = append_discriminator(coerce_directions(name, fields), discriminator)
        candidates[name] = IndexDescriptor(
            name=name,
            fields=fields,
            ddoc_name=index_ddoc_name(
                definition.name,
                name,
                model_prefix=model_prefix,
                property_prefix=property_prefix,
            ),
        )
    return candidates


def parse_indexes(raw_indexes: Iterable[dict[str, Any]]) -> dict[str, ExistingIndex]:
    """Convert ``GET /_index`` entries to ``{name: ExistingIndex}``."""
    results: dict[str, ExistingIndex] = {}
    for entry in raw_indexes:
        try:
            name = entry["name"]
            ddoc = entry["ddoc"]
            fields = entry.get("def", {}).get("fields", [])
        except (KeyError, AttributeError, TypeError) as e:
            raise CouchProtocolError(f"Malformed index entry: {entry!r}") from e
        results[name] = ExistingIndex(
            name=name,
            ddoc=ddoc,
            fields=tuple(IndexField.from_json(f) for f in fields),
        )
    return results


def select_model_indexes(
    raw_indexes: Iterable[dict[str, Any]],
    model: str,
    *,
    model_prefix: str = DEFAULT_MODEL_PREFIX,
    property_prefix: str = DEFAULT_PROPERTY_PREFIX,
) -> dict[str, ExistingIndex]:
    """Keep only the indexes whose ddoc follows this model's naming prefix."""
    prefix = model_index_prefix(
        model, model_prefix=model_prefix, property_prefix=property_prefix
    )
    owned = [
        entry
        for entry in raw_indexes
        if isinstance(entry.get("ddoc"), str)
        and entry["ddoc"].startswith(DESIGN_PREFIX)
        and entry["ddoc"][len(DESIGN_PREFIX) :].startswith(prefix)
    ]
    return parse_indexes(owned)


def _same_fields(a: Iterable[IndexField], b: Iterable[IndexField]) -> bool:
    return set(a) == set(b)


def plan_indexes(
    candidates: dict[str, IndexDescriptor],
    existing: dict[str, ExistingIndex],
    full_rebuild: bool,
) -> IndexPlan:
    """Decide which indexes to add and drop.

    A full rebuild drops every existing index and adds every candidate.
    Otherwise unchanged indexes stay, new ones are added, and changed ones
    are dropped and re-added under the same design document.
    """
    if full_rebuild:
        return IndexPlan(to_add=dict(candidates), to_drop=dict(existing))
    plan = IndexPlan()
    for name, candidate in candidates.items():
        old = existing.get(name)
        if old is not None and _same_fields(candidate.fields, old.fields):
            continue
        plan.to_add[name] = candidate
        if old is not None:
            plan.to_drop[name] = old
    for name, old in existing.items():
        if name not in candidates:
            plan.to_drop[name] = old
    return plan


class CouchIndexPlanner:
    """Index planning bound to a naming convention."""

    def __init__(
        self,
        *,
        model_prefix: str = DEFAULT_MODEL_PREFIX,
        property_prefix: str = DEFAULT_PROPERTY_PREFIX,
    ) -> None:
        self.model_prefix = model_prefix
        self.property_prefix = property_prefix

    def candidates(
        self, definition: ModelDefinition, discriminator: str | None
    ) -> dict[str, IndexDescriptor]:
        return build_candidate_indexes(
            definition,
            discriminator,
            model_prefix=self.model_prefix,
            property_prefix=self.property_prefix,
        )

    def existing_for(
        self, raw_indexes: Iterable[dict[str, Any]], model: str
    ) -> dict[str, ExistingIndex]:
        return select_model_indexes(
            raw_indexes,
            model,
            model_prefix=self.model_prefix,
            property_prefix=self.property_prefix,
        )

    def plan(
        self,
        definition: ModelDefinition,
        discriminator: str | None,
        existing: dict[str, ExistingIndex],
        full_rebuild: bool,
    ) -> IndexPlan:
        plan = plan_indexes(self.candidates(definition, discriminator), existing, full_rebuild)
        logger.debug(
            "index plan for %s: add=%s drop=%s",
            definition.name,
            sorted(plan.to_add),
            sorted(plan.to_drop),
        )
        return plan
