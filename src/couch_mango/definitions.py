"""Model descriptors: properties, declared indexes and per-model store settings.

A :class:`ModelDefinition` is the adapter's view of an ORM model. It is
immutable; redefining a model means registering a new definition under the
same name and re-running migration.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import CouchValidationError

_PY_TYPE_NAMES: dict[Any, str] = {
    str: "string",
    bool: "boolean",
    int: "number",
    float: "number",
    Decimal: "number",
    datetime: "date",
    date: "date",
    list: "array",
    tuple: "array",
    dict: "object",
    object: "any",
}

PROPERTY_TYPES = frozenset({"string", "number", "boolean", "date", "object", "array", "any"})


def normalise_type(value: Any) -> str:
    """Map a Python type or a type name (any case) to a property type name."""
    if value is None:
        return "any"
    if isinstance(value, str):
        name = value.lower()
        if name in PROPERTY_TYPES:
            return name
        raise ValueError(f"Unknown property type {value!r}")
    try:
        name = _PY_TYPE_NAMES.get(value)
    except TypeError:
        name = None
    if name is None:
        raise ValueError(f"Unsupported property type {value!r}")
    return name


def _coerce_property(raw: Any) -> Any:
    """Expand property shorthands into a ``PropertyDefinition`` mapping.

    ``int`` / ``"number"`` -> scalar property; ``[{...}]`` -> array of objects;
    ``{"type": ..., ...}`` -> full form; any other mapping -> object sub-tree.
    """
    if isinstance(raw, PropertyDefinition):
        return raw
    if isinstance(raw, list):
        items = _coerce_property(raw[0]) if raw else None
        return {"type": "array", "items": items}
    if isinstance(raw, dict):
        if isinstance(raw.get("type"), list):
            declared = raw["type"]
            return {
                **raw,
                "type": "array",
                "items": _coerce_property(declared[0]) if declared else None,
            }
        if "type" in raw or not raw:
            return raw
        return {"type": "object", "properties": raw}
    return {"type": raw}


class PropertyDefinition(BaseModel):
    """A model property.

    ``properties`` describes the fields of an ``object`` property and
    ``items`` the element shape of an ``array`` property; both feed nested
    path resolution in the selector builder.
    """

    model_config = ConfigDict(frozen=True)

    type: str = "any"
    index: bool = False
    id: bool = False
    properties: dict[str, PropertyDefinition] = Field(default_factory=dict)
    items: PropertyDefinition | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: Any) -> str:
        return normalise_type(value)

    @field_validator("properties", mode="before")
    @classmethod
    def _coerce_properties(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: _coerce_property(v) for k, v in value.items()}
        return value

    @field_validator("items", mode="before")
    @classmethod
    def _coerce_items(cls, value: Any) -> Any:
        return None if value is None else _coerce_property(value)

    @property
    def is_array(self) -> bool:
        return self.type == "array"

    def child(self, name: str) -> PropertyDefinition | None:
        """Resolve one path segment below this property."""
        if self.is_array:
            return self.items.child(name) if self.items is not None else None
        return self.properties.get(name)


class IndexDefinition(BaseModel):
    """A model-level (composite) index: ordered field -> 1 (asc) | -1 (desc)."""

    model_config = ConfigDict(frozen=True)

    name: str
    keys: dict[str, int]

    @field_validator("keys")
    @classmethod
    def _check_keys(cls, value: dict[str, int]) -> dict[str, int]:
        if not value:
            raise ValueError("index keys must name at least one field")
        bad = [k for k, v in value.items() if v not in (1, -1)]
        if bad:
            raise ValueError(f"index key directions must be 1 or -1: {bad}")
        return value


class CouchModelSettings(BaseModel):
    """Per-model overrides.

    ``model_selector`` replaces the discriminator constraint entirely; when
    it is set no discriminator field is written or indexed.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    database: str | None = Field(default=None, alias="db")
    model_index: str | None = Field(default=None, alias="modelIndex")
    model_selector: dict[str, Any] | None = Field(default=None, alias="modelSelector")


class ModelDefinition(BaseModel):
    """Immutable model descriptor."""

    model_config = ConfigDict(frozen=True)

    name: str
    properties: dict[str, PropertyDefinition] = Field(default_factory=dict)
    indexes: dict[str, IndexDefinition] = Field(default_factory=dict)
    settings: CouchModelSettings = Field(default_factory=CouchModelSettings)

    @field_validator("properties", mode="before")
    @classmethod
    def _coerce_properties(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: _coerce_property(v) for k, v in value.items()}
        return value

    @field_validator("indexes", mode="before")
    @classmethod
    def _coerce_indexes(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        result: dict[str, Any] = {}
        for name, decl in value.items():
            if isinstance(decl, IndexDefinition):
                result[name] = decl
            elif isinstance(decl, dict):
                keys = decl.get("keys", decl)
                if not isinstance(keys, dict):
                    raise ValueError(f"keys of index {name!r} are not well defined")
                result[name] = {"name": name, "keys": keys}
            else:
                raise ValueError(f"index {name!r} must be a mapping")
        return result

    @classmethod
    def build(
        cls,
        name: str,
        properties: dict[str, Any] | None = None,
        *,
        indexes: dict[str, Any] | None = None,
        settings: dict[str, Any] | CouchModelSettings | None = None,
    ) -> ModelDefinition:
        """Validate a definition, raising :class:`CouchValidationError`."""
        try:
            return cls.model_validate(
                {
                    "name": name,
                    "properties": properties or {},
                    "indexes": indexes or {},
                    "settings": settings or CouchModelSettings(),
                }
            )
        except ValueError as e:
            raise CouchValidationError(f"Invalid definition for model {name}: {e}") from e

    @property
    def id_name(self) -> str:
        for prop_name, prop in self.properties.items():
            if prop.id:
                return prop_name
        return "id"

    @property
    def id_is_numeric(self) -> bool:
        prop = self.properties.get(self.id_name)
        return prop is not None and prop.type == "number"

    @property
    def date_fields(self) -> list[str]:
        return [k for k, p in self.properties.items() if p.type == "date"]

    @property
    def indexed_properties(self) -> list[str]:
        return [k for k, p in self.properties.items() if p.index]


class ModelRegistry:
    """Name -> definition map shared by a connector."""

    def __init__(self, definitions: list[ModelDefinition] | None = None) -> None:
        self._models: dict[str, ModelDefinition] = {}
        for definition in definitions or []:
            self.define(definition)

    def define(self, definition: ModelDefinition) -> ModelDefinition:
        """Register or replace a definition."""
        self._models[definition.name] = definition
        return definition

    def get(self, name: str) -> ModelDefinition:
        try:
            return self._models[name]
        except KeyError:
            raise CouchValidationError(
                f"model {name} does not exist in your registry!"
            ) from None

    def names(self) -> list[str]:
        return list(self._models)

    def __contains__(self, name: object) -> bool:
        return name in self._models
