"""Where-filter tree.

Raw where-clauses (``{"age": {"gt": 3}, "or": [...]}``) are parsed once into
a tagged tree so that the selector builder never has to guess whether a value
is an operator object or a literal.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TypeAlias, Union

from .exceptions import CouchQueryError

LOGICAL_OPERATORS = frozenset({"and", "or", "nor"})
OPTIONS_KEY = "options"


@dataclass(frozen=True)
class Literal:
    """Equality against a plain value (scalars, lists and nested objects alike)."""

    value: Any


@dataclass(frozen=True)
class Operator:
    """``{name: value}`` with optional flags from the sibling ``options`` key."""

    name: str
    value: Any
    options: str | None = None


Condition: TypeAlias = Union[Literal, Operator]


@dataclass(frozen=True)
class FieldClause:
    path: str
    condition: Condition


@dataclass(frozen=True)
class LogicalClause:
    op: str
    branches: tuple[Where, ...]


Clause: TypeAlias = Union[FieldClause, LogicalClause]


@dataclass(frozen=True)
class Where:
    clauses: tuple[Clause, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.clauses)


def parse_condition(raw: Any) -> list[Condition]:
    """Split a raw field condition into tagged conditions.

    A mapping is an operator object: every key except ``options`` names an
    operator (``{"gt": 1, "lt": 5}`` yields two). Anything else is a literal.
    """
    if not isinstance(raw, Mapping):
        return [Literal(raw)]
    options = raw.get(OPTIONS_KEY)
    if options is not None and not isinstance(options, str):
        raise CouchQueryError(f"'options' must be a string of flags, got {options!r}")
    names = [k for k in raw if k != OPTIONS_KEY]
    if not names:
        return [Literal(dict(raw))]
    return [Operator(str(name), raw[name], options) for name in names]


def parse_where(raw: Mapping[str, Any] | Where | None) -> Where:
    """Parse a raw where mapping; ``None`` means no constraint."""
    if raw is None:
        return Where()
    if isinstance(raw, Where):
        return raw
    if not isinstance(raw, Mapping):
        raise CouchQueryError(f"where filter must be a mapping, got {type(raw).__name__}")
    clauses: list[Clause] = []
    for key, value in raw.items():
        if key in LOGICAL_OPERATORS:
            if not isinstance(value, (list, tuple)):
                raise CouchQueryError(f"'{key}' expects a list of where filters")
            clauses.append(LogicalClause(key, tuple(parse_where(v) for v in value)))
            continue
        for condition in parse_condition(value):
            clauses.append(FieldClause(str(key), condition))
    return Where(tuple(clauses))
