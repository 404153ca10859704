"""Mango selector builder from where-filters."""

from __future__ import annotations

import copy
import logging
import re
from typing import TYPE_CHECKING, Any

from .exceptions import CouchQueryError
from .filters import FieldClause, Literal, LogicalClause, Operator, Where, parse_where
from .operators import compile_regex, compile_standard

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .definitions import ModelDefinition
    from .model_handle import ModelHandle

logger = logging.getLogger("couch_mango.selector")

ELEM_MATCH = "$elemMatch"
_ORDER_RE = re.compile(r"\s+(ASC|DESC)$", re.IGNORECASE)


class _BuildState:
    __slots__ = ("contains_regex",)

    def __init__(self) -> None:
        self.contains_regex = False


def _compile_condition(condition: Literal | Operator) -> Any:
    if isinstance(condition, Literal):
        return condition.value
    fragment = compile_regex(condition)
    if fragment is None:
        fragment = compile_standard(condition)
    return fragment


def _stringify_id(value: Any) -> Any:
    """Ids are stored as strings; coerce scalar operands accordingly."""
    if value is None or isinstance(value, (bool, str, re.Pattern)):
        return value
    if isinstance(value, (list, tuple)):
        return [_stringify_id(v) for v in value]
    if isinstance(value, dict):
        return value
    return str(value)


def _deep_merge(target: dict[str, Any], key: str, value: Any) -> None:
    existing = target.get(key)
    if isinstance(existing, dict) and isinstance(value, dict):
        for k, v in value.items():
            _deep_merge(existing, k, v)
    else:
        target[key] = copy.deepcopy(value) if isinstance(value, dict) else value


def excluded_fields(fields: list[str] | Mapping[str, bool] | None) -> list[str]:
    """Names dropped by an exclusion mapping such as ``{"name": False}``."""
    if not isinstance(fields, dict) or not fields or any(fields.values()):
        return []
    return list(fields)


def resolve_path(definition: ModelDefinition, path: str) -> str | None:
    """Resolve a dotted path against the declared property tree.

    Array properties followed by a further segment get ``$elemMatch``
    inserted after them. Returns None when a segment is not declared.
    """
    segments = path.split(".")
    prop = definition.properties.get(segments[0])
    if prop is None:
        return None
    resolved = [segments[0]]
    rest = iter(segments[1:])
    for segment in rest:
        if prop.is_array:
            resolved.append(ELEM_MATCH)
            if segment == ELEM_MATCH:
                segment = next(rest, None)
                if segment is None:
                    return ".".join(resolved)
        child = prop.child(segment)
        if child is None:
            return None
        resolved.append(segment)
        prop = child
    return ".".join(resolved)


class CouchSelectorBuilder:
    """Compiles where-filters, orders and projections to Mango query parts."""

    def build_selector(
        self, handle: ModelHandle, where: Mapping[str, Any] | Where | None
    ) -> dict[str, Any]:
        """Build the full selector for a model.

        The result always carries the model constraint: the discriminator
        equality, or the model's custom selector when one is configured.
        """
        tree = parse_where(where)
        state = _BuildState()
        selector = self._compile(handle.definition, tree, state)
        if state.contains_regex and "_id" not in selector:
            # Mango refuses regex-only selectors without a usable index.
            selector["_id"] = {"$gt": None}
        selector = self._constrain_to_model(handle, selector)
        logger.debug("selector for %s: %r", handle.name, selector)
        return selector

    def _constrain_to_model(
        self, handle: ModelHandle, selector: dict[str, Any]
    ) -> dict[str, Any]:
        if handle.model_selector is not None:
            base = copy.deepcopy(handle.model_selector)
        elif handle.discriminator:
            base = {handle.discriminator: handle.name}
        else:
            return selector
        if any(key in selector for key in base):
            return {"$and": [base, selector]}
        return {**base, **selector}

    def _compile(
        self, definition: ModelDefinition, where: Where, state: _BuildState
    ) -> dict[str, Any]:
        selector: dict[str, Any] = {}
        for clause in where.clauses:
            if isinstance(clause, LogicalClause):
                selector[f"${clause.op}"] = [
                    self._compile(definition, branch, state) for branch in clause.branches
                ]
            elif isinstance(clause, FieldClause):
                self._compile_field(definition, clause, selector, state)
            else:  # pragma: no cover
                raise CouchQueryError(f"Unknown clause {clause!r}")
        return selector

    def _compile_field(
        self,
        definition: ModelDefinition,
        clause: FieldClause,
        selector: dict[str, Any],
        state: _BuildState,
    ) -> None:
        condition = clause.condition
        path = clause.path
        if path == definition.id_name:
            path = "_id"
            if isinstance(condition, Literal):
                condition = Literal(_stringify_id(condition.value))
            elif condition.name not in ("like", "nlike", "regexp", "exists"):
                condition = Operator(condition.name, _stringify_id(condition.value), condition.options)

        fragment = _compile_condition(condition)
        if isinstance(fragment, dict) and "$regex" in fragment:
            state.contains_regex = True

        resolved = resolve_path(definition, path) if "." in path else None
        if resolved is None:
            _deep_merge(selector, path, fragment)
            return
        # {'a.tags.$elemMatch.tag': v} -> {'a': {'tags': {'$elemMatch': {'tag': v}}}}
        segments = resolved.split(".")
        nested: Any = fragment
        for segment in reversed(segments[1:]):
            nested = {segment: nested}
        _deep_merge(selector, segments[0], nested)

    def build_sort(
        self, handle: ModelHandle, order: str | list[str] | None
    ) -> list[dict[str, str]] | None:
        """Translate ``"age DESC, name"`` style orders to Mango sort."""
        if not order:
            return None
        if isinstance(order, str):
            items = order.split(",")
        elif isinstance(order, (list, tuple)):
            items = list(order)
        else:
            raise CouchQueryError(f"order must be a string or a list, got {order!r}")
        sort: list[dict[str, str]] = []
        for item in items:
            if not isinstance(item, str):
                raise CouchQueryError(f"order entries must be strings, got {item!r}")
            item = item.strip()
            if not item:
                continue
            match = _ORDER_RE.search(item)
            name = _ORDER_RE.sub("", item).strip()
            if name == handle.id_name:
                name = "_id"
            direction = "desc" if match and match.group(1).upper() == "DESC" else "asc"
            sort.append({name: direction})
        return sort or None

    def build_fields(
        self, handle: ModelHandle, fields: list[str] | Mapping[str, bool] | None
    ) -> list[str] | None:
        """Projection list; ``_id`` is always requested so results can be mapped.

        An exclusion mapping (every value false) requests whole documents;
        :func:`excluded_fields` names what to strip afterwards.
        """
        if not fields or excluded_fields(fields):
            return None
        if isinstance(fields, dict):
            names = [k for k, keep in fields.items() if keep]
        else:
            names = list(fields)
        projected: list[str] = []
        for name in [*names, "_id"]:
            if name == handle.id_name:
                name = "_id"
            if name not in projected:
                projected.append(name)
        return projected
