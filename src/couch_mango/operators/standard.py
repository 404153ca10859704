"""Comparison and set operators for Mango selector compilation."""

from __future__ import annotations

from typing import Any

from ..exceptions import CouchQueryError
from ..filters import Operator

_MANGO_OP_MAP: dict[str, str] = {
    "inq": "$in",
    "nin": "$nin",
    "neq": "$ne",
}

_LIST_OPERATORS = frozenset({"inq", "nin"})


def compile_standard(op: Operator) -> dict[str, Any] | None:
    """Compile a comparison operator to a Mango condition object.

    Names without a dedicated translation pass through as ``$<name>``
    (``gt`` -> ``$gt``, ``exists`` -> ``$exists``, ...).
    """
    if op.name == "between":
        lo, hi = _validate_range_operand(op.value)
        return {"$gte": lo, "$lte": hi}

    mango_op = _MANGO_OP_MAP.get(op.name)
    if mango_op:
        if op.name in _LIST_OPERATORS:
            if not isinstance(op.value, (list, tuple, set, frozenset)):
                raise CouchQueryError(f"{op.name} requires a list of values")
            return {mango_op: list(op.value)}
        return {mango_op: op.value}

    name = op.name if op.name.startswith("$") else f"${op.name}"
    return {name: op.value}


def _validate_range_operand(val: Any) -> tuple[Any, Any]:
    if not isinstance(val, (list, tuple)) or len(val) != 2:
        raise CouchQueryError("between requires a list of two values")
    return val[0], val[1]
