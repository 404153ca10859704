"""Pattern operators (like, nlike, regexp) -> Mango ``$regex``.

Mango evaluates ``$regex`` with PCRE, which has no flag argument; flags are
written inline as a ``(?ims)`` prefix.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from ..exceptions import CouchQueryError
from ..filters import Operator

logger = logging.getLogger("couch_mango.operators.regex")

REGEX_OPERATORS = frozenset({"like", "nlike", "regexp"})

_SUPPORTED_FLAGS = "imsx"
_PY_FLAGS: tuple[tuple[int, str], ...] = (
    (re.IGNORECASE, "i"),
    (re.MULTILINE, "m"),
    (re.DOTALL, "s"),
    (re.VERBOSE, "x"),
)
_LITERAL_RE = re.compile(r"^/(?P<source>.*)/(?P<flags>[a-z]*)$", re.DOTALL)


def _clean_flags(flags: str) -> str:
    """Drop flags PCRE cannot express inline, warning about each."""
    kept = []
    for flag in flags:
        if flag in _SUPPORTED_FLAGS:
            if flag not in kept:
                kept.append(flag)
        elif flag == "g":
            logger.warning("CouchDB regex syntax does not support global; flag ignored")
        else:
            logger.warning("Unsupported regex flag %r ignored", flag)
    return "".join(kept)


def split_pattern(value: Any, *, parse_literal: bool = False) -> tuple[str, str]:
    """Return ``(source, flags)`` for a pattern value.

    Accepts a compiled ``re.Pattern``, a plain string, or with
    ``parse_literal`` a ``"/source/flags"`` string.
    """
    if isinstance(value, re.Pattern):
        flags = "".join(letter for bit, letter in _PY_FLAGS if value.flags & bit)
        return value.pattern, flags
    if not isinstance(value, str):
        raise CouchQueryError(f"regular expression must be a string or pattern, got {value!r}")
    if parse_literal:
        match = _LITERAL_RE.match(value)
        if match:
            return match.group("source"), _clean_flags(match.group("flags"))
    return value, ""


def regex_to_pcre(
    value: Any,
    *,
    negative: bool = False,
    options: str | None = None,
    parse_literal: bool = False,
) -> str:
    """Build a PCRE pattern string.

    ``negative`` wraps the source as a negated character class ``[^...]``.
    This approximates "does not match" and is kept as the store-side
    behaviour of ``nlike``.
    """
    source, flags = split_pattern(value, parse_literal=parse_literal)
    if options:
        flags = _clean_flags(flags + options)
    if negative:
        source = f"[^{source}]"
    return f"(?{flags}){source}" if flags else source


def compile_regex(op: Operator) -> dict[str, Any] | None:
    """Compile a pattern operator. Returns None if ``op`` is not one."""
    if op.name not in REGEX_OPERATORS:
        return None
    if op.name == "like":
        return {"$regex": regex_to_pcre(op.value, options=op.options)}
    if op.name == "nlike":
        return {"$regex": regex_to_pcre(op.value, negative=True, options=op.options)}
    return {"$regex": regex_to_pcre(op.value, options=op.options, parse_literal=True)}
