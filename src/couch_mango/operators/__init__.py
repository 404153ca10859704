"""Mango operator compilers for where-filter conditions."""

from __future__ import annotations

from .regex import REGEX_OPERATORS, compile_regex, regex_to_pcre
from .standard import compile_standard

__all__ = [
    "REGEX_OPERATORS",
    "compile_regex",
    "compile_standard",
    "regex_to_pcre",
]
