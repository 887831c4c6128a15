# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Ant-style path patterns used to classify archive entries.

Patterns use ``/`` separators. ``**`` as a whole segment crosses any number
of directories (including none), ``*`` and ``?`` stay within one segment and
``[...]`` introduces a character class (``[!...]`` negates it). A trailing
``/`` is shorthand for ``/**``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Final

from .errors import ConfigurationError

_DOUBLE_STAR: Final[str] = "**"
_IDENTIFIER_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


def validate_pattern(pattern: str) -> str:
    """Return ``pattern`` in canonical form or raise :class:`ConfigurationError`.

    Args:
        pattern: Candidate glob supplied by configuration.

    Returns:
        str: Pattern with a trailing ``/`` expanded to ``/**``.

    Raises:
        ConfigurationError: If the pattern is syntactically invalid.
    """

    if not isinstance(pattern, str) or not pattern.strip():
        raise ConfigurationError("Path pattern must be a non-empty string")
    if pattern != pattern.strip():
        raise ConfigurationError(f"Path pattern '{pattern}' has surrounding whitespace")
    if pattern.startswith("/"):
        raise ConfigurationError(f"Path pattern '{pattern}' must be relative to the archive root")
    if "\\" in pattern:
        raise ConfigurationError(f"Path pattern '{pattern}' must use '/' separators")
    if "***" in pattern:
        raise ConfigurationError(f"Path pattern '{pattern}' contains '***'")
    canonical = f"{pattern}{_DOUBLE_STAR}" if pattern.endswith("/") else pattern
    for segment in canonical.split("/"):
        if not segment:
            raise ConfigurationError(f"Path pattern '{pattern}' contains an empty segment")
        if _DOUBLE_STAR in segment and segment != _DOUBLE_STAR:
            raise ConfigurationError(f"Path pattern '{pattern}': '**' must be a whole segment")
        _check_brackets(segment, pattern)
    return canonical


def _check_brackets(segment: str, pattern: str) -> None:
    depth = 0
    body = ""
    for char in segment:
        if char == "[":
            if depth:
                raise ConfigurationError(f"Path pattern '{pattern}' nests '[' inside a class")
            depth = 1
            body = ""
        elif char == "]" and depth:
            if body in ("", "!"):
                raise ConfigurationError(f"Path pattern '{pattern}' has an empty character class")
            depth = 0
        elif depth:
            body += char
    if depth:
        raise ConfigurationError(f"Path pattern '{pattern}' has an unterminated '['")


def _translate_segment(segment: str) -> str:
    parts: list[str] = []
    index = 0
    while index < len(segment):
        char = segment[index]
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "[":
            end = segment.index("]", index + 1)
            body = segment[index + 1 : end]
            negate = body.startswith("!")
            if negate:
                body = body[1:]
            escaped = body.replace("\\", "\\\\").replace("^", "\\^")
            parts.append(f"[^/{escaped}]" if negate else f"[{escaped}]")
            index = end
        else:
            parts.append(re.escape(char))
        index += 1
    return "".join(parts)


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile an Ant-style glob into an anchored regular expression."""

    canonical = validate_pattern(pattern)
    segments = canonical.split("/")
    pieces: list[str] = []
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == _DOUBLE_STAR:
            pieces.append(".*" if last else "(?:[^/]+/)*")
            continue
        pieces.append(_translate_segment(segment))
        if not last:
            pieces.append("/")
    return re.compile("".join(pieces) + r"\Z")


def match_path(pattern: str, path: str) -> bool:
    """Return ``True`` when ``path`` matches the Ant-style ``pattern``."""

    return compile_pattern(pattern).match(path) is not None


@dataclass(frozen=True, slots=True)
class PathPredicate:
    """Include/exclude composition of Ant-style patterns.

    A path satisfies the predicate when it matches any include pattern and
    no exclude pattern. Patterns are validated on construction.
    """

    includes: tuple[str, ...]
    excludes: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.includes:
            raise ConfigurationError("A path predicate needs at least one include pattern")
        for pattern in (*self.includes, *self.excludes):
            compile_pattern(pattern)

    @classmethod
    def of(cls, includes: Iterable[str], excludes: Iterable[str] = ()) -> PathPredicate:
        """Build a predicate from arbitrary iterables of patterns."""

        return cls(tuple(includes), tuple(excludes))

    def included(self, path: str) -> bool:
        """Return ``True`` when an include pattern matches ``path``."""

        return any(compile_pattern(pattern).match(path) for pattern in self.includes)

    def excluded(self, path: str) -> bool:
        """Return ``True`` when an exclude pattern vetoes ``path``."""

        return any(compile_pattern(pattern).match(path) for pattern in self.excludes)

    def matches(self, path: str) -> bool:
        return self.included(path) and not self.excluded(path)

    def __call__(self, path: str) -> bool:
        return self.matches(path)


MATCH_ALL: Final[PathPredicate] = PathPredicate(("**",))


def validate_namespace(namespace: str) -> str:
    """Return ``namespace`` when it is a dotted identifier path.

    Raises:
        ConfigurationError: If any segment is not a valid identifier.
    """

    if not namespace or not all(_IDENTIFIER_RE.match(part) for part in namespace.split(".")):
        raise ConfigurationError(f"Invalid namespace '{namespace}'")
    return namespace


def namespace_to_path(namespace: str) -> str:
    """Convert a dotted namespace (``com.google.common``) into a path prefix."""

    return validate_namespace(namespace).replace(".", "/")


def namespace_glob(namespace: str) -> str:
    """Return the glob covering every entry below ``namespace``."""

    return f"{namespace_to_path(namespace)}/**"


def ensure_patterns(patterns: Sequence[str]) -> tuple[str, ...]:
    """Validate every entry of ``patterns`` and return them as a tuple."""

    return tuple(validate_pattern(pattern) for pattern in patterns)


__all__ = [
    "MATCH_ALL",
    "PathPredicate",
    "compile_pattern",
    "ensure_patterns",
    "match_path",
    "namespace_glob",
    "namespace_to_path",
    "validate_namespace",
    "validate_pattern",
]
