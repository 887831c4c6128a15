# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Error taxonomy shared by every bundling stage.

Every failure in the bundling pipeline is fatal and non-retryable: the causes
are configuration or toolchain defects, so running again without operator
intervention reproduces the same failure. :class:`CleanupError` is the one
exception; it is recorded on the pipeline result instead of being raised.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path


class ShadejarError(RuntimeError):
    """Base class for errors raised while producing a bundled archive."""


class ConfigurationError(ShadejarError):
    """Raised when a predicate, rule, or configuration value is invalid."""


class SourceMissingError(ShadejarError):
    """Raised when a declared input archive or directory cannot be located."""

    def __init__(self, missing: Sequence[Path]) -> None:
        """Record the missing inputs.

        Args:
            missing: Input paths that do not exist on disk.
        """

        self.missing = tuple(missing)
        listing = ", ".join(str(path) for path in self.missing)
        super().__init__(f"Declared source(s) not found: {listing}")


class InvalidSourceError(ShadejarError):
    """Raised when a declared input exists but is not a readable archive."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Source {path} is not a valid archive: {reason}")
        self.path = path
        self.reason = reason


class RelocationError(ShadejarError):
    """Raised when the external code rewriter rejects its input."""

    def __init__(self, message: str, *, diagnostic: str = "") -> None:
        super().__init__(message)
        self.diagnostic = diagnostic


class ShrinkFailedError(ShadejarError):
    """Raised when the shrinker rejects its input or breaks a keep rule.

    The ``diagnostic`` attribute holds the tool's own output verbatim so the
    operator sees exactly what the shrinker reported.
    """

    def __init__(self, message: str, *, diagnostic: str = "", returncode: int | None = None) -> None:
        super().__init__(message)
        self.diagnostic = diagnostic
        self.returncode = returncode


class ShrinkTimeoutError(ShadejarError):
    """Raised when the shrinker exceeds the caller-supplied timeout."""

    def __init__(self, timeout: float, *, diagnostic: str = "") -> None:
        super().__init__(f"Shrinker did not finish within {timeout:.1f}s")
        self.timeout = timeout
        self.diagnostic = diagnostic


class MergeConflictError(ShadejarError):
    """Raised under the strict duplicate policy when two sources disagree."""

    def __init__(self, path: str, first: str, second: str) -> None:
        super().__init__(f"Conflicting content for '{path}' from '{first}' and '{second}'")
        self.path = path
        self.first = first
        self.second = second


class CleanupError(ShadejarError):
    """Describe an intermediate artifact that could not be removed."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Could not remove intermediate {path}: {reason}")
        self.path = path
        self.reason = reason


__all__ = [
    "CleanupError",
    "ConfigurationError",
    "InvalidSourceError",
    "MergeConflictError",
    "RelocationError",
    "ShadejarError",
    "ShrinkFailedError",
    "ShrinkTimeoutError",
    "SourceMissingError",
]
