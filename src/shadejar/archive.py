# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""In-memory archive model with deterministic zip persistence."""

from __future__ import annotations

import hashlib
import logging
import zipfile
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path
from typing import Final

from .errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

CODE_SUFFIX: Final[str] = ".class"
METADATA_PREFIX: Final[str] = "META-INF/"
VERSIONS_ROOT: Final[str] = "META-INF/versions/"
MANIFEST_PATH: Final[str] = "META-INF/MANIFEST.MF"

# 1980-01-01 is the earliest timestamp the zip format can store.
_FIXED_TIMESTAMP: Final[tuple[int, int, int, int, int, int]] = (1980, 1, 1, 0, 0, 0)
_FILE_MODE: Final[int] = 0o644 << 16


class EntryKind(StrEnum):
    """Distinguish compiled code from resources and archive metadata."""

    CODE = "code"
    RESOURCE = "resource"
    METADATA = "metadata"


def classify_path(path: str) -> EntryKind:
    """Return the :class:`EntryKind` implied by ``path``."""

    if path.endswith(CODE_SUFFIX):
        return EntryKind.CODE
    if path.startswith(METADATA_PREFIX):
        return EntryKind.METADATA
    return EntryKind.RESOURCE


def validate_entry_path(path: str) -> str:
    """Return ``path`` when it is a valid relative archive member name.

    Raises:
        ValueError: If the path is empty, absolute, a directory, or escapes
            the archive root.
    """

    if not path or path.startswith("/") or path.endswith("/") or "\\" in path:
        raise ValueError(f"Invalid archive entry path: {path!r}")
    if any(part in ("", ".", "..") for part in path.split("/")):
        raise ValueError(f"Invalid archive entry path: {path!r}")
    return path


@dataclass(frozen=True, slots=True)
class Entry:
    """Single archive member identified by its path."""

    path: str
    data: bytes
    kind: EntryKind

    @classmethod
    def create(cls, path: str, data: bytes) -> Entry:
        """Build an entry whose kind is derived from ``path``."""

        return cls(path=validate_entry_path(path), data=data, kind=classify_path(path))

    @property
    def size(self) -> int:
        return len(self.data)

    def with_path(self, path: str) -> Entry:
        """Return a copy of the entry moved to ``path``."""

        return replace(self, path=validate_entry_path(path), kind=classify_path(path))

    def with_data(self, data: bytes) -> Entry:
        return replace(self, data=data)


class Archive:
    """Ordered collection of entries with unique paths."""

    def __init__(self, entries: Iterable[Entry] = ()) -> None:
        self._entries: dict[str, Entry] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: Entry) -> None:
        """Append ``entry``.

        Raises:
            ValueError: If an entry already exists at the same path.
        """

        if entry.path in self._entries:
            raise ValueError(f"Duplicate archive entry: {entry.path}")
        self._entries[entry.path] = entry

    def put(self, path: str, data: bytes) -> Entry:
        """Create and append an entry for ``path``."""

        entry = Entry.create(path, data)
        self.add(entry)
        return entry

    def get(self, path: str) -> Entry | None:
        return self._entries.get(path)

    def __getitem__(self, path: str) -> Entry:
        return self._entries[path]

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[Entry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(entries={len(self)})"

    @property
    def paths(self) -> list[str]:
        return list(self._entries)

    @property
    def total_size(self) -> int:
        return sum(entry.size for entry in self._entries.values())

    def select(self, predicate: Callable[[str], bool]) -> list[Entry]:
        """Return entries whose path satisfies ``predicate`` in archive order."""

        return [entry for entry in self._entries.values() if predicate(entry.path)]

    def digest(self) -> str:
        """Return a SHA-256 digest over entry order, paths, and content."""

        hasher = hashlib.sha256()
        for entry in self._entries.values():
            hasher.update(entry.path.encode("utf-8"))
            hasher.update(b"\0")
            hasher.update(hashlib.sha256(entry.data).digest())
        return hasher.hexdigest()

    @classmethod
    def read(cls, path: Path) -> Archive:
        """Load a zip archive from ``path`` preserving member order.

        Directory members are skipped. When the zip carries the same member
        name twice the first occurrence is kept.
        """

        archive = cls()
        with zipfile.ZipFile(path) as handle:
            for info in handle.infolist():
                if info.is_dir():
                    continue
                if info.filename in archive:
                    LOGGER.warning("Ignoring duplicate member %s in %s", info.filename, path)
                    continue
                archive.put(info.filename, handle.read(info))
        return archive

    def write(self, path: Path) -> Path:
        """Persist the archive to ``path`` deterministically.

        Timestamps and permissions are fixed so identical archives produce
        byte-identical files.
        """

        path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as handle:
            for entry in self._entries.values():
                info = zipfile.ZipInfo(entry.path, date_time=_FIXED_TIMESTAMP)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = _FILE_MODE
                handle.writestr(info, entry.data)
        return path


@dataclass(frozen=True, slots=True)
class VersionedLayout:
    """Map runtime version tags onto ``META-INF/versions/<tag>/`` prefixes."""

    root: str = VERSIONS_ROOT

    def prefix_for(self, tag: str) -> str:
        """Return the directory prefix holding overrides for ``tag``.

        Raises:
            ConfigurationError: If ``tag`` is not a positive integer version.
        """

        if not tag.isdigit() or int(tag) <= 0:
            raise ConfigurationError(f"Invalid runtime version tag '{tag}'")
        return f"{self.root}{tag}/"

    def is_versioned(self, path: str) -> bool:
        return path.startswith(self.root)


DEFAULT_LAYOUT: Final[VersionedLayout] = VersionedLayout()


__all__ = [
    "Archive",
    "DEFAULT_LAYOUT",
    "Entry",
    "EntryKind",
    "MANIFEST_PATH",
    "VersionedLayout",
    "classify_path",
    "validate_entry_path",
]
