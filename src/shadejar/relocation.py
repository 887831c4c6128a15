# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Relocation rules and the engine that builds the combined archive.

Class-file rewriting itself is delegated to an external :class:`CodeRewriter`
(for example a jarjar command). This module owns everything around it:
merging the library and dependency inputs, dropping excluded descriptors,
merging service-provider files, laying out multi-release overrides, and
relocating resource paths and descriptor contents consistently with the
rewritten code.
"""

from __future__ import annotations

import logging
import re
import zipfile
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Protocol, runtime_checkable

from .archive import DEFAULT_LAYOUT, MANIFEST_PATH, Archive, Entry, EntryKind, VersionedLayout
from .errors import ConfigurationError, InvalidSourceError, RelocationError
from .patterns import PathPredicate, ensure_patterns, namespace_to_path, validate_namespace
from .process import SubprocessExecutionError, SubprocessTimeoutError, run_command

LOGGER = logging.getLogger(__name__)

SERVICES_PREFIX: Final[str] = "META-INF/services/"
MULTI_RELEASE_ATTRIBUTE: Final[str] = "Multi-Release"
_NAME_CHARS: Final[str] = "A-Za-z0-9_$"


@dataclass(frozen=True, slots=True)
class RelocationRule:
    """Rewrite ``source`` namespace references to ``target``."""

    source: str
    target: str

    def __post_init__(self) -> None:
        validate_namespace(self.source)
        validate_namespace(self.target)
        if self.source == self.target:
            raise ConfigurationError(f"Relocation rule for '{self.source}' maps onto itself")

    @property
    def source_path(self) -> str:
        return namespace_to_path(self.source)

    @property
    def target_path(self) -> str:
        return namespace_to_path(self.target)


@dataclass(frozen=True, slots=True)
class RelocationMap:
    """Ordered relocation rules; the first matching rule wins.

    The same rules apply to entry paths (slash form) and to references
    inside text descriptors (dot and slash form) so cross references stay
    resolvable. Paths under the versioned layout are never relocated.
    """

    rules: tuple[RelocationRule, ...] = ()
    layout: VersionedLayout = DEFAULT_LAYOUT
    _pattern: re.Pattern[str] | None = field(init=False, default=None, repr=False, compare=False)
    _replacements: dict[str, str] = field(init=False, default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        alternatives: list[str] = []
        replacements: dict[str, str] = {}
        for rule in self.rules:
            for source, target in ((rule.source, rule.target), (rule.source_path, rule.target_path)):
                if source in replacements:
                    continue
                replacements[source] = target
                alternatives.append(re.escape(source))
        if alternatives:
            joined = "|".join(alternatives)
            pattern = re.compile(f"(?<![{_NAME_CHARS}./])(?:{joined})(?![{_NAME_CHARS}])")
            object.__setattr__(self, "_pattern", pattern)
        object.__setattr__(self, "_replacements", replacements)

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> RelocationMap:
        return cls(rules=tuple(RelocationRule(source, target) for source, target in pairs))

    def __bool__(self) -> bool:
        return bool(self.rules)

    def relocate_name(self, name: str) -> str:
        """Relocate a dotted class or package name."""

        for rule in self.rules:
            if name == rule.source or name.startswith(f"{rule.source}."):
                return f"{rule.target}{name[len(rule.source):]}"
        return name

    def relocate_path(self, path: str) -> str:
        """Relocate an entry path unless it belongs to the versioned layout."""

        if self.layout.is_versioned(path):
            return path
        for rule in self.rules:
            prefix = f"{rule.source_path}/"
            if path.startswith(prefix):
                return f"{rule.target_path}/{path[len(prefix):]}"
        return path

    def relocate_text(self, text: str) -> str:
        """Rewrite namespace references found inside ``text``."""

        if self._pattern is None:
            return text
        return self._pattern.sub(lambda match: self._replacements[match.group(0)], text)

    def jarjar_rules(self) -> str:
        """Render the rules in jarjar ``rule`` syntax."""

        lines = [f"rule {rule.source}.** {rule.target}.@1" for rule in self.rules]
        return "\n".join(lines) + ("\n" if lines else "")


@dataclass(frozen=True, slots=True)
class RelocationRequest:
    """Inputs of :meth:`RelocationEngine.combine`.

    ``sources`` lists the library first; earlier sources win when two of
    them carry the same path.
    """

    sources: tuple[Path, ...]
    relocation: RelocationMap = field(default_factory=RelocationMap)
    excludes: tuple[str, ...] = ()
    versioned: Mapping[str, Path] = field(default_factory=dict)
    merge_service_files: bool = True

    def __post_init__(self) -> None:
        ensure_patterns(self.excludes)


@runtime_checkable
class RelocationEngine(Protocol):
    """Capability merging inputs into one relocated archive."""

    def combine(self, request: RelocationRequest, workdir: Path) -> Archive:
        """Return the combined archive described by ``request``.

        Args:
            request: Inputs, relocation rules, and exclusions.
            workdir: Run-scoped directory for any scratch files.
        """
        ...


@runtime_checkable
class CodeRewriter(Protocol):
    """Capability rewriting namespace references inside compiled code."""

    def rewrite(self, source: Path, destination: Path, relocation: RelocationMap, workdir: Path) -> None:
        """Write a relocated copy of the ``source`` archive to ``destination``."""
        ...


class CommandCodeRewriter:
    """Run an external class rewriter such as jarjar.

    The command template may reference ``{input}``, ``{output}`` and
    ``{rules}``; the rules file uses jarjar syntax.
    """

    def __init__(self, command: Sequence[str], *, timeout: float | None = None) -> None:
        if not command:
            raise ConfigurationError("Code rewriter command must not be empty")
        self._command = tuple(command)
        self._timeout = timeout

    def rewrite(self, source: Path, destination: Path, relocation: RelocationMap, workdir: Path) -> None:
        rules_path = workdir / "relocation-rules.txt"
        rules_path.write_text(relocation.jarjar_rules(), encoding="utf-8")
        args = [part.format(input=source, output=destination, rules=rules_path) for part in self._command]
        LOGGER.debug("Running code rewriter: %s", " ".join(args))
        try:
            run_command(args, timeout=self._timeout)
        except FileNotFoundError as exc:
            raise ConfigurationError(str(exc)) from exc
        except SubprocessExecutionError as exc:
            diagnostic = "\n".join(part for part in (exc.stdout, exc.stderr) if part)
            raise RelocationError(
                f"Code rewriter exited with status {exc.returncode}",
                diagnostic=diagnostic,
            ) from exc
        except SubprocessTimeoutError as exc:
            raise RelocationError(str(exc), diagnostic=exc.stderr) from exc
        if not destination.is_file():
            raise RelocationError(f"Code rewriter did not produce {destination}")


def load_source(path: Path) -> Archive:
    """Load ``path`` as an archive, reading directories as class trees.

    Raises:
        InvalidSourceError: If ``path`` is a file but not a zip archive.
    """

    if path.is_dir():
        return Archive(
            Entry.create(file.relative_to(path).as_posix(), file.read_bytes())
            for file in sorted(path.rglob("*"))
            if file.is_file()
        )
    try:
        return Archive.read(path)
    except zipfile.BadZipFile as exc:
        raise InvalidSourceError(path, str(exc)) from exc


def parse_manifest(text: str) -> dict[str, str]:
    """Parse the main section of a jar manifest into ordered attributes."""

    attributes: dict[str, str] = {}
    last_key: str | None = None
    for line in text.splitlines():
        if not line:
            break
        if line.startswith(" ") and last_key is not None:
            attributes[last_key] += line[1:]
            continue
        key, sep, value = line.partition(":")
        if not sep:
            continue
        last_key = key.strip()
        attributes[last_key] = value.strip()
    return attributes


def render_manifest(attributes: Mapping[str, str]) -> bytes:
    """Render manifest attributes using CRLF line endings."""

    lines = [f"{key}: {value}" for key, value in attributes.items()]
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")


class ShadeEngine:
    """Native orchestration of the relocation capability."""

    def __init__(self, rewriter: CodeRewriter | None = None, *, layout: VersionedLayout = DEFAULT_LAYOUT) -> None:
        self._rewriter = rewriter
        self._layout = layout

    def combine(self, request: RelocationRequest, workdir: Path) -> Archive:
        """Merge, filter, and relocate the request inputs.

        Raises:
            ConfigurationError: If relocation rules exist but no code
                rewriter was supplied.
            InvalidSourceError: If an input file is not a zip archive.
            RelocationError: If the code rewriter fails.
        """

        if request.relocation and self._rewriter is None:
            raise ConfigurationError("Relocation rules require a code rewriter")
        excluded = PathPredicate.of(request.excludes) if request.excludes else None
        merged = Archive()
        services: dict[str, list[str]] = {}
        manifest: dict[str, str] = {"Manifest-Version": "1.0"}
        manifest_seen = False

        for source in request.sources:
            for entry in load_source(source):
                if excluded is not None and excluded.matches(entry.path):
                    LOGGER.debug("Excluding %s from %s", entry.path, source)
                    continue
                if entry.path == MANIFEST_PATH:
                    if not manifest_seen:
                        manifest.update(parse_manifest(entry.data.decode("utf-8", errors="replace")))
                        manifest_seen = True
                    continue
                if request.merge_service_files and entry.path.startswith(SERVICES_PREFIX):
                    _collect_service_lines(services.setdefault(entry.path, []), entry.data)
                    continue
                if entry.path in merged:
                    LOGGER.debug("Keeping first copy of %s; ignoring %s", entry.path, source)
                    continue
                merged.add(entry)

        for path, lines in services.items():
            merged.add(Entry.create(path, ("\n".join(lines) + "\n").encode("utf-8")))

        versioned = self._versioned_entries(request)
        if versioned:
            manifest[MULTI_RELEASE_ATTRIBUTE] = "true"

        relocated = merged
        if request.relocation and self._rewriter is not None:
            relocated = self._relocate(merged, self._rewriter, request.relocation, workdir)
        combined = Archive([Entry.create(MANIFEST_PATH, render_manifest(manifest))])
        for entry in [*relocated, *versioned]:
            if entry.path in combined:
                LOGGER.debug("Relocated entry %s collides with an earlier entry; keeping first", entry.path)
                continue
            combined.add(entry)
        return combined

    def _versioned_entries(self, request: RelocationRequest) -> list[Entry]:
        entries: list[Entry] = []
        excluded = PathPredicate.of(request.excludes) if request.excludes else None
        for tag in sorted(request.versioned, key=int):
            prefix = self._layout.prefix_for(tag)
            for entry in load_source(request.versioned[tag]):
                path = f"{prefix}{entry.path}"
                if excluded is not None and excluded.matches(path):
                    continue
                entries.append(entry.with_path(path))
        return entries

    @staticmethod
    def _relocate(merged: Archive, rewriter: CodeRewriter, relocation: RelocationMap, workdir: Path) -> Archive:
        before = merged.write(workdir / "pre-relocation.jar")
        after = workdir / "relocated-code.jar"
        rewriter.rewrite(before, after, relocation, workdir)
        try:
            rewritten = Archive.read(after)
        except zipfile.BadZipFile as exc:
            raise RelocationError(f"Code rewriter output {after} is not a valid archive", diagnostic=str(exc)) from exc
        result = Archive()
        for entry in rewritten:
            if entry.kind is not EntryKind.CODE:
                entry = entry.with_path(relocation.relocate_path(entry.path))
                if entry.path.startswith(SERVICES_PREFIX):
                    entry = _relocate_service(entry, relocation)
            if entry.path in result:
                LOGGER.debug("Relocated entry %s already present; keeping first", entry.path)
                continue
            result.add(entry)
        return result


def _collect_service_lines(lines: list[str], data: bytes) -> None:
    for raw in data.decode("utf-8", errors="replace").splitlines():
        line = raw.split("#", 1)[0].strip()
        if line and line not in lines:
            lines.append(line)


def _relocate_service(entry: Entry, relocation: RelocationMap) -> Entry:
    interface = entry.path[len(SERVICES_PREFIX) :]
    path = f"{SERVICES_PREFIX}{relocation.relocate_name(interface)}"
    text = relocation.relocate_text(entry.data.decode("utf-8", errors="replace"))
    return entry.with_path(path).with_data(text.encode("utf-8"))


__all__ = [
    "CodeRewriter",
    "CommandCodeRewriter",
    "RelocationEngine",
    "RelocationMap",
    "RelocationRequest",
    "RelocationRule",
    "ShadeEngine",
    "load_source",
    "parse_manifest",
    "render_manifest",
]
