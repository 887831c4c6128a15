# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Adapter around an external whole-program shrinker.

The shrinker is opaque. The adapter materialises the partition it receives,
translates the keep rules into ProGuard syntax, runs the tool, and checks
that every kept entry survived at its original path.
"""

from __future__ import annotations

import logging
import os
import zipfile
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Protocol, runtime_checkable

from .archive import Archive, Entry, EntryKind
from .errors import ConfigurationError, ShrinkFailedError, ShrinkTimeoutError
from .partition import Partition
from .patterns import compile_pattern, namespace_to_path
from .process import SubprocessExecutionError, SubprocessTimeoutError, run_command

LOGGER = logging.getLogger(__name__)

KEEP_ATTRIBUTES: Final[str] = "*Annotation*,Signature,InnerClasses,EnclosingMethod"
R8_MAIN_CLASS: Final[str] = "com.android.tools.r8.R8"


@dataclass(frozen=True, slots=True)
class ShrinkMode:
    """Global shrink flags; both stay off for size-only shrinking."""

    optimize: bool = False
    obfuscate: bool = False


def keep_pattern_glob(pattern: str) -> str:
    """Translate a namespace keep pattern into an entry glob.

    ``a.b.*`` keeps the classes of package ``a.b``, ``a.b.**`` keeps the
    whole subtree and ``a.b.C`` keeps a single class.

    Raises:
        ConfigurationError: If the pattern is not a dotted namespace with an
            optional trailing wildcard.
    """

    if pattern.endswith(".**"):
        return f"{namespace_to_path(pattern[:-3])}/**/*.class"
    if pattern.endswith(".*"):
        return f"{namespace_to_path(pattern[:-2])}/*.class"
    if "*" in pattern:
        raise ConfigurationError(f"Keep pattern '{pattern}' may only use a trailing '.*' or '.**'")
    return f"{namespace_to_path(pattern)}.class"


@dataclass(frozen=True, slots=True)
class KeepRuleSet:
    """Namespace roots that must survive shrinking unchanged."""

    patterns: tuple[str, ...]
    mode: ShrinkMode = field(default_factory=ShrinkMode)
    globs: tuple[str, ...] = field(init=False, default=(), repr=False, compare=False)

    def __post_init__(self) -> None:
        globs = tuple(keep_pattern_glob(pattern) for pattern in self.patterns)
        for glob in globs:
            compile_pattern(glob)
        object.__setattr__(self, "globs", globs)

    @classmethod
    def of(cls, patterns: Iterable[str], mode: ShrinkMode | None = None) -> KeepRuleSet:
        return cls(patterns=tuple(patterns), mode=mode or ShrinkMode())

    def keeps(self, path: str) -> bool:
        """Return ``True`` when the entry at ``path`` is protected."""

        return any(compile_pattern(glob).match(path) for glob in self.globs)

    def to_proguard(self) -> str:
        """Render the rule set in ProGuard/R8 configuration syntax."""

        lines = [f"-keep class {pattern} {{ *; }}" for pattern in self.patterns]
        lines.append("")
        if not self.mode.optimize:
            lines.append("-dontoptimize")
        if not self.mode.obfuscate:
            lines.append("-dontobfuscate")
        lines.append("-dontwarn **")
        lines.append(f"-keepattributes {KEEP_ATTRIBUTES}")
        return "\n".join(lines) + "\n"


@dataclass(frozen=True, slots=True)
class ShrinkInvocation:
    """Files handed to a :class:`Shrinker` for one run."""

    input_path: Path
    output_path: Path
    rules_path: Path
    usage_path: Path
    timeout: float | None = None


@runtime_checkable
class Shrinker(Protocol):
    """Capability reducing an archive under a set of keep rules."""

    def run(self, invocation: ShrinkInvocation) -> None:
        """Shrink ``invocation.input_path`` into ``invocation.output_path``.

        Raises:
            ShrinkFailedError: The tool rejected its input or rules.
            ShrinkTimeoutError: The tool exceeded ``invocation.timeout``.
        """
        ...


class CommandShrinker:
    """Run an external shrinker command.

    The template may reference ``{input}``, ``{output}``, ``{rules}`` and
    ``{usage}``.
    """

    def __init__(self, command: Sequence[str]) -> None:
        if not command:
            raise ConfigurationError("Shrinker command must not be empty")
        self.command = tuple(command)

    def render(self, invocation: ShrinkInvocation) -> list[str]:
        return [
            part.format(
                input=invocation.input_path,
                output=invocation.output_path,
                rules=invocation.rules_path,
                usage=invocation.usage_path,
            )
            for part in self.command
        ]

    def run(self, invocation: ShrinkInvocation) -> None:
        args = self.render(invocation)
        LOGGER.debug("Running shrinker: %s", " ".join(args))
        try:
            run_command(args, timeout=invocation.timeout)
        except FileNotFoundError as exc:
            raise ConfigurationError(str(exc)) from exc
        except SubprocessTimeoutError as exc:
            raise ShrinkTimeoutError(exc.timeout, diagnostic=exc.stderr or exc.stdout) from exc
        except SubprocessExecutionError as exc:
            raise ShrinkFailedError(
                f"Shrinker exited with status {exc.returncode}",
                diagnostic=exc.stderr or exc.stdout or "",
                returncode=exc.returncode,
            ) from exc


def r8_command(r8_jar: Path, *, java: str = "java", jdk_home: Path | None = None) -> list[str]:
    """Return the :class:`CommandShrinker` template running R8 on class files.

    ``jdk_home`` defaults to ``$JAVA_HOME``; its ``jmods`` directory is passed
    as the library path when available.
    """

    command = [java, "-cp", str(r8_jar), R8_MAIN_CLASS, "--release", "--classfile", "--no-desugaring"]
    home = jdk_home or (Path(os.environ["JAVA_HOME"]) if os.environ.get("JAVA_HOME") else None)
    if home is not None:
        command.extend(["--lib", str(home / "jmods")])
    command.extend(
        ["--pg-conf", "{rules}", "--output", "{output}", "--pg-map-output", "{usage}", "{input}"],
    )
    return command


@dataclass(slots=True)
class ShrinkResult:
    """Shrunk partition plus the files the run produced."""

    partition: Partition
    input_path: Path
    output_path: Path
    usage_path: Path | None
    usage_report: str = ""
    removed: list[str] = field(default_factory=list)

    @property
    def artifacts(self) -> list[Path]:
        """Return every file written for this run."""

        paths = [self.input_path, self.output_path]
        if self.usage_path is not None:
            paths.append(self.usage_path)
        return paths


def verify_kept_entries(
    original: Archive,
    shrunk: Archive,
    keep_rules: KeepRuleSet,
    *,
    verify_content: bool = False,
) -> list[str]:
    """Check that every kept entry survived shrinking at the same path.

    Args:
        original: Partition handed to the shrinker.
        shrunk: Archive produced by the shrinker.
        keep_rules: Rules describing protected entries.
        verify_content: Also require kept entries to be byte-identical.

    Returns:
        list[str]: Paths of the kept entries that were verified.

    Raises:
        ShrinkFailedError: If a kept entry is missing or altered.
    """

    kept = [entry for entry in original if entry.kind is EntryKind.CODE and keep_rules.keeps(entry.path)]
    if len(shrunk) < len(kept):
        raise ShrinkFailedError(
            f"Shrinker output holds {len(shrunk)} entries but {len(kept)} are protected by keep rules",
        )
    missing = [entry.path for entry in kept if entry.path not in shrunk]
    if missing:
        raise ShrinkFailedError(
            "Shrinker removed or renamed kept entries",
            diagnostic="\n".join(missing),
        )
    if verify_content:
        altered = [entry.path for entry in kept if shrunk[entry.path].data != entry.data]
        if altered:
            raise ShrinkFailedError("Shrinker altered kept entries", diagnostic="\n".join(altered))
    return [entry.path for entry in kept]


def shrink(
    partition: Partition,
    keep_rules: KeepRuleSet,
    *,
    shrinker: Shrinker,
    workdir: Path,
    roots: Iterable[Entry] = (),
    timeout: float | None = None,
    verify_content: bool = False,
) -> ShrinkResult:
    """Shrink ``partition`` with the external ``shrinker``.

    ``roots`` are entries handed to the tool alongside the partition so that
    reachability is computed from the code that actually uses the partition.
    They are expected to be protected by ``keep_rules`` and never appear in
    the returned partition.

    Args:
        partition: Entries eligible for shrinking.
        keep_rules: Keep patterns and shrink mode flags.
        shrinker: External capability performing the reduction.
        workdir: Run-scoped directory receiving the tool's files.
        roots: Extra program entries anchoring reachability.
        timeout: Optional limit, in seconds, for the tool invocation.
        verify_content: Byte-compare kept entries after shrinking.

    Returns:
        ShrinkResult: The shrunk partition and the files produced.

    Raises:
        ShrinkFailedError: The tool failed or violated a keep rule.
        ShrinkTimeoutError: The tool exceeded ``timeout``.
    """

    program = Archive(partition)
    root_paths: set[str] = set()
    for entry in roots:
        if entry.path not in program:
            program.add(entry)
            root_paths.add(entry.path)

    invocation = ShrinkInvocation(
        input_path=program.write(workdir / f"{partition.name}-input.jar"),
        output_path=workdir / f"{partition.name}-shrunk.jar",
        rules_path=workdir / "shrink-rules.pro",
        usage_path=workdir / "usage.txt",
        timeout=timeout,
    )
    invocation.rules_path.write_text(keep_rules.to_proguard(), encoding="utf-8")
    LOGGER.info(
        "Shrinking %d entries from partition %s (%d root entries)",
        len(partition),
        partition.name,
        len(root_paths),
    )
    shrinker.run(invocation)
    if not invocation.output_path.is_file():
        raise ShrinkFailedError(f"Shrinker did not produce {invocation.output_path}")

    try:
        produced = Archive.read(invocation.output_path)
    except zipfile.BadZipFile as exc:
        raise ShrinkFailedError(
            f"Shrinker output {invocation.output_path} is not a valid archive",
            diagnostic=str(exc),
        ) from exc
    verify_kept_entries(program, produced, keep_rules, verify_content=verify_content)
    added = [path for path in produced.paths if path not in program]
    if added:
        LOGGER.warning("Shrinker introduced %d entries not present in its input", len(added))
    output = Partition(partition.name, (entry for entry in produced if entry.path not in root_paths))

    usage_path = invocation.usage_path if invocation.usage_path.is_file() else None
    return ShrinkResult(
        partition=output,
        input_path=invocation.input_path,
        output_path=invocation.output_path,
        usage_path=usage_path,
        usage_report=usage_path.read_text(encoding="utf-8", errors="replace") if usage_path else "",
        removed=[path for path in partition.paths if path not in output],
    )


__all__ = [
    "CommandShrinker",
    "KeepRuleSet",
    "ShrinkInvocation",
    "ShrinkMode",
    "ShrinkResult",
    "Shrinker",
    "keep_pattern_glob",
    "r8_command",
    "shrink",
    "verify_kept_entries",
]
