"""Glob-based include/exclude matching over file identifiers.

Single source of truth for path selection used by:
- OptionsResolver (glob validation at resolution time)
- ThresholdEvaluator (glob-keyed thresholds)
- Providers (filtering collected and untested files)

Pattern syntax (picomatch style):
- ``**`` as a whole segment matches any number of directories
- ``*`` and ``?`` match within a single segment
- ``[...]`` character classes, ``[!...]`` / ``[^...]`` negated
- ``{a,b}`` alternatives
- Extglobs ``?(a|b)``, ``*(a|b)``, ``+(a|b)``, ``@(a|b)``, ``!(a|b)``

Leading dots are not special: ``*`` matches ``.eslintrc``.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Iterator
from functools import lru_cache
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from covplane.core.errors import ConfigError

if TYPE_CHECKING:
    from covplane.config.models import ResolvedCoverageOptions

__all__ = [
    "ExclusionFilter",
    "compile_glob",
    "matches_glob",
    "normalize_path",
    "validate_globs",
]

_EXTGLOB_CHARS = frozenset("?*+@!")
_EXTGLOB_CLOSE = {"?": ")?", "*": ")*", "+": ")+", "@": ")"}

# VCS internals are never walked for source files
HARDCODED_DIRS: frozenset[str] = frozenset((".git", ".svn", ".hg", ".bzr"))


def normalize_path(path: str) -> str:
    """POSIX separators, no leading ``./``."""
    norm = path.replace("\\", "/")
    while norm.startswith("./"):
        norm = norm[2:]
    return norm


def _class_end(pattern: str, start: int) -> int:
    """Index of the ``]`` closing the class opened at ``start``, or -1."""
    i = start + 1
    if i < len(pattern) and pattern[i] in "!^":
        i += 1
    if i < len(pattern) and pattern[i] == "]":
        i += 1
    while i < len(pattern):
        if pattern[i] == "\\":
            i += 2
            continue
        if pattern[i] == "]":
            return i
        i += 1
    return -1


def _group_end(pattern: str, start: int) -> int:
    """Index of the ``)`` closing the group opened at ``start``, or -1."""
    depth = 0
    i = start
    while i < len(pattern):
        c = pattern[i]
        if c == "\\":
            i += 2
            continue
        if c == "[":
            end = _class_end(pattern, i)
            if end != -1:
                i = end + 1
                continue
        if c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _segment_end(pattern: str, start: int) -> int:
    """Index of the next top-level ``/`` at or after ``start``, or ``len(pattern)``."""
    depth = 0
    i = start
    while i < len(pattern):
        c = pattern[i]
        if c == "\\":
            i += 2
            continue
        if c == "[":
            end = _class_end(pattern, i)
            if end != -1:
                i = end + 1
                continue
        if c in "({":
            depth += 1
        elif c in ")}":
            depth -= 1
        elif c == "/" and depth <= 0:
            return i
        i += 1
    return len(pattern)


def _translate(pattern: str) -> str:
    out: list[str] = []
    # Stack entries: "brace", "group", or an extglob operator char
    stack: list[str] = []
    # Regex for the rest of the segment following each open !(...)
    neg_tails: list[str] = []
    i, n = 0, len(pattern)

    while i < n:
        c = pattern[i]
        at_segment_start = i == 0 or pattern[i - 1] == "/"

        if c == "\\":
            if i + 1 >= n:
                raise ConfigError.invalid_glob(pattern, "trailing escape character")
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue

        if c in _EXTGLOB_CHARS and i + 1 < n and pattern[i + 1] == "(":
            if c == "!":
                close = _group_end(pattern, i + 1)
                tail = ""
                if close != -1 and not stack:
                    rest = pattern[close + 1 : _segment_end(pattern, close + 1)]
                    try:
                        tail = _translate(rest)
                    except ConfigError:
                        # Reported against the whole pattern when the main loop reaches it
                        tail = ""
                neg_tails.append(tail)
            stack.append(c)
            out.append("(?:(?!(?:" if c == "!" else "(?:")
            i += 2
            continue

        if c == "*":
            if i + 1 < n and pattern[i + 1] == "*":
                if at_segment_start and i + 2 < n and pattern[i + 2] == "/":
                    out.append("(?:.*/)?")
                    i += 3
                    continue
                out.append(".*")
                i += 2
                while i < n and pattern[i] == "*":
                    i += 1
                continue
            out.append("[^/]*")
            i += 1
            continue

        if c == "?":
            out.append("[^/]")
            i += 1
            continue

        if c == "[":
            end = _class_end(pattern, i)
            if end == -1:
                raise ConfigError.invalid_glob(pattern, "unterminated character class")
            body = pattern[i + 1 : end]
            negate = body[:1] in ("!", "^")
            if negate:
                body = body[1:]
            body = body.replace("\\", "\\\\").replace("^", "\\^").replace("[", "\\[")
            out.append(f"[{'^' if negate else ''}{body}]")
            i = end + 1
            continue

        if c == "{":
            stack.append("brace")
            out.append("(?:")
            i += 1
            continue

        if c == "}":
            if not stack or stack[-1] != "brace":
                raise ConfigError.invalid_glob(pattern, f"unbalanced '}}' at position {i}")
            stack.pop()
            out.append(")")
            i += 1
            continue

        if c == "," and stack and stack[-1] == "brace":
            out.append("|")
            i += 1
            continue

        if c == "(":
            stack.append("group")
            out.append("(?:")
            i += 1
            continue

        if c == ")":
            if not stack or stack[-1] == "brace":
                raise ConfigError.invalid_glob(pattern, f"unbalanced ')' at position {i}")
            op = stack.pop()
            if op == "!":
                out.append(f"){neg_tails.pop()}(?:/|$))[^/]*)")
            elif op == "group":
                out.append(")")
            else:
                out.append(_EXTGLOB_CLOSE[op])
            i += 1
            continue

        if c == "|" and stack and stack[-1] != "brace":
            out.append("|")
            i += 1
            continue

        out.append(re.escape(c))
        i += 1

    if stack:
        opener = "{" if stack[-1] == "brace" else "("
        raise ConfigError.invalid_glob(pattern, f"unclosed '{opener}'")

    return "".join(out)


@lru_cache(maxsize=1024)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a glob into an anchored regex.

    Raises:
        ConfigError: If the glob is empty or malformed.
    """
    if not pattern or not pattern.strip():
        raise ConfigError.invalid_glob(pattern, "empty pattern")
    body = _translate(normalize_path(pattern))
    try:
        return re.compile(f"^{body}$", re.DOTALL)
    except re.error as e:
        raise ConfigError.invalid_glob(pattern, str(e)) from e


def validate_globs(patterns: Iterable[str]) -> None:
    """Compile every pattern, raising ConfigError on the first bad one."""
    for pattern in patterns:
        compile_glob(pattern)


def matches_glob(path: str, pattern: str) -> bool:
    """Check if a path matches a glob pattern."""
    return compile_glob(pattern).match(normalize_path(path)) is not None


class ExclusionFilter:
    """Decides which files belong in a coverage report.

    A file is included when it:
    - lies under ``root`` (unless ``allow_external``)
    - matches any ``include`` glob (or ``include`` is unset)
    - matches no ``exclude`` glob
    - ends with one of ``extension`` (an empty list disables the check)
    """

    def __init__(
        self,
        *,
        include: Iterable[str] | None = None,
        exclude: Iterable[str] = (),
        extension: Iterable[str] = (),
        root: Path | None = None,
        allow_external: bool = False,
    ) -> None:
        self._include = None if include is None else [compile_glob(p) for p in include]
        exclude = list(exclude)
        self._exclude = [compile_glob(p) for p in exclude]
        # Directories matched by the prefix of a "dir/**" exclude hold nothing includable
        self._prune = [compile_glob(p[:-3]) for p in exclude if p.endswith("/**") and len(p) > 3]
        self._extension = tuple(extension)
        self._root = PurePosixPath(root.as_posix()) if root is not None else None
        self._allow_external = allow_external

    @classmethod
    def from_options(cls, options: ResolvedCoverageOptions, root: Path | None) -> ExclusionFilter:
        return cls(
            include=options.include,
            exclude=options.exclude,
            extension=options.extension,
            root=root,
            allow_external=options.allow_external,
        )

    def relativize(self, path: str) -> str | None:
        """Root-relative POSIX path; absolute path for allowed external files; None otherwise."""
        norm = normalize_path(path)
        if norm.startswith("file://"):
            norm = norm[len("file://") :]
        posix = PurePosixPath(norm)
        if not posix.is_absolute() or self._root is None:
            return norm
        try:
            return posix.relative_to(self._root).as_posix()
        except ValueError:
            return norm if self._allow_external else None

    def is_included(self, path: str) -> bool:
        rel = self.relativize(path)
        if rel is None:
            return False
        if self._extension and not rel.endswith(self._extension):
            return False
        if self._include is not None and not any(p.match(rel) for p in self._include):
            return False
        return not any(p.match(rel) for p in self._exclude)

    def filter(self, paths: Iterable[str]) -> Iterator[str]:
        """Yield included paths in input order."""
        return (p for p in paths if self.is_included(p))

    def iter_source_files(self) -> Iterator[str]:
        """Walk ``root`` and yield root-relative paths of included files."""
        if self._root is None:
            return
        root = Path(str(self._root))
        found: list[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            base = Path(dirpath).relative_to(root).as_posix()
            prefix = "" if base == "." else f"{base}/"
            dirnames[:] = [d for d in dirnames if not self.is_pruned(f"{prefix}{d}")]
            found.extend(
                f"{prefix}{name}" for name in filenames if self.is_included(f"{prefix}{name}")
            )
        yield from sorted(found)

    def is_pruned(self, directory: str) -> bool:
        """True for VCS internals and directories a ``dir/**`` exclude covers entirely."""
        rel = normalize_path(directory).rstrip("/")
        if rel.rsplit("/", 1)[-1] in HARDCODED_DIRS:
            return True
        return any(p.match(rel) for p in self._prune)
