# File: schemaforge/utils.py
"""
NexaFlow SchemaForge - Utility Functions & Helpers
====================================================
Naming conventions, code-formatting helpers, file I/O and timing utilities
used throughout the compilation pipeline.

Performance strategy:
- ALL string-conversion functions are decorated with ``@lru_cache(maxsize=None)``
  so repeated calls (every generator re-derives the same names for every
  entity) are amortised to O(1) after first invocation.
- File I/O helpers use atomic rename for safety.  Generators never call them;
  only the exporter does.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
import re
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.utils")

# ---------------------------------------------------------------------------
# Pre-compiled regex patterns (compiled once at module load)
# ---------------------------------------------------------------------------

_CAMEL_TO_SNAKE_RE1: re.Pattern[str] = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_TO_SNAKE_RE2: re.Pattern[str] = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALPHANUM_RE: re.Pattern[str] = re.compile(r"[^a-zA-Z0-9]")
_MULTI_UNDERSCORE_RE: re.Pattern[str] = re.compile(r"_{2,}")
_LEADING_TRAILING_UNDERSCORE_RE: re.Pattern[str] = re.compile(r"^_+|_+$")
_SPLIT_WORDS_RE: re.Pattern[str] = re.compile(
    r"[A-Z]?[a-z]+|[A-Z]+(?=[A-Z][a-z]|\d|\b)|[A-Z]|\d+"
)

# Python keywords that cannot be used as identifiers
PYTHON_KEYWORDS: FrozenSet[str] = frozenset({
    "False", "None", "True", "and", "as", "assert", "async", "await",
    "break", "class", "continue", "def", "del", "elif", "else",
    "except", "finally", "for", "from", "global", "if", "import",
    "in", "is", "lambda", "nonlocal", "not", "or", "pass", "raise",
    "return", "try", "while", "with", "yield",
})


# ---------------------------------------------------------------------------
# Cached string transformation functions
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=None)
def to_snake_case(name: str) -> str:
    """
    Convert any string to snake_case.

    Examples:
        >>> to_snake_case("OrderItem")
        'order_item'
        >>> to_snake_case("publishedAt")
        'published_at'
        >>> to_snake_case("already_snake")
        'already_snake'
    """
    if not name:
        return ""
    s: str = _CAMEL_TO_SNAKE_RE1.sub(r"\1_\2", name)
    s = _CAMEL_TO_SNAKE_RE2.sub(r"\1_\2", s)
    s = _NON_ALPHANUM_RE.sub("_", s)
    s = _MULTI_UNDERSCORE_RE.sub("_", s)
    s = _LEADING_TRAILING_UNDERSCORE_RE.sub("", s)
    return s.lower()


@functools.lru_cache(maxsize=None)
def to_pascal_case(name: str) -> str:
    """
    Upper-case the first character and keep the rest untouched.

    Entity names are already PascalCase, so this only has to fix the
    leading character (``orderItem`` -> ``OrderItem``).
    """
    if not name:
        return ""
    return name[0].upper() + name[1:]


@functools.lru_cache(maxsize=None)
def to_camel_case(name: str) -> str:
    """
    Lower-case the first character and keep the rest untouched.

    Examples:
        >>> to_camel_case("OrderItem")
        'orderItem'
    """
    if not name:
        return ""
    return name[0].lower() + name[1:]


@functools.lru_cache(maxsize=None)
def to_kebab_case(name: str) -> str:
    """Convert any string to kebab-case (used in URL paths)."""
    if not name:
        return ""
    words: Tuple[str, ...] = _extract_words(name)
    return "-".join(words)


@functools.lru_cache(maxsize=None)
def to_title_human(name: str) -> str:
    """
    Convert identifier to human-readable title.

    Examples:
        >>> to_title_human("publishedAt")
        'Published At'
        >>> to_title_human("OrderItem")
        'Order Item'
    """
    if not name:
        return ""
    words: Tuple[str, ...] = _extract_words(name)
    return " ".join(w.capitalize() for w in words)


@functools.lru_cache(maxsize=None)
def pluralize(name: str) -> str:
    """
    Pluralise an entity name for table names and URL resources.

    Rules, in order: consonant + ``y`` -> ``ies``; ``s``/``x``/``ch``/``sh``
    -> ``es``; everything else gets a plain ``s``.  Casing of the stem is
    preserved (``Category`` -> ``Categories``).
    """
    if not name:
        return ""
    lower: str = name.lower()
    if lower.endswith("y") and len(name) > 1 and lower[-2] not in "aeiou":
        return name[:-1] + "ies"
    if lower.endswith(("s", "x", "ch", "sh")):
        return name + "es"
    return name + "s"


@functools.lru_cache(maxsize=None)
def _extract_words(name: str) -> Tuple[str, ...]:
    """
    Extract individual words from any casing style.

    Returns a tuple (hashable for LRU cache) of lowercase word strings.
    """
    cleaned: str = _NON_ALPHANUM_RE.sub(" ", name)
    words: List[str] = _SPLIT_WORDS_RE.findall(cleaned)
    return tuple(w.lower() for w in words if w)


@functools.lru_cache(maxsize=None)
def table_name(entity_name: str) -> str:
    """Storage table name for an entity: ``OrderItem`` -> ``order_items``."""
    return to_snake_case(pluralize(entity_name))


@functools.lru_cache(maxsize=None)
def column_name(field_name: str) -> str:
    """Storage column name for a field: ``publishedAt`` -> ``published_at``."""
    return to_snake_case(field_name)


@functools.lru_cache(maxsize=None)
def module_name(entity_name: str) -> str:
    """Python module name for an entity's generated files."""
    return to_snake_case(entity_name)


@functools.lru_cache(maxsize=None)
def resource_name(entity_name: str) -> str:
    """URL resource segment for an entity: ``OrderItem`` -> ``order-items``."""
    return to_kebab_case(pluralize(entity_name))


# ---------------------------------------------------------------------------
# Code formatting helpers
# ---------------------------------------------------------------------------


def py_literal(value: Any) -> str:
    """
    Render a plain Python value as source code.

    ``repr`` is exact for the JSON-compatible values manifests carry
    (str, int, float, bool, None, lists and dicts of those).
    """
    if isinstance(value, tuple):
        value = list(value)
    return repr(value)


def finish_module(lines: Sequence[str]) -> str:
    """Join emitted lines, trim trailing blank lines and end with one newline."""
    body: List[str] = list(lines)
    while body and not body[-1].strip():
        body.pop()
    return "\n".join(body) + "\n"


# ---------------------------------------------------------------------------
# File I/O helpers
# ---------------------------------------------------------------------------


def ensure_directory(path: Path) -> None:
    """Create directory (and parents) if it doesn't exist."""
    path.mkdir(parents=True, exist_ok=True)
    logger.debug("Ensured directory exists: %s", path)


def write_file(path: Path, content: str, atomic: bool = True) -> int:
    """
    Write *content* to *path*.

    When *atomic* is True, writes to a temporary file first then renames,
    so a crash never leaves a half-written file behind.

    Returns the number of bytes written.
    """
    ensure_directory(path.parent)

    encoded: bytes = content.encode("utf-8")
    byte_count: int = len(encoded)

    if atomic:
        fd: int
        tmp_path: str
        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(encoded)
            os.replace(tmp_path, str(path))
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
    else:
        path.write_bytes(encoded)

    logger.debug("Wrote %d bytes to %s", byte_count, path)
    return byte_count


def clean_directory(path: Path, keep_git: bool = True) -> None:
    """
    Remove all contents of a directory without removing the directory itself.

    If *keep_git* is True, ``.git`` and ``.gitignore`` are preserved.
    """
    if not path.exists():
        return

    for item in path.iterdir():
        if keep_git and item.name in {".git", ".gitignore"}:
            continue
        if item.is_dir():
            shutil.rmtree(item)
        else:
            item.unlink()

    logger.debug("Cleaned directory: %s (keep_git=%s)", path, keep_git)


# ---------------------------------------------------------------------------
# Checksum & metrics
# ---------------------------------------------------------------------------


def sha256_hex(content: str) -> str:
    """Return SHA-256 hex digest of a string. O(n)."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def count_lines(content: str) -> int:
    """Count the number of lines in a string. O(n)."""
    if not content:
        return 0
    return content.count("\n") + (1 if not content.endswith("\n") else 0)


# ---------------------------------------------------------------------------
# Timer context manager
# ---------------------------------------------------------------------------


class Timer:
    """
    Wall-clock timer for one pipeline stage.

    ``elapsed`` is readable after the ``with`` block even when the block
    raised; the stage is logged at INFO either way::

        with Timer("generate:storage") as t:
            files = generator.generate(manifest, ctx)
        report.add_step("storage", True, t.elapsed)
    """

    __slots__ = ("stage", "_started", "elapsed")

    def __init__(self, stage: str) -> None:
        self.stage: str = stage
        self._started: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.elapsed = time.perf_counter() - self._started
        outcome: str = "failed" if exc_type is not None else "done"
        logger.info("Stage '%s' %s in %.4fs.", self.stage, outcome, self.elapsed)

    def __repr__(self) -> str:
        return f"<Timer {self.stage}: {self.elapsed:.4f}s>"


# ---------------------------------------------------------------------------
# Import statement builder
# ---------------------------------------------------------------------------


def build_import_block(imports: Dict[str, Set[str]]) -> str:
    """
    Build a sorted, de-duplicated import block from a mapping of
    module -> set of names.

    Plain ``import x`` lines (empty name set) come first, then ``from``
    imports; relative modules (leading dot) are sorted after absolute ones.

    Example:
        >>> build_import_block({"typing": {"List", "Optional"}, "datetime": set()})
        'import datetime\\n\\nfrom typing import List, Optional'
    """
    plain: List[str] = []
    absolute: List[str] = []
    relative: List[str] = []
    for module in sorted(imports.keys()):
        names: List[str] = sorted(imports[module])
        if not names:
            plain.append(f"import {module}")
            continue
        line: str = f"from {module} import {', '.join(names)}"
        if len(line) > 99:
            body: str = "".join(f"    {name},\n" for name in names)
            line = f"from {module} import (\n{body})"
        if module.startswith("."):
            relative.append(line)
        else:
            absolute.append(line)

    blocks: List[str] = [
        "\n".join(group) for group in (plain, absolute, relative) if group
    ]
    return "\n\n".join(blocks)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "PYTHON_KEYWORDS",
    "to_snake_case",
    "to_pascal_case",
    "to_camel_case",
    "to_kebab_case",
    "to_title_human",
    "pluralize",
    "table_name",
    "column_name",
    "module_name",
    "resource_name",
    "py_literal",
    "finish_module",
    "ensure_directory",
    "write_file",
    "clean_directory",
    "sha256_hex",
    "count_lines",
    "Timer",
    "build_import_block",
]

logger.debug("schemaforge.utils loaded - %d public symbols.", len(__all__))
