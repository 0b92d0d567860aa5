# File: schemaforge/generators/base.py
"""
NexaFlow SchemaForge - Generator Contract
===========================================
Every generator is a small stateless object with a ``name``, a
``description``, a mode ``category`` and one method::

    generate(manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]

**Purity contract:**
    - Generators never touch the filesystem; the exporter writes their output.
    - Output depends only on ``(manifest, ctx)``: identical input produces
      byte-identical files.
    - A generator whose preconditions are not met returns ``[]``.

**Emission contract:**
    - All source assembly uses ``List[str]`` + ``"\\n".join()``.
    - Emitted Python targets PEP-8 with a 99-character line length.
"""

from __future__ import annotations

import abc
import logging
from typing import List, Optional, Sequence

from schemaforge.context import GeneratorContext
from schemaforge.models import EntityIR, GeneratedFile, ManifestIR
from schemaforge.utils import finish_module

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generators.base")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

INDENT: str = "    "  # 4-space indent
INDENT2: str = INDENT * 2
INDENT3: str = INDENT * 3
INDENT4: str = INDENT * 4

BANNER: str = "Auto-generated by NexaFlow SchemaForge. Do not edit by hand."


class Generator(abc.ABC):
    """Abstract base for all code generators."""

    name: str = "generator"
    description: str = ""
    # Mode category gating this generator, or None when it is mode-agnostic.
    category: Optional[str] = None

    @abc.abstractmethod
    def generate(self, manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]:
        """Produce the generator's files for *manifest*."""

    # -- Helpers shared by the concrete generators -------------------------

    @staticmethod
    def package_path(ctx: GeneratorContext, *parts: str) -> str:
        """Path of a file inside the generated package."""
        return "/".join((ctx.config.package_name,) + parts)

    @staticmethod
    def python_file(path: str, lines: Sequence[str]) -> GeneratedFile:
        return GeneratedFile(path=path, content=finish_module(lines))

    @staticmethod
    def text_file(path: str, content: str) -> GeneratedFile:
        if not content.endswith("\n"):
            content += "\n"
        return GeneratedFile(path=path, content=content)

    @staticmethod
    def module_header(title: str, *details: str) -> List[str]:
        """Docstring block plus the ``__future__`` import every module opens with."""
        lines: List[str] = ['"""', title]
        lines.extend(details)
        lines.extend([BANNER, '"""', "", "from __future__ import annotations", ""])
        return lines

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


def active_stored_entities(manifest: ManifestIR) -> List[EntityIR]:
    """Entities with generated storage models: a database and the ``schema`` category."""
    if not manifest.mode.allows("schema"):
        return []
    return manifest.stored_entities


def translated_messages(manifest: ManifestIR) -> bool:
    """Validation messages go through ``translate()`` for multilingual projects."""
    return manifest.i18n.is_multilingual


__all__: List[str] = [
    "INDENT",
    "INDENT2",
    "INDENT3",
    "INDENT4",
    "BANNER",
    "Generator",
    "active_stored_entities",
    "translated_messages",
]

logger.debug("schemaforge.generators.base loaded - %d public symbols.", len(__all__))
