# File: schemaforge/generators/package.py
"""
NexaFlow SchemaForge - Package Generator
==========================================
Emits the root ``__init__.py`` of the generated package and a
``requirements.txt`` listing the libraries the emitted modules import.  It
always runs, so even a headless, validation-only project is an importable
package.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from schemaforge.context import GeneratorContext
from schemaforge.generators.base import BANNER, Generator, active_stored_entities
from schemaforge.models import GeneratedFile, ManifestIR
from schemaforge.utils import py_literal

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generators.package")

# Distribution pins used by the emitted code.
RUNTIME_REQUIREMENTS: Dict[str, str] = {
    "pydantic": "pydantic>=2.0",
    "fastapi": "fastapi>=0.100.0",
    "uvicorn": "uvicorn>=0.20.0",
    "sqlalchemy": "sqlalchemy>=2.0.0",
    "httpx": "httpx>=0.24.0",
    "pytest": "pytest>=7.0",
}


def project_requirements(manifest: ManifestIR) -> List[str]:
    """Requirement lines for the generated project, in a stable order."""
    wanted: List[str] = ["pydantic"]
    stored: bool = bool(active_stored_entities(manifest))
    if manifest.mode.allows("api"):
        wanted.extend(["fastapi", "uvicorn"])
    if stored:
        wanted.append("sqlalchemy")
    if manifest.mode.allows("hooks") or manifest.external_entities:
        wanted.append("httpx")
    if stored and manifest.mode.allows("api"):
        wanted.append("pytest")
    return [RUNTIME_REQUIREMENTS[name] for name in wanted]


class PackageGenerator(Generator):
    name = "package"
    description = "Root package marker with project metadata"
    category = None

    def generate(self, manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]:
        lines: List[str] = [
            '"""',
            f"{ctx.title} - {manifest.mode.type.value} project for '{manifest.name}'.",
            BANNER,
            '"""',
            "",
            f"__title__ = {py_literal(ctx.title)}",
            f"__version__ = {py_literal(manifest.version)}",
            f"ENTITIES = {py_literal(manifest.entity_names)}",
        ]
        requirements: List[str] = project_requirements(manifest)
        logger.debug("Package: %d runtime requirements.", len(requirements))
        return [
            self.python_file(self.package_path(ctx, "__init__.py"), lines),
            self.text_file("requirements.txt", "\n".join(requirements)),
        ]


__all__: List[str] = ["RUNTIME_REQUIREMENTS", "project_requirements", "PackageGenerator"]

logger.debug("schemaforge.generators.package loaded - %d public symbols.", len(__all__))
