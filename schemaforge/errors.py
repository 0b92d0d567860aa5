# File: schemaforge/errors.py
"""
NexaFlow SchemaForge - Exception Types
========================================
Typed failures raised by the compiler.

* ``ConfigurationError`` - a structurally invalid manifest.  Raised once,
  before any generator runs, so no partial output is ever produced.
* ``ManifestLoadError`` - a manifest file could not be read or decoded.
* ``GeneratorInvariantError`` - a generator reached a branch the IR
  guarantees is unreachable (a programming defect, never user input).

Batch validation problems are *not* exceptions; they are collected by
``schemaforge.validators`` as a list of issues.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.errors")


class SchemaForgeError(Exception):
    """Base class for every error raised by SchemaForge."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message: str = message
        self.context: Dict[str, Any] = context or {}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        ctx: str = ", ".join(f"{k}={v!r}" for k, v in sorted(self.context.items()))
        return f"{self.message} ({ctx})"


class ConfigurationError(SchemaForgeError):
    """Structurally invalid manifest or entity definition."""


class ManifestLoadError(SchemaForgeError):
    """A manifest file is missing, unreadable or not valid JSON/YAML."""


class GeneratorInvariantError(SchemaForgeError):
    """A generator met an input the IR invariants rule out."""

    @classmethod
    def unhandled(cls, what: str, value: Any) -> "GeneratorInvariantError":
        return cls(f"Unhandled {what}: {value!r}", {"what": what})


__all__: List[str] = [
    "SchemaForgeError",
    "ConfigurationError",
    "ManifestLoadError",
    "GeneratorInvariantError",
]

logger.debug("schemaforge.errors loaded - %d public symbols.", len(__all__))
