# File: schemaforge/__init__.py
"""
NexaFlow SchemaForge - Declarative Schema to Code Compiler
============================================================

Describe entities once, through chainable builders or a JSON/YAML manifest,
and compile them into a FastAPI + SQLAlchemy 2.0 + Pydantic v2 project:
storage models, validation schemas, routers with a filter / search / sort /
pagination DSL, a typed client, lifecycle hook stubs, a pytest suite, an
OpenAPI document, seed data and translations.

Architecture overview::

    ┌──────────────┐     ┌────────────────┐     ┌──────────────────┐
    │  CLI / Entry │────▶│  CodeGenerator │────▶│  StackProfile    │
    │   (cli.py)   │     │ (generator.py) │     │  (registry.py)   │
    └──────────────┘     └───────┬────────┘     └────────┬─────────┘
                                 │                       ▼
                    ┌────────────┼────────────┐   ┌──────────────┐
                    ▼            ▼            ▼   │  generators/ │
             ┌──────────┐ ┌───────────┐ ┌───────────┐└──────────────┘
             │validators│ │ manifest  │ │ exporters │
             │  (.py)   │ │ entity... │ │  (.py)    │
             └──────────┘ └───────────┘ └───────────┘

Usage::

    from schemaforge import define_entity, define_manifest, text, number

    post = define_entity("Post", fields={"title": text().required().max(120)})
    manifest = define_manifest(
        entities=[post], database={"type": "sqlite", "file": "./app.db"}
    )
    files = CodeGenerator().generate_files(manifest)

    # From the command line
    schemaforge -m schemaforge.yaml -o ./generated -v
"""

from __future__ import annotations

from typing import List

__version__: str = "0.1.0"
__author__: str = "NexaFlow Team"
__license__: str = "MIT"

from schemaforge.context import GeneratorContext, create_context
from schemaforge.entity import compile_entity, define_entity
from schemaforge.errors import (
    ConfigurationError,
    GeneratorInvariantError,
    ManifestLoadError,
    SchemaForgeError,
)
from schemaforge.exporters import ExportManifest, ExportResult, ProjectExporter
from schemaforge.fields import boolean, computed, date, enum_field, number, text
from schemaforge.generator import CodeGenerator, GenerationReport, generate_project
from schemaforge.json_input import load_manifest_file, parse_manifest_json
from schemaforge.manifest import compile_manifest, define_manifest
from schemaforge.models import EntityIR, GeneratedFile, ManifestIR, OutputConfig
from schemaforge.registry import get_profile, list_profiles, run_profile
from schemaforge.relations import belongs_to_many, has_many, has_one
from schemaforge.source import external
from schemaforge.validators import ValidationResult, validate_manifest

__all__: List[str] = [
    "__version__",
    "__author__",
    "__license__",
    # Builders
    "text",
    "number",
    "boolean",
    "date",
    "enum_field",
    "computed",
    "has_one",
    "has_many",
    "belongs_to_many",
    "external",
    # Compilers
    "define_entity",
    "compile_entity",
    "define_manifest",
    "compile_manifest",
    "parse_manifest_json",
    "load_manifest_file",
    # IR
    "EntityIR",
    "ManifestIR",
    "OutputConfig",
    "GeneratedFile",
    # Pipeline
    "GeneratorContext",
    "create_context",
    "get_profile",
    "list_profiles",
    "run_profile",
    "CodeGenerator",
    "GenerationReport",
    "generate_project",
    "ProjectExporter",
    "ExportManifest",
    "ExportResult",
    # Validation & errors
    "validate_manifest",
    "ValidationResult",
    "SchemaForgeError",
    "ConfigurationError",
    "ManifestLoadError",
    "GeneratorInvariantError",
]
