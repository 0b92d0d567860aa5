# File: schemaforge/registry.py
"""
NexaFlow SchemaForge - Template Registry
==========================================
Maps a named stack profile to an explicit, ordered pipeline of
``PipelineStep(generator, predicate)`` pairs plus the profile's default
``OutputConfig``.

Order matters only through naming conventions: the router imports the
models written by ``storage``, the schemas written by ``validation``, the
services written by ``service`` and the hook stubs written by
``crud-hooks``.  Predicates are evaluated against the compiled manifest in
declared order; a step whose predicate is false is recorded as skipped.

Usage::

    profile = get_profile("fastapi-sqlalchemy-pydantic")
    files = run_profile(profile, manifest)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from schemaforge.context import GeneratorContext, create_context
from schemaforge.generators import (
    ApiGenerator,
    ClientGenerator,
    DocsGenerator,
    ErdGenerator,
    Generator,
    HooksGenerator,
    I18nGenerator,
    PackageGenerator,
    SeedGenerator,
    ServiceGenerator,
    StorageGenerator,
    TestsGenerator,
    ValidationGenerator,
)
from schemaforge.generators.base import active_stored_entities
from schemaforge.models import GeneratedFile, ManifestIR, OutputConfig

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.registry")

Predicate = Callable[[ManifestIR], bool]


# ---------------------------------------------------------------------------
# Step predicates
# ---------------------------------------------------------------------------


def always(manifest: ManifestIR) -> bool:
    return True


def storage_active(manifest: ManifestIR) -> bool:
    return manifest.database is not None and manifest.mode.allows("schema")


def validation_active(manifest: ManifestIR) -> bool:
    return manifest.mode.allows("validation")


def services_active(manifest: ManifestIR) -> bool:
    return manifest.mode.allows("services") and bool(manifest.external_entities)


def api_active(manifest: ManifestIR) -> bool:
    return manifest.mode.allows("api")


def client_active(manifest: ManifestIR) -> bool:
    return manifest.mode.allows("hooks")


def crud_hooks_active(manifest: ManifestIR) -> bool:
    return any(entity.hooks.any_enabled for entity in manifest.entities)


def i18n_active(manifest: ManifestIR) -> bool:
    return manifest.i18n.is_multilingual and manifest.mode.allows("i18n")


def tests_active(manifest: ManifestIR) -> bool:
    return api_active(manifest) and bool(active_stored_entities(manifest))


def seed_active(manifest: ManifestIR) -> bool:
    return storage_active(manifest) and bool(manifest.stored_entities)


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PipelineStep:
    """A generator together with the condition under which it runs."""

    generator: Generator
    predicate: Predicate = always

    @property
    def name(self) -> str:
        return self.generator.name

    def applies(self, manifest: ManifestIR) -> bool:
        return self.predicate(manifest)


@dataclass(frozen=True)
class StackProfile:
    """Metadata, default output options and the ordered pipeline of a target stack."""

    id: str
    name: str
    description: str
    stack: Dict[str, str]
    steps: Tuple[PipelineStep, ...]
    default_config: OutputConfig = field(default_factory=OutputConfig)

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self.steps]

    def active_steps(self, manifest: ManifestIR) -> List[PipelineStep]:
        return [step for step in self.steps if step.applies(manifest)]


def fastapi_profile() -> StackProfile:
    """The FastAPI + SQLAlchemy + Pydantic stack."""
    return StackProfile(
        id="fastapi-sqlalchemy-pydantic",
        name="FastAPI + SQLAlchemy + Pydantic",
        description=(
            "FastAPI routers over SQLAlchemy 2.0 models with Pydantic v2 "
            "validation, an httpx client and a pytest suite"
        ),
        stack={
            "database": "sqlalchemy",
            "validation": "pydantic",
            "api": "fastapi",
            "client": "httpx",
        },
        steps=(
            PipelineStep(PackageGenerator(), always),
            PipelineStep(StorageGenerator(), storage_active),
            PipelineStep(ValidationGenerator(), validation_active),
            PipelineStep(ServiceGenerator(), services_active),
            PipelineStep(ApiGenerator(), api_active),
            PipelineStep(ClientGenerator(), client_active),
            PipelineStep(HooksGenerator(), crud_hooks_active),
            PipelineStep(I18nGenerator(), i18n_active),
            PipelineStep(TestsGenerator(), tests_active),
            PipelineStep(DocsGenerator(), always),
            PipelineStep(ErdGenerator(), always),
            PipelineStep(SeedGenerator(), seed_active),
        ),
    )


_PROFILE_FACTORIES: Dict[str, Callable[[], StackProfile]] = {
    "fastapi-sqlalchemy-pydantic": fastapi_profile,
}

_DEFAULT_PROFILE_ID: str = "fastapi-sqlalchemy-pydantic"


def get_profile(profile_id: str) -> Optional[StackProfile]:
    """Profile registered under *profile_id*, or ``None``."""
    factory: Optional[Callable[[], StackProfile]] = _PROFILE_FACTORIES.get(profile_id)
    if factory is None:
        return None
    return factory()


def list_profiles() -> List[StackProfile]:
    return [factory() for _, factory in sorted(_PROFILE_FACTORIES.items())]


def has_profile(profile_id: str) -> bool:
    return profile_id in _PROFILE_FACTORIES


def default_profile_id() -> str:
    return _DEFAULT_PROFILE_ID


# ---------------------------------------------------------------------------
# Running a pipeline
# ---------------------------------------------------------------------------


@dataclass
class StepOutcome:
    """What one pipeline step did during a run."""

    name: str
    ran: bool
    files: List[GeneratedFile] = field(default_factory=list)


def run_steps(
    profile: StackProfile,
    manifest: ManifestIR,
    ctx: GeneratorContext,
) -> List[StepOutcome]:
    """Evaluate every step in order; skipped steps produce no files."""
    outcomes: List[StepOutcome] = []
    for step in profile.steps:
        if not step.applies(manifest):
            logger.debug("Step '%s' skipped.", step.name)
            outcomes.append(StepOutcome(name=step.name, ran=False))
            continue
        files: List[GeneratedFile] = step.generator.generate(manifest, ctx)
        logger.debug("Step '%s' produced %d file(s).", step.name, len(files))
        outcomes.append(StepOutcome(name=step.name, ran=True, files=files))
    return outcomes


def run_profile(
    profile: StackProfile,
    manifest: ManifestIR,
    config: Optional[OutputConfig] = None,
) -> List[GeneratedFile]:
    """
    Run *profile* against *manifest* and return every generated file.

    When two steps emit the same path the later step wins; the order of
    first appearance is kept so output stays deterministic.
    """
    ctx: GeneratorContext = create_context(manifest, config or profile.default_config)
    by_path: Dict[str, GeneratedFile] = {}
    for outcome in run_steps(profile, manifest, ctx):
        for generated in outcome.files:
            if generated.path in by_path:
                logger.warning(
                    "Step '%s' overwrites %s.", outcome.name, generated.path
                )
            by_path[generated.path] = generated
    return list(by_path.values())


__all__: List[str] = [
    "Predicate",
    "always",
    "storage_active",
    "validation_active",
    "services_active",
    "api_active",
    "client_active",
    "crud_hooks_active",
    "i18n_active",
    "tests_active",
    "seed_active",
    "PipelineStep",
    "StackProfile",
    "fastapi_profile",
    "get_profile",
    "list_profiles",
    "has_profile",
    "default_profile_id",
    "StepOutcome",
    "run_steps",
    "run_profile",
]

logger.debug("schemaforge.registry loaded - %d public symbols.", len(__all__))
