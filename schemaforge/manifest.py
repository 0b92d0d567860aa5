# File: schemaforge/manifest.py
"""
NexaFlow SchemaForge - Manifest Compiler
==========================================
Aggregates entities plus global configuration (database, auth, i18n,
tenancy, observability, external source) into the frozen ``ManifestIR``
every generator consumes.

All structural problems surface here as :class:`ConfigurationError`, before
any generator runs; no partial manifest is ever handed downstream.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from schemaforge.entity import EntityDefinition, compile_entity, normalize_behaviors
from schemaforge.errors import ConfigurationError
from schemaforge.models import (
    DEFAULT_MODE_INCLUDES,
    MODE_CATEGORIES,
    AuthConfig,
    Behaviors,
    DatabaseConfig,
    EntityIR,
    ExternalSourceConfig,
    I18nConfig,
    ManifestIR,
    ModeConfig,
    ModeType,
    ObservabilityConfig,
    TenancyConfig,
)
from schemaforge.utils import to_snake_case

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.manifest")

ModeOption = Union[None, str, Mapping[str, Any], ModeConfig]


def snake_keys(value: Any) -> Any:
    """Recursively convert mapping keys from camelCase to snake_case."""
    if isinstance(value, BaseModel):
        return value
    if isinstance(value, Mapping):
        return {to_snake_case(str(k)): snake_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [snake_keys(v) for v in value]
    return value


def normalize_mode(mode: ModeOption) -> ModeConfig:
    """
    Resolve a mode shorthand.

    ``None`` → full; a string → that mode with its default categories; a
    mapping ``{"type": ..., "include": [...]}`` keeps an explicit include
    list.
    """
    if isinstance(mode, ModeConfig):
        return mode
    if mode is None:
        return ModeConfig()

    raw_type: Any = mode.get("type", "full") if isinstance(mode, Mapping) else mode
    try:
        mode_type: ModeType = ModeType(raw_type)
    except ValueError as exc:
        raise ConfigurationError(
            f"Unknown mode {raw_type!r}; expected one of "
            f"{[m.value for m in ModeType]}"
        ) from exc

    include: Iterable[str] = DEFAULT_MODE_INCLUDES[mode_type]
    if isinstance(mode, Mapping) and mode.get("include") is not None:
        include = [str(c) for c in mode["include"]]
        unknown: List[str] = sorted(c for c in include if c not in MODE_CATEGORIES)
        if unknown:
            raise ConfigurationError(
                f"Unknown mode categories {unknown}; expected {list(MODE_CATEGORIES)}"
            )
    return ModeConfig(type=mode_type, include=tuple(include))


def _compile_entities(
    entities: Iterable[Any], defaults: Behaviors
) -> List[EntityIR]:
    compiled: List[EntityIR] = []
    for item in entities:
        if isinstance(item, EntityIR):
            compiled.append(item)
        elif isinstance(item, EntityDefinition):
            compiled.append(item.compile(defaults=defaults))
        elif isinstance(item, Mapping) and "name" in item:
            compiled.append(compile_entity(item["name"], item, defaults=defaults))
        else:
            raise ConfigurationError(
                f"Expected an entity definition, got {type(item).__name__}"
            )
    return compiled


def _check_protection(manifest: ManifestIR, strict: bool) -> None:
    if manifest.auth.enabled:
        return
    for entity in manifest.entities:
        if not entity.protection.any_protected:
            continue
        if strict:
            raise ConfigurationError(
                f"Entity '{entity.name}' has protected operations but auth is "
                f"not enabled",
                {"entity": entity.name},
            )
        logger.warning(
            "Entity '%s' declares protected operations but auth is disabled - "
            "all operations will be open.",
            entity.name,
        )


def _check_tenancy(manifest: ManifestIR) -> None:
    if not manifest.tenancy.enabled:
        return
    column: str = manifest.tenancy.field
    for entity in manifest.entities:
        if column in entity.fields or column in entity.foreign_keys:
            raise ConfigurationError(
                f"Tenancy field '{column}' is managed automatically and cannot "
                f"be declared on '{entity.name}'",
                {"entity": entity.name},
            )


def compile_manifest(
    config: Mapping[str, Any],
    strict_protection: bool = False,
) -> ManifestIR:
    """
    Compile a manifest configuration into a ``ManifestIR``.

    *config* keys: ``entities`` (required), ``name``, ``version``, ``mode``,
    ``database``, ``auth``, ``i18n``, ``tenancy``, ``observability``,
    ``defaults``, ``source``.  Nested keys may be camelCase or snake_case.

    With *strict_protection*, declaring protected operations while auth is
    disabled is an error instead of a warning.
    """
    if "entities" not in config:
        raise ConfigurationError("Manifest must declare 'entities'")

    try:
        mode: ModeConfig = normalize_mode(config.get("mode"))
        defaults: Behaviors = normalize_behaviors(config.get("defaults"))
        entities: List[EntityIR] = _compile_entities(config["entities"], defaults)

        database: Optional[Any] = config.get("database")
        if database is not None and not isinstance(database, DatabaseConfig):
            database = DatabaseConfig.model_validate(snake_keys(database))

        source: Optional[Any] = config.get("source")
        if source is not None and not isinstance(source, ExternalSourceConfig):
            source = ExternalSourceConfig.model_validate(snake_keys(source))

        manifest: ManifestIR = ManifestIR(
            name=config.get("name", "app"),
            version=config.get("version", "0.1.0"),
            entities=tuple(entities),
            mode=mode,
            database=database,
            auth=_section(AuthConfig, config.get("auth")),
            i18n=_section(I18nConfig, config.get("i18n")),
            tenancy=_section(TenancyConfig, config.get("tenancy")),
            observability=_section(ObservabilityConfig, config.get("observability")),
            defaults=defaults,
            source=source,
        )
    except PydanticValidationError as exc:
        messages: str = "; ".join(err["msg"] for err in exc.errors())
        raise ConfigurationError(f"Invalid manifest: {messages}") from exc

    _check_protection(manifest, strict_protection)
    _check_tenancy(manifest)
    if manifest.i18n.default_language not in manifest.i18n.languages:
        logger.warning(
            "Default language '%s' is not in the configured languages %s.",
            manifest.i18n.default_language,
            list(manifest.i18n.languages),
        )

    logger.info(
        "Compiled manifest '%s': %d entities, mode=%s, database=%s.",
        manifest.name,
        len(manifest.entities),
        manifest.mode.type.value,
        manifest.database.type.value if manifest.database else "none",
    )
    return manifest


def _section(model: type, value: Any) -> Any:
    if value is None:
        return model()
    if isinstance(value, model):
        return value
    return model.model_validate(snake_keys(value))


def define_manifest(**config: Any) -> ManifestIR:
    """Keyword form of :func:`compile_manifest`."""
    strict: bool = bool(config.pop("strict_protection", False))
    return compile_manifest(config, strict_protection=strict)


__all__: List[str] = [
    "snake_keys",
    "normalize_mode",
    "compile_manifest",
    "define_manifest",
]

logger.debug("schemaforge.manifest loaded - %d public symbols.", len(__all__))
