# File: schemaforge/json_input.py
"""
NexaFlow SchemaForge - JSON / YAML Manifest Input
===================================================
Parses the JSON vocabulary (the same field / relation / behavior /
protection words the builders use) into the very same IR the builder API
produces.  ``.json``, ``.yaml`` and ``.yml`` files are supported.

Field vocabulary::

    {"type": "text", "required": true, "min": 3, "max": 120, "email": true}
    {"type": "number", "optional": true, "min": 0, "integer": true}
    {"type": "enum", "values": ["draft", "published"], "default": "draft"}
    {"type": "computed", "expression": "price * quantity",
     "dependsOn": ["price", "quantity"], "returns": "number"}

Unlike the builders, a JSON field is **required unless** it says
``"optional": true`` or ``"required": false``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from schemaforge.entity import compile_entity, normalize_behaviors
from schemaforge.errors import ConfigurationError, ManifestLoadError
from schemaforge.models import (
    Behaviors,
    EntityIR,
    ExternalSourceConfig,
    FieldConfig,
    FieldType,
    ManifestIR,
    PivotConfig,
    RelationIR,
    RelationKind,
    Validation,
    ValidationKind,
)
from schemaforge.manifest import compile_manifest
from schemaforge.source import external

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.json_input")

# Boolean flags in the order their validations are appended.
_FLAG_VALIDATIONS: List[ValidationKind] = [
    ValidationKind.EMAIL,
    ValidationKind.URL,
]
_TRANSFORM_VALIDATIONS: List[ValidationKind] = [
    ValidationKind.TRIM,
    ValidationKind.LOWERCASE,
    ValidationKind.UPPERCASE,
    ValidationKind.INTEGER,
    ValidationKind.POSITIVE,
]

SUPPORTED_SUFFIXES: Dict[str, str] = {".json": "json", ".yaml": "yaml", ".yml": "yaml"}


def _field_type(raw: Any) -> FieldType:
    try:
        return FieldType(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"Unknown field type {raw!r}; use one of "
            f"{[t.value for t in FieldType]}"
        ) from exc


def parse_field_json(field: Mapping[str, Any]) -> FieldConfig:
    """Translate one JSON field description into a ``FieldConfig``."""
    field_type: FieldType = _field_type(field.get("type"))
    validations: List[Validation] = []

    if field.get("min") is not None:
        if field_type == FieldType.TEXT:
            validations.append(Validation(kind=ValidationKind.MIN_LENGTH, value=field["min"]))
        elif field_type == FieldType.NUMBER:
            validations.append(Validation(kind=ValidationKind.MIN, value=field["min"]))
    if field.get("max") is not None:
        if field_type == FieldType.TEXT:
            validations.append(Validation(kind=ValidationKind.MAX_LENGTH, value=field["max"]))
        elif field_type == FieldType.NUMBER:
            validations.append(Validation(kind=ValidationKind.MAX, value=field["max"]))

    for kind in _FLAG_VALIDATIONS:
        if field.get(kind.value):
            validations.append(Validation(kind=kind))
    if field.get("regex"):
        validations.append(Validation(kind=ValidationKind.REGEX, value=str(field["regex"])))
    if field.get("oneOf"):
        validations.append(
            Validation(
                kind=ValidationKind.ONE_OF,
                value=tuple(str(v) for v in field["oneOf"]),
            )
        )
    for kind in _TRANSFORM_VALIDATIONS:
        if field.get(kind.value):
            validations.append(Validation(kind=kind))

    required: bool = False if field.get("optional") is True else field.get("required") is not False

    values: Any = field.get("values", field.get("enumValues"))
    returns: Any = field.get("returns")
    try:
        return FieldConfig(
            type=field_type,
            required=required if field_type != FieldType.COMPUTED else False,
            unique=bool(field.get("unique", False)),
            default=field.get("default"),
            label=field.get("label"),
            validations=tuple(validations),
            enum_values=tuple(str(v) for v in values) if values else None,
            expression=field.get("expression"),
            source_fields=tuple(field.get("dependsOn") or ()),
            returns=FieldType(returns) if returns else (
                FieldType.TEXT if field_type == FieldType.COMPUTED else None
            ),
        )
    except (PydanticValidationError, ValueError) as exc:
        raise ConfigurationError(f"Invalid field definition {dict(field)!r}: {exc}") from exc


def parse_relation_json(relation: Mapping[str, Any]) -> RelationIR:
    """Translate ``{"type", "entity", "field"?, "optional"?, "through"?}``."""
    try:
        kind: RelationKind = RelationKind(relation.get("type"))
    except ValueError as exc:
        raise ConfigurationError(
            f"Unknown relation type {relation.get('type')!r}; use one of "
            f"{[k.value for k in RelationKind]}"
        ) from exc

    pivot: Optional[PivotConfig] = None
    through: Optional[Mapping[str, Any]] = relation.get("through")
    try:
        if through:
            pivot = PivotConfig(
                table_name=through.get("table"),
                fields={
                    name: parse_field_json(raw)
                    for name, raw in (through.get("fields") or {}).items()
                },
            )
        return RelationIR(
            kind=kind,
            target=relation.get("entity", ""),
            foreign_key=relation.get("field"),
            optional=bool(relation.get("optional", False)),
            pivot=pivot,
        )
    except PydanticValidationError as exc:
        raise ConfigurationError(
            f"Invalid relation definition {dict(relation)!r}: {exc}"
        ) from exc


def parse_source_json(source: Mapping[str, Any]) -> ExternalSourceConfig:
    return external(
        source.get("baseUrl", ""),
        path_prefix=source.get("pathPrefix", ""),
        resource_name=source.get("resourceName"),
        override=source.get("override"),
        auth=source.get("auth"),
    )


def parse_entity_json(
    entity: Mapping[str, Any], defaults: Optional[Behaviors] = None
) -> EntityIR:
    """Translate one JSON entity into an ``EntityIR``."""
    name: str = entity.get("name", "")
    return compile_entity(
        name,
        {
            "fields": {
                fname: parse_field_json(raw)
                for fname, raw in (entity.get("fields") or {}).items()
            },
            "relations": {
                rname: parse_relation_json(raw)
                for rname, raw in (entity.get("relations") or {}).items()
            },
            "behaviors": entity.get("behaviors"),
            "protected": entity.get("protected"),
            "hooks": entity.get("hooks"),
            "source": parse_source_json(entity["source"]) if entity.get("source") else None,
        },
        defaults=defaults,
    )


def parse_manifest_json(
    data: Union[str, Mapping[str, Any]], strict_protection: bool = False
) -> ManifestIR:
    """
    Compile a JSON manifest (text or decoded mapping) into a ``ManifestIR``.

    Raises :class:`ConfigurationError` for structural problems, including
    ``full`` mode without a database.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise ManifestLoadError(f"Manifest is not valid JSON: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigurationError("Manifest must be a JSON object")
    if "entities" not in data:
        raise ConfigurationError("Manifest must declare 'entities'")

    defaults: Behaviors = normalize_behaviors(data.get("defaults"))
    entities: List[EntityIR] = [
        parse_entity_json(entity, defaults) for entity in data.get("entities") or []
    ]
    auth: Optional[Dict[str, Any]] = None
    if data.get("auth") is not None:
        auth = {k: v for k, v in data["auth"].items() if k != "adapter"}

    config: Dict[str, Any] = {
        "name": data.get("name", "app"),
        "version": str(data.get("version", "0.1.0")),
        "entities": entities,
        "mode": data.get("mode"),
        "database": data.get("database"),
        "auth": auth,
        "i18n": data.get("i18n"),
        "tenancy": data.get("tenancy"),
        "observability": data.get("observability"),
        "defaults": defaults,
        "source": parse_source_json(data["source"]) if data.get("source") else None,
    }
    return compile_manifest(config, strict_protection=strict_protection)


def read_manifest_data(path: Union[str, Path]) -> Dict[str, Any]:
    """Read and decode a manifest file without compiling it."""
    file_path: Path = Path(path)
    fmt: Optional[str] = SUPPORTED_SUFFIXES.get(file_path.suffix.lower())
    if fmt is None:
        raise ManifestLoadError(
            f"Unsupported manifest format '{file_path.suffix}'; "
            f"use {sorted(SUPPORTED_SUFFIXES)}",
            {"path": str(file_path)},
        )
    try:
        raw: str = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestLoadError(
            f"Cannot read manifest: {exc}", {"path": str(file_path)}
        ) from exc

    try:
        data: Any = json.loads(raw) if fmt == "json" else yaml.safe_load(raw)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ManifestLoadError(
            f"Cannot decode manifest: {exc}", {"path": str(file_path)}
        ) from exc

    if not isinstance(data, dict):
        raise ManifestLoadError(
            "Manifest root must be a mapping", {"path": str(file_path)}
        )
    logger.debug("Read %s manifest from %s.", fmt, file_path)
    return data


def load_manifest_file(
    path: Union[str, Path], strict_protection: bool = False
) -> ManifestIR:
    """Load and compile a ``.json`` / ``.yaml`` / ``.yml`` manifest file."""
    return parse_manifest_json(read_manifest_data(path), strict_protection)


__all__: List[str] = [
    "SUPPORTED_SUFFIXES",
    "parse_field_json",
    "parse_relation_json",
    "parse_source_json",
    "parse_entity_json",
    "parse_manifest_json",
    "read_manifest_data",
    "load_manifest_file",
]

logger.debug("schemaforge.json_input loaded - %d public symbols.", len(__all__))
