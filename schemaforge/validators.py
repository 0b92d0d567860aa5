# File: schemaforge/validators.py
"""
NexaFlow SchemaForge - Manifest Validators
============================================
Batch validation of **raw** JSON/YAML manifests.

Where :mod:`schemaforge.manifest` fails fast with a single
``ConfigurationError``, this module walks the whole document and reports
every problem at once as ``{code, path, message, suggestion}`` items, so a
tool (or an agent) can fix many mistakes in one pass.

Usage:
    from schemaforge.validators import validate_manifest
    result = validate_manifest(data)
    if not result:
        print(result.format_report())
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Set

from schemaforge.models import RESERVED_FIELD_NAMES, FieldType, RelationKind
from schemaforge.utils import PYTHON_KEYWORDS

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.validators")


# ---------------------------------------------------------------------------
# Issue codes
# ---------------------------------------------------------------------------


class ValidationCode:
    """Stable machine-readable issue codes."""

    INVALID_ENTITY_NAME = "INVALID_ENTITY_NAME"
    DUPLICATE_ENTITY = "DUPLICATE_ENTITY"
    MISSING_ENTITY_FIELDS = "MISSING_ENTITY_FIELDS"
    INVALID_FIELD_TYPE = "INVALID_FIELD_TYPE"
    INVALID_FIELD_NAME = "INVALID_FIELD_NAME"
    RESERVED_FIELD_NAME = "RESERVED_FIELD_NAME"
    ENUM_VALUES_REQUIRED = "ENUM_VALUES_REQUIRED"
    COMPUTED_SOURCE_NOT_FOUND = "COMPUTED_SOURCE_NOT_FOUND"
    RELATION_TARGET_NOT_FOUND = "RELATION_TARGET_NOT_FOUND"
    INVALID_RELATION_TYPE = "INVALID_RELATION_TYPE"
    DATABASE_REQUIRED = "DATABASE_REQUIRED"
    INVALID_DATABASE_TYPE = "INVALID_DATABASE_TYPE"
    SQLITE_REQUIRES_FILE = "SQLITE_REQUIRES_FILE"
    POSTGRES_REQUIRES_URL = "POSTGRES_REQUIRES_URL"
    AUTH_REQUIRED_FOR_PROTECTED = "AUTH_REQUIRED_FOR_PROTECTED"
    INVALID_PROVIDER = "INVALID_PROVIDER"
    INVALID_MODE = "INVALID_MODE"
    INVALID_PROTECTED_VALUE = "INVALID_PROTECTED_VALUE"
    EXTERNAL_SOURCE_INVALID = "EXTERNAL_SOURCE_INVALID"
    DEFAULT_LANGUAGE_NOT_LISTED = "DEFAULT_LANGUAGE_NOT_LISTED"


# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------


class ValidationIssue:
    """Lightweight issue descriptor (no Pydantic overhead)."""

    __slots__ = ("level", "code", "path", "message", "suggestion")

    def __init__(
        self,
        level: str,
        code: str,
        path: str,
        message: str,
        suggestion: Optional[str] = None,
    ) -> None:
        self.level: str = level  # "error" | "warning"
        self.code: str = code
        self.path: str = path
        self.message: str = message
        self.suggestion: Optional[str] = suggestion

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    @property
    def is_warning(self) -> bool:
        return self.level == "warning"

    def __repr__(self) -> str:
        return f"[{self.level.upper()}] {self.code} at {self.path}: {self.message}"

    def __str__(self) -> str:
        return self.__repr__()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "code": self.code,
            "path": self.path,
            "message": self.message,
        }
        if self.suggestion:
            data["suggestion"] = self.suggestion
        return data


class ValidationResult:
    """
    Accumulates ``ValidationIssue`` instances.

    Truthy when there are no errors; warnings never make a manifest invalid.
    """

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[ValidationIssue] = []

    # -- Mutation -----------------------------------------------------------

    def add_error(
        self, code: str, path: str, message: str, suggestion: Optional[str] = None
    ) -> None:
        self._items.append(ValidationIssue("error", code, path, message, suggestion))

    def add_warning(
        self, code: str, path: str, message: str, suggestion: Optional[str] = None
    ) -> None:
        self._items.append(ValidationIssue("warning", code, path, message, suggestion))

    def merge(self, other: "ValidationResult") -> None:
        self._items.extend(other._items)

    # -- Query --------------------------------------------------------------

    @property
    def errors(self) -> List[ValidationIssue]:
        return [e for e in self._items if e.is_error]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [e for e in self._items if e.is_warning]

    @property
    def codes(self) -> List[str]:
        return [e.code for e in self._items]

    @property
    def is_valid(self) -> bool:
        return not any(e.is_error for e in self._items)

    def summary(self) -> str:
        return (
            f"Validation: {len(self.errors)} error(s), "
            f"{len(self.warnings)} warning(s)."
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        """Truthy when there are NO errors (i.e. valid)."""
        return self.is_valid

    def __len__(self) -> int:
        return len(self._items)

    def format_report(self) -> str:
        """Human-readable multi-line report."""
        lines: List[str] = [self.summary(), ""]
        for item in self._items:
            prefix: str = "❌" if item.is_error else "⚠️"
            lines.append(f"  {prefix} [{item.code}] {item.path}: {item.message}")
            if item.suggestion:
                lines.append(f"       fix: {item.suggestion}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Vocabularies & patterns
# ---------------------------------------------------------------------------

_PASCAL_CASE_RE: re.Pattern[str] = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
_CAMEL_CASE_RE: re.Pattern[str] = re.compile(r"^[a-z][a-zA-Z0-9]*$")

_VALID_MODES: List[str] = ["full", "headless", "api-only"]
_VALID_DATABASES: List[str] = ["sqlite", "postgres", "mysql"]
_VALID_PROVIDERS: List[str] = ["credentials", "google", "github", "discord"]
_VALID_FIELD_TYPES: List[str] = [t.value for t in FieldType]
_VALID_RELATION_TYPES: List[str] = [k.value for k in RelationKind]
_CRUD_KEYS: FrozenSet[str] = frozenset({"list", "get", "create", "update", "remove"})


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


# ---------------------------------------------------------------------------
# Field / relation / entity validators
# ---------------------------------------------------------------------------


def validate_field(
    field_name: str, field: Any, entity_name: str, all_fields: Mapping[str, Any]
) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    path: str = f"{entity_name}.fields.{field_name}"

    if not _CAMEL_CASE_RE.match(field_name) or field_name in PYTHON_KEYWORDS:
        result.add_error(
            ValidationCode.INVALID_FIELD_NAME,
            path,
            f"Field name '{field_name}' must be camelCase",
            f"Rename to '{field_name[:1].lower()}{field_name[1:]}'",
        )
    if field_name in RESERVED_FIELD_NAMES:
        result.add_error(
            ValidationCode.RESERVED_FIELD_NAME,
            path,
            f"Field name '{field_name}' is managed automatically",
            "Remove the field or rename it",
        )

    data: Mapping[str, Any] = _as_mapping(field)
    field_type: Any = data.get("type")
    if field_type not in _VALID_FIELD_TYPES:
        result.add_error(
            ValidationCode.INVALID_FIELD_TYPE,
            f"{path}.type",
            f"Invalid field type '{field_type}'",
            f"Use one of: {', '.join(_VALID_FIELD_TYPES)}",
        )
        return result

    if field_type == FieldType.ENUM.value and not (
        data.get("values") or data.get("enumValues")
    ):
        result.add_error(
            ValidationCode.ENUM_VALUES_REQUIRED,
            f"{path}.values",
            f"Enum field '{field_name}' needs at least one value",
            "Add values: ['a', 'b']",
        )

    if field_type == FieldType.COMPUTED.value:
        for source in data.get("dependsOn") or []:
            target: Mapping[str, Any] = _as_mapping(all_fields.get(source))
            if not target or target.get("type") == FieldType.COMPUTED.value:
                result.add_error(
                    ValidationCode.COMPUTED_SOURCE_NOT_FOUND,
                    f"{path}.dependsOn",
                    f"Computed field '{field_name}' depends on unknown field "
                    f"'{source}'",
                    f"Declare a stored field '{source}' on '{entity_name}'",
                )
    return result


def validate_relation(
    relation_name: str, relation: Any, entity_name: str, entity_names: Set[str]
) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    path: str = f"{entity_name}.relations.{relation_name}"
    data: Mapping[str, Any] = _as_mapping(relation)

    if data.get("type") not in _VALID_RELATION_TYPES:
        result.add_error(
            ValidationCode.INVALID_RELATION_TYPE,
            f"{path}.type",
            f"Invalid relation type '{data.get('type')}'",
            f"Use one of: {', '.join(_VALID_RELATION_TYPES)}",
        )

    target: Any = data.get("entity")
    if target not in entity_names:
        result.add_error(
            ValidationCode.RELATION_TARGET_NOT_FOUND,
            f"{path}.entity",
            f"Entity '{target}' not found in manifest",
            f"Add entity '{target}' to the entities array, or fix the entity name",
        )
    return result


def _protected_is_valid(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    if isinstance(value, str):
        return value in ("write", "all")
    if isinstance(value, Mapping):
        return set(value) <= _CRUD_KEYS
    return False


def validate_entity(
    entity: Any, entity_names: Set[str], auth_enabled: bool
) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    data: Mapping[str, Any] = _as_mapping(entity)
    name: str = str(data.get("name", ""))
    path: str = name

    if not _PASCAL_CASE_RE.match(name):
        result.add_error(
            ValidationCode.INVALID_ENTITY_NAME,
            path,
            f"Entity name '{name}' must be PascalCase",
            f"Rename to '{name[:1].upper()}{name[1:]}'",
        )

    fields: Mapping[str, Any] = _as_mapping(data.get("fields"))
    if not fields:
        result.add_error(
            ValidationCode.MISSING_ENTITY_FIELDS,
            f"{path}.fields",
            f"Entity '{name}' must have at least one field",
            "Add fields to the entity",
        )
    for field_name, field in fields.items():
        result.merge(validate_field(str(field_name), field, name, fields))

    for relation_name, relation in _as_mapping(data.get("relations")).items():
        result.merge(validate_relation(str(relation_name), relation, name, entity_names))

    protected: Any = data.get("protected")
    if protected is not None and protected is not False:
        if not _protected_is_valid(protected):
            result.add_error(
                ValidationCode.INVALID_PROTECTED_VALUE,
                f"{path}.protected",
                f"Invalid protected value '{protected}'",
                "Use one of: true, false, 'write', 'all', or an object with "
                "list/get/create/update/remove",
            )
        if not auth_enabled:
            result.add_error(
                ValidationCode.AUTH_REQUIRED_FOR_PROTECTED,
                f"{path}.protected",
                f"Entity '{name}' has protected operations but auth is not enabled",
                "Add auth: { enabled: true } to manifest, or remove protected "
                "from entity",
            )

    source: Any = data.get("source")
    if source is not None and not _as_mapping(source).get("baseUrl"):
        result.add_error(
            ValidationCode.EXTERNAL_SOURCE_INVALID,
            f"{path}.source.baseUrl",
            "External source requires baseUrl",
            "Add baseUrl to source, e.g., 'env:API_URL' or "
            "'https://api.example.com'",
        )
    return result


def validate_entities(manifest: Mapping[str, Any]) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    entities: List[Any] = list(manifest.get("entities") or [])
    entity_names: Set[str] = {
        str(_as_mapping(e).get("name")) for e in entities if _as_mapping(e).get("name")
    }

    seen: Set[str] = set()
    for entity in entities:
        name: Any = _as_mapping(entity).get("name")
        if name in seen:
            result.add_error(
                ValidationCode.DUPLICATE_ENTITY,
                str(name),
                f"Duplicate entity name '{name}'",
                "Rename one of the entities",
            )
        seen.add(name)

    auth_enabled: bool = bool(_as_mapping(manifest.get("auth")).get("enabled"))
    for entity in entities:
        result.merge(validate_entity(entity, entity_names, auth_enabled))
    return result


# ---------------------------------------------------------------------------
# Manifest-level validators
# ---------------------------------------------------------------------------


def _mode_type(manifest: Mapping[str, Any]) -> Any:
    mode: Any = manifest.get("mode") or "full"
    return _as_mapping(mode).get("type", "full") if isinstance(mode, Mapping) else mode


def validate_mode(manifest: Mapping[str, Any]) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    mode_type: Any = _mode_type(manifest)
    if mode_type not in _VALID_MODES:
        result.add_error(
            ValidationCode.INVALID_MODE,
            "mode",
            f"Invalid mode '{mode_type}'",
            f"Use one of: {', '.join(_VALID_MODES)}",
        )
    return result


def validate_database(manifest: Mapping[str, Any]) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    database: Any = manifest.get("database")

    if _mode_type(manifest) == "full" and not database:
        result.add_error(
            ValidationCode.DATABASE_REQUIRED,
            "database",
            "Mode 'full' requires database configuration",
            "Add database config or use mode: 'headless'",
        )
        return result
    if not database:
        return result

    db: Mapping[str, Any] = _as_mapping(database)
    db_type: Any = db.get("type")
    if db_type not in _VALID_DATABASES:
        result.add_error(
            ValidationCode.INVALID_DATABASE_TYPE,
            "database.type",
            f"Invalid database type '{db_type}'",
            f"Use one of: {', '.join(_VALID_DATABASES)}",
        )
    if db_type == "sqlite" and not db.get("file"):
        result.add_error(
            ValidationCode.SQLITE_REQUIRES_FILE,
            "database.file",
            "SQLite database requires file path",
            "Add file: './sqlite.db' to database config",
        )
    if db_type in ("postgres", "mysql") and not db.get("url"):
        result.add_error(
            ValidationCode.POSTGRES_REQUIRES_URL,
            "database.url",
            f"{db_type} database requires connection URL",
            "Add url: 'env:DATABASE_URL' or a connection string",
        )
    return result


def validate_auth(manifest: Mapping[str, Any]) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    for provider in _as_mapping(manifest.get("auth")).get("providers") or []:
        if provider not in _VALID_PROVIDERS:
            result.add_error(
                ValidationCode.INVALID_PROVIDER,
                "auth.providers",
                f"Invalid auth provider '{provider}'",
                f"Use one of: {', '.join(_VALID_PROVIDERS)}",
            )
    return result


def validate_source(manifest: Mapping[str, Any]) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    source: Any = manifest.get("source")
    if source is not None and not _as_mapping(source).get("baseUrl"):
        result.add_error(
            ValidationCode.EXTERNAL_SOURCE_INVALID,
            "source.baseUrl",
            "Global external source requires baseUrl",
            "Add baseUrl to source, e.g., 'env:API_URL'",
        )
    return result


def validate_i18n(manifest: Mapping[str, Any]) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    i18n: Mapping[str, Any] = _as_mapping(manifest.get("i18n"))
    if not i18n:
        return result
    languages: List[Any] = list(i18n.get("languages") or ["en"])
    default: Any = i18n.get("defaultLanguage", "en")
    if default not in languages:
        result.add_warning(
            ValidationCode.DEFAULT_LANGUAGE_NOT_LISTED,
            "i18n.defaultLanguage",
            f"Default language '{default}' is not in languages {languages}",
            f"Add '{default}' to i18n.languages",
        )
    return result


# ---------------------------------------------------------------------------
# Master entry point
# ---------------------------------------------------------------------------


def validate_manifest(manifest: Any) -> ValidationResult:
    """
    **Master validation entry point** for a decoded JSON/YAML manifest.

    Never raises for malformed input; every problem becomes an issue.
    """
    data: Mapping[str, Any] = _as_mapping(manifest)
    result: ValidationResult = ValidationResult()

    validators: List[Callable[[Mapping[str, Any]], ValidationResult]] = [
        validate_mode,
        validate_database,
        validate_auth,
        validate_entities,
        validate_source,
        validate_i18n,
    ]
    for validator_fn in validators:
        logger.debug("Running validator: %s", validator_fn.__name__)
        result.merge(validator_fn(data))

    if result.is_valid:
        logger.info("Validation PASSED. %s", result.summary())
    else:
        logger.error("Validation FAILED. %s", result.summary())
    return result


__all__: List[str] = [
    "ValidationCode",
    "ValidationIssue",
    "ValidationResult",
    "validate_field",
    "validate_relation",
    "validate_entity",
    "validate_entities",
    "validate_mode",
    "validate_database",
    "validate_auth",
    "validate_source",
    "validate_i18n",
    "validate_manifest",
]

logger.debug("schemaforge.validators loaded - %d public symbols.", len(__all__))
