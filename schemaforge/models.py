# File: schemaforge/models.py
"""
NexaFlow SchemaForge - Intermediate Representation
====================================================
Pydantic V2 models describing compiled entities and manifests.  These models
are the single source of truth for the whole pipeline:
Builders / JSON → EntityIR → ManifestIR → Generators → GeneratedFile list.

Every IR model is **frozen**: once ``compile_manifest`` returns, nothing in
the pipeline can mutate it, which is what makes generator output
deterministic for a given input.
"""

from __future__ import annotations

import ast
import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from schemaforge.utils import count_lines, sha256_hex, to_snake_case

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.models")

# ---------------------------------------------------------------------------
# Enums - fixed vocabularies shared by builders, JSON input and generators
# ---------------------------------------------------------------------------


class FieldType(str, Enum):
    """Kinds of entity fields."""

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ENUM = "enum"
    COMPUTED = "computed"


class ValidationKind(str, Enum):
    """Validation operators a field may carry, in declaration order."""

    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    MIN = "min"
    MAX = "max"
    EMAIL = "email"
    URL = "url"
    REGEX = "regex"
    ONE_OF = "oneOf"
    INTEGER = "integer"
    POSITIVE = "positive"
    TRIM = "trim"
    LOWERCASE = "lowercase"
    UPPERCASE = "uppercase"


class RelationKind(str, Enum):
    """Association cardinalities."""

    HAS_ONE = "hasOne"
    HAS_MANY = "hasMany"
    BELONGS_TO_MANY = "belongsToMany"


class CrudOp(str, Enum):
    """The five protectable CRUD operations."""

    LIST = "list"
    GET = "get"
    CREATE = "create"
    UPDATE = "update"
    REMOVE = "remove"


class HookName(str, Enum):
    """Business-logic lifecycle hooks."""

    BEFORE_CREATE = "beforeCreate"
    AFTER_CREATE = "afterCreate"
    BEFORE_UPDATE = "beforeUpdate"
    AFTER_UPDATE = "afterUpdate"
    BEFORE_REMOVE = "beforeRemove"
    AFTER_REMOVE = "afterRemove"

    @property
    def attribute(self) -> str:
        """Snake-case attribute / method name (``before_create``)."""
        return to_snake_case(self.value)


class ModeType(str, Enum):
    """Generation modes."""

    FULL = "full"
    HEADLESS = "headless"
    API_ONLY = "api-only"


class DatabaseType(str, Enum):
    """Supported storage backends."""

    SQLITE = "sqlite"
    POSTGRES = "postgres"
    MYSQL = "mysql"


class SourceAuthType(str, Enum):
    """Authentication styles for external REST sources."""

    BEARER = "bearer"
    API_KEY = "api-key"


# Columns added by behaviors; user fields may not reuse these names.
RESERVED_FIELD_NAMES: Tuple[str, ...] = (
    "id",
    "createdAt",
    "updatedAt",
    "deletedAt",
    "createdBy",
    "updatedBy",
)

# Generator categories a mode may include.
MODE_CATEGORIES: Tuple[str, ...] = (
    "schema",
    "validation",
    "api",
    "hooks",
    "i18n",
    "services",
)

DEFAULT_MODE_INCLUDES: Dict[ModeType, Tuple[str, ...]] = {
    ModeType.FULL: MODE_CATEGORIES,
    ModeType.HEADLESS: ("validation", "hooks", "services", "i18n"),
    ModeType.API_ONLY: ("schema", "validation", "api", "services"),
}

# ---------------------------------------------------------------------------
# Shared model configuration
# ---------------------------------------------------------------------------

_IR_CONFIG: ConfigDict = ConfigDict(
    frozen=True,
    extra="forbid",
    populate_by_name=True,
)


# ---------------------------------------------------------------------------
# Field-level IR
# ---------------------------------------------------------------------------


class Validation(BaseModel):
    """One validation operator with its optional argument."""

    model_config = _IR_CONFIG

    kind: ValidationKind
    value: Any = None


class FieldConfig(BaseModel):
    """
    Compiled description of a single entity field.

    ``validations`` keeps declaration order; generators emit checks in that
    order after the required check.
    """

    model_config = _IR_CONFIG

    type: FieldType
    required: bool = False
    unique: bool = False
    default: Any = None
    label: Optional[str] = None
    validations: Tuple[Validation, ...] = ()
    enum_values: Optional[Tuple[str, ...]] = None
    expression: Optional[str] = Field(
        default=None, description="Python expression over source field names."
    )
    source_fields: Tuple[str, ...] = ()
    returns: Optional[FieldType] = None

    @model_validator(mode="after")
    def _check_kind_specific(self) -> "FieldConfig":
        if self.type == FieldType.ENUM and not self.enum_values:
            raise ValueError("enum fields require at least one value")
        if self.type == FieldType.COMPUTED:
            if not self.expression:
                raise ValueError("computed fields require an expression")
            try:
                ast.parse(self.expression, mode="eval")
            except SyntaxError as exc:
                raise ValueError(f"invalid computed expression {self.expression!r}: {exc.msg}")
        if (
            self.type == FieldType.ENUM
            and self.default is not None
            and self.default not in self.enum_values
        ):
            raise ValueError(f"default {self.default!r} is not an enum value")
        if self.returns == FieldType.COMPUTED:
            raise ValueError("computed fields cannot return 'computed'")
        for validation in self.validations:
            if validation.kind == ValidationKind.REGEX:
                try:
                    re.compile(str(validation.value))
                except re.error as exc:
                    raise ValueError(f"invalid regex {validation.value!r}: {exc}")
        return self

    # -- Derived helpers ----------------------------------------------------

    @property
    def is_stored(self) -> bool:
        return self.type != FieldType.COMPUTED

    @property
    def value_type(self) -> FieldType:
        """Type of the value a read response carries for this field."""
        if self.type == FieldType.COMPUTED:
            return self.returns or FieldType.TEXT
        return self.type

    def get_validation(self, kind: ValidationKind) -> Optional[Validation]:
        for validation in self.validations:
            if validation.kind == kind:
                return validation
        return None

    def has_validation(self, kind: ValidationKind) -> bool:
        return self.get_validation(kind) is not None

    def validation_value(self, kind: ValidationKind) -> Any:
        validation: Optional[Validation] = self.get_validation(kind)
        return validation.value if validation is not None else None

    @property
    def allowed_values(self) -> Optional[Tuple[str, ...]]:
        """Enum members, or the ``oneOf`` list of a text field."""
        if self.type == FieldType.ENUM:
            return self.enum_values
        one_of: Any = self.validation_value(ValidationKind.ONE_OF)
        return tuple(one_of) if one_of else None

    @property
    def is_integer(self) -> bool:
        return self.type == FieldType.NUMBER and self.has_validation(
            ValidationKind.INTEGER
        )

    def display_label(self, name: str) -> str:
        return self.label or name


class PivotConfig(BaseModel):
    """Extra metadata for a many-to-many junction table."""

    model_config = _IR_CONFIG

    table_name: Optional[str] = None
    fields: Dict[str, FieldConfig] = Field(default_factory=dict)

    @field_validator("fields")
    @classmethod
    def _no_computed_pivot_fields(
        cls, v: Dict[str, FieldConfig]
    ) -> Dict[str, FieldConfig]:
        for name, cfg in v.items():
            if cfg.type == FieldType.COMPUTED:
                raise ValueError(f"Pivot field '{name}' cannot be computed")
        return v


class RelationIR(BaseModel):
    """Compiled association to another entity."""

    model_config = _IR_CONFIG

    kind: RelationKind
    target: str = Field(..., min_length=1)
    foreign_key: Optional[str] = None
    optional: bool = False
    pivot: Optional[PivotConfig] = None

    def is_self_referential(self, owner: str) -> bool:
        return self.target == owner


# ---------------------------------------------------------------------------
# Entity-level IR
# ---------------------------------------------------------------------------


class Behaviors(BaseModel):
    """Behavior flags adding managed columns."""

    model_config = _IR_CONFIG

    timestamps: bool = True
    soft_delete: bool = False
    audit: bool = False


class ProtectionMap(BaseModel):
    """Per-operation flag: does the operation require an authenticated caller."""

    model_config = _IR_CONFIG

    list: bool = False
    get: bool = False
    create: bool = False
    update: bool = False
    remove: bool = False

    def is_protected(self, op: CrudOp) -> bool:
        return bool(getattr(self, CrudOp(op).value))

    @property
    def any_protected(self) -> bool:
        return any(self.is_protected(op) for op in CrudOp)


class HookFlags(BaseModel):
    """Which lifecycle hooks the entity declares."""

    model_config = _IR_CONFIG

    before_create: bool = False
    after_create: bool = False
    before_update: bool = False
    after_update: bool = False
    before_remove: bool = False
    after_remove: bool = False

    def is_enabled(self, hook: HookName) -> bool:
        return bool(getattr(self, HookName(hook).attribute))

    @property
    def enabled(self) -> List[HookName]:
        return [hook for hook in HookName if self.is_enabled(hook)]

    @property
    def any_enabled(self) -> bool:
        return bool(self.enabled)


class SourceEndpoints(BaseModel):
    """``"METHOD /path"`` strings; empty means "use the default"."""

    model_config = _IR_CONFIG

    list: str = ""
    get: str = ""
    create: str = ""
    update: str = ""
    delete: str = ""


class SourceAuth(BaseModel):
    model_config = _IR_CONFIG

    type: SourceAuthType
    header: str


class ExternalSourceConfig(BaseModel):
    """An entity (or the whole manifest) backed by an external REST API."""

    model_config = _IR_CONFIG

    base_url: str = Field(..., min_length=1)
    path_prefix: str = ""
    resource_name: Optional[str] = None
    endpoints: SourceEndpoints = Field(default_factory=SourceEndpoints)
    auth: Optional[SourceAuth] = None


class EntityIR(BaseModel):
    """
    Canonical compiled entity.

    ``protection`` and ``hooks`` are always fully resolved; generators never
    see partial maps.
    """

    model_config = _IR_CONFIG

    name: str = Field(..., min_length=1)
    fields: Dict[str, FieldConfig]
    relations: Dict[str, RelationIR] = Field(default_factory=dict)
    behaviors: Behaviors = Field(default_factory=Behaviors)
    protection: ProtectionMap = Field(default_factory=ProtectionMap)
    hooks: HookFlags = Field(default_factory=HookFlags)
    source: Optional[ExternalSourceConfig] = None

    @model_validator(mode="after")
    def _check_fields(self) -> "EntityIR":
        for name, cfg in self.fields.items():
            if name in RESERVED_FIELD_NAMES:
                raise ValueError(
                    f"Field '{name}' on '{self.name}' collides with a managed column"
                )
            if cfg.type == FieldType.COMPUTED:
                unknown: List[str] = [
                    src
                    for src in cfg.source_fields
                    if src not in self.fields or not self.fields[src].is_stored
                ]
                if unknown:
                    raise ValueError(
                        f"Computed field '{self.name}.{name}' depends on unknown "
                        f"fields: {unknown}"
                    )
        for rel_name, rel in self.relations.items():
            if rel.kind != RelationKind.HAS_ONE:
                continue
            fk: str = rel.foreign_key or f"{rel_name}Id"
            if fk in self.fields or fk in RESERVED_FIELD_NAMES:
                raise ValueError(
                    f"Foreign key '{fk}' of '{self.name}.{rel_name}' collides "
                    f"with another field"
                )
        return self

    # -- Derived views ------------------------------------------------------

    @property
    def stored_fields(self) -> Dict[str, FieldConfig]:
        return {n: f for n, f in self.fields.items() if f.is_stored}

    @property
    def computed_fields(self) -> Dict[str, FieldConfig]:
        return {n: f for n, f in self.fields.items() if not f.is_stored}

    @property
    def text_fields(self) -> List[str]:
        return [n for n, f in self.fields.items() if f.type == FieldType.TEXT]

    @property
    def has_one_relations(self) -> Dict[str, RelationIR]:
        return {
            n: r for n, r in self.relations.items() if r.kind == RelationKind.HAS_ONE
        }

    @property
    def foreign_keys(self) -> Dict[str, RelationIR]:
        """hasOne relations keyed by their foreign-key field name."""
        return {
            r.foreign_key or f"{n}Id": r for n, r in self.has_one_relations.items()
        }

    def __repr__(self) -> str:
        return (
            f"<EntityIR {self.name}: {len(self.fields)} fields, "
            f"{len(self.relations)} relations>"
        )


# ---------------------------------------------------------------------------
# Manifest-level IR
# ---------------------------------------------------------------------------


class ModeConfig(BaseModel):
    """Generation mode plus the generator categories it includes."""

    model_config = _IR_CONFIG

    type: ModeType = ModeType.FULL
    include: Tuple[str, ...] = MODE_CATEGORIES

    def allows(self, category: Optional[str]) -> bool:
        """Categories outside the known set are always allowed."""
        if self.type == ModeType.FULL:
            return True
        if self.type == ModeType.HEADLESS and category == "schema":
            return False
        if category is None or category not in MODE_CATEGORIES:
            return True
        return category in self.include


class DatabaseConfig(BaseModel):
    model_config = _IR_CONFIG

    type: DatabaseType
    file: Optional[str] = None
    url: Optional[str] = None


class AuthConfig(BaseModel):
    model_config = _IR_CONFIG

    enabled: bool = False
    providers: Tuple[str, ...] = ()
    session_strategy: str = "jwt"


class I18nConfig(BaseModel):
    model_config = _IR_CONFIG

    languages: Tuple[str, ...] = ("en",)
    default_language: str = "en"
    output_dir: str = "./messages"

    @property
    def is_multilingual(self) -> bool:
        return len(self.languages) > 1


class TenancyConfig(BaseModel):
    model_config = _IR_CONFIG

    enabled: bool = False
    field: str = "organizationId"


class LoggingConfig(BaseModel):
    model_config = _IR_CONFIG

    enabled: bool = False
    level: str = "info"
    format: str = "json"


class TelemetryConfig(BaseModel):
    model_config = _IR_CONFIG

    enabled: bool = False
    events: Tuple[str, ...] = ()


class AuditLogConfig(BaseModel):
    model_config = _IR_CONFIG

    enabled: bool = False
    entity: Optional[str] = None


class ObservabilityConfig(BaseModel):
    model_config = _IR_CONFIG

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    audit: AuditLogConfig = Field(default_factory=AuditLogConfig)


class ManifestIR(BaseModel):
    """
    The root model consumed by every generator.

    Invariants enforced on construction: unique entity names, relation
    targets that exist, and a database whenever ``mode`` is ``full``.
    """

    model_config = _IR_CONFIG

    name: str = "app"
    version: str = "0.1.0"
    entities: Tuple[EntityIR, ...]
    mode: ModeConfig = Field(default_factory=ModeConfig)
    database: Optional[DatabaseConfig] = None
    auth: AuthConfig = Field(default_factory=AuthConfig)
    i18n: I18nConfig = Field(default_factory=I18nConfig)
    tenancy: TenancyConfig = Field(default_factory=TenancyConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    defaults: Behaviors = Field(default_factory=Behaviors)
    source: Optional[ExternalSourceConfig] = None

    @model_validator(mode="after")
    def _check_manifest(self) -> "ManifestIR":
        if self.mode.type == ModeType.FULL and self.database is None:
            raise ValueError(
                "Mode 'full' requires database configuration. Add a database "
                "or use mode 'headless'."
            )
        names: List[str] = [e.name for e in self.entities]
        if len(names) != len(set(names)):
            dupes: List[str] = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate entity names: {dupes}")
        known: Set[str] = set(names)
        for entity in self.entities:
            for rel_name, rel in entity.relations.items():
                if rel.target not in known:
                    raise ValueError(
                        f"Relation '{entity.name}.{rel_name}' targets unknown "
                        f"entity '{rel.target}'"
                    )
        return self

    def get_entity(self, name: str) -> Optional[EntityIR]:
        for entity in self.entities:
            if entity.name == name:
                return entity
        return None

    def requires_auth(self, entity: EntityIR, op: CrudOp) -> bool:
        """Protection only escalates access when auth is enabled."""
        return self.auth.enabled and entity.protection.is_protected(op)

    def source_for(self, entity: EntityIR) -> Optional[ExternalSourceConfig]:
        """Entity-level source wins over the manifest-level one."""
        return entity.source or self.source

    def is_external(self, entity: EntityIR) -> bool:
        return self.source_for(entity) is not None

    @property
    def stored_entities(self) -> List[EntityIR]:
        """Entities persisted in the configured database."""
        if self.database is None:
            return []
        return [e for e in self.entities if not self.is_external(e)]

    @property
    def external_entities(self) -> List[EntityIR]:
        return [e for e in self.entities if self.is_external(e)]

    @property
    def entity_names(self) -> List[str]:
        return [e.name for e in self.entities]

    def dependency_order(self, names: Optional[List[str]] = None) -> List[str]:
        """
        Entity names ordered so ``hasOne`` targets come before their owners.

        Uses Kahn's algorithm over declaration order; members of a cycle are
        appended in declaration order once nothing else can be placed.
        """
        selected: List[str] = names if names is not None else self.entity_names
        in_degree: Dict[str, int] = {n: 0 for n in selected}
        adjacency: Dict[str, List[str]] = {n: [] for n in selected}

        for name in selected:
            entity: Optional[EntityIR] = self.get_entity(name)
            if entity is None:
                continue
            targets: Set[str] = set()
            for rel in entity.has_one_relations.values():
                if rel.target != name and rel.target in in_degree:
                    targets.add(rel.target)
            for target in sorted(targets, key=selected.index):
                adjacency[target].append(name)
                in_degree[name] += 1

        queue: List[str] = [n for n in selected if in_degree[n] == 0]
        result: List[str] = []

        while queue:
            node: str = queue.pop(0)
            result.append(node)
            for neighbour in adjacency[node]:
                in_degree[neighbour] -= 1
                if in_degree[neighbour] == 0:
                    queue.append(neighbour)

        if len(result) != len(selected):
            placed: Set[str] = set(result)
            remaining: List[str] = [n for n in selected if n not in placed]
            logger.warning(
                "Circular hasOne dependency between %s - using declaration order.",
                remaining,
            )
            result.extend(remaining)

        return result

    def __repr__(self) -> str:
        return (
            f"<ManifestIR {self.name}: {len(self.entities)} entities, "
            f"mode={self.mode.type.value}>"
        )


# ---------------------------------------------------------------------------
# Output configuration & generated files
# ---------------------------------------------------------------------------


class OutputConfig(BaseModel):
    """Options that shape the emitted project rather than its semantics."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    package_name: str = Field(
        default="app",
        pattern=r"^[a-z_][a-z0-9_]*$",
        description="Import name of the generated package.",
    )
    api_prefix: str = Field(default="/api", description="Mount point of all routers.")
    seed_count: int = Field(default=10, ge=1, le=1000)
    project_title: Optional[str] = None

    @field_validator("api_prefix")
    @classmethod
    def _normalise_prefix(cls, v: str) -> str:
        stripped: str = v.strip("/")
        return f"/{stripped}" if stripped else ""


class GeneratedFile(BaseModel):
    """A single file produced by a generator; never written by generators."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = Field(..., min_length=1, description="Path relative to output root.")
    content: str = Field(..., description="Full file content.")

    @computed_field  # type: ignore[misc]
    @property
    def line_count(self) -> int:
        return count_lines(self.content)

    @computed_field  # type: ignore[misc]
    @property
    def size_bytes(self) -> int:
        return len(self.content.encode("utf-8"))

    @computed_field  # type: ignore[misc]
    @property
    def checksum(self) -> str:
        return sha256_hex(self.content)

    def __repr__(self) -> str:
        return f"<GeneratedFile {self.path} ({self.line_count} lines)>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "FieldType",
    "ValidationKind",
    "RelationKind",
    "CrudOp",
    "HookName",
    "ModeType",
    "DatabaseType",
    "SourceAuthType",
    "RESERVED_FIELD_NAMES",
    "MODE_CATEGORIES",
    "DEFAULT_MODE_INCLUDES",
    "Validation",
    "FieldConfig",
    "PivotConfig",
    "RelationIR",
    "Behaviors",
    "ProtectionMap",
    "HookFlags",
    "SourceEndpoints",
    "SourceAuth",
    "ExternalSourceConfig",
    "EntityIR",
    "ModeConfig",
    "DatabaseConfig",
    "AuthConfig",
    "I18nConfig",
    "TenancyConfig",
    "LoggingConfig",
    "TelemetryConfig",
    "AuditLogConfig",
    "ObservabilityConfig",
    "ManifestIR",
    "OutputConfig",
    "GeneratedFile",
]

logger.debug("schemaforge.models loaded - %d public symbols.", len(__all__))
