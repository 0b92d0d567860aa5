# File: schemaforge/generators/storage.py
"""
NexaFlow SchemaForge - Storage Schema Generator
=================================================
Maps every database-backed entity to a SQLAlchemy 2.0 declarative model
(``Mapped[]`` / ``mapped_column()``) and every many-to-many relation to a
junction ``Table``.

Emitted files::

    {pkg}/database.py            engine, session factory, Base, get_db
    {pkg}/models/{entity}.py     one model per stored entity
    {pkg}/models/junctions.py    junction tables (only when needed)
    {pkg}/models/__init__.py     imports every model so metadata is complete

Column rules:
    - attribute names keep the camelCase field name, column names are
      snake_case (``publishedAt`` -> ``published_at``);
    - clauses are always emitted as ``nullable``, ``unique``, ``default``;
    - types come from ``ctx.dialect``; computed fields never reach storage;
    - ``hasOne`` adds a ``String(36)`` foreign-key column, nullable only when
      the relation is optional.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from schemaforge.context import GeneratorContext
from schemaforge.dialects import Dialect
from schemaforge.generators.base import INDENT, INDENT2, Generator
from schemaforge.models import (
    DatabaseType,
    EntityIR,
    FieldConfig,
    FieldType,
    GeneratedFile,
    ManifestIR,
    PivotConfig,
    RelationKind,
)
from schemaforge.utils import (
    build_import_block,
    column_name,
    py_literal,
    table_name,
    to_snake_case,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generators.storage")

ID_TYPE: str = "String(36)"
ACTOR_TYPE: str = "String(64)"


@dataclass(frozen=True)
class JunctionSpec:
    """One junction table derived from a many-side relation."""

    name: str
    left_table: str
    right_table: str
    left_column: str
    right_column: str
    pivot_fields: Dict[str, FieldConfig] = field(default_factory=dict)
    self_referential: bool = False


def collect_junctions(manifest: ManifestIR) -> List[JunctionSpec]:
    """
    Junction tables for the stored entities, in declaration order.

    ``belongsToMany`` between two entities yields one table per unordered pair,
    whichever side declares it first.  A self-referential ``belongsToMany`` or
    ``hasMany`` yields ``{entity}_{relation}`` with ``source_id``/``target_id``.
    """
    stored: Set[str] = {e.name for e in manifest.stored_entities}
    seen_pairs: Set[Tuple[str, str]] = set()
    seen_names: Set[str] = set()
    junctions: List[JunctionSpec] = []

    for entity in manifest.stored_entities:
        for rel_name, rel in entity.relations.items():
            if rel.kind == RelationKind.HAS_ONE or rel.target not in stored:
                continue
            pivot: PivotConfig = rel.pivot or PivotConfig()
            own_table: str = table_name(entity.name)

            if rel.is_self_referential(entity.name):
                name: str = pivot.table_name or (
                    f"{to_snake_case(entity.name)}_{to_snake_case(rel_name)}"
                )
                if name in seen_names:
                    continue
                seen_names.add(name)
                junctions.append(
                    JunctionSpec(
                        name=name,
                        left_table=own_table,
                        right_table=own_table,
                        left_column="source_id",
                        right_column="target_id",
                        pivot_fields=dict(pivot.fields),
                        self_referential=True,
                    )
                )
                continue

            if rel.kind != RelationKind.BELONGS_TO_MANY:
                continue
            first, second = sorted((entity.name, rel.target))
            if (first, second) in seen_pairs:
                continue
            name = pivot.table_name or f"{to_snake_case(first)}_{to_snake_case(second)}"
            if name in seen_names:
                continue
            seen_pairs.add((first, second))
            seen_names.add(name)
            junctions.append(
                JunctionSpec(
                    name=name,
                    left_table=table_name(first),
                    right_table=table_name(second),
                    left_column=f"{to_snake_case(first)}_id",
                    right_column=f"{to_snake_case(second)}_id",
                    pivot_fields=dict(pivot.fields),
                )
            )
    return junctions


def column_clauses(field_cfg: FieldConfig) -> List[str]:
    """``nullable``, ``unique`` and ``default`` clauses, always in that order."""
    clauses: List[str] = [f"nullable={not field_cfg.required}"]
    if field_cfg.unique:
        clauses.append("unique=True")
    if field_cfg.default is not None:
        clauses.append(f"default={default_expression(field_cfg)}")
    return clauses


def default_expression(field_cfg: FieldConfig) -> str:
    if field_cfg.type == FieldType.DATE:
        if field_cfg.default == "now":
            return "utcnow"
        return f"datetime.fromisoformat({py_literal(str(field_cfg.default))})"
    return py_literal(field_cfg.default)


def field_column(
    entity_name: str, field_name: str, field_cfg: FieldConfig, dialect: Dialect
) -> Tuple[str, Set[str]]:
    """One ``name: Mapped[...] = mapped_column(...)`` line and its SQLAlchemy imports."""
    type_expr, sa_imports = dialect.column_type(entity_name, field_name, field_cfg)
    py_type: str = dialect.python_type(field_cfg)
    annotation: str = f"Mapped[{py_type}]" if field_cfg.required else f"Mapped[Optional[{py_type}]]"
    args: List[str] = [py_literal(column_name(field_name)), type_expr]
    args.extend(column_clauses(field_cfg))
    return f"{field_name}: {annotation} = mapped_column({', '.join(args)})", sa_imports


class StorageGenerator(Generator):
    name = "storage"
    description = "SQLAlchemy declarative models and junction tables"
    category = "schema"

    def generate(self, manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]:
        if manifest.database is None or not manifest.mode.allows("schema"):
            return []
        files: List[GeneratedFile] = [self._database_module(manifest, ctx)]
        stored: List[EntityIR] = manifest.stored_entities
        for entity in stored:
            files.append(self._model_module(manifest, entity, ctx))
        junctions: List[JunctionSpec] = collect_junctions(manifest)
        if junctions:
            files.append(self._junction_module(junctions, ctx))
        files.append(self._models_init(stored, bool(junctions), ctx))
        logger.debug("Storage: %d models, %d junction tables.", len(stored), len(junctions))
        return files

    # ===================================================================
    # database.py
    # ===================================================================

    def _database_module(self, manifest: ManifestIR, ctx: GeneratorContext) -> GeneratedFile:
        env_var, default_url = database_url_source(manifest)
        dialect: Dialect = ctx.dialect
        engine_args: str = dialect.engine_arguments()
        lines: List[str] = self.module_header("Database engine, session factory and declarative base.")
        lines.extend([
            "import functools",
            "import os",
            "from datetime import datetime, timezone",
            "from typing import Dict, Iterator",
            "",
            "from sqlalchemy import create_engine",
            "from sqlalchemy.engine import Engine",
            "from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker",
            "",
            f"DATABASE_URL_ENV: str = {py_literal(env_var)}",
            f"DEFAULT_DATABASE_URL: str = {py_literal(default_url)}",
            f"URL_SCHEME_ALIASES: Dict[str, str] = {py_literal(dict(sorted(dialect.url_scheme_aliases.items())))}",
            "",
            "",
            "class Base(DeclarativeBase):",
            f'{INDENT}"""SQLAlchemy declarative base."""',
            "",
            "",
            "def utcnow() -> datetime:",
        ])
        if dialect.timezone_datetime:
            lines.append(f"{INDENT}return datetime.now(timezone.utc)")
        else:
            lines.append(f'{INDENT}"""Naive UTC timestamp for backends without time zones."""')
            lines.append(f"{INDENT}return datetime.now(timezone.utc).replace(tzinfo=None)")
        lines.extend([
            "",
            "",
            "def database_url() -> str:",
            f"{INDENT}url: str = os.environ.get(DATABASE_URL_ENV) or DEFAULT_DATABASE_URL",
            f"{INDENT}for alias, scheme in URL_SCHEME_ALIASES.items():",
            f"{INDENT2}if url.startswith(alias):",
            f"{INDENT2}{INDENT}url = scheme + url[len(alias):]",
            f"{INDENT}return url",
            "",
            "",
            "@functools.lru_cache(maxsize=None)",
            "def get_engine() -> Engine:",
            f"{INDENT}return create_engine(database_url(), pool_pre_ping=True"
            + (f", {engine_args})" if engine_args else ")"),
            "",
            "",
            "@functools.lru_cache(maxsize=None)",
            "def get_session_factory() -> sessionmaker:",
            f"{INDENT}return sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)",
            "",
            "",
            "def get_db() -> Iterator[Session]:",
            f'{INDENT}"""FastAPI dependency - yields a DB session."""',
            f"{INDENT}session: Session = get_session_factory()()",
            f"{INDENT}try:",
            f"{INDENT2}yield session",
            f"{INDENT}finally:",
            f"{INDENT2}session.close()",
        ])
        return self.python_file(self.package_path(ctx, "database.py"), lines)

    # ===================================================================
    # models/{entity}.py
    # ===================================================================

    def _model_module(
        self, manifest: ManifestIR, entity: EntityIR, ctx: GeneratorContext
    ) -> GeneratedFile:
        names = ctx.names(entity)
        dialect: Dialect = ctx.dialect
        stored_names: Set[str] = {e.name for e in manifest.stored_entities}
        sa_imports: Set[str] = {"String"}
        python_imports: Dict[str, Set[str]] = {"uuid": set(), "typing": set()}
        needs_utcnow: bool = False
        body: List[str] = []

        body.append(f"class {entity.name}(Base):")
        body.append(f'{INDENT}"""ORM model for the \'{names.table}\' table."""')
        body.append("")
        body.append(f'{INDENT}__tablename__ = "{names.table}"')
        body.append("")
        body.append(f"{INDENT}# --- Columns ---")
        body.append(
            f'{INDENT}id: Mapped[str] = mapped_column("id", {ID_TYPE}, primary_key=True, '
            f"default=lambda: str(uuid.uuid4()))"
        )

        for field_name, field_cfg in entity.stored_fields.items():
            line, extra = field_column(entity.name, field_name, field_cfg, dialect)
            sa_imports |= extra
            body.append(f"{INDENT}{line}")
            if not field_cfg.required:
                python_imports["typing"].add("Optional")
            if field_cfg.type == FieldType.DATE:
                python_imports.setdefault("datetime", set()).add("datetime")
                needs_utcnow = needs_utcnow or field_cfg.default == "now"

        foreign_keys = entity.foreign_keys
        if foreign_keys:
            body.append("")
            body.append(f"{INDENT}# --- Foreign keys ---")
        for fk_name, rel in foreign_keys.items():
            references: str = ""
            if rel.target in stored_names:
                references = f', ForeignKey("{table_name(rel.target)}.id")'
                sa_imports.add("ForeignKey")
            annotation: str = "Mapped[Optional[str]]" if rel.optional else "Mapped[str]"
            if rel.optional:
                python_imports["typing"].add("Optional")
            body.append(
                f"{INDENT}{fk_name}: {annotation} = mapped_column("
                f'"{column_name(fk_name)}", {ID_TYPE}{references}, nullable={rel.optional})'
            )

        behavior_lines: List[str] = self._behavior_columns(manifest, entity, dialect)
        if behavior_lines:
            body.append("")
            body.append(f"{INDENT}# --- Behaviors ---")
            body.extend(behavior_lines)
            python_imports.setdefault("datetime", set())
            if entity.behaviors.timestamps or entity.behaviors.soft_delete:
                python_imports["datetime"].add("datetime")
                sa_imports.add(dialect.datetime_type()[0].split("(")[0])
            needs_utcnow = needs_utcnow or entity.behaviors.timestamps
            if entity.behaviors.soft_delete or manifest.tenancy.enabled or entity.behaviors.audit:
                python_imports["typing"].add("Optional")
            if not python_imports["datetime"]:
                del python_imports["datetime"]

        body.append("")
        body.append(f"{INDENT}def __repr__(self) -> str:")
        body.append(f'{INDENT2}return f"<{entity.name} id={{self.id!r}}>"')

        database_names: Set[str] = {"Base"}
        if needs_utcnow:
            database_names.add("utcnow")
        imports: Dict[str, Set[str]] = {
            "sqlalchemy": sa_imports,
            "sqlalchemy.orm": {"Mapped", "mapped_column"},
            f"{ctx.config.package_name}.database": database_names,
        }
        imports.update({k: v for k, v in python_imports.items() if k == "uuid" or v})

        lines: List[str] = self.module_header(f"SQLAlchemy ORM model for entity: {entity.name}")
        lines.append(build_import_block(imports))
        lines.append("")
        lines.append("")
        lines.extend(body)
        return self.python_file(self.package_path(ctx, "models", f"{names.module}.py"), lines)

    @staticmethod
    def _behavior_columns(manifest: ManifestIR, entity: EntityIR, dialect: Dialect) -> List[str]:
        dt_type: str = dialect.datetime_type()[0]
        lines: List[str] = []
        if entity.behaviors.timestamps:
            lines.append(
                f'{INDENT}createdAt: Mapped[datetime] = mapped_column("created_at", {dt_type}, '
                f"nullable=False, default=utcnow)"
            )
            lines.append(
                f'{INDENT}updatedAt: Mapped[datetime] = mapped_column("updated_at", {dt_type}, '
                f"nullable=False, default=utcnow, onupdate=utcnow)"
            )
        if entity.behaviors.soft_delete:
            lines.append(
                f'{INDENT}deletedAt: Mapped[Optional[datetime]] = mapped_column("deleted_at", '
                f"{dt_type}, nullable=True)"
            )
        if manifest.tenancy.enabled:
            tenancy_field: str = manifest.tenancy.field
            lines.append(
                f"{INDENT}{tenancy_field}: Mapped[Optional[str]] = mapped_column("
                f'"{column_name(tenancy_field)}", {ACTOR_TYPE}, nullable=True, index=True)'
            )
        if entity.behaviors.audit:
            lines.append(
                f'{INDENT}createdBy: Mapped[Optional[str]] = mapped_column("created_by", '
                f"{ACTOR_TYPE}, nullable=True)"
            )
            lines.append(
                f'{INDENT}updatedBy: Mapped[Optional[str]] = mapped_column("updated_by", '
                f"{ACTOR_TYPE}, nullable=True)"
            )
        return lines

    # ===================================================================
    # models/junctions.py
    # ===================================================================

    def _junction_module(self, junctions: List[JunctionSpec], ctx: GeneratorContext) -> GeneratedFile:
        sa_imports: Set[str] = {"Column", "ForeignKey", "String", "Table"}
        needs_datetime: bool = False
        body: List[str] = []
        for junction in junctions:
            var: str = to_snake_case(junction.name)
            body.append(f"{var} = Table(")
            body.append(f'{INDENT}"{junction.name}",')
            body.append(f"{INDENT}Base.metadata,")
            body.append(
                f'{INDENT}Column("{junction.left_column}", {ID_TYPE}, '
                f'ForeignKey("{junction.left_table}.id"), primary_key=True),'
            )
            body.append(
                f'{INDENT}Column("{junction.right_column}", {ID_TYPE}, '
                f'ForeignKey("{junction.right_table}.id"), primary_key=True),'
            )
            for field_name, field_cfg in junction.pivot_fields.items():
                type_expr, extra = ctx.dialect.column_type(junction.name, field_name, field_cfg)
                sa_imports |= extra
                args: List[str] = [py_literal(column_name(field_name)), type_expr]
                args.extend(column_clauses(field_cfg))
                if field_cfg.type == FieldType.DATE and field_cfg.default not in (None, "now"):
                    needs_datetime = True
                body.append(f"{INDENT}Column({', '.join(args)}),")
            body.append(")")
            body.append("")
            body.append("")

        database_names: Set[str] = {"Base"}
        if any(
            f.type == FieldType.DATE and f.default == "now"
            for j in junctions
            for f in j.pivot_fields.values()
        ):
            database_names.add("utcnow")
        imports: Dict[str, Set[str]] = {
            "sqlalchemy": sa_imports,
            f"{ctx.config.package_name}.database": database_names,
        }
        if needs_datetime:
            imports["datetime"] = {"datetime"}
        lines: List[str] = self.module_header("Junction tables for many-to-many relations.")
        lines.append(build_import_block(imports))
        lines.append("")
        lines.append("")
        lines.extend(body)
        return self.python_file(self.package_path(ctx, "models", "junctions.py"), lines)

    # ===================================================================
    # models/__init__.py
    # ===================================================================

    def _models_init(
        self, stored: List[EntityIR], has_junctions: bool, ctx: GeneratorContext
    ) -> GeneratedFile:
        pkg: str = ctx.config.package_name
        lines: List[str] = ['"""ORM models; importing this package registers every table."""', ""]
        exported: List[str] = []
        for entity in stored:
            lines.append(f"from {pkg}.models.{ctx.names(entity).module} import {entity.name}")
            exported.append(entity.name)
        if has_junctions:
            lines.append(f"from {pkg}.models import junctions")
            exported.append("junctions")
        lines.append(f"from {pkg}.database import Base")
        exported.append("Base")
        lines.append("")
        lines.append(f"__all__ = {py_literal(exported)}")
        return self.python_file(self.package_path(ctx, "models", "__init__.py"), lines)


def database_url_source(manifest: ManifestIR) -> Tuple[str, str]:
    """
    ``(environment variable, default URL)`` for the generated engine.

    A URL written as ``env:NAME`` is read from ``NAME`` at runtime.
    """
    database = manifest.database
    if database is None:
        return "DATABASE_URL", ""
    url: Optional[str] = database.url
    if url and url.startswith("env:"):
        return url[len("env:"):], ""
    if url:
        return "DATABASE_URL", url
    if database.type == DatabaseType.SQLITE:
        return "DATABASE_URL", f"sqlite:///{database.file or './app.db'}"
    if database.type == DatabaseType.POSTGRES:
        return "DATABASE_URL", f"postgresql://localhost/{to_snake_case(manifest.name)}"
    return "DATABASE_URL", f"mysql://localhost/{to_snake_case(manifest.name)}"


__all__: List[str] = [
    "JunctionSpec",
    "collect_junctions",
    "column_clauses",
    "field_column",
    "database_url_source",
    "StorageGenerator",
]

logger.debug("schemaforge.generators.storage loaded - %d public symbols.", len(__all__))
