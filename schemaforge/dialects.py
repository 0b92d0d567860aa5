# File: schemaforge/dialects.py
"""
NexaFlow SchemaForge - Storage Dialects
=========================================
One capability object per storage backend.  Generators never branch on the
database name; they ask the ``Dialect`` carried by the generator context
(``ctx.dialect.column_type(...)``, ``ctx.dialect.search_operator``, ...).

Type mapping (SQLAlchemy 2.0 expressions):

=========  ======================  =====================  ==================
field      sqlite                  postgres               mysql
=========  ======================  =====================  ==================
text       String(n) / Text        String(n) / Text       String(n) / Text*
number     Integer† / Float        Integer† / Float       Integer† / Float
boolean    Integer                 Boolean                Boolean
date       DateTime                DateTime(tz=True)      DateTime
enum       String(longest)         Enum(native)           Enum(native)
=========  ======================  =====================  ==================

``*`` unique text without ``maxLength`` becomes ``String(255)`` on MySQL.
``†`` when the field carries an ``integer`` validation.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict

from schemaforge.errors import GeneratorInvariantError
from schemaforge.models import DatabaseConfig, DatabaseType, FieldConfig, FieldType, ValidationKind
from schemaforge.utils import py_literal, to_snake_case

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.dialects")

# (expression, names to import from sqlalchemy)
ColumnType = Tuple[str, Set[str]]


class Dialect(BaseModel):
    """Capabilities of one storage backend."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    native_enum: bool = False
    native_boolean: bool = True
    timezone_datetime: bool = False
    unique_text_requires_length: bool = False
    search_operator: str = "contains"
    engine_kwargs: Dict[str, Any] = {}
    url_scheme_aliases: Dict[str, str] = {}

    # -- Column types ------------------------------------------------------

    def column_type(self, entity_name: str, field_name: str, field: FieldConfig) -> ColumnType:
        """SQLAlchemy type expression for a stored field."""
        if field.type == FieldType.TEXT:
            max_length: Any = field.validation_value(ValidationKind.MAX_LENGTH)
            if max_length:
                return f"String({int(max_length)})", {"String"}
            if field.unique and self.unique_text_requires_length:
                return "String(255)", {"String"}
            return "Text", {"Text"}
        if field.type == FieldType.NUMBER:
            if field.is_integer:
                return "Integer", {"Integer"}
            return "Float", {"Float"}
        if field.type == FieldType.BOOLEAN:
            return self.boolean_type()
        if field.type == FieldType.DATE:
            return self.datetime_type()
        if field.type == FieldType.ENUM:
            return self.enum_type(entity_name, field_name, field.enum_values or ())
        raise GeneratorInvariantError.unhandled("stored field type", field.type)

    def boolean_type(self) -> ColumnType:
        if self.native_boolean:
            return "Boolean", {"Boolean"}
        return "Integer", {"Integer"}

    def datetime_type(self) -> ColumnType:
        if self.timezone_datetime:
            return "DateTime(timezone=True)", {"DateTime"}
        return "DateTime", {"DateTime"}

    def enum_type(
        self, entity_name: str, field_name: str, values: Tuple[str, ...]
    ) -> ColumnType:
        if self.native_enum:
            members: str = ", ".join(py_literal(v) for v in values)
            type_name: str = f"{to_snake_case(entity_name)}_{to_snake_case(field_name)}_enum"
            return f'Enum({members}, name="{type_name}", native_enum=True)', {"Enum"}
        longest: int = max((len(v) for v in values), default=1)
        return f"String({longest})", {"String"}

    def python_type(self, field: FieldConfig) -> str:
        """Annotation used inside ``Mapped[...]`` for a stored field."""
        mapping: Dict[FieldType, str] = {
            FieldType.TEXT: "str",
            FieldType.ENUM: "str",
            FieldType.NUMBER: "int" if field.is_integer else "float",
            FieldType.BOOLEAN: "bool",
            FieldType.DATE: "datetime",
        }
        if field.type not in mapping:
            raise GeneratorInvariantError.unhandled("stored field type", field.type)
        return mapping[field.type]

    # -- Connection ---------------------------------------------------------

    def engine_arguments(self) -> str:
        """Extra keyword arguments for ``create_engine`` as source text."""
        return ", ".join(f"{k}={py_literal(v)}" for k, v in sorted(self.engine_kwargs.items()))


# ---------------------------------------------------------------------------
# Built-in dialects
# ---------------------------------------------------------------------------

SQLITE: Dialect = Dialect(
    name="sqlite",
    native_enum=False,
    native_boolean=False,
    engine_kwargs={"connect_args": {"check_same_thread": False}},
)

POSTGRES: Dialect = Dialect(
    name="postgres",
    native_enum=True,
    timezone_datetime=True,
    search_operator="icontains",
    url_scheme_aliases={"postgres://": "postgresql://"},
)

MYSQL: Dialect = Dialect(
    name="mysql",
    native_enum=True,
    unique_text_requires_length=True,
)

# Headless / external-only runs: nothing is stored.
NONE: Dialect = Dialect(name="none")

_DIALECTS: Dict[DatabaseType, Dialect] = {
    DatabaseType.SQLITE: SQLITE,
    DatabaseType.POSTGRES: POSTGRES,
    DatabaseType.MYSQL: MYSQL,
}


def get_dialect(database: Optional[DatabaseConfig]) -> Dialect:
    """The dialect for *database*, or :data:`NONE` when there is none."""
    if database is None:
        return NONE
    return _DIALECTS[database.type]


__all__: List[str] = [
    "ColumnType",
    "Dialect",
    "SQLITE",
    "POSTGRES",
    "MYSQL",
    "NONE",
    "get_dialect",
]

logger.debug("schemaforge.dialects loaded - %d public symbols.", len(__all__))
