# File: schemaforge/relations.py
"""
NexaFlow SchemaForge - Relation Builders
==========================================
Immutable builders for associations between entities::

    author = has_one("Author")                    # FK column ``authorId``
    editor = has_one("Author").field("editorId").optional()
    comments = has_many("Comment")
    tags = belongs_to_many("Tag").through(
        table="post_tags", fields={"position": number().integer()}
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from schemaforge.errors import ConfigurationError
from schemaforge.fields import FieldBuilder, resolve_field
from schemaforge.models import FieldConfig, PivotConfig, RelationIR, RelationKind

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.relations")


@dataclass(frozen=True)
class RelationBuilder:
    """Wraps a frozen ``RelationIR``; every method returns a new builder."""

    config: RelationIR

    def _with(self, **changes: Any) -> "RelationBuilder":
        return type(self)(self.config.model_copy(update=changes))

    def field(self, name: str) -> "RelationBuilder":
        """Name of the foreign-key field (``hasOne``) on the owning entity."""
        return self._with(foreign_key=name)

    def optional(self) -> "RelationBuilder":
        return self._with(optional=True)

    def build(self) -> RelationIR:
        return self.config


class BelongsToManyBuilder(RelationBuilder):
    def through(
        self,
        table: Optional[str] = None,
        fields: Optional[Mapping[str, Union[FieldBuilder, FieldConfig]]] = None,
    ) -> "BelongsToManyBuilder":
        """Override the junction table name and add extra pivot columns."""
        pivot_fields: Dict[str, FieldConfig] = {
            name: resolve_field(value) for name, value in (fields or {}).items()
        }
        return self._with(pivot=PivotConfig(table_name=table, fields=pivot_fields))


def has_one(entity: str) -> RelationBuilder:
    return RelationBuilder(RelationIR(kind=RelationKind.HAS_ONE, target=entity))


def has_many(entity: str) -> RelationBuilder:
    return RelationBuilder(RelationIR(kind=RelationKind.HAS_MANY, target=entity))


def belongs_to_many(entity: str) -> BelongsToManyBuilder:
    return BelongsToManyBuilder(
        RelationIR(kind=RelationKind.BELONGS_TO_MANY, target=entity)
    )


def resolve_relation(
    value: Union[RelationBuilder, RelationIR, Mapping[str, Any]],
) -> RelationIR:
    """Accept a builder, a compiled ``RelationIR`` or an IR-shaped mapping."""
    if isinstance(value, RelationBuilder):
        return value.build()
    if isinstance(value, RelationIR):
        return value
    if isinstance(value, Mapping):
        return RelationIR.model_validate(dict(value))
    raise ConfigurationError(
        f"Expected a relation builder, got {type(value).__name__}"
    )


__all__: List[str] = [
    "RelationBuilder",
    "BelongsToManyBuilder",
    "has_one",
    "has_many",
    "belongs_to_many",
    "resolve_relation",
]

logger.debug("schemaforge.relations loaded - %d public symbols.", len(__all__))
