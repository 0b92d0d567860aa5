# File: schemaforge/generators/erd.py
"""
NexaFlow SchemaForge - Entity Relationship Diagram Generator
==============================================================
Renders the compiled manifest as a Mermaid ``erDiagram``::

    docs/erd.mmd    raw diagram source

The docs step embeds the same diagram in ``docs/API.md``.

Attributes carry Mermaid keys (``PK``, ``FK``, ``UK``) and a quoted comment
for ``required`` / ``computed`` / behavior columns.  Edges use crow's-foot
cardinalities:

    hasOne          }o--||   (}o--o| when optional)
    hasMany         ||--o{
    belongsToMany   }o--o{   one edge per unordered entity pair
"""

from __future__ import annotations

import logging
from typing import Dict, List, Set, Tuple

from schemaforge.context import GeneratorContext
from schemaforge.generators.base import INDENT, INDENT2, Generator
from schemaforge.models import (
    EntityIR,
    FieldConfig,
    FieldType,
    GeneratedFile,
    ManifestIR,
    RelationIR,
    RelationKind,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generators.erd")

_MERMAID_TYPES: Dict[FieldType, str] = {
    FieldType.TEXT: "string",
    FieldType.BOOLEAN: "boolean",
    FieldType.DATE: "datetime",
    FieldType.ENUM: "string",
}


def mermaid_type(cfg: FieldConfig) -> str:
    value_type: FieldType = cfg.value_type
    if value_type == FieldType.NUMBER:
        return "int" if cfg.is_integer else "float"
    return _MERMAID_TYPES.get(value_type, "string")


def relation_symbol(rel: RelationIR) -> str:
    if rel.kind == RelationKind.HAS_ONE:
        return "}o--o|" if rel.optional else "}o--||"
    if rel.kind == RelationKind.HAS_MANY:
        return "||--o{"
    return "}o--o{"


def _attribute(kind: str, name: str, keys: str = "", comment: str = "") -> str:
    parts: List[str] = [kind, name]
    if keys:
        parts.append(keys)
    if comment:
        parts.append(f'"{comment}"')
    return INDENT2 + " ".join(parts)


def _entity_block(manifest: ManifestIR, entity: EntityIR) -> List[str]:
    stored: bool = not manifest.is_external(entity)
    lines: List[str] = [f"{INDENT}{entity.name} {{", _attribute("string", "id", "PK")]
    for name, cfg in entity.fields.items():
        notes: List[str] = []
        if cfg.type == FieldType.COMPUTED:
            notes.append("computed")
        elif cfg.required:
            notes.append("required")
        keys: str = "UK" if cfg.unique else ""
        lines.append(_attribute(mermaid_type(cfg), name, keys, ", ".join(notes)))
    for fk_name, rel in entity.foreign_keys.items():
        lines.append(_attribute("string", fk_name, "FK", "" if rel.optional else "required"))
    if entity.behaviors.timestamps:
        lines.append(_attribute("datetime", "createdAt"))
        lines.append(_attribute("datetime", "updatedAt"))
    if entity.behaviors.soft_delete:
        lines.append(_attribute("datetime", "deletedAt", comment="soft delete"))
    if stored and manifest.tenancy.enabled:
        lines.append(_attribute("string", manifest.tenancy.field, comment="tenant"))
    if stored and entity.behaviors.audit:
        lines.append(_attribute("string", "createdBy", comment="audit"))
        lines.append(_attribute("string", "updatedBy", comment="audit"))
    lines.append(f"{INDENT}}}")
    return lines


def erd_lines(manifest: ManifestIR) -> List[str]:
    """The ``erDiagram`` source, one line per list item."""
    lines: List[str] = ["erDiagram"]
    for entity in manifest.entities:
        lines.extend(_entity_block(manifest, entity))

    pairs: Set[Tuple[str, str]] = set()
    for entity in manifest.entities:
        for rel_name, rel in entity.relations.items():
            if rel.kind == RelationKind.BELONGS_TO_MANY and rel.target != entity.name:
                low, high = sorted((entity.name, rel.target))
                pair: Tuple[str, str] = (low, high)
                if pair in pairs:
                    continue
                pairs.add(pair)
            lines.append(f"{INDENT}{entity.name} {relation_symbol(rel)} {rel.target} : {rel_name}")
    return lines


class ErdGenerator(Generator):
    name = "erd"
    description = "Mermaid entity relationship diagram"
    category = None

    def generate(self, manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]:
        logger.debug("ERD: %d entities.", len(manifest.entities))
        return [self.text_file("docs/erd.mmd", "\n".join(erd_lines(manifest)))]


__all__: List[str] = ["mermaid_type", "relation_symbol", "erd_lines", "ErdGenerator"]

logger.debug("schemaforge.generators.erd loaded - %d public symbols.", len(__all__))
