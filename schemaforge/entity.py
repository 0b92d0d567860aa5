# File: schemaforge/entity.py
"""
NexaFlow SchemaForge - Entity Compiler
========================================
Normalises a named set of field / relation builders plus behavior flags,
access protection and hook flags into a frozen ``EntityIR``.

Every optional-but-resolved value is default-filled here so generators never
have to guess: protection always carries all five CRUD keys, hooks all six
flags, behaviors all three flags.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from schemaforge.errors import ConfigurationError
from schemaforge.fields import FieldBuilder, resolve_field
from schemaforge.models import (
    Behaviors,
    CrudOp,
    EntityIR,
    ExternalSourceConfig,
    FieldConfig,
    HookFlags,
    HookName,
    ProtectionMap,
    RelationIR,
    RelationKind,
)
from schemaforge.relations import RelationBuilder, resolve_relation
from schemaforge.utils import PYTHON_KEYWORDS, to_snake_case

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.entity")

ENTITY_NAME_RE: re.Pattern[str] = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
FIELD_NAME_RE: re.Pattern[str] = re.compile(r"^[a-z][a-zA-Z0-9]*$")

ProtectionOption = Union[None, bool, str, Mapping[str, bool], ProtectionMap]
HooksOption = Union[None, bool, Mapping[str, bool], HookFlags]

_WRITE_OPS: frozenset = frozenset({CrudOp.CREATE, CrudOp.UPDATE, CrudOp.REMOVE})

# Attribute names the generated ORM models cannot use.
_ORM_RESERVED_NAMES: frozenset = frozenset({"metadata", "registry"})


# ---------------------------------------------------------------------------
# Shorthand normalisation
# ---------------------------------------------------------------------------


def normalize_protection(option: ProtectionOption) -> ProtectionMap:
    """
    Resolve a protection shorthand to a full map.

    ``None``/``False`` → all open; ``True``/``"all"`` → all protected;
    ``"write"`` → list/get open, writes protected; a mapping is merged over
    all-open.
    """
    if isinstance(option, ProtectionMap):
        return option
    if option is None or option is False:
        return ProtectionMap()
    if option is True or option == "all":
        return ProtectionMap(**{op.value: True for op in CrudOp})
    if option == "write":
        return ProtectionMap(**{op.value: op in _WRITE_OPS for op in CrudOp})
    if isinstance(option, Mapping):
        valid: List[str] = [op.value for op in CrudOp]
        unknown: List[str] = sorted(k for k in option if k not in valid)
        if unknown:
            raise ConfigurationError(
                f"Unknown protection key(s) {unknown}; expected {valid}"
            )
        return ProtectionMap(**{k: bool(v) for k, v in option.items()})
    raise ConfigurationError(
        f"Invalid protection value {option!r}; use true, false, 'all', 'write' "
        f"or a per-operation mapping"
    )


def normalize_hooks(option: HooksOption) -> HookFlags:
    """``True`` → every hook, ``False``/``None`` → none, mapping merged over none."""
    if isinstance(option, HookFlags):
        return option
    if option is None or option is False:
        return HookFlags()
    if option is True:
        return HookFlags(**{hook.attribute: True for hook in HookName})
    if isinstance(option, Mapping):
        known: Dict[str, str] = {}
        for hook in HookName:
            known[hook.value] = hook.attribute
            known[hook.attribute] = hook.attribute
        unknown: List[str] = sorted(k for k in option if k not in known)
        if unknown:
            raise ConfigurationError(
                f"Unknown hook name(s) {unknown}; "
                f"expected {[h.value for h in HookName]}"
            )
        return HookFlags(**{known[k]: bool(v) for k, v in option.items()})
    raise ConfigurationError(f"Invalid hooks value {option!r}")


def normalize_behaviors(
    behaviors: Union[None, Mapping[str, bool], Behaviors],
    defaults: Optional[Behaviors] = None,
) -> Behaviors:
    """Merge explicit behavior flags over the manifest-wide defaults."""
    base: Behaviors = defaults or Behaviors()
    if behaviors is None:
        return base
    if isinstance(behaviors, Behaviors):
        return behaviors
    merged: Dict[str, bool] = base.model_dump()
    for key, value in behaviors.items():
        attr: str = to_snake_case(key)
        if attr not in merged:
            raise ConfigurationError(
                f"Unknown behavior {key!r}; expected timestamps, softDelete, audit"
            )
        merged[attr] = bool(value)
    return Behaviors(**merged)


# ---------------------------------------------------------------------------
# Entity definition & compilation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntityDefinition:
    """Uncompiled entity as written by the user; see :func:`define_entity`."""

    name: str
    fields: Mapping[str, Any]
    relations: Mapping[str, Any] = field(default_factory=dict)
    behaviors: Optional[Mapping[str, bool]] = None
    protected: ProtectionOption = None
    hooks: HooksOption = None
    source: Optional[ExternalSourceConfig] = None

    def compile(self, defaults: Optional[Behaviors] = None) -> EntityIR:
        return compile_entity(self.name, self, defaults=defaults)


def define_entity(
    name: str,
    fields: Mapping[str, Union[FieldBuilder, FieldConfig]],
    relations: Optional[Mapping[str, Union[RelationBuilder, RelationIR]]] = None,
    behaviors: Optional[Mapping[str, bool]] = None,
    protected: ProtectionOption = None,
    hooks: HooksOption = None,
    source: Optional[ExternalSourceConfig] = None,
) -> EntityDefinition:
    """
    Declare an entity.

    The result is compiled by :func:`schemaforge.manifest.compile_manifest`
    so manifest-wide behavior defaults apply; call ``.compile()`` to get the
    ``EntityIR`` directly.
    """
    return EntityDefinition(
        name=name,
        fields=dict(fields),
        relations=dict(relations or {}),
        behaviors=behaviors,
        protected=protected,
        hooks=hooks,
        source=source,
    )


def _check_names(name: str, field_names: List[str]) -> None:
    if not ENTITY_NAME_RE.match(name):
        raise ConfigurationError(
            f"Entity name '{name}' must be PascalCase", {"entity": name}
        )
    for field_name in field_names:
        if (
            not FIELD_NAME_RE.match(field_name)
            or field_name in PYTHON_KEYWORDS
            or field_name in _ORM_RESERVED_NAMES
        ):
            raise ConfigurationError(
                f"Field name '{field_name}' must be a camelCase identifier",
                {"entity": name},
            )


def compile_entity(
    name: str,
    definition: Union[EntityDefinition, Mapping[str, Any]],
    defaults: Optional[Behaviors] = None,
) -> EntityIR:
    """
    Compile *definition* into an ``EntityIR``.

    *definition* is an :class:`EntityDefinition` or a mapping with the same
    keys (``fields``, ``relations``, ``behaviors``, ``protected``, ``hooks``,
    ``source``).  Raises :class:`ConfigurationError` on invalid input.
    """
    if isinstance(definition, Mapping):
        definition = EntityDefinition(
            name=name,
            fields=definition.get("fields") or {},
            relations=definition.get("relations") or {},
            behaviors=definition.get("behaviors"),
            protected=definition.get("protected"),
            hooks=definition.get("hooks"),
            source=definition.get("source"),
        )

    if not definition.fields:
        raise ConfigurationError(
            f"Entity '{name}' must declare at least one field", {"entity": name}
        )
    _check_names(name, list(definition.fields))

    try:
        fields: Dict[str, FieldConfig] = {
            fname: resolve_field(value) for fname, value in definition.fields.items()
        }
        relations: Dict[str, RelationIR] = {}
        for rel_name, value in definition.relations.items():
            rel: RelationIR = resolve_relation(value)
            if rel.kind == RelationKind.HAS_ONE and not rel.foreign_key:
                rel = rel.model_copy(update={"foreign_key": f"{rel_name}Id"})
            relations[rel_name] = rel

        entity: EntityIR = EntityIR(
            name=name,
            fields=fields,
            relations=relations,
            behaviors=normalize_behaviors(definition.behaviors, defaults),
            protection=normalize_protection(definition.protected),
            hooks=normalize_hooks(definition.hooks),
            source=definition.source,
        )
    except PydanticValidationError as exc:
        messages: str = "; ".join(err["msg"] for err in exc.errors())
        raise ConfigurationError(
            f"Invalid entity '{name}': {messages}", {"entity": name}
        ) from exc

    logger.debug(
        "Compiled entity %s (%d fields, %d relations).",
        name,
        len(entity.fields),
        len(entity.relations),
    )
    return entity


__all__: List[str] = [
    "ENTITY_NAME_RE",
    "FIELD_NAME_RE",
    "normalize_protection",
    "normalize_hooks",
    "normalize_behaviors",
    "EntityDefinition",
    "define_entity",
    "compile_entity",
]

logger.debug("schemaforge.entity loaded - %d public symbols.", len(__all__))
