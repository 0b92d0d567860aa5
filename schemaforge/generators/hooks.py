# File: schemaforge/generators/hooks.py
"""
NexaFlow SchemaForge - Business-Logic Hook Scaffolding
========================================================
For every entity that declares lifecycle hooks::

    {pkg}/hooks/types.py        HookContext, XCreateInput, XUpdateInput,
                                XRecord and XHooksProtocol
    {pkg}/hooks/{entity}.py     XHooks stub class + module-level instance
    {pkg}/hooks/__init__.py

Signatures (only declared hooks are emitted)::

    before_create(data, ctx) -> data
    after_create(record, ctx) -> None
    before_update(record_id, data, ctx) -> data
    after_update(record, ctx) -> None
    before_remove(record_id, ctx) -> None
    after_remove(record, ctx) -> None

``before_*`` return values feed the write; ``after_*`` receive the persisted
record as a plain dict.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Set, Tuple

from schemaforge.context import EntityNames, GeneratorContext
from schemaforge.generators.base import INDENT, INDENT2, Generator
from schemaforge.generators.validation import python_type
from schemaforge.models import EntityIR, FieldType, GeneratedFile, HookName, ManifestIR
from schemaforge.utils import build_import_block, py_literal

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generators.hooks")


def hook_signature(hook: HookName, n: EntityNames) -> Tuple[str, str]:
    """``(parameters, return annotation)`` for one hook method."""
    signatures: Dict[HookName, Tuple[str, str]] = {
        HookName.BEFORE_CREATE: (f"data: {n.create_input}, ctx: HookContext", n.create_input),
        HookName.AFTER_CREATE: (f"record: {n.record_type}, ctx: HookContext", "None"),
        HookName.BEFORE_UPDATE: (
            f"record_id: str, data: {n.update_input}, ctx: HookContext",
            n.update_input,
        ),
        HookName.AFTER_UPDATE: (f"record: {n.record_type}, ctx: HookContext", "None"),
        HookName.BEFORE_REMOVE: ("record_id: str, ctx: HookContext", "None"),
        HookName.AFTER_REMOVE: (f"record: {n.record_type}, ctx: HookContext", "None"),
    }
    return signatures[hook]


_STUB_BODIES: Dict[HookName, str] = {
    HookName.BEFORE_CREATE: "return data",
    HookName.AFTER_CREATE: "return None",
    HookName.BEFORE_UPDATE: "return data",
    HookName.AFTER_UPDATE: "return None",
    HookName.BEFORE_REMOVE: "return None",
    HookName.AFTER_REMOVE: "return None",
}

_STUB_DOCS: Dict[HookName, str] = {
    HookName.BEFORE_CREATE: "Runs before insert; the returned data is written.",
    HookName.AFTER_CREATE: "Runs after the record has been committed.",
    HookName.BEFORE_UPDATE: "Runs before update; the returned data is applied.",
    HookName.AFTER_UPDATE: "Runs after the update has been committed.",
    HookName.BEFORE_REMOVE: "Runs before removal; raise to abort.",
    HookName.AFTER_REMOVE: "Runs after removal with the last state of the record.",
}


class HooksGenerator(Generator):
    name = "crud-hooks"
    description = "Lifecycle hook types and stub implementations"
    category = None

    def generate(self, manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]:
        hooked: List[EntityIR] = [e for e in manifest.entities if e.hooks.any_enabled]
        if not hooked:
            return []
        files: List[GeneratedFile] = [self._types_module(manifest, hooked, ctx)]
        files.extend(self._stub_module(entity, ctx) for entity in hooked)
        files.append(self._init_module(hooked, ctx))
        logger.debug("Hooks: %d entities with lifecycle hooks.", len(hooked))
        return files

    # ===================================================================
    # hooks/types.py
    # ===================================================================

    def _types_module(
        self, manifest: ManifestIR, hooked: List[EntityIR], ctx: GeneratorContext
    ) -> GeneratedFile:
        typing_names: Set[str] = {"Any", "Dict", "Optional", "Protocol", "TypedDict"}
        needs_datetime: bool = False
        body: List[str] = [
            "@dataclass",
            "class HookContext:",
            f'{INDENT}"""What a hook knows about the request that triggered it."""',
            "",
            f"{INDENT}entity: str",
            f"{INDENT}operation: str",
            f"{INDENT}user: Optional[Dict[str, Any]] = None",
            f"{INDENT}tenant_id: Optional[str] = None",
            f"{INDENT}session: Any = None",
            "",
            f"{INDENT}@property",
            f"{INDENT}def user_id(self) -> Optional[str]:",
            f"{INDENT2}if not self.user:",
            f"{INDENT2}{INDENT}return None",
            f'{INDENT2}value: Any = self.user.get("id")',
            f"{INDENT2}return None if value is None else str(value)",
        ]

        for entity in hooked:
            n = ctx.names(entity)
            input_fields: List[Tuple[str, str]] = []
            for name, cfg in entity.stored_fields.items():
                input_fields.append((name, python_type(cfg)))
                needs_datetime = needs_datetime or python_type(cfg) == "datetime"
                if cfg.type == FieldType.ENUM:
                    typing_names.add("Literal")
            for fk_name in entity.foreign_keys:
                input_fields.append((fk_name, "str"))

            body.extend(["", ""])
            body.extend(self._typed_dict(n.create_input, input_fields, n.label, "create"))
            body.extend(["", ""])
            body.extend(self._typed_dict(n.update_input, input_fields, n.label, "update"))
            body.extend(["", ""])
            record_fields: List[Tuple[str, str]] = [("id", "str")] + input_fields
            for name, cfg in entity.computed_fields.items():
                record_fields.append((name, f"Optional[{python_type(cfg)}]"))
                needs_datetime = needs_datetime or python_type(cfg) == "datetime"
            if entity.behaviors.timestamps:
                record_fields.extend([("createdAt", "Any"), ("updatedAt", "Any")])
            if entity.behaviors.soft_delete:
                record_fields.append(("deletedAt", "Any"))
            if manifest.tenancy.enabled:
                record_fields.append((manifest.tenancy.field, "Optional[str]"))
            if entity.behaviors.audit:
                record_fields.extend([("createdBy", "Optional[str]"), ("updatedBy", "Optional[str]")])
            body.extend(self._typed_dict(n.record_type, record_fields, n.label, "record"))
            body.extend(["", ""])
            body.append(f"class {n.hooks_protocol}(Protocol):")
            body.append(f'{INDENT}"""Hooks declared for {entity.name}."""')
            for hook in entity.hooks.enabled:
                params, returns = hook_signature(hook, n)
                body.append("")
                body.append(f"{INDENT}def {hook.attribute}(self, {params}) -> {returns}: ...")

        imports: Dict[str, Set[str]] = {
            "dataclasses": {"dataclass"},
            "typing": typing_names,
        }
        if needs_datetime:
            imports["datetime"] = {"datetime"}
        lines: List[str] = self.module_header("Types shared by the lifecycle hooks.")
        lines.append(build_import_block(imports))
        lines.append("")
        lines.append("")
        lines.extend(body)
        return self.python_file(self.package_path(ctx, "hooks", "types.py"), lines)

    @staticmethod
    def _typed_dict(
        class_name: str, fields: List[Tuple[str, str]], label: str, kind: str
    ) -> List[str]:
        lines: List[str] = [
            f"class {class_name}(TypedDict, total=False):",
            f'{INDENT}"""{label} {kind} data."""',
            "",
        ]
        lines.extend(f"{INDENT}{name}: {annotation}" for name, annotation in fields)
        return lines

    # ===================================================================
    # hooks/{entity}.py
    # ===================================================================

    def _stub_module(self, entity: EntityIR, ctx: GeneratorContext) -> GeneratedFile:
        n = ctx.names(entity)
        pkg: str = ctx.config.package_name
        type_names: Set[str] = {"HookContext"}
        for hook in entity.hooks.enabled:
            params, returns = hook_signature(hook, n)
            for candidate in (n.create_input, n.update_input, n.record_type):
                if candidate in params or candidate == returns:
                    type_names.add(candidate)

        lines: List[str] = self.module_header(
            f"Lifecycle hooks for {entity.name}.",
            "",
            "Generated once as a starting point: fill in the bodies.",
        )
        lines.append(build_import_block({f"{pkg}.hooks.types": type_names}))
        lines.append("")
        lines.append("")
        lines.append(f"class {n.hooks_class}:")
        lines.append(f'{INDENT}"""Business logic around {entity.name} writes."""')
        for hook in entity.hooks.enabled:
            params, returns = hook_signature(hook, n)
            lines.append("")
            lines.append(f"{INDENT}def {hook.attribute}(self, {params}) -> {returns}:")
            lines.append(f'{INDENT2}"""{_STUB_DOCS[hook]}"""')
            lines.append(f"{INDENT2}{_STUB_BODIES[hook]}")
        lines.append("")
        lines.append("")
        lines.append(f"{n.hooks_instance} = {n.hooks_class}()")
        return self.python_file(self.package_path(ctx, "hooks", f"{n.module}.py"), lines)

    # ===================================================================
    # hooks/__init__.py
    # ===================================================================

    def _init_module(self, hooked: List[EntityIR], ctx: GeneratorContext) -> GeneratedFile:
        pkg: str = ctx.config.package_name
        lines: List[str] = ['"""Lifecycle hooks for the entities that declare them."""', ""]
        exported: List[str] = ["HookContext"]
        lines.append(f"from {pkg}.hooks.types import HookContext")
        for entity in hooked:
            n = ctx.names(entity)
            lines.append(f"from {pkg}.hooks.{n.module} import {n.hooks_instance}")
            exported.append(n.hooks_instance)
        lines.append("")
        lines.append(f"__all__ = {py_literal(exported)}")
        return self.python_file(self.package_path(ctx, "hooks", "__init__.py"), lines)


__all__: List[str] = ["hook_signature", "HooksGenerator"]

logger.debug("schemaforge.generators.hooks loaded - %d public symbols.", len(__all__))
