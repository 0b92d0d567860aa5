# File: schemaforge/generators/validation.py
"""
NexaFlow SchemaForge - Validation Schema Generator
====================================================
Generates Pydantic V2 schemas for every entity::

    {pkg}/schemas/{entity}.py     XCreate / XUpdate / XRead + serialize_x()
    {pkg}/schemas/_messages.py    translate() catalogue (multilingual only)
    {pkg}/schemas/__init__.py

Per field the emitted rules follow a fixed order: base type, required
check, validations in declaration order, optionality, default.  ``XUpdate``
carries the same rules with every field optional.  Computed fields never
appear in create/update payloads; ``serialize_x()`` fills them in on read.
"""

from __future__ import annotations

import ast
import json
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from schemaforge.context import GeneratorContext
from schemaforge.errors import GeneratorInvariantError
from schemaforge.generators.base import INDENT, INDENT2, INDENT3, Generator, translated_messages
from schemaforge.generators.i18n import format_message, message_table
from schemaforge.models import (
    EntityIR,
    FieldConfig,
    FieldType,
    GeneratedFile,
    ManifestIR,
    ValidationKind,
)
from schemaforge.utils import build_import_block, py_literal, to_snake_case, to_title_human

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generators.validation")

EMAIL_PATTERN: str = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
URL_PATTERN: str = r"^https?://[^\s/$.?#][^\s]*$"

_TEXT_KINDS: Set[ValidationKind] = {
    ValidationKind.MIN_LENGTH,
    ValidationKind.MAX_LENGTH,
    ValidationKind.EMAIL,
    ValidationKind.URL,
    ValidationKind.REGEX,
    ValidationKind.ONE_OF,
    ValidationKind.TRIM,
    ValidationKind.LOWERCASE,
    ValidationKind.UPPERCASE,
}
_NUMBER_KINDS: Set[ValidationKind] = {
    ValidationKind.MIN,
    ValidationKind.MAX,
    ValidationKind.POSITIVE,
}

# Coercion applied to computed values so they match the read annotation.
_COMPUTED_COERCION: Dict[FieldType, str] = {
    FieldType.TEXT: "str",
    FieldType.ENUM: "str",
    FieldType.NUMBER: "float",
    FieldType.BOOLEAN: "bool",
}


def field_label(name: str, cfg: FieldConfig) -> str:
    return cfg.label or to_title_human(name)


def python_type(cfg: FieldConfig) -> str:
    """Pydantic annotation for the value a field carries."""
    value_type: FieldType = cfg.value_type
    if value_type == FieldType.ENUM:
        if cfg.type == FieldType.ENUM:
            return f"Literal[{', '.join(py_literal(v) for v in cfg.enum_values or ())}]"
        return "str"
    if value_type == FieldType.TEXT:
        return "str"
    if value_type == FieldType.NUMBER:
        return "int" if cfg.is_integer else "float"
    if value_type == FieldType.BOOLEAN:
        return "bool"
    if value_type == FieldType.DATE:
        return "datetime"
    raise GeneratorInvariantError.unhandled("field type", value_type)


def applicable_validations(cfg: FieldConfig) -> List[Tuple[ValidationKind, Any]]:
    """Validations meaningful for the field's type, in declaration order."""
    kinds: Set[ValidationKind] = set()
    if cfg.type == FieldType.TEXT:
        kinds = _TEXT_KINDS
    elif cfg.type == FieldType.NUMBER:
        kinds = _NUMBER_KINDS
    return [(v.kind, v.value) for v in cfg.validations if v.kind in kinds]


def pattern_constant(name: str) -> str:
    return f"{to_snake_case(name).upper()}_PATTERN"


def computed_names(expression: str, candidates: List[str]) -> List[str]:
    """Names from *candidates* referenced by *expression*, in candidate order."""
    tree: ast.AST = ast.parse(expression, mode="eval")
    used: Set[str] = {node.id for node in ast.walk(tree) if isinstance(node, ast.Name)}
    return [name for name in candidates if name in used]


class MessageEmitter:
    """Renders validation messages as static literals or ``translate()`` calls."""

    def __init__(self, manifest: ManifestIR) -> None:
        self.translated: bool = translated_messages(manifest)
        languages = manifest.i18n.languages
        self.language: str = (
            manifest.i18n.default_language
            if manifest.i18n.default_language in languages or not languages
            else languages[0]
        )

    def expr(self, key: str, **params: Any) -> str:
        if self.translated:
            args: str = ", ".join(f"{k}={py_literal(v)}" for k, v in params.items())
            return f"translate({py_literal(key)}{', ' + args if args else ''})"
        return py_literal(format_message(key, self.language, **params))

    def required_template(self) -> str:
        return message_table(self.language)["required"]


class ValidationGenerator(Generator):
    name = "validation"
    description = "Pydantic create / update / read schemas with validation rules"
    category = "validation"

    def generate(self, manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]:
        messages: MessageEmitter = MessageEmitter(manifest)
        files: List[GeneratedFile] = [
            self._entity_module(entity, manifest, ctx, messages) for entity in manifest.entities
        ]
        if messages.translated:
            files.append(self._messages_module(manifest, ctx))
        files.append(self._init_module(manifest, ctx))
        logger.debug("Validation: %d schema modules.", len(manifest.entities))
        return files

    # ===================================================================
    # schemas/{entity}.py
    # ===================================================================

    def _entity_module(
        self,
        entity: EntityIR,
        manifest: ManifestIR,
        ctx: GeneratorContext,
        messages: MessageEmitter,
    ) -> GeneratedFile:
        n = ctx.names(entity)
        pkg: str = ctx.config.package_name
        stored: Dict[str, FieldConfig] = entity.stored_fields
        typing_names: Set[str] = {"Any", "Dict", "Optional"}
        needs_re: bool = False
        needs_email: bool = False
        needs_url: bool = False
        constants: List[str] = []
        rules: List[str] = []

        for name, cfg in stored.items():
            checks: List[Tuple[ValidationKind, Any]] = applicable_validations(cfg)
            kinds: Set[ValidationKind] = {kind for kind, _ in checks}
            needs_email = needs_email or ValidationKind.EMAIL in kinds
            needs_url = needs_url or ValidationKind.URL in kinds
            if ValidationKind.REGEX in kinds:
                needs_re = True
                pattern: str = str(cfg.validation_value(ValidationKind.REGEX))
                constants.append(f"{pattern_constant(name)} = re.compile({py_literal(pattern)})")
            if cfg.is_integer:
                rules.extend(self._integer_rule(name, cfg, messages))
            if checks:
                rules.extend(self._field_rule(name, cfg, checks, messages))
            if cfg.type == FieldType.ENUM:
                typing_names.add("Literal")

        needs_re = needs_re or needs_email or needs_url
        needs_datetime: bool = (
            entity.behaviors.timestamps
            or entity.behaviors.soft_delete
            or any(cfg.value_type == FieldType.DATE for cfg in entity.fields.values())
        )

        required: Dict[str, str] = {
            name: field_label(name, cfg)
            for name, cfg in stored.items()
            if cfg.required and cfg.default is None
        }
        for fk_name, rel in entity.foreign_keys.items():
            if not rel.optional:
                required[fk_name] = to_title_human(fk_name[:-2] if fk_name.endswith("Id") else fk_name)
        if required:
            typing_names.add("List")
        if not required and not entity.computed_fields:
            typing_names.discard("Dict")

        pydantic_names: Set[str] = {"BaseModel", "ConfigDict"}
        if rules:
            pydantic_names.add("field_validator")
        if required:
            pydantic_names.add("model_validator")
        imports: Dict[str, Set[str]] = {
            "typing": typing_names,
            "pydantic": pydantic_names,
        }
        if needs_re:
            imports["re"] = set()
        if needs_datetime:
            imports["datetime"] = {"datetime"}
        if messages.translated and (rules or required):
            imports[f"{pkg}.schemas._messages"] = {"translate"}

        lines: List[str] = self.module_header(f"Validation schemas for entity: {entity.name}")
        lines.append(build_import_block(imports))
        lines.append("")
        if needs_email:
            lines.append(f"EMAIL_RE = re.compile({py_literal(EMAIL_PATTERN)})")
        if needs_url:
            lines.append(f"URL_RE = re.compile({py_literal(URL_PATTERN)})")
        lines.extend(constants)
        if required:
            lines.append("")
            lines.append("# field name -> label used in the required message")
            lines.append("REQUIRED_FIELDS: Dict[str, str] = {")
            for name, label in required.items():
                lines.append(f"{INDENT}{py_literal(name)}: {py_literal(label)},")
            lines.append("}")
            lines.append("")
            lines.append("")
            lines.extend(self._required_function(messages))
        lines.append("")
        lines.append("")

        # --- Shared rules ---
        rules_class: str = f"_{entity.name}Rules"
        lines.append(f"class {rules_class}(BaseModel):")
        lines.append(f'{INDENT}"""Field rules shared by {n.create_schema} and {n.update_schema}."""')
        if rules:
            lines.append("")
            lines.extend(rules[:-1])
        lines.append("")
        lines.append("")

        # --- Create ---
        lines.append(f"class {n.create_schema}({rules_class}):")
        lines.append(f'{INDENT}"""Payload accepted when creating a {n.label}."""')
        lines.append("")
        lines.append(f'{INDENT}model_config = ConfigDict(extra="forbid")')
        lines.append("")
        for name, cfg in stored.items():
            lines.append(f"{INDENT}{self._create_field(name, cfg)}")
        for fk_name, rel in entity.foreign_keys.items():
            if rel.optional:
                lines.append(f"{INDENT}{fk_name}: Optional[str] = None")
            else:
                lines.append(f"{INDENT}{fk_name}: str")
        if required:
            lines.extend(self._required_validator(partial=False))
        lines.append("")
        lines.append("")

        # --- Update ---
        lines.append(f"class {n.update_schema}({rules_class}):")
        lines.append(f'{INDENT}"""Partial payload accepted when updating a {n.label}."""')
        lines.append("")
        lines.append(f'{INDENT}model_config = ConfigDict(extra="forbid")')
        lines.append("")
        for name, cfg in stored.items():
            lines.append(f"{INDENT}{name}: Optional[{python_type(cfg)}] = None")
        for fk_name in entity.foreign_keys:
            lines.append(f"{INDENT}{fk_name}: Optional[str] = None")
        if required:
            lines.extend(self._required_validator(partial=True))
        lines.append("")
        lines.append("")

        # --- Read ---
        lines.extend(self._read_model(entity, manifest, ctx))
        lines.append("")
        lines.append("")
        lines.extend(self._serializer(entity, ctx))
        return self.python_file(self.package_path(ctx, "schemas", f"{n.module}.py"), lines)

    @staticmethod
    def _create_field(name: str, cfg: FieldConfig) -> str:
        annotation: str = python_type(cfg)
        default: Any = cfg.default
        if cfg.type == FieldType.DATE and default is not None:
            # Date defaults are applied by the storage layer.
            return f"{name}: Optional[{annotation}] = None"
        if cfg.required and default is None:
            return f"{name}: {annotation}"
        if cfg.required:
            return f"{name}: {annotation} = {py_literal(default)}"
        return f"{name}: Optional[{annotation}] = {py_literal(default)}"

    @staticmethod
    def _required_function(messages: MessageEmitter) -> List[str]:
        if messages.translated:
            message: str = 'translate("required", field=label)'
        else:
            message = f"{py_literal(messages.required_template())}.format(field=label)"
        return [
            "def _check_required(data: Any, partial: bool) -> Any:",
            f"{INDENT}if not isinstance(data, dict):",
            f"{INDENT2}return data",
            f"{INDENT}problems: List[str] = []",
            f"{INDENT}for name, label in REQUIRED_FIELDS.items():",
            f"{INDENT2}if partial and name not in data:",
            f"{INDENT3}continue",
            f"{INDENT2}value: Any = data.get(name)",
            f'{INDENT2}if value is None or value == "":',
            f"{INDENT3}problems.append({message})",
            f"{INDENT}if problems:",
            f'{INDENT2}raise ValueError("; ".join(problems))',
            f"{INDENT}return data",
        ]

    @staticmethod
    def _required_validator(partial: bool) -> List[str]:
        return [
            "",
            f'{INDENT}@model_validator(mode="before")',
            f"{INDENT}@classmethod",
            f"{INDENT}def _require_fields(cls, data: Any) -> Any:",
            f"{INDENT2}return _check_required(data, partial={partial})",
        ]

    @staticmethod
    def _integer_rule(name: str, cfg: FieldConfig, messages: MessageEmitter) -> List[str]:
        label: str = field_label(name, cfg)
        return [
            f'{INDENT}@field_validator("{name}", mode="before", check_fields=False)',
            f"{INDENT}@classmethod",
            f"{INDENT}def _whole_{to_snake_case(name)}(cls, value: Any) -> Any:",
            f"{INDENT2}if isinstance(value, float) and not value.is_integer():",
            f"{INDENT3}raise ValueError({messages.expr('integer', field=label)})",
            f"{INDENT2}return value",
            "",
        ]

    @staticmethod
    def _field_rule(
        name: str,
        cfg: FieldConfig,
        checks: List[Tuple[ValidationKind, Any]],
        messages: MessageEmitter,
    ) -> List[str]:
        label: str = field_label(name, cfg)
        annotation: str = f"Optional[{python_type(cfg)}]"
        lines: List[str] = [
            f'{INDENT}@field_validator("{name}", check_fields=False)',
            f"{INDENT}@classmethod",
            f"{INDENT}def _check_{to_snake_case(name)}(cls, value: {annotation}) -> {annotation}:",
            f"{INDENT2}if value is None:",
            f"{INDENT3}return value",
        ]

        def fail(condition: str, key: str, **params: Any) -> None:
            lines.append(f"{INDENT2}if {condition}:")
            lines.append(f"{INDENT3}raise ValueError({messages.expr(key, field=label, **params)})")

        for kind, value in checks:
            if kind == ValidationKind.TRIM:
                lines.append(f"{INDENT2}value = value.strip()")
            elif kind == ValidationKind.LOWERCASE:
                lines.append(f"{INDENT2}value = value.lower()")
            elif kind == ValidationKind.UPPERCASE:
                lines.append(f"{INDENT2}value = value.upper()")
            elif kind == ValidationKind.MIN_LENGTH:
                fail(f"len(value) < {int(value)}", "minLength", min=int(value))
            elif kind == ValidationKind.MAX_LENGTH:
                fail(f"len(value) > {int(value)}", "maxLength", max=int(value))
            elif kind == ValidationKind.EMAIL:
                lines.append(f"{INDENT2}if not EMAIL_RE.match(value):")
                lines.append(f"{INDENT3}raise ValueError({messages.expr('email')})")
            elif kind == ValidationKind.URL:
                lines.append(f"{INDENT2}if not URL_RE.match(value):")
                lines.append(f"{INDENT3}raise ValueError({messages.expr('url')})")
            elif kind == ValidationKind.REGEX:
                fail(f"not {pattern_constant(name)}.search(value)", "pattern")
            elif kind == ValidationKind.ONE_OF:
                options: List[str] = [str(v) for v in value]
                fail(f"value not in {py_literal(tuple(options))}", "oneOf", values=", ".join(options))
            elif kind == ValidationKind.MIN:
                fail(f"value < {py_literal(value)}", "min", min=value)
            elif kind == ValidationKind.MAX:
                fail(f"value > {py_literal(value)}", "max", max=value)
            elif kind == ValidationKind.POSITIVE:
                fail("value <= 0", "positive")
            else:
                raise GeneratorInvariantError.unhandled("validation kind", kind)
        lines.append(f"{INDENT2}return value")
        lines.append("")
        return lines

    @staticmethod
    def _read_model(entity: EntityIR, manifest: ManifestIR, ctx: GeneratorContext) -> List[str]:
        n = ctx.names(entity)
        lines: List[str] = [
            f"class {n.read_schema}(BaseModel):",
            f'{INDENT}"""A {n.label} as returned by the API."""',
            "",
            f"{INDENT}model_config = ConfigDict(from_attributes=True)",
            "",
            f"{INDENT}id: str",
        ]
        for name, cfg in entity.stored_fields.items():
            if cfg.required:
                lines.append(f"{INDENT}{name}: {python_type(cfg)}")
            else:
                lines.append(f"{INDENT}{name}: Optional[{python_type(cfg)}] = None")
        for fk_name, rel in entity.foreign_keys.items():
            lines.append(f"{INDENT}{fk_name}: {'Optional[str] = None' if rel.optional else 'str'}")
        if entity.behaviors.timestamps:
            lines.append(f"{INDENT}createdAt: Optional[datetime] = None")
            lines.append(f"{INDENT}updatedAt: Optional[datetime] = None")
        if entity.behaviors.soft_delete:
            lines.append(f"{INDENT}deletedAt: Optional[datetime] = None")
        if manifest.tenancy.enabled:
            lines.append(f"{INDENT}{manifest.tenancy.field}: Optional[str] = None")
        if entity.behaviors.audit:
            lines.append(f"{INDENT}createdBy: Optional[str] = None")
            lines.append(f"{INDENT}updatedBy: Optional[str] = None")
        computed: Dict[str, FieldConfig] = entity.computed_fields
        if computed:
            lines.append("")
            lines.append(f"{INDENT}# Computed on read; never stored.")
            for name, cfg in computed.items():
                lines.append(f"{INDENT}{name}: Optional[{python_type(cfg)}] = None")
        return lines

    @staticmethod
    def _serializer(entity: EntityIR, ctx: GeneratorContext) -> List[str]:
        n = ctx.names(entity)
        lines: List[str] = [
            f"def {n.serializer}(record: Any) -> {n.read_schema}:",
            f'{INDENT}"""Read model for an ORM object or mapping, with computed fields filled in."""',
            f"{INDENT}_item = {n.read_schema}.model_validate(record)",
        ]
        computed: Dict[str, FieldConfig] = entity.computed_fields
        if not computed:
            lines.append(f"{INDENT}return _item")
            return lines

        stored_names: List[str] = list(entity.stored_fields)
        lines.append(f"{INDENT}_values: Dict[str, Any] = {{}}")
        for name, cfg in computed.items():
            expression: str = cfg.expression or "None"
            used: List[str] = computed_names(expression, stored_names)
            for source in used:
                lines.append(f"{INDENT}{source} = _item.{source}")
            coerce: Optional[str] = _COMPUTED_COERCION.get(cfg.value_type)
            value_expr: str = f"{coerce}({expression})" if coerce else f"({expression})"
            if used:
                guard: str = " and ".join(f"{s} is not None" for s in used)
                lines.append(f"{INDENT}if {guard}:")
                lines.append(f"{INDENT2}_values[{py_literal(name)}] = {value_expr}")
            else:
                lines.append(f"{INDENT}_values[{py_literal(name)}] = {value_expr}")
        lines.append(f"{INDENT}return _item.model_copy(update=_values)")
        return lines

    # ===================================================================
    # schemas/_messages.py
    # ===================================================================

    def _messages_module(self, manifest: ManifestIR, ctx: GeneratorContext) -> GeneratedFile:
        languages: List[str] = list(manifest.i18n.languages)
        default: str = manifest.i18n.default_language
        if default not in languages:
            languages.append(default)
        catalogue: Dict[str, Dict[str, str]] = {lang: message_table(lang) for lang in languages}
        lines: List[str] = self.module_header(
            "Validation message catalogue.",
            "",
            "The active language is per request context; call ``set_language()``",
            "before validating (the API does this from ``Accept-Language``).",
        )
        lines.extend([
            "from contextvars import ContextVar",
            "from typing import Any, Dict",
            "",
            f"DEFAULT_LANGUAGE: str = {py_literal(default)}",
            "",
            f"MESSAGES: Dict[str, Dict[str, str]] = {json.dumps(catalogue, indent=4, ensure_ascii=False)}",
            "",
            '_language: ContextVar[str] = ContextVar("validation_language", default=DEFAULT_LANGUAGE)',
            "",
            "",
            "def set_language(language: str) -> None:",
            f"{INDENT}_language.set(language if language in MESSAGES else DEFAULT_LANGUAGE)",
            "",
            "",
            "def get_language() -> str:",
            f"{INDENT}return _language.get()",
            "",
            "",
            "def translate(key: str, **params: Any) -> str:",
            f'{INDENT}"""Message *key* in the active language, formatted with *params*."""',
            f"{INDENT}table: Dict[str, str] = MESSAGES.get(get_language(), MESSAGES[DEFAULT_LANGUAGE])",
            f"{INDENT}return table.get(key, key).format(**params)",
        ])
        return self.python_file(self.package_path(ctx, "schemas", "_messages.py"), lines)

    # ===================================================================
    # schemas/__init__.py
    # ===================================================================

    def _init_module(self, manifest: ManifestIR, ctx: GeneratorContext) -> GeneratedFile:
        pkg: str = ctx.config.package_name
        lines: List[str] = ['"""Validation schemas for every entity."""', ""]
        exported: List[str] = []
        for entity in manifest.entities:
            n = ctx.names(entity)
            names: List[str] = [n.create_schema, n.read_schema, n.update_schema, n.serializer]
            lines.append(f"from {pkg}.schemas.{n.module} import {', '.join(sorted(names))}")
            exported.extend(names)
        lines.append("")
        lines.append(f"__all__ = {py_literal(exported)}")
        return self.python_file(self.package_path(ctx, "schemas", "__init__.py"), lines)


__all__: List[str] = [
    "EMAIL_PATTERN",
    "URL_PATTERN",
    "field_label",
    "python_type",
    "applicable_validations",
    "computed_names",
    "MessageEmitter",
    "ValidationGenerator",
]

logger.debug("schemaforge.generators.validation loaded - %d public symbols.", len(__all__))
