# File: schemaforge/fields.py
"""
NexaFlow SchemaForge - Field Builders
=======================================
Immutable, chainable builders that describe one entity field.

Every mutator returns a **new** builder; the wrapped ``FieldConfig`` is a
frozen model so builders can be shared freely between entities::

    title = text().required().min(3).max(120).trim()
    price = number().required().min(0).positive()
    status = enum_field("draft", "published").default("draft")
    slug = computed("title.lower().replace(' ', '-')", depends_on=["title"])

Each builder kind is its own small class tagged with ``kind``; only the
operators that make sense for that kind are available on it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date as _date
from datetime import datetime
from typing import Any, ClassVar, Iterable, List, Mapping, Pattern, TypeVar, Union

from schemaforge.errors import ConfigurationError
from schemaforge.models import FieldConfig, FieldType, Validation, ValidationKind

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.fields")

_B = TypeVar("_B", bound="FieldBuilder")


# ---------------------------------------------------------------------------
# Builder classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldBuilder:
    """Base builder: wraps a frozen ``FieldConfig``."""

    config: FieldConfig

    kind: ClassVar[FieldType]

    def _with(self: _B, **changes: Any) -> _B:
        return type(self)(self.config.model_copy(update=changes))

    def _validate(self: _B, kind: ValidationKind, value: Any = None) -> _B:
        return self._with(
            validations=self.config.validations + (Validation(kind=kind, value=value),)
        )

    def label(self: _B, value: str) -> _B:
        return self._with(label=value)

    def build(self) -> FieldConfig:
        return self.config


class StoredFieldBuilder(FieldBuilder):
    """Operators shared by every persisted field kind."""

    def required(self: _B) -> _B:
        return self._with(required=True)

    def optional(self: _B) -> _B:
        return self._with(required=False)

    def unique(self: _B) -> _B:
        return self._with(unique=True)

    def default(self: _B, value: Any) -> _B:
        return self._with(default=value)


class TextField(StoredFieldBuilder):
    kind = FieldType.TEXT

    def min(self, value: int) -> "TextField":
        return self._validate(ValidationKind.MIN_LENGTH, int(value))

    def max(self, value: int) -> "TextField":
        return self._validate(ValidationKind.MAX_LENGTH, int(value))

    def email(self) -> "TextField":
        return self._validate(ValidationKind.EMAIL)

    def url(self) -> "TextField":
        return self._validate(ValidationKind.URL)

    def regex(self, pattern: Union[str, Pattern[str]]) -> "TextField":
        source: str = pattern.pattern if isinstance(pattern, re.Pattern) else pattern
        try:
            re.compile(source)
        except re.error as exc:
            raise ConfigurationError(
                f"Invalid regular expression {source!r}: {exc}"
            ) from exc
        return self._validate(ValidationKind.REGEX, source)

    def one_of(self, values: Iterable[str]) -> "TextField":
        members: tuple = tuple(str(v) for v in values)
        if not members:
            raise ConfigurationError("one_of() needs at least one value")
        return self._validate(ValidationKind.ONE_OF, members)

    def trim(self) -> "TextField":
        return self._validate(ValidationKind.TRIM)

    def lowercase(self) -> "TextField":
        return self._validate(ValidationKind.LOWERCASE)

    def uppercase(self) -> "TextField":
        return self._validate(ValidationKind.UPPERCASE)


class NumberField(StoredFieldBuilder):
    kind = FieldType.NUMBER

    def min(self, value: float) -> "NumberField":
        return self._validate(ValidationKind.MIN, value)

    def max(self, value: float) -> "NumberField":
        return self._validate(ValidationKind.MAX, value)

    def integer(self) -> "NumberField":
        return self._validate(ValidationKind.INTEGER)

    def positive(self) -> "NumberField":
        return self._validate(ValidationKind.POSITIVE)


class BooleanField(StoredFieldBuilder):
    kind = FieldType.BOOLEAN

    def default(self, value: bool) -> "BooleanField":
        return self._with(default=bool(value))


class DateField(StoredFieldBuilder):
    kind = FieldType.DATE

    def default(self, value: Union[str, datetime, _date]) -> "DateField":
        """``"now"`` or a fixed point in time (stored as ISO-8601 text)."""
        if isinstance(value, (datetime, _date)):
            value = value.isoformat()
        return self._with(default=value)


class EnumField(StoredFieldBuilder):
    kind = FieldType.ENUM

    def default(self, value: str) -> "EnumField":
        if value not in (self.config.enum_values or ()):
            raise ConfigurationError(
                f"Default {value!r} is not one of {list(self.config.enum_values or ())}"
            )
        return self._with(default=value)


class ComputedField(FieldBuilder):
    """Derived at read time; never persisted, filtered or accepted as input."""

    kind = FieldType.COMPUTED


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def text() -> TextField:
    return TextField(FieldConfig(type=FieldType.TEXT))


def number() -> NumberField:
    return NumberField(FieldConfig(type=FieldType.NUMBER))


def boolean() -> BooleanField:
    return BooleanField(FieldConfig(type=FieldType.BOOLEAN))


def date() -> DateField:
    return DateField(FieldConfig(type=FieldType.DATE))


def enum_field(*values: str) -> EnumField:
    """Closed set of string values; ``enum_field("draft", "published")``."""
    members: tuple = tuple(str(v) for v in values)
    if not members:
        raise ConfigurationError("enum_field() needs at least one value")
    if len(set(members)) != len(members):
        raise ConfigurationError(f"Duplicate enum values: {list(members)}")
    return EnumField(FieldConfig(type=FieldType.ENUM, enum_values=members))


def computed(
    expression: str,
    depends_on: Iterable[str] = (),
    returns: Union[str, FieldType] = FieldType.TEXT,
) -> ComputedField:
    """
    A read-only value derived from other fields of the same record.

    *expression* is a Python expression whose free names are the fields
    listed in *depends_on*, e.g. ``computed("first + ' ' + last",
    depends_on=["first", "last"])``.
    """
    try:
        compile(expression, "<computed>", "eval")
    except SyntaxError as exc:
        raise ConfigurationError(
            f"Computed expression {expression!r} is not valid Python: {exc.msg}"
        ) from exc
    return ComputedField(
        FieldConfig(
            type=FieldType.COMPUTED,
            expression=expression,
            source_fields=tuple(depends_on),
            returns=FieldType(returns),
        )
    )


def resolve_field(value: Union[FieldBuilder, FieldConfig, Mapping[str, Any]]) -> FieldConfig:
    """Accept a builder, a compiled ``FieldConfig`` or an IR-shaped mapping."""
    if isinstance(value, FieldBuilder):
        return value.build()
    if isinstance(value, FieldConfig):
        return value
    if isinstance(value, Mapping):
        return FieldConfig.model_validate(dict(value))
    raise ConfigurationError(
        f"Expected a field builder, got {type(value).__name__}"
    )


__all__: List[str] = [
    "FieldBuilder",
    "StoredFieldBuilder",
    "TextField",
    "NumberField",
    "BooleanField",
    "DateField",
    "EnumField",
    "ComputedField",
    "text",
    "number",
    "boolean",
    "date",
    "enum_field",
    "computed",
    "resolve_field",
]

logger.debug("schemaforge.fields loaded - %d public symbols.", len(__all__))
