# File: schemaforge/generators/seed.py
"""
NexaFlow SchemaForge - Seed Data Generator
============================================
Seed records are computed here, at generation time, and emitted as
literals::

    {pkg}/seeds/{entity}.py    RECORDS + seed_{plural}(session)
    {pkg}/seeds/__init__.py    SEED_ORDER, seed_all(), reset_database()
    {pkg}/seeds/run.py         ``python -m {pkg}.seeds.run [--reset]``
    {pkg}/seeds/README.md

Every value satisfies the field's validations (bounds, lengths, enum and
``oneOf`` membership, email / URL shape).  Realistic text and dates come from
Faker, reseeded per (entity, field, record) so the output is byte-stable no
matter which generator asks first.  Unique columns carry the record number so
they never collide.  Record ids are deterministic UUIDs, which lets foreign
keys point at seeded parents.  Entities are seeded in ``hasOne`` dependency
order; ``reset_database`` deletes in reverse order.
"""

from __future__ import annotations

import functools
import logging
import math
import re
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from faker import Faker

from schemaforge.context import GeneratorContext
from schemaforge.errors import GeneratorInvariantError
from schemaforge.generators.base import INDENT, INDENT2, Generator, active_stored_entities
from schemaforge.generators.validation import applicable_validations
from schemaforge.models import (
    EntityIR,
    FieldConfig,
    FieldType,
    GeneratedFile,
    ManifestIR,
    ValidationKind,
)
from schemaforge.utils import py_literal, sha256_hex, to_kebab_case

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generators.seed")

SEED_NAMESPACE: uuid.UUID = uuid.UUID("6f1d2a8e-3c4b-5d6e-8f90-a1b2c3d4e5f6")
FAKER_LOCALE: str = "en_US"

_DATE_RANGE: Tuple[datetime, datetime] = (datetime(2023, 1, 1), datetime(2025, 12, 31))
_BIRTH_RANGE: Tuple[datetime, datetime] = (datetime(1950, 1, 1), datetime(2005, 12, 31))

# Field-name fragments (lowercase, underscores removed) mapped to Faker
# providers.  First match wins, so "name" stays last.
_TEXT_HINTS: List[Tuple[Tuple[str, ...], Callable[[Faker], str]]] = [
    (("firstname", "givenname"), lambda fake: fake.first_name()),
    (("lastname", "surname", "familyname"), lambda fake: fake.last_name()),
    (("username", "login", "handle"), lambda fake: fake.user_name()),
    (("company", "organization", "employer"), lambda fake: fake.company()),
    (("title", "subject", "headline", "heading"), lambda fake: fake.sentence(nb_words=4).rstrip(".")),
    (
        ("description", "content", "body", "bio", "summary", "notes"),
        lambda fake: fake.paragraph(nb_sentences=2),
    ),
    (("address", "street"), lambda fake: fake.street_address()),
    (("city", "town"), lambda fake: fake.city()),
    (("state", "province", "region"), lambda fake: fake.state()),
    (("country",), lambda fake: fake.country()),
    (("zip", "postcode", "postalcode"), lambda fake: fake.postcode()),
    (("phone", "mobile", "telephone"), lambda fake: fake.phone_number()),
    (("slug",), lambda fake: fake.slug()),
    (("color", "colour"), lambda fake: fake.color_name()),
    (("name",), lambda fake: fake.name()),
]


def seed_id(entity_name: str, index: int) -> str:
    """Deterministic primary key of seed record *index* (0-based)."""
    return str(uuid.uuid5(SEED_NAMESPACE, f"{entity_name}:{index}"))


@functools.lru_cache(maxsize=1)
def _shared_faker() -> Faker:
    return Faker(FAKER_LOCALE)


def seeded_faker(entity_name: str, field_name: str, index: int) -> Faker:
    """The shared Faker, reseeded for one (entity, field, record) slot."""
    fake: Faker = _shared_faker()
    fake.seed_instance(int(sha256_hex(f"{entity_name}.{field_name}:{index}")[:12], 16))
    return fake


def _fit_length(value: str, cfg: FieldConfig, suffix: str) -> str:
    max_len: Optional[int] = None
    min_len: Optional[int] = None
    for kind, limit in applicable_validations(cfg):
        if kind == ValidationKind.MAX_LENGTH:
            max_len = int(limit)
        elif kind == ValidationKind.MIN_LENGTH:
            min_len = int(limit)
    if max_len is not None and len(value) > max_len:
        keep: int = max(0, max_len - len(suffix))
        value = (value[:keep] + suffix)[-max_len:] if max_len else ""
    if min_len is not None and len(value) < min_len:
        value = value + "x" * (min_len - len(value))
    return value


def _hinted_text(fake: Faker, name: str) -> str:
    lowered: str = name.lower().replace("_", "")
    for fragments, provider in _TEXT_HINTS:
        if any(fragment in lowered for fragment in fragments):
            return provider(fake)
    return fake.sentence(nb_words=3).rstrip(".")


def _mock_text(entity: EntityIR, name: str, cfg: FieldConfig, index: int) -> str:
    number: int = index + 1
    kinds: Dict[ValidationKind, Any] = dict(applicable_validations(cfg))
    if ValidationKind.ONE_OF in kinds:
        options: List[str] = [str(v) for v in kinds[ValidationKind.ONE_OF]]
        return options[index % len(options)]

    fake: Faker = seeded_faker(entity.name, name, index)
    if ValidationKind.EMAIL in kinds:
        value: str = f"{fake.user_name()}{number}@example.com"
    elif ValidationKind.URL in kinds:
        value = f"{fake.url()}{to_kebab_case(entity.name)}/{number}"
    else:
        value = _hinted_text(fake, name)
        if cfg.unique:
            value = f"{value}{' ' if ' ' in value else '-'}{number}"

    value = _fit_length(value, cfg, str(number))
    if ValidationKind.UPPERCASE in kinds:
        value = value.upper()
    if ValidationKind.LOWERCASE in kinds:
        value = value.lower()
    if ValidationKind.REGEX in kinds and not re.search(str(kinds[ValidationKind.REGEX]), value):
        logger.warning(
            "Seed value for %s.%s does not match its pattern; adjust RECORDS by hand.",
            entity.name,
            name,
        )
    return value


def _mock_number(cfg: FieldConfig, index: int) -> Any:
    kinds: Dict[ValidationKind, Any] = dict(applicable_validations(cfg))
    low: Optional[float] = kinds.get(ValidationKind.MIN)
    high: Optional[float] = kinds.get(ValidationKind.MAX)
    positive: bool = ValidationKind.POSITIVE in kinds

    if cfg.is_integer:
        if low is not None:
            lo: int = math.ceil(low)
        else:
            lo = min(1, math.floor(high)) if high is not None else 1
        if positive and lo <= 0:
            lo = 1
        hi: int = math.floor(high) if high is not None else lo + 999
        if hi < lo:
            return lo
        return lo + index % (hi - lo + 1)

    if low is not None:
        lo_f: float = float(low)
    elif high is None:
        lo_f = 1.0
    elif high > 0:
        lo_f = min(1.0, float(high) / 2)
    else:
        lo_f = float(high) - 10.0
    hi_f: float = float(high) if high is not None else lo_f + 1000.0
    if positive and lo_f <= 0:
        lo_f = min(1.0, hi_f / 2) if hi_f > 0 else 1.0
    span: float = hi_f - lo_f
    if span <= 0:
        return lo_f
    return min(max(round(lo_f + (index * 10.5) % span, 2), lo_f), hi_f)


def _mock_date(entity: EntityIR, name: str, index: int) -> datetime:
    fake: Faker = seeded_faker(entity.name, name, index)
    if "birth" in name.lower():
        start, end = _BIRTH_RANGE
        value: datetime = fake.date_time_between(start_date=start, end_date=end)
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    start, end = _DATE_RANGE
    value = fake.date_time_between(start_date=start, end_date=end)
    return value.replace(second=0, microsecond=0, tzinfo=None)


def _option_count(cfg: FieldConfig) -> Optional[int]:
    """How many distinct values the field can take, when that is finite."""
    if cfg.type == FieldType.ENUM:
        return len(cfg.enum_values or ())
    if cfg.type == FieldType.BOOLEAN:
        return 2
    for kind, value in applicable_validations(cfg):
        if kind == ValidationKind.ONE_OF:
            return len(value)
    return None


def mock_value(entity: EntityIR, name: str, cfg: FieldConfig, index: int) -> Any:
    """A value for field *name* of record *index* that passes its validations."""
    if cfg.type == FieldType.TEXT:
        return _mock_text(entity, name, cfg, index)
    if cfg.type == FieldType.NUMBER:
        return _mock_number(cfg, index)
    if cfg.type == FieldType.BOOLEAN:
        return index % 2 == 0
    if cfg.type == FieldType.DATE:
        return _mock_date(entity, name, index)
    if cfg.type == FieldType.ENUM:
        values: Tuple[str, ...] = cfg.enum_values or ()
        return values[index % len(values)]
    raise GeneratorInvariantError.unhandled("seed field type", cfg.type)


def mock_records(manifest: ManifestIR, entity: EntityIR, count: int) -> List[Dict[str, Any]]:
    """*count* seed records for *entity*; computed fields are never included."""
    stored_names = {e.name for e in active_stored_entities(manifest)}
    for name, cfg in entity.stored_fields.items():
        options: Optional[int] = _option_count(cfg)
        if cfg.unique and options is not None and count > options:
            logger.warning(
                "Seed field %s.%s is unique but allows only %d values; "
                "%d records will repeat them and fail on insert.",
                entity.name,
                name,
                options,
                count,
            )
    records: List[Dict[str, Any]] = []
    for index in range(count):
        record: Dict[str, Any] = {"id": seed_id(entity.name, index)}
        for name, cfg in entity.stored_fields.items():
            record[name] = mock_value(entity, name, cfg, index)
        for fk_name, rel in entity.foreign_keys.items():
            if rel.target == entity.name:
                record[fk_name] = None if rel.optional else record["id"]
            elif rel.target in stored_names:
                record[fk_name] = seed_id(rel.target, index)
            else:
                record[fk_name] = None if rel.optional else f"{to_kebab_case(rel.target)}-{index + 1}"
        records.append(record)
    return records


def seed_literal(value: Any) -> str:
    if isinstance(value, datetime):
        parts: List[int] = [value.year, value.month, value.day]
        if value.hour or value.minute:
            parts.extend([value.hour, value.minute])
        return f"datetime({', '.join(str(p) for p in parts)})"
    return py_literal(value)


class SeedGenerator(Generator):
    name = "seed"
    description = "Deterministic seed data with dependency-ordered loading"
    category = "schema"

    def generate(self, manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]:
        entities: List[EntityIR] = active_stored_entities(manifest)
        if not entities:
            return []
        count: int = ctx.config.seed_count
        files: List[GeneratedFile] = [
            self._entity_module(manifest, entity, ctx, count) for entity in entities
        ]
        files.append(self._init_module(manifest, entities, ctx))
        files.append(self._run_module(ctx))
        files.append(self._readme(manifest, entities, ctx, count))
        logger.debug("Seed: %d entities x %d records.", len(entities), count)
        return files

    def _entity_module(
        self, manifest: ManifestIR, entity: EntityIR, ctx: GeneratorContext, count: int
    ) -> GeneratedFile:
        n = ctx.names(entity)
        pkg: str = ctx.config.package_name
        records: List[Dict[str, Any]] = mock_records(manifest, entity, count)
        has_dates: bool = any(isinstance(v, datetime) for r in records for v in r.values())

        lines: List[str] = self.module_header(f"Seed records for {entity.name}.")
        if has_dates:
            lines.append("from datetime import datetime")
        lines.append("from typing import Any, Dict, List")
        lines.append("")
        lines.append("from sqlalchemy.orm import Session")
        lines.append("")
        lines.append(f"from {pkg}.models.{n.module} import {entity.name}")
        lines.append("")
        lines.append("RECORDS: List[Dict[str, Any]] = [")
        for record in records:
            lines.append(f"{INDENT}{{")
            for key, value in record.items():
                lines.append(f"{INDENT2}{py_literal(key)}: {seed_literal(value)},")
            lines.append(f"{INDENT}}},")
        lines.append("]")
        lines.append("")
        lines.append("")
        lines.extend([
            f"def seed_{n.plural_snake}(session: Session) -> int:",
            f'{INDENT}"""Upsert every {entity.name} seed record; returns the count."""',
            f"{INDENT}for record in RECORDS:",
            f"{INDENT2}session.merge({entity.name}(**record))",
            f"{INDENT}session.flush()",
            f"{INDENT}return len(RECORDS)",
        ])
        return self.python_file(self.package_path(ctx, "seeds", f"{n.module}.py"), lines)

    def _init_module(
        self, manifest: ManifestIR, entities: List[EntityIR], ctx: GeneratorContext
    ) -> GeneratedFile:
        pkg: str = ctx.config.package_name
        order: List[str] = manifest.dependency_order([e.name for e in entities])
        lines: List[str] = self.module_header(
            "Seed orchestration.",
            "",
            f"Order: {' -> '.join(order)}",
        )
        lines.append("import logging")
        lines.append("from typing import Callable, List, Tuple, Type")
        lines.append("")
        lines.append("from sqlalchemy import delete")
        lines.append("from sqlalchemy.orm import Session")
        lines.append("")
        lines.append(f"from {pkg}.database import Base")
        for name in order:
            n = ctx.names(manifest.get_entity(name))
            lines.append(f"from {pkg}.models.{n.module} import {name}")
            lines.append(f"from {pkg}.seeds.{n.module} import seed_{n.plural_snake}")
        lines.append("")
        lines.append(f'logger = logging.getLogger("{pkg}.seeds")')
        lines.append("")
        lines.append("# (model, seeder) in dependency order")
        lines.append("SEED_ORDER: List[Tuple[Type[Base], Callable[[Session], int]]] = [")
        for name in order:
            n = ctx.names(manifest.get_entity(name))
            lines.append(f"{INDENT}({name}, seed_{n.plural_snake}),")
        lines.append("]")
        lines.append("")
        lines.append("")
        lines.extend([
            "def reset_database(session: Session) -> None:",
            f'{INDENT}"""Delete every seeded table, dependents first."""',
            f"{INDENT}for model, _ in reversed(SEED_ORDER):",
            f"{INDENT2}session.execute(delete(model))",
            f"{INDENT}session.commit()",
            "",
            "",
            "def seed_all(session: Session, reset: bool = False) -> int:",
            f'{INDENT}"""Load every seed module in order; returns the number of records."""',
            f"{INDENT}if reset:",
            f"{INDENT2}reset_database(session)",
            f"{INDENT}total: int = 0",
            f"{INDENT}for model, seeder in SEED_ORDER:",
            f"{INDENT2}count: int = seeder(session)",
            f'{INDENT2}logger.info("Seeded %d %s records", count, model.__name__)',
            f"{INDENT2}total += count",
            f"{INDENT}session.commit()",
            f"{INDENT}return total",
        ])
        return self.python_file(self.package_path(ctx, "seeds", "__init__.py"), lines)

    def _run_module(self, ctx: GeneratorContext) -> GeneratedFile:
        pkg: str = ctx.config.package_name
        lines: List[str] = self.module_header(f"Usage: python -m {pkg}.seeds.run [--reset]")
        lines.extend([
            "import argparse",
            "import logging",
            "from typing import List, Optional",
            "",
            f"from {pkg}.database import Base, get_engine, get_session_factory",
            f"from {pkg}.seeds import seed_all",
            "",
            "",
            "def main(argv: Optional[List[str]] = None) -> int:",
            f'{INDENT}parser = argparse.ArgumentParser(description="Load seed data.")',
            f'{INDENT}parser.add_argument("--reset", action="store_true", help="delete existing rows first")',
            f"{INDENT}args = parser.parse_args(argv)",
            f"{INDENT}logging.basicConfig(level=logging.INFO)",
            f"{INDENT}Base.metadata.create_all(bind=get_engine())",
            f"{INDENT}session = get_session_factory()()",
            f"{INDENT}try:",
            f"{INDENT2}total: int = seed_all(session, reset=args.reset)",
            f"{INDENT}finally:",
            f"{INDENT2}session.close()",
            f'{INDENT}print(f"Seeded {{total}} records.")',
            f"{INDENT}return 0",
            "",
            "",
            'if __name__ == "__main__":',
            f"{INDENT}raise SystemExit(main())",
        ])
        return self.python_file(self.package_path(ctx, "seeds", "run.py"), lines)

    def _readme(
        self,
        manifest: ManifestIR,
        entities: List[EntityIR],
        ctx: GeneratorContext,
        count: int,
    ) -> GeneratedFile:
        pkg: str = ctx.config.package_name
        order: List[str] = manifest.dependency_order([e.name for e in entities])
        lines: List[str] = [
            "# Seed data",
            "",
            f"{count} records per entity, generated from the manifest.",
            "",
            "```bash",
            f"python -m {pkg}.seeds.run          # upsert seed records",
            f"python -m {pkg}.seeds.run --reset  # delete everything first",
            "```",
            "",
            "## Order",
            "",
        ]
        lines.extend(f"{i}. {name}" for i, name in enumerate(order, start=1))
        lines.extend([
            "",
            "Records are plain literals in `seeds/<entity>.py`; edit them freely.",
            "Ids are stable, so re-running the seed updates rows in place.",
        ])
        return self.text_file(self.package_path(ctx, "seeds", "README.md"), "\n".join(lines))


__all__: List[str] = [
    "SEED_NAMESPACE",
    "seed_id",
    "mock_value",
    "mock_records",
    "seed_literal",
    "SeedGenerator",
]

logger.debug("schemaforge.generators.seed loaded - %d public symbols.", len(__all__))
