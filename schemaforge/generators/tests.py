# File: schemaforge/generators/tests.py
"""
NexaFlow SchemaForge - Test Suite Generator
=============================================
Emits a pytest suite for the generated API::

    pytest.ini                  pythonpath / testpaths
    tests/conftest.py           in-memory SQLite engine, session and TestClient
    tests/test_{entity}.py      per database-backed entity

Each entity module covers: protected operations answering 401 without a
token, create, a missing required field, one negative case per validation,
pagination (25 rows, page 2 of 10), filtering on the first text field,
search, get, not-found, update, remove (including the soft-delete marker)
and the batch operations.

Payloads and expected counts are computed here from the same seed values the
seed generator uses, so the generated assertions are plain literals.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from schemaforge.context import EntityNames, GeneratorContext, RouteSpec
from schemaforge.generators.base import INDENT, INDENT2, Generator, active_stored_entities
from schemaforge.generators.seed import mock_records
from schemaforge.generators.validation import applicable_validations
from schemaforge.models import EntityIR, FieldConfig, FieldType, GeneratedFile, ManifestIR, ValidationKind
from schemaforge.utils import py_literal

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generators.tests")

PAGINATION_ROWS: int = 25
AUTH_TOKEN: str = "test-user"

# Field types whose JSON round-trip is exact enough for equality assertions.
_COMPARABLE: Tuple[FieldType, ...] = (FieldType.TEXT, FieldType.ENUM, FieldType.BOOLEAN)


def json_ready(record: Dict[str, Any]) -> Dict[str, Any]:
    """Seed record as a request payload: no id, ISO dates."""
    payload: Dict[str, Any] = {}
    for key, value in record.items():
        if key == "id":
            continue
        payload[key] = value.isoformat() if isinstance(value, datetime) else value
    return payload


def required_create_fields(entity: EntityIR) -> List[str]:
    """Fields a create payload cannot omit."""
    names: List[str] = [
        name for name, cfg in entity.stored_fields.items() if cfg.required and cfg.default is None
    ]
    names.extend(fk for fk, rel in entity.foreign_keys.items() if not rel.optional)
    return names


def invalid_values(cfg: FieldConfig) -> List[Tuple[str, Any]]:
    """``(case name, value)`` pairs, each violating one declared rule."""
    cases: List[Tuple[str, Any]] = []
    if cfg.type == FieldType.ENUM:
        cases.append(("enum", "__not_a_member__"))
    for kind, value in applicable_validations(cfg):
        if kind == ValidationKind.MIN_LENGTH and int(value) > 0:
            cases.append(("min_length", "a" * (int(value) - 1)))
        elif kind == ValidationKind.MAX_LENGTH:
            cases.append(("max_length", "a" * (int(value) + 1)))
        elif kind == ValidationKind.EMAIL:
            cases.append(("email", "not-an-email"))
        elif kind == ValidationKind.URL:
            cases.append(("url", "not a url"))
        elif kind == ValidationKind.ONE_OF:
            cases.append(("one_of", "__not_an_option__"))
        elif kind == ValidationKind.MIN:
            cases.append(("min", value - 1))
        elif kind == ValidationKind.MAX:
            cases.append(("max", value + 1))
        elif kind == ValidationKind.POSITIVE:
            cases.append(("positive", -1))
    if cfg.is_integer:
        cases.append(("integer", 1.5))
    return cases


def _distinct(records: List[Dict[str, Any]], entity: EntityIR) -> bool:
    """Unique columns stay unique across *records*."""
    for name, cfg in entity.stored_fields.items():
        if cfg.unique and len({repr(r[name]) for r in records}) != len(records):
            return False
    return True


_CONFTEST: List[str] = [
    "import pytest",
    "from fastapi.testclient import TestClient",
    "from sqlalchemy import create_engine",
    "from sqlalchemy.orm import sessionmaker",
    "from sqlalchemy.pool import StaticPool",
    "",
    "{imports}",
    "",
    "",
    "@pytest.fixture()",
    "def engine():",
    f"{INDENT}engine = create_engine(",
    f'{INDENT2}"sqlite://",',
    f'{INDENT2}connect_args={{"check_same_thread": False}},',
    f"{INDENT2}poolclass=StaticPool,",
    f"{INDENT})",
    f"{INDENT}Base.metadata.create_all(bind=engine)",
    f"{INDENT}yield engine",
    f"{INDENT}engine.dispose()",
    "",
    "",
    "@pytest.fixture()",
    "def db_session(engine):",
    f"{INDENT}session = sessionmaker(bind=engine, expire_on_commit=False)()",
    f"{INDENT}try:",
    f"{INDENT2}yield session",
    f"{INDENT}finally:",
    f"{INDENT2}session.close()",
    "",
    "",
    "@pytest.fixture()",
    "def client(engine):",
    f"{INDENT}factory = sessionmaker(bind=engine, expire_on_commit=False)",
    "",
    f"{INDENT}def override_get_db():",
    f"{INDENT2}session = factory()",
    f"{INDENT2}try:",
    f"{INDENT2}{INDENT}yield session",
    f"{INDENT2}finally:",
    f"{INDENT2}{INDENT}session.close()",
    "",
    f"{INDENT}app.dependency_overrides[get_db] = override_get_db",
    f"{INDENT}yield TestClient(app)",
    f"{INDENT}app.dependency_overrides.clear()",
]


class TestsGenerator(Generator):
    __test__ = False

    name = "tests"
    description = "pytest suite exercising every generated endpoint"
    category = "api"

    def generate(self, manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]:
        entities: List[EntityIR] = active_stored_entities(manifest)
        if not entities:
            return []
        files: List[GeneratedFile] = [
            self.text_file("pytest.ini", "[pytest]\npythonpath = .\ntestpaths = tests"),
            self._conftest(ctx),
        ]
        files.extend(self._entity_tests(manifest, entity, ctx) for entity in entities)
        logger.debug("Tests: %d entity modules.", len(entities))
        return files

    def _conftest(self, ctx: GeneratorContext) -> GeneratedFile:
        pkg: str = ctx.config.package_name
        imports: str = "\n".join([
            f"from {pkg}.api.app import app",
            f"from {pkg}.database import Base, get_db",
        ])
        lines: List[str] = self.module_header("Shared fixtures: in-memory SQLite and a TestClient.")
        lines.extend(line.format(imports=imports) if line == "{imports}" else line for line in _CONFTEST)
        return self.python_file("tests/conftest.py", lines)

    # ===================================================================
    # tests/test_{entity}.py
    # ===================================================================

    def _entity_tests(
        self, manifest: ManifestIR, entity: EntityIR, ctx: GeneratorContext
    ) -> GeneratedFile:
        n: EntityNames = ctx.names(entity)
        pkg: str = ctx.config.package_name
        snake: str = n.module
        records: List[Dict[str, Any]] = [
            json_ready(r) for r in mock_records(manifest, entity, PAGINATION_ROWS)
        ]
        text_fields: List[str] = [f for f in entity.text_fields if f in entity.stored_fields]

        lines: List[str] = self.module_header(f"API tests for {entity.name}.")
        if text_fields and _distinct(records[:3], entity):
            lines.append("import json")
            lines.append("")
        if entity.behaviors.soft_delete:
            lines.append(f"from {pkg}.models.{n.module} import {entity.name}")
        lines.append("")
        lines.append(f'PREFIX = "{ctx.router_prefix(entity)}"')
        lines.append(f'HEADERS = {{"Authorization": "Bearer {AUTH_TOKEN}"}}')
        lines.append("")
        lines.append("RECORDS = [")
        for record in records:
            lines.append(f"{INDENT}{py_literal(record)},")
        lines.append("]")
        lines.append("VALID = RECORDS[0]")
        lines.append("")
        lines.append("")
        lines.extend([
            "def _create(client, payload):",
            f"{INDENT}response = client.post(PREFIX, json=payload, headers=HEADERS)",
            f"{INDENT}assert response.status_code == 201, response.text",
            f"{INDENT}return response.json()",
            "",
            "",
        ])

        lines.extend(self._auth_tests(manifest, entity, ctx, snake))
        lines.extend(self._create_tests(entity, records, snake))
        lines.extend(self._list_tests(entity, records, text_fields, snake))
        lines.extend(self._item_tests(entity, n, records, snake))
        lines.extend(self._batch_tests(entity, records, snake))
        return self.python_file(f"tests/test_{snake}.py", lines)

    @staticmethod
    def _auth_tests(
        manifest: ManifestIR, entity: EntityIR, ctx: GeneratorContext, snake: str
    ) -> List[str]:
        calls: Dict[str, str] = {
            "list": "client.get(PREFIX)",
            "create": "client.post(PREFIX, json=VALID)",
            "get": 'client.get(f"{PREFIX}/missing")',
            "update": 'client.patch(f"{PREFIX}/missing", json={})',
            "remove": 'client.delete(f"{PREFIX}/missing")',
        }
        lines: List[str] = []
        routes: List[RouteSpec] = [r for r in ctx.routes(entity) if not r.batch]
        for route in routes:
            if not manifest.requires_auth(entity, route.crud_op):
                continue
            lines.extend([
                f"def test_{route.operation}_{snake}_requires_auth(client):",
                f"{INDENT}response = {calls[route.operation]}",
                f"{INDENT}assert response.status_code == 401",
                "",
                "",
            ])
        return lines

    @staticmethod
    def _create_tests(entity: EntityIR, records: List[Dict[str, Any]], snake: str) -> List[str]:
        lines: List[str] = [
            f"def test_create_{snake}(client):",
            f"{INDENT}body = _create(client, VALID)",
            f'{INDENT}assert body["id"]',
        ]
        for name, cfg in entity.stored_fields.items():
            if cfg.type in _COMPARABLE or cfg.is_integer:
                lines.append(f'{INDENT}assert body["{name}"] == VALID["{name}"]')
        lines.extend(["", ""])

        required: List[str] = required_create_fields(entity)
        if required:
            missing: str = required[0]
            lines.extend([
                f"def test_create_{snake}_missing_required_field(client):",
                f'{INDENT}payload = {{k: v for k, v in VALID.items() if k != "{missing}"}}',
                f"{INDENT}response = client.post(PREFIX, json=payload, headers=HEADERS)",
                f"{INDENT}assert response.status_code == 422",
                "",
                "",
            ])

        for name, cfg in entity.stored_fields.items():
            for case, value in invalid_values(cfg):
                lines.extend([
                    f"def test_create_{snake}_rejects_invalid_{case}_{name.lower()}(client):",
                    f'{INDENT}payload = dict(VALID, {name}={py_literal(value)})',
                    f"{INDENT}response = client.post(PREFIX, json=payload, headers=HEADERS)",
                    f"{INDENT}assert response.status_code == 422",
                    "",
                    "",
                ])
        return lines

    @staticmethod
    def _list_tests(
        entity: EntityIR,
        records: List[Dict[str, Any]],
        text_fields: List[str],
        snake: str,
    ) -> List[str]:
        lines: List[str] = []
        if _distinct(records, entity):
            lines.extend([
                f"def test_list_{snake}_pagination(client):",
                f"{INDENT}for record in RECORDS:",
                f"{INDENT2}_create(client, record)",
                f'{INDENT}response = client.get(PREFIX, params={{"page": 2, "limit": 10}}, headers=HEADERS)',
                f"{INDENT}assert response.status_code == 200",
                f"{INDENT}body = response.json()",
                f'{INDENT}assert len(body["items"]) == 10',
                f'{INDENT}assert body["total"] == {len(records)}',
                f'{INDENT}assert body["page"] == 2',
                f'{INDENT}assert body["limit"] == 10',
                f'{INDENT}assert body["hasMore"] is True',
                "",
                "",
                f"def test_list_{snake}_clamps_limit(client):",
                f'{INDENT}response = client.get(PREFIX, params={{"limit": 500}}, headers=HEADERS)',
                f"{INDENT}assert response.status_code == 200",
                f'{INDENT}assert response.json()["limit"] == 100',
                "",
                "",
                f"def test_list_{snake}_sorted_descending(client):",
                f"{INDENT}for record in RECORDS[:3]:",
                f"{INDENT2}_create(client, record)",
                f'{INDENT}params = {{"sort": "id", "direction": "desc"}}',
                f"{INDENT}body = client.get(PREFIX, params=params, headers=HEADERS).json()",
                f'{INDENT}ids = [item["id"] for item in body["items"]]',
                f"{INDENT}assert ids == sorted(ids, reverse=True)",
                "",
                "",
            ])
        lines.extend([
            f"def test_list_{snake}_rejects_malformed_where(client):",
            f'{INDENT}response = client.get(PREFIX, params={{"where": "{{not json"}}, headers=HEADERS)',
            f"{INDENT}assert response.status_code == 422",
            "",
            "",
        ])
        if not text_fields or not _distinct(records[:3], entity):
            return lines

        sample: List[Dict[str, Any]] = records[:3]
        field: str = text_fields[0]
        target: Any = sample[1][field]
        expected_eq: int = sum(1 for r in sample if r[field] == target)
        term: str = str(target).lower()
        expected_search: int = sum(
            1 for r in sample if any(term in str(r[f]).lower() for f in text_fields if r[f] is not None)
        )
        lines.extend([
            f"def test_list_{snake}_filter_on_{field.lower()}(client):",
            f"{INDENT}for record in RECORDS[:3]:",
            f"{INDENT2}_create(client, record)",
            f'{INDENT}where = json.dumps({{"{field}": RECORDS[1]["{field}"]}})',
            f'{INDENT}body = client.get(PREFIX, params={{"where": where}}, headers=HEADERS).json()',
            f'{INDENT}assert body["total"] == {expected_eq}',
            f'{INDENT}assert all(item["{field}"] == RECORDS[1]["{field}"] for item in body["items"])',
            "",
            "",
            f"def test_list_{snake}_search(client):",
            f"{INDENT}for record in RECORDS[:3]:",
            f"{INDENT2}_create(client, record)",
            f'{INDENT}params = {{"search": {py_literal(str(target).upper())}}}',
            f"{INDENT}body = client.get(PREFIX, params=params, headers=HEADERS).json()",
            f'{INDENT}assert body["total"] == {expected_search}',
            "",
            "",
        ])
        return lines

    @staticmethod
    def _item_tests(
        entity: EntityIR, n: EntityNames, records: List[Dict[str, Any]], snake: str
    ) -> List[str]:
        lines: List[str] = [
            f"def test_get_{snake}(client):",
            f"{INDENT}created = _create(client, VALID)",
            f'{INDENT}response = client.get(f"{{PREFIX}}/{{created[\'id\']}}", headers=HEADERS)',
            f"{INDENT}assert response.status_code == 200",
            f'{INDENT}assert response.json()["id"] == created["id"]',
            "",
            "",
            f"def test_get_{snake}_not_found(client):",
            f'{INDENT}response = client.get(f"{{PREFIX}}/does-not-exist", headers=HEADERS)',
            f"{INDENT}assert response.status_code == 404",
            "",
            "",
        ]

        field: Optional[str] = next(iter(entity.stored_fields), None)
        payload: str = "{}"
        if field is not None:
            payload = f'{{"{field}": {py_literal(records[7][field])}}}'
        lines.extend([
            f"def test_update_{snake}(client):",
            f"{INDENT}created = _create(client, VALID)",
            f"{INDENT}payload = {payload}",
            f'{INDENT}response = client.patch(f"{{PREFIX}}/{{created[\'id\']}}", json=payload, headers=HEADERS)',
            f"{INDENT}assert response.status_code == 200",
        ])
        if field is not None:
            cfg: FieldConfig = entity.stored_fields[field]
            if cfg.type in _COMPARABLE or cfg.is_integer:
                lines.append(f'{INDENT}assert response.json()["{field}"] == payload["{field}"]')
        if entity.behaviors.timestamps:
            lines.append(f'{INDENT}assert response.json()["updatedAt"] >= created["updatedAt"]')
        lines.extend(["", ""])

        lines.extend([
            f"def test_remove_{snake}(client{', db_session' if entity.behaviors.soft_delete else ''}):",
            f"{INDENT}created = _create(client, VALID)",
            f'{INDENT}response = client.delete(f"{{PREFIX}}/{{created[\'id\']}}", headers=HEADERS)',
            f"{INDENT}assert response.status_code == 200",
            f'{INDENT}assert client.get(f"{{PREFIX}}/{{created[\'id\']}}", headers=HEADERS).status_code == 404',
        ])
        if entity.behaviors.soft_delete:
            lines.extend([
                f'{INDENT}row = db_session.get({entity.name}, created["id"])',
                f"{INDENT}assert row is not None",
                f"{INDENT}assert row.deletedAt is not None",
            ])
        lines.extend(["", ""])
        return lines

    @staticmethod
    def _batch_tests(entity: EntityIR, records: List[Dict[str, Any]], snake: str) -> List[str]:
        if not _distinct(records[:3], entity):
            return []
        field: Optional[str] = next(iter(entity.stored_fields), None)
        data: str = f'{{"{field}": RECORDS[7]["{field}"]}}' if field is not None else "{}"
        return [
            f"def test_batch_{snake}_operations(client):",
            f'{INDENT}response = client.post(f"{{PREFIX}}/batch", json={{"items": RECORDS[:3]}}, headers=HEADERS)',
            f"{INDENT}assert response.status_code == 201",
            f"{INDENT}created = response.json()",
            f'{INDENT}assert created["count"] == 3',
            f'{INDENT}ids = [item["id"] for item in created["created"]]',
            "",
            f'{INDENT}items = [{{"id": i, "data": {data}}} for i in ids[:1]]',
            f'{INDENT}items.append({{"id": "does-not-exist", "data": {{}}}})',
            f'{INDENT}response = client.patch(f"{{PREFIX}}/batch", json={{"items": items}}, headers=HEADERS)',
            f"{INDENT}assert response.status_code == 200",
            f'{INDENT}assert response.json()["count"] == 1',
            "",
            f'{INDENT}response = client.post(f"{{PREFIX}}/batch/delete", json={{"ids": ids}}, headers=HEADERS)',
            f"{INDENT}assert response.status_code == 200",
            f'{INDENT}assert response.json()["count"] == 3',
            f'{INDENT}assert client.get(PREFIX, headers=HEADERS).json()["total"] == 0',
            "",
            "",
            f"def test_batch_{snake}_rejects_empty_input(client):",
            f'{INDENT}response = client.post(f"{{PREFIX}}/batch", json={{"items": []}}, headers=HEADERS)',
            f"{INDENT}assert response.status_code == 422",
        ]


__all__: List[str] = [
    "PAGINATION_ROWS",
    "AUTH_TOKEN",
    "json_ready",
    "required_create_fields",
    "invalid_values",
    "TestsGenerator",
]

logger.debug("schemaforge.generators.tests loaded - %d public symbols.", len(__all__))
