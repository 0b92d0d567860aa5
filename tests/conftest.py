"""
tests/conftest.py
Shared fixtures for the schemaforge test suite.

Manifests are built fresh for every test; anything written to disk lives
under pytest's ``tmp_path``.  Generated projects are imported under a
unique package name so several can coexist in one test session.
"""

from __future__ import annotations

import copy
import importlib
import json
import pathlib
import sys
import uuid
from typing import Any, Callable, Dict, Iterator, List, Optional

import pytest
import yaml

from schemaforge import (
    CodeGenerator,
    ManifestIR,
    OutputConfig,
    belongs_to_many,
    boolean,
    computed,
    date,
    define_entity,
    define_manifest,
    enum_field,
    has_one,
    number,
    text,
)
from schemaforge.exporters import ProjectExporter
from schemaforge.models import GeneratedFile


# ---------------------------------------------------------------------------
# Raw manifest data
# ---------------------------------------------------------------------------

BLOG_MANIFEST: Dict[str, Any] = {
    "name": "blog",
    "version": "1.2.0",
    "database": {"type": "sqlite", "file": "./blog.db"},
    "entities": [
        {
            "name": "Author",
            "fields": {
                "name": {"type": "text", "min": 2, "max": 80, "trim": True},
                "email": {"type": "text", "email": True, "unique": True},
                "bio": {"type": "text", "optional": True},
            },
        },
        {
            "name": "Post",
            "fields": {
                "title": {"type": "text", "min": 3, "max": 120},
                "views": {"type": "number", "min": 0, "integer": True, "default": 0, "optional": True},
                "rating": {"type": "number", "min": 0, "max": 5, "optional": True},
                "status": {
                    "type": "enum",
                    "values": ["draft", "published"],
                    "default": "draft",
                    "optional": True,
                },
                "featured": {"type": "boolean", "default": False, "optional": True},
                "publishedAt": {"type": "date", "optional": True},
                "headline": {
                    "type": "computed",
                    "expression": "title.upper()",
                    "dependsOn": ["title"],
                },
            },
            "relations": {
                "author": {"type": "hasOne", "entity": "Author"},
                "tags": {"type": "belongsToMany", "entity": "Tag"},
            },
        },
        {
            "name": "Tag",
            "fields": {"label": {"type": "text", "max": 30}},
        },
    ],
}


def build_blog_entities() -> List[Any]:
    """The builder-API twin of ``BLOG_MANIFEST``'s entities."""
    author = define_entity(
        "Author",
        fields={
            "name": text().required().min(2).max(80).trim(),
            "email": text().required().email().unique(),
            "bio": text(),
        },
    )
    post = define_entity(
        "Post",
        fields={
            "title": text().required().min(3).max(120),
            "views": number().min(0).integer().default(0),
            "rating": number().min(0).max(5),
            "status": enum_field("draft", "published").default("draft"),
            "featured": boolean().default(False),
            "publishedAt": date(),
            "headline": computed("title.upper()", depends_on=["title"]),
        },
        relations={
            "author": has_one("Author"),
            "tags": belongs_to_many("Tag"),
        },
    )
    tag = define_entity("Tag", fields={"label": text().required().max(30)})
    return [author, post, tag]


# ---------------------------------------------------------------------------
# Manifest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def blog_dict() -> Dict[str, Any]:
    """Return a deep copy so each test can mutate freely."""
    return copy.deepcopy(BLOG_MANIFEST)


@pytest.fixture()
def blog_manifest() -> ManifestIR:
    """Blog manifest compiled through the builder API."""
    return define_manifest(
        name="blog",
        version="1.2.0",
        entities=build_blog_entities(),
        database={"type": "sqlite", "file": "./blog.db"},
    )


@pytest.fixture()
def blog_json_path(blog_dict: Dict[str, Any], tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps(blog_dict, indent=2), encoding="utf-8")
    return path


@pytest.fixture()
def blog_yaml_path(blog_dict: Dict[str, Any], tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / "manifest.yaml"
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(blog_dict, fh, default_flow_style=False, allow_unicode=True)
    return path


@pytest.fixture()
def invalid_json_path(tmp_path: pathlib.Path) -> pathlib.Path:
    """A manifest that decodes but fails validation (full mode, no database)."""
    path = tmp_path / "invalid.json"
    path.write_text(
        json.dumps({"entities": [{"name": "post", "fields": {}}]}),
        encoding="utf-8",
    )
    return path


# ---------------------------------------------------------------------------
# Generation helpers
# ---------------------------------------------------------------------------


def files_by_path(files: List[GeneratedFile]) -> Dict[str, str]:
    return {f.path: f.content for f in files}


@pytest.fixture()
def generate() -> Callable[..., Dict[str, str]]:
    """Run the default profile in memory and return ``{path: content}``."""

    def _generate(manifest: ManifestIR, **config: Any) -> Dict[str, str]:
        files = CodeGenerator().generate_files(manifest, OutputConfig(**config))
        return files_by_path(files)

    return _generate


@pytest.fixture()
def project_factory(tmp_path: pathlib.Path) -> Iterator[Callable[..., Any]]:
    """
    Write a generated project to disk and import it.

    Returns a callable ``(manifest, **config) -> (package_name, root)``.  Each
    project gets a unique package name; ``sys.path`` and ``sys.modules`` are
    restored on teardown.
    """
    roots: List[str] = []
    packages: List[str] = []

    def _factory(manifest: ManifestIR, **config: Any) -> Any:
        package_name: str = config.pop("package_name", None) or f"gen_{uuid.uuid4().hex[:10]}"
        root: pathlib.Path = tmp_path / package_name
        files = CodeGenerator().generate_files(
            manifest, OutputConfig(package_name=package_name, **config)
        )
        result = ProjectExporter(root, project_name=manifest.name).export(files)
        assert result.success, result.errors
        sys.path.insert(0, str(root))
        roots.append(str(root))
        packages.append(package_name)
        importlib.invalidate_caches()
        return package_name, root

    yield _factory

    for root in roots:
        if root in sys.path:
            sys.path.remove(root)
    for name in list(sys.modules):
        if any(name == p or name.startswith(p + ".") for p in packages):
            del sys.modules[name]


@pytest.fixture()
def api_client(project_factory: Callable[..., Any]) -> Callable[..., Any]:
    """
    Import a generated project's app over an in-memory SQLite database.

    Returns ``(manifest, **config) -> (TestClient, package_name)``.
    """
    from fastapi.testclient import TestClient
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker
    from sqlalchemy.pool import StaticPool

    def _client(manifest: ManifestIR, **config: Any) -> Any:
        package_name, _ = project_factory(manifest, **config)
        app_module = importlib.import_module(f"{package_name}.api.app")
        database = importlib.import_module(f"{package_name}.database")

        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        database.Base.metadata.create_all(bind=engine)
        factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

        def _override_db() -> Iterator[Any]:
            session = factory()
            try:
                yield session
            finally:
                session.close()

        app_module.app.dependency_overrides[database.get_db] = _override_db
        return TestClient(app_module.app), package_name

    return _client


def manifest_with(
    entities: Optional[List[Any]] = None, **config: Any
) -> ManifestIR:
    """Blog entities (or *entities*) compiled with extra manifest options."""
    config.setdefault("database", {"type": "sqlite", "file": "./app.db"})
    return define_manifest(entities=entities or build_blog_entities(), **config)
