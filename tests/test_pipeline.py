"""
tests/test_pipeline.py
Integration tests for the profile pipeline, the orchestrator, the exporter
and the command-line interface.

Tests cover:
- Step selection per generation mode
- Conditional steps (hooks, i18n, seeds)
- Deterministic output
- OpenAPI document shape and auth markers
- Seed records against the generated create schemas
- Export safety and the export manifest
- CLI exit codes
"""

from __future__ import annotations

import importlib
import json
import logging
import pathlib
from datetime import datetime

import pytest

from conftest import files_by_path, manifest_with
from schemaforge import (
    CodeGenerator,
    ConfigurationError,
    OutputConfig,
    belongs_to_many,
    date,
    define_entity,
    define_manifest,
    enum_field,
    external,
    has_many,
    has_one,
    load_manifest_file,
    number,
    parse_manifest_json,
    text,
)
from schemaforge.cli import (
    EXIT_INPUT_ERROR,
    EXIT_SUCCESS,
    EXIT_VALIDATION_ERROR,
    cli_main,
)
from schemaforge.exporters import MANIFEST_FILENAME, ProjectExporter, resolve_target
from schemaforge.generators.seed import mock_records, seed_id, seeded_faker
from schemaforge.models import GeneratedFile
from schemaforge.registry import default_profile_id, fastapi_profile, get_profile


def _invoice_entity():
    return define_entity(
        "Invoice",
        fields={"amount": number().required().positive(), "reference": text()},
        source=external("https://billing.example.com", path_prefix="/v1"),
    )


# ===========================================================================
# Compilation entry points
# ===========================================================================


class TestManifestCompilation:
    def test_json_and_builder_produce_equal_ir(self, blog_dict, blog_manifest):
        assert parse_manifest_json(blog_dict) == blog_manifest

    def test_json_text_input(self, blog_dict, blog_manifest):
        assert parse_manifest_json(json.dumps(blog_dict)) == blog_manifest

    def test_yaml_file(self, blog_yaml_path, blog_manifest):
        assert load_manifest_file(blog_yaml_path) == blog_manifest

    def test_missing_entities(self):
        with pytest.raises(ConfigurationError):
            parse_manifest_json({"database": {"type": "sqlite", "file": "x.db"}})
        with pytest.raises(ConfigurationError):
            define_manifest(database={"type": "sqlite", "file": "x.db"})

    def test_full_mode_without_database(self):
        with pytest.raises(ConfigurationError):
            define_manifest(entities=[define_entity("Note", fields={"body": text()})])

    def test_duplicate_entities(self):
        note = define_entity("Note", fields={"body": text()})
        with pytest.raises(ConfigurationError):
            manifest_with([note, note])

    def test_unknown_relation_target(self, blog_dict):
        blog_dict["entities"] = blog_dict["entities"][1:]  # drop Author
        with pytest.raises(ConfigurationError):
            parse_manifest_json(blog_dict)

    def test_unknown_mode(self):
        with pytest.raises(ConfigurationError):
            manifest_with(mode="serverless")

    def test_tenancy_field_collision(self):
        entity = define_entity("Org", fields={"organizationId": text()})
        with pytest.raises(ConfigurationError):
            manifest_with([entity], tenancy={"enabled": True})

    def test_protection_without_auth(self):
        entity = define_entity("Note", fields={"body": text()}, protected="write")
        manifest = manifest_with([entity])
        assert manifest.auth.enabled is False
        with pytest.raises(ConfigurationError):
            manifest_with([entity], strict_protection=True)

    def test_dependency_order(self, blog_manifest):
        order = blog_manifest.dependency_order()
        assert order.index("Author") < order.index("Post")


# ===========================================================================
# Registry & modes
# ===========================================================================


class TestPipelineSteps:
    def test_default_profile(self):
        profile = get_profile(default_profile_id())
        assert profile is not None
        assert profile.step_names == [
            "package",
            "storage",
            "validation",
            "service",
            "api",
            "client",
            "crud-hooks",
            "i18n",
            "tests",
            "docs",
            "erd",
            "seed",
        ]
        assert get_profile("django") is None

    def test_full_mode_files(self, blog_manifest, generate):
        files = generate(blog_manifest, package_name="blog")
        for path in (
            "blog/__init__.py",
            "requirements.txt",
            "blog/schemas/post.py",
            "blog/api/app.py",
            "blog/api/routers/post.py",
            "blog/client/post.py",
            "tests/conftest.py",
            "tests/test_post.py",
            "docs/openapi.json",
            "docs/swagger.html",
            "docs/API.md",
            "blog/seeds/__init__.py",
            "blog/seeds/post.py",
        ):
            assert path in files, path
        assert not any(path.startswith("blog/hooks/") for path in files)
        assert not any(path.startswith("i18n/") for path in files)
        assert not any(path.startswith("blog/services/") for path in files)

    def test_package_metadata(self, blog_manifest, generate):
        init = generate(blog_manifest, package_name="blog")["blog/__init__.py"]
        assert "__version__ = '1.2.0'" in init
        assert "ENTITIES = ['Author', 'Post', 'Tag']" in init

    def test_active_steps(self, blog_manifest):
        names = [step.name for step in fastapi_profile().active_steps(blog_manifest)]
        assert "service" not in names
        assert "crud-hooks" not in names
        assert "i18n" not in names
        assert "storage" in names and "seed" in names

    def test_headless_with_external_entity(self, generate):
        manifest = manifest_with([_invoice_entity()], mode="headless", database=None)
        files = generate(manifest)
        assert "app/services/invoice_service.py" in files
        assert "app/client/invoice.py" in files
        assert "app/schemas/invoice.py" in files
        assert not any(path.startswith("app/api/") for path in files)
        assert not any(path.startswith("app/models/") for path in files)
        assert not any(path.startswith("app/seeds/") for path in files)
        assert not any(path.startswith("tests/") for path in files)
        assert "/v1/invoices" in files["app/services/invoice_service.py"]

    def test_api_only_has_no_client(self, generate):
        files = generate(manifest_with(mode="api-only"))
        assert "app/api/app.py" in files
        assert not any(path.startswith("app/client/") for path in files)

    def test_crud_hooks_only_when_declared(self, generate):
        entity = define_entity(
            "Note", fields={"body": text()}, hooks={"beforeCreate": True, "afterRemove": True}
        )
        files = generate(manifest_with([entity]))
        assert "app/hooks/note.py" in files
        assert "app/hooks/types.py" in files
        router = files["app/api/routers/note.py"]
        assert "note_hooks.before_create" in router
        assert "_after_remove" in router
        assert "before_update" not in router

    def test_i18n_only_when_multilingual(self, generate):
        assert not any(p.startswith("i18n/") for p in generate(manifest_with()))
        files = generate(manifest_with(i18n={"languages": ["en", "es"], "defaultLanguage": "en"}))
        assert "i18n/es/validation.json" in files
        assert "i18n/en/fields.json" in files
        assert json.loads(files["i18n/es/validation.json"])["required"] == "{field} es requerido"
        assert "app/schemas/_messages.py" in files

    def test_output_is_deterministic(self, blog_manifest):
        first = CodeGenerator().generate_files(blog_manifest, OutputConfig(package_name="blog"))
        second = CodeGenerator().generate_files(blog_manifest, OutputConfig(package_name="blog"))
        assert [f.path for f in first] == [f.path for f in second]
        assert [f.checksum for f in first] == [f.checksum for f in second]

    def test_unknown_profile(self):
        with pytest.raises(ConfigurationError):
            CodeGenerator(profile_id="rails")


# ===========================================================================
# Docs
# ===========================================================================


class TestOpenApi:
    def test_document_shape(self, blog_manifest, generate):
        document = json.loads(generate(blog_manifest)["docs/openapi.json"])
        assert document["openapi"] == "3.0.0"
        assert document["info"]["version"] == "1.2.0"
        schemas = document["components"]["schemas"]
        assert {"Post", "PostCreateInput", "PostUpdateInput", "Error"} <= set(schemas)
        assert "securitySchemes" not in document["components"]
        assert "/api/posts/batch" in document["paths"]
        assert schemas["Post"]["properties"]["headline"]["readOnly"] is True
        assert "headline" not in schemas["PostCreateInput"]["properties"]

    def test_auth_markers_only_on_protected_operations(self, generate):
        tag = define_entity("Tag", fields={"label": text().required()}, protected="write")
        manifest = manifest_with([tag], auth={"enabled": True})
        document = json.loads(generate(manifest)["docs/openapi.json"])
        assert "bearerAuth" in document["components"]["securitySchemes"]
        collection = document["paths"]["/api/tags"]
        assert "401" in collection["post"]["responses"]
        assert collection["post"]["security"] == [{"bearerAuth": []}]
        assert "401" not in collection["get"]["responses"]
        assert "security" not in collection["get"]


class TestErd:
    def test_blog_diagram(self, blog_manifest, generate):
        files = generate(blog_manifest)
        diagram = files["docs/erd.mmd"].splitlines()
        assert diagram[0] == "erDiagram"
        for line in (
            "    Author {",
            "        string id PK",
            '        string name "required"',
            '        string email UK "required"',
            "        int views",
            "        float rating",
            '        string headline "computed"',
            '        string authorId FK "required"',
            "        datetime createdAt",
            "    Post }o--|| Author : author",
            "    Post }o--o{ Tag : tags",
        ):
            assert line in diagram, line
        assert "## Entity relationships" in files["docs/API.md"]
        assert "    Post }o--o{ Tag : tags" in files["docs/API.md"]

    def test_relation_kinds_and_pair_dedupe(self, generate):
        entities = [
            define_entity(
                "User",
                fields={"name": text()},
                relations={
                    "friends": belongs_to_many("User"),
                    "followers": has_many("User"),
                    "mentor": has_one("User").optional(),
                },
            ),
            define_entity("Post", fields={"title": text()}, relations={"tags": belongs_to_many("Tag")}),
            define_entity("Tag", fields={"label": text()}, relations={"posts": belongs_to_many("Post")}),
        ]
        diagram = generate(manifest_with(entities))["docs/erd.mmd"].splitlines()
        assert "    User }o--o{ User : friends" in diagram
        assert "    User ||--o{ User : followers" in diagram
        assert "    User }o--o| User : mentor" in diagram
        assert "        string mentorId FK" in diagram
        many_to_many = [line for line in diagram if "}o--o{" in line and "User" not in line]
        assert many_to_many == ["    Post }o--o{ Tag : tags"]

    def test_behavior_columns(self, generate):
        note = define_entity(
            "Note",
            fields={"body": text()},
            behaviors={"softDelete": True, "audit": True, "timestamps": False},
        )
        diagram = generate(manifest_with([note], tenancy={"enabled": True}))["docs/erd.mmd"]
        assert '        datetime deletedAt "soft delete"' in diagram
        assert '        string organizationId "tenant"' in diagram
        assert '        string createdBy "audit"' in diagram
        assert "createdAt" not in diagram


# ===========================================================================
# Seeds
# ===========================================================================


class TestSeeds:
    def test_seed_ids_are_deterministic(self):
        assert seed_id("Post", 0) == seed_id("Post", 0)
        assert seed_id("Post", 0) != seed_id("Post", 1)

    def test_seed_order(self, blog_manifest, generate):
        seeds_init = generate(blog_manifest, package_name="blog")["blog/seeds/__init__.py"]
        assert seeds_init.index("(Author, seed_authors)") < seeds_init.index("(Post, seed_posts)")

    def test_records_validate_against_create_schemas(self, blog_manifest, project_factory):
        package_name, _ = project_factory(blog_manifest, seed_count=12)
        for module_name, schema_name in (
            ("author", "AuthorCreate"),
            ("post", "PostCreate"),
            ("tag", "TagCreate"),
        ):
            seeds = importlib.import_module(f"{package_name}.seeds.{module_name}")
            schemas = importlib.import_module(f"{package_name}.schemas.{module_name}")
            assert len(seeds.RECORDS) == 12
            for record in seeds.RECORDS:
                payload = {k: v for k, v in record.items() if k != "id"}
                getattr(schemas, schema_name).model_validate(payload)

    def test_foreign_keys_point_at_seeded_parents(self, blog_manifest, project_factory):
        package_name, _ = project_factory(blog_manifest, seed_count=3)
        posts = importlib.import_module(f"{package_name}.seeds.post")
        assert [r["authorId"] for r in posts.RECORDS] == [seed_id("Author", i) for i in range(3)]

    def test_upper_bound_without_lower_bound(self, project_factory):
        rate = define_entity(
            "Rate",
            fields={
                "ratio": number().required().max(0.5),
                "steps": number().required().integer().max(0),
                "share": number().required().positive().max(0.5),
                "debt": number().required().max(-3),
            },
        )
        package_name, _ = project_factory(manifest_with([rate]), seed_count=6)
        seeds = importlib.import_module(f"{package_name}.seeds.rate")
        schemas = importlib.import_module(f"{package_name}.schemas.rate")
        for record in seeds.RECORDS:
            assert record["ratio"] <= 0.5
            assert record["steps"] <= 0
            assert 0 < record["share"] <= 0.5
            assert record["debt"] <= -3
            schemas.RateCreate.model_validate({k: v for k, v in record.items() if k != "id"})

    def test_text_and_dates_come_from_seeded_faker(self):
        place = define_entity(
            "Place",
            fields={
                "city": text().required(),
                "handle": text().required().unique(),
                "openedAt": date().required(),
            },
        )
        manifest = manifest_with([place])
        entity = manifest.get_entity("Place")
        records = mock_records(manifest, entity, 3)

        assert records[0]["city"] == seeded_faker("Place", "city", 0).city()
        assert records[1]["handle"] == f"{seeded_faker('Place', 'handle', 1).user_name()}-2"
        assert len({r["handle"] for r in records}) == 3
        for record in records:
            assert datetime(2023, 1, 1) <= record["openedAt"] <= datetime(2025, 12, 31)
            assert record["openedAt"].second == 0
        assert mock_records(manifest, entity, 3) == records

    def test_unique_field_with_too_few_options_warns(self, caplog):
        level = define_entity(
            "Level",
            fields={"tier": enum_field("gold", "silver").required().unique()},
        )
        manifest = manifest_with([level])
        with caplog.at_level(logging.WARNING, logger="schemaforge.generators.seed"):
            mock_records(manifest, manifest.get_entity("Level"), 5)
        assert "Level.tier is unique but allows only 2 values" in caplog.text

        caplog.clear()
        with caplog.at_level(logging.WARNING, logger="schemaforge.generators.seed"):
            mock_records(manifest, manifest.get_entity("Level"), 2)
        assert caplog.text == ""


# ===========================================================================
# Exporter
# ===========================================================================


class TestExporter:
    @pytest.mark.parametrize("path", ["../escape.py", "/etc/passwd", "a/../../b.py"])
    def test_resolve_target_rejects_escapes(self, tmp_path, path):
        with pytest.raises(ValueError):
            resolve_target(tmp_path, path)

    def test_export_writes_files_and_manifest(self, tmp_path):
        files = [
            GeneratedFile(path="pkg/__init__.py", content="X = 1\n"),
            GeneratedFile(path="README.md", content="hello\n"),
        ]
        result = ProjectExporter(tmp_path, project_name="demo").export(files)
        assert result.success
        assert (tmp_path / "pkg" / "__init__.py").read_text(encoding="utf-8") == "X = 1\n"
        assert (tmp_path / ".gitignore").exists()
        manifest = json.loads((tmp_path / MANIFEST_FILENAME).read_text(encoding="utf-8"))
        assert manifest["project_name"] == "demo"
        assert {f["path"] for f in manifest["files"]} >= {"pkg/__init__.py", "README.md"}

    def test_existing_gitignore_is_kept(self, tmp_path):
        (tmp_path / ".gitignore").write_text("custom\n", encoding="utf-8")
        ProjectExporter(tmp_path).export([GeneratedFile(path="a.txt", content="a\n")])
        assert (tmp_path / ".gitignore").read_text(encoding="utf-8") == "custom\n"

    def test_bad_path_is_an_error(self, tmp_path):
        result = ProjectExporter(tmp_path / "out").export(
            [GeneratedFile(path="../evil.txt", content="x\n")]
        )
        assert not result.success
        assert not (tmp_path / "evil.txt").exists()

    def test_clean_before_export(self, tmp_path):
        (tmp_path / "stale.txt").write_text("old", encoding="utf-8")
        ProjectExporter(tmp_path, clean_before_export=True).export(
            [GeneratedFile(path="fresh.txt", content="new\n")]
        )
        assert not (tmp_path / "stale.txt").exists()
        assert (tmp_path / "fresh.txt").exists()


# ===========================================================================
# Orchestrator & CLI
# ===========================================================================


@pytest.fixture()
def restore_cli_logging():
    """``cli_main`` reconfigures the package logger; undo that after each test."""
    yield
    root = logging.getLogger("schemaforge")
    root.handlers.clear()
    root.setLevel(logging.NOTSET)
    root.propagate = True


class TestGenerateFromFile:
    def test_success_report(self, blog_json_path, tmp_path):
        out = tmp_path / "out"
        report = CodeGenerator().generate_from_file(
            blog_json_path, out, config_overrides={"package_name": "blog"}
        )
        assert report.success, report.summary()
        assert (out / "blog" / "api" / "app.py").exists()
        assert report.total_files == len(report.files)
        assert "SUCCESS" in report.summary()

    def test_validation_failure(self, invalid_json_path):
        report = CodeGenerator().generate_from_file(invalid_json_path, None)
        assert not report.success
        assert report.validation_errors
        assert not report.files

    def test_dry_run_writes_nothing(self, blog_json_path, tmp_path):
        report = CodeGenerator().generate_from_file(blog_json_path, None)
        assert report.success
        assert files_by_path(report.files)["docs/openapi.json"]
        assert not (tmp_path / "app").exists()

    def test_fail_on_warnings(self, blog_dict, tmp_path):
        blog_dict["i18n"] = {"languages": ["en", "es"], "defaultLanguage": "fr"}
        path = tmp_path / "warn.json"
        path.write_text(json.dumps(blog_dict), encoding="utf-8")
        assert CodeGenerator().generate_from_file(path, None).success
        assert not CodeGenerator(fail_on_warnings=True).generate_from_file(path, None).success


@pytest.mark.usefixtures("restore_cli_logging")
class TestCli:
    def _run(self, *argv: str) -> int:
        with pytest.raises(SystemExit) as excinfo:
            cli_main(list(argv))
        return excinfo.value.code

    def test_list_profiles(self, capsys):
        assert self._run("--list-profiles") == EXIT_SUCCESS
        assert "fastapi-sqlalchemy-pydantic" in capsys.readouterr().out

    def test_validate_only_valid(self, blog_json_path):
        assert self._run("-m", str(blog_json_path), "--validate-only", "-q") == EXIT_SUCCESS

    def test_validate_only_invalid_json_output(self, invalid_json_path, capsys):
        code = self._run("-m", str(invalid_json_path), "--validate-only", "--json", "-q")
        assert code == EXIT_VALIDATION_ERROR
        data = json.loads(capsys.readouterr().out)
        assert data["valid"] is False
        assert "DATABASE_REQUIRED" in {e["code"] for e in data["errors"]}

    def test_missing_manifest_file(self, tmp_path):
        assert self._run("-m", str(tmp_path / "nope.json"), "-q") == EXIT_INPUT_ERROR

    def test_missing_output_dir(self, blog_json_path):
        assert self._run("-m", str(blog_json_path), "-q") == EXIT_INPUT_ERROR

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "manifest.toml"
        path.write_text("entities = []", encoding="utf-8")
        assert self._run("-m", str(path), "--validate-only", "-q") == EXIT_INPUT_ERROR

    def test_dry_run(self, blog_yaml_path, capsys):
        assert self._run("-m", str(blog_yaml_path), "--dry-run", "-q") == EXIT_SUCCESS
        assert "docs/openapi.json" in capsys.readouterr().out

    def test_generate(self, blog_json_path, tmp_path: pathlib.Path):
        out = tmp_path / "generated"
        code = self._run(
            "-m", str(blog_json_path), "-o", str(out), "--package-name", "blog",
            "--seed-count", "5", "-q",
        )
        assert code == EXIT_SUCCESS
        assert (out / "blog" / "models" / "post.py").exists()
        assert (out / "requirements.txt").exists()
        assert (out / MANIFEST_FILENAME).exists()
