"""
tests/test_validators.py
Unit tests for schemaforge.validators (batch validation of raw manifests).

Tests cover:
- A well-formed manifest passes with no issues
- Every issue code is reported at the right path
- Warnings never invalidate a manifest
- Malformed input never raises
- Report / dict rendering
"""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from schemaforge.validators import (
    ValidationCode,
    ValidationResult,
    validate_database,
    validate_field,
    validate_manifest,
)


def _codes(result: ValidationResult) -> List[str]:
    return [issue.code for issue in result.errors]


def _entity(name: str = "Post", **extra: Any) -> Dict[str, Any]:
    entity: Dict[str, Any] = {"name": name, "fields": {"title": {"type": "text"}}}
    entity.update(extra)
    return entity


def _manifest(*entities: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "database": {"type": "sqlite", "file": "./app.db"},
        "entities": list(entities) or [_entity()],
    }
    data.update(extra)
    return data


# ===========================================================================
# Happy path
# ===========================================================================


class TestValidManifest:
    def test_blog_manifest_is_valid(self, blog_dict):
        result = validate_manifest(blog_dict)
        assert result.is_valid
        assert bool(result) is True
        assert len(result) == 0

    def test_headless_without_database_is_valid(self):
        result = validate_manifest({"mode": "headless", "entities": [_entity()]})
        assert result.is_valid

    def test_mode_mapping_form(self):
        result = validate_manifest(
            {"mode": {"type": "headless", "include": ["validation"]}, "entities": [_entity()]}
        )
        assert result.is_valid


# ===========================================================================
# Entity-level issues
# ===========================================================================


class TestEntityIssues:
    def test_invalid_entity_name(self):
        result = validate_manifest(_manifest(_entity("blog_post")))
        assert ValidationCode.INVALID_ENTITY_NAME in _codes(result)
        issue = result.errors[0]
        assert issue.path == "blog_post"
        assert issue.suggestion == "Rename to 'Blog_post'"

    def test_duplicate_entity(self):
        result = validate_manifest(_manifest(_entity("Post"), _entity("Post")))
        assert _codes(result).count(ValidationCode.DUPLICATE_ENTITY) == 1

    def test_missing_fields(self):
        result = validate_manifest(_manifest({"name": "Empty", "fields": {}}))
        assert ValidationCode.MISSING_ENTITY_FIELDS in _codes(result)

    def test_invalid_protected_value(self):
        result = validate_manifest(
            _manifest(_entity(protected="sometimes"), auth={"enabled": True})
        )
        assert _codes(result) == [ValidationCode.INVALID_PROTECTED_VALUE]

    def test_protected_mapping_with_unknown_key(self):
        result = validate_manifest(
            _manifest(_entity(protected={"destroy": True}), auth={"enabled": True})
        )
        assert ValidationCode.INVALID_PROTECTED_VALUE in _codes(result)

    def test_protection_requires_auth(self):
        result = validate_manifest(_manifest(_entity(protected="write")))
        assert _codes(result) == [ValidationCode.AUTH_REQUIRED_FOR_PROTECTED]
        assert result.errors[0].path == "Post.protected"

    def test_protected_false_needs_no_auth(self):
        assert validate_manifest(_manifest(_entity(protected=False))).is_valid

    def test_entity_source_without_base_url(self):
        result = validate_manifest(
            {"mode": "headless", "entities": [_entity(source={"pathPrefix": "/v1"})]}
        )
        assert _codes(result) == [ValidationCode.EXTERNAL_SOURCE_INVALID]


# ===========================================================================
# Field & relation issues
# ===========================================================================


class TestFieldIssues:
    def test_invalid_field_type(self):
        entity = {"name": "Post", "fields": {"title": {"type": "string"}}}
        result = validate_manifest(_manifest(entity))
        assert _codes(result) == [ValidationCode.INVALID_FIELD_TYPE]
        assert result.errors[0].path == "Post.fields.title.type"

    def test_invalid_field_name(self):
        entity = {"name": "Post", "fields": {"Title": {"type": "text"}}}
        assert ValidationCode.INVALID_FIELD_NAME in _codes(validate_manifest(_manifest(entity)))

    def test_keyword_field_name(self):
        entity = {"name": "Post", "fields": {"class": {"type": "text"}}}
        assert ValidationCode.INVALID_FIELD_NAME in _codes(validate_manifest(_manifest(entity)))

    def test_reserved_field_name(self):
        entity = {"name": "Post", "fields": {"createdAt": {"type": "date"}}}
        assert ValidationCode.RESERVED_FIELD_NAME in _codes(validate_manifest(_manifest(entity)))

    def test_enum_without_values(self):
        entity = {"name": "Post", "fields": {"status": {"type": "enum"}}}
        assert _codes(validate_manifest(_manifest(entity))) == [
            ValidationCode.ENUM_VALUES_REQUIRED
        ]

    def test_computed_source_not_found(self):
        fields = {
            "title": {"type": "text"},
            "slug": {"type": "computed", "expression": "body", "dependsOn": ["body"]},
        }
        result = validate_field("slug", fields["slug"], "Post", fields)
        assert _codes(result) == [ValidationCode.COMPUTED_SOURCE_NOT_FOUND]

    def test_computed_cannot_depend_on_computed(self):
        fields = {
            "title": {"type": "text"},
            "upper": {"type": "computed", "expression": "title.upper()", "dependsOn": ["title"]},
            "twice": {"type": "computed", "expression": "upper * 2", "dependsOn": ["upper"]},
        }
        result = validate_field("twice", fields["twice"], "Post", fields)
        assert _codes(result) == [ValidationCode.COMPUTED_SOURCE_NOT_FOUND]

    def test_relation_target_not_found(self):
        entity = _entity(relations={"author": {"type": "hasOne", "entity": "Author"}})
        result = validate_manifest(_manifest(entity))
        assert _codes(result) == [ValidationCode.RELATION_TARGET_NOT_FOUND]
        assert result.errors[0].path == "Post.relations.author.entity"

    def test_invalid_relation_type(self):
        entity = _entity(relations={"self": {"type": "manyToOne", "entity": "Post"}})
        assert _codes(validate_manifest(_manifest(entity))) == [
            ValidationCode.INVALID_RELATION_TYPE
        ]


# ===========================================================================
# Manifest-level issues
# ===========================================================================


class TestManifestIssues:
    def test_full_mode_requires_database(self):
        result = validate_manifest({"entities": [_entity()]})
        assert _codes(result) == [ValidationCode.DATABASE_REQUIRED]

    def test_invalid_mode(self):
        result = validate_manifest(_manifest(mode="serverless"))
        assert ValidationCode.INVALID_MODE in _codes(result)

    @pytest.mark.parametrize(
        "database, code",
        [
            ({"type": "oracle"}, ValidationCode.INVALID_DATABASE_TYPE),
            ({"type": "sqlite"}, ValidationCode.SQLITE_REQUIRES_FILE),
            ({"type": "postgres"}, ValidationCode.POSTGRES_REQUIRES_URL),
            ({"type": "mysql"}, ValidationCode.POSTGRES_REQUIRES_URL),
        ],
    )
    def test_database_issues(self, database, code):
        result = validate_database({"database": database})
        assert _codes(result) == [code]

    def test_invalid_provider(self):
        result = validate_manifest(
            _manifest(auth={"enabled": True, "providers": ["credentials", "myspace"]})
        )
        assert _codes(result) == [ValidationCode.INVALID_PROVIDER]

    def test_global_source_without_base_url(self):
        result = validate_manifest({"mode": "headless", "entities": [_entity()], "source": {}})
        assert _codes(result) == [ValidationCode.EXTERNAL_SOURCE_INVALID]
        assert result.errors[0].path == "source.baseUrl"

    def test_default_language_warning_keeps_manifest_valid(self):
        result = validate_manifest(
            _manifest(i18n={"languages": ["en", "es"], "defaultLanguage": "fr"})
        )
        assert result.is_valid
        assert [w.code for w in result.warnings] == [
            ValidationCode.DEFAULT_LANGUAGE_NOT_LISTED
        ]
        assert result.errors == []

    def test_collects_every_issue_in_one_pass(self):
        result = validate_manifest(
            {
                "mode": "full",
                "entities": [
                    {"name": "post", "fields": {}},
                    _entity(relations={"x": {"type": "hasOne", "entity": "Nope"}}),
                ],
            }
        )
        codes = set(_codes(result))
        assert {
            ValidationCode.DATABASE_REQUIRED,
            ValidationCode.INVALID_ENTITY_NAME,
            ValidationCode.MISSING_ENTITY_FIELDS,
            ValidationCode.RELATION_TARGET_NOT_FOUND,
        } <= codes


# ===========================================================================
# Robustness & rendering
# ===========================================================================


class TestResultRendering:
    @pytest.mark.parametrize("raw", [None, [], "entities", 42])
    def test_non_mapping_input_never_raises(self, raw):
        result = validate_manifest(raw)
        assert isinstance(result, ValidationResult)
        assert not result.is_valid

    def test_garbage_entities_never_raise(self):
        result = validate_manifest(
            {"database": {"type": "sqlite", "file": "x.db"}, "entities": [None, 3, {"fields": []}]}
        )
        assert not result.is_valid

    def test_to_dict(self):
        result = validate_manifest(_manifest(_entity(protected=True)))
        data = result.to_dict()
        assert data["valid"] is False
        assert data["warnings"] == []
        assert data["errors"][0]["code"] == ValidationCode.AUTH_REQUIRED_FOR_PROTECTED
        assert data["errors"][0]["path"] == "Post.protected"
        assert "suggestion" in data["errors"][0]

    def test_format_report(self):
        result = validate_manifest({"entities": [_entity()]})
        report = result.format_report()
        assert report.startswith("Validation: 1 error(s), 0 warning(s).")
        assert "[DATABASE_REQUIRED] database" in report
        assert "fix:" in report

    def test_codes_property(self):
        result = validate_manifest({"entities": [_entity()]})
        assert result.codes == [ValidationCode.DATABASE_REQUIRED]
