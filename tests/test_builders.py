"""
tests/test_builders.py
Unit tests for the field / relation builders and the entity compiler.
"""

from __future__ import annotations

import pytest

from schemaforge import (
    ConfigurationError,
    belongs_to_many,
    boolean,
    computed,
    compile_entity,
    date,
    define_entity,
    enum_field,
    external,
    has_many,
    has_one,
    number,
    text,
)
from schemaforge.entity import normalize_behaviors, normalize_hooks, normalize_protection
from schemaforge.models import (
    Behaviors,
    CrudOp,
    FieldType,
    HookName,
    RelationKind,
    SourceAuthType,
    ValidationKind,
)
from schemaforge.source import parse_endpoint, path_template, resolve_endpoints


# ===========================================================================
# Field builders
# ===========================================================================


class TestFieldBuilders:
    def test_builders_are_immutable(self):
        base = text()
        required = base.required()
        assert base.build().required is False
        assert required.build().required is True
        assert base is not required

    def test_builder_fields_are_optional_by_default(self):
        assert text().build().required is False
        assert number().build().required is False
        assert boolean().build().required is False

    def test_validations_keep_declaration_order(self):
        cfg = text().trim().min(3).max(10).lowercase().build()
        kinds = [v.kind for v in cfg.validations]
        assert kinds == [
            ValidationKind.TRIM,
            ValidationKind.MIN_LENGTH,
            ValidationKind.MAX_LENGTH,
            ValidationKind.LOWERCASE,
        ]

    def test_text_min_max_become_length_rules(self):
        cfg = text().min(2).max(5).build()
        assert cfg.validation_value(ValidationKind.MIN_LENGTH) == 2
        assert cfg.validation_value(ValidationKind.MAX_LENGTH) == 5
        assert not cfg.has_validation(ValidationKind.MIN)

    def test_number_operators(self):
        cfg = number().min(1).max(9).integer().positive().build()
        assert cfg.type == FieldType.NUMBER
        assert cfg.is_integer
        assert cfg.validation_value(ValidationKind.MIN) == 1
        assert cfg.has_validation(ValidationKind.POSITIVE)

    def test_one_of_sets_allowed_values(self):
        cfg = text().one_of(["a", "b"]).build()
        assert cfg.allowed_values == ("a", "b")

    def test_invalid_regex_rejected(self):
        with pytest.raises(ConfigurationError):
            text().regex("([a-z")

    def test_enum_requires_values(self):
        with pytest.raises(ConfigurationError):
            enum_field()

    def test_enum_duplicate_values_rejected(self):
        with pytest.raises(ConfigurationError):
            enum_field("a", "a")

    def test_enum_default_must_be_member(self):
        with pytest.raises(ConfigurationError):
            enum_field("draft", "published").default("archived")

    def test_date_default_accepts_now(self):
        assert date().default("now").build().default == "now"

    def test_computed_field(self):
        cfg = computed("price * quantity", depends_on=["price", "quantity"], returns="number").build()
        assert cfg.type == FieldType.COMPUTED
        assert cfg.is_stored is False
        assert cfg.value_type == FieldType.NUMBER
        assert cfg.source_fields == ("price", "quantity")

    def test_computed_invalid_expression(self):
        with pytest.raises(ConfigurationError):
            computed("price *", depends_on=["price"])

    def test_label(self):
        assert text().label("Full name").build().display_label("name") == "Full name"
        assert text().build().display_label("name") == "name"


# ===========================================================================
# Relation builders
# ===========================================================================


class TestRelationBuilders:
    def test_has_one_field_and_optional(self):
        rel = has_one("User").field("ownerId").optional().build()
        assert rel.kind == RelationKind.HAS_ONE
        assert rel.foreign_key == "ownerId"
        assert rel.optional is True

    def test_has_many(self):
        assert has_many("Comment").build().kind == RelationKind.HAS_MANY

    def test_belongs_to_many_through(self):
        rel = belongs_to_many("Tag").through(
            table="post_tag_links", fields={"weight": number().integer()}
        ).build()
        assert rel.pivot is not None
        assert rel.pivot.table_name == "post_tag_links"
        assert rel.pivot.fields["weight"].is_integer

    def test_pivot_fields_cannot_be_computed(self):
        with pytest.raises(Exception):
            belongs_to_many("Tag").through(fields={"x": computed("1")})


# ===========================================================================
# Normalisation
# ===========================================================================


class TestNormalisation:
    def test_protection_shorthands(self):
        assert not normalize_protection(None).any_protected
        assert all(normalize_protection(True).is_protected(op) for op in CrudOp)
        write = normalize_protection("write")
        assert not write.is_protected(CrudOp.LIST)
        assert not write.is_protected(CrudOp.GET)
        assert write.is_protected(CrudOp.CREATE)
        assert write.is_protected(CrudOp.REMOVE)

    def test_protection_mapping_merges_over_open(self):
        protection = normalize_protection({"remove": True})
        assert protection.is_protected(CrudOp.REMOVE)
        assert not protection.is_protected(CrudOp.CREATE)

    def test_protection_unknown_key(self):
        with pytest.raises(ConfigurationError):
            normalize_protection({"destroy": True})

    def test_hooks_accept_camel_and_snake(self):
        hooks = normalize_hooks({"beforeCreate": True, "after_remove": True})
        assert hooks.enabled == [HookName.BEFORE_CREATE, HookName.AFTER_REMOVE]

    def test_hooks_unknown_name(self):
        with pytest.raises(ConfigurationError):
            normalize_hooks({"onSave": True})

    def test_behaviors_merge_over_defaults(self):
        merged = normalize_behaviors({"softDelete": True}, Behaviors(timestamps=False))
        assert merged.soft_delete is True
        assert merged.timestamps is False

    def test_behaviors_unknown_flag(self):
        with pytest.raises(ConfigurationError):
            normalize_behaviors({"versioning": True})


# ===========================================================================
# Entity compiler
# ===========================================================================


class TestEntityCompiler:
    def test_has_one_foreign_key_defaults_to_relation_name(self):
        entity = define_entity(
            "Post", fields={"title": text()}, relations={"author": has_one("Author")}
        ).compile()
        assert entity.relations["author"].foreign_key == "authorId"
        assert "authorId" in entity.foreign_keys

    def test_fully_resolved_defaults(self):
        entity = define_entity("Note", fields={"body": text()}).compile()
        assert entity.behaviors.timestamps is True
        assert entity.behaviors.soft_delete is False
        assert not entity.protection.any_protected
        assert not entity.hooks.any_enabled

    def test_entity_name_must_be_pascal_case(self):
        with pytest.raises(ConfigurationError):
            define_entity("post", fields={"title": text()}).compile()

    def test_field_name_must_be_camel_case(self):
        with pytest.raises(ConfigurationError):
            define_entity("Post", fields={"Title": text()}).compile()

    def test_reserved_field_name(self):
        with pytest.raises(ConfigurationError):
            define_entity("Post", fields={"createdAt": date()}).compile()

    def test_entity_needs_fields(self):
        with pytest.raises(ConfigurationError):
            define_entity("Empty", fields={}).compile()

    def test_computed_source_must_exist(self):
        with pytest.raises(ConfigurationError):
            define_entity(
                "Post", fields={"slug": computed("title.lower()", depends_on=["title"])}
            ).compile()

    def test_foreign_key_collision(self):
        with pytest.raises(ConfigurationError):
            define_entity(
                "Post",
                fields={"authorId": text()},
                relations={"author": has_one("Author")},
            ).compile()

    def test_compile_entity_accepts_mapping(self):
        entity = compile_entity("Tag", {"fields": {"label": text().required()}})
        assert entity.fields["label"].required is True

    def test_stored_and_computed_views(self):
        entity = define_entity(
            "Item",
            fields={
                "price": number(),
                "qty": number().integer(),
                "total": computed("price * qty", depends_on=["price", "qty"], returns="number"),
            },
        ).compile()
        assert list(entity.stored_fields) == ["price", "qty"]
        assert list(entity.computed_fields) == ["total"]


# ===========================================================================
# External sources
# ===========================================================================


class TestExternalSource:
    def test_default_endpoints(self):
        source = external("https://api.example.com", path_prefix="/v1")
        endpoints = resolve_endpoints("Invoice", source)
        assert endpoints["list"] == "GET /v1/invoices"
        assert endpoints["update"] == "PUT /v1/invoices/:id"

    def test_override_and_resource_name(self):
        source = external(
            "env:BILLING_URL",
            resource_name="bills",
            override={"delete": "POST /bills/:id/archive"},
        )
        endpoints = resolve_endpoints("Invoice", source)
        assert endpoints["get"] == "GET /bills/:id"
        assert endpoints["delete"] == "POST /bills/:id/archive"

    def test_auth_header_defaults(self):
        assert external("http://x", auth={"type": "bearer"}).auth.header == "Authorization"
        api_key = external("http://x", auth={"type": "api-key"}).auth
        assert api_key.type == SourceAuthType.API_KEY
        assert api_key.header == "X-API-Key"

    def test_requires_base_url(self):
        with pytest.raises(ConfigurationError):
            external("")

    def test_unknown_override(self):
        with pytest.raises(ConfigurationError):
            external("http://x", override={"patch": "PATCH /x"})

    def test_endpoint_helpers(self):
        assert parse_endpoint("post /items") == ("POST", "/items")
        assert parse_endpoint("/items") == ("GET", "/items")
        assert path_template("/items/:id/parts/:partId") == "/items/{id}/parts/{partId}"
