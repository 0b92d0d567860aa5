"""
tests/test_storage.py
Unit tests for schemaforge.dialects and the storage generator.

Tests cover:
- Column type selection per field type and dialect
- Column clause ordering
- Junction table collection (pairs, self references, dedupe)
- Generated model modules (columns, foreign keys, behaviors)
"""

from __future__ import annotations

import pytest

from conftest import manifest_with
from schemaforge import belongs_to_many, computed, define_entity, enum_field, has_many, number, text
from schemaforge.dialects import MYSQL, NONE, POSTGRES, SQLITE, get_dialect
from schemaforge.errors import GeneratorInvariantError
from schemaforge.generators.storage import collect_junctions, column_clauses, field_column
from schemaforge.models import DatabaseConfig, DatabaseType


# ===========================================================================
# Dialects
# ===========================================================================


class TestColumnTypes:
    def test_text_with_max_is_varchar(self):
        assert SQLITE.column_type("Post", "title", text().max(40).build()) == ("String(40)", {"String"})

    def test_text_without_max_is_text(self):
        assert POSTGRES.column_type("Post", "body", text().build())[0] == "Text"

    def test_unique_text_on_mysql_needs_length(self):
        cfg = text().unique().build()
        assert MYSQL.column_type("User", "email", cfg)[0] == "String(255)"
        assert SQLITE.column_type("User", "email", cfg)[0] == "Text"

    def test_numbers(self):
        assert SQLITE.column_type("P", "n", number().integer().build())[0] == "Integer"
        assert SQLITE.column_type("P", "n", number().build())[0] == "Float"

    def test_boolean_per_dialect(self):
        from schemaforge import boolean

        cfg = boolean().build()
        assert SQLITE.column_type("P", "flag", cfg)[0] == "Integer"
        assert POSTGRES.column_type("P", "flag", cfg)[0] == "Boolean"

    def test_datetime_per_dialect(self):
        from schemaforge import date

        cfg = date().build()
        assert SQLITE.column_type("P", "at", cfg)[0] == "DateTime"
        assert POSTGRES.column_type("P", "at", cfg)[0] == "DateTime(timezone=True)"

    def test_enum_per_dialect(self):
        cfg = enum_field("draft", "published").build()
        assert SQLITE.column_type("Post", "status", cfg) == ("String(9)", {"String"})
        expr, imports = POSTGRES.column_type("Post", "status", cfg)
        assert expr == "Enum('draft', 'published', name=\"post_status_enum\", native_enum=True)"
        assert imports == {"Enum"}

    def test_computed_has_no_column(self):
        cfg = computed("1").build()
        with pytest.raises(GeneratorInvariantError):
            SQLITE.column_type("P", "x", cfg)
        with pytest.raises(GeneratorInvariantError):
            SQLITE.python_type(cfg)

    def test_python_types(self):
        assert SQLITE.python_type(number().integer().build()) == "int"
        assert SQLITE.python_type(number().build()) == "float"
        assert SQLITE.python_type(enum_field("a").build()) == "str"

    def test_get_dialect(self):
        assert get_dialect(None) is NONE
        assert get_dialect(DatabaseConfig(type=DatabaseType.MYSQL, url="mysql://x")) is MYSQL

    def test_engine_arguments(self):
        assert SQLITE.engine_arguments() == "connect_args={'check_same_thread': False}"
        assert POSTGRES.engine_arguments() == ""


class TestColumnClauses:
    def test_order_is_nullable_unique_default(self):
        cfg = text().required().unique().default("x").build()
        assert column_clauses(cfg) == ["nullable=False", "unique=True", "default='x'"]

    def test_optional_without_extras(self):
        assert column_clauses(text().build()) == ["nullable=True"]

    def test_date_now_default(self):
        from schemaforge import date

        assert column_clauses(date().default("now").build())[-1] == "default=utcnow"

    def test_field_column_line(self):
        line, imports = field_column("Post", "views", number().integer().default(0).build(), SQLITE)
        assert line == (
            'views: Mapped[Optional[int]] = mapped_column("views", Integer, nullable=True, default=0)'
        )
        assert imports == {"Integer"}


# ===========================================================================
# Junction tables
# ===========================================================================


class TestJunctions:
    def test_blog_pair(self, blog_manifest):
        junctions = collect_junctions(blog_manifest)
        assert len(junctions) == 1
        junction = junctions[0]
        assert junction.name == "post_tag"
        assert (junction.left_column, junction.right_column) == ("post_id", "tag_id")
        assert (junction.left_table, junction.right_table) == ("posts", "tags")

    def test_pair_declared_on_both_sides_is_deduped(self):
        entities = [
            define_entity("Post", fields={"title": text()}, relations={"tags": belongs_to_many("Tag")}),
            define_entity("Tag", fields={"label": text()}, relations={"posts": belongs_to_many("Post")}),
        ]
        junctions = collect_junctions(manifest_with(entities))
        assert [j.name for j in junctions] == ["post_tag"]

    def test_self_referential(self):
        entities = [
            define_entity(
                "User",
                fields={"name": text()},
                relations={"friends": belongs_to_many("User"), "followers": has_many("User")},
            )
        ]
        junctions = collect_junctions(manifest_with(entities))
        assert [j.name for j in junctions] == ["user_friends", "user_followers"]
        assert all(j.self_referential for j in junctions)
        assert (junctions[0].left_column, junctions[0].right_column) == ("source_id", "target_id")

    def test_custom_table_and_pivot_fields(self):
        entities = [
            define_entity(
                "Post",
                fields={"title": text()},
                relations={
                    "tags": belongs_to_many("Tag").through(
                        table="post_labels", fields={"weight": number().integer()}
                    )
                },
            ),
            define_entity("Tag", fields={"label": text()}),
        ]
        junction = collect_junctions(manifest_with(entities))[0]
        assert junction.name == "post_labels"
        assert list(junction.pivot_fields) == ["weight"]

    def test_headless_manifest_has_no_junctions(self):
        entities = [
            define_entity("Post", fields={"title": text()}, relations={"tags": belongs_to_many("Tag")}),
            define_entity("Tag", fields={"label": text()}),
        ]
        manifest = manifest_with(entities, mode="headless", database=None)
        assert collect_junctions(manifest) == []


# ===========================================================================
# Generated model modules
# ===========================================================================


class TestModelModules:
    def test_files_emitted(self, blog_manifest, generate):
        files = generate(blog_manifest, package_name="blog")
        for path in (
            "blog/database.py",
            "blog/models/__init__.py",
            "blog/models/author.py",
            "blog/models/post.py",
            "blog/models/tag.py",
            "blog/models/junctions.py",
        ):
            assert path in files

    def test_post_columns(self, blog_manifest, generate):
        post = generate(blog_manifest, package_name="blog")["blog/models/post.py"]
        assert '__tablename__ = "posts"' in post
        assert 'title: Mapped[str] = mapped_column("title", String(120), nullable=False)' in post
        assert (
            'publishedAt: Mapped[Optional[datetime]] = mapped_column("published_at", DateTime, nullable=True)'
            in post
        )
        assert (
            'status: Mapped[Optional[str]] = mapped_column("status", String(9), nullable=True, default=\'draft\')'
            in post
        )
        assert 'mapped_column("author_id", String(36), ForeignKey("authors.id"), nullable=False)' in post
        assert 'mapped_column("created_at", DateTime, nullable=False, default=utcnow)' in post

    def test_computed_fields_are_not_columns(self, blog_manifest, generate):
        post = generate(blog_manifest, package_name="blog")["blog/models/post.py"]
        assert "headline" not in post

    def test_junction_table_module(self, blog_manifest, generate):
        junctions = generate(blog_manifest, package_name="blog")["blog/models/junctions.py"]
        assert 'post_tag = Table(' in junctions
        assert 'Column("post_id", String(36), ForeignKey("posts.id"), primary_key=True),' in junctions

    def test_behavior_columns(self, generate):
        entities = [
            define_entity(
                "Note",
                fields={"body": text()},
                behaviors={"softDelete": True, "audit": True},
            )
        ]
        model = generate(manifest_with(entities, tenancy={"enabled": True}))["app/models/note.py"]
        assert 'mapped_column("deleted_at", DateTime, nullable=True)' in model
        assert 'mapped_column("created_by", String(64), nullable=True)' in model
        assert 'mapped_column("organization_id", String(64), nullable=True, index=True)' in model

    def test_postgres_dialect_output(self, generate):
        manifest = manifest_with(database={"type": "postgres", "url": "env:DATABASE_URL"})
        files = generate(manifest, package_name="blog")
        assert "DateTime(timezone=True)" in files["blog/models/post.py"]
        assert 'name="post_status_enum"' in files["blog/models/post.py"]
        assert "DATABASE_URL_ENV: str = 'DATABASE_URL'" in files["blog/database.py"]

    def test_headless_emits_no_storage(self, generate):
        manifest = manifest_with(mode="headless", database=None)
        files = generate(manifest)
        assert not any(path.startswith("app/models/") for path in files)
        assert "app/database.py" not in files
