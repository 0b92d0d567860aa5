"""
tests/test_generated_app.py
End-to-end tests: generate a project, import it, and drive its FastAPI app
over an in-memory SQLite database.

Tests cover:
- CRUD and batch routes
- Pagination, search and the ``where`` filter DSL
- Computed fields and defaults on read
- Validation (422), conflicts (409), missing records (404)
- Protected operations with auth enabled, and open routes when auth is off
- Soft delete, tenancy scoping and runtime hooks
- Entities made only of computed fields
- The exported project's own test suite, run in a subprocess
"""

from __future__ import annotations

import importlib
import json
import os
import subprocess
import sys
from typing import Any, Dict, List

import pytest

from conftest import build_blog_entities, manifest_with
from schemaforge import computed, define_entity, has_one, text


def _create_tags(client: Any, count: int = 25) -> List[Dict[str, Any]]:
    items = [{"label": f"tag-{i:02d}"} for i in range(1, count + 1)]
    response = client.post("/api/tags/batch", json={"items": items})
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["count"] == count
    return body["created"]


@pytest.fixture()
def blog_client(api_client):
    client, _ = api_client(manifest_with())
    return client


# ===========================================================================
# List DSL
# ===========================================================================


class TestListing:
    def test_pagination(self, blog_client):
        _create_tags(blog_client)
        body = blog_client.get("/api/tags", params={"page": 2, "limit": 10}).json()
        assert len(body["items"]) == 10
        assert body["total"] == 25
        assert body["page"] == 2
        assert body["hasMore"] is True

        last = blog_client.get("/api/tags", params={"page": 3, "limit": 10}).json()
        assert len(last["items"]) == 5
        assert last["hasMore"] is False

    def test_limit_is_clamped(self, blog_client):
        _create_tags(blog_client, 3)
        assert blog_client.get("/api/tags", params={"limit": 500}).json()["limit"] == 100
        assert blog_client.get("/api/tags", params={"limit": 0}).json()["limit"] == 1
        assert blog_client.get("/api/tags").json()["limit"] == 20

    def test_search(self, blog_client):
        _create_tags(blog_client)
        body = blog_client.get("/api/tags", params={"search": "tag-1"}).json()
        assert body["total"] == 10

    def test_where_filter(self, blog_client):
        _create_tags(blog_client)
        where = json.dumps({"label": {"startsWith": "tag-2"}})
        body = blog_client.get("/api/tags", params={"where": where}).json()
        assert body["total"] == 6
        assert all(item["label"].startswith("tag-2") for item in body["items"])

    def test_where_bare_value_means_eq(self, blog_client):
        _create_tags(blog_client, 5)
        where = json.dumps({"label": "tag-03"})
        body = blog_client.get("/api/tags", params={"where": where}).json()
        assert [item["label"] for item in body["items"]] == ["tag-03"]

    def test_invalid_where_json(self, blog_client):
        assert blog_client.get("/api/tags", params={"where": "{nope"}).status_code == 422

    def test_sort_descending(self, blog_client):
        _create_tags(blog_client, 5)
        body = blog_client.get(
            "/api/tags", params={"sort": "label", "direction": "desc"}
        ).json()
        assert [item["label"] for item in body["items"]] == [
            "tag-05", "tag-04", "tag-03", "tag-02", "tag-01"
        ]


# ===========================================================================
# CRUD
# ===========================================================================


class TestCrud:
    def _author(self, client: Any, email: str = "ann@example.com") -> Dict[str, Any]:
        response = client.post("/api/authors", json={"name": "Ann", "email": email})
        assert response.status_code == 201, response.text
        return response.json()

    def test_create_post_with_computed_field_and_defaults(self, blog_client):
        author = self._author(blog_client)
        response = blog_client.post(
            "/api/posts", json={"title": "Hello world", "authorId": author["id"]}
        )
        assert response.status_code == 201, response.text
        post = response.json()
        assert post["headline"] == "HELLO WORLD"
        assert post["status"] == "draft"
        assert post["authorId"] == author["id"]
        assert post["createdAt"] is not None

    def test_get_update_delete(self, blog_client):
        tag = _create_tags(blog_client, 1)[0]
        assert blog_client.get(f"/api/tags/{tag['id']}").json()["label"] == "tag-01"

        updated = blog_client.patch(f"/api/tags/{tag['id']}", json={"label": "renamed"})
        assert updated.status_code == 200, updated.text
        assert updated.json()["label"] == "renamed"

        assert blog_client.delete(f"/api/tags/{tag['id']}").status_code == 200
        missing = blog_client.get(f"/api/tags/{tag['id']}")
        assert missing.status_code == 404
        assert missing.json()["detail"] == "Tag not found"

    def test_unique_violation_is_conflict(self, blog_client):
        self._author(blog_client)
        response = blog_client.post(
            "/api/authors", json={"name": "Other", "email": "ann@example.com"}
        )
        assert response.status_code == 409

    def test_required_message(self, blog_client):
        response = blog_client.post("/api/tags", json={"label": ""})
        assert response.status_code == 422
        assert "Label is required" in response.text

    def test_length_and_format_rules(self, blog_client):
        assert blog_client.post("/api/tags", json={"label": "x" * 31}).status_code == 422
        bad_email = blog_client.post("/api/authors", json={"name": "Ann", "email": "nope"})
        assert bad_email.status_code == 422

    def test_unknown_fields_rejected(self, blog_client):
        response = blog_client.post("/api/tags", json={"label": "ok", "color": "red"})
        assert response.status_code == 422

    def test_batch_delete(self, blog_client):
        tags = _create_tags(blog_client, 4)
        ids = [tag["id"] for tag in tags[:3]] + ["does-not-exist"]
        response = blog_client.post("/api/tags/batch/delete", json={"ids": ids})
        assert response.status_code == 200, response.text
        assert response.json()["count"] == 3
        assert blog_client.get("/api/tags").json()["total"] == 1

    def test_health(self, blog_client):
        assert blog_client.get("/health").json() == {"status": "ok"}


# ===========================================================================
# Auth
# ===========================================================================


class TestProtectedOperations:
    @pytest.fixture()
    def client(self, api_client):
        tag = define_entity("Tag", fields={"label": text().required()}, protected="write")
        client, _ = api_client(manifest_with([tag], auth={"enabled": True}))
        return client

    def test_reads_stay_open(self, client):
        assert client.get("/api/tags").status_code == 200

    def test_writes_need_a_user(self, client):
        assert client.post("/api/tags", json={"label": "a"}).status_code == 401
        response = client.post(
            "/api/tags", json={"label": "a"}, headers={"Authorization": "Bearer alice"}
        )
        assert response.status_code == 201, response.text

    def test_item_routes_need_a_user_when_everything_is_protected(self, api_client):
        tag = define_entity("Tag", fields={"label": text().required()}, protected=True)
        client, _ = api_client(manifest_with([tag], auth={"enabled": True}))
        headers = {"Authorization": "Bearer alice"}
        created = client.post("/api/tags", json={"label": "a"}, headers=headers)
        assert created.status_code == 201, created.text
        url = f"/api/tags/{created.json()['id']}"

        assert client.get("/api/tags").status_code == 401
        assert client.get(url).status_code == 401
        assert client.patch(url, json={"label": "b"}).status_code == 401
        assert client.delete(url).status_code == 401

        assert client.get(url, headers=headers).status_code == 200
        assert client.patch(url, json={"label": "b"}, headers=headers).status_code == 200
        assert client.delete(url, headers=headers).status_code == 200

    def test_everything_open_when_auth_is_off(self, api_client):
        tag = define_entity("Tag", fields={"label": text().required()}, protected=True)
        client, _ = api_client(manifest_with([tag]))
        created = client.post("/api/tags", json={"label": "a"})
        assert created.status_code == 201, created.text
        url = f"/api/tags/{created.json()['id']}"

        assert client.get("/api/tags").status_code == 200
        assert client.get(url).status_code == 200
        assert client.patch(url, json={"label": "b"}).status_code == 200
        batch = client.post("/api/tags/batch", json={"items": [{"label": "c"}]})
        assert batch.status_code == 201
        assert client.delete(url).status_code == 200


# ===========================================================================
# Batch routes
# ===========================================================================


class TestBatchRoutes:
    def test_update_many(self, blog_client):
        tags = _create_tags(blog_client, 3)
        items = [
            {"id": tags[0]["id"], "data": {"label": "first"}},
            {"id": tags[1]["id"], "data": {"label": "second"}},
            {"id": "does-not-exist", "data": {"label": "ghost"}},
        ]
        response = blog_client.patch("/api/tags/batch", json={"items": items})
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["count"] == 2
        assert sorted(item["label"] for item in body["updated"]) == ["first", "second"]
        assert blog_client.get(f"/api/tags/{tags[2]['id']}").json()["label"] == "tag-03"

    def test_batch_size_is_bounded(self, blog_client):
        items = [{"label": f"t{i}"} for i in range(101)]
        assert blog_client.post("/api/tags/batch", json={"items": items}).status_code == 422
        assert blog_client.post("/api/tags/batch", json={"items": []}).status_code == 422
        ids = [f"id-{i}" for i in range(101)]
        assert blog_client.post("/api/tags/batch/delete", json={"ids": ids}).status_code == 422
        assert blog_client.get("/api/tags").json()["total"] == 0


# ===========================================================================
# Behaviors
# ===========================================================================


def _memo_entity() -> Any:
    return define_entity(
        "Memo", fields={"body": text().required()}, behaviors={"softDelete": True}
    )


class TestSoftDelete:
    @pytest.fixture()
    def client(self, api_client):
        client, _ = api_client(manifest_with([_memo_entity()]))
        return client

    def test_removed_records_disappear(self, client):
        kept = client.post("/api/memos", json={"body": "kept"}).json()
        gone = client.post("/api/memos", json={"body": "gone"}).json()

        removed = client.delete(f"/api/memos/{gone['id']}")
        assert removed.status_code == 200, removed.text
        assert removed.json()["deletedAt"] is not None

        listing = client.get("/api/memos").json()
        assert listing["total"] == 1
        assert [item["id"] for item in listing["items"]] == [kept["id"]]
        assert client.get(f"/api/memos/{gone['id']}").status_code == 404
        assert client.patch(f"/api/memos/{gone['id']}", json={"body": "x"}).status_code == 404
        assert client.delete(f"/api/memos/{gone['id']}").status_code == 404

    def test_batch_routes_skip_removed_records(self, client):
        memo = client.post("/api/memos", json={"body": "once"}).json()
        first = client.post("/api/memos/batch/delete", json={"ids": [memo["id"]]})
        assert first.json()["count"] == 1
        second = client.post("/api/memos/batch/delete", json={"ids": [memo["id"]]})
        assert second.json()["count"] == 0
        items = [{"id": memo["id"], "data": {"body": "again"}}]
        assert client.patch("/api/memos/batch", json={"items": items}).json()["count"] == 0


class TestTenancy:
    @pytest.fixture()
    def client(self, api_client):
        client, _ = api_client(manifest_with(tenancy={"enabled": True}))
        return client

    def test_records_are_scoped_to_the_tenant_header(self, client):
        acme = {"X-Tenant-Id": "acme"}
        globex = {"X-Tenant-Id": "globex"}
        tag = client.post("/api/tags", json={"label": "acme-only"}, headers=acme).json()
        client.post("/api/tags", json={"label": "globex-only"}, headers=globex)

        listing = client.get("/api/tags", headers=acme).json()
        assert [item["label"] for item in listing["items"]] == ["acme-only"]
        assert client.get("/api/tags").json()["total"] == 0

        url = f"/api/tags/{tag['id']}"
        assert client.get(url, headers=acme).status_code == 200
        assert client.get(url, headers=globex).status_code == 404
        assert client.patch(url, json={"label": "x"}, headers=globex).status_code == 404
        assert client.delete(url, headers=globex).status_code == 404

    def test_batch_routes_are_scoped(self, client):
        acme = {"X-Tenant-Id": "acme"}
        globex = {"X-Tenant-Id": "globex"}
        created = client.post(
            "/api/tags/batch", json={"items": [{"label": "a"}, {"label": "b"}]}, headers=acme
        ).json()["created"]
        ids = [item["id"] for item in created]

        items = [{"id": ids[0], "data": {"label": "stolen"}}]
        assert client.patch("/api/tags/batch", json={"items": items}, headers=globex).json()["count"] == 0
        removed = client.post("/api/tags/batch/delete", json={"ids": ids}, headers=globex)
        assert removed.json()["count"] == 0
        assert client.get("/api/tags", headers=acme).json()["total"] == 2


class TestRuntimeHooks:
    @pytest.fixture()
    def app(self, api_client):
        note = define_entity("Note", fields={"title": text().required()}, hooks=True)
        client, package = api_client(manifest_with([note]))
        hooks = importlib.import_module(f"{package}.hooks.note").note_hooks
        return client, hooks

    def test_before_create_result_is_written(self, app, monkeypatch):
        client, hooks = app
        monkeypatch.setattr(
            hooks, "before_create", lambda data, ctx: {**data, "title": data["title"].upper()}
        )
        created = client.post("/api/notes", json={"title": "quiet"})
        assert created.status_code == 201, created.text
        assert created.json()["title"] == "QUIET"
        assert client.get(f"/api/notes/{created.json()['id']}").json()["title"] == "QUIET"

    def test_after_hooks_receive_the_persisted_record(self, app, monkeypatch):
        client, hooks = app
        seen: List[Any] = []
        monkeypatch.setattr(hooks, "after_create", lambda record, ctx: seen.append((ctx.operation, record)))
        monkeypatch.setattr(hooks, "after_remove", lambda record, ctx: seen.append((ctx.operation, record)))

        note = client.post("/api/notes", json={"title": "hello"}).json()
        client.delete(f"/api/notes/{note['id']}")

        assert [operation for operation, _ in seen] == ["create", "remove"]
        created_record = seen[0][1]
        assert created_record["id"] == note["id"]
        assert created_record["title"] == "hello"
        assert created_record["createdAt"] is not None
        assert seen[1][1]["id"] == note["id"]

    def test_stub_hooks_pass_data_through(self, app):
        client, _ = app
        created = client.post("/api/notes", json={"title": "as is"})
        assert created.status_code == 201, created.text
        assert created.json()["title"] == "as is"


# ===========================================================================
# Computed-only entities
# ===========================================================================


def _constant_entity() -> Any:
    return define_entity("Constant", fields={"pi": computed("3.14", returns="number")})


class TestComputedOnlyEntity:
    def test_generated_files(self, generate):
        files = generate(manifest_with([_constant_entity()]), package_name="consts")
        suite = files["tests/test_constant.py"]
        assert "payload = {}" in suite
        assert "RECORDS[7][" not in suite

    def test_routes(self, api_client):
        client, _ = api_client(manifest_with([_constant_entity()]))
        created = client.post("/api/constants", json={})
        assert created.status_code == 201, created.text
        assert created.json()["pi"] == 3.14

        url = f"/api/constants/{created.json()['id']}"
        assert client.get(url).json()["pi"] == 3.14
        assert client.patch(url, json={}).status_code == 200
        assert client.post("/api/constants", json={"pi": 1}).status_code == 422

        items = [{"id": created.json()["id"], "data": {}}]
        assert client.patch("/api/constants/batch", json={"items": items}).json()["count"] == 1
        assert client.get("/api/constants").json()["total"] == 1


# ===========================================================================
# Exported project suite
# ===========================================================================


class TestExportedSuite:
    def test_generated_tests_pass(self, project_factory):
        note = define_entity(
            "Note",
            fields={"title": text().required()},
            behaviors={"softDelete": True},
            hooks=True,
            protected="write",
        )
        category = define_entity(
            "Category",
            fields={"name": text().required()},
            relations={"parent": has_one("Category").optional()},
        )
        entities = build_blog_entities() + [note, category, _constant_entity()]
        manifest = manifest_with(
            entities, auth={"enabled": True}, tenancy={"enabled": True}
        )
        _, root = project_factory(manifest)

        env: Dict[str, str] = dict(os.environ)
        env.pop("PYTEST_ADDOPTS", None)
        result = subprocess.run(
            [sys.executable, "-m", "pytest", "-q", "-p", "no:cacheprovider"],
            cwd=str(root),
            env=env,
            capture_output=True,
            text=True,
            timeout=300,
        )
        assert result.returncode == 0, result.stdout + result.stderr
