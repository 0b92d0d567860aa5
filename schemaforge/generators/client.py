# File: schemaforge/generators/client.py
"""
NexaFlow SchemaForge - Client Generator
=========================================
Typed Python clients for the generated API::

    {pkg}/client/base.py        ApiError, QueryCache, ApiClient
    {pkg}/client/{entity}.py    XClient (list/get/create/update/remove, batch
                                operations for stored entities, form helpers)
    {pkg}/client/__init__.py

Reads go through a small TTL cache keyed by URL and parameters; every
mutation invalidates the entity's keys so the next list is fresh.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from schemaforge.context import EntityNames, GeneratorContext
from schemaforge.generators.api import routed_entities
from schemaforge.generators.base import INDENT, INDENT2, INDENT3, Generator
from schemaforge.models import EntityIR, FieldType, GeneratedFile, ManifestIR
from schemaforge.utils import build_import_block, py_literal

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generators.client")


def form_defaults(entity: EntityIR) -> Dict[str, Any]:
    """Initial values of a create form: declared defaults, otherwise None."""
    values: Dict[str, Any] = {}
    for name, cfg in entity.stored_fields.items():
        default: Any = cfg.default
        if cfg.type == FieldType.DATE and isinstance(default, str):
            default = None
        values[name] = default
    for fk_name in entity.foreign_keys:
        values[fk_name] = None
    return values


_BASE_BODY: List[str] = [
    "class ApiError(Exception):",
    f'{INDENT}"""Non-2xx response from the API."""',
    "",
    f"{INDENT}def __init__(self, status_code: int, detail: Any) -> None:",
    f'{INDENT2}super().__init__(f"HTTP {{status_code}}: {{detail}}")',
    f"{INDENT2}self.status_code = status_code",
    f"{INDENT2}self.detail = detail",
    "",
    "",
    "class QueryCache:",
    f'{INDENT}"""Time-bounded cache of read results."""',
    "",
    f"{INDENT}def __init__(self, ttl: float = 30.0) -> None:",
    f"{INDENT2}self.ttl = ttl",
    f"{INDENT2}self._entries: Dict[str, Tuple[float, Any]] = {{}}",
    "",
    f"{INDENT}def get(self, key: str) -> Optional[Any]:",
    f"{INDENT2}entry: Optional[Tuple[float, Any]] = self._entries.get(key)",
    f"{INDENT2}if entry is None:",
    f"{INDENT3}return None",
    f"{INDENT2}expires_at, value = entry",
    f"{INDENT2}if time.monotonic() >= expires_at:",
    f"{INDENT3}del self._entries[key]",
    f"{INDENT3}return None",
    f"{INDENT2}return value",
    "",
    f"{INDENT}def set(self, key: str, value: Any) -> None:",
    f"{INDENT2}self._entries[key] = (time.monotonic() + self.ttl, value)",
    "",
    f'{INDENT}def invalidate(self, prefix: str = "") -> None:',
    f'{INDENT2}"""Drop every key starting with *prefix* (all keys by default)."""',
    f"{INDENT2}for key in [k for k in self._entries if k.startswith(prefix)]:",
    f"{INDENT3}del self._entries[key]",
    "",
    f"{INDENT}def __len__(self) -> int:",
    f"{INDENT2}return len(self._entries)",
    "",
    "",
    "class ApiClient:",
    f'{INDENT}"""',
    f"{INDENT}Shared HTTP session for the entity clients.",
    "",
    f"{INDENT}Pass *client* to reuse an existing ``httpx.Client`` (a FastAPI",
    f"{INDENT}``TestClient`` works too); otherwise one is created for *base_url*.",
    f'{INDENT}"""',
    "",
    f"{INDENT}def __init__(",
    f"{INDENT2}self,",
    f'{INDENT2}base_url: str = "http://localhost:8000",',
    f"{INDENT2}token: Optional[str] = None,",
    f"{INDENT2}tenant_id: Optional[str] = None,",
    f"{INDENT2}cache_ttl: float = 30.0,",
    f"{INDENT2}client: Optional[httpx.Client] = None,",
    f"{INDENT}) -> None:",
    f'{INDENT2}self.base_url = base_url.rstrip("/")',
    f"{INDENT2}self.token = token",
    f"{INDENT2}self.tenant_id = tenant_id",
    f"{INDENT2}self.cache = QueryCache(cache_ttl)",
    f"{INDENT2}self._client = client or httpx.Client(base_url=self.base_url, timeout=10.0)",
    "",
    f"{INDENT}def headers(self) -> Dict[str, str]:",
    f'{INDENT2}headers: Dict[str, str] = {{"Accept": "application/json"}}',
    f"{INDENT2}if self.token:",
    f'{INDENT3}headers["Authorization"] = f"Bearer {{self.token}}"',
    f"{INDENT2}if self.tenant_id:",
    f'{INDENT3}headers["X-Tenant-Id"] = self.tenant_id',
    f"{INDENT2}return headers",
    "",
    f"{INDENT}def request(",
    f"{INDENT2}self,",
    f"{INDENT2}method: str,",
    f"{INDENT2}path: str,",
    f"{INDENT2}params: Optional[Dict[str, Any]] = None,",
    f"{INDENT2}body: Any = None,",
    f"{INDENT}) -> Any:",
    f"{INDENT2}response = self._client.request(",
    f"{INDENT3}method, path, params=params, json=body, headers=self.headers()",
    f"{INDENT2})",
    f"{INDENT2}if response.status_code >= 400:",
    f"{INDENT3}try:",
    f'{INDENT3}{INDENT}detail: Any = response.json().get("detail")',
    f"{INDENT3}except (ValueError, AttributeError):",
    f"{INDENT3}{INDENT}detail = response.text",
    f"{INDENT3}raise ApiError(response.status_code, detail)",
    f"{INDENT2}if not response.content:",
    f"{INDENT3}return None",
    f"{INDENT2}return response.json()",
    "",
    f"{INDENT}def cached(self, key: str, load: Callable[[], Any]) -> Any:",
    f"{INDENT2}hit: Optional[Any] = self.cache.get(key)",
    f"{INDENT2}if hit is not None:",
    f"{INDENT3}return hit",
    f"{INDENT2}value: Any = load()",
    f"{INDENT2}self.cache.set(key, value)",
    f"{INDENT2}return value",
    "",
    f"{INDENT}def close(self) -> None:",
    f"{INDENT2}self._client.close()",
]


class ClientGenerator(Generator):
    name = "client"
    description = "Cached Python API clients with form helpers"
    category = "hooks"

    def generate(self, manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]:
        entities: List[EntityIR] = routed_entities(manifest)
        if not entities:
            return []
        files: List[GeneratedFile] = [self._base_module(ctx)]
        for entity in entities:
            files.append(self._entity_module(manifest, entity, ctx))
        files.append(self._init_module(entities, ctx))
        logger.debug("Client: %d entity clients.", len(entities))
        return files

    def _base_module(self, ctx: GeneratorContext) -> GeneratedFile:
        lines: List[str] = self.module_header("HTTP plumbing shared by the entity clients.")
        lines.append(build_import_block({
            "time": set(),
            "httpx": set(),
            "typing": {"Any", "Callable", "Dict", "Optional", "Tuple"},
        }))
        lines.append("")
        lines.append("")
        lines.extend(_BASE_BODY)
        return self.python_file(self.package_path(ctx, "client", "base.py"), lines)

    def _entity_module(
        self, manifest: ManifestIR, entity: EntityIR, ctx: GeneratorContext
    ) -> GeneratedFile:
        n: EntityNames = ctx.names(entity)
        pkg: str = ctx.config.package_name
        batch: bool = not manifest.is_external(entity)
        editable: List[str] = list(entity.stored_fields) + list(entity.foreign_keys)

        lines: List[str] = self.module_header(f"Client for the {entity.name} endpoints.")
        lines.append(build_import_block({
            "json": set(),
            "typing": {"Any", "Dict", "List", "Optional"},
            f"{pkg}.client.base": {"ApiClient"},
        }))
        lines.append("")
        lines.append(f"FORM_DEFAULTS: Dict[str, Any] = {py_literal(form_defaults(entity))}")
        lines.append(f"EDITABLE_FIELDS: List[str] = {py_literal(editable)}")
        lines.append("")
        lines.append("")
        lines.extend([
            f"class {n.client_class}:",
            f'{INDENT}resource: str = "{ctx.router_prefix(entity)}"',
            "",
            f"{INDENT}def __init__(self, api: ApiClient) -> None:",
            f"{INDENT2}self.api = api",
            "",
            f"{INDENT}def _invalidate(self) -> None:",
            f"{INDENT2}self.api.cache.invalidate(self.resource)",
            "",
            f"{INDENT}# -- Reads --------------------------------------------------------",
            "",
            f"{INDENT}def list(",
            f"{INDENT2}self,",
            f"{INDENT2}page: int = 1,",
            f"{INDENT2}limit: int = 20,",
            f"{INDENT2}sort: Optional[str] = None,",
            f'{INDENT2}direction: str = "asc",',
            f"{INDENT2}search: Optional[str] = None,",
            f"{INDENT2}where: Optional[Dict[str, Any]] = None,",
            f"{INDENT}) -> Any:",
            f'{INDENT2}params: Dict[str, Any] = {{"page": page, "limit": limit, "direction": direction}}',
            f"{INDENT2}if sort:",
            f'{INDENT3}params["sort"] = sort',
            f"{INDENT2}if search:",
            f'{INDENT3}params["search"] = search',
            f"{INDENT2}if where:",
            f'{INDENT3}params["where"] = json.dumps(where, sort_keys=True)',
            f'{INDENT2}key: str = f"{{self.resource}}?{{json.dumps(params, sort_keys=True)}}"',
            f'{INDENT2}return self.api.cached(key, lambda: self.api.request("GET", self.resource, params=params))',
            "",
            f"{INDENT}def get(self, record_id: str) -> Any:",
            f'{INDENT2}path: str = f"{{self.resource}}/{{record_id}}"',
            f'{INDENT2}return self.api.cached(path, lambda: self.api.request("GET", path))',
            "",
            f"{INDENT}# -- Writes -------------------------------------------------------",
            "",
            f"{INDENT}def create(self, data: Dict[str, Any]) -> Any:",
            f'{INDENT2}result: Any = self.api.request("POST", self.resource, body=data)',
            f"{INDENT2}self._invalidate()",
            f"{INDENT2}return result",
            "",
            f"{INDENT}def update(self, record_id: str, data: Dict[str, Any]) -> Any:",
            f'{INDENT2}result: Any = self.api.request("PATCH", f"{{self.resource}}/{{record_id}}", body=data)',
            f"{INDENT2}self._invalidate()",
            f"{INDENT2}return result",
            "",
            f"{INDENT}def remove(self, record_id: str) -> Any:",
            f'{INDENT2}result: Any = self.api.request("DELETE", f"{{self.resource}}/{{record_id}}")',
            f"{INDENT2}self._invalidate()",
            f"{INDENT2}return result",
        ])
        if batch:
            lines.extend([
                "",
                f"{INDENT}def create_many(self, items: List[Dict[str, Any]]) -> Any:",
                f'{INDENT2}result: Any = self.api.request("POST", f"{{self.resource}}/batch", body={{"items": items}})',
                f"{INDENT2}self._invalidate()",
                f"{INDENT2}return result",
                "",
                f"{INDENT}def update_many(self, items: List[Dict[str, Any]]) -> Any:",
                f'{INDENT2}"""*items* are ``{{"id": ..., "data": {{...}}}}`` mappings."""',
                f'{INDENT2}result: Any = self.api.request("PATCH", f"{{self.resource}}/batch", body={{"items": items}})',
                f"{INDENT2}self._invalidate()",
                f"{INDENT2}return result",
                "",
                f"{INDENT}def remove_many(self, ids: List[str]) -> Any:",
                f'{INDENT2}result: Any = self.api.request("POST", f"{{self.resource}}/batch/delete", body={{"ids": ids}})',
                f"{INDENT2}self._invalidate()",
                f"{INDENT2}return result",
            ])
        lines.extend([
            "",
            f"{INDENT}# -- Forms --------------------------------------------------------",
            "",
            f"{INDENT}@staticmethod",
            f"{INDENT}def create_form() -> Dict[str, Any]:",
            f'{INDENT2}"""Blank form values for a new {n.label}."""',
            f"{INDENT2}return dict(FORM_DEFAULTS)",
            "",
            f"{INDENT}@staticmethod",
            f"{INDENT}def edit_form(record: Dict[str, Any]) -> Dict[str, Any]:",
            f'{INDENT2}"""Editable values of an existing {n.label}."""',
            f"{INDENT2}return {{name: record.get(name) for name in EDITABLE_FIELDS}}",
        ])
        return self.python_file(self.package_path(ctx, "client", f"{n.module}.py"), lines)

    def _init_module(self, entities: List[EntityIR], ctx: GeneratorContext) -> GeneratedFile:
        pkg: str = ctx.config.package_name
        lines: List[str] = ['"""Python clients for the generated API."""', ""]
        exported: List[str] = ["ApiClient", "ApiError", "QueryCache"]
        lines.append(f"from {pkg}.client.base import ApiClient, ApiError, QueryCache")
        for entity in entities:
            n = ctx.names(entity)
            lines.append(f"from {pkg}.client.{n.module} import {n.client_class}")
            exported.append(n.client_class)
        lines.append("")
        lines.append(f"__all__ = {py_literal(exported)}")
        return self.python_file(self.package_path(ctx, "client", "__init__.py"), lines)


__all__: List[str] = ["form_defaults", "ClientGenerator"]

logger.debug("schemaforge.generators.client loaded - %d public symbols.", len(__all__))
