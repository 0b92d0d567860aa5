# File: schemaforge/generators/service.py
"""
NexaFlow SchemaForge - External Service Generator
===================================================
Entities bound to an external REST API get a thin httpx-based service
instead of a database model::

    {pkg}/services/base.py               ServiceError, ServiceClient
    {pkg}/services/{entity}_service.py   XService + module-level instance
    {pkg}/services/__init__.py

Base URLs of the form ``env:VARIABLE`` are resolved when the first request
is made, not at import time.  Credentials come from ``{ENTITY}_API_TOKEN``.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from schemaforge.context import EntityNames, GeneratorContext
from schemaforge.generators.base import INDENT, INDENT2, INDENT3, Generator
from schemaforge.models import EntityIR, ExternalSourceConfig, GeneratedFile, ManifestIR
from schemaforge.source import (
    ENDPOINT_OPERATIONS,
    parse_endpoint,
    path_parameters,
    path_template,
    resolve_endpoints,
)
from schemaforge.utils import build_import_block, py_literal, to_snake_case

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generators.service")


def token_variable(entity_name: str) -> str:
    """Environment variable holding the credential for *entity_name*'s source."""
    return f"{to_snake_case(entity_name).upper()}_API_TOKEN"


def endpoint_table(entity: EntityIR, source: ExternalSourceConfig) -> Dict[str, Tuple[str, str, List[str]]]:
    """``operation -> (method, str.format template, path parameters)``."""
    table: Dict[str, Tuple[str, str, List[str]]] = {}
    for operation, endpoint in resolve_endpoints(entity.name, source).items():
        method, path = parse_endpoint(endpoint)
        table[operation] = (method, path_template(path), path_parameters(path))
    return table


_BASE_BODY: List[str] = [
    "class ServiceError(Exception):",
    f'{INDENT}"""A call to an external service failed."""',
    "",
    f"{INDENT}def __init__(",
    f"{INDENT2}self, message: str, status_code: Optional[int] = None, detail: Any = None",
    f"{INDENT}) -> None:",
    f"{INDENT2}super().__init__(message)",
    f"{INDENT2}self.status_code = status_code",
    f"{INDENT2}self.detail = message if detail is None else detail",
    "",
    "",
    "def resolve_base_url(value: str) -> str:",
    f'{INDENT}"""Expand ``env:VARIABLE`` into the variable\'s value."""',
    f'{INDENT}if not value.startswith("env:"):',
    f"{INDENT2}return value",
    f'{INDENT}name: str = value[len("env:"):]',
    f"{INDENT}resolved: Optional[str] = os.environ.get(name)",
    f"{INDENT}if not resolved:",
    f'{INDENT2}raise ServiceError(f"Environment variable {{name}} is not set")',
    f"{INDENT}return resolved",
    "",
    "",
    "class ServiceClient:",
    f'{INDENT}"""HTTP transport shared by the generated services."""',
    "",
    f"{INDENT}def __init__(",
    f"{INDENT2}self,",
    f"{INDENT2}base_url: str,",
    f"{INDENT2}auth_type: Optional[str] = None,",
    f"{INDENT2}auth_header: Optional[str] = None,",
    f"{INDENT2}token_env: Optional[str] = None,",
    f"{INDENT2}timeout: float = 10.0,",
    f"{INDENT2}client: Optional[httpx.Client] = None,",
    f"{INDENT}) -> None:",
    f"{INDENT2}self._base_url = base_url",
    f"{INDENT2}self.auth_type = auth_type",
    f"{INDENT2}self.auth_header = auth_header",
    f"{INDENT2}self.token_env = token_env",
    f"{INDENT2}self.timeout = timeout",
    f"{INDENT2}self._client = client",
    "",
    f"{INDENT}@property",
    f"{INDENT}def base_url(self) -> str:",
    f'{INDENT2}return resolve_base_url(self._base_url).rstrip("/")',
    "",
    f"{INDENT}def headers(self) -> Dict[str, str]:",
    f'{INDENT2}headers: Dict[str, str] = {{"Accept": "application/json"}}',
    f"{INDENT2}token: Optional[str] = os.environ.get(self.token_env) if self.token_env else None",
    f"{INDENT2}if not token or not self.auth_type:",
    f"{INDENT3}return headers",
    f'{INDENT2}header: str = self.auth_header or "Authorization"',
    f'{INDENT2}if self.auth_type == "bearer":',
    f'{INDENT3}headers[header] = f"Bearer {{token}}"',
    f"{INDENT2}else:",
    f"{INDENT3}headers[header] = token",
    f"{INDENT2}return headers",
    "",
    f"{INDENT}def _http(self) -> httpx.Client:",
    f"{INDENT2}if self._client is None:",
    f"{INDENT3}self._client = httpx.Client(timeout=self.timeout)",
    f"{INDENT2}return self._client",
    "",
    f"{INDENT}def request(",
    f"{INDENT2}self,",
    f"{INDENT2}method: str,",
    f"{INDENT2}path: str,",
    f"{INDENT2}params: Optional[Dict[str, Any]] = None,",
    f"{INDENT2}body: Optional[Dict[str, Any]] = None,",
    f"{INDENT}) -> Any:",
    f"{INDENT2}url: str = f\"{{self.base_url}}{{path}}\"",
    f"{INDENT2}try:",
    f"{INDENT3}response = self._http().request(",
    f"{INDENT3}{INDENT}method, url, params=params, json=body, headers=self.headers()",
    f"{INDENT3})",
    f"{INDENT2}except httpx.HTTPError as exc:",
    f'{INDENT3}raise ServiceError(f"{{method}} {{url}} failed: {{exc}}", status_code=502) from exc',
    f"{INDENT2}if response.status_code >= 400:",
    f"{INDENT3}try:",
    f"{INDENT3}{INDENT}detail: Any = response.json()",
    f"{INDENT3}except ValueError:",
    f"{INDENT3}{INDENT}detail = response.text",
    f"{INDENT3}raise ServiceError(",
    f'{INDENT3}{INDENT}f"{{method}} {{url}} returned {{response.status_code}}",',
    f"{INDENT3}{INDENT}status_code=response.status_code,",
    f"{INDENT3}{INDENT}detail=detail,",
    f"{INDENT3})",
    f"{INDENT2}if not response.content:",
    f"{INDENT3}return None",
    f"{INDENT2}return response.json()",
]


class ServiceGenerator(Generator):
    name = "service"
    description = "httpx services for entities backed by external REST APIs"
    category = "services"

    def generate(self, manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]:
        external: List[EntityIR] = manifest.external_entities
        if not external:
            return []
        files: List[GeneratedFile] = [self._base_module(ctx)]
        for entity in external:
            files.append(self._service_module(manifest, entity, ctx))
        files.append(self._init_module(external, ctx))
        logger.debug("Services: %d external entities.", len(external))
        return files

    def _base_module(self, ctx: GeneratorContext) -> GeneratedFile:
        lines: List[str] = self.module_header("Transport shared by the external services.")
        lines.append(build_import_block({
            "os": set(),
            "httpx": set(),
            "typing": {"Any", "Dict", "Optional"},
        }))
        lines.append("")
        lines.append("")
        lines.extend(_BASE_BODY)
        return self.python_file(self.package_path(ctx, "services", "base.py"), lines)

    def _service_module(
        self, manifest: ManifestIR, entity: EntityIR, ctx: GeneratorContext
    ) -> GeneratedFile:
        n: EntityNames = ctx.names(entity)
        pkg: str = ctx.config.package_name
        source: ExternalSourceConfig = manifest.source_for(entity)
        table = endpoint_table(entity, source)
        auth_type = source.auth.type.value if source.auth else None
        auth_header = source.auth.header if source.auth else None

        lines: List[str] = self.module_header(
            f"Service for {entity.name}, served by {source.base_url}."
        )
        lines.append(build_import_block({
            "typing": {"Any", "Dict", "List", "Optional", "Tuple"},
            f"{pkg}.services.base": {"ServiceClient", "ServiceError"},
        }))
        lines.append("")
        lines.append(f"BASE_URL: str = {py_literal(source.base_url)}")
        lines.append(f"TOKEN_ENV: str = {py_literal(token_variable(entity.name))}")
        lines.append("")
        lines.append("# operation -> (method, path template, path parameters)")
        lines.append("ENDPOINTS: Dict[str, Tuple[str, str, List[str]]] = {")
        for operation in ENDPOINT_OPERATIONS:
            method, template, params = table[operation]
            lines.append(
                f"{INDENT}{py_literal(operation)}: ({py_literal(method)}, {py_literal(template)}, {py_literal(params)}),"
            )
        lines.append("}")
        lines.append("")
        lines.append("")
        lines.extend([
            f"class {n.service_class}:",
            f'{INDENT}"""CRUD calls against the {entity.name} endpoints."""',
            "",
            f"{INDENT}def __init__(self, client: Optional[ServiceClient] = None) -> None:",
            f"{INDENT2}self.client = client or ServiceClient(",
            f"{INDENT3}BASE_URL,",
            f"{INDENT3}auth_type={py_literal(auth_type)},",
            f"{INDENT3}auth_header={py_literal(auth_header)},",
            f"{INDENT3}token_env=TOKEN_ENV,",
            f"{INDENT2})",
            "",
            f"{INDENT}def _path(self, operation: str, record_id: Optional[str] = None) -> str:",
            f"{INDENT2}_, template, params = ENDPOINTS[operation]",
            f"{INDENT2}if params and record_id is None:",
            f'{INDENT3}raise ServiceError(f"{{operation}} needs a record id")',
            f"{INDENT2}return template.format(**{{name: record_id for name in params}})",
            "",
            f"{INDENT}def _call(",
            f"{INDENT2}self,",
            f"{INDENT2}operation: str,",
            f"{INDENT2}record_id: Optional[str] = None,",
            f"{INDENT2}params: Optional[Dict[str, Any]] = None,",
            f"{INDENT2}body: Optional[Dict[str, Any]] = None,",
            f"{INDENT}) -> Any:",
            f"{INDENT2}method: str = ENDPOINTS[operation][0]",
            f"{INDENT2}return self.client.request(",
            f"{INDENT3}method, self._path(operation, record_id), params=params, body=body",
            f"{INDENT2})",
            "",
            f"{INDENT}def list(self, params: Optional[Dict[str, Any]] = None) -> Any:",
            f'{INDENT2}return self._call("list", params=params)',
            "",
            f"{INDENT}def get(self, record_id: str) -> Any:",
            f'{INDENT2}return self._call("get", record_id)',
            "",
            f"{INDENT}def create(self, data: Dict[str, Any]) -> Any:",
            f'{INDENT2}return self._call("create", body=data)',
            "",
            f"{INDENT}def update(self, record_id: str, data: Dict[str, Any]) -> Any:",
            f'{INDENT2}return self._call("update", record_id, body=data)',
            "",
            f"{INDENT}def delete(self, record_id: str) -> Any:",
            f'{INDENT2}return self._call("delete", record_id)',
            "",
            "",
            f"{n.service_instance} = {n.service_class}()",
        ])
        return self.python_file(
            self.package_path(ctx, "services", f"{n.service_module}.py"), lines
        )

    def _init_module(self, external: List[EntityIR], ctx: GeneratorContext) -> GeneratedFile:
        pkg: str = ctx.config.package_name
        lines: List[str] = ['"""Services for externally sourced entities."""', ""]
        exported: List[str] = ["ServiceClient", "ServiceError"]
        lines.append(f"from {pkg}.services.base import ServiceClient, ServiceError")
        for entity in external:
            n = ctx.names(entity)
            lines.append(
                f"from {pkg}.services.{n.service_module} import {n.service_class}, {n.service_instance}"
            )
            exported.extend([n.service_class, n.service_instance])
        lines.append("")
        lines.append(f"__all__ = {py_literal(exported)}")
        return self.python_file(self.package_path(ctx, "services", "__init__.py"), lines)


__all__: List[str] = ["token_variable", "endpoint_table", "ServiceGenerator"]

logger.debug("schemaforge.generators.service loaded - %d public symbols.", len(__all__))
