# File: schemaforge/generators/docs.py
"""
NexaFlow SchemaForge - Documentation Generator
================================================
Always runs.  Produces::

    docs/openapi.json    OpenAPI 3.0.0 document
    docs/swagger.html    Swagger UI page loading ./openapi.json
    docs/API.md          human-readable endpoint and field reference, closing
                         with the Mermaid entity relationship diagram

Paths mirror the router route table (``ctx.routes``) so the document can
never drift from the generated API.  A bearer security scheme is declared
when auth is enabled; only protected operations carry a ``401`` response
and a ``security`` requirement.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from schemaforge.context import EntityNames, GeneratorContext, RouteSpec
from schemaforge.errors import GeneratorInvariantError
from schemaforge.generators.api import routed_entities, sortable_fields
from schemaforge.generators.base import Generator
from schemaforge.generators.erd import erd_lines
from schemaforge.generators.validation import applicable_validations, field_label
from schemaforge.models import (
    EntityIR,
    FieldConfig,
    FieldType,
    GeneratedFile,
    ManifestIR,
    ValidationKind,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generators.docs")

OPENAPI_VERSION: str = "3.0.0"
MAX_BATCH_SIZE: int = 100


def _ref(name: str) -> Dict[str, str]:
    return {"$ref": f"#/components/schemas/{name}"}


def field_schema(cfg: FieldConfig) -> Dict[str, Any]:
    """JSON schema of one field's value, validations included."""
    value_type: FieldType = cfg.value_type
    schema: Dict[str, Any]
    if value_type == FieldType.TEXT:
        schema = {"type": "string"}
    elif value_type == FieldType.NUMBER:
        schema = {"type": "integer" if cfg.is_integer else "number"}
    elif value_type == FieldType.BOOLEAN:
        schema = {"type": "boolean"}
    elif value_type == FieldType.DATE:
        schema = {"type": "string", "format": "date-time"}
    elif value_type == FieldType.ENUM:
        schema = {"type": "string"}
        if cfg.type == FieldType.ENUM:
            schema["enum"] = list(cfg.enum_values or ())
    else:
        raise GeneratorInvariantError.unhandled("field type", value_type)

    if cfg.type == FieldType.COMPUTED:
        schema["readOnly"] = True
        return schema

    for kind, value in applicable_validations(cfg):
        if kind == ValidationKind.MIN_LENGTH:
            schema["minLength"] = int(value)
        elif kind == ValidationKind.MAX_LENGTH:
            schema["maxLength"] = int(value)
        elif kind == ValidationKind.EMAIL:
            schema["format"] = "email"
        elif kind == ValidationKind.URL:
            schema["format"] = "uri"
        elif kind == ValidationKind.REGEX:
            schema["pattern"] = str(value)
        elif kind == ValidationKind.ONE_OF:
            schema["enum"] = [str(v) for v in value]
        elif kind == ValidationKind.MIN:
            schema["minimum"] = value
        elif kind == ValidationKind.MAX:
            schema["maximum"] = value
        elif kind == ValidationKind.POSITIVE:
            schema["minimum"] = max(schema.get("minimum", 0), 0)
            schema["exclusiveMinimum"] = True
    if cfg.default is not None and cfg.type != FieldType.DATE:
        schema["default"] = cfg.default
    if cfg.label:
        schema["title"] = cfg.label
    return schema


def entity_schemas(manifest: ManifestIR, entity: EntityIR, n: EntityNames) -> Dict[str, Any]:
    """``Entity``, ``XCreateInput`` and ``XUpdateInput`` component schemas."""
    stored: Dict[str, FieldConfig] = entity.stored_fields
    inputs: Dict[str, Any] = {name: field_schema(cfg) for name, cfg in stored.items()}
    for fk_name, rel in entity.foreign_keys.items():
        inputs[fk_name] = {"type": "string", "description": f"Id of the related {rel.target}"}
    create_required: List[str] = [
        name for name, cfg in stored.items() if cfg.required and cfg.default is None
    ]
    create_required.extend(fk for fk, rel in entity.foreign_keys.items() if not rel.optional)

    read: Dict[str, Any] = {"id": {"type": "string", "format": "uuid", "readOnly": True}}
    read.update(inputs)
    for name, cfg in entity.computed_fields.items():
        read[name] = field_schema(cfg)
    timestamp: Dict[str, Any] = {"type": "string", "format": "date-time", "readOnly": True}
    if entity.behaviors.timestamps:
        read["createdAt"] = dict(timestamp)
        read["updatedAt"] = dict(timestamp)
    if entity.behaviors.soft_delete:
        read["deletedAt"] = dict(timestamp, nullable=True)
    if manifest.tenancy.enabled:
        read[manifest.tenancy.field] = {"type": "string", "nullable": True, "readOnly": True}
    if entity.behaviors.audit:
        read["createdBy"] = {"type": "string", "nullable": True, "readOnly": True}
        read["updatedBy"] = {"type": "string", "nullable": True, "readOnly": True}

    read_schema: Dict[str, Any] = {"type": "object", "properties": read}
    read_schema["required"] = ["id"] + [name for name, cfg in stored.items() if cfg.required]
    create_schema: Dict[str, Any] = {
        "type": "object",
        "properties": inputs,
        "additionalProperties": False,
    }
    if create_required:
        create_schema["required"] = create_required
    return {
        entity.name: read_schema,
        n.create_input: create_schema,
        n.update_input: {
            "type": "object",
            "properties": json.loads(json.dumps(inputs)),
            "additionalProperties": False,
        },
    }


class DocsGenerator(Generator):
    name = "docs"
    description = "OpenAPI 3.0 document, Swagger UI page and Markdown reference"
    category = None

    def generate(self, manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]:
        document: Dict[str, Any] = self.openapi(manifest, ctx)
        files: List[GeneratedFile] = [
            self.text_file("docs/openapi.json", json.dumps(document, indent=2, ensure_ascii=False)),
            self.text_file("docs/swagger.html", self._swagger_page(ctx)),
            self.text_file("docs/API.md", self._markdown(manifest, ctx)),
        ]
        logger.debug("Docs: %d paths.", len(document["paths"]))
        return files

    # ===================================================================
    # openapi.json
    # ===================================================================

    def openapi(self, manifest: ManifestIR, ctx: GeneratorContext) -> Dict[str, Any]:
        """The OpenAPI document as a plain dict."""
        schemas: Dict[str, Any] = {}
        for entity in manifest.entities:
            schemas.update(entity_schemas(manifest, entity, ctx.names(entity)))
        schemas["Error"] = {
            "type": "object",
            "properties": {"detail": {}},
        }

        paths: Dict[str, Dict[str, Any]] = {}
        for entity in routed_entities(manifest):
            external: bool = manifest.is_external(entity)
            prefix: str = ctx.router_prefix(entity)
            for route in ctx.routes(entity, include_batch=not external):
                path: str = route.full_path(prefix)
                operation: Dict[str, Any] = self._operation(manifest, entity, ctx, route, external)
                paths.setdefault(path, {})[route.method.lower()] = operation

        document: Dict[str, Any] = {
            "openapi": OPENAPI_VERSION,
            "info": {
                "title": ctx.title,
                "version": manifest.version,
                "description": f"API for {manifest.name}.",
            },
            "servers": [{"url": "/"}],
            "paths": paths,
            "components": {"schemas": schemas},
        }
        if manifest.auth.enabled:
            document["components"]["securitySchemes"] = {
                "bearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}
            }
        return document

    @staticmethod
    def _operation(
        manifest: ManifestIR,
        entity: EntityIR,
        ctx: GeneratorContext,
        route: RouteSpec,
        external: bool,
    ) -> Dict[str, Any]:
        n: EntityNames = ctx.names(entity)
        item: Dict[str, str] = _ref(entity.name)
        operation: Dict[str, Any] = {
            "operationId": route.handler,
            "summary": route.summary,
            "tags": [entity.name],
        }
        parameters: List[Dict[str, Any]] = []
        if "{record_id}" in route.path:
            parameters.append({
                "name": "record_id",
                "in": "path",
                "required": True,
                "schema": {"type": "string"},
            })

        op: str = route.operation
        responses: Dict[str, Any] = {}
        if op == "list":
            if not external:
                parameters.extend([
                    {"name": "page", "in": "query", "schema": {"type": "integer", "minimum": 1, "default": 1}},
                    {"name": "limit", "in": "query",
                     "schema": {"type": "integer", "minimum": 1, "maximum": 100, "default": 20}},
                    {"name": "sort", "in": "query",
                     "schema": {"type": "string", "enum": sortable_fields(entity)}},
                    {"name": "direction", "in": "query",
                     "schema": {"type": "string", "enum": ["asc", "desc"], "default": "asc"}},
                    {"name": "search", "in": "query", "schema": {"type": "string"}},
                    {"name": "where", "in": "query", "description": f"JSON-encoded {n.where_model}",
                     "schema": {"type": "string"}},
                ])
            responses["200"] = _ok({
                "type": "object",
                "properties": {
                    "items": {"type": "array", "items": item},
                    "total": {"type": "integer"},
                    "page": {"type": "integer"},
                    "limit": {"type": "integer"},
                    "hasMore": {"type": "boolean"},
                },
            })
        elif op in ("get", "remove"):
            responses["200"] = _ok(item)
        elif op == "create":
            operation["requestBody"] = _json_body(_ref(n.create_input))
            responses["201"] = _ok(item)
        elif op == "update":
            operation["requestBody"] = _json_body(_ref(n.update_input))
            responses["200"] = _ok(item)
        elif op == "createMany":
            operation["requestBody"] = _json_body({
                "type": "object",
                "properties": {
                    "items": {"type": "array", "items": _ref(n.create_input),
                              "minItems": 1, "maxItems": MAX_BATCH_SIZE},
                },
                "required": ["items"],
            })
            responses["201"] = _ok(_batch_response("created", item))
        elif op == "updateMany":
            operation["requestBody"] = _json_body({
                "type": "object",
                "properties": {
                    "items": {
                        "type": "array",
                        "minItems": 1,
                        "maxItems": MAX_BATCH_SIZE,
                        "items": {
                            "type": "object",
                            "properties": {"id": {"type": "string"}, "data": _ref(n.update_input)},
                            "required": ["id", "data"],
                        },
                    },
                },
                "required": ["items"],
            })
            responses["200"] = _ok(_batch_response("updated", item))
        elif op == "removeMany":
            operation["requestBody"] = _json_body({
                "type": "object",
                "properties": {
                    "ids": {"type": "array", "items": {"type": "string"},
                            "minItems": 1, "maxItems": MAX_BATCH_SIZE},
                },
                "required": ["ids"],
            })
            responses["200"] = _ok(_batch_response("removed", item))
        else:
            raise GeneratorInvariantError.unhandled("route operation", op)

        error: Dict[str, Any] = {"content": {"application/json": {"schema": _ref("Error")}}}
        if manifest.requires_auth(entity, route.crud_op):
            responses["401"] = dict(error, description="Authentication required")
            operation["security"] = [{"bearerAuth": []}]
        if "{record_id}" in route.path:
            responses["404"] = dict(error, description=f"{n.label} not found")
        if op in ("create", "update", "createMany", "updateMany") and not external:
            responses["409"] = dict(error, description="Conflicts with an existing record")
        if op not in ("get", "remove"):
            responses["422"] = dict(error, description="Validation error")
        if parameters:
            operation["parameters"] = parameters
        operation["responses"] = responses
        return operation

    # ===================================================================
    # swagger.html
    # ===================================================================

    @staticmethod
    def _swagger_page(ctx: GeneratorContext) -> str:
        return "\n".join([
            "<!DOCTYPE html>",
            '<html lang="en">',
            "<head>",
            '  <meta charset="utf-8" />',
            f"  <title>{ctx.title} - API</title>",
            '  <link rel="stylesheet" href="https://unpkg.com/swagger-ui-dist@5/swagger-ui.css" />',
            "</head>",
            "<body>",
            '  <div id="swagger-ui"></div>',
            '  <script src="https://unpkg.com/swagger-ui-dist@5/swagger-ui-bundle.js"></script>',
            "  <script>",
            "    window.ui = SwaggerUIBundle({",
            '      url: "./openapi.json",',
            '      dom_id: "#swagger-ui",',
            "    });",
            "  </script>",
            "</body>",
            "</html>",
        ])

    # ===================================================================
    # API.md
    # ===================================================================

    def _markdown(self, manifest: ManifestIR, ctx: GeneratorContext) -> str:
        lines: List[str] = [
            f"# {ctx.title} API",
            "",
            f"Version {manifest.version}.  Generated from the `{manifest.name}` manifest.",
            "",
        ]
        if manifest.auth.enabled:
            lines.extend([
                "## Authentication",
                "",
                "Protected operations need an `Authorization: Bearer <token>` header "
                "and answer `401` without one.",
                "",
            ])
        if manifest.tenancy.enabled:
            lines.extend([
                "## Tenancy",
                "",
                "Send `X-Tenant-Id` to scope reads and writes to one tenant.",
                "",
            ])
        routed = {e.name for e in routed_entities(manifest)}
        if routed:
            lines.extend([
                "## Listing",
                "",
                "| Parameter | Meaning |",
                "|-----------|---------|",
                "| `page` | 1-based page number (default 1) |",
                "| `limit` | page size, clamped to 1..100 (default 20) |",
                "| `sort` | field to order by |",
                "| `direction` | `asc` (default) or `desc` |",
                "| `search` | case-insensitive match on every text field |",
                "| `where` | JSON filter, e.g. `{\"title\": {\"contains\": \"intro\"}}` |",
                "",
            ])
        for entity in manifest.entities:
            lines.extend(self._entity_section(manifest, entity, ctx, entity.name in routed))
        lines.extend(["## Entity relationships", "", "```mermaid"])
        lines.extend(erd_lines(manifest))
        lines.extend(["```", ""])
        return "\n".join(lines)

    @staticmethod
    def _entity_section(
        manifest: ManifestIR, entity: EntityIR, ctx: GeneratorContext, routed: bool
    ) -> List[str]:
        n: EntityNames = ctx.names(entity)
        source: Optional[Any] = manifest.source_for(entity)
        lines: List[str] = [f"## {entity.name}", ""]
        if source is not None:
            lines.extend([f"Served by the external API at `{source.base_url}`.", ""])
        lines.extend([
            "| Field | Type | Required | Notes |",
            "|-------|------|----------|-------|",
        ])
        for name, cfg in entity.fields.items():
            notes: List[str] = []
            if cfg.type == FieldType.COMPUTED:
                notes.append(f"computed: `{cfg.expression}`")
            if cfg.type == FieldType.ENUM:
                notes.append(", ".join(cfg.enum_values or ()))
            notes.extend(f"{kind.value}={value}" for kind, value in applicable_validations(cfg)
                         if value is not True)
            notes.extend(kind.value for kind, value in applicable_validations(cfg) if value is True)
            if cfg.unique:
                notes.append("unique")
            lines.append(
                f"| `{name}` ({field_label(name, cfg)}) | {cfg.value_type.value} | "
                f"{'yes' if cfg.required else 'no'} | {'; '.join(notes)} |"
            )
        for fk_name, rel in entity.foreign_keys.items():
            lines.append(
                f"| `{fk_name}` | id | {'no' if rel.optional else 'yes'} | references {rel.target} |"
            )
        lines.append("")
        if routed:
            prefix: str = ctx.router_prefix(entity)
            lines.extend(["| Method | Path | Operation | Auth |", "|--------|------|-----------|------|"])
            for route in ctx.routes(entity, include_batch=source is None):
                auth: str = "required" if manifest.requires_auth(entity, route.crud_op) else "-"
                lines.append(
                    f"| {route.method} | `{route.full_path(prefix)}` | {route.summary} | {auth} |"
                )
            lines.append("")
        relations = [f"- `{name}`: {rel.kind.value} {rel.target}" for name, rel in entity.relations.items()]
        if relations:
            lines.extend(["Relations:", ""])
            lines.extend(relations)
            lines.append("")
        return lines


def _json_body(schema: Dict[str, Any]) -> Dict[str, Any]:
    return {"required": True, "content": {"application/json": {"schema": schema}}}


def _ok(schema: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "description": "Successful response",
        "content": {"application/json": {"schema": schema}},
    }


def _batch_response(key: str, item: Dict[str, str]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {key: {"type": "array", "items": item}, "count": {"type": "integer"}},
    }


__all__: List[str] = [
    "OPENAPI_VERSION",
    "field_schema",
    "entity_schemas",
    "DocsGenerator",
]

logger.debug("schemaforge.generators.docs loaded - %d public symbols.", len(__all__))
