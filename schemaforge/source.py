# File: schemaforge/source.py
"""
NexaFlow SchemaForge - External Sources
=========================================
Bind an entity (or a whole manifest) to an existing REST API instead of a
database.  Endpoints are ``"METHOD /path"`` strings; ``:name`` segments are
path parameters::

    products = external(
        "env:CATALOG_API_URL",
        path_prefix="/v1",
        override={"get": "GET /items/:id"},
        auth={"type": "api-key"},
    )
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from schemaforge.errors import ConfigurationError
from schemaforge.models import (
    ExternalSourceConfig,
    SourceAuth,
    SourceAuthType,
    SourceEndpoints,
)
from schemaforge.utils import pluralize

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.source")

ENDPOINT_OPERATIONS: Tuple[str, ...] = ("list", "get", "create", "update", "delete")

_PATH_PARAM_RE: re.Pattern[str] = re.compile(r":([a-zA-Z_]+)")

_DEFAULT_AUTH_HEADERS: Dict[SourceAuthType, str] = {
    SourceAuthType.BEARER: "Authorization",
    SourceAuthType.API_KEY: "X-API-Key",
}


def build_source_auth(auth: Optional[Mapping[str, Any]]) -> Optional[SourceAuth]:
    if not auth:
        return None
    try:
        auth_type: SourceAuthType = SourceAuthType(auth.get("type"))
    except ValueError as exc:
        raise ConfigurationError(
            f"Unknown external auth type {auth.get('type')!r}; "
            f"use 'bearer' or 'api-key'"
        ) from exc
    header: str = auth.get("header") or _DEFAULT_AUTH_HEADERS[auth_type]
    return SourceAuth(type=auth_type, header=header)


def external(
    base_url: str,
    path_prefix: str = "",
    resource_name: Optional[str] = None,
    override: Optional[Mapping[str, str]] = None,
    auth: Optional[Mapping[str, Any]] = None,
) -> ExternalSourceConfig:
    """
    Describe an external REST source.

    *base_url* may be ``env:VARIABLE`` to read the URL from the environment
    at runtime.  Endpoints not listed in *override* are derived per entity by
    :func:`resolve_endpoints`.
    """
    if not base_url:
        raise ConfigurationError("External source requires base_url")
    overrides: Dict[str, str] = dict(override or {})
    unknown: List[str] = sorted(set(overrides) - set(ENDPOINT_OPERATIONS))
    if unknown:
        raise ConfigurationError(
            f"Unknown endpoint override(s) {unknown}; "
            f"expected {list(ENDPOINT_OPERATIONS)}"
        )
    return ExternalSourceConfig(
        base_url=base_url,
        path_prefix=path_prefix or "",
        resource_name=resource_name,
        endpoints=SourceEndpoints(**overrides),
        auth=build_source_auth(auth),
    )


def resolve_endpoints(entity_name: str, source: ExternalSourceConfig) -> Dict[str, str]:
    """Fill in every endpoint not overridden with the RESTful default."""
    resource: str = source.resource_name or pluralize(entity_name.lower())
    prefix: str = source.path_prefix
    defaults: Dict[str, str] = {
        "list": f"GET {prefix}/{resource}",
        "get": f"GET {prefix}/{resource}/:id",
        "create": f"POST {prefix}/{resource}",
        "update": f"PUT {prefix}/{resource}/:id",
        "delete": f"DELETE {prefix}/{resource}/:id",
    }
    return {
        op: getattr(source.endpoints, op) or defaults[op] for op in ENDPOINT_OPERATIONS
    }


def parse_endpoint(endpoint: str) -> Tuple[str, str]:
    """
    Split ``"METHOD /path"`` into ``(method, path)``.

    A bare path means ``GET``.
    """
    parts: List[str] = endpoint.strip().split()
    if len(parts) == 2:
        return parts[0].upper(), parts[1]
    return "GET", endpoint.strip()


def path_parameters(path: str) -> List[str]:
    """Names of the ``:param`` segments in *path*, in order."""
    return _PATH_PARAM_RE.findall(path)


def path_template(path: str) -> str:
    """Turn ``/items/:id`` into the ``str.format`` template ``/items/{id}``."""
    return _PATH_PARAM_RE.sub(r"{\1}", path)


__all__: List[str] = [
    "ENDPOINT_OPERATIONS",
    "build_source_auth",
    "external",
    "resolve_endpoints",
    "parse_endpoint",
    "path_parameters",
    "path_template",
]

logger.debug("schemaforge.source loaded - %d public symbols.", len(__all__))
