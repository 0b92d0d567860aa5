# File: schemaforge/context.py
"""
NexaFlow SchemaForge - Generator Context
==========================================
The second argument every generator receives.  It carries:

* naming conventions (``ctx.naming`` plus per-entity ``ctx.names(entity)``),
* the storage ``Dialect``,
* the ``OutputConfig`` (package name, API prefix, seed count, title),
* the shared route table (``ctx.routes(entity)``) so the router and the
  documentation generators describe exactly the same operations.

Generators only ever *read* the context.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import List, Optional

from schemaforge.dialects import Dialect, get_dialect
from schemaforge.models import CrudOp, EntityIR, ManifestIR, OutputConfig
from schemaforge.utils import (
    column_name,
    module_name,
    pluralize,
    resource_name,
    table_name,
    to_camel_case,
    to_kebab_case,
    to_pascal_case,
    to_snake_case,
    to_title_human,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.context")


class Naming:
    """Naming-convention functions exposed to generators."""

    snake = staticmethod(to_snake_case)
    pascal = staticmethod(to_pascal_case)
    camel = staticmethod(to_camel_case)
    kebab = staticmethod(to_kebab_case)
    title = staticmethod(to_title_human)
    plural = staticmethod(pluralize)
    table = staticmethod(table_name)
    column = staticmethod(column_name)
    module = staticmethod(module_name)
    resource = staticmethod(resource_name)


@dataclass(frozen=True, slots=True)
class EntityNames:
    """Every identifier derived from one entity name."""

    name: str
    label: str
    module: str
    table: str
    resource: str
    plural_snake: str
    create_schema: str
    update_schema: str
    read_schema: str
    where_model: str
    list_input: str
    serializer: str
    loader: str
    hooks_class: str
    hooks_instance: str
    hooks_protocol: str
    create_input: str
    update_input: str
    record_type: str
    service_module: str
    service_class: str
    service_instance: str
    client_class: str


@functools.lru_cache(maxsize=None)
def entity_names(name: str) -> EntityNames:
    snake: str = to_snake_case(name)
    return EntityNames(
        name=name,
        label=to_title_human(name),
        module=module_name(name),
        table=table_name(name),
        resource=resource_name(name),
        plural_snake=to_snake_case(pluralize(name)),
        create_schema=f"{name}Create",
        update_schema=f"{name}Update",
        read_schema=f"{name}Read",
        where_model=f"{name}Where",
        list_input=f"{name}ListInput",
        serializer=f"serialize_{snake}",
        loader=f"_load_{snake}",
        hooks_class=f"{name}Hooks",
        hooks_instance=f"{snake}_hooks",
        hooks_protocol=f"{name}HooksProtocol",
        create_input=f"{name}CreateInput",
        update_input=f"{name}UpdateInput",
        record_type=f"{name}Record",
        service_module=f"{snake}_service",
        service_class=f"{name}Service",
        service_instance=f"{snake}_service",
        client_class=f"{name}Client",
    )


@dataclass(frozen=True, slots=True)
class RouteSpec:
    """One HTTP operation of an entity router."""

    operation: str  # list | get | create | update | remove | createMany | ...
    crud_op: CrudOp
    method: str
    path: str  # relative to the router prefix
    handler: str
    status_code: int
    summary: str
    batch: bool = False

    def full_path(self, prefix: str) -> str:
        return f"{prefix}{self.path}" if self.path else prefix


@dataclass(frozen=True)
class GeneratorContext:
    """Read-only bundle passed to every generator."""

    dialect: Dialect
    config: OutputConfig
    naming: Naming = Naming()

    def names(self, entity: EntityIR) -> EntityNames:
        return entity_names(entity.name)

    def router_prefix(self, entity: EntityIR) -> str:
        """Mount path of the entity router, including the API prefix."""
        return f"{self.config.api_prefix}/{self.names(entity).resource}"

    @property
    def title(self) -> str:
        return self.config.project_title or to_title_human(self.config.package_name)

    def routes(self, entity: EntityIR, include_batch: bool = True) -> List[RouteSpec]:
        """
        Route table in registration order.

        Batch routes come first so ``/batch`` is never captured by the
        ``/{record_id}`` item routes.  Externally sourced entities have no
        batch routes.
        """
        n: EntityNames = self.names(entity)
        plural: str = n.plural_snake
        single: str = n.module
        label: str = n.label
        routes: List[RouteSpec] = [
            RouteSpec("createMany", CrudOp.CREATE, "POST", "/batch", f"create_many_{plural}", 201,
                      f"Create many {label} records", batch=True),
            RouteSpec("updateMany", CrudOp.UPDATE, "PATCH", "/batch", f"update_many_{plural}", 200,
                      f"Update many {label} records", batch=True),
            RouteSpec("removeMany", CrudOp.REMOVE, "POST", "/batch/delete", f"remove_many_{plural}", 200,
                      f"Remove many {label} records", batch=True),
            RouteSpec("list", CrudOp.LIST, "GET", "", f"list_{plural}", 200,
                      f"List {label} records"),
            RouteSpec("create", CrudOp.CREATE, "POST", "", f"create_{single}", 201,
                      f"Create a {label}"),
            RouteSpec("get", CrudOp.GET, "GET", "/{record_id}", f"get_{single}", 200,
                      f"Get a {label} by id"),
            RouteSpec("update", CrudOp.UPDATE, "PATCH", "/{record_id}", f"update_{single}", 200,
                      f"Update a {label}"),
            RouteSpec("remove", CrudOp.REMOVE, "DELETE", "/{record_id}", f"remove_{single}", 200,
                      f"Remove a {label}"),
        ]
        return [r for r in routes if include_batch or not r.batch]


def create_context(
    manifest: ManifestIR, config: Optional[OutputConfig] = None
) -> GeneratorContext:
    """Build the context for *manifest*; the dialect follows its database."""
    ctx: GeneratorContext = GeneratorContext(
        dialect=get_dialect(manifest.database),
        config=config or OutputConfig(),
    )
    logger.debug(
        "Context created: dialect=%s, package=%s, api_prefix=%s",
        ctx.dialect.name,
        ctx.config.package_name,
        ctx.config.api_prefix,
    )
    return ctx


__all__: List[str] = [
    "Naming",
    "EntityNames",
    "entity_names",
    "RouteSpec",
    "GeneratorContext",
    "create_context",
]

logger.debug("schemaforge.context loaded - %d public symbols.", len(__all__))
