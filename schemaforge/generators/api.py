# File: schemaforge/generators/api.py
"""
NexaFlow SchemaForge - API Router Generator
=============================================
Generates the FastAPI surface of the project::

    {pkg}/api/context.py           RequestContext, get_request_context, require_user
    {pkg}/api/filters.py           filter / search / sort / pagination helpers
    {pkg}/api/routers/{entity}.py  one router per entity
    {pkg}/api/app.py               create_app() and the module-level ``app``

Routers of database-backed entities implement the list DSL:

* ``page`` (1-based) and ``limit`` clamped to ``[1, 100]`` (default 20),
  ``offset = (page - 1) * limit``;
* ``where``: JSON-encoded ``XWhere`` filter (text ``eq/ne/contains/
  startsWith/endsWith``, number/date ``eq/ne/gt/gte/lt/lte``, enum
  ``eq/ne``, boolean bare value; a bare value always means ``eq``);
* ``search``: OR of case-insensitive "contains" over every text field;
* ``sort`` / ``direction`` with an ``id`` tiebreak.

Tenancy scoping, soft-delete exclusion, user filters and search are combined
once and shared by the count and page queries.  Externally sourced entities
get routers that delegate to the generated service layer instead.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Set

from schemaforge.context import EntityNames, GeneratorContext, RouteSpec
from schemaforge.errors import GeneratorInvariantError
from schemaforge.generators.base import (
    INDENT,
    INDENT2,
    INDENT3,
    Generator,
    active_stored_entities,
    translated_messages,
)
from schemaforge.generators.validation import python_type
from schemaforge.models import CrudOp, EntityIR, FieldType, GeneratedFile, HookName, ManifestIR
from schemaforge.utils import build_import_block, py_literal

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generators.api")

TENANT_HEADER: str = "X-Tenant-Id"

# Where-model annotation and condition helper per stored field type.
_FILTER_KINDS: Dict[FieldType, str] = {
    FieldType.TEXT: "text_conditions",
    FieldType.NUMBER: "range_conditions",
    FieldType.DATE: "range_conditions",
    FieldType.ENUM: "enum_conditions",
    FieldType.BOOLEAN: "boolean_conditions",
}


def where_annotation(cfg) -> str:
    """Annotation of one ``XWhere`` attribute."""
    if cfg.type == FieldType.TEXT:
        return "Union[str, TextFilter, None]"
    if cfg.type == FieldType.NUMBER:
        return "Union[float, NumberFilter, None]"
    if cfg.type == FieldType.DATE:
        return "Union[datetime, DateFilter, None]"
    if cfg.type == FieldType.ENUM:
        return f"Union[{python_type(cfg)}, EnumFilter, None]"
    if cfg.type == FieldType.BOOLEAN:
        return "Optional[bool]"
    raise GeneratorInvariantError.unhandled("filterable field type", cfg.type)


def sortable_fields(entity: EntityIR) -> List[str]:
    """``id``, stored fields, then the timestamp columns when enabled."""
    fields: List[str] = ["id"]
    fields.extend(entity.stored_fields)
    if entity.behaviors.timestamps:
        fields.extend(["createdAt", "updatedAt"])
    return fields


def routed_entities(manifest: ManifestIR) -> List[EntityIR]:
    """Entities that get a router: stored ones, plus external ones when services exist."""
    stored: List[EntityIR] = active_stored_entities(manifest)
    external: List[EntityIR] = (
        manifest.external_entities if manifest.mode.allows("services") else []
    )
    selected = {e.name for e in stored} | {e.name for e in external}
    return [e for e in manifest.entities if e.name in selected]


# ---------------------------------------------------------------------------
# Static runtime modules
# ---------------------------------------------------------------------------

_CONTEXT_BODY: List[str] = [
    "@dataclass",
    "class RequestContext:",
    f'{INDENT}"""Caller identity and tenant resolved from the request headers."""',
    "",
    f"{INDENT}user: Optional[Dict[str, Any]] = None",
    f"{INDENT}tenant_id: Optional[str] = None",
    "",
    f"{INDENT}@property",
    f"{INDENT}def user_id(self) -> Optional[str]:",
    f"{INDENT2}if not self.user:",
    f"{INDENT3}return None",
    f'{INDENT2}value: Any = self.user.get("id")',
    f"{INDENT2}return None if value is None else str(value)",
    "",
    "",
    "def authenticate(token: str) -> Optional[Dict[str, Any]]:",
    f'{INDENT}"""',
    f"{INDENT}Resolve a bearer token to a user mapping, or None.",
    "",
    f"{INDENT}Replace with your identity provider.  The default accepts any",
    f"{INDENT}non-empty token and uses it as the user id.",
    f'{INDENT}"""',
    f"{INDENT}token = token.strip()",
    f"{INDENT}if not token:",
    f"{INDENT2}return None",
    f'{INDENT}return {{"id": token}}',
    "",
    "",
    "def get_request_context(",
    f"{INDENT}authorization: Optional[str] = Header(default=None),",
    f'{INDENT}x_tenant_id: Optional[str] = Header(default=None, alias=TENANT_HEADER),',
    ") -> RequestContext:",
    f"{INDENT}user: Optional[Dict[str, Any]] = None",
    f'{INDENT}if authorization and authorization.lower().startswith("bearer "):',
    f'{INDENT2}user = authenticate(authorization[len("bearer "):])',
    f"{INDENT}return RequestContext(user=user, tenant_id=x_tenant_id or None)",
    "",
    "",
    "def require_user(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:",
    f'{INDENT}"""Dependency for protected operations: 401 without an authenticated user."""',
    f"{INDENT}if ctx.user is None:",
    f"{INDENT2}raise HTTPException(",
    f"{INDENT3}status_code=401,",
    f'{INDENT3}detail="Authentication required",',
    f'{INDENT3}headers={{"WWW-Authenticate": "Bearer"}},',
    f"{INDENT2})",
    f"{INDENT}return ctx",
]

_FILTERS_BODY: List[str] = [
    "DEFAULT_PAGE_SIZE: int = 20",
    "MAX_PAGE_SIZE: int = 100",
    "MAX_BATCH_SIZE: int = 100",
    "",
    'ModelT = TypeVar("ModelT", bound=BaseModel)',
    "",
    "",
    "class TextFilter(BaseModel):",
    f"{INDENT}model_config = ConfigDict(extra=\"forbid\")",
    "",
    f"{INDENT}eq: Optional[str] = None",
    f"{INDENT}ne: Optional[str] = None",
    f"{INDENT}contains: Optional[str] = None",
    f"{INDENT}startsWith: Optional[str] = None",
    f"{INDENT}endsWith: Optional[str] = None",
    "",
    "",
    "class NumberFilter(BaseModel):",
    f"{INDENT}model_config = ConfigDict(extra=\"forbid\")",
    "",
    f"{INDENT}eq: Optional[float] = None",
    f"{INDENT}ne: Optional[float] = None",
    f"{INDENT}gt: Optional[float] = None",
    f"{INDENT}gte: Optional[float] = None",
    f"{INDENT}lt: Optional[float] = None",
    f"{INDENT}lte: Optional[float] = None",
    "",
    "",
    "class DateFilter(BaseModel):",
    f"{INDENT}model_config = ConfigDict(extra=\"forbid\")",
    "",
    f"{INDENT}eq: Optional[datetime] = None",
    f"{INDENT}ne: Optional[datetime] = None",
    f"{INDENT}gt: Optional[datetime] = None",
    f"{INDENT}gte: Optional[datetime] = None",
    f"{INDENT}lt: Optional[datetime] = None",
    f"{INDENT}lte: Optional[datetime] = None",
    "",
    "",
    "class EnumFilter(BaseModel):",
    f"{INDENT}model_config = ConfigDict(extra=\"forbid\")",
    "",
    f"{INDENT}eq: Optional[str] = None",
    f"{INDENT}ne: Optional[str] = None",
    "",
    "",
    "class BatchRemoveInput(BaseModel):",
    f"{INDENT}model_config = ConfigDict(extra=\"forbid\")",
    "",
    f"{INDENT}ids: List[str] = Field(..., min_length=1, max_length=MAX_BATCH_SIZE)",
    "",
    "",
    "# ---------------------------------------------------------------------------",
    "# Pagination",
    "# ---------------------------------------------------------------------------",
    "",
    "",
    "def clamp_limit(limit: Optional[int]) -> int:",
    f"{INDENT}if limit is None:",
    f"{INDENT2}return DEFAULT_PAGE_SIZE",
    f"{INDENT}return max(1, min(MAX_PAGE_SIZE, limit))",
    "",
    "",
    "def page_offset(page: int, limit: int) -> int:",
    f"{INDENT}return (max(page, 1) - 1) * limit",
    "",
    "",
    "# ---------------------------------------------------------------------------",
    "# Input parsing",
    "# ---------------------------------------------------------------------------",
    "",
    "",
    "def validate_input(model: Type[ModelT], data: Any, location: Sequence[str]) -> ModelT:",
    f'{INDENT}"""Validate *data* against *model*; failures become a 422 response."""',
    f"{INDENT}try:",
    f"{INDENT2}return model.model_validate(data)",
    f"{INDENT}except ValidationError as exc:",
    f"{INDENT2}errors: List[Dict[str, Any]] = [",
    f'{INDENT3}dict(error, loc=tuple(location) + tuple(error["loc"]))',
    f"{INDENT3}for error in exc.errors(include_url=False, include_context=False)",
    f"{INDENT2}]",
    f"{INDENT2}raise RequestValidationError(errors) from exc",
    "",
    "",
    "def parse_json_param(raw: Optional[str], model: Type[ModelT], name: str) -> Optional[ModelT]:",
    f'{INDENT}"""Decode a JSON-encoded query parameter into *model*."""',
    f"{INDENT}if raw is None or not raw.strip():",
    f"{INDENT2}return None",
    f"{INDENT}try:",
    f"{INDENT2}data: Any = json.loads(raw)",
    f"{INDENT}except json.JSONDecodeError as exc:",
    f"{INDENT2}raise RequestValidationError(",
    f"{INDENT3}[",
    f"{INDENT3}{INDENT}{{",
    f'{INDENT3}{INDENT2}"type": "json_invalid",',
    f'{INDENT3}{INDENT2}"loc": ("query", name),',
    f'{INDENT3}{INDENT2}"msg": f"Invalid JSON: {{exc.msg}}",',
    f'{INDENT3}{INDENT2}"input": raw,',
    f"{INDENT3}{INDENT}}}",
    f"{INDENT3}]",
    f"{INDENT2}) from exc",
    f'{INDENT}return validate_input(model, data, ("query", name))',
    "",
    "",
    "# ---------------------------------------------------------------------------",
    "# Conditions",
    "# ---------------------------------------------------------------------------",
    "",
    "",
    "def text_conditions(column: Any, value: Union[str, TextFilter, None]) -> List[Any]:",
    f"{INDENT}if value is None:",
    f"{INDENT2}return []",
    f"{INDENT}if not isinstance(value, TextFilter):",
    f"{INDENT2}return [column == value]",
    f"{INDENT}conditions: List[Any] = []",
    f"{INDENT}if value.eq is not None:",
    f"{INDENT2}conditions.append(column == value.eq)",
    f"{INDENT}if value.ne is not None:",
    f"{INDENT2}conditions.append(column != value.ne)",
    f"{INDENT}if value.contains is not None:",
    f"{INDENT2}conditions.append(column.contains(value.contains, autoescape=True))",
    f"{INDENT}if value.startsWith is not None:",
    f"{INDENT2}conditions.append(column.startswith(value.startsWith, autoescape=True))",
    f"{INDENT}if value.endsWith is not None:",
    f"{INDENT2}conditions.append(column.endswith(value.endsWith, autoescape=True))",
    f"{INDENT}return conditions",
    "",
    "",
    "def range_conditions(column: Any, value: Any) -> List[Any]:",
    f'{INDENT}"""Number and date filters: a bare value or eq/ne/gt/gte/lt/lte."""',
    f"{INDENT}if value is None:",
    f"{INDENT2}return []",
    f"{INDENT}if not isinstance(value, (NumberFilter, DateFilter)):",
    f"{INDENT2}return [column == value]",
    f"{INDENT}conditions: List[Any] = []",
    f"{INDENT}if value.eq is not None:",
    f"{INDENT2}conditions.append(column == value.eq)",
    f"{INDENT}if value.ne is not None:",
    f"{INDENT2}conditions.append(column != value.ne)",
    f"{INDENT}if value.gt is not None:",
    f"{INDENT2}conditions.append(column > value.gt)",
    f"{INDENT}if value.gte is not None:",
    f"{INDENT2}conditions.append(column >= value.gte)",
    f"{INDENT}if value.lt is not None:",
    f"{INDENT2}conditions.append(column < value.lt)",
    f"{INDENT}if value.lte is not None:",
    f"{INDENT2}conditions.append(column <= value.lte)",
    f"{INDENT}return conditions",
    "",
    "",
    "def enum_conditions(column: Any, value: Any) -> List[Any]:",
    f"{INDENT}if value is None:",
    f"{INDENT2}return []",
    f"{INDENT}if not isinstance(value, EnumFilter):",
    f"{INDENT2}return [column == value]",
    f"{INDENT}conditions: List[Any] = []",
    f"{INDENT}if value.eq is not None:",
    f"{INDENT2}conditions.append(column == value.eq)",
    f"{INDENT}if value.ne is not None:",
    f"{INDENT2}conditions.append(column != value.ne)",
    f"{INDENT}return conditions",
    "",
    "",
    "def boolean_conditions(column: Any, value: Optional[bool]) -> List[Any]:",
    f"{INDENT}return [] if value is None else [column == value]",
    "",
    "",
    "def search_condition(",
    f"{INDENT}columns: Sequence[Any], term: Optional[str], operator: str = \"contains\"",
    ") -> Optional[Any]:",
    f'{INDENT}"""OR of "contains" over *columns*; None for an empty term."""',
    f"{INDENT}if not term or not columns:",
    f"{INDENT2}return None",
    f"{INDENT}return or_(*(getattr(column, operator)(term, autoescape=True) for column in columns))",
    "",
    "",
    "def order_by(column: Any, direction: str, tiebreak: Any) -> List[Any]:",
    f'{INDENT}if direction == "desc":',
    f"{INDENT2}return [column.desc(), tiebreak.desc()]",
    f"{INDENT}return [column.asc(), tiebreak.asc()]",
    "",
    "",
    "def commit_or_conflict(session: Session) -> None:",
    f'{INDENT}"""Commit; a uniqueness or foreign-key violation becomes a 409."""',
    f"{INDENT}try:",
    f"{INDENT2}session.commit()",
    f"{INDENT}except IntegrityError as exc:",
    f"{INDENT2}session.rollback()",
    f'{INDENT2}raise HTTPException(status_code=409, detail="Conflicts with an existing record") from exc',
]


class ApiGenerator(Generator):
    name = "api"
    description = "FastAPI routers with filtering, search, sorting and pagination"
    category = "api"

    def generate(self, manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]:
        entities: List[EntityIR] = routed_entities(manifest)
        if not entities:
            return []
        files: List[GeneratedFile] = [
            self.python_file(self.package_path(ctx, "api", "__init__.py"), ['"""HTTP API."""']),
            self._context_module(ctx),
            self._filters_module(ctx),
            self.python_file(
                self.package_path(ctx, "api", "routers", "__init__.py"),
                ['"""One router module per entity."""'],
            ),
        ]
        for entity in entities:
            if manifest.is_external(entity):
                files.append(self._external_router(manifest, entity, ctx))
            else:
                files.append(self._stored_router(manifest, entity, ctx))
        files.append(self._app_module(manifest, entities, ctx))
        logger.debug("API: %d routers.", len(entities))
        return files

    # ===================================================================
    # api/context.py and api/filters.py
    # ===================================================================

    def _context_module(self, ctx: GeneratorContext) -> GeneratedFile:
        lines: List[str] = self.module_header(
            "Request context: caller identity and tenant.",
            "",
            "Protected operations depend on ``require_user``; open ones on",
            "``get_request_context``.",
        )
        lines.append(build_import_block({
            "dataclasses": {"dataclass"},
            "typing": {"Any", "Dict", "Optional"},
            "fastapi": {"Depends", "Header", "HTTPException"},
        }))
        lines.append("")
        lines.append(f"TENANT_HEADER: str = {py_literal(TENANT_HEADER)}")
        lines.append("")
        lines.append("")
        lines.extend(_CONTEXT_BODY)
        return self.python_file(self.package_path(ctx, "api", "context.py"), lines)

    def _filters_module(self, ctx: GeneratorContext) -> GeneratedFile:
        lines: List[str] = self.module_header(
            "Filter, search, sort and pagination helpers shared by every router."
        )
        lines.append(build_import_block({
            "json": set(),
            "datetime": {"datetime"},
            "typing": {"Any", "Dict", "List", "Optional", "Sequence", "Type", "TypeVar", "Union"},
            "fastapi": {"HTTPException"},
            "fastapi.exceptions": {"RequestValidationError"},
            "pydantic": {"BaseModel", "ConfigDict", "Field", "ValidationError"},
            "sqlalchemy": {"or_"},
            "sqlalchemy.exc": {"IntegrityError"},
            "sqlalchemy.orm": {"Session"},
        }))
        lines.append("")
        lines.extend(_FILTERS_BODY)
        return self.python_file(self.package_path(ctx, "api", "filters.py"), lines)

    # ===================================================================
    # api/routers/{entity}.py - database-backed
    # ===================================================================

    @staticmethod
    def _dependency(manifest: ManifestIR, entity: EntityIR, op: CrudOp) -> str:
        if manifest.requires_auth(entity, op):
            return "require_user"
        return "get_request_context"

    def _stored_router(
        self, manifest: ManifestIR, entity: EntityIR, ctx: GeneratorContext
    ) -> GeneratedFile:
        n: EntityNames = ctx.names(entity)
        pkg: str = ctx.config.package_name
        model: str = entity.name
        stored = entity.stored_fields
        text_fields: List[str] = [f for f in entity.text_fields if f in stored]
        hooks: Set[HookName] = set(entity.hooks.enabled)
        tenancy: bool = manifest.tenancy.enabled
        tenancy_field: str = manifest.tenancy.field

        filter_helpers: Set[str] = set()
        filter_models: Set[str] = set()
        typing_names: Set[str] = {"Any", "Dict", "List", "Literal", "Optional"}
        needs_datetime: bool = False
        for cfg in stored.values():
            filter_helpers.add(_FILTER_KINDS[cfg.type])
            annotation: str = where_annotation(cfg)
            if annotation.startswith("Union"):
                typing_names.add("Union")
            for candidate in ("TextFilter", "NumberFilter", "DateFilter", "EnumFilter"):
                if candidate in annotation:
                    filter_models.add(candidate)
            needs_datetime = needs_datetime or cfg.type == FieldType.DATE

        filter_imports: Set[str] = {
            "DEFAULT_PAGE_SIZE",
            "MAX_BATCH_SIZE",
            "BatchRemoveInput",
            "clamp_limit",
            "commit_or_conflict",
            "order_by",
            "page_offset",
            "parse_json_param",
        } | filter_helpers | filter_models
        if text_fields:
            filter_imports.add("search_condition")

        dependencies: Set[str] = {"RequestContext"}
        for route in ctx.routes(entity):
            dependencies.add(self._dependency(manifest, entity, route.crud_op))

        database_names: Set[str] = {"get_db"}
        if entity.behaviors.timestamps or entity.behaviors.soft_delete:
            database_names.add("utcnow")

        imports: Dict[str, Set[str]] = {
            "logging": set(),
            "uuid": set(),
            "typing": typing_names,
            "fastapi": {"APIRouter", "Depends", "HTTPException", "Query"},
            "pydantic": {"BaseModel", "ConfigDict", "Field"},
            "sqlalchemy": {"and_", "func", "select"},
            "sqlalchemy.orm": {"Session"},
            f"{pkg}.api.context": dependencies,
            f"{pkg}.api.filters": filter_imports,
            f"{pkg}.database": database_names,
            f"{pkg}.models.{n.module}": {model},
            f"{pkg}.schemas.{n.module}": {n.create_schema, n.read_schema, n.update_schema, n.serializer},
        }
        if needs_datetime:
            imports["datetime"] = {"datetime"}
        if hooks:
            imports[f"{pkg}.hooks.{n.module}"] = {n.hooks_instance}
            imports[f"{pkg}.hooks.types"] = {"HookContext"}

        default_sort: str = "createdAt" if entity.behaviors.timestamps else "id"
        lines: List[str] = self.module_header(
            f"FastAPI router for {entity.name}: list, get, create, update, remove",
            "and the batch variants of the write operations.",
        )
        lines.append(build_import_block(imports))
        lines.append("")
        lines.append(f'logger = logging.getLogger("{pkg}.api.{n.module}")')
        lines.append("")
        lines.append(
            f'router = APIRouter(prefix="{ctx.router_prefix(entity)}", tags=["{entity.name}"])'
        )
        lines.append("")
        lines.append(f"SortField = Literal[{', '.join(py_literal(f) for f in sortable_fields(entity))}]")
        lines.append(f'DEFAULT_SORT: str = "{default_sort}"')
        if text_fields:
            lines.append(f"SEARCH_FIELDS = ({', '.join(f'{model}.{f}' for f in text_fields)},)")
            lines.append(f'SEARCH_OPERATOR: str = "{ctx.dialect.search_operator}"')
        lines.append("")
        lines.append("")

        # --- Request / response models ---
        lines.append(f"class {n.where_model}(BaseModel):")
        lines.append(f'{INDENT}"""Filter accepted by the list endpoint as JSON in ``where``."""')
        lines.append("")
        lines.append(f'{INDENT}model_config = ConfigDict(extra="forbid")')
        lines.append("")
        for name, cfg in stored.items():
            lines.append(f"{INDENT}{name}: {where_annotation(cfg)} = None")
        lines.append("")
        lines.append("")
        lines.extend(self._envelopes(n))

        # --- Query helpers ---
        lines.extend(self._scoping_helpers(entity, n, tenancy, tenancy_field, text_fields))
        lines.extend(self._write_helpers(manifest, entity, n, hooks))

        # --- Endpoints ---
        for route in ctx.routes(entity):
            lines.extend(self._endpoint(manifest, entity, n, route, hooks))
        return self.python_file(self.package_path(ctx, "api", "routers", f"{n.module}.py"), lines)

    @staticmethod
    def _envelopes(n: EntityNames) -> List[str]:
        return [
            f"class {n.name}ListResponse(BaseModel):",
            f"{INDENT}items: List[{n.read_schema}]",
            f"{INDENT}total: int",
            f"{INDENT}page: int",
            f"{INDENT}limit: int",
            f"{INDENT}hasMore: bool",
            "",
            "",
            f"class {n.name}CreateManyInput(BaseModel):",
            f'{INDENT}model_config = ConfigDict(extra="forbid")',
            "",
            f"{INDENT}items: List[{n.create_schema}] = Field(..., min_length=1, max_length=MAX_BATCH_SIZE)",
            "",
            "",
            f"class {n.name}UpdateManyItem(BaseModel):",
            f'{INDENT}model_config = ConfigDict(extra="forbid")',
            "",
            f"{INDENT}id: str",
            f"{INDENT}data: {n.update_schema}",
            "",
            "",
            f"class {n.name}UpdateManyInput(BaseModel):",
            f'{INDENT}model_config = ConfigDict(extra="forbid")',
            "",
            f"{INDENT}items: List[{n.name}UpdateManyItem] = Field(",
            f"{INDENT2}..., min_length=1, max_length=MAX_BATCH_SIZE",
            f"{INDENT})",
            "",
            "",
            f"class {n.name}CreateManyResponse(BaseModel):",
            f"{INDENT}created: List[{n.read_schema}]",
            f"{INDENT}count: int",
            "",
            "",
            f"class {n.name}UpdateManyResponse(BaseModel):",
            f"{INDENT}updated: List[{n.read_schema}]",
            f"{INDENT}count: int",
            "",
            "",
            f"class {n.name}RemoveManyResponse(BaseModel):",
            f"{INDENT}removed: List[{n.read_schema}]",
            f"{INDENT}count: int",
            "",
            "",
        ]

    @staticmethod
    def _scoping_helpers(
        entity: EntityIR,
        n: EntityNames,
        tenancy: bool,
        tenancy_field: str,
        text_fields: List[str],
    ) -> List[str]:
        model: str = entity.name
        lines: List[str] = [
            "def _base_conditions(ctx: RequestContext) -> List[Any]:",
            f'{INDENT}"""Tenancy and soft-delete scoping shared by every query."""',
            f"{INDENT}conditions: List[Any] = []",
        ]
        if tenancy:
            lines.extend([
                f"{INDENT}if ctx.tenant_id is not None:",
                f"{INDENT2}conditions.append({model}.{tenancy_field} == ctx.tenant_id)",
                f"{INDENT}else:",
                f"{INDENT2}conditions.append({model}.{tenancy_field}.is_(None))",
            ])
        if entity.behaviors.soft_delete:
            lines.append(f"{INDENT}conditions.append({model}.deletedAt.is_(None))")
        lines.append(f"{INDENT}return conditions")
        lines.extend(["", ""])

        lines.extend([
            f"def _where_conditions(where: Optional[{n.where_model}]) -> List[Any]:",
            f"{INDENT}if where is None:",
            f"{INDENT2}return []",
            f"{INDENT}conditions: List[Any] = []",
        ])
        for name, cfg in entity.stored_fields.items():
            lines.append(
                f"{INDENT}conditions.extend({_FILTER_KINDS[cfg.type]}({model}.{name}, where.{name}))"
            )
        lines.append(f"{INDENT}return conditions")
        lines.extend(["", ""])

        if text_fields:
            lines.extend([
                "def _search_conditions(search: Optional[str]) -> List[Any]:",
                f"{INDENT}condition: Optional[Any] = search_condition(SEARCH_FIELDS, search, SEARCH_OPERATOR)",
                f"{INDENT}return [] if condition is None else [condition]",
                "",
                "",
            ])

        lines.extend([
            "def _filtered(stmt: Any, conditions: List[Any]) -> Any:",
            f"{INDENT}return stmt.where(and_(*conditions)) if conditions else stmt",
            "",
            "",
            f"def {n.loader}(db: Session, record_id: str, ctx: RequestContext) -> {model}:",
            f"{INDENT}stmt: Any = _filtered(select({model}), [{model}.id == record_id] + _base_conditions(ctx))",
            f"{INDENT}record: Optional[{model}] = db.scalars(stmt).first()",
            f"{INDENT}if record is None:",
            f'{INDENT2}raise HTTPException(status_code=404, detail="{n.label} not found")',
            f"{INDENT}return record",
            "",
            "",
        ])
        return lines

    @staticmethod
    def _write_helpers(
        manifest: ManifestIR, entity: EntityIR, n: EntityNames, hooks: Set[HookName]
    ) -> List[str]:
        model: str = entity.name
        lines: List[str] = []
        if hooks:
            lines.extend([
                "def _hook_context(ctx: RequestContext, db: Session, operation: str) -> HookContext:",
                f"{INDENT}return HookContext(",
                f'{INDENT2}entity="{model}",',
                f"{INDENT2}operation=operation,",
                f"{INDENT2}user=ctx.user,",
                f"{INDENT2}tenant_id=ctx.tenant_id,",
                f"{INDENT2}session=db,",
                f"{INDENT})",
                "",
                "",
            ])

        lines.extend([
            f"def _insert(db: Session, payload: {n.create_schema}, ctx: RequestContext) -> {model}:",
            f"{INDENT}data: Dict[str, Any] = payload.model_dump(exclude_none=True)",
        ])
        if HookName.BEFORE_CREATE in hooks:
            lines.append(
                f'{INDENT}data = {n.hooks_instance}.before_create(data, _hook_context(ctx, db, "create"))'
            )
        lines.append(f"{INDENT}data = dict(data)")
        lines.append(f"{INDENT}data[\"id\"] = str(uuid.uuid4())")
        if entity.behaviors.timestamps:
            lines.append(f"{INDENT}now = utcnow()")
            lines.append(f'{INDENT}data["createdAt"] = now')
            lines.append(f'{INDENT}data["updatedAt"] = now')
        if manifest.tenancy.enabled:
            lines.append(f'{INDENT}data["{manifest.tenancy.field}"] = ctx.tenant_id')
        if entity.behaviors.audit:
            lines.append(f'{INDENT}data["createdBy"] = ctx.user_id')
            lines.append(f'{INDENT}data["updatedBy"] = ctx.user_id')
        lines.extend([
            f"{INDENT}record = {model}(**data)",
            f"{INDENT}db.add(record)",
            f"{INDENT}return record",
            "",
            "",
            f"def _update(db: Session, record: {model}, payload: {n.update_schema}, ctx: RequestContext) -> None:",
            f"{INDENT}data: Dict[str, Any] = payload.model_dump(exclude_unset=True)",
        ])
        if HookName.BEFORE_UPDATE in hooks:
            lines.append(
                f'{INDENT}data = {n.hooks_instance}.before_update(record.id, data, _hook_context(ctx, db, "update"))'
            )
        lines.extend([
            f"{INDENT}for key, value in data.items():",
            f"{INDENT2}setattr(record, key, value)",
        ])
        if entity.behaviors.timestamps:
            lines.append(f"{INDENT}record.updatedAt = utcnow()")
        if entity.behaviors.audit:
            lines.append(f"{INDENT}record.updatedBy = ctx.user_id")
        lines.extend(["", ""])

        lines.append(
            f"def _remove(db: Session, record: {model}, ctx: RequestContext) -> {n.read_schema}:"
        )
        lines.append(f'{INDENT}"""Remove *record* and return its last state."""')
        if HookName.BEFORE_REMOVE in hooks:
            lines.append(
                f'{INDENT}{n.hooks_instance}.before_remove(record.id, _hook_context(ctx, db, "remove"))'
            )
        if entity.behaviors.soft_delete:
            lines.append(f"{INDENT}record.deletedAt = utcnow()")
            lines.append(f"{INDENT}return {n.serializer}(record)")
        else:
            lines.append(f"{INDENT}snapshot: {n.read_schema} = {n.serializer}(record)")
            lines.append(f"{INDENT}db.delete(record)")
            lines.append(f"{INDENT}return snapshot")
        lines.extend(["", ""])

        after: Dict[HookName, str] = {
            HookName.AFTER_CREATE: "create",
            HookName.AFTER_UPDATE: "update",
            HookName.AFTER_REMOVE: "remove",
        }
        for hook, operation in after.items():
            if hook not in hooks:
                continue
            lines.extend([
                f"def _{hook.attribute}(items: List[{n.read_schema}], ctx: RequestContext, db: Session) -> None:",
                f"{INDENT}for item in items:",
                f'{INDENT2}{n.hooks_instance}.{hook.attribute}(item.model_dump(), _hook_context(ctx, db, "{operation}"))',
                "",
                "",
            ])
        return lines

    def _endpoint(
        self,
        manifest: ManifestIR,
        entity: EntityIR,
        n: EntityNames,
        route: RouteSpec,
        hooks: Set[HookName],
    ) -> List[str]:
        model: str = entity.name
        dependency: str = self._dependency(manifest, entity, route.crud_op)
        decorator: str = route.method.lower()
        deps: List[str] = [
            f"{INDENT}db: Session = Depends(get_db),",
            f"{INDENT}ctx: RequestContext = Depends({dependency}),",
        ]
        op: str = route.operation

        def head(response_model: str, params: List[str], returns: str) -> List[str]:
            out: List[str] = [
                f"@router.{decorator}(",
                f'{INDENT}"{route.path}",',
                f"{INDENT}response_model={response_model},",
                f'{INDENT}summary="{route.summary}",',
            ]
            if route.status_code != 200:
                out.append(f"{INDENT}status_code={route.status_code},")
            out.append(")")
            out.append(f"def {route.handler}(")
            out.extend(f"{INDENT}{p}" for p in params)
            out.extend(deps)
            out.append(f") -> {returns}:")
            return out

        def after_call(hook: HookName, var: str) -> List[str]:
            if hook not in hooks:
                return []
            return [f"{INDENT}_{hook.attribute}({var}, ctx, db)"]

        lines: List[str] = []
        if op == "list":
            lines.extend(head(
                f"{n.name}ListResponse",
                [
                    "page: int = Query(default=1, ge=1),",
                    "limit: int = Query(default=DEFAULT_PAGE_SIZE),",
                    "sort: Optional[SortField] = Query(default=None),",
                    'direction: Literal["asc", "desc"] = Query(default="asc"),',
                    "search: Optional[str] = Query(default=None),",
                    f'where: Optional[str] = Query(default=None, description="JSON-encoded {n.where_model}"),',
                ],
                f"{n.name}ListResponse",
            ))
            lines.append(f'{INDENT}filters = parse_json_param(where, {n.where_model}, "where")')
            lines.append(f"{INDENT}limit = clamp_limit(limit)")
            lines.append(f"{INDENT}offset: int = page_offset(page, limit)")
            lines.append(f"{INDENT}conditions: List[Any] = _base_conditions(ctx) + _where_conditions(filters)")
            if entity.text_fields and any(f in entity.stored_fields for f in entity.text_fields):
                lines.append(f"{INDENT}conditions.extend(_search_conditions(search))")
            lines.extend([
                f"{INDENT}total: int = db.scalar(_filtered(select(func.count()).select_from({model}), conditions)) or 0",
                f"{INDENT}stmt: Any = (",
                f"{INDENT2}_filtered(select({model}), conditions)",
                f"{INDENT2}.order_by(*order_by(getattr({model}, sort or DEFAULT_SORT), direction, {model}.id))",
                f"{INDENT2}.offset(offset)",
                f"{INDENT2}.limit(limit)",
                f"{INDENT})",
                f"{INDENT}items: List[{n.read_schema}] = [{n.serializer}(r) for r in db.scalars(stmt).all()]",
                f"{INDENT}return {n.name}ListResponse(",
                f"{INDENT2}items=items,",
                f"{INDENT2}total=total,",
                f"{INDENT2}page=page,",
                f"{INDENT2}limit=limit,",
                f"{INDENT2}hasMore=offset + len(items) < total,",
                f"{INDENT})",
            ])
        elif op == "get":
            lines.extend(head(n.read_schema, ["record_id: str,"], n.read_schema))
            lines.append(f"{INDENT}return {n.serializer}({n.loader}(db, record_id, ctx))")
        elif op == "create":
            lines.extend(head(n.read_schema, [f"payload: {n.create_schema},"], n.read_schema))
            lines.extend([
                f"{INDENT}record: {model} = _insert(db, payload, ctx)",
                f"{INDENT}commit_or_conflict(db)",
                f"{INDENT}db.refresh(record)",
                f"{INDENT}result: {n.read_schema} = {n.serializer}(record)",
            ])
            lines.extend(after_call(HookName.AFTER_CREATE, "[result]"))
            lines.append(f'{INDENT}logger.info("Created {model} %s", result.id)')
            lines.append(f"{INDENT}return result")
        elif op == "update":
            lines.extend(head(
                n.read_schema, ["record_id: str,", f"payload: {n.update_schema},"], n.read_schema
            ))
            lines.extend([
                f"{INDENT}record: {model} = {n.loader}(db, record_id, ctx)",
                f"{INDENT}_update(db, record, payload, ctx)",
                f"{INDENT}commit_or_conflict(db)",
                f"{INDENT}db.refresh(record)",
                f"{INDENT}result: {n.read_schema} = {n.serializer}(record)",
            ])
            lines.extend(after_call(HookName.AFTER_UPDATE, "[result]"))
            lines.append(f"{INDENT}return result")
        elif op == "remove":
            lines.extend(head(n.read_schema, ["record_id: str,"], n.read_schema))
            lines.extend([
                f"{INDENT}result: {n.read_schema} = _remove(db, {n.loader}(db, record_id, ctx), ctx)",
                f"{INDENT}db.commit()",
            ])
            lines.extend(after_call(HookName.AFTER_REMOVE, "[result]"))
            lines.append(f'{INDENT}logger.info("Removed {model} %s", record_id)')
            lines.append(f"{INDENT}return result")
        elif op == "createMany":
            lines.extend(head(
                f"{n.name}CreateManyResponse",
                [f"payload: {n.name}CreateManyInput,"],
                f"{n.name}CreateManyResponse",
            ))
            lines.extend([
                f"{INDENT}records: List[{model}] = [_insert(db, item, ctx) for item in payload.items]",
                f"{INDENT}commit_or_conflict(db)",
                f"{INDENT}created: List[{n.read_schema}] = [{n.serializer}(r) for r in records]",
            ])
            lines.extend(after_call(HookName.AFTER_CREATE, "created"))
            lines.append(f"{INDENT}return {n.name}CreateManyResponse(created=created, count=len(created))")
        elif op == "updateMany":
            lines.extend(head(
                f"{n.name}UpdateManyResponse",
                [f"payload: {n.name}UpdateManyInput,"],
                f"{n.name}UpdateManyResponse",
            ))
            lines.extend([
                f"{INDENT}records: List[{model}] = []",
                f"{INDENT}for item in payload.items:",
                f"{INDENT2}stmt: Any = _filtered(select({model}), [{model}.id == item.id] + _base_conditions(ctx))",
                f"{INDENT2}record: Optional[{model}] = db.scalars(stmt).first()",
                f"{INDENT2}if record is None:",
                f"{INDENT3}continue",
                f"{INDENT2}_update(db, record, item.data, ctx)",
                f"{INDENT2}records.append(record)",
                f"{INDENT}commit_or_conflict(db)",
                f"{INDENT}updated: List[{n.read_schema}] = [{n.serializer}(r) for r in records]",
            ])
            lines.extend(after_call(HookName.AFTER_UPDATE, "updated"))
            lines.append(f"{INDENT}return {n.name}UpdateManyResponse(updated=updated, count=len(updated))")
        elif op == "removeMany":
            lines.extend(head(
                f"{n.name}RemoveManyResponse",
                ["payload: BatchRemoveInput,"],
                f"{n.name}RemoveManyResponse",
            ))
            lines.extend([
                f"{INDENT}stmt: Any = _filtered(select({model}), [{model}.id.in_(payload.ids)] + _base_conditions(ctx))",
                f"{INDENT}removed: List[{n.read_schema}] = [_remove(db, r, ctx) for r in db.scalars(stmt).all()]",
                f"{INDENT}db.commit()",
            ])
            lines.extend(after_call(HookName.AFTER_REMOVE, "removed"))
            lines.append(f"{INDENT}return {n.name}RemoveManyResponse(removed=removed, count=len(removed))")
        else:
            raise GeneratorInvariantError.unhandled("route operation", op)
        lines.extend(["", ""])
        return lines

    # ===================================================================
    # api/routers/{entity}.py - external source
    # ===================================================================

    def _external_router(
        self, manifest: ManifestIR, entity: EntityIR, ctx: GeneratorContext
    ) -> GeneratedFile:
        n: EntityNames = ctx.names(entity)
        pkg: str = ctx.config.package_name
        routes: List[RouteSpec] = ctx.routes(entity, include_batch=False)
        dependencies: Set[str] = {"RequestContext"}
        dependencies.update(self._dependency(manifest, entity, r.crud_op) for r in routes)
        imports: Dict[str, Set[str]] = {
            "typing": {"Any", "Callable"},
            "fastapi": {"APIRouter", "Depends", "HTTPException", "Request"},
            f"{pkg}.api.context": dependencies,
            f"{pkg}.schemas.{n.module}": {n.create_schema, n.update_schema},
            f"{pkg}.services.base": {"ServiceError"},
            f"{pkg}.services.{n.service_module}": {n.service_instance},
        }
        lines: List[str] = self.module_header(
            f"FastAPI router for {entity.name}, backed by an external REST service."
        )
        lines.append(build_import_block(imports))
        lines.append("")
        lines.append(
            f'router = APIRouter(prefix="{ctx.router_prefix(entity)}", tags=["{entity.name}"])'
        )
        lines.append("")
        lines.append("")
        lines.extend([
            "def _call(operation: Callable[[], Any]) -> Any:",
            f"{INDENT}try:",
            f"{INDENT2}return operation()",
            f"{INDENT}except ServiceError as exc:",
            f"{INDENT2}raise HTTPException(status_code=exc.status_code or 502, detail=exc.detail) from exc",
            "",
            "",
        ])
        svc: str = n.service_instance
        calls: Dict[str, List[str]] = {
            "list": [
                "request: Request,",
                f"{INDENT}return _call(lambda: {svc}.list(dict(request.query_params)))",
            ],
            "get": [
                "record_id: str,",
                f"{INDENT}return _call(lambda: {svc}.get(record_id))",
            ],
            "create": [
                f"payload: {n.create_schema},",
                f'{INDENT}return _call(lambda: {svc}.create(payload.model_dump(mode="json", exclude_none=True)))',
            ],
            "update": [
                "record_id: str,",
                f"payload: {n.update_schema},",
                f"{INDENT}return _call(",
                f'{INDENT2}lambda: {svc}.update(record_id, payload.model_dump(mode="json", exclude_unset=True))',
                f"{INDENT})",
            ],
            "remove": [
                "record_id: str,",
                f"{INDENT}return _call(lambda: {svc}.delete(record_id))",
            ],
        }
        for route in routes:
            call: List[str] = calls[route.operation]
            params: List[str] = [p for p in call if not p.startswith(INDENT)]
            body: List[str] = [p for p in call if p.startswith(INDENT)]
            lines.append(f'@router.{route.method.lower()}("{route.path}", summary="{route.summary}"'
                         + (f", status_code={route.status_code})" if route.status_code != 200 else ")"))
            lines.append(f"def {route.handler}(")
            lines.extend(f"{INDENT}{p}" for p in params)
            lines.append(
                f"{INDENT}ctx: RequestContext = Depends({self._dependency(manifest, entity, route.crud_op)}),"
            )
            lines.append(") -> Any:")
            lines.extend(body)
            lines.extend(["", ""])
        return self.python_file(self.package_path(ctx, "api", "routers", f"{n.module}.py"), lines)

    # ===================================================================
    # api/app.py
    # ===================================================================

    def _app_module(
        self, manifest: ManifestIR, entities: List[EntityIR], ctx: GeneratorContext
    ) -> GeneratedFile:
        pkg: str = ctx.config.package_name
        has_storage: bool = any(not manifest.is_external(e) for e in entities)
        translated: bool = translated_messages(manifest) and manifest.mode.allows("validation")
        imports: Dict[str, Set[str]] = {
            "typing": {"Any", "Dict"},
            "fastapi": {"FastAPI"},
        }
        for entity in entities:
            module: str = ctx.names(entity).module
            imports[f"{pkg}.api.routers.{module}"] = {f"router as {module}_router"}
        if has_storage:
            imports["contextlib"] = {"asynccontextmanager"}
            imports["typing"].add("AsyncIterator")
            imports[pkg] = {"models"}
            imports[f"{pkg}.database"] = {"Base", "get_engine"}
        if translated:
            imports["fastapi"].add("Request")
            imports[f"{pkg}.schemas._messages"] = {"DEFAULT_LANGUAGE", "set_language"}

        lines: List[str] = self.module_header("FastAPI application factory.")
        lines.append(build_import_block(imports))
        lines.append("")
        lines.append("")
        if has_storage:
            lines.extend([
                "@asynccontextmanager",
                "async def lifespan(application: FastAPI) -> AsyncIterator[None]:",
                f'{INDENT}"""Create missing tables on startup."""',
                f"{INDENT}Base.metadata.create_all(bind=get_engine())",
                f"{INDENT}yield",
                "",
                "",
            ])
        lines.append("def create_app() -> FastAPI:")
        lines.append(f"{INDENT}application = FastAPI(")
        lines.append(f"{INDENT2}title={py_literal(ctx.title)},")
        lines.append(f"{INDENT2}version={py_literal(manifest.version)},")
        if has_storage:
            lines.append(f"{INDENT2}lifespan=lifespan,")
        lines.append(f"{INDENT})")
        for entity in entities:
            lines.append(f"{INDENT}application.include_router({ctx.names(entity).module}_router)")
        lines.append("")
        lines.append(f'{INDENT}@application.get("/health", tags=["health"])')
        lines.append(f"{INDENT}def health() -> Dict[str, str]:")
        lines.append(f'{INDENT2}return {{"status": "ok"}}')
        if translated:
            lines.extend([
                "",
                f'{INDENT}@application.middleware("http")',
                f"{INDENT}async def select_language(request: Request, call_next: Any) -> Any:",
                f'{INDENT2}header: str = request.headers.get("accept-language", "")',
                f'{INDENT2}language: str = header.split(",")[0].split(";")[0].split("-")[0].strip().lower()',
                f"{INDENT2}set_language(language or DEFAULT_LANGUAGE)",
                f"{INDENT2}return await call_next(request)",
            ])
        lines.append("")
        lines.append(f"{INDENT}return application")
        lines.append("")
        lines.append("")
        lines.append("app = create_app()")
        if has_storage:
            lines.append("")
            lines.append("__all__ = [\"app\", \"create_app\", \"models\"]")
        return self.python_file(self.package_path(ctx, "api", "app.py"), lines)


__all__: List[str] = [
    "TENANT_HEADER",
    "where_annotation",
    "sortable_fields",
    "routed_entities",
    "ApiGenerator",
]

logger.debug("schemaforge.generators.api loaded - %d public symbols.", len(__all__))
