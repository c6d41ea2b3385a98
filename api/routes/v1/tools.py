"""
api/routes/v1/tools.py -- Tool catalog REST endpoints.

Routes:
  GET    /api/tools                  -- filtered, paginated tool list (public)
  GET    /api/tools/filters/options  -- categories, roles, tags, difficulty levels (public)
  GET    /api/tools/{tool_id}        -- tool detail (public)
  POST   /api/tools                  -- create tool (create_tool)
  PUT    /api/tools/{tool_id}        -- update tool (update_tool, creator only)
  DELETE /api/tools/{tool_id}        -- delete tool (delete_tool, creator only)
  GET    /api/categories             -- list categories (public)
  POST   /api/categories             -- create category (create_category)
  GET    /api/roles                  -- list catalog roles (public)
  POST   /api/roles                  -- create catalog role (create_role)
  GET    /api/tags                   -- list tags (public)

Route registration order matters: /tools/filters/options is registered
before /tools/{tool_id}.

Every mutation goes through require_action(), which authenticates the
request, checks the CSRF token for session callers and consults the role
policy. Ownership of an existing tool is checked here on top of that.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import IntegrityError

from api.models import (
    DifficultyEnum,
    FilterOptionsResponse,
    MessageResponse,
    NamedCreate,
    NamedResponse,
    SortByEnum,
    SortOrderEnum,
    ToolCreate,
    ToolPage,
    ToolResponse,
    ToolUpdate,
)
from auth.dependencies import require_action
from auth.errors import Forbidden
from auth.models import Principal
from auth.roles import Action
from catalog.models import MAX_PER_PAGE, Tool, ToolFilters
from catalog.store import CatalogStore

logger = logging.getLogger("aitools.api.tools")

# Auth policy:
# - GET  endpoints:                public -- the catalog is browsable without login
# - POST /tools:                   require_action(create_tool)
# - PUT/DELETE /tools/{id}:        require_action(update_tool / delete_tool) + creator check
# - POST /categories, /roles:      require_action(create_category / create_role)
router = APIRouter()

_SORT_LABELS = {
    "created_at": "Date Created",
    "name": "Name",
    "rating": "Rating",
    "difficulty_level": "Difficulty",
}

# Columns that may not be cleared by an update.
_REQUIRED_FIELDS = ("name", "link", "description", "usage")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": "Tool not found."})


def _check_relations(catalog: CatalogStore, category_ids: list[int] | None, role_ids: list[int] | None) -> None:
    """Reject unknown category or role ids with 422 before anything is written."""
    problems = []
    if category_ids:
        missing = catalog.missing_ids("categories", category_ids)
        if missing:
            problems.append(f"unknown category ids: {missing}")
    if role_ids:
        missing = catalog.missing_ids("roles", role_ids)
        if missing:
            problems.append(f"unknown role ids: {missing}")
    if problems:
        raise HTTPException(
            status_code=422,
            detail={"code": "validation_error", "message": "Request validation failed.", "detail": "; ".join(problems)},
        )


def _owned_tool(catalog: CatalogStore, tool_id: int, principal: Principal) -> Tool:
    """Return the tool if it exists and principal created it.

    Raises 404 for a missing tool and Forbidden (403) for someone else's.
    """
    tool = catalog.get_tool(tool_id)
    if tool is None:
        raise _not_found()
    if tool.created_by != principal.user.id:
        logger.warning("Forbidden: user id=%s is not the creator of tool id=%s", principal.user.id, tool_id)
        raise Forbidden()
    return tool


def _named(items) -> list[NamedResponse]:
    return [NamedResponse(id=i.id, name=i.name, created_at=i.created_at) for i in items]


def _duplicate_name(kind: str) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"code": "duplicate_name", "message": f"A {kind} with that name already exists."},
    )


# ---------------------------------------------------------------------------
# Tools -- public reads
# ---------------------------------------------------------------------------


@router.get("/tools", response_model=ToolPage)
def list_tools(
    request: Request,
    search: Optional[str] = Query(default=None, max_length=255),
    category: Optional[str] = None,
    role: Optional[str] = None,
    tag: Optional[str] = None,
    difficulty: Optional[DifficultyEnum] = None,
    min_rating: Optional[float] = Query(default=None, ge=0, le=5),
    has_videos: bool = False,
    sort_by: SortByEnum = SortByEnum.created_at,
    sort_order: SortOrderEnum = SortOrderEnum.desc,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1),
) -> ToolPage:
    """Return one page of tools matching every given filter.

    per_page above the maximum is clamped rather than rejected.
    """
    filters = ToolFilters(
        search=search or None,
        category=category or None,
        role=role or None,
        tag=tag or None,
        difficulty=difficulty.value if difficulty else None,
        min_rating=min_rating,
        has_videos=has_videos,
        sort_by=sort_by.value,
        sort_order=sort_order.value,
        page=page,
        per_page=min(per_page, MAX_PER_PAGE),
    )
    return ToolPage.from_page(_catalog(request).list_tools(filters))


@router.get("/tools/filters/options", response_model=FilterOptionsResponse)
def filter_options(request: Request) -> FilterOptionsResponse:
    """Return the values a client needs to render the catalog filters."""
    options = _catalog(request).filter_options()
    return FilterOptionsResponse(
        categories=_named(options["categories"]),
        roles=_named(options["roles"]),
        tags=_named(options["tags"]),
        difficulty_levels=options["difficulty_levels"],
        sort_options=[{"value": value, "label": label} for value, label in _SORT_LABELS.items()],
    )


@router.get("/tools/{tool_id}", response_model=ToolResponse)
def get_tool(request: Request, tool_id: int) -> ToolResponse:
    tool = _catalog(request).get_tool(tool_id)
    if tool is None:
        raise _not_found()
    return ToolResponse.from_tool(tool)


# ---------------------------------------------------------------------------
# Tools -- mutations
# ---------------------------------------------------------------------------


@router.post("/tools", response_model=ToolResponse, status_code=201)
def create_tool(
    request: Request,
    body: ToolCreate,
    principal: Principal = Depends(require_action(Action.create_tool)),
) -> ToolResponse:
    """Create a tool owned by the current user.

    Tags are created on demand; unknown category or role ids are a 422.
    """
    catalog = _catalog(request)
    _check_relations(catalog, body.category_ids, body.role_ids)

    tool = Tool(
        name=body.name,
        link=body.link,
        documentation=body.documentation,
        description=body.description,
        usage=body.usage,
        examples=body.examples,
        images=body.images,
        difficulty_level=body.difficulty_level.value if body.difficulty_level else None,
        video_links=body.video_links,
        rating=body.rating or 0.0,
        created_by=principal.user.id,
    )
    tool_id = catalog.create_tool(tool, category_ids=body.category_ids, role_ids=body.role_ids, tag_names=body.tags)
    logger.info("User id=%s created tool id=%s", principal.user.id, tool_id)
    return ToolResponse.from_tool(catalog.get_tool(tool_id))


@router.put("/tools/{tool_id}", response_model=ToolResponse)
def update_tool(
    request: Request,
    tool_id: int,
    body: ToolUpdate,
    principal: Principal = Depends(require_action(Action.update_tool)),
) -> ToolResponse:
    """Update a tool. Only the tool's creator may do this.

    Only fields present in the body change. category_ids, role_ids and tags
    replace the current links when present.
    """
    catalog = _catalog(request)
    _owned_tool(catalog, tool_id, principal)

    fields = body.model_dump(exclude_unset=True)
    category_ids = fields.pop("category_ids", None)
    role_ids = fields.pop("role_ids", None)
    tag_names = fields.pop("tags", None)
    for key in _REQUIRED_FIELDS + ("rating",):
        if key in fields and fields[key] is None:
            del fields[key]
    if isinstance(fields.get("difficulty_level"), DifficultyEnum):
        fields["difficulty_level"] = fields["difficulty_level"].value
    _check_relations(catalog, category_ids, role_ids)

    catalog.update_tool(tool_id, category_ids=category_ids, role_ids=role_ids, tag_names=tag_names, **fields)
    logger.info("User id=%s updated tool id=%s", principal.user.id, tool_id)
    return ToolResponse.from_tool(catalog.get_tool(tool_id))


@router.delete("/tools/{tool_id}", response_model=MessageResponse)
def delete_tool(
    request: Request,
    tool_id: int,
    principal: Principal = Depends(require_action(Action.delete_tool)),
) -> MessageResponse:
    """Delete a tool. Only the tool's creator may do this."""
    catalog = _catalog(request)
    _owned_tool(catalog, tool_id, principal)
    if not catalog.delete_tool(tool_id):
        raise _not_found()
    logger.info("User id=%s deleted tool id=%s", principal.user.id, tool_id)
    return MessageResponse(message="Tool deleted successfully")


# ---------------------------------------------------------------------------
# Categories, roles, tags
# ---------------------------------------------------------------------------


@router.get("/categories", response_model=list[NamedResponse])
def list_categories(request: Request) -> list[NamedResponse]:
    return _named(_catalog(request).list_categories())


@router.post("/categories", response_model=NamedResponse, status_code=201)
def create_category(
    request: Request,
    body: NamedCreate,
    principal: Principal = Depends(require_action(Action.create_category)),
) -> NamedResponse:
    try:
        category = _catalog(request).create_category(body.name)
    except IntegrityError as exc:
        raise _duplicate_name("category") from exc
    return NamedResponse(id=category.id, name=category.name, created_at=category.created_at)


@router.get("/roles", response_model=list[NamedResponse])
def list_roles(request: Request) -> list[NamedResponse]:
    return _named(_catalog(request).list_roles())


@router.post("/roles", response_model=NamedResponse, status_code=201)
def create_role(
    request: Request,
    body: NamedCreate,
    principal: Principal = Depends(require_action(Action.create_role)),
) -> NamedResponse:
    try:
        role = _catalog(request).create_role(body.name)
    except IntegrityError as exc:
        raise _duplicate_name("role") from exc
    return NamedResponse(id=role.id, name=role.name, created_at=role.created_at)


@router.get("/tags", response_model=list[NamedResponse])
def list_tags(request: Request) -> list[NamedResponse]:
    return _named(_catalog(request).list_tags())
