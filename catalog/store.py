"""
catalog/store.py -- SQLAlchemy-backed persistence layer for the tool catalog.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in catalog/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. CatalogStore is the repository (one clean
interface per entity). The _row_to_* functions are the mappers. Route
handlers never touch SQL directly.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = CatalogStore()                                 # SQLite default
    cat = store.create_category("Development")
    tool_id = store.create_tool(tool, category_ids=[cat.id], tag_names=["api"])
    page = store.list_tools(ToolFilters(search="gpt", per_page=10))
    store.close()
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError

from catalog.models import (
    DIFFICULTY_LEVELS,
    MAX_PER_PAGE,
    SORTABLE_FIELDS,
    CatalogRole,
    Category,
    Page,
    Tag,
    Tool,
    ToolFilters,
)
from core.config import get_settings

logger = logging.getLogger("aitools.catalog.store")


class CatalogUnavailable(Exception):
    """The catalog database could not be reached. The API maps this to 503."""

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_tools = Table(
    "tools",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("link", Text, nullable=False),
    Column("documentation", Text),
    Column("description", Text, nullable=False),
    Column("usage", Text, nullable=False),
    Column("examples", Text),
    Column("images", Text),  # JSON array serialized as text
    Column("difficulty_level", String(20)),
    Column("video_links", Text),  # JSON array serialized as text
    Column("rating", Float, nullable=False, server_default="0"),
    Column("created_by", Integer, nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

_tags = Table(
    "tags",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

_tool_categories = Table(
    "tool_categories",
    metadata,
    Column("tool_id", Integer, ForeignKey("tools.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", Integer, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)

_tool_roles = Table(
    "tool_roles",
    metadata,
    Column("tool_id", Integer, ForeignKey("tools.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)

_tool_tags = Table(
    "tool_tags",
    metadata,
    Column("tool_id", Integer, ForeignKey("tools.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)

# (pivot table, pivot FK column name, related table) per relation
_RELATIONS = {
    "categories": (_tool_categories, "category_id", _categories),
    "roles": (_tool_roles, "role_id", _roles),
    "tags": (_tool_tags, "tag_id", _tags),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _escape_like(term: str) -> str:
    """Make % and _ in a search term match literally (escape character is a backslash)."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _clean_tag_names(names: Iterable[str]) -> list[str]:
    """Trim, drop blanks and de-duplicate while preserving order."""
    seen: set[str] = set()
    result: list[str] = []
    for name in names:
        cleaned = (name or "").strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return result


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and FK enforcement (needed for pivot cascades)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CatalogStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # SQLite requires check_same_thread=False because FastAPI runs sync
            # handlers in a thread pool.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except OperationalError as exc:
            logger.error("Catalog store unavailable: %s", exc.orig or exc)
            raise CatalogUnavailable() from exc

    # ------------------------------------------------------------------
    # Categories, roles, tags
    # ------------------------------------------------------------------

    def create_category(self, name: str) -> Category:
        """Insert a category. Raises IntegrityError if the name already exists."""
        return Category(**self._create_named(_categories, name))

    def list_categories(self) -> list[Category]:
        return [Category(**r) for r in self._list_named(_categories)]

    def create_role(self, name: str) -> CatalogRole:
        """Insert a catalog role. Raises IntegrityError if the name already exists."""
        return CatalogRole(**self._create_named(_roles, name))

    def list_roles(self) -> list[CatalogRole]:
        return [CatalogRole(**r) for r in self._list_named(_roles)]

    def list_tags(self) -> list[Tag]:
        return [Tag(**r) for r in self._list_named(_tags)]

    def filter_options(self) -> dict:
        """Everything a client needs to build the catalog filter UI."""
        return {
            "categories": self.list_categories(),
            "roles": self.list_roles(),
            "tags": self.list_tags(),
            "difficulty_levels": list(DIFFICULTY_LEVELS),
        }

    def missing_ids(self, relation: str, ids: Iterable[int]) -> list[int]:
        """Return the ids (from categories or roles) that do not exist.

        Used by the API to reject unknown relation ids with 422 before writing.
        """
        _pivot, _fk, related = _RELATIONS[relation]
        wanted = set(ids)
        if not wanted:
            return []
        with self._connect() as conn:
            found = set(conn.execute(select(related.c.id).where(related.c.id.in_(sorted(wanted)))).scalars())
        return sorted(wanted - found)

    def _create_named(self, table: Table, name: str) -> dict:
        created_at = _now_iso()
        with self._connect() as conn:
            result = conn.execute(table.insert().values(name=name.strip(), created_at=created_at))
            conn.commit()
        return {"id": result.inserted_primary_key[0], "name": name.strip(), "created_at": created_at}

    def _list_named(self, table: Table) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(table.select().order_by(table.c.name)).fetchall()
        return [{"id": r.id, "name": r.name, "created_at": r.created_at} for r in rows]

    def _tag_ids(self, conn: Connection, names: Iterable[str]) -> list[int]:
        """Resolve tag names to ids, creating missing tags (first-or-create)."""
        ids: list[int] = []
        for name in _clean_tag_names(names):
            existing = conn.execute(select(_tags.c.id).where(_tags.c.name == name)).scalar()
            if existing is None:
                existing = conn.execute(
                    _tags.insert().values(name=name, created_at=_now_iso())
                ).inserted_primary_key[0]
            ids.append(existing)
        return ids

    def _sync(self, conn: Connection, relation: str, tool_id: int, ids: Iterable[int]) -> None:
        """Replace a tool's links for one relation with exactly ids."""
        pivot, fk, _related = _RELATIONS[relation]
        conn.execute(pivot.delete().where(pivot.c.tool_id == tool_id))
        unique_ids = list(dict.fromkeys(ids))
        if unique_ids:
            conn.execute(pivot.insert(), [{"tool_id": tool_id, fk: rid} for rid in unique_ids])

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def create_tool(
        self,
        tool: Tool,
        category_ids: Iterable[int] = (),
        role_ids: Iterable[int] = (),
        tag_names: Iterable[str] = (),
    ) -> int:
        """Insert a tool with its relations in one transaction and return its ID.

        Tags are created on demand; category and role ids must already exist
        (see missing_ids()).
        """
        now = _now_iso()
        with self._connect() as conn:
            result = conn.execute(
                _tools.insert().values(
                    name=tool.name,
                    link=tool.link,
                    documentation=tool.documentation,
                    description=tool.description,
                    usage=tool.usage,
                    examples=tool.examples,
                    images=json.dumps(tool.images),
                    difficulty_level=tool.difficulty_level,
                    video_links=json.dumps(tool.video_links),
                    rating=round(tool.rating or 0.0, 2),
                    created_by=tool.created_by,
                    created_at=now,
                    updated_at=now,
                )
            )
            tool_id = result.inserted_primary_key[0]
            self._sync(conn, "categories", tool_id, category_ids)
            self._sync(conn, "roles", tool_id, role_ids)
            self._sync(conn, "tags", tool_id, self._tag_ids(conn, tag_names))
            conn.commit()
        return tool_id

    def update_tool(
        self,
        tool_id: int,
        category_ids: Optional[Iterable[int]] = None,
        role_ids: Optional[Iterable[int]] = None,
        tag_names: Optional[Iterable[str]] = None,
        **fields,
    ) -> bool:
        """Update scalar fields and, when given, replace relation links.

        A relation argument of None leaves that relation untouched; an empty
        list clears it. images and video_links must be passed as list[str].

        Returns True if the tool exists, False otherwise.
        """
        for key in ("images", "video_links"):
            if key in fields:
                fields[key] = json.dumps(fields[key] or [])
        if fields.get("rating") is not None:
            fields["rating"] = round(fields["rating"], 2)
        fields["updated_at"] = _now_iso()
        with self._connect() as conn:
            result = conn.execute(_tools.update().where(_tools.c.id == tool_id).values(**fields))
            if result.rowcount == 0:
                conn.rollback()
                return False
            if category_ids is not None:
                self._sync(conn, "categories", tool_id, category_ids)
            if role_ids is not None:
                self._sync(conn, "roles", tool_id, role_ids)
            if tag_names is not None:
                self._sync(conn, "tags", tool_id, self._tag_ids(conn, tag_names))
            conn.commit()
        return True

    def delete_tool(self, tool_id: int) -> bool:
        """Delete a tool and its relation links. Returns True if it existed."""
        with self._connect() as conn:
            for pivot, _fk, _related in _RELATIONS.values():
                conn.execute(pivot.delete().where(pivot.c.tool_id == tool_id))
            result = conn.execute(_tools.delete().where(_tools.c.id == tool_id))
            conn.commit()
        return result.rowcount > 0

    def get_tool(self, tool_id: int) -> Optional[Tool]:
        """Fetch a single tool with categories, roles and tags loaded."""
        with self._connect() as conn:
            row = conn.execute(_tools.select().where(_tools.c.id == tool_id)).fetchone()
            if row is None:
                return None
            tools = [_row_to_tool(row)]
            self._load_relations(conn, tools)
        return tools[0]

    def list_tools(self, filters: Optional[ToolFilters] = None) -> Page:
        """Return one page of tools matching filters, relations loaded.

        Relation filters match by name. Unknown sort fields fall back to
        created_at; per_page is clamped to 1..MAX_PER_PAGE.
        """
        f = filters or ToolFilters()
        per_page = min(max(f.per_page, 1), MAX_PER_PAGE)
        page = max(f.page, 1)

        query = select(_tools)
        if f.search:
            like = f"%{_escape_like(f.search)}%"
            query = query.where(
                or_(
                    _tools.c.name.ilike(like, escape="\\"),
                    _tools.c.description.ilike(like, escape="\\"),
                    _tools.c.usage.ilike(like, escape="\\"),
                )
            )
        for relation, name in (("categories", f.category), ("roles", f.role), ("tags", f.tag)):
            if name:
                pivot, fk, related = _RELATIONS[relation]
                matching = (
                    select(pivot.c.tool_id)
                    .join(related, related.c.id == pivot.c[fk])
                    .where(related.c.name == name)
                )
                query = query.where(_tools.c.id.in_(matching))
        if f.difficulty:
            query = query.where(_tools.c.difficulty_level == f.difficulty)
        if f.min_rating is not None:
            query = query.where(_tools.c.rating >= f.min_rating)
        if f.has_videos:
            query = query.where(_tools.c.video_links.is_not(None) & (_tools.c.video_links != "[]"))

        sort_column = _tools.c[f.sort_by] if f.sort_by in SORTABLE_FIELDS else _tools.c.created_at
        ordering = sort_column.asc() if f.sort_order.lower() == "asc" else sort_column.desc()

        with self._connect() as conn:
            total = conn.execute(select(func.count()).select_from(query.subquery())).scalar() or 0
            rows = conn.execute(
                query.order_by(ordering, _tools.c.id.desc()).limit(per_page).offset((page - 1) * per_page)
            ).fetchall()
            tools = [_row_to_tool(r) for r in rows]
            self._load_relations(conn, tools)
        return Page(items=tools, total=total, page=page, per_page=per_page)

    def _load_relations(self, conn: Connection, tools: list[Tool]) -> None:
        """Attach categories, roles and tags to tools with one query per relation."""
        if not tools:
            return
        by_id = {t.id: t for t in tools}
        mappers = {"categories": Category, "roles": CatalogRole, "tags": Tag}
        for relation, (pivot, fk, related) in _RELATIONS.items():
            rows = conn.execute(
                select(pivot.c.tool_id, related.c.id, related.c.name, related.c.created_at)
                .join(related, related.c.id == pivot.c[fk])
                .where(pivot.c.tool_id.in_(list(by_id)))
                .order_by(related.c.name)
            ).fetchall()
            for row in rows:
                getattr(by_id[row.tool_id], relation).append(
                    mappers[relation](id=row.id, name=row.name, created_at=row.created_at)
                )

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_tool(row) -> Tool:
    return Tool(
        id=row.id,
        name=row.name,
        link=row.link,
        documentation=row.documentation,
        description=row.description,
        usage=row.usage,
        examples=row.examples,
        images=json.loads(row.images) if row.images else [],
        difficulty_level=row.difficulty_level,
        video_links=json.loads(row.video_links) if row.video_links else [],
        rating=float(row.rating or 0.0),
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
