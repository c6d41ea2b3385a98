"""
catalog/models.py -- Domain dataclasses for the tool catalog.

These are pure data containers with zero logic. Filtering, pagination and
relation handling live in catalog/store.py.

Separation of concerns: these dataclasses are the catalog's domain truth, just
as auth/models.py is the identity layer's. Neither layer imports the other --
tools reference their creator by user id only.
"""

import math
from dataclasses import dataclass, field
from typing import Optional

DIFFICULTY_LEVELS = ("Beginner", "Intermediate", "Advanced")
SORTABLE_FIELDS = ("created_at", "name", "rating", "difficulty_level")
MAX_PER_PAGE = 100


@dataclass
class Category:
    name: str
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class CatalogRole:
    """A job role a tool is aimed at (e.g. "Developer").

    Not to be confused with auth.roles.Role, which governs what a user may do.
    """

    name: str
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class Tag:
    name: str
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class Tool:
    """An AI tool in the catalog.

    images holds stored file paths; the files themselves are managed by the
    upload storage collaborator, not by the catalog. rating is 0..5 with two
    decimals. created_by is the id of the user who owns the tool -- only that
    user may update or delete it.

    id is None before the record is written to the database.
    """

    name: str
    link: str
    description: str
    usage: str
    created_by: int
    id: Optional[int] = None
    documentation: Optional[str] = None
    examples: Optional[str] = None
    images: list[str] = field(default_factory=list)
    difficulty_level: Optional[str] = None  # "Beginner" | "Intermediate" | "Advanced"
    video_links: list[str] = field(default_factory=list)
    rating: float = 0.0
    categories: list[Category] = field(default_factory=list)
    roles: list[CatalogRole] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""


@dataclass
class ToolFilters:
    """Query parameters accepted by CatalogStore.list_tools()."""

    search: Optional[str] = None
    category: Optional[str] = None
    role: Optional[str] = None
    tag: Optional[str] = None
    difficulty: Optional[str] = None
    min_rating: Optional[float] = None
    has_videos: bool = False
    sort_by: str = "created_at"
    sort_order: str = "desc"
    page: int = 1
    per_page: int = 20


@dataclass
class Page:
    items: list[Tool]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page)) if self.per_page else 1
