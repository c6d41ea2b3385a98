"""
API request and response models for the AI Tools Platform REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
catalog/models.py, which own the internal domain representation. Route
handlers map between the two.

Separation of concerns: auth/ and catalog/ models = domain truth;
api/ models = API contract.
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StringConstraints, field_validator

from auth.models import UserView
from catalog.models import MAX_PER_PAGE, Page, Tool

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

URL_PATTERN = r"^https?://\S+$"

# Annotated types applied per element when used as list[...].
_Url = Annotated[str, Field(pattern=URL_PATTERN, max_length=2048)]
_Name = Annotated[str, Field(min_length=1, max_length=255)]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DifficultyEnum(str, Enum):
    beginner = "Beginner"
    intermediate = "Intermediate"
    advanced = "Advanced"


class SortByEnum(str, Enum):
    created_at = "created_at"
    name = "name"
    rating = "rating"
    difficulty_level = "difficulty_level"


class SortOrderEnum(str, Enum):
    asc = "asc"
    desc = "desc"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    service: str = "api"
    timestamp: str
    components: dict[str, str] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/login and POST /login.

    Accepts {email, password} as well as the generic {identifier, secret}
    spelling. Browser forms may also carry next (post-login redirect target)
    and _token (CSRF token); both are read from the raw form by the route.
    """

    model_config = ConfigDict(populate_by_name=True)

    # Only the email is trimmed; passwords are compared byte for byte.
    email: Annotated[str, StringConstraints(strip_whitespace=True)] = Field(
        min_length=1, max_length=255, validation_alias=AliasChoices("email", "identifier")
    )
    password: str = Field(min_length=1, max_length=255, validation_alias=AliasChoices("password", "secret"))


class UserViewResponse(BaseModel):
    """Public projection of a user. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: str
    role_display: str
    role_color: str

    @classmethod
    def from_view(cls, view: UserView) -> "UserViewResponse":
        return cls(
            id=view.id,
            name=view.name,
            email=view.email,
            role=view.role,
            role_display=view.role_display,
            role_color=view.role_color,
        )


class LoginResponse(BaseModel):
    """Response for a successful API login. token is shown exactly once."""

    model_config = ConfigDict(frozen=True)

    user: UserViewResponse
    token: str
    message: str = "Login successful"


class DashboardResponse(BaseModel):
    """Response for GET /api/dashboard."""

    model_config = ConfigDict(frozen=True)

    user: UserViewResponse
    greeting: str
    role_access: str


# ---------------------------------------------------------------------------
# Catalog -- categories, roles, tags
# ---------------------------------------------------------------------------


class NamedCreate(BaseModel):
    """Request body for POST /api/categories and POST /api/roles."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: _Name


class NamedResponse(BaseModel):
    """A category, catalog role or tag."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    created_at: str = ""


class FilterOptionsResponse(BaseModel):
    """Response for GET /api/tools/filters/options."""

    model_config = ConfigDict(frozen=True)

    categories: list[NamedResponse]
    roles: list[NamedResponse]
    tags: list[NamedResponse]
    difficulty_levels: list[str]
    sort_options: list[dict[str, str]]


# ---------------------------------------------------------------------------
# Catalog -- tools
# ---------------------------------------------------------------------------


class ToolCreate(BaseModel):
    """Request body for POST /api/tools.

    tags are names and are created on demand; category_ids and role_ids must
    reference existing rows. images are stored file paths handed back by the
    upload storage.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: _Name
    link: _Url
    documentation: Optional[str] = Field(default=None, max_length=2048)
    description: str = Field(min_length=1)
    usage: str = Field(min_length=1)
    examples: Optional[str] = None
    images: list[str] = Field(default_factory=list, max_length=20)
    difficulty_level: Optional[DifficultyEnum] = None
    video_links: list[_Url] = Field(default_factory=list, max_length=20)
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    category_ids: list[int] = Field(default_factory=list, validation_alias=AliasChoices("category_ids", "categories"))
    role_ids: list[int] = Field(default_factory=list, validation_alias=AliasChoices("role_ids", "roles"))
    tags: list[_Name] = Field(default_factory=list, max_length=50)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, values: list) -> list[str]:
        """Trim and deduplicate tag names while preserving input order."""
        seen: set[str] = set()
        result: list[str] = []
        for v in values or []:
            normalized = str(v).strip()
            if normalized and normalized not in seen:
                seen.add(normalized)
                result.append(normalized)
        return result


class ToolUpdate(ToolCreate):
    """Request body for PUT /api/tools/{id}.

    Every field is optional; only fields present in the body are changed.
    Relations present in the body replace the tool's current links.
    """

    name: Optional[_Name] = None
    link: Optional[_Url] = None
    description: Optional[str] = Field(default=None, min_length=1)
    usage: Optional[str] = Field(default=None, min_length=1)


class ToolResponse(BaseModel):
    """Full tool detail including categories, roles and tags."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    link: str
    documentation: Optional[str]
    description: str
    usage: str
    examples: Optional[str]
    images: list[str]
    difficulty_level: Optional[str]
    video_links: list[str]
    rating: float
    created_by: int
    categories: list[NamedResponse]
    roles: list[NamedResponse]
    tags: list[NamedResponse]
    created_at: str
    updated_at: str

    @classmethod
    def from_tool(cls, tool: Tool) -> "ToolResponse":
        """Build a ToolResponse from a catalog Tool dataclass."""
        return cls(
            id=tool.id,
            name=tool.name,
            link=tool.link,
            documentation=tool.documentation,
            description=tool.description,
            usage=tool.usage,
            examples=tool.examples,
            images=tool.images,
            difficulty_level=tool.difficulty_level,
            video_links=tool.video_links,
            rating=tool.rating,
            created_by=tool.created_by,
            categories=[NamedResponse(id=c.id, name=c.name, created_at=c.created_at) for c in tool.categories],
            roles=[NamedResponse(id=r.id, name=r.name, created_at=r.created_at) for r in tool.roles],
            tags=[NamedResponse(id=t.id, name=t.name, created_at=t.created_at) for t in tool.tags],
            created_at=tool.created_at,
            updated_at=tool.updated_at,
        )


class ToolPage(BaseModel):
    """Paginated response for GET /api/tools."""

    model_config = ConfigDict(frozen=True)

    data: list[ToolResponse]
    current_page: int
    per_page: int = Field(le=MAX_PER_PAGE)
    total: int
    last_page: int

    @classmethod
    def from_page(cls, page: Page) -> "ToolPage":
        return cls(
            data=[ToolResponse.from_tool(t) for t in page.items],
            current_page=page.page,
            per_page=page.per_page,
            total=page.total,
            last_page=page.last_page,
        )
