"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, no persistence logic). Mirrors
catalog/models.py -- dataclasses own domain shape; stores and the gateway do
the work.

Layer rule: no imports from api/, web/ or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from auth import roles


class ClientKind(str, Enum):
    """How a request authenticates: bearer token (API) or session cookie (browser)."""

    api = "api"
    browser = "browser"


@dataclass
class User:
    """An identity that can log in to the platform.

    email is stored lower-cased and trimmed; it is the login identifier and is
    unique case-insensitively. role is kept as the raw string from the database
    so an unrecognised value degrades to the fallback policy instead of
    failing to load.
    """

    name: str
    email: str
    role: str = roles.DEFAULT_ROLE.value
    id: int | None = None
    hashed_password: str | None = None
    created_at: str | None = None
    is_active: bool = True


@dataclass
class AccessToken:
    """A personal access token record.

    Security design:
    - token_hash is HMAC-SHA256(SECRET_KEY, secret). The plaintext handed to
      the client is "<id>|<secret>"; the id prefix gives an O(1) primary-key
      lookup and the hash is then compared in constant time.
    - The plaintext is never persisted. It is returned ONCE from
      TokenIssuer.issue() and is unrecoverable afterwards.
    - revoked_at is set exactly once and never cleared (monotonic revocation).
    """

    user_id: int
    name: str
    token_hash: str
    id: int | None = None
    created_at: str | None = None
    last_used_at: str | None = None
    revoked_at: str | None = None

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None


@dataclass
class NewAccessToken:
    """Result of issuing a token: the stored record plus the one-time plaintext."""

    token: AccessToken
    plain_text: str


@dataclass
class Session:
    """A server-side browser session.

    key_hash is HMAC-SHA256(SECRET_KEY, session_id); only the browser holds the
    raw session_id (in the session cookie). session_id is populated on objects
    returned to the caller that minted or presented it, never read from the DB.
    user_id is None for anonymous sessions.
    """

    key_hash: str
    csrf_token: str
    user_id: int | None = None
    created_at: str | None = None
    last_activity: str | None = None
    session_id: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


@dataclass
class Principal:
    """The authenticated identity behind one request.

    Exactly one credential backs a principal: token is set for API clients,
    session for browser clients. credential is the raw value the client
    presented (bearer token or session id) so logout can act on exactly it.
    """

    user: User
    kind: ClientKind
    credential: str
    token: AccessToken | None = None
    session: Session | None = None


@dataclass
class UserView:
    """Public projection of a User. Never contains the password hash."""

    id: int
    name: str
    email: str
    role: str
    role_display: str
    role_color: str

    @classmethod
    def from_user(cls, user: User) -> "UserView":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            role_display=roles.display_name(user.role),
            role_color=roles.color(user.role),
        )


@dataclass
class AuthResult:
    """Outcome of a successful login.

    token is set (plaintext, shown once) for API clients; session is set for
    browser clients.
    """

    user: UserView
    token: str | None = None
    session: Session | None = None
