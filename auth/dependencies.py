"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two credential kinds, never combined:
  1. Authorization: Bearer <token> header -- API clients. When this header is
     present the session cookie is ignored, even if the token is invalid.
  2. Session cookie (SESSION_COOKIE_NAME) -- browser clients.

Both converge on a Principal resolved by the AuthGateway on app.state.

try_get_principal() is the soft variant (returns None on failure).
get_principal() wraps it and raises NotAuthenticated (401).
require_action(action) builds a dependency that also raises Forbidden (403)
when the role lacks the action, and enforces the CSRF token for
session-authenticated state-changing requests.

Layer rule: no imports from web/ or catalog/.
  auth/dependencies.py may import from fastapi because this module is part of
  the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import CsrfMismatch, NotAuthenticated
from auth.gateway import AuthGateway
from auth.models import ClientKind, Principal
from auth.roles import Action
from auth.sessions import SessionManager
from core.config import get_settings

_SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}
CSRF_HEADER = "X-CSRF-Token"
CSRF_FORM_FIELD = "_token"


def get_gateway(request: Request) -> AuthGateway:
    return request.app.state.gateway


def bearer_token(request: Request) -> str | None:
    """Return the bearer token, "" for a malformed Authorization header, None if absent."""
    header = request.headers.get("Authorization")
    if header is None:
        return None
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return value.strip()


def session_cookie(request: Request) -> str | None:
    return request.cookies.get(get_settings().session_cookie_name)


def wants_json(request: Request) -> bool:
    """Decide whether the caller is an API client (JSON) or a browser.

    API client when any of:
      - the route lives under /api/
      - Accept asks for JSON
      - X-Requested-With: XMLHttpRequest (AJAX)
      - the body is JSON
      - an Authorization header is present
    """
    if request.url.path.startswith("/api/"):
        return True
    accept = request.headers.get("accept", "")
    if "/json" in accept or "+json" in accept:
        return True
    if request.headers.get("x-requested-with", "").lower() == "xmlhttprequest":
        return True
    if request.headers.get("content-type", "").startswith("application/json"):
        return True
    return "authorization" in request.headers


def client_kind(request: Request) -> ClientKind:
    return ClientKind.api if wants_json(request) else ClientKind.browser


def safe_next(next_url: str | None, default: str = "/dashboard") -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    Prevents open redirects such as next=https://attacker.com or
    next=//attacker.com (protocol-relative). Backslashes are rejected too
    because some browsers treat /\\host as //host.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//") and "\\" not in next_url:
        return next_url
    return default


def try_get_principal(request: Request) -> Principal | None:
    """Authenticate the request via bearer token or session cookie.

    Returns the Principal on success, None on any authentication failure.
    Storage outages (Unavailable) still propagate.
    """
    gateway = get_gateway(request)
    return gateway.try_authenticate(bearer=bearer_token(request), session_id=session_cookie(request))


def get_principal(request: Request) -> Principal:
    """Require authentication. Raises NotAuthenticated (401).

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(get_principal)): ...
    """
    principal = try_get_principal(request)
    if principal is None:
        raise NotAuthenticated()
    return principal


async def verify_csrf(request: Request, principal: Principal) -> None:
    """Reject session-authenticated unsafe requests without the session's CSRF token.

    Token-authenticated requests are exempt: a bearer header is never sent
    automatically by a browser, so it cannot be forged cross-site.
    """
    if principal.kind is not ClientKind.browser or request.method in _SAFE_METHODS:
        return
    submitted = request.headers.get(CSRF_HEADER)
    if not submitted:
        content_type = request.headers.get("content-type", "")
        if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
            form = await request.form()
            submitted = form.get(CSRF_FORM_FIELD)
    if not SessionManager.verify_csrf(principal.session, submitted):
        raise CsrfMismatch()


def require_action(action: Action):
    """Build a dependency that requires an authenticated principal allowed to perform action.

    Use as a FastAPI dependency:
        @router.post("/tools")
        async def route(principal: Principal = Depends(require_action(Action.create_tool))): ...
    """

    async def _dependency(request: Request) -> Principal:
        principal = get_principal(request)
        await verify_csrf(request, principal)
        get_gateway(request).require(principal, action)
        return principal

    return _dependency
