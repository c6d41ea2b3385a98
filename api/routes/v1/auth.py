"""
api/routes/v1/auth.py -- Login, logout and current-user endpoints.

Routes:
  POST /api/login   -- password login; API clients get a bearer token
  POST /login       -- same handler; browser clients get a session cookie
  POST /api/logout  -- end the credential behind the request
  POST /logout      -- same handler; browsers are redirected to /
  GET  /api/user    -- current user (requires auth)

One handler per operation serves both path spellings. The client kind is
decided from the request shape (auth.dependencies.wants_json), never from the
path alone, so an XHR to /login still gets JSON and a token.

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 5/minute).
  Timing equalization lives in auth.tokens.verify_credentials -- the gateway
    uses it, never inline the lookup + bcrypt check here.
  Browser login and logout require the session's CSRF token.
  Cache-Control: no-store on login responses.
  next= is restricted to relative paths (auth.dependencies.safe_next).
"""

from __future__ import annotations

from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, MessageResponse, UserViewResponse
from auth.dependencies import (
    CSRF_FORM_FIELD,
    CSRF_HEADER,
    client_kind,
    get_gateway,
    get_principal,
    safe_next,
    session_cookie,
    verify_csrf,
    wants_json,
)
from auth.errors import InvalidCredentials
from auth.models import ClientKind, Principal
from auth.sessions import SessionManager, set_session_cookie
from core.config import get_settings

# Auth policy:
# - POST /api/login, /login:    public -- login endpoint must be unauthenticated
# - POST /api/logout, /logout:  requires auth (get_principal); CSRF for sessions
# - GET  /api/user:             requires auth (get_principal)
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _read_body(request: Request) -> dict:
    """Return the login body as a flat dict from either JSON or a form post."""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


def _login_redirect(error: str, next_url: str) -> RedirectResponse:
    """Send a browser back to the login form with a whitelisted error code."""
    query = urlencode({"error": error, "next": next_url})
    resp = RedirectResponse(f"/login?{query}", status_code=303)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/api/login", response_model=LoginResponse)
@router.post("/login", response_model=LoginResponse, include_in_schema=False)
@limiter.limit(get_settings().login_rate_limit)  # innermost so both routes register the limited wrapper
async def login(request: Request) -> Response:
    """Authenticate with email and password.

    API clients receive {user, token, message}; the token is shown exactly
    once. Browser clients are redirected (303) to next or /dashboard with a
    freshly regenerated session cookie.

    Wrong email and wrong password produce the same generic error so the
    response never reveals whether an account exists.
    """
    gateway = get_gateway(request)
    kind = client_kind(request)
    raw = await _read_body(request)
    next_url = safe_next(raw.get("next") or request.query_params.get("next"))

    try:
        body = LoginRequest.model_validate(raw)
    except ValidationError as exc:
        if kind is ClientKind.browser:
            return _login_redirect("missing_fields", next_url)
        raise RequestValidationError(exc.errors(include_url=False, include_input=False)) from exc

    session_id = session_cookie(request)
    if kind is ClientKind.browser:
        # The form must echo the CSRF token of the anonymous session it was rendered in.
        anonymous = gateway.sessions.resolve(session_id)
        submitted = request.headers.get(CSRF_HEADER) or raw.get(CSRF_FORM_FIELD)
        if not SessionManager.verify_csrf(anonymous, submitted):
            return _login_redirect("session_expired", next_url)

    try:
        result = gateway.login(body.email, body.password, kind, session_id=session_id)
    except InvalidCredentials:
        if kind is ClientKind.browser:
            return _login_redirect("bad_credentials", next_url)
        raise

    if kind is ClientKind.api:
        resp: Response = JSONResponse(
            content=LoginResponse(user=UserViewResponse.from_view(result.user), token=result.token).model_dump()
        )
    else:
        resp = RedirectResponse(next_url, status_code=303)
        set_session_cookie(resp, result.session)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/api/logout", response_model=MessageResponse)
@router.post("/logout", response_model=MessageResponse, include_in_schema=False)
async def logout(request: Request, principal: Principal = Depends(get_principal)) -> Response:
    """End exactly the credential that authenticated this request.

    Token: that token is revoked, the user's other tokens keep working.
    Session: the session is destroyed and replaced by an anonymous one with a
    new CSRF token, whose cookie is set on the response.
    """
    await verify_csrf(request, principal)
    anonymous = get_gateway(request).logout(principal)

    if principal.kind is ClientKind.browser and not wants_json(request):
        resp: Response = RedirectResponse("/", status_code=303)
    else:
        resp = JSONResponse(content=MessageResponse(message="Logout successful").model_dump())
    if anonymous is not None:
        set_session_cookie(resp, anonymous)
    return resp


@router.get("/api/user", response_model=UserViewResponse)
def current_user(request: Request, principal: Principal = Depends(get_principal)) -> UserViewResponse:
    """Return the public view of the currently authenticated user."""
    return UserViewResponse.from_view(get_gateway(request).current_user(principal))
