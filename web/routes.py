"""
web/routes.py -- Jinja2 template routes for the AI Tools Platform web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same user store, gateway and catalog) but return HTML instead of JSON.
The form POSTs (/login, /logout) are handled by api/routes/v1/auth.py, which
serves browsers and API clients from one handler.

Routes:
  GET /             -- welcome page
  GET /login        -- login form (starts an anonymous session for the CSRF token)
  GET /dashboard    -- role dashboard (auth required)
  GET /csrf-token   -- {csrf_token} for script clients using the session cookie
"""

import logging
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from auth import roles
from auth.dependencies import get_gateway, safe_next, session_cookie, try_get_principal
from auth.models import Principal, Session
from auth.roles import Action
from auth.sessions import set_session_cookie
from core.config import get_settings

logger = logging.getLogger("aitools.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
templates.env.globals["app_name"] = get_settings().app_name
router = APIRouter()

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= query params on /login.
# The raw query param is NEVER passed to templates -- only the message from
# this dict is. Prevents reflected XSS via crafted error query strings.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "These credentials do not match our records.",
    "missing_fields": "Email and password are required.",
    "session_expired": "Your session expired. Please try again.",
}

_ACTION_LABELS: dict[Action, str] = {
    Action.create_tool: "Add tools to the catalog",
    Action.update_tool: "Edit the tools you added",
    Action.delete_tool: "Remove the tools you added",
    Action.create_category: "Create tool categories",
    Action.create_role: "Create catalog roles",
    Action.manage_users: "Manage user accounts",
}


def _page_session(request: Request, principal: Principal | None) -> Session:
    """Return the session backing this page, starting an anonymous one if needed."""
    if principal is not None and principal.session is not None:
        return principal.session
    return get_gateway(request).sessions.ensure(session_cookie(request))


def _render(request: Request, name: str, session: Session, context: dict) -> HTMLResponse:
    context = {"csrf_token": session.csrf_token, **context}
    resp = templates.TemplateResponse(request, name, context)
    set_session_cookie(resp, session)
    return resp


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def welcome(request: Request) -> HTMLResponse:
    principal = try_get_principal(request)
    session = _page_session(request, principal)
    return _render(request, "welcome.html", session, {"user": principal.user if principal else None})


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login form carrying the anonymous session's CSRF token."""
    next_url = safe_next(request.query_params.get("next"))
    principal = try_get_principal(request)
    if principal is not None:
        return RedirectResponse(next_url, status_code=302)

    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""))
    session = _page_session(request, None)
    resp = _render(request, "login.html", session, {"user": None, "error_msg": error_msg, "next_url": next_url})
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request) -> HTMLResponse:
    """Role dashboard: greeting, user details, role access and allowed actions."""
    principal = try_get_principal(request)
    if principal is None:
        return RedirectResponse("/login?next=/dashboard", status_code=302)

    payload = get_gateway(request).dashboard(principal)
    view = payload["user"]
    actions = [_ACTION_LABELS[a] for a in Action if a in roles.permitted_actions(view.role)]
    return _render(
        request,
        "dashboard.html",
        _page_session(request, principal),
        {
            "user": view,
            "greeting": payload["greeting"],
            "role_access": payload["role_access"],
            "actions": actions,
        },
    )


@router.get("/csrf-token")
def csrf_token(request: Request) -> JSONResponse:
    """Return the CSRF token of the current (or a new anonymous) session."""
    principal = try_get_principal(request)
    session = _page_session(request, principal)
    resp = JSONResponse(content={"csrf_token": session.csrf_token})
    set_session_cookie(resp, session)
    return resp
