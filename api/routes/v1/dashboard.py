"""
api/routes/v1/dashboard.py -- Role-aware dashboard payload.

Returns the greeting and role access message the web dashboard renders, for
API clients that draw their own UI. Read-only -- no mutations here.
"""

from fastapi import APIRouter, Depends, Request

from api.limiter import limiter
from api.models import DashboardResponse, UserViewResponse
from auth.dependencies import get_gateway, get_principal
from auth.models import Principal

# Auth policy:
# - GET /api/dashboard: requires auth (get_principal)
router = APIRouter()


@router.get("/dashboard", response_model=DashboardResponse)
@limiter.limit("60/minute")
def get_dashboard(request: Request, principal: Principal = Depends(get_principal)) -> DashboardResponse:
    """Return the current user plus role-specific greeting and access message.

    Response:
      user         -- public user view (id, name, email, role, role_display, role_color)
      greeting     -- "Welcome, {name}! Your role: {role_display}."
      role_access  -- what this role can do on the platform
    """
    payload = get_gateway(request).dashboard(principal)
    return DashboardResponse(
        user=UserViewResponse.from_view(payload["user"]),
        greeting=payload["greeting"],
        role_access=payload["role_access"],
    )
