"""
auth/roles.py -- Role Policy: role display metadata and permitted actions.

Pattern: static lookup table. Each Role maps to one immutable RolePolicy.
The table is checked for completeness at import time, so adding a member to
Role without a policy entry fails on startup instead of silently falling
through to the fallback.

All public functions are total: they accept any value (a Role, a raw string
from the database, None) and never raise. Unknown roles get the "User"/"gray"
presentation and an empty permission set -- never elevated by default.

Layer rule: no imports from api/, web/ or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    owner = "owner"
    frontend = "frontend"
    backend = "backend"
    pm = "pm"
    qa = "qa"
    designer = "designer"
    user = "user"


class Action(str, Enum):
    create_tool = "create_tool"
    update_tool = "update_tool"
    delete_tool = "delete_tool"
    create_category = "create_category"
    create_role = "create_role"
    manage_users = "manage_users"


DEFAULT_ROLE = Role.user


@dataclass(frozen=True)
class RolePolicy:
    display_name: str
    color: str
    access_message: str
    permitted_actions: frozenset[Action] = field(default_factory=frozenset)


_TOOL_ACTIONS = frozenset({Action.create_tool, Action.update_tool, Action.delete_tool})

_FALLBACK = RolePolicy(
    display_name="User",
    color="gray",
    access_message="You have basic access to the platform.",
)

_POLICIES: dict[Role, RolePolicy] = {
    Role.owner: RolePolicy(
        display_name="Owner",
        color="green",
        access_message=(
            "You have full access to all platform features including user management, "
            "analytics, and system settings."
        ),
        permitted_actions=frozenset(Action),
    ),
    Role.frontend: RolePolicy(
        display_name="Frontend Developer",
        color="blue",
        access_message="You have access to frontend development tools, UI components, and design systems.",
        permitted_actions=_TOOL_ACTIONS,
    ),
    Role.backend: RolePolicy(
        display_name="Backend Developer",
        color="purple",
        access_message=(
            "You have access to backend development tools, APIs, databases, and server configurations."
        ),
        permitted_actions=_TOOL_ACTIONS,
    ),
    Role.pm: RolePolicy(
        display_name="Project Manager",
        color="orange",
        access_message="You have access to project management tools, team coordination, and progress tracking.",
        permitted_actions=_TOOL_ACTIONS | {Action.create_category, Action.create_role},
    ),
    Role.qa: RolePolicy(
        display_name="QA Engineer",
        color="red",
        access_message=(
            "You have access to testing tools, bug tracking, quality assurance, and test automation."
        ),
        permitted_actions=_TOOL_ACTIONS,
    ),
    Role.designer: RolePolicy(
        display_name="Designer",
        color="pink",
        access_message=(
            "You have access to design tools, prototyping, user experience research, and design systems."
        ),
        permitted_actions=_TOOL_ACTIONS,
    ),
    Role.user: _FALLBACK,
}

_missing = set(Role) - set(_POLICIES)
if _missing:
    raise RuntimeError(f"Role policy table is missing entries for: {sorted(r.value for r in _missing)}")


def parse_role(value: object) -> Role | None:
    """Return the Role for a raw value, or None when it is not a known role."""
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).strip().lower())
    except ValueError:
        return None


def policy_for(role: object) -> RolePolicy:
    role_enum = parse_role(role)
    if role_enum is None:
        return _FALLBACK
    return _POLICIES[role_enum]


def display_name(role: object) -> str:
    return policy_for(role).display_name


def color(role: object) -> str:
    return policy_for(role).color


def access_message(role: object) -> str:
    """Dashboard blurb describing what the role can reach."""
    return policy_for(role).access_message


def permitted_actions(role: object) -> frozenset[Action]:
    """Actions the role may perform. Unknown roles get the empty set (fail-closed)."""
    return policy_for(role).permitted_actions


def is_permitted(role: object, action: Action) -> bool:
    return action in permitted_actions(role)
