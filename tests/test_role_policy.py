"""
tests/test_role_policy.py -- Unit tests for auth/roles.py.

Covers:
  - Display metadata for every role in the table
  - Totality: unknown, None and oddly-cased inputs never raise
  - Fail-closed permissions for unknown roles
  - Action grants per role
"""

from __future__ import annotations

import pytest

from auth import roles
from auth.roles import Action, Role


@pytest.mark.parametrize(
    "role, display, color",
    [
        ("owner", "Owner", "green"),
        ("frontend", "Frontend Developer", "blue"),
        ("backend", "Backend Developer", "purple"),
        ("pm", "Project Manager", "orange"),
        ("qa", "QA Engineer", "red"),
        ("designer", "Designer", "pink"),
        ("user", "User", "gray"),
    ],
)
def test_display_metadata(role: str, display: str, color: str) -> None:
    assert roles.display_name(role) == display
    assert roles.color(role) == color


def test_every_role_has_an_access_message() -> None:
    for role in Role:
        assert roles.access_message(role)


def test_owner_access_message_mentions_user_management() -> None:
    assert "user management" in roles.access_message("owner")


@pytest.mark.parametrize("value", ["hacker", "", None, 42, "admin"])
def test_unknown_role_falls_back(value) -> None:
    assert roles.display_name(value) == "User"
    assert roles.color(value) == "gray"
    assert roles.access_message(value) == "You have basic access to the platform."
    assert roles.permitted_actions(value) == frozenset()


def test_parse_role_normalizes_case_and_whitespace() -> None:
    assert roles.parse_role(" Owner ") is Role.owner
    assert roles.parse_role(Role.qa) is Role.qa
    assert roles.parse_role("nope") is None


def test_owner_may_do_everything() -> None:
    assert roles.permitted_actions("owner") == frozenset(Action)


def test_pm_manages_taxonomy_but_not_users() -> None:
    assert roles.is_permitted("pm", Action.create_category)
    assert roles.is_permitted("pm", Action.create_role)
    assert roles.is_permitted("pm", Action.create_tool)
    assert not roles.is_permitted("pm", Action.manage_users)


@pytest.mark.parametrize("role", ["frontend", "backend", "qa", "designer"])
def test_developer_roles_manage_tools_only(role: str) -> None:
    assert roles.permitted_actions(role) == frozenset(
        {Action.create_tool, Action.update_tool, Action.delete_tool}
    )


def test_user_role_has_no_actions() -> None:
    for action in Action:
        assert not roles.is_permitted("user", action)
