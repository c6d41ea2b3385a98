"""
tests/test_gateway.py -- Unit tests for auth/gateway.py.

Covers:
  - login() for API (token) and browser (session) clients
  - Identical failure for wrong password and unknown email
  - No credential is written on a failed login
  - One-credential rule: a bearer header disables the session path
  - logout() ends exactly the presented credential
  - current_user(), authorize(), require(), dashboard()
  - Storage outages surface as Unavailable, never InvalidCredentials
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from auth.errors import Forbidden, InvalidCredentials, NotAuthenticated, Unavailable
from auth.gateway import AuthGateway
from auth.models import ClientKind
from auth.roles import Action
from auth.store import UserStore


@pytest.fixture
def gateway(user_store: UserStore) -> AuthGateway:
    return AuthGateway(user_store)


def _owner_id(store: UserStore) -> int:
    return store.get_by_email("test@example.com").id


class TestLogin:
    def test_api_login_issues_token(self, gateway: AuthGateway) -> None:
        result = gateway.login("test@example.com", "password", ClientKind.api)
        assert result.token
        assert result.session is None
        assert result.user.email == "test@example.com"
        assert result.user.role_display == "Owner"

    def test_browser_login_starts_session(self, gateway: AuthGateway) -> None:
        result = gateway.login("test@example.com", "password", ClientKind.browser)
        assert result.token is None
        assert result.session.is_authenticated

    def test_email_is_case_insensitive(self, gateway: AuthGateway) -> None:
        assert gateway.login("  TEST@Example.com ", "password", ClientKind.api).token

    def test_wrong_password_and_unknown_email_fail_identically(self, gateway: AuthGateway) -> None:
        with pytest.raises(InvalidCredentials) as wrong:
            gateway.login("test@example.com", "nope", ClientKind.api)
        with pytest.raises(InvalidCredentials) as unknown:
            gateway.login("nobody@example.com", "password", ClientKind.api)
        assert str(wrong.value) == str(unknown.value)
        assert wrong.value.message == unknown.value.message

    def test_inactive_user_cannot_log_in(self, gateway: AuthGateway) -> None:
        with pytest.raises(InvalidCredentials):
            gateway.login("disabled@example.com", "password", ClientKind.api)

    def test_failed_login_writes_nothing(self, gateway: AuthGateway, user_store: UserStore) -> None:
        with pytest.raises(InvalidCredentials):
            gateway.login("test@example.com", "nope", ClientKind.api)
        assert user_store.list_tokens(_owner_id(user_store), include_revoked=True) == []

    def test_each_api_login_creates_exactly_one_token(self, gateway: AuthGateway, user_store: UserStore) -> None:
        gateway.login("test@example.com", "password", ClientKind.api)
        gateway.login("test@example.com", "password", ClientKind.api)
        assert len(user_store.list_tokens(_owner_id(user_store))) == 2

    def test_browser_login_destroys_previous_session(self, gateway: AuthGateway) -> None:
        anonymous = gateway.sessions.ensure(None)
        gateway.login("test@example.com", "password", ClientKind.browser, session_id=anonymous.session_id)
        assert gateway.sessions.resolve(anonymous.session_id) is None


class TestAuthenticate:
    def test_token_principal(self, gateway: AuthGateway) -> None:
        token = gateway.login("test@example.com", "password", ClientKind.api).token
        principal = gateway.authenticate(bearer=token)
        assert principal.kind is ClientKind.api
        assert principal.token is not None

    def test_session_principal(self, gateway: AuthGateway) -> None:
        session = gateway.login("test@example.com", "password", ClientKind.browser).session
        principal = gateway.authenticate(session_id=session.session_id)
        assert principal.kind is ClientKind.browser
        assert principal.session is not None

    def test_bearer_header_disables_session_path(self, gateway: AuthGateway) -> None:
        session = gateway.login("test@example.com", "password", ClientKind.browser).session
        with pytest.raises(NotAuthenticated):
            gateway.authenticate(bearer="bogus", session_id=session.session_id)
        # A malformed Authorization header arrives as "".
        with pytest.raises(NotAuthenticated):
            gateway.authenticate(bearer="", session_id=session.session_id)

    def test_anonymous_session_is_not_a_principal(self, gateway: AuthGateway) -> None:
        anonymous = gateway.sessions.ensure(None)
        assert gateway.try_authenticate(session_id=anonymous.session_id) is None

    def test_nothing_presented(self, gateway: AuthGateway) -> None:
        with pytest.raises(NotAuthenticated):
            gateway.authenticate()


class TestLogout:
    def test_token_logout_revokes_only_that_token(self, gateway: AuthGateway) -> None:
        first = gateway.login("test@example.com", "password", ClientKind.api).token
        second = gateway.login("test@example.com", "password", ClientKind.api).token
        assert gateway.logout(gateway.authenticate(bearer=first)) is None
        assert gateway.try_authenticate(bearer=first) is None
        assert gateway.authenticate(bearer=second).user.email == "test@example.com"

    def test_session_logout_rotates_to_anonymous(self, gateway: AuthGateway) -> None:
        session = gateway.login("test@example.com", "password", ClientKind.browser).session
        principal = gateway.authenticate(session_id=session.session_id)
        fresh = gateway.logout(principal)
        assert not fresh.is_authenticated
        assert fresh.csrf_token != session.csrf_token
        assert gateway.try_authenticate(session_id=session.session_id) is None

    def test_logged_out_session_principal_fails_current_user(self, gateway: AuthGateway) -> None:
        session = gateway.login("test@example.com", "password", ClientKind.browser).session
        principal = gateway.authenticate(session_id=session.session_id)
        assert gateway.current_user(principal).email == "test@example.com"
        gateway.logout(principal)
        with pytest.raises(NotAuthenticated):
            gateway.current_user(principal)

    def test_double_logout_fails(self, gateway: AuthGateway) -> None:
        token = gateway.login("test@example.com", "password", ClientKind.api).token
        principal = gateway.authenticate(bearer=token)
        gateway.logout(principal)
        with pytest.raises(NotAuthenticated):
            gateway.logout(principal)

    def test_logout_without_principal(self, gateway: AuthGateway) -> None:
        with pytest.raises(NotAuthenticated):
            gateway.logout(None)


class TestCurrentUserAndAuthorize:
    def test_current_user_view(self, gateway: AuthGateway) -> None:
        token = gateway.login("frontend@example.com", "password", ClientKind.api).token
        view = gateway.current_user(gateway.authenticate(bearer=token))
        assert (view.role, view.role_display, view.role_color) == ("frontend", "Frontend Developer", "blue")
        assert not hasattr(view, "hashed_password")

    def test_current_user_after_revocation(self, gateway: AuthGateway) -> None:
        token = gateway.login("test@example.com", "password", ClientKind.api).token
        principal = gateway.authenticate(bearer=token)
        gateway.issuer.revoke(token)
        with pytest.raises(NotAuthenticated):
            gateway.current_user(principal)

    def test_authorize_consults_role_policy(self, gateway: AuthGateway) -> None:
        owner = gateway.authenticate(bearer=gateway.login("test@example.com", "password", ClientKind.api).token)
        basic = gateway.authenticate(bearer=gateway.login("basic@example.com", "password", ClientKind.api).token)
        assert gateway.authorize(owner, Action.manage_users)
        assert not gateway.authorize(basic, Action.create_tool)
        assert not gateway.authorize(None, Action.create_tool)

    def test_require(self, gateway: AuthGateway) -> None:
        basic = gateway.authenticate(bearer=gateway.login("basic@example.com", "password", ClientKind.api).token)
        with pytest.raises(Forbidden):
            gateway.require(basic, Action.create_tool)
        with pytest.raises(NotAuthenticated):
            gateway.require(None, Action.create_tool)

    def test_dashboard_payload(self, gateway: AuthGateway) -> None:
        principal = gateway.authenticate(bearer=gateway.login("pm@example.com", "password", ClientKind.api).token)
        payload = gateway.dashboard(principal)
        assert payload["greeting"] == "Welcome, Project Manager! Your role: Project Manager."
        assert "project management" in payload["role_access"]


class TestOutage:
    def test_store_outage_is_unavailable_not_invalid_credentials(
        self, gateway: AuthGateway, user_store: UserStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def _down(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(user_store.engine, "connect", _down)
        with pytest.raises(Unavailable):
            gateway.login("test@example.com", "password", ClientKind.api)
        assert not user_store.ping()
