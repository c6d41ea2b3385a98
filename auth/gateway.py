"""
auth/gateway.py -- Auth Gateway: the single entry point for login, logout,
current-user resolution and role-based authorization.

One AuthGateway is constructed per process (in the api/main.py lifespan) and
handed to request handlers through app.state -- there is no module-level
auth singleton.

Credential selection:
  API clients authenticate with a bearer token (Token Issuer); browser clients
  with a session cookie (Session Manager). authenticate() enforces that
  exactly one of them backs a request: when a bearer header is present the
  session cookie is never consulted, even if the token turns out invalid.

Failure semantics:
  InvalidCredentials  -- wrong email or password, always the same message.
  NotAuthenticated    -- missing, malformed, revoked or expired credential.
  Forbidden           -- authenticated but the role lacks the action.
  Unavailable         -- raised by the store on outages; passes through
                         untouched so it is never reported as bad credentials.

Layer rule: no imports from api/, web/ or catalog/. FastAPI specifics live in
auth/dependencies.py.
"""

from __future__ import annotations

import logging

from auth import roles
from auth.errors import Forbidden, InvalidCredentials, InvalidToken, NotAuthenticated
from auth.models import AuthResult, ClientKind, Principal, Session, UserView
from auth.roles import Action
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.tokens import TokenIssuer, verify_credentials

logger = logging.getLogger("aitools.auth.gateway")


class AuthGateway:
    """Coordinates the Credential Store, Token Issuer and Session Manager.

    Usage:
        gateway = AuthGateway(store)
        result = gateway.login("test@example.com", "password", ClientKind.api)
        principal = gateway.authenticate(bearer=result.token)
        gateway.current_user(principal)
        gateway.logout(principal)
    """

    def __init__(
        self,
        store: UserStore,
        issuer: TokenIssuer | None = None,
        sessions: SessionManager | None = None,
    ) -> None:
        self.store = store
        self.issuer = issuer or TokenIssuer(store)
        self.sessions = sessions or SessionManager(store)

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(
        self,
        identifier: str,
        secret: str,
        client_kind: ClientKind,
        session_id: str | None = None,
    ) -> AuthResult:
        """Verify credentials and create exactly one new credential.

        API clients receive a freshly issued token (plaintext, shown once).
        Browser clients get a regenerated session; session_id is the id the
        connection presented before login, which is destroyed.

        Nothing is written when verification fails.
        """
        user = self.store.get_by_email(identifier)
        if not verify_credentials(user, secret):
            logger.warning("Failed login attempt (%s client)", client_kind.value)
            raise InvalidCredentials()

        view = UserView.from_user(user)
        if client_kind is ClientKind.api:
            issued = self.issuer.issue(user)
            logger.info("User id=%s logged in via token", user.id)
            return AuthResult(user=view, token=issued.plain_text)

        session = self.sessions.start(user, previous_session_id=session_id)
        logger.info("User id=%s logged in via session", user.id)
        return AuthResult(user=view, session=session)

    def logout(self, principal: Principal | None) -> Session | None:
        """End exactly the credential behind principal.

        Token principals: that single token is revoked; the user's other tokens
        stay valid. Session principals: the session is destroyed and the fresh
        anonymous session (new CSRF token) is returned so the caller can set
        its cookie.

        Raises NotAuthenticated if the credential is already gone.
        """
        if principal is None:
            raise NotAuthenticated()
        if principal.kind is ClientKind.api:
            try:
                self.issuer.revoke(principal.credential)
            except InvalidToken as exc:
                raise NotAuthenticated() from exc
            logger.info("User id=%s logged out (token)", principal.user.id)
            return None

        anonymous = self.sessions.invalidate(principal.credential)
        logger.info("User id=%s logged out (session)", principal.user.id)
        return anonymous

    # ------------------------------------------------------------------
    # Principal resolution
    # ------------------------------------------------------------------

    def authenticate(self, bearer: str | None = None, session_id: str | None = None) -> Principal:
        """Resolve the request credential into a Principal.

        bearer is the Authorization header's token (an empty string when the
        header is present but malformed). If it is not None, only the token
        path is tried.
        """
        if bearer is not None:
            try:
                user, token = self.issuer.resolve(bearer)
            except InvalidToken as exc:
                raise NotAuthenticated() from exc
            return Principal(user=user, kind=ClientKind.api, credential=bearer, token=token)

        session = self.sessions.resolve(session_id)
        if session is None or not session.is_authenticated:
            raise NotAuthenticated()
        user = self.store.get_by_id(session.user_id)
        if user is None or not user.is_active:
            raise NotAuthenticated()
        return Principal(user=user, kind=ClientKind.browser, credential=session_id, session=session)

    def try_authenticate(self, bearer: str | None = None, session_id: str | None = None) -> Principal | None:
        """Soft variant of authenticate(): None instead of NotAuthenticated."""
        try:
            return self.authenticate(bearer=bearer, session_id=session_id)
        except NotAuthenticated:
            return None

    def current_user(self, principal: Principal | None) -> UserView:
        """Public projection of the authenticated user.

        Re-reads the user and the presented credential, so anything revoked
        or logged out after authenticate() fails.
        """
        if principal is None:
            raise NotAuthenticated()
        if principal.token is not None:
            current = self.store.get_token(principal.token.id)
            if current is None or current.is_revoked:
                raise NotAuthenticated()
        if principal.session is not None:
            current_session = self.store.get_session(principal.session.key_hash)
            if current_session is None or current_session.user_id != principal.user.id:
                raise NotAuthenticated()
        user = self.store.get_by_id(principal.user.id)
        if user is None or not user.is_active:
            raise NotAuthenticated()
        return UserView.from_user(user)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def authorize(self, principal: Principal | None, action: Action) -> bool:
        """Return True if the principal's role permits action. Fail-closed."""
        if principal is None:
            return False
        return roles.is_permitted(principal.user.role, action)

    def require(self, principal: Principal | None, action: Action) -> None:
        """Raise NotAuthenticated / Forbidden unless action is permitted."""
        if principal is None:
            raise NotAuthenticated()
        if not self.authorize(principal, action):
            logger.warning(
                "Forbidden: user id=%s role=%r attempted %s", principal.user.id, principal.user.role, action.value
            )
            raise Forbidden()

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def dashboard(self, principal: Principal | None) -> dict:
        """Role-aware dashboard payload: user, greeting and role access message."""
        view = self.current_user(principal)
        return {
            "user": view,
            "greeting": f"Welcome, {view.name}! Your role: {view.role_display}.",
            "role_access": roles.access_message(view.role),
        }
