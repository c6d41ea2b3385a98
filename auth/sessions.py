"""
auth/sessions.py -- Server-side browser sessions.

The browser holds an opaque random session id in an httpOnly cookie; the
store keeps only HMAC-SHA256(SECRET_KEY, session_id) plus the bound user id
and a per-session CSRF token.

State machine:
  Anonymous --start()--> Authenticated --invalidate()--> Anonymous

  start() always mints a NEW session id and destroys the one the connection
  presented, so an id planted before login never becomes authenticated
  (session fixation). invalidate() destroys the session and hands back a
  fresh anonymous session with a new CSRF token.

  resolve() treats an unknown id (rotated or invalidated) and an idle-expired
  session the same way: None, i.e. Anonymous. Identity is never carried over
  from a session that is no longer live.

Layer rule: no imports from api/, web/ or catalog/.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from auth.errors import NotAuthenticated
from auth.models import Session, User
from auth.tokens import hash_secret
from core.config import get_settings

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("aitools.auth.sessions")


def _new_session_id() -> str:
    return secrets.token_urlsafe(32)


def _new_csrf_token() -> str:
    return secrets.token_urlsafe(30)


class SessionManager:
    """Creates, resolves, regenerates and destroys browser sessions."""

    def __init__(
        self,
        store: UserStore,
        lifetime_seconds: int | None = None,
        secret_key: str | None = None,
    ) -> None:
        settings = get_settings()
        self.store = store
        self.lifetime = timedelta(seconds=lifetime_seconds or settings.session_lifetime_seconds)
        self._secret_key = secret_key or settings.secret_key

    def _hash(self, session_id: str) -> str:
        return hash_secret(session_id, self._secret_key)

    def _create(self, user_id: int | None) -> Session:
        session_id = _new_session_id()
        session = self.store.create_session(
            Session(key_hash=self._hash(session_id), csrf_token=_new_csrf_token(), user_id=user_id)
        )
        session.session_id = session_id
        return session

    def _is_expired(self, session: Session) -> bool:
        try:
            last = datetime.fromisoformat(session.last_activity or "")
        except ValueError:
            return True
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) - last > self.lifetime

    def resolve(self, session_id: str | None) -> Session | None:
        """Return the live session for a cookie value, or None (Anonymous).

        Expired sessions are deleted on access. Live sessions have their
        last_activity refreshed.
        """
        if not session_id:
            return None
        key_hash = self._hash(session_id)
        session = self.store.get_session(key_hash)
        if session is None:
            return None
        if self._is_expired(session):
            self.store.delete_session(key_hash)
            logger.info("Expired session for user id=%s", session.user_id)
            return None
        self.store.touch_session(key_hash)
        session.session_id = session_id
        return session

    def ensure(self, session_id: str | None) -> Session:
        """Return the live session, or start a new anonymous one."""
        return self.resolve(session_id) or self._create(user_id=None)

    def start(self, user: User, previous_session_id: str | None = None) -> Session:
        """Bind a brand-new session id to user, destroying the previous id.

        Never upgrades the presented session in place (fixation resistance).
        """
        if previous_session_id:
            self.store.delete_session(self._hash(previous_session_id))
        session = self._create(user_id=user.id)
        logger.info("Started session for user id=%s", user.id)
        return session

    def invalidate(self, session_id: str) -> Session:
        """Destroy a session and return a fresh anonymous one with a new CSRF token.

        Raises NotAuthenticated if the session no longer exists, so a second
        logout with the same id fails cleanly instead of minting sessions.
        """
        if not self.store.delete_session(self._hash(session_id)):
            raise NotAuthenticated()
        return self._create(user_id=None)

    @staticmethod
    def verify_csrf(session: Session | None, token: str | None) -> bool:
        """Constant-time check of a submitted CSRF token against the session's."""
        if session is None or not token:
            return False
        return hmac.compare_digest(session.csrf_token, token)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, session: Session) -> None:
    """Write the session id as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation alongside
        the per-session CSRF token.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the idle lifetime enforced by SessionManager.resolve().
    """
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        value=session.session_id,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_lifetime_seconds,
    )
