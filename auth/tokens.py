"""
auth/tokens.py -- Password hashing and the opaque bearer Token Issuer.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). Bcrypt is the right choice
       for low-entropy secrets because its cost factor makes brute force
       expensive. The _DUMMY_HASH constant enables timing equalization in
       verify_credentials() so response time does not reveal whether an email
       exists [C1].

  Tokens: opaque, "<id>|<secret>" where secret is 40 characters drawn from
       secrets.choice over [A-Za-z0-9] (~238 bits). Only
       HMAC-SHA256(SECRET_KEY, secret) is stored. The id prefix gives an O(1)
       primary-key lookup; the stored hash is then compared with
       hmac.compare_digest so comparison time does not leak how much of a
       forged secret matched. Values without an id prefix are looked up by
       hash directly.

  Revocation is monotonic: resolve() rejects any token whose revoked_at is
       set, and the store never clears it.

Layer rule: no imports from api/, web/ or catalog/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import string
from typing import TYPE_CHECKING

import bcrypt

from auth.errors import InvalidToken
from auth.models import AccessToken, NewAccessToken, User
from core.config import get_settings

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("aitools.auth.tokens")

_SECRET_LENGTH = 40
_ALPHABET = string.ascii_letters + string.digits

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password length at 255 characters, and we truncate explicitly so bcrypt
    4.x does not reject long input.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("aitools_timing_dummy")


def verify_credentials(user: User | None, password: str) -> bool:
    """Check a password for a possibly-missing user in constant work [C1].

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as a real check)
    - Wrong password: bcrypt runs against the real hash
    Inactive users fail after the hash check, never before it.
    """
    if user is None or not user.hashed_password:
        verify_password(password, _DUMMY_HASH)
        return False
    if not verify_password(password, user.hashed_password):
        return False
    return user.is_active


# ---------------------------------------------------------------------------
# Token hashing
# ---------------------------------------------------------------------------


def hash_secret(raw: str, secret_key: str | None = None) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw) as a hex string.

    Used for both token secrets and session ids. Keying with SECRET_KEY means
    a copy of the database alone cannot be used to forge or replay either.
    """
    key = secret_key or get_settings().secret_key
    return hmac.new(key.encode(), raw.encode(), hashlib.sha256).hexdigest()


def generate_secret(length: int = _SECRET_LENGTH) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


# ---------------------------------------------------------------------------
# Token Issuer
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Mints, resolves and revokes opaque bearer tokens.

    Usage:
        issuer = TokenIssuer(store)
        new = issuer.issue(user)          # new.plain_text is shown once
        user, token = issuer.resolve(new.plain_text)
        issuer.revoke(new.plain_text)
    """

    def __init__(self, store: UserStore, secret_key: str | None = None) -> None:
        self.store = store
        self._secret_key = secret_key or get_settings().secret_key

    def _hash(self, raw: str) -> str:
        return hash_secret(raw, self._secret_key)

    def issue(self, user: User, name: str | None = None) -> NewAccessToken:
        """Create a token for user and return the plaintext exactly once."""
        secret = generate_secret()
        token = self.store.create_token(
            user_id=user.id,
            name=name or get_settings().token_name,
            token_hash=self._hash(secret),
        )
        logger.info("Issued token id=%s for user id=%s", token.id, user.id)
        return NewAccessToken(token=token, plain_text=f"{token.id}|{secret}")

    def _find(self, token_value: str) -> AccessToken:
        """Locate the stored record for a presented value or raise InvalidToken."""
        if not token_value:
            raise InvalidToken()

        token_id, sep, secret = token_value.partition("|")
        if not sep:
            # Bare secret: look up by hash.
            token = self.store.get_token_by_hash(self._hash(token_value))
            if token is None:
                raise InvalidToken()
            return token

        if not token_id.isdigit() or not secret:
            raise InvalidToken()
        token = self.store.get_token(int(token_id))
        if token is None or not hmac.compare_digest(token.token_hash, self._hash(secret)):
            raise InvalidToken()
        return token

    def resolve(self, token_value: str) -> tuple[User, AccessToken]:
        """Return (user, token) for a live token.

        Raises InvalidToken for unknown, malformed or revoked tokens and for
        tokens owned by deactivated users. Stamps last_used_at on success.
        """
        token = self._find(token_value)
        if token.is_revoked:
            raise InvalidToken()
        user = self.store.get_by_id(token.user_id)
        if user is None or not user.is_active:
            raise InvalidToken()
        self.store.touch_token(token.id)
        return user, token

    def revoke(self, token_value: str) -> None:
        """Revoke exactly this token. Other tokens of the same user stay valid.

        Raises InvalidToken if the token is unknown or already revoked.
        """
        token = self._find(token_value)
        if not self.store.revoke_token(token.id):
            raise InvalidToken()
        logger.info("Revoked token id=%s for user id=%s", token.id, token.user_id)

    def revoke_all(self, user_id: int) -> int:
        """Revoke every live token for a user. Returns how many were revoked."""
        count = self.store.revoke_user_tokens(user_id)
        logger.info("Revoked %d token(s) for user id=%s", count, user_id)
        return count
