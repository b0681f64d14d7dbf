"""
In-process auth provider.

Accounts live in memory with bcrypt password hashes. Good enough for a
single-device ledger and for tests; a hosted provider implements the
same interface.
"""

import secrets
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import bcrypt
import structlog

from ledger_sync.services.auth.interface import (
    AuthEvent,
    AuthEventType,
    AuthListener,
    AuthProviderInterface,
    AuthResult,
    Session,
)


logger = structlog.get_logger(__name__)

BCRYPT_ROUNDS = 12
# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> bytes:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))


def verify_password(password: str, password_hash: bytes) -> bool:
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(password.encode("utf-8"), password_hash)


@dataclass
class _UserRecord:
    user_id: str
    email: str
    password_hash: bytes
    confirmed: bool = True


class LocalAuthProvider(AuthProviderInterface):
    """
    Email/password accounts held in process memory.

    Args:
        require_confirmation: When True, sign-up returns no session until
            `confirm_email` is called for the address.
        rounds: bcrypt cost factor; lowered in tests.
    """

    def __init__(self, require_confirmation: bool = False, rounds: int = BCRYPT_ROUNDS):
        self._require_confirmation = require_confirmation
        self._rounds = rounds
        self._users: dict[str, _UserRecord] = {}
        self._session: Optional[Session] = None
        self._listeners: list[AuthListener] = []

    @staticmethod
    def _key(email: str) -> str:
        return email.strip().lower()

    def _new_session(self, user: _UserRecord) -> Session:
        return Session(
            user_id=user.user_id,
            email=user.email,
            access_token=secrets.token_urlsafe(32),
        )

    def _emit(self, event_type: AuthEventType) -> None:
        event = AuthEvent(type=event_type, session=self._session)
        for listener in list(self._listeners):
            listener(event)

    async def get_session(self) -> Optional[Session]:
        return self._session

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        user = self._users.get(self._key(email))
        if user is None or not verify_password(password, user.password_hash):
            return AuthResult(success=False, error="Invalid email or password")
        if not user.confirmed:
            return AuthResult(success=False, error="Email address not confirmed yet")

        self._session = self._new_session(user)
        logger.info("local_auth_signed_in", user_id=user.user_id)
        self._emit(AuthEventType.SIGNED_IN)
        return AuthResult(success=True, session=self._session)

    async def sign_up(self, email: str, password: str) -> AuthResult:
        key = self._key(email)
        if key in self._users:
            return AuthResult(success=False, error="An account with this email already exists")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            return AuthResult(success=False, error="Password is too long")

        user = _UserRecord(
            user_id=str(uuid.uuid4()),
            email=email.strip(),
            password_hash=hash_password(password, self._rounds),
            confirmed=not self._require_confirmation,
        )
        self._users[key] = user
        logger.info("local_auth_signed_up", user_id=user.user_id)

        if not user.confirmed:
            return AuthResult(
                success=True,
                message="Check your inbox to confirm the address, then sign in",
            )

        self._session = self._new_session(user)
        self._emit(AuthEventType.SIGNED_IN)
        return AuthResult(success=True, session=self._session)

    async def sign_out(self) -> AuthResult:
        if self._session is None:
            return AuthResult(success=True)
        self._session = None
        self._emit(AuthEventType.SIGNED_OUT)
        return AuthResult(success=True)

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]:
        self._listeners.append(callback)
        callback(AuthEvent(type=AuthEventType.INITIAL, session=self._session))

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def confirm_email(self, email: str) -> bool:
        user = self._users.get(self._key(email))
        if user is None:
            return False
        user.confirmed = True
        return True

    def refresh_session(self) -> Optional[Session]:
        """Rotate the access token of the current session."""
        if self._session is None:
            return None
        self._session = self._session.model_copy(
            update={"access_token": secrets.token_urlsafe(32)}
        )
        self._emit(AuthEventType.TOKEN_REFRESHED)
        return self._session

    def expire_session(self) -> None:
        """Drop the session as if it expired server-side."""
        if self._session is not None:
            self._session = None
            self._emit(AuthEventType.SIGNED_OUT)
