"""
Session Gate

Tracks who is signed in and locks every mutating operation until a
session exists and the user's document has been loaded.

STATES:
    ANONYMOUS -> AUTHENTICATING -> AUTHENTICATED
        ^              |                |
        +--------------+----------------+

Auth provider events are delivered over an asyncio.Queue. The gate
subscribes once at start-up; a single pump task reads the queue and looks
each (state, event) pair up in a transition table. Pairs missing from
the table are ignored.

Explicit sign-in/sign-up/sign-out calls drive the same transitions
directly, so the caller knows the outcome when the call returns. The
matching provider event then arrives in a state where it is a no-op.
Events are checked against the provider's current session before they
are applied; one queued before a later sign-in or sign-out is dropped.
"""

import asyncio
import re
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog

from ledger_sync.audit.logger import AuditLogger
from ledger_sync.notifications import Notifier
from ledger_sync.services.auth.interface import (
    AuthError,
    AuthEvent,
    AuthEventType,
    AuthProviderInterface,
    AuthResult,
    Session,
)


logger = structlog.get_logger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


class NotAuthenticatedError(Exception):
    """A mutating operation was attempted without a session."""

    def __init__(self, message: str = "Please sign in before making changes"):
        super().__init__(message)
        self.message = message


SessionLoader = Callable[[Session], Awaitable[None]]
SessionReset = Callable[[str], None]


# (state, event) -> handler method name
_TRANSITIONS: dict[tuple[SessionState, AuthEventType], str] = {
    (SessionState.ANONYMOUS, AuthEventType.INITIAL): "_on_session_found",
    (SessionState.ANONYMOUS, AuthEventType.SIGNED_IN): "_on_session_found",
    (SessionState.AUTHENTICATED, AuthEventType.SIGNED_IN): "_on_user_switched",
    (SessionState.AUTHENTICATED, AuthEventType.TOKEN_REFRESHED): "_on_token_refreshed",
    (SessionState.AUTHENTICATED, AuthEventType.SIGNED_OUT): "_on_session_ended",
}


class SessionGate:
    """
    Session state machine in front of the auth provider.

    Args:
        provider: Auth backend
        on_authenticated: Awaited with the new session before the gate
            unlocks; loads the user's document
        on_reset: Called with a reason whenever the gate falls back to
            ANONYMOUS; resets the in-memory document
        min_password_length: Checked locally before any provider call
    """

    def __init__(
        self,
        provider: AuthProviderInterface,
        on_authenticated: SessionLoader,
        on_reset: SessionReset,
        notifier: Optional[Notifier] = None,
        audit_logger: Optional[AuditLogger] = None,
        min_password_length: int = 6,
    ):
        self._provider = provider
        self._on_authenticated = on_authenticated
        self._on_reset = on_reset
        self._notifier = notifier or Notifier()
        self._audit = audit_logger or AuditLogger()
        self._min_password_length = min_password_length

        self._state = SessionState.ANONYMOUS
        self._session: Optional[Session] = None
        self._events: asyncio.Queue[AuthEvent] = asyncio.Queue()
        self._pump: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def user_id(self) -> Optional[str]:
        return self._session.user_id if self._session else None

    @property
    def email(self) -> Optional[str]:
        return self._session.email if self._session else None

    @property
    def is_unlocked(self) -> bool:
        return self._state == SessionState.AUTHENTICATED

    def require_authenticated(self) -> Session:
        """
        Raises:
            NotAuthenticatedError: unless a session is active and loaded
        """
        if self._state != SessionState.AUTHENTICATED or self._session is None:
            raise NotAuthenticatedError()
        return self._session

    def _set_state(self, new_state: SessionState, trigger: str) -> None:
        previous = self._state
        self._state = new_state
        if previous != new_state:
            logger.info(
                "session_state_changed",
                previous=previous.value,
                current=new_state.value,
                trigger=trigger,
            )
            self._audit.log_auth_state_changed(
                previous.value, new_state.value, trigger, self.user_id
            )

    # -------------------------------------------------------------------------
    # Event channel
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """
        Subscribe to the provider and process the INITIAL event.

        Returns once any restored session has been loaded.
        """
        if self._pump is not None:
            return
        self._pump = asyncio.create_task(self._run_pump())
        self._unsubscribe = self._provider.on_auth_state_change(self._events.put_nowait)
        await self.drain()

    async def drain(self) -> None:
        """Wait until every queued auth event has been handled."""
        await self._events.join()

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._pump is not None:
            self._pump.cancel()
            try:
                await self._pump
            except asyncio.CancelledError:
                pass
            self._pump = None

    async def _run_pump(self) -> None:
        while True:
            event = await self._events.get()
            try:
                await self._dispatch(event)
            except Exception:
                logger.exception("auth_event_failed", event_type=event.type.value)
            finally:
                self._events.task_done()

    async def _dispatch(self, event: AuthEvent) -> None:
        handler_name = _TRANSITIONS.get((self._state, event.type))
        if handler_name is None:
            logger.debug(
                "auth_event_ignored",
                state=self._state.value,
                event_type=event.type.value,
            )
            return
        if await self._is_stale(event):
            logger.debug(
                "auth_event_stale",
                state=self._state.value,
                event_type=event.type.value,
            )
            return
        await getattr(self, handler_name)(event)

    async def _is_stale(self, event: AuthEvent) -> bool:
        """
        True when the provider has moved on since the event was queued.

        A SIGNED_OUT is stale once a new session exists; a session-carrying
        event is stale once the provider holds a different token.
        """
        current = await self._provider.get_session()
        if event.type == AuthEventType.SIGNED_OUT:
            return current is not None
        if event.session is None:
            return False
        return current is None or current.access_token != event.session.access_token

    async def _on_session_found(self, event: AuthEvent) -> None:
        if event.session is not None:
            await self._authenticate(event.session, trigger=event.type.value)

    async def _on_user_switched(self, event: AuthEvent) -> None:
        if event.session is None:
            return
        if event.session.user_id == self.user_id:
            self._session = event.session
            return
        self._end_session(trigger=event.type.value)
        await self._authenticate(event.session, trigger=event.type.value)

    async def _on_token_refreshed(self, event: AuthEvent) -> None:
        if event.session is not None and event.session.user_id == self.user_id:
            self._session = event.session

    async def _on_session_ended(self, event: AuthEvent) -> None:
        self._end_session(trigger=event.type.value)
        self._notifier.info("Your session has ended, please sign in again")

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _authenticate(self, session: Session, trigger: str) -> None:
        self._session = session
        self._set_state(SessionState.AUTHENTICATING, trigger)
        try:
            await self._on_authenticated(session)
        except Exception as e:
            logger.exception("session_load_failed", user_id=session.user_id)
            self._fail(trigger, f"Could not load your data: {e}")
            return
        self._set_state(SessionState.AUTHENTICATED, trigger)

    def _fail(self, trigger: str, message: str, email: str = "") -> None:
        self._audit.log_auth_rejected(email or (self.email or ""), message)
        self._notifier.error(message)
        self._session = None
        self._on_reset("auth_failed")
        self._set_state(SessionState.ANONYMOUS, trigger)

    def _end_session(self, trigger: str) -> None:
        self._on_reset(trigger)
        self._set_state(SessionState.ANONYMOUS, trigger)
        self._session = None

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def check_credentials(self, email: str, password: str) -> Optional[str]:
        """Return a user-facing error, or None when the input is acceptable."""
        if not isinstance(email, str) or not EMAIL_RE.match(email.strip()):
            return "Please enter a valid email address"
        if not isinstance(password, str) or len(password) < self._min_password_length:
            return f"Password must be at least {self._min_password_length} characters"
        return None

    def _reject_locally(self, email: str, reason: str) -> AuthResult:
        self._audit.log_auth_rejected(email if isinstance(email, str) else "", reason)
        self._notifier.error(reason)
        return AuthResult(success=False, error=reason)

    async def sign_in(self, email: str, password: str) -> AuthResult:
        if self._state != SessionState.ANONYMOUS:
            return AuthResult(success=False, error="Already signed in")
        error = self.check_credentials(email, password)
        if error:
            return self._reject_locally(email, error)

        email = email.strip()
        self._set_state(SessionState.AUTHENTICATING, "sign_in")
        try:
            result = await self._provider.sign_in_with_password(email, password)
        except AuthError as e:
            result = AuthResult(success=False, error=str(e) or "Sign-in failed")

        if not result.success or result.session is None:
            self._fail("sign_in", result.error or "Sign-in failed", email)
            return result

        await self._authenticate(result.session, trigger="sign_in")
        if self.is_unlocked:
            self._notifier.success("Signed in")
        return result

    async def sign_up(self, email: str, password: str) -> AuthResult:
        if self._state != SessionState.ANONYMOUS:
            return AuthResult(success=False, error="Already signed in")
        error = self.check_credentials(email, password)
        if error:
            return self._reject_locally(email, error)

        email = email.strip()
        self._set_state(SessionState.AUTHENTICATING, "sign_up")
        try:
            result = await self._provider.sign_up(email, password)
        except AuthError as e:
            result = AuthResult(success=False, error=str(e) or "Sign-up failed")

        if not result.success:
            self._fail("sign_up", result.error or "Sign-up failed", email)
            return result

        if result.session is None:
            # Email confirmation pending
            self._set_state(SessionState.ANONYMOUS, "sign_up")
            self._notifier.info(result.message or "Account created, confirm your email then sign in")
            return result

        await self._authenticate(result.session, trigger="sign_up")
        if self.is_unlocked:
            self._notifier.success("Account created")
        return result

    async def sign_out(self) -> AuthResult:
        if self._state == SessionState.ANONYMOUS:
            return AuthResult(success=True)
        try:
            result = await self._provider.sign_out()
        except AuthError as e:
            logger.warning("provider_sign_out_failed", error=str(e))
            result = AuthResult(success=False, error=str(e))
        # The local session ends regardless of what the provider said
        self._end_session(trigger="sign_out")
        self._notifier.info("Signed out")
        return result
