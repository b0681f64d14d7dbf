"""
Abstract Auth Provider Interface

The auth provider is an external collaborator: it checks credentials,
owns the session and pushes state-change events. The session gate only
sees this interface, so a hosted auth service can replace the local
provider without touching the gate.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, Field


class AuthEventType(str, Enum):
    INITIAL = "initial"
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    TOKEN_REFRESHED = "token_refreshed"


class Session(BaseModel):
    """An authenticated session."""

    user_id: str = Field(..., min_length=1)
    email: str
    access_token: str
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class AuthResult(BaseModel):
    """
    Outcome of a sign-in, sign-up or sign-out call.

    A successful sign-up may carry no session when the provider requires
    email confirmation first.
    """

    success: bool
    session: Optional[Session] = None
    error: Optional[str] = None
    message: str = ""


class AuthEvent(BaseModel):
    type: AuthEventType
    session: Optional[Session] = None


AuthListener = Callable[[AuthEvent], None]


class AuthProviderInterface(ABC):
    """Contract every auth backend implements."""

    @abstractmethod
    async def get_session(self) -> Optional[Session]:
        """Return the current session, if any."""
        pass

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        """
        Authenticate with email and password.

        Returns:
            AuthResult with a session on success, an error otherwise

        Raises:
            AuthError: If the provider cannot be reached
        """
        pass

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> AuthResult:
        """
        Register a new account.

        Returns:
            AuthResult; `session` is None while email confirmation is pending

        Raises:
            AuthError: If the provider cannot be reached
        """
        pass

    @abstractmethod
    async def sign_out(self) -> AuthResult:
        """End the current session."""
        pass

    @abstractmethod
    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]:
        """
        Subscribe to auth events.

        The callback receives an INITIAL event with the current session
        right away, then every later change.

        Returns:
            A function that unsubscribes the callback
        """
        pass


class AuthError(Exception):
    """The auth provider failed to process a request."""
    pass
