"""Auth provider package."""

from ledger_sync.services.auth.interface import (
    AuthError,
    AuthEvent,
    AuthEventType,
    AuthProviderInterface,
    AuthResult,
    Session,
)
from ledger_sync.services.auth.local import LocalAuthProvider

__all__ = [
    "AuthError",
    "AuthEvent",
    "AuthEventType",
    "AuthProviderInterface",
    "AuthResult",
    "LocalAuthProvider",
    "Session",
]
