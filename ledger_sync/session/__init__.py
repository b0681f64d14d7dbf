"""Session gating package."""

from ledger_sync.session.gate import NotAuthenticatedError, SessionGate, SessionState

__all__ = ["NotAuthenticatedError", "SessionGate", "SessionState"]
