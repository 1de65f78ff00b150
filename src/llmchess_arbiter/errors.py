"""Exception hierarchy surfaced by the orchestrator and the HTTP layer."""
from __future__ import annotations


class ArbiterError(Exception):
    """Base class; `code` is the stable identifier sent back to callers."""

    code: str = "arbiter-error"


class InvalidPositionError(ArbiterError, ValueError):
    code = "invalid-position"


class InvalidMoveError(ArbiterError):
    """The engine produced a move the rules oracle rejected."""

    code = "invalid-move"

    def __init__(self, message: str, move: str | None = None):
        super().__init__(message)
        self.move = move


class EngineUnavailableError(ArbiterError):
    code = "engine-unavailable"


class EngineTimeoutError(ArbiterError):
    code = "engine-timeout"


class ProviderError(ArbiterError):
    """The completion provider failed outright (network, auth, rate limit)."""

    code = "provider-error"


class NoLegalMovesError(ArbiterError):
    code = "no-legal-moves"
