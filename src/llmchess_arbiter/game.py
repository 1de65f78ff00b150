"""
Turn orchestration between the two move sources.

- TurnOrchestrator: one call = one turn for one game; state comes in and goes out by value (FEN).
  - request_llm_move(): prompt the language model, parse its reply, apply it, fall back to a
    random legal move when the reply is unusable or illegal (verified=False).
  - request_engine_move(): run a bounded UCI search and apply its best move, falling back the
    same way when the best move is missing or illegal; process failures surface as
    EngineUnavailableError / EngineTimeoutError.
  - play_turn(): picks the source from the side to move.
- Terminal positions short-circuit before any source is asked for a move.
"""
from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from .engine_source import EngineOutcome, UCIEngineSource
from .errors import EngineTimeoutError, EngineUnavailableError, InvalidMoveError
from .fallback import FallbackSelector
from .llm_source import LLMMoveSource, LLMProposal
from .models import AppliedMove, GameStatus, MoveCandidate
from .move_parser import looks_like_coordinate, parse_candidate
from .referee import Referee

NO_MOVE = "none"


class TurnState(str, Enum):
    SELECTING_SOURCE = "selecting-source"
    AWAITING_ENGINE = "awaiting-engine"
    PARSING = "parsing"
    APPLYING = "applying"
    FALLING_BACK = "falling-back"
    DONE = "done"


@dataclass
class TurnResult:
    move: str
    fen: str
    status: GameStatus
    winner: Optional[str] = None
    source: str = ""
    applied: Optional[AppliedMove] = None
    trace: list[str] = field(default_factory=list)

    @property
    def moved(self) -> bool:
        return self.applied is not None


@dataclass
class LLMTurnResult(TurnResult):
    verified: bool = False
    raw: str = ""
    reason: Optional[str] = None

    def to_payload(self) -> dict:
        return {
            "move": self.move,
            "fen": self.fen,
            "verified": self.verified,
            "status": self.status.wire(),
            "winner": self.winner,
        }


@dataclass
class EngineTurnResult(TurnResult):
    verified: bool = False
    reason: Optional[str] = None

    def to_payload(self) -> dict:
        return {
            "move": self.move,
            "fen": self.fen,
            "status": self.status.wire(),
            "winner": self.winner,
        }


class _Turn:
    """Per-call state-machine bookkeeping (trace + debug log of transitions)."""

    def __init__(self, log: logging.Logger, source: str):
        self.log = log
        self.source = source
        self.state = TurnState.SELECTING_SOURCE
        self.trace = [self.state.value]

    def to(self, state: TurnState) -> None:
        self.log.debug("[%s] %s -> %s", self.source, self.state.value, state.value)
        self.state = state
        self.trace.append(state.value)


class TurnOrchestrator:
    def __init__(
        self,
        llm_source: Optional[LLMMoveSource],
        engine_source: Optional[UCIEngineSource],
        referee: Optional[Referee] = None,
        fallback: Optional[FallbackSelector] = None,
        llm_side: str = "white",
        llm_timeout_s: Optional[float] = None,
        default_depth: int = 12,
    ):
        self.log = logging.getLogger("TurnOrchestrator")
        self.llm_source = llm_source
        self.engine_source = engine_source
        self.referee = referee or Referee()
        self.fallback = fallback or FallbackSelector(referee=self.referee)
        if llm_side not in ("white", "black"):
            raise ValueError(f"llm_side must be 'white' or 'black', got {llm_side!r}")
        self.llm_side = llm_side
        self.llm_timeout_s = llm_timeout_s
        self.default_depth = default_depth
        self._llm_pool = concurrent.futures.ThreadPoolExecutor(max_workers=4, thread_name_prefix="llm-turn") if llm_timeout_s else None

    def close(self) -> None:
        if self._llm_pool:
            self._llm_pool.shutdown(wait=False, cancel_futures=True)

    # ---------------- Dispatch -----------------
    def llm_to_move(self, fen: str) -> bool:
        return self.referee.side_to_move(fen) == self.llm_side

    def play_turn(self, fen: str, history: Sequence[str] = (), depth: Optional[int] = None) -> TurnResult:
        """Play whichever source owns the side to move."""
        fen = self.referee.validate_fen(fen)
        if self.llm_to_move(fen):
            return self.request_llm_move(fen, history)
        return self.request_engine_move(fen, depth if depth is not None else self.default_depth)

    # ---------------- LLM Turn -----------------
    def request_llm_move(self, fen: str, history: Sequence[str] = ()) -> LLMTurnResult:
        fen = self.referee.validate_fen(fen)
        history = self._clean_history(history)
        turn = _Turn(self.log, "llm")
        status = self.referee.status(fen)
        if status.terminal:
            turn.to(TurnState.DONE)
            self.log.info("Game already over (%s); no LLM move requested", status.value)
            return LLMTurnResult(move=NO_MOVE, fen=fen, status=status, winner=self.referee.winner(fen),
                                 source="llm", trace=turn.trace, verified=False, reason="game_over")
        if self.llm_source is None:
            raise RuntimeError("No language-model source configured")

        turn.to(TurnState.AWAITING_ENGINE)
        proposal = self._propose_llm(fen, history)

        turn.to(TurnState.PARSING)
        candidate = parse_candidate(proposal.raw, fen) if proposal.usable else None
        reason = proposal.error

        turn.to(TurnState.APPLYING)
        applied = self.referee.apply(fen, candidate) if candidate else None
        if candidate is None and reason is None:
            reason = "unparsable_reply"
        elif candidate is not None and applied is None:
            reason = "illegal_move"

        if applied is None:
            turn.to(TurnState.FALLING_BACK)
            self.log.warning("Unusable LLM move (%s, parsed=%s); picking random legal move", reason, candidate)
            applied = self._apply_fallback(fen)

        turn.to(TurnState.DONE)
        status = self.referee.status(applied.fen_after)
        result = LLMTurnResult(
            move=applied.uci,
            fen=applied.fen_after,
            status=status,
            winner=self.referee.winner(applied.fen_after),
            source="llm",
            applied=applied,
            trace=turn.trace,
            verified=applied.verified,
            raw=proposal.raw,
            reason=None if applied.verified else reason,
        )
        self.log.info("LLM move %s (%s) verified=%s status=%s", result.move, applied.san, result.verified, status.value)
        return result

    def _propose_llm(self, fen: str, history: list[str]) -> LLMProposal:
        if not self._llm_pool:
            return self.llm_source.propose(fen, history)
        future = self._llm_pool.submit(self.llm_source.propose, fen, history)
        try:
            return future.result(timeout=self.llm_timeout_s)
        except concurrent.futures.TimeoutError:
            future.cancel()
            self.log.warning("LLM turn exceeded %.1fs; treating as no reply", self.llm_timeout_s)
            return LLMProposal(raw="", error="provider_timeout")

    def _apply_fallback(self, fen: str) -> AppliedMove:
        candidate = self.fallback.select(fen)
        applied = self.referee.apply(fen, candidate, verified=False)
        if applied is None:
            # legal_moves() and apply() share the same oracle; this means the two disagree
            raise InvalidMoveError(f"fallback move {candidate} rejected in {fen}", move=candidate.uci())
        return applied

    def _clean_history(self, history: Sequence[str] | None) -> list[str]:
        """Coordinate moves only; anything else is dropped before it reaches the prompt."""
        if history is None:
            return []
        if isinstance(history, str):
            history = history.replace(",", " ").split()
        cleaned = [str(h).strip().lower() for h in history if str(h).strip()]
        dropped = [h for h in cleaned if not looks_like_coordinate(h)]
        if dropped:
            self.log.warning("Ignoring non-coordinate history entries: %s", dropped)
        return [h for h in cleaned if looks_like_coordinate(h)]

    # ---------------- Engine Turn -----------------
    def request_engine_move(self, fen: str, depth: Optional[int] = None) -> EngineTurnResult:
        fen = self.referee.validate_fen(fen)
        depth = self.default_depth if depth is None else depth
        if not isinstance(depth, int) or isinstance(depth, bool) or depth < 1:
            raise ValueError(f"depth must be a positive integer, got {depth!r}")
        turn = _Turn(self.log, "engine")
        status = self.referee.status(fen)
        if status.terminal:
            turn.to(TurnState.DONE)
            self.log.info("Game already over (%s); engine not started", status.value)
            return EngineTurnResult(move=NO_MOVE, fen=fen, status=status, winner=self.referee.winner(fen),
                                    source="engine", trace=turn.trace)
        if self.engine_source is None:
            raise RuntimeError("No engine source configured")

        turn.to(TurnState.AWAITING_ENGINE)
        reply = self.engine_source.propose(fen, depth)
        if reply.outcome is EngineOutcome.UNAVAILABLE:
            raise EngineUnavailableError(reply.detail or "engine failed to start")
        if reply.outcome is EngineOutcome.TIMEOUT:
            raise EngineTimeoutError(reply.detail or "engine timed out")

        turn.to(TurnState.PARSING)
        candidate = None
        if reply.move and looks_like_coordinate(reply.move):
            candidate = MoveCandidate.from_uci(reply.move)

        turn.to(TurnState.APPLYING)
        applied = self.referee.apply(fen, candidate) if candidate else None
        reason = None
        if applied is None:
            reason = "illegal_move" if candidate is not None else "no_best_move"
            turn.to(TurnState.FALLING_BACK)
            self.log.warning("Unusable engine move %r (%s); picking random legal move", reply.move, reason)
            applied = self._apply_fallback(fen)

        turn.to(TurnState.DONE)
        status = self.referee.status(applied.fen_after)
        result = EngineTurnResult(
            move=applied.uci,
            fen=applied.fen_after,
            status=status,
            winner=self.referee.winner(applied.fen_after),
            source="engine",
            applied=applied,
            trace=turn.trace,
            verified=applied.verified,
            reason=reason,
        )
        self.log.info("Engine move %s (%s) verified=%s status=%s", result.move, applied.san, result.verified, status.value)
        return result


__all__ = [
    "EngineTurnResult",
    "LLMTurnResult",
    "NO_MOVE",
    "TurnOrchestrator",
    "TurnResult",
    "TurnState",
]
