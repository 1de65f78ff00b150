"""
Referee: the only component that turns a candidate into a new position.

- Wraps python-chess; every call builds a fresh Board from the FEN, so nothing shared is mutated.
- apply() returns an AppliedMove or None (rejected); oracle-level failures never escape.
- status()/winner()/termination_reason() are derived from the FEN alone.
- legal_moves() feeds the fallback selector.
"""
from __future__ import annotations

import logging
from typing import Optional

import chess

from .errors import InvalidPositionError
from .models import AppliedMove, GameStatus, MoveCandidate

log = logging.getLogger("referee")


def _board(fen: str) -> chess.Board:
    try:
        return chess.Board(fen=fen)
    except (ValueError, TypeError) as e:
        raise InvalidPositionError(f"invalid FEN {fen!r}: {e}") from e


def board_outcome(board: chess.Board) -> Optional[chess.Outcome]:
    # fifty-move draw only from halfmove clock 100; outcome(claim_draw=True) fires at 99
    outcome = board.outcome()
    if outcome is None and board.is_fifty_moves():
        outcome = chess.Outcome(chess.Termination.FIFTY_MOVES, None)
    return outcome


def _color_name(color: chess.Color) -> str:
    return "white" if color == chess.WHITE else "black"


class Referee:
    """Plain chess referee around python-chess, keyed by FEN."""

    def validate_fen(self, fen: str) -> str:
        board = _board(fen)
        if not board.is_valid():
            raise InvalidPositionError(f"illegal position {fen!r} (status={int(board.status())})")
        return board.fen()

    def side_to_move(self, fen: str) -> str:
        return _color_name(_board(fen).turn)

    def legal_moves(self, fen: str) -> list[MoveCandidate]:
        board = _board(fen)
        return [MoveCandidate.from_uci(u) for u in sorted(m.uci() for m in board.legal_moves)]

    # ---------------- Move Application -----------------
    def apply(self, fen: str, candidate: Optional[MoveCandidate], verified: bool = True) -> Optional[AppliedMove]:
        if candidate is None:
            return None
        try:
            board = chess.Board(fen=fen)
            mv = chess.Move.from_uci(candidate.uci())
        except ValueError:
            log.debug("Rejected %s: unparsable", candidate)
            return None
        if mv.promotion is None and self._reaches_last_rank(board, mv):
            mv = chess.Move(mv.from_square, mv.to_square, promotion=chess.QUEEN)
        if mv not in board.legal_moves:
            log.debug("Rejected %s: illegal in %s", mv.uci(), fen)
            return None
        san = board.san(mv)
        board.push(mv)
        return AppliedMove(
            candidate=MoveCandidate.from_uci(mv.uci()),
            fen_before=fen,
            fen_after=board.fen(),
            san=san,
            verified=verified,
        )

    @staticmethod
    def _reaches_last_rank(board: chess.Board, mv: chess.Move) -> bool:
        piece = board.piece_at(mv.from_square)
        if piece is None or piece.piece_type != chess.PAWN:
            return False
        return chess.square_rank(mv.to_square) in (0, 7)

    # ---------------- Status -----------------
    def status(self, fen: str) -> GameStatus:
        outcome = board_outcome(_board(fen))
        if outcome is None:
            return GameStatus.IN_PROGRESS
        if outcome.termination == chess.Termination.CHECKMATE:
            return GameStatus.CHECKMATE
        if outcome.termination == chess.Termination.STALEMATE:
            return GameStatus.STALEMATE
        return GameStatus.DRAW

    def winner(self, fen: str) -> Optional[str]:
        """Side that delivered mate, if the position is checkmate."""
        board = _board(fen)
        if board.is_checkmate():
            return _color_name(not board.turn)
        return None

    def termination_reason(self, fen: str) -> Optional[str]:
        outcome = board_outcome(_board(fen))
        if outcome is None:
            return None
        return outcome.termination.name.lower()


__all__ = ["Referee", "board_outcome"]
