"""PGN export for a finished (or interrupted) match, built from UCI moves."""
from __future__ import annotations

import datetime
from typing import Optional, Sequence

import chess
import chess.pgn

from .referee import board_outcome


def pgn_from_moves(
    start_fen: str,
    moves: Sequence[str],
    white: str = "?",
    black: str = "?",
    result: Optional[str] = None,
    termination_reason: Optional[str] = None,
    event: str = "LLM vs Engine",
) -> str:
    board = chess.Board(fen=start_fen)
    game = chess.pgn.Game()
    game.headers.update({
        "Event": event,
        "Date": datetime.date.today().strftime("%Y.%m.%d"),
        "White": white,
        "Black": black,
    })
    if start_fen != chess.STARTING_FEN:
        game.setup(board)
    node = game
    for uci in moves:
        mv = chess.Move.from_uci(uci)
        node = node.add_variation(mv)
        board.push(mv)
    if result is None:
        outcome = board_outcome(board)
        result = outcome.result() if outcome else "*"
    game.headers["Result"] = result
    if termination_reason:
        game.comment = f"Termination: {termination_reason}"
    exporter = chess.pgn.StringExporter(headers=True, variations=False, comments=bool(termination_reason))
    return game.accept(exporter)
