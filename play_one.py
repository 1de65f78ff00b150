import argparse
import dataclasses
import logging
import random

import chess

from llmchess_arbiter.config import SETTINGS
from llmchess_arbiter.errors import ArbiterError
from llmchess_arbiter.pgn_export import pgn_from_moves
from llmchess_arbiter.service import build_orchestrator


def run_match(orchestrator, start_fen: str, max_plies: int, depth: int, log: logging.Logger) -> dict:
    """Play turns until the game ends, a ply cap is hit, or the engine fails. State is carried by value."""
    fen = start_fen
    moves: list[str] = []
    reason = None
    fallbacks = 0
    for ply in range(max_plies):
        try:
            res = orchestrator.play_turn(fen, moves, depth)
        except ArbiterError as e:
            reason = e.code
            log.error("[ply %d] match aborted: %s", ply + 1, e)
            break
        if not res.moved:
            reason = orchestrator.referee.termination_reason(fen) or "game_over"
            break
        if getattr(res, "verified", True) is False:
            fallbacks += 1
        moves.append(res.move)
        fen = res.fen
        log.info("[ply %d] %s: %s (%s) status=%s", ply + 1, res.source, res.move, res.applied.san, res.status.wire())
        if res.status.terminal:
            reason = orchestrator.referee.termination_reason(fen)
            break
    else:
        reason = "max_plies_reached"
    return {"moves": moves, "fen": fen, "termination_reason": reason, "llm_fallbacks": fallbacks}


if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Play one LLM vs UCI engine game locally.")
    ap.add_argument("--model", default=None, help="Completion model (default from settings)")
    ap.add_argument("--engine-path", default=None, help="UCI engine binary (default from settings/PATH)")
    ap.add_argument("--depth", type=int, default=None, help="Engine search depth")
    ap.add_argument("--llm-color", choices=["white", "black"], default=None, help="Which side the LLM plays")
    ap.add_argument("--fen", default=chess.STARTING_FEN, help="Starting position")
    ap.add_argument("--max-plies", type=int, default=240)
    ap.add_argument("--seed", type=int, default=None, help="Seed for the fallback move picker")
    ap.add_argument("--pgn-out", default=None, help="Optional path to write PGN at end")
    ap.add_argument("--log-level", default=None, help="Python logging level (e.g., INFO, DEBUG)")
    args = ap.parse_args()

    log_level = (args.log_level or SETTINGS.log_level).upper()
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    log = logging.getLogger("play_one")

    overrides = {}
    if args.model:
        overrides["llm_model"] = args.model
    if args.llm_color:
        overrides["llm_side"] = args.llm_color
    settings = dataclasses.replace(SETTINGS, **overrides)
    orch = build_orchestrator(
        settings=settings,
        rng=random.Random(args.seed) if args.seed is not None else None,
        engine_path=args.engine_path,
    )
    try:
        summary = run_match(orch, args.fen, args.max_plies, args.depth or settings.default_depth, log)
    finally:
        orch.close()

    llm_name = settings.llm_model
    engine_name = orch.engine_source.label()
    white, black = (llm_name, engine_name) if settings.llm_side == "white" else (engine_name, llm_name)
    pgn = pgn_from_moves(args.fen, summary["moves"], white=white, black=black,
                         termination_reason=summary["termination_reason"])
    log.info("Finished: %s after %d plies (LLM fallbacks: %d)", summary["termination_reason"], len(summary["moves"]), summary["llm_fallbacks"])
    print(pgn)
    if args.pgn_out:
        with open(args.pgn_out, "w", encoding="utf-8") as f:
            f.write(pgn + "\n")
        log.info("Wrote PGN to %s", args.pgn_out)
