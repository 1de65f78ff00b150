import os
import random
import sys
import time
import unittest
from unittest.mock import MagicMock

from llmchess_arbiter.engine_source import EngineOutcome, EngineReply, UCIEngineSource
from llmchess_arbiter.errors import (
    EngineTimeoutError,
    EngineUnavailableError,
    InvalidPositionError,
    ProviderError,
)
from llmchess_arbiter.fallback import FallbackSelector
from llmchess_arbiter.game import NO_MOVE, TurnOrchestrator, TurnState
from llmchess_arbiter.llm_source import LLMMoveSource
from llmchess_arbiter.models import GameStatus
from llmchess_arbiter.referee import Referee

from tests.positions import (
    AFTER_E4,
    FOOLS_MATE_DONE,
    FOOLS_MATE_PENDING,
    PROMOTION,
    SCHOLARS_MATE_PENDING,
    STALEMATE_PENDING,
    STALEMATED,
    START,
)
from tests.test_llm_source import FakeClient

FAKE_ENGINE = os.path.join(os.path.dirname(__file__), "fake_engines", "fake_uci.py")


class SlowClient(FakeClient):
    def complete(self, messages):
        time.sleep(1.0)
        return "e2e4"


def make_orchestrator(reply="e2e4", exc=None, engine=None, seed=11, **kwargs):
    client = FakeClient(reply, exc)
    engine = engine or MagicMock(spec=UCIEngineSource)
    orch = TurnOrchestrator(
        llm_source=LLMMoveSource(client),
        engine_source=engine,
        fallback=FallbackSelector(rng=random.Random(seed)),
        **kwargs,
    )
    return orch, client, engine


class LLMTurnTests(unittest.TestCase):
    def test_verified_move(self):
        orch, client, _ = make_orchestrator("I think the best move is e2e4 because it is classical")
        res = orch.request_llm_move(START, [])
        self.assertEqual(res.move, "e2e4")
        self.assertTrue(res.verified)
        self.assertEqual(res.fen, Referee().apply(START, res.applied.candidate).fen_after)
        self.assertEqual(res.status, GameStatus.IN_PROGRESS)
        self.assertEqual(res.trace, ["selecting-source", "awaiting-engine", "parsing", "applying", "done"])
        self.assertEqual(len(client.calls), 1)

    def test_loose_san_reported_move_matches_applied(self):
        orch, _, _ = make_orchestrator("Nf6!")
        res = orch.request_llm_move(AFTER_E4, ["e2e4"])
        self.assertEqual(res.move, "g8f6")
        self.assertEqual(res.move, res.applied.uci)
        self.assertTrue(res.verified)

    def test_illegal_candidate_falls_back(self):
        orch, _, _ = make_orchestrator("e2e5")
        with self.assertLogs("TurnOrchestrator", level="WARNING"):
            res = orch.request_llm_move(START, [])
        self.assertFalse(res.verified)
        self.assertEqual(res.reason, "illegal_move")
        self.assertIn(res.applied.candidate, Referee().legal_moves(START))
        self.assertIn(TurnState.FALLING_BACK.value, res.trace)
        self.assertEqual(res.move, res.applied.uci)

    def test_garbage_falls_back(self):
        orch, _, _ = make_orchestrator("banana")
        res = orch.request_llm_move(START, [])
        self.assertFalse(res.verified)
        self.assertEqual(res.reason, "unparsable_reply")
        self.assertIn(res.applied.candidate, Referee().legal_moves(START))

    def test_provider_failure_falls_back(self):
        orch, _, _ = make_orchestrator(exc=ProviderError("401"))
        res = orch.request_llm_move(START, [])
        self.assertFalse(res.verified)
        self.assertTrue(res.reason.startswith("provider_error"))
        self.assertNotEqual(res.fen, START)

    def test_fallback_is_reproducible_with_seed(self):
        a = make_orchestrator("banana", seed=5)[0].request_llm_move(START, [])
        b = make_orchestrator("banana", seed=5)[0].request_llm_move(START, [])
        self.assertEqual(a.move, b.move)
        self.assertEqual(a.fen, b.fen)

    def test_fallback_never_escapes_legal_set(self):
        ref = Referee()
        for seed in range(25):
            for fen in (START, AFTER_E4, PROMOTION, STALEMATE_PENDING):
                res = make_orchestrator("nonsense", seed=seed)[0].request_llm_move(fen, [])
                self.assertIn(res.applied.candidate, ref.legal_moves(fen))

    def test_promotion_default_queen(self):
        orch, _, _ = make_orchestrator("a7a8")
        res = orch.request_llm_move(PROMOTION, [])
        self.assertTrue(res.verified)
        self.assertEqual(res.move, "a7a8q")

    def test_checkmate_by_llm(self):
        orch, _, _ = make_orchestrator("Qxf7#")
        res = orch.request_llm_move(SCHOLARS_MATE_PENDING, [])
        self.assertEqual(res.move, "h5f7")
        self.assertEqual(res.status, GameStatus.CHECKMATE)
        self.assertEqual(res.to_payload()["status"], "game-over")
        self.assertEqual(res.winner, "white")

    def test_terminal_input_short_circuits(self):
        for fen in (FOOLS_MATE_DONE, STALEMATED):
            orch, client, engine = make_orchestrator()
            res = orch.request_llm_move(fen, [])
            self.assertEqual(res.move, NO_MOVE)
            self.assertEqual(res.fen, fen)
            self.assertFalse(res.moved)
            self.assertEqual(client.calls, [])
            engine.propose.assert_not_called()

    def test_outer_timeout_falls_back(self):
        orch = TurnOrchestrator(
            llm_source=LLMMoveSource(SlowClient()),
            engine_source=None,
            fallback=FallbackSelector(rng=random.Random(2)),
            llm_timeout_s=0.1,
        )
        try:
            res = orch.request_llm_move(START, [])
        finally:
            orch.close()
        self.assertFalse(res.verified)
        self.assertEqual(res.reason, "provider_timeout")

    def test_history_is_passed_to_prompt(self):
        orch, client, _ = make_orchestrator("e7e5")
        orch.request_llm_move(AFTER_E4, "e2e4")
        self.assertIn("Recent moves: e2e4", client.calls[0][-1]["content"])

    def test_history_keeps_only_coordinate_moves(self):
        orch, client, _ = make_orchestrator("g1f3")
        orch.request_llm_move(START, ["e2e4", "Nf6", "", "E7E5", 42])
        self.assertIn("Recent moves: e2e4, e7e5", client.calls[0][-1]["content"])

    def test_invalid_fen_rejected(self):
        orch, client, _ = make_orchestrator()
        with self.assertRaises(InvalidPositionError):
            orch.request_llm_move("nope", [])
        self.assertEqual(client.calls, [])


class EngineTurnTests(unittest.TestCase):
    def _engine(self, reply):
        engine = MagicMock(spec=UCIEngineSource)
        engine.propose.return_value = reply
        return engine

    def test_best_move_applied(self):
        engine = self._engine(EngineReply(EngineOutcome.BEST_MOVE, move="e7e5"))
        orch, _, _ = make_orchestrator(engine=engine)
        res = orch.request_engine_move(AFTER_E4)
        engine.propose.assert_called_once_with(AFTER_E4, 12)
        self.assertEqual(res.move, "e7e5")
        self.assertEqual(res.to_payload(), {"move": "e7e5", "fen": res.fen, "status": "playing", "winner": None})

    def test_checkmate_winner_is_mover(self):
        engine = self._engine(EngineReply(EngineOutcome.BEST_MOVE, move="d8h4"))
        orch, _, _ = make_orchestrator(engine=engine)
        res = orch.request_engine_move(FOOLS_MATE_PENDING, 6)
        self.assertEqual(res.fen, FOOLS_MATE_DONE)
        self.assertEqual(res.to_payload()["status"], "game-over")
        self.assertEqual(res.winner, "black")

    def test_stalemate_is_draw_not_game_over(self):
        engine = self._engine(EngineReply(EngineOutcome.BEST_MOVE, move="c1c7"))
        orch, _, _ = make_orchestrator(engine=engine)
        res = orch.request_engine_move(STALEMATE_PENDING, 6)
        self.assertEqual(res.status, GameStatus.STALEMATE)
        self.assertEqual(res.to_payload()["status"], "draw")
        self.assertIsNone(res.winner)

    def test_timeout_surfaces(self):
        orch, _, _ = make_orchestrator(engine=self._engine(EngineReply(EngineOutcome.TIMEOUT)))
        with self.assertRaises(EngineTimeoutError):
            orch.request_engine_move(START, 3)

    def test_unavailable_surfaces(self):
        orch, _, _ = make_orchestrator(engine=self._engine(EngineReply(EngineOutcome.UNAVAILABLE, detail="spawn failed")))
        with self.assertRaises(EngineUnavailableError):
            orch.request_engine_move(START, 3)

    def test_illegal_engine_move_falls_back(self):
        orch, _, _ = make_orchestrator(engine=self._engine(EngineReply(EngineOutcome.BEST_MOVE, move="e2e5")))
        res = orch.request_engine_move(START, 3)
        self.assertIn(res.move, {c.uci() for c in Referee().legal_moves(START)})
        self.assertFalse(res.verified)
        self.assertEqual(res.reason, "illegal_move")
        self.assertIn(TurnState.FALLING_BACK.value, res.trace)
        self.assertEqual(res.to_payload()["status"], "playing")

    def test_bestmove_none_falls_back(self):
        for move in (None, "garbage"):
            orch, _, _ = make_orchestrator(engine=self._engine(EngineReply(EngineOutcome.BEST_MOVE, move=move)))
            res = orch.request_engine_move(START, 3)
            self.assertTrue(res.moved)
            self.assertIn(res.move, {c.uci() for c in Referee().legal_moves(START)})
            self.assertFalse(res.verified)
            self.assertEqual(res.reason, "no_best_move")

    def test_engine_fallback_is_reproducible_with_seed(self):
        moves = set()
        for _ in range(3):
            engine = self._engine(EngineReply(EngineOutcome.BEST_MOVE, move=None))
            orch, _, _ = make_orchestrator(engine=engine, seed=11)
            moves.add(orch.request_engine_move(AFTER_E4, 3).move)
        self.assertEqual(len(moves), 1)

    def test_terminal_input_does_not_start_engine(self):
        engine = self._engine(EngineReply(EngineOutcome.BEST_MOVE, move="e2e4"))
        orch, client, _ = make_orchestrator(engine=engine)
        res = orch.request_engine_move(FOOLS_MATE_DONE)
        engine.propose.assert_not_called()
        self.assertEqual(res.move, NO_MOVE)
        self.assertEqual(res.to_payload()["status"], "game-over")
        self.assertEqual(res.winner, "black")

    def test_depth_validation(self):
        orch, _, _ = make_orchestrator()
        with self.assertRaises(ValueError):
            orch.request_engine_move(START, 0)

    def test_with_fake_engine_process(self):
        engine = UCIEngineSource(sys.executable, engine_args=[FAKE_ENGINE, "chunked", "e7e5"], timeout_s=5)
        orch, _, _ = make_orchestrator(engine=engine)
        res = orch.request_engine_move(AFTER_E4, 2)
        self.assertEqual(res.move, "e7e5")
        self.assertIsNotNone(engine.last_process.poll())


class PlayTurnTests(unittest.TestCase):
    def test_dispatch_by_side_to_move(self):
        engine = MagicMock(spec=UCIEngineSource)
        engine.propose.return_value = EngineReply(EngineOutcome.BEST_MOVE, move="e7e5")
        orch, client, _ = make_orchestrator("e2e4", engine=engine)
        first = orch.play_turn(START, [])
        self.assertEqual(first.source, "llm")
        second = orch.play_turn(first.fen, [first.move], depth=4)
        self.assertEqual(second.source, "engine")
        engine.propose.assert_called_once_with(first.fen, 4)
        self.assertEqual(len(client.calls), 1)

    def test_llm_can_play_black(self):
        engine = MagicMock(spec=UCIEngineSource)
        orch, client, _ = make_orchestrator("e7e5", engine=engine, llm_side="black")
        res = orch.play_turn(AFTER_E4, ["e2e4"])
        self.assertEqual(res.source, "llm")
        self.assertEqual(res.move, "e7e5")
        engine.propose.assert_not_called()

    def test_bad_side(self):
        with self.assertRaises(ValueError):
            make_orchestrator(llm_side="red")


if __name__ == "__main__":
    unittest.main()
