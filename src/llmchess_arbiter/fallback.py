"""
FallbackSelector: picks a uniformly random legal move when an engine reply is unusable.

- The RNG is injected so tests (and replays) are reproducible; moves are sampled from
  a sorted list so the same seed always yields the same move for a given FEN.
- Promotion variants count as separate moves.
"""
from __future__ import annotations

import random
from typing import Optional

from .errors import NoLegalMovesError
from .models import MoveCandidate
from .referee import Referee


class FallbackSelector:
    name: str = "Random"

    def __init__(self, rng: Optional[random.Random] = None, referee: Optional[Referee] = None):
        self.rng = rng or random.Random()
        self.referee = referee or Referee()

    def select(self, fen: str) -> MoveCandidate:
        legal = self.referee.legal_moves(fen)
        if not legal:
            raise NoLegalMovesError(f"no legal moves in {fen}")
        return self.rng.choice(legal)
