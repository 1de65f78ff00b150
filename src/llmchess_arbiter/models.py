"""
Value types shared by the parser, referee, sources and orchestrator.

- MoveCandidate: parsed, not yet verified coordinate move ("none" is plain None).
- AppliedMove: a candidate the rules oracle accepted, with the resulting FEN.
- GameStatus: derived fresh from a FEN after every applied move.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

COORD_RE = re.compile(r"^([a-h][1-8])([a-h][1-8])([qrbn])?$")


@dataclass(frozen=True)
class MoveCandidate:
    origin: str
    destination: str
    promotion: Optional[str] = None

    def uci(self) -> str:
        return f"{self.origin}{self.destination}{self.promotion or ''}"

    @classmethod
    def from_uci(cls, text: str) -> "MoveCandidate":
        m = COORD_RE.match((text or "").strip().lower())
        if not m:
            raise ValueError(f"not a coordinate move: {text!r}")
        return cls(m.group(1), m.group(2), m.group(3))

    def __str__(self) -> str:
        return self.uci()


@dataclass(frozen=True)
class AppliedMove:
    candidate: MoveCandidate
    fen_before: str
    fen_after: str
    san: str
    verified: bool = True

    @property
    def uci(self) -> str:
        return self.candidate.uci()


class GameStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    DRAW = "draw"

    @property
    def terminal(self) -> bool:
        return self is not GameStatus.IN_PROGRESS

    def wire(self) -> str:
        """Status string used on the wire: playing | game-over | draw."""
        if self is GameStatus.IN_PROGRESS:
            return "playing"
        if self is GameStatus.CHECKMATE:
            return "game-over"
        return "draw"
