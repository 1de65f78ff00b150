"""
Move candidate parsing for raw engine/LLM replies.

Two passes, first hit wins:
- coordinate pass: first `[a-h][1-8][a-h][1-8][qrbn]?` anywhere in the text (case-insensitive).
- loose SAN pass (needs the FEN): tokens that look like SAN ("Nf6!", "exd5", "O-O") are
  resolved against the legal moves of the position; only an unambiguous match counts.

parse_candidate() is total: every input maps to a MoveCandidate or None.
"""
from __future__ import annotations

import logging
import re
from typing import Optional

import chess

from .models import MoveCandidate

log = logging.getLogger("move_parser")

UCI_SEARCH_RE = re.compile(r"([a-h][1-8])([a-h][1-8])([qrbn])?", re.I)
UCI_FULL_RE = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$", re.I)
SAN_HINT_RE = re.compile(
    r"^(?:[NBRQK][a-h]?[1-8]?x?[a-h][1-8]|[a-h](?:x[a-h])?[1-8](?:=?[QRBN])?|[O0]-[O0](?:-[O0])?)$",
    re.I,
)
_TRAILING = "!?+#.,;:)]}\"'`*"
_LEADING = "([{\"'`*"


def _strip_code_fence(text: str) -> str:
    """Remove simple ``` fences if present."""
    text = text.strip()
    if text.startswith("```") and text.endswith("```"):
        inner = text.split("\n", 1)
        if len(inner) == 2:
            return inner[1].rsplit("\n", 1)[0].strip()
        return text.strip("`").strip()
    return text


def looks_like_coordinate(text: str) -> bool:
    return bool(UCI_FULL_RE.match((text or "").strip()))


def _coordinate_pass(text: str) -> Optional[MoveCandidate]:
    m = UCI_SEARCH_RE.search(text)
    if not m:
        return None
    promo = m.group(3).lower() if m.group(3) else None
    return MoveCandidate(m.group(1).lower(), m.group(2).lower(), promo)


def _san_tokens(text: str) -> list[str]:
    tokens = []
    for tok in text.replace("\n", " ").split():
        tok = tok.strip(_LEADING).rstrip(_TRAILING)
        # "1.e4" / "12...Nf6" style move numbers
        tok = re.sub(r"^\d+\.+", "", tok)
        if tok and SAN_HINT_RE.match(tok):
            tokens.append(tok)
    return tokens


def _variants(token: str) -> list[str]:
    """Spellings worth trying for one token; lower-case piece letters are common in LLM output."""
    if token[0] in "oO0":
        return [token.replace("0", "O").upper()]
    out = [token]
    if token[0] in "nrqk":
        out.append(token[0].upper() + token[1:])
    elif token[0] == "b" and len(token) > 2 and not token[1].isdigit():
        # "bxc3" is a pawn capture, "bc4"/"bb5" can only be a bishop
        out.append("B" + token[1:])
    if "=" not in token and token[-1:].lower() in "qrbn" and token[-2:-1].isdigit():
        out.append(token[:-1] + "=" + token[-1].upper())
    return out


def _loose_san_pass(text: str, fen: str) -> Optional[MoveCandidate]:
    try:
        board = chess.Board(fen=fen)
    except ValueError:
        return None
    for tok in _san_tokens(text):
        for spelling in _variants(tok):
            try:
                mv = board.parse_san(spelling)
            except ValueError:
                # includes IllegalMoveError / AmbiguousMoveError / InvalidMoveError
                continue
            return MoveCandidate.from_uci(mv.uci())
    return None


def parse_candidate(raw_text, fen: str | None = None) -> Optional[MoveCandidate]:
    """Extract the first usable move from raw text; None when nothing usable is present."""
    if not isinstance(raw_text, str) or not raw_text.strip():
        return None
    text = _strip_code_fence(raw_text)
    cand = _coordinate_pass(text)
    if cand:
        return cand
    if fen:
        cand = _loose_san_pass(text, fen)
        if cand:
            log.debug("Resolved loose notation %r to %s", text[:40], cand.uci())
            return cand
    return None


__all__ = ["parse_candidate", "looks_like_coordinate"]
