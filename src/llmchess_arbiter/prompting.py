"""
Prompt builder and config for language-model move requests.

Callers supply system instructions and a template string with placeholders
({FEN}, {SIDE_TO_MOVE}, {MOVE_HISTORY}) that are substituted per turn.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence

DEFAULT_UCI_SYSTEM = "You are a strict chess engine. Output only one legal move in UCI format (e2e4)."
DEFAULT_UCI_TEMPLATE = """You are a champion chess engine, not a human and you know all chess rules.
Your goal is to select one valid legal move in UCI notation based on the current position.

FEN: {FEN}
Color to move: {SIDE_TO_MOVE}
Recent moves: {MOVE_HISTORY}

Rules:
- Only output one legal move in UCI format (e.g., "e2e4" or "g8f6").
- Do not use SAN format like "Nf6".
- Do not include punctuation, explanations, or extra words.
- The move must be valid given the FEN.
- If no moves are available, respond only with "none".

Your response must be exactly one line containing only the move."""


@dataclass
class PromptConfig:
    """Configuration for shaping move prompts using a custom template."""

    system_instructions: str = DEFAULT_UCI_SYSTEM
    template: str = DEFAULT_UCI_TEMPLATE


def render_custom_prompt(template: str, values: Dict[str, str]) -> str:
    """Replace known placeholders in the template. Unknown tokens are left intact."""
    rendered = template or ""
    for key, val in values.items():
        rendered = rendered.replace(f"{{{key}}}", val)
    return rendered


def side_label(fen: str) -> str:
    """'White' or 'Black' from the side-to-move field of a FEN."""
    fields = (fen or "").split()
    return "Black" if len(fields) > 1 and fields[1] == "b" else "White"


def build_prompt_messages(fen: str, history: Sequence[str], prompt_cfg: PromptConfig | None = None) -> list[dict]:
    cfg = prompt_cfg or PromptConfig()
    values = {
        "FEN": fen,
        "SIDE_TO_MOVE": side_label(fen),
        "MOVE_HISTORY": ", ".join(history) if history else "none",
    }
    return [
        {"role": "system", "content": cfg.system_instructions},
        {"role": "user", "content": render_custom_prompt(cfg.template, values)},
    ]
