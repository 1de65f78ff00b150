"""Wires one process-wide completion client, the two move sources and the orchestrator."""
from __future__ import annotations

import random
from typing import Optional

from .config import SETTINGS, Settings
from .engine_source import UCIEngineSource
from .fallback import FallbackSelector
from .game import TurnOrchestrator
from .llm_client import CompletionClient, OpenAIChatClient
from .llm_source import LLMMoveSource
from .prompting import PromptConfig
from .referee import Referee


def build_orchestrator(
    settings: Settings = SETTINGS,
    client: Optional[CompletionClient] = None,
    rng: Optional[random.Random] = None,
    prompt_cfg: Optional[PromptConfig] = None,
    engine_path: Optional[str] = None,
) -> TurnOrchestrator:
    referee = Referee()
    client = client or OpenAIChatClient(
        model=settings.llm_model,
        api_key=settings.llm_api_key,
        base_url=settings.api_base,
        timeout_s=settings.responses_timeout_s,
        retries=settings.responses_retries,
    )
    return TurnOrchestrator(
        llm_source=LLMMoveSource(client, prompt_cfg),
        engine_source=UCIEngineSource(engine_path or settings.stockfish_path, timeout_s=settings.engine_timeout_s),
        referee=referee,
        fallback=FallbackSelector(rng=rng, referee=referee),
        llm_side=settings.llm_side,
        llm_timeout_s=settings.llm_turn_timeout_s,
        default_depth=settings.default_depth,
    )
