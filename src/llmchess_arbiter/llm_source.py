from __future__ import annotations
"""Language-model move source: one prompt, one completion, raw text back."""
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

from .llm_client import CompletionClient
from .prompting import PromptConfig, build_prompt_messages

log = logging.getLogger("llm_source")


@dataclass
class LLMProposal:
    raw: str
    messages: list = field(default_factory=list)
    error: Optional[str] = None
    latency_ms: int = 0

    @property
    def usable(self) -> bool:
        return bool(self.raw and self.raw.strip())


class LLMMoveSource:
    def __init__(self, client: CompletionClient, prompt_cfg: Optional[PromptConfig] = None):
        self.client = client
        self.prompt_cfg = prompt_cfg or PromptConfig()

    def label(self) -> str:
        return getattr(self.client, "model", None) or "llm"

    def propose(self, fen: str, history: Sequence[str] = ()) -> LLMProposal:
        """Ask the completion oracle once. Provider failures come back as an empty proposal."""
        messages = build_prompt_messages(fen, list(history or []), self.prompt_cfg)
        log.debug("Prompt for %s:\n%s", self.label(), messages[-1]["content"])
        t0 = time.time()
        try:
            raw = self.client.complete(messages) or ""
            error = None if raw.strip() else "empty_reply"
        except Exception as e:  # noqa: BLE001 - provider failure degrades to "no usable text"
            log.exception("Completion request failed")
            raw, error = "", f"provider_error:{e}"
        ms = int((time.time() - t0) * 1000)
        log.info("LLM raw reply (%d ms): %r", ms, raw[:200])
        return LLMProposal(raw=raw, messages=messages, error=error, latency_ms=ms)
