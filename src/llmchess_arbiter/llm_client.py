from __future__ import annotations
"""
Completion client over an OpenAI-compatible chat endpoint.

The rest of the code should not care which SDK is in use: anything with a
`complete(messages) -> str` method is a CompletionClient. One OpenAIChatClient
is created per process and injected into the language-model move source.
"""
from typing import Optional, List, Dict, Protocol
import logging
import random
import time

from openai import OpenAI

from .config import SETTINGS
from .errors import ProviderError

log = logging.getLogger("llm_client")


class CompletionClient(Protocol):
    def complete(self, messages: List[Dict[str, str]]) -> str: ...


class OpenAIChatClient:
    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        retries: Optional[int] = None,
        client: Optional[OpenAI] = None,
    ):
        self.model = model or SETTINGS.llm_model
        if not self.model:
            raise ValueError("Model is required; set LLMCHESS_MODEL or pass model=.")
        self.timeout_s = timeout_s if timeout_s is not None else SETTINGS.responses_timeout_s
        self.retries = retries if retries is not None else SETTINGS.responses_retries
        self._client = client or OpenAI(
            api_key=api_key or SETTINGS.llm_api_key or None,
            base_url=base_url or SETTINGS.api_base or None,
        )

    def complete(self, messages: List[Dict[str, str]]) -> str:
        """Send one chat request; returns stripped text or raises ProviderError."""
        delay = 0.5
        last_exc: Exception | None = None
        for attempt in range(self.retries + 1):
            try:
                rsp = self._client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    timeout=self.timeout_s,
                )
                return _extract_text(rsp).strip()
            except Exception as e:  # noqa: BLE001 - any SDK/transport failure
                last_exc = e
                if attempt >= self.retries:
                    break
                sleep_s = delay * (2 ** attempt) * (0.8 + 0.4 * random.random())
                time.sleep(min(sleep_s, 10.0))
        raise ProviderError(f"chat request failed after {self.retries + 1} attempt(s): {last_exc}") from last_exc


def _extract_text(rsp) -> str:
    if not getattr(rsp, "choices", None):
        return ""
    msg = rsp.choices[0].message
    content = getattr(msg, "content", None)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for c in content:
            if isinstance(c, dict):
                if c.get("type") == "text" and isinstance(c.get("text"), str):
                    parts.append(c["text"])
                continue
            t = getattr(c, "text", None)
            if isinstance(t, str):
                parts.append(t)
        return "\n".join(parts)
    return ""
