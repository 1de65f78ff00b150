"""
Configuration and environment loading for the arbiter.

- Loads settings.yml (YAML) from repo root if present; falls back to environment variables.
- Exposes SETTINGS with keys used across the project (API key, model, engine path, time bounds).
"""
from dataclasses import dataclass
import os
from typing import Any, Callable

from dotenv import load_dotenv
import yaml

load_dotenv()


def _repo_root() -> str:
    # this file: src/llmchess_arbiter/config.py → repo root is two levels up
    return os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))


def _load_yaml(path: str) -> dict:
    if not os.path.isfile(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return data if isinstance(data, dict) else {}


_cfg = _load_yaml(os.environ.get("LLMCHESS_SETTINGS_FILE") or os.path.join(_repo_root(), "settings.yml"))


def _get(name: str, default: Any, cast: Callable[[Any], Any] | None = None) -> Any:
    # YAML takes precedence
    if name in _cfg:
        val = _cfg[name]
        return cast(val) if cast else val
    env = os.environ.get(name)
    if env is not None:
        return cast(env) if cast else env
    return default


def _optional_float(val: Any) -> float | None:
    if val in (None, "", "none", "None"):
        return None
    return float(val)


@dataclass(frozen=True)
class Settings:
    # Completion provider (OpenAI-compatible wire format)
    llm_api_key: str
    api_base: str
    llm_model: str
    responses_timeout_s: float
    responses_retries: int
    # Outer bound applied by the orchestrator around one language-model turn
    llm_turn_timeout_s: float | None

    # Search engine
    stockfish_path: str
    engine_timeout_s: float
    default_depth: int

    # Match / service
    llm_side: str
    server_port: int
    log_level: str


SETTINGS = Settings(
    llm_api_key=_get("OPENAI_API_KEY", _get("LLMCHESS_LLM_API_KEY", "")),
    api_base=_get("LLMCHESS_LLM_BASE_URL", ""),
    llm_model=_get("LLMCHESS_MODEL", "gpt-5"),
    responses_timeout_s=float(_get("LLMCHESS_RESPONSES_TIMEOUT_S", 60.0, cast=float)),
    responses_retries=int(_get("LLMCHESS_RESPONSES_RETRIES", 0, cast=int)),
    llm_turn_timeout_s=_get("LLMCHESS_TURN_TIMEOUT_S", 90.0, cast=_optional_float),
    stockfish_path=_get("STOCKFISH_PATH", "/usr/games/stockfish"),
    engine_timeout_s=float(_get("LLMCHESS_ENGINE_TIMEOUT_S", 5.0, cast=float)),
    default_depth=int(_get("LLMCHESS_DEFAULT_DEPTH", 12, cast=int)),
    llm_side=str(_get("LLMCHESS_LLM_SIDE", "white")).lower(),
    server_port=int(_get("LLMCHESS_PORT", 5000, cast=int)),
    log_level=str(_get("LLMCHESS_LOG_LEVEL", "INFO")).upper(),
)
