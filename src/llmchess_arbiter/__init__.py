"""
LLM-vs-engine chess arbiter.

Components:
- move_parser: raw reply → MoveCandidate (total; never raises)
- referee: legality/status oracle over python-chess, keyed by FEN
- fallback: seeded uniform random legal move
- llm_client/llm_source/prompting: language-model move source
- engine_source: UCI process conversation with a hard timeout
- game: TurnOrchestrator tying it together; service builds the default wiring
"""
# Package exports are intentionally minimal; import modules directly as needed.
