"""
Minimal Flask API that exposes the arbiter to a board UI.

Endpoints:
- POST /api/gpt-move   {fen, history=[]}  -> language-model move (random legal fallback; verified=false)
- POST /api/ai-move    {fen, depth=12}    -> engine move {move, fen, status, winner}
- POST /api/turn       {fen, history, depth} -> whichever side is to move
- GET  /api/health

Game state is passed by value on every call; nothing is kept between requests.
"""
from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from llmchess_arbiter.config import SETTINGS
from llmchess_arbiter.errors import (
    ArbiterError,
    EngineTimeoutError,
    EngineUnavailableError,
    InvalidMoveError,
    InvalidPositionError,
)
from llmchess_arbiter.game import TurnOrchestrator
from llmchess_arbiter.service import build_orchestrator

ERROR_RESPONSES = {
    InvalidPositionError: (400, "Invalid position"),
    InvalidMoveError: (400, "Invalid move"),
    EngineUnavailableError: (500, "Stockfish failed to start"),
    EngineTimeoutError: (504, "Stockfish timeout"),
}


def _payload() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def _depth_from(data: dict, default: int) -> int:
    depth = data.get("depth", default)
    if not isinstance(depth, int) or isinstance(depth, bool) or depth < 1:
        raise ValueError(f"depth must be a positive integer, got {depth!r}")
    return depth


def create_app(orchestrator: Optional[TurnOrchestrator] = None) -> Flask:
    app = Flask(__name__)
    app.config["ORCHESTRATOR"] = orchestrator

    def _orch() -> TurnOrchestrator:
        if app.config["ORCHESTRATOR"] is None:
            app.config["ORCHESTRATOR"] = build_orchestrator()
        return app.config["ORCHESTRATOR"]

    @app.errorhandler(ArbiterError)
    def handle_arbiter_error(exc: ArbiterError):
        status, message = ERROR_RESPONSES.get(type(exc), (500, str(exc)))
        logging.warning("Request failed (%s): %s", exc.code, exc)
        return jsonify({"error": message, "code": exc.code, "detail": str(exc)}), status

    @app.errorhandler(ValueError)
    def handle_bad_request(exc: ValueError):
        return jsonify({"error": str(exc), "code": "bad-request"}), 400

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        logging.exception("Unhandled error")
        return jsonify({"error": str(exc)}), 500

    @app.route("/api/gpt-move", methods=["POST"])
    def gpt_move():
        data = _payload()
        fen = data.get("fen")
        if not fen:
            return jsonify({"error": "fen is required"}), 400
        history = data.get("history") or []
        if not isinstance(history, list):
            return jsonify({"error": "history must be a list of UCI moves"}), 400
        result = _orch().request_llm_move(fen, history)
        return jsonify(result.to_payload())

    @app.route("/api/ai-move", methods=["POST"])
    def ai_move():
        data = _payload()
        fen = data.get("fen")
        if not fen:
            return jsonify({"error": "fen is required"}), 400
        orch = _orch()
        result = orch.request_engine_move(fen, _depth_from(data, orch.default_depth))
        return jsonify(result.to_payload())

    @app.route("/api/turn", methods=["POST"])
    def turn():
        data = _payload()
        fen = data.get("fen")
        if not fen:
            return jsonify({"error": "fen is required"}), 400
        orch = _orch()
        result = orch.play_turn(fen, data.get("history") or [], _depth_from(data, orch.default_depth))
        body = result.to_payload()
        body["source"] = result.source
        return jsonify(body)

    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    @app.after_request
    def add_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = request.headers.get("Origin", "*")
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Cache-Control"] = "no-store, max-age=0"
        return response

    @app.route("/api/<path:path>", methods=["OPTIONS"])
    def cors_preflight(path: str):
        return app.make_response(("", 204))

    return app


if __name__ == "__main__":
    logging.basicConfig(level=getattr(logging, SETTINGS.log_level, logging.INFO), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    create_app().run(host="0.0.0.0", port=SETTINGS.server_port)
