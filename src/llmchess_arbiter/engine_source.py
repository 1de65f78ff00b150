"""
UCI search-engine move source.

- One engine process per propose() call: spawn, `uci` → `uciok`, `isready` → `readyok`,
  `position fen ...` + `go depth N`, wait for `bestmove`, then quit/kill/reap.
- LineBuffer hides partial reads; UCIConversation only ever sees whole lines.
- Resolution is a once-only slot: the first of {bestmove, timeout, process error}
  wins and later events are no-ops.
- Engine path precedence: explicit parameter, SETTINGS.stockfish_path/env, system PATH.
"""
from __future__ import annotations

import codecs
import logging
import os
import shutil
import subprocess
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from .config import SETTINGS

log = logging.getLogger("engine_source")


def resolve_engine_path(candidate: str | None = None) -> str:
    """Return a runnable engine path, or the candidate unchanged (spawn will then fail)."""
    candidate = candidate or SETTINGS.stockfish_path or "stockfish"
    resolved = shutil.which(candidate) or (candidate if os.path.isfile(candidate) else None)
    if resolved:
        return resolved
    return shutil.which("stockfish") or candidate


class LineBuffer:
    """Accumulates stream chunks and hands back complete lines only."""

    def __init__(self):
        self._partial = ""

    def feed(self, chunk: str) -> list[str]:
        self._partial += chunk
        parts = self._partial.split("\n")
        self._partial = parts.pop()
        return [p.strip() for p in parts if p.strip()]

    def flush(self) -> str:
        """Drop and return whatever incomplete line is pending."""
        rest, self._partial = self._partial, ""
        return rest


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    AWAITING_UCIOK = "awaiting-uciok"
    AWAITING_READYOK = "awaiting-readyok"
    SEARCHING = "searching"
    RESULT = "result"


class UCIConversation:
    """Strict UCI exchange for a single search. Lines that don't fit the current state are ignored."""

    def __init__(self, fen: str, depth: int):
        self.fen = fen
        self.depth = depth
        self.state = EngineState.UNINITIALIZED
        self.best_move: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.state is EngineState.RESULT

    def start(self) -> list[str]:
        if self.state is not EngineState.UNINITIALIZED:
            raise RuntimeError(f"conversation already started (state={self.state.value})")
        self.state = EngineState.AWAITING_UCIOK
        return ["uci"]

    def on_line(self, line: str) -> list[str]:
        """Advance on one complete output line; returns the commands to send next."""
        tokens = line.split()
        if not tokens:
            return []
        head = tokens[0]
        if self.state is EngineState.AWAITING_UCIOK and head == "uciok":
            self.state = EngineState.AWAITING_READYOK
            return ["isready"]
        if self.state is EngineState.AWAITING_READYOK and head == "readyok":
            self.state = EngineState.SEARCHING
            return [f"position fen {self.fen}", f"go depth {self.depth}"]
        if self.state is EngineState.SEARCHING and head == "bestmove":
            move = tokens[1] if len(tokens) > 1 else None
            self.best_move = None if move in (None, "(none)", "0000") else move
            self.state = EngineState.RESULT
        return []


class Resolution:
    """Thread-safe, resolve-once result slot."""

    def __init__(self):
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._value = None

    def resolve(self, value) -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self._value = value
            self._event.set()
            return True

    def wait(self, timeout: float | None) -> bool:
        return self._event.wait(timeout)

    @property
    def resolved(self) -> bool:
        return self._event.is_set()

    @property
    def value(self):
        return self._value


class EngineOutcome(str, Enum):
    BEST_MOVE = "bestmove"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class EngineReply:
    outcome: EngineOutcome
    move: Optional[str] = None
    detail: str = ""


class UCIEngineSource:
    def __init__(
        self,
        engine_path: str | None = None,
        engine_args: Sequence[str] = (),
        timeout_s: float | None = None,
        quit_grace_s: float = 0.2,
    ):
        self.engine_path = resolve_engine_path(engine_path)
        self.engine_args = list(engine_args)
        self.timeout_s = timeout_s if timeout_s is not None else SETTINGS.engine_timeout_s
        self.quit_grace_s = quit_grace_s
        self.last_process: Optional[subprocess.Popen] = None

    def label(self) -> str:
        return os.path.basename(self.engine_path) or "engine"

    def propose(self, fen: str, depth: int) -> EngineReply:
        """Run one bounded search. Always returns exactly one EngineReply; never leaves a live process."""
        if not isinstance(depth, int) or isinstance(depth, bool) or depth < 1:
            raise ValueError(f"depth must be a positive integer, got {depth!r}")
        cmd = [self.engine_path, *self.engine_args]
        log.info("Starting engine %s for FEN %s (depth %d)", cmd[0], fen, depth)
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
            )
        except OSError as e:
            log.error("Engine spawn failed (%s): %s", cmd[0], e)
            return EngineReply(EngineOutcome.UNAVAILABLE, detail=f"spawn failed: {e}")

        self.last_process = proc
        convo = UCIConversation(fen, depth)
        resolution = Resolution()
        stdin_lock = threading.Lock()
        readers = [
            threading.Thread(target=self._pump_stdout, args=(proc, convo, resolution, stdin_lock), daemon=True),
            threading.Thread(target=self._drain_stderr, args=(proc,), daemon=True),
        ]
        try:
            for t in readers:
                t.start()
            self._send(proc, convo.start(), resolution, stdin_lock)
            if not resolution.wait(self.timeout_s):
                if resolution.resolve(EngineReply(EngineOutcome.TIMEOUT, detail=f"no bestmove within {self.timeout_s}s")):
                    log.warning("Engine timeout after %.1fs (state=%s)", self.timeout_s, convo.state.value)
            reply = resolution.value
        finally:
            self._terminate(proc, stdin_lock)
            for t in readers:
                t.join(timeout=2.0)
            for stream in (proc.stdout, proc.stderr):
                if stream:
                    stream.close()
        log.info("Engine result: %s %s", reply.outcome.value, reply.move or "")
        return reply

    # ---------------- Process I/O -----------------
    @staticmethod
    def _send(proc: subprocess.Popen, commands: list[str], resolution: Resolution, stdin_lock: threading.Lock) -> None:
        if not commands:
            return
        with stdin_lock:
            try:
                for c in commands:
                    log.debug(">> %s", c)
                    proc.stdin.write((c + "\n").encode("utf-8"))
                proc.stdin.flush()
            except (OSError, ValueError) as e:
                # ValueError: stdin already closed by _terminate
                resolution.resolve(EngineReply(EngineOutcome.UNAVAILABLE, detail=f"engine stdin closed: {e}"))

    def _pump_stdout(self, proc: subprocess.Popen, convo: UCIConversation, resolution: Resolution, stdin_lock: threading.Lock) -> None:
        buf = LineBuffer()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        fd = proc.stdout.fileno()
        while True:
            try:
                chunk = os.read(fd, 4096)
            except OSError:
                break
            if not chunk:
                break
            for line in buf.feed(decoder.decode(chunk)):
                if resolution.resolved:
                    continue
                log.debug("<< %s", line)
                commands = convo.on_line(line)
                if convo.done:
                    resolution.resolve(EngineReply(EngineOutcome.BEST_MOVE, move=convo.best_move, detail=line))
                    continue
                self._send(proc, commands, resolution, stdin_lock)
        leftover = buf.flush() + decoder.decode(b"", final=True)
        if leftover.strip():
            log.debug("Discarding incomplete engine line: %r", leftover)
        if resolution.resolve(EngineReply(EngineOutcome.UNAVAILABLE, detail=f"engine exited (code {proc.poll()}) before bestmove")):
            log.error("Engine output closed before a best move (state=%s)", convo.state.value)

    @staticmethod
    def _drain_stderr(proc: subprocess.Popen) -> None:
        for raw in iter(proc.stderr.readline, b""):
            log.debug("STDERR: %s", raw.decode("utf-8", "replace").rstrip())

    def _terminate(self, proc: subprocess.Popen, stdin_lock: threading.Lock) -> None:
        with stdin_lock:
            if proc.poll() is None:
                try:
                    proc.stdin.write(b"quit\n")
                    proc.stdin.flush()
                except (OSError, ValueError):
                    log.debug("Engine stdin already closed")
            try:
                proc.stdin.close()
            except OSError:
                log.debug("Engine stdin close failed")
        try:
            proc.wait(timeout=self.quit_grace_s)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()


__all__ = [
    "EngineOutcome",
    "EngineReply",
    "EngineState",
    "LineBuffer",
    "Resolution",
    "UCIConversation",
    "UCIEngineSource",
    "resolve_engine_path",
]
