"""UCI session with a single long-lived engine subprocess."""

from __future__ import annotations

import logging
import queue
import re
import subprocess
import threading
import time
from typing import List, Optional, Protocol, Sequence

import chess

from models import Analysis
from odds import compute_odds
from utils import recieved_text, sending_text

logger = logging.getLogger(__name__)

DEFAULT_READY_TIMEOUT = 5.0
DEFAULT_ANALYSIS_TIMEOUT = 10.0
MATE_SCORE = 10000

_DEPTH_RE = re.compile(r"\bdepth (\d+)")
_CP_RE = re.compile(r"\bscore cp (-?\d+)")
_MATE_RE = re.compile(r"\bscore mate (-?\d+)")
_EOF = object()


class EngineError(Exception):
    """Base class for engine adapter failures."""


class EngineUnavailable(EngineError):
    pass


class EngineTimeout(EngineError):
    pass


class AnalysisTimeout(EngineError):
    pass


class EngineTerminated(EngineError):
    pass


class Engine(Protocol):
    """What the analyzer needs from an engine; fakes implement this in tests."""

    def start(self) -> None:
        ...

    def analyze_position(self, fen: str, depth: int) -> Analysis:
        ...

    def stop(self) -> None:
        ...


class SearchState:
    """Partial results of one ``go`` request, rebuilt for every request."""

    def __init__(self) -> None:
        self.depth = 0
        self.evaluation = 0
        self.best_move: Optional[str] = None
        self.finished = False

    def feed(self, line: str) -> None:
        if line.startswith("bestmove"):
            tokens = line.split()
            self.best_move = _parse_move(tokens[1]) if len(tokens) >= 2 else None
            self.finished = True
            return
        if not line.startswith("info") or line.startswith("info string"):
            return

        depth_match = _DEPTH_RE.search(line)
        if depth_match:
            self.depth = max(self.depth, int(depth_match.group(1)))

        cp_match = _CP_RE.search(line)
        if cp_match:
            self.evaluation = int(cp_match.group(1))

        mate_match = _MATE_RE.search(line)
        if mate_match:
            self.evaluation = MATE_SCORE if int(mate_match.group(1)) > 0 else -MATE_SCORE


def white_to_move(fen: str) -> bool:
    """UCI scores are relative to the side to move; this tells which side that is."""
    fields = fen.split()
    return len(fields) < 2 or fields[1] != "b"


def _parse_move(token: str) -> Optional[str]:
    try:
        move = chess.Move.from_uci(token)
    except ValueError:
        return None
    return move.uci() if move else None


class EngineSession:
    """Maintain a UCI session with the engine.

    One request runs at a time; concurrent callers block on the request lock
    because the engine's output stream cannot be split between searches.
    """

    def __init__(
        self,
        command: Sequence[str] = ("stockfish",),
        *,
        threads: int = 4,
        hash_mb: int = 256,
        ready_timeout: float = DEFAULT_READY_TIMEOUT,
        analysis_timeout: float = DEFAULT_ANALYSIS_TIMEOUT,
    ) -> None:
        self.command = list(command)
        self.threads = threads
        self.hash_mb = hash_mb
        self.ready_timeout = ready_timeout
        self.analysis_timeout = analysis_timeout
        self._proc: Optional[subprocess.Popen[str]] = None
        self._reader_thread: Optional[threading.Thread] = None
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._write_lock = threading.Lock()
        self._request_lock = threading.Lock()
        self._running = False
        self._search_outstanding = False
        self.engine_name: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            raise EngineError("Engine session already started")

        self._queue = queue.Queue()
        try:
            self._proc = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            self._proc = None
            raise EngineUnavailable(f"Could not launch engine {self.command!r}: {exc}") from exc

        self._running = True
        self._reader_thread = threading.Thread(
            target=self._reader_loop, args=(self._proc,), daemon=True
        )
        self._reader_thread.start()

        deadline = time.monotonic() + self.ready_timeout
        try:
            self._send("uci")
            self._await_token("uciok", deadline)
            self._send(f"setoption name Threads value {self.threads}")
            self._send(f"setoption name Hash value {self.hash_mb}")
            self._send("isready")
            self._await_token("readyok", deadline)
        except EngineTimeout:
            self.stop()
            raise
        except EngineError as exc:
            self.stop()
            raise EngineUnavailable(f"Engine {self.command!r} failed during handshake: {exc}") from exc

        logger.info("Engine ready: %s", self.engine_name or " ".join(self.command))

    def analyze_position(self, fen: str, depth: int) -> Analysis:
        with self._request_lock:
            if not self._running:
                raise EngineError("Engine session is not active")

            if self._search_outstanding:
                self._drain_abandoned_search(time.monotonic() + self.ready_timeout)
            deadline = time.monotonic() + self.analysis_timeout
            self._discard_stale_output(deadline)

            self._send(f"position fen {fen}")
            self._send(f"go depth {depth}")
            self._search_outstanding = True

            state = SearchState()
            while not state.finished:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    try:
                        self._send("stop")
                    except EngineError:
                        pass
                    raise AnalysisTimeout(
                        f"No bestmove within {self.analysis_timeout}s for position {fen}"
                    )
                line = self._read_line(timeout=min(1.0, remaining))
                if line is None:
                    continue
                state.feed(line)
            self._search_outstanding = False

            evaluation = state.evaluation if white_to_move(fen) else -state.evaluation
            return Analysis(
                fen=fen,
                evaluation=evaluation,
                best_move=state.best_move,
                depth=state.depth,
                odds=compute_odds(evaluation),
            )

    def stop(self, timeout: float = 2.0) -> None:
        proc = self._proc
        if proc is None:
            return
        self._running = False
        self._search_outstanding = False
        self._proc = None

        if proc.poll() is None:
            try:
                self._write(proc, "quit")
            except EngineError:
                pass
        if proc.stdin:
            try:
                proc.stdin.close()
            except OSError:
                pass
        try:
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.terminate()
            try:
                proc.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait(timeout=1.0)

        if self._reader_thread is not None:
            self._reader_thread.join(timeout=1.0)
            self._reader_thread = None
        logger.info("Engine stopped")

    def _drain_abandoned_search(self, deadline: float) -> None:
        # readyok can overtake a stopped search, so wait for its own bestmove
        self._send("stop")
        skipped = 0
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AnalysisTimeout("Engine did not finish the previous search after stop")
            line = self._read_line(timeout=min(1.0, remaining))
            if line is None:
                continue
            if line.startswith("bestmove"):
                break
            skipped += 1
        self._search_outstanding = False
        logger.debug("Drained previous search (%d lines)", skipped)

    def _discard_stale_output(self, deadline: float) -> None:
        # skip stray lines left over from earlier requests
        self._send("isready")
        skipped: List[str] = []
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AnalysisTimeout("Engine did not acknowledge isready before analysis")
            line = self._read_line(timeout=min(1.0, remaining))
            if line is None:
                continue
            if line == "readyok":
                break
            skipped.append(line)
        if skipped:
            logger.debug("Discarded %d stale engine lines", len(skipped))

    def _reader_loop(self, proc: "subprocess.Popen[str]") -> None:
        assert proc.stdout is not None
        for raw in proc.stdout:
            self._queue.put(raw.rstrip("\r\n"))
        self._queue.put(_EOF)

    def _send(self, command: str) -> None:
        proc = self._proc
        if not self._running or proc is None:
            raise EngineError("Engine session is not active")
        self._write(proc, command)

    def _write(self, proc: "subprocess.Popen[str]", command: str) -> None:
        with self._write_lock:
            if proc.stdin is None:
                raise EngineError("Engine stdin is closed")
            logger.debug(sending_text(command))
            try:
                proc.stdin.write(command + "\n")
                proc.stdin.flush()
            except (BrokenPipeError, ValueError, OSError) as exc:
                raise EngineTerminated(f"Engine pipe closed while sending {command!r}") from exc

    def _await_token(self, token: str, deadline: float) -> None:
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise EngineTimeout(f"Timed out waiting for '{token}' from engine")
            line = self._read_line(timeout=min(1.0, remaining))
            if line is None:
                continue
            if line.startswith("id name "):
                self.engine_name = line[len("id name "):].strip()
            if line.strip() == token:
                return

    def _read_line(self, timeout: float = 1.0) -> Optional[str]:
        try:
            item = self._queue.get(timeout=max(0.01, timeout))
        except queue.Empty:
            return None
        if item is _EOF:
            # keep the marker for any later reader
            self._queue.put(_EOF)
            raise EngineTerminated("Engine process exited")
        line = str(item).strip()
        if line:
            logger.debug(recieved_text(line))
        return line or None
