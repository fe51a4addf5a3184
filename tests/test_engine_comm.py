import sys
import textwrap
import threading
import time

import pytest

from engine_comm import (
    MATE_SCORE,
    AnalysisTimeout,
    EngineError,
    EngineSession,
    EngineTerminated,
    EngineTimeout,
    EngineUnavailable,
    SearchState,
    white_to_move,
)
from odds import compute_odds

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"
BLACK_TO_MOVE_FEN = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"

SCRIPT = textwrap.dedent(
    """
    import sys

    GO_LINES = {go_lines!r}
    SEND_READY = {send_ready!r}
    LOG_PATH = {log_path!r}


    def emit(line):
        sys.stdout.write(line + "\\n")
        sys.stdout.flush()


    for raw in sys.stdin:
        command = raw.strip()
        with open(LOG_PATH, "a") as log:
            log.write(command + "\\n")
        if command == "uci":
            emit("id name Scripted")
            emit("uciok")
        elif command == "isready" and SEND_READY:
            emit("readyok")
        elif command.startswith("go"):
            for line in GO_LINES:
                if line == "__exit__":
                    sys.exit(0)
                emit(line)
        elif command == "quit":
            break
    """
)


def make_session(tmp_path, go_lines=(), *, send_ready=True, **kwargs):
    script = tmp_path / "scripted_engine.py"
    log_path = tmp_path / "commands.log"
    script.write_text(
        SCRIPT.format(go_lines=list(go_lines), send_ready=send_ready, log_path=str(log_path))
    )
    session = EngineSession([sys.executable, str(script)], **kwargs)
    return session, log_path


def sent_commands(log_path):
    return log_path.read_text().splitlines()


@pytest.fixture()
def started(tmp_path, request):
    go_lines = getattr(request, "param", ["info depth 10 score cp 34", "bestmove e2e4"])
    session, log_path = make_session(tmp_path, go_lines, threads=2, hash_mb=16)
    session.start()
    yield session, log_path
    session.stop()


def test_start_sends_handshake(started) -> None:
    session, log_path = started
    commands = sent_commands(log_path)
    assert commands[:4] == [
        "uci",
        "setoption name Threads value 2",
        "setoption name Hash value 16",
        "isready",
    ]
    assert session.running is True
    assert session.engine_name == "Scripted"


def test_analyze_parses_depth_score_and_bestmove(started) -> None:
    session, log_path = started
    analysis = session.analyze_position(START_FEN, 12)

    assert analysis.evaluation == 34
    assert analysis.best_move == "e2e4"
    assert analysis.depth == 10
    assert analysis.fen == START_FEN
    expected = compute_odds(34)
    assert (analysis.odds.white_win, analysis.odds.black_win, analysis.odds.draw) == (
        expected.white_win,
        expected.black_win,
        expected.draw,
    )
    commands = sent_commands(log_path)
    assert f"position fen {START_FEN}" in commands
    assert commands[-1] == "go depth 12"


@pytest.mark.parametrize(
    "started",
    [
        [
            "info depth 1 score cp 10",
            "info depth 2 seldepth 5 score cp -25 nodes 400",
            "info string depth 99 score cp 500",
            "bestmove d2d4 ponder d7d5",
        ]
    ],
    indirect=True,
)
def test_latest_score_and_deepest_depth_win(started) -> None:
    session, _ = started
    analysis = session.analyze_position(START_FEN, 2)
    assert analysis.evaluation == -25
    assert analysis.depth == 2
    assert analysis.best_move == "d2d4"


@pytest.mark.parametrize(
    "started",
    [["info depth 5 score cp 120", "info depth 6 score mate 3", "bestmove h5f7"]],
    indirect=True,
)
def test_mate_score_saturates(started) -> None:
    session, _ = started
    analysis = session.analyze_position(START_FEN, 6)
    assert analysis.evaluation == MATE_SCORE
    assert analysis.odds.white_win == 10000


@pytest.mark.parametrize(
    "started",
    [["info depth 4 score cp 50", "bestmove e7e5"]],
    indirect=True,
)
def test_score_is_reported_from_whites_side(started) -> None:
    session, _ = started
    analysis = session.analyze_position(BLACK_TO_MOVE_FEN, 4)
    assert analysis.evaluation == -50


@pytest.mark.parametrize(
    "started",
    [["info depth 0 score mate 0", "bestmove (none)"]],
    indirect=True,
)
def test_bestmove_none_completes_without_move(started) -> None:
    session, _ = started
    analysis = session.analyze_position(START_FEN, 1)
    assert analysis.best_move is None
    assert analysis.evaluation == -MATE_SCORE


def test_missing_bestmove_times_out(tmp_path) -> None:
    session, log_path = make_session(
        tmp_path, ["info depth 3 score cp 12"], analysis_timeout=0.5
    )
    session.start()
    try:
        started_at = time.monotonic()
        with pytest.raises(AnalysisTimeout):
            session.analyze_position(START_FEN, 30)
        assert time.monotonic() - started_at < 3.0
    finally:
        session.stop()
    assert "stop" in sent_commands(log_path)


LATE_BESTMOVE_SCRIPT = textwrap.dedent(
    """
    import sys
    import time

    FLUSH_ON_STOP = {flush_on_stop!r}
    searches = 0
    searching = False


    def emit(line):
        sys.stdout.write(line + "\\n")
        sys.stdout.flush()


    for raw in sys.stdin:
        command = raw.strip()
        if command == "uci":
            emit("uciok")
        elif command == "isready":
            emit("readyok")
        elif command.startswith("go"):
            searches += 1
            if searches == 1:
                searching = True
            else:
                emit("info depth 10 score cp 34")
                emit("bestmove e2e4")
        elif command == "stop" and searching:
            searching = False
            if FLUSH_ON_STOP:
                time.sleep(0.3)
                emit("info depth 20 score cp -900")
                emit("bestmove a2a3")
        elif command == "quit":
            break
    """
)


def make_late_session(tmp_path, *, flush_on_stop=True, **kwargs):
    script = tmp_path / "late_engine.py"
    script.write_text(LATE_BESTMOVE_SCRIPT.format(flush_on_stop=flush_on_stop))
    return EngineSession([sys.executable, str(script)], **kwargs)


def test_late_output_of_timed_out_search_is_not_reused(tmp_path) -> None:
    session = make_late_session(tmp_path, analysis_timeout=0.5)
    session.start()
    try:
        with pytest.raises(AnalysisTimeout):
            session.analyze_position(START_FEN, 30)
        analysis = session.analyze_position(START_FEN, 10)
    finally:
        session.stop()
    assert (analysis.best_move, analysis.evaluation, analysis.depth) == ("e2e4", 34, 10)


def test_search_that_never_finishes_fails_next_request(tmp_path) -> None:
    session = make_late_session(
        tmp_path, flush_on_stop=False, analysis_timeout=0.5, ready_timeout=0.5
    )
    session.start()
    try:
        with pytest.raises(AnalysisTimeout):
            session.analyze_position(START_FEN, 30)
        with pytest.raises(AnalysisTimeout):
            session.analyze_position(START_FEN, 10)
    finally:
        session.stop()


def test_process_exit_mid_search_raises(tmp_path) -> None:
    session, _ = make_session(tmp_path, ["info depth 1 score cp 5", "__exit__"])
    session.start()
    try:
        with pytest.raises(EngineTerminated):
            session.analyze_position(START_FEN, 5)
    finally:
        session.stop()


def test_missing_executable_is_unavailable(tmp_path) -> None:
    session = EngineSession([str(tmp_path / "no-such-engine")])
    with pytest.raises(EngineUnavailable):
        session.start()
    assert session.running is False


def test_silent_engine_times_out_on_start(tmp_path) -> None:
    session, _ = make_session(tmp_path, send_ready=False, ready_timeout=0.5)
    with pytest.raises(EngineTimeout):
        session.start()
    assert session.running is False


def test_stop_is_idempotent(started) -> None:
    session, log_path = started
    session.stop()
    session.stop()
    assert session.running is False
    assert sent_commands(log_path)[-1] == "quit"
    EngineSession().stop()


def test_analyze_requires_started_session() -> None:
    with pytest.raises(EngineError):
        EngineSession().analyze_position(START_FEN, 5)


def test_start_twice_is_rejected(started) -> None:
    session, _ = started
    with pytest.raises(EngineError):
        session.start()


def test_concurrent_requests_are_serialized(started) -> None:
    session, _ = started
    results = []

    def worker() -> None:
        results.append(session.analyze_position(START_FEN, 10))

    threads = [threading.Thread(target=worker) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert [analysis.best_move for analysis in results] == ["e2e4"] * 3
    assert all(analysis.evaluation == 34 for analysis in results)


def test_search_state_ignores_non_info_lines() -> None:
    state = SearchState()
    state.feed("id name depth 40 score cp 900")
    state.feed("info depth 7 score cp -12")
    assert (state.depth, state.evaluation, state.finished) == (7, -12, False)
    state.feed("bestmove not-a-move")
    assert state.finished is True
    assert state.best_move is None


def test_white_to_move_reads_side_field() -> None:
    assert white_to_move(START_FEN) is True
    assert white_to_move(BLACK_TO_MOVE_FEN) is False
    assert white_to_move("garbage") is True


@pytest.mark.stockfish
def test_real_engine_analyses_start_position() -> None:
    session = EngineSession(["stockfish"], threads=1, hash_mb=16)
    session.start()
    try:
        analysis = session.analyze_position(START_FEN, 8)
    finally:
        session.stop()
    assert analysis.best_move is not None
    assert analysis.depth >= 8
    assert abs(analysis.evaluation) < 200
