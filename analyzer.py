import logging

import chess

from engine_comm import Engine, EngineError
from models import Analysis

logger = logging.getLogger(__name__)


def describe_move(fen: str, move_uci: str) -> str:
    """Render a UCI move as SAN for logs, keeping the UCI text if the position won't parse."""
    try:
        board = chess.Board(fen)
        move = chess.Move.from_uci(move_uci)
        if move not in board.legal_moves:
            return move_uci
        return f"{board.san(move)} ({move_uci})"
    except ValueError:
        return move_uci


class PositionAnalyzer:
    """Narrow front for the engine: analyse, log, hand back the record unchanged."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def analyze(self, fen: str, depth: int) -> Analysis:
        try:
            analysis = self._engine.analyze_position(fen, depth)
        except EngineError as exc:
            logger.error("Position analysis failed for %s: %s", fen, exc)
            raise

        multipliers = analysis.odds.multipliers()
        best_move = describe_move(fen, analysis.best_move) if analysis.best_move else "none"
        logger.info("Position analysis: %s", fen)
        logger.info(
            "  Evaluation: %d cp (%.2f pawns), depth %d",
            analysis.evaluation,
            analysis.evaluation_pawns,
            analysis.depth,
        )
        logger.info("  Best move: %s", best_move)
        logger.info(
            "  Odds: W %.2fx B %.2fx D %.2fx",
            multipliers["white_win"],
            multipliers["black_win"],
            multipliers["draw"],
        )
        return analysis
