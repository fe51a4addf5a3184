"""Centipawn evaluations to three-way odds, and the push to the betting ledger."""

from __future__ import annotations

import logging
import math
import time
from typing import Optional, Tuple

from ledger import GraphQLClient, LedgerMutationFailed
from models import Odds

logger = logging.getLogger(__name__)

MIN_ODDS = 10000
MAX_ODDS = 100000
MIN_PROBABILITY = 0.01
BASE_DRAW_RATE = 0.25
DRAW_DECAY_PAWNS = 5.0
LOGISTIC_SCALE_PAWNS = 4.0

UPDATE_ODDS_MUTATION = """
mutation UpdateOdds($gameId: String!, $evaluation: Int!) {
  updateOdds(gameId: $gameId, evaluation: $evaluation)
}
"""


def outcome_probabilities(centipawns: float) -> Tuple[float, float, float]:
    """Return normalised (white, black, draw) probabilities for an evaluation.

    Black's share is the remainder after White and the draw, so for decisive
    evaluations it can dip slightly below zero before normalisation.
    """
    if not math.isfinite(centipawns):
        raise ValueError(f"Evaluation must be finite, got {centipawns!r}")

    pawns = centipawns / 100.0
    # 10 ** 300 is near the float ceiling; beyond it White's share is zero anyway
    exponent = max(-300.0, min(300.0, -pawns / LOGISTIC_SCALE_PAWNS))
    white = 1.0 / (1.0 + 10.0 ** exponent)
    draw = BASE_DRAW_RATE * math.exp(-abs(pawns) / DRAW_DECAY_PAWNS)
    black = 1.0 - white - draw

    total = white + black + draw
    return white / total, black / total, draw / total


def probability_to_odds(probability: float) -> int:
    if probability < MIN_PROBABILITY:
        return MAX_ODDS
    odds = round(10000 / probability)
    return max(MIN_ODDS, min(MAX_ODDS, odds))


def compute_odds(centipawns: int, now_ms: Optional[int] = None) -> Odds:
    white, black, draw = outcome_probabilities(centipawns)
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return Odds(
        white_win=probability_to_odds(white),
        black_win=probability_to_odds(black),
        draw=probability_to_odds(draw),
        evaluation=int(centipawns),
        last_updated=now_ms,
    )


class OddsUpdater:
    """Ships evaluations to the betting application, which recomputes stored odds."""

    def __init__(self, client: GraphQLClient) -> None:
        self._client = client

    def update_odds(self, game_id: str, odds: Odds) -> bool:
        try:
            self._client.execute(
                UPDATE_ODDS_MUTATION,
                {"gameId": game_id, "evaluation": odds.evaluation},
                error_cls=LedgerMutationFailed,
            )
        except LedgerMutationFailed as exc:
            logger.error("Failed to update odds for game %s: %s", game_id, exc)
            return False

        logger.info("Odds updated for game %s (evaluation %+d cp)", game_id, odds.evaluation)
        return True
