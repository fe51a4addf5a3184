"""Polls the ledger, keeps a per-game cache and re-prices games whose position moved."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional

from analyzer import PositionAnalyzer
from engine_comm import EngineError
from ledger import GameLedger, LedgerQueryFailed
from models import CachedGameState, Game, GameStatus
from odds import OddsUpdater, compute_odds

logger = logging.getLogger(__name__)

DEFAULT_DEPTH = 15
DEFAULT_STALE_AFTER = 60.0


class GameMonitor:
    """Owns the game cache; only ever driven by one monitoring cycle at a time."""

    def __init__(
        self,
        ledger: GameLedger,
        analyzer: PositionAnalyzer,
        odds_updater: OddsUpdater,
        *,
        depth: int = DEFAULT_DEPTH,
        stale_after: float = DEFAULT_STALE_AFTER,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ledger = ledger
        self._analyzer = analyzer
        self._odds_updater = odds_updater
        self.depth = depth
        self.stale_after = stale_after
        self._clock = clock
        self._games: Dict[str, CachedGameState] = {}

    def fetch_active_games(self) -> List[Game]:
        """Return the ledger's active set, or an empty list when the query fails.

        An empty result means "nothing to do this cycle", not "every game ended".
        """
        return self._fetch_snapshot() or []

    def _fetch_snapshot(self) -> Optional[List[Game]]:
        try:
            return self._ledger.fetch_active_games()
        except LedgerQueryFailed as exc:
            logger.error("Failed to fetch active games: %s", exc)
            return None

    def should_analyze(self, game: Game) -> bool:
        cached = self._games.get(game.id)
        if cached is None:
            return True
        if cached.game.move_count != game.move_count:
            return True
        return self._clock() - cached.last_checked > self.stale_after

    def monitor_game(self, game_id: str) -> None:
        try:
            game = self._ledger.fetch_game(game_id)
        except LedgerQueryFailed as exc:
            logger.error("Failed to fetch game %s: %s", game_id, exc)
            return

        if game is None:
            logger.warning("Game not found: %s", game_id)
            self.evict(game_id)
            return

        if game.status is GameStatus.ACTIVE:
            if self.should_analyze(game):
                self._reprice(game)
        elif game.status is GameStatus.FINISHED:
            result = game.result.value if game.result else "unknown"
            logger.info("Game finished: %s Result: %s", game_id, result)
            self.evict(game_id)
        else:
            logger.info("Game not active: %s Status: %s", game_id, game.status.value)

    def monitor_all_games(self) -> int:
        """Run one pass over a single ledger snapshot and return its size.

        A failed fetch leaves the cache alone; a successful one evicts every
        cached id that is not Active in that same snapshot.
        """
        games = self._fetch_snapshot()
        if games is None:
            logger.warning("No ledger data this cycle; cache left unchanged")
            return 0
        logger.info("Monitoring %d active games", len(games))

        active_ids = set()
        for game in games:
            if game.status is not GameStatus.ACTIVE:
                continue
            active_ids.add(game.id)
            try:
                self.monitor_game(game.id)
            except Exception:
                logger.exception("Unexpected error while monitoring game %s", game.id)

        for game_id in [cached_id for cached_id in self._games if cached_id not in active_ids]:
            logger.info("Removing stale game from cache: %s", game_id)
            self.evict(game_id)
        return len(games)

    def get_active_game_count(self) -> int:
        return len(self._games)

    def cached_state(self, game_id: str) -> Optional[CachedGameState]:
        return self._games.get(game_id)

    def evict(self, game_id: str) -> None:
        self._games.pop(game_id, None)

    def _reprice(self, game: Game) -> None:
        logger.info("Analyzing game: %s (move %d)", game.id, game.move_count)
        try:
            analysis = self._analyzer.analyze(game.current_fen, self.depth)
        except EngineError as exc:
            logger.error("Failed to analyze game %s: %s", game.id, exc)
            return

        odds = compute_odds(analysis.evaluation)
        if not self._odds_updater.update_odds(game.id, odds):
            logger.warning("Odds push for game %s failed; keeping local analysis", game.id)

        self._games[game.id] = CachedGameState(
            game=game,
            last_analysis=analysis,
            last_checked=self._clock(),
        )
