"""Records shared by the engine adapter, the monitor and the ledger client."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class GameStatus(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    FINISHED = "Finished"
    ABANDONED = "Abandoned"


class GameResult(str, Enum):
    WHITE_WINS = "WhiteWins"
    BLACK_WINS = "BlackWins"
    DRAW = "Draw"


@dataclass(frozen=True)
class Game:
    """Read-only copy of a game as reported by the ledger."""

    id: str
    white_player: str
    black_player: str
    status: GameStatus
    current_fen: str
    move_count: int
    result: Optional[GameResult] = None
    created_at: int = 0

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Game":
        """Build a game from a ledger record, raising ``ValueError`` when malformed."""
        if not isinstance(payload, dict):
            raise ValueError(f"Game payload must be an object, got {type(payload).__name__}")
        game_id = payload.get("id")
        if not game_id:
            raise ValueError("Game payload is missing an id")

        try:
            status = GameStatus(payload.get("status"))
        except ValueError:
            raise ValueError(f"Game {game_id} has unknown status {payload.get('status')!r}") from None

        raw_result = payload.get("result")
        result = None
        if raw_result:
            try:
                result = GameResult(raw_result)
            except ValueError:
                raise ValueError(f"Game {game_id} has unknown result {raw_result!r}") from None

        try:
            move_count = int(payload.get("move_count") or 0)
            created_at = int(payload.get("created_at") or 0)
        except (TypeError, ValueError):
            raise ValueError(f"Game {game_id} has non-integer counters") from None

        return cls(
            id=str(game_id),
            white_player=str(payload.get("white_player") or ""),
            black_player=str(payload.get("black_player") or ""),
            status=status,
            current_fen=str(payload.get("current_fen") or ""),
            move_count=move_count,
            result=result,
            created_at=created_at,
        )


@dataclass(frozen=True)
class Odds:
    """Payout multipliers in basis points (10000 = 1.00x)."""

    white_win: int
    black_win: int
    draw: int
    evaluation: int
    last_updated: int

    def multipliers(self) -> Dict[str, float]:
        return {
            "white_win": self.white_win / 10000,
            "black_win": self.black_win / 10000,
            "draw": self.draw / 10000,
        }


@dataclass(frozen=True)
class Analysis:
    fen: str
    evaluation: int
    best_move: Optional[str]
    depth: int
    odds: Odds

    @property
    def evaluation_pawns(self) -> float:
        return self.evaluation / 100.0


@dataclass(frozen=True)
class CachedGameState:
    """The oracle's last view of a game; replaced wholesale on re-analysis."""

    game: Game
    last_analysis: Optional[Analysis]
    last_checked: float
