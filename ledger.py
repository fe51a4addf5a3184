"""GraphQL client for the external game and betting applications."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type

import requests

from models import Game

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

GAME_FIELDS = """
    id
    white_player
    black_player
    status
    current_fen
    move_count
    result
    created_at
"""

ACTIVE_GAMES_QUERY = f"""
query GetActiveGames {{
  activeGames {{{GAME_FIELDS}  }}
}}
"""

GAME_QUERY = f"""
query GetGame($gameId: String!) {{
  game(gameId: $gameId) {{{GAME_FIELDS}  }}
}}
"""


class LedgerError(Exception):
    """Base class for failures talking to the ledger service."""


class LedgerQueryFailed(LedgerError):
    pass


class LedgerMutationFailed(LedgerError):
    pass


def application_url(service_url: str, chain_id: str, app_id: str) -> str:
    return f"{service_url.rstrip('/')}/chains/{chain_id}/applications/{app_id}"


class GraphQLClient:
    """Posts GraphQL documents to one application endpoint."""

    def __init__(
        self,
        url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def execute(
        self,
        document: str,
        variables: Optional[Dict[str, Any]] = None,
        *,
        error_cls: Type[LedgerError] = LedgerQueryFailed,
    ) -> Dict[str, Any]:
        """Run ``document`` and return its ``data`` object.

        Transport failures, HTTP errors, undecodable bodies and GraphQL
        ``errors`` arrays are all raised as ``error_cls``.
        """
        payload: Dict[str, Any] = {"query": document}
        if variables:
            payload["variables"] = variables

        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout as exc:
            raise error_cls(f"Request to {self.url} timed out after {self.timeout}s") from exc
        except requests.exceptions.RequestException as exc:
            raise error_cls(f"Request to {self.url} failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise error_cls(f"Response from {self.url} is not JSON") from exc

        if not isinstance(body, dict):
            raise error_cls(f"Unexpected response shape from {self.url}: {type(body).__name__}")

        errors = body.get("errors")
        if errors:
            messages = "; ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            raise error_cls(f"GraphQL error from {self.url}: {messages}")

        data = body.get("data")
        return data if isinstance(data, dict) else {}


class GameLedger:
    """Read side of the game application."""

    def __init__(self, client: GraphQLClient) -> None:
        self._client = client

    def fetch_active_games(self) -> List[Game]:
        data = self._client.execute(ACTIVE_GAMES_QUERY)
        records = data.get("activeGames") or []
        if not isinstance(records, list):
            raise LedgerQueryFailed(f"activeGames is not a list: {type(records).__name__}")

        games: List[Game] = []
        for record in records:
            try:
                games.append(Game.from_payload(record))
            except ValueError as exc:
                logger.warning("Skipping malformed game record: %s", exc)
        return games

    def fetch_game(self, game_id: str) -> Optional[Game]:
        data = self._client.execute(GAME_QUERY, {"gameId": game_id})
        record = data.get("game")
        if record is None:
            return None
        try:
            return Game.from_payload(record)
        except ValueError as exc:
            raise LedgerQueryFailed(f"Malformed record for game {game_id}: {exc}") from exc
