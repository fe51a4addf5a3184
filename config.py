from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from ledger import application_url

DEFAULT_SERVICE_URL = "http://localhost:9001"
REQUIRED_FIELDS = {
    "game_app_id": "GAME_APP_ID",
    "betting_app_id": "BETTING_APP_ID",
    "chain_id": "ORACLE_CHAIN_ID",
}


class ConfigurationMissing(Exception):
    """Raised when the oracle cannot start because its settings are incomplete."""


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationMissing(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class OracleConfig:
    """Oracle settings; required identifiers come from the deployment environment."""

    game_app_id: str = ""
    betting_app_id: str = ""
    chain_id: str = ""
    service_url: str = DEFAULT_SERVICE_URL
    polling_interval: int = 30
    stockfish_depth: int = 15
    stockfish_path: str = "stockfish"
    stockfish_threads: int = 4
    stockfish_hash_mb: int = 256
    stale_after: int = 60
    request_timeout: int = 10

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "OracleConfig":
        if environ is None:
            load_dotenv()
            environ = os.environ
        return cls(
            game_app_id=environ.get("GAME_APP_ID", "").strip(),
            betting_app_id=environ.get("BETTING_APP_ID", "").strip(),
            chain_id=environ.get("ORACLE_CHAIN_ID", "").strip(),
            service_url=environ.get("LINERA_SERVICE_URL", "").strip() or DEFAULT_SERVICE_URL,
            polling_interval=_int_setting(environ, "ORACLE_POLLING_INTERVAL", 30),
            stockfish_depth=_int_setting(environ, "STOCKFISH_DEPTH", 15),
            stockfish_path=environ.get("STOCKFISH_PATH", "").strip() or "stockfish",
            stockfish_threads=_int_setting(environ, "STOCKFISH_THREADS", 4),
            stockfish_hash_mb=_int_setting(environ, "STOCKFISH_HASH", 256),
            stale_after=_int_setting(environ, "ORACLE_STALE_AFTER", 60),
            request_timeout=_int_setting(environ, "LEDGER_TIMEOUT", 10),
        )

    def validate(self) -> None:
        missing: List[str] = [env for field, env in REQUIRED_FIELDS.items() if not getattr(self, field)]
        if missing:
            raise ConfigurationMissing(f"Missing required settings: {', '.join(missing)}")
        for name in (
            "polling_interval",
            "stockfish_depth",
            "stockfish_threads",
            "stockfish_hash_mb",
            "stale_after",
            "request_timeout",
        ):
            if getattr(self, name) <= 0:
                raise ConfigurationMissing(f"{name} must be positive")

    @property
    def game_app_url(self) -> str:
        return application_url(self.service_url, self.chain_id, self.game_app_id)

    @property
    def betting_app_url(self) -> str:
        return application_url(self.service_url, self.chain_id, self.betting_app_id)
