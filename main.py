# MAIN
import argparse
import logging
import shlex
import signal
import sys
import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence

from analyzer import PositionAnalyzer
from config import ConfigurationMissing, OracleConfig
from engine_comm import EngineError, EngineSession
from game_monitor import GameMonitor
from ledger import GameLedger, GraphQLClient
from odds import OddsUpdater
from scheduler import GameScheduler
from utils import setup_logging

logger = logging.getLogger("oracle")

BANNER = (
    "========================================",
    "  Speed Chess Betting Oracle",
    "  Stockfish Position Analysis Service",
    "========================================",
)


@dataclass
class OracleContext:
    """Everything one oracle instance owns; built per process, never global."""

    config: OracleConfig
    engine: EngineSession
    ledger: GameLedger
    analyzer: PositionAnalyzer
    odds_updater: OddsUpdater
    monitor: GameMonitor
    scheduler: GameScheduler


def build_context(config: OracleConfig) -> OracleContext:
    engine = EngineSession(
        shlex.split(config.stockfish_path),
        threads=config.stockfish_threads,
        hash_mb=config.stockfish_hash_mb,
    )
    ledger = GameLedger(GraphQLClient(config.game_app_url, timeout=config.request_timeout))
    odds_updater = OddsUpdater(GraphQLClient(config.betting_app_url, timeout=config.request_timeout))
    analyzer = PositionAnalyzer(engine)
    monitor = GameMonitor(
        ledger,
        analyzer,
        odds_updater,
        depth=config.stockfish_depth,
        stale_after=config.stale_after,
    )
    scheduler = GameScheduler(monitor, interval=config.polling_interval)
    return OracleContext(config, engine, ledger, analyzer, odds_updater, monitor, scheduler)


def shutdown(context: OracleContext, cycle_timeout: Optional[float] = None) -> None:
    logger.info("Shutting down gracefully...")
    context.scheduler.stop()
    context.scheduler.join(timeout=cycle_timeout)
    context.engine.stop()
    logger.info("Oracle service stopped")


def parse_args(argv: Optional[Sequence[str]] = None):
    parser = argparse.ArgumentParser(description="Chess odds oracle")
    parser.add_argument("-dev", action="store_true", help="Enable debug logging, including engine I/O")
    parser.add_argument("--engine", help="Engine command (overrides STOCKFISH_PATH)")
    parser.add_argument("--depth", type=int, help="Search depth (overrides STOCKFISH_DEPTH)")
    parser.add_argument(
        "--interval", type=int, help="Polling interval in seconds (overrides ORACLE_POLLING_INTERVAL)"
    )
    parser.add_argument(
        "--once", action="store_true", help="Run a single monitoring cycle and exit"
    )
    return parser.parse_args(argv)


def load_config(args) -> OracleConfig:
    config = OracleConfig.from_env()
    if args.engine:
        config.stockfish_path = args.engine
    if args.depth is not None:
        config.stockfish_depth = args.depth
    if args.interval is not None:
        config.polling_interval = args.interval
    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(debug=args.dev)
    for line in BANNER:
        logger.info(line)

    try:
        config = load_config(args)
    except ConfigurationMissing as exc:
        logger.error("Configuration invalid: %s", exc)
        return 1
    logger.info("Configuration validated")
    logger.info("  Game App: %s", config.game_app_id)
    logger.info("  Betting App: %s", config.betting_app_id)
    logger.info("  Service URL: %s", config.service_url)

    context = build_context(config)
    logger.info("Starting engine: %s", config.stockfish_path)
    try:
        context.engine.start()
    except EngineError as exc:
        logger.error("Fatal: %s", exc)
        context.engine.stop()
        return 1

    stop_requested = threading.Event()

    def request_stop(signum, _frame) -> None:
        logger.info("Received %s", signal.Signals(signum).name)
        stop_requested.set()

    try:
        context.scheduler.run_once()
        if args.once:
            return 0

        signal.signal(signal.SIGINT, request_stop)
        signal.signal(signal.SIGTERM, request_stop)
        context.scheduler.start()
        logger.info("Oracle service running... Press Ctrl+C to stop")
        while not stop_requested.wait(1.0):
            pass
        return 0
    finally:
        shutdown(context, cycle_timeout=context.engine.analysis_timeout * 2)


if __name__ == "__main__":
    sys.exit(main())
