import os
import shutil
import sys

import pytest

# Ensure repo-local imports (e.g., `import engine_comm`) resolve without extra setup.
src_dir = os.path.abspath(os.path.dirname(__file__))
if src_dir not in sys.path:
    sys.path.insert(0, src_dir)


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "-S",
        "--stockfish",
        action="store_true",
        default=False,
        dest="run_stockfish",
        help="Run tests marked with @pytest.mark.stockfish (requires a stockfish binary on PATH)",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "stockfish: needs a real stockfish binary")


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    if config.getoption("run_stockfish") and shutil.which("stockfish"):
        return
    skip_engine = pytest.mark.skip(reason="use -S/--stockfish with stockfish on PATH to enable")
    for item in items:
        if "stockfish" in item.keywords:
            item.add_marker(skip_engine)
