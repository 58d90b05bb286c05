"""Runtime configuration for the puzzle trainer.

Paths and timings are module constants. Paths and the log level can be
overridden through environment variables so the MCP server, the TUI and
the tests can point at their own data directories.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

DATA_DIR = Path(os.environ.get("PUZZLE_TRAINER_DATA_DIR", _PROJECT_ROOT / "data"))
SEED_FILE = Path(os.environ.get("PUZZLE_TRAINER_SEED", _PROJECT_ROOT / "puzzles" / "seed.json"))
STORE_FILE = DATA_DIR / "trainer.json"
CURRENT_PUZZLE_FILE = DATA_DIR / "current_puzzle.json"
STOCKFISH_PATH = os.environ.get("PUZZLE_TRAINER_STOCKFISH") or None
LOG_LEVEL = os.environ.get("PUZZLE_TRAINER_LOG_LEVEL", "WARNING").upper()

EXPORT_VERSION = "1.0.0"

# Mode timings in milliseconds
DAILY_TIME_LIMIT_MS = 120_000
RUSH_SESSION_MS = 15 * 60 * 1000
RUSH_PUZZLE_LIMIT_MS = 30_000
BLITZ_SOLVED_DELAY_MS = 1500
BLITZ_TIMEOUT_DELAY_MS = 2000
RUSH_SOLVED_DELAY_MS = 1000

# Analysis engine bounds
ENGINE_TIMEOUT_S = 3.0
ENGINE_HINT_DEPTH = 8
ENGINE_HINT_BUDGET_MS = 2000


def configure_logging(level: str | None = None) -> None:
    """Set up root logging for CLI entry points."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
