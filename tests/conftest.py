"""Shared test fixtures with dual-mode support (mocked vs real Stockfish).

Usage:
    pytest tests/                  # Fast, mocked engine (no Stockfish)
    pytest tests/ --e2e            # Real Stockfish for integration tests

Fixtures:
    clock             - FakeClock driving timers and scheduled callbacks.
    store / progress  - In-memory store and a ProgressStore on top of it.
    bank              - PuzzleBank holding SAMPLE_PUZZLES.
    failing_store     - Store whose writes raise PersistenceError on demand.
    mock_popen        - Patches popen_uci with a mock Stockfish process.
    enable_validation - Sets PUZZLE_TRAINER_VALIDATE=1 for schema validation.
"""

from __future__ import annotations

import os
import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import chess
import chess.engine
import pytest

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_PROJECT_ROOT))

from trainer.errors import PersistenceError  # noqa: E402
from trainer.models import Puzzle  # noqa: E402
from trainer.progress import ProgressStore  # noqa: E402
from trainer.puzzles import PuzzleBank  # noqa: E402
from trainer.store import MemoryStore  # noqa: E402

SEED_PATH = _PROJECT_ROOT / "puzzles" / "seed.json"

# Noon local time, so +/- a few hours never crosses midnight
NOW_MS = int(datetime(2025, 3, 12, 12, 0, 0).timestamp() * 1000)
DAY_MS = 24 * 60 * 60 * 1000


# ---------------------------------------------------------------------------
# CLI option and marker registration
# ---------------------------------------------------------------------------


def pytest_addoption(parser):
    """Register --e2e CLI flag for real Stockfish tests."""
    parser.addoption(
        "--e2e",
        action="store_true",
        default=False,
        help="Run with real Stockfish engine (no mocks).",
    )


def pytest_configure(config):
    """Register the e2e marker."""
    config.addinivalue_line(
        "markers", "e2e: mark test as end-to-end (requires real Stockfish)"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--e2e"):
        return
    skip = pytest.mark.skip(reason="needs --e2e and a Stockfish binary")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip)


# ---------------------------------------------------------------------------
# Sample puzzles
# ---------------------------------------------------------------------------

BACK_RANK = Puzzle(
    id="backrank-001",
    fen="2r3k1/5ppp/8/8/8/8/3R1PPP/3R2K1 w - - 0 1",
    solution=("Rd8+", "Rxd8", "Rxd8#"),
    difficulty="medium",
    rating=1300,
    learning_themes=("backrank-mate",),
)

FORK = Puzzle(
    id="fork-001",
    fen="r3k3/8/8/1N6/8/8/8/4K3 w - - 0 1",
    solution=("Nc7+", "Kd7", "Nxa8"),
    difficulty="medium",
    rating=1100,
    main_tactic="royal-fork",
)

PROMOTION = Puzzle(
    id="promotion-001",
    fen="6k1/P7/6K1/8/8/8/8/8 b - - 0 1",
    solution=("Kh8", "a8=Q#"),
    difficulty="simple",
    rating=700,
)

SCHOLAR = Puzzle(
    id="scholar-001",
    fen="r1bqkb1r/pppp1ppp/2n2n2/4p2Q/2B1P3/8/PPPP1PPP/RNB1K1NR w KQkq - 4 4",
    solution=("Qxf7#",),
    difficulty="simple",
    rating=600,
)

ITALIAN = Puzzle(
    id="opening-italian-001",
    fen=chess.STARTING_FEN,
    solution=("e4", "e5", "Nf3", "Nc6", "Bc4", "Bc5"),
    difficulty="hard",
    rating=1400,
)

RUY_LOPEZ = Puzzle(
    id="opening-ruy-001",
    fen=chess.STARTING_FEN,
    solution=("e4", "e5", "Nf3", "Nc6", "Bb5", "a6", "Ba4"),
    difficulty="ultra",
    rating=1500,
)

SAMPLE_PUZZLES = [BACK_RANK, FORK, PROMOTION, SCHOLAR, ITALIAN, RUY_LOPEZ]


class FakeClock:
    """Millisecond clock moved by hand."""

    def __init__(self, start: int = 0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FailingStore(MemoryStore):
    """MemoryStore whose writes fail while ``fail_writes`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = False

    def _flush(self, collection: str) -> None:
        if self.fail_writes:
            raise PersistenceError(f"store offline ({collection})", collection=collection)


def make_bank(store, *puzzles: Puzzle) -> PuzzleBank:
    bank = PuzzleBank(store)
    bank.save_puzzles(list(puzzles))
    return bank


def solve(controller) -> None:
    """Play the current puzzle's full solution through the controller."""
    for san in controller.puzzle.solution:
        controller.submit_san(san)


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock():
    return FakeClock(1_000_000)


@pytest.fixture()
def wall_clock():
    return FakeClock(NOW_MS)


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def progress(store, wall_clock):
    return ProgressStore(store, clock=wall_clock)


@pytest.fixture()
def bank(store):
    return make_bank(store, *SAMPLE_PUZZLES)


@pytest.fixture()
def failing_store():
    return FailingStore()


# ---------------------------------------------------------------------------
# Mock Stockfish fixture
# ---------------------------------------------------------------------------


def _make_mock_engine() -> MagicMock:
    """Create a mock SimpleEngine whose analysis returns the first legal move."""
    eng = MagicMock(spec=chess.engine.SimpleEngine)

    def _analyse(board: chess.Board, limit, **kwargs):
        legal = list(board.legal_moves)
        return {
            "depth": limit.depth or 1,
            "score": chess.engine.PovScore(chess.engine.Cp(35), board.turn),
            "pv": legal[:2],
        }

    eng.analyse = MagicMock(side_effect=_analyse)
    eng.quit = MagicMock()
    return eng


@pytest.fixture()
def mock_popen(request):
    """Patch popen_uci so AnalysisEngine starts a mock Stockfish.

    Skipped when --e2e flag is passed (uses real Stockfish instead).
    """
    if request.config.getoption("--e2e"):
        yield None, None
        return

    eng = _make_mock_engine()
    with patch("chess.engine.SimpleEngine.popen_uci", return_value=eng) as popen:
        yield popen, eng


# ---------------------------------------------------------------------------
# Schema validation fixture
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def enable_validation():
    """Set PUZZLE_TRAINER_VALIDATE=1 for the test session.

    Restores the original env var value after the test.
    """
    original = os.environ.get("PUZZLE_TRAINER_VALIDATE")
    os.environ["PUZZLE_TRAINER_VALIDATE"] = "1"
    yield
    if original is None:
        os.environ.pop("PUZZLE_TRAINER_VALIDATE", None)
    else:
        os.environ["PUZZLE_TRAINER_VALIDATE"] = original
