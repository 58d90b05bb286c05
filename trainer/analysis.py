"""Optional Stockfish analysis for hints and solution checks.

Wraps Stockfish via the python-chess UCI interface. The engine is an
injected service with an explicit lifecycle: a missing binary, a slow
engine or a crashed process all degrade to "no analysis" and are never
raised to the caller.
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path

import chess
import chess.engine

from trainer import config

logger = logging.getLogger(__name__)

# Stockfish search paths in priority order
_STOCKFISH_PATHS = [
    "/opt/homebrew/bin/stockfish",
    "/usr/local/bin/stockfish",
    "/usr/bin/stockfish",
    "/usr/games/stockfish",
]

_MATE_SCORE = 10000

_ENGINE_ERRORS = (chess.engine.EngineError, chess.engine.EngineTerminatedError, TimeoutError, OSError)


def _find_stockfish() -> str | None:
    """Auto-detect the Stockfish binary.

    Checks known install paths, then falls back to PATH lookup.

    Returns:
        Path to the binary, or None if it is not installed.
    """
    for path_str in _STOCKFISH_PATHS:
        if Path(path_str).is_file():
            return path_str
    return shutil.which("stockfish")


@dataclass
class AnalysisResult:
    """Engine verdict for one position."""

    depth: int
    best_move: str | None = None
    score_cp: int | None = None
    mate: int | None = None
    pv: list[str] = field(default_factory=list)


class AnalysisEngine:
    """Stockfish wrapper that never raises to its caller.

    Args:
        stockfish_path: Explicit binary path. If None, uses
            PUZZLE_TRAINER_STOCKFISH or auto-detects.
        timeout_s: Upper bound for starting the engine.
    """

    def __init__(
        self,
        stockfish_path: str | None = None,
        timeout_s: float = config.ENGINE_TIMEOUT_S,
    ) -> None:
        self._stockfish_path = stockfish_path or config.STOCKFISH_PATH
        self._timeout_s = timeout_s
        self._engine: chess.engine.SimpleEngine | None = None

    @property
    def available(self) -> bool:
        return self._engine is not None

    def _open_engine(self) -> chess.engine.SimpleEngine:
        return chess.engine.SimpleEngine.popen_uci(self._stockfish_path, timeout=self._timeout_s)

    def initialize(self) -> bool:
        """Start Stockfish. Returns whether the engine is usable."""
        if self._engine is not None:
            return True

        if self._stockfish_path is None:
            self._stockfish_path = _find_stockfish()
        if self._stockfish_path is None:
            logger.info("Stockfish not found; engine hints disabled")
            return False

        try:
            self._engine = self._open_engine()
        except _ENGINE_ERRORS as exc:
            logger.info("Stockfish at %s failed to start: %s", self._stockfish_path, exc)
            self._engine = None
            return False
        return True

    def analyze(
        self,
        fen: str,
        depth: int = 10,
        time_budget_ms: int = 3000,
    ) -> AnalysisResult | None:
        """Search a position for at most ``time_budget_ms``.

        Returns None when the engine is unavailable, the FEN is invalid or
        the search fails.
        """
        if self._engine is None:
            return None
        try:
            board = chess.Board(fen)
        except ValueError:
            return None

        limit = chess.engine.Limit(depth=depth, time=time_budget_ms / 1000)
        try:
            info = self._engine.analyse(board, limit)
        except chess.engine.EngineTerminatedError:
            logger.warning("Stockfish terminated; engine hints disabled")
            self._engine = None
            return None
        except _ENGINE_ERRORS as exc:
            logger.warning("Analysis failed for %s: %s", fen, exc)
            return None

        pv_moves = info.get("pv", [])
        result = AnalysisResult(depth=info.get("depth", 0), pv=[m.uci() for m in pv_moves])
        if pv_moves:
            result.best_move = pv_moves[0].uci()
        score = info.get("score")
        if score is not None:
            pov = score.relative
            result.score_cp = pov.score(mate_score=_MATE_SCORE)
            result.mate = pov.mate()
        return result

    def best_move(
        self,
        fen: str,
        time_budget_ms: int = config.ENGINE_HINT_BUDGET_MS,
    ) -> str | None:
        """Engine best move in UCI for use as a hint, or None."""
        result = self.analyze(fen, depth=config.ENGINE_HINT_DEPTH, time_budget_ms=time_budget_ms)
        return result.best_move if result is not None else None

    def verify_solution(self, fen: str, moves: list[str]) -> bool:
        """Check a SAN solution line against the engine.

        Without an engine the line is trusted. With one, every move must be
        legal; moves that differ from the engine's choice are only logged.
        """
        if self._engine is None:
            return True
        try:
            board = chess.Board(fen)
        except ValueError:
            return False

        for san in moves:
            try:
                move = board.parse_san(san)
            except ValueError:
                return False
            best = self.best_move(board.fen())
            if best is not None and best != move.uci():
                logger.info("Engine prefers %s over %s in %s", best, san, board.fen())
            board.push(move)
        return True

    def shutdown(self) -> None:
        """Stop the Stockfish process."""
        if self._engine is None:
            return
        try:
            self._engine.quit()
        except chess.engine.EngineTerminatedError:
            pass
        finally:
            self._engine = None


# ---------------------------------------------------------------------------
# CLI interface
# ---------------------------------------------------------------------------


def main() -> int:
    """Analyze a FEN from the command line."""
    parser = argparse.ArgumentParser(description="Analyze a position with Stockfish")
    parser.add_argument("fen", type=str, help="FEN string to analyze")
    parser.add_argument("--depth", type=int, default=10)
    parser.add_argument("--budget-ms", type=int, default=3000)
    args = parser.parse_args()
    config.configure_logging()

    engine = AnalysisEngine()
    if not engine.initialize():
        print("Stockfish is not available.")
        return 1
    try:
        result = engine.analyze(args.fen, args.depth, args.budget_ms)
    finally:
        engine.shutdown()

    if result is None:
        print("No analysis.")
        return 1
    score_str = (
        f"Mate in {result.mate}"
        if result.mate is not None
        else f"{(result.score_cp or 0) / 100.0:+.2f}"
    )
    print(f"Depth {result.depth}: {score_str}  best {result.best_move}")
    print("  " + " ".join(result.pv[:6]))
    return 0


if __name__ == "__main__":
    sys.exit(main())
