"""MCP server for the chess puzzle trainer.

Exposes puzzle sessions, hints and progress tools via FastMCP.
Sessions are stored in memory keyed by UUID. The active session is
synced to data/current_puzzle.json after every change for TUI consumption.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

from mcp.server.fastmcp import FastMCP

from trainer import config
from trainer.analysis import AnalysisEngine
from trainer.app import open_services
from trainer.errors import InvalidImportError, PersistenceError
from trainer.models import LEVELS
from trainer.modes import MODES, ModeController, PracticeController, create_controller
from trainer.progress import ProgressStore
from trainer.puzzles import PuzzleBank
from trainer.solver import RejectReason

from response_schemas import (  # noqa: E402
    minify_profile,
    minify_session,
    minify_stats,
)

logger = logging.getLogger(__name__)

mcp = FastMCP("chess-puzzle-trainer")

# In-memory session store: session_id -> ModeController
_sessions: dict[str, ModeController] = {}

_DATA_DIR = config.DATA_DIR

# Opened on first use so tests can swap in their own store
_bank: PuzzleBank | None = None
_progress: ProgressStore | None = None
_engine: AnalysisEngine | None = None


def _services() -> tuple[PuzzleBank, ProgressStore]:
    global _bank, _progress
    if _bank is None or _progress is None:
        _bank, _progress = open_services()
    return _bank, _progress


def _get_engine() -> AnalysisEngine:
    global _engine
    if _engine is None:
        _engine = AnalysisEngine()
        _engine.initialize()
    return _engine


def _sync_session_json(state: dict) -> None:
    """Write session state to data/current_puzzle.json atomically.

    Uses temp file + os.replace() for atomic write. A failed write only
    costs the TUI an update.

    Args:
        state: Session snapshot to persist.
    """
    try:
        _DATA_DIR.mkdir(parents=True, exist_ok=True)
        target = _DATA_DIR / "current_puzzle.json"
        tmp = _DATA_DIR / "current_puzzle.tmp"
        tmp.write_text(
            json.dumps(state, indent=2, default=str, ensure_ascii=False),
            encoding="utf-8",
        )
        os.replace(tmp, target)
    except OSError:
        logger.warning("Could not sync session state for the TUI", exc_info=True)


def _get_session(session_id: str) -> ModeController | None:
    """Look up a session by ID and let its timers catch up.

    Args:
        session_id: UUID string.

    Returns:
        Controller or None if not found.
    """
    controller = _sessions.get(session_id)
    if controller is not None:
        controller.tick()
    return controller


def _session_state(session_id: str, controller: ModeController, sync: bool = True) -> dict:
    state = controller.snapshot()
    state["session_id"] = session_id
    if sync:
        _sync_session_json(state)
    return minify_session(state)


def _parse_move(move: str) -> tuple[str, str, str | None] | None:
    """Split a UCI move like 'e2e4' or 'a7a8q'; None for anything else."""
    move = move.strip()
    if len(move) not in (4, 5):
        return None
    origin, target, promotion = move[:2], move[2:4], move[4:] or None
    if origin[0] in "abcdefgh" and origin[1] in "12345678" and target[0] in "abcdefgh" and target[1] in "12345678":
        return origin, target, promotion
    return None


# ---------------------------------------------------------------------------
# Session tools
# ---------------------------------------------------------------------------


@mcp.tool()
def start_session(
    mode: str = "practice",
    difficulty: str | None = None,
    time_limit_s: int | None = None,
) -> dict:
    """Start a puzzle session and load its first puzzle.

    Args:
        mode: 'practice', 'blitz', 'daily' or 'rush'. Default 'practice'.
        difficulty: Optional 'simple', 'medium', 'hard' or 'ultra' for
            practice and blitz. Blitz defaults to adaptive.
        time_limit_s: Blitz seconds per puzzle. Defaults to settings.

    Returns:
        Session dict with the first puzzle position.
    """
    if mode not in MODES:
        return {"error": f"Unknown mode: {mode}. Use one of {sorted(MODES)}"}

    kwargs: dict = {}
    if mode in ("practice", "blitz") and difficulty is not None:
        kwargs["difficulty"] = difficulty
    if mode == "blitz" and time_limit_s is not None:
        if time_limit_s < 0:
            return {"error": f"time_limit_s must be >= 0, got {time_limit_s}"}
        kwargs["time_limit_s"] = time_limit_s

    try:
        bank, progress = _services()
    except PersistenceError as exc:
        return {"error": str(exc)}

    controller = create_controller(mode, bank, progress, engine=_engine, **kwargs)
    if controller.load_next() is None:
        return {"error": "No puzzles available. Check the seed file."}

    session_id = str(uuid.uuid4())
    _sessions[session_id] = controller
    return _session_state(session_id, controller)


@mcp.tool()
def submit_move(session_id: str, move: str) -> dict:
    """Submit a move for the current puzzle.

    Args:
        session_id: UUID of the session.
        move: Move in SAN ('Rd8+', 'Nc7') or UCI ('d2d8', 'a7a8q').

    Returns:
        Dict with accepted, solved, reason, san, and the updated session.
    """
    controller = _get_session(session_id)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}

    parsed = _parse_move(move)
    if parsed is not None:
        result = controller.submit_move(*parsed)
    else:
        result = controller.submit_san(move)

    if result.reason is RejectReason.ILLEGAL_MOVE and controller.solver is not None:
        legal = controller.solver.legal_moves()
        return {"error": f"Illegal move: {move}. Legal moves: {legal}"}

    return {
        "accepted": result.accepted,
        "solved": result.solved,
        "reason": result.reason.value if result.reason else None,
        "san": result.san,
        "session": _session_state(session_id, controller),
    }


@mcp.tool()
def get_session(session_id: str) -> dict:
    """Get the current state of a session.

    Args:
        session_id: UUID of the session.

    Returns:
        Session dict with position, timer, score and streak.
    """
    controller = _get_session(session_id)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}
    return _session_state(session_id, controller)


@mcp.tool()
def get_hint(session_id: str) -> dict:
    """Get an indirect hint (which piece to move) for the next move.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with hint text and, when known, the tactic hint.
    """
    controller = _get_session(session_id)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}

    hint = controller.request_hint()
    if hint is None:
        return {"error": "No hint available: the puzzle is not in progress"}
    puzzle = controller.puzzle
    return {"hint": hint, "tactic_hint": puzzle.hint if puzzle else None}


@mcp.tool()
def engine_hint(session_id: str) -> dict:
    """Ask Stockfish for the best move in the current position.

    Engine absence is normal; the response then says it is unavailable.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with best_move in UCI, or available=False.
    """
    controller = _get_session(session_id)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}

    if controller.engine is None:
        controller.engine = _get_engine()
    best = controller.engine_hint()
    return {"available": best is not None, "best_move": best}


@mcp.tool()
def reset_puzzle(session_id: str) -> dict:
    """Restart the current puzzle from its first move (practice only).

    Args:
        session_id: UUID of the session.

    Returns:
        Updated session dict.
    """
    controller = _get_session(session_id)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}
    if not isinstance(controller, PracticeController) or controller.solver is None:
        return {"error": "Reset is only available in practice mode"}

    controller.solver.reset()
    controller.message = None
    return _session_state(session_id, controller)


@mcp.tool()
def reveal_solution(session_id: str) -> dict:
    """Show the remaining solution moves (practice only).

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with the remaining moves in SAN.
    """
    controller = _get_session(session_id)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}
    if not isinstance(controller, PracticeController):
        return {"error": "Reveal is only available in practice mode"}
    return {"puzzle_id": controller.puzzle.id if controller.puzzle else None,
            "remaining_moves": controller.reveal_solution()}


@mcp.tool()
def next_puzzle(session_id: str) -> dict:
    """Skip to the next puzzle.

    Args:
        session_id: UUID of the session.

    Returns:
        Session dict with the new puzzle.
    """
    controller = _get_session(session_id)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}
    if controller.mode == "daily":
        return {"error": "The daily puzzle cannot be skipped"}
    if controller.load_next() is None:
        return {"error": controller.message or "No more puzzles"}
    return _session_state(session_id, controller)


@mcp.tool()
def end_session(session_id: str) -> dict:
    """End a session, recording play time and the daily streak.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with the final score and streak outcome.
    """
    controller = _sessions.pop(session_id, None)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}

    streak = controller.exit()
    final = _session_state(session_id, controller)
    return {
        "session_id": session_id,
        "mode": controller.mode,
        "score": controller.score,
        "solved": controller.solved_count,
        "daily_streak": streak.new_streak if streak else None,
        "streak_earned": streak.earned_streak if streak else False,
        "session": final,
    }


# ---------------------------------------------------------------------------
# Profile and progress tools
# ---------------------------------------------------------------------------


@mcp.tool()
def get_profile() -> dict:
    """Get the player profile (level, elo, league, streak, badges).

    Returns:
        Profile dict.
    """
    try:
        _, progress = _services()
        return minify_profile(progress.get_profile().to_dict())
    except PersistenceError as exc:
        return {"error": str(exc)}


@mcp.tool()
def set_player_level(level: str) -> dict:
    """Set the player level used for adaptive difficulty.

    Args:
        level: 'beginner' or 'amateur'.

    Returns:
        Updated profile dict.
    """
    if level not in LEVELS:
        return {"error": f"Unknown level: {level}. Use one of {list(LEVELS)}"}
    try:
        _, progress = _services()
        return minify_profile(progress.set_player_level(level).to_dict())
    except PersistenceError as exc:
        return {"error": str(exc)}


@mcp.tool()
def get_stats() -> dict:
    """Get aggregate puzzle statistics.

    Returns:
        Stats dict with accuracy, average time and per-difficulty counts.
    """
    try:
        _, progress = _services()
        return minify_stats(progress.get_stats().to_dict())
    except PersistenceError as exc:
        return {"error": str(exc)}


@mcp.tool()
def export_data(path: str | None = None) -> dict:
    """Export progress, stats and settings.

    Args:
        path: Optional file to write. Without it the bundle is returned.

    Returns:
        The export bundle, or a confirmation with the file path.
    """
    try:
        _, progress = _services()
        bundle = progress.export_all()
    except PersistenceError as exc:
        return {"error": str(exc)}

    if path is None:
        return bundle
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(bundle, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as exc:
        return {"error": f"Cannot write {target}: {exc}"}
    return {"path": str(target), "progress_records": len(bundle["progress"])}


@mcp.tool()
def import_data(path: str) -> dict:
    """Import a bundle written by export_data.

    Args:
        path: JSON file to read.

    Returns:
        Confirmation with the number of progress records imported.
    """
    try:
        bundle = json.loads(Path(path).read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        return {"error": f"Cannot read {path}: {exc}"}

    try:
        _, progress = _services()
        progress.import_all(bundle)
    except (InvalidImportError, PersistenceError) as exc:
        return {"error": str(exc)}
    return {"imported": len(bundle["progress"]), "message": "Progress imported"}


@mcp.tool()
def clear_data(confirm: bool = False) -> dict:
    """Reset progress, stats and settings. The profile is kept.

    Args:
        confirm: Must be True to proceed.

    Returns:
        Confirmation dict.
    """
    if not confirm:
        return {"error": "Pass confirm=True to clear progress, stats and settings"}
    try:
        _, progress = _services()
        progress.clear_all()
    except PersistenceError as exc:
        return {"error": str(exc)}
    return {"message": "Progress, stats and settings cleared"}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    config.configure_logging()
    try:
        mcp.run()
    finally:
        if _engine is not None:
            _engine.shutdown()
