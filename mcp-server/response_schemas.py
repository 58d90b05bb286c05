"""Response schemas and minification for MCP tool responses.

Minifies MCP tool return values to reduce LLM context token waste.
data/current_puzzle.json (TUI sync) is NOT affected, only MCP return values.

Played moves are rendered as a numbered move string (``1.e4 e5 2.Nf3``)
which reads naturally for the LLM agent.
"""

from __future__ import annotations

import os


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_session(state: dict) -> dict:
    """Minify a session snapshot for MCP response.

    Compacts the played moves to a move string and drops display-only
    fields (themes, last_move highlight, player color).

    Args:
        state: Snapshot from ModeController.snapshot(), plus session_id.

    Returns:
        Minified dict with reduced token footprint.
    """
    result = {}

    for key in (
        "session_id", "mode", "puzzle_id", "fen", "turn", "status",
        "difficulty", "moves_total", "wrong_move_count", "remaining_ms",
        "score", "streak", "message",
    ):
        if key in state:
            result[key] = state[key]

    moves = state.get("moves_played", [])
    black_first = state.get("player_color") == "black"
    result["moves_played"] = _moves_to_move_string(moves, black_first) if isinstance(moves, list) else moves

    # Mode-specific flags only when present
    for key in ("completed_today", "game_over", "result", "day"):
        if state.get(key) is not None:
            result[key] = state[key]

    return result


def minify_profile(profile: dict) -> dict:
    """Minify a UserProfile dict: badges collapse to their ids.

    Args:
        profile: UserProfile.to_dict() output.

    Returns:
        Minified dict.
    """
    result = {}
    for key in ("level", "elo", "league", "streak_count", "total_play_time", "has_completed_tutorial"):
        if key in profile:
            result[key] = profile[key]
    result["badges"] = [b.get("id") for b in profile.get("badges", []) if isinstance(b, dict)]
    return result


def minify_stats(stats: dict) -> dict:
    """Minify a UserStats dict.

    Rounds accuracy and average time, and drops untouched difficulty
    buckets.

    Args:
        stats: UserStats.to_dict() output.

    Returns:
        Minified dict.
    """
    result = {}
    for key in ("total_puzzles", "solved_puzzles", "current_streak", "best_streak"):
        if key in stats:
            result[key] = stats[key]
    result["accuracy"] = round(stats.get("accuracy", 0.0), 3)
    result["average_time_s"] = round(stats.get("average_time", 0.0) / 1000, 1)

    breakdown = stats.get("difficulty_breakdown", {})
    result["by_difficulty"] = {
        name: bucket for name, bucket in breakdown.items()
        if isinstance(bucket, dict) and bucket.get("attempted")
    }
    return result


# ---------------------------------------------------------------------------
# Helper: move list to numbered move string
# ---------------------------------------------------------------------------


def _moves_to_move_string(moves: list[str], black_first: bool = False) -> str:
    """Convert a list of SAN moves to a numbered move string.

    E.g., ['e4', 'e5', 'Nf3'] -> '1.e4 e5 2.Nf3', and with black to move
    first ['Kh8', 'a8=Q#'] -> '1...Kh8 2.a8=Q#'.

    Args:
        moves: List of SAN move strings.
        black_first: Whether the first move is Black's.

    Returns:
        Move string.
    """
    if not moves:
        return ""

    parts = []
    offset = 1 if black_first else 0
    for i, move in enumerate(moves):
        ply = i + offset
        move_num = ply // 2 + 1
        if ply % 2 == 0:
            parts.append(f"{move_num}.{move}")
        elif i == 0:
            parts.append(f"{move_num}...{move}")
        else:
            parts.append(move)

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

SESSION_SCHEMA = {
    "session_id": str,
    "mode": str,
    "puzzle_id": (str, type(None)),
    "fen": (str, type(None)),
    "status": (str, type(None)),
    "moves_played": str,
    "moves_total": int,
    "wrong_move_count": int,
    "remaining_ms": (int, type(None)),
    "score": int,
    "streak": int,
}

PROFILE_SCHEMA = {
    "level": str,
    "elo": int,
    "league": str,
    "streak_count": int,
    "badges": list,
}

STATS_SCHEMA = {
    "total_puzzles": int,
    "solved_puzzles": int,
    "accuracy": (int, float),
    "average_time_s": (int, float),
    "by_difficulty": dict,
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when PUZZLE_TRAINER_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get("PUZZLE_TRAINER_VALIDATE") != "1":
        return []

    errors = []

    if not isinstance(response, dict):
        errors.append(f"Response is not a dict: {type(response).__name__}")
        return errors

    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        if not isinstance(expected_types, tuple):
            expected_types = (expected_types,)
        # bool is an int subclass; only accept it where bool is listed
        if isinstance(value, bool) and bool not in expected_types:
            mismatch = True
        else:
            mismatch = not isinstance(value, expected_types)
        if mismatch:
            type_names = ", ".join(t.__name__ for t in expected_types)
            errors.append(
                f"Key '{key}': expected ({type_names}), "
                f"got {type(value).__name__}"
            )

    return errors
