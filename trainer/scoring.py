"""Scoring, rating and streak rules.

Everything here is a pure function of its arguments (the streak check reads
the clock only when ``now_ms`` is not supplied). Rounding is half-up, so
6.5 becomes 7 and -2.5 becomes -2.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import datetime

_BASE_SCORE = 5
_MAX_TIME_BONUS = 3.0
_DIFFICULTY_BONUS = {"simple": 0, "medium": 1, "hard": 2, "ultra": 3}

# Exclusive upper bounds
_LEAGUES = [
    (800, "stone"),
    (1000, "bronze"),
    (1200, "silver"),
    (1400, "gold"),
    (1600, "platinum"),
    (1800, "diamond"),
]
_TOP_LEAGUE = "master"

_DAY_MS = 24 * 60 * 60 * 1000
_STREAK_GRACE_DAYS = 2
_MIN_SESSION_MINUTES = 10

STREAK_MILESTONES = (10, 20, 30, 50, 75, 100, 150, 200)

STREAK_BADGES: dict[int, dict] = {
    10: {"id": "streak-10", "name": "Dedicated", "description": "Reached 10-day streak", "icon": "\U0001f525"},
    20: {"id": "streak-20", "name": "Committed", "description": "Reached 20-day streak", "icon": "⭐"},
    30: {"id": "streak-30", "name": "Persistent", "description": "Reached 30-day streak", "icon": "\U0001f48e"},
    50: {"id": "streak-50", "name": "Champion", "description": "Reached 50-day streak", "icon": "\U0001f451"},
    75: {"id": "streak-75", "name": "Master", "description": "Reached 75-day streak", "icon": "\U0001f3c6"},
    100: {"id": "streak-100", "name": "Legend", "description": "Reached 100-day streak", "icon": "\U0001f31f"},
    150: {"id": "streak-150", "name": "Grandmaster", "description": "Reached 150-day streak", "icon": "⚡"},
    200: {"id": "streak-200", "name": "Immortal", "description": "Reached 200-day streak", "icon": "\U0001f531"},
}


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class PuzzleScore:
    """Points for one solve (1-10) and the bonuses that produced them."""

    score: int
    time_bonus: float
    accuracy_bonus: float
    difficulty_bonus: int


@dataclass(frozen=True)
class StreakResult:
    new_streak: int
    is_reset: bool
    earned_streak: bool


def calculate_puzzle_score(
    time_limit_ms: int,
    time_taken_ms: int,
    attempts: int,
    difficulty: str,
) -> PuzzleScore:
    """Score a solved puzzle on a 1-10 scale.

    Args:
        time_limit_ms: Time allowed; 0 means unlimited (no time bonus).
        time_taken_ms: Time the solve took.
        attempts: 1 for a clean solve, +1 per wrong try.
        difficulty: simple/medium/hard/ultra; anything else earns no bonus.

    Returns:
        PuzzleScore with the clamped total and bonuses rounded to 0.1.
    """
    if time_limit_ms > 0:
        time_bonus = _MAX_TIME_BONUS * (1 - time_taken_ms / time_limit_ms)
        time_bonus = max(0.0, min(_MAX_TIME_BONUS, time_bonus))
    else:
        time_bonus = 0.0

    if attempts <= 1:
        accuracy_bonus = 2.0
    else:
        accuracy_bonus = max(0.0, 2 - (attempts - 1) * 0.5)

    difficulty_bonus = _DIFFICULTY_BONUS.get(difficulty, 0)

    raw = _BASE_SCORE + time_bonus + accuracy_bonus + difficulty_bonus
    score = max(1, min(10, round_half_up(raw)))

    return PuzzleScore(
        score=score,
        time_bonus=round_half_up(time_bonus * 10) / 10,
        accuracy_bonus=round_half_up(accuracy_bonus * 10) / 10,
        difficulty_bonus=difficulty_bonus,
    )


def calculate_elo_change(
    current_elo: int,
    puzzle_rating: int,
    solved: bool,
    k_factor: int = 32,
) -> int:
    """Logistic Elo delta for one puzzle outcome. The result is not clamped."""
    expected = 1 / (1 + 10 ** ((puzzle_rating - current_elo) / 400))
    actual = 1 if solved else 0
    return round_half_up(k_factor * (actual - expected))


def league_for_elo(elo: int) -> str:
    for upper, league in _LEAGUES:
        if elo < upper:
            return league
    return _TOP_LEAGUE


def _local_date(ms: int):
    return datetime.fromtimestamp(ms / 1000).date()


def calculate_streak(
    current_streak: int,
    last_played_ms: int,
    session_minutes: float,
    now_ms: int | None = None,
) -> StreakResult:
    """Apply the daily-activity streak rules.

    More than two days away decays the streak to the last milestone
    reached (0 if none). Otherwise a session of 10+ minutes extends it by
    one, but only once per local calendar day.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    days_away = (now_ms - last_played_ms) / _DAY_MS
    if days_away > _STREAK_GRACE_DAYS:
        kept = 0
        for milestone in STREAK_MILESTONES:
            if current_streak >= milestone:
                kept = milestone
        return StreakResult(new_streak=kept, is_reset=True, earned_streak=False)

    qualifying = session_minutes >= _MIN_SESSION_MINUTES
    played_today = _local_date(now_ms) == _local_date(last_played_ms)
    if qualifying and not played_today:
        return StreakResult(new_streak=current_streak + 1, is_reset=False, earned_streak=True)

    return StreakResult(new_streak=current_streak, is_reset=False, earned_streak=False)


def recommended_difficulty(level: str, elo: int, recent_accuracy: float) -> str:
    """Pick a difficulty from the player's level, rating band and accuracy."""
    if level == "beginner":
        if elo < 600:
            return "simple"
        if elo < 800:
            return "medium" if recent_accuracy > 0.7 else "simple"
        return "medium"

    stepped_up = recent_accuracy > 0.75
    if elo < 1000:
        return "medium" if stepped_up else "simple"
    if elo < 1200:
        return "hard" if stepped_up else "medium"
    if elo < 1500:
        return "ultra" if stepped_up else "hard"
    return "ultra"


def difficulty_for_length(moves: int) -> str:
    """Estimate difficulty from solution length."""
    if moves <= 2:
        return "simple"
    if moves <= 4:
        return "medium"
    if moves <= 6:
        return "hard"
    return "ultra"


def badge_for_streak(streak_count: int) -> dict | None:
    """Badge metadata for an exact milestone, or None."""
    definition = STREAK_BADGES.get(streak_count)
    if definition is None:
        return None
    return {**definition, "requirement": streak_count}
