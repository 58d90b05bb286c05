"""Persistent player state: profile, per-puzzle progress, stats, settings.

ProgressStore is the only writer of these collections. It keeps the
profile consistent (league always follows elo, badges are append-only,
play time never shrinks) and surfaces store failures as PersistenceError
so callers decide whether to log and continue.
"""

from __future__ import annotations

import time
from dataclasses import replace
from datetime import datetime, timezone

from trainer import config
from trainer.errors import InvalidImportError
from trainer.models import (
    LEVELS,
    Achievement,
    Badge,
    DailyEntry,
    GameSettings,
    PuzzleProgress,
    ScoreRecord,
    UserProfile,
    UserStats,
)
from trainer.scoring import PuzzleScore, badge_for_streak, league_for_elo
from trainer.store import Store

PROGRESS = "progress"
STATS = "stats"
SETTINGS = "settings"
PROFILE = "profile"
SCORES = "scores"
ACHIEVEMENTS = "achievements"
DAILY_HISTORY = "daily_history"

_SINGLETON_KEY = "main"
_PROFILE_KEY = "current"

_IMPORT_FIELDS = ("progress", "stats", "settings")
_PROTECTED_PROFILE_FIELDS = {"league", "badges"}

DEFAULT_ACHIEVEMENTS = [
    Achievement("first-solve", "First Steps", "Solve your first puzzle", "\U0001f3af", "special", 1),
    Achievement("speed-demon", "Speed Demon", "Solve a puzzle in under 10 seconds", "⚡", "speed", 1),
    Achievement("perfect-score", "Perfect!", "Score 10 points on a puzzle", "\U0001f4af", "score", 1),
    Achievement("streak-starter", "Getting Started", "Reach a 5-day streak", "\U0001f525", "streak", 5),
    Achievement("accuracy-king", "Accuracy King", "Maintain 90% accuracy over 20 puzzles", "\U0001f396", "accuracy", 20),
]


def _now_ms() -> int:
    return int(time.time() * 1000)


class ProgressStore:
    """Persistence contract for everything the player accumulates."""

    def __init__(self, store: Store, clock=_now_ms) -> None:
        self._store = store
        self._clock = clock

    # -- profile ----------------------------------------------------------

    def get_profile(self) -> UserProfile:
        """Return the profile, creating the default one on first access."""
        record = self._store.get(PROFILE, _PROFILE_KEY)
        if record is None:
            profile = UserProfile(last_played=self._clock())
            self._write_profile(profile)
            return profile

        profile = UserProfile.from_dict(record)
        if profile.league != league_for_elo(profile.elo):
            profile = replace(profile, league=league_for_elo(profile.elo))
            self._write_profile(profile)
        return profile

    def update_profile(self, **changes) -> UserProfile:
        """Merge field changes into the profile and persist it.

        Raises:
            ValueError: For unknown fields, a direct league/badges write
                or an unknown level.
        """
        protected = _PROTECTED_PROFILE_FIELDS & changes.keys()
        if protected:
            raise ValueError(f"Profile fields cannot be set directly: {sorted(protected)}")
        if "level" in changes and changes["level"] not in LEVELS:
            raise ValueError(f"Unknown level: {changes['level']}")

        current = self.get_profile()
        try:
            updated = replace(current, **changes)
        except TypeError as exc:
            raise ValueError(f"Unknown profile field: {exc}") from exc

        updated.total_play_time = max(current.total_play_time, updated.total_play_time)
        updated.has_completed_tutorial = (
            current.has_completed_tutorial or updated.has_completed_tutorial
        )
        if "elo" in changes:
            updated.league = league_for_elo(updated.elo)

        self._write_profile(updated)
        return updated

    def set_player_level(self, level: str) -> UserProfile:
        return self.update_profile(level=level)

    def complete_tutorial(self) -> UserProfile:
        return self.update_profile(has_completed_tutorial=True)

    def award_badge(self, streak_count: int) -> Badge | None:
        """Award the milestone badge for ``streak_count`` once.

        Returns the new badge, or None when the count is not a milestone
        or the badge is already held.
        """
        definition = badge_for_streak(streak_count)
        if definition is None:
            return None

        profile = self.get_profile()
        if profile.has_badge(definition["id"]):
            return None

        badge = Badge(**definition, earned_at=self._clock())
        self._write_profile(replace(profile, badges=[*profile.badges, badge]))
        return badge

    def _write_profile(self, profile: UserProfile) -> None:
        self._store.put(PROFILE, _PROFILE_KEY, profile.to_dict())

    # -- per-puzzle progress ------------------------------------------------

    def save_progress(self, progress: PuzzleProgress) -> None:
        self._store.put(PROGRESS, progress.puzzle_id, progress.to_dict())

    def get_progress(self, puzzle_id: str) -> PuzzleProgress | None:
        record = self._store.get(PROGRESS, puzzle_id)
        return PuzzleProgress.from_dict(record) if record is not None else None

    def get_all_progress(self) -> list[PuzzleProgress]:
        return [PuzzleProgress.from_dict(r) for r in self._store.all(PROGRESS)]

    def record_attempt(self, progress: PuzzleProgress) -> PuzzleProgress:
        """Merge a new attempt into the stored record and save it."""
        merged = progress.merged_with(self.get_progress(progress.puzzle_id))
        self.save_progress(merged)
        return merged

    # -- stats and settings ---------------------------------------------

    def get_stats(self) -> UserStats:
        record = self._store.get(STATS, _SINGLETON_KEY)
        return UserStats.from_dict(record) if record is not None else UserStats()

    def set_stats(self, stats: UserStats) -> None:
        """Replace the stats record as given; derived fields are the caller's job."""
        self._store.put(STATS, _SINGLETON_KEY, stats.to_dict())

    def get_settings(self) -> GameSettings:
        record = self._store.get(SETTINGS, _SINGLETON_KEY)
        return GameSettings.from_dict(record) if record is not None else GameSettings()

    def set_settings(self, settings: GameSettings) -> None:
        self._store.put(SETTINGS, _SINGLETON_KEY, settings.to_dict())

    # -- scores and achievements ------------------------------------------

    def save_score(self, puzzle_id: str, score: PuzzleScore, total: int | None = None) -> ScoreRecord:
        """Log a scored solve. ``total`` overrides the points (rush multiplier)."""
        record = ScoreRecord(
            puzzle_id=puzzle_id,
            score=score.score if total is None else total,
            time_bonus=score.time_bonus,
            accuracy_bonus=score.accuracy_bonus,
            timestamp=self._clock(),
        )
        self._store.put(SCORES, puzzle_id, record.to_dict())
        return record

    def recent_scores(self, limit: int = 10) -> list[ScoreRecord]:
        records = [ScoreRecord.from_dict(r) for r in self._store.all(SCORES)]
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records[:limit]

    def get_achievements(self) -> list[Achievement]:
        """Return achievements, seeding the defaults on first read."""
        records = self._store.all(ACHIEVEMENTS)
        if records:
            return [Achievement.from_dict(r) for r in records]

        self._store.put_many(
            ACHIEVEMENTS, {a.id: a.to_dict() for a in DEFAULT_ACHIEVEMENTS}
        )
        return [replace(a) for a in DEFAULT_ACHIEVEMENTS]

    def update_achievement(self, achievement_id: str, progress: int) -> Achievement | None:
        """Set progress (capped at target); unlocking happens once."""
        self.get_achievements()
        record = self._store.get(ACHIEVEMENTS, achievement_id)
        if record is None:
            return None

        achievement = Achievement.from_dict(record)
        achievement.progress = min(progress, achievement.target)
        if achievement.progress >= achievement.target and not achievement.unlocked:
            achievement.unlocked = True
            achievement.unlocked_at = self._clock()

        self._store.put(ACHIEVEMENTS, achievement_id, achievement.to_dict())
        return achievement

    # -- daily puzzle history ---------------------------------------------

    def daily_entry(self, date: str) -> DailyEntry | None:
        record = self._store.get(DAILY_HISTORY, date)
        return DailyEntry.from_dict(record) if record is not None else None

    def start_daily(self, date: str, puzzle_id: str) -> DailyEntry:
        entry = DailyEntry(date=date, puzzle_id=puzzle_id)
        self._store.put(DAILY_HISTORY, date, entry.to_dict())
        return entry

    def complete_daily(self, date: str, puzzle_id: str) -> DailyEntry:
        """Mark the day done, creating the entry if starting it was never saved."""
        entry = self.daily_entry(date) or DailyEntry(date=date, puzzle_id=puzzle_id)
        entry.completed = True
        self._store.put(DAILY_HISTORY, date, entry.to_dict())
        return entry

    def used_daily_puzzle_ids(self, before: str | None = None) -> set[str]:
        """Puzzle ids served on earlier days (ISO dates sort chronologically)."""
        return {
            r["puzzle_id"]
            for r in self._store.all(DAILY_HISTORY)
            if before is None or r["date"] < before
        }

    # -- export / import --------------------------------------------------

    def export_all(self) -> dict:
        return {
            "version": config.EXPORT_VERSION,
            "exportDate": datetime.now(timezone.utc).isoformat(),
            "progress": [p.to_dict() for p in self.get_all_progress()],
            "stats": self.get_stats().to_dict(),
            "settings": self.get_settings().to_dict(),
        }

    def import_all(self, bundle: dict) -> None:
        """Load an export bundle.

        All three top-level fields are checked before anything is
        written. Progress records are upserted one by one; stats and
        settings replace the current ones wholesale.

        Raises:
            InvalidImportError: If progress, stats or settings is missing
                or malformed.
        """
        if not isinstance(bundle, dict):
            raise InvalidImportError("progress", "expected a JSON object")
        for name in _IMPORT_FIELDS:
            if bundle.get(name) is None:
                raise InvalidImportError(name)

        if not isinstance(bundle["progress"], list):
            raise InvalidImportError("progress", "'progress' must be a list")
        for i, record in enumerate(bundle["progress"]):
            if not isinstance(record, dict) or not isinstance(record.get("puzzle_id"), str):
                raise InvalidImportError(
                    "progress", f"progress record {i} has no 'puzzle_id'"
                )
        for name in ("stats", "settings"):
            if not isinstance(bundle[name], dict):
                raise InvalidImportError(name, f"{name!r} must be an object")

        for record in bundle["progress"]:
            self._store.put(PROGRESS, record["puzzle_id"], record)
        self._store.put(STATS, _SINGLETON_KEY, bundle["stats"])
        self._store.put(SETTINGS, _SINGLETON_KEY, bundle["settings"])

    def clear_all(self) -> None:
        """Wipe progress, stats and settings; profile and history stay."""
        for collection in (PROGRESS, STATS, SETTINGS):
            self._store.clear(collection)
        self.set_stats(UserStats())
        self.set_settings(GameSettings())
