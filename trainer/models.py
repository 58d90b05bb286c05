"""Shared data models for the chess puzzle trainer.

Puzzle records come from the seed file; everything else is persisted by
ProgressStore. Stored dicts use the dataclass field names.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace

DIFFICULTIES = ("simple", "medium", "hard", "ultra")
LEVELS = ("beginner", "amateur")
DEFAULT_ELO = 400


def _known_fields(cls, data: dict) -> dict:
    """Drop keys the dataclass does not declare (tolerates older records)."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass(frozen=True)
class Puzzle:
    """A puzzle: start position plus the exact SAN sequence to play."""

    id: str
    fen: str
    solution: tuple[str, ...]
    difficulty: str = "medium"
    rating: int | None = None
    themes: tuple[str, ...] = ()
    main_tactic: str | None = None
    learning_themes: tuple[str, ...] = ()
    hint: str | None = None
    validated: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> Puzzle:
        kwargs = _known_fields(cls, data)
        kwargs["solution"] = tuple(kwargs.get("solution", ()))
        kwargs["themes"] = tuple(kwargs.get("themes") or ())
        kwargs["learning_themes"] = tuple(kwargs.get("learning_themes") or ())
        return cls(**kwargs)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["solution"] = list(self.solution)
        data["themes"] = list(self.themes)
        data["learning_themes"] = list(self.learning_themes)
        return data


@dataclass
class PuzzleProgress:
    """Outcome history for one puzzle, keyed by puzzle_id."""

    puzzle_id: str
    solved: bool
    attempts: int = 1
    best_time: int | None = None
    last_attempt: int | None = None
    streak: int | None = None

    def merged_with(self, previous: PuzzleProgress | None) -> PuzzleProgress:
        """Fold an earlier record into this one.

        Attempts accumulate, a solve is never forgotten and the fastest
        time is kept.
        """
        if previous is None:
            return self
        times = [t for t in (self.best_time, previous.best_time) if t is not None]
        return replace(
            self,
            solved=self.solved or previous.solved,
            attempts=previous.attempts + self.attempts,
            best_time=min(times) if times else None,
            streak=self.streak if self.streak is not None else previous.streak,
        )

    @classmethod
    def from_dict(cls, data: dict) -> PuzzleProgress:
        return cls(**_known_fields(cls, data))

    def to_dict(self) -> dict:
        return asdict(self)


def _empty_breakdown() -> dict[str, dict[str, int]]:
    return {d: {"solved": 0, "attempted": 0} for d in DIFFICULTIES}


@dataclass
class UserStats:
    """Aggregate solve statistics (singleton)."""

    total_puzzles: int = 0
    solved_puzzles: int = 0
    current_streak: int = 0
    best_streak: int = 0
    average_time: float = 0.0
    accuracy: float = 0.0
    total_time: int = 0
    difficulty_breakdown: dict[str, dict[str, int]] = field(default_factory=_empty_breakdown)

    def _bumped_breakdown(self, difficulty: str, solved: bool) -> dict:
        breakdown = {d: dict(b) for d, b in self.difficulty_breakdown.items()}
        if difficulty in breakdown:
            breakdown[difficulty]["attempted"] += 1
            if solved:
                breakdown[difficulty]["solved"] += 1
        return breakdown

    def with_solve(self, difficulty: str, solve_time_ms: int, streak: int) -> UserStats:
        """Return stats after one solved puzzle, derived fields recomputed."""
        solved = self.solved_puzzles + 1
        total = self.total_puzzles + 1
        total_time = self.total_time + max(0, solve_time_ms)
        return UserStats(
            total_puzzles=total,
            solved_puzzles=solved,
            current_streak=streak,
            best_streak=max(self.best_streak, streak),
            average_time=total_time / solved,
            accuracy=solved / total,
            total_time=total_time,
            difficulty_breakdown=self._bumped_breakdown(difficulty, solved=True),
        )

    def with_failure(self, difficulty: str) -> UserStats:
        """Return stats after one failed puzzle; the solve streak drops to 0."""
        total = self.total_puzzles + 1
        return replace(
            self,
            total_puzzles=total,
            current_streak=0,
            accuracy=self.solved_puzzles / total,
            difficulty_breakdown=self._bumped_breakdown(difficulty, solved=False),
        )

    @classmethod
    def from_dict(cls, data: dict) -> UserStats:
        kwargs = _known_fields(cls, data)
        breakdown = _empty_breakdown()
        for name, bucket in (kwargs.get("difficulty_breakdown") or {}).items():
            breakdown[name] = {
                "solved": int(bucket.get("solved", 0)),
                "attempted": int(bucket.get("attempted", 0)),
            }
        kwargs["difficulty_breakdown"] = breakdown
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Badge:
    """A streak milestone badge earned by the player."""

    id: str
    name: str
    description: str
    icon: str
    requirement: int
    earned_at: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Badge:
        return cls(**_known_fields(cls, data))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserProfile:
    """Player profile (singleton). League always follows elo."""

    level: str = "beginner"
    elo: int = DEFAULT_ELO
    league: str = "stone"
    streak_count: int = 0
    last_played: int = 0
    badges: list[Badge] = field(default_factory=list)
    total_play_time: float = 0.0
    has_completed_tutorial: bool = False

    def has_badge(self, badge_id: str) -> bool:
        return any(b.id == badge_id for b in self.badges)

    @classmethod
    def from_dict(cls, data: dict) -> UserProfile:
        kwargs = _known_fields(cls, data)
        kwargs["badges"] = [Badge.from_dict(b) for b in kwargs.get("badges", [])]
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class GameSettings:
    """User preferences (singleton). time_limit is in seconds, 0 = unlimited."""

    theme: str = "light"
    piece_style: str = "minimal"
    time_limit: int = 60
    difficulty: str = "adaptive"
    sound_enabled: bool = True
    animations_enabled: bool = True
    engine_strength: int = 10

    def __post_init__(self) -> None:
        if not 1 <= self.engine_strength <= 20:
            raise ValueError(
                f"engine_strength must be between 1 and 20, got {self.engine_strength}"
            )

    @classmethod
    def from_dict(cls, data: dict) -> GameSettings:
        return cls(**_known_fields(cls, data))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ScoreRecord:
    """A scored solve, newest record per puzzle."""

    puzzle_id: str
    score: int
    time_bonus: float
    accuracy_bonus: float
    timestamp: int

    @classmethod
    def from_dict(cls, data: dict) -> ScoreRecord:
        return cls(**_known_fields(cls, data))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Achievement:
    """A progress-tracked achievement."""

    id: str
    name: str
    description: str
    icon: str
    category: str
    target: int
    progress: int = 0
    unlocked: bool = False
    unlocked_at: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Achievement:
        return cls(**_known_fields(cls, data))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DailyEntry:
    """Which puzzle was served on a calendar day and whether it was solved."""

    date: str
    puzzle_id: str
    completed: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> DailyEntry:
        return cls(**_known_fields(cls, data))

    def to_dict(self) -> dict:
        return asdict(self)
