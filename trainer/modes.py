"""Game mode controllers: blitz, daily, rush and practice.

A controller picks puzzles, drives a PuzzleSolver, runs the mode's timer
and writes results through ProgressStore. Front ends call ``submit_move``
on user input and ``tick()`` on their redraw cadence; ``exit()`` cancels
anything still scheduled.

Store failures never interrupt play. They are logged and the in-memory
solver state stays authoritative for the rest of the session.
"""

from __future__ import annotations

import abc
import logging
import random
import time
from datetime import date as date_cls
from typing import Callable

from trainer import config
from trainer.errors import PersistenceError
from trainer.hints import encouragement
from trainer.models import GameSettings, Puzzle, PuzzleProgress, UserProfile, UserStats
from trainer.progress import ProgressStore
from trainer.puzzles import PuzzleBank
from trainer.rules import ChessRules
from trainer.scoring import (
    StreakResult,
    calculate_elo_change,
    calculate_puzzle_score,
    calculate_streak,
    recommended_difficulty,
    round_half_up,
)
from trainer.solver import MoveResult, PuzzleSolver, RejectReason, SolverStatus
from trainer.timer import CountdownTimer, Scheduler, monotonic_ms

logger = logging.getLogger(__name__)

DAILY_MIN_MOVES = 2
DAILY_MAX_MOVES = 7
DEFAULT_PUZZLE_RATING = 1200
SPEED_DEMON_MS = 10_000


def _now_ms() -> int:
    return int(time.time() * 1000)


def record_play_session(
    progress: ProgressStore,
    session_minutes: float,
    now_ms: int | None = None,
) -> StreakResult:
    """Apply the streak rules for a finished session and bank its play time."""
    now_ms = _now_ms() if now_ms is None else now_ms
    profile = progress.get_profile()
    result = calculate_streak(profile.streak_count, profile.last_played, session_minutes, now_ms)

    progress.update_profile(
        streak_count=result.new_streak,
        total_play_time=profile.total_play_time + max(0.0, session_minutes),
        last_played=now_ms,
    )
    badge = progress.award_badge(result.new_streak)
    if badge is not None:
        logger.info("Awarded badge %s", badge.id)
    return result


def select_daily_puzzle(
    day: str,
    puzzles: list[Puzzle],
    used_ids: set[str],
) -> Puzzle | None:
    """Deterministic pick for a calendar day.

    Puzzles served on earlier days are skipped unless that empties the
    pool; solutions of 2 to 7 moves are preferred when any exist.
    """
    pool = [p for p in puzzles if p.id not in used_ids] or list(puzzles)
    if not pool:
        return None
    preferred = [
        p for p in pool if DAILY_MIN_MOVES <= len(p.solution) <= DAILY_MAX_MOVES
    ] or pool
    seed = sum(ord(c) for c in day)
    return preferred[seed % len(preferred)]


def rush_difficulty(elo: int) -> str:
    if elo < 800:
        return "simple"
    if elo < 1200:
        return "medium"
    return "hard"


class ModeController(abc.ABC):
    """Shared plumbing for the game modes.

    Args:
        bank: Puzzle source.
        progress: Persistence for results.
        clock: Monotonic millisecond clock for timers and delays.
        wall_clock: Epoch millisecond clock for stored timestamps.
        rng: Random source for puzzle picks and feedback text.
        engine: Optional AnalysisEngine for engine hints.
    """

    mode = "base"
    records_play_time = True

    def __init__(
        self,
        bank: PuzzleBank,
        progress: ProgressStore,
        *,
        clock: Callable[[], int] = monotonic_ms,
        wall_clock: Callable[[], int] = _now_ms,
        rng: random.Random | None = None,
        engine=None,
    ) -> None:
        self.bank = bank
        self.progress = progress
        self.engine = engine
        self._clock = clock
        self._wall_clock = wall_clock
        self._rng = rng or random.Random()

        self.scheduler = Scheduler(clock)
        self.timer: CountdownTimer | None = None
        self.solver: PuzzleSolver | None = None
        self.message: str | None = None
        self.score = 0
        self.streak = 0
        self.solved_count = 0
        self.exited = False
        self._session_started = clock()
        self._puzzle_started = clock()
        self._pending_advance = None

    @property
    def puzzle(self) -> Puzzle | None:
        return self.solver.puzzle if self.solver is not None else None

    # -- puzzle flow ------------------------------------------------------

    @abc.abstractmethod
    def select_puzzle(self) -> Puzzle | None:
        """Choose the next puzzle by the mode's policy."""

    def load_next(self) -> Puzzle | None:
        """Load the next puzzle by the mode's policy; None when the bank is empty."""
        if self.exited:
            return None
        if self._pending_advance is not None:
            self._pending_advance.cancel()
            self._pending_advance = None
        puzzle = self.select_puzzle()
        if puzzle is None:
            self.solver = None
            self.message = "No puzzles available"
            return None

        self.solver = PuzzleSolver(puzzle)
        self.message = None
        self._puzzle_started = self._clock()
        self._on_puzzle_loaded()
        return puzzle

    def _on_puzzle_loaded(self) -> None:
        """Hook run after a new solver is in place."""

    def submit_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> MoveResult:
        if self.exited or self.solver is None:
            return MoveResult.reject(RejectReason.FINISHED)
        result = self.solver.submit_move(from_square, to_square, promotion)
        self._after_move(result)
        return result

    def submit_san(self, san: str) -> MoveResult:
        if self.exited or self.solver is None:
            return MoveResult.reject(RejectReason.FINISHED)
        result = self.solver.submit_san(san)
        self._after_move(result)
        return result

    def _after_move(self, result: MoveResult) -> None:
        if result.solved:
            self.on_terminal(SolverStatus.SOLVED)
        elif result.reason is RejectReason.WRONG_MOVE:
            self.on_wrong_move(result)
            if self.solver is not None and self.solver.status is SolverStatus.FAILED:
                self.on_terminal(SolverStatus.FAILED)

    def on_wrong_move(self, result: MoveResult) -> None:
        """Hook for a legal move that is not the solution step."""

    def on_terminal(self, outcome: SolverStatus) -> None:
        """Hook for a puzzle that just ended as SOLVED or FAILED."""

    def on_timeout(self) -> None:
        """Hook for the mode timer running out."""

    def request_hint(self) -> str | None:
        if self.solver is None:
            return None
        return self.solver.request_hint()

    def engine_hint(self) -> str | None:
        """Best move from the analysis engine, or None when it is unavailable."""
        if self.engine is None or self.solver is None or self.solver.is_terminal:
            return None
        return self.engine.best_move(self.solver.fen)

    # -- time -------------------------------------------------------------

    def tick(self) -> None:
        """Poll the timer and run due callbacks."""
        if self.exited:
            return
        if self.timer is not None and self.timer.tick():
            self.on_timeout()
        self.scheduler.run_due()

    def pause(self) -> None:
        if self.timer is not None:
            self.timer.pause()

    def resume(self) -> None:
        if self.timer is not None:
            self.timer.resume()

    def puzzle_elapsed_ms(self) -> int:
        return self._clock() - self._puzzle_started

    def _schedule_advance(self, delay_ms: int) -> None:
        self._pending_advance = self.scheduler.call_later(delay_ms, self.load_next)

    @property
    def advance_pending(self) -> bool:
        return self._pending_advance is not None and not self._pending_advance.cancelled

    def exit(self) -> StreakResult | None:
        """Leave the mode: cancel pending work and record play time."""
        if self.exited:
            return None
        self.exited = True
        self.scheduler.cancel_all()
        self._pending_advance = None
        if self.timer is not None:
            self.timer.stop()

        if not self.records_play_time:
            return None
        minutes = (self._clock() - self._session_started) / 60_000
        return self._persist(
            "play session", record_play_session, self.progress, minutes, self._wall_clock()
        )

    # -- persistence helpers ------------------------------------------------

    def _persist(self, what: str, action, *args, **kwargs):
        """Run a store call; log and return None if the store fails."""
        try:
            return action(*args, **kwargs)
        except PersistenceError:
            logger.warning("Could not save %s; continuing without it", what, exc_info=True)
            return None

    def _read(self, action, default):
        try:
            return action()
        except PersistenceError:
            logger.warning("Store read failed; using defaults", exc_info=True)
            return default

    def _profile(self) -> UserProfile:
        return self._read(self.progress.get_profile, UserProfile())

    def _pick(self, candidates: list[Puzzle]) -> Puzzle | None:
        """Random pick that avoids repeating the current puzzle when possible."""
        if self.puzzle is not None and len(candidates) > 1:
            candidates = [p for p in candidates if p.id != self.puzzle.id]
        return self._rng.choice(candidates) if candidates else None

    def _puzzles_for(self, difficulty: str) -> list[Puzzle]:
        return self.bank.by_difficulty(difficulty) or self.bank.all()

    def snapshot(self) -> dict:
        """Serializable view of the session for the MCP server and TUI."""
        solver = self.solver
        remaining = self.timer.remaining_ms() if self.timer is not None else None
        state = {
            "mode": self.mode,
            "puzzle_id": None,
            "fen": None,
            "turn": None,
            "player_color": "white",
            "last_move": None,
            "status": None,
            "difficulty": None,
            "themes": [],
            "moves_played": [],
            "moves_total": 0,
            "wrong_move_count": 0,
            "remaining_ms": remaining,
            "score": self.score,
            "streak": self.streak,
            "solved_count": self.solved_count,
            "message": self.message,
            "exited": self.exited,
        }
        if solver is not None:
            positions = solver.positions
            last_move = None
            if solver.accepted_moves:
                last_move = ChessRules(positions[-2]).san_to_uci(solver.accepted_moves[-1])
            state.update(
                puzzle_id=solver.puzzle.id,
                fen=solver.fen,
                turn=solver.turn,
                player_color=ChessRules(positions[0]).turn,
                last_move=last_move,
                status=solver.status.value,
                moves_played=list(solver.accepted_moves),
                moves_total=len(solver.puzzle.solution),
                wrong_move_count=solver.wrong_move_count,
                difficulty=solver.puzzle.difficulty,
                themes=list(solver.puzzle.themes),
            )
        return state


class BlitzController(ModeController):
    """Timed puzzles back to back, each with its own countdown.

    Args:
        difficulty: Fixed difficulty, or None/"adaptive" to follow the
            player's level, rating and accuracy.
        time_limit_s: Seconds per puzzle; defaults to the saved settings.
    """

    mode = "blitz"

    def __init__(
        self,
        bank: PuzzleBank,
        progress: ProgressStore,
        difficulty: str | None = None,
        time_limit_s: int | None = None,
        **kwargs,
    ) -> None:
        super().__init__(bank, progress, **kwargs)
        settings = self._read(progress.get_settings, GameSettings())
        if difficulty is None:
            difficulty = settings.difficulty
        self.difficulty = difficulty
        if time_limit_s is None:
            time_limit_s = settings.time_limit
        self.timer = CountdownTimer(time_limit_s * 1000, self._clock)

    def current_difficulty(self) -> str:
        if self.difficulty and self.difficulty != "adaptive":
            return self.difficulty
        profile = self._profile()
        stats = self._read(self.progress.get_stats, UserStats())
        return recommended_difficulty(profile.level, profile.elo, stats.accuracy)

    def select_puzzle(self) -> Puzzle | None:
        return self._pick(self._puzzles_for(self.current_difficulty()))

    def _on_puzzle_loaded(self) -> None:
        self.timer.start()

    def on_timeout(self) -> None:
        if self.solver is None or self.solver.is_terminal:
            return
        self.solver.time_out()
        self.message = "Time's up!"
        self.on_terminal(SolverStatus.FAILED)

    def on_terminal(self, outcome: SolverStatus) -> None:
        self.timer.stop()
        if outcome is SolverStatus.SOLVED:
            self._record_solve()
            self._schedule_advance(config.BLITZ_SOLVED_DELAY_MS)
        else:
            self._record_failure()
            self._schedule_advance(config.BLITZ_TIMEOUT_DELAY_MS)

    def _record_solve(self) -> None:
        puzzle = self.puzzle
        solve_time = self.timer.elapsed_ms()
        self.score += 1
        self.streak += 1
        self.solved_count += 1
        self.message = "Solved!"

        self._persist(
            "progress",
            self.progress.record_attempt,
            PuzzleProgress(
                puzzle_id=puzzle.id,
                solved=True,
                attempts=self.solver.wrong_move_count + 1,
                best_time=solve_time,
                last_attempt=self._wall_clock(),
                streak=self.streak,
            ),
        )

        stats = self._read(self.progress.get_stats, None)
        if stats is None:
            return
        stats = stats.with_solve(puzzle.difficulty, solve_time, self.streak)
        self._persist("stats", self.progress.set_stats, stats)

        self._persist(
            "achievement", self.progress.update_achievement, "first-solve", stats.solved_puzzles
        )
        if solve_time < SPEED_DEMON_MS:
            self._persist("achievement", self.progress.update_achievement, "speed-demon", 1)

    def _record_failure(self) -> None:
        puzzle = self.puzzle
        self.streak = 0
        self._persist(
            "progress",
            self.progress.record_attempt,
            PuzzleProgress(
                puzzle_id=puzzle.id,
                solved=False,
                attempts=self.solver.wrong_move_count + 1,
                last_attempt=self._wall_clock(),
                streak=0,
            ),
        )
        stats = self._read(self.progress.get_stats, None)
        if stats is not None:
            self._persist("stats", self.progress.set_stats, stats.with_failure(puzzle.difficulty))


class DailyController(ModeController):
    """One date-seeded puzzle per calendar day, scored once.

    Args:
        day: ISO date (``YYYY-MM-DD``) or a date; defaults to today.
    """

    mode = "daily"

    def __init__(
        self,
        bank: PuzzleBank,
        progress: ProgressStore,
        day: str | date_cls | None = None,
        **kwargs,
    ) -> None:
        super().__init__(bank, progress, **kwargs)
        if day is None:
            day = date_cls.today()
        self.day = day.isoformat() if isinstance(day, date_cls) else day
        self.completed_today = False
        self.result: dict | None = None
        self.timer = CountdownTimer(0, self._clock)

    def select_puzzle(self) -> Puzzle | None:
        entry = self._read(lambda: self.progress.daily_entry(self.day), None)
        if entry is not None:
            puzzle = self.bank.get_puzzle(entry.puzzle_id)
            if puzzle is not None:
                self.completed_today = entry.completed
                return puzzle

        used = self._read(lambda: self.progress.used_daily_puzzle_ids(before=self.day), set())
        puzzle = select_daily_puzzle(self.day, self.bank.all(), used)
        if puzzle is not None:
            self._persist("daily entry", self.progress.start_daily, self.day, puzzle.id)
        return puzzle

    def _on_puzzle_loaded(self) -> None:
        if self.completed_today:
            self.message = "Daily puzzle already completed today"
            return
        self.timer.start()

    def submit_move(self, from_square, to_square, promotion=None) -> MoveResult:
        if self.completed_today:
            return MoveResult.reject(RejectReason.FINISHED)
        return super().submit_move(from_square, to_square, promotion)

    def submit_san(self, san: str) -> MoveResult:
        if self.completed_today:
            return MoveResult.reject(RejectReason.FINISHED)
        return super().submit_san(san)

    def on_terminal(self, outcome: SolverStatus) -> None:
        if outcome is not SolverStatus.SOLVED or self.completed_today:
            return
        self.timer.stop()
        puzzle = self.puzzle
        elapsed = self.timer.elapsed_ms()
        attempts = self.solver.wrong_move_count + 1
        score = calculate_puzzle_score(
            config.DAILY_TIME_LIMIT_MS, elapsed, attempts, puzzle.difficulty
        )

        profile = self._profile()
        rating = puzzle.rating if puzzle.rating is not None else DEFAULT_PUZZLE_RATING
        elo_change = calculate_elo_change(profile.elo, rating, solved=True)

        self.completed_today = True
        self.score = score.score
        self.solved_count = 1
        self.result = {
            "score": score.score,
            "time_bonus": score.time_bonus,
            "accuracy_bonus": score.accuracy_bonus,
            "elo_change": elo_change,
            "new_elo": profile.elo + elo_change,
            "time_ms": elapsed,
        }
        self.message = f"Solved! +{score.score} points, {elo_change:+d} ELO"

        self._persist("profile", self.progress.update_profile, elo=profile.elo + elo_change)
        self._persist("score", self.progress.save_score, puzzle.id, score)
        self._persist(
            "progress",
            self.progress.record_attempt,
            PuzzleProgress(
                puzzle_id=puzzle.id,
                solved=True,
                attempts=attempts,
                best_time=elapsed,
                last_attempt=self._wall_clock(),
            ),
        )
        self._persist("daily entry", self.progress.complete_daily, self.day, puzzle.id)
        if score.score >= 10:
            self._persist("achievement", self.progress.update_achievement, "perfect-score", 1)

    def snapshot(self) -> dict:
        state = super().snapshot()
        state.update(day=self.day, completed_today=self.completed_today, result=self.result)
        return state


class RushController(ModeController):
    """As many puzzles as possible inside one session countdown.

    Each solve scores against a 30 second reference with a streak
    multiplier; a wrong move drops the streak and moves straight on.
    """

    mode = "rush"

    def __init__(
        self,
        bank: PuzzleBank,
        progress: ProgressStore,
        session_ms: int = config.RUSH_SESSION_MS,
        **kwargs,
    ) -> None:
        super().__init__(bank, progress, **kwargs)
        self.timer = CountdownTimer(session_ms, self._clock)
        self.game_over = False

    @property
    def difficulty(self) -> str:
        return rush_difficulty(self._profile().elo)

    def select_puzzle(self) -> Puzzle | None:
        if self.game_over:
            return None
        return self._pick(self._puzzles_for(self.difficulty))

    def _on_puzzle_loaded(self) -> None:
        if not self.timer.started:
            self.timer.start()

    def on_wrong_move(self, result: MoveResult) -> None:
        puzzle = self.puzzle
        self.streak = 0
        self._persist(
            "progress",
            self.progress.record_attempt,
            PuzzleProgress(puzzle_id=puzzle.id, solved=False, last_attempt=self._wall_clock(), streak=0),
        )
        self.load_next()
        self.message = f"Wrong move ({result.san}). Streak lost!"

    def on_terminal(self, outcome: SolverStatus) -> None:
        if outcome is not SolverStatus.SOLVED:
            return
        puzzle = self.puzzle
        elapsed = self.puzzle_elapsed_ms()
        base = calculate_puzzle_score(config.RUSH_PUZZLE_LIMIT_MS, elapsed, 1, puzzle.difficulty)
        points = round_half_up(base.score * (1 + 0.1 * self.streak))

        self.score += points
        self.streak += 1
        self.solved_count += 1
        self.message = f"+{points} points"

        self._persist("score", self.progress.save_score, puzzle.id, base, total=points)
        self._persist(
            "progress",
            self.progress.record_attempt,
            PuzzleProgress(
                puzzle_id=puzzle.id,
                solved=True,
                best_time=elapsed,
                last_attempt=self._wall_clock(),
                streak=self.streak,
            ),
        )
        self._schedule_advance(config.RUSH_SOLVED_DELAY_MS)

    def on_timeout(self) -> None:
        self.game_over = True
        self.scheduler.cancel_all()
        self._pending_advance = None
        if self.solver is not None:
            self.solver.time_out()
        self.message = f"Time's up! Final score: {self.score}"

    def snapshot(self) -> dict:
        state = super().snapshot()
        state["game_over"] = self.game_over
        return state


class PracticeController(ModeController):
    """Untimed, unscored play. Nothing is written to the store."""

    mode = "practice"
    records_play_time = False

    def __init__(
        self,
        bank: PuzzleBank,
        progress: ProgressStore,
        difficulty: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(bank, progress, **kwargs)
        self.difficulty = difficulty

    def select_puzzle(self) -> Puzzle | None:
        candidates = self._puzzles_for(self.difficulty) if self.difficulty else self.bank.all()
        return self._pick(candidates)

    def on_wrong_move(self, result: MoveResult) -> None:
        self.message = encouragement(self.puzzle, self._rng)

    def on_terminal(self, outcome: SolverStatus) -> None:
        if outcome is SolverStatus.SOLVED:
            self.solved_count += 1
            self.message = "Puzzle solved!"

    def reveal_solution(self) -> list[str]:
        if self.solver is None:
            return []
        return self.solver.reveal_solution()

    def next(self) -> Puzzle | None:
        return self.load_next()


MODES: dict[str, type[ModeController]] = {
    "blitz": BlitzController,
    "daily": DailyController,
    "rush": RushController,
    "practice": PracticeController,
}


def create_controller(
    mode: str,
    bank: PuzzleBank,
    progress: ProgressStore,
    **kwargs,
) -> ModeController:
    """Build the controller for ``mode``.

    Raises:
        ValueError: If the mode is unknown.
    """
    try:
        cls = MODES[mode]
    except KeyError:
        raise ValueError(f"Unknown mode: {mode}. Use one of {sorted(MODES)}") from None
    return cls(bank, progress, **kwargs)
