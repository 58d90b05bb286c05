"""Pytest tests for the game mode controllers.

Every controller runs on FakeClocks, so timers and delayed advances are
driven explicitly with ``clock.advance()`` followed by ``tick()``.
"""

from __future__ import annotations

import random
from datetime import date
from unittest.mock import MagicMock

import pytest

from conftest import (
    BACK_RANK,
    DAY_MS,
    FORK,
    ITALIAN,
    NOW_MS,
    PROMOTION,
    SCHOLAR,
    make_bank,
    solve,
)
from trainer.hints import ENCOURAGEMENTS, TACTIC_HINTS
from trainer.models import GameSettings, UserStats
from trainer.modes import (
    BlitzController,
    DailyController,
    ModeController,
    PracticeController,
    RushController,
    create_controller,
    record_play_session,
    rush_difficulty,
    select_daily_puzzle,
)
from trainer.progress import ProgressStore
from trainer.rules import ChessRules
from trainer.solver import RejectReason, SolverStatus
from trainer.store import MemoryStore


@pytest.fixture()
def timing(clock, wall_clock):
    """Keyword arguments wiring a controller to the fake clocks."""
    return {"clock": clock, "wall_clock": wall_clock, "rng": random.Random(7)}


def play_wrong(controller):
    """Play a legal move that is not the next solution step."""
    expected = controller.solver.expected_move_uci()
    wrong = next(
        m for m in ChessRules(controller.solver.fen).legal_moves() if m != expected
    )
    return controller.submit_move(wrong[:2], wrong[2:4], wrong[4:] or None)


# ---------------------------------------------------------------------------
# Blitz
# ---------------------------------------------------------------------------


class TestBlitz:

    def test_solve_updates_session_and_store(self, bank, progress, clock, timing):
        blitz = BlitzController(bank, progress, difficulty="simple", time_limit_s=60, **timing)
        puzzle = blitz.load_next()
        assert puzzle.difficulty == "simple"

        clock.advance(4000)
        solve(blitz)

        assert blitz.solver.status is SolverStatus.SOLVED
        assert (blitz.score, blitz.streak, blitz.solved_count) == (1, 1, 1)
        assert blitz.message == "Solved!"
        assert blitz.advance_pending

        record = progress.get_progress(puzzle.id)
        assert record.solved
        assert record.best_time == 4000
        assert record.attempts == 1

        stats = progress.get_stats()
        assert stats.solved_puzzles == 1
        assert stats.current_streak == 1
        assert stats.difficulty_breakdown["simple"] == {"solved": 1, "attempted": 1}

        unlocked = {a.id for a in progress.get_achievements() if a.unlocked}
        assert unlocked == {"first-solve", "speed-demon"}

    def test_advance_after_solve_delay(self, bank, progress, clock, timing):
        blitz = BlitzController(bank, progress, difficulty="simple", time_limit_s=60, **timing)
        first = blitz.load_next()
        solve(blitz)

        clock.advance(1499)
        blitz.tick()
        assert blitz.puzzle.id == first.id

        clock.advance(1)
        blitz.tick()
        assert blitz.puzzle.id != first.id
        assert blitz.solver.status is SolverStatus.IN_PROGRESS
        assert blitz.timer.remaining_ms() == 60000

    def test_timeout_fails_puzzle(self, bank, progress, clock, timing):
        blitz = BlitzController(bank, progress, difficulty="medium", time_limit_s=5, **timing)
        puzzle = blitz.load_next()
        blitz.streak = 3

        clock.advance(5000)
        blitz.tick()

        assert blitz.solver.status is SolverStatus.FAILED
        assert blitz.message == "Time's up!"
        assert blitz.streak == 0
        assert not progress.get_progress(puzzle.id).solved
        stats = progress.get_stats()
        assert (stats.total_puzzles, stats.solved_puzzles) == (1, 0)
        assert blitz.submit_san(puzzle.solution[0]).reason is RejectReason.FINISHED

        clock.advance(1999)
        blitz.tick()
        assert blitz.puzzle.id == puzzle.id
        clock.advance(1)
        blitz.tick()
        assert blitz.solver.status is SolverStatus.IN_PROGRESS

    def test_wrong_move_is_retryable_and_counted(self, progress, timing):
        blitz = BlitzController(
            make_bank(MemoryStore(), BACK_RANK), progress, difficulty="medium", **timing
        )
        blitz.load_next()
        fen_before = blitz.solver.fen

        result = blitz.submit_move("g1", "f1")

        assert result.reason is RejectReason.WRONG_MOVE
        assert blitz.solver.fen == fen_before
        assert blitz.solver.status is SolverStatus.IN_PROGRESS
        solve(blitz)
        assert progress.get_progress(BACK_RANK.id).attempts == 2

    def test_time_limit_from_settings(self, bank, progress, timing):
        progress.set_settings(GameSettings(time_limit=30))
        blitz = BlitzController(bank, progress, **timing)
        assert blitz.timer.duration_ms == 30000

    def test_adaptive_difficulty_follows_rating(self, bank, progress, timing):
        blitz = BlitzController(bank, progress, **timing)
        assert blitz.current_difficulty() == "simple"
        progress.update_profile(elo=900)
        assert blitz.current_difficulty() == "medium"
        assert blitz.load_next().difficulty == "medium"

    def test_pause_stops_the_clock(self, bank, progress, clock, timing):
        blitz = BlitzController(bank, progress, difficulty="simple", time_limit_s=5, **timing)
        blitz.load_next()
        blitz.pause()
        clock.advance(60000)
        blitz.tick()
        assert blitz.solver.status is SolverStatus.IN_PROGRESS
        blitz.resume()
        clock.advance(5000)
        blitz.tick()
        assert blitz.solver.status is SolverStatus.FAILED

    def test_snapshot(self, progress, clock, timing):
        blitz = BlitzController(
            make_bank(MemoryStore(), BACK_RANK), progress, difficulty="medium",
            time_limit_s=60, **timing,
        )
        blitz.load_next()
        clock.advance(2000)
        blitz.submit_san("Rd8+")

        state = blitz.snapshot()
        assert state["mode"] == "blitz"
        assert state["puzzle_id"] == BACK_RANK.id
        assert state["last_move"] == "d2d8"
        assert state["moves_played"] == ["Rd8+"]
        assert state["moves_total"] == 3
        assert state["turn"] == "black"
        assert state["player_color"] == "white"
        assert state["status"] == "in_progress"
        assert state["remaining_ms"] == 58000

    def test_exit_cancels_advance_and_records_play_time(self, bank, progress, clock, timing):
        blitz = BlitzController(bank, progress, difficulty="simple", **timing)
        first = blitz.load_next()
        solve(blitz)
        clock.advance(60000)

        result = blitz.exit()

        assert result.new_streak == 0
        assert progress.get_profile().total_play_time == 1.0
        clock.advance(5000)
        blitz.tick()
        assert blitz.puzzle.id == first.id
        assert blitz.exit() is None
        assert blitz.submit_san("e4").reason is RejectReason.FINISHED

    def test_store_failure_does_not_stop_play(self, failing_store, wall_clock, timing, caplog):
        bank = make_bank(failing_store, SCHOLAR, PROMOTION)
        progress = ProgressStore(failing_store, clock=wall_clock)
        failing_store.fail_writes = True
        blitz = BlitzController(bank, progress, difficulty="simple", **timing)
        blitz.load_next()

        solve(blitz)

        assert blitz.solver.status is SolverStatus.SOLVED
        assert blitz.score == 1
        assert "Could not save progress" in caplog.text

    def test_stats_stay_consistent_across_rounds(self, bank, progress, clock, timing):
        blitz = BlitzController(bank, progress, difficulty="simple", time_limit_s=30, **timing)
        rounds = [
            ("simple", True), ("medium", False), ("hard", True),
            ("simple", True), ("ultra", False), ("medium", True),
        ]

        for difficulty, solved in rounds:
            blitz.difficulty = difficulty
            assert blitz.load_next().difficulty == difficulty
            if solved:
                clock.advance(2000)
                solve(blitz)
            else:
                clock.advance(30000)
                blitz.tick()

            stats = progress.get_stats()
            assert stats.solved_puzzles <= stats.total_puzzles
            for bucket in stats.difficulty_breakdown.values():
                assert bucket["solved"] <= bucket["attempted"]

        stats = progress.get_stats()
        assert (stats.total_puzzles, stats.solved_puzzles) == (6, 4)
        assert stats.difficulty_breakdown == {
            "simple": {"solved": 2, "attempted": 2},
            "medium": {"solved": 1, "attempted": 2},
            "hard": {"solved": 1, "attempted": 1},
            "ultra": {"solved": 0, "attempted": 1},
        }
        assert stats.best_streak == 2
        assert stats.average_time == 2000

    def test_stored_streaks_agree(self, progress, timing):
        progress.set_stats(UserStats(current_streak=3, best_streak=3))
        blitz = BlitzController(
            make_bank(MemoryStore(), PROMOTION, SCHOLAR), progress, difficulty="simple", **timing
        )

        first = blitz.load_next()
        solve(blitz)
        second = blitz.load_next()
        solve(blitz)

        stats = progress.get_stats()
        assert progress.get_progress(first.id).streak == 1
        assert progress.get_progress(second.id).streak == 2
        assert stats.current_streak == blitz.streak == 2
        assert stats.best_streak == 3

    def test_empty_bank(self, progress, timing):
        blitz = BlitzController(make_bank(MemoryStore()), progress, difficulty="simple", **timing)
        assert blitz.load_next() is None
        assert blitz.message == "No puzzles available"
        assert blitz.submit_san("e4").reason is RejectReason.FINISHED

    def test_engine_hint(self, progress, timing):
        engine = MagicMock()
        engine.best_move.return_value = "d2d8"
        blitz = BlitzController(
            make_bank(MemoryStore(), BACK_RANK), progress, difficulty="medium",
            engine=engine, **timing,
        )
        blitz.load_next()
        assert blitz.engine_hint() == "d2d8"
        engine.best_move.assert_called_once_with(blitz.solver.fen)

    def test_engine_hint_without_engine(self, bank, progress, timing):
        blitz = BlitzController(bank, progress, difficulty="simple", **timing)
        blitz.load_next()
        assert blitz.engine_hint() is None


# ---------------------------------------------------------------------------
# Daily
# ---------------------------------------------------------------------------


class TestDailySelection:

    def test_prefers_two_to_seven_moves(self):
        assert select_daily_puzzle("2025-03-12", [SCHOLAR, PROMOTION], set()) is PROMOTION

    def test_short_only_pool_still_picks(self):
        assert select_daily_puzzle("2025-03-12", [SCHOLAR], set()) is SCHOLAR

    def test_skips_used_puzzles(self):
        picked = select_daily_puzzle("2025-03-12", [PROMOTION, BACK_RANK], {PROMOTION.id})
        assert picked is BACK_RANK

    def test_all_used_falls_back_to_everything(self):
        picked = select_daily_puzzle("2025-03-12", [PROMOTION], {PROMOTION.id})
        assert picked is PROMOTION

    def test_empty(self):
        assert select_daily_puzzle("2025-03-12", [], set()) is None

    def test_same_day_same_puzzle(self, bank, timing):
        first = DailyController(bank, ProgressStore(MemoryStore()), day="2025-03-12", **timing)
        second = DailyController(bank, ProgressStore(MemoryStore()), day="2025-03-12", **timing)
        assert first.load_next().id == second.load_next().id


class TestDaily:

    def test_date_object(self, bank, progress, timing):
        assert DailyController(bank, progress, day=date(2025, 3, 12), **timing).day == "2025-03-12"

    def test_entry_is_reused(self, bank, progress, timing):
        puzzle = DailyController(bank, progress, day="2025-03-12", **timing).load_next()
        again = DailyController(bank, progress, day="2025-03-12", **timing).load_next()
        assert again.id == puzzle.id
        assert progress.daily_entry("2025-03-12").puzzle_id == puzzle.id

    def test_timer_is_unlimited(self, bank, progress, clock, timing):
        daily = DailyController(bank, progress, day="2025-03-12", **timing)
        daily.load_next()
        clock.advance(10 * 60 * 1000)
        daily.tick()
        assert daily.snapshot()["remaining_ms"] is None
        assert daily.solver.status is SolverStatus.IN_PROGRESS

    def test_solve_scores_and_rates(self, bank, progress, timing):
        daily = DailyController(bank, progress, day="2025-03-12", **timing)
        puzzle = daily.load_next()

        solve(daily)

        result = daily.result
        assert result["score"] == 10
        assert result["elo_change"] > 0
        assert progress.get_profile().elo == 400 + result["elo_change"]
        assert progress.recent_scores()[0].puzzle_id == puzzle.id
        assert progress.get_progress(puzzle.id).solved
        assert progress.daily_entry("2025-03-12").completed
        assert daily.completed_today
        assert {a.id for a in progress.get_achievements() if a.unlocked} == {"perfect-score"}
        assert daily.message.startswith("Solved! +10 points")

    def test_wrong_moves_lower_the_score(self, progress, timing):
        bank = make_bank(MemoryStore(), BACK_RANK)
        daily = DailyController(bank, progress, day="2025-03-12", **timing)
        daily.load_next()
        daily.submit_move("g1", "f1")
        daily.submit_move("g1", "f1")

        solve(daily)

        assert daily.result["accuracy_bonus"] == 1.0
        assert daily.result["score"] == 10
        assert progress.get_progress(BACK_RANK.id).attempts == 3

    def test_completed_day_refuses_moves(self, bank, progress, timing):
        daily = DailyController(bank, progress, day="2025-03-12", **timing)
        puzzle = daily.load_next()
        solve(daily)

        revisit = DailyController(bank, progress, day="2025-03-12", **timing)
        assert revisit.load_next().id == puzzle.id
        assert revisit.completed_today
        assert revisit.message == "Daily puzzle already completed today"
        assert revisit.submit_san(puzzle.solution[0]).reason is RejectReason.FINISHED
        assert revisit.snapshot()["completed_today"] is True

    def test_next_day_gets_a_fresh_puzzle(self, bank, progress, timing):
        today = DailyController(bank, progress, day="2025-03-12", **timing).load_next()
        tomorrow = DailyController(bank, progress, day="2025-03-13", **timing).load_next()
        assert tomorrow.id != today.id

    def test_store_failure_does_not_stop_play(self, failing_store, wall_clock, timing, caplog):
        bank = make_bank(failing_store, SCHOLAR, PROMOTION)
        progress = ProgressStore(failing_store, clock=wall_clock)
        failing_store.fail_writes = True
        daily = DailyController(bank, progress, day="2025-03-12", **timing)
        assert daily.load_next().id == PROMOTION.id

        solve(daily)

        assert daily.solver.status is SolverStatus.SOLVED
        assert daily.completed_today
        assert daily.result["score"] == 10
        assert "Could not save daily entry" in caplog.text
        assert progress.daily_entry("2025-03-12") is None


# ---------------------------------------------------------------------------
# Rush
# ---------------------------------------------------------------------------


class TestRush:

    def test_difficulty_by_rating(self):
        assert rush_difficulty(400) == "simple"
        assert rush_difficulty(800) == "medium"
        assert rush_difficulty(1199) == "medium"
        assert rush_difficulty(1200) == "hard"

    def test_streak_multiplier(self, bank, progress, clock, timing):
        rush = RushController(bank, progress, **timing)
        rush.load_next()
        solve(rush)
        assert rush.score == 10

        clock.advance(1000)
        rush.tick()
        solve(rush)

        assert rush.score == 21
        assert rush.streak == 2
        assert rush.solved_count == 2
        assert rush.message == "+11 points"
        assert sorted(r.score for r in progress.recent_scores()) == [10, 11]

    def test_session_timer_runs_across_puzzles(self, bank, progress, clock, timing):
        rush = RushController(bank, progress, session_ms=60000, **timing)
        rush.load_next()
        clock.advance(5000)
        solve(rush)
        clock.advance(1000)
        rush.tick()
        assert rush.timer.remaining_ms() == 54000

    def test_wrong_move_breaks_streak_and_moves_on(self, bank, progress, clock, timing):
        rush = RushController(bank, progress, **timing)
        rush.load_next()
        solve(rush)
        clock.advance(1000)
        rush.tick()
        missed = rush.puzzle

        result = play_wrong(rush)

        assert rush.streak == 0
        assert rush.puzzle.id != missed.id
        assert rush.message == f"Wrong move ({result.san}). Streak lost!"
        assert not progress.get_progress(missed.id).solved

    def test_timeout_ends_the_game(self, bank, progress, clock, timing):
        rush = RushController(bank, progress, session_ms=500, **timing)
        first = rush.load_next()
        solve(rush)

        clock.advance(500)
        rush.tick()
        assert rush.game_over
        assert rush.message == "Time's up! Final score: 10"
        assert not rush.advance_pending

        clock.advance(1000)
        rush.tick()
        assert rush.puzzle.id == first.id
        assert rush.snapshot()["game_over"] is True

    def test_timeout_fails_open_puzzle(self, bank, progress, clock, timing):
        rush = RushController(bank, progress, session_ms=500, **timing)
        rush.load_next()
        clock.advance(500)
        rush.tick()
        assert rush.solver.status is SolverStatus.FAILED
        assert rush.load_next() is None

    def test_store_failure_does_not_stop_play(self, failing_store, clock, wall_clock, timing, caplog):
        bank = make_bank(failing_store, SCHOLAR, PROMOTION)
        progress = ProgressStore(failing_store, clock=wall_clock)
        failing_store.fail_writes = True
        rush = RushController(bank, progress, **timing)
        rush.load_next()

        solve(rush)

        assert rush.score == 10
        assert rush.advance_pending
        assert "Could not save score" in caplog.text
        assert progress.recent_scores() == []

        clock.advance(1000)
        rush.tick()
        result = play_wrong(rush)
        assert result.reason is RejectReason.WRONG_MOVE
        assert rush.streak == 0
        assert rush.solver.status is SolverStatus.IN_PROGRESS


# ---------------------------------------------------------------------------
# Practice
# ---------------------------------------------------------------------------


class TestPractice:

    def test_tactic_feedback_on_wrong_move(self, progress, timing):
        practice = PracticeController(make_bank(MemoryStore(), FORK), progress, **timing)
        practice.load_next()
        play_wrong(practice)
        assert practice.message in TACTIC_HINTS["royal-fork"]

    def test_generic_feedback_on_wrong_move(self, progress, timing):
        practice = PracticeController(make_bank(MemoryStore(), PROMOTION), progress, **timing)
        practice.load_next()
        play_wrong(practice)
        assert practice.message in ENCOURAGEMENTS

    def test_reveal_and_next(self, bank, progress, timing):
        practice = PracticeController(bank, progress, difficulty="hard", **timing)
        assert practice.load_next().id == ITALIAN.id
        assert practice.reveal_solution() == list(ITALIAN.solution)
        assert practice.next().id == ITALIAN.id

    def test_nothing_is_persisted(self, bank, progress, store, clock, timing):
        practice = PracticeController(bank, progress, **timing)
        practice.load_next()
        solve(practice)
        clock.advance(30 * 60 * 1000)

        assert practice.solved_count == 1
        assert practice.message == "Puzzle solved!"
        assert practice.exit() is None
        assert store.count("progress") == 0
        assert store.count("profile") == 0


# ---------------------------------------------------------------------------
# Session bookkeeping
# ---------------------------------------------------------------------------


class TestPlaySession:

    def test_badge_on_reaching_milestone(self, progress):
        progress.update_profile(streak_count=9, last_played=NOW_MS - DAY_MS)

        result = record_play_session(progress, 15, now_ms=NOW_MS)

        assert result.new_streak == 10
        profile = progress.get_profile()
        assert profile.streak_count == 10
        assert profile.last_played == NOW_MS
        assert profile.total_play_time == 15
        assert profile.has_badge("streak-10")

    def test_short_session_keeps_streak(self, progress):
        progress.update_profile(streak_count=4, last_played=NOW_MS - DAY_MS)
        assert record_play_session(progress, 5, now_ms=NOW_MS).new_streak == 4
        assert progress.get_profile().badges == []


class TestCreateController:

    @pytest.mark.parametrize("mode,cls", [
        ("blitz", BlitzController),
        ("daily", DailyController),
        ("rush", RushController),
        ("practice", PracticeController),
    ])
    def test_known_modes(self, bank, progress, timing, mode, cls):
        assert isinstance(create_controller(mode, bank, progress, **timing), cls)

    def test_unknown_mode(self, bank, progress):
        with pytest.raises(ValueError, match="Unknown mode"):
            create_controller("bullet", bank, progress)

    def test_base_controller_is_abstract(self, bank, progress):
        with pytest.raises(TypeError):
            ModeController(bank, progress)
