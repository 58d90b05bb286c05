"""Puzzle attempt state machine.

A PuzzleSolver checks each submitted move for legality, then against the
next expected solution step. The committed position is never mutated in
place: every accepted move appends a new FEN, so the current board is
always the start position replayed through the accepted moves.

    IN_PROGRESS --correct, more to go--> IN_PROGRESS
    IN_PROGRESS --correct, last move---> SOLVED
    IN_PROGRESS --wrong---------------> IN_PROGRESS (wrong_move_count + 1)
    IN_PROGRESS --time_out------------> FAILED
    SOLVED / FAILED --reset-----------> IN_PROGRESS
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from trainer.hints import indirect_hint
from trainer.models import Puzzle
from trainer.rules import ChessRules

_ANNOTATION_CHARS = "+#!?"


class SolverStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    SOLVED = "solved"
    FAILED = "failed"


class RejectReason(str, enum.Enum):
    ILLEGAL_MOVE = "illegal_move"
    WRONG_MOVE = "wrong_move"
    FINISHED = "finished"


@dataclass(frozen=True)
class MoveResult:
    """Outcome of one submitted move."""

    accepted: bool
    solved: bool = False
    san: str | None = None
    reason: RejectReason | None = None

    @classmethod
    def accept(cls, san: str, solved: bool) -> MoveResult:
        return cls(accepted=True, solved=solved, san=san)

    @classmethod
    def reject(cls, reason: RejectReason, san: str | None = None) -> MoveResult:
        return cls(accepted=False, san=san, reason=reason)


def normalize_san(san: str) -> str:
    """SAN without check, mate or annotation marks."""
    return san.strip().rstrip(_ANNOTATION_CHARS)


class PuzzleSolver:
    """Tracks a single attempt at a puzzle.

    Args:
        puzzle: The puzzle being attempted.
        strict: When True a wrong move also ends the attempt as FAILED.
            The default lets the player retry, counting each miss.
    """

    def __init__(self, puzzle: Puzzle, strict: bool = False) -> None:
        if not puzzle.solution:
            raise ValueError(f"Puzzle {puzzle.id} has no solution moves")
        self.puzzle = puzzle
        self.strict = strict
        self._expected = [normalize_san(m) for m in puzzle.solution]
        self.reset()

    def reset(self) -> None:
        """Restart the same puzzle from its first move."""
        self.cursor = 0
        self.accepted_moves: list[str] = []
        self.wrong_move_count = 0
        self.status = SolverStatus.IN_PROGRESS
        self._positions = [ChessRules(self.puzzle.fen).fen]

    @property
    def fen(self) -> str:
        return self._positions[-1]

    @property
    def positions(self) -> list[str]:
        return list(self._positions)

    @property
    def turn(self) -> str:
        return ChessRules(self.fen).turn

    @property
    def is_terminal(self) -> bool:
        return self.status is not SolverStatus.IN_PROGRESS

    def legal_moves(self, square: str | None = None) -> list[str]:
        return ChessRules(self.fen).legal_moves(square)

    def submit_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> MoveResult:
        """Validate a move and advance or reject.

        Illegal moves change nothing. Legal moves that differ from the
        expected step increment wrong_move_count and leave the board as it
        was.
        """
        if self.status is not SolverStatus.IN_PROGRESS:
            return MoveResult.reject(RejectReason.FINISHED)

        rules = ChessRules(self.fen)
        san = rules.apply_move(from_square, to_square, promotion)
        if san is None:
            return MoveResult.reject(RejectReason.ILLEGAL_MOVE)

        if normalize_san(san) != self._expected[self.cursor]:
            self.wrong_move_count += 1
            if self.strict:
                self.status = SolverStatus.FAILED
            return MoveResult.reject(RejectReason.WRONG_MOVE, san=san)

        self.accepted_moves.append(san)
        self._positions.append(rules.fen)
        self.cursor += 1
        if self.cursor == len(self._expected):
            self.status = SolverStatus.SOLVED
        return MoveResult.accept(san, solved=self.status is SolverStatus.SOLVED)

    def submit_san(self, san: str) -> MoveResult:
        """Submit a move written in SAN (used by the text front ends)."""
        uci = ChessRules(self.fen).san_to_uci(san)
        if uci is None:
            if self.status is not SolverStatus.IN_PROGRESS:
                return MoveResult.reject(RejectReason.FINISHED)
            return MoveResult.reject(RejectReason.ILLEGAL_MOVE)
        promotion = uci[4] if len(uci) == 5 else None
        return self.submit_move(uci[:2], uci[2:4], promotion)

    def time_out(self) -> None:
        """Mark the attempt failed because time ran out."""
        if self.status is SolverStatus.IN_PROGRESS:
            self.status = SolverStatus.FAILED

    def request_hint(self) -> str | None:
        """Indirect hint for the next move; never counts as an attempt."""
        if self.status is not SolverStatus.IN_PROGRESS:
            return None
        if not 0 <= self.cursor < len(self.puzzle.solution):
            return None
        return indirect_hint(self.puzzle.solution[self.cursor])

    def expected_move_uci(self) -> str | None:
        """The next solution move as UCI, for square highlighting."""
        if self.status is not SolverStatus.IN_PROGRESS:
            return None
        return ChessRules(self.fen).san_to_uci(self.puzzle.solution[self.cursor])

    def reveal_solution(self) -> list[str]:
        """Solution moves not yet played."""
        return list(self.puzzle.solution[self.cursor:])
