#!/usr/bin/env python3
"""Validate puzzle records: FEN, legal solution line and move count.

Puzzles that fail are flagged (``validated=False``), never dropped. The
CLI prints a report for a seed file and exits non-zero on any error.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path

import chess

from trainer import config
from trainer.hints import tactical_hint
from trainer.models import Puzzle

MIN_SOLUTION_MOVES = 2
MAX_SOLUTION_MOVES = 7

REQUIRED_FIELDS = ["id", "fen", "solution", "difficulty"]


@dataclass
class ValidationReport:
    valid: bool
    move_count: int
    errors: list[str] = field(default_factory=list)


def validate_puzzle(puzzle: Puzzle) -> ValidationReport:
    """Replay the solution from the start FEN and check its length."""
    errors: list[str] = []

    try:
        board = chess.Board(puzzle.fen)
    except ValueError:
        return ValidationReport(False, 0, [f"Invalid FEN: {puzzle.fen}"])

    move_count = 0
    for san in puzzle.solution:
        try:
            board.push_san(san)
        except ValueError:
            errors.append(f"Invalid move: {san} at position {move_count + 1}")
            return ValidationReport(False, move_count, errors)
        move_count += 1

    if move_count < MIN_SOLUTION_MOVES:
        errors.append(f"Too few moves: {move_count} (minimum {MIN_SOLUTION_MOVES})")
    if move_count > MAX_SOLUTION_MOVES:
        errors.append(f"Too many moves: {move_count} (maximum {MAX_SOLUTION_MOVES})")

    return ValidationReport(not errors, move_count, errors)


def detect_tactic(puzzle: Puzzle) -> str | None:
    """Cheap guess at the main tactic from the first solution move."""
    if not puzzle.solution:
        return None
    first = puzzle.solution[0]
    if first.startswith("N"):
        return "fork"
    if "+" in first:
        return "discovered-check"
    return None


def enhance_puzzle(puzzle: Puzzle) -> Puzzle:
    """Return the puzzle with validation flag, tactic and hint filled in."""
    report = validate_puzzle(puzzle)
    tactic = puzzle.main_tactic or detect_tactic(puzzle)
    enhanced = replace(puzzle, validated=report.valid, main_tactic=tactic)
    if not enhanced.hint and tactic:
        enhanced = replace(enhanced, hint=tactical_hint(enhanced))
    return enhanced


def validate_records(records: list) -> tuple[int, int, list[str]]:
    """Validate raw seed records. Returns (total, passed, errors)."""
    errors: list[str] = []
    passed = 0

    for i, record in enumerate(records):
        prefix = f"[{i}]"
        if not isinstance(record, dict):
            errors.append(f"{prefix}: expected an object")
            continue
        missing = [f for f in REQUIRED_FIELDS if f not in record]
        if missing:
            errors.extend(f"{prefix}: missing field '{f}'" for f in missing)
            continue

        report = validate_puzzle(Puzzle.from_dict(record))
        if report.valid:
            passed += 1
        else:
            errors.extend(f"{prefix} {record['id']}: {e}" for e in report.errors)

    return len(records), passed, errors


def main() -> int:
    parser = argparse.ArgumentParser(description="Validate a puzzle seed file")
    parser.add_argument("path", nargs="?", default=str(config.SEED_FILE), help="Seed JSON file")
    args = parser.parse_args()

    path = Path(args.path)
    try:
        records = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        print(f"{path.name}: failed to load: {e}")
        return 1

    if not isinstance(records, list):
        print(f"{path.name}: expected a JSON array")
        return 1

    total, passed, errors = validate_records(records)
    print(f"{passed}/{total} puzzles valid in {path.name}")

    if errors:
        print(f"\n{len(errors)} error(s):")
        for err in errors:
            print(f"  - {err}")
        return 1

    print("\nAll puzzles valid!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
