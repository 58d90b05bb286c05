"""Puzzle bank: the ``puzzles`` collection and seed loading."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from trainer.models import Puzzle
from trainer.store import Store
from trainer.validation import enhance_puzzle

logger = logging.getLogger(__name__)

PUZZLES = "puzzles"


class PuzzleBank:
    """Read and write puzzle records, with difficulty and rating lookups."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def save_puzzles(self, puzzles: list[Puzzle]) -> None:
        self._store.put_many(PUZZLES, {p.id: p.to_dict() for p in puzzles})

    def get_puzzle(self, puzzle_id: str) -> Puzzle | None:
        record = self._store.get(PUZZLES, puzzle_id)
        return Puzzle.from_dict(record) if record is not None else None

    def all(self) -> list[Puzzle]:
        return [Puzzle.from_dict(r) for r in self._store.all(PUZZLES)]

    def count(self) -> int:
        return self._store.count(PUZZLES)

    def by_difficulty(self, difficulty: str, limit: int | None = None) -> list[Puzzle]:
        records = self._store.query(PUZZLES, "difficulty", difficulty)
        puzzles = [Puzzle.from_dict(r) for r in records]
        return puzzles[:limit] if limit else puzzles

    def by_rating(self, min_rating: int, max_rating: int, limit: int | None = None) -> list[Puzzle]:
        records = self._store.query_range(PUZZLES, "rating", min_rating, max_rating)
        puzzles = [Puzzle.from_dict(r) for r in records]
        return puzzles[:limit] if limit else puzzles

    def load_seed(self, path: str | Path) -> int:
        """Import the seed file once; returns how many puzzles were added.

        Does nothing when puzzles are already stored. A missing or
        unreadable seed file leaves the bank empty.
        """
        if self.count() > 0:
            return 0

        path = Path(path)
        try:
            records = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Seed file %s not loaded: %s", path, exc)
            return 0

        if not isinstance(records, list):
            logger.warning("Seed file %s is not a JSON array", path)
            return 0

        puzzles = []
        for i, record in enumerate(records):
            try:
                puzzles.append(enhance_puzzle(Puzzle.from_dict(record)))
            except (TypeError, AttributeError):
                logger.warning("Skipping malformed seed record %d in %s", i, path)
        puzzles = deduplicate(puzzles)

        flagged = [p.id for p in puzzles if not p.validated]
        if flagged:
            logger.info("%d seed puzzles failed validation: %s", len(flagged), flagged)

        self.save_puzzles(puzzles)
        logger.info("Loaded %d seed puzzles from %s", len(puzzles), path)
        return len(puzzles)


def deduplicate(puzzles: list[Puzzle]) -> list[Puzzle]:
    """Keep the first puzzle for each board placement and solution line."""
    seen: set[tuple] = set()
    unique = []
    for puzzle in puzzles:
        key = (puzzle.fen.split(" ")[0], puzzle.solution)
        if key not in seen:
            seen.add(key)
            unique.append(puzzle)
    return unique
