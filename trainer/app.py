"""Wiring shared by the CLI, the TUI and the MCP server."""

from __future__ import annotations

from pathlib import Path

from trainer import config
from trainer.progress import ProgressStore
from trainer.puzzles import PuzzleBank
from trainer.store import JsonFileStore


def open_services(
    store_path: str | Path | None = None,
    seed_path: str | Path | None = None,
) -> tuple[PuzzleBank, ProgressStore]:
    """Open the on-disk store and make sure the seed puzzles are loaded.

    Raises:
        PersistenceError: If the store file cannot be read or written.
    """
    store = JsonFileStore(store_path or config.STORE_FILE)
    bank = PuzzleBank(store)
    bank.load_seed(seed_path or config.SEED_FILE)
    return bank, ProgressStore(store)
