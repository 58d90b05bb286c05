#!/usr/bin/env python3
"""Back up, restore and summarize player progress.

    python -m trainer.export export backup.json
    python -m trainer.export import backup.json
    python -m trainer.export report
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from trainer import config
from trainer.app import open_services
from trainer.errors import InvalidImportError, PersistenceError
from trainer.hints import tactic_name
from trainer.progress import ProgressStore
from trainer.puzzles import PuzzleBank


def export_to_file(progress: ProgressStore, path: Path) -> int:
    """Write the export bundle; returns the number of progress records."""
    bundle = progress.export_all()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(bundle, indent=2, ensure_ascii=False), encoding="utf-8")
    return len(bundle["progress"])


def import_from_file(progress: ProgressStore, path: Path) -> int:
    """Load a bundle written by export_to_file.

    Raises:
        InvalidImportError: If the file is not a valid export bundle.
    """
    try:
        bundle = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidImportError("progress", f"{path.name} is not valid JSON ({exc.msg})") from exc
    progress.import_all(bundle)
    return len(bundle["progress"])


def export_report(progress: ProgressStore, bank: PuzzleBank | None = None) -> str:
    """Progress report as markdown."""
    profile = progress.get_profile()
    stats = progress.get_stats()

    lines = ["# Puzzle Trainer Progress Report", ""]

    lines.append("## Current Level")
    lines.append(f"- Level: {profile.level}")
    lines.append(f"- Elo: {profile.elo} ({profile.league.title()} league)")
    lines.append(f"- Daily streak: {profile.streak_count}")
    lines.append(f"- Play time: {profile.total_play_time:.0f} min")
    lines.append("")

    if stats.total_puzzles == 0:
        lines.append("No puzzles attempted yet. Start a session first!")
        return "\n".join(lines)

    lines.append("## Puzzles")
    lines.append(f"- Solved: {stats.solved_puzzles}/{stats.total_puzzles}")
    lines.append(f"- Accuracy: {stats.accuracy * 100:.0f}%")
    lines.append(f"- Average solve time: {stats.average_time / 1000:.1f}s")
    lines.append(f"- Best streak: {stats.best_streak}")
    lines.append("")

    attempted = {d: b for d, b in stats.difficulty_breakdown.items() if b["attempted"]}
    if attempted:
        lines.append("## By Difficulty")
        for difficulty, bucket in attempted.items():
            lines.append(f"- {difficulty}: {bucket['solved']}/{bucket['attempted']}")
        lines.append("")

    if profile.badges:
        lines.append("## Badges")
        for badge in profile.badges:
            lines.append(f"- {badge.icon} {badge.name}: {badge.description}")
        lines.append("")

    if bank is not None:
        missed: dict[str, int] = {}
        for record in progress.get_all_progress():
            if record.solved:
                continue
            puzzle = bank.get_puzzle(record.puzzle_id)
            if puzzle is not None and puzzle.main_tactic:
                missed[puzzle.main_tactic] = missed.get(puzzle.main_tactic, 0) + 1
        if missed:
            lines.append("## Areas for Improvement")
            for tactic, count in sorted(missed.items(), key=lambda kv: -kv[1]):
                lines.append(f"- {tactic_name(tactic)} ({count} unsolved)")
            lines.append("")

    return "\n".join(lines)


def main() -> int:
    parser = argparse.ArgumentParser(description="Export, import or summarize progress")
    parser.add_argument("--store", type=Path, default=config.STORE_FILE, help="Store file")
    subparsers = parser.add_subparsers(dest="command")

    export_parser = subparsers.add_parser("export", help="Write progress to a JSON file")
    export_parser.add_argument("path", type=Path)
    import_parser = subparsers.add_parser("import", help="Load progress from a JSON file")
    import_parser.add_argument("path", type=Path)
    subparsers.add_parser("report", help="Print a markdown progress report")

    args = parser.parse_args()
    config.configure_logging()

    if args.command is None:
        parser.print_help()
        return 1

    try:
        bank, progress = open_services(args.store)
        if args.command == "export":
            count = export_to_file(progress, args.path)
            print(f"Exported {count} progress records to {args.path}")
        elif args.command == "import":
            count = import_from_file(progress, args.path)
            print(f"Imported {count} progress records from {args.path}")
        else:
            print(export_report(progress, bank))
    except (InvalidImportError, PersistenceError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: cannot access {e.filename}: {e.strerror}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
