"""Terminal puzzle board for the trainer.

Two commands:

- ``play --mode practice|blitz|daily|rush`` runs an interactive session in
  the terminal, reading moves in SAN or UCI.
- ``watch`` renders data/current_puzzle.json (written by the MCP server)
  and redraws whenever watchdog reports a change.
"""

from __future__ import annotations

import argparse
import json
import re
import sys
import time
from pathlib import Path

import chess
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from trainer import config
from trainer.app import open_services
from trainer.errors import PersistenceError
from trainer.modes import MODES, ModeController, PracticeController, create_controller
from trainer.solver import RejectReason

# Unicode piece symbols
_PIECE_SYMBOLS = {
    "K": "♔", "Q": "♕", "R": "♖", "B": "♗",
    "N": "♘", "P": "♙",
    "k": "♚", "q": "♛", "r": "♜", "b": "♝",
    "n": "♞", "p": "♟",
}

_LIGHT_SQ = "grey85"
_DARK_SQ = "grey50"
_HIGHLIGHT = "yellow"

_STATUS_TITLES = {
    "solved": "Solved!",
    "failed": "Failed",
}

_UCI_RE = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$")

_HELP = "Enter a move (SAN or UCI), or: hint, engine, reveal, next, reset, q"


def _load_state(path: Path) -> dict | None:
    """Load a session snapshot from a JSON file.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed dict or None if file missing/corrupt.
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return None
    return data if isinstance(data, dict) else None


def render_board(state: dict) -> Layout:
    """Render the board and sidebar for a session snapshot.

    Args:
        state: Snapshot from ModeController.snapshot().

    Returns:
        Rich Layout with board and sidebar.
    """
    layout = Layout()
    layout.split_row(
        Layout(name="board", ratio=2),
        Layout(name="sidebar", ratio=1),
    )
    layout["board"].update(_render_board_panel(state))
    layout["sidebar"].update(_render_sidebar(state))
    return layout


def _highlights(last_move: str | None) -> set[int]:
    if not last_move:
        return set()
    try:
        move = chess.Move.from_uci(last_move)
    except chess.InvalidMoveError:
        return set()
    return {move.from_square, move.to_square}


def _square_cell(board: chess.Board, square: int, highlights: set[int]) -> Text:
    piece = board.piece_at(square)
    symbol = _PIECE_SYMBOLS[piece.symbol()] if piece else " "
    if square in highlights:
        background = _HIGHLIGHT
    elif chess.square_rank(square) % 2 != chess.square_file(square) % 2:
        background = _LIGHT_SQ
    else:
        background = _DARK_SQ
    return Text(f" {symbol} ", style=f"on {background}")


def _render_board_panel(state: dict) -> Panel:
    board = chess.Board(state.get("fen") or chess.STARTING_FEN)
    highlights = _highlights(state.get("last_move"))

    # Puzzles for Black are drawn from Black's side
    flipped = state.get("player_color") == "black"
    rank_names = chess.RANK_NAMES if flipped else chess.RANK_NAMES[::-1]
    file_names = chess.FILE_NAMES[::-1] if flipped else chess.FILE_NAMES

    grid = Table.grid(padding=(0, 1))
    grid.add_column(justify="right", width=2)
    for _ in file_names:
        grid.add_column(justify="center", width=3)

    for rank_name in rank_names:
        cells = [
            _square_cell(board, chess.parse_square(file_name + rank_name), highlights)
            for file_name in file_names
        ]
        grid.add_row(Text(rank_name, style="bold"), *cells)
    grid.add_row(Text(""), *(Text(name, style="bold") for name in file_names))

    title = _STATUS_TITLES.get(state.get("status"), f"{state.get('turn', 'white').title()} to move")
    return Panel(grid, title=title, border_style="blue")


def _format_ms(ms: int) -> str:
    seconds = max(0, ms) // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


def _render_sidebar(state: dict) -> Panel:
    parts: list[str] = []

    parts.append(f"[bold]{state.get('mode', '?').title()} mode[/bold]")
    if state.get("puzzle_id"):
        parts.append(f"Puzzle: {state['puzzle_id']} ({state.get('difficulty') or '?'})")
    remaining = state.get("remaining_ms")
    if remaining is not None:
        parts.append(f"Time left: {_format_ms(remaining)}")
    parts.append(f"Score: {state.get('score', 0)}  Streak: {state.get('streak', 0)}")
    parts.append("")

    moves = state.get("moves_played", [])
    parts.append(f"[bold]Moves:[/bold] {len(moves)}/{state.get('moves_total', 0)}")
    if moves:
        parts.append("  " + " ".join(moves))
    wrong = state.get("wrong_move_count", 0)
    if wrong:
        parts.append(f"Wrong moves: {wrong}")

    if state.get("completed_today"):
        parts.append("")
        parts.append("[green]Daily puzzle completed[/green]")
    if state.get("game_over"):
        parts.append("")
        parts.append("[red]Session over[/red]")

    message = state.get("message")
    if message:
        parts.append("")
        parts.append(f"[italic]{message}[/italic]")

    return Panel("\n".join(parts), title="Info", border_style="green")


def _render_waiting() -> Panel:
    return Panel(
        Text("Waiting for a puzzle...\n\nStart a session via the MCP server to see the board.",
             justify="center"),
        title="Puzzle Trainer",
        border_style="dim",
    )


def handle_command(controller: ModeController, line: str) -> str | None:
    """Apply one line of user input to the controller.

    Returns feedback text for the player, or None for a plain accepted move.
    """
    command = line.strip()
    lowered = command.lower()

    if lowered == "hint":
        return controller.request_hint() or "No hint available"
    if lowered == "engine":
        move = controller.engine_hint()
        return f"Engine suggests {move}" if move else "Engine hint unavailable"
    if lowered == "reveal":
        if not isinstance(controller, PracticeController):
            return "Reveal is only available in practice mode"
        return "Solution: " + " ".join(controller.reveal_solution())
    if lowered == "next":
        if controller.load_next() is None:
            return "No more puzzles"
        return None
    if lowered == "reset":
        if not isinstance(controller, PracticeController) or controller.solver is None:
            return "Reset is only available in practice mode"
        controller.solver.reset()
        return "Puzzle reset"

    if _UCI_RE.match(command):
        result = controller.submit_move(command[:2], command[2:4], command[4:] or None)
    else:
        result = controller.submit_san(command)

    if result.accepted:
        return "Solved!" if result.solved else None
    if result.reason is RejectReason.ILLEGAL_MOVE:
        return f"Illegal move: {command}"
    if result.reason is RejectReason.FINISHED:
        return "This puzzle is over. Type 'next' or 'q'"
    return controller.message or f"{result.san} is not the move. Try again"


def _play_loop(console: Console, controller: ModeController) -> None:
    if controller.load_next() is None:
        console.print("[red]No puzzles available. Check the seed file.[/red]")
        return

    feedback: str | None = None
    try:
        while not controller.exited:
            controller.tick()
            state = controller.snapshot()
            console.clear()
            console.print(Group(render_board(state), Text(feedback or _HELP, style="italic")))
            if state.get("game_over"):
                break

            line = console.input("[bold]> [/bold]")
            if line.strip().lower() in ("q", "quit", "exit"):
                break
            controller.tick()
            feedback = handle_command(controller, line)
    except (KeyboardInterrupt, EOFError):
        pass
    finally:
        controller.exit()

    console.print(f"Final score: {controller.score}, puzzles solved: {controller.solved_count}")


def _watch_loop(console: Console, path: Path) -> None:
    """Redraw whenever the MCP server rewrites the snapshot file."""
    from watchdog.events import FileSystemEventHandler
    from watchdog.observers import Observer

    last_state: dict | None = None
    state_changed = True

    class _Handler(FileSystemEventHandler):
        def on_modified(self, event):
            nonlocal state_changed
            if event.src_path.endswith(path.name):
                state_changed = True

        on_created = on_modified
        on_moved = on_modified

    observer = Observer()
    path.parent.mkdir(parents=True, exist_ok=True)
    observer.schedule(_Handler(), str(path.parent), recursive=False)
    observer.start()

    try:
        with Live(console=console, refresh_per_second=4) as live:
            while True:
                if state_changed:
                    state = _load_state(path)
                    if state is not None:
                        last_state = state
                        live.update(render_board(state))
                    elif last_state is None:
                        live.update(_render_waiting())
                    state_changed = False
                time.sleep(0.25)
    except KeyboardInterrupt:
        pass
    finally:
        observer.stop()
        observer.join()


def main() -> int:
    """CLI entry point for the terminal board."""
    parser = argparse.ArgumentParser(description="Chess puzzle trainer terminal UI")
    subparsers = parser.add_subparsers(dest="command")

    play_parser = subparsers.add_parser("play", help="Play puzzles in the terminal")
    play_parser.add_argument("--mode", choices=sorted(MODES), default="practice")
    play_parser.add_argument("--difficulty", default=None, help="simple, medium, hard or ultra")

    watch_parser = subparsers.add_parser("watch", help="Follow the MCP server session")
    watch_parser.add_argument("--file", type=Path, default=config.CURRENT_PUZZLE_FILE)

    args = parser.parse_args()
    config.configure_logging()
    console = Console()

    if args.command == "watch":
        _watch_loop(console, args.file)
        return 0
    if args.command != "play":
        parser.print_help()
        return 1

    try:
        bank, progress = open_services()
    except PersistenceError as e:
        console.print(f"[red]{e}[/red]")
        return 1

    kwargs = {}
    if args.difficulty and args.mode in ("blitz", "practice"):
        kwargs["difficulty"] = args.difficulty
    _play_loop(console, create_controller(args.mode, bank, progress, **kwargs))
    return 0


if __name__ == "__main__":
    sys.exit(main())
