"""Human-facing hints: indirect move hints and tactic explanations."""

from __future__ import annotations

import random

_PIECE_NAMES = {
    "N": "Knight",
    "B": "Bishop",
    "R": "Rook",
    "Q": "Queen",
    "K": "King",
}

TACTIC_HINTS: dict[str, list[str]] = {
    "pin": [
        "Look for a piece that cannot move without exposing a more valuable piece",
        "Can you attack a piece that's protecting something important?",
        "Find the pinned piece - it can't move!",
    ],
    "skewer": [
        "Attack a valuable piece with a less valuable one behind it",
        "Force the important piece to move and capture what's behind",
        "Look for pieces lined up on a file, rank, or diagonal",
    ],
    "fork": [
        "Can one piece attack two or more pieces at once?",
        "Knights are great at forking - look for a knight move!",
        "Attack two pieces simultaneously",
    ],
    "royal-fork": [
        "Can you attack the king and another piece at the same time?",
        "A royal fork attacks the king and a valuable piece!",
        "Look for a knight fork on the king",
    ],
    "discovered-attack": [
        "Move one piece to reveal an attack from another",
        "What happens when this piece moves out of the way?",
        "Look for a piece blocking a powerful attacker",
    ],
    "discovered-check": [
        "Move a piece and give check with the piece behind it",
        "Can you reveal a check by moving another piece?",
        "Look for a discovered check opportunity",
    ],
    "double-attack": [
        "Attack two different pieces or squares at once",
        "Can you threaten multiple things in one move?",
        "Look for a move that creates two threats",
    ],
}

TACTIC_NAMES = {
    "pin": "Pin",
    "skewer": "Skewer",
    "fork": "Fork",
    "royal-fork": "Royal Fork",
    "discovered-attack": "Discovered Attack",
    "discovered-check": "Discovered Check",
    "double-attack": "Double Attack",
}

LEARNING_THEME_HINTS = {
    "backrank-mate": "The king is trapped on the back rank!",
    "smothered-mate": "The king is surrounded by its own pieces",
    "forced-mate": "Look for a forcing sequence that leads to checkmate",
    "sacrifice": "Sometimes you need to give up material for a win!",
    "king-safety": "The king is vulnerable - exploit it!",
    "development": "Get your pieces into the game quickly",
}

LEARNING_THEME_NAMES = {
    "backrank-mate": "Back Rank Checkmate",
    "ladder-mate": "Ladder Checkmate",
    "forced-mate": "Forced Checkmate",
    "smothered-mate": "Smothered Mate",
    "sacrifice": "Sacrifices",
    "opening": "Opening Principles",
    "king-pawn-endgame": "King and Pawn Endgame",
    "promotion": "Promotion",
    "development": "Development",
    "king-safety": "King Safety",
}

GENERIC_HINT = "Look for the best move that improves your position"

ENCOURAGEMENTS = [
    "Keep exploring!",
    "Try another move!",
    "What else could work?",
    "You're learning! Try again",
]


def indirect_hint(san: str | None) -> str | None:
    """Name the piece to move without giving the move away."""
    if not san:
        return None
    if san.startswith("O-O"):
        return "Try castling"
    piece = _PIECE_NAMES.get(san[0])
    if piece is not None:
        return f"Try moving your {piece}"
    return "Try moving a Pawn"


def tactic_name(tactic: str) -> str:
    return TACTIC_NAMES.get(tactic, tactic.replace("-", " ").title())


def learning_theme_name(theme: str) -> str:
    return LEARNING_THEME_NAMES.get(theme, theme.replace("-", " ").title())


def tactical_hint(puzzle, rng: random.Random | None = None) -> str:
    """Pick a hint from the puzzle's main tactic or first learning theme."""
    rng = rng or random.Random()
    if puzzle.main_tactic in TACTIC_HINTS:
        return rng.choice(TACTIC_HINTS[puzzle.main_tactic])
    for theme in puzzle.learning_themes[:1]:
        if theme in LEARNING_THEME_HINTS:
            return LEARNING_THEME_HINTS[theme]
    return GENERIC_HINT


def encouragement(puzzle, rng: random.Random | None = None) -> str:
    """Feedback after a wrong move: a tactic hint when one is known."""
    rng = rng or random.Random()
    if puzzle.main_tactic in TACTIC_HINTS:
        return tactical_hint(puzzle, rng)
    return rng.choice(ENCOURAGEMENTS)
