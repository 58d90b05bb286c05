"""Chess rules adapter over python-chess.

ChessRules owns one board. The solver loads a fresh one per candidate
move so that rejected moves can never leak into the committed position.
"""

from __future__ import annotations

import chess

_PROMOTION_PIECES = {
    "q": chess.QUEEN,
    "r": chess.ROOK,
    "b": chess.BISHOP,
    "n": chess.KNIGHT,
}


def parse_square(name: str) -> chess.Square | None:
    """Square index for a name like 'e4', or None if malformed."""
    try:
        return chess.parse_square(name.strip().lower())
    except (ValueError, AttributeError):
        return None


class ChessRules:
    """Legal-move capability for a single position."""

    def __init__(self, fen: str = chess.STARTING_FEN) -> None:
        self._board = chess.Board(fen)

    def load_position(self, fen: str) -> None:
        """Replace the current position.

        Raises:
            ValueError: If the FEN cannot be parsed.
        """
        self._board = chess.Board(fen)

    @property
    def fen(self) -> str:
        return self._board.fen()

    @property
    def turn(self) -> str:
        return "white" if self._board.turn == chess.WHITE else "black"

    def legal_moves(self, square: str | None = None) -> list[str]:
        """Legal moves in UCI, optionally only those starting on ``square``."""
        moves = self._board.legal_moves
        if square is None:
            return [m.uci() for m in moves]
        origin = parse_square(square)
        if origin is None:
            return []
        return [m.uci() for m in moves if m.from_square == origin]

    def san_to_uci(self, san: str) -> str | None:
        """Translate SAN in the current position, or None if it is not legal."""
        try:
            return self._board.parse_san(san).uci()
        except ValueError:
            return None

    def apply_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> str | None:
        """Play a move and return its SAN, or None if it is illegal.

        A pawn reaching the last rank without a promotion piece becomes a
        queen.
        """
        origin = parse_square(from_square)
        target = parse_square(to_square)
        if origin is None or target is None:
            return None

        piece_type = None
        if promotion:
            piece_type = _PROMOTION_PIECES.get(promotion.strip().lower())
            if piece_type is None:
                return None
        elif self._is_promotion_square(origin, target):
            piece_type = chess.QUEEN

        move = chess.Move(origin, target, promotion=piece_type)
        if move not in self._board.legal_moves:
            return None

        san = self._board.san(move)
        self._board.push(move)
        return san

    def _is_promotion_square(self, origin: chess.Square, target: chess.Square) -> bool:
        piece = self._board.piece_at(origin)
        if piece is None or piece.piece_type != chess.PAWN:
            return False
        last_rank = 7 if piece.color == chess.WHITE else 0
        return chess.square_rank(target) == last_rank
