"""
Board model: a fixed 8x8 grid of optional pieces.

The board owns its pieces. ``clone()`` produces a fully independent deep copy,
which is what the policy and trainer use for every hypothetical move.
"""
from __future__ import annotations

from typing import Iterator, List, Optional, Tuple

from .types import (
    BOARD_SIZE,
    BoardKey,
    Grid,
    Move,
    Piece,
    PieceColor,
    PieceType,
    Position,
)

# Cell codes used by the structural fingerprint
_CODES = {
    (PieceColor.RED, PieceType.MAN): 1,
    (PieceColor.RED, PieceType.KING): 2,
    (PieceColor.BLACK, PieceType.MAN): -1,
    (PieceColor.BLACK, PieceType.KING): -2,
}
_SYMBOLS = {1: "r", 2: "R", -1: "b", -2: "B", 0: "."}


def is_dark_square(row: int, col: int) -> bool:
    return (row + col) % 2 == 1


class Board:
    """8x8 checkers board. Black occupies rows 0..2 and Red rows 5..7 at the start."""

    def __init__(self, setup: bool = True) -> None:
        self._squares: Grid = [[None] * BOARD_SIZE for _ in range(BOARD_SIZE)]
        if setup:
            self._setup()

    @classmethod
    def empty(cls) -> "Board":
        return cls(setup=False)

    def _setup(self) -> None:
        for row in range(BOARD_SIZE):
            for col in range(BOARD_SIZE):
                if not is_dark_square(row, col):
                    continue
                if row <= 2:
                    self.place(Position(row, col), PieceColor.BLACK)
                elif row >= 5:
                    self.place(Position(row, col), PieceColor.RED)

    # ------------------------------------------------------------------
    # Cell access
    # ------------------------------------------------------------------
    @staticmethod
    def is_valid_position(pos: Position) -> bool:
        return 0 <= pos[0] < BOARD_SIZE and 0 <= pos[1] < BOARD_SIZE

    @staticmethod
    def is_playable_square(pos: Position) -> bool:
        return Board.is_valid_position(pos) and is_dark_square(pos[0], pos[1])

    def get_piece(self, pos: Position) -> Optional[Piece]:
        if not self.is_valid_position(pos):
            return None
        return self._squares[pos[0]][pos[1]]

    def is_empty(self, pos: Position) -> bool:
        return self.is_valid_position(pos) and self._squares[pos[0]][pos[1]] is None

    def set_piece(self, pos: Position, piece: Optional[Piece]) -> None:
        if not self.is_valid_position(pos):
            return
        pos = Position(*pos)
        self._squares[pos.row][pos.col] = piece
        if piece is not None:
            piece.position = pos

    def place(self, pos: Position, color: PieceColor,
              kind: PieceType = PieceType.MAN) -> Piece:
        """Create a piece owned by this board at ``pos`` (position setup helper)."""
        if not self.is_valid_position(pos):
            raise ValueError(f"Position out of bounds: {pos}")
        piece = Piece(color, Position(*pos), kind)
        self.set_piece(pos, piece)
        return piece

    def remove_piece(self, pos: Position) -> Optional[Piece]:
        piece = self.get_piece(pos)
        if piece is not None:
            self._squares[pos[0]][pos[1]] = None
        return piece

    def iter_pieces(self) -> Iterator[Piece]:
        for row in self._squares:
            for piece in row:
                if piece is not None:
                    yield piece

    def get_all_pieces(self, color: PieceColor) -> List[Piece]:
        return [p for p in self.iter_pieces() if p.color is color]

    def count_pieces(self, color: PieceColor) -> Tuple[int, int]:
        """Return (men, kings) for a colour."""
        men = kings = 0
        for piece in self.iter_pieces():
            if piece.color is color:
                if piece.is_king:
                    kings += 1
                else:
                    men += 1
        return men, kings

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def apply_move(self, move: Move) -> bool:
        """
        Execute a single step or jump in place.

        Removes captured pieces, relocates the mover and promotes it when it
        reaches its king row. Returns True if the move promoted the piece.
        """
        piece = self.get_piece(move.from_pos)
        if piece is None:
            return False

        self.remove_piece(move.from_pos)
        if move.is_jump:
            for jumped in move.jumped:
                self.remove_piece(jumped)
        self.set_piece(move.to_pos, piece)

        if not piece.is_king and move.to_pos[0] == piece.color.king_row:
            piece.promote()
            return True
        return False

    def clone(self) -> "Board":
        copy = Board(setup=False)
        for piece in self.iter_pieces():
            copy._squares[piece.position.row][piece.position.col] = piece.copy()
        return copy

    # ------------------------------------------------------------------
    # Fingerprints and display
    # ------------------------------------------------------------------
    def state_key(self) -> BoardKey:
        """Structural fingerprint: one code per cell, row-major."""
        key = []
        for row in self._squares:
            for piece in row:
                key.append(0 if piece is None else _CODES[(piece.color, piece.kind)])
        return tuple(key)

    def fingerprint(self) -> int:
        return hash(self.state_key())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Board):
            return NotImplemented
        return self.state_key() == other.state_key()

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        key = self.state_key()
        lines = []
        for row in range(BOARD_SIZE):
            cells = key[row * BOARD_SIZE:(row + 1) * BOARD_SIZE]
            lines.append(f"{row} " + " ".join(_SYMBOLS[c] for c in cells))
        lines.append("  " + " ".join(str(c) for c in range(BOARD_SIZE)))
        return "\n".join(lines)
