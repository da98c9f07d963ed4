"""
Type definitions for the neuroevolution checkers system.

This module provides:
- Enumerations for colours, piece kinds, game states and results
- Value types for board coordinates, pieces and moves
- Type aliases shared by the rule engine, policy and trainer
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple

BOARD_SIZE = 8
PIECES_PER_SIDE = 12


class PieceColor(Enum):
    """Side colour. Red starts on rows 5..7 and moves first."""

    RED = "red"
    BLACK = "black"

    @property
    def opponent(self) -> "PieceColor":
        return PieceColor.BLACK if self is PieceColor.RED else PieceColor.RED

    @property
    def forward(self) -> int:
        """Row direction a man of this colour moves in."""
        return -1 if self is PieceColor.RED else 1

    @property
    def king_row(self) -> int:
        return 0 if self is PieceColor.RED else BOARD_SIZE - 1

    @property
    def home_row(self) -> int:
        return BOARD_SIZE - 1 if self is PieceColor.RED else 0


class PieceType(Enum):
    MAN = "man"
    KING = "king"


class GameState(Enum):
    """States of the game state machine."""

    RED_TO_MOVE = "red_to_move"
    BLACK_TO_MOVE = "black_to_move"
    RED_WINS = "red_wins"
    BLACK_WINS = "black_wins"
    DRAW = "draw"

    @property
    def is_terminal(self) -> bool:
        return self in (GameState.RED_WINS, GameState.BLACK_WINS, GameState.DRAW)


class GameResult(Enum):
    """Outcome of a finished game from one player's point of view."""

    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


class Difficulty(Enum):
    """Lookahead variants of the policy."""

    GREEDY = "greedy"
    ONE_PLY = "one_ply"
    TWO_PLY = "two_ply"


class Position(NamedTuple):
    """(row, col) coordinate on the 8x8 grid."""

    row: int
    col: int

    def offset(self, dr: int, dc: int) -> "Position":
        return Position(self.row + dr, self.col + dc)

    def in_bounds(self) -> bool:
        return 0 <= self.row < BOARD_SIZE and 0 <= self.col < BOARD_SIZE

    def __str__(self) -> str:
        return f"({self.row},{self.col})"


@dataclass
class Piece:
    """A checkers piece. Owned by exactly one Board."""

    color: PieceColor
    position: Position
    kind: PieceType = PieceType.MAN

    @property
    def is_king(self) -> bool:
        return self.kind is PieceType.KING

    def promote(self) -> None:
        """Promote to king. Idempotent; kings never demote."""
        self.kind = PieceType.KING

    def can_move_in_direction(self, row_direction: int) -> bool:
        if self.is_king:
            return True
        return row_direction == self.color.forward

    def copy(self) -> "Piece":
        return Piece(self.color, self.position, self.kind)


@dataclass(frozen=True)
class Move:
    """A single step or a single jump produced by the rule engine."""

    from_pos: Position
    to_pos: Position
    is_jump: bool = False
    jumped: Tuple[Position, ...] = field(default_factory=tuple)

    @classmethod
    def jump(cls, from_pos: Position, to_pos: Position, jumped: Position) -> "Move":
        return cls(from_pos, to_pos, True, (jumped,))

    def __str__(self) -> str:
        suffix = f" (jumps {len(self.jumped)})" if self.is_jump else ""
        return f"{self.from_pos} -> {self.to_pos}{suffix}"


# Type aliases
Grid = List[List[Optional[Piece]]]
BoardKey = Tuple[int, ...]  # structural fingerprint of a board
EvaluationCache = Dict[int, float]
MoveList = List[Move]


def color_to_move(state: GameState) -> Optional[PieceColor]:
    """Colour whose turn it is, or None when the game is over."""
    if state is GameState.RED_TO_MOVE:
        return PieceColor.RED
    if state is GameState.BLACK_TO_MOVE:
        return PieceColor.BLACK
    return None


def turn_state(color: PieceColor) -> GameState:
    return GameState.RED_TO_MOVE if color is PieceColor.RED else GameState.BLACK_TO_MOVE


def win_state(color: PieceColor) -> GameState:
    return GameState.RED_WINS if color is PieceColor.RED else GameState.BLACK_WINS
