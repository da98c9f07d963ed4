"""
Game state machine: turn sequencing, jump-chain lock, win/draw detection and undo.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .board import Board
from .moves import MoveValidator
from .types import (
    BoardKey,
    GameState,
    Move,
    Piece,
    PieceColor,
    Position,
    color_to_move,
    turn_state,
    win_state,
)

logger = logging.getLogger(__name__)

MAX_MOVES_WITHOUT_CAPTURE = 50
DRAW_BY_REPETITION_COUNT = 3

PositionKey = Tuple[BoardKey, PieceColor]


@dataclass(frozen=True)
class GameSnapshot:
    """Immutable copy of everything a whole-turn undo has to restore."""

    board: Board
    state: GameState
    move_count: int
    moves_without_capture: int
    position_counts: Dict[PositionKey, int] = field(default_factory=dict)


@dataclass
class GameStats:
    move_count: int = 0
    red_pieces: int = 0
    black_pieces: int = 0
    red_kings: int = 0
    black_kings: int = 0
    moves_without_capture: int = 0


class GameEngine:
    """Drives one game of checkers.

    A turn is one or more single moves by the same colour: after a jump, if the
    same piece can capture again, the turn does not pass and that piece is
    locked for continued jumping. Draws by repetition and by the no-capture
    cap are terminal states, detected when the turn passes.
    """

    def __init__(self, board: Optional[Board] = None,
                 captures_mandatory: bool = True,
                 max_moves_without_capture: int = MAX_MOVES_WITHOUT_CAPTURE,
                 repetition_limit: int = DRAW_BY_REPETITION_COUNT,
                 allow_undo: bool = True,
                 first_to_move: PieceColor = PieceColor.RED) -> None:
        self.captures_mandatory = bool(captures_mandatory)
        self.max_moves_without_capture = int(max_moves_without_capture)
        self.repetition_limit = int(repetition_limit)
        self.allow_undo = bool(allow_undo)
        self._first_to_move = first_to_move
        self._start_board = board.clone() if board is not None else None
        self._history: List[GameSnapshot] = []
        self._position_counts: Dict[PositionKey, int] = {}
        self._start(board if board is not None else Board())

    def _start(self, board: Board) -> None:
        self.board = board
        self.validator = MoveValidator(self.board, self.captures_mandatory)
        self.state = turn_state(self._first_to_move)
        self.move_count = 0
        self.moves_without_capture = 0
        self._selected: Optional[Position] = None
        self._must_continue_jumping = False
        self._history.clear()
        self._position_counts.clear()
        self._record_position()
        self._check_end_conditions()

    def reset_game(self) -> None:
        board = self._start_board.clone() if self._start_board is not None else Board()
        self._start(board)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_current_turn_color(self) -> Optional[PieceColor]:
        return color_to_move(self.state)

    @property
    def must_continue_jumping(self) -> bool:
        return self._must_continue_jumping

    def get_selected_piece(self) -> Optional[Piece]:
        if self._selected is None:
            return None
        return self.board.get_piece(self._selected)

    def is_game_over(self) -> bool:
        return self.state.is_terminal

    def is_draw(self) -> bool:
        return self.state is GameState.DRAW

    def get_winner(self) -> Optional[PieceColor]:
        if self.state is GameState.RED_WINS:
            return PieceColor.RED
        if self.state is GameState.BLACK_WINS:
            return PieceColor.BLACK
        return None

    def position_count(self, color: Optional[PieceColor] = None) -> int:
        """How often the current board has occurred with ``color`` to move."""
        color = color or self.get_current_turn_color()
        return self._position_counts.get((self.board.state_key(), color), 0)

    def _moves_for(self, piece: Piece) -> List[Move]:
        if self._must_continue_jumping:
            if self._selected != piece.position:
                return []
            return self.validator.get_valid_jumps(piece)
        return self.validator.get_valid_moves(piece)

    def get_valid_move_positions(self) -> List[Position]:
        piece = self.get_selected_piece()
        if piece is None or self.is_game_over():
            return []
        return [m.to_pos for m in self._moves_for(piece)]

    def get_all_valid_moves(self, color: PieceColor) -> List[Move]:
        if self._must_continue_jumping and color is self.get_current_turn_color():
            piece = self.get_selected_piece()
            return self._moves_for(piece) if piece is not None else []
        return self.validator.get_all_valid_moves(color)

    def get_all_valid_moves_for_current_player(self) -> List[Move]:
        color = self.get_current_turn_color()
        if color is None:
            return []
        return self.get_all_valid_moves(color)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def select_piece(self, pos: Position) -> bool:
        """Select the piece at ``pos`` for the side to move. Returns False if not allowed."""
        if self.is_game_over():
            return False
        if self._must_continue_jumping:
            return self._selected == pos

        color = self.get_current_turn_color()
        piece = self.board.get_piece(pos)
        if piece is None or piece.color is not color:
            return False
        if (self.captures_mandatory and self.validator.has_available_jumps(color)
                and not self.validator.get_valid_jumps(piece)):
            return False

        self._selected = piece.position
        return True

    def deselect_piece(self) -> None:
        if not self._must_continue_jumping:
            self._selected = None

    def move_piece(self, to: Position) -> bool:
        """Move the selected piece to ``to`` if that is one of its legal moves."""
        piece = self.get_selected_piece()
        if piece is None or self.is_game_over():
            return False

        move = next((m for m in self._moves_for(piece) if m.to_pos == to), None)
        if move is None:
            return False

        self._execute(move)
        return True

    def apply_move(self, move: Move) -> bool:
        """Select ``move.from_pos`` and move it to ``move.to_pos`` in one call."""
        return self.select_piece(move.from_pos) and self.move_piece(move.to_pos)

    def _execute(self, move: Move) -> None:
        if self.allow_undo and not self._must_continue_jumping:
            self._save_snapshot()

        self.board.apply_move(move)
        self.validator.clear_cache()
        self.move_count += 1
        self.moves_without_capture = 0 if move.is_jump else self.moves_without_capture + 1

        if move.is_jump:
            piece = self.board.get_piece(move.to_pos)
            if piece is not None and self.validator.get_valid_jumps(piece):
                self._selected = move.to_pos
                self._must_continue_jumping = True
                return

        self._finish_turn()

    def _finish_turn(self) -> None:
        self._must_continue_jumping = False
        self._selected = None
        color = self.get_current_turn_color()
        self.state = turn_state(color.opponent)
        self._record_position()
        self._check_end_conditions()

    def _record_position(self) -> None:
        color = self.get_current_turn_color()
        if color is None:
            return
        key = (self.board.state_key(), color)
        self._position_counts[key] = self._position_counts.get(key, 0) + 1

    def _check_end_conditions(self) -> None:
        color = self.get_current_turn_color()
        if color is None:
            return

        if not self.board.get_all_pieces(color):
            self.state = win_state(color.opponent)
        elif not self.validator.get_all_valid_moves(color):
            self.state = win_state(color.opponent)
        elif self.position_count(color) >= self.repetition_limit:
            logger.debug("Draw by repetition after %d moves", self.move_count)
            self.state = GameState.DRAW
        elif self.moves_without_capture >= self.max_moves_without_capture:
            logger.debug("Draw by %d moves without capture", self.moves_without_capture)
            self.state = GameState.DRAW

    # ------------------------------------------------------------------
    # Undo
    # ------------------------------------------------------------------
    def _save_snapshot(self) -> None:
        self._history.append(GameSnapshot(
            board=self.board.clone(),
            state=self.state,
            move_count=self.move_count,
            moves_without_capture=self.moves_without_capture,
            position_counts=dict(self._position_counts),
        ))

    def can_undo(self) -> bool:
        return len(self._history) > 0

    def undo_move(self) -> bool:
        """Revert the last whole turn, including a jump chain still in progress."""
        if not self.can_undo():
            return False

        snapshot = self._history.pop()
        self.board = snapshot.board.clone()
        self.validator = MoveValidator(self.board, self.captures_mandatory)
        self.state = snapshot.state
        self.move_count = snapshot.move_count
        self.moves_without_capture = snapshot.moves_without_capture
        self._position_counts = dict(snapshot.position_counts)
        self._selected = None
        self._must_continue_jumping = False
        return True

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------
    def get_game_stats(self) -> GameStats:
        red_men, red_kings = self.board.count_pieces(PieceColor.RED)
        black_men, black_kings = self.board.count_pieces(PieceColor.BLACK)
        return GameStats(
            move_count=self.move_count,
            red_pieces=red_men + red_kings,
            black_pieces=black_men + black_kings,
            red_kings=red_kings,
            black_kings=black_kings,
            moves_without_capture=self.moves_without_capture,
        )

    def evaluate_position(self, for_color: PieceColor) -> float:
        """Material (man 1, king 3) plus a small mobility term."""
        men, kings = self.board.count_pieces(for_color)
        opp_men, opp_kings = self.board.count_pieces(for_color.opponent)
        score = (men + 3.0 * kings) - (opp_men + 3.0 * opp_kings)
        our_mobility = len(self.validator.get_all_valid_moves(for_color))
        their_mobility = len(self.validator.get_all_valid_moves(for_color.opponent))
        return score + (our_mobility - their_mobility) * 0.1
