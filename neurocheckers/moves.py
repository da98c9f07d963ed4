from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from .board import Board
from .types import BoardKey, Move, Piece, PieceColor, PieceType, Position

_DIAGONALS: List[Tuple[int, int]] = [(-1, -1), (-1, 1), (1, -1), (1, 1)]


def _directions(piece: Piece) -> List[Tuple[int, int]]:
    if piece.is_king:
        return _DIAGONALS
    forward = piece.color.forward
    return [(forward, -1), (forward, 1)]


class MoveValidator:
    """Generates legal single-step moves and single jumps for pieces on a board.

    Multi-jump chains are not precomputed: after a jump the caller asks for
    the jumps of the same piece again (see ``GameEngine``). Per-piece results
    are memoised by board fingerprint, so the validator stays correct when the
    board it wraps is mutated.
    """

    def __init__(self, board: Board, captures_mandatory: bool = True) -> None:
        self.board = board
        self.captures_mandatory = bool(captures_mandatory)
        self._move_cache: Dict[Tuple[Position, PieceColor, PieceType, BoardKey], List[Move]] = {}
        self._jump_cache: Dict[Tuple[PieceColor, BoardKey], bool] = {}

    def clear_cache(self) -> None:
        self._move_cache.clear()
        self._jump_cache.clear()

    def _resolve(self, piece: Piece) -> Optional[Piece]:
        on_board = self.board.get_piece(piece.position)
        if on_board is None or on_board.color is not piece.color:
            return None
        return on_board

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def get_simple_moves(self, piece: Piece) -> List[Move]:
        """Non-capturing moves, ignoring the mandatory-jump rule."""
        moves: List[Move] = []
        start = piece.position
        for dr, dc in _directions(piece):
            target = start.offset(dr, dc)
            while self.board.is_empty(target):
                moves.append(Move(start, target))
                if not piece.is_king:
                    break
                target = target.offset(dr, dc)
        return moves

    # ------------------------------------------------------------------
    # Jumps
    # ------------------------------------------------------------------
    def get_valid_jumps(self, piece: Piece) -> List[Move]:
        """Capturing moves for a piece: short jumps for men, ray jumps for kings."""
        if piece.is_king:
            return self.get_valid_king_jumps(piece)
        return self.get_valid_man_jumps(piece)

    def get_valid_man_jumps(self, piece: Piece) -> List[Move]:
        jumps: List[Move] = []
        start = piece.position
        for dr, dc in _directions(piece):
            over = start.offset(dr, dc)
            landing = start.offset(2 * dr, 2 * dc)
            victim = self.board.get_piece(over)
            if victim is not None and victim.color is not piece.color and self.board.is_empty(landing):
                jumps.append(Move.jump(start, landing, over))
        return jumps

    def get_valid_king_jumps(self, piece: Piece) -> List[Move]:
        jumps: List[Move] = []
        start = piece.position
        for dr, dc in _DIAGONALS:
            cell = start.offset(dr, dc)
            while self.board.is_empty(cell):
                cell = cell.offset(dr, dc)
            victim = self.board.get_piece(cell)
            # Edge of board, own piece, or enemy with an occupied landing blocks this ray
            if victim is None or victim.color is piece.color:
                continue
            landing = cell.offset(dr, dc)
            if self.board.is_empty(landing):
                jumps.append(Move.jump(start, landing, cell))
        return jumps

    def has_available_jumps(self, color: PieceColor) -> bool:
        key = (color, self.board.state_key())
        cached = self._jump_cache.get(key)
        if cached is not None:
            return cached
        found = any(self.get_valid_jumps(p) for p in self.board.get_all_pieces(color))
        self._jump_cache[key] = found
        return found

    # ------------------------------------------------------------------
    # Legal moves
    # ------------------------------------------------------------------
    def get_valid_moves(self, piece: Piece) -> List[Move]:
        """Legal moves for a piece under the mandatory-jump rule."""
        piece = self._resolve(piece)
        if piece is None:
            return []

        key = (piece.position, piece.color, piece.kind, self.board.state_key())
        cached = self._move_cache.get(key)
        if cached is not None:
            return list(cached)

        jumps = self.get_valid_jumps(piece)
        if self.captures_mandatory and self.has_available_jumps(piece.color):
            moves = jumps
        else:
            moves = jumps + self.get_simple_moves(piece)

        self._move_cache[key] = moves
        return list(moves)

    def get_moves_at(self, pos: Position) -> List[Move]:
        piece = self.board.get_piece(pos)
        if piece is None:
            return []
        return self.get_valid_moves(piece)

    def get_all_valid_moves(self, color: PieceColor) -> List[Move]:
        moves: List[Move] = []
        for piece in self.board.get_all_pieces(color):
            moves.extend(self.get_valid_moves(piece))
        return moves

    @staticmethod
    def is_capture(move: Move) -> bool:
        return move.is_jump and len(move.jumped) > 0


# Convenience functional API

def legal_moves(board: Board, color: PieceColor, captures_mandatory: bool = True) -> List[Move]:
    return MoveValidator(board, captures_mandatory=captures_mandatory).get_all_valid_moves(color)
