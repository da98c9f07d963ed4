"""
Board features and hand-authored scoring terms used by the policy.

``encode_board`` turns a position into the 64-wide input vector of the
network: one scalar per square, positive for the mover's pieces and negative
for the opponent's, weighted by piece kind and position. ``strategy_score``
and ``tactics_score`` are the heuristic terms blended with the network
output when a candidate move is scored.
"""
from __future__ import annotations

import math
from typing import List, Optional

import numpy as np

from .board import Board
from .moves import MoveValidator
from .types import BOARD_SIZE, Move, Piece, PieceColor, Position

# Positional weights
CENTER_WEIGHT = 0.4
ADVANCEMENT_WEIGHT = 0.3
PROMOTION_WEIGHT = 0.5
DIAGONAL_WEIGHT = 0.2
EDGE_PENALTY = 0.15
BACK_ROW_BONUS = 0.2
MOBILITY_BONUS = 0.2
PROTECTION_BONUS = 0.3

MAN_VALUE = 1.0
KING_VALUE = 3.0

# Strategic terms
CAPTURE_MAN_VALUE = 2.0
CAPTURE_KING_VALUE = 5.0
MULTI_CAPTURE_BONUS = 1.5
PROMOTION_VALUE = 3.0
MATERIAL_WEIGHT = 0.5
MOBILITY_WEIGHT = 0.3
THREATENED_KING_PENALTY = -0.8
TEMPO_BONUS = 0.5
ENDGAME_PIECES = 6
ENDGAME_CENTER_WEIGHT = 0.8

# Tactical terms
OWN_THREAT_VALUE = 0.5
OPPONENT_THREAT_VALUE = 0.3

FEATURE_SIZE = BOARD_SIZE * BOARD_SIZE


def piece_value(piece: Piece) -> float:
    return KING_VALUE if piece.is_king else MAN_VALUE


def center_control(pos: Position) -> float:
    """1.0 at the centre of the board falling to 0.0 towards the corners."""
    dist = math.hypot(pos[0] - 3.5, pos[1] - 3.5)
    return max(0.0, 1.0 - dist / 5.0)


def advancement(pos: Position, piece: Piece) -> float:
    if piece.is_king:
        return 0.0
    if piece.color is PieceColor.RED:
        return (BOARD_SIZE - 1 - pos[0]) / 7.0
    return pos[0] / 7.0


def promotion_proximity(pos: Position, color: PieceColor) -> float:
    rows_to_king = abs(pos[0] - color.king_row)
    progress = (7.0 - rows_to_king) / 7.0
    return progress * progress


def diagonal_value(pos: Position) -> float:
    value = 0.0
    if pos[0] == pos[1]:
        value += 0.3
    if pos[0] + pos[1] == BOARD_SIZE - 1:
        value += 0.3
    return value


def position_value(pos: Position, piece: Piece) -> float:
    value = center_control(pos) * CENTER_WEIGHT
    value += advancement(pos, piece) * ADVANCEMENT_WEIGHT
    if not piece.is_king:
        value += promotion_proximity(pos, piece.color) * PROMOTION_WEIGHT
    if pos[1] in (0, BOARD_SIZE - 1):
        value -= EDGE_PENALTY
    if pos[0] == piece.color.home_row:
        value += BACK_ROW_BONUS
    value += diagonal_value(pos) * DIAGONAL_WEIGHT
    return value


def is_protected(board: Board, pos: Position, color: PieceColor) -> bool:
    """True if any diagonal neighbour holds a piece of ``color``."""
    for dr in (-1, 1):
        for dc in (-1, 1):
            neighbour = board.get_piece(Position(pos[0] + dr, pos[1] + dc))
            if neighbour is not None and neighbour.color is color:
                return True
    return False


def evaluate_piece(board: Board, piece: Piece, validator: Optional[MoveValidator] = None) -> float:
    """Kind value plus positional, mobility and protection terms, from the owner's view."""
    validator = validator or MoveValidator(board)
    pos = piece.position
    value = piece_value(piece) + position_value(pos, piece)
    if validator.get_valid_moves(piece):
        value += MOBILITY_BONUS
    if is_protected(board, pos, piece.color):
        value += PROTECTION_BONUS
    return value


def encode_board(board: Board, color: PieceColor) -> np.ndarray:
    """Row-major 64-wide feature vector of ``board`` from ``color``'s point of view."""
    features = np.zeros(FEATURE_SIZE, dtype=np.float64)
    validator = MoveValidator(board)
    for piece in board.iter_pieces():
        value = evaluate_piece(board, piece, validator)
        row, col = piece.position
        features[row * BOARD_SIZE + col] = value if piece.color is color else -value
    return features


def material(board: Board, color: PieceColor) -> float:
    return sum(piece_value(p) for p in board.get_all_pieces(color))


def material_balance(board: Board, color: PieceColor) -> float:
    return material(board, color) - material(board, color.opponent)


def mobility_advantage(board: Board, color: PieceColor) -> float:
    validator = MoveValidator(board)
    ours = len(validator.get_all_valid_moves(color))
    theirs = len(validator.get_all_valid_moves(color.opponent))
    return (ours - theirs) * 0.1


def is_threatened(board: Board, pos: Position, color: PieceColor) -> bool:
    """True if an opposing piece has a jump over ``pos``."""
    validator = MoveValidator(board)
    for enemy in board.get_all_pieces(color.opponent):
        for jump in validator.get_valid_jumps(enemy):
            if pos in jump.jumped:
                return True
    return False


def continuation_jumps(after: Board, move: Move) -> List[Move]:
    """Jumps the moved piece must continue with; empty unless ``move`` is a jump."""
    if not move.is_jump:
        return []
    piece = after.get_piece(move.to_pos)
    if piece is None:
        return []
    return MoveValidator(after).get_valid_jumps(piece)


def chain_length(after: Board, move: Move) -> int:
    """Captures in the longest chain that starts with ``move``."""
    if not move.is_jump:
        return 0
    longest = 0
    for jump in continuation_jumps(after, move):
        longest = max(longest, chain_length(simulate(after, jump), jump))
    return len(move.jumped) + longest


def capture_value(board: Board, after: Board, move: Move) -> float:
    if not move.is_jump:
        return 0.0
    value = 0.0
    for pos in move.jumped:
        captured = board.get_piece(pos)
        if captured is not None:
            value += CAPTURE_KING_VALUE if captured.is_king else CAPTURE_MAN_VALUE
    captures = chain_length(after, move)
    if captures > 1:
        value += captures * MULTI_CAPTURE_BONUS
    return value


def promotion_value(board: Board, move: Move, color: PieceColor) -> float:
    piece = board.get_piece(move.from_pos)
    if piece is None or piece.is_king:
        return 0.0
    return PROMOTION_VALUE if move.to_pos[0] == color.king_row else 0.0


def king_safety(board: Board, after: Board, move: Move, color: PieceColor) -> float:
    piece = board.get_piece(move.from_pos)
    if piece is None or not piece.is_king:
        return 0.0
    return THREATENED_KING_PENALTY if is_threatened(after, move.to_pos, color) else 0.0


def endgame_value(board: Board, move: Move) -> float:
    total = sum(1 for _ in board.iter_pieces())
    if total > ENDGAME_PIECES:
        return 0.0
    return center_control(move.to_pos) * ENDGAME_CENTER_WEIGHT


def strategy_score(board: Board, after: Board, move: Move, color: PieceColor) -> float:
    """Strategic value of ``move``; ``after`` is ``board`` with the move applied."""
    value = capture_value(board, after, move)
    value += promotion_value(board, move, color)
    value += material_balance(after, color) * MATERIAL_WEIGHT
    value += mobility_advantage(after, color) * MOBILITY_WEIGHT
    value += king_safety(board, after, move, color)
    if move.is_jump:
        value += TEMPO_BONUS
    value += endgame_value(board, move)
    return value


def tactics_score(after: Board, color: PieceColor) -> float:
    """Jump threats created minus jump threats conceded in the resulting position."""
    validator = MoveValidator(after)
    value = 0.0
    for piece in after.get_all_pieces(color):
        value += len(validator.get_valid_jumps(piece)) * OWN_THREAT_VALUE
    for piece in after.get_all_pieces(color.opponent):
        value -= len(validator.get_valid_jumps(piece)) * OPPONENT_THREAT_VALUE
    return value


def simulate(board: Board, move: Move) -> Board:
    """Return a clone of ``board`` with ``move`` applied; the original is untouched."""
    after = board.clone()
    after.apply_move(move)
    return after
