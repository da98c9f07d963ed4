"""Neuroevolution checkers: rule engine, evolvable networks and the self-play trainer.

Usage examples:
    from neurocheckers import Board, GameEngine, legal_moves
    from neurocheckers import NeuralNetwork, AIPlayer
    from neurocheckers import TrainingSystem
"""
from __future__ import annotations

# Rules
from .types import (
    Difficulty,
    GameResult,
    GameState,
    Move,
    Piece,
    PieceColor,
    PieceType,
    Position,
)
from .board import Board
from .moves import MoveValidator, legal_moves
from .engine import GameEngine, GameSnapshot, GameStats

# Networks and policy
from .network import CheckpointError, NeuralNetwork
from .stats import PlayerStats, StatsSnapshot, TrainingStats
from .player import AIPlayer, compute_fitness

# Training
from .trainer import Matchup, TrainingSystem

__version__ = "1.0.0"
