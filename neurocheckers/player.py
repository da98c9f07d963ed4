"""
Neural policy: scores each legal move with the network plus hand-authored
heuristics and plays the best one.
"""
from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Union

import numpy as np

from config import NetworkSettings, PolicySettings
from .board import Board
from .heuristics import (
    continuation_jumps,
    encode_board,
    simulate,
    strategy_score,
    tactics_score,
)
from .moves import legal_moves
from .network import NeuralNetwork
from .stats import PlayerStats, StatsSnapshot
from .types import Difficulty, GameResult, Move, PieceColor, PIECES_PER_SIDE

logger = logging.getLogger(__name__)

CacheStats = Dict[str, Union[int, float]]

# Fitness weights
WIN_REWARD = 100.0
LOSS_PENALTY = 50.0
DRAW_REWARD = 25.0
WIN_RATE_BONUS_THRESHOLD = 0.6
WIN_RATE_BONUS = 50.0
CAPTURE_EFFICIENCY_WEIGHT = 50.0
SURVIVAL_WEIGHT = 30.0
KING_MADE_REWARD = 15.0
KING_CAPTURED_REWARD = 20.0
KING_LOST_PENALTY = 25.0

COUNTER_REPLY_WEIGHT = 0.5


def compute_fitness(stats: StatsSnapshot) -> float:
    """Weighted score of a player's record, floored at zero."""
    fitness = stats.wins * WIN_REWARD - stats.losses * LOSS_PENALTY + stats.draws * DRAW_REWARD

    if stats.games_played > 0 and stats.win_rate > WIN_RATE_BONUS_THRESHOLD:
        fitness += (stats.win_rate - WIN_RATE_BONUS_THRESHOLD) * WIN_RATE_BONUS

    if stats.total_moves > 0:
        fitness += stats.pieces_captured / stats.total_moves * CAPTURE_EFFICIENCY_WEIGHT

    if stats.games_played > 0:
        survival = 1.0 - stats.pieces_lost / (stats.games_played * PIECES_PER_SIDE)
        fitness += survival * SURVIVAL_WEIGHT

    fitness += stats.kings_made * KING_MADE_REWARD
    fitness += stats.kings_captured * KING_CAPTURED_REWARD
    fitness -= stats.kings_lost * KING_LOST_PENALTY
    return max(0.0, fitness)


class AIPlayer:
    """Owns one network, one stats record and a bounded evaluation cache.

    The cache is keyed by a structural fingerprint of (board, move, colour)
    and is shared by every game this player takes part in, so it is guarded
    by a lock.
    """

    def __init__(self, brain: Optional[NeuralNetwork] = None,
                 rng: Optional[np.random.RandomState] = None,
                 network_settings: Optional[NetworkSettings] = None,
                 policy_settings: Optional[PolicySettings] = None) -> None:
        self.network_settings = network_settings or NetworkSettings()
        self.settings = policy_settings or PolicySettings()
        if brain is None:
            ns = self.network_settings
            brain = NeuralNetwork(ns.input_size, ns.hidden_sizes, ns.output_size,
                                  rng=rng, initial_bias=ns.initial_bias)
        self.brain = brain
        self.stats = PlayerStats()

        self._cache: Dict[int, float] = {}
        self._cache_lock = threading.Lock()
        self.cache_hits = 0
        self.cache_misses = 0

    @property
    def fitness(self) -> float:
        return self.brain.fitness

    @property
    def difficulty(self) -> Difficulty:
        return Difficulty(self.settings.difficulty)

    # ------------------------------------------------------------------
    # Move selection
    # ------------------------------------------------------------------
    def choose_move(self, board: Board, valid_moves: List[Move], color: PieceColor) -> Optional[Move]:
        """Return the highest scoring move; ties go to the first one listed."""
        if not valid_moves:
            return None
        self.stats.record_move()
        if len(valid_moves) == 1:
            return valid_moves[0]

        best_move = valid_moves[0]
        best_score = float("-inf")
        for move in valid_moves:
            score = self.evaluate_move(board, move, color)
            if score > best_score:
                best_score = score
                best_move = move
        return best_move

    def evaluate_move(self, board: Board, move: Move, color: PieceColor) -> float:
        key = hash((board.state_key(), move.from_pos, move.to_pos, color))
        with self._cache_lock:
            cached = self._cache.get(key)
            if cached is not None:
                self.cache_hits += 1
                return cached
            self.cache_misses += 1

        score = self._score_with_lookahead(board, move, color)

        with self._cache_lock:
            self._store(key, score)
        return score

    def _store(self, key: int, score: float) -> None:
        limit = self.settings.cache_size
        if len(self._cache) >= limit:
            # Drop the oldest fifth (dicts keep insertion order)
            drop = max(1, limit // 5)
            for stale in list(self._cache)[:drop]:
                del self._cache[stale]
        self._cache[key] = score

    def _score(self, board: Board, move: Move, color: PieceColor) -> float:
        after = simulate(board, move)
        neural = float(self.brain.feed_forward(encode_board(after, color))[0])
        strategic = strategy_score(board, after, move, color)
        tactical = tactics_score(after, color)
        return (neural + strategic * self.settings.strategic_weight
                + tactical * self.settings.tactical_weight)

    def _best_reply(self, board: Board, color: PieceColor):
        replies = legal_moves(board, color)[:self.settings.max_replies]
        best_move, best_score = None, float("-inf")
        for reply in replies:
            score = self._score(board, reply, color)
            if score > best_score:
                best_move, best_score = reply, score
        return best_move, best_score

    def _score_with_lookahead(self, board: Board, move: Move, color: PieceColor) -> float:
        score = self._score(board, move, color)
        if self.difficulty is Difficulty.GREEDY:
            return score

        after = simulate(board, move)
        continuations = continuation_jumps(after, move)
        if continuations:
            # Turn has not passed: value the best way to keep jumping instead
            return score + max(self._score_with_lookahead(after, jump, color)
                               for jump in continuations)

        reply, reply_score = self._best_reply(after, color.opponent)
        if reply is None:
            return score
        score -= reply_score

        if self.difficulty is Difficulty.TWO_PLY:
            after_reply = simulate(after, reply)
            if continuation_jumps(after_reply, reply):
                return score
            counter, counter_score = self._best_reply(after_reply, color)
            if counter is not None:
                score += counter_score * COUNTER_REPLY_WEIGHT
        return score

    # ------------------------------------------------------------------
    # Results and fitness
    # ------------------------------------------------------------------
    def update_game_result(self, result: GameResult, pieces_remaining: int,
                           opponent_pieces_remaining: int) -> None:
        self.stats.record_game_result(result, pieces_remaining, opponent_pieces_remaining)

    def calculate_fitness(self) -> float:
        snapshot = self.stats.snapshot()
        self.brain.fitness = compute_fitness(snapshot)
        self.brain.games_played = snapshot.games_played
        return self.brain.fitness

    # ------------------------------------------------------------------
    # Evolution
    # ------------------------------------------------------------------
    def _spawn(self, brain: NeuralNetwork) -> "AIPlayer":
        return AIPlayer(brain, network_settings=self.network_settings,
                        policy_settings=self.settings)

    def clone(self) -> "AIPlayer":
        """Copy of the network (with its fitness) under fresh statistics."""
        return self._spawn(self.brain.clone())

    def mutate(self, rate: float, rng: Optional[np.random.RandomState] = None) -> None:
        ns = self.network_settings
        self.brain.mutate(rate, ns.mutation_strength, rng=rng,
                          weight_clamp=ns.weight_clamp, bias_clamp=ns.bias_clamp)
        self.clear_cache()

    def crossover(self, partner: "AIPlayer",
                  rng: Optional[np.random.RandomState] = None) -> "AIPlayer":
        child = self.brain.crossover(partner.brain, self.network_settings.crossover_rate, rng=rng)
        return self._spawn(child)

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------
    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()
            self.cache_hits = 0
            self.cache_misses = 0

    def get_cache_stats(self) -> CacheStats:
        with self._cache_lock:
            total = self.cache_hits + self.cache_misses
            return {
                'hits': self.cache_hits,
                'misses': self.cache_misses,
                'hit_rate': (self.cache_hits / total * 100) if total > 0 else 0,
                'cache_size': len(self._cache),
            }

    def __repr__(self) -> str:
        return f"AIPlayer(fitness={self.fitness:.2f}, {self.stats!r})"
