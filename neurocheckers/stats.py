"""
Per-player game statistics and per-generation training summaries.

A player takes part in several matchups that run at the same time, so every
counter update on ``PlayerStats`` is applied under that player's lock.
"""
from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from typing import Any, Dict

from .types import PIECES_PER_SIDE, GameResult


@dataclass(frozen=True)
class StatsSnapshot:
    games_played: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    total_moves: int = 0
    pieces_captured: int = 0
    pieces_lost: int = 0
    kings_made: int = 0
    kings_captured: int = 0
    kings_lost: int = 0

    @property
    def win_rate(self) -> float:
        return self.wins / self.games_played if self.games_played > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_FIELDS = tuple(StatsSnapshot.__dataclass_fields__)


def _counter(name: str) -> property:
    return property(lambda self: self._counts[name])


class PlayerStats:
    """Thread-safe counters for one player."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = dict.fromkeys(_FIELDS, 0)

    games_played = _counter("games_played")
    wins = _counter("wins")
    losses = _counter("losses")
    draws = _counter("draws")
    total_moves = _counter("total_moves")
    pieces_captured = _counter("pieces_captured")
    pieces_lost = _counter("pieces_lost")
    kings_made = _counter("kings_made")
    kings_captured = _counter("kings_captured")
    kings_lost = _counter("kings_lost")

    def increment(self, field: str, amount: int = 1) -> None:
        if field not in self._counts:
            raise KeyError(f"Unknown stat: {field}")
        with self._lock:
            self._counts[field] += amount

    def record_move(self) -> None:
        self.increment("total_moves")

    def record_capture(self, pieces: int, kings: int = 0) -> None:
        """Credit one executed jump: captured pieces and the kings among them together."""
        with self._lock:
            self._counts["pieces_captured"] += pieces
            self._counts["kings_captured"] += kings

    def add_kings_lost(self, kings: int) -> None:
        self.increment("kings_lost", kings)

    def record_king_made(self) -> None:
        self.increment("kings_made")

    def record_game_result(self, result: GameResult, pieces_remaining: int,
                           opponent_pieces_remaining: int) -> None:
        """Count a finished game. Captures are credited per jump, not here."""
        with self._lock:
            self._counts["games_played"] += 1
            if result is GameResult.WIN:
                self._counts["wins"] += 1
            elif result is GameResult.LOSS:
                self._counts["losses"] += 1
            else:
                self._counts["draws"] += 1
            self._counts["pieces_lost"] += max(0, PIECES_PER_SIDE - pieces_remaining)

    def reset(self) -> None:
        with self._lock:
            for key in self._counts:
                self._counts[key] = 0

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(**self._counts)

    @property
    def win_rate(self) -> float:
        return self.snapshot().win_rate

    def __repr__(self) -> str:
        s = self.snapshot()
        return f"PlayerStats(games={s.games_played}, W/L/D={s.wins}/{s.losses}/{s.draws})"


@dataclass
class TrainingStats:
    """Summary of one generation, computed after fitness and before evolution."""

    generation: int = 0
    best_fitness: float = 0.0
    average_fitness: float = 0.0
    median_fitness: float = 0.0
    worst_fitness: float = 0.0
    best_win_rate: float = 0.0
    average_win_rate: float = 0.0
    best_games_played: int = 0
    total_games: int = 0
    elapsed_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
