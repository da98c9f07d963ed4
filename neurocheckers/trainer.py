"""
Evolutionary trainer: self-play tournaments, fitness, selection and diversity.

One generation:
1. reset every player's statistics
2. schedule matchups (similar-rank and random opponents)
3. play the matchups, in parallel on a thread pool when enabled
4. compute fitness and track the best player
5. breed the next population (elites, tournament selection, crossover,
   adaptive mutation)
6. inject diversity after a long run without improvement
"""
from __future__ import annotations

import json
import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Callable, List, NamedTuple, Optional

import numpy as np

from config import (
    GameRulesSettings,
    NetworkSettings,
    PolicySettings,
    TrainingSettings,
)
from .board import Board
from .engine import GameEngine
from .network import CheckpointError, NeuralNetwork
from .player import AIPlayer
from .stats import TrainingStats
from .types import GameResult, GameState, Move, PieceColor, win_state

logger = logging.getLogger(__name__)

MAX_OPPONENT_ATTEMPTS = 100
PARENT_RESELECT_ATTEMPTS = 10
_SEED_BOUND = 2 ** 31 - 1

ProgressCallback = Callable[[TrainingStats], None]


class Matchup(NamedTuple):
    first: AIPlayer
    second: AIPlayer


class MoveCredit(NamedTuple):
    kings_captured: int
    promotes: bool


class TrainingSystem:
    """Population of ``AIPlayer`` evolved through self-play."""

    def __init__(self, settings: Optional[TrainingSettings] = None,
                 network_settings: Optional[NetworkSettings] = None,
                 policy_settings: Optional[PolicySettings] = None,
                 rules: Optional[GameRulesSettings] = None) -> None:
        self.settings = settings or TrainingSettings()
        self.network_settings = network_settings or NetworkSettings()
        self.policy_settings = policy_settings or PolicySettings()
        self.rules = rules or GameRulesSettings()
        self.rng = np.random.RandomState(self.settings.seed)

        self.generation = 0
        self.best_player: Optional[AIPlayer] = None
        self.historical_best_fitness = 0.0
        self.generations_without_improvement = 0
        self.current_stats = TrainingStats()
        self.evaluated_population: List[AIPlayer] = []
        self.last_matchups: List[Matchup] = []
        self._games_played = 0
        self._games_lock = threading.Lock()

        self.population: List[AIPlayer] = [
            self._new_player() for _ in range(self.settings.population_size)
        ]
        logger.info("Initialised population of %d players (topology %s)",
                    len(self.population), self.population[0].brain.topology)

    def _spawn_rng(self) -> np.random.RandomState:
        return np.random.RandomState(self.rng.randint(0, _SEED_BOUND))

    def _new_player(self) -> AIPlayer:
        return AIPlayer(rng=self._spawn_rng(),
                        network_settings=self.network_settings,
                        policy_settings=self.policy_settings)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------
    def run_generation(self) -> TrainingStats:
        started = time.perf_counter()
        self.generation += 1

        for player in self.population:
            player.stats.reset()

        self.last_matchups = self.generate_matchups()
        self._games_played = 0
        self.run_tournament(self.last_matchups)

        for player in self.population:
            player.calculate_fitness()

        self._update_best_player()
        self._update_generation_stats(time.perf_counter() - started)
        self.evaluated_population = list(self.population)

        self.evolve_population()
        self._check_for_stagnation()
        self._maybe_checkpoint()

        logger.info(self.get_generation_report())
        return self.current_stats

    def run(self, generations: int, stop_event: Optional[threading.Event] = None,
            progress_callback: Optional[ProgressCallback] = None) -> List[TrainingStats]:
        """Run up to ``generations`` generations; ``stop_event`` is checked between them."""
        history: List[TrainingStats] = []
        for _ in range(generations):
            if stop_event is not None and stop_event.is_set():
                logger.info("Training stopped after generation %d", self.generation)
                break
            stats = self.run_generation()
            history.append(stats)
            if progress_callback is not None:
                progress_callback(stats)
        return history

    def _update_best_player(self) -> None:
        current_best = max(self.population, key=lambda p: p.fitness)

        if self.best_player is None or current_best.fitness > self.best_player.fitness:
            self.best_player = current_best.clone()

        if current_best.fitness > self.historical_best_fitness:
            self.historical_best_fitness = current_best.fitness
            self.generations_without_improvement = 0
        else:
            self.generations_without_improvement += 1

    def _update_generation_stats(self, elapsed: float) -> None:
        ranked = sorted(self.population, key=lambda p: p.fitness, reverse=True)
        fitnesses = [p.fitness for p in ranked]
        win_rates = [p.stats.win_rate for p in ranked]
        self.current_stats = TrainingStats(
            generation=self.generation,
            best_fitness=fitnesses[0],
            average_fitness=float(np.mean(fitnesses)),
            median_fitness=fitnesses[len(ranked) // 2],
            worst_fitness=fitnesses[-1],
            best_win_rate=win_rates[0],
            average_win_rate=float(np.mean(win_rates)),
            best_games_played=ranked[0].stats.games_played,
            total_games=self._games_played,
            elapsed_seconds=elapsed,
        )

    def _check_for_stagnation(self) -> None:
        if self.generations_without_improvement >= self.settings.diversity_reset_threshold:
            self.inject_diversity()
            self.generations_without_improvement = 0

    # ------------------------------------------------------------------
    # Matchmaking
    # ------------------------------------------------------------------
    def generate_matchups(self) -> List[Matchup]:
        """Pair every player with up to ``opponents_per_player`` distinct opponents."""
        if self.generation > 1:
            ranked = sorted(self.population, key=lambda p: p.fitness, reverse=True)
        else:
            ranked = [self.population[i] for i in self.rng.permutation(len(self.population))]

        n = len(ranked)
        wanted = min(self.settings.opponents_per_player, n - 1)
        matchups: List[Matchup] = []
        for i in range(n):
            chosen = set()
            attempts = 0
            while len(chosen) < wanted and attempts < MAX_OPPONENT_ATTEMPTS:
                j = self._select_opponent(i, n)
                if j != i and j not in chosen:
                    chosen.add(j)
                    matchups.append(Matchup(ranked[i], ranked[j]))
                attempts += 1
        return matchups

    def _select_opponent(self, index: int, count: int) -> int:
        similar_chance = 0.5 if self.generation > 10 else 0.3
        if self.generation > 1 and self.rng.rand() < similar_chance:
            window = min(4, count // 4)
            low = max(0, index - window)
            high = min(count - 1, index + window)
            return int(self.rng.randint(low, high + 1))
        return int(self.rng.randint(count))

    # ------------------------------------------------------------------
    # Self-play
    # ------------------------------------------------------------------
    def run_tournament(self, matchups: List[Matchup]) -> None:
        # Seeds come off the shared generator before any worker starts
        seeds = [int(self.rng.randint(0, _SEED_BOUND)) for _ in matchups]
        jobs = list(zip(matchups, seeds))

        if self.settings.use_parallel_processing and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
                futures = [executor.submit(self._play_matchup_safely, m, np.random.RandomState(s))
                           for m, s in jobs]
                for fut in as_completed(futures):
                    fut.result()
        else:
            for m, s in jobs:
                self._play_matchup_safely(m, np.random.RandomState(s))

    def _play_matchup_safely(self, matchup: Matchup, rng: np.random.RandomState) -> None:
        try:
            self.play_matchup(matchup, rng)
        except Exception:
            logger.exception("Matchup aborted in generation %d; remaining games skipped",
                             self.generation)

    def play_matchup(self, matchup: Matchup, rng: Optional[np.random.RandomState] = None) -> None:
        """Play ``games_per_pair`` games, alternating who takes Red."""
        rng = rng if rng is not None else self._spawn_rng()
        for game in range(self.settings.games_per_pair):
            if game % 2 == 0:
                red, black = matchup.first, matchup.second
            else:
                red, black = matchup.second, matchup.first
            self.play_game(red, black, rng)
        logger.debug("Matchup %s vs %s finished", id(matchup.first), id(matchup.second))

    def _new_game(self) -> GameEngine:
        return GameEngine(
            captures_mandatory=self.rules.captures_mandatory,
            max_moves_without_capture=self.settings.draw_no_capture_moves,
            repetition_limit=self.rules.repetition_limit,
            allow_undo=False,
        )

    def play_game(self, red: AIPlayer, black: AIPlayer,
                  rng: Optional[np.random.RandomState] = None,
                  engine: Optional[GameEngine] = None) -> GameState:
        """
        Play one game to completion or the move cap and record it for both players.

        Reaching the move cap counts as a draw. A player whose policy raises,
        returns nothing, or returns an illegal move loses the game.
        Returns the final state.
        """
        rng = rng if rng is not None else self._spawn_rng()
        game = engine if engine is not None else self._new_game()
        moves = 0

        while not game.is_game_over() and moves < self.settings.max_moves_per_game:
            color = game.get_current_turn_color()
            player, opponent = (red, black) if color is PieceColor.RED else (black, red)
            valid_moves = game.get_all_valid_moves_for_current_player()

            try:
                move = self._select_move(player, game.board, valid_moves, color, rng)
            except Exception:
                logger.warning("Policy failed for %s in generation %d; scored as a loss",
                               color.value, self.generation, exc_info=True)
                move = None

            if move is None or move not in valid_moves:
                return self._record_forfeit(game, red, black, color)

            credit = self._move_credit(move, game.board, color)
            if not game.apply_move(move):
                return self._record_forfeit(game, red, black, color)
            self._track_move_stats(player, opponent, move, credit)
            moves += 1

        state = game.state if game.is_game_over() else GameState.DRAW
        self._record_result(state, game.board, red, black)
        return state

    def _select_move(self, player: AIPlayer, board: Board, valid_moves: List[Move],
                     color: PieceColor, rng: np.random.RandomState) -> Optional[Move]:
        rate = self.settings.exploration_rate
        if rate > 0 and valid_moves and rng.rand() < rate:
            player.stats.record_move()
            return valid_moves[rng.randint(len(valid_moves))]
        return player.choose_move(board, valid_moves, color)

    @staticmethod
    def _move_credit(move: Move, board: Board, color: PieceColor) -> MoveCredit:
        """Kings captured and promotion earned by ``move``, read before it is executed."""
        kings = 0
        for pos in move.jumped:
            captured = board.get_piece(pos)
            if captured is not None and captured.is_king:
                kings += 1
        piece = board.get_piece(move.from_pos)
        promotes = piece is not None and not piece.is_king and move.to_pos[0] == color.king_row
        return MoveCredit(kings, promotes)

    @staticmethod
    def _track_move_stats(player: AIPlayer, opponent: AIPlayer, move: Move,
                          credit: MoveCredit) -> None:
        if move.is_jump:
            player.stats.record_capture(len(move.jumped), credit.kings_captured)
            if credit.kings_captured:
                opponent.stats.add_kings_lost(credit.kings_captured)
        if credit.promotes:
            player.stats.record_king_made()

    def _record_forfeit(self, game: GameEngine, red: AIPlayer, black: AIPlayer,
                        loser: PieceColor) -> GameState:
        state = win_state(loser.opponent)
        self._record_result(state, game.board, red, black)
        return state

    def _record_result(self, state: GameState, board: Board,
                       red: AIPlayer, black: AIPlayer) -> None:
        red_pieces = len(board.get_all_pieces(PieceColor.RED))
        black_pieces = len(board.get_all_pieces(PieceColor.BLACK))

        if state is GameState.RED_WINS:
            red_result, black_result = GameResult.WIN, GameResult.LOSS
        elif state is GameState.BLACK_WINS:
            red_result, black_result = GameResult.LOSS, GameResult.WIN
        else:
            red_result = black_result = GameResult.DRAW

        red.update_game_result(red_result, red_pieces, black_pieces)
        black.update_game_result(black_result, black_pieces, red_pieces)
        with self._games_lock:
            self._games_played += 1

    # ------------------------------------------------------------------
    # Evolution
    # ------------------------------------------------------------------
    def evolve_population(self) -> None:
        ranked = sorted(self.population, key=lambda p: p.fitness, reverse=True)
        size = self.settings.population_size
        elite_count = min(size, max(2, int(size * self.settings.elite_percentage)))

        next_gen = [p.clone() for p in ranked[:elite_count]]

        if len(next_gen) < size:
            mutated_best = ranked[0].clone()
            mutated_best.mutate(self.settings.mutation_rate * 0.5, rng=self.rng)
            next_gen.append(mutated_best)

        while len(next_gen) < size:
            parent1 = self.tournament_select(ranked)
            parent2 = self.tournament_select(ranked)
            attempts = 0
            while parent2 is parent1 and attempts < PARENT_RESELECT_ATTEMPTS:
                parent2 = self.tournament_select(ranked)
                attempts += 1
            next_gen.append(self._breed(parent1, parent2))

        self.population = next_gen

    def _breed(self, parent1: AIPlayer, parent2: AIPlayer) -> AIPlayer:
        child = parent1.crossover(parent2, rng=self.rng)
        child.mutate(self.adaptive_mutation_rate(parent1, parent2), rng=self.rng)
        return child

    def adaptive_mutation_rate(self, parent1: AIPlayer, parent2: AIPlayer) -> float:
        """Base rate, raised for weak parents and stagnation, lowered for late fine-tuning."""
        rate = self.settings.mutation_rate

        avg_parent = (parent1.fitness + parent2.fitness) / 2.0
        best = self.best_player.fitness if self.best_player is not None else 1.0
        if best > 0:
            weakness = 1.0 - avg_parent / best
            rate += min(weakness * 0.1, 0.15)

        stagnation = self.generations_without_improvement
        if stagnation > 5:
            rate += 0.03 * min(stagnation - 5, 10)

        if self.generation > 50 and stagnation < 5:
            rate *= 0.8

        return min(max(rate, self.settings.min_mutation_rate), self.settings.max_mutation_rate)

    def tournament_select(self, candidates: List[AIPlayer]) -> AIPlayer:
        size = min(self.settings.tournament_size, len(candidates))
        best = candidates[self.rng.randint(len(candidates))]
        for _ in range(1, size):
            contestant = candidates[self.rng.randint(len(candidates))]
            if contestant.fitness > best.fitness:
                best = contestant
        return best

    def inject_diversity(self) -> None:
        """Replace the weakest players with fresh networks and shake up the next weakest."""
        size = len(self.population)
        index_of = {id(p): i for i, p in enumerate(self.population)}
        weakest_first = sorted(self.population, key=lambda p: p.fitness)
        replace_count = int(size * self.settings.diversity_replace_fraction)
        mutate_count = int(size * self.settings.diversity_mutate_fraction)

        for player in weakest_first[:replace_count]:
            self.population[index_of[id(player)]] = self._new_player()
        for player in weakest_first[replace_count:replace_count + mutate_count]:
            player.mutate(self.settings.diversity_mutation_rate, rng=self.rng)

        logger.warning("Diversity injection at generation %d: %d replaced, %d mutated "
                       "after %d generations without improvement",
                       self.generation, replace_count, mutate_count,
                       self.generations_without_improvement)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------
    def get_generation_report(self) -> str:
        s = self.current_stats
        warning = ""
        if self.generations_without_improvement > 10:
            warning = f" | Stagnation: {self.generations_without_improvement} gen"
        elif self.generations_without_improvement > 5:
            warning = f" | Plateau: {self.generations_without_improvement} gen"
        return (f"Gen {s.generation} | Best: {s.best_fitness:.1f} | Avg: {s.average_fitness:.1f} | "
                f"Win: {s.best_win_rate:.0%} ({s.average_win_rate:.0%} avg)" + warning)

    def get_detailed_report(self) -> str:
        s = self.current_stats
        return "\n".join([
            f"=== Generation {s.generation} Report ===",
            f"Best Fitness:    {s.best_fitness:.2f}",
            f"Median Fitness:  {s.median_fitness:.2f}",
            f"Average Fitness: {s.average_fitness:.2f}",
            f"Worst Fitness:   {s.worst_fitness:.2f}",
            f"Best Win Rate:   {s.best_win_rate:.1%}",
            f"Avg Win Rate:    {s.average_win_rate:.1%}",
            f"Games Played:    {s.total_games}",
            f"Elapsed:         {s.elapsed_seconds:.1f}s",
            f"Stagnation:      {self.generations_without_improvement} generations",
            f"Historical Best: {self.historical_best_fitness:.2f}",
        ])

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------
    def _checkpoint_player(self) -> AIPlayer:
        if self.best_player is not None:
            return self.best_player
        return max(self.population, key=lambda p: p.fitness)

    def save_best_network(self, path: str) -> bool:
        """Write the best network to ``path`` and a JSON summary to ``path + '.json'``."""
        player = self._checkpoint_player()
        metadata = {
            'generation': self.generation,
            'fitness': player.fitness,
            'historical_best_fitness': self.historical_best_fitness,
            'games_played': player.brain.games_played,
            'win_rate': self.current_stats.best_win_rate,
            'generations_without_improvement': self.generations_without_improvement,
            'topology': list(player.brain.topology[1]),
            'timestamp': datetime.now().isoformat(timespec='seconds'),
        }
        try:
            player.brain.save(path)
            with open(path + ".json", "w") as f:
                json.dump(metadata, f, indent=2)
        except (OSError, CheckpointError):
            logger.error("Failed to save checkpoint to %s", path, exc_info=True)
            return False
        return True

    def load_checkpoint(self, path: str) -> bool:
        """Install a saved network as population member 0 and as the best player."""
        try:
            brain = NeuralNetwork.load(path)
        except (OSError, CheckpointError):
            logger.error("Failed to load checkpoint from %s", path, exc_info=True)
            return False

        expected = self.population[0].brain.topology
        if brain.topology != expected:
            logger.error("Checkpoint topology %s does not match population topology %s",
                         brain.topology, expected)
            return False

        player = AIPlayer(brain, network_settings=self.network_settings,
                          policy_settings=self.policy_settings)
        self.population[0] = player
        self.best_player = player.clone()

        meta_path = path + ".json"
        if os.path.exists(meta_path):
            try:
                with open(meta_path, "r") as f:
                    meta = json.load(f)
                self.generation = int(meta.get('generation', self.generation))
                self.historical_best_fitness = float(
                    meta.get('historical_best_fitness', brain.fitness))
            except (OSError, ValueError):
                logger.warning("Ignoring unreadable checkpoint metadata %s", meta_path, exc_info=True)

        logger.info("Resumed from %s at generation %d (fitness %.2f)",
                    path, self.generation, brain.fitness)
        return True

    def _maybe_checkpoint(self) -> None:
        interval = self.settings.checkpoint_interval
        if interval <= 0 or self.generation % interval != 0:
            return
        path = os.path.join(self.settings.checkpoint_dir, f"best_gen_{self.generation}.bin")
        if self.save_best_network(path):
            logger.info("Checkpoint written to %s", path)
