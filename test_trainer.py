import json
import threading

import numpy as np
import pytest
from pydantic import ValidationError

from config import NetworkSettings, TrainingSettings
from neurocheckers.board import Board
from neurocheckers.engine import GameEngine
from neurocheckers.player import AIPlayer
from neurocheckers.trainer import TrainingSystem
from neurocheckers.types import GameState, Move, PieceColor, PieceType, Position

P = Position
SMALL = NetworkSettings(hidden_sizes=[8])

# Helpers

def make_trainer(**overrides):
    settings = dict(population_size=4, opponents_per_player=1, games_per_pair=1,
                    max_moves_per_game=20, seed=1, checkpoint_interval=0)
    settings.update(overrides)
    return TrainingSystem(TrainingSettings(**settings), network_settings=SMALL)


class ScriptedPlayer(AIPlayer):
    """Plays the move listed for its piece's current square."""

    def __init__(self, route):
        super().__init__(network_settings=SMALL)
        self.route = route

    def choose_move(self, board, valid_moves, color):
        self.stats.record_move()
        for move in valid_moves:
            if self.route.get(move.from_pos) == move.to_pos:
                return move
        return None


class BrokenPlayer(AIPlayer):
    def __init__(self):
        super().__init__(network_settings=SMALL)

    def choose_move(self, board, valid_moves, color):
        raise RuntimeError("policy failure")


class IllegalPlayer(AIPlayer):
    def __init__(self):
        super().__init__(network_settings=SMALL)

    def choose_move(self, board, valid_moves, color):
        return Move(P(0, 0), P(1, 1))


def shuffle_engine():
    board = Board.empty()
    board.place(P(5, 0), PieceColor.RED, PieceType.KING)
    board.place(P(0, 7), PieceColor.BLACK, PieceType.KING)
    return GameEngine(board, max_moves_without_capture=40, allow_undo=False)


def test_one_generation_with_four_players():
    trainer = make_trainer(max_moves_per_game=50)
    stats = trainer.run_generation()

    assert len(trainer.population) == 4
    assert len(trainer.evaluated_population) == 4
    assert len(trainer.last_matchups) == 4
    assert stats.generation == 1
    assert stats.total_games == 4

    for player in trainer.evaluated_population:
        expected = sum(1 for m in trainer.last_matchups if player in (m.first, m.second))
        assert player.stats.games_played == expected
        assert player.brain.games_played == expected
        assert player.fitness >= 0.0
    assert trainer.best_player is not None


def test_sequential_runs_are_reproducible():
    a = make_trainer(use_parallel_processing=False, seed=11)
    b = make_trainer(use_parallel_processing=False, seed=11)
    a.run_generation()
    b.run_generation()
    assert [p.fitness for p in a.evaluated_population] == [p.fitness for p in b.evaluated_population]
    assert np.array_equal(a.population[-1].brain.weights[0], b.population[-1].brain.weights[0])


def test_parallel_and_sequential_agree():
    a = make_trainer(use_parallel_processing=False, seed=5)
    b = make_trainer(use_parallel_processing=True, seed=5, max_workers=4)
    a.run_generation()
    b.run_generation()
    assert [p.fitness for p in a.evaluated_population] == [p.fitness for p in b.evaluated_population]


def test_repeated_position_is_a_draw_for_both():
    trainer = make_trainer()
    red = ScriptedPlayer({P(5, 0): P(4, 1), P(4, 1): P(5, 0)})
    black = ScriptedPlayer({P(0, 7): P(1, 6), P(1, 6): P(0, 7)})

    state = trainer.play_game(red, black, engine=shuffle_engine())

    assert state is GameState.DRAW
    for player in (red, black):
        assert player.stats.games_played == 1
        assert player.stats.draws == 1
        assert player.stats.wins == player.stats.losses == 0
    assert red.stats.total_moves == 4


def test_move_cap_is_a_draw():
    trainer = make_trainer(max_moves_per_game=2)
    a = AIPlayer(rng=np.random.RandomState(0), network_settings=SMALL)
    b = AIPlayer(rng=np.random.RandomState(1), network_settings=SMALL)
    assert trainer.play_game(a, b) is GameState.DRAW
    assert a.stats.draws == b.stats.draws == 1


def test_policy_failure_is_scored_as_a_loss():
    trainer = make_trainer()
    broken = BrokenPlayer()
    other = AIPlayer(rng=np.random.RandomState(0), network_settings=SMALL)
    assert trainer.play_game(broken, other) is GameState.BLACK_WINS
    assert broken.stats.losses == 1
    assert other.stats.wins == 1


def test_illegal_move_is_scored_as_a_loss():
    trainer = make_trainer()
    other = AIPlayer(rng=np.random.RandomState(0), network_settings=SMALL)
    illegal = IllegalPlayer()
    assert trainer.play_game(other, illegal) is GameState.RED_WINS
    assert illegal.stats.losses == 1


def test_captures_and_kings_are_credited_per_jump():
    trainer = make_trainer()
    board = Board.empty()
    board.place(P(4, 4), PieceColor.RED)
    board.place(P(3, 3), PieceColor.BLACK, PieceType.KING)
    board.place(P(0, 7), PieceColor.BLACK)
    red = ScriptedPlayer({P(4, 4): P(2, 2)})
    black = ScriptedPlayer({})

    state = trainer.play_game(red, black, engine=GameEngine(board, allow_undo=False))

    assert state is GameState.RED_WINS  # black forfeits with no scripted move
    assert red.stats.pieces_captured == 1
    assert red.stats.kings_captured == 1
    assert black.stats.kings_lost == 1


def test_generate_matchups_distinct_opponents():
    trainer = make_trainer(population_size=8, opponents_per_player=3)
    matchups = trainer.generate_matchups()
    assert len(matchups) == 8 * 3
    for m in matchups:
        assert m.first is not m.second
    for player in trainer.population:
        opponents = [m.second for m in matchups if m.first is player]
        assert len({id(o) for o in opponents}) == 3


@pytest.mark.parametrize("size,elite", [(4, 0.1), (5, 0.5), (6, 1.0), (2, 0.0)])
def test_evolution_keeps_population_size(size, elite):
    trainer = make_trainer(population_size=size, elite_percentage=elite)
    for i, player in enumerate(trainer.population):
        player.brain.fitness = float(i)
    trainer.evolve_population()
    assert len(trainer.population) == size
    assert trainer.population[0].fitness == float(size - 1)


def test_tournament_select_prefers_fitter():
    trainer = make_trainer(population_size=4, tournament_size=50)
    for i, player in enumerate(trainer.population):
        player.brain.fitness = float(i)
    best = trainer.population[3]
    picks = [trainer.tournament_select(trainer.population) for _ in range(200)]
    assert sum(1 for p in picks if p is best) > 100


def test_adaptive_mutation_rate_band():
    trainer = make_trainer(mutation_rate=0.1)
    weak, strong = trainer.population[0], trainer.population[1]
    weak.brain.fitness, strong.brain.fitness = 0.0, 100.0
    trainer.best_player = strong.clone()

    assert trainer.adaptive_mutation_rate(strong, strong) == pytest.approx(0.1)
    assert trainer.adaptive_mutation_rate(weak, weak) == pytest.approx(0.2)

    trainer.generations_without_improvement = 30
    assert trainer.adaptive_mutation_rate(weak, weak) == pytest.approx(0.4)

    trainer.generations_without_improvement = 0
    trainer.generation = 60
    assert trainer.adaptive_mutation_rate(strong, strong) == pytest.approx(0.08)


def test_inject_diversity_replaces_weakest():
    trainer = make_trainer(population_size=8)
    for i, player in enumerate(trainer.population):
        player.brain.fitness = float(i)
    weakest = trainer.population[:2]
    survivors = trainer.population[2:]
    trainer.inject_diversity()
    assert len(trainer.population) == 8
    assert all(p not in trainer.population for p in weakest)
    assert all(p in trainer.population for p in survivors)


def test_stagnation_triggers_diversity_and_resets_counter():
    trainer = make_trainer(diversity_reset_threshold=2)
    trainer.historical_best_fitness = 1e9
    trainer.generations_without_improvement = 1
    trainer.run_generation()
    assert trainer.generations_without_improvement == 0
    assert "Generation 1" in trainer.get_detailed_report()


def test_run_honours_stop_event_and_callback():
    trainer = make_trainer()
    seen = []
    history = trainer.run(2, progress_callback=seen.append)
    assert len(history) == 2 and seen == history
    assert trainer.generation == 2
    assert trainer.get_generation_report().startswith("Gen 2")

    stop = threading.Event()
    stop.set()
    assert trainer.run(3, stop_event=stop) == []
    assert trainer.generation == 2


def test_checkpoint_round_trip(tmp_path):
    trainer = make_trainer()
    trainer.run_generation()
    path = str(tmp_path / "best.bin")
    assert trainer.save_best_network(path)

    with open(path + ".json") as f:
        meta = json.load(f)
    assert meta['generation'] == 1

    restored = make_trainer(seed=99)
    assert restored.load_checkpoint(path)
    assert restored.generation == 1
    assert restored.best_player.fitness == pytest.approx(trainer.best_player.fitness)
    probe = np.linspace(-1, 1, 64)
    assert np.allclose(restored.population[0].brain.feed_forward(probe),
                       trainer.best_player.brain.feed_forward(probe))


def test_failed_load_leaves_population_unchanged(tmp_path):
    trainer = make_trainer()
    before = list(trainer.population)
    assert not trainer.load_checkpoint(str(tmp_path / "missing.bin"))

    corrupt = tmp_path / "corrupt.bin"
    corrupt.write_bytes(b"\x01\x02\x03")
    assert not trainer.load_checkpoint(str(corrupt))

    other = TrainingSystem(TrainingSettings(population_size=2, seed=0, checkpoint_interval=0),
                           network_settings=NetworkSettings(hidden_sizes=[4]))
    mismatched = str(tmp_path / "other.bin")
    assert other.save_best_network(mismatched)
    assert not trainer.load_checkpoint(mismatched)

    assert trainer.population == before
    assert trainer.best_player is None


def test_failed_save_returns_false(tmp_path):
    trainer = make_trainer()
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    assert not trainer.save_best_network(str(blocker / "best.bin"))


def test_periodic_checkpoint(tmp_path):
    trainer = make_trainer(checkpoint_interval=1, checkpoint_dir=str(tmp_path))
    trainer.run_generation()
    assert (tmp_path / "best_gen_1.bin").exists()
    assert (tmp_path / "best_gen_1.bin.json").exists()


def test_invalid_settings_rejected():
    with pytest.raises(ValidationError):
        TrainingSettings(population_size=1)
    with pytest.raises(ValidationError):
        TrainingSettings(min_mutation_rate=0.5, max_mutation_rate=0.1)


class RejectingEngine(GameEngine):
    def apply_move(self, move):
        return False


def test_rejected_move_earns_no_capture_credit():
    trainer = make_trainer()
    board = Board.empty()
    board.place(P(4, 4), PieceColor.RED)
    board.place(P(3, 3), PieceColor.BLACK, PieceType.KING)
    board.place(P(0, 7), PieceColor.BLACK)
    red = ScriptedPlayer({P(4, 4): P(2, 2)})
    black = ScriptedPlayer({})

    state = trainer.play_game(red, black, engine=RejectingEngine(board, allow_undo=False))

    assert state is GameState.BLACK_WINS
    assert red.stats.pieces_captured == red.stats.kings_captured == 0
    assert black.stats.kings_lost == 0
    assert red.stats.losses == 1
