import logging

import pytest
from pydantic import ValidationError

import config
from config import (
    CheckersConfig,
    LoggingSettings,
    NetworkSettings,
    PolicySettings,
    TrainingSettings,
)
from train import build_config, parse_args


def test_defaults():
    cfg = CheckersConfig()
    assert cfg.network.hidden_sizes == [128, 64, 32]
    assert cfg.training.population_size == 50
    assert cfg.training.draw_no_capture_moves == 40
    assert cfg.rules.captures_mandatory is True
    assert cfg.policy.difficulty == "greedy"


def test_validation():
    with pytest.raises(ValidationError):
        LoggingSettings(log_level="verbose")
    with pytest.raises(ValidationError):
        PolicySettings(difficulty="minimax")
    with pytest.raises(ValidationError):
        NetworkSettings(hidden_sizes=[16, 0])
    with pytest.raises(ValidationError):
        TrainingSettings(mutation_rate=1.5)
    assert LoggingSettings(log_level="debug").log_level == "DEBUG"
    assert PolicySettings(difficulty="TWO_PLY").difficulty == "two_ply"


def test_save_and_load_round_trip(tmp_path):
    cfg = CheckersConfig()
    cfg.update_from_dict({'training': {'population_size': 12, 'seed': 3},
                          'unknown': {'x': 1}})
    path = str(tmp_path / "config.json")
    cfg.save_to_file(path)

    loaded = CheckersConfig.load_from_file(path)
    assert loaded.training.population_size == 12
    assert loaded.training.seed == 3
    assert loaded.config_file == path


def test_update_from_dict_validates():
    cfg = CheckersConfig()
    with pytest.raises(ValidationError):
        cfg.update_from_dict({'training': {'population_size': 0}})


def test_from_env(monkeypatch):
    monkeypatch.setenv('CHECKERS_POPULATION', '8')
    monkeypatch.setenv('CHECKERS_SEED', '42')
    monkeypatch.setenv('CHECKERS_PARALLEL', 'false')
    monkeypatch.setenv('CHECKERS_DIFFICULTY', 'one_ply')
    cfg = CheckersConfig.from_env()
    assert cfg.training.population_size == 8
    assert cfg.training.seed == 42
    assert cfg.training.use_parallel_processing is False
    assert cfg.policy.difficulty == "one_ply"


def test_global_config_lifecycle():
    config.reset_config()
    first = config.get_config()
    assert config.get_config() is first
    config.reset_config()
    assert config.get_config() is not first
    config.reset_config()


def test_ensure_dirs(tmp_path, monkeypatch):
    monkeypatch.setattr(config, 'DATA_DIR', str(tmp_path / "data"))
    monkeypatch.setattr(config, 'MODELS_DIR', str(tmp_path / "models"))
    config.ensure_dirs()
    assert (tmp_path / "data").is_dir()
    assert (tmp_path / "models").is_dir()


def test_setup_logging_is_idempotent(monkeypatch):
    monkeypatch.setattr(config.setup_logging, '_configured', True, raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    config.setup_logging(LoggingSettings(log_level="DEBUG", log_to_file=True))
    assert root.handlers == handlers
    assert root.level == level


def test_cli_overrides():
    config.reset_config()
    args = parse_args(["--population", "6", "--sequential", "--seed", "7", "--generations", "3"])
    cfg = build_config(args)
    assert args.generations == 3
    assert cfg.training.population_size == 6
    assert cfg.training.use_parallel_processing is False
    assert cfg.training.seed == 7
    config.reset_config()


def test_cli_reads_config_file(tmp_path):
    path = str(tmp_path / "run.json")
    cfg = CheckersConfig()
    cfg.update_from_dict({'training': {'population_size': 9}})
    cfg.save_to_file(path)

    loaded = build_config(parse_args(["--config", path, "--seed", "4"]))
    assert loaded.training.population_size == 9
    assert loaded.training.seed == 4
    assert config.get_config() is loaded
    config.reset_config()
