"""
Central configuration for paths and tunables.
Pydantic models give type-safe, validated settings for rules, networks,
policy scoring, training and logging.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

ConfigDict = Dict[str, Any]


class GameRulesSettings(BaseModel):
    """Game rules and variant settings."""

    captures_mandatory: bool = Field(default=True, description="Require captures when available")
    allow_undo: bool = Field(default=True, description="Allow undoing moves")
    max_moves_without_capture: int = Field(default=50, ge=1, description="Draw after this many moves without a capture")
    repetition_limit: int = Field(default=3, ge=2, description="Draw when a position occurs this many times")

    @field_validator('captures_mandatory', 'allow_undo', mode='before')
    @classmethod
    def validate_bool_fields(cls, v):
        return bool(v)


class NetworkSettings(BaseModel):
    """Topology and evolution operators of the policy network."""

    input_size: int = Field(default=64, ge=1, description="Feature vector width (one per square)")
    hidden_sizes: List[int] = Field(default_factory=lambda: [128, 64, 32], description="Hidden layer widths")
    output_size: int = Field(default=1, ge=1, description="Output width")
    mutation_strength: float = Field(default=0.2, gt=0, description="Std-dev of mutation noise for weights")
    weight_clamp: float = Field(default=5.0, gt=0, description="Weights are clamped to [-x, x] after mutation")
    bias_clamp: float = Field(default=2.0, gt=0, description="Biases are clamped to [-x, x] after mutation")
    initial_bias: float = Field(default=0.01, description="Initial value of every bias")
    crossover_rate: float = Field(default=0.5, ge=0, le=1, description="Probability a parameter comes from the first parent")

    @field_validator('hidden_sizes')
    @classmethod
    def validate_hidden_sizes(cls, v):
        if any(h <= 0 for h in v):
            raise ValueError("hidden layer widths must be positive")
        return v


class PolicySettings(BaseModel):
    """Move scoring settings for the AI player."""

    cache_size: int = Field(default=10000, ge=1, description="Evaluation cache max size")
    strategic_weight: float = Field(default=0.15, ge=0, description="Weight of the strategic heuristic")
    tactical_weight: float = Field(default=0.1, ge=0, description="Weight of the tactical heuristic")
    difficulty: str = Field(default="greedy", description="Lookahead: greedy, one_ply or two_ply")
    max_replies: int = Field(default=12, ge=1, description="Replies examined per lookahead ply")

    @field_validator('difficulty', mode='before')
    @classmethod
    def validate_difficulty(cls, v):
        valid = ['greedy', 'one_ply', 'two_ply']
        v_lower = v.lower() if isinstance(v, str) else str(v).lower()
        if v_lower not in valid:
            raise ValueError(f"difficulty must be one of {valid}")
        return v_lower


class TrainingSettings(BaseModel):
    """Neuroevolution run configuration."""

    population_size: int = Field(default=50, ge=2, description="Players per generation")
    mutation_rate: float = Field(default=0.1, ge=0, le=1, description="Base per-parameter mutation probability")
    elite_percentage: float = Field(default=0.1, ge=0, le=1, description="Fraction cloned unchanged into the next generation")
    games_per_pair: int = Field(default=2, ge=1, description="Games per matchup, colours alternated")
    opponents_per_player: int = Field(default=5, ge=1, description="Opponents drawn for each player")
    max_moves_per_game: int = Field(default=150, ge=1, description="Move cap; reaching it scores a draw")
    draw_no_capture_moves: int = Field(default=40, ge=1, description="Self-play draw after this many moves without capture")
    use_parallel_processing: bool = Field(default=True, description="Play matchups on a thread pool")
    max_workers: Optional[int] = Field(default=None, ge=1, description="Thread pool size (None = executor default)")
    seed: Optional[int] = Field(default=None, description="Top-level RNG seed for reproducible runs")
    tournament_size: int = Field(default=5, ge=1, description="Contestants per tournament selection")
    diversity_reset_threshold: int = Field(default=15, ge=1, description="Generations without improvement before diversity injection")
    diversity_replace_fraction: float = Field(default=0.25, ge=0, le=1, description="Weakest fraction replaced with fresh networks")
    diversity_mutate_fraction: float = Field(default=0.15, ge=0, le=1, description="Next-weakest fraction mutated heavily")
    diversity_mutation_rate: float = Field(default=0.35, ge=0, le=1, description="Mutation rate used by diversity injection")
    min_mutation_rate: float = Field(default=0.02, ge=0, le=1, description="Lower bound of the adaptive mutation rate")
    max_mutation_rate: float = Field(default=0.4, ge=0, le=1, description="Upper bound of the adaptive mutation rate")
    exploration_rate: float = Field(default=0.0, ge=0, le=1, description="Chance a self-play move is chosen at random")
    checkpoint_interval: int = Field(default=10, ge=0, description="Checkpoint every N generations (0 disables)")
    checkpoint_dir: str = Field(default=os.path.join("models", "checkpoints"), description="Periodic checkpoint directory")

    @field_validator('mutation_rate', 'elite_percentage', 'exploration_rate', mode='before')
    @classmethod
    def validate_float_fields(cls, v):
        return float(v)

    @field_validator('max_mutation_rate')
    @classmethod
    def validate_mutation_band(cls, v, info):
        low = info.data.get('min_mutation_rate')
        if low is not None and v < low:
            raise ValueError("max_mutation_rate must be >= min_mutation_rate")
        return v


class LoggingSettings(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_to_file: bool = Field(default=False, description="Write logs to file")
    log_file_path: str = Field(default="neurocheckers.log", description="Log file path")

    @field_validator('log_level', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR']
        v_upper = v.upper() if isinstance(v, str) else str(v).upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper


class CheckersConfig(BaseModel):
    """Main configuration model for the neuroevolution project."""

    rules: GameRulesSettings = Field(default_factory=GameRulesSettings)
    network: NetworkSettings = Field(default_factory=NetworkSettings)
    policy: PolicySettings = Field(default_factory=PolicySettings)
    training: TrainingSettings = Field(default_factory=TrainingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    # Metadata
    version: str = Field(default="1.0.0", description="Configuration version")
    config_file: Optional[str] = Field(default=None, description="Path to config file")

    @classmethod
    def from_env(cls) -> 'CheckersConfig':
        """Create configuration from environment variables."""
        seed = os.getenv('CHECKERS_SEED')
        return cls(
            rules=GameRulesSettings(
                captures_mandatory=os.getenv('CHECKERS_MANDATORY', 'true').lower() == 'true',
            ),
            policy=PolicySettings(
                difficulty=os.getenv('CHECKERS_DIFFICULTY', 'greedy'),
            ),
            training=TrainingSettings(
                population_size=int(os.getenv('CHECKERS_POPULATION', '50')),
                mutation_rate=float(os.getenv('CHECKERS_MUTATION_RATE', '0.1')),
                use_parallel_processing=os.getenv('CHECKERS_PARALLEL', 'true').lower() == 'true',
                seed=int(seed) if seed else None,
            ),
            logging=LoggingSettings(
                log_level=os.getenv('CHECKERS_LOG_LEVEL', 'INFO'),
                log_to_file=os.getenv('CHECKERS_LOG_FILE', 'false').lower() == 'true',
            ),
        )

    def to_dict(self) -> ConfigDict:
        """Convert configuration to dictionary."""
        return {
            'rules': self.rules.model_dump(),
            'network': self.network.model_dump(),
            'policy': self.policy.model_dump(),
            'training': self.training.model_dump(),
            'logging': self.logging.model_dump(),
            'version': self.version,
            'config_file': self.config_file,
        }

    def save_to_file(self, filepath: str) -> None:
        """Save configuration to JSON file."""
        config_dict = self.to_dict()
        config_dict['config_file'] = filepath

        with open(filepath, 'w') as f:
            json.dump(config_dict, f, indent=2)

    @classmethod
    def load_from_file(cls, filepath: str) -> 'CheckersConfig':
        """Load configuration from JSON file."""
        with open(filepath, 'r') as f:
            data = json.load(f)

        return cls(
            rules=GameRulesSettings(**data.get('rules', {})),
            network=NetworkSettings(**data.get('network', {})),
            policy=PolicySettings(**data.get('policy', {})),
            training=TrainingSettings(**data.get('training', {})),
            logging=LoggingSettings(**data.get('logging', {})),
            version=data.get('version', '1.0.0'),
            config_file=filepath,
        )

    def update_from_dict(self, updates: ConfigDict) -> None:
        """Update configuration sections from a nested dictionary, re-validating each section."""
        for section, settings in updates.items():
            if hasattr(self, section) and isinstance(settings, dict):
                section_model = getattr(self, section)
                known = {k: v for k, v in settings.items() if k in type(section_model).model_fields}
                merged = {**section_model.model_dump(), **known}
                setattr(self, section, type(section_model)(**merged))


# Global configuration instance
_config: Optional[CheckersConfig] = None


def get_config() -> CheckersConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = CheckersConfig.from_env()
    return _config


def load_config_from_file(filepath: str) -> CheckersConfig:
    """Load configuration from file and update global instance."""
    global _config
    _config = CheckersConfig.load_from_file(filepath)
    return _config


def reset_config() -> None:
    """Reset the global configuration to defaults."""
    global _config
    _config = None


# Directories
DATA_DIR = os.environ.get("CHECKERS_DATA_DIR", os.path.join("data"))
MODELS_DIR = os.environ.get("CHECKERS_MODELS_DIR", os.path.join("models"))

# Default artifact paths
DEFAULT_CHECKPOINT_PATH = os.path.join(MODELS_DIR, "best_network.bin")

# Logging level (DEBUG, INFO, WARNING, ERROR)
LOG_LEVEL = os.environ.get("CHECKERS_LOG_LEVEL", "INFO").upper()


def ensure_dirs() -> None:
    """Ensure required directories exist."""
    for d in (DATA_DIR, MODELS_DIR):
        if d and not os.path.exists(d):
            os.makedirs(d, exist_ok=True)


def setup_logging(settings: Optional[LoggingSettings] = None) -> None:
    """Configure root logging once, controlled by settings or env var CHECKERS_LOG_LEVEL."""
    if getattr(setup_logging, "_configured", False):
        return
    level_name = settings.log_level if settings is not None else LOG_LEVEL
    level: int = getattr(logging, level_name, logging.INFO)
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if settings is not None and settings.log_to_file:
        handlers.append(logging.FileHandler(settings.log_file_path))
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
    )
    setup_logging._configured = True  # type: ignore[attr-defined]
