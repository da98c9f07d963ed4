from __future__ import annotations

import argparse
import logging
from typing import Optional

from config import (
    DEFAULT_CHECKPOINT_PATH,
    CheckersConfig,
    ensure_dirs,
    get_config,
    load_config_from_file,
    setup_logging,
)
from neurocheckers import TrainingSystem

logger = logging.getLogger("train")


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Evolve checkers policies through self-play")
    ap.add_argument("--generations", type=int, default=100, help="Number of generations to run")
    ap.add_argument("--population", type=int, default=None, help="Population size")
    ap.add_argument("--mutation-rate", type=float, default=None, help="Base mutation rate")
    ap.add_argument("--elite", type=float, default=None, help="Elite fraction kept unchanged")
    ap.add_argument("--games-per-pair", type=int, default=None, help="Games per matchup")
    ap.add_argument("--opponents", type=int, default=None, help="Opponents per player")
    ap.add_argument("--max-moves", type=int, default=None, help="Move cap per game")
    ap.add_argument("--workers", type=int, default=None, help="Thread pool size")
    ap.add_argument("--sequential", action="store_true", help="Play matchups one at a time")
    ap.add_argument("--seed", type=int, default=None, help="RNG seed for a reproducible run")
    ap.add_argument("--resume", default=None, help="Checkpoint to resume from")
    ap.add_argument("--output", default=DEFAULT_CHECKPOINT_PATH, help="Best network save path")
    ap.add_argument("--config", default=None, help="JSON configuration file")
    return ap.parse_args(argv)


def build_config(args: argparse.Namespace) -> CheckersConfig:
    config = load_config_from_file(args.config) if args.config else get_config()
    overrides = {
        'population_size': args.population,
        'mutation_rate': args.mutation_rate,
        'elite_percentage': args.elite,
        'games_per_pair': args.games_per_pair,
        'opponents_per_player': args.opponents,
        'max_moves_per_game': args.max_moves,
        'max_workers': args.workers,
        'seed': args.seed,
    }
    training = {k: v for k, v in overrides.items() if v is not None}
    if args.sequential:
        training['use_parallel_processing'] = False
    config.update_from_dict({'training': training})
    return config


def main(argv: Optional[list] = None) -> None:
    args = parse_args(argv)
    config = build_config(args)
    setup_logging(config.logging)
    ensure_dirs()

    trainer = TrainingSystem(config.training, config.network, config.policy, config.rules)
    if args.resume and not trainer.load_checkpoint(args.resume):
        logger.warning("Could not resume from %s; starting from a fresh population", args.resume)

    try:
        trainer.run(args.generations)
    except KeyboardInterrupt:
        logger.info("Interrupted at generation %d", trainer.generation)

    logger.info("\n%s", trainer.get_detailed_report())
    if trainer.save_best_network(args.output):
        logger.info("Best network saved to %s", args.output)


if __name__ == "__main__":
    main()
