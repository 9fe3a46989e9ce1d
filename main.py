#!/usr/bin/env python3
"""
Paddle Evolution - Main Entry Point
===================================

Headless runner for the adaptive Pong opponent.

Usage:
    # Evolve a population through a full tournament
    python main.py --tournament

    # Smaller, faster tournament
    python main.py --tournament --population 8 --generations 10 --points 3

    # Train a single agent against the scripted opponent
    python main.py --train --episodes 500

    # Inspect a saved network
    python main.py --inspect models/tournament_winner.bin
"""

import argparse
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import Config
from src.utils.logger import setup_logging, get_logger, LogLevel


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Paddle Evolution - Q-learning Pong opponents evolved by tournament",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
EXAMPLES
========

Tournament:
    python main.py --tournament                          Defaults from config.py
    python main.py --tournament --population 8 --generations 5
    python main.py --tournament --speed 20 --seed 42     Faster, reproducible

Training:
    python main.py --train --episodes 200                Resumes from models/ai_model.bin

Models:
    python main.py --inspect models/all_time_champion.bin

A tournament seeds itself from models/tournament_winner.bin (or the saved
top 5) when present, so repeated runs continue evolving.
        """
    )

    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        '--tournament', action='store_true',
        help='Run a full generational tournament (default mode)'
    )
    mode_group.add_argument(
        '--train', action='store_true',
        help='Train one agent against the scripted opponent'
    )
    mode_group.add_argument(
        '--inspect', type=str, metavar='MODEL_PATH',
        help='Show the layer sizes of a saved model'
    )

    # Tournament parameters
    parser.add_argument(
        '--population', type=int, default=None,
        help='Population size (default: 16)'
    )
    parser.add_argument(
        '--generations', type=int, default=None,
        help='Number of generations (default: 50)'
    )
    parser.add_argument(
        '--points', type=int, default=None,
        help='Points needed to win a match (default: 7)'
    )
    parser.add_argument(
        '--speed', type=float, default=None,
        help='Simulation speed multiplier (default: 10 for tournaments, 1 for training)'
    )

    # Training parameters
    parser.add_argument(
        '--episodes', type=int, default=None,
        help='Number of training episodes (default: 100)'
    )

    # Other options
    parser.add_argument(
        '--model-dir', type=str, default=None,
        help='Directory for saved models (default: models)'
    )
    parser.add_argument(
        '--seed', type=int, default=None,
        help='Random seed for reproducibility'
    )
    parser.add_argument(
        '--log-level', type=str, default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Console log level (default: INFO)'
    )

    return parser.parse_args(argv)


def build_config(args) -> Config:
    """Apply command line overrides to a fresh Config."""
    config = Config()
    if args.population is not None:
        config.POPULATION_SIZE = args.population
    if args.generations is not None:
        config.MAX_GENERATIONS = args.generations
    if args.points is not None:
        config.WIN_SCORE = args.points
    if args.speed is not None:
        config.SPEED_MULTIPLIER = args.speed
        config.TRAIN_SPEED_MULTIPLIER = args.speed
    if args.episodes is not None:
        config.TRAIN_EPISODES = args.episodes
    if args.model_dir is not None:
        config.MODEL_DIR = args.model_dir
    if args.seed is not None:
        config.SEED = args.seed
    if args.log_level is not None:
        config.LOG_LEVEL = args.log_level
    # Re-run validation on the overridden values
    config.__post_init__()
    return config


def inspect_model(filepath: str) -> int:
    """Print a saved model's architecture."""
    from src.ai.persistence import inspect_model as read_model_info

    info = read_model_info(filepath)
    if not info:
        print(f"\n❌ Could not read model '{filepath}'")
        return 1

    print("\n" + "=" * 60)
    print(f"🔍 Model Inspection: {info['filename']}")
    print("=" * 60)
    print(f"   File Size:  {info['file_size_bytes']:,} bytes")
    print(f"   Layers:     {' -> '.join(str(s) for s in info['layer_sizes'])}")
    print(f"   Parameters: {info['parameters']:,}")
    print("=" * 60 + "\n")
    return 0


def run_tournament(config: Config) -> int:
    """Run a full tournament and print the final standings."""
    from src.ai.tournament import TournamentManager

    logger = get_logger('main')
    manager = TournamentManager(config)
    manager.initialize()
    logger.info(manager.status_message)

    try:
        manager.start()
        while manager.run_generation():
            logger.info(f"Progress {manager.progress * 100:.0f}% | ETA {manager.format_eta()}")
    except KeyboardInterrupt:
        manager.stop()
        logger.warning("Tournament interrupted; saving current top models")
        manager.save_top_for_persistence()
        return 130

    print("\n" + "=" * 60)
    print("🏆 Tournament Complete!")
    print("=" * 60)
    for rank, top in enumerate(manager.get_top_individuals(5), start=1):
        print(f"   #{rank} {top.id}  fitness={top.fitness:.3f}  "
              f"record={top.wins}-{top.losses}  gen={top.generation}")
    print(f"   All-time best fitness: {manager.all_time_best_fitness:.3f}")
    print(f"   Models saved to: {manager.model_dir}/")
    print("=" * 60)
    return 0


def run_training(config: Config) -> int:
    """Train a single agent against the scripted opponent."""
    from src.ai.trainer import Trainer

    logger = get_logger('main')
    trainer = Trainer(config)
    if trainer.resume():
        logger.info(f"Resumed from {trainer.model_path}")

    try:
        trainer.train()
    except KeyboardInterrupt:
        logger.warning("Training interrupted; saving current model")
        trainer.save()
        return 130

    print("\n" + "=" * 60)
    print("✅ Training Complete!")
    print("=" * 60)
    print(f"   Best fitness:  {trainer.agent.best_fitness:.3f}")
    print(f"   Final epsilon: {trainer.agent.epsilon:.4f}")
    print(f"   Record:        {trainer.agent.wins}/{trainer.agent.total_games}")
    print("=" * 60)
    return 0


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    if args.inspect:
        return inspect_model(args.inspect)

    try:
        config = build_config(args)
    except AssertionError as e:
        print(f"❌ Invalid configuration: {e}")
        return 2

    setup_logging(
        log_dir=config.LOG_DIR,
        level=LogLevel.from_name(config.LOG_LEVEL),
        force=True,
    )

    if args.train:
        return run_training(config)
    return run_tournament(config)


if __name__ == "__main__":
    sys.exit(main())
