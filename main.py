#!/usr/bin/env python3
"""
DQN Trader - Main Entry Point
=============================

Trains a DQN agent to hold, buy or sell a single asset against a price series.

Usage:
    # Train with default settings until MAX_EPISODES / REWARD_THRESHOLD
    python main.py --episodes 2000
    
    # Faster exploration decay and a fixed seed
    python main.py --episodes 500 --epsilon-decay-frames 20000 --seed 7
    
    # Resume from a checkpoint
    python main.py --model models/trader_best.pth --episodes 1000
    
    # Evaluate a trained model greedily for 20 episodes
    python main.py --model models/trader_best.pth --eval 20
"""

import argparse
import os
import sys
from typing import List, Optional

from config import Config
from dqn_trader.ai.agent import Agent
from dqn_trader.ai.trainer import Trainer, seed_everything
from dqn_trader.errors import ConfigurationError
from dqn_trader.market import get_market, list_markets
from dqn_trader.utils.logger import LogLevel, get_logger, setup_logging


def positive_int(value: str) -> int:
    """argparse type for counts that must be at least 1."""
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="DQN Trader - Train a deep Q-network to trade a single asset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
AVAILABLE MARKETS: {', '.join(list_markets())}

TIPS
====
- Press Ctrl+C to stop training (the model is saved as trader_interrupted.pth)
- Lower --sync-every to propagate learning to the target network faster
        """
    )
    
    parser.add_argument(
        '--market', type=str, default=None, choices=list_markets(),
        help='Market to trade on'
    )
    parser.add_argument(
        '--model', type=str, default=None,
        help='Path to model file to load'
    )
    parser.add_argument(
        '--eval', type=positive_int, default=None, metavar='N',
        help='Evaluate the (loaded) model for N greedy episodes instead of training'
    )
    
    # Training parameters
    parser.add_argument('--episodes', type=int, default=None,
                        help='Number of training episodes (default: unlimited)')
    parser.add_argument('--lr', type=float, default=None, help='Learning rate')
    parser.add_argument('--gamma', type=float, default=None, help='Reward discount rate in [0, 1]')
    parser.add_argument('--batch-size', type=int, default=None, help='Training batch size')
    parser.add_argument('--buffer-size', type=int, default=None, help='Replay memory capacity')
    parser.add_argument('--memory-min', type=int, default=None,
                        help='Transitions to collect before training starts')
    parser.add_argument('--sync-every', type=int, default=None,
                        help='Frames between target network syncs')
    parser.add_argument('--reward-threshold', type=float, default=None,
                        help='Stop when the moving-average reward reaches this value')
    
    # Exploration
    parser.add_argument('--epsilon-init', type=float, default=None, help='Initial epsilon')
    parser.add_argument('--epsilon-final', type=float, default=None, help='Final epsilon')
    parser.add_argument('--epsilon-decay-frames', type=int, default=None,
                        help='Frames over which epsilon decays linearly')
    
    # System
    parser.add_argument('--cpu', action='store_true', help='Force CPU')
    parser.add_argument('--seed', type=int, default=None, help='Random seed for reproducibility')
    parser.add_argument(
        '--log-level', type=str, default='INFO', choices=[level.name for level in LogLevel],
        help='Console log level'
    )
    
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    """Apply CLI overrides to a fresh Config and validate the result."""
    config = Config()
    
    overrides = {
        'MARKET_NAME': args.market,
        'MAX_EPISODES': args.episodes,
        'LEARNING_RATE': args.lr,
        'GAMMA': args.gamma,
        'BATCH_SIZE': args.batch_size,
        'REPLAY_BUFFER_SIZE': args.buffer_size,
        'MEMORY_MIN': args.memory_min,
        'SYNC_EVERY_FRAMES': args.sync_every,
        'REWARD_THRESHOLD': args.reward_threshold,
        'EPSILON_INIT': args.epsilon_init,
        'EPSILON_FINAL': args.epsilon_final,
        'EPSILON_DECAY_FRAMES': args.epsilon_decay_frames,
        'SEED': args.seed,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    if args.cpu:
        config.FORCE_CPU = True
    
    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    
    config = Config()
    setup_logging(log_dir=config.LOG_DIR, level=LogLevel[args.log_level])
    logger = get_logger('main')
    
    try:
        config = build_config(args)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    
    market_class = get_market(config.MARKET_NAME)
    if market_class is None:
        logger.error(f"Unknown market '{config.MARKET_NAME}'")
        return 1
    market = market_class(config)
    if config.SEED is not None:
        seed_everything(config.SEED)
        market.seed(config.SEED)
    
    agent = Agent(market, config)
    trainer = Trainer(agent, config)
    
    if args.model and agent.load(args.model) is None:
        return 1
    
    if args.eval is not None:
        trainer.evaluate(num_episodes=args.eval)
        return 0
    
    try:
        trainer.train()
    except KeyboardInterrupt:
        logger.warning("Training interrupted by user")
        agent.save(
            os.path.join(config.MODEL_DIR, 'trader_interrupted.pth'),
            save_reason='interrupted',
            episode=trainer.current_episode,
            best_avg_reward=trainer.best_avg_reward or 0.0
        )
    
    trainer.evaluate(num_episodes=10)
    return 0


if __name__ == "__main__":
    sys.exit(main())
