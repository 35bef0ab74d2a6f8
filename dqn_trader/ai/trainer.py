"""
Training Loop
=============

Orchestrates the training process:
    1. Fill replay memory (cold start)
    2. Alternate one training batch with one market step
    3. Sync the target network on a fixed frame cadence
    4. Track episode metrics with moving averages
    5. Save checkpoints when the average reward improves

The agent core never decides when to sync or save; this module does.
"""

import os
import random
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional

import numpy as np
import torch

from .agent import Agent
from ..market.base_market import BaseMarket
from ..utils.logger import get_logger, log_training_metrics

import sys
sys.path.append('../..')
from config import Config


logger = get_logger(__name__)


@dataclass
class EpisodeStats:
    """Statistics for a single episode."""
    episode: int
    total_reward: float
    trades: int
    frames: int
    epsilon: float
    avg_loss: float
    duration: float


class MovingAverager:
    """Average over the last `window` values."""

    def __init__(self, window: int):
        self._values: Deque[float] = deque(maxlen=window)

    def append(self, value: float) -> None:
        self._values.append(value)

    def average(self) -> float:
        if not self._values:
            return 0.0
        return sum(self._values) / len(self._values)

    def __len__(self) -> int:
        return len(self._values)


class TrainingMetrics:
    """
    Tracks and stores training metrics over time.

    Metrics tracked:
        - Episode rewards
        - Trades per episode
        - Epsilon values
        - Loss values
        - Episode durations
    """

    def __init__(self, history_length: int = 1000):
        self.history_length = history_length

        self.rewards: List[float] = []
        self.trades: List[int] = []
        self.epsilons: List[float] = []
        self.losses: List[float] = []
        self.durations: List[float] = []

    def add(self, stats: EpisodeStats) -> None:
        """Add episode statistics."""
        self.rewards.append(stats.total_reward)
        self.trades.append(stats.trades)
        self.epsilons.append(stats.epsilon)
        self.losses.append(stats.avg_loss)
        self.durations.append(stats.duration)

        if len(self.rewards) > self.history_length:
            for attr in ['rewards', 'trades', 'epsilons', 'losses', 'durations']:
                setattr(self, attr, getattr(self, attr)[-self.history_length:])

    def get_recent_average(self, metric: str, n: int = 100) -> Optional[float]:
        """Get average of last n values for a metric, or None if empty."""
        values = getattr(self, metric, [])
        if not values:
            return None
        return float(np.mean(values[-n:]))

    def get_best_reward(self) -> float:
        """Get the highest episode reward achieved."""
        return max(self.rewards) if self.rewards else 0.0


def seed_everything(seed: int) -> None:
    """Seed python, numpy and torch RNGs."""
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)


class Trainer:
    """
    Drives an Agent against its market.

    Example:
        >>> market = TradingGame(config)
        >>> agent = Agent(market, config)
        >>> trainer = Trainer(agent, config)
        >>> trainer.train(num_episodes=500)
    """

    def __init__(self, agent: Agent, config: Optional[Config] = None):
        self.agent = agent
        self.config = config or agent.config

        self.metrics = TrainingMetrics()
        self.reward_averager = MovingAverager(self.config.AVERAGE_WINDOW)
        self.trades_averager = MovingAverager(self.config.AVERAGE_WINDOW)
        self.best_avg_reward: Optional[float] = None
        self.last_stats: Optional[EpisodeStats] = None
        self.current_episode = 0
        self.frames_since_sync = 0
        self._episode_start = time.time()

    @property
    def market(self) -> BaseMarket:
        return self.agent.market

    def fill_replay_memory(self) -> int:
        """
        Play without training until the memory reaches MEMORY_MIN.

        Returns:
            Number of steps played
        """
        target = min(self.config.MEMORY_MIN, self.agent.memory.capacity)
        steps = 0
        while not self.agent.memory.is_ready(target):
            self.agent.play_step()
            steps += 1
        logger.info(f"Replay memory filled with {len(self.agent.memory)} transitions")
        return steps

    def train_step(self) -> float:
        """One training batch, one market step, and a target sync when due."""
        loss = self.agent.train_on_replay_batch(
            self.config.BATCH_SIZE, self.config.GAMMA, self.agent.optimizer
        )
        result = self.agent.play_step()

        self.frames_since_sync += 1
        if self.frames_since_sync >= self.config.SYNC_EVERY_FRAMES:
            self.agent.synchronize_target_network()
            self.frames_since_sync = 0

        if result.done:
            self._finish_episode(result.cumulative_reward, result.trades_made)
        return loss

    def _finish_episode(self, total_reward: float, trades: int) -> None:
        now = time.time()
        stats = EpisodeStats(
            episode=self.current_episode,
            total_reward=total_reward,
            trades=trades,
            frames=self.agent.frame_count,
            epsilon=self.agent.epsilon,
            avg_loss=self.agent.get_average_loss(100),
            duration=now - self._episode_start
        )
        self._episode_start = now
        self.last_stats = stats
        self.metrics.add(stats)
        self.reward_averager.append(total_reward)
        self.trades_averager.append(trades)

        avg_reward = self.reward_averager.average()

        if self.current_episode % self.config.LOG_EVERY == 0:
            log_training_metrics(
                episode=self.current_episode,
                reward=total_reward,
                epsilon=stats.epsilon,
                trades=trades,
                avg_reward=avg_reward,
                avg_trades=self.trades_averager.average(),
                loss=stats.avg_loss,
                frames=stats.frames
            )

        if self.best_avg_reward is None or avg_reward > self.best_avg_reward:
            self.best_avg_reward = avg_reward
            self.agent.save(
                os.path.join(self.config.MODEL_DIR, 'trader_best.pth'),
                save_reason='best',
                episode=self.current_episode,
                best_avg_reward=avg_reward
            )

        self.current_episode += 1

    def _should_stop(self, num_episodes: int) -> bool:
        if num_episodes and self.current_episode >= num_episodes:
            return True
        threshold = self.config.REWARD_THRESHOLD
        if threshold is not None and len(self.reward_averager) > 0:
            return self.reward_averager.average() >= threshold
        return False

    def train(
        self,
        num_episodes: Optional[int] = None,
        progress_callback: Optional[Callable[[EpisodeStats], None]] = None
    ) -> TrainingMetrics:
        """
        Run the training loop.

        Args:
            num_episodes: Number of episodes (default from config, 0 = unlimited)
            progress_callback: Called with the EpisodeStats of every finished episode

        Returns:
            Training metrics
        """
        if num_episodes is None:
            num_episodes = self.config.MAX_EPISODES
        if not num_episodes and self.config.REWARD_THRESHOLD is None:
            logger.warning("MAX_EPISODES is 0 and no REWARD_THRESHOLD set: training runs until interrupted")

        logger.info(
            f"Starting DQN training | episodes={num_episodes or 'unlimited'} | "
            f"device={self.agent.device} | batch={self.config.BATCH_SIZE} | "
            f"gamma={self.config.GAMMA} | sync_every={self.config.SYNC_EVERY_FRAMES}"
        )

        self.fill_replay_memory()
        self._episode_start = time.time()

        while not self._should_stop(num_episodes):
            episodes_before = self.current_episode
            self.train_step()
            if progress_callback and self.current_episode != episodes_before:
                progress_callback(self.last_stats)

        self.agent.save(
            os.path.join(self.config.MODEL_DIR, 'trader_final.pth'),
            save_reason='final',
            episode=self.current_episode,
            best_avg_reward=self.best_avg_reward or 0.0
        )

        logger.info(
            f"Training complete | episodes={self.current_episode} | "
            f"frames={self.agent.frame_count} | avg_reward={self.reward_averager.average():.3f} | "
            f"best_avg_reward={(self.best_avg_reward or 0.0):.3f}"
        )
        return self.metrics

    def evaluate(self, num_episodes: int = 10) -> Dict[str, float]:
        """
        Evaluate the trained agent without exploration.

        Plays greedy episodes directly on the market; nothing is stored in
        replay memory and the frame counter does not move. Any episode the
        agent had in progress is abandoned.

        Args:
            num_episodes: Number of evaluation episodes

        Returns:
            Evaluation statistics

        Raises:
            ValueError: If num_episodes is not positive
        """
        if num_episodes <= 0:
            raise ValueError(f"num_episodes must be positive, got {num_episodes}")

        net_worths = []
        rewards = []
        trades = []

        for _ in range(num_episodes):
            state = self.market.reset()
            total_reward = 0.0
            episode_trades = 0
            done = False

            while not done:
                action = self.agent.select_action(state, training=False)
                result = self.market.step(action)
                total_reward += result.reward
                episode_trades += int(result.trade_made)
                done = result.done
                if not done:
                    state = result.state

            net_worths.append(getattr(self.market, 'net_worth', float('nan')))
            rewards.append(total_reward)
            trades.append(episode_trades)

        # Leave the market ready for the agent's next play_step()
        self.agent.reset()

        results = {
            'mean_net_worth': float(np.mean(net_worths)),
            'max_net_worth': float(np.max(net_worths)),
            'min_net_worth': float(np.min(net_worths)),
            'mean_reward': float(np.mean(rewards)),
            'mean_trades': float(np.mean(trades)),
        }
        logger.info(" | ".join(f"{k}={v:.3f}" for k, v in results.items()))
        return results
