"""
DQN Agent
=========

The agent that learns to trade using Deep Q-Learning.

Key Components:
    1. Online Network  - Used for action selection, trained every step
    2. Target Network  - Used for stable bootstrapped targets
    3. Replay Memory   - Stores transitions for training
    4. Epsilon-Greedy  - Balances exploration vs exploitation

Training Algorithm (DQN):
    1. Observe state s
    2. Choose action a (epsilon-greedy, linear epsilon schedule over frames)
    3. Execute action, observe reward r, done flag and next state s'
    4. Store (s, a, r, done, s') in replay memory
    5. Sample mini-batch from replay memory
    6. Calculate target: y = r + γ * (1 - done) * max_a' Q_target(s', a')
    7. Update online network: minimize (Q(s,a) - y)²
    8. Periodically sync target network with online network (driven by the trainer)

References:
    Mnih et al., 2015 - "Human-level control through deep reinforcement learning"
"""

import os
import random
import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, NamedTuple, Optional

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F
import torch.optim as optim

from .network import DQN, QNetwork
from .replay_memory import ReplayMemory, Transition
from ..market.base_market import BaseMarket
from ..market.encoder import StateEncoder
from ..utils.logger import get_logger, log_model_event

import sys
sys.path.append('../..')
from config import Config


logger = get_logger(__name__)

NetworkFactory = Callable[[int, int, Config], QNetwork]


def _same_shapes(saved: Dict[str, Any], current: Dict[str, torch.Tensor]) -> bool:
    """True if both snapshots hold the same tensor names with the same shapes."""
    if not isinstance(saved, dict) or saved.keys() != current.keys():
        return False
    return all(
        isinstance(saved[name], torch.Tensor) and saved[name].shape == tensor.shape
        for name, tensor in current.items()
    )


class PlayStepResult(NamedTuple):
    """What the caller sees after one play_step()."""
    action: int
    cumulative_reward: float
    done: bool
    trades_made: int


@dataclass
class SaveMetadata:
    """Metadata stored with each model checkpoint."""
    timestamp: str
    save_reason: str  # 'best', 'final', 'manual', 'interrupted'
    episode: int
    frame_count: int
    epsilon: float
    best_avg_reward: float
    avg_loss: float
    memory_size: int

    # Config snapshot
    learning_rate: float
    gamma: float
    batch_size: int
    hidden_layers: List[int]
    epsilon_init: float
    epsilon_final: float
    epsilon_decay_frames: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SaveMetadata':
        return cls(**data)


class Agent:
    """
    DQN trading agent.

    The agent owns two networks:
        - online_net: Trained every step and used to pick greedy actions
        - target_net: Synchronized on demand, used only for TD targets

    Action Selection:
        - With probability epsilon: random action (exploration)
        - With probability (1-epsilon): highest-valued action (exploitation)

    Epsilon follows a linear schedule driven by frame_count, which counts
    every play_step() over the agent's lifetime and is never reset.

    Example:
        >>> market = TradingGame(config)
        >>> agent = Agent(market, config)
        >>> result = agent.play_step()
        >>> loss = agent.train_on_replay_batch(64, 0.99)
        >>> agent.synchronize_target_network()
    """

    def __init__(
        self,
        market: BaseMarket,
        config: Optional[Config] = None,
        network_factory: Optional[NetworkFactory] = None
    ):
        """
        Initialize the DQN agent.

        Args:
            market: Environment to trade against (owned by the caller)
            config: Configuration object
            network_factory: Builds a network from (state_size, action_size, config).
                             Defaults to DQN.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self.config = config or Config()
        self.config.validate()

        self.market = market
        self.state_size = market.state_size
        self.action_size = market.action_size
        self.device = self.config.DEVICE
        self.encoder = StateEncoder(self.device)

        factory = network_factory or DQN
        self.online_net: QNetwork = self._place(factory(self.state_size, self.action_size, self.config))
        self.target_net: QNetwork = self._place(factory(self.state_size, self.action_size, self.config))
        self.target_net.set_parameters(self.online_net.get_parameters())

        self.optimizer = self._build_optimizer()

        self.memory = ReplayMemory(self.config.REPLAY_BUFFER_SIZE)

        # Exploration
        self.epsilon_init = self.config.EPSILON_INIT
        self.epsilon_final = self.config.EPSILON_FINAL
        self.epsilon_decay_frames = self.config.EPSILON_DECAY_FRAMES
        self.frame_count = 0
        self.epsilon = self.epsilon_for_frame(0)

        # Training metrics (bounded to prevent memory growth during long training)
        self.losses: deque = deque(maxlen=10000)
        self._losses_lock = threading.Lock()

        # Serializes training steps and target syncs
        self._network_lock = threading.Lock()

        self.cumulative_reward = 0.0
        self.trades_made = 0
        self.reset()

    def _place(self, network: QNetwork) -> QNetwork:
        if isinstance(network, nn.Module):
            network.to(self.device)
        return network

    def _build_optimizer(self) -> optim.Optimizer:
        params = self.online_net.parameters()
        if self.config.OPTIMIZER == 'sgd':
            return optim.SGD(params, lr=self.config.LEARNING_RATE)
        return optim.Adam(params, lr=self.config.LEARNING_RATE)

    def reset(self) -> None:
        """Start a new episode: clear the episode accumulators and reset the market."""
        self.cumulative_reward = 0.0
        self.trades_made = 0
        self.market.reset()

    def epsilon_for_frame(self, frame: int) -> float:
        """Linear schedule, pinned to epsilon_final from the decay horizon on."""
        if frame >= self.epsilon_decay_frames:
            return self.epsilon_final
        return self.epsilon_init + (self.epsilon_final - self.epsilon_init) * frame / self.epsilon_decay_frames

    def greedy_action(self, state: Any) -> int:
        """Index of the highest predicted value (first one on ties)."""
        values = self.online_net.predict(self.encoder.encode(state))
        return int(torch.argmax(values[0]).item())

    def select_action(self, state: Any, training: bool = True) -> int:
        """
        Select an action using the epsilon-greedy policy.

        Args:
            state: Current market state
            training: If True, explore with the current epsilon; if False, act greedily

        Returns:
            Selected action index
        """
        if training and random.random() < self.epsilon:
            return random.randrange(self.action_size)
        return self.greedy_action(state)

    def play_step(self) -> PlayStepResult:
        """
        Play one step of the market.

        Returns:
            PlayStepResult. When done is True, cumulative_reward is the total
            of the episode that just ended; the next call starts a new one.
        """
        self.epsilon = self.epsilon_for_frame(self.frame_count)
        self.frame_count += 1

        state = self.market.get_state()
        action = self.select_action(state, training=True)

        next_state, reward, done, trade_made = self.market.step(action)

        self.memory.append(Transition(state, action, reward, done, next_state))

        self.cumulative_reward += reward
        if trade_made:
            self.trades_made += 1

        result = PlayStepResult(
            action=action,
            cumulative_reward=self.cumulative_reward,
            done=done,
            trades_made=self.trades_made
        )
        if done:
            self.reset()
        return result

    def compute_td_targets(
        self,
        rewards: torch.Tensor,
        dones: torch.Tensor,
        next_states: torch.Tensor,
        gamma: float
    ) -> torch.Tensor:
        """
        Bootstrapped targets r + γ * (1 - done) * max_a' Q_target(s', a').

        Evaluated without gradient tracking; terminal rows reduce to r.
        """
        with torch.no_grad():
            next_q = self.target_net.predict(next_states).max(dim=1).values
            # Terminal rows are exactly the reward, even for a non-finite next_q
            return torch.where(dones.bool(), rewards, rewards + gamma * next_q)

    def train_on_replay_batch(
        self,
        batch_size: int,
        gamma: float,
        optimizer: Optional[optim.Optimizer] = None
    ) -> float:
        """
        Perform training on a randomly sampled batch from replay memory.

        Args:
            batch_size: Number of transitions to sample
            gamma: Reward discount rate, must be in [0, 1] (not checked here)
            optimizer: Optimizer over the online network's parameters
                       (defaults to the agent's own)

        Returns:
            Loss value

        Raises:
            EmptyBufferError: If replay memory is empty
        """
        if optimizer is None:
            optimizer = self.optimizer

        with self._network_lock:
            batch = self.memory.sample(batch_size)

            states = self.encoder.encode([t.state for t in batch])
            next_states = self.encoder.encode([t.next_state for t in batch])
            actions = torch.tensor([t.action for t in batch], dtype=torch.int64, device=self.device)
            rewards = torch.tensor([t.reward for t in batch], dtype=torch.float32, device=self.device)
            dones = torch.tensor([float(t.done) for t in batch], dtype=torch.float32, device=self.device)

            # Value of the action actually taken, not the max
            current_q = self.online_net.apply_forward(states, track_gradients=True)
            current_q = current_q.gather(1, actions.unsqueeze(1)).squeeze(1)

            target_q = self.compute_td_targets(rewards, dones, next_states, gamma)

            loss = F.mse_loss(current_q, target_q)

            optimizer.zero_grad()
            loss.backward()

            if self.config.GRAD_CLIP > 0:
                torch.nn.utils.clip_grad_norm_(self.online_net.parameters(), self.config.GRAD_CLIP)

            optimizer.step()

        loss_value = loss.item()
        with self._losses_lock:
            self.losses.append(loss_value)

        return loss_value

    def synchronize_target_network(self) -> None:
        """Hard update: copy every online network parameter into the target network."""
        with self._network_lock:
            self.target_net.set_parameters(self.online_net.get_parameters())
        logger.debug(f"Target network synchronized at frame {self.frame_count}")

    def get_q_values(self, state: Any) -> np.ndarray:
        """Predicted values for all actions (useful for inspection)."""
        return self.online_net.predict(self.encoder.encode(state)).cpu().numpy()[0]

    def get_average_loss(self, n: int = 100) -> float:
        """Get average of last n losses (thread-safe)."""
        with self._losses_lock:
            if not self.losses:
                return 0.0
            count = min(n, len(self.losses))
            total = 0.0
            it = iter(reversed(self.losses))
            for _ in range(count):
                total += next(it)
        return total / count

    def save(
        self,
        filepath: str,
        save_reason: str = "manual",
        episode: int = 0,
        best_avg_reward: float = 0.0
    ) -> Optional[SaveMetadata]:
        """
        Save agent state to file.

        Args:
            filepath: Path to save file
            save_reason: Why this save is happening ('best', 'final', 'manual', 'interrupted')
            episode: Current episode number
            best_avg_reward: Best moving-average reward so far

        Returns:
            SaveMetadata if the save succeeded, None on failure
        """
        dir_path = os.path.dirname(filepath)
        if dir_path:
            os.makedirs(dir_path, exist_ok=True)

        metadata = SaveMetadata(
            timestamp=datetime.now().isoformat(),
            save_reason=save_reason,
            episode=episode,
            frame_count=self.frame_count,
            epsilon=self.epsilon,
            best_avg_reward=best_avg_reward,
            avg_loss=self.get_average_loss(100),
            memory_size=len(self.memory),
            learning_rate=self.config.LEARNING_RATE,
            gamma=self.config.GAMMA,
            batch_size=self.config.BATCH_SIZE,
            hidden_layers=list(self.config.HIDDEN_LAYERS),
            epsilon_init=self.epsilon_init,
            epsilon_final=self.epsilon_final,
            epsilon_decay_frames=self.epsilon_decay_frames
        )

        checkpoint = {
            'online_net_state_dict': self.online_net.get_parameters(),
            'target_net_state_dict': self.target_net.get_parameters(),
            'optimizer_state_dict': self.optimizer.state_dict(),
            'frame_count': self.frame_count,
            'state_size': self.state_size,
            'action_size': self.action_size,
            'metadata': metadata.to_dict(),
        }

        try:
            torch.save(checkpoint, filepath)
        except Exception as e:
            logger.error(f"Save failed for {filepath}: {e}")
            return None

        log_model_event('save', filepath, reason=save_reason, episode=episode,
                        frames=self.frame_count, best_avg_reward=f"{best_avg_reward:.3f}")
        return metadata

    def load(self, filepath: str) -> Optional[SaveMetadata]:
        """
        Load agent state from file.

        Args:
            filepath: Path to checkpoint file

        Returns:
            SaveMetadata, or None if the file is missing, unreadable or incompatible
        """
        if not os.path.exists(filepath):
            logger.error(f"Model file not found: {filepath}")
            return None

        try:
            checkpoint = torch.load(filepath, map_location=self.device, weights_only=False)
        except Exception as e:
            logger.error(f"Failed to load model {filepath}: {e}")
            return None

        saved_state_size = checkpoint.get('state_size', self.state_size)
        saved_action_size = checkpoint.get('action_size', self.action_size)
        if saved_state_size != self.state_size or saved_action_size != self.action_size:
            logger.warning(
                f"Model incompatible: saved sizes ({saved_state_size}, {saved_action_size}) "
                f"!= current ({self.state_size}, {self.action_size})"
            )
            return None

        online_params = checkpoint.get('online_net_state_dict', {})
        target_params = checkpoint.get('target_net_state_dict', {})
        if not (_same_shapes(online_params, self.online_net.get_parameters())
                and _same_shapes(target_params, self.target_net.get_parameters())):
            logger.warning(f"Model incompatible: network layout in {filepath} differs from the current one")
            return None

        # Restored on failure so the agent is never left half-loaded
        previous_online = self.online_net.get_parameters()
        previous_target = self.target_net.get_parameters()
        previous_optimizer = self.optimizer.state_dict()
        try:
            self.online_net.set_parameters(online_params)
            self.target_net.set_parameters(target_params)
            self.optimizer.load_state_dict(checkpoint['optimizer_state_dict'])
        except (RuntimeError, ValueError, KeyError) as e:
            self.online_net.set_parameters(previous_online)
            self.target_net.set_parameters(previous_target)
            self.optimizer.load_state_dict(previous_optimizer)
            logger.error(f"Failed to restore model {filepath}: {e}")
            return None

        self.frame_count = checkpoint.get('frame_count', 0)
        self.epsilon = self.epsilon_for_frame(self.frame_count)

        metadata = None
        if 'metadata' in checkpoint:
            metadata = SaveMetadata.from_dict(checkpoint['metadata'])

        log_model_event('load', filepath, frames=self.frame_count)
        return metadata
