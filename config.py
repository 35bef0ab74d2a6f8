"""
Configuration file for the DQN Trader
=====================================

All hyperparameters, market settings, and training options are centralized here.
Modify these values to experiment with different training configurations.

Usage:
    from config import Config
    cfg = Config()
    print(cfg.LEARNING_RATE)
"""

from dataclasses import dataclass, field
from typing import List, Optional
import torch

from dqn_trader.errors import ConfigurationError


@dataclass
class Config:
    """
    Central configuration for the entire project.
    
    Sections:
    1. Market Settings - Price series and trading rules
    2. Neural Network - Architecture configuration
    3. Training - Learning hyperparameters
    4. Exploration - Epsilon-greedy settings
    5. Training Control - Episode limits, logging, checkpoints
    6. System - Hardware and paths
    """
    
    # =========================================================================
    # MARKET SELECTION
    # =========================================================================
    
    # Options: 'cosine'
    MARKET_NAME: str = 'cosine'
    
    # =========================================================================
    # MARKET SETTINGS
    # =========================================================================
    
    # Length of the generated price series (price_i = BASE_PRICE + cos(i))
    SERIES_LENGTH: int = 40
    BASE_PRICE: float = 10.0
    
    # Capital at the start of every episode
    STARTING_CASH: float = 50.0
    
    # Cash spent per BUY (capped by available cash)
    BUY_AMOUNT: float = 10.0
    
    # Fraction of holdings sold per SELL
    SELL_FRACTION: float = 0.2
    
    # Reward for every non-terminal step
    STEP_REWARD: float = 0.0
    
    # Terminal reward when the episode ends with exactly zero net worth change.
    # A small penalty discourages the do-nothing strategy.
    TERMINAL_NO_CHANGE_REWARD: float = -1.0
    
    # =========================================================================
    # NEURAL NETWORK ARCHITECTURE
    # =========================================================================
    
    # Input and output sizes come from the market (4 features, 3 actions)
    
    # Hidden layer architecture
    HIDDEN_LAYERS: List[int] = field(default_factory=lambda: [50, 50])
    
    # Activation function: 'relu', 'leaky_relu', 'tanh', 'elu'
    ACTIVATION: str = 'elu'
    
    # Dropout before the output layer (0 disables)
    DROPOUT: float = 0.2
    
    # Output activation: 'none' for raw Q-values, 'softmax' for action probabilities
    OUTPUT_ACTIVATION: str = 'none'
    
    # =========================================================================
    # TRAINING HYPERPARAMETERS
    # =========================================================================
    
    # Learning rate - How big of steps to take during optimization
    LEARNING_RATE: float = 0.001
    
    # Optimizer for the online network: 'adam' or 'sgd'
    OPTIMIZER: str = 'adam'
    
    # Discount factor (gamma) - How much to value future rewards
    # The terminal net worth change is the main signal, so keep it far-sighted
    GAMMA: float = 0.99
    
    # Batch size - Number of transitions sampled per training step
    BATCH_SIZE: int = 64
    
    # Replay memory capacity
    REPLAY_BUFFER_SIZE: int = 10_000
    
    # Minimum transitions before training starts (cold start fill)
    MEMORY_MIN: int = 1_000
    
    # Copy online weights into the target network every N frames
    SYNC_EVERY_FRAMES: int = 1_000
    
    # Gradient norm clipping (0 disables)
    GRAD_CLIP: float = 0.0
    
    # =========================================================================
    # EXPLORATION SETTINGS (Epsilon-Greedy)
    # =========================================================================
    
    # Starting exploration rate (1.0 = 100% random)
    EPSILON_INIT: float = 0.5
    
    # Floor exploration rate reached after EPSILON_DECAY_FRAMES
    EPSILON_FINAL: float = 0.01
    
    # Frames over which epsilon decays linearly from EPSILON_INIT to EPSILON_FINAL
    EPSILON_DECAY_FRAMES: int = 100_000
    
    # =========================================================================
    # TRAINING CONTROL
    # =========================================================================
    
    # Total episodes to train (0 = unlimited, train until threshold or stopped)
    MAX_EPISODES: int = 0
    
    # Stop once the moving-average reward reaches this value (None = never)
    REWARD_THRESHOLD: Optional[float] = None
    
    # Window of episodes for the moving averages
    AVERAGE_WINDOW: int = 100
    
    # Log stats every N episodes
    LOG_EVERY: int = 10
    
    # =========================================================================
    # SYSTEM SETTINGS
    # =========================================================================
    
    # Force CPU device (small networks run fastest there)
    FORCE_CPU: bool = False
    
    @property
    def DEVICE(self) -> torch.device:
        """Auto-detect CUDA/MPS/CPU, or force CPU if configured."""
        if self.FORCE_CPU:
            return torch.device('cpu')
        if torch.cuda.is_available():
            return torch.device('cuda')
        elif hasattr(torch.backends, 'mps') and torch.backends.mps.is_available():
            return torch.device('mps')
        return torch.device('cpu')
    
    # Paths
    MODEL_DIR: str = 'models'
    LOG_DIR: str = 'logs'
    
    # Random seed for reproducibility (None for random)
    SEED: Optional[int] = None
    
    def __post_init__(self):
        self.validate()
    
    def validate(self) -> None:
        """
        Check hyperparameters and raise ConfigurationError on the first bad one.
        
        Called on construction and again by the Agent, since callers usually
        tweak attributes on an existing instance.
        """
        if not isinstance(self.REPLAY_BUFFER_SIZE, int) or self.REPLAY_BUFFER_SIZE <= 0:
            raise ConfigurationError(
                f"REPLAY_BUFFER_SIZE must be a positive integer, got {self.REPLAY_BUFFER_SIZE}"
            )
        if not 0.0 <= self.EPSILON_INIT <= 1.0:
            raise ConfigurationError(f"EPSILON_INIT must be in [0, 1], got {self.EPSILON_INIT}")
        if not 0.0 <= self.EPSILON_FINAL <= 1.0:
            raise ConfigurationError(f"EPSILON_FINAL must be in [0, 1], got {self.EPSILON_FINAL}")
        if not isinstance(self.EPSILON_DECAY_FRAMES, int) or self.EPSILON_DECAY_FRAMES <= 0:
            raise ConfigurationError(
                f"EPSILON_DECAY_FRAMES must be a positive integer, got {self.EPSILON_DECAY_FRAMES}"
            )
        if self.LEARNING_RATE <= 0:
            raise ConfigurationError(f"LEARNING_RATE must be positive, got {self.LEARNING_RATE}")
        if not 0.0 <= self.GAMMA <= 1.0:
            raise ConfigurationError(f"GAMMA must be in [0, 1], got {self.GAMMA}")
        if self.BATCH_SIZE <= 0:
            raise ConfigurationError(f"BATCH_SIZE must be positive, got {self.BATCH_SIZE}")
        if self.MEMORY_MIN <= 0:
            raise ConfigurationError(f"MEMORY_MIN must be positive, got {self.MEMORY_MIN}")
        if self.SYNC_EVERY_FRAMES <= 0:
            raise ConfigurationError(
                f"SYNC_EVERY_FRAMES must be positive, got {self.SYNC_EVERY_FRAMES}"
            )
        if self.OPTIMIZER not in ('adam', 'sgd'):
            raise ConfigurationError(f"Unknown OPTIMIZER '{self.OPTIMIZER}'")
        if self.ACTIVATION not in ('relu', 'leaky_relu', 'tanh', 'elu'):
            raise ConfigurationError(f"Unknown ACTIVATION '{self.ACTIVATION}'")
        if self.OUTPUT_ACTIVATION not in ('none', 'softmax'):
            raise ConfigurationError(f"Unknown OUTPUT_ACTIVATION '{self.OUTPUT_ACTIVATION}'")
        if not 0.0 <= self.DROPOUT < 1.0:
            raise ConfigurationError(f"DROPOUT must be in [0, 1), got {self.DROPOUT}")
        for name in ('AVERAGE_WINDOW', 'LOG_EVERY'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


# Global config instance for easy importing
config = Config()
