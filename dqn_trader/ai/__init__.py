"""
AI Module
=========

Deep Reinforcement Learning components for trading.

Classes:
    DQN           - Feed-forward Q-network
    Agent         - DQN agent with linear epsilon-greedy exploration
    ReplayMemory  - Experience replay memory
    Trainer       - Training loop orchestration
"""

from .network import DQN, QNetwork
from .agent import Agent, PlayStepResult
from .replay_memory import ReplayMemory, Transition
from .trainer import Trainer

__all__ = ['DQN', 'QNetwork', 'Agent', 'PlayStepResult', 'ReplayMemory', 'Transition', 'Trainer']
