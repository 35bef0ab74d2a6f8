"""
Base Market Interface
=====================

Abstract base class that defines the interface all markets must implement.
This allows the agent to trade against any price simulation that follows
this interface.

To add a new market:
1. Create a new file in dqn_trader/market/
2. Inherit from BaseMarket
3. Implement all abstract methods
4. Register in __init__.py
"""

from abc import ABC, abstractmethod
from typing import Any, NamedTuple, Optional


class StepResult(NamedTuple):
    """
    Outcome of a single market step.

    state is None when the step ended the episode, since no next state exists.
    trade_made is True when the action was anything other than HOLD.
    """
    state: Optional[Any]
    reward: float
    done: bool
    trade_made: bool


class BaseMarket(ABC):
    """
    Abstract base class for markets.
    
    Properties:
        state_size: int - Width of the encoded state vector
        action_size: int - Number of possible actions
        
    Methods:
        reset() -> state
            Start a new episode, return the initial state
            
        step(action: int) -> StepResult
            Execute action, return (state, reward, done, trade_made)
            
        get_state() -> state
            Get the current state
    """
    
    @property
    @abstractmethod
    def state_size(self) -> int:
        """Return the width of the encoded state vector."""
        pass
    
    @property
    @abstractmethod
    def action_size(self) -> int:
        """Return the number of possible actions."""
        pass
    
    @abstractmethod
    def reset(self) -> Any:
        """
        Reset the market to the start of an episode.
        
        Returns:
            Initial state
        """
        pass
    
    @abstractmethod
    def step(self, action: int) -> StepResult:
        """
        Execute one market step with the given action.
        
        Args:
            action: Integer representing the action to take
            
        Returns:
            StepResult(state, reward, done, trade_made)
        """
        pass
    
    @abstractmethod
    def get_state(self) -> Any:
        """Get the current (immutable) state."""
        pass
    
    def seed(self, seed: int) -> None:
        """Set random seed for reproducibility. Override if market has randomness."""
        pass
