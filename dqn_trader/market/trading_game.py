"""
Single-Asset Trading Game
=========================

A minimal market simulation: the agent walks along a fixed price series
holding some cash and some units of one asset, and at each step may
HOLD, BUY or SELL.

Rules:
    - BUY spends min(BUY_AMOUNT, cash) at the current price
    - SELL sells SELL_FRACTION of the current holdings at the current price
    - Non-terminal steps pay STEP_REWARD (0 by default)
    - The episode ends two prices before the end of the series; the terminal
      reward is the net worth change over the episode, or
      TERMINAL_NO_CHANGE_REWARD if the change is exactly zero
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .base_market import BaseMarket, StepResult

import sys
sys.path.append('../..')
from config import Config


ACTION_HOLD = 0
ACTION_BUY = 1
ACTION_SELL = 2

ALL_ACTIONS = [ACTION_HOLD, ACTION_BUY, ACTION_SELL]
NUM_ACTIONS = len(ALL_ACTIONS)

ACTION_NAMES = ['HOLD', 'BUY', 'SELL']


@dataclass(frozen=True)
class MarketState:
    """Snapshot of the portfolio and the price window at one step."""
    holdings: float
    cash: float
    price: float
    next_price: float


def cosine_prices(length: int, base_price: float = 10.0) -> np.ndarray:
    """Price series base_price + cos(i) for i in [0, length)."""
    return np.array([base_price + math.cos(i) for i in range(length)], dtype=np.float64)


class TradingGame(BaseMarket):
    """
    Price-series trading environment.
    
    Example:
        >>> game = TradingGame(Config())
        >>> state = game.reset()
        >>> result = game.step(ACTION_BUY)
        >>> result.trade_made
        True
    """
    
    def __init__(self, config: Optional[Config] = None, prices: Optional[Sequence[float]] = None):
        """
        Args:
            config: Configuration object
            prices: Price series to trade on (default: cosine series from config)
        """
        self.config = config or Config()
        
        if prices is None:
            prices = cosine_prices(self.config.SERIES_LENGTH, self.config.BASE_PRICE)
        self.prices = np.asarray(prices, dtype=np.float64)
        if self.prices.ndim != 1 or len(self.prices) < 3:
            raise ValueError(f"Price series must be 1-D with at least 3 prices, got shape {self.prices.shape}")
        
        self.starting_cash = float(self.config.STARTING_CASH)
        self.current_index = 0
        self.holdings = 0.0
        self.cash = self.starting_cash
        self.reset()
    
    @property
    def state_size(self) -> int:
        return 4
    
    @property
    def action_size(self) -> int:
        return NUM_ACTIONS
    
    @property
    def net_worth(self) -> float:
        """Cash plus holdings valued at the last traded price."""
        price_index = max(0, min(self.current_index, len(self.prices) - 1))
        return self.cash + self.holdings * float(self.prices[price_index])
    
    def reset(self) -> MarketState:
        self.current_index = 0
        self.holdings = 0.0
        self.cash = self.starting_cash
        return self.get_state()
    
    def step(self, action: int) -> StepResult:
        if action not in ALL_ACTIONS:
            raise ValueError(f"Invalid action {action}, expected one of {ALL_ACTIONS}")
        
        if self.current_index >= len(self.prices) - 2:
            # Value holdings at the last price actually traded on
            last_price = float(self.prices[self.current_index - 1])
            change = self.cash + last_price * self.holdings - self.starting_cash
            reward = self.config.TERMINAL_NO_CHANGE_REWARD if change == 0 else change
            return StepResult(state=None, reward=float(reward), done=True, trade_made=False)
        
        price = float(self.prices[self.current_index])
        
        if action == ACTION_BUY:
            if self.cash > 0:
                spend = min(self.config.BUY_AMOUNT, self.cash)
                self.holdings += spend / price
                self.cash -= spend
        elif action == ACTION_SELL:
            if self.holdings > 0:
                units = self.holdings * self.config.SELL_FRACTION
                self.holdings -= units
                self.cash += units * price
        
        self.current_index += 1
        
        return StepResult(
            state=self.get_state(),
            reward=float(self.config.STEP_REWARD),
            done=False,
            trade_made=action != ACTION_HOLD
        )
    
    def get_state(self) -> MarketState:
        return MarketState(
            holdings=self.holdings,
            cash=self.cash,
            price=float(self.prices[self.current_index]),
            next_price=float(self.prices[self.current_index + 1])
        )
