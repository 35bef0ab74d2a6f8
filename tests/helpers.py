"""Stub collaborators shared by the tests."""

from typing import List

import torch
import torch.nn as nn

from dqn_trader.market.base_market import BaseMarket, StepResult
from dqn_trader.market.trading_game import MarketState


class ScriptedMarket(BaseMarket):
    """
    Market with fixed-length episodes and a constant reward per step.

    The state encodes the step index in `price` so transitions are easy
    to tell apart.
    """

    def __init__(self, episode_length: int = 3, reward: float = 1.0, state_size: int = 4):
        self.episode_length = episode_length
        self.reward = reward
        self._state_size = state_size
        self.index = 0
        self.resets = 0
        self.actions: List[int] = []

    @property
    def state_size(self) -> int:
        return self._state_size

    @property
    def action_size(self) -> int:
        return 3

    def reset(self) -> MarketState:
        self.index = 0
        self.resets += 1
        return self.get_state()

    def step(self, action: int) -> StepResult:
        self.actions.append(action)
        self.index += 1
        if self.index >= self.episode_length:
            return StepResult(state=None, reward=self.reward, done=True, trade_made=action != 0)
        return StepResult(state=self.get_state(), reward=self.reward, done=False, trade_made=action != 0)

    def get_state(self) -> MarketState:
        return MarketState(holdings=0.0, cash=1.0, price=float(self.index), next_price=float(self.index + 1))


class FailingMarket(ScriptedMarket):
    """Market whose step() always raises."""

    def step(self, action: int) -> StepResult:
        raise RuntimeError("simulation broke")


class ConstantNetwork(nn.Module):
    """Network that outputs the same value vector for every input."""

    def __init__(self, values: List[float]):
        super().__init__()
        # Plain attribute, not a buffer: syncing must not copy it
        self.values = torch.tensor(values, dtype=torch.float32)
        self.bias = nn.Parameter(torch.zeros(1))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.values.expand(x.shape[0], -1) + self.bias

    def predict(self, x: torch.Tensor) -> torch.Tensor:
        with torch.no_grad():
            return self(x)

    def apply_forward(self, x: torch.Tensor, track_gradients: bool = True) -> torch.Tensor:
        if track_gradients:
            return self(x)
        return self.predict(x)

    def get_parameters(self):
        return {k: v.detach().clone() for k, v in self.state_dict().items()}

    def set_parameters(self, params) -> None:
        self.load_state_dict(params)


def constant_factory(values: List[float]):
    """Network factory building a ConstantNetwork for both online and target slots."""
    def factory(state_size, action_size, config):
        return ConstantNetwork(values)
    return factory
