"""
State Encoder
=============

Turns MarketState records into the float tensor the Q-network consumes.

Feature layout (float32, width 4):
    [0] holdings
    [1] cash
    [2] price
    [3] next_price

A missing state (the next state of a terminal transition) encodes to a row
of zeros. Its value is masked out of the TD target anyway.
"""

from typing import Optional, Sequence, Union

import numpy as np
import torch

from .trading_game import MarketState


StateBatch = Union[Optional[MarketState], Sequence[Optional[MarketState]]]


class StateEncoder:
    """Encodes one state or a batch of states into a [n, 4] tensor."""
    
    feature_width = 4
    
    def __init__(self, device: Optional[torch.device] = None):
        self.device = device or torch.device('cpu')
    
    def encode(self, states: StateBatch) -> torch.Tensor:
        """
        Args:
            states: A single state or a sequence of states (None allowed)
            
        Returns:
            Tensor of shape (num_states, 4) and dtype float32
        """
        if states is None or isinstance(states, MarketState):
            states = [states]
        
        buffer = np.zeros((len(states), self.feature_width), dtype=np.float32)
        for row, state in enumerate(states):
            if state is None:
                continue
            buffer[row] = (state.holdings, state.cash, state.price, state.next_price)
        
        return torch.from_numpy(buffer).to(self.device)
