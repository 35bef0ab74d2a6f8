"""
Deep Q-Network (DQN) Architecture
=================================

The neural network that approximates Q-values for state-action pairs.

Theory:
    Q-Learning aims to learn Q(s, a) = expected future reward
    We use a neural network to approximate this function

    Input:  Encoded market state (holdings, cash, price, next price)
    Output: Value for each action (HOLD, BUY, SELL)

The network learns by minimizing TD (Temporal Difference) error:
    Loss = (Q(s,a) - (r + γ * (1 - done) * max_a' Q_target(s', a')))²

The agent only talks to networks through the QNetwork protocol, so any
approximator with the same four methods can be swapped in.
"""

from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, cast

import torch
import torch.nn as nn
import torch.nn.functional as F

from ..errors import ConfigurationError

import sys
sys.path.append('../..')
from config import Config


ParameterSnapshot = Dict[str, torch.Tensor]


class QNetwork(Protocol):
    """Capabilities the agent needs from a function approximator."""

    def predict(self, x: torch.Tensor) -> torch.Tensor:
        """Inference only: no gradient tracking, no dropout."""
        ...

    def apply_forward(self, x: torch.Tensor, track_gradients: bool = True) -> torch.Tensor:
        """Forward pass, optionally recording the graph for backprop."""
        ...

    def get_parameters(self) -> ParameterSnapshot:
        """Detached copy of all parameters."""
        ...

    def set_parameters(self, params: ParameterSnapshot) -> None:
        """Overwrite all parameters."""
        ...

    def parameters(self) -> Iterator[nn.Parameter]:
        ...


class DQN(nn.Module):
    """
    Feed-forward Deep Q-Network.

    Architecture:
        Input Layer → Hidden Layers → Dropout → Output Layer

    Attributes:
        layers (nn.ModuleList): All linear layers, output layer last

    Example:
        >>> config = Config()
        >>> net = DQN(state_size=4, action_size=3, config=config)
        >>> state = torch.randn(1, 4)
        >>> q_values = net.predict(state)  # Shape: (1, 3)
    """

    def __init__(
        self,
        state_size: int,
        action_size: int,
        config: Optional[Config] = None,
        hidden_layers: Optional[List[int]] = None
    ):
        """
        Initialize the DQN.

        Args:
            state_size: Dimension of state input
            action_size: Number of possible actions (output dimension)
            config: Configuration object
            hidden_layers: Override config's hidden layer sizes
        """
        super(DQN, self).__init__()

        if not isinstance(action_size, int) or action_size < 2:
            raise ConfigurationError(
                f"Expected action_size to be an integer greater than 1, but got {action_size}"
            )

        self.config = config or Config()
        self.state_size = state_size
        self.action_size = action_size

        self.hidden_sizes = list(hidden_layers or self.config.HIDDEN_LAYERS)

        # Cache activation function (avoids dict lookup every forward pass)
        self._activation_fn = self._get_activation_fn()
        self._softmax_output = self.config.OUTPUT_ACTIVATION == 'softmax'

        self.layers = nn.ModuleList()
        self._build_network()
        self.dropout = nn.Dropout(p=self.config.DROPOUT)

        self._init_weights()

    def _build_network(self) -> None:
        """Construct the neural network layers."""
        layer_sizes = [self.state_size] + self.hidden_sizes + [self.action_size]

        for i in range(len(layer_sizes) - 1):
            self.layers.append(nn.Linear(layer_sizes[i], layer_sizes[i + 1]))

    def _init_weights(self) -> None:
        """
        Initialize weights using Xavier/Glorot initialization.
        This helps with training stability.
        """
        for layer in self.layers:
            if isinstance(layer, nn.Linear):
                nn.init.xavier_uniform_(layer.weight)
                nn.init.constant_(layer.bias, 0.0)

    def _get_activation_fn(self) -> Callable[..., Any]:
        """Get the activation function based on config."""
        activation_map: Dict[str, Callable[..., Any]] = {
            'relu': F.relu,
            'leaky_relu': F.leaky_relu,
            'tanh': torch.tanh,
            'elu': F.elu,
        }
        result = activation_map.get(self.config.ACTIVATION, F.relu)
        return cast(Callable[..., Any], result)

    def forward(self, state: torch.Tensor) -> torch.Tensor:
        """
        Forward pass through the network.

        Args:
            state: Input state tensor of shape (batch_size, state_size)

        Returns:
            Values tensor of shape (batch_size, action_size)
        """
        x = state

        for layer in self.layers[:-1]:
            x = self._activation_fn(layer(x))

        x = self.dropout(x)
        x = self.layers[-1](x)

        if self._softmax_output:
            x = F.softmax(x, dim=-1)

        return x

    def predict(self, x: torch.Tensor) -> torch.Tensor:
        """Inference pass in eval mode with gradient tracking disabled."""
        was_training = self.training
        self.eval()
        try:
            with torch.no_grad():
                return self(x)
        finally:
            if was_training:
                self.train()

    def apply_forward(self, x: torch.Tensor, track_gradients: bool = True) -> torch.Tensor:
        """
        Forward pass in training mode (dropout active).

        With track_gradients=False the result is detached from the graph.
        """
        self.train()
        if track_gradients:
            return self(x)
        with torch.no_grad():
            return self(x)

    def get_parameters(self) -> ParameterSnapshot:
        return {name: tensor.detach().clone() for name, tensor in self.state_dict().items()}

    def set_parameters(self, params: ParameterSnapshot) -> None:
        self.load_state_dict(params)

    def count_parameters(self) -> int:
        """Total number of trainable parameters."""
        return sum(p.numel() for p in self.parameters() if p.requires_grad)
