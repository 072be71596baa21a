"""
DQN Network Model.

MLP network that maps the (N, 20) normalized game state to (N, A) Q-values,
one per drop position.
"""

from typing import List

import torch
import torch.nn as nn
from torch import Tensor


class QNetwork(nn.Module):
    """Q-value network with MLP architecture.

    Architecture:
    - Input: (N, state_size) normalized state vector
    - Hidden layers: configurable sizes with ReLU activation, He-normal init
    - Output: (N, action_size) Q-values for each action
    """

    def __init__(
        self,
        state_size: int = 20,
        action_size: int = 20,
        hidden_layers: List[int] = [128, 128, 64, 32],
        activation: str = "relu"
    ):
        """Initialize Q-network.

        Args:
            state_size: Length of the state vector
            action_size: Number of discrete actions
            hidden_layers: List of hidden layer sizes
            activation: Activation function ('relu' or 'tanh')
        """
        super().__init__()

        self.state_size = state_size
        self.action_size = action_size
        self.hidden_layers = list(hidden_layers)

        layers = []
        in_features = state_size

        for hidden_size in hidden_layers:
            layers.append(nn.Linear(in_features, hidden_size))
            if activation == "relu":
                layers.append(nn.ReLU())
            elif activation == "tanh":
                layers.append(nn.Tanh())
            else:
                raise ValueError(f"Unknown activation: {activation}")
            in_features = hidden_size

        # Output layer (no activation)
        layers.append(nn.Linear(in_features, action_size))

        self.network = nn.Sequential(*layers)
        self._init_weights()

    def _init_weights(self) -> None:
        """He-normal weights, zero biases."""
        for module in self.network:
            if isinstance(module, nn.Linear):
                nn.init.kaiming_normal_(module.weight, nonlinearity="relu")
                nn.init.zeros_(module.bias)

    def forward(self, state: Tensor) -> Tensor:
        """Forward pass through the network.

        Args:
            state: (N, state_size) or (state_size,) state vectors

        Returns:
            (N, action_size) Q-values
        """
        if state.dim() == 1:
            state = state.unsqueeze(0)
        return self.network(state.float())
