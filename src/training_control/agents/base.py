"""
Base interface for trainable agents.

The orchestrator only needs two capabilities from an agent: run one
training step and report its loss, and persist its weights to a path.
"""

from abc import ABC, abstractmethod

import numpy as np


class TrainableAgent(ABC):
    """Agent that can be driven by an AgentRunner"""

    def __init__(self, state_size: int, action_size: int, seed: int = None):
        self.state_size = state_size
        self.action_size = action_size
        self.rng = np.random.default_rng(seed)
        self.step_count = 0

    @abstractmethod
    def train_step(self) -> float:
        """Perform one training step and return its loss."""

    @abstractmethod
    def save_checkpoint(self, path: str) -> None:
        """Persist agent weights to ``path``."""

    @abstractmethod
    def load_checkpoint(self, path: str) -> None:
        """Restore agent weights from ``path``."""

    def close(self) -> None:
        """Release resources held by the agent."""


class SyntheticTask:
    """
    Contextual bandit used to generate training data without a game.

    Reward for taking action ``a`` in state ``s`` is ``s @ W[:, a]`` plus
    noise, so there is a learnable signal for every agent type.
    """

    def __init__(self, state_size: int, action_size: int, rng: np.random.Generator,
                 noise: float = 0.05):
        self.state_size = state_size
        self.action_size = action_size
        self.rng = rng
        self.noise = noise
        self.weights = rng.normal(0.0, 1.0 / np.sqrt(state_size), size=(state_size, action_size))

    def sample_states(self, n: int) -> np.ndarray:
        return self.rng.uniform(-1.0, 1.0, size=(n, self.state_size)).astype(np.float32)

    def rewards(self, states: np.ndarray, actions: np.ndarray) -> np.ndarray:
        expected = np.einsum("ij,ji->i", states, self.weights[:, actions])
        noise = self.rng.normal(0.0, self.noise, size=len(states))
        return (expected + noise).astype(np.float32)
