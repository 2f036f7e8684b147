"""
Strategy agent.

Heuristic-augmented learner: a linear action-value model fitted with plain
numpy gradient descent, combined with a fixed preference prior that decays
as the learned estimates improve.
"""

import logging

import numpy as np

from .base import SyntheticTask, TrainableAgent

logger = logging.getLogger(__name__)


class StrategyAgent(TrainableAgent):
    """Higher-level strategy learner"""

    def __init__(self,
                 state_size: int = 16,
                 action_size: int = 8,
                 learning_rate: float = 0.01,
                 batch_size: int = 32,
                 prior_decay: float = 0.99,
                 seed: int = None):
        super().__init__(state_size, action_size, seed)
        self.learning_rate = learning_rate
        self.batch_size = batch_size
        self.prior_decay = prior_decay

        self.task = SyntheticTask(state_size, action_size, self.rng)
        self.weights = np.zeros((state_size, action_size), dtype=np.float64)
        # Uniform preference over actions until the model has learned something
        self.prior = np.full(action_size, 1.0 / action_size)
        self.prior_weight = 1.0

    def action_scores(self, states: np.ndarray) -> np.ndarray:
        learned = states @ self.weights
        return (1.0 - self.prior_weight) * learned + self.prior_weight * self.prior

    def select_action(self, state: np.ndarray) -> int:
        return int(np.argmax(self.action_scores(state[None, :])[0]))

    def train_step(self) -> float:
        states = self.task.sample_states(self.batch_size).astype(np.float64)

        # Full-information targets: the reward of every action in every state
        targets = np.stack(
            [self.task.rewards(states, np.full(len(states), a)) for a in range(self.action_size)],
            axis=1,
        )
        errors = states @ self.weights - targets
        loss = float(np.mean(errors ** 2))

        gradient = 2.0 * states.T @ errors / len(states)
        self.weights -= self.learning_rate * gradient
        self.prior_weight *= self.prior_decay

        self.step_count += 1
        return loss

    def save_checkpoint(self, path: str) -> None:
        with open(path, "wb") as f:
            np.savez(f, weights=self.weights, prior=self.prior,
                     prior_weight=self.prior_weight, step_count=self.step_count)

    def load_checkpoint(self, path: str) -> None:
        with np.load(path) as data:
            self.weights = data["weights"]
            self.prior = data["prior"]
            self.prior_weight = float(data["prior_weight"])
            self.step_count = int(data["step_count"])
        logger.info(f"Loaded strategy checkpoint: {path}")
