"""
DQN agent.

Small Q-network trained from a replay buffer with a hard-updated target
network. Transitions come from a synthetic task, so the agent exists to
give the orchestrator a realistic workload rather than to play a game.
"""

import copy
import logging
from collections import deque

import numpy as np
import torch
import torch.nn as nn

from .base import SyntheticTask, TrainableAgent

logger = logging.getLogger(__name__)


class QNetwork(nn.Module):
    def __init__(self, state_size: int, action_size: int, hidden_size: int = 64):
        super().__init__()
        self.network = nn.Sequential(
            nn.Linear(state_size, hidden_size),
            nn.ReLU(),
            nn.Linear(hidden_size, hidden_size),
            nn.ReLU(),
            nn.Linear(hidden_size, action_size),
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.network(x)


class DQNAgent(TrainableAgent):
    """Value-based agent"""

    def __init__(self,
                 state_size: int = 16,
                 action_size: int = 8,
                 learning_rate: float = 0.001,
                 batch_size: int = 32,
                 gamma: float = 0.9,
                 epsilon_start: float = 1.0,
                 epsilon_end: float = 0.01,
                 epsilon_decay: float = 0.995,
                 buffer_capacity: int = 10000,
                 target_update_frequency: int = 100,
                 transitions_per_step: int = 8,
                 hidden_size: int = 64,
                 seed: int = None):
        super().__init__(state_size, action_size, seed)
        if seed is not None:
            torch.manual_seed(seed)

        self.batch_size = batch_size
        self.gamma = gamma
        self.epsilon = epsilon_start
        self.epsilon_end = epsilon_end
        self.epsilon_decay = epsilon_decay
        self.target_update_frequency = target_update_frequency
        self.transitions_per_step = transitions_per_step

        self.policy_net = QNetwork(state_size, action_size, hidden_size)
        self.target_net = copy.deepcopy(self.policy_net)
        self.target_net.eval()
        self.optimizer = torch.optim.Adam(self.policy_net.parameters(), lr=learning_rate)

        self.task = SyntheticTask(state_size, action_size, self.rng)
        self.replay_buffer = deque(maxlen=buffer_capacity)

    def select_action(self, state: np.ndarray) -> int:
        """Epsilon-greedy action selection"""
        if self.rng.random() < self.epsilon:
            return int(self.rng.integers(self.action_size))
        with torch.no_grad():
            q_values = self.policy_net(torch.as_tensor(state).unsqueeze(0))
        return int(q_values.argmax(dim=1).item())

    def _collect(self, n: int):
        states = self.task.sample_states(n)
        actions = np.array([self.select_action(s) for s in states], dtype=np.int64)
        rewards = self.task.rewards(states, actions)
        next_states = self.task.sample_states(n)
        dones = self.rng.random(n) < 0.1
        for transition in zip(states, actions, rewards, next_states, dones):
            self.replay_buffer.append(transition)

    def train_step(self) -> float:
        self._collect(max(self.transitions_per_step, self.batch_size - len(self.replay_buffer)))

        indices = self.rng.choice(len(self.replay_buffer), size=self.batch_size, replace=False)
        states, actions, rewards, next_states, dones = zip(*(self.replay_buffer[i] for i in indices))

        states = torch.as_tensor(np.stack(states))
        actions = torch.as_tensor(np.array(actions))
        rewards = torch.as_tensor(np.array(rewards))
        next_states = torch.as_tensor(np.stack(next_states))
        dones = torch.as_tensor(np.array(dones))

        current_q = self.policy_net(states).gather(1, actions.unsqueeze(1)).squeeze(1)
        with torch.no_grad():
            next_q_max = self.target_net(next_states).max(dim=1)[0]
            next_q_max = torch.where(dones, torch.zeros_like(next_q_max), next_q_max)
            target_q = rewards + self.gamma * next_q_max

        loss = nn.functional.mse_loss(current_q, target_q)

        self.optimizer.zero_grad()
        loss.backward()
        nn.utils.clip_grad_norm_(self.policy_net.parameters(), max_norm=10.0)
        self.optimizer.step()

        self.step_count += 1
        self.epsilon = max(self.epsilon_end, self.epsilon * self.epsilon_decay)
        if self.step_count % self.target_update_frequency == 0:
            self.target_net.load_state_dict(self.policy_net.state_dict())

        return loss.item()

    def save_checkpoint(self, path: str) -> None:
        torch.save({
            "policy_net_state_dict": self.policy_net.state_dict(),
            "target_net_state_dict": self.target_net.state_dict(),
            "optimizer_state_dict": self.optimizer.state_dict(),
            "step_count": self.step_count,
            "epsilon": self.epsilon,
        }, path)

    def load_checkpoint(self, path: str) -> None:
        checkpoint = torch.load(path, map_location="cpu")
        self.policy_net.load_state_dict(checkpoint["policy_net_state_dict"])
        self.target_net.load_state_dict(checkpoint["target_net_state_dict"])
        self.optimizer.load_state_dict(checkpoint["optimizer_state_dict"])
        self.step_count = checkpoint["step_count"]
        self.epsilon = checkpoint["epsilon"]
        logger.info(f"Loaded DQN checkpoint: {path}")
