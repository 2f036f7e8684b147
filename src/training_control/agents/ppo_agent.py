"""
PPO agent.

Actor-critic trained with the clipped surrogate objective on rollouts from
a synthetic contextual bandit.
"""

import logging
from typing import Tuple

import torch
import torch.nn as nn
import torch.nn.functional as F

from .base import SyntheticTask, TrainableAgent

logger = logging.getLogger(__name__)


class ActorCritic(nn.Module):
    def __init__(self, state_size: int, action_size: int, hidden_size: int = 64):
        super().__init__()
        self.encoder = nn.Sequential(
            nn.Linear(state_size, hidden_size),
            nn.Tanh(),
        )
        self.policy_head = nn.Linear(hidden_size, action_size)
        self.value_head = nn.Linear(hidden_size, 1)

    def forward(self, x: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        features = self.encoder(x)
        return self.policy_head(features), self.value_head(features).squeeze(-1)


class PPOAgent(TrainableAgent):
    """Policy-gradient agent"""

    def __init__(self,
                 state_size: int = 16,
                 action_size: int = 8,
                 learning_rate: float = 0.0003,
                 batch_size: int = 32,
                 n_epochs: int = 4,
                 clip_range: float = 0.2,
                 ent_coef: float = 0.01,
                 vf_coef: float = 0.5,
                 max_grad_norm: float = 0.5,
                 hidden_size: int = 64,
                 seed: int = None):
        super().__init__(state_size, action_size, seed)
        if seed is not None:
            torch.manual_seed(seed)

        self.batch_size = batch_size
        self.n_epochs = n_epochs
        self.clip_range = clip_range
        self.ent_coef = ent_coef
        self.vf_coef = vf_coef
        self.max_grad_norm = max_grad_norm

        self.model = ActorCritic(state_size, action_size, hidden_size)
        self.optimizer = torch.optim.Adam(self.model.parameters(), lr=learning_rate, eps=1e-5)
        self.task = SyntheticTask(state_size, action_size, self.rng)

    def _collect_rollout(self):
        states = torch.as_tensor(self.task.sample_states(self.batch_size))
        with torch.no_grad():
            logits, values = self.model(states)
            dist = torch.distributions.Categorical(logits=logits)
            actions = dist.sample()
            log_probs = dist.log_prob(actions)
        rewards = torch.as_tensor(self.task.rewards(states.numpy(), actions.numpy()))
        advantages = rewards - values
        if len(advantages) > 1:
            advantages = (advantages - advantages.mean()) / (advantages.std() + 1e-8)
        return states, actions, log_probs, rewards, advantages

    def train_step(self) -> float:
        states, actions, old_log_probs, returns, advantages = self._collect_rollout()

        losses = []
        for _ in range(self.n_epochs):
            logits, values = self.model(states)
            dist = torch.distributions.Categorical(logits=logits)
            log_probs = dist.log_prob(actions)

            ratio = torch.exp(log_probs - old_log_probs)
            policy_loss_1 = advantages * ratio
            policy_loss_2 = advantages * torch.clamp(ratio, 1 - self.clip_range, 1 + self.clip_range)
            policy_loss = -torch.min(policy_loss_1, policy_loss_2).mean()

            value_loss = F.mse_loss(values, returns)
            entropy_loss = -dist.entropy().mean()

            loss = policy_loss + self.vf_coef * value_loss + self.ent_coef * entropy_loss

            self.optimizer.zero_grad()
            loss.backward()
            nn.utils.clip_grad_norm_(self.model.parameters(), self.max_grad_norm)
            self.optimizer.step()
            losses.append(loss.item())

        self.step_count += 1
        return float(sum(losses) / len(losses))

    def save_checkpoint(self, path: str) -> None:
        torch.save({
            "model_state_dict": self.model.state_dict(),
            "optimizer_state_dict": self.optimizer.state_dict(),
            "step_count": self.step_count,
        }, path)

    def load_checkpoint(self, path: str) -> None:
        checkpoint = torch.load(path, map_location="cpu")
        self.model.load_state_dict(checkpoint["model_state_dict"])
        self.optimizer.load_state_dict(checkpoint["optimizer_state_dict"])
        self.step_count = checkpoint["step_count"]
        logger.info(f"Loaded PPO checkpoint: {path}")
