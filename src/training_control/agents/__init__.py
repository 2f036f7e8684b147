"""
Trainable agents driven by the training orchestrator.

Provides reference implementations for each agent type:
- DQNAgent: value-based learner with replay and target network
- PPOAgent: actor-critic with clipped surrogate objective
- StrategyAgent: heuristic-augmented linear learner
"""

from .base import TrainableAgent
from .dqn_agent import DQNAgent
from .ppo_agent import PPOAgent
from .strategy_agent import StrategyAgent

AGENT_CLASSES = {
    "DQN": DQNAgent,
    "PPO": PPOAgent,
    "STRATEGY": StrategyAgent,
}


def create_agent(agent_type, config) -> TrainableAgent:
    """Build a fresh agent for ``agent_type`` using a training configuration."""
    key = getattr(agent_type, "value", agent_type)
    try:
        agent_cls = AGENT_CLASSES[key]
    except KeyError:
        raise ValueError(f"No agent registered for type '{key}'") from None
    return agent_cls(learning_rate=config.learning_rate, batch_size=config.batch_size)


__all__ = [
    "TrainableAgent",
    "DQNAgent",
    "PPOAgent",
    "StrategyAgent",
    "AGENT_CLASSES",
    "create_agent",
]
