"""
Cross-agent performance comparison.

Pure functions over session snapshots. Nothing here is cached; callers
recompute a comparison whenever they need a fresh view.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .session import AgentType, SessionState, TrainingSession


@dataclass(frozen=True)
class AgentPerformanceMetrics:
    """Per-agent summary derived from a session snapshot"""
    agent_type: AgentType
    episodes_completed: int
    current_loss: float
    average_loss: float
    training_time: float
    is_training: bool
    is_completed: bool

    @classmethod
    def from_session(cls, session: TrainingSession, is_training: bool) -> "AgentPerformanceMetrics":
        return cls(
            agent_type=session.agent_type,
            episodes_completed=session.episodes_completed,
            current_loss=session.current_loss,
            average_loss=session.average_loss,
            training_time=session.duration(),
            is_training=is_training,
            is_completed=session.state is SessionState.COMPLETED,
        )


def best_performing(sessions: Iterable[Optional[TrainingSession]]) -> Optional[TrainingSession]:
    """
    Session with the lowest average loss among those with completed episodes.

    Ties on average loss go to the session with more completed episodes.
    Returns None when no session has completed an episode.
    """
    candidates = [s for s in sessions if s is not None and s.episodes_completed > 0]
    if not candidates:
        return None
    return min(candidates, key=lambda s: (s.average_loss, -s.episodes_completed))


@dataclass(frozen=True)
class TrainingComparison:
    """Point-in-time snapshot of the latest session per agent type"""
    sessions: Mapping[AgentType, Optional[TrainingSession]]
    training: Mapping[AgentType, bool] = field(default_factory=dict)

    def session(self, agent_type: AgentType) -> Optional[TrainingSession]:
        return self.sessions.get(agent_type)

    def best_performing(self) -> Optional[TrainingSession]:
        return best_performing(self.sessions.values())

    def metrics(self) -> List[AgentPerformanceMetrics]:
        """Performance metrics for every agent type that has a session"""
        return [
            AgentPerformanceMetrics.from_session(session, self.training.get(agent_type, False))
            for agent_type, session in self.sessions.items()
            if session is not None
        ]

    def to_dict(self) -> Dict[str, Any]:
        best = self.best_performing()
        return {
            "best_performing": best.agent_type.value if best else None,
            "agents": {
                m.agent_type.value: {
                    "episodes_completed": m.episodes_completed,
                    "current_loss": m.current_loss,
                    "average_loss": m.average_loss,
                    "training_time": m.training_time,
                    "is_training": m.is_training,
                    "is_completed": m.is_completed,
                }
                for m in self.metrics()
            },
        }


def compare(sessions: Mapping[AgentType, Optional[TrainingSession]],
            training: Optional[Mapping[AgentType, bool]] = None) -> TrainingComparison:
    """Build a comparison covering every agent type, filling gaps with None."""
    snapshot = {agent_type: sessions.get(agent_type) for agent_type in AgentType}
    flags = {agent_type: bool((training or {}).get(agent_type, False)) for agent_type in AgentType}
    return TrainingComparison(sessions=snapshot, training=flags)
