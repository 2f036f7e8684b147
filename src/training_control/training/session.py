"""
Training session records.

A TrainingSession is immutable: each training step produces a new record
via dataclasses.replace, and the orchestrator swaps its reference to the
latest one. Readers therefore always hold a consistent snapshot.
"""

import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Union

from .config import TrainingConfiguration


class AgentType(Enum):
    """Kinds of agents the orchestrator can train"""
    DQN = "DQN"
    PPO = "PPO"
    STRATEGY = "STRATEGY"

    @classmethod
    def parse(cls, value: Union[str, "AgentType"]) -> "AgentType":
        """Parse an agent type from its name, case-insensitively."""
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(
                f"Unknown agent type '{value}'. Must be one of: {[t.value for t in cls]}"
            ) from None

    def __str__(self) -> str:
        return self.value


class SessionState(Enum):
    """Lifecycle state of a training session"""
    RUNNING = "running"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionState.RUNNING


@dataclass(frozen=True)
class TrainingSession:
    """Snapshot of one agent's training run.

    Attributes:
        agent_type: Agent being trained
        config: Configuration the run was started with
        session_id: Unique identifier of the run
        episodes_completed: Training steps finished so far
        current_loss: Loss reported by the most recent step
        average_loss: Running mean of all step losses
        start_time: Wall-clock start (seconds since epoch)
        end_time: Wall-clock end, None while running
        state: Lifecycle state
        last_episode_time_ms: Duration of the most recent step
        checkpoints_saved: Number of checkpoints written successfully
        error_message: Failure description when state is ERROR
    """
    agent_type: AgentType
    config: TrainingConfiguration
    session_id: str
    episodes_completed: int = 0
    current_loss: float = 0.0
    average_loss: float = 0.0
    start_time: float = 0.0
    end_time: Optional[float] = None
    state: SessionState = SessionState.RUNNING
    last_episode_time_ms: float = 0.0
    checkpoints_saved: int = 0
    error_message: Optional[str] = None

    @classmethod
    def start(cls, agent_type: AgentType, config: TrainingConfiguration) -> "TrainingSession":
        """Create a new running session."""
        return cls(
            agent_type=agent_type,
            config=config,
            session_id=uuid.uuid4().hex,
            start_time=time.time(),
        )

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def progress(self) -> float:
        """Fraction of max_episodes completed, clamped to [0, 1]"""
        fraction = self.episodes_completed / self.config.max_episodes
        return min(1.0, max(0.0, fraction))

    def duration(self) -> float:
        """Elapsed seconds, up to end_time once the session has finished"""
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time

    def record_episode(self, loss: float, episode_time_ms: float = 0.0) -> "TrainingSession":
        """Return a new snapshot with one more completed episode."""
        episodes = self.episodes_completed + 1
        average = self.average_loss + (loss - self.average_loss) / episodes
        return replace(
            self,
            episodes_completed=episodes,
            current_loss=loss,
            average_loss=average,
            last_episode_time_ms=episode_time_ms,
        )

    def record_checkpoint(self) -> "TrainingSession":
        return replace(self, checkpoints_saved=self.checkpoints_saved + 1)

    def finish(self, state: SessionState, error_message: Optional[str] = None) -> "TrainingSession":
        """Return a frozen terminal snapshot."""
        if not state.is_terminal:
            raise ValueError(f"{state} is not a terminal state")
        return replace(self, state=state, end_time=time.time(), error_message=error_message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_type": self.agent_type.value,
            "session_id": self.session_id,
            "state": self.state.value,
            "episodes_completed": self.episodes_completed,
            "max_episodes": self.config.max_episodes,
            "progress": self.progress(),
            "current_loss": self.current_loss,
            "average_loss": self.average_loss,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration(),
            "last_episode_time_ms": self.last_episode_time_ms,
            "checkpoints_saved": self.checkpoints_saved,
            "error_message": self.error_message,
            "config": self.config.to_dict(),
        }
