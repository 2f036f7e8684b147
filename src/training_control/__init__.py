"""Training Control - concurrent training orchestration for RL agents"""

__version__ = "0.1.0"

from .training.config import TrainingConfiguration, OrchestratorConfig
from .training.session import AgentType, SessionState, TrainingSession
from .training.events import TrainingProgressListener
from .training.orchestrator import TrainingOrchestrator, StartResult
from .errors import (
    TrainingControlError,
    AlreadyRunningError,
    InvalidConfigError,
    CheckpointError,
    CheckpointStorageError,
    AgentFailureError,
)

__all__ = [
    "TrainingConfiguration",
    "OrchestratorConfig",
    "AgentType",
    "SessionState",
    "TrainingSession",
    "TrainingProgressListener",
    "TrainingOrchestrator",
    "StartResult",
    "TrainingControlError",
    "AlreadyRunningError",
    "InvalidConfigError",
    "CheckpointError",
    "CheckpointStorageError",
    "AgentFailureError",
]
