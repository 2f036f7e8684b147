"""
Training control module.

This module coordinates concurrent training of several agents with support for:
- Independent or combined start/stop per agent type
- Non-blocking progress broadcasting to listeners
- Scheduled checkpointing with scoped storage access
- Cross-agent performance comparison
"""

from .config import TrainingConfiguration, OrchestratorConfig, load_config, save_config
from .session import AgentType, SessionState, TrainingSession
from .events import (
    TrainingProgressListener,
    TrainingEvent,
    TrainingStarted,
    TrainingProgress,
    TrainingCompleted,
    TrainingInterrupted,
    TrainingFailed,
    CheckpointWarning,
)
from .broadcaster import ProgressBroadcaster
from .checkpoint_manager import CheckpointManager, CheckpointInfo
from .comparison import TrainingComparison, AgentPerformanceMetrics, best_performing, compare
from .runner import AgentRunner
from .orchestrator import TrainingOrchestrator, StartResult, SlotState
from .metrics_logger import MetricsLogger

__all__ = [
    "TrainingConfiguration",
    "OrchestratorConfig",
    "load_config",
    "save_config",
    "AgentType",
    "SessionState",
    "TrainingSession",
    "TrainingProgressListener",
    "TrainingEvent",
    "TrainingStarted",
    "TrainingProgress",
    "TrainingCompleted",
    "TrainingInterrupted",
    "TrainingFailed",
    "CheckpointWarning",
    "ProgressBroadcaster",
    "CheckpointManager",
    "CheckpointInfo",
    "TrainingComparison",
    "AgentPerformanceMetrics",
    "best_performing",
    "compare",
    "AgentRunner",
    "TrainingOrchestrator",
    "StartResult",
    "SlotState",
    "MetricsLogger",
]
