"""
Exception hierarchy for training control.

Expected conditions (an agent type that is already training, stopping an
idle agent) are reported through return values and events. Only malformed
configuration raises out of the orchestrator's public API.
"""

from typing import Optional


class TrainingControlError(Exception):
    """Base class for all training control errors"""


class AlreadyRunningError(TrainingControlError):
    """A non-terminal session already exists for the agent type"""

    def __init__(self, agent_type):
        self.agent_type = agent_type
        super().__init__(f"{agent_type} training already in progress")


class InvalidConfigError(TrainingControlError, ValueError):
    """Training configuration violates its constraints"""


class CheckpointError(TrainingControlError):
    """A checkpoint could not be written. Training continues."""

    def __init__(self, message: str, agent_type=None, path: Optional[str] = None):
        self.agent_type = agent_type
        self.path = path
        super().__init__(message)


class CheckpointStorageError(CheckpointError):
    """Checkpoint storage is unusable. The session is terminated."""


class AgentFailureError(TrainingControlError):
    """
    Unrecoverable failure raised by an agent's training step.

    The message of the underlying exception is kept verbatim so listeners
    see exactly what the agent reported.
    """

    def __init__(self, agent_type, cause: BaseException):
        self.agent_type = agent_type
        self.cause = cause
        super().__init__(str(cause))
