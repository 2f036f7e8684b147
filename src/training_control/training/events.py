"""
Lifecycle events and the listener interface.

Each event knows which listener callback it maps to, so the broadcaster can
deliver any event without switching on its type.
"""

from dataclasses import dataclass
from typing import Optional

from .config import TrainingConfiguration
from .session import AgentType, TrainingSession


class TrainingProgressListener:
    """
    Receives training lifecycle callbacks.

    Subclasses override the callbacks they care about. Callbacks run on a
    dispatcher thread owned by the broadcaster, never on a training thread.
    """

    def on_training_started(self, agent_type: AgentType, config: TrainingConfiguration):
        pass

    def on_training_progress(self, agent_type: AgentType, session: TrainingSession):
        pass

    def on_training_completed(self, agent_type: AgentType, session: TrainingSession):
        pass

    def on_training_interrupted(self, agent_type: AgentType):
        pass

    def on_training_error(self, agent_type: AgentType, message: str):
        pass

    def on_checkpoint_warning(self, agent_type: AgentType, message: str):
        pass


@dataclass(frozen=True)
class TrainingEvent:
    """Base class for events published through the broadcaster"""
    agent_type: AgentType

    #: Set on events that end a session
    terminal = False

    def dispatch(self, listener: TrainingProgressListener) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class TrainingStarted(TrainingEvent):
    config: TrainingConfiguration
    session_id: str

    def dispatch(self, listener):
        listener.on_training_started(self.agent_type, self.config)


@dataclass(frozen=True)
class TrainingProgress(TrainingEvent):
    session: TrainingSession

    def dispatch(self, listener):
        listener.on_training_progress(self.agent_type, self.session)


@dataclass(frozen=True)
class TrainingCompleted(TrainingEvent):
    session: TrainingSession
    terminal = True

    def dispatch(self, listener):
        listener.on_training_completed(self.agent_type, self.session)


@dataclass(frozen=True)
class TrainingInterrupted(TrainingEvent):
    session: Optional[TrainingSession] = None
    terminal = True

    def dispatch(self, listener):
        listener.on_training_interrupted(self.agent_type)


@dataclass(frozen=True)
class TrainingFailed(TrainingEvent):
    """Error report. Terminal only when a session was actually ended."""
    message: str
    error: Optional[BaseException] = None
    session: Optional[TrainingSession] = None

    @property
    def terminal(self) -> bool:
        return self.session is not None

    def dispatch(self, listener):
        listener.on_training_error(self.agent_type, self.message)


@dataclass(frozen=True)
class CheckpointWarning(TrainingEvent):
    message: str
    episode: int = 0

    def dispatch(self, listener):
        listener.on_checkpoint_warning(self.agent_type, self.message)
