"""
Pytest configuration and shared fixtures for training control tests.

Provides a scriptable fake agent, a recording listener, and orchestrator
fixtures wired to temporary directories.
"""

import shutil
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from ..training import (
    AgentType,
    OrchestratorConfig,
    TrainingConfiguration,
    TrainingOrchestrator,
    TrainingProgressListener,
)

WAIT_TIMEOUT = 10.0


class FakeAgent:
    """
    Agent with scripted behaviour.

    Args:
        losses: Losses returned by successive steps; afterwards default_loss
        fail_at: Step number (1-based) that raises ``error``
        checkpoint_error: Exception raised by save_checkpoint
        step_gate: If given, every step waits for this event before returning
    """

    def __init__(self,
                 losses: Optional[Sequence[float]] = None,
                 default_loss: float = 0.5,
                 fail_at: Optional[int] = None,
                 error: Optional[Exception] = None,
                 checkpoint_error: Optional[Exception] = None,
                 step_gate: Optional[threading.Event] = None):
        self.losses = list(losses or [])
        self.default_loss = default_loss
        self.fail_at = fail_at
        self.error = error or RuntimeError("agent exploded")
        self.checkpoint_error = checkpoint_error
        self.step_gate = step_gate
        self.step_started = threading.Event()
        self.steps = 0
        self.saved_paths: List[str] = []
        self.closed = False

    def train_step(self) -> float:
        self.step_started.set()
        if self.step_gate is not None:
            self.step_gate.wait(WAIT_TIMEOUT)
        self.steps += 1
        if self.fail_at == self.steps:
            raise self.error
        if self.steps <= len(self.losses):
            return self.losses[self.steps - 1]
        return self.default_loss

    def save_checkpoint(self, path: str) -> None:
        if self.checkpoint_error is not None:
            raise self.checkpoint_error
        Path(path).write_bytes(b"checkpoint")
        self.saved_paths.append(path)

    def close(self):
        self.closed = True


class RecordingListener(TrainingProgressListener):
    """Records every callback as (name, agent_type, payload) tuples"""

    def __init__(self):
        self.calls: List[tuple] = []
        self._cond = threading.Condition()

    def _record(self, *call):
        with self._cond:
            self.calls.append(call)
            self._cond.notify_all()

    def on_training_started(self, agent_type, config):
        self._record("started", agent_type, config)

    def on_training_progress(self, agent_type, session):
        self._record("progress", agent_type, session)

    def on_training_completed(self, agent_type, session):
        self._record("completed", agent_type, session)

    def on_training_interrupted(self, agent_type):
        self._record("interrupted", agent_type, None)

    def on_training_error(self, agent_type, message):
        self._record("error", agent_type, message)

    def on_checkpoint_warning(self, agent_type, message):
        self._record("checkpoint_warning", agent_type, message)

    def names(self, agent_type: Optional[AgentType] = None) -> List[str]:
        with self._cond:
            return [c[0] for c in self.calls if agent_type is None or c[1] is agent_type]

    def of(self, name: str, agent_type: Optional[AgentType] = None) -> List[tuple]:
        with self._cond:
            return [c for c in self.calls if c[0] == name and (agent_type is None or c[1] is agent_type)]

    def wait_for(self, predicate: Callable[["RecordingListener"], bool], timeout: float = WAIT_TIMEOUT) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: predicate(self), timeout)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def orchestrator_config(temp_dir):
    return OrchestratorConfig(
        checkpoint_dir=str(Path(temp_dir) / "checkpoints"),
        log_dir=str(Path(temp_dir) / "logs"),
        keep_recent=3,
        max_checkpoint_failures=3,
        shutdown_timeout=WAIT_TIMEOUT,
        use_tensorboard=False,
    )


@pytest.fixture
def fast_config():
    """Configuration that runs without throttling or checkpoints."""
    return TrainingConfiguration(
        max_episodes=5,
        learning_rate=0.01,
        save_checkpoints=False,
        training_delay_ms=0,
        progress_interval=1,
    )


@pytest.fixture
def fake_agents() -> Dict[AgentType, FakeAgent]:
    """One default FakeAgent per agent type; tests may replace entries."""
    return {agent_type: FakeAgent() for agent_type in AgentType}


@pytest.fixture
def orchestrator(orchestrator_config, fake_agents):
    """Orchestrator whose factory hands out the agents in ``fake_agents``."""
    orch = TrainingOrchestrator(
        orchestrator_config,
        agent_factory=lambda agent_type, config: fake_agents[agent_type],
    )
    yield orch
    orch.shutdown()


@pytest.fixture
def listener(orchestrator):
    recorder = RecordingListener()
    orchestrator.add_progress_listener(recorder)
    return recorder
