"""
Training orchestrator.

Owns one slot per agent type and coordinates the lifecycle of training
sessions: starting and stopping runners, holding the latest session
snapshot, and fanning lifecycle events out through the broadcaster.

Each slot has its own lock, so operations on different agent types never
serialize against each other. Slot states move through
IDLE -> STARTING -> RUNNING (-> STOPPING) -> IDLE; a stop that arrives
while a slot is STARTING is honored as soon as the runner begins.
"""

import logging
import threading
import time
from contextlib import ExitStack, contextmanager
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, Iterator, List, Mapping, NamedTuple, Optional, Union

from ..agents import create_agent
from ..errors import AgentFailureError, AlreadyRunningError, InvalidConfigError, TrainingControlError
from .broadcaster import ProgressBroadcaster
from .checkpoint_manager import CheckpointManager
from .comparison import TrainingComparison, compare
from .config import OrchestratorConfig, TrainingConfiguration
from .events import TrainingEvent, TrainingFailed, TrainingProgressListener, TrainingStarted
from .runner import AgentRunner
from .session import AgentType, SessionState, TrainingSession

logger = logging.getLogger(__name__)

AgentFactory = Callable[[AgentType, TrainingConfiguration], Any]
ConfigLike = Union[TrainingConfiguration, Mapping[str, Any]]


class SlotState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class StartResult(NamedTuple):
    """Outcome of a start request: a session id on success, otherwise an error"""
    session_id: Optional[str]
    error: Optional[TrainingControlError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class _AgentSlot:
    """Control-plane state for one agent type"""

    def __init__(self, agent_type: AgentType):
        self.agent_type = agent_type
        self.lock = threading.Lock()
        self.idle = threading.Condition(self.lock)
        self.state = SlotState.IDLE
        self.session: Optional[TrainingSession] = None
        # Runner threads not yet joined; a finished runner may still be closing its agent
        self.runners: List[AgentRunner] = []
        self.cancel_event: Optional[threading.Event] = None
        self.history: List[TrainingSession] = []


class TrainingOrchestrator:
    """
    Unified control over DQN, PPO and strategy agent training.

    Construct one orchestrator per process and pass it to whatever needs to
    control or observe training. Public methods are safe to call from any
    thread and never raise for expected conditions; only an invalid
    configuration raises InvalidConfigError.
    """

    def __init__(self,
                 config: Optional[OrchestratorConfig] = None,
                 agent_factory: Optional[AgentFactory] = None,
                 broadcaster: Optional[ProgressBroadcaster] = None,
                 checkpoint_manager: Optional[CheckpointManager] = None):
        """
        Initialize the orchestrator.

        Args:
            config: Orchestrator settings
            agent_factory: Builds a fresh agent for each session
            broadcaster: Event hub for progress listeners
            checkpoint_manager: Storage for agent checkpoints
        """
        self.config = config or OrchestratorConfig()
        self._agent_factory = agent_factory or create_agent
        self._broadcaster = broadcaster or ProgressBroadcaster()
        self.checkpoint_manager = checkpoint_manager or CheckpointManager(
            checkpoint_dir=self.config.checkpoint_dir,
            keep_recent=self.config.keep_recent,
        )
        self._slots: Dict[AgentType, _AgentSlot] = {t: _AgentSlot(t) for t in AgentType}
        self._shutdown_lock = threading.Lock()
        self._closed = False

        logger.info(f"Training orchestrator initialized (checkpoints: {self.config.checkpoint_dir})")

    def __enter__(self) -> "TrainingOrchestrator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    @property
    def broadcaster(self) -> ProgressBroadcaster:
        return self._broadcaster

    # Training control

    def start_training(self, agent_type: Union[AgentType, str], config: ConfigLike) -> StartResult:
        """
        Start a training session for one agent type without blocking.

        Returns:
            StartResult with the new session id, or with an AlreadyRunningError
            if the agent type has a non-terminal session

        Raises:
            InvalidConfigError: If the configuration violates its constraints
        """
        agent_type = AgentType.parse(agent_type)
        config = self._coerce_config(config)
        slot = self._slots[agent_type]

        error: Optional[TrainingControlError] = None
        with slot.lock:
            if self._closed:
                error = TrainingControlError("Orchestrator has been shut down")
            elif slot.state is not SlotState.IDLE:
                error = AlreadyRunningError(agent_type)
            else:
                session = TrainingSession.start(agent_type, config)
                cancel_event = threading.Event()
                slot.state = SlotState.STARTING
                slot.session = session
                slot.cancel_event = cancel_event

        if error is not None:
            logger.warning(f"Cannot start {agent_type} training: {error}")
            self._broadcaster.publish(TrainingFailed(agent_type, str(error), error=error))
            return StartResult(None, error)

        try:
            agent = self._agent_factory(agent_type, config)
        except Exception as e:
            logger.error(f"Failed to initialize {agent_type} agent: {e}", exc_info=True)
            failed = session.finish(SessionState.ERROR, error_message=str(e))
            self._finish_session(slot, failed, TrainingFailed(agent_type, str(e), error=e, session=failed))
            return StartResult(None, AgentFailureError(agent_type, e))

        runner = AgentRunner(
            agent=agent,
            session=session,
            cancel_event=cancel_event,
            on_update=partial(self._update_session, slot),
            on_finish=partial(self._finish_session, slot),
            publish=self._broadcaster.publish,
            checkpoint_manager=self.checkpoint_manager,
            max_checkpoint_failures=self.config.max_checkpoint_failures,
        )

        with slot.lock:
            slot.runners = [r for r in slot.runners if r.is_alive()]
            slot.runners.append(runner)
            if slot.state is SlotState.STARTING:
                slot.state = SlotState.RUNNING
            self._broadcaster.publish(TrainingStarted(agent_type, config, session.session_id))
            runner.start()

        logger.info(f"{agent_type} training started (session {session.session_id})")
        return StartResult(session.session_id)

    def start_all(self, config: ConfigLike) -> Dict[AgentType, StartResult]:
        """
        Start every agent type with the same configuration.

        Agent types that are already training are skipped and reported
        individually through on_training_error; the others still start.
        """
        config = self._coerce_config(config)
        results = {agent_type: self.start_training(agent_type, config) for agent_type in AgentType}

        started = [t.value for t, r in results.items() if r.ok]
        skipped = [t.value for t, r in results.items() if not r.ok]
        logger.info(f"Start all: started {started}, skipped {skipped}")
        return results

    def stop_training(self, agent_type: Union[AgentType, str]) -> bool:
        """
        Request cancellation of an agent type's session.

        The runner exits within one training step. Stopping an idle or
        already stopping agent type is a no-op.

        Returns:
            True if a stop signal was sent
        """
        agent_type = AgentType.parse(agent_type)
        slot = self._slots[agent_type]
        with slot.lock:
            if slot.state not in (SlotState.STARTING, SlotState.RUNNING):
                return False
            slot.cancel_event.set()
            slot.state = SlotState.STOPPING
        logger.info(f"{agent_type} training stop requested")
        return True

    def stop_all(self) -> List[AgentType]:
        """Request cancellation of every active session."""
        stopped = [agent_type for agent_type in AgentType if self.stop_training(agent_type)]
        if stopped:
            logger.info(f"All training stop requested: {[t.value for t in stopped]}")
        return stopped

    # Queries

    def is_training(self, agent_type: Union[AgentType, str]) -> bool:
        slot = self._slots[AgentType.parse(agent_type)]
        with slot.lock:
            return slot.state is not SlotState.IDLE

    def is_any_training(self) -> bool:
        """Whether any agent type is training, read as one snapshot across all slots"""
        with self._all_slots_locked():
            return any(slot.state is not SlotState.IDLE for slot in self._slots.values())

    def get_session(self, agent_type: Union[AgentType, str]) -> Optional[TrainingSession]:
        """Latest session snapshot for an agent type, or None if never started"""
        slot = self._slots[AgentType.parse(agent_type)]
        with slot.lock:
            return slot.session

    def get_history(self, agent_type: Union[AgentType, str]) -> List[TrainingSession]:
        """Terminal sessions for an agent type, oldest first"""
        slot = self._slots[AgentType.parse(agent_type)]
        with slot.lock:
            return list(slot.history)

    def get_comparison(self) -> TrainingComparison:
        with self._all_slots_locked():
            sessions = {agent_type: slot.session for agent_type, slot in self._slots.items()}
            training = {agent_type: slot.state is not SlotState.IDLE
                        for agent_type, slot in self._slots.items()}
        return compare(sessions, training)

    def wait_for(self, agent_type: Union[AgentType, str],
                 timeout: Optional[float] = None) -> Optional[TrainingSession]:
        """
        Block until the agent type's current session has finished.

        Returns:
            The terminal session (or latest session if none was running),
            or None if the timeout expired first
        """
        slot = self._slots[AgentType.parse(agent_type)]
        with slot.idle:
            if not slot.idle.wait_for(lambda: slot.state is SlotState.IDLE, timeout):
                return None
            return slot.session

    def wait_all(self, timeout: Optional[float] = None) -> bool:
        """Block until no agent type is training. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for agent_type in AgentType:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            slot = self._slots[agent_type]
            with slot.idle:
                if not slot.idle.wait_for(lambda: slot.state is SlotState.IDLE, remaining):
                    return False
        return True

    # Listeners

    def add_progress_listener(self, listener: TrainingProgressListener) -> None:
        self._broadcaster.add_listener(listener)

    def remove_progress_listener(self, listener: TrainingProgressListener) -> bool:
        return self._broadcaster.remove_listener(listener)

    # Lifecycle

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop all training, wait for runners to exit, and close the broadcaster."""
        with self._shutdown_lock:
            if self._closed:
                return
            self._closed = True

        timeout = self.config.shutdown_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout

        self.stop_all()
        if not self.wait_all(timeout):
            still_running = [t.value for t in AgentType if self.is_training(t)]
            logger.warning(f"Runners still active after {timeout}s shutdown wait: {still_running}")

        for slot in self._slots.values():
            with slot.lock:
                runners = list(slot.runners)
            for runner in runners:
                if not runner.join(max(0.0, deadline - time.monotonic())):
                    logger.warning(f"{slot.agent_type} runner thread still alive after shutdown wait")
            with slot.lock:
                slot.runners = [r for r in slot.runners if r.is_alive()]

        self._broadcaster.close(max(0.0, deadline - time.monotonic()))
        logger.info("Training orchestrator shut down")

    @contextmanager
    def _all_slots_locked(self) -> Iterator[None]:
        # Always acquired in AgentType order; nothing else holds two slot locks
        with ExitStack() as stack:
            for agent_type in AgentType:
                stack.enter_context(self._slots[agent_type].lock)
            yield

    # Runner callbacks

    def _update_session(self, slot: _AgentSlot, session: TrainingSession) -> None:
        with slot.lock:
            slot.session = session

    def _finish_session(self, slot: _AgentSlot, session: TrainingSession, event: TrainingEvent) -> None:
        with slot.lock:
            slot.session = session
            slot.history.append(session)
            slot.state = SlotState.IDLE
            slot.cancel_event = None
            # Published under the slot lock so a restart's Started event
            # cannot overtake this terminal event.
            self._broadcaster.publish(event)
            slot.idle.notify_all()

    @staticmethod
    def _coerce_config(config: ConfigLike) -> TrainingConfiguration:
        if isinstance(config, TrainingConfiguration):
            return config
        if isinstance(config, Mapping):
            return TrainingConfiguration.from_dict(dict(config))
        raise InvalidConfigError(f"Expected TrainingConfiguration or mapping, got {type(config).__name__}")
