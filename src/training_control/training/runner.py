"""
Agent runner: drives one session's train-step loop on its own thread.

Cancellation is cooperative and checked at step granularity. A stop request
is honored at the latest once the training step in flight returns; the
throttle delay between steps is an Event wait, so it is cut short at once.
"""

import logging
import threading
import time
from typing import Callable, Optional

from ..errors import AgentFailureError, CheckpointError, CheckpointStorageError
from .checkpoint_manager import CheckpointManager
from .events import (
    CheckpointWarning,
    TrainingCompleted,
    TrainingEvent,
    TrainingFailed,
    TrainingInterrupted,
    TrainingProgress,
)
from .session import SessionState, TrainingSession

logger = logging.getLogger(__name__)


class AgentRunner:
    """
    Runs up to max_episodes training steps for one session.

    The runner is the only writer of its session. Every step produces a new
    immutable snapshot which is handed to ``on_update``; terminal snapshots
    go to ``on_finish`` together with the terminal event, exactly once.
    """

    def __init__(self,
                 agent,
                 session: TrainingSession,
                 cancel_event: threading.Event,
                 on_update: Callable[[TrainingSession], None],
                 on_finish: Callable[[TrainingSession, TrainingEvent], None],
                 publish: Callable[[TrainingEvent], None],
                 checkpoint_manager: Optional[CheckpointManager] = None,
                 max_checkpoint_failures: int = 3):
        """
        Args:
            agent: Object exposing train_step() and save_checkpoint(path)
            session: Initial RUNNING session
            cancel_event: Set to request cancellation
            on_update: Receives each new snapshot before events about it are published
            on_finish: Receives the terminal snapshot and terminal event
            publish: Publishes non-terminal events
            checkpoint_manager: Storage for checkpoints, required if the
                session's config saves checkpoints
            max_checkpoint_failures: Consecutive checkpoint failures that end the session
        """
        self.agent = agent
        self.agent_type = session.agent_type
        self.config = session.config
        self._session = session
        self._cancel = cancel_event
        self._on_update = on_update
        self._on_finish = on_finish
        self._publish = publish
        self._checkpoints = checkpoint_manager
        self._max_checkpoint_failures = max_checkpoint_failures
        self._checkpoint_failures = 0
        self._thread: Optional[threading.Thread] = None

    @property
    def session(self) -> TrainingSession:
        return self._session

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self.run, name=f"{self.agent_type.value.lower()}-runner", daemon=True
        )
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the runner thread. Returns True if it has exited."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        """Training loop. Never raises; outcomes are reported via on_finish."""
        logger.info(f"{self.agent_type} training started "
                    f"(episodes: {self.config.max_episodes}, lr: {self.config.learning_rate})")
        try:
            cancelled = self._train_loop()
        except Exception as e:
            self._fail(e)
        else:
            if cancelled:
                session = self._session.finish(SessionState.INTERRUPTED)
                logger.info(f"{self.agent_type} training interrupted after "
                            f"{session.episodes_completed} episodes")
                self._on_finish(session, TrainingInterrupted(self.agent_type, session))
            else:
                session = self._session.finish(SessionState.COMPLETED)
                logger.info(f"{self.agent_type} training completed: {session.episodes_completed} episodes, "
                            f"average loss {session.average_loss:.4f}")
                self._on_finish(session, TrainingCompleted(self.agent_type, session))
        finally:
            self._close_agent()

    def _train_loop(self) -> bool:
        """Returns True if the loop stopped because of cancellation."""
        delay = self.config.training_delay_seconds

        while self._session.episodes_completed < self.config.max_episodes:
            if self._cancel.is_set():
                return True

            step_start = time.perf_counter()
            try:
                loss = float(self.agent.train_step())
            except Exception as e:
                raise AgentFailureError(self.agent_type, e) from e
            step_ms = (time.perf_counter() - step_start) * 1000.0

            self._set_session(self._session.record_episode(loss, step_ms))
            episode = self._session.episodes_completed
            logger.debug(f"{self.agent_type} episode {episode}: loss {loss:.4f}")

            if episode % self.config.progress_interval == 0:
                self._publish(TrainingProgress(self.agent_type, self._session))

            if self.config.save_checkpoints and episode % self.config.checkpoint_interval == 0:
                self._save_checkpoint(episode)

            if episode < self.config.max_episodes and delay > 0:
                if self._cancel.wait(delay):
                    return True

        return False

    def _set_session(self, session: TrainingSession):
        self._session = session
        self._on_update(session)

    def _save_checkpoint(self, episode: int):
        if self._checkpoints is None:
            raise CheckpointStorageError("No checkpoint storage configured", agent_type=self.agent_type)
        try:
            self._checkpoints.save(self.agent, self.agent_type, episode, self._session)
        except CheckpointStorageError:
            raise
        except CheckpointError as e:
            self._checkpoint_failures += 1
            logger.warning(f"{self.agent_type} checkpoint failed "
                           f"({self._checkpoint_failures}/{self._max_checkpoint_failures}): {e}")
            self._publish(CheckpointWarning(self.agent_type, str(e), episode))
            if self._checkpoint_failures >= self._max_checkpoint_failures:
                raise CheckpointStorageError(
                    f"{self._checkpoint_failures} consecutive checkpoint failures, last: {e}",
                    agent_type=self.agent_type, path=e.path,
                ) from e
            return

        self._checkpoint_failures = 0
        self._set_session(self._session.record_checkpoint())

    def _fail(self, error: Exception):
        cause = error.cause if isinstance(error, AgentFailureError) else error
        message = str(error)
        logger.error(f"{self.agent_type} training failed: {message}", exc_info=error)
        session = self._session.finish(SessionState.ERROR, error_message=message)
        self._on_finish(session, TrainingFailed(self.agent_type, message, error=cause, session=session))

    def _close_agent(self):
        close = getattr(self.agent, "close", None)
        if close is None:
            return
        try:
            close()
        except Exception:
            logger.warning(f"Failed to close {self.agent_type} agent", exc_info=True)
