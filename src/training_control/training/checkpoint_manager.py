"""
Checkpoint manager for persisting agent weights during training.

Each agent type gets its own directory under the checkpoint root with a
rolling window of recent checkpoints and a JSON history. Writes go through
a scoped handle so the per-agent storage lock is released on every exit
path, including cancellation and agent errors.
"""

import json
import logging
import os
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from ..errors import CheckpointError, CheckpointStorageError
from .session import AgentType, TrainingSession

logger = logging.getLogger(__name__)

HISTORY_FILE = "checkpoint_history.json"


@dataclass
class CheckpointInfo:
    """Information about a saved checkpoint"""
    agent_type: str
    episode: int
    timestamp: float
    path: str
    session_id: Optional[str] = None
    average_loss: Optional[float] = None


@dataclass
class CheckpointHandle:
    """Write target handed out while the storage lock is held"""
    agent_type: AgentType
    episode: int
    path: Path


class CheckpointManager:
    """
    Manages agent checkpoints on disk.

    Features:
    - One directory per agent type
    - Rolling window of recent checkpoints
    - Checkpoint history persisted as JSON for resuming
    """

    def __init__(self, checkpoint_dir: str, keep_recent: int = 5):
        """
        Initialize checkpoint manager.

        Args:
            checkpoint_dir: Root directory for checkpoints
            keep_recent: Number of recent checkpoints to keep per agent type
                (0 keeps everything)
        """
        self.checkpoint_dir = Path(checkpoint_dir)
        self.keep_recent = keep_recent

        self._locks: Dict[AgentType, threading.Lock] = {t: threading.Lock() for t in AgentType}
        self._checkpoints: Dict[AgentType, List[CheckpointInfo]] = {}

        logger.info(f"CheckpointManager initialized: {self.checkpoint_dir} (keep recent: {keep_recent})")

    def agent_dir(self, agent_type: AgentType) -> Path:
        return self.checkpoint_dir / agent_type.value.lower()

    @staticmethod
    def checkpoint_filename(episode: int, session: Optional[TrainingSession] = None) -> str:
        """File name for a checkpoint, scoped to its session when one is given"""
        if session is None:
            return f"checkpoint_episode_{episode}.pt"
        return f"checkpoint_{session.session_id[:8]}_episode_{episode}.pt"

    @contextmanager
    def acquire(self, agent_type: AgentType, episode: int,
                session: Optional[TrainingSession] = None) -> Iterator[CheckpointHandle]:
        """
        Hold the storage lock for an agent type and yield a write handle.

        The checkpoint is recorded only if the block exits normally. A
        partially written file is removed if the block raises.

        Raises:
            CheckpointStorageError: If the agent's directory cannot be created
        """
        lock = self._locks[agent_type]
        lock.acquire()
        try:
            directory = self.agent_dir(agent_type)
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise CheckpointStorageError(
                    f"Cannot create checkpoint directory {directory}: {e}",
                    agent_type=agent_type, path=str(directory),
                ) from e

            handle = CheckpointHandle(
                agent_type=agent_type,
                episode=episode,
                path=directory / self.checkpoint_filename(episode, session),
            )
            try:
                yield handle
            except BaseException:
                self._remove_partial(handle.path)
                raise

            info = CheckpointInfo(
                agent_type=agent_type.value,
                episode=episode,
                timestamp=time.time(),
                path=str(handle.path),
                session_id=session.session_id if session else None,
                average_loss=session.average_loss if session else None,
            )
            previous = self._history(agent_type)
            # A rewritten path replaces its old entry
            history = [c for c in previous if c.path != info.path] + [info]
            kept, expired = self._apply_retention(history)

            try:
                self._save_checkpoint_history(agent_type, kept)
            except CheckpointStorageError:
                if all(c.path != info.path for c in previous):
                    self._remove_partial(handle.path)
                raise

            self._checkpoints[agent_type] = kept
            self._cleanup_old_checkpoints(expired, kept)
            logger.info(f"Saved {agent_type} checkpoint: {handle.path}")
        finally:
            lock.release()

    def save(self, agent, agent_type: AgentType, episode: int,
             session: Optional[TrainingSession] = None) -> str:
        """
        Ask an agent to write a checkpoint.

        Returns:
            Path of the written checkpoint

        Raises:
            CheckpointError: The agent failed to write (recoverable)
            CheckpointStorageError: Storage is unusable (unrecoverable)
        """
        with self.acquire(agent_type, episode, session) as handle:
            try:
                agent.save_checkpoint(str(handle.path))
            except CheckpointError:
                raise
            except Exception as e:
                raise CheckpointError(
                    f"Failed to save {agent_type} checkpoint at episode {episode}: {e}",
                    agent_type=agent_type, path=str(handle.path),
                ) from e
        return str(handle.path)

    def list_checkpoints(self, agent_type: AgentType) -> List[CheckpointInfo]:
        with self._locks[agent_type]:
            return list(self._history(agent_type))

    def latest(self, agent_type: AgentType) -> Optional[CheckpointInfo]:
        """Most recent checkpoint for an agent type, if any"""
        checkpoints = self.list_checkpoints(agent_type)
        if not checkpoints:
            return None
        return max(checkpoints, key=lambda c: (c.timestamp, c.episode))

    def _history(self, agent_type: AgentType) -> List[CheckpointInfo]:
        if agent_type not in self._checkpoints:
            self._checkpoints[agent_type] = self._load_checkpoint_history(agent_type)
        return self._checkpoints[agent_type]

    def _remove_partial(self, path: Path):
        try:
            if path.exists():
                path.unlink()
                logger.debug(f"Removed partial checkpoint: {path}")
        except OSError as e:
            logger.warning(f"Failed to remove partial checkpoint {path}: {e}")

    def _apply_retention(self, history: List[CheckpointInfo]) -> Tuple[List[CheckpointInfo], List[CheckpointInfo]]:
        """Split history into (kept, expired) according to the retention policy"""
        if self.keep_recent <= 0 or len(history) <= self.keep_recent:
            return history, []
        return history[-self.keep_recent:], history[:-self.keep_recent]

    def _cleanup_old_checkpoints(self, expired: List[CheckpointInfo], kept: List[CheckpointInfo]):
        """Remove expired checkpoint files that no kept entry still points at"""
        kept_paths = {c.path for c in kept}
        for checkpoint in expired:
            if checkpoint.path in kept_paths:
                continue
            try:
                if os.path.exists(checkpoint.path):
                    os.remove(checkpoint.path)
                    logger.info(f"Removed old checkpoint: {checkpoint.path}")
            except OSError as e:
                logger.warning(f"Failed to remove checkpoint {checkpoint.path}: {e}")

    def _save_checkpoint_history(self, agent_type: AgentType, checkpoints: List[CheckpointInfo]):
        """Save checkpoint history to disk"""
        history_path = self.agent_dir(agent_type) / HISTORY_FILE
        history = {"checkpoints": [asdict(c) for c in checkpoints]}

        try:
            with open(history_path, 'w') as f:
                json.dump(history, f, indent=2)
        except OSError as e:
            raise CheckpointStorageError(
                f"Cannot write checkpoint history {history_path}: {e}",
                agent_type=agent_type, path=str(history_path),
            ) from e

    def _load_checkpoint_history(self, agent_type: AgentType) -> List[CheckpointInfo]:
        """Load checkpoint history from disk"""
        history_path = self.agent_dir(agent_type) / HISTORY_FILE

        if not history_path.exists():
            return []

        try:
            with open(history_path, 'r') as f:
                history = json.load(f)
            checkpoints = [CheckpointInfo(**c) for c in history.get("checkpoints", [])]
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load checkpoint history {history_path}: {e}")
            return []

        # Verify checkpoint files exist
        checkpoints = [c for c in checkpoints if os.path.exists(c.path)]
        logger.info(f"Loaded {len(checkpoints)} {agent_type} checkpoints from history")
        return checkpoints
