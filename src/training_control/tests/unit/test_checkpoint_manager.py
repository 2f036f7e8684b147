"""
Unit tests for CheckpointManager.
"""

import json
from pathlib import Path
from unittest.mock import Mock

import pytest

from ...errors import CheckpointError, CheckpointStorageError
from ...training import AgentType, CheckpointManager, TrainingConfiguration, TrainingSession
from ...training.checkpoint_manager import HISTORY_FILE
from ..conftest import FakeAgent


@pytest.fixture
def manager(temp_dir):
    return CheckpointManager(checkpoint_dir=str(Path(temp_dir) / "checkpoints"), keep_recent=3)


@pytest.fixture
def session():
    config = TrainingConfiguration(max_episodes=10, checkpoint_interval=1)
    return TrainingSession.start(AgentType.DQN, config).record_episode(0.4)


class TestCheckpointManager:
    """Test suite for CheckpointManager."""

    def test_save_writes_file_and_history(self, manager, session):
        """Saving writes the agent's file and records it in the history."""
        agent = FakeAgent()

        path = manager.save(agent, AgentType.DQN, 1, session)

        assert Path(path).exists()
        assert Path(path).name == f"checkpoint_{session.session_id[:8]}_episode_1.pt"
        assert Path(path).parent == manager.agent_dir(AgentType.DQN)
        assert agent.saved_paths == [path]

        history_path = manager.agent_dir(AgentType.DQN) / HISTORY_FILE
        with open(history_path) as f:
            history = json.load(f)
        assert len(history["checkpoints"]) == 1
        entry = history["checkpoints"][0]
        assert entry["agent_type"] == "DQN"
        assert entry["episode"] == 1
        assert entry["session_id"] == session.session_id
        assert entry["average_loss"] == pytest.approx(0.4)

    def test_agent_types_use_separate_directories(self, manager):
        manager.save(FakeAgent(), AgentType.DQN, 1)
        manager.save(FakeAgent(), AgentType.PPO, 1)

        assert manager.agent_dir(AgentType.DQN) != manager.agent_dir(AgentType.PPO)
        assert len(manager.list_checkpoints(AgentType.DQN)) == 1
        assert len(manager.list_checkpoints(AgentType.PPO)) == 1
        assert manager.list_checkpoints(AgentType.STRATEGY) == []

    def test_keep_recent_retention(self, manager):
        """Only the most recent checkpoints are kept on disk."""
        agent = FakeAgent()
        paths = [manager.save(agent, AgentType.STRATEGY, episode) for episode in range(1, 7)]

        checkpoints = manager.list_checkpoints(AgentType.STRATEGY)
        assert [c.episode for c in checkpoints] == [4, 5, 6]
        for path in paths[:3]:
            assert not Path(path).exists()
        for path in paths[3:]:
            assert Path(path).exists()

    def test_second_session_keeps_its_checkpoints(self, manager):
        """Training an agent type again never deletes the new run's files."""
        config = TrainingConfiguration(max_episodes=20, checkpoint_interval=5)
        first = TrainingSession.start(AgentType.DQN, config)
        second = TrainingSession.start(AgentType.DQN, config)
        agent = FakeAgent()

        for episode in (5, 10):
            manager.save(agent, AgentType.DQN, episode, first)
        for episode in (5, 10, 15):
            manager.save(agent, AgentType.DQN, episode, second)

        checkpoints = manager.list_checkpoints(AgentType.DQN)
        assert [(c.session_id, c.episode) for c in checkpoints] == [
            (second.session_id, 5), (second.session_id, 10), (second.session_id, 15),
        ]
        assert all(Path(c.path).exists() for c in checkpoints)

        reloaded = CheckpointManager(checkpoint_dir=str(manager.checkpoint_dir), keep_recent=3)
        assert [c.path for c in reloaded.list_checkpoints(AgentType.DQN)] == [c.path for c in checkpoints]

    def test_rewritten_path_replaces_entry(self, manager):
        agent = FakeAgent()
        manager.save(agent, AgentType.PPO, 1)
        manager.save(agent, AgentType.PPO, 2)
        path = manager.save(agent, AgentType.PPO, 1)

        checkpoints = manager.list_checkpoints(AgentType.PPO)
        assert [c.episode for c in checkpoints] == [2, 1]
        assert len({c.path for c in checkpoints}) == 2
        assert Path(path).exists()

    def test_history_write_failure_leaves_history_unchanged(self, manager):
        """A failed history write records nothing in memory or on disk."""
        agent = FakeAgent()
        first = manager.save(agent, AgentType.STRATEGY, 1)
        history_path = manager.agent_dir(AgentType.STRATEGY) / HISTORY_FILE
        history_path.unlink()
        history_path.mkdir()

        with pytest.raises(CheckpointStorageError):
            manager.save(agent, AgentType.STRATEGY, 2)

        assert [c.path for c in manager.list_checkpoints(AgentType.STRATEGY)] == [first]
        assert not (manager.agent_dir(AgentType.STRATEGY) / "checkpoint_episode_2.pt").exists()
        assert not manager._locks[AgentType.STRATEGY].locked()

    def test_keep_everything(self, temp_dir):
        manager = CheckpointManager(checkpoint_dir=temp_dir, keep_recent=0)
        agent = FakeAgent()
        for episode in range(1, 8):
            manager.save(agent, AgentType.DQN, episode)

        assert len(manager.list_checkpoints(AgentType.DQN)) == 7

    def test_agent_error_wrapped(self, manager):
        """Agent failures surface as recoverable CheckpointErrors."""
        agent = FakeAgent(checkpoint_error=OSError("disk full"))

        with pytest.raises(CheckpointError, match="disk full") as exc_info:
            manager.save(agent, AgentType.PPO, 5)

        assert not isinstance(exc_info.value, CheckpointStorageError)
        assert exc_info.value.agent_type is AgentType.PPO
        assert manager.list_checkpoints(AgentType.PPO) == []

    def test_agent_receives_handle_path(self, manager):
        agent = Mock()

        path = manager.save(agent, AgentType.STRATEGY, 7)

        agent.save_checkpoint.assert_called_once_with(path)
        assert path.endswith("checkpoint_episode_7.pt")

    def test_partial_file_removed_and_lock_released(self, manager):
        """A failing write leaves no file behind and does not hold the lock."""
        with pytest.raises(RuntimeError):
            with manager.acquire(AgentType.DQN, 3) as handle:
                handle.path.write_bytes(b"half")
                raise RuntimeError("interrupted mid-write")

        assert not handle.path.exists()
        assert not manager._locks[AgentType.DQN].locked()
        assert manager.list_checkpoints(AgentType.DQN) == []

        # Storage is still usable afterwards
        manager.save(FakeAgent(), AgentType.DQN, 4)
        assert [c.episode for c in manager.list_checkpoints(AgentType.DQN)] == [4]

    def test_lock_released_after_success(self, manager):
        manager.save(FakeAgent(), AgentType.DQN, 1)
        assert not manager._locks[AgentType.DQN].locked()

    def test_unusable_root_is_storage_error(self, temp_dir):
        """A root path that is a file makes storage unrecoverable."""
        blocker = Path(temp_dir) / "not_a_dir"
        blocker.write_text("occupied")
        manager = CheckpointManager(checkpoint_dir=str(blocker))

        with pytest.raises(CheckpointStorageError):
            manager.save(FakeAgent(), AgentType.DQN, 1)

        assert not manager._locks[AgentType.DQN].locked()

    def test_history_reloaded_by_new_manager(self, manager):
        agent = FakeAgent()
        manager.save(agent, AgentType.DQN, 1)
        manager.save(agent, AgentType.DQN, 2)

        reloaded = CheckpointManager(checkpoint_dir=str(manager.checkpoint_dir), keep_recent=3)

        assert [c.episode for c in reloaded.list_checkpoints(AgentType.DQN)] == [1, 2]

    def test_history_skips_missing_files(self, manager):
        agent = FakeAgent()
        first = manager.save(agent, AgentType.DQN, 1)
        manager.save(agent, AgentType.DQN, 2)
        Path(first).unlink()

        reloaded = CheckpointManager(checkpoint_dir=str(manager.checkpoint_dir))

        assert [c.episode for c in reloaded.list_checkpoints(AgentType.DQN)] == [2]

    def test_corrupt_history_is_ignored(self, manager):
        directory = manager.agent_dir(AgentType.PPO)
        directory.mkdir(parents=True)
        (directory / HISTORY_FILE).write_text("{not json")

        assert manager.list_checkpoints(AgentType.PPO) == []

    def test_latest(self, manager):
        assert manager.latest(AgentType.DQN) is None

        agent = FakeAgent()
        manager.save(agent, AgentType.DQN, 1)
        manager.save(agent, AgentType.DQN, 2)

        assert manager.latest(AgentType.DQN).episode == 2
