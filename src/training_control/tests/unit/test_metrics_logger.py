"""
Unit tests for MetricsLogger.
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from ...training import AgentType, MetricsLogger, SessionState, TrainingConfiguration, TrainingSession
from ...training import metrics_logger as metrics_logger_module


@pytest.fixture
def metrics_logger(temp_dir):
    return MetricsLogger(log_dir=temp_dir, experiment_name="unit", use_tensorboard=False,
                         console_log_interval=2)


def run_session(agent_type, losses):
    config = TrainingConfiguration(max_episodes=len(losses), save_checkpoints=False)
    session = TrainingSession.start(agent_type, config)
    snapshots = []
    for loss in losses:
        session = session.record_episode(loss)
        snapshots.append(session)
    return snapshots


class TestMetricsLogger:
    """Test suite for MetricsLogger."""

    def test_initialization(self, metrics_logger, temp_dir):
        assert metrics_logger.writer is None
        assert metrics_logger.experiment_name == "unit"
        assert str(metrics_logger.log_dir) == temp_dir

    def test_progress_stats(self, metrics_logger):
        for session in run_session(AgentType.DQN, [1.0, 0.5, 0.3]):
            metrics_logger.on_training_progress(AgentType.DQN, session)

        stats = metrics_logger.get_stats()

        assert stats["DQN_loss_mean"] == pytest.approx(0.6)
        assert stats["DQN_loss_last"] == pytest.approx(0.3)
        assert "PPO_loss_mean" not in stats
        assert metrics_logger.progress_events[AgentType.DQN] == 3

    def test_metrics_window(self, temp_dir):
        metrics_logger = MetricsLogger(log_dir=temp_dir, use_tensorboard=False, metrics_window=2)
        for session in run_session(AgentType.PPO, [4.0, 2.0, 1.0]):
            metrics_logger.on_training_progress(AgentType.PPO, session)

        assert list(metrics_logger.losses[AgentType.PPO]) == [2.0, 1.0]

    def test_final_stats_file(self, metrics_logger):
        snapshots = run_session(AgentType.STRATEGY, [0.4, 0.2])
        for session in snapshots:
            metrics_logger.on_training_progress(AgentType.STRATEGY, session)
        metrics_logger.on_training_completed(
            AgentType.STRATEGY, snapshots[-1].finish(SessionState.COMPLETED))
        metrics_logger.on_training_interrupted(AgentType.DQN)
        metrics_logger.on_training_error(AgentType.PPO, "agent exploded")
        metrics_logger.on_checkpoint_warning(AgentType.PPO, "disk full")

        stats_file = metrics_logger.close()

        assert stats_file.name == "unit_final_stats.json"
        with open(stats_file) as f:
            stats = json.load(f)
        assert stats["experiment_name"] == "unit"
        assert [s["agent_type"] for s in stats["sessions"]] == ["STRATEGY", "DQN"]
        assert stats["sessions"][0]["state"] == "completed"
        assert stats["sessions"][1]["state"] == "interrupted"
        assert stats["errors"] == [{"agent_type": "PPO", "message": "agent exploded"}]
        assert stats["checkpoint_warnings"] == {"PPO": 1}
        assert stats["loss_summary"]["STRATEGY"]["final"] == pytest.approx(0.2)
        assert stats["loss_summary"]["STRATEGY"]["min"] == pytest.approx(0.2)

    def test_tensorboard_logging(self, temp_dir):
        mock_writer = MagicMock()
        with patch.object(metrics_logger_module, "HAS_TENSORBOARD", True), \
                patch.object(metrics_logger_module, "SummaryWriter", return_value=mock_writer):
            metrics_logger = MetricsLogger(log_dir=temp_dir, experiment_name="tb", use_tensorboard=True)

        for session in run_session(AgentType.DQN, [0.8, 0.4]):
            metrics_logger.on_training_progress(AgentType.DQN, session)
        metrics_logger.close()

        mock_writer.add_scalar.assert_any_call("DQN/current_loss", 0.8, 1)
        mock_writer.add_scalar.assert_any_call("DQN/average_loss", pytest.approx(0.6), 2)
        mock_writer.close.assert_called_once()

    def test_format_time(self, metrics_logger):
        assert metrics_logger._format_time(42) == "42s"
        assert metrics_logger._format_time(125) == "2m 5s"
        assert metrics_logger._format_time(3725) == "1h 2m 5s"
