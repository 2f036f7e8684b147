"""
Metrics logging for training monitoring.

A progress listener that records per-agent loss curves, writes them to
TensorBoard when it is installed, and saves a JSON summary on close.
"""

import json
import logging
import threading
import time
from collections import defaultdict, deque
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from .events import TrainingProgressListener
from .session import AgentType, TrainingSession

try:
    from torch.utils.tensorboard import SummaryWriter
    HAS_TENSORBOARD = True
except ImportError:
    HAS_TENSORBOARD = False
    SummaryWriter = None

logger = logging.getLogger(__name__)


class MetricsLogger(TrainingProgressListener):
    """
    Records training metrics delivered through progress events.

    Currently supports:
    - TensorBoard scalars per agent type
    - Console summaries every ``console_log_interval`` progress events
    - JSON summary of every finished session
    """

    def __init__(self,
                 log_dir: str,
                 experiment_name: Optional[str] = None,
                 console_log_interval: int = 10,
                 use_tensorboard: bool = True,
                 metrics_window: int = 100):
        """
        Initialize metrics logger.

        Args:
            log_dir: Directory for logs
            experiment_name: Name of the experiment
            console_log_interval: Progress events between console summaries
            use_tensorboard: Whether to use TensorBoard
            metrics_window: Window size for rolling averages
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.experiment_name = experiment_name or f"training_{int(time.time())}"
        self.console_log_interval = console_log_interval

        self.writer = None
        if use_tensorboard and HAS_TENSORBOARD:
            tb_dir = self.log_dir / "tensorboard" / self.experiment_name
            self.writer = SummaryWriter(str(tb_dir))
            logger.info(f"TensorBoard logging to: {tb_dir}")
        elif use_tensorboard and not HAS_TENSORBOARD:
            logger.warning("TensorBoard requested but not installed. Install with: pip install tensorboard")

        self._lock = threading.Lock()
        self.losses: Dict[AgentType, deque] = defaultdict(lambda: deque(maxlen=metrics_window))
        self.progress_events: Dict[AgentType, int] = defaultdict(int)
        self.sessions: List[Dict[str, Any]] = []
        self.errors: List[Dict[str, str]] = []
        self.checkpoint_warnings: Dict[AgentType, int] = defaultdict(int)
        self.start_time = time.time()

    def on_training_started(self, agent_type, config):
        if self.writer:
            for key, value in config.to_dict().items():
                self.writer.add_text(f"{agent_type.value}/hparam/{key}", str(value))

    def on_training_progress(self, agent_type, session: TrainingSession):
        with self._lock:
            self.losses[agent_type].append(session.current_loss)
            self.progress_events[agent_type] += 1
            count = self.progress_events[agent_type]

        if self.writer:
            step = session.episodes_completed
            self.writer.add_scalar(f"{agent_type.value}/current_loss", session.current_loss, step)
            self.writer.add_scalar(f"{agent_type.value}/average_loss", session.average_loss, step)
            self.writer.add_scalar(f"{agent_type.value}/progress", session.progress(), step)

        if count % self.console_log_interval == 0:
            self._log_to_console(agent_type, session)

    def on_training_completed(self, agent_type, session: TrainingSession):
        self._record_session(session)

    def on_training_interrupted(self, agent_type):
        with self._lock:
            self.sessions.append({"agent_type": agent_type.value, "state": "interrupted"})

    def on_training_error(self, agent_type, message):
        with self._lock:
            self.errors.append({"agent_type": agent_type.value, "message": message})

    def on_checkpoint_warning(self, agent_type, message):
        with self._lock:
            self.checkpoint_warnings[agent_type] += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get rolling loss statistics per agent type"""
        stats: Dict[str, Any] = {"elapsed_time": time.time() - self.start_time}
        with self._lock:
            for agent_type, values in self.losses.items():
                if values:
                    stats[f"{agent_type.value}_loss_mean"] = float(np.mean(values))
                    stats[f"{agent_type.value}_loss_std"] = float(np.std(values))
                    stats[f"{agent_type.value}_loss_last"] = float(values[-1])
        return stats

    def close(self) -> Path:
        """Close the logger and save final statistics"""
        if self.writer:
            self.writer.close()
        return self._save_final_stats()

    def _record_session(self, session: TrainingSession):
        with self._lock:
            self.sessions.append(session.to_dict())
        if self.writer:
            self.writer.add_scalar(
                f"{session.agent_type.value}/final_average_loss",
                session.average_loss, session.episodes_completed,
            )

    def _log_to_console(self, agent_type: AgentType, session: TrainingSession):
        with self._lock:
            recent = list(self.losses[agent_type])
        logger.info(
            f"{agent_type.value} | Episode {session.episodes_completed:,}/{session.config.max_episodes:,} "
            f"({session.progress():.0%}) | Loss: {session.current_loss:.4f} | "
            f"Avg: {session.average_loss:.4f} | Recent mean: {np.mean(recent):.4f} | "
            f"Elapsed: {self._format_time(session.duration())}"
        )

    def _format_time(self, seconds: float) -> str:
        """Format time in a human-readable way"""
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        seconds = int(seconds % 60)

        if hours > 0:
            return f"{hours}h {minutes}m {seconds}s"
        elif minutes > 0:
            return f"{minutes}m {seconds}s"
        else:
            return f"{seconds}s"

    def _save_final_stats(self) -> Path:
        """Save final training statistics to a JSON file"""
        stats_file = self.log_dir / f"{self.experiment_name}_final_stats.json"

        with self._lock:
            final_stats = {
                "experiment_name": self.experiment_name,
                "training_time": time.time() - self.start_time,
                "sessions": list(self.sessions),
                "errors": list(self.errors),
                "checkpoint_warnings": {t.value: n for t, n in self.checkpoint_warnings.items()},
                "loss_summary": {},
            }
            for agent_type, values in self.losses.items():
                if values:
                    final_stats["loss_summary"][agent_type.value] = {
                        "mean": float(np.mean(values)),
                        "std": float(np.std(values)),
                        "min": float(np.min(values)),
                        "max": float(np.max(values)),
                        "final": float(values[-1]),
                    }

        with open(stats_file, 'w') as f:
            json.dump(final_stats, f, indent=2)

        logger.info(f"Saved final statistics to: {stats_file}")
        return stats_file
