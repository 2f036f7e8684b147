"""
Configuration for training runs and the orchestrator.

TrainingConfiguration describes a single run and is immutable once built.
OrchestratorConfig holds process-wide settings and reads its defaults from
environment variables so deployments can tune it without code changes.
"""

import os
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from ..errors import InvalidConfigError


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class TrainingConfiguration:
    """Parameters for one training run.

    Attributes:
        max_episodes: Number of training steps to run
        learning_rate: Learning rate handed to the agent
        save_checkpoints: Whether to persist agent weights periodically
        checkpoint_interval: Episodes between checkpoints
        training_delay_ms: Pause after each step, throttles CPU usage
        batch_size: Batch size handed to the agent
        progress_interval: Episodes between progress notifications
    """
    max_episodes: int = 1000
    learning_rate: float = 0.001
    save_checkpoints: bool = True
    checkpoint_interval: int = 100
    training_delay_ms: int = 10
    batch_size: int = 32
    progress_interval: int = 10

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.validate()

    def validate(self) -> None:
        """Raise InvalidConfigError if any constraint is violated."""
        for name in ("max_episodes", "checkpoint_interval", "training_delay_ms",
                     "batch_size", "progress_interval"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfigError(f"{name} must be an integer, got {value!r}")
        if isinstance(self.learning_rate, bool) or not isinstance(self.learning_rate, (int, float)):
            raise InvalidConfigError(f"learning_rate must be a number, got {self.learning_rate!r}")

        if self.max_episodes <= 0:
            raise InvalidConfigError("max_episodes must be positive")
        if not self.learning_rate > 0:
            raise InvalidConfigError("learning_rate must be positive")
        if self.save_checkpoints and self.checkpoint_interval <= 0:
            raise InvalidConfigError("checkpoint_interval must be positive when saving checkpoints")
        if self.training_delay_ms < 0:
            raise InvalidConfigError("training_delay_ms must be non-negative")
        if self.batch_size <= 0:
            raise InvalidConfigError("batch_size must be positive")
        if self.progress_interval <= 0:
            raise InvalidConfigError("progress_interval must be positive")

    @property
    def training_delay_seconds(self) -> float:
        return self.training_delay_ms / 1000.0

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "TrainingConfiguration":
        """Build a configuration from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise InvalidConfigError(f"Unknown training config keys: {sorted(unknown)}")
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class OrchestratorConfig:
    """Process-wide settings for the training orchestrator.

    Attributes:
        checkpoint_dir: Root directory for per-agent checkpoint folders
        log_dir: Directory for log files and metrics output
        keep_recent: Number of recent checkpoints kept per agent type
        max_checkpoint_failures: Consecutive checkpoint failures tolerated
            before a session is terminated
        shutdown_timeout: Seconds to wait for runners and listeners on shutdown
        use_tensorboard: Whether the metrics logger writes TensorBoard scalars
    """
    checkpoint_dir: str = field(default_factory=lambda: os.getenv('TRAINING_CHECKPOINT_DIR', 'checkpoints'))
    log_dir: str = field(default_factory=lambda: os.getenv('TRAINING_LOG_DIR', 'logs'))
    keep_recent: int = field(default_factory=lambda: int(os.getenv('TRAINING_KEEP_RECENT', '5')))
    max_checkpoint_failures: int = field(
        default_factory=lambda: int(os.getenv('TRAINING_MAX_CHECKPOINT_FAILURES', '3')))
    shutdown_timeout: float = field(default_factory=lambda: float(os.getenv('TRAINING_SHUTDOWN_TIMEOUT', '5.0')))
    use_tensorboard: bool = field(default_factory=lambda: _env_bool('TRAINING_USE_TENSORBOARD', 'false'))

    def __post_init__(self):
        """Post-initialization validation"""
        self.validate()

    def validate(self):
        """Validate configuration"""
        if self.keep_recent < 0:
            raise InvalidConfigError(f"keep_recent must be >= 0, got {self.keep_recent}")
        if self.max_checkpoint_failures < 1:
            raise InvalidConfigError(
                f"max_checkpoint_failures must be >= 1, got {self.max_checkpoint_failures}")
        if self.shutdown_timeout < 0:
            raise InvalidConfigError(f"shutdown_timeout must be >= 0, got {self.shutdown_timeout}")

    @property
    def checkpoint_path(self) -> Path:
        return Path(self.checkpoint_dir)

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir)


def load_config(config_path: Union[str, Path]) -> Tuple[TrainingConfiguration, OrchestratorConfig]:
    """Load training and orchestrator configuration from a YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Tuple of (TrainingConfiguration, OrchestratorConfig)

    Raises:
        FileNotFoundError: If config file doesn't exist
        InvalidConfigError: If config is invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, 'r') as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise InvalidConfigError("Config file must contain a mapping")

    training = TrainingConfiguration.from_dict(raw.get("training") or {})

    orch_settings = raw.get("orchestrator") or {}
    known = {f.name for f in fields(OrchestratorConfig)}
    unknown = set(orch_settings) - known
    if unknown:
        raise InvalidConfigError(f"Unknown orchestrator config keys: {sorted(unknown)}")

    return training, OrchestratorConfig(**orch_settings)


def save_config(training: TrainingConfiguration,
                orchestrator: Optional[OrchestratorConfig],
                config_path: Union[str, Path]) -> None:
    """Save configuration to a YAML file in the layout load_config reads."""
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    output: Dict[str, Any] = {"training": training.to_dict()}
    if orchestrator is not None:
        output["orchestrator"] = asdict(orchestrator)

    with open(path, 'w') as f:
        yaml.dump(output, f, default_flow_style=False, sort_keys=False)
