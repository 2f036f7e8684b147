"""
Command-line interface for training agents.

Starts one or all agent types under a TrainingOrchestrator, reports
progress through the logging system, and prints the final comparison.
"""

import argparse
import json
import logging
import random
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import numpy as np
import torch

from .training import (
    AgentType,
    MetricsLogger,
    OrchestratorConfig,
    SessionState,
    TrainingConfiguration,
    TrainingOrchestrator,
    TrainingProgressListener,
    load_config,
)
from .errors import InvalidConfigError

logger = logging.getLogger(__name__)


class LoggingListener(TrainingProgressListener):
    """Reports lifecycle events through the logging system"""

    def on_training_started(self, agent_type, config):
        logger.info(f"[{agent_type}] started: {config.max_episodes} episodes, lr={config.learning_rate}")

    def on_training_progress(self, agent_type, session):
        logger.info(f"[{agent_type}] {session.episodes_completed}/{session.config.max_episodes} "
                    f"loss={session.current_loss:.4f} avg={session.average_loss:.4f}")

    def on_training_completed(self, agent_type, session):
        logger.info(f"[{agent_type}] completed in {session.duration():.1f}s, "
                    f"average loss {session.average_loss:.4f}")

    def on_training_interrupted(self, agent_type):
        logger.info(f"[{agent_type}] interrupted")

    def on_training_error(self, agent_type, message):
        logger.error(f"[{agent_type}] error: {message}")

    def on_checkpoint_warning(self, agent_type, message):
        logger.warning(f"[{agent_type}] checkpoint warning: {message}")


def setup_logging(log_dir: str, experiment_name: str, level: str = "INFO"):
    """Setup logging with both console and file handlers"""
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    log_file = Path(log_dir) / f"{experiment_name}_training.log"

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file)
        ]
    )


def set_random_seeds(seed: int):
    """Set random seeds for reproducibility"""
    logger.info(f"Setting random seeds to: {seed}")
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)


def generate_experiment_name() -> str:
    """Generate a unique experiment name based on timestamp"""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"training_{timestamp}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Train DQN, PPO and strategy agents")
    parser.add_argument("--config", type=str, help="YAML configuration file")
    parser.add_argument("--agent", type=str, default="all",
                        choices=["all"] + [t.value.lower() for t in AgentType],
                        help="Agent type to train (default: all)")
    parser.add_argument("--max-episodes", type=int, help="Episodes per agent")
    parser.add_argument("--learning-rate", type=float, help="Learning rate")
    parser.add_argument("--batch-size", type=int, help="Batch size")
    parser.add_argument("--training-delay-ms", type=int, help="Delay between training steps")
    parser.add_argument("--checkpoint-interval", type=int, help="Episodes between checkpoints")
    parser.add_argument("--progress-interval", type=int, help="Episodes between progress reports")
    parser.add_argument("--no-checkpoints", action="store_true", help="Disable checkpointing")
    parser.add_argument("--checkpoint-dir", type=str, help="Checkpoint root directory")
    parser.add_argument("--log-dir", type=str, help="Log directory")
    parser.add_argument("--experiment-name", type=str, help="Name used for log files")
    parser.add_argument("--tensorboard", action="store_true", help="Write TensorBoard scalars")
    parser.add_argument("--seed", type=int, help="Random seed")
    parser.add_argument("--timeout", type=float, help="Stop training after this many seconds")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level")
    return parser


def build_configs(args: argparse.Namespace):
    """Merge YAML configuration with command-line overrides."""
    if args.config:
        training, orchestrator = load_config(args.config)
        values = training.to_dict()
    else:
        values = TrainingConfiguration().to_dict()
        orchestrator = OrchestratorConfig()

    overrides = {
        "max_episodes": args.max_episodes,
        "learning_rate": args.learning_rate,
        "batch_size": args.batch_size,
        "training_delay_ms": args.training_delay_ms,
        "checkpoint_interval": args.checkpoint_interval,
        "progress_interval": args.progress_interval,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    if args.no_checkpoints:
        values["save_checkpoints"] = False
    training = TrainingConfiguration.from_dict(values)

    if args.checkpoint_dir:
        orchestrator.checkpoint_dir = args.checkpoint_dir
    if args.log_dir:
        orchestrator.log_dir = args.log_dir
    if args.tensorboard:
        orchestrator.use_tensorboard = True

    return training, orchestrator


def _wait(orchestrator: TrainingOrchestrator, timeout: Optional[float]) -> None:
    deadline = None if timeout is None else time.monotonic() + timeout
    while not orchestrator.wait_all(timeout=0.5):
        if deadline is not None and time.monotonic() >= deadline:
            logger.info(f"Timeout of {timeout}s reached, stopping training")
            orchestrator.stop_all()
            orchestrator.wait_all()
            return


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        training, orchestrator_config = build_configs(args)
    except (InvalidConfigError, FileNotFoundError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    experiment_name = args.experiment_name or generate_experiment_name()
    setup_logging(orchestrator_config.log_dir, experiment_name, args.log_level)
    if args.seed is not None:
        set_random_seeds(args.seed)

    metrics_logger = MetricsLogger(
        log_dir=orchestrator_config.log_dir,
        experiment_name=experiment_name,
        use_tensorboard=orchestrator_config.use_tensorboard,
    )

    orchestrator = TrainingOrchestrator(orchestrator_config)
    orchestrator.add_progress_listener(LoggingListener())
    orchestrator.add_progress_listener(metrics_logger)

    try:
        if args.agent == "all":
            orchestrator.start_all(training)
        else:
            orchestrator.start_training(AgentType.parse(args.agent), training)

        try:
            _wait(orchestrator, args.timeout)
        except KeyboardInterrupt:
            logger.info("Interrupted by user, stopping training...")
            orchestrator.stop_all()
            orchestrator.wait_all(orchestrator_config.shutdown_timeout)

        comparison = orchestrator.get_comparison()
    finally:
        orchestrator.shutdown()
        metrics_logger.close()

    print(json.dumps(comparison.to_dict(), indent=2))

    failed = [
        s for s in comparison.sessions.values()
        if s is not None and s.state is SessionState.ERROR
    ]
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
