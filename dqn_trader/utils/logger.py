"""
Centralized logging infrastructure for the DQN trader.

Usage:
    from dqn_trader.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Training started")
    logger.debug("Epsilon: 0.45")
    logger.warning("Replay memory below minimum fill")
    logger.error("Failed to save model")

Configuration:
    Call setup_logging() once from the entry point to choose the level and
    log directory. Modules that log before that get the defaults.
"""

import logging
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional


ROOT_LOGGER_NAME = 'dqn_trader'


class LogLevel(Enum):
    """Log levels for configuration."""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR


# Module-level state
_initialized = False
_auto_initialized = False  # Set when get_logger() initialized with defaults


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to console output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',
    }

    def __init__(self, fmt: str, use_colors: bool = True):
        super().__init__(fmt)
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if self.use_colors:
            # Color a copy so the file handler still sees the plain level name
            record = logging.makeLogRecord(record.__dict__)
            color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
            record.levelname = f"{color}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


def setup_logging(
    log_dir: str = 'logs',
    level: LogLevel = LogLevel.INFO,
    console_output: bool = True,
    file_output: bool = True,
    log_filename: Optional[str] = None,
) -> None:
    """
    Initialize the logging system.

    Args:
        log_dir: Directory for log files
        level: Minimum log level to capture
        console_output: Whether to output to console
        file_output: Whether to output to file
        log_filename: Custom log filename (default: training_YYYYMMDD_HHMMSS.log)
    """
    global _initialized, _auto_initialized

    # An explicit call replaces the defaults installed by get_logger()
    if _initialized and not _auto_initialized:
        return

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level.value)
    root_logger.handlers.clear()

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level.value)
        console_fmt = ColoredFormatter(
            '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            use_colors=True
        )
        console_handler.setFormatter(console_fmt)
        root_logger.addHandler(console_handler)

    if file_output:
        log_path_dir = Path(log_dir)
        log_path_dir.mkdir(parents=True, exist_ok=True)

        if log_filename is None:
            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            log_filename = f'training_{timestamp}.log'

        log_path = log_path_dir / log_filename
        file_handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)  # Capture everything in file
        file_fmt = logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
        )
        file_handler.setFormatter(file_fmt)
        root_logger.addHandler(file_handler)

    _initialized = True
    _auto_initialized = False
    root_logger.debug(f"Logging initialized (level={level.name}, file={file_output})")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance under the project namespace

    Example:
        logger = get_logger(__name__)
        logger.info("Message")
    """
    global _auto_initialized

    if not _initialized:
        setup_logging(file_output=False)
        _auto_initialized = True

    prefix = ROOT_LOGGER_NAME + '.'
    if name.startswith(prefix):
        name = name[len(prefix):]

    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')


def log_training_metrics(
    episode: int,
    reward: float,
    epsilon: float,
    trades: Optional[int] = None,
    avg_reward: Optional[float] = None,
    avg_trades: Optional[float] = None,
    loss: Optional[float] = None,
    frames: Optional[int] = None,
) -> None:
    """
    Log training metrics in a consistent format.

    Args:
        episode: Current episode number
        reward: Cumulative reward of the finished episode
        epsilon: Current exploration rate
        trades: Non-hold actions taken in the episode
        avg_reward: Moving average of episode rewards
        avg_trades: Moving average of trades per episode
        loss: Recent average training loss
        frames: Total frames played so far
    """
    logger = get_logger('training')

    metrics = [
        f"ep={episode}",
        f"reward={reward:.3f}",
        f"eps={epsilon:.4f}",
    ]

    if trades is not None:
        metrics.append(f"trades={trades}")
    if avg_reward is not None:
        metrics.append(f"avg_reward={avg_reward:.3f}")
    if avg_trades is not None:
        metrics.append(f"avg_trades={avg_trades:.1f}")
    if loss is not None:
        metrics.append(f"loss={loss:.6f}")
    if frames is not None:
        metrics.append(f"frames={frames}")

    logger.info(" | ".join(metrics))


def log_model_event(event: str, path: str, **kwargs) -> None:
    """
    Log model-related events (save/load).

    Args:
        event: Event type ('save', 'load', 'checkpoint')
        path: Model file path
        **kwargs: Additional context (e.g., episode, avg_reward)
    """
    logger = get_logger('model')

    extra = " | ".join(f"{k}={v}" for k, v in kwargs.items())
    if extra:
        logger.info(f"{event.upper()} | {path} | {extra}")
    else:
        logger.info(f"{event.upper()} | {path}")
