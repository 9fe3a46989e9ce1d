"""
Logging
=======

One logger tree ('pongevo.*') shared by the tournament, the trainer and the
persistence layer. Console output is colored when attached to a terminal;
the optional log file always gets plain text at DEBUG.

Usage:
    from src.utils.logger import get_logger

    logger = get_logger(__name__)      # 'src.ai.tournament' -> 'pongevo.ai.tournament'
    logger.info("Generation 3/50 complete")

Structured one-liners:
    log_generation_stats(stats)        gen=3 | best=0.812 (K2Q9) | avg=...
    log_training_metrics(...)          ep=40 | fitness=0.441 | eps=0.4457 | ...
    log_model_event('save', path, ...) SAVE | models/ai_model.bin | fitness=...

The console level comes from Config.LOG_LEVEL (DEBUG, INFO, WARNING, ERROR).
"""

import logging
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Union


ROOT_LOGGER_NAME = 'pongevo'

_RECORD_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'


class LogLevel(Enum):
    """Log levels accepted by setup_logging()."""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR

    @classmethod
    def from_name(cls, name: str) -> 'LogLevel':
        """Look up a level by name, falling back to INFO."""
        return cls.__members__.get(name.upper(), cls.INFO)


_initialized = False
_log_dir: Optional[Path] = None
_file_handler: Optional[logging.FileHandler] = None


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, fmt: str = _RECORD_FORMAT, use_colors: bool = True):
        super().__init__(fmt)
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)
        # Color a copy; the file handler formats the same record afterwards
        colored = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def setup_logging(
    log_dir: str = 'logs',
    level: Union[LogLevel, str] = LogLevel.INFO,
    console_output: bool = True,
    file_output: bool = True,
    log_filename: Optional[str] = None,
    force: bool = False,
) -> Optional[Path]:
    """
    Configure the 'pongevo' logger tree.

    Args:
        log_dir: Directory for the log file
        level: Console level, as a LogLevel or its name
        console_output: Log to stdout
        file_output: Log to log_dir/log_filename
        log_filename: Defaults to tournament_YYYYMMDD_HHMMSS.log
        force: Replace an existing configuration (the CLI does this once it
            has read LOG_LEVEL; modules may have auto-initialized already)

    Returns:
        Path of the log file, or None without file output
    """
    global _initialized, _log_dir, _file_handler

    if _initialized and not force:
        return get_log_path()

    if isinstance(level, str):
        level = LogLevel.from_name(level)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    _file_handler = None
    root_logger.setLevel(logging.DEBUG if file_output else level.value)

    if console_output:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level.value)
        console.setFormatter(ColoredFormatter())
        root_logger.addHandler(console)

    if file_output:
        _log_dir = Path(log_dir)
        _log_dir.mkdir(parents=True, exist_ok=True)
        if log_filename is None:
            log_filename = f"tournament_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        _file_handler = logging.FileHandler(_log_dir / log_filename, mode='a', encoding='utf-8')
        _file_handler.setLevel(logging.DEBUG)
        _file_handler.setFormatter(logging.Formatter(_RECORD_FORMAT))
        root_logger.addHandler(_file_handler)

    _initialized = True
    root_logger.debug(f"Logging initialized (level={level.name}, file={file_output})")
    return get_log_path()


def get_logger(name: str) -> logging.Logger:
    """
    Child logger of the project tree; 'src.' is dropped from module names.

    The first call configures console-only logging if nothing has yet.
    """
    if not _initialized:
        setup_logging(file_output=False)

    if name.startswith('src.'):
        name = name[len('src.'):]
    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')


def get_log_path() -> Optional[Path]:
    """Current log file, if file output is on."""
    if _file_handler is not None:
        return Path(_file_handler.baseFilename)
    return None


# -----------------------------------------------------------------------------
# Structured one-line records
# -----------------------------------------------------------------------------

def _fields(**values) -> str:
    return " | ".join(f"{key}={value}" for key, value in values.items() if value is not None)


def log_training_metrics(
    episode: int,
    fitness: float,
    epsilon: float,
    wins: Optional[int] = None,
    total_games: Optional[int] = None,
    buffer_size: Optional[int] = None,
) -> None:
    """
    Log one trainer progress line.

    Args:
        episode: Episode index
        fitness: Agent fitness (0.7 recent win rate + 0.3 exploitation)
        epsilon: Current exploration rate
        wins: Matches won so far
        total_games: Matches played so far
        buffer_size: Replay buffer fill level
    """
    record = f"{wins}/{total_games}" if wins is not None and total_games is not None else None
    get_logger('training').info(_fields(
        ep=episode,
        fitness=f"{fitness:.3f}",
        eps=f"{epsilon:.4f}",
        record=record,
        buffer=buffer_size,
    ))


def log_generation_stats(stats) -> None:
    """Log a GenerationStats record."""
    get_logger('tournament').info(_fields(
        gen=stats.generation,
        best=f"{stats.best_fitness:.3f} ({stats.best_individual_id})",
        avg=f"{stats.average_fitness:.3f}",
        worst=f"{stats.worst_fitness:.3f}",
        win_rate=f"{stats.average_win_rate:.3f}",
        all_time=f"{stats.all_time_best_fitness:.3f}",
    ))


def log_model_event(event: str, path: str, **kwargs) -> None:
    """
    Log a model file event.

    Args:
        event: 'save', 'load' or 'champion'
        path: Model file path
        **kwargs: Extra context such as id or fitness
    """
    extra = _fields(**kwargs)
    message = f"{event.upper()} | {path}"
    get_logger('model').info(f"{message} | {extra}" if extra else message)
