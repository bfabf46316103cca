"""Logging setup.

Interactive runs log to a file only, since the TUI owns the terminal. The
one-shot table and task listings log to stderr. Polls run on loader worker
threads, so the detailed format names the thread.
"""
import logging
import sys
from pathlib import Path
from typing import IO, Optional

LOG_FILE_NAME = 'vibe-orchestrator.log'
DETAILED_FORMAT = '%(asctime)s [%(threadName)s] %(levelname)s %(name)s: %(message)s'
SIMPLE_FORMAT = '[%(name)s] %(message)s'
FILE_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
CONSOLE_DATE_FORMAT = '%H:%M:%S'

# Log every HTTP request or git command at DEBUG
NOISY_LOGGERS = ('github', 'urllib3', 'git')


class ColoredFormatter(logging.Formatter):
    """Colors the level name when writing to a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None, stream: Optional[IO] = None):
        super().__init__(fmt=fmt, datefmt=datefmt)
        stream = sys.stderr if stream is None else stream
        self.use_color = hasattr(stream, 'isatty') and stream.isatty()

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelno)
        if not self.use_color or color is None:
            return super().format(record)
        # Other handlers must keep seeing the plain level name
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def log_file_path(log_dir: Optional[Path] = None) -> Path:
    return Path(log_dir or Path.home() / '.vibe').expanduser() / LOG_FILE_NAME


def setup_logging(
    verbose: bool = False,
    debug: bool = False,
    tui_mode: bool = False,
    log_dir: Optional[Path] = None,
) -> Optional[Path]:
    """Configure the root logger for an interactive or a one-shot run.

    Args:
        verbose: Show INFO messages on the console
        debug: Show DEBUG messages (library chatter included) and write the log file
        tui_mode: Log to the file only
        log_dir: Directory for the log file (defaults to ~/.vibe)

    Returns:
        Path of the log file, or None when only the console is used
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    root_logger = logging.getLogger()
    # The file handler takes everything in TUI mode; handlers filter on their own
    root_logger.setLevel(logging.DEBUG if tui_mode else level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if debug else logging.WARNING)

    log_file = None
    if tui_mode or debug:
        log_file = log_file_path(log_dir)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='w')  # One run per file
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt=FILE_DATE_FORMAT))
        root_logger.addHandler(file_handler)

    if not tui_mode:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(ColoredFormatter(
            DETAILED_FORMAT if debug else SIMPLE_FORMAT,
            datefmt=CONSOLE_DATE_FORMAT,
            stream=sys.stderr,
        ))
        root_logger.addHandler(console_handler)

    return log_file


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, named without the package and layer prefixes.

    ``vibe_orchestrator.services.task_store`` logs as ``task_store`` and
    ``vibe_orchestrator.core.loader`` as ``loader``.
    """
    if name.startswith('vibe_orchestrator.'):
        name = name[len('vibe_orchestrator.'):]
    for layer in ('services.', 'core.'):
        if name.startswith(layer):
            name = name[len(layer):]
            break
    return logging.getLogger(name)
