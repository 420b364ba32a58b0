import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from pathlib import Path
from datetime import datetime
from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

# -------------------- Configuration --------------------
ROOT_LOGGER_NAME = "streamcrew"

LOGS_DIR: Path = Path(os.getenv("STREAMCREW_LOGS_DIR", Path(__file__).parents[3] / "logs")).resolve()
CONSOLE_LEVEL: str = os.getenv("STREAMCREW_LOG_LEVEL", "INFO").upper()

LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] [%(name)s:%(lineno)d] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[1;31m",
}
RESET_COLOR = "\033[0m"


# -------------------- Formatters and handlers --------------------
class ColorFormatter(logging.Formatter):
    """Formatter that colors the whole line by level when the console supports it."""

    def __init__(self, fmt: str = LOG_FORMAT, datefmt: str = DATE_FORMAT, use_color: bool = True) -> None:
        super().__init__(fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = LEVEL_COLORS.get(record.levelname) if self.use_color else None
        return f"{color}{line}{RESET_COLOR}" if color else line


class PromptToolkitHandler(logging.StreamHandler):
    """
    Console handler that renders through prompt_toolkit.

    The operator console keeps a prompt open on the terminal; writing through
    ``print_formatted_text`` redraws the prompt below the log line instead of
    printing into it.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def should_use_color() -> bool:
    """Return True when stderr is a TTY and ANSI colors can be used."""
    try:
        return sys.stderr.isatty()
    except (AttributeError, ValueError):
        return False


def get_log_filepath() -> Path:
    """Path of today's log file; restarts on the same day append to it."""
    return LOGS_DIR / f"streamcrew-{datetime.now():%Y-%m-%d}.log"


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(logging.DEBUG)
    root.propagate = False

    # Other handlers (test capture, embedding apps) may be attached too.
    if not any(isinstance(h, PromptToolkitHandler) for h in root.handlers):
        console_handler = PromptToolkitHandler()
        console_handler.setLevel(getattr(logging, CONSOLE_LEVEL, logging.INFO))
        console_handler.setFormatter(ColorFormatter(use_color=should_use_color()))
        root.addHandler(console_handler)

    if any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        return root

    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        get_log_filepath(),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(file_handler)

    return root


def get_logger(logger_name: str) -> logging.Logger:
    """Return the ``streamcrew.<logger_name>`` logger.

    Every component logger is a child of the ``streamcrew`` logger, which owns
    the console and file handlers; they are attached on first use.
    """
    _configure_root()
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{logger_name}")


# -------------------- Exception Handling --------------------
def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """Log uncaught exceptions; Ctrl+C keeps the default behaviour."""
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
        return
    get_logger("uncaught").critical(
        "Uncaught exception",
        exc_info=(exception_type, exception_instance, exception_traceback),
    )


# -------------------- Quiet third-party loggers --------------------
for noisy in ("openai", "httpx", "httpcore", "aiohttp", "aiosqlite", "asyncio"):
    logging.getLogger(noisy).setLevel(logging.WARNING)
